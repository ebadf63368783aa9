"""
Configuration management for the Rekognition Tagger service.
"""

import json
import secrets
from typing import Optional, List, Union
from pydantic import Field, validator
from pydantic_settings import BaseSettings


DEFAULT_FACE_ATTRIBUTES = ["BoundingBox", "Confidence", "Emotions", "AgeRange", "Gender"]


class Settings(BaseSettings):
    """Application settings with validation."""

    # Storage Configuration
    database_url: str = Field(default="sqlite:///rekognition_tagger.db", env="DATABASE_URL")

    # AWS Configuration
    aws_region: str = Field(default="us-east-1", env="AWS_REGION")
    aws_access_key_id: Optional[str] = Field(default=None, env="AWS_ACCESS_KEY_ID")
    aws_secret_access_key: Optional[str] = Field(default=None, env="AWS_SECRET_ACCESS_KEY")
    aws_endpoint_url: Optional[str] = Field(default=None, env="AWS_ENDPOINT_URL")

    # Capability Configuration
    min_confidence: float = Field(default=80.0, env="MIN_CONFIDENCE", ge=0.0, le=100.0)
    detect_labels: bool = Field(default=True, env="DETECT_LABELS")
    detect_moderation: bool = Field(default=False, env="DETECT_MODERATION")
    detect_faces: bool = Field(default=False, env="DETECT_FACES")
    detect_celebrities: bool = Field(default=False, env="DETECT_CELEBRITIES")
    detect_text: bool = Field(default=False, env="DETECT_TEXT")
    face_attributes: Union[List[str], str] = Field(default=DEFAULT_FACE_ATTRIBUTES, env="FACE_ATTRIBUTES")

    # Remote file downloads
    max_retries: int = Field(default=3, env="MAX_RETRIES", ge=0)
    retry_delay: float = Field(default=1.0, env="RETRY_DELAY", gt=0.0)
    request_timeout: float = Field(default=30.0, env="REQUEST_TIMEOUT", gt=0.0)
    header_timeout: float = Field(default=5.0, env="HEADER_TIMEOUT", gt=0.0)  # Upload-time type check

    # Logging Configuration
    log_level: str = Field(default="INFO", env="LOG_LEVEL")

    # HTTP server / admin
    server_port: int = Field(default=8000, env="SERVER_PORT")
    admin_api_key: str = Field(default="", env="ADMIN_API_KEY")
    token_secret: str = Field(default_factory=lambda: secrets.token_hex(32), env="TOKEN_SECRET")
    token_lifetime: int = Field(default=86400, env="TOKEN_LIFETIME", gt=0)

    # Job queue / scheduling
    job_poll_interval: float = Field(default=5.0, env="JOB_POLL_INTERVAL", gt=0.0)
    enable_scheduler: bool = Field(default=False, env="ENABLE_SCHEDULER")
    cron_schedule: str = Field(default="0 3 * * *", env="CRON_SCHEDULE")  # Daily backfill at 3 AM
    timezone: str = Field(default="UTC", env="TIMEZONE")

    @validator("log_level")
    def validate_log_level(cls, v):
        """Ensure the log level is valid."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"LOG_LEVEL must be one of: {valid_levels}")
        return v.upper()

    @validator("aws_endpoint_url")
    def validate_endpoint_url(cls, v):
        """Ensure a custom endpoint is a full URL."""
        if v and not v.startswith(("http://", "https://")):
            raise ValueError("AWS_ENDPOINT_URL must start with http:// or https://")
        return v.rstrip("/") if v else v

    @validator("face_attributes", pre=True)
    def parse_face_attributes(cls, v):
        """Parse face attributes from JSON or comma-separated format."""
        if isinstance(v, str):
            if not v:
                return list(DEFAULT_FACE_ATTRIBUTES)
            if v.startswith('[') and v.endswith(']'):
                try:
                    return json.loads(v)
                except json.JSONDecodeError:
                    raise ValueError("Invalid JSON format for FACE_ATTRIBUTES")
            return [attribute.strip() for attribute in v.split(',') if attribute.strip()]
        return v

    def get_credentials(self) -> Optional[dict]:
        """Explicit AWS credentials, or None to use the default provider chain."""
        if self.aws_access_key_id and self.aws_secret_access_key:
            return {
                "aws_access_key_id": self.aws_access_key_id,
                "aws_secret_access_key": self.aws_secret_access_key,
            }
        return None

    class Config:
        env_file = ".env"
        case_sensitive = False


# Global settings instance
settings = Settings()
