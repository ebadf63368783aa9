"""
Logging configuration for the Rekognition Tagger service.
"""

import logging
from typing import Any, Dict
from rich.logging import RichHandler
from .config import settings


def setup_logging() -> None:
    """Configure clean, simple logging output."""

    logging.basicConfig(
        format="%(message)s",
        level=getattr(logging, settings.log_level),
        handlers=[RichHandler(
            rich_tracebacks=True,
            show_time=True,
            show_path=False,
            show_level=False,
            markup=True
        )],
        force=True  # Override any existing configuration
    )

    # Silence noisy third-party loggers
    logging.getLogger("botocore").setLevel(logging.WARNING)
    logging.getLogger("boto3").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("aiohttp.access").setLevel(logging.WARNING)
    logging.getLogger("PIL").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)


def get_logger(name: str):
    """Get a standard logger instance."""
    return logging.getLogger(name)


class MetricsLogger:
    """Logger for tracking enrichment metrics."""

    def __init__(self):
        self.logger = get_logger("metrics")
        self.metrics: Dict[str, Any] = {
            "attachments_enriched": 0,
            "capabilities_succeeded": 0,
            "capabilities_failed": 0,
            "keywords_stored": 0,
            "processing_time": 0.0,
        }

    def log_attachment_enriched(
        self,
        attachment_id: int,
        succeeded: int,
        failed: int,
        keywords_count: int,
        processing_time: float
    ) -> None:
        """Log a completed enrichment run."""
        self.metrics["attachments_enriched"] += 1
        self.metrics["capabilities_succeeded"] += succeeded
        self.metrics["capabilities_failed"] += failed
        self.metrics["keywords_stored"] += keywords_count
        self.metrics["processing_time"] += processing_time

        # Only log individual attachments at DEBUG level to avoid spam
        self.logger.debug(
            f"Attachment enriched: {attachment_id} | Capabilities: {succeeded} ok, {failed} failed | "
            f"Keywords: {keywords_count} | Time: {processing_time:.3f}s"
        )

    def log_capability_failure(self, attachment_id: int, capability: str, error: str) -> None:
        """Log a failed provider call."""
        self.logger.warning(f"Capability '{capability}' failed for attachment {attachment_id} | Error: {error}")

    def get_metrics(self) -> Dict[str, Any]:
        """Get current metrics."""
        return self.metrics.copy()
