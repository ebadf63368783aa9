"""
AWS Rekognition client adapter.
"""

import time
from typing import Any, Dict, List, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from .config import settings
from .logging import get_logger
from .models import CAPABILITY_SPECS, Capability, ImageReference
from .performance_monitor import performance_monitor


class RekognitionAPIError(Exception):
    """Custom exception for Rekognition API errors."""
    pass


class RekognitionClient:
    """Thin wrapper translating one image reference into Rekognition calls."""

    def __init__(self, client=None):
        self.logger = get_logger("rekognition_client")
        self.client = client if client is not None else create_boto_client()

    def _call(self, operation: str, response_key: str, **kwargs) -> List[Dict[str, Any]]:
        """Invoke a Rekognition operation and return its record list."""
        request_start = time.time()
        try:
            response = getattr(self.client, operation)(**kwargs)
        except ClientError as e:
            error = e.response.get("Error", {})
            performance_monitor.record_api_failure()
            raise RekognitionAPIError(f"{error.get('Code', 'ClientError')}: {error.get('Message', str(e))}")
        except BotoCoreError as e:
            performance_monitor.record_api_failure()
            raise RekognitionAPIError(str(e))

        performance_monitor.record_api_call(time.time() - request_start)
        records = response.get(response_key, [])
        self.logger.debug(f"{operation} returned {len(records)} records")
        return records

    def detect_labels(self, image: ImageReference, min_confidence: float = 80) -> List[Dict[str, Any]]:
        return self._call(
            "detect_labels", "Labels", Image=image.to_request(), MinConfidence=min_confidence
        )

    def detect_moderation_labels(self, image: ImageReference, min_confidence: float = 80) -> List[Dict[str, Any]]:
        return self._call(
            "detect_moderation_labels", "ModerationLabels", Image=image.to_request(), MinConfidence=min_confidence
        )

    def detect_faces(self, image: ImageReference, attributes: List[str]) -> List[Dict[str, Any]]:
        return self._call("detect_faces", "FaceDetails", Image=image.to_request(), Attributes=attributes)

    def recognize_celebrities(self, image: ImageReference) -> List[Dict[str, Any]]:
        return self._call("recognize_celebrities", "CelebrityFaces", Image=image.to_request())

    def detect_text(self, image: ImageReference) -> List[Dict[str, Any]]:
        return self._call("detect_text", "TextDetections", Image=image.to_request())

    def supports(self, capability: Capability) -> bool:
        """Whether the underlying client offers the operation for a capability."""
        return hasattr(self.client, CAPABILITY_SPECS[capability].method)

    def test_connection(self) -> bool:
        """Make a cheap authenticated call to check credentials and region."""
        try:
            self.client.list_collections(MaxResults=1)
            self.logger.info("Connection test successful")
            return True
        except Exception as e:
            self.logger.error(f"Connection test failed: {e}")
            return False


def create_boto_client(region: Optional[str] = None):
    """Create the boto3 Rekognition client from settings.

    Explicit keys are used when configured, otherwise boto3's default
    credential chain applies.
    """
    credentials = settings.get_credentials() or {}
    return boto3.client(
        "rekognition",
        region_name=region or settings.aws_region,
        endpoint_url=settings.aws_endpoint_url,
        **credentials
    )
