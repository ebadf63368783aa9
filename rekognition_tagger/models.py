"""
Data models for the Rekognition Tagger service.
"""

from enum import Enum
from typing import List, Optional, Dict, Any, Union, Literal
from datetime import datetime
from pydantic import BaseModel, Field


class Capability(str, Enum):
    """Analyses offered by the provider, in the order they are run."""
    LABELS = "labels"
    MODERATION = "moderation"
    FACES = "faces"
    CELEBRITIES = "celebrities"
    TEXT = "text"


class CapabilitySpec(BaseModel):
    """Per-capability configuration record."""
    method: str
    response_key: str
    default_enabled: bool = False
    uses_min_confidence: bool = False
    optional: bool = False  # Only attempted when the client advertises the method


CAPABILITY_SPECS: Dict[Capability, CapabilitySpec] = {
    Capability.LABELS: CapabilitySpec(
        method="detect_labels", response_key="Labels", default_enabled=True, uses_min_confidence=True
    ),
    Capability.MODERATION: CapabilitySpec(
        method="detect_moderation_labels", response_key="ModerationLabels", uses_min_confidence=True
    ),
    Capability.FACES: CapabilitySpec(method="detect_faces", response_key="FaceDetails"),
    Capability.CELEBRITIES: CapabilitySpec(method="recognize_celebrities", response_key="CelebrityFaces"),
    Capability.TEXT: CapabilitySpec(method="detect_text", response_key="TextDetections", optional=True),
}


class S3ImageReference(BaseModel):
    """Image stored in an S3 bucket."""
    kind: Literal["s3"] = "s3"
    bucket: str
    key: str

    def to_request(self) -> Dict[str, Any]:
        return {"S3Object": {"Bucket": self.bucket, "Name": self.key}}


class BytesImageReference(BaseModel):
    """Image passed inline as raw bytes."""
    kind: Literal["bytes"] = "bytes"
    data: bytes

    def to_request(self) -> Dict[str, Any]:
        return {"Bytes": self.data}


ImageReference = Union[S3ImageReference, BytesImageReference]


class CapabilitySuccess(BaseModel):
    """Records returned by a successful provider call."""
    status: Literal["success"] = "success"
    capability: Capability
    records: List[Dict[str, Any]] = []

    @property
    def ok(self) -> bool:
        return True


class CapabilityFailure(BaseModel):
    """Provider error captured for one capability."""
    status: Literal["failure"] = "failure"
    capability: Capability
    message: str
    code: str = "aws-error"

    @property
    def ok(self) -> bool:
        return False


CapabilityResult = Union[CapabilitySuccess, CapabilityFailure]


class EnrichmentBundle(BaseModel):
    """All capability results for one enrichment run of one attachment."""
    attachment_id: int
    results: Dict[Capability, CapabilityResult] = Field(default_factory=dict)

    def successes(self) -> List[CapabilitySuccess]:
        return [result for result in self.results.values() if result.ok]

    def failures(self) -> List[CapabilityFailure]:
        return [result for result in self.results.values() if not result.ok]


class MetadataRecord(BaseModel):
    """A single metadata value to upsert for an attachment."""
    capability: Capability
    key: str
    stale_key: str  # The opposite success/error key, removed on write
    value: Any


class NormalizedBundle(BaseModel):
    """Result of normalizing an enrichment bundle."""
    attachment_id: int
    records: List[MetadataRecord] = []
    labels: List[str] = []
    keywords: List[str] = []

    @property
    def keyword_blob(self) -> str:
        return "\n".join(self.keywords)


class AttachmentInfo(BaseModel):
    """Read-only view of a stored attachment."""
    id: int
    title: str = ""
    content: str = ""
    file_path: str
    mime_type: Optional[str] = None
    created_at: Optional[datetime] = None


class EnrichmentResult(BaseModel):
    """Outcome of one enrichment job."""
    attachment_id: int
    succeeded: List[Capability] = []
    failed: List[Capability] = []
    keywords: List[str] = []
    processing_time: float = 0.0
    error: Optional[str] = None


class LabelPreview(BaseModel):
    """Admin preview of the labels detected for an attachment."""
    post_id: int
    labels: str
    update_labels_nonce: str


class HealthStatus(BaseModel):
    """Health check response."""
    status: str = "healthy"
    timestamp: datetime = Field(default_factory=datetime.utcnow)
    version: str = "1.0.0"
    metrics: Dict[str, Any] = {}
