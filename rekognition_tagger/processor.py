"""
Enrichment job for the Rekognition Tagger service.
"""

import time
from typing import Any, Dict, List, Optional
from .rekognition_client import RekognitionClient
from .orchestrator import CapabilityOrchestrator, EnrichmentPolicy
from .normalizer import data_meta_key, normalize_bundle
from .writer import EnrichmentWriter
from .storage import MediaLibrary
from .models import Capability, EnrichmentResult
from .logging import get_logger, MetricsLogger
from .performance_monitor import performance_monitor


class ProcessorError(Exception):
    """Custom exception for processor errors."""
    pass


class AttachmentEnricher:
    """Runs the Rekognition enrichment pipeline for attachments."""

    def __init__(
        self,
        library: Optional[MediaLibrary] = None,
        client=None,
        policy: Optional[EnrichmentPolicy] = None,
        s3_client=None,
        http_client=None
    ):
        self.logger = get_logger("processor")
        self.metrics = MetricsLogger()
        try:
            self.library = library or MediaLibrary()
            self.client = client or RekognitionClient()
        except Exception as e:
            raise ProcessorError(f"Failed to initialize enricher: {e}")
        self.policy = policy or EnrichmentPolicy.from_settings()
        self.orchestrator = CapabilityOrchestrator(
            self.client, self.library, self.policy, s3_client=s3_client, http_client=http_client
        )
        self.writer = EnrichmentWriter(self.library)

    def update_attachment_data(self, attachment_id: int) -> EnrichmentResult:
        """Fetch, normalize and store Rekognition data for one attachment.

        Never raises: whatever subset of capabilities succeeded is stored,
        and an unexpected error is reported on the returned result.
        """
        start_time = time.time()
        result = EnrichmentResult(attachment_id=attachment_id)

        try:
            if self.library.get_attachment(attachment_id) is None:
                result.error = f"Attachment {attachment_id} not found"
                self.logger.warning(f"⚠️  {result.error}")
                return result

            bundle = self.orchestrator.fetch_data_for_attachment(attachment_id)
            normalized = normalize_bundle(bundle, self.policy.keyword_hooks)
            self.writer.write(normalized)

            result.succeeded = [r.capability for r in bundle.successes()]
            result.failed = [r.capability for r in bundle.failures()]
            result.keywords = normalized.keywords

            for failure in bundle.failures():
                self.metrics.log_capability_failure(attachment_id, failure.capability.value, failure.message)

        except Exception as e:
            result.error = str(e)
            self.logger.error(f"❌ Enrichment failed for attachment {attachment_id}: {e}")

        result.processing_time = time.time() - start_time
        if result.error is None:
            self.metrics.log_attachment_enriched(
                attachment_id,
                len(result.succeeded),
                len(result.failed),
                len(result.keywords),
                result.processing_time
            )
            performance_monitor.record_attachment_enriched(result.processing_time)
            self.logger.info(
                f"🏷️  Attachment {attachment_id}: {len(result.succeeded)} capabilities stored"
                + (f", {len(result.failed)} failed" if result.failed else "")
                + f" | {len(result.keywords)} keywords | {result.processing_time:.2f}s"
            )

        return result

    def get_attachment_labels(self, attachment_id: int) -> List[Dict[str, Any]]:
        return self.library.get_meta(attachment_id, data_meta_key(Capability.LABELS)) or []

    def get_metrics(self) -> Dict[str, Any]:
        """Get current processing metrics."""
        return {
            "basic_metrics": self.metrics.get_metrics(),
            "performance_metrics": performance_monitor.get_metrics_dict(),
        }

    def test_connection(self) -> bool:
        """Test the connection to Rekognition."""
        return self.client.test_connection()

    def close(self):
        """Clean up resources."""
        self.library.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
