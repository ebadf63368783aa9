"""
Capability orchestration: decides which Rekognition analyses to run for an
attachment and collects their results into one bundle.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from .config import DEFAULT_FACE_ATTRIBUTES, Settings, settings as default_settings
from .image_source import ImageSourceError, resolve_image_reference
from .logging import get_logger
from .models import (
    CAPABILITY_SPECS, Capability, CapabilityFailure, CapabilitySuccess,
    EnrichmentBundle, ImageReference,
)


ProcessHook = Callable[[Any, int], None]
KeywordHook = Callable[[List[str], EnrichmentBundle, int], List[str]]


@dataclass
class EnrichmentPolicy:
    """Which capabilities run, with what parameters, and the extension callbacks.

    process_hooks receive the client and attachment id once all capability
    calls have completed. keyword_hooks receive the keyword list, the bundle
    and the attachment id and return the keyword list to store.
    """

    enabled: Dict[Capability, bool] = field(
        default_factory=lambda: {capability: spec.default_enabled for capability, spec in CAPABILITY_SPECS.items()}
    )
    min_confidence: float = 80.0
    face_attributes: List[str] = field(default_factory=lambda: list(DEFAULT_FACE_ATTRIBUTES))
    process_hooks: List[ProcessHook] = field(default_factory=list)
    keyword_hooks: List[KeywordHook] = field(default_factory=list)

    @classmethod
    def from_settings(cls, config: Optional[Settings] = None) -> "EnrichmentPolicy":
        config = config or default_settings
        return cls(
            enabled={
                Capability.LABELS: config.detect_labels,
                Capability.MODERATION: config.detect_moderation,
                Capability.FACES: config.detect_faces,
                Capability.CELEBRITIES: config.detect_celebrities,
                Capability.TEXT: config.detect_text,
            },
            min_confidence=config.min_confidence,
            face_attributes=list(config.face_attributes),
        )

    def is_enabled(self, capability: Capability) -> bool:
        return self.enabled.get(capability, CAPABILITY_SPECS[capability].default_enabled)

    def enabled_capabilities(self) -> List[Capability]:
        return [capability for capability in Capability if self.is_enabled(capability)]


class CapabilityOrchestrator:
    """Runs each enabled capability against one image reference."""

    def __init__(self, client, library, policy: Optional[EnrichmentPolicy] = None, s3_client=None, http_client=None):
        self.logger = get_logger("orchestrator")
        self.client = client
        self.library = library
        self.policy = policy or EnrichmentPolicy.from_settings()
        self.s3_client = s3_client
        self.http_client = http_client

    def resolve_image(self, attachment_id: int) -> ImageReference:
        path = self.library.get_attached_file(attachment_id)
        if not path:
            raise ImageSourceError(f"Attachment {attachment_id} has no attached file")
        return resolve_image_reference(path, s3_client=self.s3_client, http_client=self.http_client)

    def planned_capabilities(self) -> List[Capability]:
        """Enabled capabilities the client can actually serve, in run order."""
        planned = []
        for capability in self.policy.enabled_capabilities():
            if CAPABILITY_SPECS[capability].optional and not self.client.supports(capability):
                self.logger.debug(f"Skipping '{capability.value}': not supported by client")
                continue
            planned.append(capability)
        return planned

    def fetch_data_for_attachment(self, attachment_id: int) -> EnrichmentBundle:
        """Collect responses and errors from every enabled capability."""
        bundle = EnrichmentBundle(attachment_id=attachment_id)
        capabilities = self.planned_capabilities()

        try:
            image = self.resolve_image(attachment_id)
        except ImageSourceError as e:
            # Nothing can run without the image; each capability records the same error
            self.logger.warning(f"⚠️  Attachment {attachment_id}: {e}")
            for capability in capabilities:
                bundle.results[capability] = CapabilityFailure(capability=capability, message=str(e))
        else:
            for capability in capabilities:
                try:
                    records = self._invoke(capability, image)
                    bundle.results[capability] = CapabilitySuccess(capability=capability, records=records)
                except Exception as e:
                    self.logger.warning(f"⚠️  Attachment {attachment_id}: '{capability.value}' failed: {e}")
                    bundle.results[capability] = CapabilityFailure(capability=capability, message=str(e))

        for hook in self.policy.process_hooks:
            try:
                hook(self.client, attachment_id)
            except Exception as e:
                self.logger.error(f"❌ Process hook {getattr(hook, '__name__', hook)} failed: {e}")

        return bundle

    def _invoke(self, capability: Capability, image: ImageReference) -> List[Dict[str, Any]]:
        spec = CAPABILITY_SPECS[capability]
        method = getattr(self.client, spec.method)
        if spec.uses_min_confidence:
            return method(image, min_confidence=self.policy.min_confidence)
        if capability is Capability.FACES:
            return method(image, attributes=self.policy.face_attributes)
        return method(image)
