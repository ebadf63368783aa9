"""
Persists normalized enrichment results: per-capability metadata, label
terms and the keyword blob used by search.
"""

from .logging import get_logger
from .models import NormalizedBundle
from .normalizer import KEYWORDS_META_KEY


LABELS_TAXONOMY = "rekognition_labels"


class EnrichmentWriter:
    """Writes one normalized bundle to the media library."""

    def __init__(self, library):
        self.logger = get_logger("writer")
        self.library = library

    def write(self, normalized: NormalizedBundle) -> None:
        attachment_id = normalized.attachment_id

        for record in normalized.records:
            self.library.update_meta(attachment_id, record.key, record.value)
            # A fresh success clears an old error for the same capability and vice versa
            self.library.delete_meta(attachment_id, record.stale_key)

        if normalized.labels:
            self.library.attach_terms(attachment_id, LABELS_TAXONOMY, normalized.labels, append=True)

        self.library.update_meta(attachment_id, KEYWORDS_META_KEY, normalized.keyword_blob)

        self.logger.debug(
            f"💾 Attachment {attachment_id}: stored {len(normalized.records)} records, "
            f"{len(normalized.labels)} labels, {len(normalized.keywords)} keywords"
        )
