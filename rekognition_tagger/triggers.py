"""
Upload/update triggers that queue attachments for enrichment.
"""

import time
from typing import Optional

from .image_source import SUPPORTED_IMAGE_FORMATS, detect_image_format
from .logging import get_logger


ENRICH_HOOK = "rekognition_update_image"

logger = get_logger("triggers")


def on_update_attachment_metadata(library, queue, attachment_id: int, now: Optional[float] = None, **source_clients) -> bool:
    """Queue an enrichment job when an attachment's image file changes.

    Called whenever an attachment's metadata is written, so replaced images
    are processed again. Only GIF, JPEG, PNG and BMP files are queued. The
    calling operation is never failed: any error is logged and False returned.
    """
    try:
        path = library.get_attached_file(attachment_id)
        if not path:
            return False

        image_format = detect_image_format(path, **source_clients)
        if image_format not in SUPPORTED_IMAGE_FORMATS:
            logger.debug(f"Attachment {attachment_id}: not a supported image ({image_format}), skipping")
            return False

        scheduled = queue.schedule_single_event(time.time() if now is None else now, ENRICH_HOOK, [attachment_id])
        if scheduled:
            logger.info(f"📥 Queued attachment {attachment_id} ({image_format}) for enrichment")
        return scheduled

    except Exception as e:
        logger.warning(f"⚠️  Failed to queue attachment {attachment_id} for enrichment: {e}")
        return False


def register_enrichment_job(queue, enricher) -> None:
    """Run enrichment when queued jobs for ENRICH_HOOK fire."""
    queue.register(ENRICH_HOOK, enricher.update_attachment_data)
