"""
Shapes capability results into metadata records and search keywords.
"""

from typing import Any, Callable, Dict, Iterable, List, Optional

from .logging import get_logger
from .models import (
    Capability, CapabilityFailure, CapabilityResult, EnrichmentBundle,
    MetadataRecord, NormalizedBundle,
)


KEYWORDS_META_KEY = "rekognition_keywords"

logger = get_logger("normalizer")


def data_meta_key(capability: Capability) -> str:
    return f"rekognition_{capability.value}"


def error_meta_key(capability: Capability) -> str:
    return f"rekognition_error_{capability.value}"


def _pluck(records: Iterable[Dict[str, Any]], key: str) -> List[Any]:
    return [record.get(key) for record in records if isinstance(record, dict)]


def _face_keywords(faces: List[Dict[str, Any]]) -> List[Any]:
    keywords = []
    for face in faces:
        gender = face.get("Gender")
        if gender:
            keywords.append(gender.get("Value"))
        emotions = face.get("Emotions")
        if emotions:
            keywords.extend(_pluck(emotions, "Type"))
    return keywords


KEYWORD_EXTRACTORS: Dict[Capability, Callable[[List[Dict[str, Any]]], List[Any]]] = {
    Capability.LABELS: lambda records: _pluck(records, "Name"),
    Capability.MODERATION: lambda records: _pluck(records, "Name"),
    Capability.FACES: _face_keywords,
    Capability.CELEBRITIES: lambda records: _pluck(records, "Name"),
    Capability.TEXT: lambda records: _pluck(records, "DetectedText"),
}


def unique_keywords(values: Iterable[Any]) -> List[str]:
    """Drop empty values and duplicates, keeping first-seen order."""
    seen = set()
    keywords = []
    for value in values:
        if not value:
            continue
        value = str(value)
        if value in seen:
            continue
        seen.add(value)
        keywords.append(value)
    return keywords


def metadata_record(result: CapabilityResult) -> MetadataRecord:
    """Success and failure values live under different keys."""
    capability = result.capability
    if isinstance(result, CapabilityFailure):
        return MetadataRecord(
            capability=capability,
            key=error_meta_key(capability),
            stale_key=data_meta_key(capability),
            value={"code": result.code, "message": result.message},
        )
    return MetadataRecord(
        capability=capability,
        key=data_meta_key(capability),
        stale_key=error_meta_key(capability),
        value=result.records,
    )


def extract_keywords(bundle: EnrichmentBundle) -> List[str]:
    """Keyword contributions of every successful capability, in run order."""
    contributions = []
    for result in bundle.successes():
        contributions.extend(KEYWORD_EXTRACTORS[result.capability](result.records))
    return unique_keywords(contributions)


def normalize_bundle(
    bundle: EnrichmentBundle,
    keyword_hooks: Optional[List[Callable[[List[str], EnrichmentBundle, int], List[str]]]] = None
) -> NormalizedBundle:
    """Build the metadata records, label names and final keyword list for a bundle."""
    records = [metadata_record(result) for result in bundle.results.values()]

    labels = []
    labels_result = bundle.results.get(Capability.LABELS)
    if labels_result is not None and labels_result.ok:
        labels = unique_keywords(_pluck(labels_result.records, "Name"))

    keywords = extract_keywords(bundle)
    for hook in keyword_hooks or []:
        try:
            keywords = unique_keywords(hook(list(keywords), bundle, bundle.attachment_id) or [])
        except Exception as e:
            logger.error(f"❌ Keyword hook {getattr(hook, '__name__', hook)} failed: {e}")

    return NormalizedBundle(
        attachment_id=bundle.attachment_id,
        records=records,
        labels=labels,
        keywords=keywords,
    )
