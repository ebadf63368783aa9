from conftest import FakeRekognitionClient, all_enabled_policy

from rekognition_tagger.models import Capability
from rekognition_tagger.normalizer import KEYWORDS_META_KEY, data_meta_key, error_meta_key
from rekognition_tagger.orchestrator import EnrichmentPolicy
from rekognition_tagger.processor import AttachmentEnricher
from rekognition_tagger.writer import LABELS_TAXONOMY


CAPABILITY_KEYS = {data_meta_key(c) for c in Capability} | {error_meta_key(c) for c in Capability}


def capability_keys(library, attachment_id):
    return {key for key in library.get_all_meta(attachment_id) if key in CAPABILITY_KEYS}


def test_labels_are_stored_as_metadata_terms_and_keywords(library, enricher, image_path):
    attachment_id = library.add_attachment(image_path, mime_type="image/jpeg")

    result = enricher.update_attachment_data(attachment_id)

    assert result.error is None
    assert result.succeeded == [Capability.LABELS]
    assert library.get_meta(attachment_id, "rekognition_labels") == [
        {"Name": "Cat", "Confidence": 95.2}, {"Name": "Animal", "Confidence": 88.0},
    ]
    assert library.get_meta(attachment_id, KEYWORDS_META_KEY) == "Cat\nAnimal"
    assert library.get_terms(attachment_id, LABELS_TAXONOMY) == ["Cat", "Animal"]


def test_persisted_keys_match_enabled_capabilities(library, image_path):
    client = FakeRekognitionClient(errors={Capability.FACES: "boom", Capability.TEXT: "nope"})
    enricher = AttachmentEnricher(library=library, client=client, policy=all_enabled_policy())
    attachment_id = library.add_attachment(image_path)

    enricher.update_attachment_data(attachment_id)

    assert capability_keys(library, attachment_id) == {
        "rekognition_labels",
        "rekognition_moderation",
        "rekognition_error_faces",
        "rekognition_celebrities",
        "rekognition_error_text",
    }
    assert library.get_meta(attachment_id, "rekognition_error_faces") == {"code": "aws-error", "message": "boom"}


def test_failing_faces_does_not_block_labels(library, image_path):
    client = FakeRekognitionClient(errors={Capability.FACES: "ProvisionedThroughputExceededException"})
    policy = EnrichmentPolicy(enabled={Capability.LABELS: True, Capability.FACES: True})
    enricher = AttachmentEnricher(library=library, client=client, policy=policy)
    attachment_id = library.add_attachment(image_path)

    result = enricher.update_attachment_data(attachment_id)

    assert result.failed == [Capability.FACES]
    assert library.get_meta(attachment_id, "rekognition_labels")
    assert library.get_meta(attachment_id, KEYWORDS_META_KEY) == "Cat\nAnimal"


def test_rerun_is_idempotent(library, enricher, image_path):
    attachment_id = library.add_attachment(image_path)

    enricher.update_attachment_data(attachment_id)
    first_meta = library.get_all_meta(attachment_id)
    first_terms = library.get_terms(attachment_id, LABELS_TAXONOMY)

    enricher.update_attachment_data(attachment_id)

    assert library.get_all_meta(attachment_id) == first_meta
    assert library.get_terms(attachment_id, LABELS_TAXONOMY) == first_terms
    assert len(first_terms) == 2


def test_success_replaces_earlier_error(library, image_path):
    client = FakeRekognitionClient(errors={Capability.LABELS: "ThrottlingException"})
    enricher = AttachmentEnricher(library=library, client=client, policy=EnrichmentPolicy())
    attachment_id = library.add_attachment(image_path)

    enricher.update_attachment_data(attachment_id)
    assert capability_keys(library, attachment_id) == {"rekognition_error_labels"}
    assert library.get_meta(attachment_id, KEYWORDS_META_KEY) == ""

    client.errors = {}
    enricher.update_attachment_data(attachment_id)

    assert capability_keys(library, attachment_id) == {"rekognition_labels"}
    assert library.get_meta(attachment_id, KEYWORDS_META_KEY) == "Cat\nAnimal"


def test_keyword_hook_output_is_stored(library, image_path, fake_client):
    policy = EnrichmentPolicy(keyword_hooks=[lambda keywords, bundle, attachment_id: [k.lower() for k in keywords]])
    enricher = AttachmentEnricher(library=library, client=fake_client, policy=policy)
    attachment_id = library.add_attachment(image_path)

    enricher.update_attachment_data(attachment_id)

    assert library.get_meta(attachment_id, KEYWORDS_META_KEY) == "cat\nanimal"
    assert library.get_terms(attachment_id, LABELS_TAXONOMY) == ["Cat", "Animal"]


def test_unknown_attachment_reports_error(enricher, fake_client):
    result = enricher.update_attachment_data(404)

    assert result.error == "Attachment 404 not found"
    assert fake_client.calls == []


def test_labels_accessor_and_metrics(library, enricher, image_path):
    attachment_id = library.add_attachment(image_path)
    assert enricher.get_attachment_labels(attachment_id) == []

    enricher.update_attachment_data(attachment_id)

    assert [label["Name"] for label in enricher.get_attachment_labels(attachment_id)] == ["Cat", "Animal"]
    metrics = enricher.get_metrics()["basic_metrics"]
    assert metrics["attachments_enriched"] == 1
    assert metrics["keywords_stored"] == 2
