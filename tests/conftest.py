"""
Shared fixtures for the Rekognition Tagger tests.
"""

import pytest
from PIL import Image
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from rekognition_tagger.models import CAPABILITY_SPECS, Capability
from rekognition_tagger.orchestrator import EnrichmentPolicy
from rekognition_tagger.processor import AttachmentEnricher
from rekognition_tagger.rekognition_client import RekognitionAPIError
from rekognition_tagger.scheduler import JobQueue
from rekognition_tagger.search import install_keyword_search
from rekognition_tagger.storage import MediaLibrary
from rekognition_tagger.triggers import register_enrichment_job


LABELS = [{"Name": "Cat", "Confidence": 95.2}, {"Name": "Animal", "Confidence": 88.0}]


class FakeRekognitionClient:
    """Stands in for RekognitionClient with canned responses per capability."""

    def __init__(self, responses=None, errors=None, text_supported=True):
        self.responses = {Capability.LABELS: LABELS}
        self.responses.update(responses or {})
        self.errors = errors or {}
        self.text_supported = text_supported
        self.calls = []

    def _respond(self, capability, image, **kwargs):
        self.calls.append((capability, image, kwargs))
        if capability in self.errors:
            raise RekognitionAPIError(self.errors[capability])
        return self.responses.get(capability, [])

    def detect_labels(self, image, min_confidence=80):
        return self._respond(Capability.LABELS, image, min_confidence=min_confidence)

    def detect_moderation_labels(self, image, min_confidence=80):
        return self._respond(Capability.MODERATION, image, min_confidence=min_confidence)

    def detect_faces(self, image, attributes):
        return self._respond(Capability.FACES, image, attributes=attributes)

    def recognize_celebrities(self, image):
        return self._respond(Capability.CELEBRITIES, image)

    def detect_text(self, image):
        return self._respond(Capability.TEXT, image)

    def supports(self, capability):
        if capability is Capability.TEXT:
            return self.text_supported
        return True

    def test_connection(self):
        return True

    def called_capabilities(self):
        return [capability for capability, _, _ in self.calls]


def all_enabled_policy(**kwargs):
    return EnrichmentPolicy(enabled={capability: True for capability in CAPABILITY_SPECS}, **kwargs)


@pytest.fixture
def library():
    engine = create_engine(
        "sqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    media_library = MediaLibrary(engine=engine)
    media_library.create_schema()
    install_keyword_search(media_library)
    yield media_library
    media_library.close()


@pytest.fixture
def make_image(tmp_path):
    def _make_image(name="photo.jpg", image_format="JPEG"):
        path = tmp_path / name
        Image.new("RGB", (8, 8), color=(200, 30, 30)).save(path, image_format)
        return str(path)
    return _make_image


@pytest.fixture
def image_path(make_image):
    return make_image()


@pytest.fixture
def fake_client():
    return FakeRekognitionClient()


@pytest.fixture
def enricher(library, fake_client):
    return AttachmentEnricher(library=library, client=fake_client, policy=EnrichmentPolicy())


@pytest.fixture
def queue(library, enricher):
    job_queue = JobQueue(library)
    register_enrichment_job(job_queue, enricher)
    return job_queue
