import boto3
import pytest
from botocore.stub import ANY, Stubber

from rekognition_tagger.models import BytesImageReference, Capability, S3ImageReference
from rekognition_tagger.rekognition_client import RekognitionAPIError, RekognitionClient


@pytest.fixture
def boto_client():
    return boto3.client(
        "rekognition",
        region_name="us-east-1",
        aws_access_key_id="testing",
        aws_secret_access_key="testing",
    )


def test_detect_labels_sends_image_and_threshold(boto_client):
    client = RekognitionClient(client=boto_client)
    image = S3ImageReference(bucket="mybucket", key="img.jpg")
    labels = [{"Name": "Cat", "Confidence": 95.2}]

    with Stubber(boto_client) as stubber:
        stubber.add_response(
            "detect_labels",
            {"Labels": labels},
            {"Image": {"S3Object": {"Bucket": "mybucket", "Name": "img.jpg"}}, "MinConfidence": 80.0},
        )
        assert client.detect_labels(image, min_confidence=80.0) == labels
        stubber.assert_no_pending_responses()


def test_detect_faces_passes_attributes(boto_client):
    client = RekognitionClient(client=boto_client)
    image = BytesImageReference(data=b"\xff\xd8\xff")
    faces = [{"Gender": {"Value": "Female", "Confidence": 99.0}}]

    with Stubber(boto_client) as stubber:
        stubber.add_response(
            "detect_faces",
            {"FaceDetails": faces},
            {"Image": {"Bytes": b"\xff\xd8\xff"}, "Attributes": ["Gender"]},
        )
        assert client.detect_faces(image, attributes=["Gender"]) == faces


def test_text_and_celebrities(boto_client):
    client = RekognitionClient(client=boto_client)
    image = S3ImageReference(bucket="b", key="k.png")

    with Stubber(boto_client) as stubber:
        stubber.add_response("recognize_celebrities", {"CelebrityFaces": [{"Name": "Ada"}]}, {"Image": ANY})
        stubber.add_response("detect_text", {"TextDetections": [{"DetectedText": "SALE"}]}, {"Image": ANY})

        assert client.recognize_celebrities(image) == [{"Name": "Ada"}]
        assert client.detect_text(image) == [{"DetectedText": "SALE"}]


def test_client_errors_are_wrapped(boto_client):
    client = RekognitionClient(client=boto_client)
    image = S3ImageReference(bucket="b", key="k.png")

    with Stubber(boto_client) as stubber:
        stubber.add_client_error(
            "detect_moderation_labels",
            service_error_code="ThrottlingException",
            service_message="Rate exceeded",
        )
        with pytest.raises(RekognitionAPIError, match="ThrottlingException: Rate exceeded"):
            client.detect_moderation_labels(image)


def test_supports_reflects_client_operations(boto_client):
    assert RekognitionClient(client=boto_client).supports(Capability.TEXT)

    class LegacyClient:
        def detect_labels(self, **kwargs):
            return {"Labels": []}

    assert not RekognitionClient(client=LegacyClient()).supports(Capability.TEXT)
