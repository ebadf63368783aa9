import pytest
from pydantic import ValidationError

from rekognition_tagger.config import DEFAULT_FACE_ATTRIBUTES, Settings


def test_defaults():
    config = Settings()

    assert config.min_confidence == 80.0
    assert config.detect_labels is True
    assert not any([config.detect_moderation, config.detect_faces, config.detect_celebrities, config.detect_text])
    assert config.face_attributes == DEFAULT_FACE_ATTRIBUTES


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("MIN_CONFIDENCE", "65")
    monkeypatch.setenv("DETECT_FACES", "true")
    monkeypatch.setenv("FACE_ATTRIBUTES", "Gender, Smile")
    monkeypatch.setenv("LOG_LEVEL", "debug")

    config = Settings()

    assert config.min_confidence == 65.0
    assert config.detect_faces is True
    assert config.face_attributes == ["Gender", "Smile"]
    assert config.log_level == "DEBUG"


@pytest.mark.parametrize("value,expected", [
    ('["ALL"]', ["ALL"]),
    ("Emotions", ["Emotions"]),
    ("", DEFAULT_FACE_ATTRIBUTES),
])
def test_face_attribute_formats(value, expected):
    assert Settings(face_attributes=value).face_attributes == expected


@pytest.mark.parametrize("overrides", [
    {"log_level": "LOUD"},
    {"min_confidence": 120},
    {"aws_endpoint_url": "localhost:4566"},
])
def test_invalid_values_are_rejected(overrides):
    with pytest.raises(ValidationError):
        Settings(**overrides)


def test_endpoint_url_is_normalized():
    assert Settings(aws_endpoint_url="http://localhost:4566/").aws_endpoint_url == "http://localhost:4566"


def test_credentials_only_when_both_parts_are_set():
    assert Settings(aws_access_key_id="AKIA", aws_secret_access_key=None).get_credentials() is None
    assert Settings(aws_access_key_id="AKIA", aws_secret_access_key="s3cret").get_credentials() == {
        "aws_access_key_id": "AKIA",
        "aws_secret_access_key": "s3cret",
    }
