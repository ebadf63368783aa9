"""
Access to attachment files and resolution of the image argument sent to Rekognition.
"""

import re
import time
from pathlib import Path
from typing import Optional

import boto3
import httpx
from PIL import Image, UnidentifiedImageError

from .config import settings
from .logging import get_logger
from .models import BytesImageReference, ImageReference, S3ImageReference


S3_PATH_PATTERN = re.compile(r"^s3://(?P<bucket>[^/]+)/(?P<key>.+)$")

# Formats Rekognition accepts as attachment images
SUPPORTED_IMAGE_FORMATS = {"GIF", "JPEG", "PNG", "BMP"}

# Leading bytes of each supported format
IMAGE_SIGNATURES = [
    (b"GIF87a", "GIF"),
    (b"GIF89a", "GIF"),
    (b"\xff\xd8\xff", "JPEG"),
    (b"\x89PNG\r\n\x1a\n", "PNG"),
    (b"BM", "BMP"),
]
HEADER_SIZE = 64

logger = get_logger("image_source")


class ImageSourceError(Exception):
    """Custom exception for attachment file access errors."""
    pass


def parse_s3_path(path: str) -> Optional[S3ImageReference]:
    """Return the bucket/key reference for an s3:// path, or None for anything else."""
    match = S3_PATH_PATTERN.match(path)
    if not match:
        return None
    return S3ImageReference(bucket=match.group("bucket"), key=match.group("key"))


def resolve_image_reference(path: str, s3_client=None, http_client: Optional[httpx.Client] = None) -> ImageReference:
    """Build the image argument for a provider call from an attached file path.

    Files already in S3 are referenced by bucket and key so Rekognition reads
    them directly; everything else is read in full and sent inline.
    """
    s3_reference = parse_s3_path(path)
    if s3_reference is not None:
        return s3_reference
    return BytesImageReference(data=read_file(path, s3_client=s3_client, http_client=http_client))


def read_file(path: str, s3_client=None, http_client: Optional[httpx.Client] = None) -> bytes:
    """Read the full content of a local path, s3:// object or http(s):// URL."""
    s3_reference = parse_s3_path(path)
    if s3_reference is not None:
        return _read_s3_object(s3_reference, s3_client)
    if path.startswith(("http://", "https://")):
        return download_file(path, http_client)
    try:
        return Path(path).read_bytes()
    except OSError as e:
        raise ImageSourceError(f"Failed to read {path}: {e}")


def _create_s3_client():
    credentials = settings.get_credentials() or {}
    return boto3.client(
        "s3",
        region_name=settings.aws_region,
        endpoint_url=settings.aws_endpoint_url,
        **credentials
    )


def _read_s3_object(reference: S3ImageReference, s3_client=None, size: Optional[int] = None) -> bytes:
    s3_client = s3_client or _create_s3_client()
    params = {"Bucket": reference.bucket, "Key": reference.key}
    if size:
        params["Range"] = f"bytes=0-{size - 1}"
    try:
        response = s3_client.get_object(**params)
        return response["Body"].read(size) if size else response["Body"].read()
    except Exception as e:
        raise ImageSourceError(f"Failed to read s3://{reference.bucket}/{reference.key}: {e}")


def download_file(url: str, http_client: Optional[httpx.Client] = None) -> bytes:
    """Download a remote file with retry logic."""
    client = http_client or httpx.Client(timeout=settings.request_timeout, follow_redirects=True)
    max_retries = settings.max_retries
    retry_delay = settings.retry_delay

    try:
        for attempt in range(max_retries + 1):
            try:
                response = client.get(url)
                response.raise_for_status()
                content = response.content
                logger.debug(f"Downloaded {url} ({len(content)} bytes)")
                return content

            except httpx.HTTPStatusError as e:
                if e.response.status_code >= 500 and attempt < max_retries:
                    logger.warning(
                        f"⚠️  Server error {e.response.status_code}, retrying "
                        f"(attempt {attempt + 1}/{max_retries})"
                    )
                    time.sleep(retry_delay * (2 ** attempt))  # Exponential backoff
                    continue
                raise ImageSourceError(f"HTTP {e.response.status_code} downloading {url}")

            except httpx.RequestError as e:
                if attempt < max_retries:
                    logger.warning(f"Request error, retrying (attempt {attempt + 1}/{max_retries}): {e}")
                    time.sleep(retry_delay * (2 ** attempt))
                    continue
                raise ImageSourceError(f"Request failed for {url}: {e}")
    finally:
        if http_client is None:
            client.close()


def read_file_header(
    path: str,
    size: int = HEADER_SIZE,
    s3_client=None,
    http_client: Optional[httpx.Client] = None
) -> bytes:
    """Read the first bytes of a file with a single bounded request and no retries."""
    s3_reference = parse_s3_path(path)
    if s3_reference is not None:
        return _read_s3_object(s3_reference, s3_client, size=size)

    if path.startswith(("http://", "https://")):
        client = http_client or httpx.Client(timeout=settings.header_timeout, follow_redirects=True)
        try:
            with client.stream("GET", path, headers={"Range": f"bytes=0-{size - 1}"}) as response:
                response.raise_for_status()
                header = b""
                for chunk in response.iter_bytes():
                    header += chunk
                    if len(header) >= size:
                        break
                return header[:size]
        except httpx.HTTPError as e:
            raise ImageSourceError(f"Failed to read header of {path}: {e}")
        finally:
            if http_client is None:
                client.close()

    try:
        with open(path, "rb") as f:
            return f.read(size)
    except OSError as e:
        raise ImageSourceError(f"Failed to read {path}: {e}")


def sniff_image_format(header: bytes) -> Optional[str]:
    """Match leading bytes against the signatures of the supported formats."""
    for signature, image_format in IMAGE_SIGNATURES:
        if header.startswith(signature):
            return image_format
    return None


def detect_image_format(path: str, s3_client=None, http_client: Optional[httpx.Client] = None) -> Optional[str]:
    """Sniff the image format of a file from its header.

    Local files are identified by Pillow. Remote files are identified from
    their first bytes only, so no whole object is transferred. Returns the
    format name (e.g. "JPEG") or None when the file is missing, unreadable
    or not an image.
    """
    try:
        if parse_s3_path(path) or path.startswith(("http://", "https://")):
            return sniff_image_format(
                read_file_header(path, s3_client=s3_client, http_client=http_client)
            )
        with Image.open(path) as image:
            return image.format
    except (ImageSourceError, UnidentifiedImageError, OSError) as e:
        logger.debug(f"Could not detect image type for {path}: {e}")
        return None
