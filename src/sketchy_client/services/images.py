"""Image encoding helpers and export."""

import base64
import binascii
from datetime import UTC, datetime
from pathlib import Path

_DATA_URL_PREFIX = "data:"
_BASE64_MARKER = ";base64,"


def to_data_url(image_bytes: bytes) -> str:
    """Convert bytes to a base64 data URL."""
    mime_type = detect_mime_type(image_bytes)
    encoded = base64.b64encode(image_bytes).decode("utf-8")
    return f"data:{mime_type};base64,{encoded}"


def from_data_url(data_url: str) -> bytes:
    """Decode a base64 data URL back to bytes."""
    if not data_url.startswith(_DATA_URL_PREFIX) or _BASE64_MARKER not in data_url:
        raise ValueError("Not a base64 data URL")
    _, encoded = data_url.split(_BASE64_MARKER, 1)
    return decode_base64(encoded)


def decode_base64(encoded: str) -> bytes:
    """Strictly decode base64 text."""
    try:
        return base64.b64decode(encoded, validate=True)
    except binascii.Error as exc:
        raise ValueError("Invalid base64 image data") from exc


def detect_mime_type(image_bytes: bytes) -> str:
    """Infer a basic image MIME type from file signatures."""
    if image_bytes.startswith(b"\xff\xd8\xff"):
        return "image/jpeg"
    if image_bytes[:4] == b"RIFF" and image_bytes[8:12] == b"WEBP":
        return "image/webp"
    # Generated images are PNG.
    return "image/png"


def export_filename(now: datetime | None = None) -> str:
    """Build the download name used for saved images."""
    moment = now or datetime.now(tz=UTC)
    return f"sketchy-image-{int(moment.timestamp() * 1000)}.png"


def write_image(directory: Path, image_bytes: bytes, now: datetime | None = None) -> Path:
    """Write image bytes into a directory and return the new path."""
    directory.mkdir(parents=True, exist_ok=True)
    target = directory / export_filename(now)
    target.write_bytes(image_bytes)
    return target
