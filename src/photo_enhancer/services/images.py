"""Image format helpers shared by the fetcher, AI client and artifact store."""

import base64
import secrets
from datetime import UTC, datetime

SUPPORTED_MIME_TYPES = frozenset({"image/jpeg", "image/png", "image/webp"})

_EXTENSIONS = {
    "image/jpeg": "jpg",
    "image/png": "png",
    "image/webp": "webp",
}


def normalize_mime_type(raw: str | None) -> str:
    """Strip parameters and aliases from a Content-Type header value."""
    if not raw:
        return ""
    mime_type = raw.split(";", maxsplit=1)[0].strip().lower()
    if mime_type == "image/jpg":
        return "image/jpeg"
    return mime_type


def detect_mime_type(image_bytes: bytes) -> str | None:
    """Infer a supported image MIME type from file signatures."""
    if image_bytes.startswith(b"\xff\xd8\xff"):
        return "image/jpeg"
    if image_bytes.startswith(b"\x89PNG\r\n\x1a\n"):
        return "image/png"
    if image_bytes[:4] == b"RIFF" and image_bytes[8:12] == b"WEBP":
        return "image/webp"
    return None


def to_data_url(image_bytes: bytes, mime_type: str) -> str:
    """Convert bytes to a base64 data URL for image input."""
    encoded = base64.b64encode(image_bytes).decode("utf-8")
    return f"data:{mime_type};base64,{encoded}"


def artifact_filename(content_type: str, prefix: str = "enhanced") -> str:
    """Generate a unique object name for an uploaded artifact."""
    timestamp = int(datetime.now(tz=UTC).timestamp() * 1000)
    suffix = secrets.token_hex(4)
    extension = _EXTENSIONS.get(content_type, "jpg")
    return f"{prefix}_{timestamp}_{suffix}.{extension}"
