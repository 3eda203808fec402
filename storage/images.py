"""Decoding and persistence of base64 image payloads sent by agents."""

import base64
import binascii
import re
import time
from pathlib import Path
from typing import Optional, Tuple

from config import IMAGE_OUTPUT_DIR
from relay.errors import ImageDecodeError
from utils.logger import logger

_DATA_URI = re.compile(r"^data:image/(\w+);base64,", re.IGNORECASE)

# Magic numbers, checked against the decoded header
_SIGNATURES = [
    (b"\x89PNG", "png"),
    (b"\xff\xd8\xff", "jpeg"),
    (b"GIF8", "gif"),
    (b"RIFF", "webp"),
]

_EXTENSIONS = {"jpeg": "jpg"}


def split_data_uri(data: str) -> Tuple[Optional[str], str]:
    """Return ``(declared_type, base64_body)`` for a data URI or bare base64 string."""
    match = _DATA_URI.match(data)
    if match:
        return match.group(1).lower(), data[match.end():]
    if "," in data and data.startswith("data:"):
        return None, data.split(",", 1)[1]
    return None, data


def detect_image_type(content: bytes, declared: Optional[str] = None) -> str:
    """Image format from the data URI prefix, else the magic number, else png."""
    if declared:
        return declared
    for signature, kind in _SIGNATURES:
        if content.startswith(signature):
            return kind
    return "png"


def decode_image(data: str) -> Tuple[bytes, str]:
    """Decode an image payload into ``(bytes, format)``.

    Raises:
        ImageDecodeError: the payload is empty or not valid base64.
    """
    if not data or not data.strip():
        raise ImageDecodeError("Empty image payload")

    declared, body = split_data_uri(data.strip())
    try:
        content = base64.b64decode(body, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ImageDecodeError(f"Invalid base64 image data: {e}") from e

    if not content:
        raise ImageDecodeError("Image payload decoded to zero bytes")
    return content, detect_image_type(content, declared)


class ImageStore:
    """Writes decoded images under an output directory."""

    def __init__(self, output_dir: str = IMAGE_OUTPUT_DIR):
        self.output_dir = Path(output_dir).expanduser()

    def save(self, data: str, file_name: Optional[str] = None, prefix: str = "wallpaper") -> Path:
        """Decode ``data`` and write it to disk. Blocking; run it off the event loop."""
        content, kind = decode_image(data)
        if file_name is None:
            ext = _EXTENSIONS.get(kind, kind)
            file_name = f"{prefix}_{int(time.time() * 1000)}.{ext}"

        path = self.output_dir / file_name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(content)

        logger.info(f"Image saved: {path} ({len(content) / 1024:.2f} KB)")
        return path
