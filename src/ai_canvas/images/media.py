# src/ai_canvas/images/media.py

from __future__ import annotations

import base64
import binascii
import io
import math
import re

from PIL import Image, UnidentifiedImageError

from .models import DEFAULT_MIME_TYPE, Resolution

NAME_MAX_CHARS = 50

_DATA_URL_RE = re.compile(r"^data:(?P<mime>[\w.+-]+/[\w.+-]+)?(?P<b64>;base64)?,(?P<payload>.*)$", re.DOTALL)


class InvalidImageError(ValueError):
    """Raised when bytes or a data URL cannot be interpreted as an image."""


def bytes_to_data_url(data: bytes, mime_type: str = DEFAULT_MIME_TYPE) -> str:
    return f"data:{mime_type};base64,{base64.b64encode(data).decode('ascii')}"


def data_url_to_bytes(url: str) -> tuple[bytes, str]:
    """Decode a `data:` URL into (bytes, mime_type). Only base64 payloads are accepted."""
    if not isinstance(url, str):
        raise InvalidImageError("data URL must be a string")

    m = _DATA_URL_RE.match(url.strip())
    if not m or not m.group("b64"):
        raise InvalidImageError("not a base64 data URL")

    try:
        data = base64.b64decode(m.group("payload"), validate=True)
    except (binascii.Error, ValueError) as e:
        raise InvalidImageError("data URL payload is not valid base64") from e

    if not data:
        raise InvalidImageError("data URL payload is empty")

    return data, (m.group("mime") or DEFAULT_MIME_TYPE)


def read_image_metadata(data: bytes) -> Resolution:
    """Read pixel dimensions from encoded image bytes."""
    try:
        with Image.open(io.BytesIO(data)) as img:
            width, height = img.size
    except (UnidentifiedImageError, OSError) as e:
        raise InvalidImageError("image data could not be decoded") from e
    return Resolution(width=int(width), height=int(height))


def guess_mime_type(data: bytes) -> str:
    try:
        with Image.open(io.BytesIO(data)) as img:
            fmt = (img.format or "").upper()
    except (UnidentifiedImageError, OSError):
        return DEFAULT_MIME_TYPE
    return Image.MIME.get(fmt, DEFAULT_MIME_TYPE)


def make_image_name(prompt: str) -> str:
    return (prompt or "").strip()[:NAME_MAX_CHARS] + "..."


def format_bytes(n: int, decimals: int = 2) -> str:
    if n <= 0:
        return "0 Bytes"
    units = ["Bytes", "KB", "MB", "GB", "TB"]
    i = min(int(math.floor(math.log(n, 1024))), len(units) - 1)
    value = round(n / (1024**i), max(0, decimals))
    return f"{value:g} {units[i]}"
