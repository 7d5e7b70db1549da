# src/ai_canvas/images/transfer.py

"""
History import/export.

The export file is a JSON array of image records with camelCase keys; the binary
is carried inline as a base64 `dataUrl`. Import is all-or-nothing.
"""

from __future__ import annotations

import json
import logging
import os
import time
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from ..core.ports import ImageRepo
from .media import (
    InvalidImageError,
    bytes_to_data_url,
    data_url_to_bytes,
    make_image_name,
    read_image_metadata,
)
from .models import AIImage, Resolution

logger = logging.getLogger(__name__)


class ImportFormatError(ValueError):
    """The selected file is not a valid history export."""


def default_export_name() -> str:
    return f"ai-canvas-export-{int(time.time() * 1000)}.json"


def image_to_export_dict(img: AIImage) -> dict[str, Any]:
    return {
        "name": img.name,
        "prompt": img.prompt,
        "refinedPrompt": img.refined_prompt,
        "translation": img.translation,
        "model": img.model,
        "checkpointModel": img.checkpoint_model,
        "resolution": {"width": img.resolution.width, "height": img.resolution.height},
        "size": img.size,
        "isFavorite": 1 if img.is_favorite else 0,
        "tags": list(img.tags),
        "createdAt": img.created_at.isoformat(),
        "dataUrl": bytes_to_data_url(img.data, img.mime_type),
    }


def _parse_created_at(raw: Any) -> datetime:
    if raw in (None, ""):
        return datetime.now(UTC)
    if isinstance(raw, (int, float)):
        # Epoch milliseconds, as produced by JS Date serializers.
        try:
            return datetime.fromtimestamp(float(raw) / 1000.0, tz=UTC)
        except (OverflowError, OSError, ValueError) as e:
            raise ImportFormatError(f"invalid createdAt: {raw!r}") from e
    s = str(raw).strip()
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"
    try:
        dt = datetime.fromisoformat(s)
    except ValueError as e:
        raise ImportFormatError(f"invalid createdAt: {raw!r}") from e
    return dt if dt.tzinfo else dt.replace(tzinfo=UTC)


def image_from_export_dict(item: Any) -> AIImage:
    if not isinstance(item, dict):
        raise ImportFormatError("each entry must be an object")

    try:
        data, mime = data_url_to_bytes(item.get("dataUrl"))
    except InvalidImageError as e:
        raise ImportFormatError(f"entry has an invalid dataUrl: {e}") from e

    res_raw = item.get("resolution")
    if isinstance(res_raw, dict) and res_raw.get("width") and res_raw.get("height"):
        try:
            resolution = Resolution(width=int(res_raw["width"]), height=int(res_raw["height"]))
        except (TypeError, ValueError) as e:
            raise ImportFormatError(f"entry has an invalid resolution: {res_raw!r}") from e
    else:
        try:
            resolution = read_image_metadata(data)
        except InvalidImageError as e:
            raise ImportFormatError("entry has no resolution and undecodable image data") from e

    prompt = str(item.get("prompt") or "").strip()
    if not prompt:
        raise ImportFormatError("entry is missing a prompt")

    tags = item.get("tags") or []
    if not isinstance(tags, list):
        raise ImportFormatError("tags must be a list")

    return AIImage(
        name=str(item.get("name") or make_image_name(prompt)),
        prompt=prompt,
        refined_prompt=str(item.get("refinedPrompt") or ""),
        translation=item.get("translation"),
        model=str(item.get("model") or "unknown"),
        checkpoint_model=item.get("checkpointModel") or None,
        resolution=resolution,
        size=len(data),
        is_favorite=bool(item.get("isFavorite")),
        tags=[str(t) for t in tags],
        mime_type=mime,
        data=data,
        created_at=_parse_created_at(item.get("createdAt")),
    )


def export_images(store: ImageRepo) -> list[dict[str, Any]]:
    # Oldest first, so a re-import preserves insertion order.
    images = list(reversed(store.list_images()))
    return [image_to_export_dict(img) for img in images]


def export_to_file(store: ImageRepo, path: str | Path) -> int:
    """Write the whole history to `path`. Returns the number of exported images."""
    payload = export_images(store)
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + ".tmp")
    tmp.write_text(json.dumps(payload, ensure_ascii=False), "utf-8")
    os.replace(tmp, path)
    logger.info("Exported %d images to %s", len(payload), path)
    return len(payload)


def import_images(store: ImageRepo, payload: Any) -> list[int]:
    if not isinstance(payload, list):
        raise ImportFormatError("JSON must be an array")
    images = [image_from_export_dict(item) for item in payload]
    ids = store.bulk_add(images)
    logger.info("Imported %d images", len(ids))
    return ids


def import_from_file(store: ImageRepo, path: str | Path) -> list[int]:
    path = Path(path)
    try:
        payload = json.loads(path.read_text("utf-8"))
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise ImportFormatError(f"{path.name} is not valid JSON") from e
    return import_images(store, payload)
