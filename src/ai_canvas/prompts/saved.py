# src/ai_canvas/prompts/saved.py

from __future__ import annotations

import contextlib
import json
import logging
import os
from pathlib import Path

logger = logging.getLogger(__name__)


def load_saved_prompts(path: str | Path) -> list[str]:
    """Best-effort load of the last generated prompt list."""
    path = Path(path)
    if not path.exists():
        return []
    try:
        data = json.loads(path.read_text("utf-8"))
    except (OSError, json.JSONDecodeError):
        logger.exception("Failed to load saved prompts from %s", path)
        return []
    if not isinstance(data, list):
        return []
    out = [str(p).strip() for p in data if isinstance(p, str) and p.strip()]
    logger.info("Loaded %d saved prompts from %s", len(out), path)
    return out


def save_prompts(path: str | Path, prompts: list[str]) -> None:
    """Persist the prompt list; an empty list removes the file."""
    path = Path(path)
    if not prompts:
        with contextlib.suppress(FileNotFoundError):
            path.unlink()
        return

    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(".tmp")
    tmp.write_text(json.dumps(prompts, ensure_ascii=False, indent=2), "utf-8")
    os.replace(tmp, path)
    logger.debug("Saved %d prompts to %s", len(prompts), path)
