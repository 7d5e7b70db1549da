# src/ai_canvas/config.py

"""
Application settings.

Values come from AICANVAS_* environment variables, with a local .env file loaded
first when present. Keys are optional at startup: each backend reports a missing
key the first time it is used. A gitignored config_local.py may override a few
non-secret values.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Callable, List, Optional, TypeVar

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

ENV_PREFIX = "AICANVAS"

DEFAULT_SD_ENDPOINT = "http://127.0.0.1:7860/sdapi/v1/txt2img"
DEFAULT_GEMINI_IMAGE_MODEL = "gemini-2.0-flash-preview-image-generation"
DEFAULT_LLM_BASE_URL = "https://generativelanguage.googleapis.com/v1beta/openai/"
DEFAULT_LLM_MODELS = ["gemini-2.0-flash", "gemini-1.5-flash"]
DEFAULT_DATA_DIR = Path(".local/ai-canvas")

# Names config_local.py may define, mapped to Settings fields.
LOCAL_OVERRIDES = {
    "SD_ENDPOINT": "sd_endpoint",
    "SD_CHECKPOINT": "sd_checkpoint",
    "LOG_LEVEL": "log_level",
}

T = TypeVar("T")

load_dotenv(override=False)


def _var(suffix: str) -> str:
    return f"{ENV_PREFIX}_{suffix}"


def _raw(*names: str) -> Optional[str]:
    """First non-blank value among `names`, or None."""
    for name in names:
        value = os.environ.get(name)
        if value is not None and value.strip():
            return value
    return None


def _text(suffix: str, default: str = "") -> str:
    value = _raw(_var(suffix))
    return default if value is None else value.strip()


def _parsed(suffix: str, default: T, parse: Callable[[str], T]) -> T:
    value = _raw(_var(suffix))
    if value is None:
        return default
    try:
        return parse(value.strip())
    except ValueError:
        logger.warning("Ignoring invalid %s=%r (using %r)", _var(suffix), value, default)
        return default


def _words(suffix: str, default: List[str]) -> List[str]:
    value = _raw(_var(suffix))
    if value is None:
        return list(default)
    return value.replace(",", " ").split()


def _path(suffix: str, default: Path) -> Path:
    value = _raw(_var(suffix))
    return default if value is None else Path(value.strip()).expanduser()


@dataclass(frozen=True, slots=True)
class Settings:
    # ---- App / logging ----
    app_name: str
    log_level: str

    # ---- Gemini (remote image generation) ----
    gemini_api_key: Optional[str]
    gemini_image_model: str

    # ---- Text LLM (prompt refinement / prompts from documents) ----
    llm_api_key: Optional[str]
    llm_base_url: str
    llm_models: List[str]
    llm_first_token_timeout: float
    llm_read_timeout: float
    llm_connect_timeout: float

    # ---- Local Stable Diffusion ----
    sd_endpoint: str
    sd_checkpoint: str
    sd_steps: int
    sd_cfg_scale: float
    sd_negative_prompt: str
    sd_timeout_seconds: float

    # ---- Local data paths (ignored by git) ----
    data_dir: Path
    images_db_path: Path
    batch_db_path: Path
    saved_prompts_path: Path
    export_dir: Path

    @staticmethod
    def from_env() -> "Settings":
        # The standard Google variable names are accepted for the Gemini key,
        # and the text LLM reuses that key against Gemini's OpenAI-compatible endpoint.
        gemini_api_key = _raw(_var("GEMINI_API_KEY"), "GEMINI_API_KEY", "GOOGLE_API_KEY")
        data_dir = _path("DATA_DIR", DEFAULT_DATA_DIR)

        return Settings(
            app_name=_text("APP_NAME", "ai-canvas"),
            log_level=_text("LOG_LEVEL", "INFO"),
            gemini_api_key=gemini_api_key,
            gemini_image_model=_text("GEMINI_IMAGE_MODEL", DEFAULT_GEMINI_IMAGE_MODEL),
            llm_api_key=_raw(_var("LLM_API_KEY")) or gemini_api_key,
            llm_base_url=_text("LLM_BASE_URL", DEFAULT_LLM_BASE_URL),
            llm_models=_words("LLM_MODELS", DEFAULT_LLM_MODELS),
            llm_first_token_timeout=_parsed("LLM_FIRST_TOKEN_TIMEOUT_SECONDS", 30.0, float),
            llm_read_timeout=_parsed("LLM_READ_TIMEOUT_SECONDS", 60.0, float),
            llm_connect_timeout=_parsed("LLM_CONNECT_TIMEOUT_SECONDS", 5.0, float),
            sd_endpoint=_text("SD_ENDPOINT", DEFAULT_SD_ENDPOINT),
            sd_checkpoint=_text("SD_CHECKPOINT"),
            sd_steps=_parsed("SD_STEPS", 25, int),
            sd_cfg_scale=_parsed("SD_CFG_SCALE", 7.0, float),
            sd_negative_prompt=_text("SD_NEGATIVE_PROMPT"),
            sd_timeout_seconds=_parsed("SD_TIMEOUT_SECONDS", 300.0, float),
            data_dir=data_dir,
            images_db_path=_path("IMAGES_DB_PATH", data_dir / "images.sqlite3"),
            batch_db_path=_path("BATCH_DB_PATH", data_dir / "batches.sqlite3"),
            saved_prompts_path=_path("SAVED_PROMPTS_PATH", data_dir / "saved_prompts.json"),
            export_dir=_path("EXPORT_DIR", data_dir / "exports"),
        )


def _with_local_overrides(settings: Settings) -> Settings:
    try:
        import config_local  # type: ignore
    except ImportError:
        return settings

    changes = {
        field: str(getattr(config_local, name))
        for name, field in LOCAL_OVERRIDES.items()
        if hasattr(config_local, name)
    }
    if changes:
        logger.debug("config_local overrides: %s", ", ".join(sorted(changes)))
    return replace(settings, **changes)


SETTINGS = _with_local_overrides(Settings.from_env())


def get_settings() -> Settings:
    return SETTINGS
