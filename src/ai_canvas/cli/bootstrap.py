# src/ai_canvas/cli/bootstrap.py

"""
CLI bootstrap helpers.

Composition root: the only place that picks concrete classes for the ports
(SQLite stores, Gemini and sdapi backends, online or offline text LLM) and
restores the saved prompt list from disk.
"""

from __future__ import annotations

import logging

from ..batch.store import BatchStore
from ..config import get_settings
from ..core.ports import LLMClient
from ..core.state import AppState, LocalSession
from ..generation.gemini import GeminiImageClient
from ..generation.local_sd import LocalSDClient
from ..images.store import ImageStore
from ..llm.client import OpenAICompatLLMClient
from ..llm.offline import OfflineLLMClient
from ..prompts.saved import load_saved_prompts

logger = logging.getLogger(__name__)


def _ensure_local_dirs(settings) -> None:
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    settings.images_db_path.parent.mkdir(parents=True, exist_ok=True)
    settings.batch_db_path.parent.mkdir(parents=True, exist_ok=True)
    settings.saved_prompts_path.parent.mkdir(parents=True, exist_ok=True)


def build_llm_client(settings) -> LLMClient:
    try:
        return OpenAICompatLLMClient(settings)
    except RuntimeError as e:
        # Fallback for local runs without a text LLM key.
        logger.info("Text LLM unavailable (%s); using offline prompt tools.", e)
        return OfflineLLMClient()


def create_initial_state(*, settings=None) -> AppState:
    """
    Wire stores, both image backends and the prompt LLM into a fresh AppState.

    Pass `settings` explicitly in tests; None reads the process-wide get_settings().
    """
    if settings is None:
        settings = get_settings()

    _ensure_local_dirs(settings)

    state = AppState(
        settings=settings,
        llm=build_llm_client(settings),
        gemini=GeminiImageClient(settings.gemini_api_key, model=settings.gemini_image_model),
        local_sd=LocalSDClient(settings.sd_endpoint, timeout_seconds=settings.sd_timeout_seconds),
        images=ImageStore(settings.images_db_path),
        batches=BatchStore(settings.batch_db_path),
        local=LocalSession(
            negative_prompt=settings.sd_negative_prompt,
            steps=settings.sd_steps,
            cfg_scale=settings.sd_cfg_scale,
            checkpoint_model=settings.sd_checkpoint,
        ),
        saved_prompts=load_saved_prompts(settings.saved_prompts_path),
    )
    if not state.gemini.configured:
        logger.info("Gemini API key not set: /gen is disabled until AICANVAS_GEMINI_API_KEY is configured.")
    return state
