# src/ai_canvas/llm/client.py

from __future__ import annotations

import logging
import time
from typing import Any, Dict, Iterable, Iterator, List, Optional

import httpx
import openai
from openai import OpenAI

from ..core.ports import ChatMessage

logger = logging.getLogger(__name__)

# How long a model that answered 404 is skipped.
UNAVAILABLE_MODEL_COOLDOWN_SECONDS = 3600.0

MISSING_KEY_MESSAGE = "Prompt tools need a text LLM key. Set AICANVAS_LLM_API_KEY (or AICANVAS_GEMINI_API_KEY)."
NO_MODELS_MESSAGE = "No text LLM models configured. Set AICANVAS_LLM_MODELS."
AUTH_FAILED_MESSAGE = "The text LLM rejected the API key (check AICANVAS_LLM_API_KEY)."


class LLMUnavailableError(RuntimeError):
    """No configured model produced an answer."""


class _NoFirstToken(Exception):
    """A model streamed nothing before its first-token deadline."""


def friendly_llm_error_message(err: Exception) -> str:
    msg = str(err).strip()
    return msg or "Text LLM error."


def _should_skip_to_next(exc: Exception) -> bool:
    # Everything except credential problems is worth trying on the next model.
    return not isinstance(exc, openai.AuthenticationError | openai.PermissionDeniedError)


class OpenAICompatLLMClient:
    """
    Streaming chat client for any OpenAI-compatible endpoint (Gemini's by default).

    Models are tried in configured order. A model falls through to the next one when it
    is rate limited, unreachable, slow to produce its first token, or returns nothing;
    a 404 additionally parks it for an hour. Credential errors stop immediately.
    """

    def __init__(self, settings: Any) -> None:
        api_key = str(getattr(settings, "llm_api_key", None) or "").strip()
        base_url = str(getattr(settings, "llm_base_url", "") or "").strip()
        if not api_key:
            raise RuntimeError(MISSING_KEY_MESSAGE)
        if not base_url:
            raise RuntimeError("Text LLM base URL is empty. Set AICANVAS_LLM_BASE_URL.")

        self._models: List[str] = [m.strip() for m in (getattr(settings, "llm_models", None) or []) if m.strip()]
        self._parked_until: Dict[str, float] = {}

        first_token = float(getattr(settings, "llm_first_token_timeout", 30.0))
        connect = float(getattr(settings, "llm_connect_timeout", 5.0))
        read = max(float(getattr(settings, "llm_read_timeout", 60.0)), first_token)
        self._first_token_timeout = first_token
        self._timeout = httpx.Timeout(connect=connect, read=read, write=10.0, pool=connect)

        # SDK retries are off: falling back to another model is faster than retrying one.
        self._client = OpenAI(base_url=base_url, api_key=api_key, timeout=self._timeout, max_retries=0)

    @property
    def models(self) -> list[str]:
        return list(self._models)

    def _available_models(self) -> list[str]:
        now = time.monotonic()
        return [m for m in self._models if self._parked_until.get(m, 0.0) <= now]

    def _stream_model(self, model: str, messages: list[ChatMessage]) -> Iterator[str]:
        started = time.monotonic()
        deadline = started + self._first_token_timeout
        got_token = False

        stream = self._client.chat.completions.create(
            model=model,
            stream=True,
            messages=messages,
            timeout=self._timeout,
        )
        try:
            for chunk in stream:
                if not got_token and time.monotonic() > deadline:
                    raise _NoFirstToken(model)
                delta = chunk.choices[0].delta if chunk.choices else None
                text = getattr(delta, "content", None)
                if not text:
                    continue
                if not got_token:
                    got_token = True
                    logger.debug("LLM: first token from %s after %.2fs", model, time.monotonic() - started)
                yield text
        finally:
            stream.close()

        if not got_token:
            raise _NoFirstToken(model)

    def stream_chat(self, messages: list[ChatMessage], system_prompt: str) -> Iterable[str]:
        if not self._models:
            raise RuntimeError(NO_MODELS_MESSAGE)

        full = [{"role": "system", "content": system_prompt}, *messages]
        last_error: Optional[Exception] = None

        for model in self._available_models():
            logger.info("LLM: asking %s", model)
            produced = False
            try:
                for text in self._stream_model(model, full):
                    produced = True
                    yield text
                return
            except _NoFirstToken:
                last_error = TimeoutError(f"{model} produced no output in time")
                logger.info("LLM: %s gave no output, trying the next model", model)
            except (openai.OpenAIError, httpx.TransportError) as e:
                if not _should_skip_to_next(e):
                    raise LLMUnavailableError(AUTH_FAILED_MESSAGE) from e
                if produced:
                    # Half an answer cannot be stitched to another model's output.
                    raise LLMUnavailableError(f"{model} stopped mid-answer. Try again.") from e
                last_error = e
                if isinstance(e, openai.NotFoundError):
                    self._parked_until[model] = time.monotonic() + UNAVAILABLE_MODEL_COOLDOWN_SECONDS
                logger.info("LLM: %s failed (%s), trying the next model", model, e.__class__.__name__)

        if isinstance(last_error, openai.RateLimitError):
            raise LLMUnavailableError("The text LLM is rate-limited. Try again later.") from last_error
        if isinstance(last_error, openai.APIConnectionError | httpx.TransportError):
            raise LLMUnavailableError("The text LLM could not be reached. Try again later.") from last_error
        raise LLMUnavailableError("None of the configured text LLM models answered.") from last_error
