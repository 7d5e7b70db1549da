# src/ai_canvas/generation/gemini.py

from __future__ import annotations

import base64
import logging
from typing import Any

import httpx
from google import genai
from google.genai import errors as genai_errors
from google.genai import types

from ..config import DEFAULT_GEMINI_IMAGE_MODEL
from .base import (
    BackendNotConfiguredError,
    GeneratedImage,
    GenerationError,
    QuotaExceededError,
)

logger = logging.getLogger(__name__)


def _is_quota_error(exc: Exception) -> bool:
    return getattr(exc, "code", None) == 429 or getattr(exc, "status", None) == "RESOURCE_EXHAUSTED"


def extract_image(response: Any) -> GeneratedImage:
    """Pick the first inline image part (and any text) out of a generate_content response."""
    texts: list[str] = []
    for candidate in getattr(response, "candidates", None) or []:
        content = getattr(candidate, "content", None)
        for part in getattr(content, "parts", None) or []:
            inline = getattr(part, "inline_data", None)
            if inline is not None and inline.data:
                data = inline.data
                if isinstance(data, str):
                    data = base64.b64decode(data)
                return GeneratedImage(
                    data=bytes(data),
                    mime_type=inline.mime_type or "image/png",
                    text=" ".join(texts).strip(),
                )
            text = getattr(part, "text", None)
            if text:
                texts.append(text)
    raise GenerationError("Gemini did not return an image.")


class GeminiImageClient:
    """
    Remote image generation through google-genai.

    A fresh genai.Client is built per request and closed after it: the console runs
    every command in its own event loop and the SDK's async transport is bound to the
    loop that created it.
    No API key is needed until the first request.
    """

    def __init__(self, api_key: str | None, *, model: str = DEFAULT_GEMINI_IMAGE_MODEL) -> None:
        self._api_key = (api_key or "").strip()
        self.model = model or DEFAULT_GEMINI_IMAGE_MODEL

    @property
    def configured(self) -> bool:
        return bool(self._api_key)

    def _new_client(self) -> genai.Client:
        if not self._api_key:
            raise BackendNotConfiguredError(
                "Gemini is not configured (missing API key). Set AICANVAS_GEMINI_API_KEY in .env."
            )
        return genai.Client(api_key=self._api_key)

    async def generate(self, prompt: str) -> GeneratedImage:
        if not (prompt or "").strip():
            raise ValueError("prompt is required")

        client = self._new_client()
        logger.info("Gemini: generating image model=%s", self.model)
        try:
            response = await client.aio.models.generate_content(
                model=self.model,
                contents=prompt,
                config=types.GenerateContentConfig(response_modalities=["TEXT", "IMAGE"]),
            )
        except genai_errors.APIError as e:
            if _is_quota_error(e):
                raise QuotaExceededError(str(e)) from e
            raise GenerationError(f"Gemini request failed: {e}") from e
        except httpx.TransportError as e:
            logger.info("Gemini unreachable (%s)", e.__class__.__name__)
            raise GenerationError("Could not reach Gemini. Check your network connection and try again.") from e
        finally:
            await client.aio.aclose()

        return extract_image(response)
