# src/ai_canvas/generation/base.py

from __future__ import annotations

from dataclasses import dataclass

from ..images.models import DEFAULT_MIME_TYPE


class GenerationError(RuntimeError):
    """Any failure while producing an image."""


class BackendNotConfiguredError(GenerationError):
    """Backend is missing credentials or an endpoint."""


class QuotaExceededError(GenerationError):
    """Remote API refused the request because the quota is exhausted (HTTP 429)."""


class LocalApiError(GenerationError):
    """The local server answered with a non-2xx status."""

    def __init__(self, status_code: int, body: str) -> None:
        self.status_code = int(status_code)
        self.body = body
        super().__init__(f"Local API error ({self.status_code}): {body}")


class LocalApiConnectionError(GenerationError):
    """The local server could not be reached at all."""


@dataclass(frozen=True, slots=True)
class GeneratedImage:
    data: bytes
    mime_type: str = DEFAULT_MIME_TYPE
    text: str = ""  # optional text part returned next to the image


def friendly_error_message(err: Exception) -> str:
    """One-line message suitable for the console."""
    if isinstance(err, QuotaExceededError):
        return (
            "Image generation quota exceeded. Try again later or check the billing plan "
            "of your Google AI account."
        )
    if isinstance(err, BackendNotConfiguredError):
        return str(err)
    msg = str(err).strip()
    return msg or err.__class__.__name__
