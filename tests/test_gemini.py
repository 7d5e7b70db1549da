# tests/test_gemini.py

from __future__ import annotations

import base64
from types import SimpleNamespace
from typing import Any

import httpx
import pytest
from google.genai import errors as genai_errors

from ai_canvas.generation.base import (
    BackendNotConfiguredError,
    GenerationError,
    QuotaExceededError,
    friendly_error_message,
)
from ai_canvas.generation.gemini import GeminiImageClient, extract_image

from .fakes import png_bytes


def _response(*parts) -> SimpleNamespace:
    return SimpleNamespace(candidates=[SimpleNamespace(content=SimpleNamespace(parts=list(parts)))])


def _text(t: str) -> SimpleNamespace:
    return SimpleNamespace(text=t, inline_data=None)


def _inline(data, mime: str | None = "image/png") -> SimpleNamespace:
    return SimpleNamespace(text=None, inline_data=SimpleNamespace(data=data, mime_type=mime))


def test_extract_image_picks_first_inline_part() -> None:
    data = png_bytes()
    result = extract_image(_response(_text("Here is your image."), _inline(data), _inline(b"second")))
    assert result.data == data
    assert result.mime_type == "image/png"
    assert result.text == "Here is your image."


def test_extract_image_decodes_base64_strings() -> None:
    data = png_bytes()
    result = extract_image(_response(_inline(base64.b64encode(data).decode(), mime=None)))
    assert result.data == data
    assert result.mime_type == "image/png"


def test_extract_image_without_image_part_fails() -> None:
    with pytest.raises(GenerationError):
        extract_image(_response(_text("I can't draw that.")))
    with pytest.raises(GenerationError):
        extract_image(SimpleNamespace(candidates=None))


@pytest.mark.asyncio
async def test_missing_api_key_is_reported_before_any_request() -> None:
    client = GeminiImageClient("  ")
    assert client.configured is False
    with pytest.raises(BackendNotConfiguredError):
        await client.generate("a fox")


@pytest.mark.asyncio
async def test_empty_prompt_is_rejected() -> None:
    with pytest.raises(ValueError):
        await GeminiImageClient("key").generate("  ")


def test_friendly_error_messages() -> None:
    assert "quota exceeded" in friendly_error_message(QuotaExceededError("429 RESOURCE_EXHAUSTED"))
    assert friendly_error_message(GenerationError("Local API error (500): boom")) == "Local API error (500): boom"
    assert friendly_error_message(GenerationError("")) == "GenerationError"


class _FakeModels:
    def __init__(self, error: Exception | None = None, response: Any = None) -> None:
        self.error = error
        self.response = response

    async def generate_content(self, **kwargs) -> Any:
        if self.error is not None:
            raise self.error
        return self.response


class _FakeAio:
    def __init__(self, models: _FakeModels) -> None:
        self.models = models
        self.closed = False

    async def aclose(self) -> None:
        self.closed = True


def _client_with(monkeypatch, models: _FakeModels) -> tuple[GeminiImageClient, list[_FakeAio]]:
    client = GeminiImageClient("key")
    built: list[_FakeAio] = []

    def _new_client() -> SimpleNamespace:
        aio = _FakeAio(models)
        built.append(aio)
        return SimpleNamespace(aio=aio)

    monkeypatch.setattr(client, "_new_client", _new_client)
    return client, built


@pytest.mark.asyncio
async def test_network_failure_becomes_generation_error(monkeypatch) -> None:
    client, built = _client_with(monkeypatch, _FakeModels(error=httpx.ConnectError("no route to host")))
    with pytest.raises(GenerationError, match="Could not reach Gemini"):
        await client.generate("a fox")
    assert built[0].closed is True


@pytest.mark.asyncio
async def test_each_request_closes_its_client(monkeypatch) -> None:
    client, built = _client_with(monkeypatch, _FakeModels(response=_response(_inline(png_bytes()))))
    await client.generate("a fox")
    await client.generate("a hare")
    assert [aio.closed for aio in built] == [True, True]


@pytest.mark.asyncio
async def test_quota_is_detected_by_code_not_message(monkeypatch) -> None:
    quota = genai_errors.ClientError(
        429, {"error": {"code": 429, "message": "Quota exceeded", "status": "RESOURCE_EXHAUSTED"}}
    )
    client, _ = _client_with(monkeypatch, _FakeModels(error=quota))
    with pytest.raises(QuotaExceededError):
        await client.generate("a fox")

    bad = genai_errors.ClientError(
        400, {"error": {"code": 400, "message": "request 4291 rejected", "status": "INVALID_ARGUMENT"}}
    )
    client, _ = _client_with(monkeypatch, _FakeModels(error=bad))
    with pytest.raises(GenerationError) as info:
        await client.generate("a fox")
    assert not isinstance(info.value, QuotaExceededError)
