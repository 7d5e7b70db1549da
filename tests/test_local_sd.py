# tests/test_local_sd.py

from __future__ import annotations

import base64
import json

import httpx
import pytest

from ai_canvas.generation.base import GenerationError, LocalApiConnectionError, LocalApiError
from ai_canvas.generation.local_sd import LocalGenerationParams, LocalSDClient, api_url

from .fakes import png_bytes

ENDPOINT = "http://127.0.0.1:7860/sdapi/v1/txt2img"


def _client(handler) -> LocalSDClient:
    return LocalSDClient(ENDPOINT, timeout_seconds=5.0, transport=httpx.MockTransport(handler))


def test_api_url_uses_endpoint_origin() -> None:
    assert api_url(ENDPOINT, "sdapi/v1/options") == "http://127.0.0.1:7860/sdapi/v1/options"
    assert api_url("https://sd.lan:8443/custom/txt2img", "/sdapi/v1/sd-models") == "https://sd.lan:8443/sdapi/v1/sd-models"
    with pytest.raises(ValueError):
        api_url("not a url", "x")


def test_params_validation() -> None:
    LocalGenerationParams(prompt="p", steps=1, cfg_scale=1.0).validate()
    LocalGenerationParams(prompt="p", steps=100, cfg_scale=20.0).validate()
    LocalGenerationParams(prompt="p", cfg_scale=7.5).validate()

    for bad in (
        LocalGenerationParams(prompt=" "),
        LocalGenerationParams(prompt="p", steps=0),
        LocalGenerationParams(prompt="p", steps=101),
        LocalGenerationParams(prompt="p", cfg_scale=0.5),
        LocalGenerationParams(prompt="p", cfg_scale=20.5),
        LocalGenerationParams(prompt="p", cfg_scale=7.3),
    ):
        with pytest.raises(ValueError):
            bad.validate()


def test_payload_without_checkpoint_has_no_overrides() -> None:
    payload = LocalGenerationParams(prompt="p", negative_prompt="blurry", steps=30, cfg_scale=6.5).to_payload()
    assert payload == {
        "prompt": "p",
        "negative_prompt": "blurry",
        "steps": 30,
        "cfg_scale": 6.5,
        "width": 512,
        "height": 512,
    }


@pytest.mark.asyncio
async def test_txt2img_posts_payload_and_decodes_image() -> None:
    image = png_bytes(512, 512)
    seen: dict = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["method"] = request.method
        seen["url"] = str(request.url)
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"images": [base64.b64encode(image).decode()], "info": "{}"})

    result = await _client(handler).txt2img(LocalGenerationParams(prompt="a lighthouse", checkpoint_model="dreamshaper_8"))

    assert result.data == image
    assert result.mime_type == "image/png"
    assert seen["method"] == "POST"
    assert seen["url"] == ENDPOINT
    assert seen["body"]["override_settings"] == {"sd_model_checkpoint": "dreamshaper_8"}
    assert seen["body"]["override_settings_restore_afterwards"] is True
    assert seen["body"]["steps"] == 25


@pytest.mark.asyncio
async def test_txt2img_error_status_carries_body() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, text="CUDA out of memory")

    with pytest.raises(LocalApiError) as ei:
        await _client(handler).txt2img(LocalGenerationParams(prompt="p"))
    assert ei.value.status_code == 500
    assert str(ei.value) == "Local API error (500): CUDA out of memory"


@pytest.mark.asyncio
async def test_txt2img_without_images_fails() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"images": []})

    with pytest.raises(GenerationError, match="did not return any images"):
        await _client(handler).txt2img(LocalGenerationParams(prompt="p"))


@pytest.mark.asyncio
async def test_connection_error_is_mapped() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(LocalApiConnectionError, match="--api"):
        await _client(handler).txt2img(LocalGenerationParams(prompt="p"))


@pytest.mark.asyncio
async def test_invalid_params_never_hit_the_server() -> None:
    calls: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(200, json={"images": []})

    with pytest.raises(ValueError):
        await _client(handler).txt2img(LocalGenerationParams(prompt="p", steps=500))
    assert calls == []


@pytest.mark.asyncio
async def test_checkpoint_queries() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/sdapi/v1/options":
            return httpx.Response(200, json={"sd_model_checkpoint": "v1-5-pruned.safetensors [6ce0161689]"})
        if request.url.path == "/sdapi/v1/sd-models":
            return httpx.Response(200, json=[{"title": "a.safetensors"}, {"model_name": "b"}, {"hash": "x"}])
        return httpx.Response(404)

    client = _client(handler)
    assert await client.get_current_checkpoint() == "v1-5-pruned.safetensors [6ce0161689]"
    assert await client.list_checkpoints() == ["a.safetensors", "b"]


@pytest.mark.asyncio
async def test_missing_checkpoint_in_options() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"samples_format": "png"})

    with pytest.raises(GenerationError, match="checkpoint"):
        await _client(handler).get_current_checkpoint()
