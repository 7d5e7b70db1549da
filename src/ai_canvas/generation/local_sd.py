# src/ai_canvas/generation/local_sd.py

"""
Client for a local Stable-Diffusion-compatible server (AUTOMATIC1111 `sdapi/v1`).

Endpoints used:
- POST <endpoint>                  txt2img (the configured endpoint)
- GET  <origin>/sdapi/v1/options   current settings (sd_model_checkpoint)
- GET  <origin>/sdapi/v1/sd-models available checkpoints
"""

from __future__ import annotations

import base64
import binascii
import logging
from dataclasses import dataclass
from typing import Any
from urllib.parse import urlsplit

import httpx

from ..config import DEFAULT_SD_ENDPOINT
from .base import GeneratedImage, GenerationError, LocalApiConnectionError, LocalApiError

logger = logging.getLogger(__name__)

IMAGE_WIDTH = 512
IMAGE_HEIGHT = 512

STEPS_MIN, STEPS_MAX = 1, 100
CFG_MIN, CFG_MAX, CFG_STEP = 1.0, 20.0, 0.5

CONNECTION_HINT = (
    "Could not connect to the local API. Possible causes: "
    "(1) the server is not running, "
    "(2) the address is wrong, "
    "(3) the server was started without --api."
)


@dataclass(frozen=True, slots=True)
class LocalGenerationParams:
    prompt: str
    negative_prompt: str = ""
    steps: int = 25
    cfg_scale: float = 7.0
    checkpoint_model: str = ""

    def validate(self) -> None:
        if not (self.prompt or "").strip():
            raise ValueError("prompt is required")
        if not STEPS_MIN <= int(self.steps) <= STEPS_MAX:
            raise ValueError(f"steps must be between {STEPS_MIN} and {STEPS_MAX}")
        cfg = float(self.cfg_scale)
        if not CFG_MIN <= cfg <= CFG_MAX:
            raise ValueError(f"cfg_scale must be between {CFG_MIN:g} and {CFG_MAX:g}")
        if (cfg / CFG_STEP) != int(cfg / CFG_STEP):
            raise ValueError(f"cfg_scale must be a multiple of {CFG_STEP:g}")

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "prompt": self.prompt,
            "negative_prompt": self.negative_prompt,
            "steps": int(self.steps),
            "cfg_scale": float(self.cfg_scale),
            "width": IMAGE_WIDTH,
            "height": IMAGE_HEIGHT,
        }
        if self.checkpoint_model:
            payload["override_settings"] = {"sd_model_checkpoint": self.checkpoint_model}
            payload["override_settings_restore_afterwards"] = True
        return payload


def api_url(endpoint: str, path: str) -> str:
    """Build `<scheme>://<host>/<path>` from the configured txt2img endpoint."""
    parts = urlsplit(endpoint)
    if not parts.scheme or not parts.netloc:
        raise ValueError(f"invalid local API endpoint: {endpoint!r}")
    return f"{parts.scheme}://{parts.netloc}/{path.lstrip('/')}"


class LocalSDClient:
    """
    Async client over httpx.

    One AsyncClient per call keeps the client safe to use from several event loops
    (the REPL runs each command in its own asyncio.run()).
    """

    def __init__(
        self,
        endpoint: str = DEFAULT_SD_ENDPOINT,
        *,
        timeout_seconds: float = 300.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.endpoint = (endpoint or DEFAULT_SD_ENDPOINT).strip()
        self._timeout = httpx.Timeout(timeout_seconds, connect=10.0)
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self._timeout, transport=self._transport)

    async def _request(self, method: str, url: str, **kwargs: Any) -> Any:
        try:
            async with self._client() as client:
                response = await client.request(method, url, headers={"Accept": "application/json"}, **kwargs)
        except httpx.TransportError as e:
            logger.info("Local API unreachable url=%s (%s)", url, e.__class__.__name__)
            raise LocalApiConnectionError(CONNECTION_HINT) from e

        if not response.is_success:
            raise LocalApiError(response.status_code, response.text)

        try:
            return response.json()
        except ValueError as e:
            raise GenerationError("Local API returned a non-JSON response.") from e

    async def txt2img(self, params: LocalGenerationParams) -> GeneratedImage:
        params.validate()
        logger.info(
            "txt2img steps=%s cfg=%s checkpoint=%s",
            params.steps,
            params.cfg_scale,
            params.checkpoint_model or "-",
        )
        result = await self._request("POST", self.endpoint, json=params.to_payload())

        images = result.get("images") if isinstance(result, dict) else None
        if not images:
            raise GenerationError("Local API did not return any images.")

        try:
            data = base64.b64decode(images[0], validate=True)
        except (binascii.Error, ValueError, TypeError) as e:
            raise GenerationError("Local API returned an image that is not valid base64.") from e

        return GeneratedImage(data=data, mime_type="image/png")

    async def get_options(self) -> dict[str, Any]:
        result = await self._request("GET", api_url(self.endpoint, "sdapi/v1/options"))
        if not isinstance(result, dict):
            raise GenerationError("Local API options response is not an object.")
        return result

    async def get_current_checkpoint(self) -> str:
        options = await self.get_options()
        checkpoint = options.get("sd_model_checkpoint")
        if not checkpoint:
            raise GenerationError("Could not find the checkpoint in the API configuration.")
        return str(checkpoint)

    async def list_checkpoints(self) -> list[str]:
        result = await self._request("GET", api_url(self.endpoint, "sdapi/v1/sd-models"))
        if not isinstance(result, list):
            return []
        out: list[str] = []
        for m in result:
            if isinstance(m, dict):
                title = m.get("title") or m.get("model_name")
                if title:
                    out.append(str(title))
        return out
