# src/ai_canvas/generation/flows.py

"""
Generation flows: backend call -> bytes + metadata -> store write.

Both flows return the stored AIImage (with its id) and raise on failure;
callers decide how to present errors.
"""

from __future__ import annotations

import logging

from ..core.state import AppState
from ..images.media import guess_mime_type, make_image_name, read_image_metadata
from ..images.models import MODEL_GEMINI, MODEL_LOCAL_SD, AIImage
from .base import GeneratedImage
from .local_sd import LocalGenerationParams

logger = logging.getLogger(__name__)


def _store_generated(
    state: AppState,
    generated: GeneratedImage,
    *,
    prompt: str,
    refined_prompt: str,
    model: str,
    checkpoint_model: str | None = None,
) -> AIImage:
    resolution = read_image_metadata(generated.data)
    mime_type = generated.mime_type or guess_mime_type(generated.data)

    image = AIImage(
        # The display name follows the text that was actually sent.
        name=make_image_name(refined_prompt or prompt),
        prompt=prompt,
        refined_prompt=refined_prompt,
        model=model,
        checkpoint_model=checkpoint_model or None,
        resolution=resolution,
        size=len(generated.data),
        mime_type=mime_type,
        data=generated.data,
    )
    image.id = state.images.add_image(image)
    logger.info(
        "Stored image id=%s model=%s %s (%d bytes)",
        image.id,
        model,
        resolution,
        image.size,
    )
    return image


async def generate_remote(state: AppState, prompt: str, *, original_prompt: str | None = None) -> AIImage:
    """
    Generate with Gemini and save to history.

    If `original_prompt` is given, `prompt` is the refined version of it: the record keeps
    the original in `prompt` and the refined text in `refined_prompt`.
    """
    text = (prompt or "").strip()
    if not text:
        raise ValueError("prompt is empty")

    original = (original_prompt or "").strip()
    generated = await state.gemini.generate(text)
    return _store_generated(
        state,
        generated,
        prompt=original or text,
        refined_prompt=text if original else "",
        model=MODEL_GEMINI,
    )


async def generate_local(state: AppState, params: LocalGenerationParams) -> AIImage:
    """Generate with the local Stable Diffusion server and save to history."""
    if not (params.prompt or "").strip():
        raise ValueError("prompt is empty")

    generated = await state.local_sd.txt2img(params)
    return _store_generated(
        state,
        generated,
        prompt=params.prompt.strip(),
        refined_prompt="",
        model=MODEL_LOCAL_SD,
        checkpoint_model=params.checkpoint_model,
    )
