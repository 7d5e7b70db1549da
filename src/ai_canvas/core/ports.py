# src/ai_canvas/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the core.

Flows and the batch runner depend on Protocols instead of concrete implementations.
This keeps backends/storage/LLM providers swappable and makes testing easier.
"""

from typing import Any, Awaitable, Iterable, Protocol

ChatMessage = dict[str, str]
# OpenAI-style chat messages: {"role": "...", "content": "..."}.


class LLMClient(Protocol):
    """Streaming chat completion client (OpenAI-compatible)."""
    def stream_chat(self, messages: list[ChatMessage], system_prompt: str) -> Iterable[str]: ...


class RemoteImageBackend(Protocol):
    """Prompt -> image (Gemini-style: no tuning knobs)."""
    def generate(self, prompt: str) -> Awaitable[Any]: ...


class LocalImageBackend(Protocol):
    """Stable-Diffusion-style backend with sampling parameters and checkpoints."""
    def txt2img(self, params: Any) -> Awaitable[Any]: ...
    def get_current_checkpoint(self) -> Awaitable[str]: ...
    def list_checkpoints(self) -> Awaitable[list[str]]: ...


class ImageRepo(Protocol):
    def add_image(self, image: Any) -> int: ...
    def bulk_add(self, images: Iterable[Any]) -> list[int]: ...
    def get_image(self, image_id: int) -> Any | None: ...
    def update_image(
            self,
            image_id: int,
            *,
            name: str | None = None,
            tags: list[str] | None = None,
            is_favorite: bool | None = None,
            refined_prompt: str | None = None,
            translation: str | None = ...,
    ) -> bool: ...
    def delete_image(self, image_id: int) -> bool: ...
    def toggle_favorite(self, image_id: int) -> bool | None: ...
    def add_tag(self, image_id: int, tag: str) -> bool: ...
    def remove_tag(self, image_id: int, tag: str) -> bool: ...
    def count_images(self) -> int: ...

    def list_images(
            self,
            *,
            search: str = "",
            favorites_only: bool = False,
            tag: str | None = None,
            checkpoint_model: str | None = None,
            limit: int | None = None,
    ) -> list[Any]: ...
    def list_tags(self) -> list[tuple[str, int]]: ...


class BatchRepo(Protocol):
    # Runner API
    def get_run(self, run_id: int) -> Any | None: ...
    def next_pending_item(self, run_id: int) -> Any | None: ...
    def mark_item_success(self, item_id: int, image_id: int | None) -> None: ...
    def mark_item_failed(self, item_id: int, error: str) -> None: ...
    def set_run_status(self, run_id: int, status: Any) -> None: ...
    def reset_failed_items(self, run_id: int) -> int: ...
    def progress(self, run_id: int) -> Any: ...

    # Console API
    def create_run(self, prompts: Iterable[str], *, backend: Any = None, params: dict[str, Any] | None = None) -> int: ...
    def list_runs(self, limit: int = 20) -> list[Any]: ...
    def list_items(self, run_id: int) -> list[Any]: ...
    def latest_unfinished_run(self) -> Any | None: ...
    def latest_run_with_failures(self) -> Any | None: ...
