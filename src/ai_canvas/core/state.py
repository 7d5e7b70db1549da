# src/ai_canvas/core/state.py

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Any

from ..generation.local_sd import LocalGenerationParams
from .ports import BatchRepo, ImageRepo, LLMClient, LocalImageBackend, RemoteImageBackend


@dataclass(slots=True)
class LocalSession:
    """Sampling parameters for the local backend, editable from the console."""

    negative_prompt: str = ""
    steps: int = 25
    cfg_scale: float = 7.0
    checkpoint_model: str = ""

    def params_for(self, prompt: str) -> LocalGenerationParams:
        return LocalGenerationParams(
            prompt=prompt,
            negative_prompt=self.negative_prompt,
            steps=self.steps,
            cfg_scale=self.cfg_scale,
            checkpoint_model=self.checkpoint_model,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "negative_prompt": self.negative_prompt,
            "steps": self.steps,
            "cfg_scale": self.cfg_scale,
            "checkpoint_model": self.checkpoint_model,
        }

    @classmethod
    def from_dict(cls, raw: dict[str, Any] | None) -> LocalSession:
        raw = raw or {}
        return cls(
            negative_prompt=str(raw.get("negative_prompt") or ""),
            steps=int(raw.get("steps") or 25),
            cfg_scale=float(raw.get("cfg_scale") or 7.0),
            checkpoint_model=str(raw.get("checkpoint_model") or ""),
        )


@dataclass
class AppState:
    # Store Settings on the state for easy access in other modules later.
    settings: Any

    llm: LLMClient
    gemini: RemoteImageBackend
    local_sd: LocalImageBackend
    images: ImageRepo
    batches: BatchRepo

    local: LocalSession = field(default_factory=LocalSession)

    # Prompt list produced from the last document (persisted between sessions).
    saved_prompts: list[str] = field(default_factory=list)

    # (original, refined) from the last /refine; consumed by the next bare /gen.
    pending_refinement: tuple[str, str] | None = None

    # Set from the console (or a signal handler) to pause a running batch after the current item.
    pause_event: threading.Event = field(default_factory=threading.Event)
