# src/ai_canvas/images/models.py

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime

MODEL_GEMINI = "Gemini Flash"
MODEL_LOCAL_SD = "Stable Diffusion (Local)"

DEFAULT_MIME_TYPE = "image/png"


@dataclass(frozen=True, slots=True)
class Resolution:
    width: int
    height: int

    def __str__(self) -> str:
        return f"{self.width}x{self.height}"


@dataclass(slots=True)
class AIImage:
    """
    One generated image with its metadata.

    Notes:
    - `prompt` is what the user typed; `refined_prompt` is what was actually sent
      when the prompt went through refinement ("" otherwise).
    - `id` is None until the record has been written to the store.
    """

    name: str
    prompt: str
    model: str
    resolution: Resolution
    data: bytes

    refined_prompt: str = ""
    translation: str | None = None
    checkpoint_model: str | None = None
    size: int = 0
    is_favorite: bool = False
    tags: list[str] = field(default_factory=list)
    mime_type: str = DEFAULT_MIME_TYPE
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    id: int | None = None

    def __post_init__(self) -> None:
        if not self.size:
            self.size = len(self.data)

    @property
    def effective_prompt(self) -> str:
        """The prompt text the backend actually received."""
        return self.refined_prompt or self.prompt
