# src/ai_canvas/batch/models.py

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import Any


class BatchItemStatus(StrEnum):
    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"

    @classmethod
    def from_db(cls, raw: str | None) -> BatchItemStatus:
        try:
            return cls(raw or cls.PENDING)
        except ValueError:
            return cls.PENDING


class BatchRunStatus(StrEnum):
    """
    Run lifecycle.

    Notes:
    - "running" is also what a crashed/killed process leaves behind; such a run is
      resumable exactly like a paused one.
    """

    RUNNING = "running"
    PAUSED = "paused"
    COMPLETED = "completed"

    @classmethod
    def from_db(cls, raw: str | None) -> BatchRunStatus:
        try:
            return cls(raw or cls.PAUSED)
        except ValueError:
            return cls.PAUSED


class BatchBackend(StrEnum):
    LOCAL = "local"
    GEMINI = "gemini"


@dataclass(slots=True)
class BatchItem:
    id: int
    run_id: int
    position: int
    prompt: str
    status: BatchItemStatus
    updated_at: float

    error: str | None = None
    image_id: int | None = None
    attempts: int = 0


@dataclass(slots=True)
class BatchRun:
    id: int
    status: BatchRunStatus
    created_at: float
    updated_at: float

    backend: BatchBackend
    params: dict[str, Any]
    total: int


@dataclass(frozen=True, slots=True)
class BatchProgress:
    total: int
    pending: int
    success: int
    failed: int

    @property
    def done(self) -> int:
        return self.success + self.failed

    def __str__(self) -> str:
        return f"{self.done}/{self.total} processed ({self.success} ok, {self.failed} failed, {self.pending} pending)"
