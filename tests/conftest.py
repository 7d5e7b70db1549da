# tests/conftest.py

from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace

import pytest

from ai_canvas.batch.store import BatchStore
from ai_canvas.core.state import AppState
from ai_canvas.images.store import ImageStore

from .fakes import FakeLLMClient, FakeLocalBackend, FakeRemoteBackend


@pytest.fixture()
def settings(tmp_path: Path) -> SimpleNamespace:
    """
    Just the settings attributes AppState and the CLI handlers read,
    with every path under tmp_path. Real config is never imported here.
    """
    return SimpleNamespace(
        app_name="ai-canvas-test",
        gemini_image_model="fake-image-model",
        llm_models=["fake-llm"],
        # Storage
        data_dir=tmp_path,
        images_db_path=tmp_path / "images.sqlite3",
        batch_db_path=tmp_path / "batches.sqlite3",
        saved_prompts_path=tmp_path / "saved_prompts.json",
        export_dir=tmp_path / "exports",
    )


@pytest.fixture()
def state(settings: SimpleNamespace) -> AppState:
    """
    AppState with fake LLM and image backends but real SQLite stores,
    so command tests also exercise persistence.
    """
    return AppState(
        settings=settings,
        llm=FakeLLMClient(),
        gemini=FakeRemoteBackend(),
        local_sd=FakeLocalBackend(),
        images=ImageStore(settings.images_db_path),
        batches=BatchStore(settings.batch_db_path),
    )
