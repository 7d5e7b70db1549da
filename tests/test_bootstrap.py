# tests/test_bootstrap.py

from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace

from ai_canvas.cli.bootstrap import create_initial_state
from ai_canvas.config import DEFAULT_SD_ENDPOINT, Settings
from ai_canvas.llm.client import OpenAICompatLLMClient
from ai_canvas.llm.offline import OfflineLLMClient


def _settings(tmp_path: Path, **overrides) -> SimpleNamespace:
    data_dir = tmp_path / "data"
    values = dict(
        app_name="ai-canvas",
        log_level="INFO",
        gemini_api_key=None,
        gemini_image_model="gemini-test-image",
        llm_api_key=None,
        llm_base_url="https://llm.test/v1",
        llm_models=["m1"],
        sd_endpoint="http://sd.test:7860/sdapi/v1/txt2img",
        sd_checkpoint="dreamshaper_8",
        sd_steps=30,
        sd_cfg_scale=6.5,
        sd_negative_prompt="lowres",
        sd_timeout_seconds=60.0,
        data_dir=data_dir,
        images_db_path=data_dir / "db" / "images.sqlite3",
        batch_db_path=data_dir / "db" / "batches.sqlite3",
        saved_prompts_path=data_dir / "saved_prompts.json",
        export_dir=data_dir / "exports",
    )
    values.update(overrides)
    return SimpleNamespace(**values)


def test_state_without_keys_uses_offline_llm(tmp_path) -> None:
    settings = _settings(tmp_path)
    state = create_initial_state(settings=settings)

    assert isinstance(state.llm, OfflineLLMClient)
    assert state.gemini.configured is False
    assert state.local_sd.endpoint == "http://sd.test:7860/sdapi/v1/txt2img"
    assert (state.local.steps, state.local.cfg_scale) == (30, 6.5)
    assert state.local.negative_prompt == "lowres"
    assert state.local.checkpoint_model == "dreamshaper_8"
    assert settings.images_db_path.exists()
    assert state.saved_prompts == []


def test_state_with_llm_key_and_saved_prompts(tmp_path) -> None:
    settings = _settings(tmp_path, llm_api_key="sk-test", gemini_api_key="g-test")
    settings.saved_prompts_path.parent.mkdir(parents=True, exist_ok=True)
    settings.saved_prompts_path.write_text('["one", "two"]', "utf-8")

    state = create_initial_state(settings=settings)
    assert isinstance(state.llm, OpenAICompatLLMClient)
    assert state.gemini.configured is True
    assert state.saved_prompts == ["one", "two"]


def test_settings_from_env(monkeypatch, tmp_path) -> None:
    for name in ("AICANVAS_GEMINI_API_KEY", "GEMINI_API_KEY", "GOOGLE_API_KEY", "AICANVAS_LLM_API_KEY"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("GOOGLE_API_KEY", "g-key")
    monkeypatch.setenv("AICANVAS_DATA_DIR", str(tmp_path))
    monkeypatch.setenv("AICANVAS_SD_STEPS", "not-a-number")
    monkeypatch.setenv("AICANVAS_LLM_MODELS", "a, b  c")
    monkeypatch.delenv("AICANVAS_SD_ENDPOINT", raising=False)
    monkeypatch.delenv("AICANVAS_IMAGES_DB_PATH", raising=False)

    s = Settings.from_env()
    assert s.gemini_api_key == "g-key"
    assert s.llm_api_key == "g-key"
    assert s.sd_steps == 25
    assert s.llm_models == ["a", "b", "c"]
    assert s.sd_endpoint == DEFAULT_SD_ENDPOINT
    assert s.images_db_path == tmp_path / "images.sqlite3"
