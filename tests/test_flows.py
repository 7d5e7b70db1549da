# tests/test_flows.py

from __future__ import annotations

import pytest

from ai_canvas.batch.api import create_batch, default_run_id, retry_run, start_or_resume, summarize_run
from ai_canvas.batch.models import BatchBackend, BatchRunStatus
from ai_canvas.generation.base import GenerationError
from ai_canvas.generation.flows import generate_local, generate_remote
from ai_canvas.images.models import MODEL_GEMINI, MODEL_LOCAL_SD


@pytest.mark.asyncio
async def test_generate_remote_stores_image(state) -> None:
    img = await generate_remote(state, "  a red fox  ")

    assert img.id is not None
    assert state.gemini.prompts == ["a red fox"]
    stored = state.images.get_image(img.id)
    assert stored.prompt == "a red fox"
    assert stored.refined_prompt == ""
    assert stored.model == MODEL_GEMINI
    assert stored.name == "a red fox..."
    assert str(stored.resolution) == "16x12"
    assert stored.mime_type == "image/png"


@pytest.mark.asyncio
async def test_generate_remote_keeps_original_when_refined(state) -> None:
    img = await generate_remote(state, "a majestic red fox at golden hour", original_prompt="fox")

    stored = state.images.get_image(img.id)
    assert state.gemini.prompts == ["a majestic red fox at golden hour"]
    assert stored.prompt == "fox"
    assert stored.refined_prompt == "a majestic red fox at golden hour"
    assert stored.effective_prompt == "a majestic red fox at golden hour"


@pytest.mark.asyncio
async def test_generate_remote_failure_stores_nothing(state) -> None:
    state.gemini.fail_on = {"nope"}
    with pytest.raises(GenerationError):
        await generate_remote(state, "nope")
    with pytest.raises(ValueError):
        await generate_remote(state, "   ")
    assert state.images.count_images() == 0


@pytest.mark.asyncio
async def test_generate_local_records_checkpoint(state) -> None:
    state.local.checkpoint_model = "dreamshaper_8"
    state.local.steps = 40
    img = await generate_local(state, state.local.params_for("a castle"))

    stored = state.images.get_image(img.id)
    assert stored.model == MODEL_LOCAL_SD
    assert stored.checkpoint_model == "dreamshaper_8"
    assert str(stored.resolution) == "512x512"
    assert state.local_sd.calls[0].steps == 40


@pytest.mark.asyncio
async def test_local_batch_uses_params_frozen_at_creation(state) -> None:
    state.local.steps = 12
    run_id = create_batch(state, ["a", "b"], backend=BatchBackend.LOCAL)

    # Session changes after creation must not leak into the run.
    state.local.steps = 80
    progress = await start_or_resume(state, run_id)

    assert progress.success == 2
    assert [c.steps for c in state.local_sd.calls] == [12, 12]
    assert state.images.count_images() == 2


def test_create_batch_rejects_invalid_local_params(state) -> None:
    state.local.cfg_scale = 33.0
    with pytest.raises(ValueError):
        create_batch(state, ["a"], backend=BatchBackend.LOCAL)
    assert state.batches.count_runs() == 0


@pytest.mark.asyncio
async def test_gemini_batch_pause_resume_and_retry(state) -> None:
    state.gemini.fail_on = {"broken"}
    run_id = create_batch(state, ["one", "broken", "three"], backend=BatchBackend.GEMINI)

    # The pause flag is cleared on start, so set it from the progress callback.
    def pause_after_first(item, progress) -> None:
        state.pause_event.set()

    progress = await start_or_resume(state, run_id, on_progress=pause_after_first)
    assert progress.done == 1
    assert state.batches.get_run(run_id).status == BatchRunStatus.PAUSED
    assert default_run_id(state, "resume") == run_id
    assert default_run_id(state, "retry") is None

    progress = await start_or_resume(state, run_id)
    assert (progress.success, progress.failed) == (2, 1)
    assert "error: boom: broken" in summarize_run(state, run_id)
    assert default_run_id(state, "resume") is None
    assert default_run_id(state, "retry") == run_id

    state.gemini.fail_on.clear()
    progress = await retry_run(state, run_id)
    assert (progress.success, progress.failed) == (3, 0)
    assert default_run_id(state, "retry") is None
    assert default_run_id(state, "status") == run_id
