# src/ai_canvas/batch/api.py

from __future__ import annotations

import logging

from ..core.state import AppState, LocalSession
from ..generation.flows import generate_local, generate_remote
from ..images.models import AIImage
from .models import BatchBackend, BatchProgress, BatchRun, BatchRunStatus
from .runner import BatchNotFoundError, GenerateFn, ProgressFn, resume_batch, retry_failed

logger = logging.getLogger(__name__)


def generator_for_run(state: AppState, run: BatchRun) -> GenerateFn:
    """
    Bind a run's stored backend + parameters to a prompt -> image coroutine.

    Parameters are frozen at run creation, so a resumed run generates exactly like
    it started even if the console session changed its settings meanwhile.
    """
    if run.backend == BatchBackend.GEMINI:
        async def _remote(prompt: str) -> AIImage:
            return await generate_remote(state, prompt)

        return _remote

    session = LocalSession.from_dict(run.params)

    async def _local(prompt: str) -> AIImage:
        return await generate_local(state, session.params_for(prompt))

    return _local


def create_batch(state: AppState, prompts: list[str], *, backend: BatchBackend = BatchBackend.LOCAL) -> int:
    params = state.local.to_dict() if backend == BatchBackend.LOCAL else {}
    if backend == BatchBackend.LOCAL:
        # Fail early on bad sampling parameters instead of failing every prompt.
        state.local.params_for("validate").validate()
    return state.batches.create_run(prompts, backend=backend, params=params)


def _get_run(state: AppState, run_id: int) -> BatchRun:
    run = state.batches.get_run(run_id)
    if run is None:
        raise BatchNotFoundError(f"batch run {run_id} does not exist")
    return run


async def start_or_resume(state: AppState, run_id: int, *, on_progress: ProgressFn | None = None) -> BatchProgress:
    run = _get_run(state, run_id)
    state.pause_event.clear()
    return await resume_batch(
        state.batches,
        generator_for_run(state, run),
        run_id,
        should_pause=state.pause_event.is_set,
        on_progress=on_progress,
    )


async def retry_run(state: AppState, run_id: int, *, on_progress: ProgressFn | None = None) -> BatchProgress:
    run = _get_run(state, run_id)
    state.pause_event.clear()
    return await retry_failed(
        state.batches,
        generator_for_run(state, run),
        run_id,
        should_pause=state.pause_event.is_set,
        on_progress=on_progress,
    )


def summarize_run(state: AppState, run_id: int, *, show_items: bool = True) -> str:
    run = _get_run(state, run_id)
    progress = state.batches.progress(run_id)
    lines = [f"Batch #{run.id} [{run.status.value}] backend={run.backend.value}: {progress}"]
    if show_items:
        marks = {"pending": "…", "success": "✓", "failed": "✗"}
        for item in state.batches.list_items(run_id):
            line = f"  {marks.get(item.status.value, '?')} {item.position + 1}. {item.prompt[:70]}"
            if item.image_id is not None:
                line += f" -> image #{item.image_id}"
            lines.append(line)
            if item.error:
                lines.append(f"      error: {item.error}")
    return "\n".join(lines)


def default_run_id(state: AppState, action: str) -> int | None:
    """
    The run a /batch subcommand targets when no id is given.

    - retry  -> latest run that has failed prompts (usually a completed one)
    - status -> latest unfinished run, else the latest run
    - others -> latest unfinished run
    """
    if action == "retry":
        run = state.batches.latest_run_with_failures()
        return run.id if run is not None else None

    run = state.batches.latest_unfinished_run()
    if run is not None and run.status != BatchRunStatus.COMPLETED:
        return run.id
    if action == "status":
        latest = state.batches.list_runs(limit=1)
        return latest[0].id if latest else None
    return None
