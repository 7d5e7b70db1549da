# src/ai_canvas/batch/runner.py

from __future__ import annotations

"""
Batch runner.

A sequential loop over the pending items of one run:
- checks for a pause request before each item (in-process callback or a 'paused'
  status written to the store, e.g. by another process),
- generates one image per prompt via an injected coroutine,
- commits success/failure per item right away (the checkpoint),
- marks the run completed when nothing is pending anymore.

A failing prompt never stops the loop; it is recorded and the next prompt runs.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from ..core.ports import BatchRepo
from ..generation.base import friendly_error_message
from .models import BatchItem, BatchItemStatus, BatchProgress, BatchRunStatus

logger = logging.getLogger(__name__)

GenerateFn = Callable[[str], Awaitable[Any]]
ProgressFn = Callable[[BatchItem, BatchProgress], None]


class BatchNotFoundError(LookupError):
    pass


def parse_prompt_list(text: str) -> list[str]:
    """One prompt per line; lines are trimmed and blank lines dropped."""
    return [ln.strip() for ln in (text or "").splitlines() if ln.strip()]


async def run_batch(
        store: BatchRepo,
        generate: GenerateFn,
        run_id: int,
        *,
        should_pause: Callable[[], bool] | None = None,
        on_progress: ProgressFn | None = None,
) -> BatchProgress:
    """
    Process pending items of `run_id` in position order, one at a time.

    Returns the progress snapshot at the moment the loop stopped
    (completed, paused, or nothing left to do).

    If the coroutine is cancelled mid-item, that item stays pending and the
    run is marked paused, so a later resume re-runs it.
    """
    run = store.get_run(run_id)
    if run is None:
        raise BatchNotFoundError(f"batch run {run_id} does not exist")

    store.set_run_status(run_id, BatchRunStatus.RUNNING)
    logger.info("Batch %s started (%s)", run_id, store.progress(run_id))

    while True:
        if should_pause is not None and should_pause():
            store.set_run_status(run_id, BatchRunStatus.PAUSED)
            logger.info("Batch %s paused on request", run_id)
            break

        current = store.get_run(run_id)
        if current is not None and current.status == BatchRunStatus.PAUSED:
            logger.info("Batch %s paused externally", run_id)
            break

        item = store.next_pending_item(run_id)
        if item is None:
            store.set_run_status(run_id, BatchRunStatus.COMPLETED)
            logger.info("Batch %s completed", run_id)
            break

        try:
            image = await generate(item.prompt)
        except asyncio.CancelledError:
            store.set_run_status(run_id, BatchRunStatus.PAUSED)
            logger.info("Batch %s cancelled at item %s (left pending)", run_id, item.position)
            raise
        except Exception as e:
            message = friendly_error_message(e)
            logger.warning("Batch %s item %s failed: %s", run_id, item.position, message)
            store.mark_item_failed(item.id, message)
            item.status = BatchItemStatus.FAILED
            item.error = message
        else:
            image_id = getattr(image, "id", None)
            store.mark_item_success(item.id, image_id)
            item.status = BatchItemStatus.SUCCESS
            item.image_id = image_id
            logger.debug("Batch %s item %s ok image_id=%s", run_id, item.position, image_id)

        item.attempts += 1
        if on_progress is not None:
            on_progress(item, store.progress(run_id))

    return store.progress(run_id)


async def resume_batch(
        store: BatchRepo,
        generate: GenerateFn,
        run_id: int,
        *,
        should_pause: Callable[[], bool] | None = None,
        on_progress: ProgressFn | None = None,
) -> BatchProgress:
    """Continue a paused (or crashed) run from its next pending item."""
    run = store.get_run(run_id)
    if run is None:
        raise BatchNotFoundError(f"batch run {run_id} does not exist")
    if run.status == BatchRunStatus.COMPLETED:
        logger.info("Batch %s already completed, nothing to resume", run_id)
        return store.progress(run_id)
    return await run_batch(store, generate, run_id, should_pause=should_pause, on_progress=on_progress)


async def retry_failed(
        store: BatchRepo,
        generate: GenerateFn,
        run_id: int,
        *,
        should_pause: Callable[[], bool] | None = None,
        on_progress: ProgressFn | None = None,
) -> BatchProgress:
    """Reset failed items to pending and run again."""
    if store.get_run(run_id) is None:
        raise BatchNotFoundError(f"batch run {run_id} does not exist")
    n = store.reset_failed_items(run_id)
    logger.info("Batch %s: retrying %d failed prompts", run_id, n)
    return await run_batch(store, generate, run_id, should_pause=should_pause, on_progress=on_progress)


def request_pause(store: BatchRepo, run_id: int) -> bool:
    """Ask a (possibly other-process) runner to stop after its current item."""
    run = store.get_run(run_id)
    if run is None or run.status == BatchRunStatus.COMPLETED:
        return False
    store.set_run_status(run_id, BatchRunStatus.PAUSED)
    return True
