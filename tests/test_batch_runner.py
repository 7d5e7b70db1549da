# tests/test_batch_runner.py

from __future__ import annotations

import asyncio
from types import SimpleNamespace

import pytest

from ai_canvas.batch.models import BatchItemStatus, BatchRunStatus
from ai_canvas.batch.runner import (
    BatchNotFoundError,
    parse_prompt_list,
    request_pause,
    resume_batch,
    retry_failed,
    run_batch,
)
from ai_canvas.batch.store import BatchStore
from ai_canvas.generation.base import GenerationError


class FakeGenerator:
    """Prompt -> object with an `id`; prompts in `fail_on` raise."""

    def __init__(self, *, fail_on: set[str] | None = None) -> None:
        self.fail_on = set(fail_on or ())
        self.calls: list[str] = []

    async def __call__(self, prompt: str):
        self.calls.append(prompt)
        if prompt in self.fail_on:
            raise GenerationError(f"cannot draw {prompt}")
        return SimpleNamespace(id=100 + len(self.calls))


def test_parse_prompt_list_drops_blank_lines() -> None:
    assert parse_prompt_list(" a \n\n  \nb\r\nc ") == ["a", "b", "c"]
    assert parse_prompt_list("") == []


@pytest.mark.asyncio
async def test_run_batch_processes_in_order_and_completes(tmp_path) -> None:
    store = BatchStore(tmp_path / "b.sqlite3")
    run_id = store.create_run(["one", "two", "three"])
    gen = FakeGenerator()
    seen: list[tuple[str, int]] = []

    progress = await run_batch(store, gen, run_id, on_progress=lambda item, p: seen.append((item.prompt, p.done)))

    assert gen.calls == ["one", "two", "three"]
    assert seen == [("one", 1), ("two", 2), ("three", 3)]
    assert progress.success == 3
    assert store.get_run(run_id).status == BatchRunStatus.COMPLETED
    assert [i.image_id for i in store.list_items(run_id)] == [101, 102, 103]


@pytest.mark.asyncio
async def test_failure_is_recorded_and_loop_continues(tmp_path) -> None:
    store = BatchStore(tmp_path / "b.sqlite3")
    run_id = store.create_run(["ok-1", "bad", "ok-2"])
    gen = FakeGenerator(fail_on={"bad"})

    progress = await run_batch(store, gen, run_id)

    assert gen.calls == ["ok-1", "bad", "ok-2"]
    assert (progress.success, progress.failed, progress.pending) == (2, 1, 0)
    items = store.list_items(run_id)
    assert items[1].status == BatchItemStatus.FAILED
    assert items[1].error == "cannot draw bad"
    assert store.get_run(run_id).status == BatchRunStatus.COMPLETED


@pytest.mark.asyncio
async def test_pause_then_resume_continues_from_next_pending(tmp_path) -> None:
    store = BatchStore(tmp_path / "b.sqlite3")
    run_id = store.create_run(["a", "b", "c", "d"])
    gen = FakeGenerator()

    # Pause requested after two items.
    progress = await run_batch(store, gen, run_id, should_pause=lambda: len(gen.calls) >= 2)
    assert gen.calls == ["a", "b"]
    assert progress.pending == 2
    assert store.get_run(run_id).status == BatchRunStatus.PAUSED

    # A fresh store object simulates a restart.
    reopened = BatchStore(tmp_path / "b.sqlite3")
    progress = await run_batch(reopened, gen, run_id)
    assert gen.calls == ["a", "b", "c", "d"]
    assert progress.success == 4
    assert reopened.get_run(run_id).status == BatchRunStatus.COMPLETED


@pytest.mark.asyncio
async def test_external_pause_request_stops_after_current_item(tmp_path) -> None:
    store = BatchStore(tmp_path / "b.sqlite3")
    run_id = store.create_run(["a", "b", "c"])

    async def generate(prompt: str):
        if prompt == "a":
            # Another process writes the pause while "a" is in flight.
            assert request_pause(store, run_id) is True
        return SimpleNamespace(id=1)

    progress = await run_batch(store, generate, run_id)
    assert (progress.success, progress.pending) == (1, 2)
    assert store.get_run(run_id).status == BatchRunStatus.PAUSED


def test_request_pause_refuses_completed_or_unknown_runs(tmp_path) -> None:
    store = BatchStore(tmp_path / "b.sqlite3")
    run_id = store.create_run(["a"])
    store.set_run_status(run_id, BatchRunStatus.COMPLETED)
    assert request_pause(store, run_id) is False
    assert request_pause(store, 999) is False


@pytest.mark.asyncio
async def test_cancellation_leaves_item_pending_and_run_paused(tmp_path) -> None:
    store = BatchStore(tmp_path / "b.sqlite3")
    run_id = store.create_run(["slow", "next"])
    started = asyncio.Event()

    async def generate(prompt: str):
        started.set()
        await asyncio.sleep(10)
        return SimpleNamespace(id=1)

    task = asyncio.create_task(run_batch(store, generate, run_id))
    await started.wait()
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert store.get_run(run_id).status == BatchRunStatus.PAUSED
    assert [i.status for i in store.list_items(run_id)] == [BatchItemStatus.PENDING, BatchItemStatus.PENDING]


@pytest.mark.asyncio
async def test_retry_failed_reruns_only_failed_items(tmp_path) -> None:
    store = BatchStore(tmp_path / "b.sqlite3")
    run_id = store.create_run(["ok", "flaky", "ok-too"])
    gen = FakeGenerator(fail_on={"flaky"})
    await run_batch(store, gen, run_id)

    gen.fail_on.clear()
    gen.calls.clear()
    progress = await retry_failed(store, gen, run_id)

    assert gen.calls == ["flaky"]
    assert (progress.success, progress.failed) == (3, 0)
    flaky = store.list_items(run_id)[1]
    assert flaky.status == BatchItemStatus.SUCCESS
    assert flaky.attempts == 2


@pytest.mark.asyncio
async def test_unknown_run_raises(tmp_path) -> None:
    store = BatchStore(tmp_path / "b.sqlite3")
    with pytest.raises(BatchNotFoundError):
        await run_batch(store, FakeGenerator(), 123)
    with pytest.raises(BatchNotFoundError):
        await retry_failed(store, FakeGenerator(), 123)


@pytest.mark.asyncio
async def test_resume_batch_skips_completed_runs(tmp_path) -> None:
    store = BatchStore(tmp_path / "b.sqlite3")
    run_id = store.create_run(["a", "b"])
    gen = FakeGenerator()

    await resume_batch(store, gen, run_id, should_pause=lambda: len(gen.calls) >= 1)
    assert store.get_run(run_id).status == BatchRunStatus.PAUSED

    progress = await resume_batch(store, gen, run_id)
    assert progress.success == 2
    assert gen.calls == ["a", "b"]

    progress = await resume_batch(store, gen, run_id)
    assert gen.calls == ["a", "b"]
    assert store.get_run(run_id).status == BatchRunStatus.COMPLETED

    with pytest.raises(BatchNotFoundError):
        await resume_batch(store, gen, 999)
