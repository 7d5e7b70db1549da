# src/ai_canvas/batch/store.py

from __future__ import annotations

import contextlib
import json
import logging
import sqlite3
import time
from collections.abc import Iterable
from pathlib import Path
from typing import Any

from .models import (
    BatchBackend,
    BatchItem,
    BatchItemStatus,
    BatchProgress,
    BatchRun,
    BatchRunStatus,
)

logger = logging.getLogger(__name__)


class BatchStore:
    """
    SQLite checkpoint store for batch runs.

    Every per-prompt outcome is committed immediately, so a run survives restarts:
    whatever is still 'pending' is what a resume will process.

    Thread-safety:
    - each method opens its own SQLite connection
    """

    def __init__(self, db_path: str | Path = "batches.sqlite3") -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()
        logger.info("BatchStore ready db=%s runs=%s", self._db_path, self.count_runs())

    def close(self) -> None:
        """Compatibility hook for shutdown (no persistent connections to close)."""
        return

    # ---- low-level helpers ----

    def _get_conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self._db_path), timeout=30.0)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys=ON")
        with contextlib.suppress(sqlite3.DatabaseError):
            conn.execute("PRAGMA journal_mode=WAL")
        return conn

    def _ensure_schema(self) -> None:
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS batch_runs (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    status TEXT NOT NULL DEFAULT 'running',
                    created_at REAL NOT NULL,
                    updated_at REAL NOT NULL,
                    backend TEXT NOT NULL DEFAULT 'local',
                    params TEXT NOT NULL DEFAULT '{}'
                )
                """
            )
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS batch_items (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    run_id INTEGER NOT NULL REFERENCES batch_runs(id) ON DELETE CASCADE,
                    position INTEGER NOT NULL,
                    prompt TEXT NOT NULL,
                    status TEXT NOT NULL DEFAULT 'pending',
                    error TEXT,
                    image_id INTEGER,
                    attempts INTEGER NOT NULL DEFAULT 0,
                    updated_at REAL NOT NULL
                )
                """
            )

            cur.execute("PRAGMA table_info(batch_items)")
            cols = {row["name"] for row in cur.fetchall()}
            if "attempts" not in cols:
                cur.execute("ALTER TABLE batch_items ADD COLUMN attempts INTEGER NOT NULL DEFAULT 0")
                logger.info("BatchStore migration: added column attempts")

            cur.execute("CREATE INDEX IF NOT EXISTS idx_batch_items_run ON batch_items(run_id, status, position)")
            cur.execute("CREATE INDEX IF NOT EXISTS idx_batch_runs_status ON batch_runs(status)")
            conn.commit()
        finally:
            conn.close()

    @staticmethod
    def _params_to_str(params: dict[str, Any] | None) -> str:
        return json.dumps(params or {}, ensure_ascii=False)

    @staticmethod
    def _str_to_params(s: str | None) -> dict[str, Any]:
        if not s:
            return {}
        try:
            val = json.loads(s)
        except json.JSONDecodeError:
            return {}
        return val if isinstance(val, dict) else {}

    def _row_to_run(self, row: sqlite3.Row) -> BatchRun:
        return BatchRun(
            id=int(row["id"]),
            status=BatchRunStatus.from_db(row["status"]),
            created_at=float(row["created_at"] or 0.0),
            updated_at=float(row["updated_at"] or 0.0),
            backend=BatchBackend(row["backend"] or BatchBackend.LOCAL),
            params=self._str_to_params(row["params"]),
            total=int(row["total"] or 0),
        )

    @staticmethod
    def _row_to_item(row: sqlite3.Row) -> BatchItem:
        return BatchItem(
            id=int(row["id"]),
            run_id=int(row["run_id"]),
            position=int(row["position"]),
            prompt=str(row["prompt"]),
            status=BatchItemStatus.from_db(row["status"]),
            updated_at=float(row["updated_at"] or 0.0),
            error=row["error"],
            image_id=int(row["image_id"]) if row["image_id"] is not None else None,
            attempts=int(row["attempts"] or 0),
        )

    _RUN_SELECT = """
        SELECT r.*, (SELECT COUNT(*) FROM batch_items i WHERE i.run_id = r.id) AS total
        FROM batch_runs r
    """

    # ---- public API ----

    def count_runs(self) -> int:
        conn = self._get_conn()
        try:
            (n,) = conn.execute("SELECT COUNT(*) FROM batch_runs").fetchone()
            return int(n)
        finally:
            conn.close()

    def create_run(
        self,
        prompts: Iterable[str],
        *,
        backend: BatchBackend = BatchBackend.LOCAL,
        params: dict[str, Any] | None = None,
    ) -> int:
        clean = [p.strip() for p in prompts if p and p.strip()]
        if not clean:
            raise ValueError("at least one prompt is required")

        now = time.time()
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute(
                "INSERT INTO batch_runs(status, created_at, updated_at, backend, params) VALUES (?, ?, ?, ?, ?)",
                (BatchRunStatus.RUNNING.value, now, now, BatchBackend(backend).value, self._params_to_str(params)),
            )
            rowid = cur.lastrowid
            if rowid is None:
                raise RuntimeError("SQLite did not return lastrowid for batch_runs insert")
            run_id = int(rowid)
            cur.executemany(
                "INSERT INTO batch_items(run_id, position, prompt, status, updated_at) VALUES (?, ?, ?, 'pending', ?)",
                [(run_id, i, p, now) for i, p in enumerate(clean)],
            )
            conn.commit()
        finally:
            conn.close()

        logger.info("Batch run created id=%s backend=%s prompts=%d", run_id, backend, len(clean))
        return run_id

    def get_run(self, run_id: int) -> BatchRun | None:
        conn = self._get_conn()
        try:
            row = conn.execute(self._RUN_SELECT + " WHERE r.id = ?", (int(run_id),)).fetchone()
            return self._row_to_run(row) if row else None
        finally:
            conn.close()

    def list_runs(self, limit: int = 20) -> list[BatchRun]:
        conn = self._get_conn()
        try:
            rows = conn.execute(
                self._RUN_SELECT + " ORDER BY r.created_at DESC, r.id DESC LIMIT ?",
                (int(limit),),
            ).fetchall()
            return [self._row_to_run(r) for r in rows]
        finally:
            conn.close()

    def latest_unfinished_run(self) -> BatchRun | None:
        """Most recent run that is paused or was left 'running' by a previous process."""
        conn = self._get_conn()
        try:
            row = conn.execute(
                self._RUN_SELECT + " WHERE r.status != 'completed' ORDER BY r.created_at DESC, r.id DESC LIMIT 1"
            ).fetchone()
            return self._row_to_run(row) if row else None
        finally:
            conn.close()

    def latest_run_with_failures(self) -> BatchRun | None:
        conn = self._get_conn()
        try:
            row = conn.execute(
                self._RUN_SELECT
                + " WHERE EXISTS (SELECT 1 FROM batch_items f WHERE f.run_id = r.id AND f.status = 'failed')"
                + " ORDER BY r.created_at DESC, r.id DESC LIMIT 1"
            ).fetchone()
            return self._row_to_run(row) if row else None
        finally:
            conn.close()

    def list_items(self, run_id: int) -> list[BatchItem]:
        conn = self._get_conn()
        try:
            rows = conn.execute(
                "SELECT * FROM batch_items WHERE run_id = ? ORDER BY position ASC",
                (int(run_id),),
            ).fetchall()
            return [self._row_to_item(r) for r in rows]
        finally:
            conn.close()

    def next_pending_item(self, run_id: int) -> BatchItem | None:
        conn = self._get_conn()
        try:
            row = conn.execute(
                """
                SELECT * FROM batch_items
                WHERE run_id = ? AND status = 'pending'
                ORDER BY position ASC
                LIMIT 1
                """,
                (int(run_id),),
            ).fetchone()
            return self._row_to_item(row) if row else None
        finally:
            conn.close()

    def _finish_item(self, item_id: int, status: BatchItemStatus, *, error: str | None, image_id: int | None) -> None:
        now = time.time()
        conn = self._get_conn()
        try:
            conn.execute(
                """
                UPDATE batch_items
                SET status = ?, error = ?, image_id = ?, attempts = attempts + 1, updated_at = ?
                WHERE id = ?
                """,
                (status.value, error, image_id, now, int(item_id)),
            )
            conn.execute(
                "UPDATE batch_runs SET updated_at = ? WHERE id = (SELECT run_id FROM batch_items WHERE id = ?)",
                (now, int(item_id)),
            )
            conn.commit()
        finally:
            conn.close()

    def mark_item_success(self, item_id: int, image_id: int | None) -> None:
        self._finish_item(item_id, BatchItemStatus.SUCCESS, error=None, image_id=image_id)

    def mark_item_failed(self, item_id: int, error: str) -> None:
        self._finish_item(item_id, BatchItemStatus.FAILED, error=(error or "Unknown error."), image_id=None)

    def set_run_status(self, run_id: int, status: BatchRunStatus) -> None:
        conn = self._get_conn()
        try:
            conn.execute(
                "UPDATE batch_runs SET status = ?, updated_at = ? WHERE id = ?",
                (BatchRunStatus(status).value, time.time(), int(run_id)),
            )
            conn.commit()
        finally:
            conn.close()

    def reset_failed_items(self, run_id: int) -> int:
        """failed -> pending (error cleared). Returns how many items were reset."""
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute(
                """
                UPDATE batch_items
                SET status = 'pending', error = NULL, updated_at = ?
                WHERE run_id = ? AND status = 'failed'
                """,
                (time.time(), int(run_id)),
            )
            conn.commit()
            return int(cur.rowcount)
        finally:
            conn.close()

    def progress(self, run_id: int) -> BatchProgress:
        conn = self._get_conn()
        try:
            rows = conn.execute(
                "SELECT status, COUNT(*) AS n FROM batch_items WHERE run_id = ? GROUP BY status",
                (int(run_id),),
            ).fetchall()
        finally:
            conn.close()

        counts = {str(r["status"]): int(r["n"]) for r in rows}
        return BatchProgress(
            total=sum(counts.values()),
            pending=counts.get(BatchItemStatus.PENDING.value, 0),
            success=counts.get(BatchItemStatus.SUCCESS.value, 0),
            failed=counts.get(BatchItemStatus.FAILED.value, 0),
        )

    def delete_run(self, run_id: int) -> bool:
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute("DELETE FROM batch_runs WHERE id = ?", (int(run_id),))
            conn.commit()
            return cur.rowcount == 1
        finally:
            conn.close()
