# src/ai_canvas/images/store.py

from __future__ import annotations

import contextlib
import json
import logging
import sqlite3
from collections.abc import Iterable
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from .models import DEFAULT_MIME_TYPE, AIImage, Resolution

logger = logging.getLogger(__name__)

_UNSET: Any = object()


def _tag_key(tag: str) -> str:
    return tag.strip().lower()


def _lower(value: Any) -> Any:
    # sqlite's lower() only folds ASCII.
    return value.lower() if isinstance(value, str) else value


def _clean_tags(tags: Iterable[str] | None) -> list[str]:
    """Trim, drop blanks, dedupe case-insensitively while keeping first-seen order."""
    out: list[str] = []
    seen: set[str] = set()
    for t in tags or []:
        s = str(t).strip()
        if s and _tag_key(s) not in seen:
            seen.add(_tag_key(s))
            out.append(s)
    return out


def _dt_to_db(dt: datetime) -> float:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt.timestamp()


def _db_to_dt(ts: float | None) -> datetime:
    return datetime.fromtimestamp(float(ts or 0.0), tz=UTC)


class ImageStore:
    """
    SQLite image history store.

    Layout:
    - images: one row per generated image (metadata + blob)
    - image_tags: multi-entry tag index (image_id, tag)

    The schema is migration-safe:
    - create tables if missing
    - use PRAGMA table_info to detect missing columns
    - add columns with ALTER TABLE only when needed

    Thread-safety:
    - each method opens its own SQLite connection
    """

    def __init__(self, db_path: str | Path = "images.sqlite3") -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()
        logger.info("ImageStore ready db=%s total=%s", self._db_path, self.count_images())

    @property
    def db_path(self) -> Path:
        return self._db_path

    def close(self) -> None:
        """Compatibility hook for shutdown (no persistent connections to close)."""
        return

    # ---- low-level helpers ----

    def _get_conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self._db_path), timeout=30.0)
        conn.row_factory = sqlite3.Row
        self._configure_conn(conn)
        return conn

    @staticmethod
    def _configure_conn(conn: sqlite3.Connection) -> None:
        conn.execute("PRAGMA foreign_keys=ON")
        conn.create_function("py_lower", 1, _lower, deterministic=True)
        with contextlib.suppress(sqlite3.DatabaseError):
            conn.execute("PRAGMA journal_mode=WAL")

    def _ensure_schema(self) -> None:
        conn = self._get_conn()
        try:
            cur = conn.cursor()

            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS images (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    name TEXT NOT NULL,
                    prompt TEXT NOT NULL,
                    refined_prompt TEXT NOT NULL DEFAULT '',
                    translation TEXT,
                    model TEXT NOT NULL,
                    checkpoint_model TEXT,
                    width INTEGER NOT NULL DEFAULT 0,
                    height INTEGER NOT NULL DEFAULT 0,
                    size INTEGER NOT NULL DEFAULT 0,
                    is_favorite INTEGER NOT NULL DEFAULT 0,
                    tags TEXT NOT NULL DEFAULT '[]',
                    mime_type TEXT NOT NULL DEFAULT 'image/png',
                    data BLOB NOT NULL,
                    created_at REAL NOT NULL
                )
                """
            )

            cur.execute("PRAGMA table_info(images)")
            cols = {row["name"] for row in cur.fetchall()}

            def add_col(name: str, decl: str) -> None:
                if name in cols:
                    return
                cur.execute(f"ALTER TABLE images ADD COLUMN {name} {decl}")
                logger.info("ImageStore migration: added column %s", name)

            add_col("refined_prompt", "TEXT NOT NULL DEFAULT ''")
            add_col("translation", "TEXT")
            add_col("checkpoint_model", "TEXT")
            add_col("mime_type", "TEXT NOT NULL DEFAULT 'image/png'")
            add_col("tags", "TEXT NOT NULL DEFAULT '[]'")

            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS image_tags (
                    image_id INTEGER NOT NULL REFERENCES images(id) ON DELETE CASCADE,
                    tag TEXT NOT NULL,
                    tag_key TEXT NOT NULL DEFAULT '',
                    PRIMARY KEY (image_id, tag_key)
                )
                """
            )

            cur.execute("CREATE INDEX IF NOT EXISTS idx_images_name ON images(name)")
            cur.execute("CREATE INDEX IF NOT EXISTS idx_images_prompt ON images(prompt)")
            cur.execute("CREATE INDEX IF NOT EXISTS idx_images_favorite ON images(is_favorite)")
            cur.execute("CREATE INDEX IF NOT EXISTS idx_images_created ON images(created_at)")
            cur.execute("CREATE INDEX IF NOT EXISTS idx_images_checkpoint ON images(checkpoint_model)")
            cur.execute("PRAGMA table_info(image_tags)")
            if "tag_key" not in {row["name"] for row in cur.fetchall()}:
                cur.execute("ALTER TABLE image_tags ADD COLUMN tag_key TEXT NOT NULL DEFAULT ''")
                cur.execute("UPDATE image_tags SET tag_key = py_lower(trim(tag))")
                logger.info("ImageStore migration: added column image_tags.tag_key")

            cur.execute("DROP INDEX IF EXISTS idx_image_tags_tag")
            cur.execute("CREATE INDEX IF NOT EXISTS idx_image_tags_key ON image_tags(tag_key)")

            conn.commit()
        finally:
            conn.close()

    @staticmethod
    def _tags_to_str(tags: list[str]) -> str:
        return json.dumps(tags, ensure_ascii=False)

    @staticmethod
    def _str_to_tags(s: str | None) -> list[str]:
        if not s:
            return []
        try:
            val = json.loads(s)
        except json.JSONDecodeError:
            logger.warning("Corrupt tags column value: %r", s)
            return []
        return [str(x) for x in val] if isinstance(val, list) else []

    def _row_to_image(self, row: sqlite3.Row) -> AIImage:
        return AIImage(
            id=int(row["id"]),
            name=str(row["name"] or ""),
            prompt=str(row["prompt"] or ""),
            refined_prompt=str(row["refined_prompt"] or ""),
            translation=row["translation"],
            model=str(row["model"] or ""),
            checkpoint_model=row["checkpoint_model"],
            resolution=Resolution(width=int(row["width"] or 0), height=int(row["height"] or 0)),
            size=int(row["size"] or 0),
            is_favorite=bool(row["is_favorite"]),
            tags=self._str_to_tags(row["tags"]),
            mime_type=str(row["mime_type"] or DEFAULT_MIME_TYPE),
            data=bytes(row["data"]),
            created_at=_db_to_dt(row["created_at"]),
        )

    @staticmethod
    def _write_tags(cur: sqlite3.Cursor, image_id: int, tags: list[str]) -> None:
        cur.execute("DELETE FROM image_tags WHERE image_id = ?", (int(image_id),))
        cur.executemany(
            "INSERT INTO image_tags(image_id, tag, tag_key) VALUES (?, ?, ?)",
            [(int(image_id), t, _tag_key(t)) for t in tags],
        )

    def _insert(self, cur: sqlite3.Cursor, image: AIImage) -> int:
        if not image.data:
            raise ValueError("image data is required")
        if not (image.prompt or "").strip():
            raise ValueError("prompt is required")

        tags = _clean_tags(image.tags)
        cur.execute(
            """
            INSERT INTO images(
                name, prompt, refined_prompt, translation,
                model, checkpoint_model, width, height, size,
                is_favorite, tags, mime_type, data, created_at
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                image.name,
                image.prompt,
                image.refined_prompt or "",
                image.translation,
                image.model,
                image.checkpoint_model or None,
                int(image.resolution.width),
                int(image.resolution.height),
                int(image.size or len(image.data)),
                1 if image.is_favorite else 0,
                self._tags_to_str(tags),
                image.mime_type or DEFAULT_MIME_TYPE,
                sqlite3.Binary(image.data),
                _dt_to_db(image.created_at),
            ),
        )
        rowid = cur.lastrowid
        if rowid is None:
            raise RuntimeError("SQLite did not return lastrowid for images insert")
        image_id = int(rowid)
        self._write_tags(cur, image_id, tags)
        return image_id

    # ---- public API ----

    def count_images(self) -> int:
        conn = self._get_conn()
        try:
            (n,) = conn.execute("SELECT COUNT(*) FROM images").fetchone()
            return int(n)
        finally:
            conn.close()

    def add_image(self, image: AIImage) -> int:
        """Insert a new record and return its id (any id already on `image` is ignored)."""
        conn = self._get_conn()
        try:
            image_id = self._insert(conn.cursor(), image)
            conn.commit()
        finally:
            conn.close()
        logger.debug("Image added id=%s model=%s size=%s", image_id, image.model, image.size)
        return image_id

    def bulk_add(self, images: Iterable[AIImage]) -> list[int]:
        """Insert many records in one transaction: either all are stored or none."""
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            ids = [self._insert(cur, img) for img in images]
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()
        logger.info("Bulk-added %d images", len(ids))
        return ids

    def get_image(self, image_id: int) -> AIImage | None:
        conn = self._get_conn()
        try:
            row = conn.execute("SELECT * FROM images WHERE id = ?", (int(image_id),)).fetchone()
            return self._row_to_image(row) if row else None
        finally:
            conn.close()

    def update_image(
        self,
        image_id: int,
        *,
        name: str | None = None,
        tags: list[str] | None = None,
        is_favorite: bool | None = None,
        refined_prompt: str | None = None,
        translation: str | None = _UNSET,
    ) -> bool:
        """Patch selected fields. Returns False when the record does not exist."""
        fields: list[str] = []
        params: list[Any] = []

        if name is not None:
            fields.append("name = ?")
            params.append(name)

        clean_tags: list[str] | None = None
        if tags is not None:
            clean_tags = _clean_tags(tags)
            fields.append("tags = ?")
            params.append(self._tags_to_str(clean_tags))

        if is_favorite is not None:
            fields.append("is_favorite = ?")
            params.append(1 if is_favorite else 0)

        if refined_prompt is not None:
            fields.append("refined_prompt = ?")
            params.append(refined_prompt)

        if translation is not _UNSET:
            fields.append("translation = ?")
            params.append(translation)

        if not fields:
            return self.get_image(image_id) is not None

        params.append(int(image_id))
        sql = f"UPDATE images SET {', '.join(fields)} WHERE id = ?"

        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute(sql, params)
            found = cur.rowcount == 1
            if found and clean_tags is not None:
                self._write_tags(cur, image_id, clean_tags)
            conn.commit()
            return found
        finally:
            conn.close()

    def delete_image(self, image_id: int) -> bool:
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute("DELETE FROM images WHERE id = ?", (int(image_id),))
            conn.commit()
            deleted = cur.rowcount == 1
        finally:
            conn.close()
        if deleted:
            logger.info("Image deleted id=%s", image_id)
        return deleted

    def toggle_favorite(self, image_id: int) -> bool | None:
        """Flip the favorite flag. Returns the new value, or None if the image is missing."""
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute(
                "UPDATE images SET is_favorite = CASE is_favorite WHEN 0 THEN 1 ELSE 0 END WHERE id = ?",
                (int(image_id),),
            )
            if cur.rowcount != 1:
                return None
            (fav,) = cur.execute("SELECT is_favorite FROM images WHERE id = ?", (int(image_id),)).fetchone()
            conn.commit()
            return bool(fav)
        finally:
            conn.close()

    def add_tag(self, image_id: int, tag: str) -> bool:
        """Append a tag. Blank or already-present tags (any case) are a no-op (returns False)."""
        t = (tag or "").strip()
        if not t:
            return False
        img = self.get_image(image_id)
        if img is None or _tag_key(t) in {_tag_key(x) for x in img.tags}:
            return False
        return self.update_image(image_id, tags=[*img.tags, t])

    def remove_tag(self, image_id: int, tag: str) -> bool:
        key = _tag_key(tag or "")
        img = self.get_image(image_id)
        if not key or img is None:
            return False
        kept = [x for x in img.tags if _tag_key(x) != key]
        if len(kept) == len(img.tags):
            return False
        return self.update_image(image_id, tags=kept)

    def list_images(
        self,
        *,
        search: str = "",
        favorites_only: bool = False,
        tag: str | None = None,
        checkpoint_model: str | None = None,
        limit: int | None = None,
    ) -> list[AIImage]:
        """
        History view, newest first.

        Search semantics:
        - blank search -> everything
        - otherwise a record matches when its name contains the term (case-insensitive)
          OR one of its tags equals the term (case-insensitive, exact)
        - case folding is Unicode-aware (É matches é)
        """
        where: list[str] = []
        params: list[Any] = []

        term = (search or "").strip().lower()
        if term:
            where.append(
                "(instr(py_lower(i.name), ?) > 0 OR EXISTS ("
                "SELECT 1 FROM image_tags t WHERE t.image_id = i.id AND t.tag_key = ?))"
            )
            params.extend([term, term])

        if favorites_only:
            where.append("i.is_favorite = 1")

        if tag:
            where.append(
                "EXISTS (SELECT 1 FROM image_tags t2 WHERE t2.image_id = i.id AND t2.tag_key = ?)"
            )
            params.append(_tag_key(tag))

        if checkpoint_model:
            where.append("i.checkpoint_model = ?")
            params.append(checkpoint_model)

        sql = "SELECT i.* FROM images i"
        if where:
            sql += " WHERE " + " AND ".join(where)
        sql += " ORDER BY i.created_at DESC, i.id DESC"
        if limit is not None:
            sql += " LIMIT ?"
            params.append(int(limit))

        conn = self._get_conn()
        try:
            rows = conn.execute(sql, params).fetchall()
            return [self._row_to_image(r) for r in rows]
        finally:
            conn.close()

    def list_tags(self) -> list[tuple[str, int]]:
        """All tags with usage counts, most used first."""
        conn = self._get_conn()
        try:
            rows = conn.execute(
                "SELECT min(tag) AS tag, COUNT(*) AS n FROM image_tags GROUP BY tag_key ORDER BY n DESC, tag_key ASC"
            ).fetchall()
            return [(str(r["tag"]), int(r["n"])) for r in rows]
        finally:
            conn.close()
