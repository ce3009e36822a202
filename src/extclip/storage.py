import logging
import sqlite3
import threading
from datetime import datetime
from pathlib import Path

from extclip.config import DB_PATH, MAX_ENTRIES, MAX_TEXT_SIZE
from extclip.models import Clip
from extclip.utils import compute_hash

logger = logging.getLogger(__name__)


SCHEMA = """
CREATE TABLE IF NOT EXISTS clips (
    id             INTEGER PRIMARY KEY AUTOINCREMENT,
    content        TEXT NOT NULL,
    content_hash   TEXT NOT NULL,
    from_app_name  TEXT,
    created_at     TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%f', 'now', 'localtime'))
);

CREATE INDEX IF NOT EXISTS idx_clips_created_at ON clips(created_at DESC);
CREATE INDEX IF NOT EXISTS idx_clips_content_hash ON clips(content_hash);
CREATE INDEX IF NOT EXISTS idx_clips_from_app ON clips(from_app_name);

CREATE VIRTUAL TABLE IF NOT EXISTS clips_fts USING fts5(
    content,
    from_app_name,
    content='clips',
    content_rowid='id'
);

CREATE TRIGGER IF NOT EXISTS clips_ai AFTER INSERT ON clips BEGIN
    INSERT INTO clips_fts(rowid, content, from_app_name)
    VALUES (new.id, new.content, new.from_app_name);
END;

CREATE TRIGGER IF NOT EXISTS clips_ad AFTER DELETE ON clips BEGIN
    INSERT INTO clips_fts(clips_fts, rowid, content, from_app_name)
    VALUES ('delete', old.id, old.content, old.from_app_name);
END;

CREATE TRIGGER IF NOT EXISTS clips_au AFTER UPDATE OF from_app_name ON clips BEGIN
    INSERT INTO clips_fts(clips_fts, rowid, content, from_app_name)
    VALUES ('delete', old.id, old.content, old.from_app_name);
    INSERT INTO clips_fts(rowid, content, from_app_name)
    VALUES (new.id, new.content, new.from_app_name);
END;
"""


class ClipStoreError(Exception):
    pass


class ClipStore:
    """Local clip history; the persistence gateway used by the watcher.

    The watcher delivers from its own thread while the menu reads from the
    main thread, so one connection is shared behind a lock.
    """

    def __init__(self, db_path: str | Path | None = None, max_entries: int = MAX_ENTRIES):
        self._db_path = str(db_path) if db_path else str(DB_PATH)
        self._max_entries = max_entries
        self._lock = threading.RLock()
        self._conn = sqlite3.connect(self._db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA journal_mode=WAL")
        self.init_db()

    def init_db(self) -> None:
        with self._lock:
            self._conn.executescript(SCHEMA)
            self._conn.commit()

    def add_clip(self, content: str, from_app_name: str | None = None) -> int:
        """Record ``content``; a repeat of an existing clip moves it to the top."""
        if not content:
            raise ClipStoreError("refusing to store an empty clip")
        if len(content.encode("utf-8")) > MAX_TEXT_SIZE:
            raise ClipStoreError(f"clip exceeds {MAX_TEXT_SIZE} bytes")

        content_hash = compute_hash(content)
        now = datetime.now().isoformat()
        with self._lock:
            existing = self._find_by_hash(content_hash)
            if existing is not None:
                self._conn.execute(
                    "UPDATE clips SET created_at = ?, from_app_name = COALESCE(?, from_app_name) WHERE id = ?",
                    (now, from_app_name, existing.id),
                )
                self._conn.commit()
                return existing.id

            cursor = self._conn.execute(
                "INSERT INTO clips (content, content_hash, from_app_name, created_at) VALUES (?, ?, ?, ?)",
                (content, content_hash, from_app_name, now),
            )
            self._conn.commit()
            clip_id = cursor.lastrowid
            self.purge_old()
        logger.debug("Stored clip %d from %s", clip_id, from_app_name or "unknown app")
        return clip_id

    def get_recent_clips(self, n: int = 25) -> list[Clip]:
        with self._lock:
            rows = self._conn.execute(
                "SELECT * FROM clips ORDER BY created_at DESC, id DESC LIMIT ?",
                (n,),
            ).fetchall()
        return [self._row_to_clip(r) for r in rows]

    def get_clip(self, clip_id: int) -> Clip | None:
        with self._lock:
            row = self._conn.execute("SELECT * FROM clips WHERE id = ?", (clip_id,)).fetchone()
        return self._row_to_clip(row) if row else None

    def get_num_clips(self) -> int:
        with self._lock:
            row = self._conn.execute("SELECT COUNT(*) AS cnt FROM clips").fetchone()
        return row["cnt"]

    def get_all_from_apps(self) -> list[str]:
        with self._lock:
            rows = self._conn.execute(
                "SELECT DISTINCT TRIM(from_app_name) AS app FROM clips "
                "WHERE from_app_name IS NOT NULL AND TRIM(from_app_name) != '' ORDER BY app"
            ).fetchall()
        return [r["app"] for r in rows]

    def get_clips_from_app(self, app_name: str, limit: int = 25) -> list[Clip]:
        with self._lock:
            rows = self._conn.execute(
                "SELECT * FROM clips WHERE TRIM(from_app_name) = ? ORDER BY created_at DESC, id DESC LIMIT ?",
                (app_name.strip(), limit),
            ).fetchall()
        return [self._row_to_clip(r) for r in rows]

    def search(self, query: str, limit: int = 25) -> list[Clip]:
        sanitized = self._sanitize_fts_query(query)
        if not sanitized:
            return []
        with self._lock:
            rows = self._conn.execute(
                """SELECT c.* FROM clips c
                   JOIN clips_fts f ON c.id = f.rowid
                   WHERE clips_fts MATCH ?
                   ORDER BY c.created_at DESC
                   LIMIT ?""",
                (sanitized, limit),
            ).fetchall()
        return [self._row_to_clip(r) for r in rows]

    def delete_clip(self, clip_id: int) -> None:
        with self._lock:
            self._conn.execute("DELETE FROM clips WHERE id = ?", (clip_id,))
            self._conn.commit()

    def delete_all_clips(self) -> None:
        with self._lock:
            self._conn.execute("DELETE FROM clips")
            self._conn.commit()

    def purge_old(self, keep_count: int | None = None) -> int:
        keep = keep_count if keep_count is not None else self._max_entries
        with self._lock:
            cursor = self._conn.execute(
                """DELETE FROM clips WHERE id IN (
                       SELECT id FROM clips ORDER BY created_at DESC, id DESC LIMIT -1 OFFSET ?
                   )""",
                (keep,),
            )
            deleted = cursor.rowcount
            if deleted:
                self._conn.commit()
        return deleted

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    def _find_by_hash(self, content_hash: str) -> Clip | None:
        row = self._conn.execute(
            "SELECT * FROM clips WHERE content_hash = ? ORDER BY created_at DESC LIMIT 1",
            (content_hash,),
        ).fetchone()
        return self._row_to_clip(row) if row else None

    @staticmethod
    def _sanitize_fts_query(query: str) -> str:
        # Quote each token to prevent FTS5 syntax errors from special chars
        tokens = query.split()
        if not tokens:
            return ""
        quoted = ['"' + token.replace('"', '""') + '"' for token in tokens]
        return " ".join(quoted)

    @staticmethod
    def _row_to_clip(row: sqlite3.Row) -> Clip:
        return Clip(
            id=row["id"],
            content=row["content"],
            content_hash=row["content_hash"],
            created_at=datetime.fromisoformat(row["created_at"]),
            from_app_name=row["from_app_name"],
        )
