from __future__ import annotations
import hashlib
import json
import logging
import os
import shutil
import sqlite3
import time
from pathlib import Path
from typing import Any, Optional

from codex.models import Snapshot, snapshot_from_dict, snapshot_to_json
from config import SNAPSHOT_KEY
from database.migrations import upgrade
from database.schema import ensure_schema
from editor.clean_text import compute_metrics

logger = logging.getLogger(__name__)

def _backup_db_file(path: str) -> None:
    ts = time.strftime("%Y%m%d-%H%M%S")
    shutil.copy2(path, f"{path}.bak-{ts}")

def _norm_for_hash(text: str) -> str:
    return (text or "").replace("\r\n", "\n").strip()

def _sha1(s: str) -> str:
    return hashlib.sha1(s.encode("utf-8", "ignore")).hexdigest()

class Database:
    def __init__(self, path: Path | str = ":memory:", *, backup: bool = False):
        self.path = str(path)
        in_memory = self.path == ":memory:"
        if backup and not in_memory and os.path.exists(self.path):
            _backup_db_file(self.path)

        self.conn = sqlite3.connect(self.path)
        self.conn.row_factory = sqlite3.Row
        if not in_memory:
            self.conn.execute("PRAGMA journal_mode = WAL;")
            self.conn.execute("PRAGMA synchronous = NORMAL;")

        # schema init / migrations:
        # 1) Base schema (v1)
        ensure_schema(self.conn)
        # 2) Migrations to latest
        upgrade(self.conn)

    def close(self) -> None:
        self.conn.close()

    def __enter__(self) -> "Database":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    # ---- Key/value blobs
    def kv_get(self, key: str) -> Optional[str]:
        r = self.conn.execute("SELECT value FROM kv_store WHERE key=?", (key,)).fetchone()
        return r["value"] if r else None

    def kv_set(self, key: str, value: str) -> None:
        self.conn.execute("""
            INSERT INTO kv_store(key, value, updated_at) VALUES(?, ?, CURRENT_TIMESTAMP)
            ON CONFLICT(key) DO UPDATE SET value=excluded.value, updated_at=CURRENT_TIMESTAMP
        """, (key, value))
        self.conn.commit()

    def kv_delete(self, key: str) -> None:
        self.conn.execute("DELETE FROM kv_store WHERE key=?", (key,))
        self.conn.commit()

    # ---- Snapshots
    def load_snapshot(self, key: str = SNAPSHOT_KEY) -> Optional[Snapshot]:
        """
        None when nothing is stored or the blob cannot be read back.
        Missing optional collections come back empty.
        """
        raw = self.kv_get(key)
        if raw is None:
            return None
        try:
            data = json.loads(raw)
            if not isinstance(data, dict):
                raise ValueError("snapshot is not an object")
            return snapshot_from_dict(data)
        except (ValueError, KeyError, TypeError, AttributeError):
            logger.warning("ignoring unreadable snapshot under %r", key, exc_info=True)
            return None

    def save_snapshot(self, snapshot: Snapshot, key: str = SNAPSHOT_KEY) -> None:
        self.kv_set(key, snapshot_to_json(snapshot))
        logger.debug("saved snapshot %r (%d chapters)", key, len(snapshot.chapters))

    # ---- Chapter metrics cache
    def metrics_get(self, chapter_id: str, content: str) -> Optional[dict[str, Any]]:
        """Cached metrics when the stored hash still matches the content."""
        r = self.conn.execute("""SELECT * FROM chapter_metrics
                                 WHERE chapter_id=? AND source_hash=?""",
                              (chapter_id, _sha1(_norm_for_hash(content)))).fetchone()
        if not r:
            return None
        d = dict(r)
        d.pop("chapter_id", None)
        d.pop("source_hash", None)
        d.pop("updated_at", None)
        return d

    def metrics_upsert(self, chapter_id: str, content: str) -> dict[str, Any]:
        m = compute_metrics(content)
        self.conn.execute("""
            INSERT INTO chapter_metrics(chapter_id, source_hash, word_count, char_count,
                                        paragraph_count, sentence_count, reading_min,
                                        reading_max, reading_label, updated_at)
            VALUES(?,?,?,?,?,?,?,?,?,CURRENT_TIMESTAMP)
            ON CONFLICT(chapter_id) DO UPDATE SET
                source_hash=excluded.source_hash,
                word_count=excluded.word_count,
                char_count=excluded.char_count,
                paragraph_count=excluded.paragraph_count,
                sentence_count=excluded.sentence_count,
                reading_min=excluded.reading_min,
                reading_max=excluded.reading_max,
                reading_label=excluded.reading_label,
                updated_at=CURRENT_TIMESTAMP
        """, (chapter_id, _sha1(_norm_for_hash(content)), m["word_count"], m["char_count"],
              m["paragraph_count"], m["sentence_count"], m["reading_min"], m["reading_max"],
              m["reading_label"]))
        self.conn.commit()
        return m

    def metrics_for(self, chapter_id: str, content: str) -> dict[str, Any]:
        return self.metrics_get(chapter_id, content) or self.metrics_upsert(chapter_id, content)
