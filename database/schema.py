import sqlite3

LATEST_SCHEMA_VERSION = 2  # highest key in migrations.STEPS

def ensure_schema(conn: sqlite3.Connection) -> None:
    """v1 tables only. Columns from later versions are added by migrations.upgrade()."""
    cur = conn.cursor()

    # --- Snapshot blobs (autosave, named saves) ---
    cur.executescript("""
    CREATE TABLE IF NOT EXISTS kv_store (
        key TEXT PRIMARY KEY,
        value TEXT NOT NULL,
        updated_at DATETIME DEFAULT CURRENT_TIMESTAMP
    );
    """)

    # --- Per-chapter statistics cache, keyed by content hash ---
    cur.executescript("""
    CREATE TABLE IF NOT EXISTS chapter_metrics (
        chapter_id TEXT NOT NULL,
        source_hash TEXT NOT NULL,
        word_count INTEGER NOT NULL DEFAULT 0,
        char_count INTEGER NOT NULL DEFAULT 0,
        paragraph_count INTEGER NOT NULL DEFAULT 0,
        sentence_count INTEGER NOT NULL DEFAULT 0,
        reading_min INTEGER NOT NULL DEFAULT 0,
        reading_max INTEGER NOT NULL DEFAULT 0,
        updated_at DATETIME DEFAULT CURRENT_TIMESTAMP,
        PRIMARY KEY (chapter_id)
    );
    CREATE INDEX IF NOT EXISTS idx_chapter_metrics_hash ON chapter_metrics(source_hash);
    """)

    conn.commit()
