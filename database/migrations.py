import logging
import sqlite3
from typing import Callable

from .schema import LATEST_SCHEMA_VERSION

logger = logging.getLogger(__name__)


def get_user_version(conn: sqlite3.Connection) -> int:
    row = conn.execute("PRAGMA user_version;").fetchone()
    return int(row[0] or 0)


def set_user_version(conn: sqlite3.Connection, version: int) -> None:
    # PRAGMA takes no bound parameters
    conn.execute(f"PRAGMA user_version = {int(version)};")


def _columns(conn: sqlite3.Connection, table: str) -> set[str]:
    return {r[1] for r in conn.execute(f"PRAGMA table_info({table})")}


def _add_column_once(conn: sqlite3.Connection, table: str, col: str, decl: str) -> None:
    if col not in _columns(conn, table):
        conn.execute(f"ALTER TABLE {table} ADD COLUMN {col} {decl}")


## Migrations ##
def _to_v1(conn: sqlite3.Connection) -> None:
    """Base tables come from ensure_schema(); nothing to alter."""


def _to_v2(conn: sqlite3.Connection) -> None:
    """Human-readable reading time label in the metrics cache."""
    _add_column_once(conn, "chapter_metrics", "reading_label", "TEXT DEFAULT ''")


# target version -> step; applied in order, each one idempotent
STEPS: dict[int, Callable[[sqlite3.Connection], None]] = {
    1: _to_v1,
    2: _to_v2,
}


def upgrade(conn: sqlite3.Connection) -> None:
    """
    Bring PRAGMA user_version up to LATEST_SCHEMA_VERSION inside one transaction.
    """
    current = get_user_version(conn)
    if current >= LATEST_SCHEMA_VERSION:
        return

    with conn:
        for target in range(current + 1, LATEST_SCHEMA_VERSION + 1):
            STEPS[target](conn)
            set_user_version(conn, target)

    logger.info("database upgraded from schema v%d to v%d", current, LATEST_SCHEMA_VERSION)
