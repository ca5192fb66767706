"""Forward-only migration runner for the embedded chunk store.

Vec tables (vec_chunks_*) are NOT migration-managed; use ensure_vec_table().
Files written before v2 have no chunk_index / total_chunks columns, and the
storage backend reads them by introspecting the columns that are present.
"""

from __future__ import annotations

import sqlite3

# schema_version is the bootstrap table, created before migrations run.
_CREATE_SCHEMA_VERSION = """
CREATE TABLE IF NOT EXISTS schema_version (
    version     INTEGER NOT NULL,
    applied_at  DATETIME NOT NULL DEFAULT (datetime('now'))
)
"""

# id is the rowid alias shared with the vec_chunks_* tables.
_V1_SQL = """
CREATE TABLE IF NOT EXISTS chunks (
    id                INTEGER PRIMARY KEY AUTOINCREMENT,
    chunk_id          TEXT NOT NULL UNIQUE,
    product_name      TEXT NOT NULL DEFAULT '',
    version           TEXT NOT NULL DEFAULT '',
    heading_hierarchy TEXT NOT NULL DEFAULT '[]',
    section           TEXT NOT NULL DEFAULT '',
    content           TEXT NOT NULL,
    url               TEXT NOT NULL,
    hash              TEXT NOT NULL,
    created_at        DATETIME NOT NULL DEFAULT (datetime('now'))
);

CREATE INDEX IF NOT EXISTS idx_chunks_url ON chunks(url);

CREATE TABLE IF NOT EXISTS vec_metadata (
    key         TEXT PRIMARY KEY,
    value       TEXT NOT NULL,
    updated_at  DATETIME NOT NULL DEFAULT (datetime('now'))
);
"""

_V2_SQL = """
ALTER TABLE chunks ADD COLUMN branch TEXT NOT NULL DEFAULT '';
ALTER TABLE chunks ADD COLUMN repo TEXT NOT NULL DEFAULT '';
ALTER TABLE chunks ADD COLUMN chunk_index INTEGER;
ALTER TABLE chunks ADD COLUMN total_chunks INTEGER;

CREATE INDEX IF NOT EXISTS idx_chunks_url_index ON chunks(url, chunk_index);
"""

# Append-only. Each entry: (version: int, sql: str).
# executescript() issues an implicit COMMIT before running.
MIGRATIONS: list[tuple[int, str]] = [
    (1, _V1_SQL),
    (2, _V2_SQL),
]


def current_version(conn: sqlite3.Connection) -> int:
    """Return the highest applied migration version (0 for a fresh file)."""
    conn.execute(_CREATE_SCHEMA_VERSION)
    row = conn.execute("SELECT MAX(version) FROM schema_version").fetchone()
    return row[0] if row[0] is not None else 0


def run_migrations(conn: sqlite3.Connection, target: int | None = None) -> None:
    """Apply pending migrations in ascending version order.

    Idempotent: safe to call on a database at any version.

    Args:
        conn: Open connection.
        target: Stop after this version (default: apply everything).
    """
    current = current_version(conn)
    conn.commit()

    for version, sql in MIGRATIONS:
        if target is not None and version > target:
            break
        if version > current:
            conn.executescript(sql)
            conn.execute(
                "INSERT INTO schema_version (version) VALUES (?)", (version,)
            )
            conn.commit()


def table_columns(conn: sqlite3.Connection, table: str) -> set[str]:
    """Return the column names of *table* (empty when the table is missing)."""
    return {row[1] for row in conn.execute(f"PRAGMA table_info({table})").fetchall()}
