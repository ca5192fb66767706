"""Tests for the forward-only migration runner."""

from __future__ import annotations

from vecsync.db.connection import Database
from vecsync.db.migrations import MIGRATIONS, current_version, run_migrations, table_columns


def _fresh_conn(tmp_path):
    """Open a new connection without running migrations."""
    return Database(tmp_path / "test.db").connect()


def _table_exists(conn, name: str) -> bool:
    return conn.execute(
        "SELECT name FROM sqlite_master WHERE type='table' AND name=?", (name,)
    ).fetchone() is not None


# --- Bootstrap ---

def test_run_migrations_creates_schema_version(tmp_path):
    conn = _fresh_conn(tmp_path)
    run_migrations(conn)
    assert _table_exists(conn, "schema_version")
    conn.close()


def test_run_migrations_records_latest_version(tmp_path):
    conn = _fresh_conn(tmp_path)
    run_migrations(conn)
    assert current_version(conn) == MIGRATIONS[-1][0]
    conn.close()


def test_current_version_zero_on_fresh_file(tmp_path):
    conn = _fresh_conn(tmp_path)
    assert current_version(conn) == 0
    conn.close()


# --- Idempotency ---

def test_run_migrations_idempotent(tmp_path):
    conn = _fresh_conn(tmp_path)
    run_migrations(conn)
    run_migrations(conn)
    count = conn.execute("SELECT COUNT(*) FROM schema_version").fetchone()[0]
    assert count == len(MIGRATIONS)
    conn.close()


# --- Tables created ---

def test_run_migrations_creates_chunks_and_metadata(tmp_path):
    conn = _fresh_conn(tmp_path)
    run_migrations(conn)
    assert _table_exists(conn, "chunks")
    assert _table_exists(conn, "vec_metadata")
    conn.close()


def test_run_migrations_does_not_create_vec_tables(tmp_path):
    conn = _fresh_conn(tmp_path)
    run_migrations(conn)
    vec_tables = conn.execute(
        "SELECT name FROM sqlite_master WHERE name LIKE 'vec_chunks_%'"
    ).fetchall()
    assert vec_tables == []
    conn.close()


# --- Target version / legacy schema ---

def test_target_version_stops_before_chunk_index(tmp_path):
    conn = _fresh_conn(tmp_path)
    run_migrations(conn, target=1)
    columns = table_columns(conn, "chunks")
    assert "chunk_id" in columns
    assert "chunk_index" not in columns
    assert "total_chunks" not in columns
    assert current_version(conn) == 1
    conn.close()


def test_upgrade_from_v1_adds_columns_and_keeps_rows(tmp_path):
    conn = _fresh_conn(tmp_path)
    run_migrations(conn, target=1)
    conn.execute(
        "INSERT INTO chunks (chunk_id, content, url, hash) VALUES ('c0', 'text', 'u', 'h')"
    )
    conn.commit()

    run_migrations(conn)

    columns = table_columns(conn, "chunks")
    assert {"chunk_index", "total_chunks", "branch", "repo"} <= columns
    row = conn.execute("SELECT chunk_id, chunk_index FROM chunks").fetchone()
    assert row["chunk_id"] == "c0"
    assert row["chunk_index"] is None
    conn.close()


def test_run_migrations_applies_only_pending(tmp_path, monkeypatch):
    """A DB already at version 1 only gets the later migrations."""
    import vecsync.db.migrations as mod

    conn = _fresh_conn(tmp_path)
    conn.execute(
        "CREATE TABLE schema_version (version INTEGER NOT NULL, "
        "applied_at DATETIME NOT NULL DEFAULT (datetime('now')))"
    )
    conn.execute("INSERT INTO schema_version (version) VALUES (1)")
    conn.commit()

    monkeypatch.setattr(
        mod,
        "MIGRATIONS",
        [(1, "CREATE TABLE v1_marker (x INTEGER);"), (2, "CREATE TABLE v2_marker (x INTEGER);")],
    )
    run_migrations(conn)

    assert _table_exists(conn, "v2_marker")
    assert not _table_exists(conn, "v1_marker")
    conn.close()


def test_table_columns_missing_table(tmp_path):
    conn = _fresh_conn(tmp_path)
    assert table_columns(conn, "nope") == set()
    conn.close()
