"""Tests for Database connection layer."""

from __future__ import annotations

import sqlite3

import pytest

from vecsync.db.connection import Database


def test_connect_creates_file(tmp_path):
    db_path = tmp_path / "product.db"
    db = Database(db_path)
    conn = db.connect()
    conn.close()
    assert db_path.exists()


def test_connect_creates_parent_directories(tmp_path):
    db = Database(tmp_path / "nested" / "dir" / "product.db")
    db.connect().close()
    assert db.exists()


def test_sqlite_vec_loads(tmp_path):
    conn = Database(tmp_path / "product.db").connect()
    version = conn.execute("SELECT vec_version()").fetchone()[0]
    conn.close()
    assert version.startswith("v")


def test_wal_journal_mode(tmp_path):
    conn = Database(tmp_path / "product.db").connect()
    mode = conn.execute("PRAGMA journal_mode").fetchone()[0]
    conn.close()
    assert mode == "wal"


def test_row_factory_set(tmp_path):
    conn = Database(tmp_path / "product.db").connect()
    conn.execute("CREATE TABLE t (x INTEGER)")
    conn.execute("INSERT INTO t VALUES (42)")
    row = conn.execute("SELECT x FROM t").fetchone()
    conn.close()
    assert row["x"] == 42


# --- session() ---

def test_session_commits_on_success(tmp_path):
    db = Database(tmp_path / "product.db")
    with db.session() as conn:
        conn.execute("CREATE TABLE t (x INTEGER)")
        conn.execute("INSERT INTO t VALUES (1)")
    with db.session() as conn:
        assert conn.execute("SELECT COUNT(*) FROM t").fetchone()[0] == 1


def test_session_rolls_back_on_error(tmp_path):
    db = Database(tmp_path / "product.db")
    with db.session() as conn:
        conn.execute("CREATE TABLE t (x INTEGER)")

    with pytest.raises(RuntimeError):
        with db.session() as conn:
            conn.execute("INSERT INTO t VALUES (1)")
            raise RuntimeError("boom")

    with db.session() as conn:
        assert conn.execute("SELECT COUNT(*) FROM t").fetchone()[0] == 0


def test_session_closes_connection(tmp_path):
    db = Database(tmp_path / "product.db")
    with db.session() as conn:
        held = conn
    with pytest.raises(sqlite3.ProgrammingError):
        held.execute("SELECT 1")


def test_exists_false_before_connect(tmp_path):
    assert not Database(tmp_path / "missing.db").exists()
