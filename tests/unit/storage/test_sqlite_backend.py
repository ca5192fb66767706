"""Tests for the embedded SQLite storage backend."""

from __future__ import annotations

import logging

import pytest

from vecsync.db.connection import Database
from vecsync.db.migrations import run_migrations
from vecsync.db.models import DocumentChunk, QueryFilters
from vecsync.errors import StorageError
from vecsync.storage.base import CleanupScope
from vecsync.storage.sqlite import SqliteBackend

MODEL = "openai/text-embedding-3-small"


def _chunk(chunk_id: str, url: str = "https://docs.example.com/a", index: int = 0,
           content: str | None = None, product: str = "acme", version: str = "1.0",
           total: int = 1) -> DocumentChunk:
    return DocumentChunk(
        chunk_id=chunk_id,
        content=content or f"content of {chunk_id}",
        url=url,
        chunk_index=index,
        total_chunks=total,
        section="Intro",
        heading_hierarchy=["Guide", "Intro"],
        product_name=product,
        version=version,
    )


def _store(backend, chunk: DocumentChunk, vector=None):
    backend.upsert(chunk, vector or [1.0, 0.0, 0.0, 0.0], chunk.content_hash)


# ------------------------------------------------------------------
# lookup / upsert
# ------------------------------------------------------------------


def test_lookup_hash_missing_returns_none(tmp_path):
    backend = SqliteBackend(tmp_path / "acme.db", MODEL)
    assert backend.lookup_hash("nope") is None


def test_upsert_then_lookup_hash(tmp_path):
    backend = SqliteBackend(tmp_path / "acme.db", MODEL)
    chunk = _chunk("c0")
    _store(backend, chunk)
    assert backend.lookup_hash("c0") == chunk.content_hash


def test_upsert_is_idempotent_by_chunk_id(tmp_path):
    backend = SqliteBackend(tmp_path / "acme.db", MODEL)
    chunk = _chunk("c0")
    _store(backend, chunk)
    _store(backend, chunk)

    conn = Database(tmp_path / "acme.db").connect()
    assert conn.execute("SELECT COUNT(*) FROM chunks").fetchone()[0] == 1
    table = "vec_chunks_openai_text_embedding_3_small"
    assert conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0] == 1
    conn.close()


def test_upsert_replaces_content_and_vector(tmp_path):
    backend = SqliteBackend(tmp_path / "acme.db", MODEL)
    _store(backend, _chunk("c0", content="old text"), [1.0, 0.0, 0.0, 0.0])
    updated = _chunk("c0", content="new text")
    _store(backend, updated, [0.0, 1.0, 0.0, 0.0])

    assert backend.lookup_hash("c0") == updated.content_hash
    results = backend.query([0.0, 1.0, 0.0, 0.0], top_k=1)
    assert results[0][0].content == "new text"
    assert results[0][1] == pytest.approx(0.0, abs=1e-6)


# ------------------------------------------------------------------
# query
# ------------------------------------------------------------------


def test_query_on_empty_store_returns_empty(tmp_path):
    backend = SqliteBackend(tmp_path / "acme.db", MODEL)
    assert backend.query([1.0, 0.0, 0.0, 0.0]) == []


def test_query_orders_by_distance_and_respects_top_k(tmp_path):
    backend = SqliteBackend(tmp_path / "acme.db", MODEL)
    _store(backend, _chunk("far", url="u/far"), [0.0, 0.0, 1.0, 0.0])
    _store(backend, _chunk("near", url="u/near"), [1.0, 0.1, 0.0, 0.0])
    _store(backend, _chunk("exact", url="u/exact"), [1.0, 0.0, 0.0, 0.0])

    results = backend.query([1.0, 0.0, 0.0, 0.0], top_k=2)

    assert [c.chunk_id for c, _ in results] == ["exact", "near"]
    distances = [d for _, d in results]
    assert distances == sorted(distances)


def test_query_applies_equality_filters(tmp_path):
    backend = SqliteBackend(tmp_path / "acme.db", MODEL)
    _store(backend, _chunk("v1", url="u/1", version="1.0"), [1.0, 0.0, 0.0, 0.0])
    _store(backend, _chunk("v2", url="u/2", version="2.0"), [1.0, 0.0, 0.0, 0.0])

    results = backend.query([1.0, 0.0, 0.0, 0.0], QueryFilters(version="2.0"), top_k=5)

    assert [c.chunk_id for c, _ in results] == ["v2"]
    assert results[0][0].version == "2.0"


def test_query_returns_stored_chunk_fields(tmp_path):
    backend = SqliteBackend(tmp_path / "acme.db", MODEL)
    _store(backend, _chunk("c0", index=2, total=5))
    chunk, _ = backend.query([1.0, 0.0, 0.0, 0.0], top_k=1)[0]
    assert chunk.chunk_index == 2
    assert chunk.total_chunks == 5
    assert chunk.heading_hierarchy == ["Guide", "Intro"]
    assert chunk.product_name == "acme"
    assert chunk.branch is None


# ------------------------------------------------------------------
# get_chunks_for_document
# ------------------------------------------------------------------


def test_get_chunks_for_document_ordered_and_ranged(tmp_path):
    backend = SqliteBackend(tmp_path / "acme.db", MODEL)
    for i in (3, 0, 2, 1):
        _store(backend, _chunk(f"c{i}", index=i, total=4))

    all_chunks = backend.get_chunks_for_document("https://docs.example.com/a")
    assert [c.chunk_index for c in all_chunks] == [0, 1, 2, 3]

    ranged = backend.get_chunks_for_document("https://docs.example.com/a", start=1, end=2)
    assert [c.chunk_id for c in ranged] == ["c1", "c2"]


def test_get_chunks_for_document_unknown_url(tmp_path):
    backend = SqliteBackend(tmp_path / "acme.db", MODEL)
    assert backend.get_chunks_for_document("https://nowhere") == []


def _legacy_db(path):
    """A file at schema v1: no chunk_index / total_chunks columns."""
    conn = Database(path).connect()
    run_migrations(conn, target=1)
    for i in range(3):
        conn.execute(
            "INSERT INTO chunks (chunk_id, product_name, version, content, url, hash) "
            "VALUES (?, 'acme', '1.0', ?, 'https://docs.example.com/a', ?)",
            (f"old{i}", f"legacy text {i}", f"h{i}"),
        )
    conn.commit()
    conn.close()


def test_range_query_on_legacy_schema_returns_all_and_warns(tmp_path, caplog):
    path = tmp_path / "legacy.db"
    _legacy_db(path)
    backend = SqliteBackend(path, MODEL, migrate=False)

    with caplog.at_level(logging.WARNING, logger="vecsync.storage.sqlite"):
        chunks = backend.get_chunks_for_document("https://docs.example.com/a", start=0, end=0)

    assert [c.chunk_id for c in chunks] == ["old0", "old1", "old2"]
    assert all(c.chunk_index is None and c.total_chunks is None for c in chunks)
    assert "range filter ignored" in caplog.text


def test_legacy_schema_without_range_does_not_warn(tmp_path, caplog):
    path = tmp_path / "legacy.db"
    _legacy_db(path)
    backend = SqliteBackend(path, MODEL, migrate=False)

    with caplog.at_level(logging.WARNING, logger="vecsync.storage.sqlite"):
        chunks = backend.get_chunks_for_document("https://docs.example.com/a")

    assert len(chunks) == 3
    assert "range filter ignored" not in caplog.text


def test_migrating_backend_upgrades_legacy_file(tmp_path):
    path = tmp_path / "legacy.db"
    _legacy_db(path)
    backend = SqliteBackend(path, MODEL)
    _store(backend, _chunk("new0", index=0))
    chunks = backend.get_chunks_for_document("https://docs.example.com/a", start=0, end=0)
    assert [c.chunk_id for c in chunks] == ["new0"]


# ------------------------------------------------------------------
# remove_obsolete
# ------------------------------------------------------------------


def test_remove_obsolete_deletes_only_unseen_in_scope(tmp_path):
    backend = SqliteBackend(tmp_path / "acme.db", MODEL)
    _store(backend, _chunk("keep", url="https://docs.example.com/a"))
    _store(backend, _chunk("gone", url="https://docs.example.com/b"))
    _store(backend, _chunk("other", url="https://other.example.com/x"))

    deleted = backend.remove_obsolete(
        CleanupScope(url_prefix="https://docs.example.com/"), keep={"keep"}
    )

    assert deleted == 1
    assert backend.lookup_hash("keep") is not None
    assert backend.lookup_hash("gone") is None
    assert backend.lookup_hash("other") is not None
    assert [c.chunk_id for c, _ in backend.query([1.0, 0.0, 0.0, 0.0], top_k=10)] != []
    assert "gone" not in {c.chunk_id for c, _ in backend.query([1.0, 0.0, 0.0, 0.0], top_k=10)}


def test_remove_obsolete_with_explicit_urls(tmp_path):
    backend = SqliteBackend(tmp_path / "acme.db", MODEL)
    _store(backend, _chunk("a", url="u/a"))
    _store(backend, _chunk("b", url="u/b"))
    deleted = backend.remove_obsolete(CleanupScope(urls=frozenset({"u/b"})), keep=set())
    assert deleted == 1
    assert backend.lookup_hash("a") is not None


def test_remove_obsolete_nothing_to_delete(tmp_path):
    backend = SqliteBackend(tmp_path / "acme.db", MODEL)
    _store(backend, _chunk("a"))
    assert backend.remove_obsolete(CleanupScope(url_prefix="https://"), keep={"a"}) == 0


# ------------------------------------------------------------------
# checkpoints
# ------------------------------------------------------------------


def test_checkpoint_roundtrip_and_overwrite(tmp_path):
    backend = SqliteBackend(tmp_path / "acme.db", MODEL)
    assert backend.get_checkpoint("istio/istio") is None
    backend.set_checkpoint("istio/istio", "2025-01-01T00:00:00Z")
    backend.set_checkpoint("istio/istio", "2025-02-01T00:00:00Z")
    assert backend.get_checkpoint("istio/istio") == "2025-02-01T00:00:00Z"


def test_checkpoint_stored_under_reserved_key(tmp_path):
    backend = SqliteBackend(tmp_path / "acme.db", MODEL)
    backend.set_checkpoint("istio/istio", "2025-01-01T00:00:00Z")
    conn = Database(tmp_path / "acme.db").connect()
    row = conn.execute("SELECT key FROM vec_metadata").fetchone()
    conn.close()
    assert row["key"] == "last_run_istio_istio"


# ------------------------------------------------------------------
# errors
# ------------------------------------------------------------------


def test_open_existing_missing_file_raises(tmp_path):
    with pytest.raises(StorageError, match="not found"):
        SqliteBackend.open_existing(tmp_path / "missing.db", MODEL)


def test_dimension_mismatch_surfaces_as_storage_error(tmp_path):
    backend = SqliteBackend(tmp_path / "acme.db", MODEL)
    _store(backend, _chunk("a"), [1.0, 0.0, 0.0, 0.0])
    with pytest.raises(StorageError):
        backend.upsert(_chunk("b", url="u/b"), [1.0, 0.0], "h")
    assert backend.lookup_hash("b") is None
