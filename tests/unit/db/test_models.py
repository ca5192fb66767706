"""Tests for chunk identifiers, hashing and filters."""

from __future__ import annotations

import hashlib

from vecsync.db.models import DocumentChunk, QueryFilters, content_hash, make_chunk_id


def test_make_chunk_id_is_stable():
    assert make_chunk_id("https://docs.example.com/a", 0) == make_chunk_id(
        "https://docs.example.com/a", 0
    )


def test_make_chunk_id_matches_sha256_of_id_and_index():
    expected = hashlib.sha256(b"file:///docs/a.md::3").hexdigest()
    assert make_chunk_id("file:///docs/a.md", 3) == expected


def test_make_chunk_id_differs_by_index_and_document():
    ids = {
        make_chunk_id("doc-a", 0),
        make_chunk_id("doc-a", 1),
        make_chunk_id("doc-b", 0),
    }
    assert len(ids) == 3


def test_content_hash_sha256():
    assert content_hash("hello") == hashlib.sha256(b"hello").hexdigest()


def test_document_chunk_hash_tracks_content():
    chunk = DocumentChunk(chunk_id="c", content="one", url="u", chunk_index=0, total_chunks=1)
    before = chunk.content_hash
    chunk.content = "two"
    assert chunk.content_hash != before


def test_query_filters_items_skips_unset():
    filters = QueryFilters(product_name="istio", version=None, branch="", repo="istio/istio")
    assert list(filters.items()) == [("product_name", "istio"), ("repo", "istio/istio")]
