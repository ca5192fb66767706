"""Shared pytest fixtures."""

from __future__ import annotations

import hashlib
import os

# Keep litellm from fetching its model cost map over the network at import
# time; the background retry deadlocks under pytest when offline.
os.environ.setdefault("LITELLM_LOCAL_MODEL_COST_MAP", "True")

import pytest

from vecsync.db.connection import Database
from vecsync.db.migrations import run_migrations
from vecsync.embeddings.base import EmbeddingProvider
from vecsync.errors import EmbeddingFailure
from vecsync.sources.base import Connector, TraversalResult
from vecsync.storage.base import CleanupScope
from vecsync.storage.sqlite import SqliteBackend

MODEL = "openai/text-embedding-3-small"
DIMS = 8


class FakeEmbeddingProvider(EmbeddingProvider):
    """Deterministic vectors derived from the text; counts calls."""

    name = "fake"

    def __init__(self, fail_on: set[str] | None = None) -> None:
        super().__init__(MODEL)
        self.calls: list[str] = []
        self.fail_on = fail_on or set()

    def _embed(self, texts: list[str]) -> list[list[float]]:
        vectors = []
        for text in texts:
            self.calls.append(text)
            if any(marker in text for marker in self.fail_on):
                raise EmbeddingFailure(f"refused: {text[:20]}")
            digest = hashlib.sha256(text.encode()).digest()
            vectors.append([b / 255.0 for b in digest[:DIMS]])
        return vectors


class FakeConnector(Connector):
    """Emits a fixed {identifier: content} mapping."""

    def __init__(
        self,
        documents: dict[str, str],
        *,
        scope: CleanupScope | None = None,
        network_error: bool = False,
        checkpoint_key: str | None = None,
        next_checkpoint: str | None = None,
        retained: set[str] | None = None,
        fail_after: int | None = None,
    ) -> None:
        self.documents = documents
        self.scope = scope
        self.network_error = network_error
        self.checkpoint_key = checkpoint_key
        self.next_checkpoint = next_checkpoint
        self.retained = retained or set()
        self.fail_after = fail_after
        self.seen_checkpoint: str | None = None

    def traverse(self, on_document, checkpoint=None):
        from vecsync.errors import ConnectorError

        self.seen_checkpoint = checkpoint
        for i, (doc_id, content) in enumerate(self.documents.items()):
            if self.fail_after is not None and i >= self.fail_after:
                raise ConnectorError("listing failed mid-run")
            on_document(doc_id, content)
        return TraversalResult(
            network_error=self.network_error,
            checkpoint=self.next_checkpoint,
            documents=len(self.documents),
            retained_urls=set(self.retained),
        )

    def cleanup_scope(self):
        return self.scope


@pytest.fixture
def tmp_db(tmp_path):
    """File-based DB in tmp_path with schema migrated, closed after test."""
    db = Database(tmp_path / "test.db")
    conn = db.connect()
    run_migrations(conn)
    yield conn
    conn.close()


@pytest.fixture
def backend(tmp_path):
    """SqliteBackend on a fresh file."""
    return SqliteBackend(tmp_path / "product.db", MODEL)


@pytest.fixture
def provider():
    return FakeEmbeddingProvider()
