"""Storage backend contract shared by ingestion and querying."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field

from vecsync.db.models import DocumentChunk, QueryFilters, StoredChunk


@dataclass(frozen=True)
class CleanupScope:
    """The set of document URLs a source owns.

    ``remove_obsolete`` only ever deletes chunks whose url falls inside the
    scope, so one source can never delete another source's data.
    """

    url_prefix: str | None = None
    urls: frozenset[str] = field(default_factory=frozenset)

    def matches(self, url: str) -> bool:
        if self.url_prefix and url.startswith(self.url_prefix):
            return True
        return url in self.urls


def checkpoint_record_key(source_key: str) -> str:
    """Reserved metadata key under which a source's checkpoint is stored."""
    return f"last_run_{source_key.replace('/', '_')}"


class StorageBackend(ABC):
    """Upsert / query / cleanup contract implemented by every vector store.

    Every read returns ``StoredChunk`` objects; not-found is ``None`` or ``[]``,
    never an exception. Transport and write failures raise ``StorageError``.
    """

    @abstractmethod
    def lookup_hash(self, chunk_id: str) -> str | None:
        """Return the stored content hash of *chunk_id*, or None."""

    @abstractmethod
    def upsert(self, chunk: DocumentChunk, embedding: list[float], content_hash: str) -> None:
        """Insert or replace *chunk* with its vector and hash (idempotent)."""

    @abstractmethod
    def query(
        self, vector: list[float], filters: QueryFilters | None = None, top_k: int = 10
    ) -> list[tuple[StoredChunk, float]]:
        """Return up to *top_k* nearest chunks, ascending by distance."""

    @abstractmethod
    def get_chunks_for_document(
        self,
        url: str,
        filters: QueryFilters | None = None,
        start: int | None = None,
        end: int | None = None,
    ) -> list[StoredChunk]:
        """Return the chunks of the document at *url*, ordered by chunk_index.

        *start* / *end* bound chunk_index inclusively when the store records it.
        """

    @abstractmethod
    def remove_obsolete(self, scope: CleanupScope, keep: set[str]) -> int:
        """Delete chunks inside *scope* whose id is not in *keep*; return the count."""

    @abstractmethod
    def get_checkpoint(self, source_key: str) -> str | None:
        """Return the persisted checkpoint for *source_key*, or None."""

    @abstractmethod
    def set_checkpoint(self, source_key: str, value: str) -> None:
        """Persist *value* as the checkpoint for *source_key*."""

    def close(self) -> None:
        """Release any held client resources."""
