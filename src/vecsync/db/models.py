"""Domain models shared by the content processor and the storage backends."""

from __future__ import annotations

import hashlib
from collections.abc import Iterator
from dataclasses import dataclass, field


def content_hash(text: str) -> str:
    """SHA-256 hex digest of *text*; the change-detection key of a chunk."""
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def make_chunk_id(document_id: str, chunk_index: int) -> str:
    """Stable identifier for the chunk at *chunk_index* of *document_id*."""
    return hashlib.sha256(f"{document_id}::{chunk_index}".encode("utf-8")).hexdigest()


@dataclass
class DocumentChunk:
    """A chunk produced by the content processor, not yet stored."""

    chunk_id: str
    content: str
    url: str
    chunk_index: int
    total_chunks: int
    section: str = ""
    heading_hierarchy: list[str] = field(default_factory=list)
    product_name: str | None = None
    version: str | None = None
    branch: str | None = None
    repo: str | None = None

    @property
    def content_hash(self) -> str:
        return content_hash(self.content)


@dataclass
class StoredChunk:
    """A chunk as read back from a storage backend.

    ``chunk_index`` and ``total_chunks`` are None for records written by
    older schema versions.
    """

    chunk_id: str
    content: str
    url: str
    section: str = ""
    heading_hierarchy: list[str] = field(default_factory=list)
    chunk_index: int | None = None
    total_chunks: int | None = None
    product_name: str | None = None
    version: str | None = None
    branch: str | None = None
    repo: str | None = None
    content_hash: str | None = None


@dataclass
class QueryFilters:
    """Optional equality filters applied to queries and document lookups."""

    product_name: str | None = None
    version: str | None = None
    branch: str | None = None
    repo: str | None = None

    def items(self) -> Iterator[tuple[str, str]]:
        """Yield (column, value) for the filters that are set."""
        for name in ("product_name", "version", "branch", "repo"):
            value = getattr(self, name)
            if value:
                yield name, value
