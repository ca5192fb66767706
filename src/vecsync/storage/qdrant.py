"""Remote vector-service backend on Qdrant.

One collection per (product, version). Point ids are UUIDs derived from the
chunk id; the chunk id itself travels in the payload. Checkpoints are
reserved points in a separate metadata collection.
"""

from __future__ import annotations

import logging
import os
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from qdrant_client import QdrantClient
from qdrant_client.http.exceptions import ResponseHandlingException, UnexpectedResponse
from qdrant_client.models import (
    Distance,
    FieldCondition,
    Filter,
    MatchValue,
    PointIdsList,
    PointStruct,
    Range,
    VectorParams,
)

from vecsync.db.models import DocumentChunk, QueryFilters, StoredChunk
from vecsync.errors import StorageError
from vecsync.storage.base import CleanupScope, StorageBackend, checkpoint_record_key

logger = logging.getLogger(__name__)

_PAGE_SIZE = 256
_DEFAULT_METADATA_COLLECTION = "vecsync_metadata"


def to_point_id(chunk_id: str) -> str:
    """Map a chunk id onto a valid Qdrant point id (a UUID)."""
    try:
        return str(uuid.UUID(chunk_id))
    except ValueError:
        return str(uuid.uuid5(uuid.NAMESPACE_URL, chunk_id))


class QdrantBackend(StorageBackend):
    """StorageBackend over a Qdrant collection.

    Args:
        collection: Collection holding the chunk points.
        client: Pre-built client (tests pass ``QdrantClient(":memory:")``).
        url: Service URL when no client is given.
        port: Optional port override.
        metadata_collection: Collection holding checkpoint records.
    """

    def __init__(
        self,
        collection: str,
        *,
        client: QdrantClient | None = None,
        url: str = "http://localhost:6333",
        port: int | None = None,
        metadata_collection: str = _DEFAULT_METADATA_COLLECTION,
    ) -> None:
        self.collection = collection
        self.metadata_collection = metadata_collection
        if client is None:
            kwargs: dict[str, Any] = {"url": url, "api_key": os.environ.get("QDRANT_API_KEY")}
            if port is not None:
                kwargs["port"] = port
            client = QdrantClient(**kwargs)
        self._client = client
        self._known: set[str] = set()

    @contextmanager
    def _errors(self, action: str) -> Iterator[None]:
        try:
            yield
        except UnexpectedResponse as exc:
            raise StorageError(
                f"Qdrant {action} failed on '{self.collection}' (HTTP {exc.status_code}): {exc}"
            ) from exc
        except ResponseHandlingException as exc:
            raise StorageError(f"Qdrant {action} failed on '{self.collection}': {exc}") from exc

    def _exists(self, name: str) -> bool:
        if name in self._known:
            return True
        with self._errors("collection lookup"):
            found = self._client.collection_exists(name)
        if found:
            self._known.add(name)
        return found

    def _ensure_collection(self, name: str, size: int) -> None:
        if self._exists(name):
            return
        logger.info("Creating Qdrant collection '%s' (%dD, cosine)", name, size)
        with self._errors("create collection"):
            self._client.create_collection(
                collection_name=name,
                vectors_config=VectorParams(size=size, distance=Distance.COSINE),
            )
        self._known.add(name)

    # ------------------------------------------------------------------
    # Chunks
    # ------------------------------------------------------------------

    def lookup_hash(self, chunk_id: str) -> str | None:
        if not self._exists(self.collection):
            return None
        try:
            with self._errors("retrieve"):
                points = self._client.retrieve(
                    collection_name=self.collection,
                    ids=[to_point_id(chunk_id)],
                    with_payload=["hash"],
                    with_vectors=False,
                )
        except StorageError as exc:
            if _is_not_found(exc):
                return None
            raise
        if not points:
            return None
        return (points[0].payload or {}).get("hash")

    def upsert(self, chunk: DocumentChunk, embedding: list[float], content_hash: str) -> None:
        self._ensure_collection(self.collection, len(embedding))
        payload = {
            "chunk_id": chunk.chunk_id,
            "content": chunk.content,
            "url": chunk.url,
            "section": chunk.section,
            "heading_hierarchy": list(chunk.heading_hierarchy),
            "chunk_index": chunk.chunk_index,
            "total_chunks": chunk.total_chunks,
            "product_name": chunk.product_name,
            "version": chunk.version,
            "branch": chunk.branch,
            "repo": chunk.repo,
            "hash": content_hash,
        }
        with self._errors("upsert"):
            self._client.upsert(
                collection_name=self.collection,
                points=[PointStruct(id=to_point_id(chunk.chunk_id), vector=embedding, payload=payload)],
                wait=True,
            )

    def get_chunks_for_document(
        self,
        url: str,
        filters: QueryFilters | None = None,
        start: int | None = None,
        end: int | None = None,
    ) -> list[StoredChunk]:
        if not self._exists(self.collection):
            return []
        must = [FieldCondition(key="url", match=MatchValue(value=url))]
        must.extend(_filter_conditions(filters))
        if start is not None or end is not None:
            must.append(FieldCondition(key="chunk_index", range=Range(gte=start, lte=end)))

        chunks = [_payload_to_stored_chunk(p.payload or {}) for p in self._scroll(Filter(must=must))]
        if chunks and all(c.chunk_index is not None for c in chunks):
            chunks.sort(key=lambda c: c.chunk_index)
        return chunks

    def remove_obsolete(self, scope: CleanupScope, keep: set[str]) -> int:
        if not self._exists(self.collection):
            return 0
        doomed = [
            point.id
            for point in self._scroll(None, payload=["url", "chunk_id"])
            if scope.matches((point.payload or {}).get("url", ""))
            and (point.payload or {}).get("chunk_id") not in keep
        ]
        for i in range(0, len(doomed), _PAGE_SIZE):
            with self._errors("delete"):
                self._client.delete(
                    collection_name=self.collection,
                    points_selector=PointIdsList(points=doomed[i : i + _PAGE_SIZE]),
                    wait=True,
                )
        if doomed:
            logger.info("Removed %d obsolete points from '%s'", len(doomed), self.collection)
        return len(doomed)

    def _scroll(self, scroll_filter: Filter | None, payload: Any = True) -> Iterator[Any]:
        """Yield every point matching *scroll_filter*, following next_page_offset."""
        offset = None
        while True:
            with self._errors("scroll"):
                points, offset = self._client.scroll(
                    collection_name=self.collection,
                    scroll_filter=scroll_filter,
                    limit=_PAGE_SIZE,
                    offset=offset,
                    with_payload=payload,
                    with_vectors=False,
                )
            yield from points
            if offset is None:
                break

    # ------------------------------------------------------------------
    # Vector search
    # ------------------------------------------------------------------

    def query(
        self, vector: list[float], filters: QueryFilters | None = None, top_k: int = 10
    ) -> list[tuple[StoredChunk, float]]:
        """Cosine search; distance is reported as 1 - score (ascending)."""
        if not self._exists(self.collection):
            return []
        conditions = list(_filter_conditions(filters))
        with self._errors("query"):
            response = self._client.query_points(
                collection_name=self.collection,
                query=vector,
                query_filter=Filter(must=conditions) if conditions else None,
                limit=top_k,
                with_payload=True,
            )
        results = [
            (_payload_to_stored_chunk(point.payload or {}), 1.0 - point.score)
            for point in response.points
        ]
        results.sort(key=lambda pair: pair[1])
        return results

    # ------------------------------------------------------------------
    # Checkpoints
    # ------------------------------------------------------------------

    def get_checkpoint(self, source_key: str) -> str | None:
        if not self._exists(self.metadata_collection):
            return None
        key = checkpoint_record_key(source_key)
        with self._errors("retrieve checkpoint"):
            points = self._client.retrieve(
                collection_name=self.metadata_collection,
                ids=[to_point_id(f"metadata_{key}")],
                with_payload=True,
                with_vectors=False,
            )
        if not points:
            return None
        return (points[0].payload or {}).get("metadata_value")

    def set_checkpoint(self, source_key: str, value: str) -> None:
        self._ensure_collection(self.metadata_collection, 1)
        key = checkpoint_record_key(source_key)
        with self._errors("store checkpoint"):
            self._client.upsert(
                collection_name=self.metadata_collection,
                points=[
                    PointStruct(
                        id=to_point_id(f"metadata_{key}"),
                        vector=[1.0],
                        payload={"metadata_key": key, "metadata_value": value},
                    )
                ],
                wait=True,
            )

    def close(self) -> None:
        self._client.close()


# ------------------------------------------------------------------
# Payload mapping
# ------------------------------------------------------------------


def _is_not_found(exc: StorageError) -> bool:
    cause = exc.__cause__
    return isinstance(cause, UnexpectedResponse) and cause.status_code == 404


def _filter_conditions(filters: QueryFilters | None) -> Iterator[FieldCondition]:
    for key, value in (filters or QueryFilters()).items():
        yield FieldCondition(key=key, match=MatchValue(value=value))


def _payload_to_stored_chunk(payload: dict[str, Any]) -> StoredChunk:
    return StoredChunk(
        chunk_id=payload.get("chunk_id", ""),
        content=payload.get("content", ""),
        url=payload.get("url", ""),
        section=payload.get("section") or "",
        heading_hierarchy=list(payload.get("heading_hierarchy") or []),
        chunk_index=payload.get("chunk_index"),
        total_chunks=payload.get("total_chunks"),
        product_name=payload.get("product_name"),
        version=payload.get("version"),
        branch=payload.get("branch"),
        repo=payload.get("repo"),
        content_hash=payload.get("hash"),
    )
