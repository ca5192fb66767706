"""Ingestion orchestrator: per-source traversal, change detection and cleanup.

For each configured source, in order:

  SCANNING   the connector walks the source and hands over documents
  CHUNKING   each document is split by the content processor
  HASH-CHECK a chunk whose stored hash matches is skipped (no embedding call)
  EMBEDDING  changed or new chunks are embedded
  STORING    and upserted
  CLEANUP    stored chunks in the source's scope that were not seen this run
             are removed, unless the traversal hit a network error

Every stage runs sequentially; one chunk is fully stored before the next is
looked at. A fatal error aborts the current source only.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from vecsync.config import SourceConfig, VecsyncConfig
from vecsync.db.models import DocumentChunk
from vecsync.embeddings.base import EmbeddingProvider
from vecsync.embeddings.providers import create_provider
from vecsync.errors import EmbeddingFailure, VecsyncError
from vecsync.ingest.base import BaseChunker
from vecsync.ingest.markdown import MarkdownChunker
from vecsync.sources import create_connector
from vecsync.sources.base import Connector
from vecsync.storage.base import StorageBackend
from vecsync.storage.factory import create_backend

logger = logging.getLogger(__name__)


@dataclass
class SourceReport:
    """What one source run did."""

    source: str
    status: str = "ok"  # ok | failed
    documents: int = 0
    embedded: int = 0
    unchanged: int = 0
    failed: int = 0
    deleted: int = 0
    cleanup_skipped: bool = False
    checkpoint: str | None = None
    error: str | None = None


class IngestionOrchestrator:
    """Run every configured source through the ingestion state machine.

    Args:
        config: Validated configuration.
        chunker: Content processor override; defaults to a MarkdownChunker
            sized from each source's ``chunk_size``.
    """

    def __init__(self, config: VecsyncConfig, chunker: BaseChunker | None = None) -> None:
        self.config = config
        self._chunker = chunker

    def run(self, sources: list[SourceConfig] | None = None) -> list[SourceReport]:
        """Process *sources* (default: all configured) one after another."""
        reports: list[SourceReport] = []
        for source in sources if sources is not None else self.config.sources:
            report = SourceReport(source=source.label)
            logger.info("Processing source %s", source.label)
            backend: StorageBackend | None = None
            try:
                embedding = self.config.embedding_for(source)
                provider = create_provider(embedding)
                backend = create_backend(source, embedding.model)
                connector = create_connector(source)
                self.sync_source(source, backend, provider, connector, report)
            except VecsyncError as exc:
                report.status = "failed"
                report.error = str(exc)
                logger.error("Source %s aborted: %s", source.label, exc)
            except (ValueError, RuntimeError, OSError) as exc:
                report.status = "failed"
                report.error = f"{type(exc).__name__}: {exc}"
                logger.error("Source %s aborted: %s", source.label, report.error, exc_info=True)
            finally:
                if backend is not None:
                    backend.close()
            reports.append(report)
        return reports

    def sync_source(
        self,
        source: SourceConfig,
        backend: StorageBackend,
        provider: EmbeddingProvider,
        connector: Connector,
        report: SourceReport | None = None,
    ) -> SourceReport:
        """Reconcile one source against *backend*.

        Raises:
            StorageError / ConnectorError: Fatal for this source; the
                checkpoint is not advanced and no cleanup runs.
        """
        report = report or SourceReport(source=source.label)
        chunker = self._chunker or MarkdownChunker(chunk_size=source.chunk_size)
        visited: set[str] = set()

        key = connector.checkpoint_key
        checkpoint = backend.get_checkpoint(key) if key else None
        if checkpoint:
            logger.info("%s: resuming from checkpoint %s", source.label, checkpoint)

        def on_document(document_id: str, content: str) -> None:
            chunks = chunker.chunk(document_id, content, source)
            report.documents += 1
            logger.debug("%s: %d chunks", document_id, len(chunks))
            for chunk in chunks:
                visited.add(chunk.chunk_id)
                self._sync_chunk(chunk, backend, provider, report)

        result = connector.traverse(on_document, checkpoint=checkpoint)

        if key and result.checkpoint and result.checkpoint != checkpoint:
            if report.failed:
                logger.warning(
                    "%s: %d chunks failed to embed; checkpoint stays at %s",
                    source.label,
                    report.failed,
                    checkpoint,
                )
            else:
                backend.set_checkpoint(key, result.checkpoint)
                report.checkpoint = result.checkpoint
                logger.info("%s: checkpoint advanced to %s", source.label, result.checkpoint)

        scope = connector.cleanup_scope()
        if scope is None:
            return report
        if result.network_error:
            report.cleanup_skipped = True
            logger.warning(
                "%s: network errors during traversal; skipping cleanup of obsolete chunks",
                source.label,
            )
            return report

        for url in result.retained_urls:
            visited.update(c.chunk_id for c in backend.get_chunks_for_document(url))
        report.deleted = backend.remove_obsolete(scope, visited)
        return report

    @staticmethod
    def _sync_chunk(
        chunk: DocumentChunk,
        backend: StorageBackend,
        provider: EmbeddingProvider,
        report: SourceReport,
    ) -> None:
        short_id = f"{chunk.chunk_id[:8]}..."
        digest = chunk.content_hash
        if backend.lookup_hash(chunk.chunk_id) == digest:
            report.unchanged += 1
            logger.info("Skipping unchanged chunk %s", short_id)
            return

        try:
            vector = provider.embed(chunk.content)
        except EmbeddingFailure as exc:
            report.failed += 1
            logger.error("Embedding failed for chunk %s of %s: %s", short_id, chunk.url, exc)
            return

        backend.upsert(chunk, vector, digest)
        report.embedded += 1
        logger.debug("Stored chunk %s", short_id)
