"""vecsync ingest pipeline: content processor and orchestrator."""

from vecsync.ingest.base import BaseChunker
from vecsync.ingest.markdown import MarkdownChunker
from vecsync.ingest.orchestrator import IngestionOrchestrator, SourceReport

__all__ = [
    "BaseChunker",
    "IngestionOrchestrator",
    "MarkdownChunker",
    "SourceReport",
]
