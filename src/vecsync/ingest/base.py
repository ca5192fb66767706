"""Base chunker interface for the content processor."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field

from vecsync.config import GithubSourceConfig, SourceConfig
from vecsync.db.models import DocumentChunk, make_chunk_id


@dataclass
class Segment:
    """A piece of chunk text plus the heading path it sits under."""

    text: str
    hierarchy: list[str] = field(default_factory=list)


class BaseChunker(ABC):
    """Abstract base for all chunkers.

    Subclasses implement ``chunk()`` and may use ``_split_fixed_window()``
    and ``_make_chunks()`` for the fixed-window fallback path.

    Token counting uses a 4-chars-per-token approximation; no external
    tokenizer dependency is required.
    """

    def __init__(self, chunk_size: int = 1000, overlap: float = 0.10) -> None:
        if chunk_size < 1:
            raise ValueError("chunk_size must be >= 1")
        if not 0.0 <= overlap < 1.0:
            raise ValueError("overlap must be in [0.0, 1.0)")
        self.chunk_size = chunk_size
        self.overlap = overlap

    @abstractmethod
    def chunk(self, document_id: str, content: str, source: SourceConfig) -> list[DocumentChunk]:
        """Split *content* of the document *document_id* into ordered chunks.

        Args:
            document_id: The document's URL / identifier; chunk ids derive from it.
            content: Full Markdown text of the document.
            source: The source definition (product, version, repo metadata).

        Returns:
            Chunks with contiguous ``chunk_index`` from 0 and a shared
            ``total_chunks``.
        """

    @staticmethod
    def count_tokens(text: str) -> int:
        """Approximate token count: 4 characters ≈ 1 token."""
        return max(1, len(text) // 4)

    def _split_fixed_window(self, text: str) -> list[str]:
        """Split *text* into fixed-window segments with overlap.

        Window size = ``self.chunk_size * 4`` characters.
        Overlap     = ``self.overlap`` fraction of window size.
        Segments are stripped; empty segments are omitted.
        """
        if not text.strip():
            return []

        char_size = self.chunk_size * 4
        step = max(1, char_size - int(char_size * self.overlap))

        segments: list[str] = []
        pos = 0
        while pos < len(text):
            end = min(pos + char_size, len(text))
            segment = text[pos:end].strip()
            if segment:
                segments.append(segment)
            if end >= len(text):
                break
            pos += step
        return segments

    def _make_chunks(
        self, document_id: str, segments: list[Segment], source: SourceConfig
    ) -> list[DocumentChunk]:
        """Convert segments into sequentially indexed DocumentChunks."""
        repo = source.repo if isinstance(source, GithubSourceConfig) else None
        total = len(segments)
        return [
            DocumentChunk(
                chunk_id=make_chunk_id(document_id, i),
                content=seg.text,
                url=document_id,
                chunk_index=i,
                total_chunks=total,
                section=seg.hierarchy[-1] if seg.hierarchy else "Introduction",
                heading_hierarchy=list(seg.hierarchy),
                product_name=source.product_name,
                version=source.version,
                repo=repo,
            )
            for i, seg in enumerate(segments)
        ]
