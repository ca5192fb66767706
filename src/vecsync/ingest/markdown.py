"""Markdown chunker: heading-aware splits with fixed-window fallback."""

from __future__ import annotations

import re

from vecsync.config import SourceConfig
from vecsync.db.models import DocumentChunk
from vecsync.ingest.base import BaseChunker, Segment

# ATX headings, H1 to H6.
_HEADING_RE = re.compile(r"^(#{1,6})\s+(.+?)(?:\s+#+)?\s*$")
_FENCE_RE = re.compile(r"^\s*(```|~~~)")


class MarkdownChunker(BaseChunker):
    """Split Markdown on heading boundaries, tracking the heading hierarchy.

    Strategy:
    - Every ATX heading outside a fenced code block starts a new *section*;
      the heading line stays in the section text.
    - A level-N heading replaces level N of the hierarchy and drops deeper levels.
    - Content before the first heading becomes its own section.
    - Sections that exceed ``chunk_size`` tokens are further split with
      ``_split_fixed_window()``; each piece keeps the section's hierarchy.
    - Blank sections are dropped.
    """

    def chunk(self, document_id: str, content: str, source: SourceConfig) -> list[DocumentChunk]:
        if not content.strip():
            return []

        segments: list[Segment] = []
        for text, hierarchy in self._split_on_headings(content):
            if self.count_tokens(text) <= self.chunk_size:
                segments.append(Segment(text, hierarchy))
            else:
                segments.extend(Segment(t, hierarchy) for t in self._split_fixed_window(text))

        return self._make_chunks(document_id, segments, source)

    def _split_on_headings(self, content: str) -> list[tuple[str, list[str]]]:
        """Return (section_text, heading_hierarchy) pairs in document order."""
        sections: list[tuple[str, list[str]]] = []
        hierarchy: list[str] = []
        current: list[str] = []
        current_hierarchy: list[str] = []
        in_fence = False

        def flush() -> None:
            text = "\n".join(current).strip()
            if text:
                sections.append((text, current_hierarchy))

        for line in content.splitlines():
            if _FENCE_RE.match(line):
                in_fence = not in_fence
            match = None if in_fence else _HEADING_RE.match(line)
            if match:
                flush()
                level = len(match.group(1))
                hierarchy = hierarchy[: level - 1]
                hierarchy += [""] * (level - 1 - len(hierarchy))
                hierarchy.append(match.group(2).strip())
                current = [line]
                current_hierarchy = [h for h in hierarchy if h]
            else:
                current.append(line)
        flush()
        return sections
