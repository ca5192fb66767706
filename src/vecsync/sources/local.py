"""Local directory connector."""

from __future__ import annotations

import logging
import os
from collections.abc import Iterator
from pathlib import Path

from vecsync.config import LocalDirectorySourceConfig
from vecsync.sources.base import Connector, OnDocument, TraversalResult
from vecsync.sources.documents import DocumentConversionError, docx_to_markdown, pdf_to_markdown
from vecsync.sources.http import html_to_markdown
from vecsync.storage.base import CleanupScope

logger = logging.getLogger(__name__)

_HTML_EXTENSIONS = {".html", ".htm"}
_CONVERTERS = {".pdf": pdf_to_markdown, ".docx": docx_to_markdown}


class LocalDirectoryConnector(Connector):
    """Walk a directory tree and emit every matching text file.

    Document identifiers are ``{url_rewrite_prefix}/{relative path}`` when a
    rewrite prefix is configured, else ``file://{absolute path}``.
    """

    def __init__(self, source: LocalDirectorySourceConfig) -> None:
        self.source = source
        self.root = Path(source.path).expanduser().resolve()
        self._rewrite = source.url_rewrite_prefix.rstrip("/") if source.url_rewrite_prefix else None

    def cleanup_scope(self) -> CleanupScope:
        if self._rewrite:
            return CleanupScope(url_prefix=f"{self._rewrite}/")
        return CleanupScope(url_prefix=f"{self.root.as_uri()}/")

    def file_url(self, path: Path) -> str:
        resolved = path.resolve()
        if self._rewrite and resolved.is_relative_to(self.root):
            return f"{self._rewrite}/{resolved.relative_to(self.root).as_posix()}"
        return resolved.as_uri()

    def traverse(self, on_document: OnDocument, checkpoint: str | None = None) -> TraversalResult:
        result = TraversalResult()
        logger.info("Scanning %s", self.root)

        for path in self._iter_files():
            url = self.file_url(path)
            try:
                size = path.stat().st_size
                if size > self.source.max_size:
                    logger.warning(
                        "Skipping %s: %d bytes exceeds max_size (%d)", path, size, self.source.max_size
                    )
                    result.retained_urls.add(url)
                    continue
                content = self._read(path)
            except (OSError, UnicodeDecodeError, DocumentConversionError) as exc:
                logger.error("Cannot read %s: %s", path, exc)
                result.retained_urls.add(url)
                continue

            if not content.strip():
                logger.debug("Skipping empty file %s", path)
                continue

            on_document(url, content)
            result.documents += 1

        logger.info("%s: %d files processed", self.root, result.documents)
        return result

    def _read(self, path: Path) -> str:
        """File content as Markdown; PDF, DOCX and HTML files are converted."""
        ext = path.suffix.lower()
        if ext in _CONVERTERS:
            return _CONVERTERS[ext](path.read_bytes(), path.stem)
        content = path.read_text(encoding=self.source.encoding)
        if ext in _HTML_EXTENSIONS:
            return html_to_markdown(content)
        return content

    def _iter_files(self) -> Iterator[Path]:
        """Matching files in sorted order; symlinked directories are not followed."""
        include = {e.lower() for e in self.source.include_extensions}
        exclude = {e.lower() for e in self.source.exclude_extensions}

        for dirpath, dirnames, filenames in os.walk(self.root):
            dirnames.sort()
            if not self.source.recursive:
                dirnames.clear()
            for name in sorted(filenames):
                path = Path(dirpath) / name
                ext = path.suffix.lower()
                if ext in exclude or (include and ext not in include):
                    continue
                if path.is_file():
                    yield path
