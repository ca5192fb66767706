"""Website crawler connector.

Breadth-first crawl from the root URL, optionally seeded from a sitemap.
Only pages below the root URL are followed. A transport failure, a 5xx,
408 or 429 on any page marks the traversal as incomplete so stored chunks
are never removed on the strength of a partial crawl.
"""

from __future__ import annotations

import logging
import posixpath
import urllib.error
import urllib.parse
from collections import deque
from collections.abc import Callable

from bs4 import BeautifulSoup

from vecsync.config import WebsiteSourceConfig
from vecsync.sources.base import Connector, OnDocument, TraversalResult
from vecsync.sources.documents import (
    DOCX_TYPES,
    PDF_TYPES,
    DocumentConversionError,
    docx_to_markdown,
    pdf_to_markdown,
)
from vecsync.sources.http import (
    HttpResponse,
    ResponseTooLarge,
    TooManyRedirects,
    extract_links,
    fetch,
    html_to_markdown,
    is_network_error,
)
from vecsync.storage.base import CleanupScope

logger = logging.getLogger(__name__)

_HTML_TYPES = {"text/html", "application/xhtml+xml"}
_TEXT_TYPES = {"text/plain", "text/markdown", "text/x-markdown"}
_PAGE_EXTENSIONS = {"", ".html", ".htm", ".pdf", ".docx"}
_TRANSIENT_STATUSES = {408, 429}
_SITEMAP_SCHEMES = {"http", "https"}
_MAX_SITEMAP_DEPTH = 3


def normalize_url(url: str) -> str:
    """Drop the query string and fragment of *url*."""
    parsed = urllib.parse.urlparse(url)
    return urllib.parse.urlunparse(parsed._replace(query="", fragment=""))


def url_prefix(url: str) -> str:
    """Origin plus path of *url*; the subtree a crawl owns."""
    parsed = urllib.parse.urlparse(url)
    return f"{parsed.scheme}://{parsed.netloc}{parsed.path}"


def should_process_url(url: str) -> bool:
    """Pages without an extension, HTML pages, PDF and DOCX files; assets are skipped."""
    path = urllib.parse.urlparse(url).path
    return posixpath.splitext(path)[1].lower() in _PAGE_EXTENSIONS


def _document_title(url: str) -> str:
    name = posixpath.basename(urllib.parse.urlparse(url).path.rstrip("/"))
    return posixpath.splitext(urllib.parse.unquote(name))[0] or url


class WebsiteConnector(Connector):
    """Crawl one website.

    Args:
        source: The website source definition.
        fetcher: Injectable HTTP GET, defaults to ``sources.http.fetch``.
    """

    def __init__(
        self, source: WebsiteSourceConfig, *, fetcher: Callable[..., HttpResponse] = fetch
    ) -> None:
        self.source = source
        self.root = normalize_url(source.url)
        self._prefix = url_prefix(source.url)
        self._fetch = fetcher

    def cleanup_scope(self) -> CleanupScope:
        return CleanupScope(url_prefix=self._prefix)

    def traverse(self, on_document: OnDocument, checkpoint: str | None = None) -> TraversalResult:
        result = TraversalResult()
        queue: deque[str] = deque([self.root])
        queued: set[str] = {self.root}
        visited: set[str] = set()

        if self.source.sitemap_url:
            for url in self._sitemap_urls(self.source.sitemap_url, result):
                if url not in queued:
                    queued.add(url)
                    queue.append(url)

        while queue:
            url = queue.popleft()
            if url in visited:
                continue
            visited.add(url)
            if not should_process_url(url):
                logger.debug("Skipping non-page URL %s", url)
                continue

            response = self._get(url, result)
            if response is None:
                continue

            links: list[str] = []
            if response.content_type in _HTML_TYPES:
                html = response.text
                content = html_to_markdown(html)
                links = extract_links(html, response.url)
            elif response.content_type in _TEXT_TYPES:
                content = response.text
            elif response.content_type in PDF_TYPES or response.content_type in DOCX_TYPES:
                convert = pdf_to_markdown if response.content_type in PDF_TYPES else docx_to_markdown
                try:
                    content = convert(response.body, _document_title(url))
                except DocumentConversionError as exc:
                    logger.error("Skipping %s: %s", url, exc)
                    result.retained_urls.add(url)
                    continue
            else:
                logger.info("Skipping %s: unsupported content type %s", url, response.content_type)
                continue

            if content.strip():
                on_document(url, content)
                result.documents += 1

            for link in links:
                candidate = normalize_url(link)
                if candidate.startswith(self._prefix) and candidate not in queued:
                    queued.add(candidate)
                    queue.append(candidate)

        logger.info(
            "Crawl of %s finished: %d pages processed, %d visited%s",
            self.root,
            result.documents,
            len(visited),
            " (with network errors)" if result.network_error else "",
        )
        return result

    def _get(self, url: str, result: TraversalResult) -> HttpResponse | None:
        """Fetch *url*, recording failures on *result*; None means skip the page."""
        try:
            return self._fetch(url, max_bytes=self.source.max_size)
        except ResponseTooLarge:
            logger.warning("Skipping %s: larger than max_size (%d bytes)", url, self.source.max_size)
            result.retained_urls.add(url)
        except urllib.error.HTTPError as exc:
            if exc.code >= 500 or exc.code in _TRANSIENT_STATUSES:
                logger.warning("Transient HTTP %d for %s", exc.code, url)
                result.network_error = True
                result.retained_urls.add(url)
            else:
                logger.info("Skipping %s: HTTP %d", url, exc.code)
        except (TooManyRedirects, ValueError) as exc:
            logger.warning("Skipping %s: %s", url, exc)
        except OSError as exc:
            if not is_network_error(exc):
                raise
            logger.warning("Network error fetching %s: %s", url, exc)
            result.network_error = True
        return None

    def _sitemap_urls(self, sitemap_url: str, result: TraversalResult, depth: int = 0) -> list[str]:
        """Page URLs listed in a sitemap (following sitemap indexes) below the root."""
        response = self._get(sitemap_url, result)
        if response is None:
            return []
        soup = BeautifulSoup(response.text, "html.parser")
        locations = []
        for loc in soup.find_all("loc"):
            location = urllib.parse.urljoin(response.url or sitemap_url, loc.get_text(strip=True))
            if urllib.parse.urlparse(location).scheme in _SITEMAP_SCHEMES:
                locations.append(location)
            else:
                logger.warning("Ignoring sitemap entry %s in %s", location, sitemap_url)

        if soup.find("sitemapindex") is not None:
            if depth >= _MAX_SITEMAP_DEPTH:
                logger.warning("Sitemap index nesting too deep at %s", sitemap_url)
                return []
            urls: list[str] = []
            for nested in locations:
                urls.extend(self._sitemap_urls(nested, result, depth + 1))
            return urls

        urls = [normalize_url(loc) for loc in locations]
        logger.info("Sitemap %s lists %d URLs", sitemap_url, len(urls))
        return [u for u in urls if u.startswith(self._prefix)]
