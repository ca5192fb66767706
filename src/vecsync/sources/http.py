"""HTTP fetching and HTML conversion shared by the connectors.

Requests go through urllib with:
- Allowed URL schemes: https:// and http:// only.
- Timeout: 30 seconds (connect + read).
- Max redirects: 3.
- A response body cap (``ResponseTooLarge`` when exceeded).

HTTP error statuses surface as ``urllib.error.HTTPError``; connectors decide
which of them are transient.
"""

from __future__ import annotations

import http.client
import json
import urllib.error
import urllib.parse
import urllib.request
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

import html2text
from bs4 import BeautifulSoup

_USER_AGENT = "vecsync/0.1"
_MAX_BYTES = 10 * 1024 * 1024  # 10 MB
_TIMEOUT = 30  # seconds
_MAX_REDIRECTS = 3
_ALLOWED_SCHEMES = {"https", "http"}

# Sphinx / MkDocs / generic main-content containers, most specific first.
_MAIN_CONTENT_SELECTORS = ('div[role="main"].document', "div[role=main]", "main", "article")

# html2text converter; headings come out as ATX '#' lines for the chunker.
_h2t = html2text.HTML2Text()
_h2t.ignore_links = True
_h2t.ignore_images = True
_h2t.body_width = 0


class ResponseTooLarge(ValueError):
    """Raised when a response body exceeds the caller's size limit."""


class TooManyRedirects(ValueError):
    """Raised after more than the allowed number of redirects."""


@dataclass
class HttpResponse:
    url: str  # final URL after redirects
    status: int
    content_type: str  # without parameters, lower-cased
    body: bytes
    headers: Mapping[str, str] = field(default_factory=dict)

    @property
    def text(self) -> str:
        return self.body.decode(self.charset, errors="replace")

    @property
    def charset(self) -> str:
        raw = self.headers.get("Content-Type", "") or ""
        for part in raw.split(";")[1:]:
            key, _, value = part.strip().partition("=")
            if key.lower() == "charset" and value:
                return value.strip('"')
        return "utf-8"

    def json(self) -> Any:
        return json.loads(self.text)


def fetch(
    url: str,
    *,
    headers: Mapping[str, str] | None = None,
    params: Mapping[str, Any] | None = None,
    timeout: float = _TIMEOUT,
    max_bytes: int = _MAX_BYTES,
) -> HttpResponse:
    """GET *url* (with optional query *params*) and return the response.

    Raises:
        ValueError: Unsupported URL scheme.
        ResponseTooLarge: Body larger than *max_bytes*.
        TooManyRedirects: Redirect chain longer than the limit.
        urllib.error.HTTPError: Non-2xx status.
        urllib.error.URLError / OSError: Transport failure.
    """
    parsed = urllib.parse.urlparse(url)
    if parsed.scheme not in _ALLOWED_SCHEMES:
        raise ValueError(
            f"Unsupported URL scheme '{parsed.scheme}'. Only https:// and http:// are allowed."
        )
    if params:
        sep = "&" if parsed.query else "?"
        url = f"{url}{sep}{urllib.parse.urlencode(params)}"

    request = urllib.request.Request(url, headers={"User-Agent": _USER_AGENT, **(headers or {})})
    opener = urllib.request.build_opener(_LimitedRedirectHandler(_MAX_REDIRECTS))

    with opener.open(request, timeout=timeout) as response:
        body = response.read(max_bytes + 1)
        if len(body) > max_bytes:
            raise ResponseTooLarge(f"Response body of '{url}' exceeds {max_bytes} bytes.")
        raw_ct = response.headers.get("Content-Type", "text/html")
        return HttpResponse(
            url=response.geturl(),
            status=response.status,
            content_type=raw_ct.split(";")[0].strip().lower(),
            body=body,
            headers=dict(response.headers.items()),
        )


def is_network_error(exc: BaseException) -> bool:
    """True for transport-level failures (no HTTP status was received)."""
    if isinstance(exc, urllib.error.HTTPError):
        return False
    return isinstance(
        exc,
        (urllib.error.URLError, TimeoutError, ConnectionError, http.client.HTTPException),
    )


def html_to_markdown(html: str) -> str:
    """Convert an HTML page to Markdown, keeping only its main content."""
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup.find_all(["script", "style", "nav", "footer", "head"]):
        tag.decompose()

    root = None
    for selector in _MAIN_CONTENT_SELECTORS:
        root = soup.select_one(selector)
        if root is not None:
            break
    if root is None:
        root = soup.body or soup

    return _h2t.handle(str(root)).strip()


def extract_links(html: str, base_url: str) -> list[str]:
    """Absolute URLs of every <a href> in *html*, in document order."""
    soup = BeautifulSoup(html, "html.parser")
    links: list[str] = []
    for anchor in soup.find_all("a", href=True):
        href = anchor["href"].strip()
        if not href or href.startswith(("mailto:", "javascript:", "tel:")):
            continue
        links.append(urllib.parse.urljoin(base_url, href))
    return links


class _LimitedRedirectHandler(urllib.request.HTTPRedirectHandler):
    """Raise an error after more than *max_redirects* redirects."""

    def __init__(self, max_redirects: int) -> None:
        self._max_redirects = max_redirects
        self._count = 0

    def redirect_request(self, req, fp, code, msg, headers, newurl):
        self._count += 1
        if self._count > self._max_redirects:
            raise TooManyRedirects(
                f"Too many redirects (>{self._max_redirects}) for URL '{req.full_url}'."
            )
        return super().redirect_request(req, fp, code, msg, headers, newurl)
