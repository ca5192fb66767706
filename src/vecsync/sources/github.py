"""GitHub issue-tracker connector.

Lists issues updated since the persisted checkpoint (or the configured start
date), renders each issue plus its comments as one Markdown document, and
reports the newest ``updated_at`` it processed as the next checkpoint.
Rate-limit and transient responses are retried through ``RetryPolicy``.
"""

from __future__ import annotations

import logging
import time
import urllib.error
from collections.abc import Callable, Iterator
from datetime import datetime
from typing import Any

from vecsync.config import GithubSourceConfig
from vecsync.errors import ConnectorError
from vecsync.sources.base import Connector, OnDocument, TraversalResult
from vecsync.sources.http import HttpResponse, fetch, is_network_error
from vecsync.sources.retry import RetryPolicy, exponential_backoff

logger = logging.getLogger(__name__)

API_ROOT = "https://api.github.com"
_PER_PAGE = 100
_MAX_ATTEMPTS = 5
_BASE_DELAY = 5.0  # seconds

Fetcher = Callable[..., HttpResponse]


class GithubIssuesConnector(Connector):
    """Issues (not pull requests) of one repository.

    Args:
        source: The github source definition.
        token: Personal access token (may be None for public repos).
        fetcher: Injectable HTTP GET, defaults to ``sources.http.fetch``.
        sleep: Injectable sleep used between retries.
        clock: Injectable time source used for rate-limit reset waits.
    """

    def __init__(
        self,
        source: GithubSourceConfig,
        token: str | None = None,
        *,
        fetcher: Fetcher = fetch,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.source = source
        self.checkpoint_key = source.repo
        self._token = token
        self._fetch = fetcher
        self._clock = clock
        self._retry = RetryPolicy(self._classify, max_attempts=_MAX_ATTEMPTS, sleep=sleep)

    def traverse(self, on_document: OnDocument, checkpoint: str | None = None) -> TraversalResult:
        since = checkpoint or f"{self.source.start_date}T00:00:00Z"
        logger.info("Fetching issues of %s updated since %s", self.source.repo, since)

        result = TraversalResult(checkpoint=checkpoint)
        for issue in self._iter_issues(since):
            if "pull_request" in issue:
                continue
            number = issue["number"]
            url = f"https://github.com/{self.source.repo}/issues/{number}"
            comments = list(self._iter_items(f"/repos/{self.source.repo}/issues/{number}/comments", {}))
            logger.info("Processing issue #%s", number)

            on_document(url, render_issue_markdown(issue, comments))
            result.documents += 1

            updated = issue.get("updated_at")
            if updated and (result.checkpoint is None or updated > result.checkpoint):
                result.checkpoint = updated

        logger.info("%s: %d issues processed", self.source.repo, result.documents)
        return result

    # ------------------------------------------------------------------
    # API access
    # ------------------------------------------------------------------

    def _iter_issues(self, since: str) -> Iterator[dict[str, Any]]:
        params = {"state": "all", "sort": "updated", "direction": "asc", "since": since}
        yield from self._iter_items(f"/repos/{self.source.repo}/issues", params)

    def _iter_items(self, path: str, params: dict[str, Any]) -> Iterator[dict[str, Any]]:
        """Page through a list endpoint until an empty or short page."""
        page = 1
        while True:
            query = {**params, "per_page": _PER_PAGE, "page": page}
            try:
                response = self._retry.call(
                    self._fetch,
                    f"{API_ROOT}{path}",
                    headers=self._headers(),
                    params=query,
                    description=f"GET {path} page {page}",
                )
                items = response.json()
            except (OSError, ValueError) as exc:
                raise ConnectorError(f"GET {path} page {page} failed: {exc}") from exc
            if not items:
                return
            yield from items
            if len(items) < _PER_PAGE:
                return
            page += 1

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/vnd.github+json"}
        if self._token:
            headers["Authorization"] = f"token {self._token}"
        return headers

    def _classify(self, exc: Exception, attempt: int) -> float | None:
        """Seconds to wait before retrying *exc*, or None if it is fatal."""
        if isinstance(exc, urllib.error.HTTPError):
            headers = exc.headers or {}
            if exc.code == 429 or (exc.code == 403 and _looks_rate_limited(headers)):
                return self._rate_limit_wait(headers, attempt)
            if exc.code >= 500:
                return exponential_backoff(attempt, base=_BASE_DELAY)
            return None
        if is_network_error(exc):
            return exponential_backoff(attempt, base=_BASE_DELAY)
        return None

    def _rate_limit_wait(self, headers, attempt: int) -> float:
        retry_after = headers.get("Retry-After")
        if retry_after and retry_after.isdigit():
            return float(retry_after)
        reset = headers.get("X-RateLimit-Reset")
        if reset and reset.isdigit():
            return max(0.0, int(reset) - self._clock()) + 1.0
        return exponential_backoff(attempt, base=_BASE_DELAY)


def _looks_rate_limited(headers) -> bool:
    # X-RateLimit-Reset is sent on every API response, so it is not a signal.
    return headers.get("X-RateLimit-Remaining") == "0" or headers.get("Retry-After") is not None


# ------------------------------------------------------------------
# Markdown rendering
# ------------------------------------------------------------------


def _format_date(value: str | None) -> str:
    if not value:
        return "unknown"
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00")).strftime("%a %b %d %Y")
    except ValueError:
        return value


def render_issue_markdown(issue: dict[str, Any], comments: list[dict[str, Any]]) -> str:
    """Render an issue and its comments as a single Markdown document."""
    user = (issue.get("user") or {}).get("login", "unknown")
    labels = ", ".join(f"`{label['name']}`" for label in issue.get("labels") or []) or "None"

    lines = [
        f"# Issue #{issue['number']}: {issue.get('title', '')}",
        "",
        f"- **Author:** {user}",
        f"- **State:** {issue.get('state', 'unknown')}",
        f"- **Created on:** {_format_date(issue.get('created_at'))}",
        f"- **Updated on:** {_format_date(issue.get('updated_at'))}",
        f"- **Labels:** {labels}",
        "",
        "## Description",
        "",
        issue.get("body") or "_No description._",
        "",
        "## Comments",
        "",
    ]
    if not comments:
        lines.append("_No comments._")
    for comment in comments:
        author = (comment.get("user") or {}).get("login", "unknown")
        lines += [
            f"### {author} - {_format_date(comment.get('created_at'))}",
            "",
            comment.get("body") or "",
            "",
            "---",
            "",
        ]
    return "\n".join(lines).rstrip() + "\n"
