"""vecsync source connectors: GitHub issues, websites, local directories."""

from __future__ import annotations

import os

from vecsync.config import (
    GITHUB_TOKEN_ENV,
    GithubSourceConfig,
    LocalDirectorySourceConfig,
    SourceConfig,
    WebsiteSourceConfig,
)
from vecsync.sources.base import Connector, OnDocument, TraversalResult
from vecsync.sources.github import GithubIssuesConnector
from vecsync.sources.local import LocalDirectoryConnector
from vecsync.sources.website import WebsiteConnector


def create_connector(source: SourceConfig) -> Connector:
    """Return the connector variant for *source*."""
    if isinstance(source, GithubSourceConfig):
        return GithubIssuesConnector(source, os.environ.get(GITHUB_TOKEN_ENV))
    if isinstance(source, WebsiteSourceConfig):
        return WebsiteConnector(source)
    if isinstance(source, LocalDirectorySourceConfig):
        return LocalDirectoryConnector(source)
    raise ValueError(f"No connector for source type '{source.type}'")


__all__ = [
    "Connector",
    "GithubIssuesConnector",
    "LocalDirectoryConnector",
    "OnDocument",
    "TraversalResult",
    "WebsiteConnector",
    "create_connector",
]
