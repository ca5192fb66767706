"""Exception taxonomy shared by connectors, embedders and storage backends.

Not-found is never an error: lookups return ``None`` and queries return ``[]``.
"""

from __future__ import annotations


class VecsyncError(Exception):
    """Base class for every error raised deliberately by vecsync."""


class EmbeddingFailure(VecsyncError):
    """The embedding provider rejected or failed a request.

    Raised for authentication and quota failures, malformed responses and
    empty input. The orchestrator treats it as fatal for one chunk only.
    """


class StorageError(VecsyncError):
    """A storage backend could not be reached or a write failed."""


class ConnectorError(VecsyncError):
    """A source could not be fetched, even after bounded retries."""
