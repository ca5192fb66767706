"""Source connector contract."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass, field

from vecsync.storage.base import CleanupScope

# on_document(document_identifier, markdown_content)
OnDocument = Callable[[str, str], None]


@dataclass
class TraversalResult:
    """Outcome of one traversal.

    Attributes:
        network_error: At least one fetch failed at the transport level; the
            visited set is incomplete and cleanup must not run.
        checkpoint: New checkpoint value for checkpointed sources (None when
            the source has none or nothing was processed).
        documents: Number of documents handed to ``on_document``.
        retained_urls: Documents deliberately skipped (oversized, unreadable)
            whose stored chunks must survive cleanup.
    """

    network_error: bool = False
    checkpoint: str | None = None
    documents: int = 0
    retained_urls: set[str] = field(default_factory=set)


class Connector(ABC):
    """Enumerates the documents of one configured source.

    Exceptions raised by ``on_document`` always propagate out of
    ``traverse()``.
    """

    #: Identity under which the checkpoint is stored; None = no checkpoint.
    checkpoint_key: str | None = None

    @abstractmethod
    def traverse(self, on_document: OnDocument, checkpoint: str | None = None) -> TraversalResult:
        """Call *on_document* once per document and report how the traversal went."""

    def cleanup_scope(self) -> CleanupScope | None:
        """URLs this source owns for obsolete-chunk removal; None = never clean up."""
        return None
