"""Exception hierarchy for the search stack."""

from __future__ import annotations


class SearchError(Exception):
    """Base class for all docsearch errors."""


class StorageUnavailable(SearchError):
    """Raised when the index cannot be opened, read, or written."""


class NotFound(SearchError, LookupError):
    """Raised when a lookup targets something that does not exist."""


class IndexNotFound(NotFound):
    """Raised by ``IndexStore.open`` when no index artifact exists at the path.

    This is the only open failure that callers may answer by creating a fresh
    index; every other failure is a ``StorageUnavailable``.
    """

    def __init__(self, path: object) -> None:
        super().__init__(f"No index found at {path}")
        self.path = path


class DocumentNotFound(NotFound):
    """Raised when a document id is not present in the index."""

    def __init__(self, doc_id: str) -> None:
        super().__init__(f"Document not found: {doc_id}")
        self.doc_id = doc_id


class MalformedInput(SearchError, ValueError):
    """Raised when an input record handed to the indexer is invalid."""


class BatchInProgress(SearchError, RuntimeError):
    """Raised when a second writer tries to open a batch on the same store."""


class BatchClosed(SearchError, RuntimeError):
    """Raised when a batch handle is used after commit or discard."""
