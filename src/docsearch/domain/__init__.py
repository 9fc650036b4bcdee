"""Domain layer - immutable value objects with no infrastructure dependencies."""

from docsearch.domain.search import (
    DocumentRecord,
    IndexStats,
    Query,
    SearchHit,
    SearchResponse,
    SearchResult,
    SourceDocument,
)


__all__ = [
    "DocumentRecord",
    "IndexStats",
    "Query",
    "SearchHit",
    "SearchResponse",
    "SearchResult",
    "SourceDocument",
]
