"""Domain models for indexing and search.

Value objects are immutable (frozen=True) and carry no infrastructure
dependencies. Storage and query code construct them; presentation code only
reads them.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class SourceDocument(BaseModel):
    """Record handed to the indexer by the crawler/extractor collaborator."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(min_length=1, description="Stable unique document id, e.g. a file path")
    title: str = ""
    body: str = ""
    url: str = ""

    @field_validator("id")
    @classmethod
    def _reject_blank_id(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("document id must not be blank")
        return value

    @classmethod
    def coerce(cls, raw: SourceDocument | Sequence[Any] | Mapping[str, Any]) -> SourceDocument:
        """Build a SourceDocument from a model, an ``(id, title, body, url)`` tuple, or a mapping."""
        if isinstance(raw, cls):
            return raw
        if isinstance(raw, Mapping):
            return cls.model_validate(dict(raw))
        if isinstance(raw, Sequence) and not isinstance(raw, (str, bytes)):
            if len(raw) != 4:
                raise ValueError(f"expected (id, title, body, url), got {len(raw)} fields")
            doc_id, title, body, url = raw
            return cls(id=doc_id, title=title or "", body=body or "", url=url or "")
        raise TypeError(f"unsupported document record type: {type(raw).__name__}")


class DocumentRecord(BaseModel):
    """Stored document metadata. Replaced wholesale when the id is re-indexed."""

    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    body: str
    url: str
    length: int = Field(ge=0, description="Number of terms in the title+body stream")


class Query(BaseModel):
    """Analyzed user query."""

    model_config = ConfigDict(frozen=True)

    raw: str
    terms: tuple[str, ...] = ()

    @property
    def unique_terms(self) -> tuple[str, ...]:
        """Terms in first-occurrence order without duplicates."""
        return tuple(dict.fromkeys(self.terms))

    def is_empty(self) -> bool:
        return not self.terms


class SearchHit(BaseModel):
    """A scored document for one query. Never persisted."""

    model_config = ConfigDict(frozen=True)

    doc_id: str
    score: float
    record: DocumentRecord
    matched_terms: frozenset[str] = frozenset()


class SearchResult(BaseModel):
    """Presentation-ready result item."""

    model_config = ConfigDict(frozen=True)

    doc_id: str
    url: str
    title: str
    snippet: str
    score: float
    matched_terms: list[str] = Field(default_factory=list)


class SearchResponse(BaseModel):
    """Complete response for one query."""

    model_config = ConfigDict(frozen=True)

    query: str
    total_hits: int
    took_ms: float
    results: list[SearchResult]


class IndexStats(BaseModel):
    """Summary of an index artifact."""

    model_config = ConfigDict(frozen=True)

    path: str
    analyzer: str
    document_count: int
    average_document_length: float
