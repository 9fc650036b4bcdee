"""Search data models."""

from __future__ import annotations

from array import array
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType


@dataclass(frozen=True)
class Posting:
    """A posting represents a term's occurrences in one document.

    ``positions`` are offsets in the document's term stream (title terms
    first, then body terms, then url terms), ascending and unique.
    ``title_frequency`` counts how many of those positions fall inside the
    title. ``doc_length`` counts title and body terms only.
    """

    doc_id: str
    frequency: int = 0
    positions: array = None  # type: ignore[assignment]
    title_frequency: int = 0
    doc_length: int = 0

    def __post_init__(self) -> None:
        if self.positions is None:
            object.__setattr__(self, "positions", array("I"))


@dataclass(frozen=True)
class PostingsList:
    """Postings of a single term keyed by document id."""

    term: str
    _postings: Mapping[str, Posting] = field(default_factory=dict, repr=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "_postings", MappingProxyType(dict(self._postings)))

    @classmethod
    def from_postings(cls, term: str, postings: Iterable[Posting]) -> PostingsList:
        return cls(term, {posting.doc_id: posting for posting in postings})

    @classmethod
    def empty(cls, term: str) -> PostingsList:
        return cls(term)

    def __len__(self) -> int:
        return len(self._postings)

    def __iter__(self) -> Iterator[Posting]:
        return iter(self._postings.values())

    def __contains__(self, doc_id: object) -> bool:
        return doc_id in self._postings

    def get(self, doc_id: str) -> Posting | None:
        return self._postings.get(doc_id)

    @property
    def document_frequency(self) -> int:
        return len(self._postings)
