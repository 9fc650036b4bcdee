"""BM25 ranking over the SQLite index store."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
import logging

from docsearch.domain.search import Query, SearchHit
from docsearch.search.models import PostingsList
from docsearch.search.phrase import phrase_multiplier
from docsearch.search.sqlite_storage import IndexSnapshot, IndexStore
from docsearch.search.stats import bm25, calculate_idf


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RankedDocument:
    """Represents a scored document produced by the BM25 engine."""

    doc_id: str
    score: float
    matched_terms: frozenset[str]


class BM25SearchEngine:
    """Score documents stored in an ``IndexStore`` against keyword queries.

    Matching uses OR semantics: a document is a candidate when it contains at
    least one query term. Title occurrences count ``title_boost`` times.
    """

    def __init__(
        self,
        store: IndexStore,
        *,
        k1: float = 1.2,
        b: float = 0.75,
        title_boost: float = 2.0,
        enable_phrase_bonus: bool = False,
    ) -> None:
        if title_boost < 1.0:
            raise ValueError(f"title_boost must be >= 1.0, got {title_boost}")
        self.store = store
        self.k1 = k1
        self.b = b
        self.title_boost = title_boost
        self.enable_phrase_bonus = enable_phrase_bonus

    def tokenize_query(self, raw: str) -> Query:
        """Analyze ``raw`` with the analyzer the index was built with."""
        tokens = self.store.analyzer(raw or "")
        return Query(raw=raw or "", terms=tuple(token.text for token in tokens))

    def search(self, raw: str | Query, limit: int | None = None) -> list[SearchHit]:
        """Return hits ordered by score descending, ties broken by doc id.

        ``limit`` of ``None`` or ``0`` returns every match.
        """
        if limit is not None and limit < 0:
            raise ValueError(f"limit must be >= 0, got {limit}")

        query = raw if isinstance(raw, Query) else self.tokenize_query(raw)
        if query.is_empty():
            return []

        with self.store.snapshot() as snapshot:
            ranked = self.rank(query, snapshot)
            if limit:
                ranked = ranked[:limit]
            records = snapshot.get_documents([item.doc_id for item in ranked])

        hits: list[SearchHit] = []
        for item in ranked:
            record = records.get(item.doc_id)
            if record is None:
                logger.warning("Posting references unknown document %s; skipping", item.doc_id)
                continue
            hits.append(SearchHit(doc_id=item.doc_id, score=item.score, record=record, matched_terms=item.matched_terms))
        return hits

    def rank(self, query: Query, snapshot: IndexSnapshot) -> list[RankedDocument]:
        """Score every candidate document for ``query`` within one snapshot."""
        stats = snapshot.corpus_stats()
        if stats.document_count == 0:
            return []

        postings_by_term: dict[str, PostingsList] = {}
        for term in query.unique_terms:
            postings = snapshot.get_postings(term)
            if len(postings):
                postings_by_term[term] = postings
        if not postings_by_term:
            return []

        avg_length = stats.average_length
        scores: dict[str, float] = {}
        matched: dict[str, set[str]] = {}
        for term, postings in postings_by_term.items():
            idf = calculate_idf(postings.document_frequency, stats.document_count)
            for posting in postings:
                weighted_tf = posting.frequency + (self.title_boost - 1.0) * posting.title_frequency
                weight = bm25(weighted_tf, posting.doc_length, avg_length, k1=self.k1, b=self.b)
                scores[posting.doc_id] = scores.get(posting.doc_id, 0.0) + idf * weight
                matched.setdefault(posting.doc_id, set()).add(term)

        if self.enable_phrase_bonus and len(query.unique_terms) > 1:
            self._apply_phrase_bonus(scores, postings_by_term, len(query.unique_terms))

        ranked = [
            RankedDocument(doc_id=doc_id, score=score, matched_terms=frozenset(matched[doc_id]))
            for doc_id, score in scores.items()
        ]
        ranked.sort(key=lambda item: (-item.score, item.doc_id))
        return ranked

    def _apply_phrase_bonus(
        self,
        scores: dict[str, float],
        postings_by_term: Mapping[str, PostingsList],
        term_count: int,
    ) -> None:
        if len(postings_by_term) < term_count:
            return
        for doc_id in list(scores):
            term_positions = {}
            for term, postings in postings_by_term.items():
                posting = postings.get(doc_id)
                if posting is None:
                    break
                term_positions[term] = list(posting.positions)
            else:
                scores[doc_id] *= phrase_multiplier(term_positions, term_count)
