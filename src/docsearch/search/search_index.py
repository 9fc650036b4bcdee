"""High-level search index: lifecycle, indexing, and presentation output.

``SearchIndex`` owns one ``IndexStore`` together with the indexer, the BM25
engine and the snippet settings. Callers open or create it explicitly and
close it when done; there is no process-wide index handle.
"""

from __future__ import annotations

from collections.abc import Iterable
import logging
from pathlib import Path
import time

from docsearch.config import Settings
from docsearch.domain.search import IndexStats, SearchHit, SearchResponse, SearchResult
from docsearch.observability.context import bind_context
from docsearch.observability.metrics import SEARCH_LATENCY, SEARCH_REQUESTS, track_latency
from docsearch.observability.tracing import create_span
from docsearch.search.bm25_engine import BM25SearchEngine
from docsearch.search.errors import SearchError
from docsearch.search.indexer import BatchIndexer, IndexBuildResult, RawDocument
from docsearch.search.snippet import highlight
from docsearch.search.sqlite_storage import IndexStore


logger = logging.getLogger(__name__)


class SearchIndex:
    """Keyword search over a single SQLite index artifact."""

    def __init__(self, store: IndexStore, settings: Settings | None = None) -> None:
        self.store = store
        self.settings = settings or Settings()
        self.indexer = BatchIndexer(store)
        self.engine = BM25SearchEngine(
            store,
            k1=self.settings.bm25_k1,
            b=self.settings.bm25_b,
            title_boost=self.settings.title_boost,
            enable_phrase_bonus=self.settings.enable_phrase_bonus,
        )

    @classmethod
    def open(cls, path: str | Path | None = None, settings: Settings | None = None) -> SearchIndex:
        settings = settings or Settings()
        return cls(IndexStore.open(path or settings.index_path), settings)

    @classmethod
    def create(cls, path: str | Path | None = None, settings: Settings | None = None) -> SearchIndex:
        settings = settings or Settings()
        store = IndexStore.create(path or settings.index_path, analyzer_name=settings.analyzer)
        return cls(store, settings)

    @classmethod
    def open_or_create(
        cls,
        path: str | Path | None = None,
        settings: Settings | None = None,
    ) -> tuple[SearchIndex, bool]:
        """Open the index, creating an empty one only when none exists yet."""
        settings = settings or Settings()
        store, created = IndexStore.open_or_create(path or settings.index_path, analyzer_name=settings.analyzer)
        return cls(store, settings), created

    @property
    def path(self) -> Path:
        return self.store.path

    def close(self) -> None:
        self.store.close()

    def __enter__(self) -> SearchIndex:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def index_documents(self, documents: Iterable[RawDocument], *, rebuild: bool = False) -> IndexBuildResult:
        return self.indexer.index(documents, rebuild=rebuild)

    def hits(self, query: str, limit: int | None = None) -> list[SearchHit]:
        """Ranked hits without presentation formatting."""
        return self.engine.search(query, limit=self.settings.resolve_limit(limit))

    def search(self, query: str, limit: int | None = None, *, snippet_length: int | None = None) -> SearchResponse:
        """Run ``query`` and return presentation-ready results.

        Without ``limit`` the ``default_limit`` setting applies rather than
        returning every match; pass ``0`` (or set ``default_limit=0``) for all.
        """
        effective_limit = self.settings.resolve_limit(limit)
        max_length = self.settings.snippet_length if snippet_length is None else snippet_length
        index_label = self.path.name
        started = time.perf_counter()

        with bind_context(index=str(self.path)):
            with create_span(
                "docsearch.search",
                attributes={"search.query": query, "index.path": str(self.path)},
            ) as span:
                try:
                    with track_latency(SEARCH_LATENCY, index=index_label):
                        hits = self.engine.search(query, limit=effective_limit)
                        results = [self._to_result(hit, max_length) for hit in hits]
                except SearchError:
                    SEARCH_REQUESTS.labels(index=index_label, outcome="error").inc()
                    raise
                span.set_attribute("search.hits", len(results))

            took_ms = (time.perf_counter() - started) * 1000
            SEARCH_REQUESTS.labels(index=index_label, outcome="hit" if results else "empty").inc()
            logger.debug("Query %r returned %d results in %.2fms", query, len(results), took_ms)
        return SearchResponse(query=query, total_hits=len(results), took_ms=took_ms, results=results)

    def stats(self) -> IndexStats:
        corpus = self.store.corpus_stats()
        return IndexStats(
            path=str(self.path),
            analyzer=self.store.analyzer_name,
            document_count=corpus.document_count,
            average_document_length=corpus.average_length,
        )

    def _to_result(self, hit: SearchHit, max_length: int) -> SearchResult:
        snippet = highlight(
            hit.record.body,
            hit.matched_terms,
            max_length,
            style=self.settings.snippet_style,
            marker=self.settings.snippet_marker,
            analyzer=self.store.analyzer,
        )
        return SearchResult(
            doc_id=hit.doc_id,
            url=hit.record.url,
            title=hit.record.title,
            snippet=snippet,
            score=hit.score,
            matched_terms=sorted(hit.matched_terms),
        )
