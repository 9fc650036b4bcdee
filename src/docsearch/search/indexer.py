"""Batch indexing on top of the SQLite index store.

The indexer turns source records into document records plus per-term
postings and writes them through a single store batch, so a run is either
fully committed or leaves the previous index untouched.
"""

from __future__ import annotations

from array import array
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
import logging
from pathlib import PurePath
import time
from typing import Any, Union

from pydantic import ValidationError

from docsearch.domain.search import DocumentRecord, SourceDocument
from docsearch.observability.context import bind_context
from docsearch.observability.metrics import DOCUMENTS_INDEXED
from docsearch.observability.tracing import create_span
from docsearch.search.analyzers import Analyzer
from docsearch.search.errors import MalformedInput
from docsearch.search.models import Posting
from docsearch.search.sqlite_storage import IndexStore


logger = logging.getLogger(__name__)

RawDocument = Union[SourceDocument, Sequence[Any], Mapping[str, Any]]


@dataclass(frozen=True)
class IndexBuildResult:
    """Outcome of one indexing run."""

    documents_indexed: int
    documents_replaced: int
    terms_indexed: int
    duration_seconds: float
    batch_id: str = ""


def default_title(doc_id: str) -> str:
    """Title used when a document has none: the final path component of its id."""
    name = PurePath(doc_id.replace("\\", "/")).name
    return name or doc_id


def build_postings(
    doc_id: str,
    title: str,
    body: str,
    analyzer: Analyzer,
    url: str = "",
) -> tuple[int, list[tuple[str, Posting]]]:
    """Tokenize ``title``, ``body`` and ``url`` into one term stream.

    Returns the document length and one posting per distinct term, with
    positions counted across the whole stream (title terms first, url terms
    last). Url terms make a document findable by its path components but do
    not count toward its length.
    """
    title_terms = [token.text for token in analyzer(title)]
    body_terms = [token.text for token in analyzer(body)]
    url_terms = [token.text for token in analyzer(url)]
    title_length = len(title_terms)
    doc_length = title_length + len(body_terms)

    positions_by_term: dict[str, list[int]] = {}
    for position, term in enumerate(title_terms + body_terms + url_terms):
        positions_by_term.setdefault(term, []).append(position)

    postings = []
    for term, positions in positions_by_term.items():
        title_hits = sum(1 for pos in positions if pos < title_length)
        postings.append(
            (
                term,
                Posting(
                    doc_id=doc_id,
                    frequency=len(positions),
                    positions=array("I", positions),
                    title_frequency=title_hits,
                    doc_length=doc_length,
                ),
            )
        )
    return doc_length, postings


class BatchIndexer:
    """Write a stream of source documents into an ``IndexStore`` atomically."""

    def __init__(self, store: IndexStore) -> None:
        self.store = store

    def prepare(self, raw: RawDocument) -> tuple[DocumentRecord, list[tuple[str, Posting]]]:
        """Validate one raw record and build its document record and postings."""
        try:
            source = SourceDocument.coerce(raw)
        except (ValidationError, ValueError, TypeError) as exc:
            raise MalformedInput(f"Invalid document record: {exc}") from exc

        title = source.title if source.title.strip() else default_title(source.id)
        doc_length, postings = build_postings(source.id, title, source.body, self.store.analyzer, source.url)
        record = DocumentRecord(id=source.id, title=title, body=source.body, url=source.url, length=doc_length)
        return record, postings

    def index(self, documents: Iterable[RawDocument], *, rebuild: bool = False) -> IndexBuildResult:
        """Index ``documents`` in one batch.

        With ``rebuild`` the committed index is replaced by exactly these
        documents. If consuming the iterable or staging a record raises, the
        batch is discarded and the original exception propagates.
        """
        started = time.perf_counter()
        with bind_context(index=str(self.store.path)), create_span(
            "docsearch.index",
            attributes={"index.path": str(self.store.path), "index.rebuild": rebuild},
        ) as span:
            handle = self.store.begin_batch(replace_all=rebuild)
            try:
                for raw in documents:
                    record, postings = self.prepare(raw)
                    self.store.add_to_batch(handle, record, postings)
            except BaseException:
                logger.warning("Indexing into %s aborted; discarding batch %s", self.store.path, handle.batch_id)
                self.store.discard(handle)
                raise

            summary = self.store.commit(handle)
            duration = time.perf_counter() - started
            DOCUMENTS_INDEXED.labels(index=self.store.path.name).inc(summary.documents_written)
            span.set_attribute("index.documents", summary.documents_written)
            span.set_attribute("index.replaced", summary.documents_replaced)

        logger.info(
            "Indexed %d documents into %s in %.3fs (replaced=%d, rebuild=%s)",
            summary.documents_written,
            self.store.path,
            duration,
            summary.documents_replaced,
            rebuild,
        )
        return IndexBuildResult(
            documents_indexed=summary.documents_written,
            documents_replaced=summary.documents_replaced,
            terms_indexed=summary.postings_written,
            duration_seconds=duration,
            batch_id=summary.batch_id,
        )
