"""Unit tests for the batch indexer."""

from __future__ import annotations

from unittest.mock import patch

import pytest

from docsearch.domain.search import SourceDocument
from docsearch.observability.context import trace_context
from docsearch.search.analyzers import get_analyzer
from docsearch.search.errors import MalformedInput
from docsearch.search.indexer import BatchIndexer, build_postings, default_title


def test_build_postings_puts_title_terms_first() -> None:
    length, postings = build_postings("doc1", "Cats", "cats are great pets", get_analyzer("standard"))
    by_term = dict(postings)

    assert length == 5
    assert by_term["cats"].frequency == 2
    assert by_term["cats"].title_frequency == 1
    assert list(by_term["cats"].positions) == [0, 1]
    assert list(by_term["pets"].positions) == [4]
    assert by_term["pets"].title_frequency == 0
    assert all(posting.doc_length == 5 for posting in by_term.values())


def test_build_postings_appends_url_terms_without_changing_length() -> None:
    length, postings = build_postings(
        "guide", "Setup", "how to begin", get_analyzer("standard"), url="docs/install-guide.html"
    )
    by_term = dict(postings)

    assert length == 4
    assert list(by_term["install"].positions) == [5]
    assert by_term["install"].title_frequency == 0
    assert by_term["install"].doc_length == 4
    assert set(by_term) >= {"docs", "install", "guide", "html"}


@pytest.mark.parametrize(
    ("doc_id", "expected"),
    [
        ("docs/guide/intro.html", "intro.html"),
        ("C:\\docs\\readme.txt", "readme.txt"),
        ("plain", "plain"),
        ("trailing/", "trailing"),
    ],
)
def test_default_title_uses_final_path_component(doc_id: str, expected: str) -> None:
    assert default_title(doc_id) == expected


class TestBatchIndexer:
    def test_accepts_models_tuples_and_mappings(self, store) -> None:
        result = BatchIndexer(store).index(
            [
                SourceDocument(id="a", title="Alpha", body="first", url="/a"),
                ("b", "Beta", "second", "/b"),
                {"id": "c", "title": "Gamma", "body": "third", "url": "/c"},
            ]
        )

        assert result.documents_indexed == 3
        assert result.documents_replaced == 0
        assert result.terms_indexed == 9
        assert result.duration_seconds >= 0
        assert store.document_count() == 3
        assert store.get_document("c").title == "Gamma"

    def test_blank_title_falls_back_to_file_name(self, store) -> None:
        BatchIndexer(store).index([("docs/intro.html", "  ", "welcome", "/docs/intro.html")])

        record = store.get_document("docs/intro.html")
        assert record.title == "intro.html"
        assert "docs/intro.html" in store.get_postings("intro")

    def test_url_path_components_are_searchable(self, store) -> None:
        BatchIndexer(store).index([("docs/install-guide.html", "Setup", "how to begin", "docs/install-guide.html")])

        assert "docs/install-guide.html" in store.get_postings("install")
        assert store.get_document("docs/install-guide.html").length == 4

    def test_index_path_is_bound_into_log_context(self, store) -> None:
        seen: list[dict] = []

        def source():
            seen.append(dict(trace_context.get() or {}))
            yield ("a", "Alpha", "first", "/a")

        BatchIndexer(store).index(source())

        assert seen[0]["index"] == str(store.path)
        assert len(seen[0]["trace_id"]) == 32
        assert "index" not in (trace_context.get() or {})

    def test_reports_replaced_documents(self, store, pet_documents) -> None:
        indexer = BatchIndexer(store)
        indexer.index(pet_documents)
        result = indexer.index([("doc1", "Cats", "cats are wonderful", "doc1.html")])

        assert result.documents_replaced == 1
        assert store.document_count() == 2

    def test_rebuild_replaces_entire_index(self, store, pet_documents) -> None:
        indexer = BatchIndexer(store)
        indexer.index(pet_documents)
        indexer.index([("doc3", "Birds", "birds sing", "doc3.html")], rebuild=True)

        assert store.document_count() == 1
        assert store.find_document("doc1") is None
        assert len(store.get_postings("pets")) == 0

    def test_empty_stream_commits_exactly_once(self, store) -> None:
        with patch.object(store, "commit", wraps=store.commit) as commit:
            result = BatchIndexer(store).index([])

        commit.assert_called_once()
        assert result.documents_indexed == 0

    def test_empty_rebuild_clears_index(self, store, pet_documents) -> None:
        indexer = BatchIndexer(store)
        indexer.index(pet_documents)
        indexer.index(iter(()), rebuild=True)
        assert store.document_count() == 0

    @pytest.mark.parametrize("bad", [("only", "three", "fields"), {"title": "missing id"}, ("", "t", "b", "u"), 7])
    def test_malformed_record_discards_batch(self, store, pet_documents, bad) -> None:
        indexer = BatchIndexer(store)
        indexer.index(pet_documents)

        with pytest.raises(MalformedInput):
            indexer.index([("doc3", "Birds", "birds", "doc3.html"), bad])

        assert store.find_document("doc3") is None
        assert store.document_count() == 2
        # the writer slot was released
        store.discard(store.begin_batch())

    def test_source_failure_propagates_original_error(self, store, pet_documents) -> None:
        indexer = BatchIndexer(store)
        indexer.index(pet_documents)

        def flaky_source():
            yield ("doc3", "Birds", "birds", "doc3.html")
            raise OSError("extractor crashed")

        with pytest.raises(OSError, match="extractor crashed"):
            indexer.index(flaky_source(), rebuild=True)

        assert store.document_count() == 2
        assert store.find_document("doc3") is None
        assert "doc1" in store.get_postings("pets")
