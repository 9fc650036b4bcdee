"""Unit tests for IDF/BM25 helpers and phrase proximity."""

from __future__ import annotations

import math

import pytest

from docsearch.search.phrase import MAX_PHRASE_BONUS, get_min_span, phrase_multiplier
from docsearch.search.stats import CorpusStats, bm25, calculate_idf


class TestCorpusStats:
    def test_average_length(self) -> None:
        assert CorpusStats(document_count=4, total_terms=10).average_length == 2.5

    def test_average_length_of_empty_corpus_is_zero(self) -> None:
        assert CorpusStats(document_count=0, total_terms=0).average_length == 0.0


class TestIdf:
    def test_idf_is_positive_for_term_in_every_document(self) -> None:
        assert calculate_idf(10, 10) > 0

    def test_idf_grows_as_terms_get_rarer(self) -> None:
        values = [calculate_idf(df, 100) for df in (100, 50, 10, 1)]
        assert values == sorted(values)
        assert len(set(values)) == len(values)

    def test_idf_matches_formula(self) -> None:
        assert calculate_idf(1, 2) == pytest.approx(math.log1p(1.5 / 1.5))

    def test_idf_is_zero_for_empty_corpus(self) -> None:
        assert calculate_idf(0, 0) == 0.0


class TestBm25:
    def test_zero_frequency_scores_zero(self) -> None:
        assert bm25(0, 10, 10.0) == 0.0

    def test_weight_increases_with_term_frequency(self) -> None:
        weights = [bm25(tf, 10, 10.0) for tf in (1, 2, 3, 10)]
        assert weights == sorted(weights)

    def test_weight_saturates_below_k1_plus_one(self) -> None:
        assert bm25(1000, 10, 10.0, k1=1.2) < 2.2

    def test_longer_documents_score_lower(self) -> None:
        assert bm25(1, 5, 10.0) > bm25(1, 20, 10.0)

    def test_b_zero_disables_length_normalization(self) -> None:
        assert bm25(2, 5, 10.0, b=0.0) == pytest.approx(bm25(2, 50, 10.0, b=0.0))


class TestPhrase:
    def test_min_span_of_adjacent_terms(self) -> None:
        assert get_min_span({"new": [3, 9], "york": [4]}) == 2

    def test_min_span_is_infinite_when_a_term_is_missing(self) -> None:
        assert get_min_span({"new": [1], "york": []}) == float("inf")
        assert get_min_span({}) == float("inf")

    def test_adjacent_terms_get_full_bonus(self) -> None:
        assert phrase_multiplier({"new": [1], "york": [2]}, 2) == MAX_PHRASE_BONUS

    def test_bonus_decays_with_distance(self) -> None:
        assert phrase_multiplier({"new": [1], "york": [4]}, 2) == pytest.approx(1.25)
        assert phrase_multiplier({"new": [0], "york": [10]}, 2) == 1.0

    def test_single_term_queries_get_no_bonus(self) -> None:
        assert phrase_multiplier({"new": [1]}, 1) == 1.0
