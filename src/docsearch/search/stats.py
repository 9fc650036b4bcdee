"""Statistical helpers for BM25 style scoring.

The functions here stay independent of the storage backend so they can be
unit tested on their own and reused by any scorer.
"""

from __future__ import annotations

from dataclasses import dataclass
import math


@dataclass(frozen=True)
class CorpusStats:
    """Aggregated term statistics for the whole index."""

    document_count: int
    total_terms: int

    @property
    def average_length(self) -> float:
        if self.document_count == 0:
            return 0.0
        return self.total_terms / self.document_count


def calculate_idf(doc_freq: int, total_docs: int) -> float:
    """Return the BM25 inverse document frequency.

    Uses the ``ln(1 + (N - df + 0.5) / (df + 0.5))`` form, which stays
    positive even for terms present in every document and strictly grows as
    a term gets rarer.
    """

    if total_docs <= 0:
        return 0.0
    df = max(0, min(doc_freq, total_docs))
    return math.log1p((total_docs - df + 0.5) / (df + 0.5))


def bm25(tf: float, doc_length: int, avg_doc_length: float, *, k1: float = 1.2, b: float = 0.75) -> float:
    """Compute the BM25 term weight without IDF."""

    if tf <= 0:
        return 0.0
    length_ratio = doc_length / max(avg_doc_length, 1e-9)
    denominator = tf + k1 * (1 - b + b * length_ratio)
    return (tf * (k1 + 1)) / denominator
