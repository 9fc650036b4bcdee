"""Phrase proximity scoring for multi-word queries.

Rewards documents where the query terms appear adjacent or close together,
using the positions already stored in the postings.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence


MAX_PHRASE_BONUS = 1.5
_MAX_SCATTER_RATIO = 3.0


def get_min_span(term_positions: Mapping[str, Sequence[int]]) -> float:
    """Calculate minimum span containing at least one of each term.

    The span is the number of positions from first to last term inclusive.
    For adjacent terms, span equals the number of terms.

    Args:
        term_positions: Dictionary mapping terms to their positions.

    Returns:
        Minimum span, or infinity if not all terms are present.
    """
    if not term_positions:
        return float("inf")

    position_lists = list(term_positions.values())
    if any(not positions for positions in position_lists):
        return float("inf")

    if len(position_lists) == 1:
        return 1.0

    min_span = float("inf")

    # Greedy: anchor on each position of the first term and take the closest
    # position of every other term.
    for anchor in position_lists[0]:
        span_positions = [anchor]
        for other_positions in position_lists[1:]:
            closest = min(other_positions, key=lambda p: abs(p - anchor))
            span_positions.append(closest)

        span = max(span_positions) - min(span_positions) + 1
        min_span = min(min_span, span)

    return min_span


def phrase_multiplier(term_positions: Mapping[str, Sequence[int]], term_count: int) -> float:
    """Return the score multiplier for a document given its query-term positions.

    Adjacent terms earn ``MAX_PHRASE_BONUS``; the bonus decays linearly as the
    terms scatter and disappears at three times the phrase length.
    """
    if term_count < 2 or len(term_positions) < term_count:
        return 1.0

    span = get_min_span(term_positions)
    if span == float("inf"):
        return 1.0
    if span <= term_count:
        return MAX_PHRASE_BONUS

    scatter_ratio = span / term_count
    if scatter_ratio >= _MAX_SCATTER_RATIO:
        return 1.0

    bonus = MAX_PHRASE_BONUS - (scatter_ratio - 1.0) * (MAX_PHRASE_BONUS - 1.0) / 2.0
    return max(1.0, bonus)
