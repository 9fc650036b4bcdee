"""Snippet rendering for search results.

A snippet is a prefix of the document body with query-term occurrences
wrapped in highlight markup. The rendered prefix, markup and HTML escaping
included, fits within ``max_length`` characters; the truncation marker is
appended only when the body was cut.
"""

from __future__ import annotations

from collections.abc import Collection
import html

from docsearch.search.analyzers import Analyzer, get_analyzer, word_end


DEFAULT_MARKER = "..."

HIGHLIGHT_STYLES: dict[str, tuple[str, str]] = {
    "plain": ("[[", "]]"),
    "html": ("<mark>", "</mark>"),
}


def _escape_for(style: str):
    if style == "html":
        return lambda text: html.escape(text, quote=True)
    return lambda text: text


def mark_terms(
    body: str,
    cut: int,
    matched_terms: Collection[str],
    *,
    style: str = "plain",
    analyzer: Analyzer | None = None,
) -> str:
    """Render ``body[:cut]`` with whole-word occurrences of ``matched_terms`` marked.

    Words clipped by ``cut`` are left unmarked.
    """
    if style not in HIGHLIGHT_STYLES:
        raise ValueError(f"Unknown snippet style '{style}'. Available: {sorted(HIGHLIGHT_STYLES)}")
    open_tag, close_tag = HIGHLIGHT_STYLES[style]
    escape = _escape_for(style)
    cut = max(0, min(cut, len(body)))
    if cut == 0:
        return ""
    if not matched_terms:
        return escape(body[:cut])

    active = analyzer or get_analyzer(None)
    terms = set(matched_terms)
    parts: list[str] = []
    last = 0
    # Tokenize up to the end of the word straddling the cut so a clipped word
    # keeps its real end offset and can be recognized as clipped.
    for token in active(body[: word_end(body, cut)]):
        if token.end_char > cut:
            break
        if token.text not in terms:
            continue
        parts.append(escape(body[last : token.start_char]))
        parts.append(open_tag + escape(body[token.start_char : token.end_char]) + close_tag)
        last = token.end_char
    parts.append(escape(body[last:cut]))
    return "".join(parts)


def highlight(
    body: str,
    matched_terms: Collection[str],
    max_length: int,
    *,
    style: str = "plain",
    marker: str = DEFAULT_MARKER,
    analyzer: Analyzer | None = None,
) -> str:
    """Return a highlighted excerpt of ``body``.

    Args:
        body: Document body.
        matched_terms: Analyzed terms to mark.
        max_length: Upper bound for the rendered excerpt, marker excluded.
        style: ``plain`` (``[[term]]``) or ``html`` (``<mark>term</mark>``).
        marker: Appended when the body had to be cut.
        analyzer: Analyzer used to find occurrences; defaults to the standard one.

    Raises:
        ValueError: ``max_length`` is negative or ``style`` is unknown.
    """
    if max_length < 0:
        raise ValueError(f"max_length must be >= 0, got {max_length}")
    if style not in HIGHLIGHT_STYLES:
        raise ValueError(f"Unknown snippet style '{style}'. Available: {sorted(HIGHLIGHT_STYLES)}")
    if not body:
        return ""

    active = analyzer or get_analyzer(None)
    cut = min(len(body), max_length)
    rendered = mark_terms(body, cut, matched_terms, style=style, analyzer=active)
    # Every source character renders to at least one character, so shrinking
    # the cut by the overshoot always makes progress.
    while len(rendered) > max_length:
        cut = max(0, cut - (len(rendered) - max_length))
        rendered = mark_terms(body, cut, matched_terms, style=style, analyzer=active)

    if cut < len(body):
        return rendered + marker
    return rendered
