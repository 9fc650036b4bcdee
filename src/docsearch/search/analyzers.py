"""Analyzer utilities for the search stack.

This module mirrors Whoosh's composable tokenizer/filter design without
pulling in heavy dependencies. The same analyzer transforms document text at
indexing time and query text at search time, so the two sides always agree on
what a term is.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Iterator, Sequence
from dataclasses import dataclass
import re
from typing import Protocol


# Runs of letters and digits; underscore is a separator like any punctuation.
TOKEN_PATTERN = re.compile(r"[^\W_]+", re.UNICODE)

DEFAULT_ANALYZER = "standard"


@dataclass
class Token:
    """Represents a token emitted by analyzers."""

    text: str
    position: int
    start_char: int
    end_char: int

    def copy_with(self, **updates: object) -> Token:
        data = {
            "text": self.text,
            "position": self.position,
            "start_char": self.start_char,
            "end_char": self.end_char,
        }
        data.update(updates)
        return Token(**data)  # type: ignore[arg-type]


class Analyzer(Protocol):
    """Protocol implemented by analyzers."""

    def __call__(self, text: str) -> list[Token]:  # pragma: no cover - interface definition
        ...


class Tokenizer(Protocol):
    """Protocol implemented by tokenizers."""

    def __call__(self, text: str) -> Iterator[Token]:  # pragma: no cover - interface definition
        ...


class TokenFilter(Protocol):
    """Protocol implemented by token filters."""

    def __call__(self, tokens: Iterable[Token]) -> Iterator[Token]:  # pragma: no cover - interface definition
        ...


class RegexTokenizer:
    """Regex-based tokenizer that yields alphanumeric word tokens."""

    def __init__(self, pattern: re.Pattern[str] = TOKEN_PATTERN) -> None:
        self.pattern = pattern

    def __call__(self, text: str) -> Iterator[Token]:
        for position, match in enumerate(self.pattern.finditer(text)):
            yield Token(
                text=match.group(0),
                position=position,
                start_char=match.start(),
                end_char=match.end(),
            )


class CaseFoldFilter:
    """Case-folds token text and drops characters folding leaves non-alphanumeric.

    ``str.casefold`` can expand a letter into a base letter plus a combining
    mark (``"İ"`` becomes ``"i̇"``). Stripping the mark keeps every emitted
    term made of characters the tokenizer itself would accept, which makes
    re-tokenizing analyzer output a no-op.
    """

    def __call__(self, tokens: Iterable[Token]) -> Iterator[Token]:
        for token in tokens:
            folded = token.text.casefold()
            if not folded.isalnum():
                folded = "".join(ch for ch in folded if ch.isalnum())
            if not folded:
                continue
            if folded == token.text:
                yield token
            else:
                yield token.copy_with(text=folded)


DEFAULT_STOPWORDS = [
    "a",
    "an",
    "and",
    "are",
    "as",
    "at",
    "be",
    "but",
    "by",
    "for",
    "if",
    "in",
    "into",
    "is",
    "it",
    "no",
    "not",
    "of",
    "on",
    "or",
    "such",
    "that",
    "the",
    "their",
    "then",
    "there",
    "these",
    "they",
    "this",
    "to",
    "was",
    "will",
    "with",
]


class StopFilter:
    """Removes stopwords from the stream."""

    def __init__(self, stopwords: Sequence[str] | None = None) -> None:
        vocab = stopwords if stopwords is not None else DEFAULT_STOPWORDS
        self.stopwords = {word.casefold() for word in vocab}

    def __call__(self, tokens: Iterable[Token]) -> Iterator[Token]:
        for token in tokens:
            if token.text not in self.stopwords:
                yield token


class AnalyzerPipeline:
    """Composable analyzer pipeline (tokenizer + filters)."""

    def __init__(self, tokenizer: Tokenizer, filters: Sequence[TokenFilter] | None = None) -> None:
        self.tokenizer = tokenizer
        self.filters = list(filters or [])

    def __call__(self, text: str) -> list[Token]:
        if not text:
            return []
        stream: Iterable[Token] = self.tokenizer(text)
        for token_filter in self.filters:
            stream = token_filter(stream)
        tokens = list(stream)
        for idx, token in enumerate(tokens):  # normalize positions post-filtering
            token.position = idx
        return tokens


class StandardAnalyzer:
    """Default analyzer: alphanumeric split plus case folding, optional stopwords."""

    def __init__(self, *, stopwords: Sequence[str] | None = None, remove_stopwords: bool = False) -> None:
        filters: list[TokenFilter] = [CaseFoldFilter()]
        if remove_stopwords:
            filters.append(StopFilter(stopwords))
        self.pipeline = AnalyzerPipeline(RegexTokenizer(), filters)

    def __call__(self, text: str) -> list[Token]:
        if not isinstance(text, str):
            return []
        return self.pipeline(text)


_ANALYZER_FACTORIES: dict[str, Callable[[], Analyzer]] = {
    "standard": lambda: StandardAnalyzer(),
    "english": lambda: StandardAnalyzer(remove_stopwords=True),
}


def available_analyzers() -> list[str]:
    return sorted(_ANALYZER_FACTORIES)


def get_analyzer(name: str | None) -> Analyzer:
    """Return analyzer by name, defaulting to the standard analyzer."""

    if name is None:
        return _ANALYZER_FACTORIES[DEFAULT_ANALYZER]()
    normalized = name.lower()
    if normalized not in _ANALYZER_FACTORIES:
        msg = f"Unknown analyzer '{name}'. Available: {available_analyzers()}"
        raise ValueError(msg)
    return _ANALYZER_FACTORIES[normalized]()


_default_analyzer = StandardAnalyzer()


def tokenize(text: str | None, analyzer: Analyzer | None = None) -> list[str]:
    """Return the ordered term sequence for ``text``.

    Never raises: ``None``, empty or punctuation-only input yields ``[]``.
    """

    if not text:
        return []
    active = analyzer or _default_analyzer
    return [token.text for token in active(text)]


def word_end(text: str, index: int) -> int:
    """Return the end offset of the word run that contains ``index``.

    When ``index`` does not fall inside a word, ``index`` itself is returned.
    """

    if index <= 0 or index >= len(text):
        return max(0, min(index, len(text)))
    if not (text[index - 1].isalnum() and text[index].isalnum()):
        return index
    match = TOKEN_PATTERN.match(text, index)
    return match.end() if match else index
