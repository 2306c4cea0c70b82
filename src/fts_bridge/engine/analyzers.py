"""Tokenizer, stopword filter and stemmer used by indexing, parsing and snippets.

Composable tokenizer/filter pieces in the Whoosh style: a tokenizer yields
``Token`` objects carrying their character span, filters transform the
stream. Positions are assigned by the caller, since term generation keeps a
running position across several ``index_text`` calls.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Iterator, Sequence
from dataclasses import dataclass
import re


@dataclass
class Token:
    """A word found in text."""

    text: str
    start_char: int
    end_char: int
    positional: bool = True

    def copy_with(self, **updates) -> Token:
        data = {
            "text": self.text,
            "start_char": self.start_char,
            "end_char": self.end_char,
            "positional": self.positional,
        }
        data.update(updates)
        return Token(**data)


WORD_PATTERN = re.compile(r"\w+(?:['’]\w+)*", re.UNICODE)

# Han, Hiragana, Katakana, Hangul and their common extension blocks
_CJK_RANGES: tuple[tuple[int, int], ...] = (
    (0x1100, 0x11FF),
    (0x2E80, 0x2FDF),
    (0x3040, 0x30FF),
    (0x3100, 0x31FF),
    (0x3400, 0x4DBF),
    (0x4E00, 0x9FFF),
    (0xA960, 0xA97F),
    (0xAC00, 0xD7AF),
    (0xF900, 0xFAFF),
    (0x20000, 0x2FA1F),
)


def is_cjk(char: str) -> bool:
    code = ord(char)
    return any(low <= code <= high for low, high in _CJK_RANGES)


class RegexTokenizer:
    """Regex-based tokenizer that yields word tokens.

    With ``cjk_ngrams`` set, runs of CJK characters inside a word are split
    into single-character tokens (which get positions) followed by the
    overlapping two-character tokens (which do not).
    """

    def __init__(self, pattern: re.Pattern[str] = WORD_PATTERN, *, cjk_ngrams: bool = False) -> None:
        self.pattern = pattern
        self.cjk_ngrams = cjk_ngrams

    def __call__(self, text: str) -> Iterator[Token]:
        for match in self.pattern.finditer(text):
            word = match.group(0)
            if self.cjk_ngrams and any(is_cjk(ch) for ch in word):
                yield from _split_cjk(word, match.start())
            else:
                yield Token(text=word, start_char=match.start(), end_char=match.end())


def _split_cjk(word: str, offset: int) -> Iterator[Token]:
    index = 0
    while index < len(word):
        cjk = is_cjk(word[index])
        end = index
        while end < len(word) and is_cjk(word[end]) == cjk:
            end += 1
        if cjk:
            chunk = word[index:end]
            for i, char in enumerate(chunk):
                yield Token(text=char, start_char=offset + index + i, end_char=offset + index + i + 1)
            for i in range(len(chunk) - 1):
                yield Token(
                    text=chunk[i : i + 2],
                    start_char=offset + index + i,
                    end_char=offset + index + i + 2,
                    positional=False,
                )
        else:
            yield Token(text=word[index:end], start_char=offset + index, end_char=offset + end)
        index = end


class LowercaseFilter:
    """Filter that lowercases token text."""

    def __call__(self, tokens: Iterable[Token]) -> Iterator[Token]:
        for token in tokens:
            if token.text.islower():
                yield token
            else:
                yield token.copy_with(text=token.text.lower())


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

_SUFFIX_RULES: tuple[tuple[str, str], ...] = (
    ("ization", "ize"),
    ("ational", "ate"),
    ("fulness", "ful"),
    ("ousness", "ous"),
    ("iveness", "ive"),
    ("tional", "tion"),
    ("biliti", "ble"),
    ("lessli", "less"),
    ("entli", "ent"),
    ("enci", "ence"),
    ("anci", "ance"),
    ("izer", "ize"),
    ("abli", "able"),
    ("alli", "al"),
    ("ator", "ate"),
    ("alism", "al"),
    ("aliti", "al"),
    ("ousli", "ous"),
    ("ration", "rate"),
    ("ation", "ate"),
    ("ness", ""),
    ("ment", ""),
    ("ance", "an"),
    ("ence", "en"),
    ("able", ""),
    ("ible", ""),
)

_SIMPLE_SUFFIXES: tuple[str, ...] = ("ingly", "edly", "ing", "ed", "ly", "es", "s")


class StopFilter:
    """Removes stopwords from the stream."""

    def __init__(self, stopwords: Sequence[str] | None = None) -> None:
        vocab = stopwords if stopwords is not None else DEFAULT_STOPWORDS
        self.stopwords = {word.lower() for word in vocab}

    def is_stopword(self, word: str) -> bool:
        return word.lower() in self.stopwords

    def __call__(self, tokens: Iterable[Token]) -> Iterator[Token]:
        for token in tokens:
            if not self.is_stopword(token.text):
                yield token


def build_porter_stemmer() -> Callable[[str], str]:
    """Return a small Porter-style English stemmer."""

    def stem(word: str) -> str:
        lower = word.lower()
        if lower[:1].isdigit():
            return lower
        candidate = _strip_complex_suffix(lower)
        if candidate:
            return candidate
        fallback = _strip_simple_suffix(lower)
        if fallback:
            return fallback
        return lower

    return stem


def _strip_complex_suffix(lower: str) -> str | None:
    for suffix, replacement in _SUFFIX_RULES:
        if lower.endswith(suffix) and len(lower) - len(suffix) >= 2:
            candidate = lower[: -len(suffix)] + replacement
            if len(candidate) >= 2:
                return candidate
    return None


def _strip_simple_suffix(lower: str) -> str | None:
    for suffix in _SIMPLE_SUFFIXES:
        if lower.endswith(suffix) and len(lower) - len(suffix) >= 2:
            candidate = lower[: -len(suffix)]
            if len(candidate) >= 2:
                return candidate
    return None


class AnalyzerPipeline:
    """Composable analyzer pipeline (tokenizer + filters)."""

    def __init__(self, tokenizer: Callable[[str], Iterable[Token]], filters: Sequence = ()) -> None:
        self.tokenizer = tokenizer
        self.filters = list(filters)

    def __call__(self, text: str) -> list[Token]:
        stream: Iterable[Token] = self.tokenizer(text)
        for token_filter in self.filters:
            stream = token_filter(stream)
        return list(stream)


def word_analyzer(*, cjk_ngrams: bool = False) -> AnalyzerPipeline:
    """Tokenize and lowercase; stopping and stemming are left to the caller."""
    return AnalyzerPipeline(RegexTokenizer(cjk_ngrams=cjk_ngrams), [LowercaseFilter()])
