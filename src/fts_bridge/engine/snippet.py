"""Snippet extraction with sentence-boundary awareness.

Picks the window of text with the most query-term hits, tries to start it on
a sentence boundary, never cuts a word in half, and wraps every matching
word in the caller's highlight markers.

A word matches when its lowercase form equals an unstemmed query term, or
when its stem equals a ``Z``-prefixed stemmed query term. Without a stemmer
the word itself is its stem. Field prefixes (leading capitals) are ignored.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass
import re

from fts_bridge.engine.analyzers import RegexTokenizer, Token


# Sentence-ending punctuation pattern
SENTENCE_END_PATTERN = re.compile(r"[.!?]\s+")
WORD_BOUNDARY_PATTERN = re.compile(r"\s+")


@dataclass(frozen=True)
class SnippetTerms:
    """Query terms split into the forms a text word can match."""

    words: frozenset[str]
    stems: frozenset[str]

    @classmethod
    def from_query_terms(cls, terms: Iterable[bytes]) -> SnippetTerms:
        words: set[str] = set()
        stems: set[str] = set()
        for raw in terms:
            term = raw.decode("utf-8", errors="ignore")
            stemmed = term.startswith("Z")
            if stemmed:
                term = term[1:]
            term = term.lstrip("ABCDEFGHIJKLMNOPQRSTUVWXYZ")
            if not term:
                continue
            (stems if stemmed else words).add(term.lower())
        return cls(frozenset(words), frozenset(stems))

    def matches(self, word: str, stemmer: Callable[[str], str] | None) -> bool:
        lower = word.lower()
        if lower in self.words:
            return True
        if not self.stems:
            return False
        return (stemmer(lower) if stemmer is not None else lower) in self.stems


def find_sentence_start(text: str, position: int, max_lookback: int = 200) -> int:
    """Find the start of the sentence containing the position.

    Returns:
        Index just after the last sentence end within ``max_lookback``
        characters, else the first word boundary in the last three quarters
        of that span, else ``position`` itself.
    """
    if position <= 0:
        return 0

    start_search = max(0, position - max_lookback)
    search_text = text[start_search:position]

    matches = list(SENTENCE_END_PATTERN.finditer(search_text))
    if matches:
        return start_search + matches[-1].end()
    if start_search == 0:
        return 0

    quarter_pos = len(search_text) // 4
    for match in WORD_BOUNDARY_PATTERN.finditer(search_text):
        if match.start() >= quarter_pos:
            return start_search + match.end()
    return position


def _trim_end(text: str, end: int, floor: int) -> int:
    """Move ``end`` back so the window does not end inside a word."""
    if end >= len(text) or not text[end].isalnum() or not text[end - 1].isalnum():
        return end
    cut = end
    while cut > floor and text[cut - 1].isalnum():
        cut -= 1
    return cut if cut > floor else end


def _best_anchor(tokens: list[Token], relevant: list[bool], length: int) -> int:
    """Return the index of the relevant token starting the densest window."""
    best_index, best_count = -1, 0
    for index, token in enumerate(tokens):
        if not relevant[index]:
            continue
        limit = token.start_char + length
        count = sum(
            1 for other in range(index, len(tokens)) if relevant[other] and tokens[other].end_char <= limit
        )
        if count > best_count:
            best_index, best_count = index, count
    return best_index


def build_snippet(
    text: str,
    terms: SnippetTerms,
    *,
    length: int = 500,
    stemmer: Callable[[str], str] | None = None,
    hi_start: str = "<b>",
    hi_end: str = "</b>",
    omit: str = "...",
    empty_without_match: bool = False,
    cjk_ngrams: bool = False,
) -> str:
    """Build a highlighted snippet of at most ``length`` characters of ``text``.

    Highlight markers and omission markers are not counted towards
    ``length``.
    """
    if not text or length <= 0:
        return ""

    tokens = [token for token in RegexTokenizer(cjk_ngrams=cjk_ngrams)(text) if token.positional]
    relevant = [terms.matches(token.text, stemmer) for token in tokens]
    anchor = _best_anchor(tokens, relevant, length)
    if anchor < 0 and empty_without_match:
        return ""

    if len(text) <= length:
        start, end = 0, len(text)
    elif anchor < 0:
        start = 0
        end = _trim_end(text, length, 0)
    else:
        first = tokens[anchor].start_char
        lookback = max(0, min(length // 4, length - (tokens[anchor].end_char - first)))
        start = find_sentence_start(text, first, max_lookback=lookback)
        end = min(len(text), start + length)
        end = _trim_end(text, end, tokens[anchor].end_char)

    pieces: list[str] = []
    cursor = start
    for token, is_relevant in zip(tokens, relevant):
        if not is_relevant or token.start_char < start or token.end_char > end:
            continue
        pieces.append(text[cursor : token.start_char])
        pieces.append(f"{hi_start}{text[token.start_char : token.end_char]}{hi_end}")
        cursor = token.end_char
    pieces.append(text[cursor:end])

    snippet = "".join(pieces).strip()
    if start > 0:
        snippet = omit + snippet
    if end < len(text):
        snippet = snippet + omit
    return snippet
