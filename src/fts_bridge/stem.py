"""Stemmers and stop-word lists shared by indexing and query parsing."""

from __future__ import annotations

from collections.abc import Iterable

from fts_bridge.engine.analyzers import DEFAULT_STOPWORDS, StopFilter, build_porter_stemmer
from fts_bridge.errors import InvalidArgumentError, boundary
from fts_bridge.handles import Handle
from fts_bridge.marshal import to_text


_LANGUAGE_ALIASES = {
    "english": "english",
    "en": "english",
    "porter": "english",
    "none": "none",
    "": "none",
}


class Stem(Handle):
    """A stemming algorithm, selected by language name.

    Example:
        >>> Stem("english")("indexing")
        'index'
    """

    @boundary
    def __init__(self, language: str = "none") -> None:
        super().__init__()
        key = to_text(language, "language").strip().lower()
        if key not in _LANGUAGE_ALIASES:
            raise InvalidArgumentError(f"Language code {language} unknown")
        self.language = _LANGUAGE_ALIASES[key]
        self._stem = build_porter_stemmer() if self.language == "english" else None

    @boundary
    def __call__(self, word: str | bytes) -> str:
        self._ensure_open()
        text = to_text(word, "word")
        if self._stem is None:
            return text
        return self._stem(text)

    @boundary
    def is_none(self) -> bool:
        self._ensure_open()
        return self._stem is None

    @staticmethod
    def get_available_languages() -> str:
        return " ".join(sorted({name for name in _LANGUAGE_ALIASES.values() if name != "none"}))

    @boundary
    def get_description(self) -> str:
        self._ensure_open()
        return f"Stem({self.language})"

    def _release(self) -> None:
        self._stem = None


class Stopper(Handle):
    """Decides whether a word is a stop word."""

    def __call__(self, word: str | bytes) -> bool:
        return False


class SimpleStopper(Stopper):
    """Stopper backed by a set of words; defaults to a common English list."""

    @boundary
    def __init__(self, words: Iterable[str] | None = None) -> None:
        super().__init__()
        vocab = DEFAULT_STOPWORDS if words is None else [to_text(word, "stop word") for word in words]
        self._filter = StopFilter(vocab)

    @boundary
    def add(self, word: str | bytes) -> None:
        self._ensure_open()
        self._filter.stopwords.add(to_text(word, "stop word").lower())

    @boundary
    def __call__(self, word: str | bytes) -> bool:
        self._ensure_open()
        return self._filter.is_stopword(to_text(word, "word"))

    @boundary
    def get_description(self) -> str:
        self._ensure_open()
        return f"SimpleStopper({len(self._filter.stopwords)} words)"
