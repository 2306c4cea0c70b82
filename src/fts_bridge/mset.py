"""Result windows returned by ``Enquire.get_mset``."""

from __future__ import annotations

from collections.abc import Iterator, Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from fts_bridge.config import get_settings
from fts_bridge.constants import SNIPPET_CJK_NGRAM, SNIPPET_EMPTY_WITHOUT_MATCH, SNIPPET_EXHAUSTIVE
from fts_bridge.cursors import MSetCursor
from fts_bridge.document import Document
from fts_bridge.engine.matcher import MatchResult, to_local
from fts_bridge.engine.snippet import SnippetTerms, build_snippet
from fts_bridge.engine.storage import Shard
from fts_bridge.errors import InvalidArgumentError, InvalidOperationError, RangeError, boundary
from fts_bridge.handles import Handle, require_instance, require_live
from fts_bridge.marshal import to_term, to_text
from fts_bridge.stem import Stem


if TYPE_CHECKING:
    from fts_bridge.database import Database


@dataclass(frozen=True)
class MSetItem:
    """One ranked result."""

    docid: int
    weight: float
    rank: int
    percent: int
    collapse_key: bytes = b""
    collapse_count: int = 0
    sort_key: bytes = b""
    mset: MSet | None = field(default=None, repr=False, compare=False)

    @boundary
    def get_document(self) -> Document:
        if self.mset is None:
            raise InvalidOperationError("This result is not attached to an MSet")
        return self.mset._document(self.docid)

    @property
    def document(self) -> Document:
        return self.get_document()


class MSet(Handle):
    """A window of ranked results plus statistics about the whole match.

    Match counts are exact, so the estimate and both bounds are equal.
    """

    def __init__(self) -> None:
        super().__init__()
        self._database: Database | None = None
        self._shards: tuple[Shard, ...] = ()
        self._items: list[MSetItem] = []
        self._firstitem = 0
        self._matches = 0
        self._max_possible = 0.0
        self._max_attained = 0.0
        self._termfreqs: dict[bytes, int] = {}

    @classmethod
    def _from_result(cls, database: Database, shards: Sequence[Shard], result: MatchResult) -> MSet:
        mset = cls()
        mset._database = database
        mset._shards = tuple(shards)
        mset._firstitem = result.firstitem
        mset._matches = result.matches_estimated
        mset._max_possible = result.max_possible
        mset._max_attained = result.max_attained
        mset._termfreqs = dict(result.termfreqs)
        mset._items = [
            MSetItem(
                docid=hit.docid,
                weight=hit.weight,
                rank=result.firstitem + offset,
                percent=hit.percent,
                collapse_key=hit.collapse_key,
                collapse_count=hit.collapse_count,
                sort_key=hit.sort_key,
                mset=mset,
            )
            for offset, hit in enumerate(result.hits)
        ]
        return mset

    def _release(self) -> None:
        self._items = []
        self._database = None
        self._shards = ()

    def _document(self, docid: int) -> Document:
        # docids were interleaved over the shards searched, not the database's current ones
        self._ensure_open()
        if self._database is None or not self._shards:
            raise InvalidOperationError("This MSet has no database")
        require_live(self._database, "database")
        index, local = to_local(docid, len(self._shards))
        return Document._from_storage(self._shards[index], local, docid)

    # -- sizes and statistics ----------------------------------------------------

    @boundary
    def size(self) -> int:
        self._ensure_open()
        return len(self._items)

    def __len__(self) -> int:
        return self.size()

    @boundary
    def empty(self) -> bool:
        self._ensure_open()
        return not self._items

    @boundary
    def get_firstitem(self) -> int:
        self._ensure_open()
        return self._firstitem

    @boundary
    def get_matches_estimated(self) -> int:
        self._ensure_open()
        return self._matches

    @boundary
    def get_matches_lower_bound(self) -> int:
        self._ensure_open()
        return self._matches

    @boundary
    def get_matches_upper_bound(self) -> int:
        self._ensure_open()
        return self._matches

    @boundary
    def get_max_attained(self) -> float:
        self._ensure_open()
        return self._max_attained

    @boundary
    def get_max_possible(self) -> float:
        self._ensure_open()
        return self._max_possible

    @boundary
    def get_termfreq(self, term: str | bytes) -> int:
        """Number of documents indexed by ``term`` across the searched database."""
        self._ensure_open()
        key = to_term(term)
        if key in self._termfreqs:
            return self._termfreqs[key]
        if self._database is None:
            return 0
        return require_live(self._database, "database").get_termfreq(key)

    @boundary
    def convert_to_percent(self, weight: float) -> int:
        self._ensure_open()
        if self._max_attained <= 0:
            return 100
        for item in self._items:
            if item.weight == self._max_attained:
                return int(weight * item.percent / self._max_attained + 1e-9)
        return int(weight * 100 / self._max_attained + 1e-9)

    # -- access ----------------------------------------------------------------

    @boundary
    def begin(self) -> MSetCursor:
        self._ensure_open()
        return MSetCursor(self, 0)

    @boundary
    def end(self) -> MSetCursor:
        self._ensure_open()
        return MSetCursor(self, len(self._items))

    @boundary
    def back(self) -> MSetCursor:
        self._ensure_open()
        if not self._items:
            raise RangeError("back() called on an empty MSet")
        return MSetCursor(self, len(self._items) - 1)

    @boundary
    def __getitem__(self, index: int) -> MSetItem:
        self._ensure_open()
        if isinstance(index, bool) or not isinstance(index, int):
            raise InvalidArgumentError(f"MSet index must be an int, not {type(index).__name__}")
        size = len(self._items)
        if not -size <= index < size:
            raise RangeError(f"MSet index {index} out of range for {size} results")
        return self._items[index]

    def __iter__(self) -> Iterator[MSetItem]:
        self._ensure_open()
        return iter(list(self._items))

    # -- snippets --------------------------------------------------------------

    @boundary
    def snippet(
        self,
        text: str | bytes,
        length: int | None = None,
        stemmer: Stem | None = None,
        flags: int = SNIPPET_EXHAUSTIVE,
        hi_start: str | bytes = "<b>",
        hi_end: str | bytes = "</b>",
        omit: str | bytes = "...",
    ) -> str:
        """Return an excerpt of ``text`` with the query terms it contains highlighted.

        Args:
            text: Source text, usually the stored document body.
            length: Maximum excerpt length in characters, markers excluded.
                Defaults to the configured ``default_snippet_length``.
            stemmer: Stemmer used at index time, so stemmed query terms
                match inflected words in ``text``. Without one, a stemmed
                term matches only the word spelled the same.
            flags: ``SNIPPET_EMPTY_WITHOUT_MATCH`` returns ``""`` when no
                term matches; ``SNIPPET_CJK_NGRAM`` splits CJK text.
            hi_start: Marker inserted before each highlighted word.
            hi_end: Marker inserted after each highlighted word.
            omit: Marker for text cut from the start or end.

        Returns:
            The excerpt.
        """
        self._ensure_open()
        if length is None:
            length = get_settings().default_snippet_length
        if isinstance(length, bool) or not isinstance(length, int) or length < 0:
            raise InvalidArgumentError(f"Snippet length must be a non-negative int, got {length!r}")
        stem = None
        if stemmer is not None:
            require_instance(stemmer, Stem, "stemmer")
            require_live(stemmer, "stemmer")
            if not stemmer.is_none():
                stem = stemmer
        return build_snippet(
            to_text(text),
            SnippetTerms.from_query_terms(self._termfreqs),
            length=length,
            stemmer=stem,
            hi_start=to_text(hi_start, "highlight start"),
            hi_end=to_text(hi_end, "highlight end"),
            omit=to_text(omit, "omit marker"),
            empty_without_match=bool(flags & SNIPPET_EMPTY_WITHOUT_MATCH),
            cjk_ngrams=bool(flags & SNIPPET_CJK_NGRAM),
        )

    @boundary
    def get_description(self) -> str:
        self._ensure_open()
        return f"MSet(firstitem={self._firstitem}, size={len(self._items)}, matches={self._matches})"

    def __repr__(self) -> str:
        if self.closed:
            return super().__repr__()
        return self.get_description()
