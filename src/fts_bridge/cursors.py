"""Explicit, bounds-checked cursors over result windows and term lists.

A cursor is a cheap position marker: it holds a reference to the collection
it walks and an index, nothing else. Cursors compare equal when they point at
the same position of the same collection, which is how callers detect the
end (``cursor == mset.end()``) without ever stepping past it.

Cursors stop working once their collection is released. Term cursors also
remember the collection's generation when they were made; if the collection
has changed since (a match spy saw more documents, a document gained terms),
using the cursor raises ``InvalidOperationError``.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from fts_bridge.errors import InvalidArgumentError, InvalidOperationError, RangeError


if TYPE_CHECKING:
    from fts_bridge.document import Document
    from fts_bridge.mset import MSet, MSetItem


@dataclass(frozen=True)
class TermEntry:
    """One entry of a term list: the term and the counts recorded for it."""

    term: bytes
    termfreq: int = 0
    wdf: int = 0
    positions: tuple[int, ...] = ()


class MSetCursor:
    """Position within an ``MSet``, from rank ``firstitem`` up to ``end()``."""

    __slots__ = ("_index", "_mset")

    def __init__(self, mset: MSet, index: int) -> None:
        self._mset = mset
        self._index = index

    def _check(self) -> None:
        self._mset._ensure_open()

    def at_end(self) -> bool:
        self._check()
        return self._index >= self._mset.size()

    def advance(self) -> MSetCursor:
        if self.at_end():
            raise RangeError("Cannot advance an MSet cursor past the end")
        self._index += 1
        return self

    def current(self) -> MSetItem:
        if self.at_end():
            raise RangeError("Cannot dereference an MSet cursor at the end")
        return self._mset[self._index]

    def get_document(self) -> Document:
        return self.current().get_document()

    def get_docid(self) -> int:
        return self.current().docid

    def get_weight(self) -> float:
        return self.current().weight

    def get_rank(self) -> int:
        return self.current().rank

    def get_percent(self) -> int:
        return self.current().percent

    def get_collapse_key(self) -> bytes:
        return self.current().collapse_key

    def get_collapse_count(self) -> int:
        return self.current().collapse_count

    def get_sort_key(self) -> bytes:
        return self.current().sort_key

    def copy(self) -> MSetCursor:
        return MSetCursor(self._mset, self._index)

    __copy__ = copy

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, MSetCursor):
            return NotImplemented
        self._check()
        other._check()
        return self._mset is other._mset and self._index == other._index

    def __hash__(self) -> int:
        return hash((id(self._mset), self._index))

    def __repr__(self) -> str:
        return f"MSetCursor(index={self._index})"


class TermCursor:
    """Position within a snapshot of (term, frequency) entries."""

    __slots__ = ("_entries", "_generation", "_index", "_owner")

    def __init__(self, owner: Any, entries: Sequence[TermEntry], index: int = 0) -> None:
        self._owner = owner
        self._entries = entries
        self._index = index
        self._generation = owner._generation

    def _check(self) -> None:
        self._owner._ensure_open()
        if self._owner._generation != self._generation:
            raise InvalidOperationError(f"{type(self._owner).__name__} changed since this cursor was created")

    def at_end(self) -> bool:
        self._check()
        return self._index >= len(self._entries)

    def advance(self) -> TermCursor:
        if self.at_end():
            raise RangeError("Cannot advance a term cursor past the end")
        self._index += 1
        return self

    def current(self) -> TermEntry:
        if self.at_end():
            raise RangeError("Cannot dereference a term cursor at the end")
        return self._entries[self._index]

    def get_term(self) -> bytes:
        return self.current().term

    def get_termfreq(self) -> int:
        return self.current().termfreq

    def get_wdf(self) -> int:
        return self.current().wdf

    def positions(self) -> tuple[int, ...]:
        return self.current().positions

    def skip_to(self, term: bytes) -> TermCursor:
        """Advance to the first entry not less than ``term`` (entries must be sorted by term)."""
        if not isinstance(term, (bytes, bytearray)):
            raise InvalidArgumentError("skip_to() takes a byte string term")
        self._check()
        while self._index < len(self._entries) and self._entries[self._index].term < term:
            self._index += 1
        return self

    def copy(self) -> TermCursor:
        self._check()
        return TermCursor(self._owner, self._entries, self._index)

    __copy__ = copy

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, TermCursor):
            return NotImplemented
        self._check()
        other._check()
        return self._owner is other._owner and self._index == other._index

    def __hash__(self) -> int:
        return hash((id(self._owner), self._index))

    def __repr__(self) -> str:
        return f"TermCursor(index={self._index}, size={len(self._entries)})"


def iterate(begin: MSetCursor | TermCursor):
    """Yield every item from ``begin`` to the end of its collection."""
    cursor = begin.copy()
    while not cursor.at_end():
        yield cursor.current()
        cursor.advance()
