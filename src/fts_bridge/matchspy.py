"""Match spies: statistics gathered over every document a search matches.

A spy attached with ``Enquire.add_matchspy`` sees each matching document
once per ``get_mset`` call, before result collapsing and cutoffs are applied
and regardless of the window requested. Counts accumulate across calls.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Mapping

from fts_bridge.cursors import TermCursor, TermEntry, iterate
from fts_bridge.errors import InvalidArgumentError, boundary
from fts_bridge.handles import Handle
from fts_bridge.marshal import check_slot


class MatchSpy(Handle):
    """Base class; ``observe`` is called with the values and weight of each match."""

    def __init__(self) -> None:
        super().__init__()
        self._generation = 0

    def observe(self, values: Mapping[int, bytes], weight: float) -> None:
        self._generation += 1


class ValueCountMatchSpy(MatchSpy):
    """Counts how often each value of one slot occurs among the matches."""

    @boundary
    def __init__(self, slot: int) -> None:
        super().__init__()
        self.slot = check_slot(slot)
        self._total = 0
        self._counts: Counter[bytes] = Counter()

    def _release(self) -> None:
        self._counts.clear()

    def observe(self, values: Mapping[int, bytes], weight: float) -> None:
        self._total += 1
        value = values.get(self.slot)
        if value:
            self._counts[value] += 1
        self._generation += 1

    @boundary
    def get_total(self) -> int:
        """Number of documents seen, including those without a value in the slot."""
        self._ensure_open()
        return self._total

    def _entries(self) -> list[TermEntry]:
        return [TermEntry(term=value, termfreq=count) for value, count in sorted(self._counts.items())]

    def _top_entries(self, maxvalues: int) -> list[TermEntry]:
        if isinstance(maxvalues, bool) or not isinstance(maxvalues, int) or maxvalues < 0:
            raise InvalidArgumentError(f"maxvalues must be a non-negative int, got {maxvalues!r}")
        ranked = sorted(self._counts.items(), key=lambda item: (-item[1], item[0]))
        return [TermEntry(term=value, termfreq=count) for value, count in ranked[:maxvalues]]

    @boundary
    def values_begin(self) -> TermCursor:
        """Cursor over (value, count) entries in ascending value order."""
        self._ensure_open()
        return TermCursor(self, self._entries())

    @boundary
    def values_end(self) -> TermCursor:
        self._ensure_open()
        return TermCursor(self, self._entries(), len(self._counts))

    @boundary
    def top_values_begin(self, maxvalues: int) -> TermCursor:
        """Cursor over the ``maxvalues`` most frequent values, most frequent first."""
        self._ensure_open()
        return TermCursor(self, self._top_entries(maxvalues))

    @boundary
    def top_values_end(self, maxvalues: int) -> TermCursor:
        self._ensure_open()
        entries = self._top_entries(maxvalues)
        return TermCursor(self, entries, len(entries))

    def values(self):
        return iterate(self.values_begin())

    def top_values(self, maxvalues: int):
        return iterate(self.top_values_begin(maxvalues))

    @boundary
    def get_description(self) -> str:
        self._ensure_open()
        return f"ValueCountMatchSpy({self._total} docs seen, looking in {len(self._counts)} values)"
