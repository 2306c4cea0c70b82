"""Running queries against a database.

Usage:
    enquire = Enquire(db)
    enquire.set_query(QueryParser().parse_query("search engine"))
    enquire.set_sort_by_value_then_relevance(1, reverse=True)
    for item in enquire.get_mset(0, 10):
        print(item.rank, item.docid, item.get_document().get_data())
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
import logging

from fts_bridge.config import get_settings
from fts_bridge.constants import ASCENDING, BAD_VALUENO, DESCENDING, DONT_CARE
from fts_bridge.cursors import TermCursor, TermEntry, iterate
from fts_bridge.database import Database
from fts_bridge.engine.matcher import (
    SORT_RELEVANCE,
    SORT_RELEVANCE_THEN_VALUE,
    SORT_VALUE,
    SORT_VALUE_THEN_RELEVANCE,
    Matcher,
    MatchOptions,
)
from fts_bridge.errors import InvalidArgumentError, boundary
from fts_bridge.handles import Handle, require_instance, require_live
from fts_bridge.keymaker import KeyMaker
from fts_bridge.marshal import check_docid, check_slot
from fts_bridge.matchspy import MatchSpy
from fts_bridge.mset import MSet
from fts_bridge.observability.metrics import OPERATION_LATENCY, track_latency
from fts_bridge.observability.tracing import create_span
from fts_bridge.query import Query
from fts_bridge.weighting import BM25Weight, Weight


logger = logging.getLogger(__name__)


def _check_count(value: object, what: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise InvalidArgumentError(f"{what} must be a non-negative int, got {value!r}")
    return value


def _value_key(slot: int | None) -> Callable[[Mapping[int, bytes]], bytes]:
    def key(values: Mapping[int, bytes]) -> bytes:
        return values.get(slot, b"")  # type: ignore[arg-type]

    return key


class Enquire(Handle):
    """Binds a database to a query and the options that shape its results.

    The database, weighting scheme, key maker and match spies are referenced,
    not copied: releasing any of them while attached makes ``get_mset``
    fail with ``InvalidOperationError``.
    """

    INCLUDE_PERCENTAGES = 1
    ASCENDING = ASCENDING
    DESCENDING = DESCENDING
    DONT_CARE = DONT_CARE

    @boundary
    def __init__(self, database: Database) -> None:
        super().__init__()
        require_instance(database, Database, "database")
        database._ensure_open()
        self._database = database
        self._query = Query()
        self._qlen = 0
        self._weight: Weight = BM25Weight()
        self._sort_by = SORT_RELEVANCE
        self._sort_slot: int | None = None
        self._sorter: KeyMaker | None = None
        self._sort_reverse = False
        self._collapse_slot: int | None = None
        self._collapse_max = 1
        self._docid_order = ASCENDING
        self._percent_cutoff = 0
        self._weight_cutoff = 0.0
        self._spies: list[MatchSpy] = []
        self._generation = 0

    def _release(self) -> None:
        self._spies = []
        self._sorter = None

    # -- query and weighting -------------------------------------------------

    @boundary
    def set_query(self, query: Query, qlen: int = 0) -> None:
        """Set the query to run; ``qlen`` overrides the query length used by BM25's k2 term."""
        self._ensure_open()
        self._query = require_instance(query, Query, "query")
        self._qlen = _check_count(qlen, "qlen")
        self._generation += 1

    @boundary
    def get_query(self) -> Query:
        self._ensure_open()
        return self._query

    @boundary
    def set_weighting_scheme(self, weight: Weight) -> None:
        self._ensure_open()
        require_instance(weight, Weight, "weighting scheme")
        self._weight = require_live(weight, "weighting scheme")  # type: ignore[assignment]

    # -- collapsing, ordering and cutoffs --------------------------------------

    @boundary
    def set_collapse_key(self, slot: int, collapse_max: int = 1) -> None:
        """Keep at most ``collapse_max`` results per distinct value of ``slot``.

        ``BAD_VALUENO`` turns collapsing off.
        """
        self._ensure_open()
        if slot == BAD_VALUENO:
            self._collapse_slot = None
            return
        self._collapse_slot = check_slot(slot)
        if isinstance(collapse_max, bool) or not isinstance(collapse_max, int) or collapse_max < 1:
            raise InvalidArgumentError(f"collapse_max must be a positive int, got {collapse_max!r}")
        self._collapse_max = collapse_max

    @boundary
    def set_docid_order(self, order: int) -> None:
        self._ensure_open()
        if order not in (ASCENDING, DESCENDING, DONT_CARE):
            raise InvalidArgumentError(f"Unknown docid order {order}")
        self._docid_order = order

    @boundary
    def set_cutoff(self, percent_cutoff: int, weight_cutoff: float = 0) -> None:
        """Drop results below ``percent_cutoff`` percent or below ``weight_cutoff``."""
        self._ensure_open()
        if isinstance(percent_cutoff, bool) or not isinstance(percent_cutoff, int) or not 0 <= percent_cutoff <= 100:
            raise InvalidArgumentError(f"percent_cutoff must be between 0 and 100, got {percent_cutoff!r}")
        if isinstance(weight_cutoff, bool) or not isinstance(weight_cutoff, (int, float)) or weight_cutoff < 0:
            raise InvalidArgumentError(f"weight_cutoff must be a non-negative number, got {weight_cutoff!r}")
        self._percent_cutoff = percent_cutoff
        self._weight_cutoff = float(weight_cutoff)

    def _set_sort(self, mode: str, slot: int | None, sorter: KeyMaker | None, reverse: bool) -> None:
        self._ensure_open()
        if slot is not None:
            slot = check_slot(slot)
        if sorter is not None:
            require_instance(sorter, KeyMaker, "key maker")
            require_live(sorter, "key maker")
        self._sort_by = mode
        self._sort_slot = slot
        self._sorter = sorter
        self._sort_reverse = bool(reverse)

    @boundary
    def set_sort_by_relevance(self) -> None:
        self._set_sort(SORT_RELEVANCE, None, None, False)

    @boundary
    def set_sort_by_value(self, slot: int, reverse: bool = False) -> None:
        self._set_sort(SORT_VALUE, slot, None, reverse)

    @boundary
    def set_sort_by_value_then_relevance(self, slot: int, reverse: bool = False) -> None:
        self._set_sort(SORT_VALUE_THEN_RELEVANCE, slot, None, reverse)

    @boundary
    def set_sort_by_relevance_then_value(self, slot: int, reverse: bool = False) -> None:
        self._set_sort(SORT_RELEVANCE_THEN_VALUE, slot, None, reverse)

    @boundary
    def set_sort_by_key(self, sorter: KeyMaker, reverse: bool = False) -> None:
        self._set_sort(SORT_VALUE, None, sorter, reverse)

    @boundary
    def set_sort_by_key_then_relevance(self, sorter: KeyMaker, reverse: bool = False) -> None:
        self._set_sort(SORT_VALUE_THEN_RELEVANCE, None, sorter, reverse)

    @boundary
    def set_sort_by_relevance_then_key(self, sorter: KeyMaker, reverse: bool = False) -> None:
        self._set_sort(SORT_RELEVANCE_THEN_VALUE, None, sorter, reverse)

    # -- match spies -----------------------------------------------------------

    @boundary
    def add_matchspy(self, spy: MatchSpy) -> None:
        self._ensure_open()
        require_instance(spy, MatchSpy, "match spy")
        self._spies.append(require_live(spy, "match spy"))  # type: ignore[arg-type]

    @boundary
    def clear_matchspies(self) -> None:
        self._ensure_open()
        self._spies = []

    # -- running ---------------------------------------------------------------

    def _options(self, weight: Weight) -> MatchOptions:
        sort_key = None
        if self._sort_by != SORT_RELEVANCE:
            if self._sorter is not None:
                sort_key = require_live(self._sorter, "key maker")._sort_key  # type: ignore[attr-defined]
            else:
                sort_key = _value_key(self._sort_slot)

        return MatchOptions(
            weight=weight,
            query_length=self._qlen,
            sort_by=self._sort_by,
            sort_key=sort_key,
            sort_reverse=self._sort_reverse,
            docid_order=self._docid_order,
            collapse_slot=self._collapse_slot,
            collapse_max=self._collapse_max,
            percent_cutoff=self._percent_cutoff,
            weight_cutoff=self._weight_cutoff,
            observers=[require_live(spy, "match spy") for spy in self._spies],  # type: ignore[misc]
        )

    def _matcher(self, weight: Weight) -> Matcher:
        database = require_live(self._database, "database")
        return Matcher(
            database._live_shards(),  # type: ignore[attr-defined]
            weight,
            wildcard_limit=get_settings().wildcard_max_expansion,
        )

    @boundary(operation="get_mset")
    def get_mset(self, first: int = 0, maxitems: int = 10) -> MSet:
        """Run the query and return results ``first`` to ``first + maxitems - 1``.

        Args:
            first: Rank of the first result to return, counting from 0.
            maxitems: Maximum number of results in the window.

        Returns:
            The window of results together with the total match count.
        """
        self._ensure_open()
        first = _check_count(first, "first")
        maxitems = _check_count(maxitems, "maxitems")
        weight = require_live(self._weight, "weighting scheme")
        options = self._options(weight)  # type: ignore[arg-type]
        with create_span("fts.get_mset", attributes={"fts.first": first, "fts.maxitems": maxitems}):
            with track_latency(OPERATION_LATENCY, operation="get_mset"):
                matcher = self._matcher(weight)  # type: ignore[arg-type]
                result = matcher.run(self._query._node, options, first, maxitems)
        logger.debug(
            "get_mset(%d, %d) matched %d documents, returned %d",
            first,
            maxitems,
            result.matches_estimated,
            len(result.hits),
        )
        return MSet._from_result(self._database, matcher.shards, result)

    def _matching_entries(self, docid: int) -> list[TermEntry]:
        self._ensure_open()
        matcher = self._matcher(self._weight)
        return [TermEntry(term=term) for term in matcher.matching_terms(self._query._node, check_docid(docid))]

    @boundary
    def get_matching_terms_begin(self, docid: int) -> TermCursor:
        """Cursor over the query terms that index ``docid``, in query order."""
        return TermCursor(self, self._matching_entries(docid))

    @boundary
    def get_matching_terms_end(self, docid: int) -> TermCursor:
        entries = self._matching_entries(docid)
        return TermCursor(self, entries, len(entries))

    @boundary
    def get_matching_terms(self, docid: int) -> list[bytes]:
        return [entry.term for entry in iterate(self.get_matching_terms_begin(docid))]

    @boundary
    def get_description(self) -> str:
        self._ensure_open()
        return f"Enquire({self._query.get_description()}, weight={self._weight.name}, sort={self._sort_by})"
