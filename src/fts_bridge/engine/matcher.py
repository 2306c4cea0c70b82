"""Query evaluation over one or more shards.

Matching is set based: every node evaluates to a mapping of local docid to
weight for one shard, using statistics aggregated over all shards so that
weights are comparable when results are merged. Global docids interleave
shards: local docid ``d`` of shard ``i`` out of ``n`` is ``(d - 1) * n + i + 1``.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
import logging
from typing import Protocol

from fts_bridge.constants import (
    ASCENDING,
    DESCENDING,
    OP_AND,
    OP_AND_MAYBE,
    OP_AND_NOT,
    OP_ELITE_SET,
    OP_FILTER,
    OP_MAX,
    OP_NEAR,
    OP_OR,
    OP_PHRASE,
    OP_SYNONYM,
    OP_VALUE_GE,
    OP_VALUE_LE,
    OP_VALUE_RANGE,
    OP_XOR,
    WILDCARD_LIMIT_ERROR,
    WILDCARD_LIMIT_FIRST,
    WILDCARD_LIMIT_MOST_FREQUENT,
)
from fts_bridge.engine.exceptions import NativeError
from fts_bridge.engine.phrase import has_ordered_match, within_window
from fts_bridge.engine.querytree import (
    CompoundNode,
    MatchAllNode,
    Node,
    ScaleNode,
    TermNode,
    ValueRangeNode,
    WildcardNode,
    iter_terms,
    query_length,
)
from fts_bridge.engine.stats import CollectionStats, WeightScheme
from fts_bridge.engine.storage import Shard


logger = logging.getLogger(__name__)

SORT_RELEVANCE = "relevance"
SORT_VALUE = "value"
SORT_VALUE_THEN_RELEVANCE = "value_then_relevance"
SORT_RELEVANCE_THEN_VALUE = "relevance_then_value"

_DEFAULT_ELITE_SET_SIZE = 10


class MatchObserver(Protocol):
    def observe(self, values: Mapping[int, bytes], weight: float) -> None:  # pragma: no cover - interface
        ...


@dataclass
class MatchOptions:
    """Everything that shapes a match apart from the query itself."""

    weight: WeightScheme
    query_length: int = 0
    sort_by: str = SORT_RELEVANCE
    sort_key: Callable[[Mapping[int, bytes]], bytes] | None = None
    sort_reverse: bool = False
    docid_order: int = ASCENDING
    collapse_slot: int | None = None
    collapse_max: int = 1
    percent_cutoff: int = 0
    weight_cutoff: float = 0.0
    observers: Sequence[MatchObserver] = ()


@dataclass
class MatchHit:
    docid: int
    weight: float
    sort_key: bytes = b""
    collapse_key: bytes = b""
    collapse_count: int = 0
    percent: int = 0


@dataclass
class MatchResult:
    hits: list[MatchHit]
    firstitem: int
    matches_estimated: int
    max_possible: float
    max_attained: float
    termfreqs: dict[bytes, int] = field(default_factory=dict)


def to_global(local_docid: int, shard_index: int, shard_count: int) -> int:
    return (local_docid - 1) * shard_count + shard_index + 1


def to_local(global_docid: int, shard_count: int) -> tuple[int, int]:
    """Return (shard index, local docid) for a global docid."""
    return (global_docid - 1) % shard_count, (global_docid - 1) // shard_count + 1


def collection_stats(shards: Sequence[Shard]) -> CollectionStats:
    return CollectionStats(
        doccount=sum(shard.doc_count() for shard in shards),
        total_length=sum(shard.total_length() for shard in shards),
    )


def expand_wildcard(shards: Sequence[Shard], node: WildcardNode, default_limit: int = 0) -> list[bytes]:
    """Return the terms a wildcard expands to, honouring its expansion limit."""
    freqs: dict[bytes, int] = {}
    for shard in shards:
        for term, termfreq in shard.all_terms(node.pattern):
            freqs[term] = freqs.get(term, 0) + termfreq
    terms = sorted(freqs)
    limit = node.max_expansion or default_limit
    if not limit or len(terms) <= limit:
        return terms
    if node.max_type == WILDCARD_LIMIT_ERROR:
        pattern = node.pattern.decode("utf-8", errors="backslashreplace")
        raise NativeError("WildcardError", f"Wildcard {pattern}* expands to more than {limit} terms")
    if node.max_type == WILDCARD_LIMIT_FIRST:
        return terms[:limit]
    if node.max_type == WILDCARD_LIMIT_MOST_FREQUENT:
        ranked = sorted(terms, key=lambda term: (-freqs[term], term))
        return sorted(ranked[:limit])
    raise NativeError("InvalidArgumentError", f"Unknown wildcard limit type {node.max_type}")


def expand_wildcards(shards: Sequence[Shard], node: Node | None, default_limit: int = 0) -> Node | None:
    """Rewrite every wildcard leaf as a combination of the terms it expands to."""
    if node is None:
        return None
    if isinstance(node, WildcardNode):
        terms = expand_wildcard(shards, node, default_limit)
        if not terms:
            return None
        if len(terms) == 1:
            return TermNode(terms[0])
        return CompoundNode(node.combiner, tuple(TermNode(term) for term in terms))
    if isinstance(node, ScaleNode):
        child = expand_wildcards(shards, node.child, default_limit)
        return None if child is None else ScaleNode(node.factor, child)
    if isinstance(node, CompoundNode):
        children = [expand_wildcards(shards, child, default_limit) for child in node.children]
        return _rebuild(node, children)
    return node


def _rebuild(node: CompoundNode, children: list[Node | None]) -> Node | None:
    # expansion may leave empty subqueries; they act as match-nothing
    if node.op in (OP_AND, OP_FILTER, OP_NEAR, OP_PHRASE):
        if any(child is None for child in children):
            return None
    elif node.op in (OP_AND_NOT, OP_AND_MAYBE):
        if children[0] is None:
            return None
    remaining = tuple(child for child in children if child is not None)
    if not remaining:
        return None
    if len(remaining) == 1 and node.op not in (OP_NEAR, OP_PHRASE):
        return remaining[0]
    return CompoundNode(node.op, remaining, node.parameter)


class _ShardEvaluator:
    """Evaluates a tree against one shard."""

    def __init__(self, matcher: Matcher, shard: Shard) -> None:
        self.matcher = matcher
        self.shard = shard
        self._doclens: dict[int, int] | None = None

    @property
    def doclens(self) -> dict[int, int]:
        if self._doclens is None:
            self._doclens = self.shard.doc_lengths()
        return self._doclens

    def evaluate(self, node: Node) -> dict[int, float]:
        if isinstance(node, TermNode):
            return self._term(node)
        if isinstance(node, MatchAllNode):
            return dict.fromkeys(self.doclens, 0.0)
        if isinstance(node, ValueRangeNode):
            return self._value_range(node)
        if isinstance(node, ScaleNode):
            return {docid: weight * node.factor for docid, weight in self.evaluate(node.child).items()}
        if isinstance(node, WildcardNode):
            raise NativeError("InternalError", "Wildcards must be expanded before matching")
        return self._compound(node)

    def _term(self, node: TermNode) -> dict[int, float]:
        termweight = self.matcher.term_weight(node.term, node.wqf)
        return self._weigh(self.shard.postings(node.term), termweight)

    def _weigh(self, postings: Sequence[tuple[int, int]], termweight: float) -> dict[int, float]:
        weight = self.matcher.weight
        avlength = self.matcher.stats.average_length
        doclens = self.doclens
        return {
            docid: weight.sum_part(wdf, doclens.get(docid, 0), avlength, termweight) for docid, wdf in postings
        }

    def _value_range(self, node: ValueRangeNode) -> dict[int, float]:
        if node.op == OP_VALUE_RANGE:
            docids = self.shard.docids_in_value_range(node.slot, node.begin, node.end)
        elif node.op == OP_VALUE_GE:
            docids = self.shard.docids_in_value_range(node.slot, node.begin, None)
        elif node.op == OP_VALUE_LE:
            docids = self.shard.docids_in_value_range(node.slot, None, node.end)
        else:
            raise NativeError("InvalidOperationError", f"Not a value range operator: {node.op}")
        return dict.fromkeys(docids, 0.0)

    def _compound(self, node: CompoundNode) -> dict[int, float]:
        op = node.op
        if op == OP_SYNONYM:
            return self._synonym(node)
        if op in (OP_NEAR, OP_PHRASE):
            return self._positional(node)
        if op == OP_ELITE_SET:
            return self._union(self._elite_children(node), combine=sum)

        children = node.children
        if op == OP_OR:
            return self._union(children, combine=sum)
        if op == OP_MAX:
            return self._union(children, combine=max)
        if op == OP_AND:
            return self._intersection(children)
        if op == OP_FILTER:
            left = self.evaluate(children[0])
            for child in children[1:]:
                right = self.evaluate(child)
                left = {docid: weight for docid, weight in left.items() if docid in right}
            return left
        if op == OP_AND_NOT:
            left = self.evaluate(children[0])
            for child in children[1:]:
                right = self.evaluate(child)
                left = {docid: weight for docid, weight in left.items() if docid not in right}
            return left
        if op == OP_AND_MAYBE:
            left = self.evaluate(children[0])
            for child in children[1:]:
                right = self.evaluate(child)
                left = {docid: weight + right.get(docid, 0.0) for docid, weight in left.items()}
            return left
        if op == OP_XOR:
            counts: dict[int, int] = {}
            totals: dict[int, float] = {}
            for child in children:
                for docid, weight in self.evaluate(child).items():
                    counts[docid] = counts.get(docid, 0) + 1
                    totals[docid] = totals.get(docid, 0.0) + weight
            return {docid: totals[docid] for docid, count in counts.items() if count % 2 == 1}
        raise NativeError("InvalidOperationError", f"Unknown query operator {op}")

    def _union(self, children: Sequence[Node], *, combine: Callable) -> dict[int, float]:
        result: dict[int, float] = {}
        for child in children:
            for docid, weight in self.evaluate(child).items():
                if docid in result:
                    result[docid] = combine((result[docid], weight))
                else:
                    result[docid] = weight
        return result

    def _intersection(self, children: Sequence[Node]) -> dict[int, float]:
        evaluated = sorted((self.evaluate(child) for child in children), key=len)
        result = dict(evaluated[0])
        for other in evaluated[1:]:
            result = {docid: weight + other[docid] for docid, weight in result.items() if docid in other}
        return result

    def _elite_children(self, node: CompoundNode) -> Sequence[Node]:
        size = int(node.parameter) or _DEFAULT_ELITE_SET_SIZE
        if len(node.children) <= size:
            return node.children

        def rank(child: Node) -> float:
            if isinstance(child, TermNode):
                return self.matcher.term_weight(child.term, child.wqf)
            return float("inf")

        return sorted(node.children, key=rank, reverse=True)[:size]

    def wdfs(self, node: Node) -> dict[int, int]:
        """Within-document frequency of ``node`` treated as a single term."""
        if isinstance(node, TermNode):
            return dict(self.shard.postings(node.term))
        if isinstance(node, CompoundNode) and node.op in (OP_SYNONYM, OP_OR, OP_MAX):
            combined: dict[int, int] = {}
            for child in node.children:
                for docid, wdf in self.wdfs(child).items():
                    combined[docid] = combined.get(docid, 0) + wdf
            return combined
        return dict.fromkeys(self.evaluate(node), 1)

    def _synonym(self, node: CompoundNode) -> dict[int, float]:
        termweight = self.matcher.synonym_weight(node)
        return self._weigh(sorted(self.wdfs(node).items()), termweight)

    def _positional(self, node: CompoundNode) -> dict[int, float]:
        terms = []
        for child in node.children:
            if not isinstance(child, TermNode):
                raise NativeError(
                    "UnimplementedError", f"{'PHRASE' if node.op == OP_PHRASE else 'NEAR'} only supports terms"
                )
            terms.append(child)
        window = max(int(node.parameter), len(terms))
        candidates = self._intersection(terms)
        result = {}
        for docid, weight in candidates.items():
            position_lists = [self.shard.positions(term.term, docid) for term in terms]
            if node.op == OP_PHRASE:
                matched = has_ordered_match(position_lists, window)
            else:
                matched = within_window(position_lists, window)
            if matched:
                result[docid] = weight
        return result


class Matcher:
    """Runs a query over a list of shards and builds the result window."""

    def __init__(self, shards: Sequence[Shard], weight: WeightScheme, *, wildcard_limit: int = 0) -> None:
        self.shards = list(shards)
        self.weight = weight
        self.wildcard_limit = wildcard_limit
        self.stats = collection_stats(self.shards)
        self._termfreqs: dict[bytes, int] = {}
        self._synonym_freqs: dict[CompoundNode, int] = {}

    def termfreq(self, term: bytes) -> int:
        if term not in self._termfreqs:
            self._termfreqs[term] = sum(shard.term_freq(term) for shard in self.shards)
        return self._termfreqs[term]

    def term_weight(self, term: bytes, wqf: int) -> float:
        return self.weight.term_weight(self.termfreq(term), self.stats.doccount, wqf)

    def synonym_weight(self, node: CompoundNode) -> float:
        if node not in self._synonym_freqs:
            self._synonym_freqs[node] = sum(len(_ShardEvaluator(self, shard).wdfs(node)) for shard in self.shards)
        return self.weight.term_weight(self._synonym_freqs[node], self.stats.doccount, 1)

    def prepare(self, node: Node | None) -> Node | None:
        return expand_wildcards(self.shards, node, self.wildcard_limit)

    def candidates(self, node: Node | None) -> list[tuple[int, int, float]]:
        """Return (shard index, local docid, weight) for every matching document."""
        if node is None:
            return []
        found = []
        for index, shard in enumerate(self.shards):
            evaluator = _ShardEvaluator(self, shard)
            for docid, weight in evaluator.evaluate(node).items():
                found.append((index, docid, weight))
        return found

    def run(self, node: Node | None, options: MatchOptions, first: int, maxitems: int) -> MatchResult:
        prepared = self.prepare(node)
        qlen = options.query_length or query_length(prepared)
        count = len(self.shards)
        avlength = self.stats.average_length
        needs_values = bool(options.observers) or options.sort_key is not None or options.collapse_slot is not None

        hits: list[MatchHit] = []
        values_by_docid: dict[int, Mapping[int, bytes]] = {}
        for index, docid, weight in self.candidates(prepared):
            shard = self.shards[index]
            extra = self.weight.sum_extra(shard.doc_length(docid), avlength, qlen)
            hit = MatchHit(docid=to_global(docid, index, count), weight=weight + extra)
            if needs_values:
                values = shard.doc_values(docid)
                values_by_docid[hit.docid] = values
                for observer in options.observers:
                    observer.observe(values, hit.weight)
                if options.sort_key is not None:
                    hit.sort_key = options.sort_key(values)
                if options.collapse_slot is not None:
                    hit.collapse_key = values.get(options.collapse_slot, b"")
            hits.append(hit)

        max_attained = max((hit.weight for hit in hits), default=0.0)
        _sort_hits(hits, options)
        if options.collapse_slot is not None:
            hits = _collapse(hits, options.collapse_max)
        self._assign_percentages(hits, prepared, max_attained)
        if options.percent_cutoff > 0:
            hits = [hit for hit in hits if hit.percent >= options.percent_cutoff]
        if options.weight_cutoff > 0:
            hits = [hit for hit in hits if hit.weight >= options.weight_cutoff]

        window = hits[first : first + maxitems] if maxitems > 0 else []
        logger.debug("Matched %d documents, returning %d from %d", len(hits), len(window), first)
        return MatchResult(
            hits=window,
            firstitem=first,
            matches_estimated=len(hits),
            max_possible=max_attained,
            max_attained=max_attained,
            termfreqs={leaf.term: self.termfreq(leaf.term) for leaf in iter_terms(prepared)},
        )

    def _assign_percentages(self, hits: list[MatchHit], node: Node | None, max_attained: float) -> None:
        if not hits:
            return
        if max_attained <= 0:
            for hit in hits:
                hit.percent = 100
            return
        terms = list(dict.fromkeys(leaf.term for leaf in iter_terms(node, positive_only=True)))
        best = max(hits, key=lambda hit: hit.weight)
        if terms:
            index, local = to_local(best.docid, len(self.shards))
            shard = self.shards[index]
            matched = sum(1 for term in terms if shard.doc_has_term(local, term))
            fraction = matched / len(terms)
        else:
            fraction = 1.0
        factor = fraction * 100.0 / max_attained
        for hit in hits:
            percent = int(hit.weight * factor + 1e-9)
            percent = min(max(percent, 0), 100)
            if percent == 0 and hit.weight > 0:
                percent = 1
            hit.percent = percent

    def matching_terms(self, node: Node | None, docid: int) -> list[bytes]:
        """Return the distinct query terms indexing ``docid``, in query order."""
        if not self.shards:
            return []
        prepared = self.prepare(node)
        index, local = to_local(docid, len(self.shards))
        shard = self.shards[index]
        terms = dict.fromkeys(leaf.term for leaf in iter_terms(prepared))
        return [term for term in terms if shard.doc_has_term(local, term)]


def _sort_hits(hits: list[MatchHit], options: MatchOptions) -> None:
    # stable sorts, least significant key first
    hits.sort(key=lambda hit: hit.docid, reverse=options.docid_order == DESCENDING)
    mode = options.sort_by
    if mode == SORT_RELEVANCE:
        hits.sort(key=lambda hit: hit.weight, reverse=True)
    elif mode == SORT_VALUE:
        hits.sort(key=lambda hit: hit.sort_key, reverse=options.sort_reverse)
    elif mode == SORT_VALUE_THEN_RELEVANCE:
        hits.sort(key=lambda hit: hit.weight, reverse=True)
        hits.sort(key=lambda hit: hit.sort_key, reverse=options.sort_reverse)
    elif mode == SORT_RELEVANCE_THEN_VALUE:
        hits.sort(key=lambda hit: hit.sort_key, reverse=options.sort_reverse)
        hits.sort(key=lambda hit: hit.weight, reverse=True)
    else:
        raise NativeError("InvalidArgumentError", f"Unknown sort mode {mode!r}")


def _collapse(hits: list[MatchHit], collapse_max: int) -> list[MatchHit]:
    kept: list[MatchHit] = []
    kept_by_key: dict[bytes, list[MatchHit]] = {}
    for hit in hits:
        if not hit.collapse_key:
            kept.append(hit)
            continue
        group = kept_by_key.setdefault(hit.collapse_key, [])
        if len(group) < collapse_max:
            group.append(hit)
            kept.append(hit)
        else:
            for survivor in group:
                survivor.collapse_count += 1
    return kept
