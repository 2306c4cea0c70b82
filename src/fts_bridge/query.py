"""Query objects.

A ``Query`` is an immutable value wrapping a query tree. It is cheap to copy
and safe to share: every combining operation returns a new ``Query`` and
leaves its operands untouched. ``Query()`` is the empty query, which
matches nothing; combining it with another query yields the other query.

Usage:
    q = Query("hello") & Query("world")
    q = Query(Query.OP_OR, ["apple", "orange"])
    q = Query.value_range(0, encode_double(1.0), encode_double(5.0))
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

import orjson

from fts_bridge import codec, constants
from fts_bridge.constants import (
    LEAF_MATCH_ALL,
    LEAF_MATCH_NOTHING,
    LEAF_TERM,
    OP_AND,
    OP_AND_MAYBE,
    OP_AND_NOT,
    OP_ELITE_SET,
    OP_FILTER,
    OP_MAX,
    OP_NEAR,
    OP_OR,
    OP_PHRASE,
    OP_SCALE_WEIGHT,
    OP_SYNONYM,
    OP_VALUE_GE,
    OP_VALUE_LE,
    OP_VALUE_RANGE,
    OP_WILDCARD,
    OP_XOR,
    WILDCARD_LIMIT_ERROR,
    WILDCARD_LIMIT_MOST_FREQUENT,
)
from fts_bridge.engine import querytree
from fts_bridge.engine.querytree import (
    CompoundNode,
    MatchAllNode,
    Node,
    ScaleNode,
    TermNode,
    ValueRangeNode,
    WildcardNode,
)
from fts_bridge.errors import InvalidArgumentError, RangeError, SerialisationError, boundary
from fts_bridge.marshal import check_slot, to_bytes, to_term


_COMBINING_OPS = frozenset(
    {OP_AND, OP_OR, OP_AND_NOT, OP_XOR, OP_AND_MAYBE, OP_FILTER, OP_NEAR, OP_PHRASE, OP_ELITE_SET, OP_SYNONYM, OP_MAX}
)
# Operators where A op (B op C) == (A op B) op C, so nested children can be spliced
_ASSOCIATIVE_OPS = frozenset({OP_AND, OP_OR, OP_XOR, OP_SYNONYM, OP_MAX})
_WINDOWED_OPS = frozenset({OP_NEAR, OP_PHRASE, OP_ELITE_SET})
_SERIAL_VERSION = 1


def _check_int(value: object, what: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise InvalidArgumentError(f"{what} must be a non-negative int, got {value!r}")
    return value


def _coerce(subquery: object) -> Node | None:
    if isinstance(subquery, Query):
        return subquery._node
    if isinstance(subquery, (str, bytes, bytearray, memoryview)):
        return TermNode(to_term(subquery))
    raise InvalidArgumentError(f"Subqueries must be Query, str or bytes, not {type(subquery).__name__}")


def combine_nodes(op: int, children: Iterable[Node | None], parameter: float = 0) -> Node | None:
    """Build the tree for ``op`` over ``children``, simplifying as it goes.

    Empty children are dropped, except that an empty left-hand side of
    AND_NOT, AND_MAYBE or FILTER makes the whole result empty.
    """
    if op not in _COMBINING_OPS:
        raise InvalidArgumentError(f"{constants.OP_NAMES.get(op, op)} can't be used to combine subqueries")
    items = list(children)
    if op in querytree.LEFT_SIGNIFICANT_OPS and items and items[0] is None:
        return None
    kept: list[Node] = []
    for index, child in enumerate(items):
        if child is None:
            continue
        spliceable = op in _ASSOCIATIVE_OPS or (op in querytree.LEFT_SIGNIFICANT_OPS and index == 0)
        if spliceable and isinstance(child, CompoundNode) and child.op == op and child.parameter == parameter:
            kept.extend(child.children)
        else:
            kept.append(child)
    if not kept:
        return None
    if len(kept) == 1:
        return kept[0]
    if op not in _WINDOWED_OPS:
        parameter = 0
    return CompoundNode(op, tuple(kept), parameter)


class Query:
    """An immutable search query.

    Constructor forms:
        ``Query()`` - the empty query.
        ``Query(term, wqf=1, pos=0)`` - a single term; ``Query("")`` matches
        every document.
        ``Query(op, subqueries, parameter=0)`` - combine queries (or terms)
        with a combining operator.
        ``Query(OP_SCALE_WEIGHT, query, factor)``,
        ``Query(OP_VALUE_RANGE, slot, begin, end)``,
        ``Query(OP_VALUE_GE, slot, limit)``, ``Query(OP_VALUE_LE, slot, limit)``
        and ``Query(OP_WILDCARD, pattern, ...)`` - shorthand for the named
        constructors below.
    """

    __slots__ = ("_node",)

    OP_AND = OP_AND
    OP_OR = OP_OR
    OP_AND_NOT = OP_AND_NOT
    OP_XOR = OP_XOR
    OP_AND_MAYBE = OP_AND_MAYBE
    OP_FILTER = OP_FILTER
    OP_NEAR = OP_NEAR
    OP_PHRASE = OP_PHRASE
    OP_VALUE_RANGE = OP_VALUE_RANGE
    OP_SCALE_WEIGHT = OP_SCALE_WEIGHT
    OP_ELITE_SET = OP_ELITE_SET
    OP_VALUE_GE = OP_VALUE_GE
    OP_VALUE_LE = OP_VALUE_LE
    OP_SYNONYM = OP_SYNONYM
    OP_MAX = OP_MAX
    OP_WILDCARD = OP_WILDCARD
    OP_INVALID = constants.OP_INVALID
    LEAF_TERM = LEAF_TERM
    LEAF_MATCH_ALL = LEAF_MATCH_ALL
    LEAF_MATCH_NOTHING = LEAF_MATCH_NOTHING

    @boundary
    def __init__(self, *args: Any) -> None:
        self._node = _node_from_args(args)

    @classmethod
    def _wrap(cls, node: Node | None) -> Query:
        query = cls.__new__(cls)
        query._node = node
        return query

    # -- named constructors --------------------------------------------------

    @classmethod
    def match_all(cls) -> Query:
        return cls._wrap(MatchAllNode())

    @classmethod
    def match_nothing(cls) -> Query:
        return cls._wrap(None)

    @classmethod
    @boundary
    def combine(cls, op: int, subqueries: Iterable[Query | str | bytes], parameter: float = 0) -> Query:
        if isinstance(subqueries, (str, bytes, Query)):
            raise InvalidArgumentError("subqueries must be an iterable of queries or terms")
        if op in _WINDOWED_OPS:
            parameter = _check_int(parameter, f"{constants.OP_NAMES[op]} parameter")
        return cls._wrap(combine_nodes(op, [_coerce(item) for item in subqueries], parameter))

    @classmethod
    @boundary
    def value_range(cls, slot: int, begin: str | bytes, end: str | bytes) -> Query:
        """Match documents whose value in ``slot`` lies in [begin, end] by byte order."""
        slot = check_slot(slot)
        low, high = to_bytes(begin, "range start"), to_bytes(end, "range end")
        if low > high:
            return cls._wrap(None)
        return cls._wrap(ValueRangeNode(OP_VALUE_RANGE, slot, low, high))

    @classmethod
    @boundary
    def value_ge(cls, slot: int, limit: str | bytes) -> Query:
        slot = check_slot(slot)
        low = to_bytes(limit, "range start")
        if not low:
            return cls._wrap(MatchAllNode())
        return cls._wrap(ValueRangeNode(OP_VALUE_GE, slot, begin=low))

    @classmethod
    @boundary
    def value_le(cls, slot: int, limit: str | bytes) -> Query:
        return cls._wrap(ValueRangeNode(OP_VALUE_LE, check_slot(slot), end=to_bytes(limit, "range end")))

    @classmethod
    @boundary
    def numeric_range(cls, op: int, slot: int, begin: float, end: float | None = None) -> Query:
        """Range over numbers stored with the sortable encoding.

        For OP_VALUE_GE and OP_VALUE_LE ``begin`` is the single limit.
        """
        if op == OP_VALUE_RANGE:
            if end is None:
                raise InvalidArgumentError("OP_VALUE_RANGE needs both bounds")
            return cls.value_range(slot, codec.sortable_serialise(begin), codec.sortable_serialise(end))
        if op == OP_VALUE_GE:
            return cls.value_ge(slot, codec.sortable_serialise(begin))
        if op == OP_VALUE_LE:
            return cls.value_le(slot, codec.sortable_serialise(begin))
        raise InvalidArgumentError(f"{constants.OP_NAMES.get(op, op)} is not a value range operator")

    @classmethod
    @boundary
    def double_with_prefix(cls, prefix: str | bytes, value: float) -> Query:
        """Match the term ``TermGenerator.index_double`` produces for ``value``."""
        return cls._wrap(TermNode(to_term(to_bytes(prefix, "prefix") + codec.sortable_serialise(value))))

    @classmethod
    @boundary
    def scale_weight(cls, query: Query, factor: float) -> Query:
        if not isinstance(query, Query):
            raise InvalidArgumentError(f"scale_weight() needs a Query, not {type(query).__name__}")
        if isinstance(factor, bool) or not isinstance(factor, (int, float)) or factor != factor:
            raise InvalidArgumentError(f"Scale factor must be a number, got {factor!r}")
        if factor < 0:
            raise InvalidArgumentError("OP_SCALE_WEIGHT requires factor >= 0")
        node = query._node
        if node is None or factor == 1:
            return query
        if isinstance(node, ScaleNode):
            return cls._wrap(ScaleNode(node.factor * factor, node.child))
        return cls._wrap(ScaleNode(float(factor), node))

    @classmethod
    @boundary
    def wildcard(
        cls,
        pattern: str | bytes,
        max_expansion: int = 0,
        max_type: int = WILDCARD_LIMIT_ERROR,
        combiner: int = OP_SYNONYM,
    ) -> Query:
        """Match every term starting with ``pattern``."""
        max_expansion = _check_int(max_expansion, "max_expansion")
        if not WILDCARD_LIMIT_ERROR <= max_type <= WILDCARD_LIMIT_MOST_FREQUENT:
            raise InvalidArgumentError(f"Unknown wildcard limit type {max_type}")
        if combiner not in (OP_SYNONYM, OP_OR, OP_MAX):
            raise InvalidArgumentError("Wildcard combiner must be OP_SYNONYM, OP_OR or OP_MAX")
        return cls._wrap(WildcardNode(to_bytes(pattern, "wildcard pattern"), max_expansion, max_type, combiner))

    # -- combining -------------------------------------------------------------

    def add_right(self, op: int, other: Query | str | bytes) -> Query:
        """Return ``self op other`` as a new query."""
        return Query.combine(op, [self, other])

    def __and__(self, other: object) -> Query:
        if not isinstance(other, Query):
            return NotImplemented
        return Query.combine(OP_AND, [self, other])

    def __or__(self, other: object) -> Query:
        if not isinstance(other, Query):
            return NotImplemented
        return Query.combine(OP_OR, [self, other])

    def __xor__(self, other: object) -> Query:
        if not isinstance(other, Query):
            return NotImplemented
        return Query.combine(OP_XOR, [self, other])

    def __mul__(self, factor: object) -> Query:
        if isinstance(factor, bool) or not isinstance(factor, (int, float)):
            return NotImplemented
        return Query.scale_weight(self, factor)

    __rmul__ = __mul__

    def __truediv__(self, divisor: object) -> Query:
        if isinstance(divisor, bool) or not isinstance(divisor, (int, float)):
            return NotImplemented
        if divisor == 0:
            raise InvalidArgumentError("Can't scale a query by 1/0")
        return Query.scale_weight(self, 1 / divisor)

    # -- introspection -----------------------------------------------------------

    def is_empty(self) -> bool:
        return self._node is None

    def get_length(self) -> int:
        """Sum of the within-query frequencies of every term."""
        return querytree.query_length(self._node)

    def get_terms(self) -> list[bytes]:
        """Return the distinct terms in query order (wildcards are not expanded)."""
        return list(dict.fromkeys(leaf.term for leaf in querytree.iter_terms(self._node)))

    def get_unique_terms(self) -> list[bytes]:
        return sorted(self.get_terms())

    def get_type(self) -> int:
        node = self._node
        if node is None:
            return LEAF_MATCH_NOTHING
        if isinstance(node, TermNode):
            return LEAF_TERM
        if isinstance(node, MatchAllNode):
            return LEAF_MATCH_ALL
        if isinstance(node, ScaleNode):
            return OP_SCALE_WEIGHT
        if isinstance(node, WildcardNode):
            return OP_WILDCARD
        return node.op

    def get_num_subqueries(self) -> int:
        node = self._node
        if isinstance(node, CompoundNode):
            return len(node.children)
        if isinstance(node, ScaleNode):
            return 1
        return 0

    @boundary
    def get_subquery(self, index: int) -> Query:
        node = self._node
        if isinstance(node, ScaleNode):
            children: tuple[Node, ...] = (node.child,)
        elif isinstance(node, CompoundNode):
            children = node.children
        else:
            children = ()
        if isinstance(index, bool) or not isinstance(index, int) or not 0 <= index < len(children):
            raise RangeError(f"Subquery index {index} out of range (query has {len(children)})")
        return Query._wrap(children[index])

    def get_description(self) -> str:
        return querytree.describe(self._node)

    __str__ = get_description
    __repr__ = get_description

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Query):
            return NotImplemented
        return self._node == other._node

    def __hash__(self) -> int:
        return hash(self._node)

    def __setattr__(self, name: str, value: object) -> None:
        if hasattr(self, "_node"):
            raise AttributeError("Query objects are immutable")
        object.__setattr__(self, name, value)

    def __copy__(self) -> Query:
        return self

    def __deepcopy__(self, memo: dict) -> Query:
        return self

    def __reduce__(self) -> tuple[Any, ...]:
        return (Query.unserialise, (self.serialise(),))

    # -- serialisation -------------------------------------------------------

    def serialise(self) -> bytes:
        return orjson.dumps({"v": _SERIAL_VERSION, "q": querytree.to_dict(self._node)})

    @classmethod
    @boundary
    def unserialise(cls, data: str | bytes) -> Query:
        raw = to_bytes(data, "serialised query")
        try:
            parsed = orjson.loads(raw)
            version = parsed["v"]
            tree = parsed["q"]
        except (orjson.JSONDecodeError, KeyError, TypeError) as exc:
            raise SerialisationError(f"Malformed serialised query: {exc}") from exc
        if version != _SERIAL_VERSION:
            raise SerialisationError(f"Unsupported serialised query version {version!r}")
        return cls._wrap(querytree.from_dict(tree))


def _node_from_args(args: tuple[Any, ...]) -> Node | None:
    if not args:
        return None
    head, rest = args[0], args[1:]
    if isinstance(head, int) and not isinstance(head, bool):
        op = head
        if op == OP_SCALE_WEIGHT:
            return Query.scale_weight(*rest)._node
        if op == OP_VALUE_RANGE:
            return Query.value_range(*rest)._node
        if op == OP_VALUE_GE:
            return Query.value_ge(*rest)._node
        if op == OP_VALUE_LE:
            return Query.value_le(*rest)._node
        if op == OP_WILDCARD:
            return Query.wildcard(*rest)._node
        if not rest or len(rest) > 2:
            raise InvalidArgumentError("Query(op, subqueries, parameter=0) expects subqueries")
        return Query.combine(op, *rest)._node
    if isinstance(head, Query) and not rest:
        return head._node
    if len(rest) > 2:
        raise InvalidArgumentError("Query(term, wqf=1, pos=0) takes at most three arguments")
    term = to_bytes(head, "term")
    wqf = _check_int(rest[0], "wqf") if rest else 1
    pos = _check_int(rest[1], "pos") if len(rest) > 1 else 0
    if not term:
        return MatchAllNode()
    return TermNode(to_term(term), wqf, pos)
