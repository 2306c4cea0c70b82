"""Immutable query trees.

A tree is built from frozen node dataclasses; ``None`` stands for the empty
query (matches nothing). Trees are shared freely between ``Query`` objects
since nothing ever mutates a node.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Union

from fts_bridge.constants import (
    OP_AND_MAYBE,
    OP_AND_NOT,
    OP_ELITE_SET,
    OP_FILTER,
    OP_NAMES,
    OP_NEAR,
    OP_PHRASE,
    OP_SYNONYM,
    OP_VALUE_GE,
    OP_VALUE_RANGE,
)
from fts_bridge.engine.exceptions import NativeError


@dataclass(frozen=True)
class TermNode:
    term: bytes
    wqf: int = 1
    pos: int = 0


@dataclass(frozen=True)
class MatchAllNode:
    pass


@dataclass(frozen=True)
class CompoundNode:
    op: int
    children: tuple[Node, ...]
    parameter: float = 0


@dataclass(frozen=True)
class ValueRangeNode:
    op: int
    slot: int
    begin: bytes = b""
    end: bytes = b""


@dataclass(frozen=True)
class ScaleNode:
    factor: float
    child: Node


@dataclass(frozen=True)
class WildcardNode:
    pattern: bytes
    max_expansion: int = 0
    max_type: int = 0
    combiner: int = OP_SYNONYM


Node = Union[TermNode, MatchAllNode, CompoundNode, ValueRangeNode, ScaleNode, WildcardNode]


def _term_text(term: bytes) -> str:
    return term.decode("utf-8", errors="backslashreplace")


def describe(node: Node | None) -> str:
    """Render a tree the way ``Query.get_description`` shows it."""
    if node is None:
        return "Query()"
    return f"Query({_describe(node)})"


def _describe(node: Node) -> str:
    if isinstance(node, TermNode):
        text = _term_text(node.term)
        if node.wqf != 1:
            text += f"#{node.wqf}"
        if node.pos:
            text += f"@{node.pos}"
        return text
    if isinstance(node, MatchAllNode):
        return "<alldocuments>"
    if isinstance(node, ValueRangeNode):
        name = OP_NAMES[node.op]
        if node.op == OP_VALUE_RANGE:
            return f"{name} {node.slot} {_term_text(node.begin)} {_term_text(node.end)}"
        bound = node.begin if node.op == OP_VALUE_GE else node.end
        return f"{name} {node.slot} {_term_text(bound)}"
    if isinstance(node, ScaleNode):
        return f"{node.factor:g} * {_describe(node.child)}"
    if isinstance(node, WildcardNode):
        return f"WILDCARD {OP_NAMES[node.combiner]} {_term_text(node.pattern)}"
    joiner = f" {OP_NAMES[node.op]} "
    if node.op in (OP_NEAR, OP_PHRASE, OP_ELITE_SET):
        joiner = f" {OP_NAMES[node.op]} {int(node.parameter)} "
    return "(" + joiner.join(_describe(child) for child in node.children) + ")"


def iter_terms(node: Node | None, *, positive_only: bool = False):
    """Yield term leaves in query order.

    With ``positive_only`` the terms that can only exclude or filter
    documents (right side of AND_NOT and FILTER, the optional side of
    AND_MAYBE is kept) are skipped.
    """
    if node is None:
        return
    if isinstance(node, TermNode):
        yield node
    elif isinstance(node, ScaleNode):
        yield from iter_terms(node.child, positive_only=positive_only)
    elif isinstance(node, CompoundNode):
        children = node.children
        if positive_only and node.op in (OP_AND_NOT, OP_FILTER):
            children = children[:1]
        for child in children:
            yield from iter_terms(child, positive_only=positive_only)


def query_length(node: Node | None) -> int:
    return sum(leaf.wqf for leaf in iter_terms(node))


def to_dict(node: Node | None) -> dict[str, Any] | None:
    """Convert a tree to JSON-ready data; byte strings become hex."""
    if node is None:
        return None
    if isinstance(node, TermNode):
        return {"t": "term", "term": node.term.hex(), "wqf": node.wqf, "pos": node.pos}
    if isinstance(node, MatchAllNode):
        return {"t": "all"}
    if isinstance(node, ValueRangeNode):
        return {"t": "range", "op": node.op, "slot": node.slot, "begin": node.begin.hex(), "end": node.end.hex()}
    if isinstance(node, ScaleNode):
        return {"t": "scale", "factor": node.factor, "child": to_dict(node.child)}
    if isinstance(node, WildcardNode):
        return {
            "t": "wildcard",
            "pattern": node.pattern.hex(),
            "max_expansion": node.max_expansion,
            "max_type": node.max_type,
            "combiner": node.combiner,
        }
    return {
        "t": "compound",
        "op": node.op,
        "parameter": node.parameter,
        "children": [to_dict(child) for child in node.children],
    }


def from_dict(data: dict[str, Any] | None) -> Node | None:
    if data is None:
        return None
    try:
        kind = data["t"]
        if kind == "term":
            return TermNode(bytes.fromhex(data["term"]), int(data["wqf"]), int(data["pos"]))
        if kind == "all":
            return MatchAllNode()
        if kind == "range":
            return ValueRangeNode(
                int(data["op"]), int(data["slot"]), bytes.fromhex(data["begin"]), bytes.fromhex(data["end"])
            )
        if kind == "scale":
            child = from_dict(data["child"])
            if child is None:
                raise NativeError("SerialisationError", "Scaled query has no subquery")
            return ScaleNode(float(data["factor"]), child)
        if kind == "wildcard":
            return WildcardNode(
                bytes.fromhex(data["pattern"]),
                int(data["max_expansion"]),
                int(data["max_type"]),
                int(data["combiner"]),
            )
        if kind == "compound":
            children = tuple(from_dict(child) for child in data["children"])
            if any(child is None for child in children) or int(data["op"]) not in OP_NAMES:
                raise NativeError("SerialisationError", "Malformed compound query")
            return CompoundNode(int(data["op"]), children, data["parameter"])  # type: ignore[arg-type]
    except (KeyError, TypeError, ValueError) as exc:
        raise NativeError("SerialisationError", f"Malformed serialised query: {exc}") from exc
    raise NativeError("SerialisationError", f"Unknown query node type {kind!r}")


LEFT_SIGNIFICANT_OPS = frozenset({OP_AND_NOT, OP_AND_MAYBE, OP_FILTER})
