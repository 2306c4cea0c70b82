"""Parsing user query strings into ``Query`` objects.

Supported syntax (subject to the flags passed to ``parse_query``):

- plain words, combined with the default operator (OR unless changed)
- ``field:word``, ``field:"a phrase"`` and ``field:(a group)`` for fields
  registered with ``add_prefix``
- ``field:value`` filters for fields registered with ``add_boolean_prefix``;
  filters on the same field are OR'd, filters on different fields AND'd,
  and the result restricts the rest of the group with ``OP_FILTER``
- ``"quoted phrases"`` and hyphenated/dotted words (``e-mail``, ``1.2.3``)
- ``+required`` and ``-excluded`` terms
- ``AND``, ``OR``, ``XOR``, ``NOT``, ``AND NOT``, ``NEAR``, ``NEAR/n``,
  ``ADJ``, ``ADJ/n`` and parentheses
- ``word*`` wildcards and partial final words
- ``begin..end`` ranges handled by registered range processors

Operator precedence, lowest first: OR, XOR, AND/NOT, implicit default
operator, NEAR/ADJ. Malformed input raises ``QueryParserError``.
"""

from __future__ import annotations

from dataclasses import dataclass
import datetime
import logging
import re
from typing import Any

from fts_bridge import codec
from fts_bridge.config import get_settings
from fts_bridge.constants import (
    FLAG_ACCUMULATE,
    FLAG_AUTO_MULTIWORD_SYNONYMS,
    FLAG_AUTO_SYNONYMS,
    FLAG_BOOLEAN,
    FLAG_BOOLEAN_ANY_CASE,
    FLAG_CJK_NGRAM,
    FLAG_DEFAULT,
    FLAG_LOVEHATE,
    FLAG_NO_POSITIONS,
    FLAG_PARTIAL,
    FLAG_PHRASE,
    FLAG_PURE_NOT,
    FLAG_SPELLING_CORRECTION,
    FLAG_SYNONYM,
    FLAG_WILDCARD,
    OP_AND,
    OP_AND_MAYBE,
    OP_AND_NOT,
    OP_ELITE_SET,
    OP_FILTER,
    OP_MAX,
    OP_NAMES,
    OP_NEAR,
    OP_OR,
    OP_PHRASE,
    OP_SYNONYM,
    OP_VALUE_GE,
    OP_VALUE_LE,
    OP_VALUE_RANGE,
    OP_XOR,
    RP_DATE_PREFER_MDY,
    RP_REPEATED,
    RP_SUFFIX,
    STEM_ALL,
    STEM_ALL_Z,
    STEM_NONE,
    STEM_SOME,
    STEM_SOME_FULL_POS,
    WILDCARD_LIMIT_ERROR,
    WILDCARD_LIMIT_MOST_FREQUENT,
)
from fts_bridge.database import Database
from fts_bridge.engine.analyzers import WORD_PATTERN, is_cjk, word_analyzer
from fts_bridge.engine.matcher import expand_wildcard
from fts_bridge.engine.querytree import MatchAllNode, Node, ScaleNode, TermNode, ValueRangeNode, WildcardNode
from fts_bridge.errors import (
    FeatureUnavailableError,
    InvalidArgumentError,
    InvalidOperationError,
    QueryParserError,
    boundary,
)
from fts_bridge.handles import Handle, require_instance, require_live
from fts_bridge.marshal import check_slot, to_bytes, to_term, to_text
from fts_bridge.observability.metrics import OPERATION_LATENCY, track_latency
from fts_bridge.observability.tracing import create_span
from fts_bridge.query import Query, combine_nodes
from fts_bridge.stem import Stem, Stopper


logger = logging.getLogger(__name__)

_FIELD_NAME = re.compile(r"[^\W\d]\w*\Z")
_FIELD_PREFIX = re.compile(r"([^\W\d]\w*):")
_WINDOW_OP = re.compile(r"(NEAR|ADJ)(?:/(\d+))?(?=[\s()]|\Z)")
_WINDOW_OP_ANY_CASE = re.compile(r"(NEAR|ADJ)(?:/(\d+))?(?=[\s()]|\Z)", re.IGNORECASE)
_NUMBER = re.compile(r"[-+]?(?:\d+\.?\d*|\.\d+)(?:[eE][-+]?\d+)?\Z")
_PHRASE_GENERATORS = ".-/:\\@"
_KEYWORDS = frozenset({"AND", "OR", "XOR", "NOT"})
_DEFAULT_NEAR_WINDOW = 10
_UNSUPPORTED_FLAGS = FLAG_SPELLING_CORRECTION | FLAG_SYNONYM | FLAG_AUTO_SYNONYMS | FLAG_AUTO_MULTIWORD_SYNONYMS
_DEFAULT_OPS = frozenset({OP_OR, OP_AND, OP_NEAR, OP_PHRASE, OP_ELITE_SET, OP_SYNONYM, OP_MAX})
_OPERAND_START = frozenset({"WORD", "PHRASE", "LPAREN", "LOVE", "HATE", "FILTER", "RANGE"})

# Returned by range processors that do not recognise a range
_REJECT: Any = object()


# -- range processors -------------------------------------------------------


class RangeProcessor(Handle):
    """Turns ``begin..end`` into a range over a value slot.

    ``marker`` is a string that identifies ranges meant for this processor:
    a prefix of the start by default, a suffix of the end with
    ``RP_SUFFIX``. With ``RP_REPEATED`` it may also appear on the other
    bound (``$1..$10``, ``5kg..10kg``). Raw bounds are compared as bytes.
    """

    @boundary
    def __init__(self, slot: int, marker: str | bytes = "", flags: int = 0) -> None:
        super().__init__()
        self.slot = check_slot(slot)
        self.marker = to_text(marker, "range marker")
        self.flags = flags

    def _strip_marker(self, begin: str, end: str) -> tuple[str, str] | None:
        marker = self.marker
        if not marker:
            return begin, end
        repeated = bool(self.flags & RP_REPEATED)
        if self.flags & RP_SUFFIX:
            if end.endswith(marker):
                end = end[: -len(marker)]
                if repeated and begin.endswith(marker):
                    begin = begin[: -len(marker)]
                return begin, end
            if not end and begin.endswith(marker):
                return begin[: -len(marker)], end
            return None
        if begin.startswith(marker):
            begin = begin[len(marker) :]
            if repeated and end.startswith(marker):
                end = end[len(marker) :]
            return begin, end
        if not begin and end.startswith(marker):
            return begin, end[len(marker) :]
        return None

    def _range_node(self, begin: str, end: str) -> Any:
        stripped = self._strip_marker(begin, end)
        if stripped is None:
            return _REJECT
        return self._build(*stripped)

    def _build(self, begin: str, end: str) -> Any:
        return _value_range(self.slot, begin.encode("utf-8"), end.encode("utf-8"))

    @boundary
    def check_range(self, begin: str | bytes, end: str | bytes) -> Query | None:
        """Return the range query for ``begin..end``, or None if it is not recognised here."""
        self._ensure_open()
        node = self._range_node(to_text(begin, "range start"), to_text(end, "range end"))
        return None if node is _REJECT else Query._wrap(node)

    @boundary
    def __call__(self, begin: str | bytes, end: str | bytes) -> Query:
        self._ensure_open()
        node = self._build(to_text(begin, "range start"), to_text(end, "range end"))
        if node is _REJECT:
            raise QueryParserError(f"Unrecognised range {begin!r}..{end!r}")
        return Query._wrap(node)

    @boundary
    def get_description(self) -> str:
        self._ensure_open()
        return f"{type(self).__name__}(slot={self.slot}, marker={self.marker!r}, flags={self.flags})"


class NumberRangeProcessor(RangeProcessor):
    """Ranges over numbers stored with ``sortable_serialise``."""

    def _build(self, begin: str, end: str) -> Any:
        if (begin and not _NUMBER.match(begin)) or (end and not _NUMBER.match(end)):
            return _REJECT
        low = codec.sortable_serialise(float(begin)) if begin else b""
        high = codec.sortable_serialise(float(end)) if end else b""
        return _value_range(self.slot, low, high)


class DateRangeProcessor(RangeProcessor):
    """Ranges over dates stored as ``YYYYMMDD`` strings.

    Accepts ``YYYYMMDD``, ``YYYY-MM-DD`` and ``D/M/Y`` (``M/D/Y`` with
    ``RP_DATE_PREFER_MDY``). Two-digit years are placed in the hundred years
    starting at ``epoch_year``.
    """

    @boundary
    def __init__(self, slot: int, marker: str | bytes = "", flags: int = 0, epoch_year: int = 1970) -> None:
        super().__init__(slot, marker, flags)
        if isinstance(epoch_year, bool) or not isinstance(epoch_year, int):
            raise InvalidArgumentError(f"epoch_year must be an int, got {epoch_year!r}")
        self.epoch_year = epoch_year

    def _parse(self, text: str) -> str | None:
        match = re.fullmatch(r"(\d{4})(\d{2})(\d{2})", text) or re.fullmatch(
            r"(\d{4})[-/.](\d{1,2})[-/.](\d{1,2})", text
        )
        if match:
            year, month, day = (int(part) for part in match.groups())
        else:
            match = re.fullmatch(r"(\d{1,2})[-/.](\d{1,2})[-/.](\d{2}|\d{4})", text)
            if not match:
                return None
            first, second, year = (int(part) for part in match.groups())
            if self.flags & RP_DATE_PREFER_MDY:
                month, day = (first, second) if first <= 12 else (second, first)
            else:
                day, month = (first, second) if second <= 12 else (second, first)
            if len(match.group(3)) == 2:
                century = self.epoch_year // 100
                if year < self.epoch_year % 100:
                    century += 1
                year += century * 100
        try:
            return datetime.date(year, month, day).strftime("%Y%m%d")
        except ValueError:
            return None

    def _build(self, begin: str, end: str) -> Any:
        low = self._parse(begin) if begin else ""
        high = self._parse(end) if end else ""
        if low is None or high is None:
            return _REJECT
        return _value_range(self.slot, low.encode("ascii"), high.encode("ascii"))


def _value_range(slot: int, low: bytes, high: bytes) -> Node | None:
    if low and high:
        if low > high:
            return None
        return ValueRangeNode(OP_VALUE_RANGE, slot, low, high)
    if low:
        return ValueRangeNode(OP_VALUE_GE, slot, begin=low)
    if high:
        return ValueRangeNode(OP_VALUE_LE, slot, end=high)
    return MatchAllNode()


# -- lexer ----------------------------------------------------------------------


@dataclass
class _Token:
    kind: str
    words: tuple[str, ...] = ()
    text: str = ""
    field: str | None = None
    wildcard: bool = False
    window: int = 0
    begin: str = ""
    end: str = ""
    final: bool = False


class _Lexer:
    def __init__(self, text: str, flags: int, parser: QueryParser) -> None:
        self.text = text
        self.flags = flags
        self.prefixes = parser._prefixes
        self.boolean_prefixes = parser._boolean_prefixes
        self.has_ranges = bool(parser._range_processors)

    def _at_term_start(self, pos: int) -> bool:
        return pos == 0 or self.text[pos - 1].isspace() or self.text[pos - 1] == "("

    def _run_end(self, pos: int) -> int:
        end = pos
        while end < len(self.text) and not self.text[end].isspace() and self.text[end] != ")":
            end += 1
        return end

    def tokenize(self) -> list[_Token]:
        text, flags = self.text, self.flags
        tokens: list[_Token] = []
        pos = 0
        signed = False
        while pos < len(text):
            ch = text[pos]
            if ch.isspace():
                pos += 1
                continue
            # a word straight after + or - still starts a term
            at_start = signed or self._at_term_start(pos)
            signed = False

            if self.has_ranges and at_start and ch not in "(\"":
                run_end = self._run_end(pos)
                run = text[pos:run_end]
                if ".." in run:
                    begin, _, end = run.partition("..")
                    tokens.append(_Token("RANGE", text=run, begin=begin, end=end))
                    pos = run_end
                    continue

            if ch == "(":
                tokens.append(_Token("LPAREN"))
                pos += 1
                continue
            if ch == ")":
                tokens.append(_Token("RPAREN"))
                pos += 1
                continue
            if ch == '"':
                token, pos = self._phrase(pos, None)
                tokens.append(token)
                continue
            if ch in "+-" and flags & FLAG_LOVEHATE and at_start and pos + 1 < len(text):
                following = text[pos + 1]
                if following.isalnum() or following in "_\"(":
                    tokens.append(_Token("LOVE" if ch == "+" else "HATE"))
                    pos += 1
                    signed = True
                    continue

            if flags & FLAG_BOOLEAN and at_start:
                pattern = _WINDOW_OP_ANY_CASE if flags & FLAG_BOOLEAN_ANY_CASE else _WINDOW_OP
                match = pattern.match(text, pos)
                if match:
                    window = int(match.group(2)) if match.group(2) else 0
                    tokens.append(_Token(match.group(1).upper(), window=window))
                    pos = match.end()
                    continue

            match = _FIELD_PREFIX.match(text, pos)
            if match and at_start and match.end() < len(text) and not text[match.end()].isspace():
                name = match.group(1)
                if name in self.boolean_prefixes:
                    token, pos = self._boolean_value(match.end(), name)
                    tokens.append(token)
                    continue
                if name in self.prefixes:
                    pos = match.end()
                    following = text[pos]
                    if following == "(":
                        tokens.append(_Token("LPAREN", field=name))
                        pos += 1
                        continue
                    if following == '"':
                        token, pos = self._phrase(pos, name)
                        tokens.append(token)
                        continue
                    if WORD_PATTERN.match(text, pos):
                        token, pos = self._word(pos, name)
                        tokens.append(token)
                    continue

            if WORD_PATTERN.match(text, pos):
                token, pos = self._word(pos, None)
                tokens.append(token)
                continue
            pos += 1
        return tokens

    def _phrase(self, pos: int, field: str | None) -> tuple[_Token, int]:
        close = self.text.find('"', pos + 1)
        if close < 0:
            close = len(self.text)
        body = self.text[pos + 1 : close]
        words = tuple(token.text for token in word_analyzer(cjk_ngrams=bool(self.flags & FLAG_CJK_NGRAM))(body))
        return _Token("PHRASE", words=words, text=body, field=field), close + 1

    def _boolean_value(self, pos: int, field: str) -> tuple[_Token, int]:
        text = self.text
        if text[pos] == '"':
            close = text.find('"', pos + 1)
            if close < 0:
                close = len(text)
            return _Token("FILTER", text=text[pos + 1 : close], field=field), close + 1
        end = self._run_end(pos)
        return _Token("FILTER", text=text[pos:end], field=field), end

    def _word(self, pos: int, field: str | None) -> tuple[_Token, int]:
        text = self.text
        match = WORD_PATTERN.match(text, pos)
        words = [match.group(0)]
        end = match.end()
        while end + 1 < len(text) and text[end] in _PHRASE_GENERATORS:
            following = WORD_PATTERN.match(text, end + 1)
            if not following:
                break
            words.append(following.group(0))
            end = following.end()
        wildcard = False
        if self.flags & FLAG_WILDCARD and len(words) == 1 and end < len(text) and text[end] == "*":
            wildcard = True
            end += 1
        if field is None and len(words) == 1 and not wildcard and self.flags & FLAG_BOOLEAN:
            word = words[0]
            keyword = word.upper() if self.flags & FLAG_BOOLEAN_ANY_CASE else word
            if keyword in _KEYWORDS:
                return _Token(keyword), end
        token = _Token("WORD", words=tuple(words), text=text[pos:end], field=field, wildcard=wildcard)
        token.final = end >= len(text)
        return token, end


# -- parser -------------------------------------------------------------------


@dataclass
class _Item:
    kind: str
    node: Node | None
    key: Any = None
    stop_word: str | None = None


class _Parser:
    def __init__(self, qp: QueryParser, tokens: list[_Token], flags: int, default_prefix: str) -> None:
        self.qp = qp
        self.tokens = tokens
        self.flags = flags
        self.default_prefix = default_prefix
        self.index = 0
        self.termpos = 0
        self.field_stack: list[list[str]] = []
        self.stopped: list[str] = []
        self.positional = not flags & FLAG_NO_POSITIONS

    # token helpers

    def peek(self) -> _Token | None:
        return self.tokens[self.index] if self.index < len(self.tokens) else None

    def peek_kind(self) -> str | None:
        token = self.peek()
        return token.kind if token else None

    def take(self) -> _Token:
        token = self.tokens[self.index]
        self.index += 1
        return token

    def next_pos(self) -> int:
        self.termpos += 1
        return self.termpos if self.positional else 0

    def syntax_error(self, token: _Token | None) -> QueryParserError:
        if token is None:
            return QueryParserError("Syntax: expected an expression at end of query")
        if token.kind == "RPAREN":
            return QueryParserError("Unbalanced parentheses: unexpected )")
        name = "AND NOT" if token.kind == "NOT" and self.flags & FLAG_PURE_NOT else token.kind
        return QueryParserError(f"Syntax: <expression> {name} <expression>")

    def require_operand(self, op_name: str) -> None:
        if self.peek_kind() not in _OPERAND_START:
            raise QueryParserError(f"Syntax: <expression> {op_name} <expression>")

    # grammar

    def parse(self) -> Node | None:
        if not self.tokens:
            return None
        node = self.parse_or()
        if self.index < len(self.tokens):
            raise self.syntax_error(self.peek())
        return node

    def parse_or(self) -> Node | None:
        node = self.parse_xor()
        while self.peek_kind() == "OR":
            self.take()
            self.require_operand("OR")
            node = combine_nodes(OP_OR, [node, self.parse_xor()])
        return node

    def parse_xor(self) -> Node | None:
        node = self.parse_and()
        while self.peek_kind() == "XOR":
            self.take()
            self.require_operand("XOR")
            node = combine_nodes(OP_XOR, [node, self.parse_and()])
        return node

    def parse_and(self) -> Node | None:
        if self.peek_kind() == "NOT" and self.flags & FLAG_PURE_NOT:
            self.take()
            self.require_operand("NOT")
            node: Node | None = combine_nodes(OP_AND_NOT, [MatchAllNode(), self.parse_group()])
        else:
            node = self.parse_group()
        while self.peek_kind() in ("AND", "NOT"):
            token = self.take()
            if token.kind == "AND" and self.peek_kind() == "NOT":
                self.take()
                op, name = OP_AND_NOT, "AND NOT"
            elif token.kind == "NOT":
                op, name = OP_AND_NOT, "NOT"
            else:
                op, name = OP_AND, "AND"
            self.require_operand(name)
            node = combine_nodes(op, [node, self.parse_group()])
        return node

    def parse_group(self) -> Node | None:
        items: list[_Item] = []
        while self.peek_kind() in _OPERAND_START:
            items.append(self.parse_item())
        if not items:
            raise self.syntax_error(self.peek())
        return self.assemble(items)

    def parse_item(self) -> _Item:
        sign = None
        if self.peek_kind() in ("LOVE", "HATE"):
            sign = "love" if self.take().kind == "LOVE" else "hate"
            if self.peek_kind() not in ("WORD", "PHRASE", "LPAREN", "FILTER", "RANGE"):
                raise QueryParserError("Syntax: + and - must be followed by a term, phrase or group")
        kind = self.peek_kind()
        if kind == "FILTER":
            token = self.take()
            node = self.filter_node(token)
            if sign == "hate":
                return _Item("hate", node)
            return _Item("filter", node, key=self.qp._boolean_groups[token.field])
        if kind == "RANGE":
            node, key = self.range_node(self.take())
            return _Item("hate", node) if sign == "hate" else _Item("filter", node, key=key)
        node, stop_word = self.parse_near_chain()
        if sign is None:
            return _Item("plain", node, stop_word=stop_word)
        return _Item(sign, node)

    def parse_near_chain(self) -> tuple[Node | None, str | None]:
        token = self.peek()
        following = self.tokens[self.index + 1] if self.index + 1 < len(self.tokens) else None
        if token is None or token.kind != "WORD" or following is None or following.kind not in ("NEAR", "ADJ"):
            return self.parse_unit()
        if len(token.words) != 1 or token.wildcard:
            raise QueryParserError(f"Syntax: <expression> {following.kind} <expression>")
        leaves = [self.positional_leaf(self.take())]
        op_token = following
        while self.peek_kind() in ("NEAR", "ADJ"):
            operator = self.take()
            candidate = self.peek()
            if candidate is None or candidate.kind != "WORD" or len(candidate.words) != 1 or candidate.wildcard:
                raise QueryParserError(f"Syntax: <expression> {operator.kind} <expression>")
            leaves.append(self.positional_leaf(self.take()))
        window = (op_token.window or _DEFAULT_NEAR_WINDOW) - 1 + len(leaves)
        op = OP_NEAR if op_token.kind == "NEAR" else OP_PHRASE
        return combine_nodes(op, leaves, window), None

    def parse_unit(self) -> tuple[Node | None, str | None]:
        token = self.take()
        if token.kind == "LPAREN":
            if token.field is not None:
                self.field_stack.append(self.qp._prefixes[token.field])
            try:
                if self.peek_kind() == "RPAREN":
                    node = None
                else:
                    node = self.parse_or()
                if self.peek_kind() != "RPAREN":
                    raise QueryParserError("Unbalanced parentheses: missing )")
                self.take()
            finally:
                if token.field is not None:
                    self.field_stack.pop()
            return node, None
        if token.kind == "PHRASE":
            return self.phrase_node(token), None
        return self.word_node(token)

    # leaves

    def prefixes_for(self, field: str | None) -> list[str]:
        if field is not None:
            return self.qp._prefixes[field]
        if self.field_stack:
            return self.field_stack[-1]
        return [self.default_prefix]

    def term_for(self, word: str, prefix: str) -> str:
        lower = word.lower()
        stemmer = self.qp._stemmer
        strategy = self.qp._strategy
        if stemmer is None or stemmer.is_none() or strategy == STEM_NONE or not lower[:1].isalpha():
            return prefix + lower
        if strategy in (STEM_SOME, STEM_SOME_FULL_POS):
            if word[:1].isupper():
                return prefix + lower
            return "Z" + prefix + stemmer(lower)
        if strategy == STEM_ALL:
            return prefix + stemmer(lower)
        return "Z" + prefix + stemmer(lower)

    def stemmed_leaf(self, word: str, prefix: str, pos: int) -> TermNode:
        return TermNode(to_term(self.term_for(word, prefix)), 1, pos)

    def positional_leaf(self, token: _Token) -> TermNode:
        prefix = self.prefixes_for(token.field)[0]
        return TermNode(to_term(prefix + token.words[0].lower()), 1, self.next_pos())

    def wildcard_node(self, word: str, prefixes: list[str], *, partial: bool) -> Node | None:
        limit, limit_type = self.qp._partial_limit if partial else self.qp._wildcard_limit
        nodes: list[Node | None] = [
            WildcardNode(to_bytes(prefix + word.lower(), "wildcard"), limit, limit_type, OP_SYNONYM)
            for prefix in prefixes
        ]
        database = self.qp._database
        if database is not None:
            shards = require_live(database, "database")._live_shards()  # type: ignore[attr-defined]
            # raises WildcardError now rather than at match time
            expanded = [node for node in nodes if expand_wildcard(shards, node)]  # type: ignore[arg-type]
            if partial:
                nodes = expanded
        return combine_nodes(OP_OR, nodes)

    def word_node(self, token: _Token) -> tuple[Node | None, str | None]:
        prefixes = self.prefixes_for(token.field)
        if len(token.words) > 1:
            op = OP_PHRASE if self.flags & FLAG_PHRASE else OP_AND
            return self.sequence_node(token.words, prefixes, op), None
        word = token.words[0]
        if token.wildcard:
            return self.wildcard_node(word, prefixes, partial=False), None
        if self.flags & FLAG_CJK_NGRAM and any(is_cjk(ch) for ch in word):
            characters = [ch for ch in word if not ch.isspace()]
            return self.sequence_node(tuple(characters), prefixes, OP_AND), None

        pos = self.next_pos()
        node = combine_nodes(OP_OR, [self.stemmed_leaf(word, prefix, pos) for prefix in prefixes])
        if self.flags & FLAG_PARTIAL and token.final:
            node = combine_nodes(OP_OR, [self.wildcard_node(word, prefixes, partial=True), node])
        stopper = self.qp._stopper
        stop_word = word if stopper is not None and require_live(stopper, "stopper")(word) else None
        return node, stop_word

    def sequence_node(self, words: tuple[str, ...], prefixes: list[str], op: int) -> Node | None:
        positions = [self.next_pos() for _ in words]
        parameter = len(words) if op == OP_PHRASE else 0
        alternatives = []
        for prefix in prefixes:
            leaves = [TermNode(to_term(prefix + word.lower()), 1, pos) for word, pos in zip(words, positions)]
            alternatives.append(combine_nodes(op, leaves, parameter))
        return combine_nodes(OP_OR, alternatives)

    def phrase_node(self, token: _Token) -> Node | None:
        if not token.words:
            return None
        prefixes = self.prefixes_for(token.field)
        if self.flags & FLAG_PHRASE:
            return self.sequence_node(token.words, prefixes, OP_PHRASE)
        nodes = []
        for word in token.words:
            pos = self.next_pos()
            nodes.append(combine_nodes(OP_OR, [self.stemmed_leaf(word, prefix, pos) for prefix in prefixes]))
        return combine_nodes(self.qp._default_op, nodes)

    def filter_node(self, token: _Token) -> Node | None:
        prefixes = self.qp._boolean_prefixes[token.field]
        return combine_nodes(OP_OR, [TermNode(to_term(prefix + token.text)) for prefix in prefixes])

    def range_node(self, token: _Token) -> tuple[Node | None, Any]:
        for processor, grouping in self.qp._range_processors:
            require_live(processor, "range processor")
            node = processor._range_node(token.begin, token.end)
            if node is not _REJECT:
                return node, grouping if grouping is not None else ("slot", processor.slot)
        raise QueryParserError("Unknown range operation")

    # group assembly

    def assemble(self, items: list[_Item]) -> Node | None:
        plain = [item for item in items if item.kind == "plain"]
        loved = [item.node for item in items if item.kind == "love"]
        hated = [item.node for item in items if item.kind == "hate"]
        filters: dict[Any, list[Node | None]] = {}
        for item in items:
            if item.kind == "filter":
                filters.setdefault(item.key, []).append(item.node)

        content = [item for item in plain if item.stop_word is None]
        if content or loved:
            self.stopped.extend(item.stop_word for item in plain if item.stop_word is not None)
        else:
            content = plain

        node = combine_nodes(self.qp._default_op, [item.node for item in content])
        if loved:
            required = combine_nodes(OP_AND, loved)
            node = combine_nodes(OP_AND_MAYBE, [required, node]) if node is not None else required

        if filters:
            restriction = combine_nodes(OP_AND, [combine_nodes(OP_OR, group) for group in filters.values()])
            if restriction is None:
                node = None
            elif node is None and not content and not loved:
                node = ScaleNode(0.0, restriction)
            else:
                node = combine_nodes(OP_FILTER, [node, restriction])

        if hated:
            if node is None and not content and not loved and not filters:
                if not self.flags & FLAG_PURE_NOT:
                    raise QueryParserError("Syntax: <expression> NOT <expression>")
                node = MatchAllNode()
            node = combine_nodes(OP_AND_NOT, [node, combine_nodes(OP_OR, hated)])
        return node


# -- the parser object --------------------------------------------------------


class QueryParser(Handle):
    """Builds ``Query`` objects from text typed by a user.

    Example:
        >>> qp = QueryParser()
        >>> qp.set_stemmer(Stem("english"))
        >>> qp.add_prefix("title", "S")
        >>> qp.parse_query("title:search engines").get_description()
        'Query((ZSsearch@1 OR Zengin@2))'
    """

    FLAG_BOOLEAN = FLAG_BOOLEAN
    FLAG_PHRASE = FLAG_PHRASE
    FLAG_LOVEHATE = FLAG_LOVEHATE
    FLAG_BOOLEAN_ANY_CASE = FLAG_BOOLEAN_ANY_CASE
    FLAG_WILDCARD = FLAG_WILDCARD
    FLAG_PURE_NOT = FLAG_PURE_NOT
    FLAG_PARTIAL = FLAG_PARTIAL
    FLAG_SPELLING_CORRECTION = FLAG_SPELLING_CORRECTION
    FLAG_SYNONYM = FLAG_SYNONYM
    FLAG_AUTO_SYNONYMS = FLAG_AUTO_SYNONYMS
    FLAG_AUTO_MULTIWORD_SYNONYMS = FLAG_AUTO_MULTIWORD_SYNONYMS
    FLAG_CJK_NGRAM = FLAG_CJK_NGRAM
    FLAG_ACCUMULATE = FLAG_ACCUMULATE
    FLAG_NO_POSITIONS = FLAG_NO_POSITIONS
    FLAG_DEFAULT = FLAG_DEFAULT
    STEM_NONE = STEM_NONE
    STEM_SOME = STEM_SOME
    STEM_ALL = STEM_ALL
    STEM_ALL_Z = STEM_ALL_Z
    STEM_SOME_FULL_POS = STEM_SOME_FULL_POS

    def __init__(self) -> None:
        super().__init__()
        self._prefixes: dict[str, list[str]] = {}
        self._boolean_prefixes: dict[str, list[str]] = {}
        self._boolean_groups: dict[str, str] = {}
        self._range_processors: list[tuple[RangeProcessor, str | None]] = []
        self._stemmer: Stem | None = None
        self._stopper: Stopper | None = None
        self._strategy = STEM_SOME
        self._default_op = OP_OR
        self._wildcard_limit = (get_settings().wildcard_max_expansion, WILDCARD_LIMIT_ERROR)
        self._partial_limit = (100, WILDCARD_LIMIT_MOST_FREQUENT)
        self._stoplist: list[str] = []
        self._database: Database | None = None

    def _release(self) -> None:
        self._range_processors.clear()
        self._stemmer = None
        self._stopper = None
        self._database = None

    # -- configuration -------------------------------------------------------

    @staticmethod
    def _field_name(field: str | bytes) -> str:
        name = to_text(field, "field name")
        if not _FIELD_NAME.match(name):
            raise InvalidArgumentError(f"Invalid field name {name!r}")
        return name

    @boundary
    def add_prefix(self, field: str | bytes, prefix: str | bytes) -> None:
        """Map ``field:`` in queries to terms starting with ``prefix``; repeat to add alternatives."""
        self._ensure_open()
        name = self._field_name(field)
        if name in self._boolean_prefixes:
            raise InvalidOperationError(f"Can't use add_prefix() and add_boolean_prefix() on field {name!r}")
        prefixes = self._prefixes.setdefault(name, [])
        text = to_text(prefix, "prefix")
        if text not in prefixes:
            prefixes.append(text)

    @boundary
    def add_boolean_prefix(self, field: str | bytes, prefix: str | bytes, grouping: str | None = None) -> None:
        """Map ``field:value`` to a filter on the term ``prefix + value``.

        Filters sharing a grouping (by default, the field name) are OR'd.
        """
        self._ensure_open()
        name = self._field_name(field)
        if name in self._prefixes:
            raise InvalidOperationError(f"Can't use add_prefix() and add_boolean_prefix() on field {name!r}")
        prefixes = self._boolean_prefixes.setdefault(name, [])
        text = to_text(prefix, "prefix")
        if text not in prefixes:
            prefixes.append(text)
        self._boolean_groups[name] = name if grouping is None else to_text(grouping, "grouping")

    @boundary
    def add_rangeprocessor(self, processor: RangeProcessor, grouping: str | None = None) -> None:
        self._ensure_open()
        require_instance(processor, RangeProcessor, "range processor")
        require_live(processor, "range processor")
        self._range_processors.append((processor, None if grouping is None else to_text(grouping, "grouping")))

    @boundary
    def add_number_rangeprocessor(self, processor: NumberRangeProcessor) -> None:
        require_instance(processor, NumberRangeProcessor, "number range processor")
        self.add_rangeprocessor(processor)

    @boundary
    def set_stemmer(self, stemmer: Stem) -> None:
        self._ensure_open()
        self._stemmer = require_instance(stemmer, Stem, "stemmer")

    @boundary
    def set_stemming_strategy(self, strategy: int) -> None:
        self._ensure_open()
        if strategy not in (STEM_NONE, STEM_SOME, STEM_ALL, STEM_ALL_Z, STEM_SOME_FULL_POS):
            raise InvalidArgumentError(f"Unknown stemming strategy {strategy}")
        self._strategy = strategy

    @boundary
    def set_stopper(self, stopper: Stopper | None = None) -> None:
        self._ensure_open()
        self._stopper = None if stopper is None else require_instance(stopper, Stopper, "stopper")

    @boundary
    def set_database(self, database: Database) -> None:
        """Check wildcards and partial words against ``database`` while parsing.

        The parser does not own the database; closing it makes later parses
        that need it fail with ``InvalidOperationError``.
        """
        self._ensure_open()
        require_instance(database, Database, "database")
        self._database = require_live(database, "database")  # type: ignore[assignment]

    @boundary
    def set_default_op(self, op: int) -> None:
        self._ensure_open()
        if op not in _DEFAULT_OPS:
            raise InvalidArgumentError(f"{OP_NAMES.get(op, op)} is not a valid default operator")
        self._default_op = op

    @boundary
    def get_default_op(self) -> int:
        self._ensure_open()
        return self._default_op

    @boundary
    def set_max_expansion(
        self,
        max_expansion: int,
        max_type: int = WILDCARD_LIMIT_ERROR,
        flags: int = FLAG_WILDCARD | FLAG_PARTIAL,
    ) -> None:
        """Limit how many terms wildcards (and/or partial words) may expand to; 0 means no limit."""
        self._ensure_open()
        if isinstance(max_expansion, bool) or not isinstance(max_expansion, int) or max_expansion < 0:
            raise InvalidArgumentError(f"max_expansion must be a non-negative int, got {max_expansion!r}")
        if not WILDCARD_LIMIT_ERROR <= max_type <= WILDCARD_LIMIT_MOST_FREQUENT:
            raise InvalidArgumentError(f"Unknown wildcard limit type {max_type}")
        if flags & FLAG_WILDCARD:
            self._wildcard_limit = (max_expansion, max_type)
        if flags & FLAG_PARTIAL:
            self._partial_limit = (max_expansion, max_type)

    def set_max_wildcard_expansion(self, limit: int) -> None:
        self.set_max_expansion(limit, WILDCARD_LIMIT_MOST_FREQUENT, FLAG_WILDCARD)

    # -- parsing ---------------------------------------------------------------

    @boundary(operation="parse_query")
    def parse_query(
        self, query_string: str | bytes, flags: int = FLAG_DEFAULT, default_prefix: str | bytes = ""
    ) -> Query:
        self._ensure_open()
        text = to_text(query_string, "query string")
        prefix = to_text(default_prefix, "default prefix")
        if flags & _UNSUPPORTED_FLAGS:
            raise FeatureUnavailableError("Spelling correction and synonyms are not available")
        with create_span("fts.parse_query", attributes={"fts.query_length": len(text)}):
            with track_latency(OPERATION_LATENCY, operation="parse_query"):
                tokens = _Lexer(text, flags, self).tokenize()
                parser = _Parser(self, tokens, flags, prefix)
                node = parser.parse()
        if not flags & FLAG_ACCUMULATE:
            self._stoplist = []
        self._stoplist.extend(parser.stopped)
        logger.debug("Parsed %r into %d tokens", text, len(tokens))
        return Query._wrap(node)

    def parse_query_with_prefix(self, query_string: str | bytes, flags: int, prefix: str | bytes) -> Query:
        return self.parse_query(query_string, flags, prefix)

    @boundary
    def get_stoplist(self) -> list[str]:
        """Words dropped as stop words by the most recent parse (or all parses with FLAG_ACCUMULATE)."""
        self._ensure_open()
        return list(self._stoplist)

    @boundary
    def get_description(self) -> str:
        self._ensure_open()
        return (
            f"QueryParser(prefixes={sorted(self._prefixes)}, boolean_prefixes={sorted(self._boolean_prefixes)}, "
            f"default_op={OP_NAMES[self._default_op]}, rangeprocessors={len(self._range_processors)})"
        )
