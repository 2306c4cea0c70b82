"""Documents: a data payload, a term list with positions, and value slots."""

from __future__ import annotations

import orjson

from fts_bridge import codec
from fts_bridge.cursors import TermCursor, TermEntry, iterate
from fts_bridge.engine.storage import DocumentPayload, Shard
from fts_bridge.errors import InvalidArgumentError, SerialisationError, boundary
from fts_bridge.handles import Handle
from fts_bridge.marshal import check_slot, copy_out, to_bytes, to_term


_MAX_TERMPOS = 0xFFFFFFFF


def _check_termpos(pos: object) -> int:
    if isinstance(pos, bool) or not isinstance(pos, int):
        raise InvalidArgumentError(f"Term position must be an int, not {type(pos).__name__}")
    if not 0 <= pos <= _MAX_TERMPOS:
        raise InvalidArgumentError(f"Term position {pos} is out of range")
    return pos


def _check_wdf(wdf: object) -> int:
    if isinstance(wdf, bool) or not isinstance(wdf, int) or wdf < 0:
        raise InvalidArgumentError(f"wdf increment must be a non-negative int, not {wdf!r}")
    return wdf


class Document(Handle):
    """A document that can be indexed, or that was read back from a database.

    A document read from a database is a detached copy: changing it has no
    effect until it is passed to ``WritableDatabase.replace_document``.
    """

    def __init__(self) -> None:
        super().__init__()
        self._data = b""
        self._terms: dict[bytes, tuple[int, set[int]]] = {}
        self._values: dict[int, bytes] = {}
        self._docid = 0
        self._generation = 0

    @classmethod
    def _from_storage(cls, shard: Shard, local_docid: int, docid: int) -> Document:
        data = shard.doc_data(local_docid)
        doc = cls()
        doc._data = data
        doc._terms = {term: (wdf, set(positions)) for term, wdf, positions in shard.doc_terms(local_docid)}
        doc._values = shard.doc_values(local_docid)
        doc._docid = docid
        return doc

    def _release(self) -> None:
        self._terms.clear()
        self._values.clear()
        self._data = b""

    def _touch(self) -> None:
        self._generation += 1

    def _payload(self) -> DocumentPayload:
        self._ensure_open()
        return DocumentPayload(
            data=self._data,
            terms={term: (wdf, tuple(sorted(positions))) for term, (wdf, positions) in self._terms.items()},
            values=dict(self._values),
        )

    # -- data --------------------------------------------------------------

    @boundary
    def set_data(self, data: str | bytes) -> None:
        self._ensure_open()
        self._data = to_bytes(data, "document data")

    @boundary
    def get_data(self) -> bytes:
        self._ensure_open()
        return copy_out(self._data)

    @boundary
    def get_docid(self) -> int:
        """Return the docid this document was read from, or 0 if it was never stored."""
        self._ensure_open()
        return self._docid

    # -- terms -------------------------------------------------------------

    @boundary
    def add_term(self, term: str | bytes, wdf_inc: int = 1) -> None:
        self._ensure_open()
        key = to_term(term)
        wdf_inc = _check_wdf(wdf_inc)
        wdf, positions = self._terms.get(key, (0, set()))
        self._terms[key] = (wdf + wdf_inc, positions)
        self._touch()

    @boundary
    def add_boolean_term(self, term: str | bytes) -> None:
        self.add_term(term, 0)

    @boundary
    def add_posting(self, term: str | bytes, pos: int, wdf_inc: int = 1) -> None:
        self._ensure_open()
        key = to_term(term)
        pos = _check_termpos(pos)
        wdf_inc = _check_wdf(wdf_inc)
        wdf, positions = self._terms.get(key, (0, set()))
        positions.add(pos)
        self._terms[key] = (wdf + wdf_inc, positions)
        self._touch()

    @boundary
    def remove_posting(self, term: str | bytes, pos: int, wdf_dec: int = 1) -> None:
        self._ensure_open()
        key = to_term(term)
        pos = _check_termpos(pos)
        entry = self._terms.get(key)
        if entry is None or pos not in entry[1]:
            raise InvalidArgumentError(f"Position {pos} is not present for term {key!r}")
        wdf, positions = entry
        positions.discard(pos)
        self._terms[key] = (max(0, wdf - _check_wdf(wdf_dec)), positions)
        self._touch()

    @boundary
    def remove_term(self, term: str | bytes) -> None:
        self._ensure_open()
        key = to_term(term)
        if key not in self._terms:
            raise InvalidArgumentError(f"Term {key!r} is not present in document")
        del self._terms[key]
        self._touch()

    @boundary
    def clear_terms(self) -> None:
        self._ensure_open()
        self._terms.clear()
        self._touch()

    @boundary
    def termlist_count(self) -> int:
        self._ensure_open()
        return len(self._terms)

    def _entries(self) -> list[TermEntry]:
        self._ensure_open()
        return [
            TermEntry(term=term, wdf=wdf, positions=tuple(sorted(positions)))
            for term, (wdf, positions) in sorted(self._terms.items())
        ]

    @boundary
    def termlist_begin(self) -> TermCursor:
        return TermCursor(self, self._entries())

    @boundary
    def termlist_end(self) -> TermCursor:
        entries = self._entries()
        return TermCursor(self, entries, len(entries))

    @boundary
    def get_terms(self) -> list[TermEntry]:
        """Return the term list in byte order."""
        return self._entries()

    def termlist(self):
        return iterate(self.termlist_begin())

    # -- values ------------------------------------------------------------

    @boundary
    def add_value(self, slot: int, value: str | bytes) -> None:
        """Set a value slot; an empty value removes the slot."""
        self._ensure_open()
        slot = check_slot(slot)
        data = to_bytes(value, "value")
        if data:
            self._values[slot] = data
        else:
            self._values.pop(slot, None)

    @boundary
    def get_value(self, slot: int) -> bytes:
        self._ensure_open()
        return copy_out(self._values.get(check_slot(slot)))

    @boundary
    def remove_value(self, slot: int) -> None:
        self._ensure_open()
        self._values.pop(check_slot(slot), None)

    @boundary
    def clear_values(self) -> None:
        self._ensure_open()
        self._values.clear()

    @boundary
    def values_count(self) -> int:
        self._ensure_open()
        return len(self._values)

    @boundary
    def get_values(self) -> dict[int, bytes]:
        self._ensure_open()
        return {slot: copy_out(value) for slot, value in sorted(self._values.items())}

    def add_string(self, slot: int, value: str | bytes) -> None:
        self.add_value(slot, value)

    @boundary
    def add_int(self, slot: int, value: int) -> None:
        self.add_value(slot, codec.encode_int(value))

    @boundary
    def add_long(self, slot: int, value: int) -> None:
        self.add_value(slot, codec.encode_long(value))

    @boundary
    def add_float(self, slot: int, value: float) -> None:
        self.add_value(slot, codec.encode_float(value))

    @boundary
    def add_double(self, slot: int, value: float) -> None:
        self.add_value(slot, codec.encode_double(value))

    # -- serialisation -------------------------------------------------------

    @boundary
    def serialise(self) -> bytes:
        self._ensure_open()
        return orjson.dumps(
            {
                "data": self._data.hex(),
                "terms": [
                    [term.hex(), wdf, sorted(positions)] for term, (wdf, positions) in sorted(self._terms.items())
                ],
                "values": [[slot, value.hex()] for slot, value in sorted(self._values.items())],
            }
        )

    @classmethod
    @boundary
    def unserialise(cls, data: bytes) -> Document:
        raw = to_bytes(data, "serialised document")
        try:
            parsed = orjson.loads(raw)
            doc = cls()
            doc._data = bytes.fromhex(parsed["data"])
            for term, wdf, positions in parsed["terms"]:
                doc._terms[bytes.fromhex(term)] = (_check_wdf(wdf), {_check_termpos(pos) for pos in positions})
            for slot, value in parsed["values"]:
                doc._values[check_slot(slot)] = bytes.fromhex(value)
        except (orjson.JSONDecodeError, KeyError, TypeError, ValueError) as exc:
            raise SerialisationError(f"Malformed serialised document: {exc}") from exc
        return doc

    @boundary
    def get_description(self) -> str:
        self._ensure_open()
        return f"Document(docid={self._docid}, terms={len(self._terms)}, values={len(self._values)})"

    def __repr__(self) -> str:
        if self.closed:
            return super().__repr__()
        return self.get_description()
