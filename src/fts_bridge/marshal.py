"""String marshaling at the boundary.

Inputs accept ``str`` (encoded as UTF-8) or any byte-like object; outputs are
always fresh ``bytes``/``str`` objects so nothing handed to a caller aliases
a buffer the engine may reuse.
"""

from __future__ import annotations

from fts_bridge.config import get_settings
from fts_bridge.constants import BAD_VALUENO
from fts_bridge.errors import InvalidArgumentError


BytesLike = str | bytes | bytearray | memoryview


def to_bytes(value: object, what: str = "value") -> bytes:
    """Return an owned byte copy of ``value``."""
    if isinstance(value, str):
        try:
            return value.encode("utf-8")
        except UnicodeEncodeError as exc:
            raise InvalidArgumentError(f"{what} is not valid UTF-8 text") from exc
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value)
    raise InvalidArgumentError(f"{what} must be str or bytes, not {type(value).__name__}")


def to_text(value: object, what: str = "text") -> str:
    """Return ``value`` as ``str``; byte input must be valid UTF-8."""
    if isinstance(value, str):
        try:
            value.encode("utf-8")
        except UnicodeEncodeError as exc:
            raise InvalidArgumentError(f"{what} is not valid UTF-8 text") from exc
        return value
    if isinstance(value, (bytes, bytearray, memoryview)):
        try:
            return bytes(value).decode("utf-8")
        except UnicodeDecodeError as exc:
            raise InvalidArgumentError(f"{what} is not valid UTF-8") from exc
    raise InvalidArgumentError(f"{what} must be str or bytes, not {type(value).__name__}")


def to_term(value: object, what: str = "term") -> bytes:
    """Return ``value`` as a term: non-empty and within the configured length."""
    term = to_bytes(value, what)
    if not term:
        raise InvalidArgumentError(f"{what} must not be empty")
    limit = get_settings().max_term_length
    if len(term) > limit:
        raise InvalidArgumentError(f"{what} is {len(term)} bytes long; the limit is {limit}")
    return term


def copy_out(buf: bytes | bytearray | memoryview | None) -> bytes:
    """Detach a buffer produced by the engine."""
    if buf is None:
        return b""
    return bytes(buf)


def check_slot(slot: object) -> int:
    if isinstance(slot, bool) or not isinstance(slot, int):
        raise InvalidArgumentError(f"Value slot must be an int, not {type(slot).__name__}")
    if not 0 <= slot < BAD_VALUENO:
        raise InvalidArgumentError(f"Value slot {slot} is out of range")
    return slot


def check_docid(docid: object) -> int:
    if isinstance(docid, bool) or not isinstance(docid, int):
        raise InvalidArgumentError(f"Document ID must be an int, not {type(docid).__name__}")
    if docid <= 0:
        raise InvalidArgumentError(f"Document ID {docid} is invalid")
    return docid
