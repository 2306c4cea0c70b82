"""Sort keys built from document values."""

from __future__ import annotations

from collections.abc import Mapping

from fts_bridge.document import Document
from fts_bridge.errors import boundary
from fts_bridge.handles import Handle, require_instance
from fts_bridge.marshal import check_slot, to_bytes


class KeyMaker(Handle):
    """Builds a byte string per document; results are ordered by these keys."""

    def _sort_key(self, values: Mapping[int, bytes]) -> bytes:
        return b""

    @boundary
    def __call__(self, document: Document) -> bytes:
        self._ensure_open()
        require_instance(document, Document, "document")
        return self._sort_key(document.get_values())


class MultiValueKeyMaker(KeyMaker):
    """Sorts on several value slots, each ascending or descending.

    Slots are compared in the order they were added; later slots only break
    ties. Each value is escaped so that plain byte comparison of the combined
    keys gives that order:

    - ascending values other than the last are terminated by ``\\0\\0``, with
      any ``\\0`` inside the value written as ``\\0\\xff``
    - descending values have every byte inverted (``\\0`` becomes
      ``\\xff\\0``) and are terminated by ``\\xff\\xff``
    """

    def __init__(self) -> None:
        super().__init__()
        self._slots: list[tuple[int, bool, bytes]] = []

    @boundary
    def add_value(self, slot: int, reverse: bool = False, defvalue: str | bytes = b"") -> None:
        """Add ``slot`` to the key; documents without a value use ``defvalue``."""
        self._ensure_open()
        self._slots.append((check_slot(slot), bool(reverse), to_bytes(defvalue, "default value")))

    def _sort_key(self, values: Mapping[int, bytes]) -> bytes:
        key = bytearray()
        last = len(self._slots) - 1
        for index, (slot, reverse, default) in enumerate(self._slots):
            value = values.get(slot) or default
            if reverse:
                for byte in value:
                    key.append(255 - byte)
                    if byte == 0:
                        key.append(0)
                key += b"\xff\xff"
            elif index == last:
                key += value
            else:
                key += value.replace(b"\0", b"\0\xff")
                key += b"\0\0"
        return bytes(key)

    @boundary
    def get_description(self) -> str:
        self._ensure_open()
        parts = ", ".join(f"{slot}{' desc' if reverse else ''}" for slot, reverse, _ in self._slots)
        return f"MultiValueKeyMaker({parts})"
