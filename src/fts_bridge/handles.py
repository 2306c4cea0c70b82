"""Ownership rules for objects that stand in for engine resources.

A handle has exactly one owner. It is created by its constructor, released
by ``close()`` (idempotent) or by leaving a ``with`` block, and can never be
duplicated implicitly: ``copy``, ``deepcopy`` and pickling all fail. Once a
handle is released, or consumed by an operation that takes it over, every
further use raises ``InvalidOperationError``.

Relationships that need another handle to stay alive (a range processor
attached to a parser, a key maker attached to an enquire session) keep a
reference to it and call ``require_live`` before each use.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from fts_bridge.errors import InvalidArgumentError, InvalidOperationError


class HandleState(Enum):
    OPEN = "open"
    CLOSED = "closed"
    MOVED = "moved"


class Handle:
    """Base class for single-owner resources."""

    def __init__(self) -> None:
        self._state = HandleState.OPEN

    @property
    def closed(self) -> bool:
        return self._state is not HandleState.OPEN

    def close(self) -> None:
        """Release the resource. Calling it again does nothing."""
        if self._state is not HandleState.OPEN:
            return
        try:
            self._release()
        finally:
            self._state = HandleState.CLOSED

    def release(self) -> None:
        self.close()

    def _release(self) -> None:
        """Subclass hook run exactly once by ``close``."""

    def _consume(self) -> None:
        """Mark the handle as taken over by another owner."""
        self._ensure_open()
        self._state = HandleState.MOVED

    def _ensure_open(self) -> None:
        if self._state is HandleState.CLOSED:
            raise InvalidOperationError(f"{type(self).__name__} has been closed")
        if self._state is HandleState.MOVED:
            raise InvalidOperationError(f"{type(self).__name__} was consumed by another object")

    def __enter__(self):
        self._ensure_open()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def __copy__(self) -> Any:
        raise InvalidOperationError(f"{type(self).__name__} cannot be copied")

    def __deepcopy__(self, memo: dict) -> Any:
        raise InvalidOperationError(f"{type(self).__name__} cannot be copied")

    def __reduce_ex__(self, protocol: int) -> Any:
        raise InvalidOperationError(f"{type(self).__name__} cannot be pickled")

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self._state.value}>"


def require_live(handle: Handle, role: str) -> Handle:
    """Check that an attached handle is still usable."""
    if handle.closed:
        raise InvalidOperationError(f"{role} ({type(handle).__name__}) was released while still attached")
    return handle


def require_instance(value: object, cls: type, what: str) -> Any:
    if not isinstance(value, cls):
        raise InvalidArgumentError(f"{what} must be a {cls.__name__}, not {type(value).__name__}")
    return value
