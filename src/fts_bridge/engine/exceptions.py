"""Failures raised inside the engine.

The engine reports its own error conditions with a single exception type
tagged by the name of the failure class (``DocNotFoundError``,
``DatabaseVersionError`` ...). Callers outside the engine never see these;
the boundary classifies them by ``type_name``.
"""

from __future__ import annotations


class NativeError(Exception):
    """Engine failure carrying its error class name and a diagnostic."""

    def __init__(self, type_name: str, message: str, context: str = "") -> None:
        super().__init__(message)
        self.type_name = type_name
        self.message = message
        self.context = context

    def get_type(self) -> str:
        return self.type_name

    def get_msg(self) -> str:
        return self.message

    def __repr__(self) -> str:
        return f"NativeError({self.type_name!r}, {self.message!r})"
