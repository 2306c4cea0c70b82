"""Error taxonomy and translation of engine failures.

Every public operation that can reach the engine runs inside ``boundary``,
which converts whatever the engine raised into exactly one member of this
closed hierarchy::

    SearchError (base)
    ├── LogicError
    │   ├── AssertionFailedError
    │   ├── InvalidArgumentError (also ValueError)
    │   ├── InvalidOperationError
    │   └── UnimplementedError (also NotImplementedError)
    ├── SearchRuntimeError (also RuntimeError)
    │   ├── DatabaseError
    │   │   ├── DatabaseCorruptError
    │   │   ├── DatabaseCreateError
    │   │   ├── DatabaseLockError
    │   │   ├── DatabaseModifiedError
    │   │   └── DatabaseOpeningError
    │   │       └── DatabaseVersionError
    │   ├── DocNotFoundError
    │   ├── FeatureUnavailableError
    │   ├── InternalError
    │   ├── NetworkError
    │   │   └── NetworkTimeoutError
    │   ├── QueryParserError
    │   ├── RangeError
    │   └── SerialisationError
    └── UnknownError

Each class carries an ``ErrorKind`` with a stable negative code; ``0`` is
reserved for success. Callers that prefer explicit results over exceptions
use ``attempt``, which returns an ``Outcome`` holding either the value or an
``ErrorSignal`` plus a safe empty default.

Usage:
    try:
        db = Database("/missing")
    except DatabaseOpeningError as exc:
        print(exc.code, exc.message)

    outcome = attempt(Database, "/missing")
    if not outcome.ok:
        print(outcome.signal.kind.name)
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from enum import IntEnum
import functools
import logging
import sqlite3
import struct
from typing import Any, ClassVar, Generic, TypeVar

import orjson

from fts_bridge.engine.exceptions import NativeError


logger = logging.getLogger(__name__)

T = TypeVar("T")


class ErrorKind(IntEnum):
    """Closed catalog of failure kinds with stable codes."""

    OK = 0
    DATABASE_MODIFIED = -1
    DATABASE_LOCK = -2
    LOGIC = -3
    ASSERTION = -4
    INVALID_ARGUMENT = -5
    INVALID_OPERATION = -6
    UNIMPLEMENTED = -7
    RUNTIME = -8
    DATABASE = -9
    DATABASE_CORRUPT = -10
    DATABASE_CREATE = -11
    DATABASE_OPENING = -12
    DATABASE_VERSION = -13
    DOC_NOT_FOUND = -14
    FEATURE_UNAVAILABLE = -15
    INTERNAL = -16
    NETWORK = -17
    NETWORK_TIMEOUT = -18
    QUERY_PARSER = -19
    RANGE = -20
    SERIALISATION = -21
    UNKNOWN = -22


class SearchError(Exception):
    """Base class for every failure raised across the boundary.

    Attributes
    ----------
    message : str
        Human-readable diagnostic.
    context : str
        Extra context, usually the name of the underlying failure class.
    kind : ErrorKind
        Discriminant callers can match on.
    """

    kind: ClassVar[ErrorKind] = ErrorKind.UNKNOWN

    def __init__(self, message: str = "", *, context: str = "") -> None:
        super().__init__(message)
        self.message = message
        self.context = context
        self._recorded = False

    @property
    def code(self) -> int:
        return int(self.kind)

    @property
    def signal(self) -> ErrorSignal:
        return ErrorSignal(self.kind, self.message)

    def __str__(self) -> str:
        return self.message or self.kind.name

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.message!r})"


class LogicError(SearchError):
    """Misuse of the API detectable before touching stored data."""

    kind = ErrorKind.LOGIC


class AssertionFailedError(LogicError):
    kind = ErrorKind.ASSERTION


class InvalidArgumentError(LogicError, ValueError):
    kind = ErrorKind.INVALID_ARGUMENT


class InvalidOperationError(LogicError):
    kind = ErrorKind.INVALID_OPERATION


class UnimplementedError(LogicError, NotImplementedError):
    kind = ErrorKind.UNIMPLEMENTED


class SearchRuntimeError(SearchError, RuntimeError):
    """Failure that only shows up at run time (storage, parsing, ranges)."""

    kind = ErrorKind.RUNTIME


class DatabaseError(SearchRuntimeError):
    kind = ErrorKind.DATABASE


class DatabaseCorruptError(DatabaseError):
    kind = ErrorKind.DATABASE_CORRUPT


class DatabaseCreateError(DatabaseError):
    kind = ErrorKind.DATABASE_CREATE


class DatabaseLockError(DatabaseError):
    kind = ErrorKind.DATABASE_LOCK


class DatabaseModifiedError(DatabaseError):
    kind = ErrorKind.DATABASE_MODIFIED


class DatabaseOpeningError(DatabaseError):
    kind = ErrorKind.DATABASE_OPENING


class DatabaseVersionError(DatabaseOpeningError):
    kind = ErrorKind.DATABASE_VERSION


class DocNotFoundError(SearchRuntimeError):
    kind = ErrorKind.DOC_NOT_FOUND


class FeatureUnavailableError(SearchRuntimeError):
    kind = ErrorKind.FEATURE_UNAVAILABLE


class InternalError(SearchRuntimeError):
    kind = ErrorKind.INTERNAL


class NetworkError(SearchRuntimeError):
    kind = ErrorKind.NETWORK


class NetworkTimeoutError(NetworkError):
    kind = ErrorKind.NETWORK_TIMEOUT


class QueryParserError(SearchRuntimeError):
    kind = ErrorKind.QUERY_PARSER


class RangeError(SearchRuntimeError):
    kind = ErrorKind.RANGE


class SerialisationError(SearchRuntimeError):
    kind = ErrorKind.SERIALISATION


class UnknownError(SearchError):
    """Anything that does not fit the taxonomy."""

    kind = ErrorKind.UNKNOWN


_CLASS_BY_KIND: dict[ErrorKind, type[SearchError]] = {
    ErrorKind.DATABASE_MODIFIED: DatabaseModifiedError,
    ErrorKind.DATABASE_LOCK: DatabaseLockError,
    ErrorKind.LOGIC: LogicError,
    ErrorKind.ASSERTION: AssertionFailedError,
    ErrorKind.INVALID_ARGUMENT: InvalidArgumentError,
    ErrorKind.INVALID_OPERATION: InvalidOperationError,
    ErrorKind.UNIMPLEMENTED: UnimplementedError,
    ErrorKind.RUNTIME: SearchRuntimeError,
    ErrorKind.DATABASE: DatabaseError,
    ErrorKind.DATABASE_CORRUPT: DatabaseCorruptError,
    ErrorKind.DATABASE_CREATE: DatabaseCreateError,
    ErrorKind.DATABASE_OPENING: DatabaseOpeningError,
    ErrorKind.DATABASE_VERSION: DatabaseVersionError,
    ErrorKind.DOC_NOT_FOUND: DocNotFoundError,
    ErrorKind.FEATURE_UNAVAILABLE: FeatureUnavailableError,
    ErrorKind.INTERNAL: InternalError,
    ErrorKind.NETWORK: NetworkError,
    ErrorKind.NETWORK_TIMEOUT: NetworkTimeoutError,
    ErrorKind.QUERY_PARSER: QueryParserError,
    ErrorKind.RANGE: RangeError,
    ErrorKind.SERIALISATION: SerialisationError,
    ErrorKind.UNKNOWN: UnknownError,
}

# Engine failure class names, as reported by NativeError.type_name
_KIND_BY_NATIVE_TYPE: dict[str, ErrorKind] = {
    "DatabaseModifiedError": ErrorKind.DATABASE_MODIFIED,
    "DatabaseLockError": ErrorKind.DATABASE_LOCK,
    "LogicError": ErrorKind.LOGIC,
    "AssertionError": ErrorKind.ASSERTION,
    "InvalidArgumentError": ErrorKind.INVALID_ARGUMENT,
    "InvalidOperationError": ErrorKind.INVALID_OPERATION,
    "UnimplementedError": ErrorKind.UNIMPLEMENTED,
    "RuntimeError": ErrorKind.RUNTIME,
    "WildcardError": ErrorKind.RUNTIME,
    "DatabaseError": ErrorKind.DATABASE,
    "DatabaseCorruptError": ErrorKind.DATABASE_CORRUPT,
    "DatabaseCreateError": ErrorKind.DATABASE_CREATE,
    "DatabaseOpeningError": ErrorKind.DATABASE_OPENING,
    "DatabaseVersionError": ErrorKind.DATABASE_VERSION,
    "DocNotFoundError": ErrorKind.DOC_NOT_FOUND,
    "FeatureUnavailableError": ErrorKind.FEATURE_UNAVAILABLE,
    "InternalError": ErrorKind.INTERNAL,
    "NetworkError": ErrorKind.NETWORK,
    "NetworkTimeoutError": ErrorKind.NETWORK_TIMEOUT,
    "QueryParserError": ErrorKind.QUERY_PARSER,
    "RangeError": ErrorKind.RANGE,
    "SerialisationError": ErrorKind.SERIALISATION,
}

_LOCK_MARKERS = ("database is locked", "database table is locked", "busy")
_CORRUPT_MARKERS = ("file is not a database", "malformed", "file is encrypted", "disk image")
_READONLY_MARKERS = ("readonly", "read-only")


def error_for_kind(kind: ErrorKind, message: str = "", *, context: str = "") -> SearchError:
    """Build the exception class registered for ``kind``."""
    if kind is ErrorKind.OK:
        raise InvalidArgumentError("ErrorKind.OK does not describe a failure")
    return _CLASS_BY_KIND[kind](message, context=context)


def _classify_sqlite(exc: sqlite3.Error) -> ErrorKind:
    text = str(exc).lower()
    if isinstance(exc, sqlite3.ProgrammingError):
        # closed connection or use from another thread
        return ErrorKind.INVALID_OPERATION
    if any(marker in text for marker in _LOCK_MARKERS):
        return ErrorKind.DATABASE_LOCK
    if any(marker in text for marker in _CORRUPT_MARKERS):
        return ErrorKind.DATABASE_CORRUPT
    if any(marker in text for marker in _READONLY_MARKERS):
        return ErrorKind.INVALID_OPERATION
    if "unable to open" in text:
        return ErrorKind.DATABASE_OPENING
    return ErrorKind.DATABASE


def classify_exception(exc: BaseException) -> ErrorKind:
    """Map any exception to the kind it is reported as."""
    if isinstance(exc, SearchError):
        return exc.kind
    if isinstance(exc, NativeError):
        return _KIND_BY_NATIVE_TYPE.get(exc.type_name, ErrorKind.UNKNOWN)
    if isinstance(exc, sqlite3.Error):
        return _classify_sqlite(exc)
    if isinstance(exc, (orjson.JSONDecodeError, struct.error)):
        return ErrorKind.SERIALISATION
    if isinstance(exc, (UnicodeError, ValueError, TypeError)):
        return ErrorKind.INVALID_ARGUMENT
    if isinstance(exc, (OverflowError, IndexError, KeyError)):
        return ErrorKind.RANGE
    if isinstance(exc, NotImplementedError):
        return ErrorKind.UNIMPLEMENTED
    if isinstance(exc, AssertionError):
        return ErrorKind.ASSERTION
    if isinstance(exc, TimeoutError):
        return ErrorKind.NETWORK_TIMEOUT
    if isinstance(exc, ConnectionError):
        return ErrorKind.NETWORK
    if isinstance(exc, OSError):
        return ErrorKind.DATABASE_OPENING
    if isinstance(exc, RuntimeError):
        return ErrorKind.RUNTIME
    return ErrorKind.UNKNOWN


def translate_exception(exc: BaseException) -> SearchError:
    """Return the classified boundary error for ``exc``.

    A ``SearchError`` is returned unchanged; anything else is wrapped with its
    original as ``__cause__``.
    """
    if isinstance(exc, SearchError):
        return exc
    kind = classify_exception(exc)
    if isinstance(exc, NativeError):
        message, context = exc.message, exc.context or exc.type_name
    else:
        message, context = str(exc) or type(exc).__name__, type(exc).__name__
    error = error_for_kind(kind, message, context=context)
    error.__cause__ = exc
    return error


def _record(error: SearchError, operation: str) -> None:
    if error._recorded:
        return
    error._recorded = True
    logger.debug("%s failed with %s: %s", operation, error.kind.name, error.message)
    # Imported lazily: metrics pulls in prometheus/otel, which the engine
    # layer never needs.
    from fts_bridge.observability.metrics import ERROR_COUNT

    ERROR_COUNT.labels(kind=error.kind.name, operation=operation).inc()


def boundary(func: Callable[..., T] | None = None, *, operation: str | None = None) -> Any:
    """Wrap a public operation so failures leave it only as ``SearchError``.

    Usable bare (``@boundary``) or with an explicit metrics label
    (``@boundary(operation="get_mset")``).
    """

    def decorator(fn: Callable[..., T]) -> Callable[..., T]:
        from fts_bridge.observability.context import operation_scope

        name = operation or fn.__qualname__
        owner = fn.__qualname__.rpartition(".")[0].rpartition(".")[2]
        handle = None if owner in ("", "<locals>") else owner

        @functools.wraps(fn)
        def wrapper(*args: Any, **kwargs: Any) -> T:
            try:
                with operation_scope(name, handle):
                    return fn(*args, **kwargs)
            except SearchError as exc:
                _record(exc, name)
                raise
            except Exception as exc:
                error = translate_exception(exc)
                _record(error, name)
                raise error from exc

        return wrapper

    if func is not None:
        return decorator(func)
    return decorator


@dataclass(frozen=True)
class ErrorSignal:
    """Tagged outcome of a boundary call: ``OK`` or a failure kind plus message."""

    kind: ErrorKind = ErrorKind.OK
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.kind is ErrorKind.OK

    @property
    def code(self) -> int:
        return int(self.kind)

    def raise_if_error(self) -> None:
        if not self.ok:
            raise error_for_kind(self.kind, self.message)

    @classmethod
    def from_exception(cls, exc: BaseException) -> ErrorSignal:
        return translate_exception(exc).signal


OK = ErrorSignal()


@dataclass(frozen=True)
class Outcome(Generic[T]):
    """Explicit result form: a value when ``signal.ok``, otherwise the safe default."""

    value: T | None
    signal: ErrorSignal = OK

    @property
    def ok(self) -> bool:
        return self.signal.ok

    def unwrap(self) -> T:
        self.signal.raise_if_error()
        return self.value  # type: ignore[return-value]


def attempt(func: Callable[..., T], *args: Any, default: Any = None, **kwargs: Any) -> Outcome[T]:
    """Call ``func`` and capture any failure as an ``ErrorSignal``.

    On failure the returned value is ``default``, never a partial result.
    """
    try:
        value = func(*args, **kwargs)
    except Exception as exc:
        error = translate_exception(exc)
        _record(error, getattr(func, "__qualname__", repr(func)))
        return Outcome(default, error.signal)
    return Outcome(value, OK)
