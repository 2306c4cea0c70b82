"""
fts-bridge: a Xapian-style full-text search API over SQLite.

Public objects:
- Database / WritableDatabase: shards of indexed documents
- Document, TermGenerator, Stem, SimpleStopper: building documents
- Query, QueryParser, range processors: describing what to find
- Enquire, MSet, MultiValueKeyMaker, ValueCountMatchSpy, weights: searching

Every failure leaves the API as a ``SearchError`` subclass from
``fts_bridge.errors``.
"""

from fts_bridge.codec import sortable_serialise, sortable_unserialise
from fts_bridge.constants import (
    BAD_VALUENO,
    DB_BACKEND_AUTO,
    DB_BACKEND_INMEMORY,
    DB_BACKEND_SQLITE,
    DB_CREATE,
    DB_CREATE_OR_OPEN,
    DB_CREATE_OR_OVERWRITE,
    DB_OPEN,
    RP_DATE_PREFER_MDY,
    RP_REPEATED,
    RP_SUFFIX,
    SNIPPET_BACKGROUND_MODEL,
    SNIPPET_CJK_NGRAM,
    SNIPPET_EMPTY_WITHOUT_MATCH,
    SNIPPET_EXHAUSTIVE,
    WILDCARD_LIMIT_ERROR,
    WILDCARD_LIMIT_FIRST,
    WILDCARD_LIMIT_MOST_FREQUENT,
)
from fts_bridge.cursors import MSetCursor, TermCursor, TermEntry
from fts_bridge.database import Database, WritableDatabase
from fts_bridge.document import Document
from fts_bridge.enquire import Enquire
from fts_bridge.errors import (
    OK,
    AssertionFailedError,
    DatabaseCorruptError,
    DatabaseCreateError,
    DatabaseError,
    DatabaseLockError,
    DatabaseModifiedError,
    DatabaseOpeningError,
    DatabaseVersionError,
    DocNotFoundError,
    ErrorKind,
    ErrorSignal,
    FeatureUnavailableError,
    InternalError,
    InvalidArgumentError,
    InvalidOperationError,
    LogicError,
    NetworkError,
    NetworkTimeoutError,
    Outcome,
    QueryParserError,
    RangeError,
    SearchError,
    SearchRuntimeError,
    SerialisationError,
    UnimplementedError,
    UnknownError,
    attempt,
    translate_exception,
)
from fts_bridge.keymaker import KeyMaker, MultiValueKeyMaker
from fts_bridge.matchspy import MatchSpy, ValueCountMatchSpy
from fts_bridge.mset import MSet, MSetItem
from fts_bridge.query import Query
from fts_bridge.queryparser import DateRangeProcessor, NumberRangeProcessor, QueryParser, RangeProcessor
from fts_bridge.stem import SimpleStopper, Stem, Stopper
from fts_bridge.termgenerator import TermGenerator
from fts_bridge.weighting import BM25Weight, BoolWeight, Weight


__version__ = "0.1.0"

__all__ = [
    "BAD_VALUENO",
    "DB_BACKEND_AUTO",
    "DB_BACKEND_INMEMORY",
    "DB_BACKEND_SQLITE",
    "DB_CREATE",
    "DB_CREATE_OR_OPEN",
    "DB_CREATE_OR_OVERWRITE",
    "DB_OPEN",
    "OK",
    "RP_DATE_PREFER_MDY",
    "RP_REPEATED",
    "RP_SUFFIX",
    "SNIPPET_BACKGROUND_MODEL",
    "SNIPPET_CJK_NGRAM",
    "SNIPPET_EMPTY_WITHOUT_MATCH",
    "SNIPPET_EXHAUSTIVE",
    "WILDCARD_LIMIT_ERROR",
    "WILDCARD_LIMIT_FIRST",
    "WILDCARD_LIMIT_MOST_FREQUENT",
    "AssertionFailedError",
    "BM25Weight",
    "BoolWeight",
    "Database",
    "DatabaseCorruptError",
    "DatabaseCreateError",
    "DatabaseError",
    "DatabaseLockError",
    "DatabaseModifiedError",
    "DatabaseOpeningError",
    "DatabaseVersionError",
    "DateRangeProcessor",
    "DocNotFoundError",
    "Document",
    "Enquire",
    "ErrorKind",
    "ErrorSignal",
    "FeatureUnavailableError",
    "InternalError",
    "InvalidArgumentError",
    "InvalidOperationError",
    "KeyMaker",
    "LogicError",
    "MSet",
    "MSetCursor",
    "MSetItem",
    "MatchSpy",
    "MultiValueKeyMaker",
    "NetworkError",
    "NetworkTimeoutError",
    "NumberRangeProcessor",
    "Outcome",
    "Query",
    "QueryParser",
    "QueryParserError",
    "RangeError",
    "RangeProcessor",
    "SearchError",
    "SearchRuntimeError",
    "SerialisationError",
    "SimpleStopper",
    "Stem",
    "Stopper",
    "TermCursor",
    "TermEntry",
    "TermGenerator",
    "UnimplementedError",
    "UnknownError",
    "ValueCountMatchSpy",
    "Weight",
    "WritableDatabase",
    "attempt",
    "sortable_serialise",
    "sortable_unserialise",
    "translate_exception",
    "version_string",
]


def version_string() -> str:
    return __version__
