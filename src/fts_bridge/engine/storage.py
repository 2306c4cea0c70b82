"""SQLite-backed shard storage.

A shard is a directory holding one SQLite file. Postings are clustered by
term (``WITHOUT ROWID``) with positions packed as binary arrays, document
values are keyed by (docid, slot), and a small ``meta`` table records the
format version, UUID, revision and last assigned docid.

Concurrency model:
- One writer per shard. The writer opens ``BEGIN IMMEDIATE`` and holds that
  write lock for its whole lifetime; ``commit`` is ``COMMIT`` followed by a
  new ``BEGIN IMMEDIATE``. A second writer fails immediately with
  "database is locked" unless a lock timeout is configured.
- Readers run in WAL mode inside a deferred read transaction, which pins the
  snapshot that was current when they opened. ``reopen`` ends that
  transaction and starts a new one at the latest commit.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
import logging
from pathlib import Path
import sqlite3
import struct
from uuid import uuid4
import weakref

from fts_bridge.constants import DB_CREATE, DB_CREATE_OR_OPEN, DB_CREATE_OR_OVERWRITE, DB_OPEN
from fts_bridge.engine.exceptions import NativeError
from fts_bridge.engine.sqlite_pragmas import apply_read_pragmas, apply_write_pragmas


logger = logging.getLogger(__name__)

FORMAT_VERSION = "1"
DB_FILENAME = "fts.sqlite3"

_SCHEMA = (
    "CREATE TABLE IF NOT EXISTS meta (key TEXT PRIMARY KEY, value) WITHOUT ROWID",
    "CREATE TABLE IF NOT EXISTS user_metadata (key BLOB PRIMARY KEY, value BLOB NOT NULL) WITHOUT ROWID",
    "CREATE TABLE IF NOT EXISTS documents (docid INTEGER PRIMARY KEY, data BLOB NOT NULL, doclen INTEGER NOT NULL)",
    (
        "CREATE TABLE IF NOT EXISTS postings ("
        "term BLOB NOT NULL, docid INTEGER NOT NULL, wdf INTEGER NOT NULL, positions BLOB, "
        "PRIMARY KEY (term, docid)) WITHOUT ROWID"
    ),
    "CREATE INDEX IF NOT EXISTS postings_by_docid ON postings (docid)",
    (
        "CREATE TABLE IF NOT EXISTS doc_values ("
        "docid INTEGER NOT NULL, slot INTEGER NOT NULL, value BLOB NOT NULL, "
        "PRIMARY KEY (docid, slot)) WITHOUT ROWID"
    ),
    "CREATE INDEX IF NOT EXISTS doc_values_by_slot ON doc_values (slot, value)",
)

_DATA_TABLES = ("user_metadata", "documents", "postings", "doc_values")


@dataclass(frozen=True)
class ShardOptions:
    """Tuning knobs passed down from settings."""

    cache_size_kb: int = -65536
    mmap_size_bytes: int = 134217728
    lock_timeout_ms: int = 0
    read_busy_timeout_ms: int = 30000


@dataclass
class DocumentPayload:
    """Everything stored for one document."""

    data: bytes = b""
    terms: dict[bytes, tuple[int, tuple[int, ...]]] = field(default_factory=dict)
    values: dict[int, bytes] = field(default_factory=dict)

    @property
    def doclen(self) -> int:
        return sum(wdf for wdf, _ in self.terms.values())


def pack_positions(positions: Iterable[int]) -> bytes | None:
    """Pack positions as little-endian uint32s, the same on every platform."""
    items = list(positions)
    return struct.pack(f"<{len(items)}I", *items) if items else None


def unpack_positions(blob: bytes | None) -> list[int]:
    if not blob:
        return []
    return list(struct.unpack(f"<{len(blob) // 4}I", blob))


def prefix_upper_bound(prefix: bytes) -> bytes | None:
    """Return the smallest byte string greater than every string starting with ``prefix``."""
    stripped = prefix.rstrip(b"\xff")
    if not stripped:
        return None
    return stripped[:-1] + bytes([stripped[-1] + 1])


def _close_quietly(conn: sqlite3.Connection, label: str) -> None:
    try:
        if conn.in_transaction:
            conn.execute("ROLLBACK")
        conn.close()
    except sqlite3.Error as close_error:
        logger.warning("Failed to close SQLite connection for %s: %s", label, close_error)


class Shard:
    """One SQLite file holding documents, postings and values."""

    def __init__(self, conn: sqlite3.Connection, *, path: Path | None, writable: bool) -> None:
        self._conn = conn
        self.path = path
        self.writable = writable
        self._dirty = False
        self._txn_dirty: bool | None = None
        self._revision = 0
        self._lastdocid = 0
        label = str(path) if path else ":memory:"
        self._finalizer = weakref.finalize(self, _close_quietly, conn, label)

    # -- opening -----------------------------------------------------------

    @classmethod
    def open_reader(cls, path: str | Path, options: ShardOptions | None = None) -> Shard:
        options = options or ShardOptions()
        directory = Path(path)
        db_file = directory / DB_FILENAME
        if not db_file.is_file():
            raise NativeError("DatabaseOpeningError", f"Couldn't detect type of database: {directory}")

        conn = sqlite3.connect(str(db_file), isolation_level=None, cached_statements=64)
        try:
            apply_read_pragmas(
                conn,
                cache_size_kb=options.cache_size_kb,
                mmap_size_bytes=options.mmap_size_bytes,
                busy_timeout_ms=options.read_busy_timeout_ms,
            )
            _check_format(conn, directory)
            shard = cls(conn, path=directory, writable=False)
            shard._begin_snapshot()
        except Exception:
            _close_quietly(conn, str(db_file))
            raise
        logger.debug("Opened shard reader at %s (revision %d)", directory, shard._revision)
        return shard

    @classmethod
    def open_writer(cls, path: str | Path, action: int, options: ShardOptions | None = None) -> Shard:
        options = options or ShardOptions()
        directory = Path(path)
        db_file = directory / DB_FILENAME
        exists = db_file.is_file()
        if action == DB_CREATE and exists:
            raise NativeError("DatabaseCreateError", f"Can't create new database at {directory}: it already exists")
        if action == DB_OPEN and not exists:
            raise NativeError("DatabaseOpeningError", f"No database found at {directory}")
        if action not in (DB_CREATE, DB_CREATE_OR_OPEN, DB_CREATE_OR_OVERWRITE, DB_OPEN):
            raise NativeError("InvalidArgumentError", f"Unknown database open action {action}")

        if not exists:
            try:
                directory.mkdir(parents=True, exist_ok=True)
            except OSError as exc:
                raise NativeError("DatabaseCreateError", f"Couldn't create directory {directory}: {exc}") from exc

        conn = sqlite3.connect(str(db_file), isolation_level=None, cached_statements=64)
        try:
            apply_write_pragmas(
                conn,
                cache_size_kb=options.cache_size_kb,
                mmap_size_bytes=options.mmap_size_bytes,
                busy_timeout_ms=options.lock_timeout_ms,
            )
            conn.execute("BEGIN IMMEDIATE")
            shard = cls(conn, path=directory, writable=True)
            shard._initialise(overwrite=exists and action == DB_CREATE_OR_OVERWRITE)
        except Exception:
            _close_quietly(conn, str(db_file))
            raise
        logger.debug("Opened shard writer at %s (action %d)", directory, action)
        return shard

    @classmethod
    def in_memory(cls, *, writable: bool) -> Shard:
        conn = sqlite3.connect(":memory:", isolation_level=None)
        conn.execute("BEGIN")
        shard = cls(conn, path=None, writable=True)
        shard._initialise(overwrite=False)
        shard.writable = writable
        return shard

    def _initialise(self, *, overwrite: bool) -> None:
        has_meta = self._conn.execute(
            "SELECT 1 FROM sqlite_master WHERE type = 'table' AND name = 'meta'"
        ).fetchone()
        if has_meta and not overwrite:
            _check_format(self._conn, self.path)
            self._revision = self._read_int_meta("revision")
            self._lastdocid = self._read_int_meta("lastdocid")
            return

        for statement in _SCHEMA:
            self._conn.execute(statement)
        if overwrite:
            for table in _DATA_TABLES:
                self._conn.execute(f"DELETE FROM {table}")  # noqa: S608 - fixed table names
            self._conn.execute("DELETE FROM meta")
        self._conn.executemany(
            "INSERT INTO meta (key, value) VALUES (?, ?)",
            [
                ("format_version", FORMAT_VERSION),
                ("uuid", str(uuid4())),
                ("revision", 0),
                ("lastdocid", 0),
            ],
        )
        self._revision = 0
        self._lastdocid = 0
        if self.path is not None:
            # publish the empty database so readers can open it straight away
            self._conn.execute("COMMIT")
            self._conn.execute("BEGIN IMMEDIATE")

    # -- snapshot management ------------------------------------------------

    def _begin_snapshot(self) -> None:
        self._conn.execute("BEGIN")
        self._revision = self._read_int_meta("revision")
        self._lastdocid = self._read_int_meta("lastdocid")

    def reopen(self) -> bool:
        """Move a reader to the latest committed revision. Returns True if it changed."""
        if self.writable or self.path is None:
            return False
        previous = self._revision
        self._conn.execute("ROLLBACK")
        self._begin_snapshot()
        return self._revision != previous

    def close(self) -> None:
        self._finalizer()

    @property
    def closed(self) -> bool:
        return not self._finalizer.alive

    # -- metadata -------------------------------------------------------------

    def _read_int_meta(self, key: str) -> int:
        row = self._conn.execute("SELECT value FROM meta WHERE key = ?", (key,)).fetchone()
        return int(row[0]) if row else 0

    @property
    def revision(self) -> int:
        return self._revision

    @property
    def last_docid(self) -> int:
        return self._lastdocid

    def uuid(self) -> str:
        row = self._conn.execute("SELECT value FROM meta WHERE key = 'uuid'").fetchone()
        return str(row[0]) if row else ""

    def get_metadata(self, key: bytes) -> bytes:
        row = self._conn.execute("SELECT value FROM user_metadata WHERE key = ?", (key,)).fetchone()
        return bytes(row[0]) if row else b""

    def metadata_keys(self, prefix: bytes = b"") -> list[bytes]:
        sql, params = _prefix_clause("SELECT key FROM user_metadata", "key", prefix)
        return [bytes(row[0]) for row in self._conn.execute(sql + " ORDER BY key", params)]

    def set_metadata(self, key: bytes, value: bytes) -> None:
        self._require_writable()
        if value:
            self._conn.execute(
                "INSERT INTO user_metadata (key, value) VALUES (?, ?) "
                "ON CONFLICT(key) DO UPDATE SET value = excluded.value",
                (key, value),
            )
        else:
            self._conn.execute("DELETE FROM user_metadata WHERE key = ?", (key,))
        self._dirty = True

    # -- statistics -------------------------------------------------------------

    def doc_count(self) -> int:
        return int(self._conn.execute("SELECT COUNT(*) FROM documents").fetchone()[0])

    def total_length(self) -> int:
        return int(self._conn.execute("SELECT COALESCE(SUM(doclen), 0) FROM documents").fetchone()[0])

    def doc_length(self, docid: int) -> int:
        row = self._conn.execute("SELECT doclen FROM documents WHERE docid = ?", (docid,)).fetchone()
        if row is None:
            raise NativeError("DocNotFoundError", f"Document {docid} not found")
        return int(row[0])

    def doc_lengths(self) -> dict[int, int]:
        return {int(docid): int(length) for docid, length in self._conn.execute("SELECT docid, doclen FROM documents")}

    def has_document(self, docid: int) -> bool:
        return self._conn.execute("SELECT 1 FROM documents WHERE docid = ?", (docid,)).fetchone() is not None

    def term_freq(self, term: bytes) -> int:
        return int(self._conn.execute("SELECT COUNT(*) FROM postings WHERE term = ?", (term,)).fetchone()[0])

    def collection_freq(self, term: bytes) -> int:
        row = self._conn.execute("SELECT COALESCE(SUM(wdf), 0) FROM postings WHERE term = ?", (term,)).fetchone()
        return int(row[0])

    def term_exists(self, term: bytes) -> bool:
        return self._conn.execute("SELECT 1 FROM postings WHERE term = ? LIMIT 1", (term,)).fetchone() is not None

    def doc_has_term(self, docid: int, term: bytes) -> bool:
        row = self._conn.execute("SELECT 1 FROM postings WHERE term = ? AND docid = ?", (term, docid)).fetchone()
        return row is not None

    # -- postings and documents -------------------------------------------

    def postings(self, term: bytes) -> list[tuple[int, int]]:
        """Return (docid, wdf) pairs for ``term`` in docid order."""
        cursor = self._conn.execute("SELECT docid, wdf FROM postings WHERE term = ? ORDER BY docid", (term,))
        return [(int(docid), int(wdf)) for docid, wdf in cursor]

    def positions(self, term: bytes, docid: int) -> list[int]:
        row = self._conn.execute(
            "SELECT positions FROM postings WHERE term = ? AND docid = ?", (term, docid)
        ).fetchone()
        return unpack_positions(row[0]) if row else []

    def all_docids(self) -> list[int]:
        return [int(row[0]) for row in self._conn.execute("SELECT docid FROM documents ORDER BY docid")]

    def all_terms(self, prefix: bytes = b"") -> list[tuple[bytes, int]]:
        """Return (term, termfreq) pairs in byte order, optionally restricted to a prefix."""
        sql, params = _prefix_clause("SELECT term, COUNT(*) FROM postings", "term", prefix)
        cursor = self._conn.execute(sql + " GROUP BY term ORDER BY term", params)
        return [(bytes(term), int(freq)) for term, freq in cursor]

    def doc_data(self, docid: int) -> bytes:
        row = self._conn.execute("SELECT data FROM documents WHERE docid = ?", (docid,)).fetchone()
        if row is None:
            raise NativeError("DocNotFoundError", f"Document {docid} not found")
        return bytes(row[0])

    def doc_terms(self, docid: int) -> list[tuple[bytes, int, list[int]]]:
        cursor = self._conn.execute(
            "SELECT term, wdf, positions FROM postings WHERE docid = ? ORDER BY term", (docid,)
        )
        return [(bytes(term), int(wdf), unpack_positions(blob)) for term, wdf, blob in cursor]

    def doc_values(self, docid: int) -> dict[int, bytes]:
        cursor = self._conn.execute("SELECT slot, value FROM doc_values WHERE docid = ? ORDER BY slot", (docid,))
        return {int(slot): bytes(value) for slot, value in cursor}

    def docids_in_value_range(self, slot: int, begin: bytes | None, end: bytes | None) -> list[int]:
        sql = "SELECT docid FROM doc_values WHERE slot = ?"
        params: list[object] = [slot]
        if begin is not None:
            sql += " AND value >= ?"
            params.append(begin)
        if end is not None:
            sql += " AND value <= ?"
            params.append(end)
        return [int(row[0]) for row in self._conn.execute(sql + " ORDER BY docid", params)]

    def docids_for_term(self, term: bytes) -> list[int]:
        return [docid for docid, _ in self.postings(term)]

    # -- mutation -----------------------------------------------------------------

    def _require_writable(self) -> None:
        if not self.writable:
            raise NativeError("InvalidOperationError", "Database is not writable")

    def add_document(self, payload: DocumentPayload) -> int:
        self._require_writable()
        docid = self._lastdocid + 1
        self._insert(docid, payload)
        return docid

    def replace_document(self, docid: int, payload: DocumentPayload) -> None:
        self._require_writable()
        self._delete_rows(docid)
        self._insert(docid, payload)

    def delete_document(self, docid: int) -> None:
        self._require_writable()
        if not self.has_document(docid):
            raise NativeError("DocNotFoundError", f"Document {docid} not found")
        self._delete_rows(docid)
        self._dirty = True

    def _insert(self, docid: int, payload: DocumentPayload) -> None:
        self._conn.execute(
            "INSERT INTO documents (docid, data, doclen) VALUES (?, ?, ?)",
            (docid, payload.data, payload.doclen),
        )
        self._conn.executemany(
            "INSERT INTO postings (term, docid, wdf, positions) VALUES (?, ?, ?, ?)",
            [(term, docid, wdf, pack_positions(positions)) for term, (wdf, positions) in payload.terms.items()],
        )
        self._conn.executemany(
            "INSERT INTO doc_values (docid, slot, value) VALUES (?, ?, ?)",
            [(docid, slot, value) for slot, value in payload.values.items() if value],
        )
        if docid > self._lastdocid:
            self._lastdocid = docid
            self._conn.execute("UPDATE meta SET value = ? WHERE key = 'lastdocid'", (docid,))
        self._dirty = True

    def _delete_rows(self, docid: int) -> None:
        self._conn.execute("DELETE FROM documents WHERE docid = ?", (docid,))
        self._conn.execute("DELETE FROM postings WHERE docid = ?", (docid,))
        self._conn.execute("DELETE FROM doc_values WHERE docid = ?", (docid,))

    @property
    def has_pending_changes(self) -> bool:
        return self._dirty

    def commit(self) -> None:
        """Make pending changes durable and visible to new snapshots."""
        self._require_writable()
        if self._txn_dirty is not None:
            raise NativeError("InvalidOperationError", "Cannot commit while a transaction is in progress")
        if self._dirty:
            self._conn.execute("UPDATE meta SET value = ? WHERE key = 'revision'", (self._revision + 1,))
        self._conn.execute("COMMIT")
        if self._dirty:
            self._revision += 1
            self._dirty = False
        self._conn.execute("BEGIN IMMEDIATE" if self.path is not None else "BEGIN")

    def begin_transaction(self) -> None:
        self._require_writable()
        if self._txn_dirty is not None:
            raise NativeError("InvalidOperationError", "Cannot begin transaction - transaction already in progress")
        self._conn.execute("SAVEPOINT fts_transaction")
        self._txn_dirty = self._dirty

    def commit_transaction(self) -> None:
        if self._txn_dirty is None:
            raise NativeError(
                "InvalidOperationError", "Cannot commit transaction - no transaction currently in progress"
            )
        self._conn.execute("RELEASE SAVEPOINT fts_transaction")
        self._txn_dirty = None

    def cancel_transaction(self) -> None:
        if self._txn_dirty is None:
            raise NativeError(
                "InvalidOperationError", "Cannot cancel transaction - no transaction currently in progress"
            )
        self._conn.execute("ROLLBACK TO SAVEPOINT fts_transaction")
        self._conn.execute("RELEASE SAVEPOINT fts_transaction")
        self._dirty = self._txn_dirty
        self._txn_dirty = None
        self._lastdocid = self._read_int_meta("lastdocid")

    @property
    def in_transaction(self) -> bool:
        return self._txn_dirty is not None


def _check_format(conn: sqlite3.Connection, location: Path | None) -> None:
    has_meta = conn.execute("SELECT 1 FROM sqlite_master WHERE type = 'table' AND name = 'meta'").fetchone()
    if not has_meta:
        raise NativeError("DatabaseOpeningError", f"Couldn't detect type of database: {location}")
    row = conn.execute("SELECT value FROM meta WHERE key = 'format_version'").fetchone()
    version = str(row[0]) if row else ""
    if version != FORMAT_VERSION:
        raise NativeError(
            "DatabaseVersionError",
            f"{location}: unsupported format version {version!r} (expected {FORMAT_VERSION})",
        )


def _prefix_clause(select: str, column: str, prefix: bytes) -> tuple[str, list[bytes]]:
    if not prefix:
        return select, []
    upper = prefix_upper_bound(prefix)
    if upper is None:
        return f"{select} WHERE {column} >= ?", [prefix]
    return f"{select} WHERE {column} >= ? AND {column} < ?", [prefix, upper]


def merge_payload_terms(
    terms: Mapping[bytes, tuple[int, Iterable[int]]],
) -> dict[bytes, tuple[int, tuple[int, ...]]]:
    """Normalise a term mapping into sorted, de-duplicated position tuples."""
    return {term: (wdf, tuple(sorted(set(positions)))) for term, (wdf, positions) in terms.items()}
