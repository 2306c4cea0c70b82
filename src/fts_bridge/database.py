"""Read-only and writable databases.

A ``Database`` is an ordered list of shards searched as one collection.
Each reader shard pins the snapshot that was committed when it was opened;
``reopen()`` moves it to the latest commit. A ``WritableDatabase`` owns a
single shard and holds that shard's write lock until it is closed.

Usage:
    with WritableDatabase("/tmp/db", DB_CREATE_OR_OPEN) as db:
        doc = Document()
        doc.add_term("hello")
        db.add_document(doc)
        db.commit()

    reader = Database("/tmp/db")
    print(reader.get_doccount())
"""

from __future__ import annotations

import logging
import os
from typing import TYPE_CHECKING

from fts_bridge.config import get_settings
from fts_bridge.constants import (
    DB_ACTION_MASK,
    DB_BACKEND_AUTO,
    DB_BACKEND_INMEMORY,
    DB_BACKEND_MASK,
    DB_BACKEND_SQLITE,
    DB_CREATE_OR_OPEN,
)
from fts_bridge.cursors import TermCursor, TermEntry, iterate
from fts_bridge.document import Document
from fts_bridge.engine.matcher import collection_stats, to_global, to_local
from fts_bridge.engine.storage import Shard, ShardOptions
from fts_bridge.errors import (
    DocNotFoundError,
    FeatureUnavailableError,
    InvalidArgumentError,
    InvalidOperationError,
    UnimplementedError,
    boundary,
)
from fts_bridge.handles import Handle, require_instance
from fts_bridge.marshal import check_docid, copy_out, to_bytes, to_term
from fts_bridge.observability.metrics import DOCUMENT_MUTATIONS, OPERATION_LATENCY, track_latency
from fts_bridge.observability.tracing import create_span


if TYPE_CHECKING:
    from fts_bridge.enquire import Enquire


logger = logging.getLogger(__name__)


def _shard_options() -> ShardOptions:
    settings = get_settings()
    return ShardOptions(
        cache_size_kb=settings.sqlite_cache_size_kb,
        mmap_size_bytes=settings.sqlite_mmap_size_bytes,
        lock_timeout_ms=settings.lock_timeout_ms,
        read_busy_timeout_ms=settings.read_busy_timeout_ms,
    )


def _check_backend(backend: int) -> None:
    if backend not in (DB_BACKEND_AUTO, DB_BACKEND_SQLITE, DB_BACKEND_INMEMORY):
        raise FeatureUnavailableError(f"Database backend 0x{backend:x} is not available")


class Database(Handle):
    """A read-only view of one or more shards."""

    @boundary
    def __init__(self, path: str | os.PathLike[str] | None = None, flags: int = 0) -> None:
        super().__init__()
        self._shards: list[Shard] = []
        self._generation = 0
        backend = flags & DB_BACKEND_MASK
        _check_backend(backend)
        if backend == DB_BACKEND_INMEMORY:
            self._shards.append(Shard.in_memory(writable=False))
        elif path is not None:
            self._shards.append(Shard.open_reader(os.fspath(path), _shard_options()))
            logger.debug("Opened database %s", os.fspath(path))

    def _release(self) -> None:
        shards, self._shards = self._shards, []
        for shard in shards:
            shard.close()

    @boundary
    def close(self) -> None:
        super().close()

    def _live_shards(self) -> list[Shard]:
        self._ensure_open()
        return self._shards

    def _locate(self, docid: int) -> tuple[Shard, int]:
        shards = self._live_shards()
        docid = check_docid(docid)
        if not shards:
            raise DocNotFoundError(f"Document {docid} not found")
        index, local = to_local(docid, len(shards))
        return shards[index], local

    # -- composition ---------------------------------------------------------

    @boundary
    def add_database(self, other: Database) -> None:
        """Take over the shards of ``other``, which can no longer be used afterwards."""
        self._ensure_open()
        require_instance(other, Database, "database")
        if other is self:
            raise InvalidArgumentError("Can't add a Database to itself")
        if isinstance(other, WritableDatabase):
            raise InvalidArgumentError("A WritableDatabase can't be added to a Database")
        other._ensure_open()
        self._shards.extend(other._shards)
        other._shards = []
        other._consume()
        self._generation += 1

    @boundary
    def size(self) -> int:
        return len(self._live_shards())

    @boundary
    def reopen(self) -> bool:
        """Move every shard to the latest committed revision."""
        changed = False
        for shard in self._live_shards():
            changed = shard.reopen() or changed
        if changed:
            self._generation += 1
        return changed

    # -- statistics ------------------------------------------------------------

    @boundary
    def get_doccount(self) -> int:
        return sum(shard.doc_count() for shard in self._live_shards())

    @boundary
    def get_lastdocid(self) -> int:
        shards = self._live_shards()
        return max(
            (to_global(shard.last_docid, index, len(shards)) for index, shard in enumerate(shards) if shard.last_docid),
            default=0,
        )

    @boundary
    def get_avlength(self) -> float:
        return collection_stats(self._live_shards()).average_length

    @boundary
    def get_total_length(self) -> int:
        return collection_stats(self._live_shards()).total_length

    @boundary
    def get_doclength(self, docid: int) -> int:
        shard, local = self._locate(docid)
        return shard.doc_length(local)

    @boundary
    def get_termfreq(self, term: str | bytes) -> int:
        shards = self._live_shards()
        key = to_bytes(term, "term")
        if not key:
            return sum(shard.doc_count() for shard in shards)
        return sum(shard.term_freq(key) for shard in shards)

    @boundary
    def get_collection_freq(self, term: str | bytes) -> int:
        shards = self._live_shards()
        key = to_bytes(term, "term")
        if not key:
            return sum(shard.total_length() for shard in shards)
        return sum(shard.collection_freq(key) for shard in shards)

    @boundary
    def term_exists(self, term: str | bytes) -> bool:
        shards = self._live_shards()
        key = to_bytes(term, "term")
        if not key:
            return any(shard.doc_count() for shard in shards)
        return any(shard.term_exists(key) for shard in shards)

    # -- documents and terms -------------------------------------------------

    @boundary
    def get_document(self, docid: int) -> Document:
        """Return an independent copy of the stored document."""
        shard, local = self._locate(docid)
        return Document._from_storage(shard, local, docid)

    def _allterm_entries(self, prefix: str | bytes) -> list[TermEntry]:
        key = to_bytes(prefix, "prefix")
        freqs: dict[bytes, int] = {}
        for shard in self._live_shards():
            for term, termfreq in shard.all_terms(key):
                freqs[term] = freqs.get(term, 0) + termfreq
        return [TermEntry(term=term, termfreq=freq) for term, freq in sorted(freqs.items())]

    @boundary
    def allterms_begin(self, prefix: str | bytes = b"") -> TermCursor:
        return TermCursor(self, self._allterm_entries(prefix))

    @boundary
    def allterms_end(self, prefix: str | bytes = b"") -> TermCursor:
        entries = self._allterm_entries(prefix)
        return TermCursor(self, entries, len(entries))

    def allterms(self, prefix: str | bytes = b""):
        return iterate(self.allterms_begin(prefix))

    @boundary
    def postlist(self, term: str | bytes) -> list[tuple[int, int]]:
        """Return (docid, wdf) for every document indexed by ``term``, in docid order."""
        shards = self._live_shards()
        key = to_term(term)
        found = [
            (to_global(docid, index, len(shards)), wdf)
            for index, shard in enumerate(shards)
            for docid, wdf in shard.postings(key)
        ]
        return sorted(found)

    # -- metadata ----------------------------------------------------------------

    @boundary
    def get_metadata(self, key: str | bytes) -> bytes:
        shards = self._live_shards()
        name = to_bytes(key, "metadata key")
        if not name:
            raise InvalidArgumentError("Empty metadata keys are invalid")
        if not shards:
            return b""
        return copy_out(shards[0].get_metadata(name))

    @boundary
    def metadata_keys(self, prefix: str | bytes = b"") -> list[bytes]:
        shards = self._live_shards()
        if not shards:
            return []
        return shards[0].metadata_keys(to_bytes(prefix, "prefix"))

    @boundary
    def get_revision(self) -> int:
        shards = self._live_shards()
        if not shards:
            return 0
        if len(shards) > 1:
            raise InvalidOperationError("Database with multiple shards has no single revision")
        return shards[0].revision

    @boundary
    def get_uuid(self) -> str:
        return ":".join(shard.uuid() for shard in self._live_shards() if shard.path is not None)

    @boundary
    def get_description(self) -> str:
        shards = self._live_shards()
        names = ", ".join(str(shard.path) if shard.path else ":memory:" for shard in shards)
        return f"{type(self).__name__}({names})"

    @boundary
    def new_enquire(self) -> Enquire:
        from fts_bridge.enquire import Enquire

        return Enquire(self)

    def __repr__(self) -> str:
        if self.closed:
            return super().__repr__()
        return self.get_description()


class WritableDatabase(Database):
    """A database that can be modified; one writer per path at a time."""

    @boundary
    def __init__(
        self,
        path: str | os.PathLike[str] | None = None,
        action: int = DB_CREATE_OR_OPEN,
        backend: int = DB_BACKEND_AUTO,
    ) -> None:
        Handle.__init__(self)
        self._shards = []
        self._generation = 0
        flags = action | backend
        open_action = (flags & DB_ACTION_MASK) or DB_CREATE_OR_OPEN
        backend = flags & DB_BACKEND_MASK
        _check_backend(backend)
        if path is None or backend == DB_BACKEND_INMEMORY:
            self._shards.append(Shard.in_memory(writable=True))
        else:
            self._shards.append(Shard.open_writer(os.fspath(path), open_action, _shard_options()))
            logger.debug("Opened writable database %s (action %d)", os.fspath(path), open_action)
        self._flushed_transaction = False

    def _release(self) -> None:
        shards, self._shards = self._shards, []
        try:
            for shard in shards:
                if shard.in_transaction:
                    shard.cancel_transaction()
                if shard.has_pending_changes:
                    shard.commit()
        finally:
            for shard in shards:
                shard.close()

    @property
    def _shard(self) -> Shard:
        return self._live_shards()[0]

    @boundary
    def add_database(self, other: Database) -> None:
        raise UnimplementedError("WritableDatabase does not support adding shards")

    @boundary
    def reopen(self) -> bool:
        self._ensure_open()
        return False

    # -- document changes ------------------------------------------------------

    @boundary
    def add_document(self, document: Document) -> int:
        shard = self._shard
        require_instance(document, Document, "document")
        docid = shard.add_document(document._payload())
        self._generation += 1
        DOCUMENT_MUTATIONS.labels(action="add").inc()
        return docid

    @boundary
    def replace_document(self, target: int | str | bytes, document: Document) -> int:
        """Store ``document`` under a docid, or in place of every document indexed by a term.

        With a unique term, the lowest matching docid is reused and the other
        matches are deleted; if nothing matches the document is added.
        """
        shard = self._shard
        require_instance(document, Document, "document")
        payload = document._payload()
        if isinstance(target, int) and not isinstance(target, bool):
            docid = check_docid(target)
            shard.replace_document(docid, payload)
        else:
            docids = shard.docids_for_term(to_term(target, "unique term"))
            if not docids:
                docid = shard.add_document(payload)
            else:
                docid = docids[0]
                for duplicate in docids[1:]:
                    shard.delete_document(duplicate)
                shard.replace_document(docid, payload)
        self._generation += 1
        DOCUMENT_MUTATIONS.labels(action="replace").inc()
        return docid

    @boundary
    def delete_document(self, target: int | str | bytes) -> None:
        """Delete a document by docid, or every document indexed by a term."""
        shard = self._shard
        if isinstance(target, int) and not isinstance(target, bool):
            shard.delete_document(check_docid(target))
            deleted = 1
        else:
            docids = shard.docids_for_term(to_term(target, "unique term"))
            for docid in docids:
                shard.delete_document(docid)
            deleted = len(docids)
        if deleted:
            self._generation += 1
            DOCUMENT_MUTATIONS.labels(action="delete").inc(deleted)

    # -- durability --------------------------------------------------------------

    @boundary
    def commit(self) -> None:
        """Make every pending change durable and visible to readers that reopen."""
        shard = self._shard
        with create_span("fts.commit", attributes={"fts.path": str(shard.path or ":memory:")}):
            with track_latency(OPERATION_LATENCY, operation="commit"):
                shard.commit()
        logger.debug("Committed revision %d of %s", shard.revision, shard.path or ":memory:")

    @boundary
    def begin_transaction(self, flushed: bool = True) -> None:
        """Start a transaction; a flushed transaction commits when it ends."""
        shard = self._shard
        if shard.in_transaction:
            raise InvalidOperationError("Cannot begin transaction - transaction already in progress")
        if flushed and shard.has_pending_changes:
            shard.commit()
        shard.begin_transaction()
        self._flushed_transaction = flushed

    @boundary
    def commit_transaction(self) -> None:
        shard = self._shard
        shard.commit_transaction()
        if self._flushed_transaction:
            shard.commit()

    @boundary
    def cancel_transaction(self) -> None:
        self._shard.cancel_transaction()
        self._generation += 1

    @boundary
    def set_metadata(self, key: str | bytes, value: str | bytes) -> None:
        """Store a metadata entry; an empty value deletes the key."""
        shard = self._shard
        name = to_bytes(key, "metadata key")
        if not name:
            raise InvalidArgumentError("Empty metadata keys are invalid")
        shard.set_metadata(name, to_bytes(value, "metadata value"))
