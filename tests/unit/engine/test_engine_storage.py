"""Unit tests for SQLite shard storage."""

import sqlite3

import pytest

from fts_bridge.constants import DB_CREATE_OR_OPEN
from fts_bridge.engine.exceptions import NativeError
from fts_bridge.engine.storage import (
    DB_FILENAME,
    DocumentPayload,
    Shard,
    pack_positions,
    prefix_upper_bound,
    unpack_positions,
)


def _payload(data=b"", **terms):
    return DocumentPayload(data=data, terms={term.encode(): entry for term, entry in terms.items()})


@pytest.fixture
def shard():
    store = Shard.in_memory(writable=True)
    yield store
    store.close()


@pytest.mark.unit
class TestHelpers:
    """Position packing and prefix bounds."""

    def test_positions_round_trip(self):
        assert unpack_positions(pack_positions([1, 5, 70000])) == [1, 5, 70000]

    def test_positions_are_little_endian(self):
        assert pack_positions([1, 0x01020304]) == b"\x01\x00\x00\x00\x04\x03\x02\x01"

    def test_no_positions_pack_to_none(self):
        assert pack_positions([]) is None
        assert unpack_positions(None) == []

    def test_prefix_upper_bound(self):
        assert prefix_upper_bound(b"ab") == b"ac"
        assert prefix_upper_bound(b"a\xff") == b"b"
        assert prefix_upper_bound(b"\xff\xff") is None

    def test_doclen_sums_wdf(self):
        assert _payload(a=(2, ()), b=(3, (1,))).doclen == 5


@pytest.mark.unit
class TestShardDocuments:
    """Documents, postings and values in one shard."""

    def test_add_and_read_back(self, shard):
        docid = shard.add_document(
            DocumentPayload(data=b"hello", terms={b"word": (2, (1, 4))}, values={0: b"v"})
        )

        assert docid == 1
        assert shard.doc_data(docid) == b"hello"
        assert shard.doc_terms(docid) == [(b"word", 2, [1, 4])]
        assert shard.doc_values(docid) == {0: b"v"}
        assert shard.positions(b"word", docid) == [1, 4]
        assert shard.doc_length(docid) == 2

    def test_term_statistics(self, shard):
        shard.add_document(_payload(a=(2, ()), b=(1, ())))
        shard.add_document(_payload(a=(1, ())))

        assert shard.term_freq(b"a") == 2
        assert shard.collection_freq(b"a") == 3
        assert shard.postings(b"a") == [(1, 2), (2, 1)]
        assert shard.doc_has_term(2, b"a")
        assert not shard.doc_has_term(2, b"b")
        assert shard.total_length() == 4

    def test_all_terms_with_prefix(self, shard):
        shard.add_document(_payload(XAa=(1, ()), XAb=(1, ()), XB=(1, ())))

        assert shard.all_terms(b"XA") == [(b"XAa", 1), (b"XAb", 1)]
        assert len(shard.all_terms()) == 3

    def test_value_ranges(self, shard):
        for value in (b"a", b"c", b"e"):
            shard.add_document(DocumentPayload(values={1: value}))

        assert shard.docids_in_value_range(1, b"b", b"e") == [2, 3]
        assert shard.docids_in_value_range(1, None, b"c") == [1, 2]
        assert shard.docids_in_value_range(2, None, None) == []

    def test_replace_and_delete(self, shard):
        docid = shard.add_document(_payload(old=(1, ())))

        shard.replace_document(docid, _payload(new=(1, ())))
        assert shard.term_freq(b"old") == 0

        shard.delete_document(docid)
        assert shard.doc_count() == 0
        with pytest.raises(NativeError) as info:
            shard.delete_document(docid)
        assert info.value.type_name == "DocNotFoundError"

    def test_missing_document(self, shard):
        with pytest.raises(NativeError) as info:
            shard.doc_data(3)
        assert info.value.get_type() == "DocNotFoundError"

    def test_read_only_shard_rejects_writes(self):
        store = Shard.in_memory(writable=False)

        with pytest.raises(NativeError) as info:
            store.add_document(_payload(a=(1, ())))
        assert info.value.type_name == "InvalidOperationError"
        store.close()


@pytest.mark.unit
class TestShardFiles:
    """On-disk shards, commits and format checks."""

    def test_reader_snapshot_and_reopen(self, tmp_path):
        writer = Shard.open_writer(tmp_path, DB_CREATE_OR_OPEN)
        reader = Shard.open_reader(tmp_path)

        writer.add_document(_payload(a=(1, ())))
        writer.commit()

        assert reader.doc_count() == 0
        assert reader.reopen()
        assert reader.doc_count() == 1
        assert reader.revision == 1
        reader.close()
        writer.close()

    def test_close_is_idempotent(self, tmp_path):
        writer = Shard.open_writer(tmp_path, DB_CREATE_OR_OPEN)

        writer.close()
        writer.close()

        assert writer.closed

    def test_missing_database(self, tmp_path):
        with pytest.raises(NativeError) as info:
            Shard.open_reader(tmp_path / "none")
        assert info.value.type_name == "DatabaseOpeningError"

    def test_version_mismatch(self, tmp_path):
        Shard.open_writer(tmp_path, DB_CREATE_OR_OPEN).close()
        conn = sqlite3.connect(tmp_path / DB_FILENAME)
        conn.execute("UPDATE meta SET value = '0' WHERE key = 'format_version'")
        conn.commit()
        conn.close()

        with pytest.raises(NativeError) as info:
            Shard.open_reader(tmp_path)
        assert info.value.type_name == "DatabaseVersionError"

    def test_not_a_database(self, tmp_path):
        (tmp_path / DB_FILENAME).write_bytes(b"definitely not sqlite" * 10)

        with pytest.raises(sqlite3.DatabaseError):
            Shard.open_reader(tmp_path)

    def test_transaction_rollback(self, shard):
        shard.add_document(_payload(a=(1, ())))
        shard.begin_transaction()
        shard.add_document(_payload(b=(1, ())))

        shard.cancel_transaction()

        assert shard.doc_count() == 1
        assert shard.last_docid == 1
        assert not shard.in_transaction

    def test_metadata(self, shard):
        shard.set_metadata(b"k1", b"v1")
        shard.set_metadata(b"k2", b"v2")
        shard.set_metadata(b"k1", b"")

        assert shard.get_metadata(b"k1") == b""
        assert shard.metadata_keys(b"k") == [b"k2"]
        assert shard.uuid()
