"""Unit tests for MSet and term cursors."""

import copy

import pytest

from fts_bridge.cursors import TermCursor, TermEntry, iterate
from fts_bridge.document import Document
from fts_bridge.enquire import Enquire
from fts_bridge.errors import InvalidArgumentError, InvalidOperationError, RangeError
from fts_bridge.query import Query


@pytest.fixture
def doc():
    document = Document()
    for term in ("apple", "banana", "cherry"):
        document.add_term(term)
    yield document
    document.close()


@pytest.fixture
def mset(memory_db):
    for wdf in (1, 2, 3):
        d = Document()
        d.add_term("fruit", wdf)
        d.add_term("x" * wdf)
        memory_db.add_document(d)
    enquire = Enquire(memory_db)
    enquire.set_query(Query("fruit"))
    result = enquire.get_mset(0, 10)
    yield result
    result.close()
    enquire.close()


@pytest.mark.unit
class TestTermCursor:
    """Term cursors walk a snapshot and detect changes to their owner."""

    def test_walk_until_end(self, doc):
        cursor = doc.termlist_begin()
        seen = []

        while cursor != doc.termlist_end():
            seen.append(cursor.get_term())
            cursor.advance()

        assert seen == [b"apple", b"banana", b"cherry"]
        assert cursor.at_end()

    def test_cannot_step_past_end(self, doc):
        cursor = doc.termlist_end()

        with pytest.raises(RangeError):
            cursor.advance()
        with pytest.raises(RangeError):
            cursor.current()

    def test_skip_to(self, doc):
        cursor = doc.termlist_begin()

        cursor.skip_to(b"b")
        assert cursor.get_term() == b"banana"

        cursor.skip_to(b"zzz")
        assert cursor.at_end()

    def test_skip_to_needs_bytes(self, doc):
        with pytest.raises(InvalidArgumentError):
            doc.termlist_begin().skip_to("banana")

    def test_copy_is_independent(self, doc):
        cursor = doc.termlist_begin()
        duplicate = copy.copy(cursor)

        cursor.advance()

        assert duplicate.get_term() == b"apple"
        assert cursor.get_term() == b"banana"
        assert duplicate != cursor

    def test_owner_change_invalidates_cursor(self, doc):
        cursor = doc.termlist_begin()

        doc.add_term("date")

        with pytest.raises(InvalidOperationError, match="changed"):
            cursor.get_term()

    def test_owner_release_invalidates_cursor(self, doc):
        cursor = doc.termlist_begin()

        doc.close()

        with pytest.raises(InvalidOperationError):
            cursor.at_end()

    def test_entry_fields(self, doc):
        doc.add_posting("pos", 3)
        cursor = doc.termlist_begin().skip_to(b"pos")

        assert cursor.current() == TermEntry(term=b"pos", wdf=1, positions=(3,))
        assert cursor.get_wdf() == 1
        assert cursor.positions() == (3,)
        assert cursor.get_termfreq() == 0

    def test_iterate_helper(self, doc):
        assert [entry.term for entry in iterate(doc.termlist_begin())] == [b"apple", b"banana", b"cherry"]

    def test_repr(self, doc):
        assert repr(TermCursor(doc, doc.get_terms(), 1)) == "TermCursor(index=1, size=3)"


@pytest.mark.unit
class TestMSetCursor:
    """MSet cursors run from the first result to end()."""

    def test_walk_in_rank_order(self, mset):
        cursor = mset.begin()
        ranks = []

        while cursor != mset.end():
            ranks.append(cursor.get_rank())
            assert 0 < cursor.get_percent() <= 100
            assert cursor.get_weight() > 0
            cursor.advance()

        assert ranks == [0, 1, 2]

    def test_back_points_at_last_item(self, mset):
        assert mset.back().get_docid() == mset[-1].docid

    def test_cursor_reads_document(self, mset):
        document = mset.begin().get_document()

        assert document.get_docid() == mset.begin().get_docid()
        document.close()

    def test_end_is_not_dereferenceable(self, mset):
        with pytest.raises(RangeError):
            mset.end().get_docid()
        with pytest.raises(RangeError):
            mset.end().advance()

    def test_copy_and_equality(self, mset):
        cursor = mset.begin()
        duplicate = cursor.copy()

        assert duplicate == cursor
        assert hash(duplicate) == hash(cursor)
        duplicate.advance()
        assert duplicate != cursor

    def test_released_mset_invalidates_cursor(self, mset):
        cursor = mset.begin()

        mset.close()

        with pytest.raises(InvalidOperationError):
            cursor.at_end()
