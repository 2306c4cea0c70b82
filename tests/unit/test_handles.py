"""Unit tests for handle ownership rules."""

import copy
import pickle

import pytest

from fts_bridge.database import Database, WritableDatabase
from fts_bridge.document import Document
from fts_bridge.enquire import Enquire
from fts_bridge.errors import InvalidArgumentError, InvalidOperationError
from fts_bridge.handles import Handle, HandleState, require_instance, require_live
from fts_bridge.matchspy import ValueCountMatchSpy
from fts_bridge.query import Query
from fts_bridge.queryparser import QueryParser, RangeProcessor
from fts_bridge.stem import Stem
from fts_bridge.termgenerator import TermGenerator


class _Tracked(Handle):
    def __init__(self):
        super().__init__()
        self.released = 0

    def _release(self):
        self.released += 1


@pytest.mark.unit
class TestHandleLifecycle:
    """Release is explicit, idempotent and final."""

    def test_close_is_idempotent(self):
        handle = _Tracked()

        handle.close()
        handle.close()
        handle.release()

        assert handle.released == 1
        assert handle.closed

    def test_use_after_close(self):
        handle = _Tracked()
        handle.close()

        with pytest.raises(InvalidOperationError, match="has been closed"):
            handle._ensure_open()

    def test_context_manager_releases(self):
        with _Tracked() as handle:
            assert not handle.closed

        assert handle.closed
        assert handle.released == 1

    def test_consumed_handle_is_unusable_without_release(self):
        handle = _Tracked()

        handle._consume()

        assert handle._state is HandleState.MOVED
        assert handle.released == 0
        with pytest.raises(InvalidOperationError, match="consumed"):
            handle._ensure_open()

    def test_no_implicit_duplication(self):
        handle = _Tracked()

        with pytest.raises(InvalidOperationError):
            copy.copy(handle)
        with pytest.raises(InvalidOperationError):
            copy.deepcopy(handle)
        with pytest.raises(InvalidOperationError):
            pickle.dumps(handle)

    def test_repr_shows_state(self):
        handle = _Tracked()
        handle.close()

        assert repr(handle) == "<_Tracked closed>"


@pytest.mark.unit
class TestAttachments:
    """Attached handles are checked each time they are used."""

    def test_require_live(self):
        handle = _Tracked()
        assert require_live(handle, "thing") is handle

        handle.close()
        with pytest.raises(InvalidOperationError, match="released while still attached"):
            require_live(handle, "thing")

    def test_require_instance(self):
        with pytest.raises(InvalidArgumentError, match="must be a Document"):
            require_instance("doc", Document, "document")

    def test_enquire_fails_after_database_release(self):
        db = Database()
        enquire = Enquire(db)

        db.close()

        with pytest.raises(InvalidOperationError):
            enquire.get_mset(0, 10)

    def test_term_generator_fails_after_document_release(self):
        doc = Document()
        generator = TermGenerator()
        generator.set_document(doc)

        doc.close()

        with pytest.raises(InvalidOperationError):
            generator.index_text("hello")

    def test_parser_fails_after_range_processor_release(self):
        parser = QueryParser()
        processor = RangeProcessor(1)
        parser.add_rangeprocessor(processor)

        processor.close()

        with pytest.raises(InvalidOperationError):
            parser.parse_query("a..b")

    def test_enquire_fails_after_spy_release(self):
        db = WritableDatabase()
        enquire = Enquire(db)
        spy = ValueCountMatchSpy(0)
        enquire.add_matchspy(spy)
        enquire.set_query(Query("x"))

        spy.close()

        with pytest.raises(InvalidOperationError):
            enquire.get_mset(0, 10)
        db.close()

    def test_closed_stemmer_is_unusable(self):
        stem = Stem("english")
        stem.close()

        with pytest.raises(InvalidOperationError):
            stem("running")

    def test_query_is_a_value_not_a_handle(self):
        query = Query("term")

        assert not isinstance(query, Handle)
        assert copy.copy(query) == query
