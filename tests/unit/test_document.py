"""Unit tests for Document."""

import pytest

from fts_bridge import codec
from fts_bridge.document import Document
from fts_bridge.errors import InvalidArgumentError, InvalidOperationError, SerialisationError


@pytest.fixture
def doc():
    document = Document()
    yield document
    document.close()


@pytest.mark.unit
class TestDocumentData:
    """Data payload and docid."""

    def test_new_document_is_empty(self, doc):
        assert doc.get_data() == b""
        assert doc.get_docid() == 0
        assert doc.termlist_count() == 0
        assert doc.values_count() == 0

    def test_data_accepts_text_and_bytes(self, doc):
        doc.set_data("héllo")
        assert doc.get_data() == "héllo".encode()

        doc.set_data(b"\x00\xff")
        assert doc.get_data() == b"\x00\xff"

    def test_closed_document_rejects_use(self, doc):
        doc.close()

        with pytest.raises(InvalidOperationError):
            doc.get_data()
        assert repr(doc) == "<Document closed>"


@pytest.mark.unit
class TestDocumentTerms:
    """Terms, wdf and positions."""

    def test_add_term_accumulates_wdf(self, doc):
        doc.add_term("apple")
        doc.add_term("apple", 2)

        [entry] = doc.get_terms()
        assert entry.term == b"apple"
        assert entry.wdf == 3
        assert entry.positions == ()

    def test_boolean_term_has_zero_wdf(self, doc):
        doc.add_boolean_term("XTAGfruit")

        assert doc.get_terms()[0].wdf == 0

    def test_postings_record_sorted_positions(self, doc):
        doc.add_posting("pear", 5)
        doc.add_posting("pear", 2)

        [entry] = doc.get_terms()
        assert entry.positions == (2, 5)
        assert entry.wdf == 2

    def test_terms_are_listed_in_byte_order(self, doc):
        for term in ("zebra", "Apple", "mango"):
            doc.add_term(term)

        assert [entry.term for entry in doc.termlist()] == [b"Apple", b"mango", b"zebra"]

    def test_remove_posting(self, doc):
        doc.add_posting("pear", 1)
        doc.add_posting("pear", 3)

        doc.remove_posting("pear", 1)

        [entry] = doc.get_terms()
        assert entry.positions == (3,)
        assert entry.wdf == 1

    def test_remove_missing_posting(self, doc):
        doc.add_posting("pear", 1)

        with pytest.raises(InvalidArgumentError):
            doc.remove_posting("pear", 9)

    def test_remove_term(self, doc):
        doc.add_term("a")
        doc.add_term("b")

        doc.remove_term("a")

        assert [entry.term for entry in doc.get_terms()] == [b"b"]
        with pytest.raises(InvalidArgumentError, match="not present"):
            doc.remove_term("a")

    def test_clear_terms(self, doc):
        doc.add_term("a")

        doc.clear_terms()

        assert doc.termlist_count() == 0

    def test_invalid_inputs(self, doc):
        with pytest.raises(InvalidArgumentError):
            doc.add_term("")
        with pytest.raises(InvalidArgumentError):
            doc.add_term("x", -1)
        with pytest.raises(InvalidArgumentError):
            doc.add_posting("x", -1)
        with pytest.raises(InvalidArgumentError):
            doc.add_term(3)


@pytest.mark.unit
class TestDocumentValues:
    """Value slots."""

    def test_add_and_get_value(self, doc):
        doc.add_value(3, "red")

        assert doc.get_value(3) == b"red"
        assert doc.get_value(4) == b""
        assert doc.values_count() == 1

    def test_empty_value_removes_slot(self, doc):
        doc.add_value(1, "x")

        doc.add_value(1, "")

        assert doc.values_count() == 0

    def test_get_values_is_sorted_copy(self, doc):
        doc.add_value(5, "b")
        doc.add_value(1, "a")

        values = doc.get_values()
        values[1] = b"changed"

        assert list(doc.get_values().items()) == [(1, b"a"), (5, b"b")]

    def test_remove_and_clear(self, doc):
        doc.add_value(1, "a")
        doc.add_value(2, "b")

        doc.remove_value(1)
        doc.remove_value(99)
        assert doc.values_count() == 1

        doc.clear_values()
        assert doc.values_count() == 0

    def test_typed_values_use_sortable_encoding(self, doc):
        doc.add_int(0, -3)
        doc.add_long(1, 2**40)
        doc.add_double(2, 2.5)
        doc.add_float(3, 0.25)
        doc.add_string(4, "text")

        assert codec.decode_int(doc.get_value(0)) == -3
        assert codec.decode_long(doc.get_value(1)) == 2**40
        assert codec.decode_double(doc.get_value(2)) == 2.5
        assert codec.decode_float(doc.get_value(3)) == 0.25
        assert doc.get_value(4) == b"text"

    def test_bad_slot(self, doc):
        with pytest.raises(InvalidArgumentError):
            doc.add_value(-1, "x")


@pytest.mark.unit
class TestDocumentSerialisation:
    """serialise() and unserialise() preserve data, terms and values."""

    def test_round_trip(self, doc):
        doc.set_data(b"payload")
        doc.add_posting("word", 4, 2)
        doc.add_boolean_term("Qid")
        doc.add_value(2, b"\x00v")

        copy = Document.unserialise(doc.serialise())

        assert copy.get_data() == b"payload"
        assert copy.get_terms() == doc.get_terms()
        assert copy.get_values() == {2: b"\x00v"}
        copy.close()

    def test_malformed_input(self):
        with pytest.raises(SerialisationError):
            Document.unserialise(b"not json")
        with pytest.raises(SerialisationError):
            Document.unserialise(b'{"data": ""}')

    def test_description(self, doc):
        doc.add_term("a")

        assert doc.get_description() == "Document(docid=0, terms=1, values=0)"
        assert repr(doc) == doc.get_description()
