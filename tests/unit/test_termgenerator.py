"""Unit tests for TermGenerator."""

import pytest

from fts_bridge import codec
from fts_bridge.document import Document
from fts_bridge.errors import FeatureUnavailableError, InvalidArgumentError, InvalidOperationError
from fts_bridge.stem import SimpleStopper, Stem
from fts_bridge.termgenerator import TermGenerator


@pytest.fixture
def doc():
    document = Document()
    yield document
    document.close()


@pytest.fixture
def generator(doc):
    tg = TermGenerator()
    tg.set_stemmer(Stem("english"))
    tg.set_document(doc)
    yield tg
    tg.close()


def _terms(doc):
    return {entry.term: (entry.wdf, entry.positions) for entry in doc.get_terms()}


@pytest.mark.unit
class TestStemmingStrategies:
    """Which terms each strategy adds."""

    def test_stem_some_default(self, generator, doc):
        generator.index_text("Running engines")

        assert _terms(doc) == {
            b"running": (1, (1,)),
            b"engines": (1, (2,)),
            b"Zrunn": (1, ()),
            b"Zengin": (1, ()),
        }

    def test_prefix_goes_after_z(self, generator, doc):
        generator.index_text("engines", 1, "S")

        assert set(_terms(doc)) == {b"Sengines", b"ZSengin"}

    def test_stem_all(self, generator, doc):
        generator.set_stemming_strategy(TermGenerator.STEM_ALL)

        generator.index_text("engines")

        assert _terms(doc) == {b"engin": (1, (1,))}

    def test_stem_all_z(self, generator, doc):
        generator.set_stemming_strategy(TermGenerator.STEM_ALL_Z)

        generator.index_text("engines")

        assert _terms(doc) == {b"Zengin": (1, (1,))}

    def test_stem_some_full_pos(self, generator, doc):
        generator.set_stemming_strategy(TermGenerator.STEM_SOME_FULL_POS)

        generator.index_text("engines")

        assert _terms(doc) == {b"engines": (1, (1,)), b"Zengin": (1, (1,))}

    def test_stem_none(self, generator, doc):
        generator.set_stemming_strategy(TermGenerator.STEM_NONE)

        generator.index_text("engines")

        assert set(_terms(doc)) == {b"engines"}

    def test_without_stemmer_only_raw_terms(self, doc):
        tg = TermGenerator()
        tg.set_document(doc)

        tg.index_text("Engines")

        assert set(_terms(doc)) == {b"engines"}

    def test_numbers_are_not_stemmed(self, generator, doc):
        generator.index_text("2024")

        assert set(_terms(doc)) == {b"2024"}

    def test_unknown_strategy(self, generator):
        with pytest.raises(InvalidArgumentError):
            generator.set_stemming_strategy(42)


@pytest.mark.unit
class TestStopWords:
    """Stopper strategies."""

    def test_stop_stemmed_keeps_raw_term(self, generator, doc):
        generator.set_stopper(SimpleStopper(["the"]))

        generator.index_text("the engines")

        assert set(_terms(doc)) == {b"the", b"engines", b"Zengin"}

    def test_stop_all_drops_word(self, generator, doc):
        generator.set_stopper(SimpleStopper(["the"]))
        generator.set_stopper_strategy(TermGenerator.STOP_ALL)

        generator.index_text("the engines")

        assert _terms(doc)[b"engines"] == (1, (1,))
        assert b"the" not in _terms(doc)

    def test_stop_none_ignores_stopper(self, generator, doc):
        generator.set_stopper(SimpleStopper(["the"]))
        generator.set_stopper_strategy(TermGenerator.STOP_NONE)

        generator.index_text("the")

        assert set(_terms(doc)) == {b"the", b"Zthe"}


@pytest.mark.unit
class TestPositionsAndWdf:
    """Term positions, wdf increments and word length."""

    def test_positions_continue_across_calls(self, generator, doc):
        generator.index_text("one")
        generator.increase_termpos()
        generator.index_text("two")

        assert _terms(doc)[b"two"][1] == (102,)
        assert generator.get_termpos() == 102

    def test_set_termpos(self, generator, doc):
        generator.set_termpos(10)

        generator.index_text("word")

        assert _terms(doc)[b"word"][1] == (11,)

    def test_set_document_resets_termpos(self, generator):
        generator.index_text("a b c")
        other = Document()

        generator.set_document(other)

        assert generator.get_termpos() == 0
        assert generator.get_document() is other

    def test_wdf_increment(self, generator, doc):
        generator.index_text("hello", 3)

        assert _terms(doc)[b"hello"][0] == 3
        assert _terms(doc)[b"Zhello"][0] == 3

    def test_without_positions(self, generator, doc):
        generator.index_text_without_positions("hello world")

        assert _terms(doc)[b"hello"] == (1, ())
        assert generator.get_termpos() == 0

    def test_index_text_with_prefix(self, generator, doc):
        generator.index_text_with_prefix("engines", "XT")

        assert b"XTengines" in _terms(doc)

    def test_long_words_are_skipped(self, generator, doc):
        generator.set_max_word_length(5)

        generator.index_text("short lengthy")

        assert b"short" in _terms(doc)
        assert b"lengthy" not in _terms(doc)

    def test_invalid_termpos(self, generator):
        with pytest.raises(InvalidArgumentError):
            generator.set_termpos(-1)
        with pytest.raises(InvalidArgumentError):
            generator.increase_termpos(-5)


@pytest.mark.unit
class TestFlagsAndNumbers:
    """Flags and numeric indexing."""

    def test_cjk_ngrams(self, doc):
        tg = TermGenerator()
        tg.set_document(doc)
        tg.set_flags(TermGenerator.FLAG_CJK_NGRAM)

        tg.index_text("中文")

        terms = _terms(doc)
        assert terms["中".encode()] == (1, (1,))
        assert terms["文".encode()] == (1, (2,))
        assert terms["中文".encode()] == (1, ())

    def test_set_flags_returns_previous(self, generator):
        assert generator.set_flags(TermGenerator.FLAG_CJK_NGRAM) == 0
        assert generator.set_flags(0) == TermGenerator.FLAG_CJK_NGRAM

    def test_spelling_is_unavailable(self, generator):
        with pytest.raises(FeatureUnavailableError):
            generator.set_flags(TermGenerator.FLAG_SPELLING)

    def test_index_numbers(self, generator, doc):
        generator.index_int(5, "N")
        generator.index_double(2.5)

        terms = _terms(doc)
        assert b"N" + codec.encode_int(5) in terms
        assert codec.encode_double(2.5) in terms


@pytest.mark.unit
class TestDocumentAttachment:
    """A generator needs a live document."""

    def test_no_document(self):
        tg = TermGenerator()

        with pytest.raises(InvalidOperationError, match="set_document"):
            tg.index_text("hello")

    def test_set_document_type_check(self):
        with pytest.raises(InvalidArgumentError):
            TermGenerator().set_document("doc")

    def test_description(self, generator):
        assert generator.get_description() == "TermGenerator(strategy=1, termpos=0)"
