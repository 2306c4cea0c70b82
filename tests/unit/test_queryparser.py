"""Unit tests for QueryParser."""

import pytest

from fts_bridge.constants import OP_AND, OP_XOR
from fts_bridge.database import WritableDatabase
from fts_bridge.document import Document
from fts_bridge.errors import (
    FeatureUnavailableError,
    InvalidArgumentError,
    InvalidOperationError,
    QueryParserError,
    SearchRuntimeError,
)
from fts_bridge.queryparser import QueryParser
from fts_bridge.stem import SimpleStopper, Stem


@pytest.fixture
def qp():
    parser = QueryParser()
    yield parser
    parser.close()


def _parse(parser, text, flags=QueryParser.FLAG_DEFAULT, prefix=""):
    return parser.parse_query(text, flags, prefix).get_description()


@pytest.mark.unit
class TestWords:
    """Plain words, positions and the default operator."""

    def test_words_or_by_default(self, qp):
        assert _parse(qp, "apple pie") == "Query((apple@1 OR pie@2))"

    def test_words_are_lowercased(self, qp):
        assert _parse(qp, "Apple") == "Query(apple@1)"

    def test_empty_input(self, qp):
        assert qp.parse_query("").is_empty()
        assert qp.parse_query("()").is_empty()

    def test_default_and(self, qp):
        qp.set_default_op(OP_AND)

        assert qp.get_default_op() == OP_AND
        assert _parse(qp, "apple pie") == "Query((apple@1 AND pie@2))"

    def test_invalid_default_op(self, qp):
        with pytest.raises(InvalidArgumentError):
            qp.set_default_op(OP_XOR)

    def test_default_prefix(self, qp):
        assert _parse(qp, "apple", prefix="XT") == "Query(XTapple@1)"
        assert _parse(qp, "apple", prefix="XT") == qp.parse_query_with_prefix(
            "apple", QueryParser.FLAG_DEFAULT, "XT"
        ).get_description()

    def test_no_positions(self, qp):
        flags = QueryParser.FLAG_DEFAULT | QueryParser.FLAG_NO_POSITIONS

        assert _parse(qp, "apple pie", flags) == "Query((apple OR pie))"

    def test_cjk_ngrams(self, qp):
        assert _parse(qp, "中文", QueryParser.FLAG_CJK_NGRAM) == "Query((中@1 AND 文@2))"


@pytest.mark.unit
class TestStemming:
    """Stemmed terms carry the Z prefix."""

    def test_stem_some(self, qp):
        qp.set_stemmer(Stem("english"))

        assert _parse(qp, "Running engines") == "Query((running@1 OR Zengin@2))"

    def test_numbers_are_not_stemmed(self, qp):
        qp.set_stemmer(Stem("english"))

        assert _parse(qp, "2024") == "Query(2024@1)"

    @pytest.mark.parametrize(
        ("strategy", "expected"),
        [
            (QueryParser.STEM_NONE, "Query(engines@1)"),
            (QueryParser.STEM_ALL, "Query(engin@1)"),
            (QueryParser.STEM_ALL_Z, "Query(Zengin@1)"),
        ],
    )
    def test_strategies(self, qp, strategy, expected):
        qp.set_stemmer(Stem("english"))
        qp.set_stemming_strategy(strategy)

        assert _parse(qp, "engines") == expected

    def test_unknown_strategy(self, qp):
        with pytest.raises(InvalidArgumentError):
            qp.set_stemming_strategy(9)

    def test_stemmer_type_check(self, qp):
        with pytest.raises(InvalidArgumentError):
            qp.set_stemmer("english")

    def test_prefixed_field_example(self, qp):
        qp.set_stemmer(Stem("english"))
        qp.add_prefix("title", "S")

        assert _parse(qp, "title:search engines") == "Query((ZSsearch@1 OR Zengin@2))"


@pytest.mark.unit
class TestBooleanOperators:
    """AND, OR, XOR, NOT and their precedence."""

    def test_and(self, qp):
        assert _parse(qp, "apple AND pie") == "Query((apple@1 AND pie@2))"

    def test_or_binds_loosest(self, qp):
        assert _parse(qp, "apple OR pie NOT tart") == "Query((apple@1 OR (pie@2 AND_NOT tart@3)))"

    def test_xor(self, qp):
        assert _parse(qp, "apple XOR pie") == "Query((apple@1 XOR pie@2))"

    def test_and_not(self, qp):
        assert _parse(qp, "apple AND NOT pie") == "Query((apple@1 AND_NOT pie@2))"

    def test_lowercase_keywords_are_words(self, qp):
        assert _parse(qp, "apple and pie") == "Query((apple@1 OR and@2 OR pie@3))"

    def test_any_case_keywords(self, qp):
        flags = QueryParser.FLAG_DEFAULT | QueryParser.FLAG_BOOLEAN_ANY_CASE

        assert _parse(qp, "apple and pie", flags) == "Query((apple@1 AND pie@2))"

    def test_keywords_need_boolean_flag(self, qp):
        assert _parse(qp, "apple AND pie", QueryParser.FLAG_PHRASE) == "Query((apple@1 OR and@2 OR pie@3))"

    def test_grouping(self, qp):
        assert _parse(qp, "(apple OR pie) AND tart") == "Query(((apple@1 OR pie@2) AND tart@3))"


@pytest.mark.unit
class TestPhrasesAndWindows:
    """Quoted phrases, joined words, NEAR and ADJ."""

    def test_quoted_phrase(self, qp):
        assert _parse(qp, '"quick brown fox"') == "Query((quick@1 PHRASE 3 brown@2 PHRASE 3 fox@3))"

    def test_hyphenated_word(self, qp):
        assert _parse(qp, "e-mail") == "Query((e@1 PHRASE 2 mail@2))"

    def test_joined_words_without_phrase_flag(self, qp):
        assert _parse(qp, "e-mail", QueryParser.FLAG_BOOLEAN) == "Query((e@1 AND mail@2))"

    def test_quoted_words_without_phrase_flag(self, qp):
        assert _parse(qp, '"apple pie"', QueryParser.FLAG_BOOLEAN) == "Query((apple@1 OR pie@2))"

    def test_near_default_window(self, qp):
        assert _parse(qp, "apple NEAR pie") == "Query((apple@1 NEAR 11 pie@2))"

    def test_near_explicit_window(self, qp):
        assert _parse(qp, "apple NEAR/3 pie") == "Query((apple@1 NEAR 4 pie@2))"

    def test_adj_is_ordered(self, qp):
        assert _parse(qp, "apple ADJ/2 pie") == "Query((apple@1 PHRASE 3 pie@2))"

    def test_near_chain(self, qp):
        assert _parse(qp, "a NEAR b NEAR c") == "Query((a@1 NEAR 12 b@2 NEAR 12 c@3))"


@pytest.mark.unit
class TestLoveHate:
    """Required and excluded terms."""

    def test_love(self, qp):
        assert _parse(qp, "+apple pie") == "Query((apple@1 AND_MAYBE pie@2))"

    def test_love_and_hate(self, qp):
        assert _parse(qp, "+apple -pie tart") == "Query(((apple@1 AND_MAYBE tart@3) AND_NOT pie@2))"

    def test_pure_hate_is_rejected(self, qp):
        with pytest.raises(QueryParserError):
            qp.parse_query("-pie")

    def test_pure_not(self, qp):
        flags = QueryParser.FLAG_DEFAULT | QueryParser.FLAG_PURE_NOT

        assert _parse(qp, "-pie", flags) == "Query((<alldocuments> AND_NOT pie@1))"
        assert _parse(qp, "NOT pie", flags) == "Query((<alldocuments> AND_NOT pie@1))"

    def test_minus_inside_word_is_a_joiner(self, qp):
        assert _parse(qp, "apple-pie") == "Query((apple@1 PHRASE 2 pie@2))"


@pytest.mark.unit
class TestFields:
    """Free-text and boolean field prefixes."""

    def test_prefixed_word(self, qp):
        qp.add_prefix("title", "S")

        assert _parse(qp, "title:apple") == "Query(Sapple@1)"

    def test_field_with_several_prefixes(self, qp):
        qp.add_prefix("title", "S")
        qp.add_prefix("title", "XT")

        assert _parse(qp, "title:apple") == "Query((Sapple@1 OR XTapple@1))"

    def test_prefixed_group_and_phrase(self, qp):
        qp.add_prefix("title", "S")

        assert _parse(qp, "title:(apple pie)") == "Query((Sapple@1 OR Spie@2))"
        assert _parse(qp, 'title:"apple pie"') == "Query((Sapple@1 PHRASE 2 Spie@2))"

    def test_loved_prefixed_word(self, qp):
        qp.add_prefix("title", "S")

        assert _parse(qp, "+title:apple pie") == "Query((Sapple@1 AND_MAYBE pie@2))"

    def test_unknown_field_is_text(self, qp):
        assert _parse(qp, "foo:bar") == "Query((foo@1 PHRASE 2 bar@2))"

    def test_boolean_filter(self, qp):
        qp.add_boolean_prefix("site", "H")

        assert _parse(qp, "apple site:example.com") == "Query((apple@1 FILTER Hexample.com))"

    def test_filters_on_one_field_are_ored(self, qp):
        qp.add_boolean_prefix("site", "H")

        assert _parse(qp, "site:a site:b") == "Query(0 * (Ha OR Hb))"

    def test_filters_on_different_fields_are_anded(self, qp):
        qp.add_boolean_prefix("site", "H")
        qp.add_boolean_prefix("lang", "L")

        assert _parse(qp, "apple site:a lang:en") == "Query((apple@1 FILTER (Ha AND Len)))"

    def test_shared_grouping(self, qp):
        qp.add_boolean_prefix("site", "H", "host")
        qp.add_boolean_prefix("mirror", "XM", "host")

        assert _parse(qp, "site:a mirror:b") == "Query(0 * (Ha OR XMb))"

    def test_excluded_filter(self, qp):
        qp.add_boolean_prefix("site", "H")

        assert _parse(qp, "apple -site:a") == "Query((apple@1 AND_NOT Ha))"

    def test_quoted_filter_value(self, qp):
        qp.add_boolean_prefix("author", "A")

        assert _parse(qp, 'author:"Jane Doe"') == "Query(0 * AJane Doe)"

    def test_prefix_kinds_cannot_mix(self, qp):
        qp.add_prefix("title", "S")

        with pytest.raises(InvalidOperationError):
            qp.add_boolean_prefix("title", "XS")

    def test_invalid_field_name(self, qp):
        with pytest.raises(InvalidArgumentError):
            qp.add_prefix("1abc", "X")


@pytest.mark.unit
class TestWildcards:
    """Trailing wildcards and partial final words."""

    def test_wildcard(self, qp):
        flags = QueryParser.FLAG_DEFAULT | QueryParser.FLAG_WILDCARD

        assert _parse(qp, "app*", flags) == "Query(WILDCARD SYNONYM app)"

    def test_prefixed_wildcard(self, qp):
        qp.add_prefix("title", "S")
        flags = QueryParser.FLAG_DEFAULT | QueryParser.FLAG_WILDCARD

        assert _parse(qp, "title:app*", flags) == "Query(WILDCARD SYNONYM Sapp)"

    def test_star_ignored_without_flag(self, qp):
        assert _parse(qp, "app*") == "Query(app@1)"

    def test_partial_final_word(self, qp):
        flags = QueryParser.FLAG_DEFAULT | QueryParser.FLAG_PARTIAL

        assert _parse(qp, "hello wor", flags) == "Query((hello@1 OR WILDCARD SYNONYM wor OR wor@2))"

    def test_partial_word_checked_against_database(self, qp, fruit_db):
        qp.set_database(fruit_db)
        flags = QueryParser.FLAG_DEFAULT | QueryParser.FLAG_PARTIAL

        assert _parse(qp, "ban", flags) == "Query((WILDCARD SYNONYM ban OR ban@1))"
        assert _parse(qp, "kiw", flags) == "Query(kiw@1)"

    def test_wildcard_limit_checked_while_parsing(self, qp, fruit_db):
        qp.set_database(fruit_db)
        qp.set_max_expansion(1)
        flags = QueryParser.FLAG_DEFAULT | QueryParser.FLAG_WILDCARD

        assert _parse(qp, "ban*", flags) == "Query(WILDCARD SYNONYM ban)"

        doc = Document()
        doc.add_term("bandana")
        fruit_db.add_document(doc)

        with pytest.raises(SearchRuntimeError, match="expands to more than 1"):
            qp.parse_query("ban*", flags)

    def test_closed_database_fails_parse(self, qp):
        db = WritableDatabase()
        qp.set_database(db)
        db.close()

        with pytest.raises(InvalidOperationError):
            qp.parse_query("app*", QueryParser.FLAG_WILDCARD)
        assert _parse(qp, "apple") == "Query(apple@1)"

    def test_set_database_type_checked(self, qp):
        with pytest.raises(InvalidArgumentError):
            qp.set_database("not a database")

    def test_invalid_expansion_limits(self, qp):
        with pytest.raises(InvalidArgumentError):
            qp.set_max_expansion(-1)
        with pytest.raises(InvalidArgumentError):
            qp.set_max_expansion(10, 7)


@pytest.mark.unit
class TestStopWords:
    """Stop words are dropped when other words remain."""

    def test_stop_word_dropped(self, qp):
        qp.set_stopper(SimpleStopper(["the"]))

        assert _parse(qp, "the apple") == "Query(apple@2)"
        assert qp.get_stoplist() == ["the"]

    def test_lone_stop_word_kept(self, qp):
        qp.set_stopper(SimpleStopper(["the"]))

        assert _parse(qp, "the") == "Query(the@1)"
        assert qp.get_stoplist() == []

    def test_accumulate(self, qp):
        qp.set_stopper(SimpleStopper(["the", "a"]))

        qp.parse_query("the apple")
        qp.parse_query("a pie", QueryParser.FLAG_DEFAULT | QueryParser.FLAG_ACCUMULATE)
        assert qp.get_stoplist() == ["the", "a"]

        qp.parse_query("pie")
        assert qp.get_stoplist() == []


@pytest.mark.unit
class TestErrors:
    """Malformed queries and unavailable features."""

    @pytest.mark.parametrize(
        ("text", "message"),
        [
            ("(apple", "missing \\)"),
            ("apple)", "unexpected \\)"),
            ("AND apple", "Syntax: <expression> AND <expression>"),
            ("apple AND", "Syntax: <expression> AND <expression>"),
            ("apple NEAR", "Syntax: <expression> NEAR <expression>"),
            ("NOT apple", "Syntax: <expression> NOT <expression>"),
        ],
    )
    def test_syntax_errors(self, qp, text, message):
        with pytest.raises(QueryParserError, match=message):
            qp.parse_query(text)

    def test_synonyms_are_unavailable(self, qp):
        with pytest.raises(FeatureUnavailableError):
            qp.parse_query("apple", QueryParser.FLAG_SYNONYM)

    def test_closed_parser(self, qp):
        qp.close()

        with pytest.raises(InvalidOperationError):
            qp.parse_query("apple")

    def test_description(self, qp):
        qp.add_prefix("title", "S")

        assert qp.get_description() == (
            "QueryParser(prefixes=['title'], boolean_prefixes=[], default_op=OR, rangeprocessors=0)"
        )
