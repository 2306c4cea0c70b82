"""Unit tests for snippet extraction."""

import pytest

from fts_bridge.engine.analyzers import build_porter_stemmer
from fts_bridge.engine.snippet import SnippetTerms, build_snippet, find_sentence_start


@pytest.mark.unit
class TestSnippetTerms:
    """Query terms split into plain words and stems."""

    def test_prefixes_are_stripped(self):
        terms = SnippetTerms.from_query_terms([b"quick", b"ZSengin", b"XTfox", b"Q"])

        assert terms.words == frozenset({"quick", "fox"})
        assert terms.stems == frozenset({"engin"})

    def test_matching(self):
        terms = SnippetTerms.from_query_terms([b"quick", b"Zengin"])
        stem = build_porter_stemmer()

        assert terms.matches("Quick", None)
        assert terms.matches("engines", stem)
        assert not terms.matches("engines", None)

    def test_missing_stemmer_is_identity(self):
        terms = SnippetTerms.from_query_terms([b"Zquick"])

        assert terms.matches("Quick", None)
        assert not terms.matches("quickly", None)
        assert build_snippet("The quick brown fox", terms) == "The <b>quick</b> brown fox"


@pytest.mark.unit
class TestBuildSnippet:
    """Highlighting and windowing."""

    def test_short_text_is_highlighted_in_full(self):
        terms = SnippetTerms.from_query_terms([b"quick"])

        assert build_snippet("The quick brown fox", terms) == "The <b>quick</b> brown fox"

    def test_stemmed_match(self):
        terms = SnippetTerms.from_query_terms([b"Zengin"])

        snippet = build_snippet("Engines are fast", terms, stemmer=build_porter_stemmer())

        assert snippet == "<b>Engines</b> are fast"

    def test_custom_markers(self):
        terms = SnippetTerms.from_query_terms([b"fox"])

        assert build_snippet("a fox", terms, hi_start="[", hi_end="]") == "a [fox]"

    def test_empty_without_match(self):
        terms = SnippetTerms.from_query_terms([b"zebra"])

        assert build_snippet("no match here", terms, empty_without_match=True) == ""
        assert build_snippet("no match here", terms) == "no match here"

    def test_window_moves_to_the_match(self):
        text = "word " * 200 + "target here."
        terms = SnippetTerms.from_query_terms([b"target"])

        snippet = build_snippet(text, terms, length=50)

        assert snippet.startswith("...")
        assert "<b>target</b>" in snippet
        assert snippet.endswith("here.")

    def test_no_match_keeps_the_start(self):
        text = "alpha beta gamma delta " * 10
        terms = SnippetTerms.from_query_terms([b"zebra"])

        snippet = build_snippet(text, terms, length=20)

        assert snippet.startswith("alpha")
        assert snippet.endswith("...")
        assert "<b>" not in snippet

    def test_words_are_not_cut(self):
        text = "alpha betagamma delta"
        terms = SnippetTerms.from_query_terms([b"zebra"])

        assert build_snippet(text, terms, length=10) == "alpha..."

    def test_zero_length(self):
        assert build_snippet("text", SnippetTerms.from_query_terms([b"text"]), length=0) == ""


@pytest.mark.unit
class TestSentenceStart:
    """Snippets prefer to start at a sentence."""

    def test_after_sentence_end(self):
        text = "One. Two three"

        assert find_sentence_start(text, text.index("three")) == text.index("Two")

    def test_start_of_text(self):
        assert find_sentence_start("abc def", 0) == 0
        assert find_sentence_start("abc def", 4) == 0
