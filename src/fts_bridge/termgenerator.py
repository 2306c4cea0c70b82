"""Turning free text into document terms."""

from __future__ import annotations

from fts_bridge import codec
from fts_bridge.constants import (
    STEM_ALL,
    STEM_ALL_Z,
    STEM_NONE,
    STEM_SOME,
    STEM_SOME_FULL_POS,
    STOP_ALL,
    STOP_NONE,
    STOP_STEMMED,
    TG_FLAG_CJK_NGRAM,
    TG_FLAG_SPELLING,
)
from fts_bridge.document import Document
from fts_bridge.engine.analyzers import Token, word_analyzer
from fts_bridge.errors import FeatureUnavailableError, InvalidArgumentError, InvalidOperationError, boundary
from fts_bridge.handles import Handle, require_instance, require_live
from fts_bridge.marshal import to_bytes, to_text
from fts_bridge.stem import Stem, Stopper


_STEMMING_STRATEGIES = (STEM_NONE, STEM_SOME, STEM_ALL, STEM_ALL_Z, STEM_SOME_FULL_POS)
_DEFAULT_MAX_WORD_LENGTH = 64


class TermGenerator(Handle):
    """Indexes text into the document set with ``set_document``.

    With the default ``STEM_SOME`` strategy every word is added as a
    positional lowercase term, and words that are not stop words also get a
    ``Z``-prefixed stemmed term without positions.

    Example:
        >>> tg = TermGenerator()
        >>> tg.set_stemmer(Stem("english"))
        >>> tg.set_document(doc)
        >>> tg.index_text("Indexing documents", 1, "S")
    """

    FLAG_SPELLING = TG_FLAG_SPELLING
    FLAG_CJK_NGRAM = TG_FLAG_CJK_NGRAM
    STEM_NONE = STEM_NONE
    STEM_SOME = STEM_SOME
    STEM_ALL = STEM_ALL
    STEM_ALL_Z = STEM_ALL_Z
    STEM_SOME_FULL_POS = STEM_SOME_FULL_POS
    STOP_NONE = STOP_NONE
    STOP_ALL = STOP_ALL
    STOP_STEMMED = STOP_STEMMED

    def __init__(self) -> None:
        super().__init__()
        self._document: Document | None = None
        self._stemmer: Stem | None = None
        self._stopper: Stopper | None = None
        self._strategy = STEM_SOME
        self._stop_strategy = STOP_STEMMED
        self._flags = 0
        self._termpos = 0
        self._max_word_length = _DEFAULT_MAX_WORD_LENGTH

    def _release(self) -> None:
        self._document = None
        self._stemmer = None
        self._stopper = None

    # -- configuration -------------------------------------------------------

    @boundary
    def set_stemmer(self, stemmer: Stem) -> None:
        self._ensure_open()
        self._stemmer = require_instance(stemmer, Stem, "stemmer")

    @boundary
    def set_stopper(self, stopper: Stopper | None = None) -> None:
        self._ensure_open()
        self._stopper = None if stopper is None else require_instance(stopper, Stopper, "stopper")

    @boundary
    def set_stemming_strategy(self, strategy: int) -> None:
        self._ensure_open()
        if strategy not in _STEMMING_STRATEGIES:
            raise InvalidArgumentError(f"Unknown stemming strategy {strategy}")
        self._strategy = strategy

    @boundary
    def set_stopper_strategy(self, strategy: int) -> None:
        self._ensure_open()
        if strategy not in (STOP_NONE, STOP_ALL, STOP_STEMMED):
            raise InvalidArgumentError(f"Unknown stopper strategy {strategy}")
        self._stop_strategy = strategy

    @boundary
    def set_flags(self, toggle: int, mask: int = 0) -> int:
        """Set flags to ``(flags & mask) ^ toggle`` and return the previous flags."""
        self._ensure_open()
        new_flags = (self._flags & mask) ^ toggle
        if new_flags & TG_FLAG_SPELLING:
            raise FeatureUnavailableError("Spelling correction is not available")
        previous, self._flags = self._flags, new_flags
        return previous

    @boundary
    def set_max_word_length(self, length: int) -> None:
        self._ensure_open()
        if isinstance(length, bool) or not isinstance(length, int) or length < 1:
            raise InvalidArgumentError(f"Maximum word length must be a positive int, got {length!r}")
        self._max_word_length = length

    @boundary
    def set_document(self, document: Document) -> None:
        self._ensure_open()
        require_instance(document, Document, "document")
        document._ensure_open()
        self._document = document
        self._termpos = 0

    @boundary
    def get_document(self) -> Document:
        return self._target()

    def _target(self) -> Document:
        self._ensure_open()
        if self._document is None:
            raise InvalidOperationError("No document set; call set_document() first")
        return require_live(self._document, "document")  # type: ignore[return-value]

    @boundary
    def set_termpos(self, termpos: int) -> None:
        self._ensure_open()
        if isinstance(termpos, bool) or not isinstance(termpos, int) or termpos < 0:
            raise InvalidArgumentError(f"Term position must be a non-negative int, got {termpos!r}")
        self._termpos = termpos

    @boundary
    def get_termpos(self) -> int:
        self._ensure_open()
        return self._termpos

    @boundary
    def increase_termpos(self, delta: int = 100) -> None:
        self._ensure_open()
        if isinstance(delta, bool) or not isinstance(delta, int) or delta < 0:
            raise InvalidArgumentError(f"Term position increment must be a non-negative int, got {delta!r}")
        self._termpos += delta

    # -- indexing ------------------------------------------------------------

    @boundary
    def index_text(self, text: str | bytes, wdf_inc: int = 1, prefix: str | bytes = "") -> None:
        self._index(to_text(text), wdf_inc, to_text(prefix, "prefix"), positional=True)

    @boundary
    def index_text_with_prefix(self, text: str | bytes, prefix: str | bytes) -> None:
        self._index(to_text(text), 1, to_text(prefix, "prefix"), positional=True)

    @boundary
    def index_text_without_positions(self, text: str | bytes, wdf_inc: int = 1, prefix: str | bytes = "") -> None:
        self._index(to_text(text), wdf_inc, to_text(prefix, "prefix"), positional=False)

    def _index(self, text: str, wdf_inc: int, prefix: str, *, positional: bool) -> None:
        doc = self._target()
        analyzer = word_analyzer(cjk_ngrams=bool(self._flags & TG_FLAG_CJK_NGRAM))
        stem = self._stemmer if self._stemmer is not None and not self._stemmer.is_none() else None
        strategy = self._strategy if stem is not None else STEM_NONE
        for token in analyzer(text):
            if len(token.text.encode("utf-8")) > self._max_word_length:
                continue
            is_stop = self._stopper is not None and self._stopper(token.text)
            if is_stop and self._stop_strategy == STOP_ALL:
                continue
            pos = None
            if positional and token.positional:
                self._termpos += 1
                pos = self._termpos
            self._emit(doc, token, prefix, wdf_inc, pos, strategy, stem, is_stop)

    def _emit(
        self,
        doc: Document,
        token: Token,
        prefix: str,
        wdf_inc: int,
        pos: int | None,
        strategy: int,
        stem: Stem | None,
        is_stop: bool,
    ) -> None:
        word = token.text
        if strategy in (STEM_NONE, STEM_SOME, STEM_SOME_FULL_POS):
            _add(doc, prefix + word, wdf_inc, pos)
        if stem is None or strategy == STEM_NONE:
            return
        if is_stop and self._stop_strategy == STOP_STEMMED:
            return
        if not token.positional or not word[:1].isalpha():
            return
        stemmed = stem(word)
        if strategy == STEM_ALL:
            _add(doc, prefix + stemmed, wdf_inc, pos)
        elif strategy == STEM_ALL_Z or strategy == STEM_SOME_FULL_POS:
            _add(doc, "Z" + prefix + stemmed, wdf_inc, pos)
        else:
            _add(doc, "Z" + prefix + stemmed, wdf_inc, None)

    def _index_encoded(self, encoded: bytes, prefix: str | bytes) -> None:
        doc = self._target()
        doc.add_term(to_bytes(prefix, "prefix") + encoded, 1)

    @boundary
    def index_int(self, value: int, prefix: str | bytes = "") -> None:
        self._index_encoded(codec.encode_int(value), prefix)

    @boundary
    def index_long(self, value: int, prefix: str | bytes = "") -> None:
        self._index_encoded(codec.encode_long(value), prefix)

    @boundary
    def index_float(self, value: float, prefix: str | bytes = "") -> None:
        self._index_encoded(codec.encode_float(value), prefix)

    @boundary
    def index_double(self, value: float, prefix: str | bytes = "") -> None:
        self._index_encoded(codec.encode_double(value), prefix)

    @boundary
    def get_description(self) -> str:
        self._ensure_open()
        return f"TermGenerator(strategy={self._strategy}, termpos={self._termpos})"


def _add(doc: Document, term: str, wdf_inc: int, pos: int | None) -> None:
    if pos is None:
        doc.add_term(term, wdf_inc)
    else:
        doc.add_posting(term, pos, wdf_inc)
