"""Weighting schemes selectable with ``Enquire.set_weighting_scheme``."""

from __future__ import annotations

import math

from fts_bridge.engine.stats import bm25_sum_extra, bm25_sum_part, bm25_term_weight
from fts_bridge.errors import InvalidArgumentError, boundary
from fts_bridge.handles import Handle


class Weight(Handle):
    """Base class for weighting schemes.

    Subclasses provide the three hooks the matcher calls: a per-term factor,
    a per-(term, document) contribution and a per-document extra.
    """

    name = "weight"

    def term_weight(self, termfreq: int, doccount: int, wqf: int) -> float:
        return 0.0

    def sum_part(self, wdf: int, doclen: int, avlength: float, termweight: float) -> float:
        return 0.0

    def sum_extra(self, doclen: int, avlength: float, query_length: int) -> float:
        return 0.0

    @boundary
    def get_description(self) -> str:
        self._ensure_open()
        return f"{type(self).__name__}()"


class BoolWeight(Weight):
    """Gives every matching document a weight of zero."""

    name = "bool"


class BM25Weight(Weight):
    """Okapi BM25 with the usual k1, k2, k3 and b parameters.

    ``min_normlen`` bounds the normalised document length from below, which
    stops very short documents from dominating.
    """

    name = "bm25"

    @boundary
    def __init__(
        self,
        k1: float = 1.0,
        k2: float = 0.0,
        k3: float = 1.0,
        b: float = 0.5,
        min_normlen: float = 0.5,
    ) -> None:
        super().__init__()
        params = {"k1": k1, "k2": k2, "k3": k3, "b": b, "min_normlen": min_normlen}
        for label, value in params.items():
            if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
                raise InvalidArgumentError(f"BM25Weight parameter {label} must be a finite number, got {value!r}")
            if value < 0:
                raise InvalidArgumentError(f"BM25Weight parameter {label} must not be negative, got {value}")
        if b > 1:
            raise InvalidArgumentError(f"BM25Weight parameter b must be between 0 and 1, got {b}")
        self.k1 = float(k1)
        self.k2 = float(k2)
        self.k3 = float(k3)
        self.b = float(b)
        self.min_normlen = float(min_normlen)

    def term_weight(self, termfreq: int, doccount: int, wqf: int) -> float:
        return bm25_term_weight(termfreq, doccount, wqf, k1=self.k1, k3=self.k3)

    def sum_part(self, wdf: int, doclen: int, avlength: float, termweight: float) -> float:
        return bm25_sum_part(wdf, doclen, avlength, termweight, k1=self.k1, b=self.b, min_normlen=self.min_normlen)

    def sum_extra(self, doclen: int, avlength: float, query_length: int) -> float:
        return bm25_sum_extra(doclen, avlength, query_length, k2=self.k2, min_normlen=self.min_normlen)

    @boundary
    def get_description(self) -> str:
        self._ensure_open()
        return (
            f"BM25Weight(k1={self.k1:g}, k2={self.k2:g}, k3={self.k3:g}, b={self.b:g}, "
            f"min_normlen={self.min_normlen:g})"
        )
