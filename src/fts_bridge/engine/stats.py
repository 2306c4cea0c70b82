"""Collection statistics and BM25 term weighting.

The functions here are independent of storage so they can be unit tested on
plain numbers. ``WeightScheme`` is the interface the matcher calls; the
public weighting classes implement it on top of these helpers.
"""

from __future__ import annotations

from dataclasses import dataclass
import math
from typing import Protocol


@dataclass(frozen=True)
class CollectionStats:
    """Aggregated statistics across every shard of a database."""

    doccount: int
    total_length: int

    @property
    def average_length(self) -> float:
        if self.doccount == 0:
            return 0.0
        return self.total_length / self.doccount


class WeightScheme(Protocol):
    """Interface the matcher uses to score documents."""

    def term_weight(self, termfreq: int, doccount: int, wqf: int) -> float:  # pragma: no cover - interface
        ...

    def sum_part(self, wdf: int, doclen: int, avlength: float, termweight: float) -> float:  # pragma: no cover
        ...

    def sum_extra(self, doclen: int, avlength: float, query_length: int) -> float:  # pragma: no cover
        ...


def bm25_idf(termfreq: int, doccount: int) -> float:
    """Return the BM25 inverse document frequency.

    Common terms would get a negative idf from the raw Robertson/Sparck Jones
    formula; ratios below 2 are compressed towards 1 instead so every
    matching term still contributes a small positive amount.
    """
    if doccount <= 0:
        return 0.0
    n = max(0, min(termfreq, doccount))
    ratio = (doccount - n + 0.5) / (n + 0.5)
    if ratio < 2:
        ratio = ratio * 0.5 + 1
    return math.log(ratio)


def bm25_term_weight(termfreq: int, doccount: int, wqf: int, *, k1: float, k3: float) -> float:
    """Return the per-term factor shared by every document the term matches."""
    weight = bm25_idf(termfreq, doccount)
    if k3 != 0:
        weight *= (k3 + 1) * wqf / (k3 + wqf)
    else:
        weight *= wqf
    if k1 != 0:
        weight *= k1 + 1
    return weight


def normalized_length(doclen: int, avlength: float, min_normlen: float) -> float:
    if avlength <= 0:
        return max(1.0, min_normlen)
    return max(doclen / avlength, min_normlen)


def bm25_sum_part(
    wdf: int,
    doclen: int,
    avlength: float,
    termweight: float,
    *,
    k1: float,
    b: float,
    min_normlen: float,
) -> float:
    """Return one term's contribution to a document's weight."""
    if wdf <= 0 or termweight == 0:
        return 0.0
    if k1 == 0:
        return termweight
    normlen = normalized_length(doclen, avlength, min_normlen)
    denominator = k1 * (normlen * b + (1 - b)) + wdf
    return termweight * wdf / denominator


def bm25_sum_extra(doclen: int, avlength: float, query_length: int, *, k2: float, min_normlen: float) -> float:
    """Return the per-document, term-independent component (zero unless k2 is set)."""
    if k2 == 0 or query_length <= 0:
        return 0.0
    normlen = normalized_length(doclen, avlength, min_normlen)
    return 2.0 * k2 * query_length / (1.0 + normlen)
