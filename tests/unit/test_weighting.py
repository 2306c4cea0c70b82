"""Unit tests for weighting schemes."""

import pytest

from fts_bridge.errors import InvalidArgumentError, InvalidOperationError
from fts_bridge.weighting import BM25Weight, BoolWeight, Weight


@pytest.mark.unit
class TestBM25Weight:
    """Parameters and the per-term hooks."""

    def test_defaults(self):
        weight = BM25Weight()

        assert (weight.k1, weight.k2, weight.k3, weight.b, weight.min_normlen) == (1.0, 0.0, 1.0, 0.5, 0.5)
        assert weight.get_description() == "BM25Weight(k1=1, k2=0, k3=1, b=0.5, min_normlen=0.5)"

    @pytest.mark.parametrize(
        "params",
        [
            {"k1": -1},
            {"b": 1.5},
            {"k3": float("inf")},
            {"min_normlen": float("nan")},
            {"k2": "1"},
            {"k1": True},
        ],
    )
    def test_invalid_parameters(self, params):
        with pytest.raises(InvalidArgumentError):
            BM25Weight(**params)

    def test_rare_terms_weigh_more(self):
        weight = BM25Weight()

        assert weight.term_weight(1, 100, 1) > weight.term_weight(50, 100, 1) > 0

    def test_common_terms_stay_positive(self):
        assert BM25Weight().term_weight(100, 100, 1) > 0

    def test_higher_wdf_scores_higher(self):
        weight = BM25Weight()
        termweight = weight.term_weight(1, 10, 1)

        assert weight.sum_part(3, 10, 10.0, termweight) > weight.sum_part(1, 10, 10.0, termweight)
        assert weight.sum_part(0, 10, 10.0, termweight) == 0.0

    def test_shorter_documents_score_higher(self):
        weight = BM25Weight()
        termweight = weight.term_weight(1, 10, 1)

        assert weight.sum_part(1, 5, 10.0, termweight) > weight.sum_part(1, 20, 10.0, termweight)

    def test_sum_extra_needs_k2(self):
        assert BM25Weight().sum_extra(10, 10.0, 3) == 0.0
        assert BM25Weight(k2=1).sum_extra(10, 10.0, 3) == pytest.approx(3.0)


@pytest.mark.unit
class TestBoolWeight:
    """Every match weighs zero."""

    def test_zero_weights(self):
        weight = BoolWeight()

        assert weight.term_weight(1, 10, 1) == 0.0
        assert weight.sum_part(5, 10, 10.0, 0.0) == 0.0
        assert weight.sum_extra(10, 10.0, 1) == 0.0

    def test_description(self):
        assert BoolWeight().get_description() == "BoolWeight()"
        assert Weight().name == "weight"

    def test_closed(self):
        weight = BoolWeight()
        weight.close()

        with pytest.raises(InvalidOperationError):
            weight.get_description()
