"""Unit tests for positional window checks."""

import math

import pytest

from fts_bridge.engine.phrase import get_min_span, has_ordered_match, within_window


@pytest.mark.unit
class TestMinSpan:
    """Smallest window holding one position from every list."""

    def test_adjacent_terms(self):
        assert get_min_span([[1], [2]]) == 2

    def test_picks_tightest_placement(self):
        assert get_min_span([[1, 10], [5, 12]]) == 3

    def test_single_list(self):
        assert get_min_span([[4, 9]]) == 1

    def test_missing_positions(self):
        assert math.isinf(get_min_span([[1], []]))
        assert math.isinf(get_min_span([]))


@pytest.mark.unit
class TestOrderedMatch:
    """PHRASE needs the terms in order inside the window."""

    def test_in_order(self):
        assert has_ordered_match([[1], [2]], 2)

    def test_out_of_order(self):
        assert not has_ordered_match([[2], [1]], 2)

    def test_window_is_exclusive_of_distance(self):
        assert not has_ordered_match([[1], [3]], 2)
        assert has_ordered_match([[1], [3]], 3)

    def test_later_start_can_match(self):
        assert has_ordered_match([[1, 7], [5, 8], [9]], 3)

    def test_empty_list(self):
        assert not has_ordered_match([[1], []], 5)


@pytest.mark.unit
class TestWithinWindow:
    """NEAR accepts any order."""

    def test_any_order(self):
        assert within_window([[3], [1]], 3)
        assert not within_window([[3], [1]], 2)
