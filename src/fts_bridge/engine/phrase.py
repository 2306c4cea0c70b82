"""Positional checks for phrase and proximity operators."""

from __future__ import annotations

from bisect import bisect_right
from collections.abc import Sequence
import heapq


def get_min_span(position_lists: Sequence[Sequence[int]]) -> float:
    """Calculate the minimum span containing at least one position from each list.

    The span counts positions from first to last inclusive, so adjacent
    terms have a span equal to the number of lists.

    Returns:
        Minimum span, or infinity if any list is empty.
    """
    if not position_lists or any(not positions for positions in position_lists):
        return float("inf")
    if len(position_lists) == 1:
        return 1.0

    # k-way sweep: keep one pointer per list, always advance the smallest
    heap = [(positions[0], index, 0) for index, positions in enumerate(position_lists)]
    heapq.heapify(heap)
    current_max = max(entry[0] for entry in heap)
    best = float("inf")
    while True:
        low, index, offset = heapq.heappop(heap)
        best = min(best, current_max - low + 1)
        positions = position_lists[index]
        if offset + 1 >= len(positions):
            return best
        following = positions[offset + 1]
        current_max = max(current_max, following)
        heapq.heappush(heap, (following, index, offset + 1))


def has_ordered_match(position_lists: Sequence[Sequence[int]], window: int) -> bool:
    """Return True if the lists occur in order within ``window`` positions.

    Each list must be sorted. For every start position of the first list the
    earliest following occurrence of each later list is chosen, which gives
    the tightest in-order placement for that start.
    """
    if not position_lists or any(not positions for positions in position_lists):
        return False
    for start in position_lists[0]:
        previous = start
        for positions in position_lists[1:]:
            index = bisect_right(positions, previous)
            if index == len(positions):
                return False
            previous = positions[index]
        if previous - start < window:
            return True
    return False


def within_window(position_lists: Sequence[Sequence[int]], window: int) -> bool:
    """Return True if one position from each list fits inside ``window`` positions, in any order."""
    return get_min_span(position_lists) <= window
