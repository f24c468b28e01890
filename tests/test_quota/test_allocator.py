"""Tests for the call budget allocator."""

import pytest

from curator.quota.allocator import allocate_calls
from curator.sources.schemas import Source, SourceKind


def _sources(*priorities: int) -> list[Source]:
    return [
        Source(id=f"s{i}", user_id="user-1", kind=SourceKind.SOCIAL, handle=f"h{i}", priority=p)
        for i, p in enumerate(priorities)
    ]


class TestAllocateCalls:
    """Tests for tiered allocation."""

    def test_no_sources(self):
        assert allocate_calls([], 10) == {}

    @pytest.mark.parametrize("total", [0, -1])
    def test_no_calls(self, total):
        assert allocate_calls(_sources(1, 2, 3), total) == {}

    def test_two_tier_one_and_one_tier_two(self):
        """Tier 1 splits 5 calls, tier 2 gets floor(3.5)."""
        allocation = allocate_calls(_sources(1, 1, 2), 10)

        assert allocation == {"s0": 2, "s1": 2, "s2": 3}
        assert sum(allocation.values()) <= 10

    def test_tier_three_takes_remainder(self):
        allocation = allocate_calls(_sources(1, 2, 3), 10)

        assert allocation == {"s0": 5, "s1": 3, "s2": 2}

    def test_daily_quota_of_three(self):
        """With the default quota every tier still gets one call."""
        allocation = allocate_calls(_sources(1, 2, 3), 3)

        assert allocation == {"s0": 1, "s1": 1, "s2": 1}

    def test_tier_three_absorbs_missing_tier_two(self):
        """Tier 1 keeps its 50% share; tier 3 takes what is left."""
        allocation = allocate_calls(_sources(1, 3), 10)

        assert allocation == {"s0": 5, "s1": 5}

    def test_missing_tier_three_leaves_calls_unspent(self):
        allocation = allocate_calls(_sources(1, 2), 10)

        assert allocation == {"s0": 5, "s1": 3}
        assert sum(allocation.values()) == 8

    def test_single_call_goes_to_tier_one(self):
        """Exhausted budget leaves later sources without an entry."""
        allocation = allocate_calls(_sources(1, 2, 3), 1)

        assert allocation == {"s0": 1}
        assert "s1" not in allocation
        assert "s2" not in allocation

    def test_crowded_tier_one_consumes_budget(self):
        """Per-source minimum of one can exhaust the budget within a tier."""
        allocation = allocate_calls(_sources(1, 1, 1, 1, 2), 3)

        assert allocation == {"s0": 1, "s1": 1, "s2": 1}

    def test_order_independent_within_tier(self):
        sources = _sources(1, 1, 2)

        forward = allocate_calls(sources, 10)
        backward = allocate_calls(list(reversed(sources)), 10)

        assert forward == backward

    def test_invalid_priority_ignored(self):
        allocation = allocate_calls(_sources(1, 4), 10)

        assert allocation == {"s0": 5}

    @pytest.mark.parametrize("total", [3, 4, 7, 10, 25, 100])
    def test_sum_never_exceeds_budget(self, total):
        allocation = allocate_calls(_sources(1, 1, 2, 2, 3, 3), total)

        assert sum(allocation.values()) <= total
        assert all(calls > 0 for calls in allocation.values())
