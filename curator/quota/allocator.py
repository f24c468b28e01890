"""
Greedy split of a daily call budget across prioritized sources.

Tier 1 gets half the budget, tier 2 about a third, tier 3 the rest.
Shares are fixed fractions of the original total; an empty tier's share
is simply not spent.
"""

import math
from collections.abc import Iterable

from curator.sources.schemas import PRIORITY_TIERS, Source

# Fraction of the original total granted to each tier; the last tier
# takes whatever is left.
TIER_SHARES = {1: 0.50, 2: 0.35}


def allocate_calls(sources: Iterable[Source], total_calls: int) -> dict[str, int]:
    """
    Allocate calls to sources by priority tier.

    Args:
        sources: Candidate sources (priority 1 is highest)
        total_calls: Calls available to spend

    Returns:
        Mapping of source id to allocated calls. Sources that receive
        nothing have no entry.
    """
    sources = list(sources)
    if total_calls <= 0 or not sources:
        return {}

    tiers: dict[int, list[Source]] = {tier: [] for tier in PRIORITY_TIERS}
    for source in sources:
        if source.priority in tiers:
            tiers[source.priority].append(source)

    allocation: dict[str, int] = {}
    remaining = total_calls

    for tier in PRIORITY_TIERS:
        members = tiers[tier]
        if not members or remaining <= 0:
            continue

        if tier in TIER_SHARES:
            tier_total = max(1, math.floor(total_calls * TIER_SHARES[tier]))
        else:
            tier_total = remaining

        per_source = max(1, math.floor(tier_total / len(members)))
        for source in members:
            calls = min(per_source, remaining)
            if calls <= 0:
                break
            allocation[source.id] = calls
            remaining -= calls

    return allocation
