"""Progressive trust: account age selects the rate-limit profile.

Pure functions, recomputed on every earn decision so a user crossing a
tier boundary mid-day is judged by the tier valid at request time.
"""

from __future__ import annotations

import math
from dataclasses import dataclass


@dataclass(frozen=True)
class TrustTier:
    name: str
    cap_multiplier: float
    max_ads_per_day: int
    review_required: bool


NEW = TrustTier(name="new", cap_multiplier=0.5, max_ads_per_day=2, review_required=True)
REGULAR = TrustTier(name="regular", cap_multiplier=0.75, max_ads_per_day=3, review_required=True)
TRUSTED = TrustTier(name="trusted", cap_multiplier=1.0, max_ads_per_day=5, review_required=False)
VETERAN = TrustTier(name="veteran", cap_multiplier=1.2, max_ads_per_day=7, review_required=False)

# (exclusive upper bound in days, tier), checked in order
TIER_THRESHOLDS: list[tuple[int, TrustTier]] = [
    (3, NEW),
    (7, REGULAR),
    (30, TRUSTED),
]


def resolve_tier(account_age_days: int) -> TrustTier:
    """Map account age in whole days to its trust tier."""
    for upper_bound, tier in TIER_THRESHOLDS:
        if account_age_days < upper_bound:
            return tier
    return VETERAN


def daily_cap_for(tier: TrustTier, base_cap: int) -> int:
    """Non-ad daily credit cap for a tier, floored to whole credits."""
    return math.floor(base_cap * tier.cap_multiplier)
