"""Tier policy: pure functions over loyalty aggregates.

Nothing here touches the database. The ledger engine reads these values back
into its own decisions: point multipliers when earning from a visit, bonus
size when awarding a birthday bonus, and the tier written by the recompute job.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Optional, Union

from services.loyalty_service.models.enums import LoyaltyTier

Number = Union[int, float, Decimal]

# One point per this many currency units spent
DEFAULT_AMOUNT_PER_POINT = 1000

TIER_ORDER: tuple[LoyaltyTier, ...] = (
    LoyaltyTier.BRONZE,
    LoyaltyTier.SILVER,
    LoyaltyTier.GOLD,
    LoyaltyTier.PLATINUM,
)


@dataclass(frozen=True)
class TierThreshold:
    lifetime_spent: int
    total_visits: int
    yearly_spent: int


# Reaching any one of the three thresholds qualifies for the tier
TIER_THRESHOLDS: dict[LoyaltyTier, TierThreshold] = {
    LoyaltyTier.BRONZE: TierThreshold(0, 0, 0),
    LoyaltyTier.SILVER: TierThreshold(5_000_000, 30, 3_000_000),
    LoyaltyTier.GOLD: TierThreshold(20_000_000, 100, 10_000_000),
    LoyaltyTier.PLATINUM: TierThreshold(50_000_000, 200, 20_000_000),
}

BIRTHDAY_BONUS: dict[LoyaltyTier, int] = {
    LoyaltyTier.BRONZE: 200,
    LoyaltyTier.SILVER: 500,
    LoyaltyTier.GOLD: 1000,
    LoyaltyTier.PLATINUM: 2000,
}


@dataclass(frozen=True)
class TierBenefits:
    tier: LoyaltyTier
    point_multiplier: Decimal
    discount_percentage: int
    free_item_threshold: int
    special_offers: tuple[str, ...] = field(default_factory=tuple)
    priority_support: bool = False


TIER_BENEFITS: dict[LoyaltyTier, TierBenefits] = {
    LoyaltyTier.BRONZE: TierBenefits(
        tier=LoyaltyTier.BRONZE,
        point_multiplier=Decimal("1"),
        discount_percentage=0,
        free_item_threshold=0,
    ),
    LoyaltyTier.SILVER: TierBenefits(
        tier=LoyaltyTier.SILVER,
        point_multiplier=Decimal("1.2"),
        discount_percentage=5,
        free_item_threshold=10,
        special_offers=("Birthday discount", "Monthly special offer"),
    ),
    LoyaltyTier.GOLD: TierBenefits(
        tier=LoyaltyTier.GOLD,
        point_multiplier=Decimal("1.5"),
        discount_percentage=10,
        free_item_threshold=8,
        special_offers=("Birthday discount", "Weekly special offer", "Early access"),
        priority_support=True,
    ),
    LoyaltyTier.PLATINUM: TierBenefits(
        tier=LoyaltyTier.PLATINUM,
        point_multiplier=Decimal("2"),
        discount_percentage=15,
        free_item_threshold=5,
        special_offers=(
            "Birthday discount",
            "Daily special offer",
            "VIP access",
            "Free consultation",
        ),
        priority_support=True,
    ),
}


@dataclass(frozen=True)
class RequirementProgress:
    required: int
    current: Number
    remaining: Number
    progress: float


@dataclass(frozen=True)
class TierProgress:
    current_tier: LoyaltyTier
    next_tier: Optional[LoyaltyTier]
    progress: float
    requirements: Optional[dict[str, RequirementProgress]] = None


def calculate_points_from_amount(
    amount: Number, amount_per_point: int = DEFAULT_AMOUNT_PER_POINT
) -> int:
    """``floor(amount / amount_per_point)``; never negative."""
    if amount <= 0:
        return 0
    return int(Decimal(str(amount)) // Decimal(amount_per_point))


def apply_point_multiplier(points: int, multiplier: Decimal) -> int:
    return math.floor(Decimal(points) * multiplier)


def _capped_percent(current: Number, required: int) -> float:
    if required <= 0:
        return 100.0
    return min(float(current) / required * 100, 100.0)


def _qualifies(threshold: TierThreshold, lifetime: Number, visits: int, yearly: Number) -> bool:
    return (
        lifetime >= threshold.lifetime_spent
        or visits >= threshold.total_visits
        or yearly >= threshold.yearly_spent
    )


def determine_tier(lifetime_spent: Number, total_visits: int, current_year_spent: Number) -> LoyaltyTier:
    """Highest tier for which at least one threshold has been reached."""
    tier = LoyaltyTier.BRONZE
    for candidate in TIER_ORDER[1:]:
        if _qualifies(TIER_THRESHOLDS[candidate], lifetime_spent, total_visits, current_year_spent):
            tier = candidate
    return tier


def next_tier(tier: LoyaltyTier) -> Optional[LoyaltyTier]:
    index = TIER_ORDER.index(tier)
    if index == len(TIER_ORDER) - 1:
        return None
    return TIER_ORDER[index + 1]


def calculate_tier_requirements(
    current_tier: LoyaltyTier,
    lifetime_spent: Number,
    total_visits: int,
    current_year_spent: Number,
) -> TierProgress:
    """Progress towards the tier after ``current_tier``.

    Overall progress is the best of the three individually capped percentages.
    """
    upcoming = next_tier(current_tier)
    if upcoming is None:
        return TierProgress(current_tier=current_tier, next_tier=None, progress=100.0)

    threshold = TIER_THRESHOLDS[upcoming]
    lifetime_progress = _capped_percent(lifetime_spent, threshold.lifetime_spent)
    visits_progress = _capped_percent(total_visits, threshold.total_visits)
    yearly_progress = _capped_percent(current_year_spent, threshold.yearly_spent)

    return TierProgress(
        current_tier=current_tier,
        next_tier=upcoming,
        progress=max(lifetime_progress, visits_progress, yearly_progress),
        requirements={
            "lifetime_spent": RequirementProgress(
                required=threshold.lifetime_spent,
                current=lifetime_spent,
                remaining=max(0, threshold.lifetime_spent - lifetime_spent),
                progress=lifetime_progress,
            ),
            "total_visits": RequirementProgress(
                required=threshold.total_visits,
                current=total_visits,
                remaining=max(0, threshold.total_visits - total_visits),
                progress=visits_progress,
            ),
            "yearly_spent": RequirementProgress(
                required=threshold.yearly_spent,
                current=current_year_spent,
                remaining=max(0, threshold.yearly_spent - current_year_spent),
                progress=yearly_progress,
            ),
        },
    )


def get_tier_benefits(tier: LoyaltyTier) -> TierBenefits:
    return TIER_BENEFITS[tier]


def birthday_bonus_for(tier: LoyaltyTier) -> int:
    return BIRTHDAY_BONUS[tier]
