"""Tier, details and statistics schemas."""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict
from services.loyalty_service.models.enums import LoyaltyTier
from services.loyalty_service.schemas.loyalty import LoyaltyTransactionResponse


class RequirementProgressResponse(BaseModel):
    required: int
    current: Decimal
    remaining: Decimal
    progress: float

    model_config = ConfigDict(from_attributes=True)


class TierProgressResponse(BaseModel):
    current_tier: LoyaltyTier
    next_tier: Optional[LoyaltyTier] = None
    progress: float
    requirements: Optional[dict[str, RequirementProgressResponse]] = None

    model_config = ConfigDict(from_attributes=True)


class TierBenefitsResponse(BaseModel):
    tier: LoyaltyTier
    point_multiplier: Decimal
    discount_percentage: int
    free_item_threshold: int
    special_offers: list[str]
    priority_support: bool

    model_config = ConfigDict(from_attributes=True)


class LoyaltyDetailsResponse(BaseModel):
    customer_id: str
    balance: int
    points_earned: int
    points_redeemed: int
    points_expired: int
    tier: LoyaltyTier
    tier_updated_at: Optional[datetime] = None
    lifetime_spent: Decimal
    current_year_spent: Decimal
    current_month_spent: Decimal
    total_visits: int
    visits_this_month: int
    last_visit_at: Optional[datetime] = None
    tier_progress: TierProgressResponse
    benefits: TierBenefitsResponse
    recent_transactions: list[LoyaltyTransactionResponse]

    model_config = ConfigDict(from_attributes=True)


class TopCustomerResponse(BaseModel):
    customer_id: str
    tier: LoyaltyTier
    lifetime_spent: Decimal
    current_points: int
    total_visits: int

    model_config = ConfigDict(from_attributes=True)


class RecentActivityResponse(BaseModel):
    days: int
    points_earned: int
    points_redeemed: int
    points_expired: int
    transactions: int

    model_config = ConfigDict(from_attributes=True)


class LoyaltyStatisticsResponse(BaseModel):
    total_customers: int
    points_issued: int
    points_redeemed: int
    points_expired: int
    points_outstanding: int
    tier_distribution: dict[str, int]
    top_customers: list[TopCustomerResponse]
    recent_activity: Optional[RecentActivityResponse] = None

    model_config = ConfigDict(from_attributes=True)


class ExpiryReportResponse(BaseModel):
    tenant_id: str
    cutoff: datetime
    customers_processed: int
    customers_expired: int
    points_expired: int
    failures: int

    model_config = ConfigDict(from_attributes=True)
