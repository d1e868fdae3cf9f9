"""Loyalty account and ledger schemas."""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from services.loyalty_service.models.enums import LoyaltyTier, LoyaltyTransactionType


class AddPointsRequest(BaseModel):
    points: int = Field(..., description="Points to credit, must be positive")
    transaction_type: LoyaltyTransactionType = LoyaltyTransactionType.EARNED_BONUS
    description: str = Field(..., min_length=1, max_length=255)
    notes: Optional[str] = None
    visit_id: Optional[str] = None
    order_reference: Optional[str] = None
    campaign_id: Optional[str] = None
    related_amount: Optional[Decimal] = None


class RedeemPointsRequest(BaseModel):
    points: int
    description: str = Field(..., min_length=1, max_length=255)
    order_reference: Optional[str] = None
    transaction_type: LoyaltyTransactionType = LoyaltyTransactionType.REDEEMED_DISCOUNT


class AdjustPointsRequest(BaseModel):
    delta: int = Field(..., description="Positive to credit, negative to debit")
    reason: str = Field(..., min_length=3, max_length=255)


class RecordVisitRequest(BaseModel):
    total_amount: Decimal
    discount_amount: Decimal = Decimal("0")
    points_redeemed: int = 0
    visit_id: Optional[str] = None
    order_reference: Optional[str] = None


class LoyaltyTransactionResponse(BaseModel):
    id: uuid.UUID
    customer_id: str
    sequence: int
    transaction_type: LoyaltyTransactionType
    points_change: int
    balance_after: int
    description: str
    notes: Optional[str] = None
    visit_id: Optional[str] = None
    order_reference: Optional[str] = None
    campaign_id: Optional[str] = None
    related_amount: Optional[Decimal] = None
    created_by: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class CustomerLoyaltyResponse(BaseModel):
    customer_id: str
    current_points: int
    points_earned: int
    points_redeemed: int
    points_expired: int
    tier_level: LoyaltyTier
    lifetime_spent: Decimal
    current_year_spent: Decimal
    current_month_spent: Decimal
    total_visits: int
    visits_this_month: int
    last_visit_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class LedgerResultResponse(BaseModel):
    loyalty: CustomerLoyaltyResponse
    transaction: LoyaltyTransactionResponse

    model_config = ConfigDict(from_attributes=True)


class VisitResultResponse(BaseModel):
    loyalty: CustomerLoyaltyResponse
    final_amount: Decimal
    points_earned: int
    points_redeemed: int
    earn_transaction: Optional[LoyaltyTransactionResponse] = None
    redeem_transaction: Optional[LoyaltyTransactionResponse] = None

    model_config = ConfigDict(from_attributes=True)


class TransactionListResponse(BaseModel):
    transactions: list[LoyaltyTransactionResponse]
    total: int
    page: int
    limit: int
    total_pages: int

    model_config = ConfigDict(from_attributes=True)
