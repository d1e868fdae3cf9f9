"""Loyalty read models: customer details, ledger history and tenant statistics."""

import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Optional

from libs.common.datetime_utils import utc_now
from libs.common.errors import AppError, ErrorCode
from services.loyalty_service.models import (
    CREDIT_TYPES,
    CustomerLoyalty,
    LoyaltyTier,
    LoyaltyTransaction,
    LoyaltyTransactionType,
)
from services.loyalty_service.services.tier_policy import (
    TierBenefits,
    TierProgress,
    calculate_tier_requirements,
    get_tier_benefits,
)
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

RECENT_TRANSACTIONS = 10
TOP_CUSTOMERS = 10
ACTIVITY_WINDOW_DAYS = 30


@dataclass
class LoyaltyDetails:
    customer_id: str
    balance: int
    points_earned: int
    points_redeemed: int
    points_expired: int
    tier: LoyaltyTier
    tier_updated_at: Optional[datetime]
    lifetime_spent: Decimal
    current_year_spent: Decimal
    current_month_spent: Decimal
    total_visits: int
    visits_this_month: int
    last_visit_at: Optional[datetime]
    tier_progress: TierProgress
    benefits: TierBenefits
    recent_transactions: list[LoyaltyTransaction]


async def get_customer_loyalty_details(
    db: AsyncSession, *, tenant_id: str, customer_id: str
) -> LoyaltyDetails:
    result = await db.execute(
        select(CustomerLoyalty).where(
            CustomerLoyalty.tenant_id == tenant_id,
            CustomerLoyalty.customer_id == customer_id,
        )
    )
    loyalty = result.scalar_one_or_none()
    if loyalty is None:
        raise AppError.not_found(
            ErrorCode.CUSTOMER_NOT_FOUND,
            "Customer has no loyalty account",
            customer_id=customer_id,
        )

    recent = await db.execute(
        select(LoyaltyTransaction)
        .where(
            LoyaltyTransaction.tenant_id == tenant_id,
            LoyaltyTransaction.customer_id == customer_id,
        )
        .order_by(LoyaltyTransaction.sequence.desc())
        .limit(RECENT_TRANSACTIONS)
    )

    return LoyaltyDetails(
        customer_id=loyalty.customer_id,
        balance=loyalty.current_points,
        points_earned=loyalty.points_earned,
        points_redeemed=loyalty.points_redeemed,
        points_expired=loyalty.points_expired,
        tier=loyalty.tier_level,
        tier_updated_at=loyalty.tier_updated_at,
        lifetime_spent=loyalty.lifetime_spent,
        current_year_spent=loyalty.current_year_spent,
        current_month_spent=loyalty.current_month_spent,
        total_visits=loyalty.total_visits,
        visits_this_month=loyalty.visits_this_month,
        last_visit_at=loyalty.last_visit_at,
        tier_progress=calculate_tier_requirements(
            loyalty.tier_level,
            loyalty.lifetime_spent,
            loyalty.total_visits,
            loyalty.current_year_spent,
        ),
        benefits=get_tier_benefits(loyalty.tier_level),
        recent_transactions=list(recent.scalars()),
    )


@dataclass
class TransactionPage:
    transactions: list[LoyaltyTransaction]
    total: int
    page: int
    limit: int
    total_pages: int


async def get_loyalty_transactions(
    db: AsyncSession,
    *,
    tenant_id: str,
    customer_id: Optional[str] = None,
    transaction_types: Optional[list[LoyaltyTransactionType]] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    page: int = 1,
    limit: int = 20,
) -> TransactionPage:
    if page < 1 or not 1 <= limit <= 100:
        raise AppError.validation("page must be >= 1 and limit between 1 and 100")

    conditions = [LoyaltyTransaction.tenant_id == tenant_id]
    if customer_id:
        conditions.append(LoyaltyTransaction.customer_id == customer_id)
    if transaction_types:
        conditions.append(LoyaltyTransaction.transaction_type.in_(transaction_types))
    if start_date:
        conditions.append(LoyaltyTransaction.created_at >= start_date)
    if end_date:
        conditions.append(LoyaltyTransaction.created_at <= end_date)

    total = (
        await db.execute(select(func.count(LoyaltyTransaction.id)).where(*conditions))
    ).scalar_one()
    result = await db.execute(
        select(LoyaltyTransaction)
        .where(*conditions)
        .order_by(
            LoyaltyTransaction.created_at.desc(), LoyaltyTransaction.sequence.desc()
        )
        .offset((page - 1) * limit)
        .limit(limit)
    )
    return TransactionPage(
        transactions=list(result.scalars()),
        total=total,
        page=page,
        limit=limit,
        total_pages=math.ceil(total / limit) if total else 0,
    )


@dataclass
class TopCustomer:
    customer_id: str
    tier: LoyaltyTier
    lifetime_spent: Decimal
    current_points: int
    total_visits: int


@dataclass
class RecentActivity:
    days: int
    points_earned: int = 0
    points_redeemed: int = 0
    points_expired: int = 0
    transactions: int = 0


@dataclass
class LoyaltyStatistics:
    total_customers: int
    points_issued: int
    points_redeemed: int
    points_expired: int
    points_outstanding: int
    tier_distribution: dict[str, int]
    top_customers: list[TopCustomer] = field(default_factory=list)
    recent_activity: Optional[RecentActivity] = None


async def get_loyalty_statistics(
    db: AsyncSession, *, tenant_id: str, now: Optional[datetime] = None
) -> LoyaltyStatistics:
    totals = (
        await db.execute(
            select(
                func.count(CustomerLoyalty.id),
                func.coalesce(func.sum(CustomerLoyalty.points_earned), 0),
                func.coalesce(func.sum(CustomerLoyalty.points_redeemed), 0),
                func.coalesce(func.sum(CustomerLoyalty.points_expired), 0),
                func.coalesce(func.sum(CustomerLoyalty.current_points), 0),
            ).where(CustomerLoyalty.tenant_id == tenant_id)
        )
    ).one()

    tier_rows = await db.execute(
        select(CustomerLoyalty.tier_level, func.count(CustomerLoyalty.id))
        .where(CustomerLoyalty.tenant_id == tenant_id)
        .group_by(CustomerLoyalty.tier_level)
    )
    distribution = {tier.value: 0 for tier in LoyaltyTier}
    for tier, count in tier_rows.all():
        distribution[tier.value] = count

    top_rows = await db.execute(
        select(CustomerLoyalty)
        .where(CustomerLoyalty.tenant_id == tenant_id)
        .order_by(CustomerLoyalty.lifetime_spent.desc(), CustomerLoyalty.customer_id)
        .limit(TOP_CUSTOMERS)
    )
    top_customers = [
        TopCustomer(
            customer_id=row.customer_id,
            tier=row.tier_level,
            lifetime_spent=row.lifetime_spent,
            current_points=row.current_points,
            total_visits=row.total_visits,
        )
        for row in top_rows.scalars()
    ]

    since = (now or utc_now()) - timedelta(days=ACTIVITY_WINDOW_DAYS)
    activity_rows = await db.execute(
        select(
            LoyaltyTransaction.transaction_type,
            func.sum(LoyaltyTransaction.points_change),
            func.count(LoyaltyTransaction.id),
        )
        .where(
            LoyaltyTransaction.tenant_id == tenant_id,
            LoyaltyTransaction.created_at >= since,
        )
        .group_by(LoyaltyTransaction.transaction_type)
    )
    activity = RecentActivity(days=ACTIVITY_WINDOW_DAYS)
    for transaction_type, points, count in activity_rows.all():
        activity.transactions += count
        if transaction_type in CREDIT_TYPES:
            activity.points_earned += points
        elif transaction_type == LoyaltyTransactionType.EXPIRED:
            activity.points_expired += -points
        else:
            activity.points_redeemed += -points

    return LoyaltyStatistics(
        total_customers=totals[0],
        points_issued=totals[1],
        points_redeemed=totals[2],
        points_expired=totals[3],
        points_outstanding=totals[4],
        tier_distribution=distribution,
        top_customers=top_customers,
        recent_activity=activity,
    )
