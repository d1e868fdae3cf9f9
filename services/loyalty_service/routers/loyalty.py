"""Loyalty endpoints: point operations, visits, history and statistics."""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from libs.common.logging import get_logger
from libs.common.tenancy import get_actor_id, get_tenant_id
from libs.db.session import get_async_db
from services.loyalty_service.models import LoyaltyTier, LoyaltyTransactionType
from services.loyalty_service.schemas import (
    AddPointsRequest,
    AdjustPointsRequest,
    ExpiryReportResponse,
    LedgerResultResponse,
    LoyaltyDetailsResponse,
    LoyaltyStatisticsResponse,
    RecordVisitRequest,
    RedeemPointsRequest,
    TierBenefitsResponse,
    TransactionListResponse,
    VisitResultResponse,
)
from services.loyalty_service.services.expiry import expire_old_points
from services.loyalty_service.services.ledger_ops import (
    add_points,
    adjust_points,
    award_birthday_bonus,
    record_visit,
    redeem_points,
)
from services.loyalty_service.services.reporting import (
    get_customer_loyalty_details,
    get_loyalty_statistics,
    get_loyalty_transactions,
)
from services.loyalty_service.services.tier_policy import get_tier_benefits
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)
router = APIRouter(prefix="/loyalty", tags=["loyalty"])


@router.get("/customers/{customer_id}", response_model=LoyaltyDetailsResponse)
async def customer_details(
    customer_id: str,
    tenant_id: str = Depends(get_tenant_id),
    db: AsyncSession = Depends(get_async_db),
):
    """Balance, tier, progress to the next tier, benefits and recent activity."""
    details = await get_customer_loyalty_details(
        db, tenant_id=tenant_id, customer_id=customer_id
    )
    return LoyaltyDetailsResponse.model_validate(details)


@router.post(
    "/customers/{customer_id}/points",
    response_model=LedgerResultResponse,
    status_code=status.HTTP_201_CREATED,
)
async def credit_points(
    customer_id: str,
    body: AddPointsRequest,
    tenant_id: str = Depends(get_tenant_id),
    actor_id: Optional[str] = Depends(get_actor_id),
    db: AsyncSession = Depends(get_async_db),
):
    result = await add_points(
        db,
        tenant_id=tenant_id,
        customer_id=customer_id,
        points=body.points,
        transaction_type=body.transaction_type,
        description=body.description,
        notes=body.notes,
        visit_id=body.visit_id,
        order_reference=body.order_reference,
        campaign_id=body.campaign_id,
        related_amount=body.related_amount,
        created_by=actor_id,
    )
    return LedgerResultResponse.model_validate(result)


@router.post(
    "/customers/{customer_id}/redeem",
    response_model=LedgerResultResponse,
    status_code=status.HTTP_201_CREATED,
)
async def redeem(
    customer_id: str,
    body: RedeemPointsRequest,
    tenant_id: str = Depends(get_tenant_id),
    actor_id: Optional[str] = Depends(get_actor_id),
    db: AsyncSession = Depends(get_async_db),
):
    result = await redeem_points(
        db,
        tenant_id=tenant_id,
        customer_id=customer_id,
        points=body.points,
        description=body.description,
        order_reference=body.order_reference,
        transaction_type=body.transaction_type,
        created_by=actor_id,
    )
    return LedgerResultResponse.model_validate(result)


@router.post(
    "/customers/{customer_id}/adjust",
    response_model=LedgerResultResponse,
    status_code=status.HTTP_201_CREATED,
)
async def adjust(
    customer_id: str,
    body: AdjustPointsRequest,
    tenant_id: str = Depends(get_tenant_id),
    actor_id: Optional[str] = Depends(get_actor_id),
    db: AsyncSession = Depends(get_async_db),
):
    """Manual balance correction."""
    result = await adjust_points(
        db,
        tenant_id=tenant_id,
        customer_id=customer_id,
        delta=body.delta,
        reason=body.reason,
        created_by=actor_id,
    )
    return LedgerResultResponse.model_validate(result)


@router.post(
    "/customers/{customer_id}/birthday-bonus",
    response_model=LedgerResultResponse,
    status_code=status.HTTP_201_CREATED,
)
async def birthday_bonus(
    customer_id: str,
    tenant_id: str = Depends(get_tenant_id),
    actor_id: Optional[str] = Depends(get_actor_id),
    db: AsyncSession = Depends(get_async_db),
):
    """Award this year's birthday bonus (once per calendar year)."""
    result = await award_birthday_bonus(
        db, tenant_id=tenant_id, customer_id=customer_id, created_by=actor_id
    )
    return LedgerResultResponse.model_validate(result)


@router.post(
    "/customers/{customer_id}/visits",
    response_model=VisitResultResponse,
    status_code=status.HTTP_201_CREATED,
)
async def visit(
    customer_id: str,
    body: RecordVisitRequest,
    tenant_id: str = Depends(get_tenant_id),
    actor_id: Optional[str] = Depends(get_actor_id),
    db: AsyncSession = Depends(get_async_db),
):
    """Record a completed visit: spend aggregates, redemption and earned points."""
    result = await record_visit(
        db,
        tenant_id=tenant_id,
        customer_id=customer_id,
        total_amount=body.total_amount,
        discount_amount=body.discount_amount,
        points_redeemed=body.points_redeemed,
        visit_id=body.visit_id,
        order_reference=body.order_reference,
        created_by=actor_id,
    )
    return VisitResultResponse.model_validate(result)


@router.get("/transactions", response_model=TransactionListResponse)
async def list_transactions(
    customer_id: Optional[str] = None,
    transaction_type: Optional[list[LoyaltyTransactionType]] = Query(default=None),
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    tenant_id: str = Depends(get_tenant_id),
    db: AsyncSession = Depends(get_async_db),
):
    page_result = await get_loyalty_transactions(
        db,
        tenant_id=tenant_id,
        customer_id=customer_id,
        transaction_types=transaction_type,
        start_date=start_date,
        end_date=end_date,
        page=page,
        limit=limit,
    )
    return TransactionListResponse.model_validate(page_result)


@router.get("/statistics", response_model=LoyaltyStatisticsResponse)
async def statistics(
    tenant_id: str = Depends(get_tenant_id),
    db: AsyncSession = Depends(get_async_db),
):
    stats = await get_loyalty_statistics(db, tenant_id=tenant_id)
    return LoyaltyStatisticsResponse.model_validate(stats)


@router.get("/tiers/{tier}/benefits", response_model=TierBenefitsResponse)
async def tier_benefits(tier: LoyaltyTier):
    return TierBenefitsResponse.model_validate(get_tier_benefits(tier))


@router.post("/expire", response_model=ExpiryReportResponse)
async def run_expiry(
    days_to_expire: Optional[int] = Query(default=None, ge=1),
    tenant_id: str = Depends(get_tenant_id),
    db: AsyncSession = Depends(get_async_db),
):
    """Run point expiry for the calling tenant now (normally a nightly job)."""
    report = await expire_old_points(
        db, tenant_id=tenant_id, days_to_expire=days_to_expire
    )
    return ExpiryReportResponse.model_validate(report)
