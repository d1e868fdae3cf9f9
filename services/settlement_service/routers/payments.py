"""Settlement endpoints: payments, refunds and payment reporting."""

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from libs.common.datetime_utils import local_date
from libs.common.logging import get_logger
from libs.common.tenancy import get_actor_id, get_tenant_id
from libs.db.session import get_async_db
from services.settlement_service.models import PaymentMethod, PaymentStatus
from services.settlement_service.schemas import (
    DailySalesSummaryResponse,
    PaymentListResponse,
    PaymentResponse,
    PaymentResultResponse,
    ProcessPaymentRequest,
    RefundRequest,
)
from services.settlement_service.services.gateway import GatewayAdapter, get_gateway
from services.settlement_service.services.reporting import (
    PaymentFilters,
    get_daily_sales_summary,
    get_payments,
)
from services.settlement_service.services.settlement_ops import (
    process_payment,
    process_refund,
)
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)
router = APIRouter(prefix="/payments", tags=["payments"])


@router.post(
    "", response_model=PaymentResultResponse, status_code=status.HTTP_201_CREATED
)
async def create_payment(
    body: ProcessPaymentRequest,
    tenant_id: str = Depends(get_tenant_id),
    actor_id: Optional[str] = Depends(get_actor_id),
    gateway: GatewayAdapter = Depends(get_gateway),
    db: AsyncSession = Depends(get_async_db),
):
    """Settle a single, split or points payment against an order."""
    result = await process_payment(
        db,
        tenant_id=tenant_id,
        order_id=body.order_id,
        amount=body.amount,
        method=body.method,
        details=body.details,
        processed_by=actor_id,
        gateway=gateway,
    )
    return PaymentResultResponse.model_validate(result)


@router.post(
    "/{payment_id}/refund",
    response_model=PaymentResponse,
    status_code=status.HTTP_201_CREATED,
)
async def refund_payment(
    payment_id: uuid.UUID,
    body: RefundRequest,
    tenant_id: str = Depends(get_tenant_id),
    actor_id: Optional[str] = Depends(get_actor_id),
    db: AsyncSession = Depends(get_async_db),
):
    """Refund part or all of a paid payment."""
    refund = await process_refund(
        db,
        tenant_id=tenant_id,
        payment_id=payment_id,
        refund_amount=body.refund_amount,
        reason=body.reason,
        refund_method=body.refund_method,
        processed_by=actor_id,
    )
    return PaymentResponse.model_validate(refund)


@router.get("", response_model=PaymentListResponse)
async def list_payments(
    order_id: Optional[uuid.UUID] = None,
    method: Optional[list[PaymentMethod]] = Query(default=None),
    payment_status: Optional[list[PaymentStatus]] = Query(default=None, alias="status"),
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    min_amount: Optional[Decimal] = None,
    max_amount: Optional[Decimal] = None,
    search: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    sort_by: str = "created_at",
    sort_order: str = Query("desc", pattern="^(asc|desc)$"),
    tenant_id: str = Depends(get_tenant_id),
    db: AsyncSession = Depends(get_async_db),
):
    """List payments with filters, pagination and a paid-rows summary."""
    page_result = await get_payments(
        db,
        tenant_id=tenant_id,
        filters=PaymentFilters(
            order_id=order_id,
            methods=method,
            statuses=payment_status,
            start_date=start_date,
            end_date=end_date,
            min_amount=min_amount,
            max_amount=max_amount,
            search=search,
        ),
        page=page,
        limit=limit,
        sort_by=sort_by,
        sort_order=sort_order,
    )
    return PaymentListResponse.model_validate(page_result)


@router.get("/daily-summary", response_model=DailySalesSummaryResponse)
async def daily_summary(
    day: Optional[date] = Query(default=None, alias="date"),
    tenant_id: str = Depends(get_tenant_id),
    db: AsyncSession = Depends(get_async_db),
):
    """Sales totals for one day (defaults to today in the business timezone)."""
    summary = await get_daily_sales_summary(
        db, tenant_id=tenant_id, day=day or local_date()
    )
    return DailySalesSummaryResponse.model_validate(summary)
