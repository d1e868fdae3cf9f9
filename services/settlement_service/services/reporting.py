"""Read-only reporting over payment records."""

import math
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Iterable, Optional, Protocol

from libs.common.currency import MONEY_QUANTUM, ZERO, to_money
from libs.common.datetime_utils import day_bounds
from libs.common.errors import AppError
from services.settlement_service.models import (
    PaymentMethod,
    PaymentRecord,
    PaymentStatus,
)
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

SORTABLE_FIELDS = {
    "created_at": PaymentRecord.created_at,
    "processed_at": PaymentRecord.processed_at,
    "amount": PaymentRecord.amount,
    "payment_number": PaymentRecord.payment_number,
}

MAX_PAGE_SIZE = 100


@dataclass
class PaymentFilters:
    order_id: Optional[uuid.UUID] = None
    methods: Optional[list[PaymentMethod]] = None
    statuses: Optional[list[PaymentStatus]] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    min_amount: Optional[Decimal] = None
    max_amount: Optional[Decimal] = None
    search: Optional[str] = None


@dataclass
class PaymentSummary:
    total_amount: Decimal
    count: int
    average_amount: Decimal


@dataclass
class PaymentPage:
    payments: list[PaymentRecord]
    total: int
    page: int
    limit: int
    total_pages: int
    summary: PaymentSummary


def _average(total: Decimal, count: int) -> Decimal:
    if not count:
        return ZERO
    return to_money(total / count)


def _filter_conditions(tenant_id: str, filters: PaymentFilters) -> list:
    conditions = [PaymentRecord.tenant_id == tenant_id]
    if filters.order_id:
        conditions.append(PaymentRecord.order_id == filters.order_id)
    if filters.methods:
        conditions.append(PaymentRecord.payment_method.in_(filters.methods))
    if filters.statuses:
        conditions.append(PaymentRecord.payment_status.in_(filters.statuses))
    if filters.start_date:
        conditions.append(PaymentRecord.created_at >= filters.start_date)
    if filters.end_date:
        conditions.append(PaymentRecord.created_at <= filters.end_date)
    if filters.min_amount is not None:
        conditions.append(PaymentRecord.amount >= filters.min_amount)
    if filters.max_amount is not None:
        conditions.append(PaymentRecord.amount <= filters.max_amount)
    if filters.search:
        pattern = f"%{filters.search.strip()}%"
        conditions.append(
            or_(
                PaymentRecord.payment_number.ilike(pattern),
                PaymentRecord.reference_number.ilike(pattern),
                PaymentRecord.transaction_id.ilike(pattern),
            )
        )
    return conditions


async def get_payments(
    db: AsyncSession,
    *,
    tenant_id: str,
    filters: Optional[PaymentFilters] = None,
    page: int = 1,
    limit: int = 20,
    sort_by: str = "created_at",
    sort_order: str = "desc",
) -> PaymentPage:
    """Filtered, paginated payment listing with a summary of the paid rows."""
    if page < 1 or not 1 <= limit <= MAX_PAGE_SIZE:
        raise AppError.validation(
            f"page must be >= 1 and limit between 1 and {MAX_PAGE_SIZE}"
        )
    sort_column = SORTABLE_FIELDS.get(sort_by)
    if sort_column is None:
        raise AppError.validation(
            "Unsupported sort field", sort_by=sort_by, allowed=sorted(SORTABLE_FIELDS)
        )
    if sort_order not in ("asc", "desc"):
        raise AppError.validation("sort_order must be 'asc' or 'desc'")

    conditions = _filter_conditions(tenant_id, filters or PaymentFilters())

    total = (
        await db.execute(select(func.count(PaymentRecord.id)).where(*conditions))
    ).scalar_one()

    ordering = sort_column.asc() if sort_order == "asc" else sort_column.desc()
    result = await db.execute(
        select(PaymentRecord)
        .where(*conditions)
        .order_by(ordering, PaymentRecord.id)
        .offset((page - 1) * limit)
        .limit(limit)
    )
    payments = list(result.scalars())

    summary_row = (
        await db.execute(
            select(func.sum(PaymentRecord.amount), func.count(PaymentRecord.id)).where(
                *conditions,
                PaymentRecord.payment_status == PaymentStatus.PAID,
                PaymentRecord.amount > 0,
            )
        )
    ).one()
    paid_total = to_money(summary_row[0] or ZERO)
    paid_count = summary_row[1]

    return PaymentPage(
        payments=payments,
        total=total,
        page=page,
        limit=limit,
        total_pages=math.ceil(total / limit) if total else 0,
        summary=PaymentSummary(
            total_amount=paid_total,
            count=paid_count,
            average_amount=_average(paid_total, paid_count),
        ),
    )


@dataclass
class DailySalesSummary:
    date: date
    total_sales: Decimal
    total_transactions: int
    payment_breakdown: dict[str, Decimal]
    refunds_amount: Decimal
    net_sales: Decimal
    average_transaction: Decimal
    status_breakdown: dict[str, int]


async def get_daily_sales_summary(
    db: AsyncSession, *, tenant_id: str, day: date
) -> DailySalesSummary:
    """Sales for one local calendar day.

    A sale is a positive, settled row (PAID, or PAID then refunded); refunds
    are the negative rows and are reported separately.
    """
    start, end = day_bounds(day)
    result = await db.execute(
        select(
            PaymentRecord.payment_method,
            PaymentRecord.payment_status,
            PaymentRecord.amount,
        ).where(
            PaymentRecord.tenant_id == tenant_id,
            PaymentRecord.created_at >= start,
            PaymentRecord.created_at < end,
        )
    )

    breakdown = {method.value: ZERO for method in PaymentMethod}
    statuses = {status.value: 0 for status in PaymentStatus}
    total_sales = ZERO
    refunds = ZERO
    transactions = 0

    for method, status, amount in result.all():
        statuses[status.value] += 1
        amount = to_money(amount)
        if amount > 0 and status in (PaymentStatus.PAID, PaymentStatus.REFUNDED):
            breakdown[method.value] += amount
            total_sales += amount
            transactions += 1
        elif amount < 0 and status == PaymentStatus.REFUNDED:
            refunds += -amount

    return DailySalesSummary(
        date=day,
        total_sales=total_sales,
        total_transactions=transactions,
        payment_breakdown=breakdown,
        refunds_amount=refunds,
        net_sales=total_sales - refunds,
        average_transaction=_average(total_sales, transactions),
        status_breakdown=statuses,
    )


# ---------------------------------------------------------------------------
# Margin (informational)
# ---------------------------------------------------------------------------


class CostLookup(Protocol):
    """Cost-per-unit source, typically backed by recipe/inventory costing."""

    async def unit_cost(self, item_id: str) -> Optional[Decimal]: ...


@dataclass
class MarginInfo:
    revenue: Decimal
    cost: Decimal
    margin: Decimal
    margin_percentage: Decimal
    missing_costs: list[str] = field(default_factory=list)


async def compute_margin(
    revenue: Decimal,
    lines: Iterable[tuple[str, int]],
    cost_lookup: CostLookup,
) -> MarginInfo:
    """Gross margin of ``revenue`` against the unit costs of ``(item_id, quantity)`` lines.

    Items the lookup cannot price are costed at zero and listed in
    ``missing_costs``.

    Order lines and item costs live in the host's menu/inventory system, not
    here, so no route calls this; hosts pass their own ``CostLookup`` when
    they build order margin fields.
    """
    revenue = to_money(revenue)
    cost = ZERO
    missing = []
    for item_id, quantity in lines:
        unit_cost = await cost_lookup.unit_cost(item_id)
        if unit_cost is None:
            missing.append(item_id)
            continue
        cost += to_money(unit_cost) * quantity

    margin = revenue - cost
    percentage = (
        (margin / revenue * 100).quantize(MONEY_QUANTUM) if revenue > 0 else ZERO
    )
    return MarginInfo(
        revenue=revenue,
        cost=cost,
        margin=margin,
        margin_percentage=percentage,
        missing_costs=missing,
    )
