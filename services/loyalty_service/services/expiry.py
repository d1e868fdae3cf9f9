"""Batch maintenance of loyalty accounts: point expiry and period counters."""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from libs.common.config import get_settings
from libs.common.currency import ZERO
from libs.common.datetime_utils import month_start, utc_now, year_start
from libs.common.logging import get_logger
from libs.db.transactions import run_in_transaction
from services.loyalty_service.models import (
    CustomerLoyalty,
    LoyaltyTransactionType,
    PointLot,
)
from services.loyalty_service.services.ledger_ops import (
    append_ledger_entry,
    lock_loyalty,
)
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)


@dataclass
class ExpiryReport:
    tenant_id: str
    cutoff: datetime
    customers_processed: int = 0
    customers_expired: int = 0
    points_expired: int = 0
    failures: int = 0


def _expirable_lots(tenant_id: str, cutoff: datetime):
    return select(PointLot).where(
        PointLot.tenant_id == tenant_id,
        PointLot.expires.is_(True),
        PointLot.points_remaining > 0,
        PointLot.earned_at < cutoff,
    )


async def _expire_customer(
    db: AsyncSession, *, tenant_id: str, customer_id: str, cutoff: datetime, now: datetime
) -> int:
    async def unit() -> int:
        loyalty = await lock_loyalty(db, tenant_id=tenant_id, customer_id=customer_id)
        result = await db.execute(
            _expirable_lots(tenant_id, cutoff)
            .where(PointLot.customer_id == customer_id)
            .order_by(PointLot.earned_at, PointLot.id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        lots = list(result.scalars())

        to_expire = min(sum(lot.points_remaining for lot in lots), loyalty.current_points)
        if to_expire <= 0:
            return 0

        left = to_expire
        for lot in lots:
            if left <= 0:
                break
            take = min(lot.points_remaining, left)
            lot.points_remaining -= take
            left -= take
            if lot.points_remaining == 0:
                lot.expired_at = now

        loyalty.current_points -= to_expire
        loyalty.points_expired += to_expire
        append_ledger_entry(
            db,
            loyalty,
            transaction_type=LoyaltyTransactionType.EXPIRED,
            points_change=-to_expire,
            description=f"{to_expire} points earned before {cutoff:%Y-%m-%d} expired",
            at=now,
        )
        return to_expire

    return await run_in_transaction(db, unit, label="expire_points")


async def expire_old_points(
    db: AsyncSession,
    *,
    tenant_id: str,
    days_to_expire: Optional[int] = None,
    now: Optional[datetime] = None,
) -> ExpiryReport:
    """Expire unconsumed earned points older than ``days_to_expire``.

    Only the still-unspent remainder of expiring lots is removed, never more
    than the current balance, with one EXPIRED ledger row per customer. A
    failing customer is logged and counted; the batch carries on.
    """
    days = days_to_expire
    if days is None:
        days = get_settings().LOYALTY_POINTS_EXPIRY_DAYS
    now = now or utc_now()
    cutoff = now - timedelta(days=days)
    report = ExpiryReport(tenant_id=tenant_id, cutoff=cutoff)

    result = await db.execute(
        _expirable_lots(tenant_id, cutoff)
        .with_only_columns(PointLot.customer_id)
        .distinct()
        .order_by(PointLot.customer_id)
    )
    customer_ids = list(result.scalars())
    await db.commit()

    for customer_id in customer_ids:
        report.customers_processed += 1
        try:
            expired = await _expire_customer(
                db, tenant_id=tenant_id, customer_id=customer_id, cutoff=cutoff, now=now
            )
        except Exception:
            report.failures += 1
            logger.exception("Point expiry failed for customer %s", customer_id)
            continue
        if expired:
            report.customers_expired += 1
            report.points_expired += expired

    logger.info(
        "Point expiry for tenant %s (cutoff %s): processed=%d expired=%d points=%d failures=%d",
        tenant_id,
        cutoff.isoformat(),
        report.customers_processed,
        report.customers_expired,
        report.points_expired,
        report.failures,
    )
    return report


async def list_tenants_with_loyalty(db: AsyncSession) -> list[str]:
    result = await db.execute(
        select(CustomerLoyalty.tenant_id).distinct().order_by(CustomerLoyalty.tenant_id)
    )
    tenants = list(result.scalars())
    await db.commit()
    return tenants


async def reset_period_counters(
    db: AsyncSession, *, now: Optional[datetime] = None
) -> dict[str, int]:
    """Zero monthly counters once a month rolls, and yearly spend once a year
    rolls. Rows already reset in the current period are left alone, so
    running twice is harmless."""
    now = now or utc_now()
    month_begin = month_start(now)
    year_begin = year_start(now)

    async def unit() -> dict[str, int]:
        yearly = await db.execute(
            update(CustomerLoyalty)
            .where(CustomerLoyalty.counters_reset_at < year_begin)
            .values(
                current_year_spent=ZERO,
                current_month_spent=ZERO,
                visits_this_month=0,
                counters_reset_at=now,
                version=CustomerLoyalty.version + 1,
            )
            .execution_options(synchronize_session=False)
        )
        monthly = await db.execute(
            update(CustomerLoyalty)
            .where(CustomerLoyalty.counters_reset_at < month_begin)
            .values(
                current_month_spent=ZERO,
                visits_this_month=0,
                counters_reset_at=now,
                version=CustomerLoyalty.version + 1,
            )
            .execution_options(synchronize_session=False)
        )
        return {"yearly_reset": yearly.rowcount, "monthly_reset": monthly.rowcount}

    counts = await run_in_transaction(db, unit, label="reset_period_counters")
    logger.info(
        "Period counters reset: yearly=%d monthly=%d",
        counts["yearly_reset"],
        counts["monthly_reset"],
    )
    return counts
