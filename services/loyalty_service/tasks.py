"""Background jobs for the loyalty service."""

from datetime import datetime
from typing import Optional

from libs.common.logging import get_logger
from libs.db.config import AsyncSessionLocal
from libs.db.session import session_scope
from services.loyalty_service.services.expiry import (
    ExpiryReport,
    expire_old_points,
    list_tenants_with_loyalty,
    reset_period_counters,
)
from services.loyalty_service.services.tier_dispatch import recompute_customer_tier
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

logger = get_logger(__name__)


async def recompute_tier(
    tenant_id: str,
    customer_id: str,
    factory: async_sessionmaker[AsyncSession] = AsyncSessionLocal,
) -> None:
    async with session_scope(factory) as db:
        await recompute_customer_tier(db, tenant_id=tenant_id, customer_id=customer_id)


async def expire_points_for_all_tenants(
    factory: async_sessionmaker[AsyncSession] = AsyncSessionLocal,
    now: Optional[datetime] = None,
) -> list[ExpiryReport]:
    """Run point expiry tenant by tenant; a failing tenant does not stop the rest."""
    reports = []
    async with session_scope(factory) as db:
        tenants = await list_tenants_with_loyalty(db)
        for tenant_id in tenants:
            try:
                reports.append(await expire_old_points(db, tenant_id=tenant_id, now=now))
            except Exception:
                logger.exception("Point expiry failed for tenant %s", tenant_id)

    logger.info(
        "Point expiry finished for %d tenants, %d points expired",
        len(reports),
        sum(report.points_expired for report in reports),
    )
    return reports


async def reset_counters(
    factory: async_sessionmaker[AsyncSession] = AsyncSessionLocal,
    now: Optional[datetime] = None,
) -> dict[str, int]:
    async with session_scope(factory) as db:
        return await reset_period_counters(db, now=now)
