"""Tier recomputation and its fire-and-forget dispatch.

The tier is a cached projection of the spend/visit aggregates, so recompute is
idempotent and can be delivered more than once. After a ledger mutation
commits, ``schedule_tier_recompute`` hands the work to the backend selected by
``TIER_RECOMPUTE_BACKEND``:

- ``task``: an asyncio task on the current loop with its own session
- ``arq``: a ``task_recompute_tier`` job on the Redis queue
- ``disabled``: nothing (tests, maintenance)

Failures are logged and never reach the caller.
"""

import asyncio
from typing import Optional

from libs.common.arq_config import get_arq_pool
from libs.common.config import get_settings
from libs.common.datetime_utils import utc_now
from libs.common.logging import get_logger
from libs.db.session import session_scope, sibling_session_factory
from libs.db.transactions import run_in_transaction
from services.loyalty_service.models import CustomerLoyalty, LoyaltyTier
from services.loyalty_service.services.tier_policy import determine_tier
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

logger = get_logger(__name__)

RECOMPUTE_JOB_NAME = "task_recompute_tier"

_background_tasks: set[asyncio.Task] = set()


async def recompute_customer_tier(
    db: AsyncSession, *, tenant_id: str, customer_id: str
) -> Optional[LoyaltyTier]:
    """Write the tier implied by the current aggregates.

    Returns the new tier when it changed, ``None`` otherwise (including when
    the customer has no loyalty record).
    """

    async def unit() -> Optional[LoyaltyTier]:
        result = await db.execute(
            select(CustomerLoyalty)
            .where(
                CustomerLoyalty.tenant_id == tenant_id,
                CustomerLoyalty.customer_id == customer_id,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        loyalty = result.scalar_one_or_none()
        if loyalty is None:
            return None

        tier = determine_tier(
            loyalty.lifetime_spent, loyalty.total_visits, loyalty.current_year_spent
        )
        if tier == loyalty.tier_level:
            return None

        previous = loyalty.tier_level
        loyalty.tier_level = tier
        loyalty.tier_updated_at = utc_now()
        logger.info(
            "Tier for customer %s changed %s -> %s",
            customer_id,
            previous.value,
            tier.value,
        )
        return tier

    return await run_in_transaction(db, unit, label="recompute_customer_tier")


async def _recompute_in_background(
    factory: async_sessionmaker[AsyncSession], tenant_id: str, customer_id: str
) -> None:
    try:
        async with session_scope(factory) as session:
            await recompute_customer_tier(
                session, tenant_id=tenant_id, customer_id=customer_id
            )
    except Exception:
        logger.exception("Background tier recompute failed for customer %s", customer_id)


async def schedule_tier_recompute(
    db: AsyncSession, *, tenant_id: str, customer_id: str
) -> None:
    backend = get_settings().TIER_RECOMPUTE_BACKEND
    if backend == "disabled":
        return

    if backend == "arq":
        try:
            pool = await get_arq_pool()
            await pool.enqueue_job(RECOMPUTE_JOB_NAME, tenant_id, customer_id)
        except Exception:
            logger.exception(
                "Could not enqueue tier recompute for customer %s", customer_id
            )
        return

    task = asyncio.create_task(
        _recompute_in_background(sibling_session_factory(db), tenant_id, customer_id)
    )
    _background_tasks.add(task)
    task.add_done_callback(_background_tasks.discard)


async def drain_background_tasks() -> None:
    """Wait for in-flight recompute tasks (shutdown hooks and tests)."""
    while _background_tasks:
        await asyncio.gather(*list(_background_tasks), return_exceptions=True)
