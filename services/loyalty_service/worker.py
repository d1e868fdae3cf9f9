"""ARQ worker for loyalty maintenance: tier recompute, point expiry, period counters."""

from arq import cron
from libs.common.arq_config import get_redis_settings
from libs.common.logging import get_logger

logger = get_logger(__name__)


async def task_recompute_tier(ctx: dict, tenant_id: str, customer_id: str):
    from services.loyalty_service.tasks import recompute_tier

    logger.info("Running: recompute_tier for customer %s", customer_id)
    await recompute_tier(tenant_id, customer_id)


async def task_expire_points(ctx: dict):
    from services.loyalty_service.tasks import expire_points_for_all_tenants

    logger.info("Running: expire_points_for_all_tenants")
    await expire_points_for_all_tenants()


async def task_reset_period_counters(ctx: dict):
    from services.loyalty_service.tasks import reset_counters

    logger.info("Running: reset_period_counters")
    await reset_counters()


class WorkerSettings:
    redis_settings = get_redis_settings()

    functions = [
        task_recompute_tier,
        task_expire_points,
        task_reset_period_counters,
    ]

    cron_jobs = [
        cron(task_expire_points, hour={2}, minute={0}),
        cron(task_reset_period_counters, hour={0}, minute={5}, run_at_startup=True),
    ]
