"""Unit tests for point expiry and period counter resets."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from services.loyalty_service.models import (
    CustomerLoyalty,
    LoyaltyTransaction,
    LoyaltyTransactionType,
    PointLot,
)
from services.loyalty_service.services.expiry import (
    expire_old_points,
    list_tenants_with_loyalty,
    reset_period_counters,
)
from services.loyalty_service.services.ledger_ops import (
    add_points,
    adjust_points,
    record_visit,
    redeem_points,
)
from services.loyalty_service.tasks import expire_points_for_all_tenants, reset_counters
from sqlalchemy import select
from tests.factories import TENANT_ID, CustomerLoyaltyFactory, persist

NOW = datetime(2026, 10, 19, 2, 0, tzinfo=timezone.utc)


async def _reload(db, customer_id):
    result = await db.execute(
        select(CustomerLoyalty)
        .where(CustomerLoyalty.customer_id == customer_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one()


async def _seed_old_and_new_points(db, customer_id):
    """150 points earned 400 days ago, then 100 recent points, then 50 spent."""
    await record_visit(
        db,
        tenant_id=TENANT_ID,
        customer_id=customer_id,
        total_amount=Decimal("150000"),
        now=NOW - timedelta(days=400),
    )
    await add_points(
        db,
        tenant_id=TENANT_ID,
        customer_id=customer_id,
        points=100,
        transaction_type=LoyaltyTransactionType.EARNED_BONUS,
        description="Recent bonus",
    )
    await redeem_points(
        db, tenant_id=TENANT_ID, customer_id=customer_id, points=50, description="Spend"
    )


@pytest.mark.asyncio
@pytest.mark.unit
async def test_expiry_removes_only_old_unspent_points(db_session):
    loyalty = await persist(db_session, CustomerLoyaltyFactory.create())
    await _seed_old_and_new_points(db_session, loyalty.customer_id)

    report = await expire_old_points(
        db_session, tenant_id=TENANT_ID, days_to_expire=365, now=NOW
    )

    assert report.customers_processed == 1
    assert report.customers_expired == 1
    assert report.points_expired == 100
    assert report.failures == 0

    refreshed = await _reload(db_session, loyalty.customer_id)
    assert refreshed.current_points == 100
    assert refreshed.points_expired == 100
    assert refreshed.current_points == (
        refreshed.points_earned - refreshed.points_redeemed - refreshed.points_expired
    )

    entry = (
        await db_session.execute(
            select(LoyaltyTransaction).where(
                LoyaltyTransaction.transaction_type == LoyaltyTransactionType.EXPIRED
            )
        )
    ).scalar_one()
    assert entry.points_change == -100
    assert entry.balance_after == 100

    lots = list(
        (
            await db_session.execute(
                select(PointLot).order_by(PointLot.earned_at, PointLot.id)
            )
        ).scalars()
    )
    assert lots[0].points_remaining == 0
    assert lots[0].expired_at is not None
    assert lots[1].points_remaining == 100


@pytest.mark.asyncio
@pytest.mark.unit
async def test_expiry_is_idempotent(db_session):
    loyalty = await persist(db_session, CustomerLoyaltyFactory.create())
    await _seed_old_and_new_points(db_session, loyalty.customer_id)

    await expire_old_points(db_session, tenant_id=TENANT_ID, days_to_expire=365, now=NOW)
    second = await expire_old_points(
        db_session, tenant_id=TENANT_ID, days_to_expire=365, now=NOW
    )

    assert second.customers_processed == 0
    assert second.points_expired == 0


@pytest.mark.asyncio
@pytest.mark.unit
async def test_expiry_skips_manual_adjustments(db_session):
    loyalty = await persist(db_session, CustomerLoyaltyFactory.create())
    await adjust_points(
        db_session,
        tenant_id=TENANT_ID,
        customer_id=loyalty.customer_id,
        delta=500,
        reason="Migration from old system",
    )

    report = await expire_old_points(
        db_session,
        tenant_id=TENANT_ID,
        days_to_expire=1,
        now=datetime.now(timezone.utc) + timedelta(days=30),
    )

    assert report.points_expired == 0
    refreshed = await _reload(db_session, loyalty.customer_id)
    assert refreshed.current_points == 500


@pytest.mark.asyncio
@pytest.mark.unit
async def test_expire_points_for_all_tenants(session_factory, db_session):
    for tenant in ("tenant-a", "tenant-b"):
        loyalty = await persist(db_session, CustomerLoyaltyFactory.create(tenant_id=tenant))
        await record_visit(
            db_session,
            tenant_id=tenant,
            customer_id=loyalty.customer_id,
            total_amount=Decimal("20000"),
            now=NOW - timedelta(days=500),
        )

    assert await list_tenants_with_loyalty(db_session) == ["tenant-a", "tenant-b"]

    reports = await expire_points_for_all_tenants(factory=session_factory, now=NOW)

    assert sorted(r.tenant_id for r in reports) == ["tenant-a", "tenant-b"]
    assert all(r.points_expired == 20 for r in reports)


# ---------------------------------------------------------------------------
# Period counters
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.unit
async def test_reset_period_counters(db_session):
    stale_month = await persist(
        db_session,
        CustomerLoyaltyFactory.create(
            current_month_spent=Decimal("40000"),
            current_year_spent=Decimal("300000"),
            visits_this_month=3,
            counters_reset_at=datetime(2026, 9, 1, tzinfo=timezone.utc),
        ),
    )
    stale_year = await persist(
        db_session,
        CustomerLoyaltyFactory.create(
            current_month_spent=Decimal("10000"),
            current_year_spent=Decimal("900000"),
            visits_this_month=1,
            counters_reset_at=datetime(2025, 12, 1, tzinfo=timezone.utc),
        ),
    )
    fresh = await persist(
        db_session,
        CustomerLoyaltyFactory.create(
            current_month_spent=Decimal("5000"),
            visits_this_month=2,
            counters_reset_at=datetime(2026, 10, 1, 0, 5, tzinfo=timezone.utc),
        ),
    )

    counts = await reset_period_counters(db_session, now=NOW)

    assert counts == {"yearly_reset": 1, "monthly_reset": 1}

    month_row = await _reload(db_session, stale_month.customer_id)
    assert month_row.visits_this_month == 0
    assert month_row.current_month_spent == Decimal("0")
    assert month_row.current_year_spent == Decimal("300000")

    year_row = await _reload(db_session, stale_year.customer_id)
    assert year_row.current_year_spent == Decimal("0")
    assert year_row.visits_this_month == 0

    fresh_row = await _reload(db_session, fresh.customer_id)
    assert fresh_row.visits_this_month == 2


@pytest.mark.asyncio
@pytest.mark.unit
async def test_reset_counters_twice_is_harmless(session_factory, db_session):
    await persist(
        db_session,
        CustomerLoyaltyFactory.create(
            visits_this_month=3,
            counters_reset_at=datetime(2026, 8, 15, tzinfo=timezone.utc),
        ),
    )

    first = await reset_counters(factory=session_factory, now=NOW)
    second = await reset_counters(factory=session_factory, now=NOW)

    assert first == {"yearly_reset": 0, "monthly_reset": 1}
    assert second == {"yearly_reset": 0, "monthly_reset": 0}
