"""Unit tests for the loyalty ledger operations.

Tests call ledger_ops functions directly with the db_session fixture.
"""

import asyncio
from datetime import datetime, timezone
from decimal import Decimal

import pytest
from libs.common.errors import AppError, ErrorCode
from services.loyalty_service.models import (
    LoyaltyTier,
    LoyaltyTransaction,
    LoyaltyTransactionType,
    PointLot,
)
from services.loyalty_service.services import ledger_ops
from services.loyalty_service.services.ledger_ops import (
    add_points,
    adjust_points,
    apply_redemption,
    award_birthday_bonus,
    record_visit,
    redeem_points,
    roll_period_counters,
)
from sqlalchemy import select
from tests.factories import TENANT_ID, CustomerLoyaltyFactory, persist

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


async def _make_loyalty(db, **overrides):
    return await persist(db, CustomerLoyaltyFactory.create(**overrides))


async def _ledger(db, customer_id):
    result = await db.execute(
        select(LoyaltyTransaction)
        .where(
            LoyaltyTransaction.tenant_id == TENANT_ID,
            LoyaltyTransaction.customer_id == customer_id,
        )
        .order_by(LoyaltyTransaction.sequence)
    )
    return list(result.scalars())


async def _lots(db, customer_id):
    result = await db.execute(
        select(PointLot)
        .where(PointLot.customer_id == customer_id)
        .order_by(PointLot.earned_at, PointLot.id)
    )
    return list(result.scalars())


def _assert_counters_consistent(loyalty):
    assert loyalty.current_points == (
        loyalty.points_earned - loyalty.points_redeemed - loyalty.points_expired
    )
    assert loyalty.current_points >= 0


# ---------------------------------------------------------------------------
# add_points
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.unit
async def test_add_points_credits_and_appends_ledger(db_session):
    loyalty = await _make_loyalty(db_session)

    result = await add_points(
        db_session,
        tenant_id=TENANT_ID,
        customer_id=loyalty.customer_id,
        points=250,
        transaction_type=LoyaltyTransactionType.EARNED_BONUS,
        description="Welcome bonus",
        campaign_id="welcome-2026",
    )

    assert result.loyalty.current_points == 250
    assert result.loyalty.points_earned == 250
    assert result.transaction.points_change == 250
    assert result.transaction.balance_after == 250
    assert result.transaction.sequence == 1
    assert result.transaction.campaign_id == "welcome-2026"

    lots = await _lots(db_session, loyalty.customer_id)
    assert len(lots) == 1
    assert lots[0].points_remaining == 250
    assert lots[0].expires is True
    assert lots[0].source_transaction_id == result.transaction.id


@pytest.mark.asyncio
@pytest.mark.unit
async def test_add_points_rejects_non_positive(db_session):
    loyalty = await _make_loyalty(db_session)

    with pytest.raises(AppError) as exc_info:
        await add_points(
            db_session,
            tenant_id=TENANT_ID,
            customer_id=loyalty.customer_id,
            points=0,
            transaction_type=LoyaltyTransactionType.EARNED_BONUS,
            description="Nothing",
        )

    assert exc_info.value.code == ErrorCode.VALIDATION_ERROR
    assert await _ledger(db_session, loyalty.customer_id) == []


@pytest.mark.asyncio
@pytest.mark.unit
async def test_add_points_rejects_debit_type(db_session):
    loyalty = await _make_loyalty(db_session)

    with pytest.raises(AppError) as exc_info:
        await add_points(
            db_session,
            tenant_id=TENANT_ID,
            customer_id=loyalty.customer_id,
            points=10,
            transaction_type=LoyaltyTransactionType.REDEEMED_DISCOUNT,
            description="Wrong type",
        )

    assert exc_info.value.code == ErrorCode.VALIDATION_ERROR


@pytest.mark.asyncio
@pytest.mark.unit
async def test_add_points_unknown_customer(db_session):
    with pytest.raises(AppError) as exc_info:
        await add_points(
            db_session,
            tenant_id=TENANT_ID,
            customer_id="nobody",
            points=10,
            transaction_type=LoyaltyTransactionType.EARNED_BONUS,
            description="Ghost",
        )

    assert exc_info.value.code == ErrorCode.CUSTOMER_NOT_FOUND


@pytest.mark.asyncio
@pytest.mark.unit
async def test_customers_are_isolated_per_tenant(db_session):
    loyalty = await _make_loyalty(db_session, customer_id="shared-id")

    with pytest.raises(AppError) as exc_info:
        await add_points(
            db_session,
            tenant_id="other-tenant",
            customer_id=loyalty.customer_id,
            points=10,
            transaction_type=LoyaltyTransactionType.EARNED_BONUS,
            description="Cross tenant",
        )

    assert exc_info.value.code == ErrorCode.CUSTOMER_NOT_FOUND


# ---------------------------------------------------------------------------
# redeem_points
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.unit
async def test_redeem_points_debits_balance(db_session):
    loyalty = await _make_loyalty(db_session)
    await add_points(
        db_session,
        tenant_id=TENANT_ID,
        customer_id=loyalty.customer_id,
        points=300,
        transaction_type=LoyaltyTransactionType.EARNED_BONUS,
        description="Seed",
    )

    result = await redeem_points(
        db_session,
        tenant_id=TENANT_ID,
        customer_id=loyalty.customer_id,
        points=120,
        description="Free coffee",
        order_reference="ORD-1",
    )

    assert result.loyalty.current_points == 180
    assert result.loyalty.points_redeemed == 120
    assert result.transaction.transaction_type == LoyaltyTransactionType.REDEEMED_DISCOUNT
    assert result.transaction.points_change == -120
    assert result.transaction.balance_after == 180
    assert result.transaction.order_reference == "ORD-1"
    _assert_counters_consistent(result.loyalty)


@pytest.mark.asyncio
@pytest.mark.unit
async def test_redeem_points_insufficient_balance(db_session):
    loyalty = await _make_loyalty(db_session)
    await add_points(
        db_session,
        tenant_id=TENANT_ID,
        customer_id=loyalty.customer_id,
        points=50,
        transaction_type=LoyaltyTransactionType.EARNED_BONUS,
        description="Seed",
    )

    with pytest.raises(AppError) as exc_info:
        await redeem_points(
            db_session,
            tenant_id=TENANT_ID,
            customer_id=loyalty.customer_id,
            points=51,
            description="Too much",
        )

    assert exc_info.value.code == ErrorCode.INSUFFICIENT_POINTS
    assert exc_info.value.details["available"] == 50

    entries = await _ledger(db_session, loyalty.customer_id)
    assert len(entries) == 1


@pytest.mark.asyncio
@pytest.mark.unit
async def test_second_redemption_sees_first(db_session):
    """Two redemptions that each fit the starting balance cannot both succeed."""
    loyalty = await _make_loyalty(db_session)
    await add_points(
        db_session,
        tenant_id=TENANT_ID,
        customer_id=loyalty.customer_id,
        points=100,
        transaction_type=LoyaltyTransactionType.EARNED_BONUS,
        description="Seed",
    )

    await redeem_points(
        db_session,
        tenant_id=TENANT_ID,
        customer_id=loyalty.customer_id,
        points=80,
        description="First",
    )
    with pytest.raises(AppError) as exc_info:
        await redeem_points(
            db_session,
            tenant_id=TENANT_ID,
            customer_id=loyalty.customer_id,
            points=80,
            description="Second",
        )

    assert exc_info.value.code == ErrorCode.INSUFFICIENT_POINTS


@pytest.mark.asyncio
@pytest.mark.unit
async def test_redemption_consumes_oldest_lots_first(db_session):
    loyalty = await _make_loyalty(db_session)
    for points in (100, 200):
        await add_points(
            db_session,
            tenant_id=TENANT_ID,
            customer_id=loyalty.customer_id,
            points=points,
            transaction_type=LoyaltyTransactionType.EARNED_BONUS,
            description=f"Lot of {points}",
        )

    await redeem_points(
        db_session,
        tenant_id=TENANT_ID,
        customer_id=loyalty.customer_id,
        points=150,
        description="Spend",
    )

    lots = await _lots(db_session, loyalty.customer_id)
    assert [lot.points_remaining for lot in lots] == [0, 150]


@pytest.mark.asyncio
@pytest.mark.unit
async def test_apply_redemption_does_not_commit(db_session):
    loyalty = await _make_loyalty(db_session)
    await add_points(
        db_session,
        tenant_id=TENANT_ID,
        customer_id=loyalty.customer_id,
        points=100,
        transaction_type=LoyaltyTransactionType.EARNED_BONUS,
        description="Seed",
    )

    await apply_redemption(
        db_session,
        tenant_id=TENANT_ID,
        customer_id=loyalty.customer_id,
        points=40,
        description="Inside caller transaction",
    )
    await db_session.rollback()

    entries = await _ledger(db_session, loyalty.customer_id)
    assert [e.transaction_type for e in entries] == [LoyaltyTransactionType.EARNED_BONUS]


# ---------------------------------------------------------------------------
# adjust_points
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.unit
async def test_adjust_points_positive_creates_non_expiring_lot(db_session):
    loyalty = await _make_loyalty(db_session)

    result = await adjust_points(
        db_session,
        tenant_id=TENANT_ID,
        customer_id=loyalty.customer_id,
        delta=75,
        reason="Goodwill credit",
        created_by="manager-1",
    )

    assert result.transaction.transaction_type == LoyaltyTransactionType.ADJUSTMENT_ADD
    assert result.transaction.created_by == "manager-1"
    assert result.loyalty.current_points == 75

    lots = await _lots(db_session, loyalty.customer_id)
    assert lots[0].expires is False


@pytest.mark.asyncio
@pytest.mark.unit
async def test_adjust_points_negative_cannot_go_below_zero(db_session):
    loyalty = await _make_loyalty(db_session)
    await adjust_points(
        db_session,
        tenant_id=TENANT_ID,
        customer_id=loyalty.customer_id,
        delta=30,
        reason="Seed",
    )

    result = await adjust_points(
        db_session,
        tenant_id=TENANT_ID,
        customer_id=loyalty.customer_id,
        delta=-30,
        reason="Correction",
    )
    assert result.transaction.transaction_type == LoyaltyTransactionType.ADJUSTMENT_SUBTRACT
    assert result.loyalty.current_points == 0
    _assert_counters_consistent(result.loyalty)

    with pytest.raises(AppError) as exc_info:
        await adjust_points(
            db_session,
            tenant_id=TENANT_ID,
            customer_id=loyalty.customer_id,
            delta=-1,
            reason="Too far",
        )
    assert exc_info.value.code == ErrorCode.INSUFFICIENT_POINTS


@pytest.mark.asyncio
@pytest.mark.unit
async def test_adjust_points_zero_rejected(db_session):
    loyalty = await _make_loyalty(db_session)

    with pytest.raises(AppError) as exc_info:
        await adjust_points(
            db_session,
            tenant_id=TENANT_ID,
            customer_id=loyalty.customer_id,
            delta=0,
            reason="Nothing",
        )

    assert exc_info.value.code == ErrorCode.VALIDATION_ERROR


# ---------------------------------------------------------------------------
# award_birthday_bonus
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.unit
async def test_birthday_bonus_once_per_year(db_session):
    loyalty = await _make_loyalty(db_session, tier_level=LoyaltyTier.SILVER)

    first = await award_birthday_bonus(
        db_session, tenant_id=TENANT_ID, customer_id=loyalty.customer_id
    )
    assert first.transaction.transaction_type == LoyaltyTransactionType.EARNED_BIRTHDAY
    assert first.transaction.points_change == 500

    with pytest.raises(AppError) as exc_info:
        await award_birthday_bonus(
            db_session, tenant_id=TENANT_ID, customer_id=loyalty.customer_id
        )

    assert exc_info.value.code == ErrorCode.ALREADY_AWARDED
    entries = await _ledger(db_session, loyalty.customer_id)
    assert len(entries) == 1


@pytest.mark.asyncio
@pytest.mark.unit
async def test_birthday_bonus_allowed_again_next_year(db_session):
    loyalty = await _make_loyalty(db_session)

    await award_birthday_bonus(
        db_session,
        tenant_id=TENANT_ID,
        customer_id=loyalty.customer_id,
        now=datetime(2025, 6, 1, 12, tzinfo=timezone.utc),
    )
    result = await award_birthday_bonus(
        db_session,
        tenant_id=TENANT_ID,
        customer_id=loyalty.customer_id,
        now=datetime(2026, 6, 1, 12, tzinfo=timezone.utc),
    )

    assert result.loyalty.current_points == 400
    assert result.transaction.sequence == 2


# ---------------------------------------------------------------------------
# record_visit
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.unit
async def test_visit_earns_one_point_per_thousand(db_session):
    loyalty = await _make_loyalty(db_session)

    result = await record_visit(
        db_session,
        tenant_id=TENANT_ID,
        customer_id=loyalty.customer_id,
        total_amount=Decimal("150000"),
        visit_id="visit-1",
    )

    assert result.final_amount == Decimal("150000")
    assert result.points_earned == 150
    assert result.loyalty.current_points == 150
    assert result.loyalty.total_visits == 1
    assert result.loyalty.visits_this_month == 1
    assert result.loyalty.lifetime_spent == Decimal("150000")
    assert result.earn_transaction.transaction_type == LoyaltyTransactionType.EARNED_PURCHASE
    assert result.earn_transaction.balance_after == 150
    assert result.redeem_transaction is None

    entries = await _ledger(db_session, loyalty.customer_id)
    assert len(entries) == 1


@pytest.mark.asyncio
@pytest.mark.unit
async def test_visit_with_discount_and_redemption(db_session):
    loyalty = await _make_loyalty(db_session)
    await add_points(
        db_session,
        tenant_id=TENANT_ID,
        customer_id=loyalty.customer_id,
        points=100,
        transaction_type=LoyaltyTransactionType.EARNED_BONUS,
        description="Seed",
    )

    result = await record_visit(
        db_session,
        tenant_id=TENANT_ID,
        customer_id=loyalty.customer_id,
        total_amount=Decimal("50000"),
        discount_amount=Decimal("10000"),
        points_redeemed=60,
    )

    assert result.final_amount == Decimal("40000")
    assert result.points_earned == 40
    assert result.loyalty.current_points == 100 - 60 + 40
    assert result.redeem_transaction.balance_after == 40
    assert result.earn_transaction.balance_after == 80
    assert result.earn_transaction.sequence == result.redeem_transaction.sequence + 1
    _assert_counters_consistent(result.loyalty)


@pytest.mark.asyncio
@pytest.mark.unit
async def test_visit_applies_tier_multiplier(db_session):
    loyalty = await _make_loyalty(db_session, tier_level=LoyaltyTier.GOLD)

    result = await record_visit(
        db_session,
        tenant_id=TENANT_ID,
        customer_id=loyalty.customer_id,
        total_amount=Decimal("10000"),
    )

    assert result.points_earned == 15


@pytest.mark.asyncio
@pytest.mark.unit
async def test_visit_discount_exceeding_total_rejected(db_session):
    loyalty = await _make_loyalty(db_session)

    with pytest.raises(AppError) as exc_info:
        await record_visit(
            db_session,
            tenant_id=TENANT_ID,
            customer_id=loyalty.customer_id,
            total_amount=Decimal("1000"),
            discount_amount=Decimal("2000"),
        )

    assert exc_info.value.code == ErrorCode.VALIDATION_ERROR


@pytest.mark.asyncio
@pytest.mark.unit
async def test_visit_in_new_month_rolls_counters(db_session):
    loyalty = await _make_loyalty(
        db_session,
        current_month_spent=Decimal("90000"),
        current_year_spent=Decimal("90000"),
        visits_this_month=4,
        counters_reset_at=datetime(2026, 1, 3, tzinfo=timezone.utc),
    )

    result = await record_visit(
        db_session,
        tenant_id=TENANT_ID,
        customer_id=loyalty.customer_id,
        total_amount=Decimal("5000"),
        now=datetime(2026, 2, 10, 9, tzinfo=timezone.utc),
    )

    assert result.loyalty.visits_this_month == 1
    assert result.loyalty.current_month_spent == Decimal("5000")
    assert result.loyalty.current_year_spent == Decimal("95000")


@pytest.mark.unit
def test_roll_period_counters_same_month_is_noop():
    loyalty = CustomerLoyaltyFactory.create(
        visits_this_month=3,
        counters_reset_at=datetime(2026, 3, 1, 0, 30, tzinfo=timezone.utc),
    )

    rolled = roll_period_counters(loyalty, datetime(2026, 3, 20, tzinfo=timezone.utc))

    assert rolled is False
    assert loyalty.visits_this_month == 3


@pytest.mark.unit
def test_roll_period_counters_new_year_clears_yearly_spend():
    loyalty = CustomerLoyaltyFactory.create(
        current_year_spent=Decimal("700000"),
        current_month_spent=Decimal("20000"),
        counters_reset_at=datetime(2025, 12, 15, tzinfo=timezone.utc),
    )

    rolled = roll_period_counters(loyalty, datetime(2026, 1, 2, tzinfo=timezone.utc))

    assert rolled is True
    assert loyalty.current_year_spent == Decimal("0")
    assert loyalty.current_month_spent == Decimal("0")


# ---------------------------------------------------------------------------
# Ledger invariants
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.unit
async def test_ledger_replays_to_current_balance(db_session):
    loyalty = await _make_loyalty(db_session)
    customer_id = loyalty.customer_id

    await record_visit(
        db_session, tenant_id=TENANT_ID, customer_id=customer_id, total_amount=Decimal("250000")
    )
    await redeem_points(
        db_session, tenant_id=TENANT_ID, customer_id=customer_id, points=100, description="Treat"
    )
    await adjust_points(
        db_session, tenant_id=TENANT_ID, customer_id=customer_id, delta=20, reason="Fix"
    )
    result = await adjust_points(
        db_session, tenant_id=TENANT_ID, customer_id=customer_id, delta=-5, reason="Fix"
    )

    entries = await _ledger(db_session, customer_id)
    assert [e.sequence for e in entries] == [1, 2, 3, 4]

    running = 0
    for entry in entries:
        running += entry.points_change
        assert entry.balance_after == running
    assert running == result.loyalty.current_points == 165
    _assert_counters_consistent(result.loyalty)

    lots = await _lots(db_session, customer_id)
    assert sum(lot.points_remaining for lot in lots) == result.loyalty.current_points


# ---------------------------------------------------------------------------
# Concurrency
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.unit
async def test_simultaneous_redemptions_only_one_succeeds(session_factory, db_session):
    loyalty = await _make_loyalty(db_session)
    await add_points(
        db_session,
        tenant_id=TENANT_ID,
        customer_id=loyalty.customer_id,
        points=100,
        transaction_type=LoyaltyTransactionType.EARNED_BONUS,
        description="Seed",
    )

    async def redeem(label):
        async with session_factory() as session:
            try:
                await redeem_points(
                    session,
                    tenant_id=TENANT_ID,
                    customer_id=loyalty.customer_id,
                    points=80,
                    description=label,
                )
            except AppError as exc:
                return exc.code
            return "ok"

    outcomes = await asyncio.gather(redeem("First"), redeem("Second"))

    assert set(outcomes) == {"ok", ErrorCode.INSUFFICIENT_POINTS}
    await db_session.refresh(loyalty)
    assert loyalty.current_points == 20
    _assert_counters_consistent(loyalty)
    entries = await _ledger(db_session, loyalty.customer_id)
    assert [e.points_change for e in entries] == [100, -80]
    assert entries[-1].balance_after == loyalty.current_points
    lots = await _lots(db_session, loyalty.customer_id)
    assert sum(lot.points_remaining for lot in lots) == 20


@pytest.mark.asyncio
@pytest.mark.unit
@pytest.mark.parametrize(
    "points, transaction_type",
    [
        (0, LoyaltyTransactionType.REDEEMED_DISCOUNT),
        (10, LoyaltyTransactionType.EARNED_BONUS),
    ],
)
async def test_redeem_validation_runs_before_transaction(
    db_session, monkeypatch, points, transaction_type
):
    async def no_transaction(*args, **kwargs):
        raise AssertionError("transaction opened for invalid input")

    monkeypatch.setattr(ledger_ops, "run_in_transaction", no_transaction)

    with pytest.raises(AppError) as exc_info:
        await redeem_points(
            db_session,
            tenant_id=TENANT_ID,
            customer_id="anyone",
            points=points,
            description="Invalid",
            transaction_type=transaction_type,
        )

    assert exc_info.value.code == ErrorCode.VALIDATION_ERROR
