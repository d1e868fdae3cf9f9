"""Core loyalty ledger operations: credit/debit of points with an append-only ledger.

Every balance change happens inside one transaction that:

1. locks and re-reads the customer's ``CustomerLoyalty`` row
2. validates against the fresh balance
3. updates the balance and lifetime counters
4. appends a ``LoyaltyTransaction`` with the resulting ``balance_after``
5. keeps the ``PointLot`` rows in step (credits open a lot, debits drain
   lots oldest-first)

``run_in_transaction`` commits and retries on concurrent modification, so two
redemptions racing for the same points cannot both pass the balance check.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional

from libs.common.config import get_settings
from libs.common.currency import ZERO, to_money
from libs.common.datetime_utils import (
    ensure_aware,
    local_date,
    month_start,
    utc_now,
    year_bounds,
    year_start,
)
from libs.common.errors import AppError, ErrorCode
from libs.common.logging import get_logger
from libs.db.transactions import run_in_transaction
from services.loyalty_service.models import (
    CREDIT_TYPES,
    EARNING_TYPES,
    REDEMPTION_TYPES,
    CustomerLoyalty,
    LoyaltyTransaction,
    LoyaltyTransactionType,
    PointLot,
)
from services.loyalty_service.services.tier_dispatch import schedule_tier_recompute
from services.loyalty_service.services.tier_policy import (
    apply_point_multiplier,
    birthday_bonus_for,
    calculate_points_from_amount,
    get_tier_benefits,
)
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)


@dataclass
class LedgerResult:
    loyalty: CustomerLoyalty
    transaction: LoyaltyTransaction


@dataclass
class VisitResult:
    loyalty: CustomerLoyalty
    final_amount: Decimal
    points_earned: int
    points_redeemed: int
    earn_transaction: Optional[LoyaltyTransaction] = None
    redeem_transaction: Optional[LoyaltyTransaction] = None


# ---------------------------------------------------------------------------
# Building blocks (run inside a caller's transaction)
# ---------------------------------------------------------------------------


async def lock_loyalty(
    db: AsyncSession, *, tenant_id: str, customer_id: str
) -> CustomerLoyalty:
    """Lock and freshly load a customer's loyalty row, or raise CUSTOMER_NOT_FOUND."""
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
        raise AppError.not_found(
            ErrorCode.CUSTOMER_NOT_FOUND,
            "Customer has no loyalty account",
            customer_id=customer_id,
        )
    return loyalty


def append_ledger_entry(
    db: AsyncSession,
    loyalty: CustomerLoyalty,
    *,
    transaction_type: LoyaltyTransactionType,
    points_change: int,
    description: str,
    at: Optional[datetime] = None,
    notes: Optional[str] = None,
    visit_id: Optional[str] = None,
    order_reference: Optional[str] = None,
    campaign_id: Optional[str] = None,
    related_amount: Optional[Decimal] = None,
    created_by: Optional[str] = None,
) -> LoyaltyTransaction:
    """Append a ledger row snapshotting the already-updated balance."""
    loyalty.ledger_sequence += 1
    entry = LoyaltyTransaction(
        id=uuid.uuid4(),
        tenant_id=loyalty.tenant_id,
        customer_id=loyalty.customer_id,
        sequence=loyalty.ledger_sequence,
        transaction_type=transaction_type,
        points_change=points_change,
        balance_after=loyalty.current_points,
        description=description,
        notes=notes,
        visit_id=visit_id,
        order_reference=order_reference,
        campaign_id=campaign_id,
        related_amount=related_amount,
        created_by=created_by,
        created_at=at or utc_now(),
    )
    db.add(entry)
    return entry


def _credit(
    db: AsyncSession,
    loyalty: CustomerLoyalty,
    points: int,
    transaction_type: LoyaltyTransactionType,
    description: str,
    **entry_fields,
) -> LoyaltyTransaction:
    loyalty.current_points += points
    loyalty.points_earned += points
    entry = append_ledger_entry(
        db,
        loyalty,
        transaction_type=transaction_type,
        points_change=points,
        description=description,
        **entry_fields,
    )
    db.add(
        PointLot(
            tenant_id=loyalty.tenant_id,
            customer_id=loyalty.customer_id,
            source_transaction=entry,
            points=points,
            points_remaining=points,
            expires=transaction_type in EARNING_TYPES,
            earned_at=entry.created_at,
        )
    )
    return entry


def _ensure_balance(loyalty: CustomerLoyalty, points: int) -> None:
    if loyalty.current_points < points:
        raise AppError.conflict(
            ErrorCode.INSUFFICIENT_POINTS,
            "Insufficient loyalty points",
            available=loyalty.current_points,
            requested=points,
        )


async def _consume_lots_fifo(
    db: AsyncSession, loyalty: CustomerLoyalty, points: int
) -> None:
    result = await db.execute(
        select(PointLot)
        .where(
            PointLot.tenant_id == loyalty.tenant_id,
            PointLot.customer_id == loyalty.customer_id,
            PointLot.points_remaining > 0,
        )
        .order_by(PointLot.earned_at, PointLot.id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    remaining = points
    for lot in result.scalars():
        if remaining <= 0:
            break
        take = min(lot.points_remaining, remaining)
        lot.points_remaining -= take
        remaining -= take


async def _debit(
    db: AsyncSession,
    loyalty: CustomerLoyalty,
    points: int,
    transaction_type: LoyaltyTransactionType,
    description: str,
    **entry_fields,
) -> LoyaltyTransaction:
    _ensure_balance(loyalty, points)
    await _consume_lots_fifo(db, loyalty, points)
    loyalty.current_points -= points
    loyalty.points_redeemed += points
    return append_ledger_entry(
        db,
        loyalty,
        transaction_type=transaction_type,
        points_change=-points,
        description=description,
        **entry_fields,
    )


def roll_period_counters(loyalty: CustomerLoyalty, now: datetime) -> bool:
    """Zero month/year counters if ``now`` is in a later period than the last reset."""
    last_reset = ensure_aware(loyalty.counters_reset_at)
    if last_reset >= month_start(now):
        return False
    if last_reset < year_start(now):
        loyalty.current_year_spent = ZERO
    loyalty.current_month_spent = ZERO
    loyalty.visits_this_month = 0
    loyalty.counters_reset_at = now
    return True


def _validate_redemption(points: int, transaction_type: LoyaltyTransactionType) -> None:
    if points <= 0:
        raise AppError.validation("Points to redeem must be positive", points=points)
    if transaction_type not in REDEMPTION_TYPES:
        raise AppError.validation(
            "Not a redemption type", transaction_type=transaction_type.value
        )


async def apply_redemption(
    db: AsyncSession,
    *,
    tenant_id: str,
    customer_id: str,
    points: int,
    description: str,
    order_reference: Optional[str] = None,
    transaction_type: LoyaltyTransactionType = LoyaltyTransactionType.REDEEMED_DISCOUNT,
    created_by: Optional[str] = None,
) -> LedgerResult:
    """Debit points inside the caller's open transaction. Does not commit.

    Used by settlement so a failed points debit rolls back the payment too.
    """
    _validate_redemption(points, transaction_type)
    loyalty = await lock_loyalty(db, tenant_id=tenant_id, customer_id=customer_id)
    entry = await _debit(
        db,
        loyalty,
        points,
        transaction_type,
        description,
        order_reference=order_reference,
        created_by=created_by,
    )
    return LedgerResult(loyalty=loyalty, transaction=entry)


# ---------------------------------------------------------------------------
# Public operations (each one transaction)
# ---------------------------------------------------------------------------


async def add_points(
    db: AsyncSession,
    *,
    tenant_id: str,
    customer_id: str,
    points: int,
    transaction_type: LoyaltyTransactionType,
    description: str,
    notes: Optional[str] = None,
    visit_id: Optional[str] = None,
    order_reference: Optional[str] = None,
    campaign_id: Optional[str] = None,
    related_amount: Optional[Decimal] = None,
    created_by: Optional[str] = None,
) -> LedgerResult:
    """Credit points to a customer.

    1. Validate ``points > 0`` and a credit transaction type
    2. Lock the loyalty row, credit, append ledger row, open a lot
    3. Commit
    4. Schedule a tier recompute (fire and forget)
    """
    if points <= 0:
        raise AppError.validation("Points to add must be positive", points=points)
    if transaction_type not in CREDIT_TYPES:
        raise AppError.validation(
            "Not a credit transaction type", transaction_type=transaction_type.value
        )

    async def unit() -> LedgerResult:
        loyalty = await lock_loyalty(db, tenant_id=tenant_id, customer_id=customer_id)
        entry = _credit(
            db,
            loyalty,
            points,
            transaction_type,
            description,
            notes=notes,
            visit_id=visit_id,
            order_reference=order_reference,
            campaign_id=campaign_id,
            related_amount=related_amount,
            created_by=created_by,
        )
        return LedgerResult(loyalty=loyalty, transaction=entry)

    outcome = await run_in_transaction(db, unit, label="add_points")
    logger.info(
        "Credited %d points (%s) to customer %s, balance=%d",
        points,
        transaction_type.value,
        customer_id,
        outcome.loyalty.current_points,
    )
    await schedule_tier_recompute(db, tenant_id=tenant_id, customer_id=customer_id)
    return outcome


async def redeem_points(
    db: AsyncSession,
    *,
    tenant_id: str,
    customer_id: str,
    points: int,
    description: str,
    order_reference: Optional[str] = None,
    transaction_type: LoyaltyTransactionType = LoyaltyTransactionType.REDEEMED_DISCOUNT,
    created_by: Optional[str] = None,
) -> LedgerResult:
    """Debit points. The balance check runs inside the debit transaction."""
    _validate_redemption(points, transaction_type)

    async def unit() -> LedgerResult:
        return await apply_redemption(
            db,
            tenant_id=tenant_id,
            customer_id=customer_id,
            points=points,
            description=description,
            order_reference=order_reference,
            transaction_type=transaction_type,
            created_by=created_by,
        )

    outcome = await run_in_transaction(db, unit, label="redeem_points")
    logger.info(
        "Redeemed %d points from customer %s, balance=%d",
        points,
        customer_id,
        outcome.loyalty.current_points,
    )
    return outcome


async def adjust_points(
    db: AsyncSession,
    *,
    tenant_id: str,
    customer_id: str,
    delta: int,
    reason: str,
    created_by: Optional[str] = None,
) -> LedgerResult:
    """Manual correction. Positive deltas never expire; negative deltas
    count as redeemed and cannot take the balance below zero."""
    if delta == 0:
        raise AppError.validation("Adjustment must be non-zero")
    if not reason or not reason.strip():
        raise AppError.validation("Adjustment requires a reason")

    async def unit() -> LedgerResult:
        loyalty = await lock_loyalty(db, tenant_id=tenant_id, customer_id=customer_id)
        if delta > 0:
            entry = _credit(
                db,
                loyalty,
                delta,
                LoyaltyTransactionType.ADJUSTMENT_ADD,
                reason,
                created_by=created_by,
            )
        else:
            entry = await _debit(
                db,
                loyalty,
                -delta,
                LoyaltyTransactionType.ADJUSTMENT_SUBTRACT,
                reason,
                created_by=created_by,
            )
        return LedgerResult(loyalty=loyalty, transaction=entry)

    outcome = await run_in_transaction(db, unit, label="adjust_points")
    logger.info(
        "Adjusted customer %s by %+d points by %s, balance=%d",
        customer_id,
        delta,
        created_by or "system",
        outcome.loyalty.current_points,
    )
    return outcome


async def award_birthday_bonus(
    db: AsyncSession,
    *,
    tenant_id: str,
    customer_id: str,
    created_by: Optional[str] = None,
    now: Optional[datetime] = None,
) -> LedgerResult:
    """Credit the tier's birthday bonus at most once per calendar year."""
    at = now or utc_now()
    year = local_date(at).year
    start, end = year_bounds(year)

    async def unit() -> LedgerResult:
        loyalty = await lock_loyalty(db, tenant_id=tenant_id, customer_id=customer_id)

        existing = await db.execute(
            select(LoyaltyTransaction.id)
            .where(
                LoyaltyTransaction.tenant_id == tenant_id,
                LoyaltyTransaction.customer_id == customer_id,
                LoyaltyTransaction.transaction_type
                == LoyaltyTransactionType.EARNED_BIRTHDAY,
                LoyaltyTransaction.created_at >= start,
                LoyaltyTransaction.created_at < end,
            )
            .limit(1)
        )
        if existing.scalar_one_or_none() is not None:
            raise AppError.conflict(
                ErrorCode.ALREADY_AWARDED,
                f"Birthday bonus already awarded for {year}",
                customer_id=customer_id,
                year=year,
            )

        bonus = birthday_bonus_for(loyalty.tier_level)
        entry = _credit(
            db,
            loyalty,
            bonus,
            LoyaltyTransactionType.EARNED_BIRTHDAY,
            f"Birthday bonus {year} ({loyalty.tier_level.value})",
            at=at,
            created_by=created_by,
        )
        return LedgerResult(loyalty=loyalty, transaction=entry)

    outcome = await run_in_transaction(db, unit, label="award_birthday_bonus")
    logger.info(
        "Awarded %d birthday points to customer %s for %d",
        outcome.transaction.points_change,
        customer_id,
        year,
    )
    await schedule_tier_recompute(db, tenant_id=tenant_id, customer_id=customer_id)
    return outcome


async def record_visit(
    db: AsyncSession,
    *,
    tenant_id: str,
    customer_id: str,
    total_amount: Decimal,
    discount_amount: Decimal = ZERO,
    points_redeemed: int = 0,
    visit_id: Optional[str] = None,
    order_reference: Optional[str] = None,
    created_by: Optional[str] = None,
    now: Optional[datetime] = None,
) -> VisitResult:
    """Apply a completed visit to the customer's loyalty account.

    1. Roll month/year counters if a new period started
    2. Add the final amount (total - discount) to spend aggregates, count the visit
    3. Redeem ``points_redeemed`` if requested
    4. Earn ``floor(final / amount_per_point)`` points, scaled by the tier multiplier
    5. Commit, then schedule a tier recompute
    """
    try:
        total = to_money(total_amount)
        discount = to_money(discount_amount)
    except ValueError as exc:
        raise AppError.validation(str(exc)) from exc
    if total < 0 or discount < 0:
        raise AppError.validation("Visit amounts cannot be negative")
    if discount > total:
        raise AppError.validation("Discount exceeds visit total")
    if points_redeemed < 0:
        raise AppError.validation("points_redeemed cannot be negative")

    final_amount = total - discount
    at = now or utc_now()

    async def unit() -> VisitResult:
        loyalty = await lock_loyalty(db, tenant_id=tenant_id, customer_id=customer_id)
        roll_period_counters(loyalty, at)

        loyalty.lifetime_spent += final_amount
        loyalty.current_year_spent += final_amount
        loyalty.current_month_spent += final_amount
        loyalty.total_visits += 1
        loyalty.visits_this_month += 1
        if loyalty.first_visit_at is None:
            loyalty.first_visit_at = at
        loyalty.last_visit_at = at

        visit_result = VisitResult(
            loyalty=loyalty,
            final_amount=final_amount,
            points_earned=0,
            points_redeemed=points_redeemed,
        )

        if points_redeemed > 0:
            visit_result.redeem_transaction = await _debit(
                db,
                loyalty,
                points_redeemed,
                LoyaltyTransactionType.REDEEMED_DISCOUNT,
                f"Points redeemed on visit {visit_id or ''}".strip(),
                at=at,
                visit_id=visit_id,
                order_reference=order_reference,
                created_by=created_by,
            )

        settings = get_settings()
        earned = calculate_points_from_amount(
            final_amount, settings.LOYALTY_AMOUNT_PER_POINT
        )
        if settings.LOYALTY_APPLY_TIER_MULTIPLIER:
            earned = apply_point_multiplier(
                earned, get_tier_benefits(loyalty.tier_level).point_multiplier
            )
        if earned > 0:
            visit_result.points_earned = earned
            visit_result.earn_transaction = _credit(
                db,
                loyalty,
                earned,
                LoyaltyTransactionType.EARNED_PURCHASE,
                f"Points earned on visit {visit_id or ''}".strip(),
                at=at,
                visit_id=visit_id,
                order_reference=order_reference,
                related_amount=final_amount,
                created_by=created_by,
            )
        return visit_result

    outcome = await run_in_transaction(db, unit, label="record_visit")
    logger.info(
        "Visit for customer %s: final=%s earned=%d redeemed=%d balance=%d",
        customer_id,
        final_amount,
        outcome.points_earned,
        outcome.points_redeemed,
        outcome.loyalty.current_points,
    )
    await schedule_tier_recompute(db, tenant_id=tenant_id, customer_id=customer_id)
    return outcome
