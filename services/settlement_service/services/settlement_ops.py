"""Order settlement: payments, split payments and refunds.

Settlement of a payment runs in three phases so no row lock is held across
network latency:

1. Preflight: validate input and read the order without locking, so obvious
   rejections never reach a gateway.
2. Resolve: settle every leg through ``LEG_HANDLERS`` outside any transaction.
   If a leg fails, reverse the legs that succeeded and persist a FAILED record.
3. Commit: in one transaction, lock and re-read the order and its payment
   rows, re-validate, insert the PAID record, debit points and reconcile
   ``paid_amount`` to the ledger. If this phase rejects the payment, the
   gateway legs are reversed before the error propagates.
"""

import uuid
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Optional

from libs.common.currency import ZERO, sum_money, to_money
from libs.common.datetime_utils import utc_now
from libs.common.errors import AppError, ErrorCode
from libs.common.logging import get_logger
from libs.db.transactions import run_in_transaction
from services.loyalty_service.models import CustomerLoyalty
from services.loyalty_service.services.ledger_ops import apply_redemption
from services.settlement_service.models import (
    NON_FAILED_STATUSES,
    Order,
    OrderPaymentStatus,
    OrderStatus,
    PaymentMethod,
    PaymentRecord,
    PaymentStatus,
)
from services.settlement_service.schemas.payment import PaymentDetails
from services.settlement_service.services.gateway import GatewayAdapter
from services.settlement_service.services.leg_resolvers import (
    LegOutcome,
    PaymentLeg,
    build_legs,
    compensate,
    resolve_leg,
)
from services.settlement_service.services.numbering import next_payment_number
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)

CLOSED_ORDER_STATUSES = (OrderStatus.CANCELLED, OrderStatus.REFUNDED)


@dataclass
class PaymentResult:
    payment: PaymentRecord
    order: Order
    remaining_amount: Decimal
    change_amount: Decimal


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


async def _load_order(
    db: AsyncSession, *, tenant_id: str, order_id: uuid.UUID, lock: bool
) -> Order:
    stmt = select(Order).where(Order.tenant_id == tenant_id, Order.id == order_id)
    if lock:
        stmt = stmt.with_for_update()
    result = await db.execute(stmt.execution_options(populate_existing=True))
    order = result.scalar_one_or_none()
    if order is None:
        raise AppError.not_found(
            ErrorCode.ORDER_NOT_FOUND, "Order not found", order_id=str(order_id)
        )
    return order


async def _order_payments(
    db: AsyncSession, order: Order, *, lock: bool
) -> list[PaymentRecord]:
    stmt = select(PaymentRecord).where(
        PaymentRecord.tenant_id == order.tenant_id,
        PaymentRecord.order_id == order.id,
    )
    if lock:
        stmt = stmt.with_for_update()
    result = await db.execute(stmt.execution_options(populate_existing=True))
    return list(result.scalars())


def ledger_sum(payments: list[PaymentRecord]) -> Decimal:
    """Sum of non-failed amounts (refund legs are negative)."""
    return sum_money(
        p.amount for p in payments if p.payment_status in NON_FAILED_STATUSES
    )


def derive_payment_status(paid: Decimal, total: Decimal) -> OrderPaymentStatus:
    if paid >= total:
        return OrderPaymentStatus.PAID
    if paid > 0:
        return OrderPaymentStatus.PARTIAL
    return OrderPaymentStatus.PENDING


def _ensure_open(order: Order) -> None:
    if order.status in CLOSED_ORDER_STATUSES:
        raise AppError.conflict(
            ErrorCode.INVALID_STATE,
            f"Order is {order.status.value}",
            order_id=str(order.id),
            status=order.status.value,
        )


def _ensure_within_balance(
    order: Order, payments: list[PaymentRecord], amount: Decimal
) -> Decimal:
    """Return the ledger sum after checking ``amount`` fits the remaining balance."""
    settled = ledger_sum(payments)
    remaining = order.total_amount - max(settled, order.paid_amount)
    if amount > remaining:
        raise AppError.conflict(
            ErrorCode.AMOUNT_EXCEEDS_BALANCE,
            "Payment amount exceeds the remaining balance",
            amount=str(amount),
            remaining_amount=str(max(remaining, ZERO)),
        )
    return settled


def _points_requested(legs: list[PaymentLeg]) -> int:
    return sum(leg.points_used or 0 for leg in legs if leg.method == PaymentMethod.POINTS)


async def _preflight_points(db: AsyncSession, order: Order, points: int) -> None:
    if not order.customer_id:
        raise AppError.validation(
            "Points payments require an order with a customer", order_id=str(order.id)
        )
    result = await db.execute(
        select(CustomerLoyalty.current_points).where(
            CustomerLoyalty.tenant_id == order.tenant_id,
            CustomerLoyalty.customer_id == order.customer_id,
        )
    )
    available = result.scalar_one_or_none()
    if available is None:
        raise AppError.not_found(
            ErrorCode.CUSTOMER_NOT_FOUND,
            "Customer has no loyalty account",
            customer_id=order.customer_id,
        )
    if available < points:
        raise AppError.conflict(
            ErrorCode.INSUFFICIENT_POINTS,
            "Insufficient loyalty points",
            available=available,
            requested=points,
        )


# ---------------------------------------------------------------------------
# Record construction
# ---------------------------------------------------------------------------


def _new_record(
    *,
    tenant_id: str,
    order_id: uuid.UUID,
    payment_number: str,
    amount: Decimal,
    method: PaymentMethod,
    status: PaymentStatus,
    outcomes: list[LegOutcome],
    processed_by: Optional[str],
) -> PaymentRecord:
    record = PaymentRecord(
        tenant_id=tenant_id,
        payment_number=payment_number,
        order_id=order_id,
        amount=amount,
        payment_method=method,
        payment_status=status,
        processed_by=processed_by,
        processed_at=utc_now(),
    )
    if method == PaymentMethod.MIXED:
        record.split_details = [outcome.to_dict() for outcome in outcomes]
        record.points_used = _points_requested([o.leg for o in outcomes]) or None
        return record

    outcome = outcomes[0]
    leg = outcome.leg
    record.gateway_id = leg.gateway_id
    record.terminal_id = leg.terminal_id
    record.reference_number = outcome.reference or leg.reference_number
    record.transaction_id = outcome.transaction_id
    record.card_mask = outcome.card_mask or leg.card_mask
    record.card_type = outcome.card_type or leg.card_type
    record.cash_received = leg.cash_received
    record.points_used = leg.points_used
    return record


async def _record_failed_payment(
    db: AsyncSession,
    *,
    tenant_id: str,
    order_id: uuid.UUID,
    amount: Decimal,
    method: PaymentMethod,
    outcomes: list[LegOutcome],
    processed_by: Optional[str],
) -> PaymentRecord:
    reason = "; ".join(
        f"{o.leg.method.value}: {o.error}" for o in outcomes if not o.success
    )

    async def unit() -> PaymentRecord:
        number = await next_payment_number(db, tenant_id=tenant_id)
        record = _new_record(
            tenant_id=tenant_id,
            order_id=order_id,
            payment_number=number,
            amount=amount,
            method=method,
            status=PaymentStatus.FAILED,
            outcomes=outcomes,
            processed_by=processed_by,
        )
        record.failure_reason = reason
        db.add(record)
        await db.flush()
        return record

    return await run_in_transaction(db, unit, label="record_failed_payment")


# ---------------------------------------------------------------------------
# Payments
# ---------------------------------------------------------------------------


async def process_payment(
    db: AsyncSession,
    *,
    tenant_id: str,
    order_id: uuid.UUID,
    amount: Decimal,
    method: PaymentMethod,
    gateway: GatewayAdapter,
    details: Optional[PaymentDetails] = None,
    processed_by: Optional[str] = None,
) -> PaymentResult:
    """Settle ``amount`` against an order.

    1. Validate amount and method details (split legs must match ``amount``)
    2. Preflight read of the order (state, remaining balance, points balance)
    3. Resolve every leg; on any failure reverse succeeded legs, persist a
       FAILED record and raise GATEWAY_FAILURE
    4. In one transaction: lock and re-read, re-validate, insert the PAID
       record, debit points, reconcile ``paid_amount`` and payment status
    """
    try:
        amount = to_money(amount)
    except ValueError as exc:
        raise AppError.validation(str(exc)) from exc
    if amount <= 0:
        raise AppError.validation("Payment amount must be positive", amount=str(amount))

    legs = build_legs(amount, method, details)
    points = _points_requested(legs)

    # 2. Preflight
    order = await _load_order(db, tenant_id=tenant_id, order_id=order_id, lock=False)
    _ensure_open(order)
    _ensure_within_balance(order, await _order_payments(db, order, lock=False), amount)
    if points:
        await _preflight_points(db, order, points)
    order_number = order.order_number
    await db.commit()

    # 3. Resolve legs
    metadata: dict[str, Any] = {
        "tenant_id": tenant_id,
        "order_id": str(order_id),
        "order_number": order_number,
    }
    outcomes = [await resolve_leg(leg, gateway, metadata) for leg in legs]

    if not all(outcome.success for outcome in outcomes):
        await compensate(outcomes, gateway, metadata)
        failed = await _record_failed_payment(
            db,
            tenant_id=tenant_id,
            order_id=order_id,
            amount=amount,
            method=method,
            outcomes=outcomes,
            processed_by=processed_by,
        )
        logger.info(
            "Payment %s on order %s failed: %s",
            failed.payment_number,
            order_number,
            failed.failure_reason,
        )
        raise AppError.gateway_failure(
            "Payment was declined",
            payment_id=str(failed.id),
            payment_number=failed.payment_number,
            failed_legs=[o.to_dict() for o in outcomes if not o.success],
        )

    # 4. Commit
    async def unit() -> PaymentResult:
        order = await _load_order(db, tenant_id=tenant_id, order_id=order_id, lock=True)
        _ensure_open(order)
        payments = await _order_payments(db, order, lock=True)
        settled = _ensure_within_balance(order, payments, amount)

        number = await next_payment_number(db, tenant_id=tenant_id)
        payment = _new_record(
            tenant_id=tenant_id,
            order_id=order.id,
            payment_number=number,
            amount=amount,
            method=method,
            status=PaymentStatus.PAID,
            outcomes=outcomes,
            processed_by=processed_by,
        )
        db.add(payment)

        if points:
            await apply_redemption(
                db,
                tenant_id=tenant_id,
                customer_id=order.customer_id,
                points=points,
                description=f"Points payment {number} on order {order.order_number}",
                order_reference=order.order_number,
                created_by=processed_by,
            )

        change = ZERO
        if method == PaymentMethod.CASH and payment.cash_received is not None:
            change = max(ZERO, payment.cash_received - amount)

        order.paid_amount = settled + amount
        order.payment_status = derive_payment_status(order.paid_amount, order.total_amount)
        order.change_amount = change
        order.payment_method = method
        await db.flush()

        return PaymentResult(
            payment=payment,
            order=order,
            remaining_amount=max(ZERO, order.total_amount - order.paid_amount),
            change_amount=change,
        )

    try:
        result = await run_in_transaction(db, unit, label="process_payment")
    except AppError:
        await compensate(outcomes, gateway, metadata)
        raise

    logger.info(
        "Payment %s settled %s %s on order %s: paid=%s/%s status=%s",
        result.payment.payment_number,
        method.value,
        amount,
        order_number,
        result.order.paid_amount,
        result.order.total_amount,
        result.order.payment_status.value,
    )
    return result


# ---------------------------------------------------------------------------
# Refunds
# ---------------------------------------------------------------------------


async def process_refund(
    db: AsyncSession,
    *,
    tenant_id: str,
    payment_id: uuid.UUID,
    refund_amount: Decimal,
    reason: str,
    refund_method: Optional[PaymentMethod] = None,
    processed_by: Optional[str] = None,
) -> PaymentRecord:
    """Refund part or all of a PAID payment.

    Inserts a negative REFUNDED row linked to the original, accumulates
    ``refunded_amount`` on the original (REFUNDED once nothing is left), and
    recomputes the order from the full payment ledger. Money movement back to
    the customer is the caller's concern; points spent on a POINTS payment
    are not re-credited here.
    """
    try:
        refund_amount = to_money(refund_amount)
    except ValueError as exc:
        raise AppError.validation(str(exc)) from exc
    if refund_amount <= 0:
        raise AppError.validation(
            "Refund amount must be positive", refund_amount=str(refund_amount)
        )
    if not reason or not reason.strip():
        raise AppError.validation("Refund requires a reason")

    async def unit() -> PaymentRecord:
        result = await db.execute(
            select(PaymentRecord.order_id).where(
                PaymentRecord.tenant_id == tenant_id, PaymentRecord.id == payment_id
            )
        )
        order_id = result.scalar_one_or_none()
        if order_id is None:
            raise AppError.not_found(
                ErrorCode.PAYMENT_NOT_FOUND, "Payment not found", payment_id=str(payment_id)
            )

        # Lock order: the order, then its payment rows
        order = await _load_order(db, tenant_id=tenant_id, order_id=order_id, lock=True)
        payments = await _order_payments(db, order, lock=True)
        original = next(p for p in payments if p.id == payment_id)

        if original.payment_status != PaymentStatus.PAID or original.amount <= 0:
            raise AppError.conflict(
                ErrorCode.INVALID_STATE,
                f"Only paid payments can be refunded (status {original.payment_status.value})",
                payment_id=str(payment_id),
            )
        if refund_amount > original.refundable_amount:
            raise AppError.conflict(
                ErrorCode.REFUND_EXCEEDS_PAYMENT,
                "Refund exceeds the refundable amount",
                refund_amount=str(refund_amount),
                refundable_amount=str(original.refundable_amount),
            )

        number = await next_payment_number(db, tenant_id=tenant_id)
        refund = PaymentRecord(
            tenant_id=tenant_id,
            payment_number=number,
            order_id=order.id,
            amount=-refund_amount,
            payment_method=refund_method or original.payment_method,
            payment_status=PaymentStatus.REFUNDED,
            refund_of_payment_id=original.id,
            refund_reason=reason,
            gateway_id=original.gateway_id,
            reference_number=original.reference_number,
            processed_by=processed_by,
            processed_at=utc_now(),
        )
        db.add(refund)

        original.refunded_amount += refund_amount
        if original.refundable_amount <= 0:
            original.payment_status = PaymentStatus.REFUNDED

        net = ledger_sum(payments) - refund_amount
        order.paid_amount = net
        if net <= 0:
            order.payment_status = OrderPaymentStatus.REFUNDED
        elif net < order.total_amount:
            order.payment_status = OrderPaymentStatus.PARTIAL
        else:
            order.payment_status = OrderPaymentStatus.PAID
        await db.flush()
        return refund

    refund = await run_in_transaction(db, unit, label="process_refund")
    logger.info(
        "Refund %s of %s against payment %s: %s",
        refund.payment_number,
        refund_amount,
        payment_id,
        reason,
    )
    return refund
