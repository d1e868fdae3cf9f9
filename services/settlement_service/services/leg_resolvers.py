"""Per-method payment legs.

A payment is one or more legs. Each method registers a validator and a
resolver in ``LEG_HANDLERS``; settlement code never branches on the method
itself, so adding a method means adding one entry here.

Cash and points legs resolve synchronously (points are debited later, inside
the settlement transaction). Card and online legs go to the gateway.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Awaitable, Callable, Optional

from libs.common.currency import sum_money, to_money, within_tolerance
from libs.common.errors import AppError, ErrorCode
from libs.common.logging import get_logger
from services.settlement_service.models.enums import GATEWAY_METHODS, PaymentMethod
from services.settlement_service.schemas.payment import LegDetails, PaymentDetails
from services.settlement_service.services.gateway import GatewayAdapter

logger = get_logger(__name__)


@dataclass
class PaymentLeg:
    method: PaymentMethod
    amount: Decimal
    terminal_id: Optional[str] = None
    card_mask: Optional[str] = None
    card_type: Optional[str] = None
    gateway_id: Optional[str] = None
    reference_number: Optional[str] = None
    cash_received: Optional[Decimal] = None
    points_used: Optional[int] = None

    @classmethod
    def from_details(
        cls, method: PaymentMethod, amount: Decimal, details: LegDetails
    ) -> "PaymentLeg":
        card = details.card_info
        return cls(
            method=method,
            amount=amount,
            terminal_id=card.terminal_id if card else None,
            card_mask=card.card_mask if card else None,
            card_type=card.card_type if card else None,
            gateway_id=details.gateway_id,
            reference_number=details.reference_number,
            cash_received=(
                to_money(details.cash_received)
                if details.cash_received is not None
                else None
            ),
            points_used=details.points_used,
        )


@dataclass
class LegOutcome:
    leg: PaymentLeg
    success: bool
    reference: Optional[str] = None
    transaction_id: Optional[str] = None
    card_mask: Optional[str] = None
    card_type: Optional[str] = None
    error: Optional[str] = None
    # None until compensation is attempted; then "reversed" or "reversal_failed"
    reversal: Optional[str] = field(default=None)

    @property
    def needs_compensation(self) -> bool:
        return (
            self.success
            and self.leg.method in GATEWAY_METHODS
            and self.reversal is None
        )

    @property
    def reversal_reference(self) -> Optional[str]:
        return self.reference or self.transaction_id

    def to_dict(self) -> dict[str, Any]:
        return {
            "method": self.leg.method.value,
            "amount": str(self.leg.amount),
            "status": "paid" if self.success else "failed",
            "reference": self.reference,
            "transaction_id": self.transaction_id,
            "terminal_id": self.leg.terminal_id,
            "gateway_id": self.leg.gateway_id,
            "card_mask": self.card_mask or self.leg.card_mask,
            "points_used": self.leg.points_used,
            "error": self.error,
            "reversal": self.reversal,
        }


Resolver = Callable[[PaymentLeg, GatewayAdapter, dict], Awaitable[LegOutcome]]


@dataclass(frozen=True)
class LegHandler:
    validate: Callable[[PaymentLeg], None]
    resolve: Resolver


# ---------------------------------------------------------------------------
# Validators
# ---------------------------------------------------------------------------


def _validate_cash(leg: PaymentLeg) -> None:
    if leg.cash_received is not None and leg.cash_received < 0:
        raise AppError.validation("cash_received cannot be negative")


def _validate_card(leg: PaymentLeg) -> None:
    if not leg.terminal_id:
        raise AppError.validation("Card payments require card_info.terminal_id")


def _validate_online(leg: PaymentLeg) -> None:
    if not leg.gateway_id:
        raise AppError.validation("Online payments require gateway_id")


def _validate_points(leg: PaymentLeg) -> None:
    if leg.points_used is None or leg.points_used <= 0:
        raise AppError.validation("Points payments require a positive points_used")


# ---------------------------------------------------------------------------
# Resolvers
# ---------------------------------------------------------------------------


async def _resolve_immediately(
    leg: PaymentLeg, gateway: GatewayAdapter, metadata: dict
) -> LegOutcome:
    return LegOutcome(leg=leg, success=True, reference=leg.reference_number)


async def _resolve_via_gateway(
    leg: PaymentLeg, gateway: GatewayAdapter, metadata: dict
) -> LegOutcome:
    leg_metadata = {
        **metadata,
        "terminal_id": leg.terminal_id,
        "gateway_id": leg.gateway_id,
        "reference_number": leg.reference_number,
    }
    try:
        result = await gateway.charge(leg.amount, leg.method.value, leg_metadata)
    except Exception as exc:
        logger.exception(
            "Gateway charge raised for %s leg of %s", leg.method.value, leg.amount
        )
        return LegOutcome(leg=leg, success=False, error=str(exc) or type(exc).__name__)

    if not result.success:
        logger.info(
            "Gateway declined %s leg of %s: %s", leg.method.value, leg.amount, result.error
        )
        return LegOutcome(leg=leg, success=False, error=result.error or "Declined")

    return LegOutcome(
        leg=leg,
        success=True,
        reference=result.reference,
        transaction_id=result.transaction_id,
        card_mask=result.card_mask,
        card_type=result.card_type,
    )


LEG_HANDLERS: dict[PaymentMethod, LegHandler] = {
    PaymentMethod.CASH: LegHandler(_validate_cash, _resolve_immediately),
    PaymentMethod.POINTS: LegHandler(_validate_points, _resolve_immediately),
    PaymentMethod.CARD: LegHandler(_validate_card, _resolve_via_gateway),
    PaymentMethod.ONLINE: LegHandler(_validate_online, _resolve_via_gateway),
}


# ---------------------------------------------------------------------------
# Orchestration helpers
# ---------------------------------------------------------------------------


def build_legs(
    amount: Decimal, method: PaymentMethod, details: Optional[PaymentDetails]
) -> list[PaymentLeg]:
    """Turn a payment request into validated legs.

    Raises ``VALIDATION`` for malformed input and ``SPLIT_MISMATCH`` when the
    legs of a mixed payment do not add up to ``amount``.
    """
    details = details or PaymentDetails()

    if method != PaymentMethod.MIXED:
        legs = [PaymentLeg.from_details(method, amount, details)]
    else:
        if not details.split_payments:
            raise AppError.validation("Mixed payments require split_payments")
        legs = []
        for split in details.split_payments:
            if split.method == PaymentMethod.MIXED:
                raise AppError.validation("Split legs cannot themselves be mixed")
            try:
                leg_amount = to_money(split.amount)
            except ValueError as exc:
                raise AppError.validation(str(exc)) from exc
            if leg_amount <= 0:
                raise AppError.validation(
                    "Split leg amounts must be positive", method=split.method.value
                )
            legs.append(PaymentLeg.from_details(split.method, leg_amount, split))

        legs_total = sum_money(leg.amount for leg in legs)
        if not within_tolerance(legs_total, amount):
            raise AppError.conflict(
                ErrorCode.SPLIT_MISMATCH,
                "Split payment legs do not add up to the payment amount",
                amount=str(amount),
                legs_total=str(legs_total),
            )

    for leg in legs:
        LEG_HANDLERS[leg.method].validate(leg)
    return legs


async def resolve_leg(
    leg: PaymentLeg, gateway: GatewayAdapter, metadata: dict
) -> LegOutcome:
    return await LEG_HANDLERS[leg.method].resolve(leg, gateway, metadata)


async def compensate(
    outcomes: list[LegOutcome], gateway: GatewayAdapter, metadata: dict
) -> None:
    """Reverse every succeeded gateway leg. Reversal failures are recorded on
    the outcome and logged for manual follow-up; they never mask the original
    error."""
    for outcome in outcomes:
        if not outcome.needs_compensation:
            continue
        reference = outcome.reversal_reference
        if reference is None:
            outcome.reversal = "reversal_failed"
            logger.error(
                "Cannot reverse %s leg of %s: gateway returned no reference",
                outcome.leg.method.value,
                outcome.leg.amount,
            )
            continue
        try:
            result = await gateway.reverse(reference, outcome.leg.amount, metadata)
        except Exception:
            logger.exception(
                "Reversal raised for %s leg %s", outcome.leg.method.value, reference
            )
            outcome.reversal = "reversal_failed"
            continue

        outcome.reversal = "reversed" if result.success else "reversal_failed"
        log = logger.info if result.success else logger.error
        log(
            "Compensation of %s leg %s (%s): %s",
            outcome.leg.method.value,
            reference,
            outcome.leg.amount,
            outcome.reversal,
        )
