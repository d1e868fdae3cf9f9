"""Enum definitions for settlement service models."""

import enum


def enum_values(enum_cls):
    """Return persistent DB values for SAEnum mappings."""
    return [member.value for member in enum_cls]


class OrderStatus(str, enum.Enum):
    OPEN = "open"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


class OrderPaymentStatus(str, enum.Enum):
    PENDING = "pending"
    PARTIAL = "partial"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"


class PaymentStatus(str, enum.Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"


class PaymentMethod(str, enum.Enum):
    CASH = "cash"
    CARD = "card"
    ONLINE = "online"
    POINTS = "points"
    MIXED = "mixed"


# Methods settled through the external GatewayAdapter
GATEWAY_METHODS = frozenset({PaymentMethod.CARD, PaymentMethod.ONLINE})

# Rows that count towards an order's paid amount
NON_FAILED_STATUSES = (PaymentStatus.PENDING, PaymentStatus.PAID, PaymentStatus.REFUNDED)
