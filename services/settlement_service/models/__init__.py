"""Settlement Service models package.

Re-exports all models and enums so that:
  - ``from services.settlement_service.models import Order`` works
  - Alembic env.py sees every table through a single import

When adding a new model, add both its import and its __all__ entry.
"""

from services.settlement_service.models.enums import (  # noqa: F401
    GATEWAY_METHODS,
    NON_FAILED_STATUSES,
    OrderPaymentStatus,
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
)
from services.settlement_service.models.order import Order  # noqa: F401
from services.settlement_service.models.payment import PaymentRecord  # noqa: F401

__all__ = [
    # Enums
    "GATEWAY_METHODS",
    "NON_FAILED_STATUSES",
    "OrderPaymentStatus",
    "OrderStatus",
    "PaymentMethod",
    "PaymentStatus",
    # Models
    "Order",
    "PaymentRecord",
]
