"""Loyalty Service models package.

Re-exports all models and enums so that:
  - ``from services.loyalty_service.models import CustomerLoyalty`` works
  - SQLAlchemy's mapper registry sees every model class on import

When adding a new model, add both its import and its __all__ entry.
"""

from services.loyalty_service.models.enums import (  # noqa: F401
    CREDIT_TYPES,
    EARNING_TYPES,
    REDEMPTION_TYPES,
    LoyaltyTier,
    LoyaltyTransactionType,
)
from services.loyalty_service.models.loyalty import CustomerLoyalty  # noqa: F401
from services.loyalty_service.models.transaction import (  # noqa: F401
    LoyaltyTransaction,
    PointLot,
)

__all__ = [
    # Enums
    "CREDIT_TYPES",
    "EARNING_TYPES",
    "REDEMPTION_TYPES",
    "LoyaltyTier",
    "LoyaltyTransactionType",
    # Models
    "CustomerLoyalty",
    "LoyaltyTransaction",
    "PointLot",
]
