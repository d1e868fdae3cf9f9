"""Settlement Service schemas package.

Re-exports all schemas so that:
  - ``from services.settlement_service.schemas import PaymentResponse`` works
  - Router files need no import path changes

When adding a new schema, add its import and __all__ entry.
"""

from services.settlement_service.schemas.payment import (  # noqa: F401
    CardInfo,
    LegDetails,
    OrderSettlementResponse,
    PaymentDetails,
    PaymentResponse,
    PaymentResultResponse,
    ProcessPaymentRequest,
    RefundRequest,
    SplitPaymentLeg,
)
from services.settlement_service.schemas.reporting import (  # noqa: F401
    DailySalesSummaryResponse,
    PaymentBreakdown,
    PaymentListResponse,
    PaymentSummary,
    StatusBreakdown,
)

__all__ = [
    # Payment
    "CardInfo",
    "LegDetails",
    "OrderSettlementResponse",
    "PaymentDetails",
    "PaymentResponse",
    "PaymentResultResponse",
    "ProcessPaymentRequest",
    "RefundRequest",
    "SplitPaymentLeg",
    # Reporting
    "DailySalesSummaryResponse",
    "PaymentBreakdown",
    "PaymentListResponse",
    "PaymentSummary",
    "StatusBreakdown",
]
