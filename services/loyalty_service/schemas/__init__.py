"""Loyalty Service schemas package.

Re-exports all schemas so that:
  - ``from services.loyalty_service.schemas import LedgerResultResponse`` works
  - Router files need no import path changes

When adding a new schema, add its import and __all__ entry.
"""

from services.loyalty_service.schemas.loyalty import (  # noqa: F401
    AddPointsRequest,
    AdjustPointsRequest,
    CustomerLoyaltyResponse,
    LedgerResultResponse,
    LoyaltyTransactionResponse,
    RecordVisitRequest,
    RedeemPointsRequest,
    TransactionListResponse,
    VisitResultResponse,
)
from services.loyalty_service.schemas.tier import (  # noqa: F401
    ExpiryReportResponse,
    LoyaltyDetailsResponse,
    LoyaltyStatisticsResponse,
    RecentActivityResponse,
    RequirementProgressResponse,
    TierBenefitsResponse,
    TierProgressResponse,
    TopCustomerResponse,
)

__all__ = [
    # Ledger
    "AddPointsRequest",
    "AdjustPointsRequest",
    "CustomerLoyaltyResponse",
    "LedgerResultResponse",
    "LoyaltyTransactionResponse",
    "RecordVisitRequest",
    "RedeemPointsRequest",
    "TransactionListResponse",
    "VisitResultResponse",
    # Tier and reporting
    "ExpiryReportResponse",
    "LoyaltyDetailsResponse",
    "LoyaltyStatisticsResponse",
    "RecentActivityResponse",
    "RequirementProgressResponse",
    "TierBenefitsResponse",
    "TierProgressResponse",
    "TopCustomerResponse",
]
