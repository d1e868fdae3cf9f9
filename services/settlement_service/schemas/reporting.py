"""Reporting schemas for payment listings and sales summaries."""

from datetime import date
from decimal import Decimal

from pydantic import BaseModel, ConfigDict
from services.settlement_service.schemas.payment import PaymentResponse


class PaymentSummary(BaseModel):
    total_amount: Decimal
    count: int
    average_amount: Decimal

    model_config = ConfigDict(from_attributes=True)


class PaymentListResponse(BaseModel):
    payments: list[PaymentResponse]
    total: int
    page: int
    limit: int
    total_pages: int
    summary: PaymentSummary

    model_config = ConfigDict(from_attributes=True)


class PaymentBreakdown(BaseModel):
    cash: Decimal
    card: Decimal
    online: Decimal
    points: Decimal
    mixed: Decimal


class StatusBreakdown(BaseModel):
    pending: int
    paid: int
    failed: int
    refunded: int


class DailySalesSummaryResponse(BaseModel):
    date: date
    total_sales: Decimal
    total_transactions: int
    payment_breakdown: PaymentBreakdown
    refunds_amount: Decimal
    net_sales: Decimal
    average_transaction: Decimal
    status_breakdown: StatusBreakdown

    model_config = ConfigDict(from_attributes=True)
