"""Payment request/response schemas."""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field
from services.settlement_service.models.enums import (
    OrderPaymentStatus,
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
)


class CardInfo(BaseModel):
    terminal_id: Optional[str] = None
    card_mask: Optional[str] = None
    card_type: Optional[str] = None


class LegDetails(BaseModel):
    """Method-specific fields shared by single payments and split legs."""

    card_info: Optional[CardInfo] = None
    gateway_id: Optional[str] = None
    reference_number: Optional[str] = None
    cash_received: Optional[Decimal] = None
    points_used: Optional[int] = None


class SplitPaymentLeg(LegDetails):
    method: PaymentMethod
    amount: Decimal


class PaymentDetails(LegDetails):
    split_payments: Optional[list[SplitPaymentLeg]] = None


class ProcessPaymentRequest(BaseModel):
    order_id: uuid.UUID
    amount: Decimal
    method: PaymentMethod
    details: PaymentDetails = Field(default_factory=PaymentDetails)


class RefundRequest(BaseModel):
    refund_amount: Decimal
    reason: str = Field(..., min_length=1, max_length=500)
    refund_method: Optional[PaymentMethod] = None


class PaymentResponse(BaseModel):
    id: uuid.UUID
    payment_number: str
    order_id: uuid.UUID
    amount: Decimal
    payment_method: PaymentMethod
    payment_status: PaymentStatus
    gateway_id: Optional[str] = None
    transaction_id: Optional[str] = None
    reference_number: Optional[str] = None
    terminal_id: Optional[str] = None
    card_mask: Optional[str] = None
    card_type: Optional[str] = None
    cash_received: Optional[Decimal] = None
    points_used: Optional[int] = None
    split_details: Optional[list[dict[str, Any]]] = None
    refund_of_payment_id: Optional[uuid.UUID] = None
    refunded_amount: Decimal
    refund_reason: Optional[str] = None
    processed_by: Optional[str] = None
    processed_at: Optional[datetime] = None
    failure_reason: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class OrderSettlementResponse(BaseModel):
    id: uuid.UUID
    order_number: str
    customer_id: Optional[str] = None
    status: OrderStatus
    total_amount: Decimal
    paid_amount: Decimal
    change_amount: Decimal
    payment_status: OrderPaymentStatus
    payment_method: Optional[PaymentMethod] = None

    model_config = ConfigDict(from_attributes=True)


class PaymentResultResponse(BaseModel):
    payment: PaymentResponse
    order: OrderSettlementResponse
    remaining_amount: Decimal
    change_amount: Decimal

    model_config = ConfigDict(from_attributes=True)
