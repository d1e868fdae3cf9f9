"""PaymentRecord model: append-only settlement ledger for orders."""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from libs.common.datetime_utils import utc_now
from libs.db.base import Base
from services.settlement_service.models.enums import (
    PaymentMethod,
    PaymentStatus,
    enum_values,
)
from sqlalchemy import JSON, DateTime
from sqlalchemy import Enum as SAEnum
from sqlalchemy import (
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship


class PaymentRecord(Base):
    """One settlement attempt or refund leg against an order.

    Never deleted. After insert only ``payment_status`` and the refund-linkage
    fields (``refunded_amount``) change. Refunds are new rows with a negative
    ``amount``.
    """

    __tablename__ = "payment_records"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False)
    payment_number: Mapped[str] = mapped_column(String(32), nullable=False)
    order_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("orders.id"), nullable=False, index=True
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    payment_method: Mapped[PaymentMethod] = mapped_column(
        SAEnum(
            PaymentMethod,
            name="payment_method_enum",
            values_callable=enum_values,
            validate_strings=True,
        ),
        nullable=False,
    )
    payment_status: Mapped[PaymentStatus] = mapped_column(
        SAEnum(
            PaymentStatus,
            name="payment_status_enum",
            values_callable=enum_values,
            validate_strings=True,
        ),
        default=PaymentStatus.PENDING,
        nullable=False,
    )

    # Gateway reference data
    gateway_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    transaction_id: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    reference_number: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    terminal_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    card_mask: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    card_type: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)

    cash_received: Mapped[Optional[Decimal]] = mapped_column(Numeric(14, 2), nullable=True)
    points_used: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    split_details: Mapped[Optional[list]] = mapped_column(
        JSON().with_variant(JSONB(), "postgresql"), nullable=True
    )

    # Refund linkage
    refund_of_payment_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("payment_records.id"), nullable=True, index=True
    )
    refunded_amount: Mapped[Decimal] = mapped_column(
        Numeric(14, 2), default=Decimal("0.00"), nullable=False
    )
    refund_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    processed_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    processed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    failure_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=False
    )

    order: Mapped["Order"] = relationship(back_populates="payments", lazy="raise")  # noqa: F821

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        UniqueConstraint(
            "tenant_id", "payment_number", name="uq_payment_records_tenant_number"
        ),
        Index("ix_payment_records_tenant_created", "tenant_id", "created_at"),
    )

    @property
    def refundable_amount(self) -> Decimal:
        return self.amount - self.refunded_amount

    def __repr__(self) -> str:
        return (
            f"<PaymentRecord {self.payment_number} {self.payment_method.value} "
            f"{self.amount} {self.payment_status.value}>"
        )
