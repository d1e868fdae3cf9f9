"""Order model: the business-owned aggregate payments settle against."""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from libs.common.datetime_utils import utc_now
from libs.db.base import Base
from services.settlement_service.models.enums import (
    OrderPaymentStatus,
    OrderStatus,
    PaymentMethod,
    enum_values,
)
from sqlalchemy import CheckConstraint, DateTime
from sqlalchemy import Enum as SAEnum
from sqlalchemy import Integer, Numeric, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship


class Order(Base):
    """An order as seen by settlement.

    Created and owned by the ordering side; the settlement engine only writes
    ``paid_amount``, ``change_amount``, ``payment_status`` and
    ``payment_method``.
    """

    __tablename__ = "orders"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id: Mapped[str] = mapped_column(String(64), index=True, nullable=False)
    order_number: Mapped[str] = mapped_column(String(32), nullable=False)
    customer_id: Mapped[Optional[str]] = mapped_column(
        String(64), index=True, nullable=True
    )
    status: Mapped[OrderStatus] = mapped_column(
        SAEnum(
            OrderStatus,
            name="order_status_enum",
            values_callable=enum_values,
            validate_strings=True,
        ),
        default=OrderStatus.OPEN,
        nullable=False,
    )
    total_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    paid_amount: Mapped[Decimal] = mapped_column(
        Numeric(14, 2), default=Decimal("0.00"), nullable=False
    )
    change_amount: Mapped[Decimal] = mapped_column(
        Numeric(14, 2), default=Decimal("0.00"), nullable=False
    )
    payment_status: Mapped[OrderPaymentStatus] = mapped_column(
        SAEnum(
            OrderPaymentStatus,
            name="order_payment_status_enum",
            values_callable=enum_values,
            validate_strings=True,
        ),
        default=OrderPaymentStatus.PENDING,
        nullable=False,
    )
    payment_method: Mapped[Optional[PaymentMethod]] = mapped_column(
        SAEnum(
            PaymentMethod,
            name="order_payment_method_enum",
            values_callable=enum_values,
            validate_strings=True,
        ),
        nullable=True,
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=False
    )

    payments: Mapped[list["PaymentRecord"]] = relationship(  # noqa: F821
        back_populates="order", lazy="raise"
    )

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        UniqueConstraint("tenant_id", "order_number", name="uq_orders_tenant_number"),
        CheckConstraint("total_amount >= 0", name="total_amount_non_negative"),
    )

    def __repr__(self) -> str:
        return (
            f"<Order {self.order_number} total={self.total_amount} "
            f"paid={self.paid_amount} status={self.payment_status.value}>"
        )
