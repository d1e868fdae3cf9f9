"""LoyaltyTransaction and PointLot models: the append-only point ledger."""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from libs.common.datetime_utils import utc_now
from libs.db.base import Base
from services.loyalty_service.models.enums import (
    LoyaltyTransactionType,
    enum_values,
)
from sqlalchemy import Boolean, CheckConstraint, DateTime
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
from sqlalchemy.orm import Mapped, mapped_column, relationship


class LoyaltyTransaction(Base):
    """Immutable ledger of all point balance changes. Source of truth."""

    __tablename__ = "loyalty_transactions"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False)
    customer_id: Mapped[str] = mapped_column(String(64), nullable=False)
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    transaction_type: Mapped[LoyaltyTransactionType] = mapped_column(
        SAEnum(
            LoyaltyTransactionType,
            name="loyalty_transaction_type_enum",
            values_callable=enum_values,
            validate_strings=True,
        ),
        nullable=False,
    )
    points_change: Mapped[int] = mapped_column(Integer, nullable=False)
    balance_after: Mapped[int] = mapped_column(Integer, nullable=False)
    description: Mapped[str] = mapped_column(String(255), nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    visit_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    order_reference: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    campaign_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    related_amount: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(14, 2), nullable=True
    )
    created_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, nullable=False
    )

    __table_args__ = (
        UniqueConstraint(
            "tenant_id",
            "customer_id",
            "sequence",
            name="uq_loyalty_transactions_customer_sequence",
        ),
        CheckConstraint("points_change <> 0", name="points_change_non_zero"),
        CheckConstraint("balance_after >= 0", name="balance_after_non_negative"),
        Index(
            "ix_loyalty_transactions_customer_created",
            "tenant_id",
            "customer_id",
            "created_at",
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<LoyaltyTransaction {self.transaction_type.value} "
            f"{self.points_change:+d} -> {self.balance_after}>"
        )


class PointLot(Base):
    """A batch of credited points, consumed oldest-first by debits.

    Lets expiry remove only the points that are actually old rather than
    whatever happens to be left on the balance.
    """

    __tablename__ = "loyalty_point_lots"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False)
    customer_id: Mapped[str] = mapped_column(String(64), nullable=False)
    source_transaction_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("loyalty_transactions.id"), nullable=False, unique=True
    )
    points: Mapped[int] = mapped_column(Integer, nullable=False)
    points_remaining: Mapped[int] = mapped_column(Integer, nullable=False)
    expires: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    earned_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, nullable=False
    )
    expired_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    source_transaction: Mapped[LoyaltyTransaction] = relationship(lazy="raise")

    __table_args__ = (
        CheckConstraint("points > 0", name="lot_points_positive"),
        CheckConstraint(
            "points_remaining >= 0 AND points_remaining <= points",
            name="lot_points_remaining_in_range",
        ),
        Index(
            "ix_loyalty_point_lots_customer_earned",
            "tenant_id",
            "customer_id",
            "earned_at",
        ),
    )

    def __repr__(self) -> str:
        return f"<PointLot {self.points_remaining}/{self.points} earned_at={self.earned_at}>"
