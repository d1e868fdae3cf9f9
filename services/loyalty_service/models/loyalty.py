"""CustomerLoyalty model: one point account per customer per tenant."""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from libs.common.datetime_utils import utc_now
from libs.db.base import Base
from services.loyalty_service.models.enums import LoyaltyTier, enum_values
from sqlalchemy import CheckConstraint, DateTime
from sqlalchemy import Enum as SAEnum
from sqlalchemy import Integer, Numeric, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column


class CustomerLoyalty(Base):
    """Point balance, lifetime counters and tier for a customer.

    Created at customer onboarding; mutated only by the ledger engine.
    ``current_points == points_earned - points_redeemed - points_expired``.
    """

    __tablename__ = "customer_loyalty"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id: Mapped[str] = mapped_column(String(64), index=True, nullable=False)
    customer_id: Mapped[str] = mapped_column(String(64), nullable=False)

    current_points: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    points_earned: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    points_redeemed: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    points_expired: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    # Sequence number of the newest ledger entry
    ledger_sequence: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    tier_level: Mapped[LoyaltyTier] = mapped_column(
        SAEnum(
            LoyaltyTier,
            name="loyalty_tier_enum",
            values_callable=enum_values,
            validate_strings=True,
        ),
        default=LoyaltyTier.BRONZE,
        nullable=False,
    )
    tier_updated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    lifetime_spent: Mapped[Decimal] = mapped_column(
        Numeric(14, 2), default=Decimal("0.00"), nullable=False
    )
    current_year_spent: Mapped[Decimal] = mapped_column(
        Numeric(14, 2), default=Decimal("0.00"), nullable=False
    )
    current_month_spent: Mapped[Decimal] = mapped_column(
        Numeric(14, 2), default=Decimal("0.00"), nullable=False
    )
    total_visits: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    visits_this_month: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    first_visit_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    last_visit_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    counters_reset_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, nullable=False
    )

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=False
    )

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        UniqueConstraint(
            "tenant_id", "customer_id", name="uq_customer_loyalty_tenant_customer"
        ),
        CheckConstraint("current_points >= 0", name="current_points_non_negative"),
    )

    def __repr__(self) -> str:
        return (
            f"<CustomerLoyalty {self.customer_id} points={self.current_points} "
            f"tier={self.tier_level.value}>"
        )
