"""Human-readable payment numbers: ``PAY-YYYYMMDD-NNNN`` per tenant and local day."""

from datetime import datetime
from typing import Optional

from libs.common.datetime_utils import local_date
from services.settlement_service.models import PaymentRecord
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

PAYMENT_NUMBER_PREFIX = "PAY"


def payment_number_prefix(moment: Optional[datetime] = None) -> str:
    return f"{PAYMENT_NUMBER_PREFIX}-{local_date(moment):%Y%m%d}-"


async def next_payment_number(
    db: AsyncSession, *, tenant_id: str, moment: Optional[datetime] = None
) -> str:
    """Next free number for today.

    Two writers can read the same maximum; the unique constraint on
    (tenant_id, payment_number) turns that into an ``IntegrityError`` and the
    transaction runner retries with a fresh read. The suffix grows past four
    digits on busy days, so longer numbers sort first.
    """
    prefix = payment_number_prefix(moment)
    result = await db.execute(
        select(PaymentRecord.payment_number)
        .where(
            PaymentRecord.tenant_id == tenant_id,
            PaymentRecord.payment_number.like(f"{prefix}%"),
        )
        .order_by(
            func.length(PaymentRecord.payment_number).desc(),
            PaymentRecord.payment_number.desc(),
        )
        .limit(1)
    )
    last = result.scalar_one_or_none()
    sequence = int(last[len(prefix):]) + 1 if last else 1
    return f"{prefix}{sequence:04d}"
