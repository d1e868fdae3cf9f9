"""Unit-of-work runner shared by the settlement and loyalty engines.

Every mutation of an aggregate (an order with its payment rows, a customer's
loyalty record with its ledger) runs as a unit of work: a coroutine that
re-reads the aggregate, validates against what it read, and stages its writes
on the session. ``run_in_transaction`` commits the unit and, when another
writer got there first, rolls back and runs the unit again so it validates
against the latest committed state.

Conflicts are detected two ways:

- ``SELECT ... FOR UPDATE`` serialises writers on backends with row locks.
- Each aggregate root has a ``version`` column (``version_id_col``); an UPDATE
  that matches no row raises ``StaleDataError``. This covers backends without
  row locks and keeps the check honest if a lock is ever skipped.

Unique-key races (two writers picking the same payment number) surface as
``IntegrityError`` and are retried the same way.
"""

from typing import Awaitable, Callable, Optional, TypeVar

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from libs.common.config import get_settings
from libs.common.errors import AppError, ErrorCode
from libs.common.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

CONFLICT_ERRORS = (StaleDataError, IntegrityError)


async def run_in_transaction(
    db: AsyncSession,
    unit: Callable[[], Awaitable[T]],
    *,
    label: str,
    attempts: Optional[int] = None,
) -> T:
    """Run ``unit`` and commit, retrying on concurrency conflicts.

    ``AppError`` raised by the unit rolls back and propagates unchanged.
    Other database errors roll back and become ``INTERNAL``.
    """
    max_attempts = attempts or get_settings().TXN_MAX_ATTEMPTS

    for attempt in range(1, max_attempts + 1):
        try:
            result = await unit()
            await db.commit()
            return result
        except CONFLICT_ERRORS as exc:
            await db.rollback()
            if attempt == max_attempts:
                logger.error(
                    "%s: gave up after %d conflicting attempts", label, attempt
                )
                raise AppError.internal(
                    "The record was modified concurrently, please retry",
                    code=ErrorCode.CONCURRENT_MODIFICATION,
                    operation=label,
                ) from exc
            logger.warning(
                "%s: concurrent modification on attempt %d (%s), retrying",
                label,
                attempt,
                type(exc).__name__,
            )
        except AppError:
            await db.rollback()
            raise
        except SQLAlchemyError as exc:
            await db.rollback()
            logger.exception("%s: database error", label)
            raise AppError.internal(f"{label} failed", operation=label) from exc
        except Exception:
            await db.rollback()
            raise

    raise AssertionError("unreachable")  # pragma: no cover
