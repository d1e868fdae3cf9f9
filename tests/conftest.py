import os
import tempfile
from decimal import Decimal
from typing import Any, AsyncGenerator

# Point settings at a throwaway SQLite file before any app module builds its engine
_TEST_DB_DIR = tempfile.mkdtemp(prefix="ledger-tests-")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_TEST_DB_DIR}/app.db"
os.environ["ENVIRONMENT"] = "development"
os.environ["TIER_RECOMPUTE_BACKEND"] = "disabled"
os.environ["TIMEZONE"] = "UTC"

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from libs.common.config import get_settings
from libs.common.tenancy import ACTOR_HEADER, TENANT_HEADER
from libs.db.base import Base
from libs.db.session import get_async_db

# Import all models so metadata includes every table
from services.loyalty_service import models as _loyalty_models  # noqa: F401
from services.settlement_service import models as _settlement_models  # noqa: F401
from services.settlement_service.services.gateway import GatewayResult, get_gateway
from tests.factories import TENANT_ID

# Clear cached settings to reload with the test env vars
get_settings.cache_clear()


class FakeGateway:
    """In-memory GatewayAdapter.

    Charges succeed unless a result (or an exception to raise) has been queued
    with ``script``. Every call is recorded for assertions.
    """

    def __init__(self):
        self.charges: list[tuple[Decimal, str, dict[str, Any]]] = []
        self.reversals: list[tuple[str, Decimal]] = []
        self.reverse_succeeds = True
        self._scripted: list = []

    def script(self, *results) -> None:
        self._scripted.extend(results)

    async def charge(self, amount, method, metadata) -> GatewayResult:
        self.charges.append((amount, method, metadata))
        if self._scripted:
            result = self._scripted.pop(0)
            if isinstance(result, Exception):
                raise result
            return result
        n = len(self.charges)
        return GatewayResult(
            success=True,
            reference=f"ref-{n}",
            transaction_id=f"txn-{n}",
            card_mask="****4242",
            card_type="visa",
        )

    async def reverse(self, reference, amount, metadata) -> GatewayResult:
        self.reversals.append((reference, amount))
        if not self.reverse_succeeds:
            return GatewayResult(success=False, error="Reversal rejected")
        return GatewayResult(success=True, reference=reference)


@pytest_asyncio.fixture
async def test_engine(tmp_path):
    """Fresh SQLite database per test."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=test_engine, class_=AsyncSession, expire_on_commit=False, autoflush=False
    )


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


def _override_db(session_factory):
    async def override() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            yield session

    return override


@pytest_asyncio.fixture
async def settlement_client(session_factory, gateway) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client for the settlement app wired to the test database and gateway."""
    from services.settlement_service.app.main import app

    app.dependency_overrides[get_async_db] = _override_db(session_factory)
    app.dependency_overrides[get_gateway] = lambda: gateway

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
        headers={TENANT_HEADER: TENANT_ID, ACTOR_HEADER: "cashier-1"},
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def loyalty_client(session_factory) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client for the loyalty app wired to the test database."""
    from services.loyalty_service.app.main import app

    app.dependency_overrides[get_async_db] = _override_db(session_factory)

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
        headers={TENANT_HEADER: TENANT_ID, ACTOR_HEADER: "staff-1"},
    ) as ac:
        yield ac

    app.dependency_overrides.clear()
