"""Integration tests for settlement_service payment endpoints."""

import uuid
from decimal import Decimal

import pytest
from services.settlement_service.services.gateway import GatewayResult
from tests.factories import OrderFactory, persist


async def _make_order(db, total="100000"):
    return await persist(db, OrderFactory.create(total_amount=Decimal(total)))


@pytest.mark.asyncio
@pytest.mark.integration
async def test_health(settlement_client):
    response = await settlement_client.get("/health")

    assert response.status_code == 200
    assert response.json()["service"] == "settlement"


@pytest.mark.asyncio
@pytest.mark.integration
async def test_cash_payment_endpoint(settlement_client, db_session):
    """POST /payments settles a cash payment and returns the order snapshot."""
    order = await _make_order(db_session)

    response = await settlement_client.post(
        "/payments",
        json={
            "order_id": str(order.id),
            "amount": "100000",
            "method": "cash",
            "details": {"cash_received": "120000"},
        },
    )

    assert response.status_code == 201, response.text
    data = response.json()
    assert data["payment"]["payment_status"] == "paid"
    assert data["payment"]["processed_by"] == "cashier-1"
    assert data["order"]["payment_status"] == "paid"
    assert Decimal(data["order"]["paid_amount"]) == Decimal("100000")
    assert Decimal(data["change_amount"]) == Decimal("20000")
    assert Decimal(data["remaining_amount"]) == Decimal("0")


@pytest.mark.asyncio
@pytest.mark.integration
async def test_partial_card_then_refund_flow(settlement_client, db_session):
    order = await _make_order(db_session)

    first = await settlement_client.post(
        "/payments",
        json={"order_id": str(order.id), "amount": "60000", "method": "cash"},
    )
    assert first.status_code == 201, first.text
    assert first.json()["order"]["payment_status"] == "partial"

    second = await settlement_client.post(
        "/payments",
        json={
            "order_id": str(order.id),
            "amount": "40000",
            "method": "card",
            "details": {"card_info": {"terminal_id": "T-01"}},
        },
    )
    assert second.status_code == 201, second.text
    card_payment = second.json()["payment"]
    assert second.json()["order"]["payment_status"] == "paid"

    refund = await settlement_client.post(
        f"/payments/{card_payment['id']}/refund",
        json={"refund_amount": "40000", "reason": "customer request"},
    )
    assert refund.status_code == 201, refund.text
    assert Decimal(refund.json()["amount"]) == Decimal("-40000")
    assert refund.json()["refund_of_payment_id"] == card_payment["id"]

    listing = await settlement_client.get(
        "/payments", params={"order_id": str(order.id), "sort_order": "asc"}
    )
    assert listing.status_code == 200
    assert listing.json()["total"] == 3


@pytest.mark.asyncio
@pytest.mark.integration
async def test_declined_payment_returns_402(settlement_client, db_session, gateway):
    order = await _make_order(db_session)
    gateway.script(GatewayResult(success=False, error="Do not honour"))

    response = await settlement_client.post(
        "/payments",
        json={
            "order_id": str(order.id),
            "amount": "100000",
            "method": "card",
            "details": {"card_info": {"terminal_id": "T-01"}},
        },
    )

    assert response.status_code == 402
    error = response.json()["error"]
    assert error["code"] == "GATEWAY_FAILURE"
    assert error["kind"] == "gateway_failure"
    assert "payment_id" in error["details"]


@pytest.mark.asyncio
@pytest.mark.integration
async def test_split_mismatch_returns_409(settlement_client, db_session):
    order = await _make_order(db_session)

    response = await settlement_client.post(
        "/payments",
        json={
            "order_id": str(order.id),
            "amount": "100000",
            "method": "mixed",
            "details": {
                "split_payments": [
                    {"method": "cash", "amount": "30000"},
                    {"method": "cash", "amount": "30000"},
                ]
            },
        },
    )

    assert response.status_code == 409
    assert response.json()["error"]["code"] == "SPLIT_MISMATCH"


@pytest.mark.asyncio
@pytest.mark.integration
async def test_unknown_order_returns_404(settlement_client):
    response = await settlement_client.post(
        "/payments",
        json={"order_id": str(uuid.uuid4()), "amount": "10", "method": "cash"},
    )

    assert response.status_code == 404
    assert response.json()["error"]["code"] == "ORDER_NOT_FOUND"


@pytest.mark.asyncio
@pytest.mark.integration
async def test_malformed_body_uses_error_envelope(settlement_client):
    response = await settlement_client.post(
        "/payments", json={"amount": "10", "method": "cheque"}
    )

    assert response.status_code == 422
    error = response.json()["error"]
    assert error["code"] == "VALIDATION_ERROR"
    assert error["details"]["errors"]


@pytest.mark.asyncio
@pytest.mark.integration
async def test_missing_tenant_header_rejected(settlement_client):
    response = await settlement_client.get(
        "/payments", headers={"X-Tenant-ID": ""}
    )

    assert response.status_code == 422
    assert response.json()["error"]["code"] == "VALIDATION_ERROR"


@pytest.mark.asyncio
@pytest.mark.integration
async def test_daily_summary_endpoint(settlement_client, db_session):
    order = await _make_order(db_session, total="30000")
    await settlement_client.post(
        "/payments",
        json={"order_id": str(order.id), "amount": "30000", "method": "cash"},
    )

    response = await settlement_client.get("/payments/daily-summary")

    assert response.status_code == 200, response.text
    data = response.json()
    assert Decimal(data["total_sales"]) == Decimal("30000")
    assert data["total_transactions"] == 1
    assert Decimal(data["payment_breakdown"]["cash"]) == Decimal("30000")
