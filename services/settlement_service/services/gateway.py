"""
Payment gateway contract and the default HTTP adapter.

The settlement engine never talks to a specific provider. It depends on the
``GatewayAdapter`` protocol:

- ``charge``: take money for one card/online leg
- ``reverse``: undo a successful charge when a sibling leg of a split
  payment fails

The host system decides which adapter is installed; ``HttpGatewayAdapter``
speaks a minimal JSON protocol to ``PAYMENT_GATEWAY_URL``.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Optional, Protocol, runtime_checkable

import httpx
from libs.common.config import get_settings
from libs.common.logging import get_logger

logger = get_logger(__name__)


@dataclass
class GatewayResult:
    """Outcome of a gateway call."""

    success: bool
    reference: Optional[str] = None
    transaction_id: Optional[str] = None
    card_mask: Optional[str] = None
    card_type: Optional[str] = None
    error: Optional[str] = None


class GatewayError(Exception):
    """Transport-level gateway failure (timeouts, 5xx, malformed replies)."""

    def __init__(
        self, message: str, status_code: int = None, response_data: dict = None
    ):
        self.message = message
        self.status_code = status_code
        self.response_data = response_data or {}
        super().__init__(message)


@runtime_checkable
class GatewayAdapter(Protocol):
    async def charge(
        self, amount: Decimal, method: str, metadata: dict[str, Any]
    ) -> GatewayResult: ...

    async def reverse(
        self, reference: str, amount: Decimal, metadata: dict[str, Any]
    ) -> GatewayResult: ...


class HttpGatewayAdapter:
    """Async adapter for a JSON payment gateway."""

    def __init__(
        self,
        base_url: str = None,
        api_key: str = None,
        timeout: float = None,
    ):
        settings = get_settings()
        self.base_url = (base_url or settings.PAYMENT_GATEWAY_URL).rstrip("/")
        self.api_key = api_key or settings.PAYMENT_GATEWAY_API_KEY
        self.timeout = timeout or settings.PAYMENT_GATEWAY_TIMEOUT
        if not self.api_key:
            raise ValueError("PAYMENT_GATEWAY_API_KEY is required")
        self._headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    async def _request(self, endpoint: str, json_data: dict) -> dict:
        url = f"{self.base_url}{endpoint}"

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(url, headers=self._headers, json=json_data)
        except httpx.HTTPError as exc:
            raise GatewayError(f"Gateway unreachable: {exc}") from exc

        try:
            data = response.json()
        except ValueError as exc:
            raise GatewayError(
                "Gateway returned a non-JSON response",
                status_code=response.status_code,
            ) from exc

        if response.status_code >= 500:
            logger.error("Gateway error: %s - %s", response.status_code, data)
            raise GatewayError(
                message=data.get("message", "Unknown gateway error"),
                status_code=response.status_code,
                response_data=data,
            )
        return data

    @staticmethod
    def _to_result(data: dict) -> GatewayResult:
        if not data.get("success"):
            return GatewayResult(
                success=False, error=data.get("message", "Payment declined")
            )
        return GatewayResult(
            success=True,
            reference=data.get("reference"),
            transaction_id=data.get("transaction_id"),
            card_mask=data.get("card_mask"),
            card_type=data.get("card_type"),
        )

    async def charge(
        self, amount: Decimal, method: str, metadata: dict[str, Any]
    ) -> GatewayResult:
        data = await self._request(
            "/charges",
            {"amount": str(amount), "method": method, "metadata": metadata},
        )
        return self._to_result(data)

    async def reverse(
        self, reference: str, amount: Decimal, metadata: dict[str, Any]
    ) -> GatewayResult:
        data = await self._request(
            f"/charges/{reference}/reverse",
            {"amount": str(amount), "metadata": metadata},
        )
        return self._to_result(data)


_default_gateway: Optional[GatewayAdapter] = None


def get_gateway() -> GatewayAdapter:
    """FastAPI dependency returning the process-wide adapter."""
    global _default_gateway
    if _default_gateway is None:
        _default_gateway = HttpGatewayAdapter()
    return _default_gateway
