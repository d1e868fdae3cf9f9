"""Request context middleware shared by the settlement and loyalty apps.

Every request gets a request id (taken from ``X-Request-ID`` when the caller
sends one) and the calling tenant bound to the logging context, so log lines
emitted anywhere below the router carry both. The response echoes the id and
reports its own handling time.
"""
import time
from typing import Callable

from fastapi import FastAPI, Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from libs.common.logging import (
    clear_request_context,
    configure_logging,
    get_logger,
    set_request_context,
)
from libs.common.tenancy import TENANT_HEADER

logger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"
RESPONSE_TIME_HEADER = "X-Response-Time-Ms"

# Probes hit these constantly; keep them out of the request log.
QUIET_PATHS = frozenset({"/health", "/docs", "/openapi.json"})


def _elapsed_ms(started: float) -> float:
    return round((time.perf_counter() - started) * 1000, 2)


class RequestContextMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = set_request_context(
            request_id=request.headers.get(REQUEST_ID_HEADER),
            path=request.url.path,
            method=request.method,
            tenant_id=request.headers.get(TENANT_HEADER) or None,
        )
        quiet = request.url.path in QUIET_PATHS
        started = time.perf_counter()

        try:
            response = await call_next(request)
        except Exception:
            logger.exception(
                "Unhandled error while serving request",
                extra={"extra_fields": {"duration_ms": _elapsed_ms(started)}},
            )
            raise
        else:
            elapsed = _elapsed_ms(started)
            if not quiet:
                self._log_response(response.status_code, elapsed)
            response.headers[REQUEST_ID_HEADER] = request_id
            response.headers[RESPONSE_TIME_HEADER] = str(elapsed)
            return response
        finally:
            clear_request_context()

    @staticmethod
    def _log_response(status_code: int, elapsed_ms: float) -> None:
        if status_code >= 500:
            log = logger.error
        elif status_code >= 400:
            log = logger.warning
        else:
            log = logger.info
        log(
            "Responded %s",
            status_code,
            extra={"extra_fields": {"status_code": status_code, "duration_ms": elapsed_ms}},
        )


def add_observability_middleware(app: FastAPI) -> None:
    configure_logging()
    app.add_middleware(RequestContextMiddleware)
