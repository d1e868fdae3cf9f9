"""Engine error taxonomy.

Every failure the settlement and loyalty engines surface is an ``AppError``
carrying a machine-readable ``code``, a ``kind`` that decides retry vs.
display, and a human message. HTTP apps render them through
``register_error_handlers``.
"""

import enum
from typing import Any, Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from libs.common.logging import get_logger

logger = get_logger(__name__)


class ErrorKind(str, enum.Enum):
    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    STATE_CONFLICT = "state_conflict"
    GATEWAY_FAILURE = "gateway_failure"
    INTERNAL = "internal"


class ErrorCode(str, enum.Enum):
    VALIDATION_ERROR = "VALIDATION_ERROR"
    ORDER_NOT_FOUND = "ORDER_NOT_FOUND"
    PAYMENT_NOT_FOUND = "PAYMENT_NOT_FOUND"
    CUSTOMER_NOT_FOUND = "CUSTOMER_NOT_FOUND"
    INVALID_STATE = "INVALID_STATE"
    AMOUNT_EXCEEDS_BALANCE = "AMOUNT_EXCEEDS_BALANCE"
    SPLIT_MISMATCH = "SPLIT_MISMATCH"
    REFUND_EXCEEDS_PAYMENT = "REFUND_EXCEEDS_PAYMENT"
    INSUFFICIENT_POINTS = "INSUFFICIENT_POINTS"
    ALREADY_AWARDED = "ALREADY_AWARDED"
    GATEWAY_FAILURE = "GATEWAY_FAILURE"
    CONCURRENT_MODIFICATION = "CONCURRENT_MODIFICATION"
    INTERNAL = "INTERNAL"


_KIND_STATUS = {
    ErrorKind.VALIDATION: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.STATE_CONFLICT: status.HTTP_409_CONFLICT,
    ErrorKind.GATEWAY_FAILURE: status.HTTP_402_PAYMENT_REQUIRED,
    ErrorKind.INTERNAL: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


class AppError(Exception):
    """Structured engine error."""

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        kind: ErrorKind,
        details: Optional[dict[str, Any]] = None,
    ):
        self.code = code
        self.message = message
        self.kind = kind
        self.details = details or {}
        super().__init__(message)

    @property
    def status_code(self) -> int:
        return _KIND_STATUS[self.kind]

    @classmethod
    def validation(cls, message: str, **details: Any) -> "AppError":
        return cls(ErrorCode.VALIDATION_ERROR, message, ErrorKind.VALIDATION, details)

    @classmethod
    def not_found(cls, code: ErrorCode, message: str, **details: Any) -> "AppError":
        return cls(code, message, ErrorKind.NOT_FOUND, details)

    @classmethod
    def conflict(cls, code: ErrorCode, message: str, **details: Any) -> "AppError":
        return cls(code, message, ErrorKind.STATE_CONFLICT, details)

    @classmethod
    def gateway_failure(cls, message: str, **details: Any) -> "AppError":
        return cls(ErrorCode.GATEWAY_FAILURE, message, ErrorKind.GATEWAY_FAILURE, details)

    @classmethod
    def internal(cls, message: str, code: ErrorCode = ErrorCode.INTERNAL, **details: Any) -> "AppError":
        return cls(code, message, ErrorKind.INTERNAL, details)

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code.value,
            "message": self.message,
            "kind": self.kind.value,
            "details": self.details,
        }

    def __repr__(self) -> str:
        return f"<AppError {self.code.value} kind={self.kind.value} message={self.message!r}>"


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    if exc.kind == ErrorKind.INTERNAL:
        logger.error("Internal engine error on %s: %s", request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"error": exc.to_dict()})


async def request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    errors = [
        {"loc": list(err["loc"]), "msg": err["msg"], "type": err["type"]}
        for err in exc.errors()
    ]
    error = AppError.validation("Request validation failed", errors=errors)
    return JSONResponse(status_code=error.status_code, content={"error": error.to_dict()})


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
