"""
Fee engine error taxonomy.

Every error carries a machine-readable code, a human message and a context
dict (client_id, payment_method, installments, schedule_id when known) so the
caller can render an actionable message. All of them are terminal for the call
that raised them; only transient storage errors are worth retrying.
"""

from enum import Enum
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse


class ErrorCode(str, Enum):
    VALIDATION_ERROR = "VALIDATION_ERROR"
    NOT_FOUND = "NOT_FOUND"
    CONFLICT = "CONFLICT"
    UNCONFIGURED_PRICING = "UNCONFIGURED_PRICING"
    RATE_NOT_FOUND = "RATE_NOT_FOUND"
    DATA_INTEGRITY = "DATA_INTEGRITY"


class FeeEngineError(Exception):
    """Base class for all fee engine errors."""

    code: ErrorCode = ErrorCode.VALIDATION_ERROR
    status_code: int = 400

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.context: Dict[str, Any] = {k: v for k, v in context.items() if v is not None}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code.value,
            "detail": self.message,
            "context": {k: _jsonable(v) for k, v in self.context.items()},
        }

    def __str__(self) -> str:
        if not self.context:
            return self.message
        ctx = ", ".join(f"{k}={v}" for k, v in self.context.items())
        return f"{self.message} ({ctx})"


class ValidationError(FeeEngineError):
    """Malformed schedule/rate input, rejected before anything is persisted.

    ``errors`` lists every offending row, not just the first one found.
    """

    code = ErrorCode.VALIDATION_ERROR
    status_code = 422

    def __init__(self, message: str, errors: Optional[List[Dict[str, Any]]] = None, **context: Any):
        super().__init__(message, **context)
        self.errors: List[Dict[str, Any]] = errors or []

    def to_dict(self) -> Dict[str, Any]:
        out = super().to_dict()
        out["errors"] = [{k: _jsonable(v) for k, v in e.items()} for e in self.errors]
        return out


class NotFoundError(FeeEngineError):
    code = ErrorCode.NOT_FOUND
    status_code = 404


class ConflictError(FeeEngineError):
    code = ErrorCode.CONFLICT
    status_code = 409


class UnconfiguredPricingError(FeeEngineError):
    """The client has no active fee schedule; no rate may be assumed."""

    code = ErrorCode.UNCONFIGURED_PRICING
    status_code = 409


class RateNotFoundError(FeeEngineError):
    code = ErrorCode.RATE_NOT_FOUND
    status_code = 404


class DataIntegrityError(FeeEngineError):
    """Stored shares don't reconcile with the stored total rate."""

    code = ErrorCode.DATA_INTEGRITY
    status_code = 500


def _jsonable(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    return str(value)


async def fee_engine_error_handler(request: Request, exc: FeeEngineError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(FeeEngineError, fee_engine_error_handler)
