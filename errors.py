"""
Error taxonomy and the FastAPI handlers that turn it into JSON responses.

Every error body has the same envelope:

    {"success": false, "error": {"code": ..., "message": ..., "details": ...}, "requestId": ...}
"""
import logging
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pymongo.errors import DuplicateKeyError

logger = logging.getLogger("storefront.errors")


class ApiError(Exception):
    status_code = 500
    code = "api_error"

    def __init__(self, message: str, details: Any = None, headers: Optional[Dict[str, str]] = None):
        super().__init__(message)
        self.message = message
        self.details = details
        self.headers = headers

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details is not None:
            body["details"] = self.details
        return body


class ValidationError(ApiError):
    status_code = 400
    code = "validation_error"


class EmptyCart(ValidationError):
    code = "empty_cart"

    def __init__(self, message: str = "Order must contain at least one item"):
        super().__init__(message)


class InvalidAddress(ValidationError):
    code = "invalid_address"

    def __init__(self, missing: List[str]):
        super().__init__("Shipping address is missing required fields: " + ", ".join(missing),
                         details={"missing": missing})


class AuthError(ApiError):
    status_code = 401
    code = "unauthorized"


class PermissionDenied(AuthError):
    status_code = 403
    code = "forbidden"


class NotFound(ApiError):
    status_code = 404
    code = "not_found"


class Conflict(ApiError):
    status_code = 409
    code = "conflict"


class InsufficientStock(ApiError):
    status_code = 422
    code = "insufficient_stock"

    def __init__(self, items: List[Dict[str, Any]]):
        names = ", ".join(f"{i['name']} (requested {i['requested']}, available {i['available']})" for i in items)
        super().__init__(f"Insufficient stock for {names}", details={"items": items})
        self.items = items


class InvalidTransition(ApiError):
    status_code = 422
    code = "invalid_transition"

    def __init__(self, current: str, requested: str, message: Optional[str] = None):
        super().__init__(message or f"Cannot change order status from {current} to {requested}",
                         details={"from": current, "to": requested})
        self.current = current
        self.requested = requested


class RateLimited(ApiError):
    status_code = 429
    code = "rate_limited"

    def __init__(self, message: str = "Too many requests, please try again later", retry_after: int = 60):
        super().__init__(message, headers={"Retry-After": str(retry_after)})
        self.retry_after = retry_after


class InternalError(ApiError):
    status_code = 500
    code = "internal_error"


def _request_id(request: Request) -> Optional[str]:
    return getattr(request.state, "request_id", None)


def _envelope(request: Request, error: Dict[str, Any]) -> Dict[str, Any]:
    return {"success": False, "error": error, "requestId": _request_id(request)}


async def api_error_handler(request: Request, exc: ApiError):
    if exc.status_code >= 500:
        logger.error("[%s] %s %s failed: %s", _request_id(request), request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=_envelope(request, exc.to_dict()), headers=exc.headers)


async def request_validation_handler(request: Request, exc: RequestValidationError):
    fields = []
    for err in exc.errors():
        loc = [str(p) for p in err.get("loc", ()) if p != "body"]
        fields.append({"field": ".".join(loc), "message": err.get("msg", "Invalid value")})
    error = ValidationError("Validation failed", details=fields)
    return JSONResponse(status_code=400, content=_envelope(request, error.to_dict()))


async def duplicate_key_handler(request: Request, exc: DuplicateKeyError):
    key = ", ".join((exc.details or {}).get("keyValue", {}).keys()) or "value"
    error = Conflict(f"A record with this {key} already exists")
    return JSONResponse(status_code=409, content=_envelope(request, error.to_dict()))


async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("[%s] Unhandled error on %s %s: %s", _request_id(request), request.method, request.url.path, exc)
    error = InternalError("Internal server error")
    return JSONResponse(status_code=500, content=_envelope(request, error.to_dict()))


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ApiError, api_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(DuplicateKeyError, duplicate_key_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
