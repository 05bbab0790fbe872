"""Translation of engine exceptions into HTTP responses.

Every error leaves the API in the same envelope::

    {"success": false, "error": {"code": "...", "message": "...", "details": {...}}}
"""

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from protean.exceptions import ExpectedVersionError, ObjectNotFoundError, ValidationError

from checkout.exceptions import (
    CheckoutError,
    ConflictError,
    InsufficientStockError,
    ProviderError,
    SignatureError,
    UnauthorizedError,
)

logger = structlog.get_logger(__name__)

_STATUS_CODES = {
    ConflictError: 409,
    UnauthorizedError: 401,
    ProviderError: 500,
    SignatureError: 400,
}


def error_body(code: str, message: str, details=None) -> dict:
    error = {"code": code, "message": message}
    if details:
        error["details"] = details
    return {"success": False, "error": error}


def _first_message(messages) -> str:
    if isinstance(messages, dict):
        for field_messages in messages.values():
            if field_messages:
                return str(field_messages[0]) if isinstance(field_messages, list) else str(field_messages)
    return str(messages)


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(InsufficientStockError)
    async def insufficient_stock(request: Request, exc: InsufficientStockError):
        return JSONResponse(
            status_code=400,
            content=error_body(
                InsufficientStockError.code,
                str(exc),
                {"product": exc.product_name, "requested": exc.requested, "available": exc.available},
            ),
        )

    @app.exception_handler(ValidationError)
    async def validation_error(request: Request, exc: ValidationError):
        return JSONResponse(
            status_code=400,
            content=error_body("VALIDATION_ERROR", _first_message(exc.messages), exc.messages),
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_error(request: Request, exc: RequestValidationError):
        details = {
            ".".join(str(part) for part in error["loc"] if part != "body"): [error["msg"]] for error in exc.errors()
        }
        return JSONResponse(
            status_code=400,
            content=error_body("VALIDATION_ERROR", _first_message(details) if details else "Invalid request", details),
        )

    @app.exception_handler(ObjectNotFoundError)
    async def not_found(request: Request, exc: ObjectNotFoundError):
        messages = getattr(exc, "messages", None) or str(exc) or "Not found"
        return JSONResponse(status_code=404, content=error_body("NOT_FOUND", _first_message(messages)))

    @app.exception_handler(ExpectedVersionError)
    async def concurrent_update(request: Request, exc: ExpectedVersionError):
        logger.warning("Concurrent update rejected", path=request.url.path, error=str(exc))
        return JSONResponse(
            status_code=409,
            content=error_body("CONFLICT", "The record was changed by another request, please retry", {"retryable": True}),
        )

    @app.exception_handler(CheckoutError)
    async def checkout_error(request: Request, exc: CheckoutError):
        status_code = next((code for cls, code in _STATUS_CODES.items() if isinstance(exc, cls)), 400)
        if isinstance(exc, ProviderError):
            # The raw provider answer is for the logs only
            logger.error(
                "Payment provider error",
                provider=exc.provider,
                message=exc.message,
                provider_status=exc.status_code,
                raw=str(exc.raw)[:2000] if exc.raw is not None else None,
                path=request.url.path,
            )
        elif isinstance(exc, SignatureError):
            logger.warning("Webhook signature rejected", provider=exc.provider, path=request.url.path)
        return JSONResponse(status_code=status_code, content=error_body(exc.code, exc.message, exc.details))
