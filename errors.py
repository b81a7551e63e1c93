"""
Error taxonomy for the storefront API.

Business rules raise one of the ``AppError`` subclasses below; the handlers
registered by ``register_exception_handlers`` turn them into the uniform
``{"success": false, "error": ...}`` envelope at the request boundary.
"""
import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

logger = logging.getLogger(__name__)


class AppError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(AppError):
    status_code = 400


class EmptyCart(ValidationError):
    def __init__(self, message: str = "Cart is empty"):
        super().__init__(message)


class InvalidStatus(ValidationError):
    pass


class OutOfStock(AppError):
    status_code = 400


class InsufficientStock(AppError):
    status_code = 400


class PaymentNotSuccessful(AppError):
    status_code = 400

    def __init__(self, message: str = "Payment not successful"):
        super().__init__(message)


class Conflict(AppError):
    status_code = 400


class AlreadyPaid(Conflict):
    def __init__(self, message: str = "Order is already paid"):
        super().__init__(message)


class Unauthorized(AppError):
    status_code = 401


class Forbidden(AppError):
    status_code = 403


class NotFound(AppError):
    status_code = 404


class ExternalServiceError(AppError):
    status_code = 500


class PaymentSetupFailed(ExternalServiceError):
    pass


def error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": message})


def schema_error_message(exc) -> str:
    """Join pydantic error entries into one human-readable line."""
    messages = []
    for err in exc.errors():
        loc = ".".join(str(part) for part in err.get("loc", ()) if part != "body")
        msg = err.get("msg", "Invalid value")
        messages.append(f"{loc}: {msg}" if loc else msg)
    return ", ".join(messages) or "Invalid request"


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(AppError)
    async def handle_app_error(request: Request, exc: AppError):
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        return error_response(exc.status_code, exc.message)

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError):
        return error_response(400, schema_error_message(exc))

    @app.exception_handler(HTTPException)
    async def handle_http_exception(request: Request, exc: HTTPException):
        return error_response(exc.status_code, str(exc.detail))

    @app.exception_handler(Exception)
    async def handle_unexpected(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return error_response(500, "Server Error")
