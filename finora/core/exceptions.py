"""
Application errors and the handlers that turn them into JSON responses.

Every error response has the same envelope::

    {"ok": false, "error": "<CODE>", "message": "...", "status": <http>, "details": {...}}

Services raise subclasses of AppException; anything else reaching the
handlers is logged with its traceback and reported as a generic 500.
"""

from __future__ import annotations

from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from .logging import get_logger

logger = get_logger("errors")


class AppException(Exception):
    """Base error carrying its HTTP status and machine-readable code."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    error_code: str = "INTERNAL_ERROR"
    message: str = "An unexpected error occurred"
    # Whether the same request may succeed if repeated later
    retryable: bool = False

    def __init__(
        self,
        message: str | None = None,
        error_code: str | None = None,
        status_code: int | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.message = message or self.message
        self.error_code = error_code or self.error_code
        self.status_code = status_code or self.status_code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {
            "ok": False,
            "error": self.error_code,
            "message": self.message,
            "status": self.status_code,
        }
        if self.details:
            body["details"] = self.details
        return body


# =============================================================================
# Caller errors
# =============================================================================


class BadRequestError(AppException):
    status_code = status.HTTP_400_BAD_REQUEST
    error_code = "BAD_REQUEST"
    message = "Bad request"


class AuthenticationError(AppException):
    status_code = status.HTTP_401_UNAUTHORIZED
    error_code = "AUTHENTICATION_FAILED"
    message = "Authentication required"


class NotFoundError(AppException):
    status_code = status.HTTP_404_NOT_FOUND
    error_code = "NOT_FOUND"
    message = "Resource not found"


class SymbolNotFoundError(NotFoundError):
    """The market data provider has nothing for this ticker."""

    error_code = "SYMBOL_NOT_FOUND"
    message = "Invalid symbol or no data available"


class ValidationError(AppException):
    status_code = status.HTTP_422_UNPROCESSABLE_CONTENT
    error_code = "VALIDATION_ERROR"
    message = "Validation failed"


# =============================================================================
# Upstream and deployment errors
# =============================================================================


class RateLimitError(AppException):
    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    error_code = "RATE_LIMIT_EXCEEDED"
    message = "Too many requests. Please try again later."
    retryable = True


class ProviderRateLimitError(RateLimitError):
    """Alpha Vantage answered with its Note/Information throttling payload."""

    error_code = "PROVIDER_RATE_LIMITED"
    message = "Market data API rate limit exceeded. Please try again later."


class ExternalServiceError(AppException):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    error_code = "EXTERNAL_SERVICE_ERROR"
    message = "External service temporarily unavailable"
    retryable = True


class LLMError(ExternalServiceError):
    """Completion request failed or came back without choices."""

    error_code = "LLM_ERROR"
    message = "Failed to generate AI response"


class ConfigurationError(AppException):
    """An API key the operation needs is not configured."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    error_code = "CONFIGURATION_ERROR"
    message = "Service is not configured"


# =============================================================================
# Handlers
# =============================================================================


def _request_id(request: Request) -> str:
    return getattr(request.state, "request_id", None) or "unknown"


def _error_response(request: Request, status_code: int, body: dict[str, Any]) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=body, headers={"X-Request-ID": _request_id(request)})


def register_exception_handlers(app: FastAPI, debug: bool = False) -> None:
    """Install JSON envelopes for AppException, request validation and unexpected errors."""

    @app.exception_handler(AppException)
    async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
        if exc.status_code >= 500:
            logger.warning(f"{request.method} {request.url.path} failed: {exc.error_code} {exc.message}")
        return _error_response(request, exc.status_code, exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        error = ValidationError(
            message="Request validation failed",
            details={"errors": [{"loc": list(e["loc"]), "msg": e["msg"]} for e in exc.errors()]},
        )
        return _error_response(request, error.status_code, error.to_dict())

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception(
            f"Unhandled error on {request.method} {request.url.path}",
            extra={"path": request.url.path, "method": request.method},
        )
        error = AppException(message=str(exc) if debug else None)
        return _error_response(request, error.status_code, error.to_dict())
