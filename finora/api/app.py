"""API application factory."""

from __future__ import annotations

import time
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware

from finora.container import ServiceContainer, build_container
from finora.core.config import get_settings
from finora.core.exceptions import register_exception_handlers
from finora.core.logging import get_logger, request_id_var
from finora.schemas.common import ErrorResponse

from .routes import analysis, chat, companies, documents, health, market


logger = get_logger("api")

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "Permissions-Policy": "geolocation=(), microphone=(), camera=()",
}


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        response.headers.update(SECURITY_HEADERS)
        return response


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Assign a request id, echo it back and log one line per request.

    Only the path is logged; query strings can carry tokens.
    """

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
        request.state.request_id = request_id
        token = request_id_var.set(request_id)
        started = time.perf_counter()
        try:
            response = await call_next(request)
        finally:
            elapsed_ms = int((time.perf_counter() - started) * 1000)
            request_id_var.reset(token)

        response.headers["X-Request-ID"] = request_id
        logger.info(
            f"{request.method} {request.url.path} {response.status_code} {elapsed_ms}ms",
            extra={
                "request_id": request_id,
                "method": request.method,
                "path": request.url.path,
                "status_code": response.status_code,
                "duration_ms": elapsed_ms,
            },
        )
        return response


def create_api_app(container: ServiceContainer | None = None) -> FastAPI:
    """Build the FastAPI app.

    With no container, one is built from environment settings when the app
    starts; tests pass a container wired with fakes.
    """
    settings = container.settings if container is not None else get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        services = container or build_container(settings)
        app.state.container = services
        await services.startup()
        logger.info(f"{settings.app_name} {settings.app_version} ready", extra={"store_backend": settings.store_backend})
        try:
            yield
        finally:
            await services.shutdown()
            logger.info(f"{settings.app_name} shut down")

    docs_enabled = settings.debug
    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Company fundamentals, AI analysis, financial chat and document analysis",
        root_path=settings.root_path,
        docs_url="/docs" if docs_enabled else None,
        redoc_url=None,
        openapi_url="/openapi.json" if docs_enabled else None,
        lifespan=lifespan,
        responses={
            code: {"model": ErrorResponse}
            for code in (400, 401, 404, 422, 429, 500, 503)
        },
    )

    # Last added runs first: CORS, then request context, then security headers
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(RequestContextMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "DELETE"],
        allow_headers=["Authorization", "Content-Type", "X-Request-ID"],
        expose_headers=["X-Request-ID"],
    )

    register_exception_handlers(app, debug=settings.debug)

    app.include_router(health.router, tags=["Health"])
    app.include_router(companies.router, tags=["Companies"])
    app.include_router(analysis.router, prefix="/analyze", tags=["Analysis"])
    app.include_router(chat.router, prefix="/chat", tags=["Chat"])
    app.include_router(documents.router, prefix="/documents", tags=["Documents"])
    app.include_router(market.router, prefix="/market", tags=["Market"])

    return app
