"""
FastAPI Application Factory
===========================

Entry point for the REM Auth service: the relying party for the AD Auth
identity provider.

Routers:
    - /auth/*       : AD Auth flow, session user, logout
    - /health       : Health check endpoint

Running the Service:
    Development:
        uvicorn remauth.main:app --reload --port 8080

    Production:
        python -m remauth.main
        (binds REM_AUTH_HTTP_HOST / REM_AUTH_HTTP_PORT)

    With custom log level:
        LOG_LEVEL=DEBUG python -m remauth.main
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

import httpx
import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from remauth.auth import ServerSideSessionMiddleware, auth_router
from remauth.auth.errors import AuthError
from remauth.config import Settings, get_settings, validate_configuration
from remauth.models import ErrorResponse, HealthResponse
from remauth.store import KeyValueStore, RedisKeyValueStore

SERVICE_NAME = "remauth"
SERVICE_VERSION = "1.0.0"

logger = logging.getLogger("remauth.main")


def setup_logging(log_level: str = "INFO") -> None:
    """
    Configure structured logging for the application.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format='{"timestamp": "%(asctime)s", "level": "%(levelname)s", "logger": "%(name)s", "message": "%(message)s", "module": "%(module)s", "function": "%(funcName)s"}',
        handlers=[logging.StreamHandler(sys.stdout)],
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Startup: report configuration problems.
    Shutdown: close the shared store and any HTTP client handed to the app.
    """
    settings: Settings = app.state.settings

    report = validate_configuration(settings)
    for error in report["errors"]:
        logger.error(error)
    for warning in report["warnings"]:
        logger.warning(warning)

    logger.info(
        "Starting auth service",
        extra={
            "host": settings.REM_AUTH_HTTP_HOST,
            "port": settings.REM_AUTH_HTTP_PORT,
            "session_ttl": settings.REM_AUTH_SESSION_TTL,
            "csrf_token_ttl": settings.REM_AUTH_CSRF_TOKEN_TTL,
        },
    )

    yield

    logger.info("Shutting down auth service")
    await app.state.kv_store.close()
    if app.state.http_client is not None:
        await app.state.http_client.aclose()


def create_app(
    settings: Optional[Settings] = None,
    store: Optional[KeyValueStore] = None,
    http_client: Optional[httpx.AsyncClient] = None,
) -> FastAPI:
    """
    Application factory function.

    Args:
        settings: Configuration; loaded from the environment if omitted
        store: Shared key-value store; Redis at REM_REDIS_URL if omitted
        http_client: Client for public key fetches; a short-lived client per
            fetch if omitted

    Returns:
        FastAPI: Configured application instance
    """
    settings = settings or get_settings()
    setup_logging(settings.LOG_LEVEL)

    app = FastAPI(
        title="REM Auth",
        description="AD Auth relying party: login flow, session user, logout",
        version=SERVICE_VERSION,
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.kv_store = store if store is not None else RedisKeyValueStore(settings.REM_REDIS_URL)
    app.state.http_client = http_client

    app.add_middleware(ServerSideSessionMiddleware)

    app.include_router(auth_router)

    @app.get("/health", tags=["System"], response_model=HealthResponse)
    async def health_check() -> HealthResponse:
        return HealthResponse(status="ok", service=SERVICE_NAME, version=SERVICE_VERSION)

    @app.get("/", tags=["System"])
    async def root() -> Dict[str, Any]:
        return {
            "service": SERVICE_NAME,
            "version": SERVICE_VERSION,
            "endpoints": {
                "health": "/health",
                "login": "/auth/adauth",
                "userinfo": "/auth/userinfo",
                "logout": "/auth/logout",
            },
        }

    @app.exception_handler(AuthError)
    async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error(
                f"{type(exc).__name__}: {exc.detail}",
                extra={"path": request.url.path, "method": request.method},
            )
        headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else None
        body = ErrorResponse(error=exc.code, message=exc.message)
        return JSONResponse(
            status_code=exc.status_code,
            content=body.model_dump(mode="json", exclude_none=True),
            headers=headers,
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Log unhandled errors and return a generic 500."""
        logger.error(
            f"Unhandled exception: {str(exc)}",
            extra={
                "path": request.url.path,
                "method": request.method,
                "exception_type": type(exc).__name__,
            },
            exc_info=True,
        )
        body = ErrorResponse(error="internal_server_error", message="An unexpected error occurred")
        return JSONResponse(status_code=500, content=body.model_dump(mode="json", exclude_none=True))

    return app


# Create app instance for uvicorn
app = create_app()


if __name__ == "__main__":
    settings = get_settings()

    uvicorn.run(
        "remauth.main:app",
        host=settings.REM_AUTH_HTTP_HOST,
        port=settings.REM_AUTH_HTTP_PORT,
        log_level=settings.LOG_LEVEL.lower(),
    )
