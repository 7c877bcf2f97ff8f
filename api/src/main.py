"""
FastAPI application entry point for the Business Manager API.

This module provides the main FastAPI application with:
- Generic CRUD routes for every business entity
- PIN login sessions and server-side permission checks
- Settings hydration at startup
- Request logging with correlation IDs
- Prometheus metrics
- CORS, security headers, and login rate limiting
- Health and readiness endpoints
- Graceful startup and shutdown
"""

import time
import uuid
import structlog
import uvicorn
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Dict, Any, Optional

from fastapi import FastAPI, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, PlainTextResponse
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from prometheus_client import Counter, Histogram, Gauge, generate_latest, CONTENT_TYPE_LATEST

from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from api.src.config import get_settings, Settings
from api.src.dependencies import AppState, init_db_pool
from api.src.errors import AppError, error_body, safe_details
from api.src.models.entities import ENTITIES
from api.src.repositories.memory import (
    InMemoryEntityRepository,
    InMemorySettingsRepository,
    InMemoryUserRepository,
)
from api.src.repositories.postgres import PostgresEntityRepository, create_schema
from api.src.repositories.settings_repo import SettingsRepository
from api.src.repositories.user_repo import UserRepository
from api.src.routers import auth, notifications, users
from api.src.routers import settings as settings_router
from api.src.routers.entities import build_entity_routers
from api.src.services.auth_service import AuthService
from api.src.services.notification_service import NotificationService
from api.src.services.settings_service import (
    HttpSettingsSource,
    RepositorySettingsSource,
    SettingsStore,
)
from shared.logging import bind_context, clear_context, configure_logging

# Initialize logger
logger = structlog.get_logger(__name__)

# ============================================================================
# Prometheus Metrics
# ============================================================================

http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status"]
)

http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"]
)

http_requests_in_progress = Gauge(
    "http_requests_in_progress",
    "HTTP requests currently in progress",
    ["method"]
)

database_connections_active = Gauge(
    "database_connections_active",
    "Active database connections"
)

database_connections_idle = Gauge(
    "database_connections_idle",
    "Idle database connections in pool"
)


def update_pool_metrics(state: AppState) -> None:
    if state.db_pool:
        database_connections_active.set(state.db_pool.get_size())
        database_connections_idle.set(state.db_pool.get_idle_size())


# ============================================================================
# Lifespan Management
# ============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan manager for startup and shutdown events.

    Handles:
    - Record store initialization (PostgreSQL pool or in-memory)
    - Service initialization and bootstrap admin creation
    - Settings hydration
    - Graceful shutdown and resource cleanup
    """
    state: AppState = app.state.services
    settings = state.settings

    logger.info(
        "application_starting",
        app_name=settings.app_name,
        version=settings.app_version,
        environment=settings.environment,
        storage_backend=settings.storage_backend
    )

    # ========================================================================
    # Startup: Initialize Resources
    # ========================================================================

    try:
        if settings.uses_database:
            state.db_pool = await init_db_pool(settings)

            async with state.db_pool.acquire() as conn:
                version = await conn.fetchval("SELECT version()")
                logger.info("database_connected", postgres_version=version)

            if settings.database_init_schema:
                await create_schema(state.db_pool)

            state.repositories = {
                spec.name: PostgresEntityRepository(state.db_pool, spec) for spec in ENTITIES
            }
            state.user_repo = UserRepository(state.db_pool)
            state.settings_repo = SettingsRepository(state.db_pool)
        else:
            logger.warning("using_in_memory_storage")
            state.repositories = {spec.name: InMemoryEntityRepository(spec) for spec in ENTITIES}
            state.user_repo = InMemoryUserRepository()
            state.settings_repo = InMemorySettingsRepository()

        logger.info("initializing_services")
        state.auth_service = AuthService(state.user_repo, settings)
        state.settings_store = SettingsStore(settings.settings_cache_path)
        state.notification_service = NotificationService(
            state.repositories,
            warning_days=settings.notification_residence_warning_days,
            critical_days=settings.notification_residence_critical_days
        )

        await state.auth_service.ensure_bootstrap_admin()

        if settings.settings_hydrate_on_startup:
            if settings.settings_remote_url:
                source = HttpSettingsSource(
                    settings.settings_remote_url,
                    timeout=settings.settings_remote_timeout,
                    api_prefix=settings.api_prefix
                )
            else:
                source = RepositorySettingsSource(state.settings_repo)
            await state.settings_store.hydrate(source)

        update_pool_metrics(state)

        logger.info(
            "application_started",
            app_name=settings.app_name,
            version=settings.app_version,
            environment=settings.environment
        )

        yield

    except Exception as e:
        logger.error("application_startup_failed", error=str(e), exc_info=True)
        raise

    # ========================================================================
    # Shutdown: Cleanup Resources
    # ========================================================================

    finally:
        logger.info("application_shutting_down")

        if state.db_pool:
            logger.info("closing_database_pool")
            await state.db_pool.close()
            state.db_pool = None
            logger.info("database_pool_closed")

        logger.info("application_shutdown_complete")


# ============================================================================
# Middleware
# ============================================================================

class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Middleware for request logging, metrics, and correlation IDs."""

    async def dispatch(self, request: Request, call_next):
        correlation_id = request.headers.get("X-Correlation-ID") or str(uuid.uuid4())
        method = request.method
        path = request.url.path
        client_ip = request.client.host if request.client else "unknown"

        bind_context(correlation_id=correlation_id)
        http_requests_in_progress.labels(method=method).inc()
        start_time = time.time()

        logger.info("request_started", method=method, path=path, client_ip=client_ip)

        try:
            response = await call_next(request)
            duration = time.time() - start_time

            # route templates keep label cardinality bounded
            route = request.scope.get("route")
            endpoint = getattr(route, "path", "unmatched")

            http_requests_total.labels(
                method=method,
                endpoint=endpoint,
                status=response.status_code
            ).inc()
            http_request_duration_seconds.labels(method=method, endpoint=endpoint).observe(duration)

            logger.info(
                "request_completed",
                method=method,
                path=path,
                status_code=response.status_code,
                duration=f"{duration:.3f}s"
            )

            response.headers["X-Correlation-ID"] = correlation_id
            return response

        except Exception as e:
            duration = time.time() - start_time
            logger.error(
                "request_failed",
                method=method,
                path=path,
                error=str(e),
                duration=f"{duration:.3f}s",
                exc_info=True
            )
            raise

        finally:
            http_requests_in_progress.labels(method=method).dec()
            clear_context()


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Middleware to add security headers to responses."""

    def __init__(self, app, settings: Settings):
        super().__init__(app)
        self.settings = settings

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)

        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"

        if self.settings.security_require_https:
            response.headers["Strict-Transport-Security"] = (
                f"max-age={self.settings.security_hsts_max_age}; includeSubDomains"
            )

        return response


# ============================================================================
# Exception Handlers
# ============================================================================

def _validation_details(exc: RequestValidationError) -> str:
    messages = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ())[1:])
        messages.append(f"{location}: {error.get('msg')}" if location else str(error.get("msg")))
    return "; ".join(messages)


def register_exception_handlers(app: FastAPI, settings: Settings) -> None:
    """Render every failure as the JSON error envelope."""

    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError):
        if exc.status_code >= 500:
            logger.error(
                "request_operation_failed",
                path=request.url.path,
                error=exc.message,
                cause=str(exc.__cause__) if exc.__cause__ else None
            )
            details = safe_details(exc, settings.is_production)
        else:
            logger.warning(
                "request_rejected",
                path=request.url.path,
                status_code=exc.status_code,
                error=exc.message
            )
            details = exc.details

        return JSONResponse(status_code=exc.status_code, content=error_body(exc.message, details))

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        in_body = any(error.get("loc", ("",))[0] == "body" for error in exc.errors())
        logger.warning("validation_error", path=request.url.path, errors=len(exc.errors()))
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=error_body(
                "Invalid request body" if in_body else "Invalid request",
                _validation_details(exc)
            )
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        logger.warning(
            "http_exception",
            path=request.url.path,
            status_code=exc.status_code,
            detail=exc.detail
        )
        return JSONResponse(
            status_code=exc.status_code,
            content=error_body(str(exc.detail)),
            headers=getattr(exc, "headers", None)
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        logger.error(
            "unexpected_exception",
            path=request.url.path,
            error=str(exc),
            exc_info=True
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=error_body("Internal server error", safe_details(exc, settings.is_production))
        )

    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)


# ============================================================================
# Health, Readiness and Metrics Endpoints
# ============================================================================

def register_operational_routes(app: FastAPI, settings: Settings) -> None:

    @app.get("/health", tags=["Health"], response_class=JSONResponse)
    async def health_check() -> Dict[str, Any]:
        """
        Health check endpoint.

        Returns basic health status without checking dependencies.
        """
        return {
            "status": "healthy",
            "service": settings.app_name,
            "version": settings.app_version,
            "environment": settings.environment
        }

    @app.get("/ready", tags=["Health"], response_class=JSONResponse)
    async def readiness_check(request: Request) -> JSONResponse:
        """
        Readiness check endpoint.

        Verifies the record store answers before traffic is routed here.
        """
        state: AppState = request.app.state.services
        checks = {"storage": "unknown"}

        if not settings.uses_database:
            checks["storage"] = "healthy" if state.repositories else "unhealthy"
        else:
            try:
                async with state.db_pool.acquire() as conn:
                    await conn.fetchval("SELECT 1")
                checks["storage"] = "healthy"
            except Exception as e:
                logger.error("database_health_check_failed", error=str(e))
                checks["storage"] = "unhealthy"

        update_pool_metrics(state)

        all_healthy = all(value == "healthy" for value in checks.values())
        return JSONResponse(
            status_code=status.HTTP_200_OK if all_healthy else status.HTTP_503_SERVICE_UNAVAILABLE,
            content={
                "status": "ready" if all_healthy else "not_ready",
                "service": settings.app_name,
                "version": settings.app_version,
                "checks": checks
            }
        )

    if settings.metrics_enabled:
        @app.get("/metrics", tags=["Monitoring"], response_class=PlainTextResponse)
        async def metrics(request: Request) -> Response:
            """Prometheus metrics endpoint."""
            update_pool_metrics(request.app.state.services)
            return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


# ============================================================================
# FastAPI Application
# ============================================================================

def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        settings: Settings to run with (defaults to the cached environment settings)
    """
    settings = settings or get_settings()

    configure_logging(
        log_level=settings.log_level,
        json_logs=settings.log_format == "json",
        service_name=settings.app_name,
        environment=settings.environment
    )

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description=(
            "Business management API: customers, vendors, vehicles, employees, "
            "quotations, invoices, purchase orders, receipts, payslips and settings."
        ),
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
        debug=settings.debug,
    )
    app.state.services = AppState(settings)

    auth.configure_rate_limit(settings)
    app.state.limiter = auth.limiter

    # Middleware: the last one added runs first
    if settings.security_headers_enabled:
        app.add_middleware(SecurityHeadersMiddleware, settings=settings)
    app.add_middleware(GZipMiddleware, minimum_size=1000)
    if settings.cors_enabled:
        logger.info("configuring_cors", origins=settings.cors_origins)
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.cors_origins,
            allow_credentials=settings.cors_allow_credentials,
            allow_methods=settings.cors_allow_methods,
            allow_headers=settings.cors_allow_headers,
        )
    app.add_middleware(RequestLoggingMiddleware)

    register_exception_handlers(app, settings)
    register_operational_routes(app, settings)

    # ========================================================================
    # API Router Registration
    # ========================================================================

    app.include_router(auth.router, prefix=settings.api_prefix)
    app.include_router(users.router, prefix=settings.api_prefix)
    app.include_router(settings_router.router, prefix=settings.api_prefix)
    app.include_router(notifications.router, prefix=settings.api_prefix)
    for router in build_entity_routers():
        app.include_router(router, prefix=settings.api_prefix)

    return app


app = create_app()


# ============================================================================
# Application Entry Point
# ============================================================================

if __name__ == "__main__":
    settings = get_settings()

    logger.info(
        "starting_uvicorn_server",
        host=settings.host,
        port=settings.port,
        reload=settings.debug
    )

    uvicorn.run(
        "api.src.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
        access_log=True,
    )
