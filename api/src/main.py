"""
FastAPI application entry point for the Food Delivery Marketplace API.

This module provides the main FastAPI application with:
- Health and readiness endpoints
- Routers for auth, customers, vendors, delivery partners, uploads and admin
- Request/response logging and audit trails
- Prometheus metrics
- OpenTelemetry distributed tracing
- CORS, security headers, and rate limiting
- MongoDB client and index management
- Graceful startup and shutdown
"""

import time
import uuid
from contextlib import asynccontextmanager
from typing import AsyncGenerator

import structlog
import uvicorn
from botocore.exceptions import BotoCoreError, ClientError
from fastapi import FastAPI, Request, Response, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from opentelemetry import trace
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Gauge, Histogram
from pymongo.errors import PyMongoError
from slowapi.errors import RateLimitExceeded
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware

from api.src.config import Settings, get_settings
from api.src.dependencies import (
    close_mongo,
    get_database,
    get_storage_service,
    init_mongo,
)
from api.src.exceptions import MarketplaceError
from api.src.middleware.audit import AuditMiddleware
from api.src.rate_limit import limiter
from api.src.repositories.audit_repo import AuditRepository
from api.src.repositories.customer_repo import CustomerProfileRepository, PincodeRepository
from api.src.repositories.delivery_partner_repo import DeliveryPartnerRepository
from api.src.repositories.order_repo import OrderRepository
from api.src.repositories.user_repo import UserRepository
from api.src.repositories.vendor_repo import MenuRepository, VendorRepository
from api.src.routers import (
    admin,
    auth,
    catalog,
    customer,
    delivery_partner,
    profile,
    uploads,
    vendor,
)
from shared.logging.structured_logger import bind_context, configure_logging, unbind_context
from shared.metrics.prometheus_metrics import get_metrics_handler, setup_metrics
from shared.models import HealthStatus, ReadinessInfo, ServiceInfo
from shared.tracing.otel_config import configure_tracing

# Initialize logger
logger = structlog.get_logger(__name__)

# Get settings
settings: Settings = get_settings()

STARTED_AT = time.monotonic()

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

# Domain metrics share the default registry
setup_metrics()
render_metrics = get_metrics_handler()

INDEXED_REPOSITORIES = (
    UserRepository,
    AuditRepository,
    VendorRepository,
    MenuRepository,
    OrderRepository,
    DeliveryPartnerRepository,
    CustomerProfileRepository,
    PincodeRepository,
)

# ============================================================================
# Lifespan Management
# ============================================================================


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan manager for startup and shutdown events.

    Handles:
    - Logging and OpenTelemetry tracing setup
    - MongoDB client initialization and index creation
    - Image bucket creation when storage is enabled
    - Graceful shutdown and resource cleanup
    """
    configure_logging(
        log_level=settings.log_level,
        json_logs=settings.log_format == "json",
        service_name="food-delivery-api",
        environment=settings.environment,
    )
    logger.info(
        "application_starting",
        app_name=settings.app_name,
        version=settings.app_version,
        environment=settings.environment
    )

    # ========================================================================
    # Startup: Initialize Resources
    # ========================================================================

    try:
        if settings.tracing_enabled:
            logger.info("initializing_tracing", otlp_endpoint=settings.tracing_otlp_endpoint)
            configure_tracing(
                service_name="food-delivery-api",
                otlp_endpoint=settings.tracing_otlp_endpoint,
                sampling_rate=settings.tracing_sample_rate,
                service_version=settings.app_version,
            )
            logger.info("tracing_initialized")

        logger.info("initializing_database", database=settings.mongodb_database)
        await init_mongo()

        db = get_database()
        for repository_cls in INDEXED_REPOSITORIES:
            await repository_cls(db).ensure_indexes()
        logger.info("database_indexes_ensured", collections=len(INDEXED_REPOSITORIES))

        storage = get_storage_service()
        if storage.enabled:
            try:
                await storage.ensure_bucket()
            except (ClientError, BotoCoreError) as e:
                logger.warning("storage_bucket_unavailable", bucket=storage.bucket, error=str(e))

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

        await close_mongo()

        if settings.tracing_enabled:
            logger.info("shutting_down_tracing")
            provider = trace.get_tracer_provider()
            if hasattr(provider, "shutdown"):
                provider.shutdown()

        logger.info("application_shutdown_complete")


# ============================================================================
# FastAPI Application
# ============================================================================

app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description=(
        "Food delivery marketplace API. Customers order from restaurants, "
        "vendors manage menus and orders, delivery partners deliver them."
    ),
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
    debug=settings.debug,
)

app.state.limiter = limiter

# ============================================================================
# Middleware Configuration
# ============================================================================

# CORS Middleware
if settings.cors_enabled:
    logger.info("configuring_cors", origins=settings.cors_origins)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=settings.cors_allow_methods,
        allow_headers=settings.cors_allow_headers,
        max_age=settings.cors_max_age,
    )

# GZip Compression Middleware
app.add_middleware(GZipMiddleware, minimum_size=1000)

# Audit trail (runs inside request logging so the correlation ID is set)
app.add_middleware(AuditMiddleware)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Middleware for request logging, correlation IDs and HTTP metrics."""

    async def dispatch(self, request: Request, call_next):
        correlation_id = request.headers.get("X-Correlation-ID") or str(uuid.uuid4())
        request.state.correlation_id = correlation_id
        bind_context(correlation_id=correlation_id)

        method = request.method
        path = request.url.path
        client_ip = request.client.host if request.client else "unknown"

        http_requests_in_progress.labels(method=method).inc()
        start_time = time.perf_counter()

        logger.debug("request_started", method=method, path=path, client_ip=client_ip)

        try:
            response = await call_next(request)

            duration = time.perf_counter() - start_time
            # label by route template, not raw path
            route = request.scope.get("route")
            endpoint = getattr(route, "path", None) or "unmatched"

            http_requests_total.labels(
                method=method,
                endpoint=endpoint,
                status=response.status_code
            ).inc()
            http_request_duration_seconds.labels(
                method=method,
                endpoint=endpoint
            ).observe(duration)

            logger.info(
                "request_completed",
                method=method,
                path=path,
                status_code=response.status_code,
                duration=f"{duration:.3f}s",
            )

            response.headers["X-Correlation-ID"] = correlation_id
            return response

        except Exception as e:
            duration = time.perf_counter() - start_time
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
            unbind_context("correlation_id")


app.add_middleware(RequestLoggingMiddleware)


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Middleware to add security headers to responses."""

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)

        if settings.security_headers_enabled:
            response.headers["X-Content-Type-Options"] = "nosniff"
            response.headers["X-Frame-Options"] = "DENY"
            response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"

            if settings.security_csp_enabled:
                response.headers["Content-Security-Policy"] = "default-src 'self'"

            if settings.is_production:
                response.headers["Strict-Transport-Security"] = (
                    f"max-age={settings.security_hsts_max_age}; includeSubDomains"
                )

        return response


app.add_middleware(SecurityHeadersMiddleware)

# OpenTelemetry Instrumentation
if settings.tracing_enabled:
    FastAPIInstrumentor.instrument_app(app, excluded_urls="health,ready,metrics")

# ============================================================================
# Exception Handlers
# ============================================================================


@app.exception_handler(MarketplaceError)
async def marketplace_exception_handler(request: Request, exc: MarketplaceError):
    """Render domain errors raised by services."""
    log = logger.error if exc.status_code >= 500 else logger.info
    log(
        "request_rejected",
        path=request.url.path,
        status_code=exc.status_code,
        error_code=exc.error_code,
        detail=exc.detail,
    )
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Handle request validation errors."""
    errors = jsonable_encoder(exc.errors())
    logger.info(
        "validation_error",
        path=request.url.path,
        errors=errors
    )
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"detail": errors, "error_code": "VALIDATION_ERROR"}
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """Handle HTTP exceptions."""
    logger.info(
        "http_exception",
        path=request.url.path,
        status_code=exc.status_code,
        detail=exc.detail
    )
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RateLimitExceeded)
async def rate_limit_exception_handler(request: Request, exc: RateLimitExceeded):
    logger.warning(
        "rate_limit_exceeded",
        path=request.url.path,
        client_ip=request.client.host if request.client else "unknown",
        limit=str(exc.detail),
    )
    return JSONResponse(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        content={
            "detail": f"Too many requests: {exc.detail}",
            "error_code": "RATE_LIMITED",
        },
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Handle unexpected exceptions."""
    logger.error(
        "unexpected_exception",
        path=request.url.path,
        error=str(exc),
        exc_info=True
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal server error", "error_code": "INTERNAL_ERROR"}
    )


# ============================================================================
# Health and Readiness Endpoints
# ============================================================================


@app.get("/health", tags=["Health"], response_model=ServiceInfo)
async def health_check() -> ServiceInfo:
    """
    Health check endpoint.

    Returns basic health status without checking dependencies.
    Use for container health checks.
    """
    return ServiceInfo(
        status=HealthStatus.HEALTHY,
        service=settings.app_name,
        version=settings.app_version,
        environment=settings.environment,
        uptime_seconds=round(time.monotonic() - STARTED_AT, 3),
    )


@app.get(
    "/ready",
    tags=["Health"],
    response_model=ReadinessInfo,
    responses={503: {"model": ReadinessInfo, "description": "Not ready"}},
)
async def readiness_check():
    """
    Readiness check endpoint.

    Checks MongoDB connectivity; returns 503 until the database answers.
    """
    checks = {"database": HealthStatus.UNHEALTHY}

    try:
        await get_database().command("ping")
        checks["database"] = HealthStatus.HEALTHY
    except (PyMongoError, RuntimeError) as e:
        logger.error("database_health_check_failed", error=str(e))

    all_healthy = all(check == HealthStatus.HEALTHY for check in checks.values())
    body = ReadinessInfo(
        status="ready" if all_healthy else "not_ready",
        service=settings.app_name,
        version=settings.app_version,
        checks=checks,
    )
    return JSONResponse(
        status_code=status.HTTP_200_OK if all_healthy else status.HTTP_503_SERVICE_UNAVAILABLE,
        content=body.model_dump(mode="json"),
    )


# ============================================================================
# Metrics Endpoint
# ============================================================================


if settings.metrics_enabled:

    @app.get(settings.metrics_endpoint, tags=["Monitoring"], response_class=PlainTextResponse)
    async def metrics() -> Response:
        """Prometheus metrics endpoint."""
        return Response(content=render_metrics(), media_type=CONTENT_TYPE_LATEST)


# ============================================================================
# API Router Registration
# ============================================================================

for module in (auth, customer, catalog, profile, vendor, delivery_partner, uploads, admin):
    app.include_router(module.router, prefix=settings.api_prefix)

# ============================================================================
# Application Entry Point
# ============================================================================

if __name__ == "__main__":
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
        access_log=False,
    )
