"""
ArchiRoutes Backend: FastAPI Application Factory
=================================================

What:  Creates and configures the FastAPI application instance.
How:   create_app() registers middleware, exception handlers and routers;
       the lifespan builds the shared routing service.
Who:   uvicorn (uvicorn app.main:app) and the endpoint tests.

Application Architecture:
    ┌──────────────────────────────────────────────────────────────┐
    │                        FastAPI App                           │
    │                                                              │
    │  Middleware:  Request ID → Logging → GZip → CORS             │
    │                                                              │
    │  Routes:                                                     │
    │    /api/buildings/duplicates/check · /similar · /nearby      │
    │    /api/routes/build · /api/routes/optimize · /health        │
    │                                                              │
    │  Exception Handlers:                                         │
    │    InvalidInputError→400 │ LookupFailureError→503 │ other→500│
    └──────────────────────────────────────────────────────────────┘

Lifecycle:
    Startup:  logging, configuration check, shared httpx.AsyncClient,
              routing backend + RoutingService on app.state
    Shutdown: close the backend and HTTP client, dispose the DB engine
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import AsyncGenerator

import httpx
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse

from app import __version__
from app.config import settings
from app.database import dispose_engine
from app.exceptions import (
    ArchiRoutesError,
    CircuitBreakerOpenError,
    InvalidInputError,
    LookupFailureError,
)
from app.middleware.logging import RequestLoggingMiddleware
from app.middleware.request_id import RequestIDMiddleware, request_id_var
from app.routes import buildings, health, routing
from app.services.routing_service import RoutingService, build_routing_backend

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════
# Logging Configuration
# ══════════════════════════════════════════════════════════════════════════

def setup_logging() -> None:
    """
    Configures the root logger once at startup.

    Format: 2024-01-15T12:00:00 [INFO] app.services.routing_service: message
    """
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )

    # Per-request noise from third-party libraries
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


# ══════════════════════════════════════════════════════════════════════════
# Application Lifespan
# ══════════════════════════════════════════════════════════════════════════

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    # ── Startup ───────────────────────────────────────────────────────────
    setup_logging()
    logger.info("=" * 60)
    logger.info("ArchiRoutes Backend %s starting up...", __version__)

    try:
        settings.validate_required_for_production()
    except ValueError as e:
        # Not fatal: routing falls back to straight lines
        logger.error("Configuration error: %s", str(e))

    http_client = httpx.AsyncClient(
        timeout=httpx.Timeout(settings.routing_timeout_seconds),
        headers={"User-Agent": f"archiroutes-backend/{__version__}"},
    )
    backend = build_routing_backend(settings, http_client)
    app.state.routing_service = RoutingService(backend)
    logger.info("Routing provider: %s", backend.name)

    logger.info("Server ready at http://%s:%d", settings.backend_host, settings.backend_port)
    logger.info("=" * 60)

    yield

    # ── Shutdown ──────────────────────────────────────────────────────────
    logger.info("ArchiRoutes Backend shutting down...")
    await backend.aclose()
    await http_client.aclose()
    await dispose_engine()
    logger.info("Shutdown complete.")


# ══════════════════════════════════════════════════════════════════════════
# Exception Handlers
# ══════════════════════════════════════════════════════════════════════════

def register_exception_handlers(app: FastAPI) -> None:
    """
    Maps escaped exceptions to structured JSON error responses.

    Handler hierarchy:
        InvalidInputError        → 400 (caller can fix the input)
        CircuitBreakerOpenError  → 503 with Retry-After
        LookupFailureError       → 503 (services normally absorb these)
        ArchiRoutesError (base)  → 500
        Exception (fallback)     → 500

    Responses never include stack traces or SQL; those are logged server-side.
    """

    @app.exception_handler(InvalidInputError)
    async def handle_invalid_input(request: Request, exc: InvalidInputError):
        rid = request_id_var.get("")
        logger.warning("[%s] Invalid input: %s", rid, exc.message)
        return JSONResponse(
            status_code=400,
            content={
                "error": "invalid_input",
                "message": exc.message,
                "details": exc.context,
                "request_id": rid,
            },
        )

    @app.exception_handler(CircuitBreakerOpenError)
    async def handle_circuit_breaker(request: Request, exc: CircuitBreakerOpenError):
        rid = request_id_var.get("")
        logger.warning("[%s] Circuit breaker open: %s", rid, exc.message)
        return JSONResponse(
            status_code=503,
            content={
                "error": "service_unavailable",
                "message": exc.message,
                "details": {"recovery_time": exc.recovery_time},
                "request_id": rid,
            },
            headers={"Retry-After": str(exc.recovery_time)},
        )

    @app.exception_handler(LookupFailureError)
    async def handle_lookup_failure(request: Request, exc: LookupFailureError):
        rid = request_id_var.get("")
        logger.error("[%s] Lookup failure (%s): %s | Context: %s", rid, exc.source, exc.message, exc.context)
        return JSONResponse(
            status_code=503,
            content={
                "error": "lookup_failure",
                "message": "An upstream service is unavailable. Please try again later.",
                "request_id": rid,
            },
        )

    @app.exception_handler(ArchiRoutesError)
    async def handle_app_error(request: Request, exc: ArchiRoutesError):
        rid = request_id_var.get("")
        logger.error("[%s] Application error: %s | Context: %s", rid, exc.message, exc.context)
        return JSONResponse(
            status_code=500,
            content={
                "error": "server_error",
                "message": "An internal error occurred. Please try again later.",
                "request_id": rid,
            },
        )

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        rid = request_id_var.get("")
        logger.error("[%s] Unexpected error: %s", rid, str(exc), exc_info=True)
        return JSONResponse(
            status_code=500,
            content={
                "error": "internal_server_error",
                "message": "An unexpected error occurred. Please try again or contact support.",
                "request_id": rid,
            },
        )


# ══════════════════════════════════════════════════════════════════════════
# Application Factory
# ══════════════════════════════════════════════════════════════════════════

def create_app() -> FastAPI:
    app = FastAPI(
        title="ArchiRoutes API",
        description=(
            "Building duplicate detection and route building for the ArchiRoutes "
            "architecture catalog."
        ),
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # ── Middleware ────────────────────────────────────────────────────────
    # Executed in reverse order of addition: RequestID → Logging → GZip → CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID", "Retry-After"],
    )
    # Route geometries are large; small responses are not worth compressing
    app.add_middleware(GZipMiddleware, minimum_size=500)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)

    register_exception_handlers(app)

    app.include_router(buildings.router)
    app.include_router(routing.router)
    app.include_router(health.router)

    return app


app = create_app()
