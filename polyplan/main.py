"""
Polyhouse Planner API - Main FastAPI Application
"""
import logging
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from polyplan import __version__
from polyplan.api import parcels_router, planning_router
from polyplan.api.dependencies import build_result_store
from polyplan.config import get_settings
from polyplan.services.planning_jobs import PlanningJobManager
from polyplan.services.planning_service import PlanningService

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler for startup/shutdown events.
    """
    # Startup
    logger.info("Starting Polyhouse Planner API...")
    logger.info(f"Environment: debug={settings.debug}, result store={settings.result_store_backend}")

    if settings.result_store_backend == "database":
        from polyplan.database import check_db_connection, create_tables

        if await check_db_connection():
            await create_tables()
            logger.info("Database connection verified")
        else:
            logger.warning("Database connection failed - stored plans will not be available")

    app.state.result_store = build_result_store(settings)
    app.state.planning_service = PlanningService(
        app.state.result_store,
        timeout_s=settings.planning_timeout_s,
    )
    app.state.job_manager = PlanningJobManager(
        app.state.planning_service,
        ttl_seconds=settings.job_ttl_s,
        max_finished=settings.job_max_finished,
    )

    yield

    # Shutdown
    logger.info("Shutting down Polyhouse Planner API...")
    await app.state.job_manager.shutdown()


# Create FastAPI application
app = FastAPI(
    title=settings.app_name,
    description="Polyhouse placement optimizer for agricultural land parcels",
    version=__version__,
    lifespan=lifespan,
)

# =============================================================================
# CORS Middleware (must be added early, before routes)
# =============================================================================

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
    allow_headers=["*"],
    expose_headers=["*"],
)

# =============================================================================
# Exception Handlers (with CORS headers for cross-origin error responses)
# =============================================================================


def _get_cors_headers(request: Request) -> dict[str, str]:
    """Get CORS headers based on request origin."""
    origin = request.headers.get("origin", "")
    if origin in settings.cors_origins:
        return {
            "Access-Control-Allow-Origin": origin,
            "Access-Control-Allow-Credentials": "true",
            "Access-Control-Allow-Methods": "GET, POST, DELETE, OPTIONS",
            "Access-Control-Allow-Headers": "*",
        }
    return {}


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Handle HTTP exceptions with consistent JSON response and CORS headers."""
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": exc.detail,
            "status_code": exc.status_code,
        },
        headers=_get_cors_headers(request),
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unexpected exceptions with CORS headers."""
    logger.exception(f"Unexpected error: {exc}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": "Internal server error",
            "status_code": 500,
        },
        headers=_get_cors_headers(request),
    )


# =============================================================================
# Health Check
# =============================================================================


@app.get("/health", tags=["Health"])
async def health() -> dict[str, str]:
    """Liveness check; 200 while the process is serving requests."""
    return {"status": "ok"}


@app.get("/health/ready", tags=["Health"])
async def health_ready() -> dict[str, Any]:
    """
    Readiness check for the plan store.

    Returns 503 when the database backend is configured but unreachable.
    """
    if settings.result_store_backend == "database":
        from polyplan.database import check_db_connection

        if not await check_db_connection():
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail="Plan store database is not reachable",
            )

    return {
        "status": "ready",
        "result_store": settings.result_store_backend,
        "planning_timeout_s": settings.planning_timeout_s,
    }


# =============================================================================
# API Info
# =============================================================================


@app.get("/", tags=["Info"])
async def root() -> dict[str, Any]:
    """API root - returns basic info."""
    return {
        "name": settings.app_name,
        "version": __version__,
        "docs": "/docs",
    }


# =============================================================================
# API Routes
# =============================================================================

app.include_router(planning_router)
app.include_router(parcels_router)
