from contextlib import asynccontextmanager
from datetime import datetime, timezone
import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text

from fulfillment.config import settings
from fulfillment.api.v1.router import api_router
from fulfillment.core.exceptions import (
    ConcurrentReservationConflict,
    InfeasiblePlanError,
    ReferenceNotFoundError,
    RoutingProviderError,
)
from fulfillment.database import init_db, async_session_factory
from fulfillment.jobs.scheduler import start_scheduler, shutdown_scheduler, get_job_status

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Startup: create tables, start the auto-allocation scheduler when enabled.
    Shutdown: stop the scheduler.
    """
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}")
    await init_db()

    if settings.AUTO_ALLOCATE_ENABLED:
        start_scheduler()

    yield

    shutdown_scheduler()
    logger.info("Shutting down...")


OPENAPI_TAGS = [
    {"name": "Allocation", "description": "Candidate generation, global planning and atomic allocation of orders"},
    {"name": "Stock", "description": "Stock loading, inventory fill levels and order reservations"},
    {"name": "Health", "description": "Liveness and database connectivity"},
]

app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Allocates order items to van and warehouse stock and plans the van movements that deliver them.",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_tags=OPENAPI_TAGS,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_router)


def _error_response(status_code: int, exc: Exception) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"detail": str(exc), "error": type(exc).__name__},
    )


@app.exception_handler(InfeasiblePlanError)
async def infeasible_plan_handler(request: Request, exc: InfeasiblePlanError):
    return _error_response(status.HTTP_422_UNPROCESSABLE_ENTITY, exc)


@app.exception_handler(ConcurrentReservationConflict)
async def reservation_conflict_handler(request: Request, exc: ConcurrentReservationConflict):
    return _error_response(status.HTTP_409_CONFLICT, exc)


@app.exception_handler(ReferenceNotFoundError)
async def reference_not_found_handler(request: Request, exc: ReferenceNotFoundError):
    return _error_response(status.HTTP_404_NOT_FOUND, exc)


@app.exception_handler(RoutingProviderError)
async def routing_provider_handler(request: Request, exc: RoutingProviderError):
    logger.error(f"Routing provider failure on {request.method} {request.url.path}: {exc}")
    return _error_response(status.HTTP_502_BAD_GATEWAY, exc)


@app.exception_handler(ValueError)
async def value_error_handler(request: Request, exc: ValueError):
    return _error_response(status.HTTP_400_BAD_REQUEST, exc)


@app.get("/health", tags=["Health"])
async def health_check():
    """Health check endpoint with database validation."""
    health_status = {
        "status": "healthy",
        "app": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "checks": {
            "database": "unknown"
        },
        "jobs": get_job_status(),
    }

    try:
        async with async_session_factory() as session:
            result = await session.execute(text("SELECT 1"))
            result.scalar()
            health_status["checks"]["database"] = "connected"
    except Exception as e:
        health_status["status"] = "unhealthy"
        health_status["checks"]["database"] = f"error: {str(e)}"

    if health_status["status"] == "unhealthy":
        return JSONResponse(status_code=503, content=health_status)

    return health_status
