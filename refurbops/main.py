from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional
import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text

from refurbops.api.v1.router import api_router
from refurbops.context import AppContext
from refurbops.core.exceptions import WorkflowError
from refurbops.jobs.scheduler import create_scheduler, get_job_status, start_scheduler, shutdown_scheduler
from refurbops.config import get_settings

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    Startup:
    - Build the application context (unless one was injected)
    - Create tables
    - Start background scheduler when SCHEDULER_ENABLED

    Shutdown:
    - Stop the scheduler, dispose the engine
    """
    owns_context = getattr(app.state, "ctx", None) is None
    if owns_context:
        app.state.ctx = AppContext.create()
    ctx: AppContext = app.state.ctx
    logger.info(f"Starting {ctx.settings.APP_NAME} v{ctx.settings.APP_VERSION}")

    await ctx.init_db()

    scheduler = None
    if ctx.settings.SCHEDULER_ENABLED:
        scheduler = create_scheduler(ctx)
        start_scheduler(scheduler)
    app.state.scheduler = scheduler

    yield

    # Shutdown
    if scheduler is not None:
        shutdown_scheduler(scheduler)
    if owns_context:
        await ctx.dispose()
    logger.info("Shutting down...")


OPENAPI_TAGS = [
    {"name": "Inward", "description": "Inward batches and device receipt with barcode generation"},
    {"name": "Devices", "description": "Device lookup, inspection, QC and device-level transitions"},
    {"name": "Repair Jobs", "description": "Repair workflow transitions and spares issue"},
    {"name": "Spare Parts", "description": "Spare parts master and stock ledger"},
    {"name": "Cron", "description": "TAT and purchase order aging sweeps (CRON_SECRET protected)"},
]


def create_app(ctx: Optional[AppContext] = None) -> FastAPI:
    settings = ctx.settings if ctx is not None else get_settings()

    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_tags=OPENAPI_TAGS,
    )
    app.state.ctx = ctx
    app.state.scheduler = None

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include API router
    app.include_router(api_router, prefix="/api/v1")

    @app.exception_handler(WorkflowError)
    async def workflow_error_handler(request: Request, exc: WorkflowError):
        """Domain errors carry their own status code; the message is surfaced verbatim."""
        if exc.status_code >= 500:
            logger.error(f"{request.method} {request.url.path}: {exc.code} {exc.message}")
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.exception(f"Unhandled error on {request.method} {request.url.path}: {exc}")
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error", "code": "INTERNAL_ERROR"},
        )

    # Health check endpoint
    @app.get("/health", tags=["Health"])
    async def health_check(request: Request):
        """Health check endpoint with database validation."""
        ctx: AppContext = request.app.state.ctx
        health_status = {
            "status": "healthy",
            "app": ctx.settings.APP_NAME,
            "version": ctx.settings.APP_VERSION,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "checks": {
                "database": "unknown"
            }
        }

        # Check database connectivity
        try:
            async with ctx.session_factory() as session:
                result = await session.execute(text("SELECT 1"))
                result.scalar()
                health_status["checks"]["database"] = "connected"
        except Exception as e:
            health_status["status"] = "unhealthy"
            health_status["checks"]["database"] = f"error: {str(e)}"

        scheduler = request.app.state.scheduler
        if scheduler is not None:
            health_status["checks"]["scheduler"] = get_job_status(scheduler)

        # Return 503 if unhealthy
        if health_status["status"] == "unhealthy":
            return JSONResponse(status_code=503, content=health_status)

        return health_status

    return app
