"""FastAPI application exposing the invocation layer."""

import logging
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator

# Load environment variables from .env file
from dotenv import load_dotenv
load_dotenv()

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from quotagate.api.routes import router as api_router
from quotagate.config import settings
from quotagate.layer import InvocationLayer, get_layer, shutdown_layer
from quotagate.maintenance import MaintenanceScheduler, StorePruner

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

VERSION = "0.1.0"


def create_app(
    layer: InvocationLayer | None = None,
    enable_maintenance: bool = True,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        layer: Invocation layer to serve (defaults to the process-wide one)
        enable_maintenance: Run the periodic store pruning job
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        """Application lifespan events."""
        # Startup
        logger.info("Starting quotagate API...")
        owns_layer = app.state.layer is None
        if owns_layer:
            app.state.layer = get_layer()

        maintenance = None
        if enable_maintenance:
            maintenance = MaintenanceScheduler(
                StorePruner(app.state.layer.ledger, app.state.layer.cache),
                interval_minutes=settings.maintenance_interval_minutes,
            )
            maintenance.start()
        yield
        # Shutdown
        logger.info("Shutting down quotagate API...")
        if maintenance is not None:
            maintenance.shutdown()
        if owns_layer:
            await shutdown_layer()
            app.state.layer = None

    app = FastAPI(
        title="quotagate",
        description="Quota-aware resilient invocation layer for generative AI tiers",
        version=VERSION,
        lifespan=lifespan,
    )
    app.state.layer = layer

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Request timing middleware
    @app.middleware("http")
    async def add_timing_header(request: Request, call_next):
        start_time = time.perf_counter()
        response = await call_next(request)
        process_time = (time.perf_counter() - start_time) * 1000
        response.headers["X-Process-Time-Ms"] = f"{process_time:.2f}"
        return response

    app.include_router(api_router, prefix="/v1")

    # Health check
    @app.get("/health")
    async def health_check():
        store = app.state.layer.store if app.state.layer is not None else None
        store_health = await store.health_check() if store is not None else None
        return {"status": "healthy", "version": VERSION, "store": store_health}

    @app.get("/")
    async def root():
        return {
            "name": "quotagate",
            "version": VERSION,
            "docs": "/docs",
            "openapi": "/openapi.json",
        }

    return app


# Create app instance
app = create_app()
