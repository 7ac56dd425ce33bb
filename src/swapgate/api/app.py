"""FastAPI application factory."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from swapgate.config import get_settings
from swapgate.orders.database import close_db, init_db

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    settings = get_settings()

    # Startup
    await init_db()
    scheduler = None
    if settings.coordinator_enabled:
        from swapgate.coordinator.factory import build_coordinator, build_scheduler

        scheduler = build_scheduler(build_coordinator())
        scheduler.start()
    else:
        logger.info("Coordinator disabled - orders will not progress in this process")
    app.state.scheduler = scheduler

    yield

    # Shutdown
    if scheduler is not None:
        await scheduler.shutdown()
    await close_db()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="Swapgate API",
        description="Custodial ADA/ETH swap service",
        version="0.1.0",
        lifespan=lifespan,
        debug=settings.debug,
    )
    app.state.scheduler = None

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if settings.debug else [],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Register routes
    from swapgate.api.routers import admin
    from swapgate.api.routes import health, orders

    app.include_router(health.router, tags=["Health"])
    app.include_router(orders.router, prefix="/api", tags=["Orders"])
    app.include_router(admin.router, tags=["Admin"])

    return app
