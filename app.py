"""
app.py — FastAPI application factory and startup lifecycle.

This is the ASGI application object imported by uvicorn. It wires the
repository and services, registers routers, and runs startup initialization.

Usage (via launcher):
    python main.py

Usage (direct uvicorn):
    uvicorn app:app --reload
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from dispatch_scheduler.controllers.reservation_controller import router as reservation_router
from dispatch_scheduler.controllers.schedule_controller import router as schedule_router
from dispatch_scheduler.repository.data_repository import DataRepository
from dispatch_scheduler.services.reservation_service import ReservationService
from dispatch_scheduler.services.scheduling_service import DispatchSchedulingService
from dispatch_scheduler.utils.config import Settings, get_settings
from dispatch_scheduler.utils.logger import get_logger


logger = get_logger(__name__)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Build and wire the FastAPI application.

    Every dependency is created here and exposed through app.state so the
    controller layer resolves services without module-level singletons.
    """
    settings = settings or get_settings()

    repository = DataRepository(settings)
    scheduling_service = DispatchSchedulingService(
        repository=repository,
        settings=settings,
    )
    reservation_service = ReservationService(
        repository=repository,
        settings=settings,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Run startup initialization before accepting requests."""
        _startup(app)
        yield

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        lifespan=lifespan,
    )

    app.include_router(schedule_router)
    app.include_router(reservation_router)

    app.state.settings = settings
    app.state.repository = repository
    app.state.scheduling_service = scheduling_service
    app.state.reservation_service = reservation_service

    return app


def _startup(app: FastAPI) -> None:
    """Idempotent startup: schema first, then reference time slots."""
    settings: Settings = app.state.settings
    repository: DataRepository = app.state.repository

    logger.info("Startup: initializing database schema")
    repository.initialize_database()

    if settings.seed_reference_data:
        logger.info("Startup: seeding reference time slots")
        repository.seed_reference_data()

    logger.info("Startup complete — system ready")


# Module-level app object for uvicorn
app = create_app()
