"""
app.py — FastAPI application factory and startup lifecycle.

This is the ASGI application object imported by uvicorn.
It wires all services, registers routers, and runs startup initialization.

Usage (via launcher):
    python main.py

Usage (direct uvicorn):
    uvicorn app:app --reload
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from facility_planner.controllers.catalog_controller import router as catalog_router
from facility_planner.controllers.governance_controller import router as governance_router
from facility_planner.controllers.planning_controller import router as planning_router
from facility_planner.repository.data_repository import DataRepository
from facility_planner.services.catalog_service import CatalogService
from facility_planner.services.convocation_service import ConvocationService
from facility_planner.services.demand_service import WeeklyPlanService
from facility_planner.services.periodicity_service import RecurringTaskService
from facility_planner.services.shift_service import ScheduleService
from facility_planner.services.suggestion_service import ActivitySuggestionService
from facility_planner.services.work_order_service import WorkOrderService
from facility_planner.utils.config import Settings, get_settings
from facility_planner.utils.logger import get_logger


logger = get_logger(__name__)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Build and wire the FastAPI application.

    Every service shares one repository and is exposed through app.state,
    where the controller dependencies look it up.
    """
    settings = settings or get_settings()

    repository = DataRepository(settings)

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

    app.include_router(catalog_router)
    app.include_router(planning_router)
    app.include_router(governance_router)

    app.state.settings = settings
    app.state.repository = repository
    app.state.catalog_service = CatalogService(repository=repository, settings=settings)
    app.state.suggestion_service = ActivitySuggestionService(settings=settings)
    app.state.recurring_task_service = RecurringTaskService(repository=repository, settings=settings)
    app.state.work_order_service = WorkOrderService(repository=repository, settings=settings)
    app.state.weekly_plan_service = WeeklyPlanService(repository=repository, settings=settings)
    app.state.schedule_service = ScheduleService(repository=repository, settings=settings)
    app.state.convocation_service = ConvocationService(repository=repository, settings=settings)

    @app.get("/health", tags=["health"])
    async def health() -> dict[str, str]:
        return {"status": "ok", "version": settings.app_version}

    return app


def _startup(app: FastAPI) -> None:
    """
    Idempotent startup sequence. Safe to re-run on server restarts.

    The schema must exist before the demo catalog is seeded.
    """
    repository: DataRepository = app.state.repository
    settings: Settings = app.state.settings

    logger.info("Startup: initializing database schema")
    repository.initialize_database()

    if settings.seed_demo_data:
        logger.info("Startup: seeding demo catalog (skipped if common areas exist)")
        repository.seed_demo_data()

    logger.info("Startup complete | database=%s", repository.database_path)


# Module-level app object for uvicorn
app = create_app()
