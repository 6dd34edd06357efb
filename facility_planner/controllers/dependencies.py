"""Shared FastAPI dependency providers for controller layer."""

from __future__ import annotations

from typing import Any

from fastapi import HTTPException, Request, status

from facility_planner.services.catalog_service import CatalogService
from facility_planner.services.convocation_service import ConvocationService
from facility_planner.services.demand_service import WeeklyPlanService
from facility_planner.services.periodicity_service import RecurringTaskService
from facility_planner.services.shift_service import ScheduleService
from facility_planner.services.suggestion_service import ActivitySuggestionService
from facility_planner.services.work_order_service import WorkOrderService


def _service(request: Request, attribute: str, label: str) -> Any:
    service = getattr(request.app.state, attribute, None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"{label} service is not initialized",
        )
    return service


def get_catalog_service(request: Request) -> CatalogService:
    return _service(request, "catalog_service", "Catalog")


def get_suggestion_service(request: Request) -> ActivitySuggestionService:
    return _service(request, "suggestion_service", "Suggestion")


def get_recurring_task_service(request: Request) -> RecurringTaskService:
    return _service(request, "recurring_task_service", "Recurring task")


def get_work_order_service(request: Request) -> WorkOrderService:
    return _service(request, "work_order_service", "Work order")


def get_weekly_plan_service(request: Request) -> WeeklyPlanService:
    return _service(request, "weekly_plan_service", "Weekly plan")


def get_schedule_service(request: Request) -> ScheduleService:
    return _service(request, "schedule_service", "Schedule")


def get_convocation_service(request: Request) -> ConvocationService:
    return _service(request, "convocation_service", "Convocation")
