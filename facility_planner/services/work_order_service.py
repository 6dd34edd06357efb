"""Daily work orders: one operator's tasks for a date with SLA and resource quantities."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Optional

from facility_planner.domain.models import (
    ActivityDefinition,
    CommonArea,
    Resource,
    StaffMember,
    TaskOccurrence,
)
from facility_planner.repository.data_repository import DataRepository
from facility_planner.utils.config import Settings, get_settings
from facility_planner.utils.logger import get_logger


logger = get_logger(__name__)


class WorkOrderError(Exception):
    """Base exception for work order generation."""


class OperatorNotFoundError(WorkOrderError):
    """Raised when the requested operator does not exist."""


@dataclass(frozen=True)
class ResourceLine:
    resource_id: int
    name: str
    unit: str
    quantity: float


@dataclass(frozen=True)
class WorkOrderTask:
    occurrence_id: int
    area_name: str
    sub_location: str
    activity_name: str
    description: str
    sla_minutes: float
    materials: list[ResourceLine]
    tools: list[ResourceLine]


@dataclass(frozen=True)
class WorkOrder:
    operator: StaffMember
    date: date
    tasks: list[WorkOrderTask]

    @property
    def total_sla_minutes(self) -> float:
        return sum(task.sla_minutes for task in self.tasks)


def material_quantity(base_quantity: float, resource: Resource, area_m2: float) -> float:
    """Materials with a positive per-m² coefficient scale with the area."""
    if resource.coefficient_m2 and resource.coefficient_m2 > 0 and area_m2 > 0:
        return base_quantity * area_m2
    return base_quantity


def build_task(
    occurrence: TaskOccurrence,
    area: CommonArea,
    activity: ActivityDefinition,
    resources: dict[int, Resource],
) -> WorkOrderTask:
    materials = [
        ResourceLine(
            resource_id=item.resource_id,
            name=resources[item.resource_id].name,
            unit=resources[item.resource_id].unit,
            quantity=material_quantity(item.quantity, resources[item.resource_id], area.area),
        )
        for item in activity.materials
        if item.resource_id in resources
    ]
    tools = [
        ResourceLine(
            resource_id=item.resource_id,
            name=resources[item.resource_id].name,
            unit=resources[item.resource_id].unit,
            quantity=item.quantity,
        )
        for item in activity.tools
        if item.resource_id in resources
    ]
    sub_location = area.location
    if area.sub_location:
        sub_location = f"{area.location} ({area.sub_location})"
    return WorkOrderTask(
        occurrence_id=int(occurrence.occurrence_id),
        area_name=f"{area.client} - {area.environment}",
        sub_location=sub_location,
        activity_name=activity.name,
        description=activity.description,
        sla_minutes=round(activity.sla_minutes_for(area.area), 2),
        materials=materials,
        tools=tools,
    )


class WorkOrderService:
    def __init__(
        self,
        repository: Optional[DataRepository] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._repository = repository or DataRepository(self._settings)

    def build(self, *, operator_id: int, day: date) -> WorkOrder:
        operator = self._repository.get_staff(operator_id)
        if operator is None:
            raise OperatorNotFoundError(f"operator_id={operator_id} does not exist")

        occurrences = self._repository.list_occurrences(
            start_date=day,
            end_date=day,
            operator_id=operator_id,
        )
        resources = {item.resource_id: item for item in self._repository.list_resources()}
        tasks: list[WorkOrderTask] = []
        for occurrence in occurrences:
            # detached history has no template or plan left to describe it
            if occurrence.template_id is None or occurrence.work_plan_id is None:
                continue
            template = self._repository.get_template(occurrence.template_id)
            work_plan = self._repository.get_work_plan(occurrence.work_plan_id)
            if template is None or work_plan is None:
                continue
            area = self._repository.get_common_area(work_plan.common_area_id)
            activity = self._repository.get_activity(template.activity_id)
            if area is None or activity is None:
                continue
            tasks.append(build_task(occurrence, area, activity, resources))

        logger.info(
            "Work order built | operator_id=%s | date=%s | tasks=%s",
            operator_id,
            day.isoformat(),
            len(tasks),
        )
        return WorkOrder(operator=operator, date=day, tasks=tasks)
