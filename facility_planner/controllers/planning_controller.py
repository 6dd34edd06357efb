"""HTTP controller layer for work plans, recurring templates, occurrences and work orders."""

from __future__ import annotations

from dataclasses import asdict
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field

from facility_planner.controllers.dependencies import (
    get_recurring_task_service,
    get_work_order_service,
)
from facility_planner.domain.models import (
    OccurrenceStatus,
    RecurringTaskTemplate,
    TaskOccurrence,
    WorkPlan,
)
from facility_planner.services.periodicity_service import (
    OccurrenceAlreadyExecutedError,
    OccurrenceNotFoundError,
    OccurrenceView,
    RecurringTaskError,
    RecurringTaskService,
    RecurringTaskValidationError,
    TemplateNotFoundError,
    WorkPlanNotFoundError,
    derive_occurrence_status,
)
from facility_planner.services.work_order_service import (
    OperatorNotFoundError,
    WorkOrderService,
)
from facility_planner.utils.logger import get_logger


logger = get_logger(__name__)

router = APIRouter(prefix="/api", tags=["planning"])


def _http_error(exc: RecurringTaskError) -> HTTPException:
    if isinstance(exc, (WorkPlanNotFoundError, TemplateNotFoundError, OccurrenceNotFoundError)):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    if isinstance(exc, OccurrenceAlreadyExecutedError):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    if isinstance(exc, RecurringTaskValidationError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))


class TemplateResponse(BaseModel):
    id: int
    work_plan_id: int
    activity_id: int
    periodicity: str

    @classmethod
    def from_domain(cls, item: RecurringTaskTemplate) -> "TemplateResponse":
        return cls(
            id=item.template_id,
            work_plan_id=item.work_plan_id,
            activity_id=item.activity_id,
            periodicity=item.periodicity,
        )


class WorkPlanCreateRequest(BaseModel):
    common_area_id: int = Field(gt=0)


class WorkPlanResponse(BaseModel):
    id: int
    common_area_id: int
    templates: list[TemplateResponse]

    @classmethod
    def from_domain(cls, item: WorkPlan) -> "WorkPlanResponse":
        return cls(
            id=item.work_plan_id,
            common_area_id=item.common_area_id,
            templates=[TemplateResponse.from_domain(template) for template in item.templates],
        )


class TemplateCreateRequest(BaseModel):
    activity_id: int = Field(gt=0)
    periodicity: str = Field(min_length=1)


class OccurrenceResponse(BaseModel):
    id: int
    template_id: Optional[int]
    work_plan_id: Optional[int]
    planned_date: date
    execution_date: Optional[date]
    operator_id: Optional[int]
    status: OccurrenceStatus

    @classmethod
    def from_domain(cls, item: TaskOccurrence, status_value: OccurrenceStatus) -> "OccurrenceResponse":
        return cls(
            id=int(item.occurrence_id),
            template_id=item.template_id,
            work_plan_id=item.work_plan_id,
            planned_date=item.planned_date,
            execution_date=item.execution_date,
            operator_id=item.operator_id,
            status=status_value,
        )

    @classmethod
    def from_view(cls, view: OccurrenceView) -> "OccurrenceResponse":
        return cls.from_domain(view.occurrence, view.status)


class TemplateCreateResponse(BaseModel):
    template: TemplateResponse
    occurrences: list[OccurrenceResponse]


class ProjectRequest(BaseModel):
    horizon_days: Optional[int] = Field(default=None, gt=0, le=366)


class ExecuteResponse(BaseModel):
    executed: OccurrenceResponse
    next_occurrence: Optional[OccurrenceResponse]


class OperatorAssignmentRequest(BaseModel):
    operator_id: Optional[int] = Field(default=None, gt=0)


class ResourceLineResponse(BaseModel):
    resource_id: int
    name: str
    unit: str
    quantity: float


class WorkOrderTaskResponse(BaseModel):
    occurrence_id: int
    area_name: str
    sub_location: str
    activity_name: str
    description: str
    sla_minutes: float
    materials: list[ResourceLineResponse]
    tools: list[ResourceLineResponse]


class WorkOrderResponse(BaseModel):
    operator_id: int
    operator_name: str
    date: date
    total_sla_minutes: float
    tasks: list[WorkOrderTaskResponse]


# --- Work plans ---


@router.get("/work-plans", response_model=list[WorkPlanResponse])
async def list_work_plans(
    service: RecurringTaskService = Depends(get_recurring_task_service),
) -> list[WorkPlanResponse]:
    return [WorkPlanResponse.from_domain(item) for item in service.list_work_plans()]


@router.post("/work-plans", response_model=WorkPlanResponse, status_code=status.HTTP_201_CREATED)
async def create_work_plan(
    payload: WorkPlanCreateRequest,
    service: RecurringTaskService = Depends(get_recurring_task_service),
) -> WorkPlanResponse:
    try:
        return WorkPlanResponse.from_domain(
            service.create_work_plan(common_area_id=payload.common_area_id)
        )
    except RecurringTaskError as exc:
        raise _http_error(exc) from exc


@router.get("/work-plans/{work_plan_id}", response_model=WorkPlanResponse)
async def get_work_plan(
    work_plan_id: int,
    service: RecurringTaskService = Depends(get_recurring_task_service),
) -> WorkPlanResponse:
    try:
        return WorkPlanResponse.from_domain(service.get_work_plan(work_plan_id))
    except RecurringTaskError as exc:
        raise _http_error(exc) from exc


@router.delete("/work-plans/{work_plan_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_work_plan(
    work_plan_id: int,
    service: RecurringTaskService = Depends(get_recurring_task_service),
) -> None:
    try:
        service.delete_work_plan(work_plan_id)
    except RecurringTaskError as exc:
        raise _http_error(exc) from exc


# --- Templates ---


@router.post(
    "/work-plans/{work_plan_id}/templates",
    response_model=TemplateCreateResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_template(
    work_plan_id: int,
    payload: TemplateCreateRequest,
    service: RecurringTaskService = Depends(get_recurring_task_service),
) -> TemplateCreateResponse:
    """Attach a recurring activity and plan its occurrences over the default horizon."""
    try:
        result = service.add_template(
            work_plan_id=work_plan_id,
            activity_id=payload.activity_id,
            periodicity=payload.periodicity,
        )
        today = date.today()
        return TemplateCreateResponse(
            template=TemplateResponse.from_domain(result.template),
            occurrences=[
                OccurrenceResponse.from_domain(item, derive_occurrence_status(item, today))
                for item in result.occurrences
            ],
        )
    except RecurringTaskError as exc:
        raise _http_error(exc) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected template creation failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create template",
        ) from exc


@router.delete("/templates/{template_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_template(
    template_id: int,
    service: RecurringTaskService = Depends(get_recurring_task_service),
) -> None:
    """Executed occurrences of the template are kept as history."""
    try:
        service.delete_template(template_id)
    except RecurringTaskError as exc:
        raise _http_error(exc) from exc


@router.post("/templates/{template_id}/project", response_model=list[OccurrenceResponse])
async def project_template(
    template_id: int,
    payload: Optional[ProjectRequest] = None,
    service: RecurringTaskService = Depends(get_recurring_task_service),
) -> list[OccurrenceResponse]:
    horizon_days = payload.horizon_days if payload is not None else None
    try:
        created = service.project_template(template_id, horizon_days=horizon_days)
        today = date.today()
        return [
            OccurrenceResponse.from_domain(item, derive_occurrence_status(item, today))
            for item in created
        ]
    except RecurringTaskError as exc:
        raise _http_error(exc) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected projection failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to project occurrences",
        ) from exc


# --- Occurrences ---


@router.get("/occurrences", response_model=list[OccurrenceResponse])
async def list_occurrences(
    start_date: Optional[date] = Query(default=None),
    end_date: Optional[date] = Query(default=None),
    operator_id: Optional[int] = Query(default=None, gt=0),
    service: RecurringTaskService = Depends(get_recurring_task_service),
) -> list[OccurrenceResponse]:
    try:
        views = service.list_occurrences(
            start_date=start_date,
            end_date=end_date,
            operator_id=operator_id,
        )
        return [OccurrenceResponse.from_view(view) for view in views]
    except RecurringTaskError as exc:
        raise _http_error(exc) from exc


@router.post("/occurrences/{occurrence_id}/execute", response_model=ExecuteResponse)
async def execute_occurrence(
    occurrence_id: int,
    service: RecurringTaskService = Depends(get_recurring_task_service),
) -> ExecuteResponse:
    """Mark done today and extend the recurring chain by one occurrence."""
    try:
        result = service.mark_executed(occurrence_id)
        today = date.today()
        following = result.next_occurrence
        return ExecuteResponse(
            executed=OccurrenceResponse.from_domain(result.executed, OccurrenceStatus.COMPLETED),
            next_occurrence=(
                OccurrenceResponse.from_domain(following, derive_occurrence_status(following, today))
                if following is not None
                else None
            ),
        )
    except RecurringTaskError as exc:
        raise _http_error(exc) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected execution failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to execute occurrence",
        ) from exc


@router.put("/occurrences/{occurrence_id}/operator", response_model=OccurrenceResponse)
async def assign_operator(
    occurrence_id: int,
    payload: OperatorAssignmentRequest,
    service: RecurringTaskService = Depends(get_recurring_task_service),
) -> OccurrenceResponse:
    try:
        updated = service.assign_operator(occurrence_id, operator_id=payload.operator_id)
        return OccurrenceResponse.from_domain(updated, derive_occurrence_status(updated, date.today()))
    except RecurringTaskError as exc:
        raise _http_error(exc) from exc


# --- Work orders ---


@router.get("/work-orders", response_model=WorkOrderResponse)
async def get_work_order(
    operator_id: int = Query(gt=0),
    day: date = Query(alias="date"),
    service: WorkOrderService = Depends(get_work_order_service),
) -> WorkOrderResponse:
    try:
        order = service.build(operator_id=operator_id, day=day)
    except OperatorNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        ) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected work order failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to build work order",
        ) from exc

    return WorkOrderResponse(
        operator_id=order.operator.staff_id,
        operator_name=order.operator.name,
        date=order.date,
        total_sla_minutes=round(order.total_sla_minutes, 2),
        tasks=[
            WorkOrderTaskResponse(
                occurrence_id=task.occurrence_id,
                area_name=task.area_name,
                sub_location=task.sub_location,
                activity_name=task.activity_name,
                description=task.description,
                sla_minutes=task.sla_minutes,
                materials=[ResourceLineResponse(**asdict(line)) for line in task.materials],
                tools=[ResourceLineResponse(**asdict(line)) for line in task.tools],
            )
            for task in order.tasks
        ],
    )
