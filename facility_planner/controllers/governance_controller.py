"""HTTP controller layer for the governance pipeline: parameters, demand, shifts and convocations."""

from __future__ import annotations

from dataclasses import replace
from datetime import date, datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field, field_validator

from facility_planner.controllers.dependencies import (
    get_convocation_service,
    get_schedule_service,
    get_weekly_plan_service,
)
from facility_planner.domain.constraints import (
    DEFAULT_GOVERNANCE_PARAMETERS as DEFAULTS,
    GovernanceParameters,
    InvalidConfigurationError,
)
from facility_planner.domain.models import (
    Convocation,
    ConvocationStatus,
    CoverageGap,
    DailyOperationalInput,
    DayType,
    ShiftAssignment,
    WeeklyOperationalPlan,
    WeeklySchedule,
)
from facility_planner.services.convocation_service import (
    ConvocationNotFoundError,
    ConvocationNotSendableError,
    ConvocationService,
    ConvocationValidationError,
    InvalidConvocationTransitionError,
    compute_deadline,
)
from facility_planner.services.demand_service import (
    DemandValidationError,
    WeeklyPlanNotFoundError,
    WeeklyPlanService,
)
from facility_planner.services.shift_service import (
    ScheduleNotFoundError,
    ScheduleOverwriteError,
    ScheduleService,
    ScheduleValidationError,
    hours_by_staff,
)
from facility_planner.utils.logger import get_logger


logger = get_logger(__name__)

router = APIRouter(prefix="/api", tags=["governance"])


# --- DTOs ---


class GovernanceParametersPayload(BaseModel):
    """Every field is optional on update; omitted fields keep their stored value."""

    default_cleaning_speed_vacant_dirty: float = DEFAULTS.default_cleaning_speed_vacant_dirty
    default_cleaning_speed_stay: float = DEFAULTS.default_cleaning_speed_stay
    holiday_demand_multiplier: float = DEFAULTS.holiday_demand_multiplier
    holiday_eve_demand_multiplier: float = DEFAULTS.holiday_eve_demand_multiplier
    allow_intermittent_on_holidays: bool = DEFAULTS.allow_intermittent_on_holidays
    prefer_effective_on_holidays: bool = DEFAULTS.prefer_effective_on_holidays
    holiday_notes: str = DEFAULTS.holiday_notes
    intermittent_min_weekly_hours: int = DEFAULTS.intermittent_min_weekly_hours
    intermittent_max_weekly_hours: int = DEFAULTS.intermittent_max_weekly_hours
    intermittent_max_consecutive_days: int = DEFAULTS.intermittent_max_consecutive_days
    intermittent_weeks_interval: int = DEFAULTS.intermittent_weeks_interval
    intermittent_mandatory_off_weeks: int = DEFAULTS.intermittent_mandatory_off_weeks
    max_shift_repetition_percentage: float = DEFAULTS.max_shift_repetition_percentage
    max_day_shift_repetition_percentage: float = DEFAULTS.max_day_shift_repetition_percentage
    alternation_mode: str = DEFAULTS.alternation_mode
    total_apartments: int = DEFAULTS.total_apartments
    standard_shift_duration: float = DEFAULTS.standard_shift_duration
    efficiency_target: float = DEFAULTS.efficiency_target
    sunday_rotation_ratio: int = DEFAULTS.sunday_rotation_ratio
    custom_rules: str = DEFAULTS.custom_rules


class DailyInputPayload(BaseModel):
    date: date
    vacant_dirty: int = 0
    stay: int = 0
    day_type: DayType = DayType.NORMAL


class WeekPlanRequest(BaseModel):
    maintenance_room_count: int = 0
    days: list[DailyInputPayload] = Field(min_length=7, max_length=7)


class DailyInputResponse(DailyInputPayload):
    day_of_week: str


class DailyDemandResponse(BaseModel):
    date: date
    total_minutes: float
    adjusted_minutes: float
    required_hours: float
    required_hours_with_efficiency: float
    required_staff_count: float
    occupancy_percentage: float
    display_occupancy_percentage: float


class WeekPlanResponse(BaseModel):
    week_start_date: date
    week_end_date: date
    maintenance_room_count: int
    days: list[DailyInputResponse]
    calculated_demand: list[DailyDemandResponse]
    updated_at: Optional[datetime] = None


class ShiftResponse(BaseModel):
    id: str
    staff_id: int
    date: date
    start_time: str
    end_time: str
    break_minutes: int
    net_hours: float


class ScheduleResponse(BaseModel):
    week_start_date: date
    shifts: list[ShiftResponse]
    hours_by_staff: dict[int, float]
    updated_at: Optional[datetime] = None


class CoverageGapResponse(BaseModel):
    date: date
    required_headcount: int
    assigned_headcount: int
    shortfall: int


class SuggestRequest(BaseModel):
    overwrite: bool = False


class SuggestResponse(BaseModel):
    schedule: ScheduleResponse
    gaps: list[CoverageGapResponse]


class ShiftEditRequest(BaseModel):
    staff_id: int = Field(gt=0)
    date: date
    start_time: Optional[str] = None
    end_time: Optional[str] = None


class ComplianceWarningResponse(BaseModel):
    staff_id: int
    code: str
    message: str


class ComplianceResponse(BaseModel):
    warnings: list[ComplianceWarningResponse]
    gaps: list[CoverageGapResponse]
    hours_by_staff: dict[int, float]


class SendableShiftResponse(ShiftResponse):
    deadline_at: datetime


class SendConvocationsRequest(BaseModel):
    shift_ids: Optional[list[str]] = None
    justification: Optional[str] = None


class ConvocationResponse(BaseModel):
    id: int
    schedule_id: int
    shift_id: str
    staff_id: int
    shift_date: date
    shift_start_time: str
    shift_end_time: str
    sent_at: datetime
    deadline_at: datetime
    responded_at: Optional[datetime]
    status: ConvocationStatus
    justification: Optional[str]
    rejection_reason: Optional[str]


class RejectConvocationRequest(BaseModel):
    reason: str = Field(min_length=1)

    @field_validator("reason")
    @classmethod
    def validate_reason(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("reason must be non-empty")
        return value.strip()


# --- Mapping helpers ---


def _parameters_payload(params: GovernanceParameters) -> GovernanceParametersPayload:
    return GovernanceParametersPayload(**params.to_dict())


def _plan_response(plan: WeeklyOperationalPlan) -> WeekPlanResponse:
    return WeekPlanResponse(
        week_start_date=plan.week_start_date,
        week_end_date=plan.week_end_date,
        maintenance_room_count=plan.maintenance_room_count,
        days=[
            DailyInputResponse(
                date=day.date,
                day_of_week=day.day_of_week,
                vacant_dirty=day.vacant_dirty,
                stay=day.stay,
                day_type=day.day_type,
            )
            for day in plan.days
        ],
        calculated_demand=[
            DailyDemandResponse(
                date=item.date,
                total_minutes=item.total_minutes,
                adjusted_minutes=item.adjusted_minutes,
                required_hours=item.required_hours,
                required_hours_with_efficiency=item.required_hours_with_efficiency,
                required_staff_count=item.required_staff_count,
                occupancy_percentage=item.occupancy_percentage,
                display_occupancy_percentage=item.display_occupancy_percentage,
            )
            for item in plan.calculated_demand
        ],
        updated_at=plan.updated_at,
    )


def _shift_response(shift: ShiftAssignment) -> ShiftResponse:
    return ShiftResponse(
        id=shift.shift_id,
        staff_id=shift.staff_id,
        date=shift.date,
        start_time=shift.start_time,
        end_time=shift.end_time,
        break_minutes=shift.break_minutes,
        net_hours=shift.net_hours,
    )


def _schedule_response(schedule: WeeklySchedule) -> ScheduleResponse:
    return ScheduleResponse(
        week_start_date=schedule.week_start_date,
        shifts=[_shift_response(shift) for shift in schedule.shifts],
        hours_by_staff=hours_by_staff(schedule.shifts),
        updated_at=schedule.updated_at,
    )


def _gap_response(gap: CoverageGap) -> CoverageGapResponse:
    return CoverageGapResponse(
        date=gap.date,
        required_headcount=gap.required_headcount,
        assigned_headcount=gap.assigned_headcount,
        shortfall=gap.shortfall,
    )


def _convocation_response(item: Convocation) -> ConvocationResponse:
    return ConvocationResponse(
        id=int(item.convocation_id),
        schedule_id=item.schedule_id,
        shift_id=item.shift_id,
        staff_id=item.staff_id,
        shift_date=item.shift_date,
        shift_start_time=item.shift_start_time,
        shift_end_time=item.shift_end_time,
        sent_at=item.sent_at,
        deadline_at=item.deadline_at,
        responded_at=item.responded_at,
        status=item.status,
        justification=item.justification,
        rejection_reason=item.rejection_reason,
    )


def _config_error(exc: InvalidConfigurationError) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        detail=str(exc),
    )


# --- Parameters ---


@router.get("/governance/parameters", response_model=GovernanceParametersPayload)
async def get_parameters(
    service: WeeklyPlanService = Depends(get_weekly_plan_service),
) -> GovernanceParametersPayload:
    return _parameters_payload(service.get_parameters())


@router.put("/governance/parameters", response_model=GovernanceParametersPayload)
async def save_parameters(
    payload: GovernanceParametersPayload,
    service: WeeklyPlanService = Depends(get_weekly_plan_service),
) -> GovernanceParametersPayload:
    try:
        merged = replace(service.get_parameters(), **payload.model_dump(exclude_unset=True))
        return _parameters_payload(service.save_parameters(merged))
    except InvalidConfigurationError as exc:
        raise _config_error(exc) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected parameter save failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to save governance parameters",
        ) from exc


@router.post("/governance/parameters/reset", response_model=GovernanceParametersPayload)
async def reset_parameters(
    service: WeeklyPlanService = Depends(get_weekly_plan_service),
) -> GovernanceParametersPayload:
    return _parameters_payload(service.reset_parameters())


# --- Weekly operational plan ---


@router.get("/governance/weeks/{week_start}/plan", response_model=WeekPlanResponse)
async def get_week_plan(
    week_start: date,
    service: WeeklyPlanService = Depends(get_weekly_plan_service),
) -> WeekPlanResponse:
    try:
        return _plan_response(service.get_week(week_start))
    except WeeklyPlanNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        ) from exc


@router.put("/governance/weeks/{week_start}/plan", response_model=WeekPlanResponse)
async def save_week_plan(
    week_start: date,
    payload: WeekPlanRequest,
    service: WeeklyPlanService = Depends(get_weekly_plan_service),
) -> WeekPlanResponse:
    """Store the week's occupancy inputs and the demand computed from them."""
    try:
        plan = service.save_week(
            week_start_date=week_start,
            maintenance_room_count=payload.maintenance_room_count,
            days=[
                DailyOperationalInput(
                    date=item.date,
                    vacant_dirty=item.vacant_dirty,
                    stay=item.stay,
                    day_type=item.day_type,
                )
                for item in payload.days
            ],
        )
        return _plan_response(plan)
    except DemandValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    except InvalidConfigurationError as exc:
        raise _config_error(exc) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected demand calculation failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to save week plan",
        ) from exc


# --- Schedule ---


@router.get("/governance/weeks/{week_start}/schedule", response_model=ScheduleResponse)
async def get_schedule(
    week_start: date,
    service: ScheduleService = Depends(get_schedule_service),
) -> ScheduleResponse:
    try:
        return _schedule_response(service.get_schedule(week_start))
    except ScheduleValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    except ScheduleNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        ) from exc


@router.post("/governance/weeks/{week_start}/schedule/suggest", response_model=SuggestResponse)
async def suggest_schedule(
    week_start: date,
    payload: Optional[SuggestRequest] = None,
    service: ScheduleService = Depends(get_schedule_service),
) -> SuggestResponse:
    """Generate a draft shift matrix; replacing an existing draft needs ``overwrite``."""
    overwrite = payload.overwrite if payload is not None else False
    try:
        outcome = service.suggest(week_start_date=week_start, overwrite=overwrite)
        return SuggestResponse(
            schedule=_schedule_response(outcome.schedule),
            gaps=[_gap_response(gap) for gap in outcome.gaps],
        )
    except ScheduleValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    except WeeklyPlanNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        ) from exc
    except ScheduleOverwriteError as exc:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=str(exc),
        ) from exc
    except InvalidConfigurationError as exc:
        raise _config_error(exc) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected schedule suggestion failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to suggest schedule",
        ) from exc


@router.put("/governance/weeks/{week_start}/schedule/shifts", response_model=ScheduleResponse)
async def edit_shift(
    week_start: date,
    payload: ShiftEditRequest,
    service: ScheduleService = Depends(get_schedule_service),
) -> ScheduleResponse:
    """``null`` keeps a time, ``""`` clears it; clearing both removes the shift."""
    try:
        schedule = service.update_shift(
            week_start_date=week_start,
            staff_id=payload.staff_id,
            day=payload.date,
            start_time=payload.start_time,
            end_time=payload.end_time,
        )
        return _schedule_response(schedule)
    except ScheduleValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected shift edit failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to edit shift",
        ) from exc


@router.get(
    "/governance/weeks/{week_start}/schedule/compliance",
    response_model=ComplianceResponse,
)
async def get_compliance(
    week_start: date,
    service: ScheduleService = Depends(get_schedule_service),
) -> ComplianceResponse:
    try:
        report = service.compliance(week_start)
    except ScheduleValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    except ScheduleNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        ) from exc
    return ComplianceResponse(
        warnings=[
            ComplianceWarningResponse(staff_id=item.staff_id, code=item.code, message=item.message)
            for item in report.warnings
        ],
        gaps=[_gap_response(gap) for gap in report.gaps],
        hours_by_staff=report.hours_by_staff,
    )


# --- Convocations ---


@router.get(
    "/governance/weeks/{week_start}/convocations",
    response_model=list[ConvocationResponse],
)
async def list_convocations(
    week_start: date,
    service: ConvocationService = Depends(get_convocation_service),
) -> list[ConvocationResponse]:
    return [_convocation_response(item) for item in service.list_for_week(week_start)]


@router.get(
    "/governance/weeks/{week_start}/convocations/sendable",
    response_model=list[SendableShiftResponse],
)
async def list_sendable_shifts(
    week_start: date,
    service: ConvocationService = Depends(get_convocation_service),
) -> list[SendableShiftResponse]:
    try:
        shifts = service.sendable(week_start)
    except ConvocationNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        ) from exc
    return [
        SendableShiftResponse(
            **_shift_response(shift).model_dump(),
            deadline_at=compute_deadline(shift.date, shift.start_time, service.notice_hours),
        )
        for shift in shifts
    ]


@router.post(
    "/governance/weeks/{week_start}/convocations",
    response_model=list[ConvocationResponse],
    status_code=status.HTTP_201_CREATED,
)
async def send_convocations(
    week_start: date,
    payload: SendConvocationsRequest,
    service: ConvocationService = Depends(get_convocation_service),
) -> list[ConvocationResponse]:
    """Send to the listed shifts, or to every sendable shift when ``shift_ids`` is omitted."""
    try:
        created = service.send(
            week_start_date=week_start,
            shift_ids=payload.shift_ids,
            justification=payload.justification,
        )
        return [_convocation_response(item) for item in created]
    except ConvocationValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    except ConvocationNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        ) from exc
    except ConvocationNotSendableError as exc:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=str(exc),
        ) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected convocation send failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to send convocations",
        ) from exc


@router.post("/convocations/{convocation_id}/accept", response_model=ConvocationResponse)
async def accept_convocation(
    convocation_id: int,
    service: ConvocationService = Depends(get_convocation_service),
) -> ConvocationResponse:
    try:
        return _convocation_response(service.accept(convocation_id))
    except ConvocationNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        ) from exc
    except InvalidConvocationTransitionError as exc:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=str(exc),
        ) from exc


@router.post("/convocations/{convocation_id}/reject", response_model=ConvocationResponse)
async def reject_convocation(
    convocation_id: int,
    payload: RejectConvocationRequest,
    service: ConvocationService = Depends(get_convocation_service),
) -> ConvocationResponse:
    try:
        return _convocation_response(service.reject(convocation_id, reason=payload.reason))
    except ConvocationValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    except ConvocationNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        ) from exc
    except InvalidConvocationTransitionError as exc:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=str(exc),
        ) from exc
