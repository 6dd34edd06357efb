"""Domain models for facility cleaning plans and housekeeping rostering."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum


WEEKDAY_NAMES = (
    "Monday",
    "Tuesday",
    "Wednesday",
    "Thursday",
    "Friday",
    "Saturday",
    "Sunday",
)


def weekday_name(day: date) -> str:
    return WEEKDAY_NAMES[day.weekday()]


class ResourceType(str, Enum):
    TOOL = "tool"
    MATERIAL = "material"


class ContractType(str, Enum):
    PERMANENT = "Permanent"
    INTERMITTENT = "Intermittent"


class DayType(str, Enum):
    NORMAL = "Normal"
    HOLIDAY = "Holiday"
    HOLIDAY_EVE = "HolidayEve"


class OccurrenceStatus(str, Enum):
    NOT_STARTED = "NotStarted"
    IN_PROGRESS = "InProgress"
    OVERDUE = "Overdue"
    COMPLETED = "Completed"


class ConvocationStatus(str, Enum):
    PENDING = "Pending"
    ACCEPTED = "Accepted"
    REJECTED = "Rejected"
    EXPIRED = "Expired"


# --- Catalogs ---


@dataclass(frozen=True)
class CommonArea:
    area_id: int
    client: str
    location: str
    sub_location: str
    environment: str
    area: float


@dataclass(frozen=True)
class Resource:
    resource_id: int
    name: str
    resource_type: ResourceType
    unit: str
    coefficient_m2: float | None = None


@dataclass(frozen=True)
class ResourceRequirement:
    resource_id: int
    quantity: float


@dataclass(frozen=True)
class ActivityDefinition:
    activity_id: int
    name: str
    description: str
    sla: int
    sla_coefficient: float | None = None
    tools: tuple[ResourceRequirement, ...] = ()
    materials: tuple[ResourceRequirement, ...] = ()

    def sla_minutes_for(self, area_m2: float) -> float:
        """Fixed SLA plus the per-m² component for an area of ``area_m2``."""
        variable = (self.sla_coefficient or 0.0) * area_m2
        return float(self.sla) + variable


@dataclass(frozen=True)
class StaffMember:
    staff_id: int
    name: str
    role: str
    sector: str
    is_active: bool = True
    contract_type: ContractType = ContractType.PERMANENT
    max_weekly_hours: int | None = None
    governance_max_weekly_hours: int | None = None
    unavailable_days: tuple[str, ...] = ()
    notes: str | None = None

    def is_unavailable_on(self, day: date) -> bool:
        target = weekday_name(day).lower()
        return any(item.strip().lower() == target for item in self.unavailable_days)

    def weekly_hours_cap(self, fallback: float) -> float:
        if self.governance_max_weekly_hours:
            return float(self.governance_max_weekly_hours)
        if self.max_weekly_hours:
            return float(self.max_weekly_hours)
        return float(fallback)


# --- Recurring task registry ---


@dataclass(frozen=True)
class RecurringTaskTemplate:
    """A planned activity: one activity repeated at a periodicity in one area."""

    template_id: int
    work_plan_id: int
    activity_id: int
    periodicity: str


@dataclass(frozen=True)
class WorkPlan:
    work_plan_id: int
    common_area_id: int
    templates: tuple[RecurringTaskTemplate, ...] = ()


@dataclass(frozen=True)
class TaskOccurrence:
    """A dated instance of a template; ``occurrence_id`` is None until stored."""

    occurrence_id: int | None
    template_id: int | None
    work_plan_id: int | None
    planned_date: date
    execution_date: date | None = None
    operator_id: int | None = None

    @property
    def is_executed(self) -> bool:
        return self.execution_date is not None


# --- Governance planning ---


@dataclass(frozen=True)
class DailyOperationalInput:
    date: date
    vacant_dirty: int
    stay: int
    day_type: DayType = DayType.NORMAL

    @property
    def day_of_week(self) -> str:
        return weekday_name(self.date)

    @property
    def occupied_rooms(self) -> int:
        return self.vacant_dirty + self.stay


@dataclass(frozen=True)
class DailyDemand:
    date: date
    total_minutes: float
    adjusted_minutes: float
    required_hours: float
    required_hours_with_efficiency: float
    required_staff_count: float
    occupancy_percentage: float

    @property
    def display_occupancy_percentage(self) -> float:
        return min(100.0, max(0.0, self.occupancy_percentage))


@dataclass(frozen=True)
class WeeklyOperationalPlan:
    week_start_date: date
    week_end_date: date
    maintenance_room_count: int
    days: tuple[DailyOperationalInput, ...]
    calculated_demand: tuple[DailyDemand, ...] = ()
    plan_id: int | None = None
    updated_at: datetime | None = None

    def demand_for(self, day: date) -> DailyDemand | None:
        for demand in self.calculated_demand:
            if demand.date == day:
                return demand
        return None


@dataclass(frozen=True)
class ShiftAssignment:
    shift_id: str
    staff_id: int
    date: date
    start_time: str
    end_time: str
    break_minutes: int
    net_hours: float

    @property
    def is_complete(self) -> bool:
        return bool(self.start_time) and bool(self.end_time)


@dataclass(frozen=True)
class WeeklySchedule:
    week_start_date: date
    shifts: tuple[ShiftAssignment, ...] = ()
    schedule_id: int | None = None
    updated_at: datetime | None = None


@dataclass(frozen=True)
class CoverageGap:
    date: date
    required_headcount: int
    assigned_headcount: int

    @property
    def shortfall(self) -> int:
        return max(0, self.required_headcount - self.assigned_headcount)


@dataclass(frozen=True)
class ScheduleSuggestion:
    shifts: tuple[ShiftAssignment, ...]
    gaps: tuple[CoverageGap, ...] = field(default_factory=tuple)
    hours_by_staff: dict[int, float] = field(default_factory=dict)


@dataclass(frozen=True)
class Convocation:
    convocation_id: int | None
    schedule_id: int
    shift_id: str
    staff_id: int
    shift_date: date
    shift_start_time: str
    shift_end_time: str
    sent_at: datetime
    deadline_at: datetime
    status: ConvocationStatus = ConvocationStatus.PENDING
    responded_at: datetime | None = None
    justification: str | None = None
    rejection_reason: str | None = None
