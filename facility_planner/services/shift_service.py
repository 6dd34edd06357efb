"""Weekly shift matrix: greedy suggestion, manual edits and compliance checks."""

from __future__ import annotations

import math
import re
from collections import defaultdict
from dataclasses import dataclass, replace
from datetime import date, timedelta
from typing import Optional, Sequence

from facility_planner.domain.constraints import GovernanceParameters, validate_demand_parameters
from facility_planner.domain.models import (
    ContractType,
    CoverageGap,
    DailyDemand,
    DailyOperationalInput,
    DayType,
    ScheduleSuggestion,
    ShiftAssignment,
    StaffMember,
    WeeklyOperationalPlan,
    WeeklySchedule,
)
from facility_planner.repository.data_repository import DataRepository
from facility_planner.services.demand_service import WeeklyPlanNotFoundError
from facility_planner.utils.config import Settings, get_settings
from facility_planner.utils.logger import get_logger


logger = get_logger(__name__)

_CLOCK_PATTERN = re.compile(r"^(?:[01]\d|2[0-3]):[0-5]\d$")
SHORT_SHIFT_MAX_HOURS = 6.0
SHORT_SHIFT_BREAK_MINUTES = 15
LONG_SHIFT_BREAK_MINUTES = 60


class ScheduleError(Exception):
    """Base exception for weekly schedule failures."""


class ScheduleValidationError(ScheduleError):
    """Raised when a shift edit or schedule request is invalid."""


class ScheduleNotFoundError(ScheduleError):
    """Raised when no schedule exists for a week."""


class ScheduleOverwriteError(ScheduleError):
    """Raised when a suggestion would replace a draft without explicit confirmation."""


# --- Shift arithmetic ---


def parse_clock(value: str) -> int:
    """Minutes since midnight for an ``HH:MM`` string."""
    if not _CLOCK_PATTERN.match(value or ""):
        raise ScheduleValidationError(f"time '{value}' must use HH:MM (00:00-23:59)")
    hours, minutes = value.split(":")
    return int(hours) * 60 + int(minutes)


def format_clock(total_minutes: int) -> str:
    total_minutes %= 24 * 60
    return f"{total_minutes // 60:02d}:{total_minutes % 60:02d}"


def gross_shift_hours(start_time: str, end_time: str) -> float:
    start = parse_clock(start_time)
    end = parse_clock(end_time)
    if end == start:
        raise ScheduleValidationError("start_time and end_time must differ")
    if end < start:
        # overnight shift
        end += 24 * 60
    return (end - start) / 60


def compute_break_minutes(gross_hours: float) -> int:
    if gross_hours <= SHORT_SHIFT_MAX_HOURS:
        return SHORT_SHIFT_BREAK_MINUTES
    return LONG_SHIFT_BREAK_MINUTES


def shift_id_for(day: date, staff_id: int) -> str:
    return f"shift-{day.isoformat()}-{staff_id}"


def build_shift(staff_id: int, day: date, start_time: str, end_time: str) -> ShiftAssignment:
    """Create an assignment with its break and net hours derived from the times.

    A shift with only one of the two times is kept as incomplete with zero
    break and zero net hours.
    """
    start_time = (start_time or "").strip()
    end_time = (end_time or "").strip()
    if start_time and end_time:
        gross = gross_shift_hours(start_time, end_time)
        break_minutes = compute_break_minutes(gross)
        net_hours = round(gross - break_minutes / 60, 2)
    else:
        for value in (start_time, end_time):
            if value:
                parse_clock(value)
        break_minutes = 0
        net_hours = 0.0
    return ShiftAssignment(
        shift_id=shift_id_for(day, staff_id),
        staff_id=staff_id,
        date=day,
        start_time=start_time,
        end_time=end_time,
        break_minutes=break_minutes,
        net_hours=net_hours,
    )


def standard_shift_times(shift_duration: float, start_time: str) -> tuple[str, str]:
    """Start/end pair whose net hours equal ``shift_duration`` under the break rule."""
    short_gross = shift_duration + SHORT_SHIFT_BREAK_MINUTES / 60
    if short_gross <= SHORT_SHIFT_MAX_HOURS:
        gross = short_gross
    else:
        gross = shift_duration + LONG_SHIFT_BREAK_MINUTES / 60
    if gross >= 24:
        raise ScheduleValidationError(
            f"a {shift_duration:g}h shift plus its break does not fit in one day"
        )
    start = parse_clock(start_time)
    return format_clock(start), format_clock(start + int(round(gross * 60)))


def hours_by_staff(shifts: Sequence[ShiftAssignment]) -> dict[int, float]:
    totals: dict[int, float] = defaultdict(float)
    for shift in shifts:
        if shift.is_complete:
            totals[shift.staff_id] += shift.net_hours
    return {staff_id: round(hours, 2) for staff_id, hours in totals.items()}


# --- Suggestion engine ---


def required_headcount(demand: Optional[DailyDemand]) -> int:
    if demand is None:
        return 0
    return max(0, math.ceil(demand.required_staff_count))


def eligible_pool(roster: Sequence[StaffMember], sector: str) -> list[StaffMember]:
    return [member for member in roster if member.is_active and member.sector == sector]


def _excluded_on_holiday(member: StaffMember, params: GovernanceParameters) -> bool:
    return (
        params.prefer_effective_on_holidays
        and not params.allow_intermittent_on_holidays
        and member.contract_type == ContractType.INTERMITTENT
    )


def rank_candidates(
    day: DailyOperationalInput,
    pool: Sequence[StaffMember],
    params: GovernanceParameters,
    hours_so_far: dict[int, float],
) -> list[StaffMember]:
    """Filter and order candidates for one day.

    Ordering uses a stable sort, so ties keep the roster input order.
    """
    shift_hours = params.standard_shift_duration
    fallback_cap = float(params.intermittent_max_weekly_hours)
    is_holiday = day.day_type == DayType.HOLIDAY

    candidates: list[StaffMember] = []
    for member in pool:
        if member.is_unavailable_on(day.date):
            continue
        accumulated = hours_so_far.get(member.staff_id, 0.0)
        if accumulated + shift_hours > member.weekly_hours_cap(fallback_cap) + 1e-9:
            continue
        if is_holiday and _excluded_on_holiday(member, params):
            continue
        candidates.append(member)

    prefer_permanent = is_holiday and params.prefer_effective_on_holidays

    def priority(member: StaffMember) -> tuple[int, float]:
        tier = 0
        if prefer_permanent and member.contract_type != ContractType.PERMANENT:
            tier = 1
        return tier, hours_so_far.get(member.staff_id, 0.0)

    return sorted(candidates, key=priority)


def allocate_day(
    day: DailyOperationalInput,
    demand: Optional[DailyDemand],
    pool: Sequence[StaffMember],
    params: GovernanceParameters,
    hours_so_far: dict[int, float],
    *,
    shift_start: str,
) -> tuple[list[ShiftAssignment], Optional[CoverageGap]]:
    """Assign standard shifts for one day and add them to ``hours_so_far``."""
    needed = required_headcount(demand)
    if needed == 0:
        return [], None

    start_time, end_time = standard_shift_times(params.standard_shift_duration, shift_start)
    chosen = rank_candidates(day, pool, params, hours_so_far)[:needed]
    shifts: list[ShiftAssignment] = []
    for member in chosen:
        shifts.append(build_shift(member.staff_id, day.date, start_time, end_time))
        hours_so_far[member.staff_id] = (
            hours_so_far.get(member.staff_id, 0.0) + params.standard_shift_duration
        )

    gap = None
    if len(chosen) < needed:
        gap = CoverageGap(date=day.date, required_headcount=needed, assigned_headcount=len(chosen))
    return shifts, gap


def suggest_schedule(
    plan: WeeklyOperationalPlan,
    roster: Sequence[StaffMember],
    params: GovernanceParameters,
    *,
    sector: str,
    shift_start: str = "08:00",
) -> ScheduleSuggestion:
    """Greedy draft for a week; deterministic for a given roster order.

    Days are processed in date order and share one weekly-hours accumulator.
    Shortfalls are reported as gaps, never raised.
    """
    validate_demand_parameters(params)
    pool = eligible_pool(roster, sector)
    hours_so_far: dict[int, float] = {member.staff_id: 0.0 for member in pool}

    shifts: list[ShiftAssignment] = []
    gaps: list[CoverageGap] = []
    for day in sorted(plan.days, key=lambda item: item.date):
        day_shifts, gap = allocate_day(
            day,
            plan.demand_for(day.date),
            pool,
            params,
            hours_so_far,
            shift_start=shift_start,
        )
        shifts.extend(day_shifts)
        if gap is not None:
            gaps.append(gap)

    return ScheduleSuggestion(
        shifts=tuple(shifts),
        gaps=tuple(gaps),
        hours_by_staff={staff_id: hours for staff_id, hours in hours_so_far.items() if hours > 0},
    )


# --- Manual edits ---


def set_shift_time(
    schedule: WeeklySchedule,
    *,
    staff_id: int,
    day: date,
    start_time: Optional[str] = None,
    end_time: Optional[str] = None,
) -> WeeklySchedule:
    """Set or clear one assignment's times without touching any other shift.

    ``None`` keeps the current value and ``""`` clears it. Clearing both
    times removes the assignment.
    """
    week_end = schedule.week_start_date + timedelta(days=6)
    if not schedule.week_start_date <= day <= week_end:
        raise ScheduleValidationError(
            f"date {day.isoformat()} is outside the week starting "
            f"{schedule.week_start_date.isoformat()}"
        )

    current = next(
        (item for item in schedule.shifts if item.staff_id == staff_id and item.date == day),
        None,
    )
    new_start = start_time if start_time is not None else (current.start_time if current else "")
    new_end = end_time if end_time is not None else (current.end_time if current else "")

    remaining = [item for item in schedule.shifts if item is not current]
    if new_start.strip() or new_end.strip():
        remaining.append(build_shift(staff_id, day, new_start, new_end))
    remaining.sort(key=lambda item: (item.date, item.staff_id))
    return replace(schedule, shifts=tuple(remaining))


# --- Compliance ---


@dataclass(frozen=True)
class ComplianceWarning:
    staff_id: int
    code: str
    message: str


@dataclass(frozen=True)
class ComplianceReport:
    warnings: list[ComplianceWarning]
    gaps: list[CoverageGap]
    hours_by_staff: dict[int, float]


def _longest_run(days: Sequence[date]) -> int:
    longest = 0
    current = 0
    previous: Optional[date] = None
    for day in sorted(set(days)):
        current = current + 1 if previous is not None and day - previous == timedelta(days=1) else 1
        longest = max(longest, current)
        previous = day
    return longest


def evaluate_compliance(
    schedule: WeeklySchedule,
    roster: Sequence[StaffMember],
    params: GovernanceParameters,
    plan: Optional[WeeklyOperationalPlan] = None,
) -> ComplianceReport:
    """Warnings about contract limits plus per-day coverage gaps; never raises on findings."""
    totals = hours_by_staff(schedule.shifts)
    by_id = {member.staff_id: member for member in roster}
    fallback_cap = float(params.intermittent_max_weekly_hours)

    worked_days: dict[int, list[date]] = defaultdict(list)
    for shift in schedule.shifts:
        if shift.is_complete:
            worked_days[shift.staff_id].append(shift.date)

    warnings: list[ComplianceWarning] = []
    for staff_id in sorted(totals):
        member = by_id.get(staff_id)
        if member is None:
            continue
        hours = totals[staff_id]
        cap = member.weekly_hours_cap(fallback_cap)
        if hours > cap:
            warnings.append(
                ComplianceWarning(
                    staff_id=staff_id,
                    code="above_weekly_cap",
                    message=f"{member.name} is scheduled {hours:.2f}h, above the {cap:.0f}h weekly cap",
                )
            )
        if member.contract_type != ContractType.INTERMITTENT:
            continue
        if 0 < hours < params.intermittent_min_weekly_hours:
            warnings.append(
                ComplianceWarning(
                    staff_id=staff_id,
                    code="below_min_weekly_hours",
                    message=(
                        f"{member.name} is scheduled {hours:.2f}h, below the "
                        f"{params.intermittent_min_weekly_hours}h intermittent minimum"
                    ),
                )
            )
        run = _longest_run(worked_days[staff_id])
        if run > params.intermittent_max_consecutive_days:
            warnings.append(
                ComplianceWarning(
                    staff_id=staff_id,
                    code="consecutive_days",
                    message=(
                        f"{member.name} works {run} consecutive days, above the limit of "
                        f"{params.intermittent_max_consecutive_days}"
                    ),
                )
            )

    gaps: list[CoverageGap] = []
    if plan is not None:
        assigned: dict[date, int] = defaultdict(int)
        for shift in schedule.shifts:
            if shift.is_complete:
                assigned[shift.date] += 1
        for demand in sorted(plan.calculated_demand, key=lambda item: item.date):
            needed = required_headcount(demand)
            if assigned[demand.date] < needed:
                gaps.append(
                    CoverageGap(
                        date=demand.date,
                        required_headcount=needed,
                        assigned_headcount=assigned[demand.date],
                    )
                )

    return ComplianceReport(warnings=warnings, gaps=gaps, hours_by_staff=totals)


def _require_monday(week_start_date: date) -> None:
    if week_start_date.weekday() != 0:
        raise ScheduleValidationError(
            f"week_start_date {week_start_date.isoformat()} must be a Monday"
        )


@dataclass(frozen=True)
class SuggestionOutcome:
    schedule: WeeklySchedule
    gaps: list[CoverageGap]
    hours_by_staff: dict[int, float]


class ScheduleService:
    """Persists weekly shift matrices generated by the allocator or edited by hand."""

    def __init__(
        self,
        repository: Optional[DataRepository] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._repository = repository or DataRepository(self._settings)

    def _roster(self) -> list[StaffMember]:
        return self._repository.list_active_staff_by_sector(self._settings.governance_sector)

    def get_schedule(self, week_start_date: date) -> WeeklySchedule:
        _require_monday(week_start_date)
        schedule = self._repository.get_weekly_schedule(week_start_date)
        if schedule is None:
            raise ScheduleNotFoundError(
                f"no schedule for week starting {week_start_date.isoformat()}"
            )
        return schedule

    def suggest(self, *, week_start_date: date, overwrite: bool = False) -> SuggestionOutcome:
        _require_monday(week_start_date)
        plan = self._repository.get_weekly_plan(week_start_date)
        if plan is None:
            raise WeeklyPlanNotFoundError(
                f"no operational plan for week starting {week_start_date.isoformat()}"
            )
        existing = self._repository.get_weekly_schedule(week_start_date)
        if existing is not None and existing.shifts and not overwrite:
            raise ScheduleOverwriteError(
                f"week starting {week_start_date.isoformat()} already has "
                f"{len(existing.shifts)} shifts; pass overwrite to replace them"
            )

        params = self._repository.get_governance_parameters()
        suggestion = suggest_schedule(
            plan,
            self._roster(),
            params,
            sector=self._settings.governance_sector,
            shift_start=self._settings.default_shift_start,
        )
        schedule = self._repository.save_weekly_schedule(
            WeeklySchedule(week_start_date=week_start_date, shifts=suggestion.shifts)
        )
        logger.info(
            "Schedule suggested | week=%s | shifts=%s | gaps=%s | overwrite=%s",
            week_start_date.isoformat(),
            len(suggestion.shifts),
            len(suggestion.gaps),
            overwrite,
        )
        return SuggestionOutcome(
            schedule=schedule,
            gaps=list(suggestion.gaps),
            hours_by_staff=dict(suggestion.hours_by_staff),
        )

    def update_shift(
        self,
        *,
        week_start_date: date,
        staff_id: int,
        day: date,
        start_time: Optional[str] = None,
        end_time: Optional[str] = None,
    ) -> WeeklySchedule:
        _require_monday(week_start_date)
        if self._repository.get_staff(staff_id) is None:
            raise ScheduleValidationError(f"staff_id={staff_id} does not exist")
        schedule = self._repository.get_weekly_schedule(week_start_date) or WeeklySchedule(
            week_start_date=week_start_date
        )
        updated = set_shift_time(
            schedule,
            staff_id=staff_id,
            day=day,
            start_time=start_time,
            end_time=end_time,
        )
        saved = self._repository.save_weekly_schedule(updated)
        logger.info(
            "Shift edited | week=%s | staff_id=%s | date=%s | start=%r | end=%r",
            week_start_date.isoformat(),
            staff_id,
            day.isoformat(),
            start_time,
            end_time,
        )
        return saved

    def compliance(self, week_start_date: date) -> ComplianceReport:
        schedule = self.get_schedule(week_start_date)
        params = self._repository.get_governance_parameters()
        plan = self._repository.get_weekly_plan(week_start_date)
        return evaluate_compliance(schedule, self._repository.list_staff(), params, plan)
