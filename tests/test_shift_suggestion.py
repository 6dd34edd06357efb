"""Tests for shift arithmetic, the greedy allocator, manual edits and compliance."""

from __future__ import annotations

from dataclasses import replace
from datetime import date, timedelta

import pytest

from facility_planner.domain.constraints import DEFAULT_GOVERNANCE_PARAMETERS, InvalidConfigurationError
from facility_planner.domain.models import (
    ContractType,
    DailyDemand,
    DailyOperationalInput,
    DayType,
    StaffMember,
    WeeklyOperationalPlan,
    WeeklySchedule,
)
from facility_planner.services.demand_service import WeeklyPlanNotFoundError, WeeklyPlanService
from facility_planner.services.shift_service import (
    ScheduleNotFoundError,
    ScheduleOverwriteError,
    ScheduleService,
    ScheduleValidationError,
    build_shift,
    evaluate_compliance,
    hours_by_staff,
    set_shift_time,
    standard_shift_times,
    suggest_schedule,
)


MONDAY = date(2024, 6, 10)
SECTOR = "Housekeeping"


def member(
    staff_id: int,
    *,
    contract: ContractType = ContractType.PERMANENT,
    sector: str = SECTOR,
    is_active: bool = True,
    cap: int | None = None,
    unavailable: tuple[str, ...] = (),
) -> StaffMember:
    return StaffMember(
        staff_id=staff_id,
        name=f"Staff {staff_id}",
        role="Housekeeper",
        sector=sector,
        is_active=is_active,
        contract_type=contract,
        governance_max_weekly_hours=cap,
        unavailable_days=unavailable,
    )


def plan_with(headcounts: list[float], day_types: dict[int, DayType] | None = None) -> WeeklyOperationalPlan:
    """A week whose demand rows carry the given staff counts, one per day from Monday."""
    day_types = day_types or {}
    days = []
    demand = []
    for offset, staff_count in enumerate(headcounts):
        current = MONDAY + timedelta(days=offset)
        days.append(
            DailyOperationalInput(
                date=current,
                vacant_dirty=0,
                stay=0,
                day_type=day_types.get(offset, DayType.NORMAL),
            )
        )
        demand.append(
            DailyDemand(
                date=current,
                total_minutes=0.0,
                adjusted_minutes=0.0,
                required_hours=0.0,
                required_hours_with_efficiency=0.0,
                required_staff_count=staff_count,
                occupancy_percentage=0.0,
            )
        )
    return WeeklyOperationalPlan(
        week_start_date=MONDAY,
        week_end_date=MONDAY + timedelta(days=6),
        maintenance_room_count=0,
        days=tuple(days),
        calculated_demand=tuple(demand),
    )


def assigned_on(suggestion, day: date) -> list[int]:
    return [shift.staff_id for shift in suggestion.shifts if shift.date == day]


# --- Shift arithmetic ---

def test_six_hour_gross_shift_gets_short_break() -> None:
    shift = build_shift(1, MONDAY, "08:00", "14:00")

    assert shift.break_minutes == 15
    assert shift.net_hours == 5.75


def test_nine_hour_gross_shift_gets_long_break() -> None:
    shift = build_shift(1, MONDAY, "08:00", "17:00")

    assert shift.break_minutes == 60
    assert shift.net_hours == 8.0
    assert shift.shift_id == "shift-2024-06-10-1"


def test_overnight_shift_wraps_past_midnight() -> None:
    shift = build_shift(1, MONDAY, "22:00", "06:00")

    assert shift.break_minutes == 60
    assert shift.net_hours == 7.0


@pytest.mark.parametrize(("start", "end"), [("08:00", "08:00"), ("8:00", "12:00"), ("08:00", "24:00")])
def test_invalid_shift_times_are_rejected(start: str, end: str) -> None:
    with pytest.raises(ScheduleValidationError):
        build_shift(1, MONDAY, start, end)


def test_shift_with_one_time_is_incomplete_and_counts_no_hours() -> None:
    shift = build_shift(1, MONDAY, "08:00", "")

    assert not shift.is_complete
    assert shift.net_hours == 0.0
    assert hours_by_staff([shift]) == {}


def test_standard_shift_times_yield_the_configured_net_hours() -> None:
    assert standard_shift_times(8.0, "08:00") == ("08:00", "17:00")
    assert standard_shift_times(4.0, "07:30") == ("07:30", "11:45")
    start, end = standard_shift_times(4.0, "07:30")
    assert build_shift(1, MONDAY, start, end).net_hours == 4.0


def test_longest_standard_shift_wraps_and_keeps_its_net_hours() -> None:
    start, end = standard_shift_times(22.5, "08:00")

    assert (start, end) == ("08:00", "07:30")
    assert build_shift(1, MONDAY, start, end).net_hours == 22.5
    with pytest.raises(ScheduleValidationError):
        standard_shift_times(23.0, "08:00")


# --- Suggestion engine ---

def test_shortfall_is_reported_as_gap_not_raised() -> None:
    roster = [member(1), member(2)]

    suggestion = suggest_schedule(plan_with([2.1]), roster, DEFAULT_GOVERNANCE_PARAMETERS, sector=SECTOR)

    assert assigned_on(suggestion, MONDAY) == [1, 2]
    assert len(suggestion.gaps) == 1
    gap = suggestion.gaps[0]
    assert (gap.required_headcount, gap.assigned_headcount, gap.shortfall) == (3, 2, 1)


def test_fractional_staff_count_rounds_headcount_up() -> None:
    suggestion = suggest_schedule(
        plan_with([1.1]), [member(1), member(2), member(3)], DEFAULT_GOVERNANCE_PARAMETERS, sector=SECTOR
    )

    assert assigned_on(suggestion, MONDAY) == [1, 2]
    assert suggestion.gaps == ()


def test_only_active_staff_from_the_sector_are_assigned() -> None:
    roster = [
        member(1, sector="Common Areas"),
        member(2, is_active=False),
        member(3),
    ]

    suggestion = suggest_schedule(plan_with([2.0]), roster, DEFAULT_GOVERNANCE_PARAMETERS, sector=SECTOR)

    assert assigned_on(suggestion, MONDAY) == [3]
    assert suggestion.gaps[0].shortfall == 1


def test_staff_are_never_assigned_on_their_unavailable_weekday() -> None:
    roster = [member(1, unavailable=("monday",)), member(2)]

    suggestion = suggest_schedule(plan_with([1.0, 1.0]), roster, DEFAULT_GOVERNANCE_PARAMETERS, sector=SECTOR)

    assert assigned_on(suggestion, MONDAY) == [2]
    assert assigned_on(suggestion, MONDAY + timedelta(days=1)) == [1]


def test_fewest_accumulated_hours_are_picked_first() -> None:
    roster = [member(1), member(2)]

    suggestion = suggest_schedule(plan_with([1.0] * 4), roster, DEFAULT_GOVERNANCE_PARAMETERS, sector=SECTOR)

    picks = [assigned_on(suggestion, MONDAY + timedelta(days=offset)) for offset in range(4)]
    assert picks == [[1], [2], [1], [2]]
    assert suggestion.hours_by_staff == {1: 16.0, 2: 16.0}


def test_weekly_cap_is_never_exceeded() -> None:
    roster = [member(1, cap=16)]

    suggestion = suggest_schedule(plan_with([1.0] * 7), roster, DEFAULT_GOVERNANCE_PARAMETERS, sector=SECTOR)

    assert len(suggestion.shifts) == 2
    assert suggestion.hours_by_staff == {1: 16.0}
    assert [gap.date for gap in suggestion.gaps] == [MONDAY + timedelta(days=offset) for offset in range(2, 7)]


def test_intermittent_staff_skip_holidays_when_disallowed() -> None:
    params = replace(
        DEFAULT_GOVERNANCE_PARAMETERS,
        prefer_effective_on_holidays=True,
        allow_intermittent_on_holidays=False,
    )
    roster = [member(1, contract=ContractType.INTERMITTENT), member(2)]

    suggestion = suggest_schedule(
        plan_with([2.0], day_types={0: DayType.HOLIDAY}), roster, params, sector=SECTOR
    )

    assert assigned_on(suggestion, MONDAY) == [2]
    assert suggestion.gaps[0].shortfall == 1


def test_permanent_staff_are_preferred_on_holidays() -> None:
    params = replace(
        DEFAULT_GOVERNANCE_PARAMETERS,
        prefer_effective_on_holidays=True,
        allow_intermittent_on_holidays=True,
    )
    roster = [member(1, contract=ContractType.INTERMITTENT), member(2)]

    holiday = suggest_schedule(plan_with([1.0], day_types={0: DayType.HOLIDAY}), roster, params, sector=SECTOR)
    normal = suggest_schedule(plan_with([1.0]), roster, params, sector=SECTOR)

    assert assigned_on(holiday, MONDAY) == [2]
    assert assigned_on(normal, MONDAY) == [1]


def test_suggestion_is_deterministic_for_a_roster_order() -> None:
    roster = [member(3), member(1), member(2)]
    plan = plan_with([1.5, 2.0, 0.4, 3.0, 1.0, 0.0, 2.2])

    first = suggest_schedule(plan, roster, DEFAULT_GOVERNANCE_PARAMETERS, sector=SECTOR)
    second = suggest_schedule(plan, roster, DEFAULT_GOVERNANCE_PARAMETERS, sector=SECTOR)

    assert first == second
    assert assigned_on(first, MONDAY) == [3, 1]


def test_suggested_shifts_use_the_standard_times() -> None:
    suggestion = suggest_schedule(
        plan_with([1.0]), [member(1)], DEFAULT_GOVERNANCE_PARAMETERS, sector=SECTOR, shift_start="07:00"
    )

    shift = suggestion.shifts[0]
    assert (shift.start_time, shift.end_time, shift.net_hours) == ("07:00", "16:00", 8.0)



def test_suggested_hours_match_the_shifts_for_long_durations() -> None:
    params = replace(DEFAULT_GOVERNANCE_PARAMETERS, standard_shift_duration=22.5)

    suggestion = suggest_schedule(plan_with([1.0]), [member(1)], params, sector=SECTOR)

    assert [shift.net_hours for shift in suggestion.shifts] == [22.5]
    assert suggestion.hours_by_staff == hours_by_staff(suggestion.shifts) == {1: 22.5}


@pytest.mark.parametrize("duration", [23.0, 24.0])
def test_suggestion_refuses_shifts_that_cannot_fit_in_a_day(duration: float) -> None:
    params = replace(DEFAULT_GOVERNANCE_PARAMETERS, standard_shift_duration=duration)

    with pytest.raises(InvalidConfigurationError):
        suggest_schedule(plan_with([1.0]), [member(1)], params, sector=SECTOR)


# --- Manual edits ---

def test_set_shift_time_only_touches_the_targeted_shift() -> None:
    schedule = WeeklySchedule(
        week_start_date=MONDAY,
        shifts=(
            build_shift(1, MONDAY, "08:00", "17:00"),
            build_shift(2, MONDAY, "08:00", "17:00"),
        ),
    )

    updated = set_shift_time(schedule, staff_id=1, day=MONDAY, end_time="14:00")

    by_staff = {shift.staff_id: shift for shift in updated.shifts}
    assert (by_staff[1].start_time, by_staff[1].end_time, by_staff[1].net_hours) == ("08:00", "14:00", 5.75)
    assert by_staff[2] == schedule.shifts[1]


def test_clearing_both_times_removes_the_assignment() -> None:
    schedule = WeeklySchedule(week_start_date=MONDAY, shifts=(build_shift(1, MONDAY, "08:00", "17:00"),))

    updated = set_shift_time(schedule, staff_id=1, day=MONDAY, start_time="", end_time="")

    assert updated.shifts == ()


def test_set_shift_time_rejects_days_outside_the_week() -> None:
    schedule = WeeklySchedule(week_start_date=MONDAY)

    with pytest.raises(ScheduleValidationError):
        set_shift_time(schedule, staff_id=1, day=MONDAY + timedelta(days=7), start_time="08:00")


# --- Compliance ---

def test_compliance_flags_intermittent_limits() -> None:
    params = replace(DEFAULT_GOVERNANCE_PARAMETERS, intermittent_max_consecutive_days=3)
    roster = [
        member(1, contract=ContractType.INTERMITTENT, cap=60),
        member(2, contract=ContractType.INTERMITTENT),
    ]
    shifts = [build_shift(1, MONDAY + timedelta(days=offset), "08:00", "17:00") for offset in range(4)]
    shifts.append(build_shift(2, MONDAY, "08:00", "12:00"))

    report = evaluate_compliance(WeeklySchedule(week_start_date=MONDAY, shifts=tuple(shifts)), roster, params)

    codes = {(item.staff_id, item.code) for item in report.warnings}
    assert codes == {(1, "consecutive_days"), (2, "below_min_weekly_hours")}
    assert report.hours_by_staff == {1: 32.0, 2: 3.75}


def test_compliance_flags_hours_above_cap_and_coverage_gaps() -> None:
    roster = [member(1, cap=8)]
    shifts = (
        build_shift(1, MONDAY, "08:00", "17:00"),
        build_shift(1, MONDAY + timedelta(days=1), "08:00", "17:00"),
    )

    report = evaluate_compliance(
        WeeklySchedule(week_start_date=MONDAY, shifts=shifts),
        roster,
        DEFAULT_GOVERNANCE_PARAMETERS,
        plan_with([2.0, 1.0]),
    )

    assert [item.code for item in report.warnings] == ["above_weekly_cap"]
    assert [(gap.date, gap.shortfall) for gap in report.gaps] == [(MONDAY, 1)]


# --- ScheduleService ---

def _seed_week(repository, settings) -> ScheduleService:
    for name in ("Ana", "Bia"):
        repository.create_staff(name, "Housekeeper", SECTOR, True, ContractType.PERMANENT, 44, None, (), None)
    days = [DailyOperationalInput(date=MONDAY + timedelta(days=offset), vacant_dirty=5, stay=0) for offset in range(7)]
    WeeklyPlanService(repository=repository, settings=settings).save_week(week_start_date=MONDAY, days=days)
    return ScheduleService(repository=repository, settings=settings)


def test_suggest_requires_an_operational_plan(repository, settings) -> None:
    service = ScheduleService(repository=repository, settings=settings)

    with pytest.raises(WeeklyPlanNotFoundError):
        service.suggest(week_start_date=MONDAY)


def test_suggest_persists_and_refuses_silent_overwrite(repository, settings) -> None:
    service = _seed_week(repository, settings)

    outcome = service.suggest(week_start_date=MONDAY)

    assert len(outcome.schedule.shifts) == 7
    assert outcome.gaps == []
    assert service.get_schedule(MONDAY).shifts == outcome.schedule.shifts
    with pytest.raises(ScheduleOverwriteError):
        service.suggest(week_start_date=MONDAY)
    assert len(service.suggest(week_start_date=MONDAY, overwrite=True).schedule.shifts) == 7


def test_service_rejects_week_not_starting_monday(repository, settings) -> None:
    service = ScheduleService(repository=repository, settings=settings)

    with pytest.raises(ScheduleValidationError):
        service.get_schedule(MONDAY + timedelta(days=2))


def test_update_shift_creates_schedule_and_edits_one_cell(repository, settings) -> None:
    service = _seed_week(repository, settings)
    staff_id = repository.list_staff()[0].staff_id

    schedule = service.update_shift(
        week_start_date=MONDAY,
        staff_id=staff_id,
        day=MONDAY + timedelta(days=2),
        start_time="09:00",
        end_time="15:00",
    )

    assert len(schedule.shifts) == 1
    assert schedule.shifts[0].net_hours == 5.75
    with pytest.raises(ScheduleValidationError):
        service.update_shift(week_start_date=MONDAY, staff_id=999, day=MONDAY, start_time="08:00")


def test_compliance_needs_an_existing_schedule(repository, settings) -> None:
    service = _seed_week(repository, settings)

    with pytest.raises(ScheduleNotFoundError):
        service.compliance(MONDAY)

    service.suggest(week_start_date=MONDAY)
    report = service.compliance(MONDAY)
    assert report.gaps == []
    assert sum(report.hours_by_staff.values()) == 56.0
