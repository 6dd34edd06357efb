"""Tests for periodicity arithmetic, occurrence projection and the recurring chain."""

from __future__ import annotations

import logging
from datetime import date, timedelta

import pytest

from facility_planner.domain.models import (
    ContractType,
    OccurrenceStatus,
    RecurringTaskTemplate,
    TaskOccurrence,
)
from facility_planner.services.periodicity_service import (
    NAMED_PERIODICITIES,
    OccurrenceAlreadyExecutedError,
    PeriodicityValidationError,
    RecurringTaskService,
    TemplateNotFoundError,
    derive_occurrence_status,
    next_occurrence,
    parse_custom_interval,
    project_occurrences,
)


TODAY = date(2024, 6, 3)


def template(periodicity: str = "Daily") -> RecurringTaskTemplate:
    return RecurringTaskTemplate(template_id=1, work_plan_id=1, activity_id=1, periodicity=periodicity)


def occurrence(
    planned: date,
    *,
    executed: date | None = None,
    operator_id: int | None = None,
    occurrence_id: int = 1,
) -> TaskOccurrence:
    return TaskOccurrence(
        occurrence_id=occurrence_id,
        template_id=1,
        work_plan_id=1,
        planned_date=planned,
        execution_date=executed,
        operator_id=operator_id,
    )


# --- next_occurrence ---

@pytest.mark.parametrize(
    ("label", "expected"),
    [
        ("Daily", date(2024, 2, 1)),
        ("Weekly", date(2024, 2, 7)),
        ("Biweekly", date(2024, 2, 15)),
        ("Monthly", date(2024, 2, 29)),
        ("Bimonthly", date(2024, 3, 31)),
        ("Quarterly", date(2024, 4, 30)),
        ("Semiannual", date(2024, 7, 31)),
        ("Annual", date(2025, 1, 31)),
    ],
)
def test_named_periodicities_advance_by_calendar_units(label: str, expected: date) -> None:
    assert next_occurrence(date(2024, 1, 31), label) == expected


def test_labels_are_case_insensitive() -> None:
    assert next_occurrence(date(2024, 3, 10), "  monthly ") == date(2024, 4, 10)


def test_custom_every_n_days() -> None:
    assert next_occurrence(date(2024, 3, 10), "every 10 days") == date(2024, 3, 20)
    assert parse_custom_interval("Every 3 day") == 3


@pytest.mark.parametrize("label", ["every x days", "every 0 days", "fortnightly-ish", ""])
def test_unparsable_periodicity_falls_back_to_one_day_with_warning(label: str, caplog) -> None:
    with caplog.at_level(logging.WARNING):
        result = next_occurrence(date(2024, 3, 10), label)

    assert result == date(2024, 3, 11)
    assert "Unrecognized periodicity" in caplog.text


@pytest.mark.parametrize("label", [*NAMED_PERIODICITIES, "every 2 days", "every nope days"])
def test_next_occurrence_is_always_strictly_later(label: str) -> None:
    start = date(2023, 12, 25)
    for offset in range(0, 400, 37):
        current = start + timedelta(days=offset)
        assert next_occurrence(current, label) > current


# --- project_occurrences ---

def test_daily_projection_from_today_yields_seven_distinct_days() -> None:
    projected = project_occurrences(template("Daily"), [], horizon_days=7, today=TODAY)

    dates = [item.planned_date for item in projected]
    assert dates == [TODAY + timedelta(days=offset) for offset in range(7)]
    assert len(set(dates)) == 7
    assert all(item.occurrence_id is None for item in projected)


def test_projection_skips_dates_already_present() -> None:
    existing = [occurrence(TODAY + timedelta(days=2))]

    projected = project_occurrences(template("Daily"), existing, horizon_days=7, today=TODAY)

    dates = [item.planned_date for item in projected]
    assert TODAY + timedelta(days=2) not in dates
    assert len(dates) == 6


def test_projection_is_idempotent_once_results_are_stored() -> None:
    first = project_occurrences(template("Daily"), [], horizon_days=5, today=TODAY)
    stored = [
        occurrence(item.planned_date, occurrence_id=index)
        for index, item in enumerate(first, start=1)
    ]

    assert project_occurrences(template("Daily"), stored, horizon_days=5, today=TODAY) == []


def test_projection_restarts_the_day_after_last_execution() -> None:
    today = date(2024, 6, 10)
    existing = [occurrence(date(2024, 6, 8), executed=date(2024, 6, 9), operator_id=7)]

    projected = project_occurrences(template("Daily"), existing, horizon_days=3, today=today)

    assert [item.planned_date for item in projected] == [
        date(2024, 6, 10),
        date(2024, 6, 11),
        date(2024, 6, 12),
    ]
    assert {item.operator_id for item in projected} == {7}


def test_projection_keeps_cadence_but_never_plans_in_the_past() -> None:
    today = date(2024, 6, 10)
    existing = [occurrence(date(2024, 6, 1), executed=date(2024, 6, 1))]

    projected = project_occurrences(template("Weekly"), existing, horizon_days=14, today=today)

    assert [item.planned_date for item in projected] == [date(2024, 6, 16), date(2024, 6, 23)]


def test_projection_without_operator_history_leaves_operator_empty() -> None:
    projected = project_occurrences(template("Weekly"), [], horizon_days=30, today=TODAY)

    assert len(projected) == 5
    assert all(item.operator_id is None for item in projected)


# --- status ---

def test_occurrence_status_is_derived_from_dates() -> None:
    assert derive_occurrence_status(occurrence(TODAY, executed=TODAY), TODAY) == OccurrenceStatus.COMPLETED
    assert derive_occurrence_status(occurrence(TODAY - timedelta(days=1)), TODAY) == OccurrenceStatus.OVERDUE
    assert derive_occurrence_status(occurrence(TODAY), TODAY) == OccurrenceStatus.IN_PROGRESS
    assert derive_occurrence_status(occurrence(TODAY + timedelta(days=1)), TODAY) == OccurrenceStatus.NOT_STARTED


# --- RecurringTaskService ---

def _work_plan_with_activity(repository) -> tuple[int, int, int]:
    area = repository.create_common_area("Seaside Hotel", "Main Building", "", "Lobby", 120.0)
    activity = repository.create_activity("Floor cleaning", "", 15, 0.1, (), ())
    work_plan = repository.create_work_plan(area.area_id)
    return area.area_id, work_plan.work_plan_id, activity.activity_id


def test_add_template_projects_default_horizon(repository, settings) -> None:
    _, work_plan_id, activity_id = _work_plan_with_activity(repository)
    service = RecurringTaskService(repository=repository, settings=settings)

    result = service.add_template(
        work_plan_id=work_plan_id,
        activity_id=activity_id,
        periodicity="Weekly",
        today=TODAY,
    )

    assert [item.planned_date for item in result.occurrences] == [
        TODAY + timedelta(days=offset) for offset in (0, 7, 14, 21, 28)
    ]
    assert service.project_template(result.template.template_id, today=TODAY) == []


def test_add_template_rejects_unknown_periodicity(repository, settings) -> None:
    _, work_plan_id, activity_id = _work_plan_with_activity(repository)
    service = RecurringTaskService(repository=repository, settings=settings)

    with pytest.raises(PeriodicityValidationError):
        service.add_template(work_plan_id=work_plan_id, activity_id=activity_id, periodicity="sometimes")


def test_execution_extends_chain_by_one_and_keeps_operator(repository, settings) -> None:
    _, work_plan_id, activity_id = _work_plan_with_activity(repository)
    staff = repository.create_staff(
        "Ana", "Cleaner", "Common Areas", True, ContractType.PERMANENT, 44, None, (), None
    )
    service = RecurringTaskService(repository=repository, settings=settings)
    created = service.add_template(
        work_plan_id=work_plan_id,
        activity_id=activity_id,
        periodicity="Monthly",
        today=TODAY,
    )
    assert len(created.occurrences) == 1
    first = created.occurrences[0]
    service.assign_operator(first.occurrence_id, operator_id=staff.staff_id)

    result = service.mark_executed(first.occurrence_id, today=TODAY + timedelta(days=1))

    assert result.executed.execution_date == TODAY + timedelta(days=1)
    assert result.next_occurrence is not None
    assert result.next_occurrence.planned_date == date(2024, 7, 3)
    assert result.next_occurrence.operator_id == staff.staff_id

    with pytest.raises(OccurrenceAlreadyExecutedError):
        service.mark_executed(first.occurrence_id, today=TODAY + timedelta(days=2))
    with pytest.raises(OccurrenceAlreadyExecutedError):
        service.assign_operator(first.occurrence_id, operator_id=None)


def test_deleting_template_keeps_executed_history(repository, settings) -> None:
    _, work_plan_id, activity_id = _work_plan_with_activity(repository)
    service = RecurringTaskService(repository=repository, settings=settings)
    created = service.add_template(
        work_plan_id=work_plan_id,
        activity_id=activity_id,
        periodicity="Daily",
        today=TODAY,
    )
    executed_id = created.occurrences[0].occurrence_id
    service.mark_executed(executed_id, today=TODAY)

    purged = service.delete_template(created.template.template_id)

    remaining = repository.list_occurrences()
    assert purged == 29
    assert [item.occurrence_id for item in remaining] == [executed_id]
    assert remaining[0].execution_date == TODAY
    assert remaining[0].template_id is None
    with pytest.raises(TemplateNotFoundError):
        service.delete_template(created.template.template_id)


def test_deleting_common_area_cascades_only_pending(repository, settings) -> None:
    area_id, work_plan_id, activity_id = _work_plan_with_activity(repository)
    service = RecurringTaskService(repository=repository, settings=settings)
    created = service.add_template(
        work_plan_id=work_plan_id,
        activity_id=activity_id,
        periodicity="Weekly",
        today=TODAY,
    )
    executed_id = created.occurrences[1].occurrence_id
    service.mark_executed(executed_id, today=TODAY)

    assert repository.delete_common_area(area_id) is True

    remaining = repository.list_occurrences()
    assert [item.occurrence_id for item in remaining] == [executed_id]
    assert remaining[0].work_plan_id is None
    assert repository.list_work_plans() == []


def test_list_occurrences_reports_status(repository, settings) -> None:
    _, work_plan_id, activity_id = _work_plan_with_activity(repository)
    service = RecurringTaskService(repository=repository, settings=settings)
    service.add_template(
        work_plan_id=work_plan_id,
        activity_id=activity_id,
        periodicity="Daily",
        today=TODAY,
    )

    views = service.list_occurrences(
        start_date=TODAY,
        end_date=TODAY + timedelta(days=2),
        today=TODAY + timedelta(days=1),
    )

    assert [view.status for view in views] == [
        OccurrenceStatus.OVERDUE,
        OccurrenceStatus.IN_PROGRESS,
        OccurrenceStatus.NOT_STARTED,
    ]
