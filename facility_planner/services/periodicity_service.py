"""Recurring task projection: periodicity labels, occurrence chains and their registry."""

from __future__ import annotations

import re
from dataclasses import dataclass, replace
from datetime import date, timedelta
from typing import Optional, Sequence

import pandas as pd

from facility_planner.domain.models import (
    OccurrenceStatus,
    RecurringTaskTemplate,
    TaskOccurrence,
    WorkPlan,
)
from facility_planner.repository.data_repository import DataRepository
from facility_planner.utils.config import Settings, get_settings
from facility_planner.utils.logger import get_logger


logger = get_logger(__name__)


class RecurringTaskError(Exception):
    """Base exception for recurring task registry failures."""


class RecurringTaskValidationError(RecurringTaskError):
    """Raised when a template, work plan or projection request is invalid."""


class PeriodicityValidationError(RecurringTaskValidationError):
    """Raised when a periodicity label cannot be accepted for a new template."""


class WorkPlanNotFoundError(RecurringTaskError):
    """Raised when a work plan id does not exist."""


class TemplateNotFoundError(RecurringTaskError):
    """Raised when a recurring task template id does not exist."""


class OccurrenceNotFoundError(RecurringTaskError):
    """Raised when a task occurrence id does not exist."""


class OccurrenceAlreadyExecutedError(RecurringTaskError):
    """Raised when an executed occurrence is modified or executed again."""


# Named periodicities and their calendar offsets.
PERIODICITY_OFFSETS: dict[str, dict[str, int]] = {
    "daily": {"days": 1},
    "weekly": {"days": 7},
    "biweekly": {"days": 15},
    "monthly": {"months": 1},
    "bimonthly": {"months": 2},
    "quarterly": {"months": 3},
    "semiannual": {"months": 6},
    "annual": {"years": 1},
}

NAMED_PERIODICITIES = (
    "Daily",
    "Weekly",
    "Biweekly",
    "Monthly",
    "Bimonthly",
    "Quarterly",
    "Semiannual",
    "Annual",
)

_CUSTOM_PATTERN = re.compile(r"^\s*every\s+(?P<count>\S+)\s+days?\s*$", re.IGNORECASE)


def parse_custom_interval(periodicity: str) -> Optional[int]:
    """Return N for an ``"every N days"`` label, or None when N is missing or not positive."""
    match = _CUSTOM_PATTERN.match(periodicity or "")
    if match is None:
        return None
    raw = match.group("count")
    if not raw.isdigit():
        return None
    count = int(raw)
    return count if count > 0 else None


def is_valid_periodicity(periodicity: str) -> bool:
    label = (periodicity or "").strip().lower()
    if label in PERIODICITY_OFFSETS:
        return True
    return parse_custom_interval(periodicity) is not None


def next_occurrence(current: date, periodicity: str) -> date:
    """Advance ``current`` by one period.

    Month and year offsets clamp to the end of the target month.
    Labels that resolve to nothing advance by one day and log a warning.
    """
    label = (periodicity or "").strip().lower()
    offset = PERIODICITY_OFFSETS.get(label)
    if offset is not None:
        if "days" in offset:
            return current + timedelta(days=offset["days"])
        return (pd.Timestamp(current) + pd.DateOffset(**offset)).date()

    interval = parse_custom_interval(periodicity)
    if interval is None:
        logger.warning(
            "Unrecognized periodicity; advancing one day | periodicity=%r | from=%s",
            periodicity,
            current.isoformat(),
        )
        interval = 1
    return current + timedelta(days=interval)


def derive_occurrence_status(occurrence: TaskOccurrence, today: date) -> OccurrenceStatus:
    if occurrence.is_executed:
        return OccurrenceStatus.COMPLETED
    if occurrence.planned_date < today:
        return OccurrenceStatus.OVERDUE
    if occurrence.planned_date == today:
        return OccurrenceStatus.IN_PROGRESS
    return OccurrenceStatus.NOT_STARTED


def last_known_operator(occurrences: Sequence[TaskOccurrence]) -> Optional[int]:
    assigned = [item for item in occurrences if item.operator_id is not None]
    if not assigned:
        return None
    latest = max(assigned, key=lambda item: (item.planned_date, item.occurrence_id or 0))
    return latest.operator_id


def project_occurrences(
    template: RecurringTaskTemplate,
    existing: Sequence[TaskOccurrence],
    *,
    horizon_days: int,
    today: date,
) -> list[TaskOccurrence]:
    """Plan the template's occurrences over ``[today, today + horizon_days)``.

    The chain starts the day after the latest execution, or today when the
    template was never executed. Dates already present in ``existing`` are
    skipped and nothing is planned before today.
    """
    if horizon_days <= 0:
        return []

    executed_dates = [item.execution_date for item in existing if item.execution_date is not None]
    candidate = max(executed_dates) + timedelta(days=1) if executed_dates else today
    window_end = today + timedelta(days=horizon_days)
    taken = {item.planned_date for item in existing}
    operator_id = last_known_operator(existing)

    projected: list[TaskOccurrence] = []
    while candidate < window_end:
        if candidate >= today and candidate not in taken:
            projected.append(
                TaskOccurrence(
                    occurrence_id=None,
                    template_id=template.template_id,
                    work_plan_id=template.work_plan_id,
                    planned_date=candidate,
                    operator_id=operator_id,
                )
            )
            taken.add(candidate)
        candidate = next_occurrence(candidate, template.periodicity)
    return projected


@dataclass(frozen=True)
class OccurrenceView:
    occurrence: TaskOccurrence
    status: OccurrenceStatus


@dataclass(frozen=True)
class TemplateCreation:
    template: RecurringTaskTemplate
    occurrences: list[TaskOccurrence]


@dataclass(frozen=True)
class ExecutionResult:
    executed: TaskOccurrence
    next_occurrence: Optional[TaskOccurrence]


class RecurringTaskService:
    """Work plans, templates and the occurrence chains they generate."""

    def __init__(
        self,
        repository: Optional[DataRepository] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._repository = repository or DataRepository(self._settings)

    # --- Work plans ---

    def list_work_plans(self) -> list[WorkPlan]:
        return self._repository.list_work_plans()

    def get_work_plan(self, work_plan_id: int) -> WorkPlan:
        work_plan = self._repository.get_work_plan(work_plan_id)
        if work_plan is None:
            raise WorkPlanNotFoundError(f"work_plan_id={work_plan_id} does not exist")
        return work_plan

    def create_work_plan(self, *, common_area_id: int) -> WorkPlan:
        if self._repository.get_common_area(common_area_id) is None:
            raise RecurringTaskValidationError(
                f"common_area_id={common_area_id} does not exist"
            )
        if self._repository.get_work_plan_by_area(common_area_id) is not None:
            raise RecurringTaskValidationError(
                f"common_area_id={common_area_id} already has a work plan"
            )
        work_plan = self._repository.create_work_plan(common_area_id)
        logger.info(
            "Work plan created | work_plan_id=%s | common_area_id=%s",
            work_plan.work_plan_id,
            common_area_id,
        )
        return work_plan

    def delete_work_plan(self, work_plan_id: int) -> None:
        if not self._repository.delete_work_plan(work_plan_id):
            raise WorkPlanNotFoundError(f"work_plan_id={work_plan_id} does not exist")

    # --- Templates ---

    def add_template(
        self,
        *,
        work_plan_id: int,
        activity_id: int,
        periodicity: str,
        today: Optional[date] = None,
    ) -> TemplateCreation:
        """Attach a recurring activity to a work plan and plan its first occurrences."""
        self.get_work_plan(work_plan_id)
        if self._repository.get_activity(activity_id) is None:
            raise RecurringTaskValidationError(f"activity_id={activity_id} does not exist")
        label = (periodicity or "").strip()
        if not is_valid_periodicity(label):
            raise PeriodicityValidationError(
                f"periodicity '{periodicity}' must be one of {', '.join(NAMED_PERIODICITIES)} "
                "or 'every N days' with N > 0"
            )

        template = self._repository.create_template(work_plan_id, activity_id, label)
        occurrences = self.project_template(template.template_id, today=today)
        return TemplateCreation(template=template, occurrences=occurrences)

    def delete_template(self, template_id: int) -> int:
        """Delete a template and its pending occurrences; executed history is kept."""
        deleted, purged = self._repository.delete_template(template_id)
        if not deleted:
            raise TemplateNotFoundError(f"template_id={template_id} does not exist")
        logger.info(
            "Template deleted | template_id=%s | pending_purged=%s",
            template_id,
            purged,
        )
        return purged

    def project_template(
        self,
        template_id: int,
        *,
        horizon_days: Optional[int] = None,
        today: Optional[date] = None,
    ) -> list[TaskOccurrence]:
        template = self._repository.get_template(template_id)
        if template is None:
            raise TemplateNotFoundError(f"template_id={template_id} does not exist")
        horizon = self._settings.projection_horizon_days if horizon_days is None else horizon_days
        if horizon <= 0:
            raise RecurringTaskValidationError("horizon_days must be > 0")

        reference_day = today or date.today()
        existing = self._repository.list_occurrences(template_id=template_id)
        projected = project_occurrences(
            template,
            existing,
            horizon_days=horizon,
            today=reference_day,
        )
        created = self._repository.insert_occurrences(projected)
        logger.info(
            "Occurrences projected | template_id=%s | periodicity=%s | horizon_days=%s | created=%s",
            template_id,
            template.periodicity,
            horizon,
            len(created),
        )
        return created

    # --- Occurrences ---

    def list_occurrences(
        self,
        *,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        operator_id: Optional[int] = None,
        today: Optional[date] = None,
    ) -> list[OccurrenceView]:
        if start_date is not None and end_date is not None and end_date < start_date:
            raise RecurringTaskValidationError("end_date must be on or after start_date")
        reference_day = today or date.today()
        occurrences = self._repository.list_occurrences(
            start_date=start_date,
            end_date=end_date,
            operator_id=operator_id,
        )
        return [
            OccurrenceView(occurrence=item, status=derive_occurrence_status(item, reference_day))
            for item in occurrences
        ]

    def mark_executed(
        self,
        occurrence_id: int,
        *,
        today: Optional[date] = None,
    ) -> ExecutionResult:
        """Record execution and extend the chain by exactly one occurrence."""
        occurrence = self._repository.get_occurrence(occurrence_id)
        if occurrence is None:
            raise OccurrenceNotFoundError(f"occurrence_id={occurrence_id} does not exist")
        if occurrence.is_executed:
            raise OccurrenceAlreadyExecutedError(
                f"occurrence_id={occurrence_id} was already executed on "
                f"{occurrence.execution_date.isoformat()}"
            )

        execution_date = today or date.today()
        if not self._repository.mark_occurrence_executed(occurrence_id, execution_date):
            raise OccurrenceAlreadyExecutedError(f"occurrence_id={occurrence_id} was already executed")
        executed = replace(occurrence, execution_date=execution_date)

        following: Optional[TaskOccurrence] = None
        template = (
            self._repository.get_template(occurrence.template_id)
            if occurrence.template_id is not None
            else None
        )
        if template is not None:
            following_date = next_occurrence(occurrence.planned_date, template.periodicity)
            created = self._repository.insert_occurrences(
                [
                    TaskOccurrence(
                        occurrence_id=None,
                        template_id=template.template_id,
                        work_plan_id=template.work_plan_id,
                        planned_date=following_date,
                        operator_id=occurrence.operator_id,
                    )
                ]
            )
            following = created[0] if created else None

        logger.info(
            "Occurrence executed | occurrence_id=%s | execution_date=%s | next=%s",
            occurrence_id,
            execution_date.isoformat(),
            following.planned_date.isoformat() if following is not None else None,
        )
        return ExecutionResult(executed=executed, next_occurrence=following)

    def assign_operator(self, occurrence_id: int, *, operator_id: Optional[int]) -> TaskOccurrence:
        occurrence = self._repository.get_occurrence(occurrence_id)
        if occurrence is None:
            raise OccurrenceNotFoundError(f"occurrence_id={occurrence_id} does not exist")
        if occurrence.is_executed:
            raise OccurrenceAlreadyExecutedError(
                f"occurrence_id={occurrence_id} is executed and can no longer change"
            )
        if operator_id is not None and self._repository.get_staff(operator_id) is None:
            raise RecurringTaskValidationError(f"operator_id={operator_id} does not exist")
        self._repository.update_occurrence_operator(occurrence_id, operator_id)
        return replace(occurrence, operator_id=operator_id)
