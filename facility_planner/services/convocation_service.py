"""Formal shift notices with a minimum-notice window and an accept/reject lifecycle."""

from __future__ import annotations

from dataclasses import replace
from datetime import date, datetime, time, timedelta
from typing import Optional, Sequence

from facility_planner.domain.models import (
    Convocation,
    ConvocationStatus,
    ShiftAssignment,
    WeeklySchedule,
)
from facility_planner.repository.data_repository import DataRepository
from facility_planner.services.shift_service import parse_clock
from facility_planner.utils.config import Settings, get_settings
from facility_planner.utils.logger import get_logger


logger = get_logger(__name__)

DEFAULT_NOTICE_HOURS = 72


class ConvocationError(Exception):
    """Base exception for convocation workflow failures."""


class ConvocationValidationError(ConvocationError):
    """Raised when a convocation request carries invalid input."""


class ConvocationNotFoundError(ConvocationError):
    """Raised when a convocation or its schedule does not exist."""


class ConvocationNotSendableError(ConvocationError):
    """Raised when a shift is past its notice deadline or already convoked."""


class InvalidConvocationTransitionError(ConvocationError):
    """Raised when responding to a convocation that is no longer pending."""


def shift_start_datetime(shift_date: date, shift_start_time: str) -> datetime:
    minutes = parse_clock(shift_start_time)
    return datetime.combine(shift_date, time(hour=minutes // 60, minute=minutes % 60))


def compute_deadline(
    shift_date: date,
    shift_start_time: str,
    notice_hours: int = DEFAULT_NOTICE_HOURS,
) -> datetime:
    """Latest moment a notice may go out: shift start minus exactly ``notice_hours``."""
    return shift_start_datetime(shift_date, shift_start_time) - timedelta(hours=notice_hours)


def can_send(
    shift_date: date,
    shift_start_time: str,
    now: datetime,
    notice_hours: int = DEFAULT_NOTICE_HOURS,
) -> bool:
    return now < compute_deadline(shift_date, shift_start_time, notice_hours)


def effective_status(convocation: Convocation, now: datetime) -> ConvocationStatus:
    """Status as seen at ``now``; every listing and transition goes through this.

    Expired is never stored: a pending notice past its deadline reads as
    expired.
    """
    if convocation.status == ConvocationStatus.PENDING and now > convocation.deadline_at:
        return ConvocationStatus.EXPIRED
    return convocation.status


def with_effective_status(convocation: Convocation, now: datetime) -> Convocation:
    status = effective_status(convocation, now)
    if status == convocation.status:
        return convocation
    return replace(convocation, status=status)


def sendable_shifts(
    shifts: Sequence[ShiftAssignment],
    convocations: Sequence[Convocation],
    now: datetime,
    notice_hours: int = DEFAULT_NOTICE_HOURS,
) -> list[ShiftAssignment]:
    """Complete shifts without a convocation whose deadline is still ahead."""
    convoked = {item.shift_id for item in convocations}
    return [
        shift
        for shift in shifts
        if shift.is_complete
        and shift.shift_id not in convoked
        and can_send(shift.date, shift.start_time, now, notice_hours)
    ]


class ConvocationService:
    """Sends notices for scheduled shifts and records staff responses."""

    def __init__(
        self,
        repository: Optional[DataRepository] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._repository = repository or DataRepository(self._settings)

    @property
    def notice_hours(self) -> int:
        return self._settings.convocation_notice_hours

    def _schedule(self, week_start_date: date) -> WeeklySchedule:
        schedule = self._repository.get_weekly_schedule(week_start_date)
        if schedule is None or schedule.schedule_id is None:
            raise ConvocationNotFoundError(
                f"no schedule for week starting {week_start_date.isoformat()}"
            )
        return schedule

    def _load(self, convocation_id: int) -> Convocation:
        convocation = self._repository.get_convocation(convocation_id)
        if convocation is None:
            raise ConvocationNotFoundError(f"convocation_id={convocation_id} does not exist")
        return convocation

    def get_convocation(self, convocation_id: int, *, now: Optional[datetime] = None) -> Convocation:
        return with_effective_status(self._load(convocation_id), now or datetime.now())

    def list_for_week(
        self,
        week_start_date: date,
        *,
        now: Optional[datetime] = None,
    ) -> list[Convocation]:
        schedule = self._repository.get_weekly_schedule(week_start_date)
        if schedule is None or schedule.schedule_id is None:
            return []
        reference = now or datetime.now()
        return [
            with_effective_status(item, reference)
            for item in self._repository.list_convocations(schedule.schedule_id)
        ]

    def sendable(
        self,
        week_start_date: date,
        *,
        now: Optional[datetime] = None,
    ) -> list[ShiftAssignment]:
        schedule = self._schedule(week_start_date)
        return sendable_shifts(
            schedule.shifts,
            self._repository.list_convocations(schedule.schedule_id),
            now or datetime.now(),
            self.notice_hours,
        )

    def send(
        self,
        *,
        week_start_date: date,
        shift_ids: Optional[Sequence[str]] = None,
        justification: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> list[Convocation]:
        """Send notices for the given shifts, or for every sendable shift when none are named."""
        reference = now or datetime.now()
        schedule = self._schedule(week_start_date)
        existing = self._repository.list_convocations(schedule.schedule_id)
        candidates = sendable_shifts(schedule.shifts, existing, reference, self.notice_hours)

        if shift_ids is not None:
            if not shift_ids:
                raise ConvocationValidationError("shift_ids must not be empty")
            by_id = {shift.shift_id: shift for shift in candidates}
            known = {shift.shift_id for shift in schedule.shifts}
            selected: list[ShiftAssignment] = []
            for shift_id in dict.fromkeys(shift_ids):
                if shift_id not in known:
                    raise ConvocationNotFoundError(
                        f"shift_id={shift_id} is not part of week {week_start_date.isoformat()}"
                    )
                if shift_id not in by_id:
                    raise ConvocationNotSendableError(
                        f"shift_id={shift_id} is incomplete, already convoked or past its "
                        f"{self.notice_hours}h notice deadline"
                    )
                selected.append(by_id[shift_id])
            candidates = selected

        text = (justification or "").strip() or self._settings.default_convocation_justification
        created = self._repository.create_convocations(
            [
                Convocation(
                    convocation_id=None,
                    schedule_id=schedule.schedule_id,
                    shift_id=shift.shift_id,
                    staff_id=shift.staff_id,
                    shift_date=shift.date,
                    shift_start_time=shift.start_time,
                    shift_end_time=shift.end_time,
                    sent_at=reference,
                    deadline_at=compute_deadline(shift.date, shift.start_time, self.notice_hours),
                    justification=text,
                )
                for shift in candidates
            ]
        )
        logger.info(
            "Convocations sent | week=%s | requested=%s | created=%s",
            week_start_date.isoformat(),
            "all" if shift_ids is None else len(shift_ids),
            len(created),
        )
        return created

    def _respond(
        self,
        convocation_id: int,
        status: ConvocationStatus,
        now: datetime,
        rejection_reason: Optional[str] = None,
    ) -> Convocation:
        convocation = self._load(convocation_id)
        current = effective_status(convocation, now)
        if current != ConvocationStatus.PENDING:
            raise InvalidConvocationTransitionError(
                f"convocation_id={convocation_id} is {current.value} and cannot be "
                f"{status.value.lower()}"
            )
        if not self._repository.record_convocation_response(
            convocation_id,
            status,
            now,
            rejection_reason,
        ):
            raise InvalidConvocationTransitionError(
                f"convocation_id={convocation_id} was answered concurrently"
            )
        logger.info(
            "Convocation answered | convocation_id=%s | status=%s",
            convocation_id,
            status.value,
        )
        return replace(
            convocation,
            status=status,
            responded_at=now,
            rejection_reason=rejection_reason,
        )

    def accept(self, convocation_id: int, *, now: Optional[datetime] = None) -> Convocation:
        return self._respond(convocation_id, ConvocationStatus.ACCEPTED, now or datetime.now())

    def reject(
        self,
        convocation_id: int,
        *,
        reason: str,
        now: Optional[datetime] = None,
    ) -> Convocation:
        cleaned = (reason or "").strip()
        if not cleaned:
            raise ConvocationValidationError("a rejection reason is required")
        return self._respond(
            convocation_id,
            ConvocationStatus.REJECTED,
            now or datetime.now(),
            rejection_reason=cleaned,
        )
