"""Housekeeping demand: occupancy inputs to required staff-hours and headcount."""

from __future__ import annotations

import math
from dataclasses import replace
from datetime import date, timedelta
from typing import Optional, Sequence

from facility_planner.domain.constraints import (
    DEFAULT_GOVERNANCE_PARAMETERS,
    GovernanceParameters,
    validate_demand_parameters,
    validate_governance_parameters,
)
from facility_planner.domain.models import (
    DailyDemand,
    DailyOperationalInput,
    DayType,
    WeeklyOperationalPlan,
)
from facility_planner.repository.data_repository import DataRepository
from facility_planner.utils.config import Settings, get_settings
from facility_planner.utils.logger import get_logger


logger = get_logger(__name__)

DAYS_PER_WEEK = 7


class DemandError(Exception):
    """Base exception for demand planning failures."""


class DemandValidationError(DemandError):
    """Raised when operational inputs or a week layout are invalid."""


class WeeklyPlanNotFoundError(DemandError):
    """Raised when no operational plan exists for a week."""


def sanitize_daily_input(day: DailyOperationalInput) -> DailyOperationalInput:
    """Clamp negative room counts to zero; the calculator never sees them."""
    if day.vacant_dirty >= 0 and day.stay >= 0:
        return day
    logger.warning(
        "Negative room counts clamped to zero | date=%s | vacant_dirty=%s | stay=%s",
        day.date.isoformat(),
        day.vacant_dirty,
        day.stay,
    )
    return replace(day, vacant_dirty=max(0, day.vacant_dirty), stay=max(0, day.stay))


def demand_multiplier(day_type: DayType, params: GovernanceParameters) -> float:
    if day_type == DayType.HOLIDAY:
        return params.holiday_demand_multiplier
    if day_type == DayType.HOLIDAY_EVE:
        return params.holiday_eve_demand_multiplier
    return 1.0


def ceil_to_tenth(value: float) -> float:
    # round first so 1.1 * 10 style float noise does not bump a whole tenth
    return math.ceil(round(value * 10, 9)) / 10


def occupancy_percentage(day: DailyOperationalInput, available_rooms: int) -> float:
    return day.occupied_rooms / max(1, available_rooms) * 100


def calculate_daily_demand(
    day: DailyOperationalInput,
    params: GovernanceParameters,
    *,
    available_rooms: int,
) -> DailyDemand:
    if day.vacant_dirty < 0 or day.stay < 0:
        raise DemandValidationError(
            f"room counts for {day.date.isoformat()} must be sanitized to >= 0 first"
        )
    total_minutes = (
        day.vacant_dirty * params.default_cleaning_speed_vacant_dirty
        + day.stay * params.default_cleaning_speed_stay
    )
    adjusted_minutes = total_minutes * demand_multiplier(day.day_type, params)
    required_hours = adjusted_minutes / 60
    required_hours_with_efficiency = required_hours / (params.efficiency_target / 100)
    required_staff_count = ceil_to_tenth(
        required_hours_with_efficiency / params.standard_shift_duration
    )
    return DailyDemand(
        date=day.date,
        total_minutes=total_minutes,
        adjusted_minutes=adjusted_minutes,
        required_hours=required_hours,
        required_hours_with_efficiency=required_hours_with_efficiency,
        required_staff_count=required_staff_count,
        occupancy_percentage=occupancy_percentage(day, available_rooms),
    )


def calculate_weekly_demand(
    days: Sequence[DailyOperationalInput],
    params: GovernanceParameters,
    *,
    maintenance_room_count: int = 0,
) -> list[DailyDemand]:
    """Compute each day's demand independently.

    Raises InvalidConfigurationError before any arithmetic when the
    efficiency target or shift length cannot be divided by.
    """
    validate_demand_parameters(params)
    available_rooms = params.total_apartments - max(0, maintenance_room_count)
    return [
        calculate_daily_demand(day, params, available_rooms=available_rooms)
        for day in days
    ]


def validate_week_layout(week_start_date: date, days: Sequence[DailyOperationalInput]) -> None:
    if week_start_date.weekday() != 0:
        raise DemandValidationError(
            f"week_start_date {week_start_date.isoformat()} must be a Monday"
        )
    if len(days) != DAYS_PER_WEEK:
        raise DemandValidationError(f"a week plan needs exactly {DAYS_PER_WEEK} days")
    for offset, day in enumerate(days):
        expected = week_start_date + timedelta(days=offset)
        if day.date != expected:
            raise DemandValidationError(
                f"day {offset + 1} must be {expected.isoformat()}, got {day.date.isoformat()}"
            )


class WeeklyPlanService:
    """Governance parameters and the weekly operational plans computed from them."""

    def __init__(
        self,
        repository: Optional[DataRepository] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._repository = repository or DataRepository(self._settings)

    def get_parameters(self) -> GovernanceParameters:
        return self._repository.get_governance_parameters()

    def save_parameters(self, params: GovernanceParameters) -> GovernanceParameters:
        validate_governance_parameters(params)
        saved = self._repository.save_governance_parameters(params)
        logger.info(
            "Governance parameters saved | efficiency_target=%.1f | shift_hours=%.2f | total_apartments=%s",
            saved.efficiency_target,
            saved.standard_shift_duration,
            saved.total_apartments,
        )
        return saved

    def reset_parameters(self) -> GovernanceParameters:
        logger.info("Governance parameters reset to defaults")
        return self._repository.save_governance_parameters(DEFAULT_GOVERNANCE_PARAMETERS)

    def get_week(self, week_start_date: date) -> WeeklyOperationalPlan:
        plan = self._repository.get_weekly_plan(week_start_date)
        if plan is None:
            raise WeeklyPlanNotFoundError(
                f"no operational plan for week starting {week_start_date.isoformat()}"
            )
        return plan

    def save_week(
        self,
        *,
        week_start_date: date,
        days: Sequence[DailyOperationalInput],
        maintenance_room_count: int = 0,
    ) -> WeeklyOperationalPlan:
        """Sanitize inputs, compute demand with the stored parameters and persist the week."""
        validate_week_layout(week_start_date, days)
        if maintenance_room_count < 0:
            logger.warning(
                "Negative maintenance room count clamped to zero | week=%s | value=%s",
                week_start_date.isoformat(),
                maintenance_room_count,
            )
            maintenance_room_count = 0

        sanitized = tuple(sanitize_daily_input(day) for day in days)
        params = self.get_parameters()
        demand = calculate_weekly_demand(
            sanitized,
            params,
            maintenance_room_count=maintenance_room_count,
        )
        plan = self._repository.save_weekly_plan(
            WeeklyOperationalPlan(
                week_start_date=week_start_date,
                week_end_date=week_start_date + timedelta(days=DAYS_PER_WEEK - 1),
                maintenance_room_count=maintenance_room_count,
                days=sanitized,
                calculated_demand=tuple(demand),
            )
        )
        logger.info(
            "Demand calculated | week=%s | required_hours=%.2f | peak_staff=%.1f",
            week_start_date.isoformat(),
            sum(item.required_hours_with_efficiency for item in demand),
            max((item.required_staff_count for item in demand), default=0.0),
        )
        return plan
