"""Governance parameters and the validation rules applied before computing."""

from __future__ import annotations

from dataclasses import asdict, dataclass, fields
from typing import Any


class InvalidConfigurationError(ValueError):
    """Raised when governance parameters cannot drive a calculation."""


# A standard shift plus its one-hour break must end before the same clock time next day.
MAX_STANDARD_SHIFT_HOURS = 23.0


@dataclass(frozen=True)
class GovernanceParameters:
    # Average cleaning times (minutes per room)
    default_cleaning_speed_vacant_dirty: float = 30.0
    default_cleaning_speed_stay: float = 20.0

    # Holidays
    holiday_demand_multiplier: float = 1.2
    holiday_eve_demand_multiplier: float = 1.1
    allow_intermittent_on_holidays: bool = True
    prefer_effective_on_holidays: bool = True
    holiday_notes: str = ""

    # Intermittent contracts
    intermittent_min_weekly_hours: int = 8
    intermittent_max_weekly_hours: int = 44
    intermittent_max_consecutive_days: int = 6
    intermittent_weeks_interval: int = 1
    intermittent_mandatory_off_weeks: int = 4

    # Alternation
    max_shift_repetition_percentage: float = 60.0
    max_day_shift_repetition_percentage: float = 50.0
    alternation_mode: str = "Flexible"

    # Operating regime
    total_apartments: int = 100
    standard_shift_duration: float = 8.0
    efficiency_target: float = 80.0
    sunday_rotation_ratio: int = 4

    custom_rules: str = ""

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "GovernanceParameters":
        """Build from a stored payload, ignoring unknown keys and keeping defaults for missing ones."""
        known = {item.name for item in fields(cls)}
        return cls(**{key: value for key, value in payload.items() if key in known})


DEFAULT_GOVERNANCE_PARAMETERS = GovernanceParameters()

ALTERNATION_MODES = ("Conservative", "Flexible")


def validate_demand_parameters(params: GovernanceParameters) -> None:
    """Checks needed by the demand calculator and the shift allocator."""
    if params.efficiency_target is None or params.efficiency_target <= 0:
        raise InvalidConfigurationError("efficiency_target must be > 0")
    if params.standard_shift_duration is None or params.standard_shift_duration <= 0:
        raise InvalidConfigurationError("standard_shift_duration must be > 0")
    if params.standard_shift_duration >= MAX_STANDARD_SHIFT_HOURS:
        raise InvalidConfigurationError(
            f"standard_shift_duration must be < {MAX_STANDARD_SHIFT_HOURS:g} so the shift and its break fit in one day"
        )
    if params.default_cleaning_speed_vacant_dirty < 0:
        raise InvalidConfigurationError("default_cleaning_speed_vacant_dirty must be >= 0")
    if params.default_cleaning_speed_stay < 0:
        raise InvalidConfigurationError("default_cleaning_speed_stay must be >= 0")
    if params.holiday_demand_multiplier < 0:
        raise InvalidConfigurationError("holiday_demand_multiplier must be >= 0")
    if params.holiday_eve_demand_multiplier < 0:
        raise InvalidConfigurationError("holiday_eve_demand_multiplier must be >= 0")


def validate_governance_parameters(params: GovernanceParameters) -> None:
    """Full validation applied when parameters are saved."""
    validate_demand_parameters(params)
    if params.efficiency_target > 100:
        raise InvalidConfigurationError("efficiency_target must be <= 100")
    if params.total_apartments <= 0:
        raise InvalidConfigurationError("total_apartments must be > 0")
    if params.intermittent_min_weekly_hours < 0:
        raise InvalidConfigurationError("intermittent_min_weekly_hours must be >= 0")
    if params.intermittent_max_weekly_hours < params.intermittent_min_weekly_hours:
        raise InvalidConfigurationError(
            "intermittent_max_weekly_hours must be >= intermittent_min_weekly_hours"
        )
    if params.intermittent_max_consecutive_days <= 0:
        raise InvalidConfigurationError("intermittent_max_consecutive_days must be > 0")
    if not 0.0 <= params.max_shift_repetition_percentage <= 100.0:
        raise InvalidConfigurationError("max_shift_repetition_percentage must be between 0 and 100")
    if not 0.0 <= params.max_day_shift_repetition_percentage <= 100.0:
        raise InvalidConfigurationError(
            "max_day_shift_repetition_percentage must be between 0 and 100"
        )
    if params.alternation_mode not in ALTERNATION_MODES:
        raise InvalidConfigurationError(
            f"alternation_mode must be one of {', '.join(ALTERNATION_MODES)}"
        )
    if params.sunday_rotation_ratio <= 0:
        raise InvalidConfigurationError("sunday_rotation_ratio must be > 0")
