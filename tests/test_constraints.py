"""Tests for governance parameter validation.

Covers the calculation-time checks and the stricter save-time checks.
"""

from __future__ import annotations

from dataclasses import replace

import pytest

from facility_planner.domain.constraints import (
    DEFAULT_GOVERNANCE_PARAMETERS,
    GovernanceParameters,
    InvalidConfigurationError,
    validate_demand_parameters,
    validate_governance_parameters,
)


def params(**overrides) -> GovernanceParameters:
    """Return the default parameters, optionally overriding fields."""
    return replace(DEFAULT_GOVERNANCE_PARAMETERS, **overrides)


# --- Baseline pass ---

def test_default_parameters_pass_both_validators() -> None:
    validate_demand_parameters(params())
    validate_governance_parameters(params())


# --- Calculation-time checks ---

@pytest.mark.parametrize("value", [0.0, -10.0])
def test_non_positive_efficiency_target_is_a_configuration_error(value: float) -> None:
    with pytest.raises(InvalidConfigurationError):
        validate_demand_parameters(params(efficiency_target=value))


def test_zero_shift_duration_is_a_configuration_error() -> None:
    with pytest.raises(InvalidConfigurationError):
        validate_demand_parameters(params(standard_shift_duration=0.0))


@pytest.mark.parametrize("value", [23.0, 24.0])
def test_shift_that_cannot_fit_in_a_day_is_a_configuration_error(value: float) -> None:
    with pytest.raises(InvalidConfigurationError):
        validate_demand_parameters(params(standard_shift_duration=value))
    with pytest.raises(InvalidConfigurationError):
        validate_governance_parameters(params(standard_shift_duration=value))


def test_longest_allowed_shift_passes_validation() -> None:
    validate_governance_parameters(params(standard_shift_duration=22.5))


def test_negative_cleaning_speed_raises() -> None:
    with pytest.raises(InvalidConfigurationError):
        validate_demand_parameters(params(default_cleaning_speed_stay=-1.0))


def test_configuration_error_is_a_value_error() -> None:
    with pytest.raises(ValueError):
        validate_demand_parameters(params(efficiency_target=0.0))


# --- Save-time checks ---

def test_efficiency_above_hundred_rejected_on_save() -> None:
    with pytest.raises(InvalidConfigurationError):
        validate_governance_parameters(params(efficiency_target=120.0))


def test_intermittent_max_below_min_rejected() -> None:
    with pytest.raises(InvalidConfigurationError):
        validate_governance_parameters(
            params(intermittent_min_weekly_hours=20, intermittent_max_weekly_hours=10)
        )


def test_unknown_alternation_mode_rejected() -> None:
    with pytest.raises(InvalidConfigurationError):
        validate_governance_parameters(params(alternation_mode="Chaotic"))


def test_repetition_percentage_out_of_range_rejected() -> None:
    with pytest.raises(InvalidConfigurationError):
        validate_governance_parameters(params(max_shift_repetition_percentage=101.0))


def test_total_apartments_must_be_positive() -> None:
    with pytest.raises(InvalidConfigurationError):
        validate_governance_parameters(params(total_apartments=0))


# --- Serialization ---

def test_from_dict_ignores_unknown_keys_and_keeps_defaults() -> None:
    restored = GovernanceParameters.from_dict({"efficiency_target": 90.0, "legacy_field": 1})

    assert restored.efficiency_target == 90.0
    assert restored.standard_shift_duration == DEFAULT_GOVERNANCE_PARAMETERS.standard_shift_duration


def test_to_dict_round_trips() -> None:
    original = params(holiday_notes="Carnival week", total_apartments=140)

    assert GovernanceParameters.from_dict(original.to_dict()) == original
