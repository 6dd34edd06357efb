from __future__ import annotations

from dataclasses import replace

import pytest

from facility_planner.repository.data_repository import DataRepository
from facility_planner.utils.config import get_settings


@pytest.fixture
def settings(tmp_path):
    get_settings.cache_clear()
    base = get_settings()
    return replace(
        base,
        database_path=tmp_path / "planner.db",
        seed_demo_data=False,
        governance_sector="Housekeeping",
        default_shift_start="08:00",
        convocation_notice_hours=72,
        projection_horizon_days=30,
        suggestion_api_key="",
    )


@pytest.fixture
def repository(settings) -> DataRepository:
    repo = DataRepository(settings)
    repo.initialize_database()
    return repo
