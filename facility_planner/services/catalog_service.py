"""Catalog maintenance for common areas, resources, activities and staff."""

from __future__ import annotations

from typing import Any, Optional, Sequence

from facility_planner.domain.models import (
    WEEKDAY_NAMES,
    ActivityDefinition,
    CommonArea,
    ContractType,
    Resource,
    ResourceRequirement,
    ResourceType,
    StaffMember,
)
from facility_planner.repository.data_repository import DataRepository
from facility_planner.utils.config import Settings, get_settings
from facility_planner.utils.logger import get_logger


logger = get_logger(__name__)


class CatalogError(Exception):
    """Base exception for catalog operations."""


class CatalogValidationError(CatalogError):
    """Raised when a catalog record fails validation."""


class CatalogNotFoundError(CatalogError):
    """Raised when a catalog id does not exist."""


def _require_text(value: Optional[str], field_name: str) -> str:
    cleaned = (value or "").strip()
    if not cleaned:
        raise CatalogValidationError(f"{field_name} must be non-empty")
    return cleaned


def normalize_weekdays(days: Sequence[str]) -> tuple[str, ...]:
    """Canonical weekday names in week order; unknown names are rejected."""
    lookup = {name.lower(): name for name in WEEKDAY_NAMES}
    normalized: set[str] = set()
    for raw in days:
        name = lookup.get((raw or "").strip().lower())
        if name is None:
            raise CatalogValidationError(
                f"unavailable day '{raw}' must be one of {', '.join(WEEKDAY_NAMES)}"
            )
        normalized.add(name)
    return tuple(name for name in WEEKDAY_NAMES if name in normalized)


class CatalogService:
    def __init__(
        self,
        repository: Optional[DataRepository] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._repository = repository or DataRepository(self._settings)

    # --- Common areas ---

    def list_common_areas(self) -> list[CommonArea]:
        return self._repository.list_common_areas()

    def get_common_area(self, area_id: int) -> CommonArea:
        area = self._repository.get_common_area(area_id)
        if area is None:
            raise CatalogNotFoundError(f"common_area_id={area_id} does not exist")
        return area

    def _validate_area_fields(self, changes: dict[str, Any]) -> dict[str, Any]:
        cleaned = dict(changes)
        for key in ("client", "location", "environment"):
            if key in cleaned:
                cleaned[key] = _require_text(cleaned[key], key)
        if "sub_location" in cleaned:
            cleaned["sub_location"] = (cleaned["sub_location"] or "").strip()
        if "area" in cleaned and (cleaned["area"] is None or cleaned["area"] <= 0):
            raise CatalogValidationError("area must be > 0")
        return cleaned

    def create_common_area(
        self,
        *,
        client: str,
        location: str,
        environment: str,
        area: float,
        sub_location: str = "",
    ) -> CommonArea:
        fields = self._validate_area_fields(
            {
                "client": client,
                "location": location,
                "sub_location": sub_location,
                "environment": environment,
                "area": area,
            }
        )
        created = self._repository.create_common_area(**fields)
        logger.info("Common area created | area_id=%s | environment=%s", created.area_id, created.environment)
        return created

    def update_common_area(self, area_id: int, changes: dict[str, Any]) -> CommonArea:
        updated = self._repository.update_common_area(area_id, self._validate_area_fields(changes))
        if updated is None:
            raise CatalogNotFoundError(f"common_area_id={area_id} does not exist")
        return updated

    def delete_common_area(self, area_id: int) -> None:
        if not self._repository.delete_common_area(area_id):
            raise CatalogNotFoundError(f"common_area_id={area_id} does not exist")

    # --- Resources ---

    def list_resources(self, resource_type: Optional[ResourceType] = None) -> list[Resource]:
        return self._repository.list_resources(resource_type)

    def get_resource(self, resource_id: int) -> Resource:
        resource = self._repository.get_resource(resource_id)
        if resource is None:
            raise CatalogNotFoundError(f"resource_id={resource_id} does not exist")
        return resource

    def create_resource(
        self,
        *,
        name: str,
        resource_type: ResourceType,
        unit: str,
        coefficient_m2: Optional[float] = None,
    ) -> Resource:
        if coefficient_m2 is not None and coefficient_m2 < 0:
            raise CatalogValidationError("coefficient_m2 must be >= 0")
        return self._repository.create_resource(
            _require_text(name, "name"),
            ResourceType(resource_type),
            _require_text(unit, "unit"),
            coefficient_m2,
        )

    def update_resource(self, resource_id: int, changes: dict[str, Any]) -> Resource:
        cleaned = dict(changes)
        for key in ("name", "unit"):
            if key in cleaned:
                cleaned[key] = _require_text(cleaned[key], key)
        if "resource_type" in cleaned:
            cleaned["type"] = ResourceType(cleaned.pop("resource_type")).value
        coefficient = cleaned.get("coefficient_m2")
        if coefficient is not None and coefficient < 0:
            raise CatalogValidationError("coefficient_m2 must be >= 0")
        updated = self._repository.update_resource(resource_id, cleaned)
        if updated is None:
            raise CatalogNotFoundError(f"resource_id={resource_id} does not exist")
        return updated

    def delete_resource(self, resource_id: int) -> None:
        if not self._repository.delete_resource(resource_id):
            raise CatalogNotFoundError(f"resource_id={resource_id} does not exist")

    # --- Activities ---

    def _validate_requirements(
        self,
        items: Sequence[ResourceRequirement],
        expected_type: ResourceType,
    ) -> tuple[ResourceRequirement, ...]:
        resources = self._repository.get_resources_by_ids([item.resource_id for item in items])
        for item in items:
            resource = resources.get(item.resource_id)
            if resource is None:
                raise CatalogValidationError(f"resource_id={item.resource_id} does not exist")
            if resource.resource_type != expected_type:
                raise CatalogValidationError(
                    f"resource_id={item.resource_id} is a {resource.resource_type.value}, "
                    f"expected a {expected_type.value}"
                )
            if item.quantity <= 0:
                raise CatalogValidationError(
                    f"quantity for resource_id={item.resource_id} must be > 0"
                )
        return tuple(items)

    def list_activities(self) -> list[ActivityDefinition]:
        return self._repository.list_activities()

    def get_activity(self, activity_id: int) -> ActivityDefinition:
        activity = self._repository.get_activity(activity_id)
        if activity is None:
            raise CatalogNotFoundError(f"activity_id={activity_id} does not exist")
        return activity

    def create_activity(
        self,
        *,
        name: str,
        sla: int,
        description: str = "",
        sla_coefficient: Optional[float] = None,
        tools: Sequence[ResourceRequirement] = (),
        materials: Sequence[ResourceRequirement] = (),
    ) -> ActivityDefinition:
        if sla < 0:
            raise CatalogValidationError("sla must be >= 0")
        if sla_coefficient is not None and sla_coefficient < 0:
            raise CatalogValidationError("sla_coefficient must be >= 0")
        return self._repository.create_activity(
            _require_text(name, "name"),
            (description or "").strip(),
            sla,
            sla_coefficient,
            self._validate_requirements(tools, ResourceType.TOOL),
            self._validate_requirements(materials, ResourceType.MATERIAL),
        )

    def update_activity(self, activity_id: int, changes: dict[str, Any]) -> ActivityDefinition:
        cleaned = dict(changes)
        if "name" in cleaned:
            cleaned["name"] = _require_text(cleaned["name"], "name")
        if "sla" in cleaned and (cleaned["sla"] is None or cleaned["sla"] < 0):
            raise CatalogValidationError("sla must be >= 0")
        if cleaned.get("sla_coefficient") is not None and cleaned["sla_coefficient"] < 0:
            raise CatalogValidationError("sla_coefficient must be >= 0")
        if "tools" in cleaned:
            cleaned["tools"] = self._validate_requirements(cleaned["tools"], ResourceType.TOOL)
        if "materials" in cleaned:
            cleaned["materials"] = self._validate_requirements(
                cleaned["materials"], ResourceType.MATERIAL
            )
        updated = self._repository.update_activity(activity_id, cleaned)
        if updated is None:
            raise CatalogNotFoundError(f"activity_id={activity_id} does not exist")
        return updated

    def delete_activity(self, activity_id: int) -> None:
        if not self._repository.delete_activity(activity_id):
            raise CatalogNotFoundError(f"activity_id={activity_id} does not exist")

    # --- Staff ---

    def list_staff(self) -> list[StaffMember]:
        return self._repository.list_staff()

    def get_staff(self, staff_id: int) -> StaffMember:
        member = self._repository.get_staff(staff_id)
        if member is None:
            raise CatalogNotFoundError(f"staff_id={staff_id} does not exist")
        return member

    @staticmethod
    def _validate_hours(changes: dict[str, Any]) -> None:
        for key in ("max_weekly_hours", "governance_max_weekly_hours"):
            value = changes.get(key)
            if value is not None and not 0 < value <= 168:
                raise CatalogValidationError(f"{key} must be between 1 and 168")

    def create_staff(
        self,
        *,
        name: str,
        role: str,
        sector: str,
        is_active: bool = True,
        contract_type: ContractType = ContractType.PERMANENT,
        max_weekly_hours: Optional[int] = None,
        governance_max_weekly_hours: Optional[int] = None,
        unavailable_days: Sequence[str] = (),
        notes: Optional[str] = None,
    ) -> StaffMember:
        self._validate_hours(
            {
                "max_weekly_hours": max_weekly_hours,
                "governance_max_weekly_hours": governance_max_weekly_hours,
            }
        )
        created = self._repository.create_staff(
            _require_text(name, "name"),
            _require_text(role, "role"),
            _require_text(sector, "sector"),
            is_active,
            ContractType(contract_type),
            max_weekly_hours,
            governance_max_weekly_hours,
            normalize_weekdays(unavailable_days),
            notes,
        )
        logger.info(
            "Staff member created | staff_id=%s | sector=%s | contract=%s",
            created.staff_id,
            created.sector,
            created.contract_type.value,
        )
        return created

    def update_staff(self, staff_id: int, changes: dict[str, Any]) -> StaffMember:
        cleaned = dict(changes)
        for key in ("name", "role", "sector"):
            if key in cleaned:
                cleaned[key] = _require_text(cleaned[key], key)
        self._validate_hours(cleaned)
        if "unavailable_days" in cleaned:
            cleaned["unavailable_days"] = normalize_weekdays(cleaned["unavailable_days"] or ())
        updated = self._repository.update_staff(staff_id, cleaned)
        if updated is None:
            raise CatalogNotFoundError(f"staff_id={staff_id} does not exist")
        return updated

    def delete_staff(self, staff_id: int) -> None:
        if not self._repository.delete_staff(staff_id):
            raise CatalogNotFoundError(f"staff_id={staff_id} does not exist")
