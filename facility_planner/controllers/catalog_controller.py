"""HTTP controller layer for catalog maintenance and activity suggestions."""

from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field, field_validator

from facility_planner.controllers.dependencies import get_catalog_service, get_suggestion_service
from facility_planner.domain.models import (
    ActivityDefinition,
    CommonArea,
    ContractType,
    Resource,
    ResourceRequirement,
    ResourceType,
    StaffMember,
)
from facility_planner.services.catalog_service import (
    CatalogError,
    CatalogNotFoundError,
    CatalogService,
    CatalogValidationError,
)
from facility_planner.services.suggestion_service import (
    ActivitySuggestionService,
    SuggestionValidationError,
)
from facility_planner.utils.logger import get_logger


logger = get_logger(__name__)

router = APIRouter(prefix="/api", tags=["catalog"])


def _http_error(exc: CatalogError) -> HTTPException:
    if isinstance(exc, CatalogNotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    if isinstance(exc, CatalogValidationError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))


def _unexpected(action: str, exc: Exception) -> HTTPException:
    logger.exception("Unexpected catalog failure | action=%s", action)
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=f"Failed to {action}",
    )


# --- DTOs ---


class CommonAreaCreateRequest(BaseModel):
    client: str = Field(min_length=1)
    location: str = Field(min_length=1)
    sub_location: str = ""
    environment: str = Field(min_length=1)
    area: float = Field(gt=0)


class CommonAreaUpdateRequest(BaseModel):
    client: Optional[str] = Field(default=None, min_length=1)
    location: Optional[str] = Field(default=None, min_length=1)
    sub_location: Optional[str] = None
    environment: Optional[str] = Field(default=None, min_length=1)
    area: Optional[float] = Field(default=None, gt=0)


class CommonAreaResponse(BaseModel):
    id: int
    client: str
    location: str
    sub_location: str
    environment: str
    area: float

    @classmethod
    def from_domain(cls, item: CommonArea) -> "CommonAreaResponse":
        return cls(
            id=item.area_id,
            client=item.client,
            location=item.location,
            sub_location=item.sub_location,
            environment=item.environment,
            area=item.area,
        )


class ResourceCreateRequest(BaseModel):
    name: str = Field(min_length=1)
    type: ResourceType
    unit: str = Field(min_length=1)
    coefficient_m2: Optional[float] = Field(default=None, ge=0.0)


class ResourceUpdateRequest(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1)
    type: Optional[ResourceType] = None
    unit: Optional[str] = Field(default=None, min_length=1)
    coefficient_m2: Optional[float] = Field(default=None, ge=0.0)


class ResourceResponse(BaseModel):
    id: int
    name: str
    type: ResourceType
    unit: str
    coefficient_m2: Optional[float]

    @classmethod
    def from_domain(cls, item: Resource) -> "ResourceResponse":
        return cls(
            id=item.resource_id,
            name=item.name,
            type=item.resource_type,
            unit=item.unit,
            coefficient_m2=item.coefficient_m2,
        )


class RequirementPayload(BaseModel):
    resource_id: int = Field(gt=0)
    quantity: float = Field(gt=0.0)


class ActivityCreateRequest(BaseModel):
    name: str = Field(min_length=1)
    description: str = ""
    sla: int = Field(ge=0)
    sla_coefficient: Optional[float] = Field(default=None, ge=0.0)
    tools: list[RequirementPayload] = Field(default_factory=list)
    materials: list[RequirementPayload] = Field(default_factory=list)


class ActivityUpdateRequest(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    sla: Optional[int] = Field(default=None, ge=0)
    sla_coefficient: Optional[float] = Field(default=None, ge=0.0)
    tools: Optional[list[RequirementPayload]] = None
    materials: Optional[list[RequirementPayload]] = None


class ActivityResponse(BaseModel):
    id: int
    name: str
    description: str
    sla: int
    sla_coefficient: Optional[float]
    tools: list[RequirementPayload]
    materials: list[RequirementPayload]

    @classmethod
    def from_domain(cls, item: ActivityDefinition) -> "ActivityResponse":
        return cls(
            id=item.activity_id,
            name=item.name,
            description=item.description,
            sla=item.sla,
            sla_coefficient=item.sla_coefficient,
            tools=[RequirementPayload(resource_id=r.resource_id, quantity=r.quantity) for r in item.tools],
            materials=[
                RequirementPayload(resource_id=r.resource_id, quantity=r.quantity)
                for r in item.materials
            ],
        )


class ActivitySuggestionsResponse(BaseModel):
    environment: str
    suggestions: list[str]


class StaffCreateRequest(BaseModel):
    name: str = Field(min_length=1)
    role: str = Field(min_length=1)
    sector: str = Field(min_length=1)
    is_active: bool = True
    contract_type: ContractType = ContractType.PERMANENT
    max_weekly_hours: Optional[int] = Field(default=None, gt=0, le=168)
    governance_max_weekly_hours: Optional[int] = Field(default=None, gt=0, le=168)
    unavailable_days: list[str] = Field(default_factory=list)
    notes: Optional[str] = None

    @field_validator("unavailable_days")
    @classmethod
    def strip_blank_days(cls, value: list[str]) -> list[str]:
        return [item for item in value if item.strip()]


class StaffUpdateRequest(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1)
    role: Optional[str] = Field(default=None, min_length=1)
    sector: Optional[str] = Field(default=None, min_length=1)
    is_active: Optional[bool] = None
    contract_type: Optional[ContractType] = None
    max_weekly_hours: Optional[int] = Field(default=None, gt=0, le=168)
    governance_max_weekly_hours: Optional[int] = Field(default=None, gt=0, le=168)
    unavailable_days: Optional[list[str]] = None
    notes: Optional[str] = None


class StaffResponse(BaseModel):
    id: int
    name: str
    role: str
    sector: str
    is_active: bool
    contract_type: ContractType
    max_weekly_hours: Optional[int]
    governance_max_weekly_hours: Optional[int]
    unavailable_days: list[str]
    notes: Optional[str]

    @classmethod
    def from_domain(cls, item: StaffMember) -> "StaffResponse":
        return cls(
            id=item.staff_id,
            name=item.name,
            role=item.role,
            sector=item.sector,
            is_active=item.is_active,
            contract_type=item.contract_type,
            max_weekly_hours=item.max_weekly_hours,
            governance_max_weekly_hours=item.governance_max_weekly_hours,
            unavailable_days=list(item.unavailable_days),
            notes=item.notes,
        )


def _requirements(items: list[Any]) -> tuple[ResourceRequirement, ...]:
    requirements = []
    for item in items:
        data = item.model_dump() if isinstance(item, BaseModel) else item
        requirements.append(
            ResourceRequirement(resource_id=int(data["resource_id"]), quantity=float(data["quantity"]))
        )
    return tuple(requirements)


# --- Common areas ---


@router.get("/common-areas", response_model=list[CommonAreaResponse])
async def list_common_areas(
    service: CatalogService = Depends(get_catalog_service),
) -> list[CommonAreaResponse]:
    return [CommonAreaResponse.from_domain(item) for item in service.list_common_areas()]


@router.post(
    "/common-areas",
    response_model=CommonAreaResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_common_area(
    payload: CommonAreaCreateRequest,
    service: CatalogService = Depends(get_catalog_service),
) -> CommonAreaResponse:
    try:
        return CommonAreaResponse.from_domain(service.create_common_area(**payload.model_dump()))
    except CatalogError as exc:
        raise _http_error(exc) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        raise _unexpected("create common area", exc) from exc


@router.get("/common-areas/{area_id}", response_model=CommonAreaResponse)
async def get_common_area(
    area_id: int,
    service: CatalogService = Depends(get_catalog_service),
) -> CommonAreaResponse:
    try:
        return CommonAreaResponse.from_domain(service.get_common_area(area_id))
    except CatalogError as exc:
        raise _http_error(exc) from exc


@router.put("/common-areas/{area_id}", response_model=CommonAreaResponse)
async def update_common_area(
    area_id: int,
    payload: CommonAreaUpdateRequest,
    service: CatalogService = Depends(get_catalog_service),
) -> CommonAreaResponse:
    try:
        updated = service.update_common_area(area_id, payload.model_dump(exclude_unset=True))
        return CommonAreaResponse.from_domain(updated)
    except CatalogError as exc:
        raise _http_error(exc) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        raise _unexpected("update common area", exc) from exc


@router.delete("/common-areas/{area_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_common_area(
    area_id: int,
    service: CatalogService = Depends(get_catalog_service),
) -> None:
    """Deleting an area drops its work plan and pending occurrences; executed ones stay."""
    try:
        service.delete_common_area(area_id)
    except CatalogError as exc:
        raise _http_error(exc) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        raise _unexpected("delete common area", exc) from exc


# --- Resources ---


@router.get("/resources", response_model=list[ResourceResponse])
async def list_resources(
    resource_type: Optional[ResourceType] = Query(default=None, alias="type"),
    service: CatalogService = Depends(get_catalog_service),
) -> list[ResourceResponse]:
    return [ResourceResponse.from_domain(item) for item in service.list_resources(resource_type)]


@router.post("/resources", response_model=ResourceResponse, status_code=status.HTTP_201_CREATED)
async def create_resource(
    payload: ResourceCreateRequest,
    service: CatalogService = Depends(get_catalog_service),
) -> ResourceResponse:
    try:
        created = service.create_resource(
            name=payload.name,
            resource_type=payload.type,
            unit=payload.unit,
            coefficient_m2=payload.coefficient_m2,
        )
        return ResourceResponse.from_domain(created)
    except CatalogError as exc:
        raise _http_error(exc) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        raise _unexpected("create resource", exc) from exc


@router.get("/resources/{resource_id}", response_model=ResourceResponse)
async def get_resource(
    resource_id: int,
    service: CatalogService = Depends(get_catalog_service),
) -> ResourceResponse:
    try:
        return ResourceResponse.from_domain(service.get_resource(resource_id))
    except CatalogError as exc:
        raise _http_error(exc) from exc


@router.put("/resources/{resource_id}", response_model=ResourceResponse)
async def update_resource(
    resource_id: int,
    payload: ResourceUpdateRequest,
    service: CatalogService = Depends(get_catalog_service),
) -> ResourceResponse:
    changes = payload.model_dump(exclude_unset=True)
    if "type" in changes:
        changes["resource_type"] = changes.pop("type")
    try:
        return ResourceResponse.from_domain(service.update_resource(resource_id, changes))
    except CatalogError as exc:
        raise _http_error(exc) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        raise _unexpected("update resource", exc) from exc


@router.delete("/resources/{resource_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_resource(
    resource_id: int,
    service: CatalogService = Depends(get_catalog_service),
) -> None:
    try:
        service.delete_resource(resource_id)
    except CatalogError as exc:
        raise _http_error(exc) from exc


# --- Activities ---


@router.get("/activities", response_model=list[ActivityResponse])
async def list_activities(
    service: CatalogService = Depends(get_catalog_service),
) -> list[ActivityResponse]:
    return [ActivityResponse.from_domain(item) for item in service.list_activities()]


@router.get("/activities/suggestions", response_model=ActivitySuggestionsResponse)
async def suggest_activities(
    environment: str = Query(min_length=1),
    service: ActivitySuggestionService = Depends(get_suggestion_service),
) -> ActivitySuggestionsResponse:
    """Suggested activity names for an environment; empty when the service is unavailable."""
    try:
        return ActivitySuggestionsResponse(
            environment=environment,
            suggestions=service.suggest(environment),
        )
    except SuggestionValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc


@router.post("/activities", response_model=ActivityResponse, status_code=status.HTTP_201_CREATED)
async def create_activity(
    payload: ActivityCreateRequest,
    service: CatalogService = Depends(get_catalog_service),
) -> ActivityResponse:
    try:
        created = service.create_activity(
            name=payload.name,
            description=payload.description,
            sla=payload.sla,
            sla_coefficient=payload.sla_coefficient,
            tools=_requirements(payload.tools),
            materials=_requirements(payload.materials),
        )
        return ActivityResponse.from_domain(created)
    except CatalogError as exc:
        raise _http_error(exc) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        raise _unexpected("create activity", exc) from exc


@router.get("/activities/{activity_id}", response_model=ActivityResponse)
async def get_activity(
    activity_id: int,
    service: CatalogService = Depends(get_catalog_service),
) -> ActivityResponse:
    try:
        return ActivityResponse.from_domain(service.get_activity(activity_id))
    except CatalogError as exc:
        raise _http_error(exc) from exc


@router.put("/activities/{activity_id}", response_model=ActivityResponse)
async def update_activity(
    activity_id: int,
    payload: ActivityUpdateRequest,
    service: CatalogService = Depends(get_catalog_service),
) -> ActivityResponse:
    changes = payload.model_dump(exclude_unset=True)
    for key in ("tools", "materials"):
        if key in changes:
            changes[key] = _requirements(changes[key] or [])
    try:
        return ActivityResponse.from_domain(service.update_activity(activity_id, changes))
    except CatalogError as exc:
        raise _http_error(exc) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        raise _unexpected("update activity", exc) from exc


@router.delete("/activities/{activity_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_activity(
    activity_id: int,
    service: CatalogService = Depends(get_catalog_service),
) -> None:
    try:
        service.delete_activity(activity_id)
    except CatalogError as exc:
        raise _http_error(exc) from exc


# --- Staff ---


@router.get("/staff", response_model=list[StaffResponse])
async def list_staff(
    service: CatalogService = Depends(get_catalog_service),
) -> list[StaffResponse]:
    return [StaffResponse.from_domain(item) for item in service.list_staff()]


@router.post("/staff", response_model=StaffResponse, status_code=status.HTTP_201_CREATED)
async def create_staff(
    payload: StaffCreateRequest,
    service: CatalogService = Depends(get_catalog_service),
) -> StaffResponse:
    try:
        return StaffResponse.from_domain(service.create_staff(**payload.model_dump()))
    except CatalogError as exc:
        raise _http_error(exc) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        raise _unexpected("create staff member", exc) from exc


@router.get("/staff/{staff_id}", response_model=StaffResponse)
async def get_staff(
    staff_id: int,
    service: CatalogService = Depends(get_catalog_service),
) -> StaffResponse:
    try:
        return StaffResponse.from_domain(service.get_staff(staff_id))
    except CatalogError as exc:
        raise _http_error(exc) from exc


@router.put("/staff/{staff_id}", response_model=StaffResponse)
async def update_staff(
    staff_id: int,
    payload: StaffUpdateRequest,
    service: CatalogService = Depends(get_catalog_service),
) -> StaffResponse:
    try:
        updated = service.update_staff(staff_id, payload.model_dump(exclude_unset=True))
        return StaffResponse.from_domain(updated)
    except CatalogError as exc:
        raise _http_error(exc) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        raise _unexpected("update staff member", exc) from exc


@router.delete("/staff/{staff_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_staff(
    staff_id: int,
    service: CatalogService = Depends(get_catalog_service),
) -> None:
    try:
        service.delete_staff(staff_id)
    except CatalogError as exc:
        raise _http_error(exc) from exc
