from __future__ import annotations

from datetime import date, timedelta

from fastapi import FastAPI
from fastapi.testclient import TestClient

from facility_planner.controllers.catalog_controller import router as catalog_router
from facility_planner.controllers.governance_controller import router as governance_router
from facility_planner.controllers.planning_controller import router as planning_router
from facility_planner.services.catalog_service import CatalogService
from facility_planner.services.convocation_service import ConvocationService
from facility_planner.services.demand_service import WeeklyPlanService
from facility_planner.services.periodicity_service import RecurringTaskService
from facility_planner.services.shift_service import ScheduleService
from facility_planner.services.suggestion_service import ActivitySuggestionService
from facility_planner.services.work_order_service import WorkOrderService


def _build_test_app(repository, settings) -> FastAPI:
    app = FastAPI()
    app.include_router(catalog_router)
    app.include_router(planning_router)
    app.include_router(governance_router)
    app.state.repository = repository
    app.state.catalog_service = CatalogService(repository=repository, settings=settings)
    app.state.suggestion_service = ActivitySuggestionService(settings=settings)
    app.state.recurring_task_service = RecurringTaskService(repository=repository, settings=settings)
    app.state.work_order_service = WorkOrderService(repository=repository, settings=settings)
    app.state.weekly_plan_service = WeeklyPlanService(repository=repository, settings=settings)
    app.state.schedule_service = ScheduleService(repository=repository, settings=settings)
    app.state.convocation_service = ConvocationService(repository=repository, settings=settings)
    return app


def _future_monday() -> date:
    today = date.today()
    return today + timedelta(days=(7 - today.weekday()) % 7 + 14)


def test_missing_service_returns_503() -> None:
    app = FastAPI()
    app.include_router(catalog_router)

    response = TestClient(app).get("/api/common-areas")

    assert response.status_code == 503


def test_planning_end_to_end_flow(repository, settings) -> None:
    client = TestClient(_build_test_app(repository, settings))
    today = date.today().isoformat()

    area = client.post(
        "/api/common-areas",
        json={"client": "Seaside Hotel", "location": "Main Building", "environment": "Lobby", "area": 120},
    )
    assert area.status_code == 201
    area_id = area.json()["id"]
    assert client.get("/api/common-areas/999").status_code == 404

    detergent = client.post(
        "/api/resources",
        json={"name": "Floor detergent", "type": "material", "unit": "ml", "coefficient_m2": 0.05},
    ).json()
    mop = client.post("/api/resources", json={"name": "Mop", "type": "tool", "unit": "unit"}).json()
    assert [item["name"] for item in client.get("/api/resources", params={"type": "tool"}).json()] == ["Mop"]

    wrong_kind = client.post(
        "/api/activities",
        json={"name": "Floor cleaning", "sla": 15, "materials": [{"resource_id": mop["id"], "quantity": 1}]},
    )
    assert wrong_kind.status_code == 400

    activity = client.post(
        "/api/activities",
        json={
            "name": "Floor cleaning",
            "description": "Sweep and mop",
            "sla": 15,
            "sla_coefficient": 0.1,
            "tools": [{"resource_id": mop["id"], "quantity": 1}],
            "materials": [{"resource_id": detergent["id"], "quantity": 0.5}],
        },
    )
    assert activity.status_code == 201
    activity_id = activity.json()["id"]

    operator = client.post(
        "/api/staff",
        json={"name": "Carla", "role": "Cleaner", "sector": "Common Areas", "unavailable_days": ["sunday"]},
    )
    assert operator.status_code == 201
    assert operator.json()["unavailable_days"] == ["Sunday"]
    operator_id = operator.json()["id"]

    work_plan = client.post("/api/work-plans", json={"common_area_id": area_id})
    assert work_plan.status_code == 201
    work_plan_id = work_plan.json()["id"]
    assert client.post("/api/work-plans", json={"common_area_id": area_id}).status_code == 400

    bad_template = client.post(
        f"/api/work-plans/{work_plan_id}/templates",
        json={"activity_id": activity_id, "periodicity": "every now and then"},
    )
    assert bad_template.status_code == 400

    template = client.post(
        f"/api/work-plans/{work_plan_id}/templates",
        json={"activity_id": activity_id, "periodicity": "Weekly"},
    )
    assert template.status_code == 201
    body = template.json()
    template_id = body["template"]["id"]
    assert len(body["occurrences"]) == 5
    first = body["occurrences"][0]
    assert first["planned_date"] == today
    assert first["status"] == "InProgress"

    assigned = client.put(f"/api/occurrences/{first['id']}/operator", json={"operator_id": operator_id})
    assert assigned.status_code == 200
    assert assigned.json()["operator_id"] == operator_id

    order = client.get("/api/work-orders", params={"operator_id": operator_id, "date": today})
    assert order.status_code == 200
    task = order.json()["tasks"][0]
    assert task["sla_minutes"] == 27.0
    assert task["materials"][0]["quantity"] == 60.0
    assert client.get("/api/work-orders", params={"operator_id": 999, "date": today}).status_code == 404

    executed = client.post(f"/api/occurrences/{first['id']}/execute")
    assert executed.status_code == 200
    assert executed.json()["executed"]["status"] == "Completed"
    assert client.post(f"/api/occurrences/{first['id']}/execute").status_code == 409
    reprojected = client.post(f"/api/templates/{template_id}/project", json={"horizon_days": 30})
    assert reprojected.status_code == 200
    tomorrow = (date.today() + timedelta(days=1)).isoformat()
    assert reprojected.json()[0]["planned_date"] == tomorrow
    assert {item["operator_id"] for item in reprojected.json()} == {operator_id}

    assert client.delete(f"/api/templates/{template_id}").status_code == 204
    remaining = client.get("/api/occurrences").json()
    assert [item["id"] for item in remaining] == [first["id"]]
    assert remaining[0]["template_id"] is None
    assert client.delete(f"/api/templates/{template_id}").status_code == 404

    suggestions = client.get("/api/activities/suggestions", params={"environment": "Lobby"})
    assert suggestions.status_code == 200
    assert suggestions.json() == {"environment": "Lobby", "suggestions": []}


def test_governance_end_to_end_flow(repository, settings) -> None:
    client = TestClient(_build_test_app(repository, settings))
    monday = _future_monday()
    week = monday.isoformat()

    assert client.get("/api/governance/parameters").json()["efficiency_target"] == 80.0
    assert client.put("/api/governance/parameters", json={"efficiency_target": 0}).status_code == 422
    assert client.put("/api/governance/parameters", json={"standard_shift_duration": 23}).status_code == 422
    saved = client.put("/api/governance/parameters", json={"total_apartments": 120})
    assert saved.status_code == 200
    assert saved.json()["total_apartments"] == 120
    assert saved.json()["efficiency_target"] == 80.0

    for name in ("Ana", "Bia", "Caio"):
        created = client.post(
            "/api/staff",
            json={"name": name, "role": "Housekeeper", "sector": "Housekeeping", "max_weekly_hours": 44},
        )
        assert created.status_code == 201

    assert client.post(f"/api/governance/weeks/{week}/schedule/suggest").status_code == 404

    days = [
        {"date": (monday + timedelta(days=offset)).isoformat(), "vacant_dirty": 10, "stay": 5}
        for offset in range(7)
    ]
    plan = client.put(f"/api/governance/weeks/{week}/plan", json={"maintenance_room_count": 0, "days": days})
    assert plan.status_code == 200
    demand = plan.json()["calculated_demand"]
    assert demand[0]["total_minutes"] == 400
    assert demand[0]["required_staff_count"] == 1.1
    assert plan.json()["days"][0]["day_of_week"] == "Monday"
    assert client.get(f"/api/governance/weeks/{week}/plan").status_code == 200

    tuesday = (monday + timedelta(days=1)).isoformat()
    assert client.put(f"/api/governance/weeks/{tuesday}/plan", json={"days": days}).status_code == 400
    assert client.get(f"/api/governance/weeks/{tuesday}/schedule").status_code == 400

    suggestion = client.post(f"/api/governance/weeks/{week}/schedule/suggest")
    assert suggestion.status_code == 200
    shifts = suggestion.json()["schedule"]["shifts"]
    assert len(shifts) == 14
    assert suggestion.json()["gaps"] == []
    assert {shift["net_hours"] for shift in shifts} == {8.0}

    assert client.post(f"/api/governance/weeks/{week}/schedule/suggest").status_code == 409
    redone = client.post(f"/api/governance/weeks/{week}/schedule/suggest", json={"overwrite": True})
    assert redone.status_code == 200
    shifts = redone.json()["schedule"]["shifts"]

    edited = client.put(
        f"/api/governance/weeks/{week}/schedule/shifts",
        json={"staff_id": shifts[0]["staff_id"], "date": week, "end_time": "14:00"},
    )
    assert edited.status_code == 200
    target = next(item for item in edited.json()["shifts"] if item["id"] == shifts[0]["id"])
    assert (target["break_minutes"], target["net_hours"]) == (15, 5.75)

    compliance = client.get(f"/api/governance/weeks/{week}/schedule/compliance")
    assert compliance.status_code == 200
    assert compliance.json()["gaps"] == []

    sendable = client.get(f"/api/governance/weeks/{week}/convocations/sendable")
    assert sendable.status_code == 200
    assert len(sendable.json()) == 14
    assert "deadline_at" in sendable.json()[0]

    sent = client.post(
        f"/api/governance/weeks/{week}/convocations",
        json={"shift_ids": [shifts[0]["id"]], "justification": "High season"},
    )
    assert sent.status_code == 201
    convocation = sent.json()[0]
    assert convocation["status"] == "Pending"
    assert (
        client.post(f"/api/governance/weeks/{week}/convocations", json={"shift_ids": [shifts[0]["id"]]}).status_code
        == 409
    )

    convocation_id = convocation["id"]
    assert client.post(f"/api/convocations/{convocation_id}/reject", json={"reason": "  "}).status_code == 422
    rejected = client.post(f"/api/convocations/{convocation_id}/reject", json={"reason": "Family event"})
    assert rejected.status_code == 200
    assert rejected.json()["status"] == "Rejected"
    assert client.post(f"/api/convocations/{convocation_id}/accept").status_code == 409
    assert client.post("/api/convocations/999/accept").status_code == 404

    listed = client.get(f"/api/governance/weeks/{week}/convocations").json()
    assert [(item["id"], item["status"]) for item in listed] == [(convocation_id, "Rejected")]
