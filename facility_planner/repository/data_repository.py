"""Repository layer responsible for all database access."""

from __future__ import annotations

import json
import sqlite3
from datetime import date, datetime
from pathlib import Path
from typing import Any, Iterable, Optional, Sequence

from facility_planner.domain.constraints import (
    DEFAULT_GOVERNANCE_PARAMETERS,
    GovernanceParameters,
)
from facility_planner.domain.models import (
    ActivityDefinition,
    CommonArea,
    ContractType,
    Convocation,
    ConvocationStatus,
    DailyDemand,
    DailyOperationalInput,
    DayType,
    RecurringTaskTemplate,
    Resource,
    ResourceRequirement,
    ResourceType,
    ShiftAssignment,
    StaffMember,
    TaskOccurrence,
    WeeklyOperationalPlan,
    WeeklySchedule,
    WorkPlan,
)
from facility_planner.utils.config import Settings, get_settings
from facility_planner.utils.logger import get_logger


logger = get_logger(__name__)


_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS CommonAreas (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        client TEXT NOT NULL,
        location TEXT NOT NULL,
        sub_location TEXT NOT NULL DEFAULT '',
        environment TEXT NOT NULL,
        area REAL NOT NULL CHECK (area > 0),
        created_at DATETIME DEFAULT CURRENT_TIMESTAMP
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS Resources (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL,
        type TEXT NOT NULL CHECK (type IN ('tool', 'material')),
        unit TEXT NOT NULL,
        coefficient_m2 REAL,
        created_at DATETIME DEFAULT CURRENT_TIMESTAMP
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS Activities (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL,
        description TEXT NOT NULL DEFAULT '',
        sla INTEGER NOT NULL CHECK (sla >= 0),
        sla_coefficient REAL,
        tools TEXT NOT NULL DEFAULT '[]',
        materials TEXT NOT NULL DEFAULT '[]',
        created_at DATETIME DEFAULT CURRENT_TIMESTAMP
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS StaffMembers (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL,
        role TEXT NOT NULL,
        sector TEXT NOT NULL,
        is_active INTEGER NOT NULL DEFAULT 1 CHECK (is_active IN (0,1)),
        contract_type TEXT NOT NULL DEFAULT 'Permanent',
        max_weekly_hours INTEGER,
        governance_max_weekly_hours INTEGER,
        unavailable_days TEXT NOT NULL DEFAULT '[]',
        notes TEXT,
        created_at DATETIME DEFAULT CURRENT_TIMESTAMP
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS WorkPlans (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        common_area_id INTEGER NOT NULL UNIQUE,
        created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
        FOREIGN KEY (common_area_id) REFERENCES CommonAreas(id) ON DELETE CASCADE
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS PlannedActivities (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        work_plan_id INTEGER NOT NULL,
        activity_id INTEGER NOT NULL,
        periodicity TEXT NOT NULL,
        created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
        FOREIGN KEY (work_plan_id) REFERENCES WorkPlans(id) ON DELETE CASCADE,
        FOREIGN KEY (activity_id) REFERENCES Activities(id) ON DELETE CASCADE
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS ScheduledActivities (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        planned_activity_id INTEGER,
        work_plan_id INTEGER,
        planned_date TEXT NOT NULL,
        execution_date TEXT,
        operator_id INTEGER,
        created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
        UNIQUE (planned_activity_id, planned_date),
        FOREIGN KEY (planned_activity_id) REFERENCES PlannedActivities(id) ON DELETE SET NULL,
        FOREIGN KEY (work_plan_id) REFERENCES WorkPlans(id) ON DELETE SET NULL,
        FOREIGN KEY (operator_id) REFERENCES StaffMembers(id) ON DELETE SET NULL
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS GovernanceParameters (
        id INTEGER PRIMARY KEY CHECK (id = 1),
        payload TEXT NOT NULL,
        updated_at DATETIME DEFAULT CURRENT_TIMESTAMP
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS WeeklyPlans (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        week_start_date TEXT NOT NULL UNIQUE,
        week_end_date TEXT NOT NULL,
        maintenance_room_count INTEGER NOT NULL DEFAULT 0,
        days TEXT NOT NULL DEFAULT '[]',
        calculated_demand TEXT NOT NULL DEFAULT '[]',
        updated_at DATETIME DEFAULT CURRENT_TIMESTAMP
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS WeeklySchedules (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        week_start_date TEXT NOT NULL UNIQUE,
        updated_at DATETIME DEFAULT CURRENT_TIMESTAMP
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS ShiftAssignments (
        id TEXT NOT NULL,
        schedule_id INTEGER NOT NULL,
        staff_id INTEGER NOT NULL,
        date TEXT NOT NULL,
        start_time TEXT NOT NULL DEFAULT '',
        end_time TEXT NOT NULL DEFAULT '',
        break_minutes INTEGER NOT NULL DEFAULT 0,
        net_hours REAL NOT NULL DEFAULT 0,
        PRIMARY KEY (schedule_id, id),
        UNIQUE (schedule_id, staff_id, date),
        FOREIGN KEY (schedule_id) REFERENCES WeeklySchedules(id) ON DELETE CASCADE,
        FOREIGN KEY (staff_id) REFERENCES StaffMembers(id) ON DELETE CASCADE
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS Convocations (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        schedule_id INTEGER NOT NULL,
        shift_id TEXT NOT NULL,
        staff_id INTEGER NOT NULL,
        shift_date TEXT NOT NULL,
        shift_start_time TEXT NOT NULL,
        shift_end_time TEXT NOT NULL,
        sent_at TEXT NOT NULL,
        deadline_at TEXT NOT NULL,
        responded_at TEXT,
        status TEXT NOT NULL DEFAULT 'Pending'
            CHECK (status IN ('Pending', 'Accepted', 'Rejected')),
        justification TEXT,
        rejection_reason TEXT,
        UNIQUE (schedule_id, shift_id),
        FOREIGN KEY (schedule_id) REFERENCES WeeklySchedules(id) ON DELETE CASCADE,
        FOREIGN KEY (staff_id) REFERENCES StaffMembers(id) ON DELETE CASCADE
    );
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_scheduled_planned_date
    ON ScheduledActivities(planned_date, operator_id);
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_staff_sector_active
    ON StaffMembers(sector, is_active);
    """,
)

_COMMON_AREA_COLUMNS = ("client", "location", "sub_location", "environment", "area")
_RESOURCE_COLUMNS = ("name", "type", "unit", "coefficient_m2")
_ACTIVITY_COLUMNS = ("name", "description", "sla", "sla_coefficient", "tools", "materials")
_STAFF_COLUMNS = (
    "name",
    "role",
    "sector",
    "is_active",
    "contract_type",
    "max_weekly_hours",
    "governance_max_weekly_hours",
    "unavailable_days",
    "notes",
)


def _parse_date(value: Optional[str]) -> Optional[date]:
    if value is None or value == "":
        return None
    return date.fromisoformat(str(value))


def _parse_datetime(value: Optional[str]) -> Optional[datetime]:
    if value is None or value == "":
        return None
    return datetime.fromisoformat(str(value))


def _requirements_to_json(items: Iterable[ResourceRequirement]) -> str:
    return json.dumps(
        [{"resource_id": item.resource_id, "quantity": item.quantity} for item in items]
    )


def _requirements_from_json(raw: str) -> tuple[ResourceRequirement, ...]:
    return tuple(
        ResourceRequirement(resource_id=int(item["resource_id"]), quantity=float(item["quantity"]))
        for item in json.loads(raw or "[]")
    )


def _row_to_common_area(row: sqlite3.Row) -> CommonArea:
    return CommonArea(
        area_id=int(row["id"]),
        client=str(row["client"]),
        location=str(row["location"]),
        sub_location=str(row["sub_location"]),
        environment=str(row["environment"]),
        area=float(row["area"]),
    )


def _row_to_resource(row: sqlite3.Row) -> Resource:
    return Resource(
        resource_id=int(row["id"]),
        name=str(row["name"]),
        resource_type=ResourceType(row["type"]),
        unit=str(row["unit"]),
        coefficient_m2=None if row["coefficient_m2"] is None else float(row["coefficient_m2"]),
    )


def _row_to_activity(row: sqlite3.Row) -> ActivityDefinition:
    return ActivityDefinition(
        activity_id=int(row["id"]),
        name=str(row["name"]),
        description=str(row["description"]),
        sla=int(row["sla"]),
        sla_coefficient=None if row["sla_coefficient"] is None else float(row["sla_coefficient"]),
        tools=_requirements_from_json(row["tools"]),
        materials=_requirements_from_json(row["materials"]),
    )


def _row_to_staff(row: sqlite3.Row) -> StaffMember:
    return StaffMember(
        staff_id=int(row["id"]),
        name=str(row["name"]),
        role=str(row["role"]),
        sector=str(row["sector"]),
        is_active=bool(row["is_active"]),
        contract_type=ContractType(row["contract_type"]),
        max_weekly_hours=row["max_weekly_hours"],
        governance_max_weekly_hours=row["governance_max_weekly_hours"],
        unavailable_days=tuple(json.loads(row["unavailable_days"] or "[]")),
        notes=row["notes"],
    )


def _row_to_template(row: sqlite3.Row) -> RecurringTaskTemplate:
    return RecurringTaskTemplate(
        template_id=int(row["id"]),
        work_plan_id=int(row["work_plan_id"]),
        activity_id=int(row["activity_id"]),
        periodicity=str(row["periodicity"]),
    )


def _row_to_occurrence(row: sqlite3.Row) -> TaskOccurrence:
    return TaskOccurrence(
        occurrence_id=int(row["id"]),
        template_id=None if row["planned_activity_id"] is None else int(row["planned_activity_id"]),
        work_plan_id=None if row["work_plan_id"] is None else int(row["work_plan_id"]),
        planned_date=date.fromisoformat(row["planned_date"]),
        execution_date=_parse_date(row["execution_date"]),
        operator_id=None if row["operator_id"] is None else int(row["operator_id"]),
    )


def _row_to_shift(row: sqlite3.Row) -> ShiftAssignment:
    return ShiftAssignment(
        shift_id=str(row["id"]),
        staff_id=int(row["staff_id"]),
        date=date.fromisoformat(row["date"]),
        start_time=str(row["start_time"]),
        end_time=str(row["end_time"]),
        break_minutes=int(row["break_minutes"]),
        net_hours=float(row["net_hours"]),
    )


def _row_to_convocation(row: sqlite3.Row) -> Convocation:
    return Convocation(
        convocation_id=int(row["id"]),
        schedule_id=int(row["schedule_id"]),
        shift_id=str(row["shift_id"]),
        staff_id=int(row["staff_id"]),
        shift_date=date.fromisoformat(row["shift_date"]),
        shift_start_time=str(row["shift_start_time"]),
        shift_end_time=str(row["shift_end_time"]),
        sent_at=datetime.fromisoformat(row["sent_at"]),
        deadline_at=datetime.fromisoformat(row["deadline_at"]),
        status=ConvocationStatus(row["status"]),
        responded_at=_parse_datetime(row["responded_at"]),
        justification=row["justification"],
        rejection_reason=row["rejection_reason"],
    )


def _day_to_dict(day: DailyOperationalInput) -> dict[str, Any]:
    return {
        "date": day.date.isoformat(),
        "day_of_week": day.day_of_week,
        "vacant_dirty": day.vacant_dirty,
        "stay": day.stay,
        "day_type": day.day_type.value,
    }


def _demand_to_dict(demand: DailyDemand) -> dict[str, Any]:
    return {
        "date": demand.date.isoformat(),
        "total_minutes": demand.total_minutes,
        "adjusted_minutes": demand.adjusted_minutes,
        "required_hours": demand.required_hours,
        "required_hours_with_efficiency": demand.required_hours_with_efficiency,
        "required_staff_count": demand.required_staff_count,
        "occupancy_percentage": demand.occupancy_percentage,
    }


def _day_from_dict(payload: dict[str, Any]) -> DailyOperationalInput:
    return DailyOperationalInput(
        date=date.fromisoformat(payload["date"]),
        vacant_dirty=int(payload["vacant_dirty"]),
        stay=int(payload["stay"]),
        day_type=DayType(payload.get("day_type", DayType.NORMAL.value)),
    )


def _demand_from_dict(payload: dict[str, Any]) -> DailyDemand:
    return DailyDemand(
        date=date.fromisoformat(payload["date"]),
        total_minutes=float(payload["total_minutes"]),
        adjusted_minutes=float(payload["adjusted_minutes"]),
        required_hours=float(payload["required_hours"]),
        required_hours_with_efficiency=float(payload["required_hours_with_efficiency"]),
        required_staff_count=float(payload["required_staff_count"]),
        occupancy_percentage=float(payload["occupancy_percentage"]),
    )


class DataRepository:
    """Encapsulates SQLite access so business logic stays storage-agnostic."""

    def __init__(self, settings: Optional[Settings] = None) -> None:
        self._settings = settings or get_settings()
        self._db_path = Path(self._settings.database_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)

    @property
    def database_path(self) -> Path:
        return self._db_path

    def _connect(self) -> sqlite3.Connection:
        connection = sqlite3.connect(self._db_path)
        connection.row_factory = sqlite3.Row
        connection.execute("PRAGMA foreign_keys = ON;")
        return connection

    def initialize_database(self) -> None:
        """Create all persistence artifacts before API startup."""
        try:
            with self._connect() as conn:
                cursor = conn.cursor()
                for statement in _SCHEMA:
                    cursor.execute(statement)
                cursor.execute(
                    "INSERT OR IGNORE INTO GovernanceParameters (id, payload) VALUES (1, ?);",
                    (json.dumps(DEFAULT_GOVERNANCE_PARAMETERS.to_dict()),),
                )
                conn.commit()
            logger.info("Database initialized at %s", self._db_path)
        except sqlite3.Error as exc:
            raise RuntimeError(f"Database initialization failed: {exc}") from exc

    def seed_demo_data(self) -> None:
        """Seed a small demo catalog only when the catalog tables are empty."""
        try:
            with self._connect() as conn:
                cursor = conn.cursor()
                cursor.execute("SELECT COUNT(*) AS count FROM CommonAreas;")
                if int(cursor.fetchone()["count"]) > 0:
                    logger.info("Demo data already present; skipping seed")
                    return

                cursor.executemany(
                    """
                    INSERT INTO CommonAreas (client, location, sub_location, environment, area)
                    VALUES (?, ?, ?, ?, ?);
                    """,
                    [
                        ("Seaside Hotel", "Main Building", "Ground Floor", "Lobby", 180.0),
                        ("Seaside Hotel", "Main Building", "Ground Floor", "Restaurant", 240.0),
                        ("Seaside Hotel", "Leisure Area", "", "Pool Deck", 320.0),
                        ("Seaside Hotel", "Main Building", "1st Floor", "Corridor", 95.0),
                    ],
                )
                cursor.executemany(
                    """
                    INSERT INTO Resources (name, type, unit, coefficient_m2)
                    VALUES (?, ?, ?, ?);
                    """,
                    [
                        ("Industrial mop", "tool", "un", None),
                        ("Bucket with wringer", "tool", "un", None),
                        ("Professional vacuum cleaner", "tool", "un", None),
                        ("Multi-purpose cleaner", "material", "L", 0.05),
                        ("Hospital-grade disinfectant", "material", "L", 0.02),
                        ("Microfiber cloth", "material", "un", 0.0),
                    ],
                )
                cursor.executemany(
                    """
                    INSERT INTO Activities (name, description, sla, sla_coefficient, tools, materials)
                    VALUES (?, ?, ?, ?, ?, ?);
                    """,
                    [
                        (
                            "Floor cleaning",
                            "Sweep and mop the whole floor surface.",
                            15,
                            0.1,
                            json.dumps([{"resource_id": 1, "quantity": 1}, {"resource_id": 2, "quantity": 1}]),
                            json.dumps([{"resource_id": 4, "quantity": 1}]),
                        ),
                        (
                            "Surface disinfection",
                            "Disinfect tables, counters and handrails.",
                            20,
                            0.05,
                            json.dumps([]),
                            json.dumps([{"resource_id": 5, "quantity": 1}, {"resource_id": 6, "quantity": 4}]),
                        ),
                        (
                            "Carpet vacuuming",
                            "Vacuum carpets and rugs.",
                            10,
                            0.08,
                            json.dumps([{"resource_id": 3, "quantity": 1}]),
                            json.dumps([]),
                        ),
                    ],
                )
                sector = self._settings.governance_sector
                cursor.executemany(
                    """
                    INSERT INTO StaffMembers (
                        name, role, sector, is_active, contract_type,
                        max_weekly_hours, unavailable_days
                    )
                    VALUES (?, ?, ?, ?, ?, ?, ?);
                    """,
                    [
                        ("Ana Souza", "Room attendant", sector, 1, "Permanent", 44, json.dumps(["Sunday"])),
                        ("Bruno Lima", "Room attendant", sector, 1, "Permanent", 44, json.dumps([])),
                        ("Carla Dias", "Room attendant", sector, 1, "Intermittent", 24, json.dumps(["Saturday"])),
                        ("Diego Alves", "Room attendant", sector, 1, "Intermittent", 32, json.dumps([])),
                        ("Elisa Rocha", "Housekeeping lead", sector, 1, "Permanent", 44, json.dumps([])),
                        ("Fabio Reis", "Cleaning agent", "Common Areas", 1, "Permanent", 44, json.dumps([])),
                    ],
                )
                conn.commit()
            logger.info("Demo data seed completed")
        except sqlite3.Error as exc:
            raise RuntimeError(f"Demo data seeding failed: {exc}") from exc

    # --- Generic helpers ---

    def _update_columns(
        self,
        table: str,
        row_id: int,
        changes: dict[str, Any],
        allowed: Sequence[str],
    ) -> bool:
        assignments = {key: value for key, value in changes.items() if key in allowed}
        if not assignments:
            return self._exists(table, row_id)
        clause = ", ".join(f"{column} = ?" for column in assignments)
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                f"UPDATE {table} SET {clause} WHERE id = ?;",
                (*assignments.values(), row_id),
            )
            conn.commit()
            return cursor.rowcount > 0

    def _exists(self, table: str, row_id: int) -> bool:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(f"SELECT 1 FROM {table} WHERE id = ?;", (row_id,))
            return cursor.fetchone() is not None

    def _delete_row(self, table: str, row_id: int) -> bool:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(f"DELETE FROM {table} WHERE id = ?;", (row_id,))
            conn.commit()
            return cursor.rowcount > 0

    @staticmethod
    def _purge_pending_occurrences(
        cursor: sqlite3.Cursor,
        template_ids: Sequence[int],
    ) -> int:
        """Delete not-yet-executed occurrences of the given templates.

        Every path that removes templates goes through here before the
        delete, so executed occurrences survive as detached history.
        """
        if not template_ids:
            return 0
        placeholders = ",".join("?" for _ in template_ids)
        cursor.execute(
            f"""
            DELETE FROM ScheduledActivities
            WHERE planned_activity_id IN ({placeholders})
              AND execution_date IS NULL;
            """,
            tuple(template_ids),
        )
        return int(cursor.rowcount)

    @staticmethod
    def _purge_stale_convocations(
        cursor: sqlite3.Cursor,
        schedule_id: int,
        shifts: Sequence[ShiftAssignment],
    ) -> int:
        """Delete convocations whose shift was removed or had its times changed.

        A convocation always mirrors the shift it was sent for, so a changed
        shift becomes sendable again under a fresh deadline.
        """
        current = {shift.shift_id: (shift.start_time, shift.end_time) for shift in shifts}
        cursor.execute(
            "SELECT id, shift_id, shift_start_time, shift_end_time FROM Convocations WHERE schedule_id = ?;",
            (schedule_id,),
        )
        stale = [
            int(row["id"])
            for row in cursor.fetchall()
            if current.get(row["shift_id"]) != (row["shift_start_time"], row["shift_end_time"])
        ]
        if not stale:
            return 0
        placeholders = ",".join("?" for _ in stale)
        cursor.execute(f"DELETE FROM Convocations WHERE id IN ({placeholders});", tuple(stale))
        return len(stale)

    def _template_ids_where(self, cursor: sqlite3.Cursor, clause: str, params: tuple) -> list[int]:
        cursor.execute(f"SELECT id FROM PlannedActivities WHERE {clause};", params)
        return [int(row["id"]) for row in cursor.fetchall()]

    # --- Common areas ---

    def list_common_areas(self) -> list[CommonArea]:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT * FROM CommonAreas ORDER BY id ASC;")
            return [_row_to_common_area(row) for row in cursor.fetchall()]

    def get_common_area(self, area_id: int) -> Optional[CommonArea]:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT * FROM CommonAreas WHERE id = ?;", (area_id,))
            row = cursor.fetchone()
            return None if row is None else _row_to_common_area(row)

    def create_common_area(
        self,
        client: str,
        location: str,
        sub_location: str,
        environment: str,
        area: float,
    ) -> CommonArea:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                INSERT INTO CommonAreas (client, location, sub_location, environment, area)
                VALUES (?, ?, ?, ?, ?);
                """,
                (client, location, sub_location, environment, area),
            )
            conn.commit()
            area_id = int(cursor.lastrowid)
        return CommonArea(area_id, client, location, sub_location, environment, float(area))

    def update_common_area(self, area_id: int, changes: dict[str, Any]) -> Optional[CommonArea]:
        if not self._update_columns("CommonAreas", area_id, changes, _COMMON_AREA_COLUMNS):
            return None
        return self.get_common_area(area_id)

    def delete_common_area(self, area_id: int) -> bool:
        with self._connect() as conn:
            cursor = conn.cursor()
            template_ids = self._template_ids_where(
                cursor,
                "work_plan_id IN (SELECT id FROM WorkPlans WHERE common_area_id = ?)",
                (area_id,),
            )
            purged = self._purge_pending_occurrences(cursor, template_ids)
            cursor.execute("DELETE FROM CommonAreas WHERE id = ?;", (area_id,))
            deleted = cursor.rowcount > 0
            conn.commit()
        if deleted:
            logger.info("Common area deleted | area_id=%s | pending_purged=%s", area_id, purged)
        return deleted

    # --- Resources ---

    def list_resources(self, resource_type: Optional[ResourceType] = None) -> list[Resource]:
        with self._connect() as conn:
            cursor = conn.cursor()
            if resource_type is None:
                cursor.execute("SELECT * FROM Resources ORDER BY id ASC;")
            else:
                cursor.execute(
                    "SELECT * FROM Resources WHERE type = ? ORDER BY id ASC;",
                    (resource_type.value,),
                )
            return [_row_to_resource(row) for row in cursor.fetchall()]

    def get_resource(self, resource_id: int) -> Optional[Resource]:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT * FROM Resources WHERE id = ?;", (resource_id,))
            row = cursor.fetchone()
            return None if row is None else _row_to_resource(row)

    def get_resources_by_ids(self, resource_ids: Sequence[int]) -> dict[int, Resource]:
        if not resource_ids:
            return {}
        placeholders = ",".join("?" for _ in resource_ids)
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                f"SELECT * FROM Resources WHERE id IN ({placeholders});",
                tuple(resource_ids),
            )
            return {int(row["id"]): _row_to_resource(row) for row in cursor.fetchall()}

    def create_resource(
        self,
        name: str,
        resource_type: ResourceType,
        unit: str,
        coefficient_m2: Optional[float],
    ) -> Resource:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                "INSERT INTO Resources (name, type, unit, coefficient_m2) VALUES (?, ?, ?, ?);",
                (name, resource_type.value, unit, coefficient_m2),
            )
            conn.commit()
            resource_id = int(cursor.lastrowid)
        return Resource(resource_id, name, resource_type, unit, coefficient_m2)

    def update_resource(self, resource_id: int, changes: dict[str, Any]) -> Optional[Resource]:
        if not self._update_columns("Resources", resource_id, changes, _RESOURCE_COLUMNS):
            return None
        return self.get_resource(resource_id)

    def delete_resource(self, resource_id: int) -> bool:
        return self._delete_row("Resources", resource_id)

    # --- Activities ---

    def list_activities(self) -> list[ActivityDefinition]:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT * FROM Activities ORDER BY id ASC;")
            return [_row_to_activity(row) for row in cursor.fetchall()]

    def get_activity(self, activity_id: int) -> Optional[ActivityDefinition]:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT * FROM Activities WHERE id = ?;", (activity_id,))
            row = cursor.fetchone()
            return None if row is None else _row_to_activity(row)

    def create_activity(
        self,
        name: str,
        description: str,
        sla: int,
        sla_coefficient: Optional[float],
        tools: Sequence[ResourceRequirement],
        materials: Sequence[ResourceRequirement],
    ) -> ActivityDefinition:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                INSERT INTO Activities (name, description, sla, sla_coefficient, tools, materials)
                VALUES (?, ?, ?, ?, ?, ?);
                """,
                (
                    name,
                    description,
                    sla,
                    sla_coefficient,
                    _requirements_to_json(tools),
                    _requirements_to_json(materials),
                ),
            )
            conn.commit()
            activity_id = int(cursor.lastrowid)
        return ActivityDefinition(
            activity_id=activity_id,
            name=name,
            description=description,
            sla=sla,
            sla_coefficient=sla_coefficient,
            tools=tuple(tools),
            materials=tuple(materials),
        )

    def update_activity(
        self,
        activity_id: int,
        changes: dict[str, Any],
    ) -> Optional[ActivityDefinition]:
        encoded = dict(changes)
        for key in ("tools", "materials"):
            if key in encoded:
                encoded[key] = _requirements_to_json(encoded[key])
        if not self._update_columns("Activities", activity_id, encoded, _ACTIVITY_COLUMNS):
            return None
        return self.get_activity(activity_id)

    def delete_activity(self, activity_id: int) -> bool:
        with self._connect() as conn:
            cursor = conn.cursor()
            template_ids = self._template_ids_where(cursor, "activity_id = ?", (activity_id,))
            self._purge_pending_occurrences(cursor, template_ids)
            cursor.execute("DELETE FROM Activities WHERE id = ?;", (activity_id,))
            deleted = cursor.rowcount > 0
            conn.commit()
        return deleted

    # --- Staff ---

    def list_staff(self) -> list[StaffMember]:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT * FROM StaffMembers ORDER BY id ASC;")
            return [_row_to_staff(row) for row in cursor.fetchall()]

    def list_active_staff_by_sector(self, sector: str) -> list[StaffMember]:
        """Active roster for a sector in stable id order (the allocator's tie-break order)."""
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                SELECT * FROM StaffMembers
                WHERE sector = ? AND is_active = 1
                ORDER BY id ASC;
                """,
                (sector,),
            )
            return [_row_to_staff(row) for row in cursor.fetchall()]

    def get_staff(self, staff_id: int) -> Optional[StaffMember]:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT * FROM StaffMembers WHERE id = ?;", (staff_id,))
            row = cursor.fetchone()
            return None if row is None else _row_to_staff(row)

    def create_staff(
        self,
        name: str,
        role: str,
        sector: str,
        is_active: bool,
        contract_type: ContractType,
        max_weekly_hours: Optional[int],
        governance_max_weekly_hours: Optional[int],
        unavailable_days: Sequence[str],
        notes: Optional[str],
    ) -> StaffMember:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                INSERT INTO StaffMembers (
                    name, role, sector, is_active, contract_type, max_weekly_hours,
                    governance_max_weekly_hours, unavailable_days, notes
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?);
                """,
                (
                    name,
                    role,
                    sector,
                    int(is_active),
                    contract_type.value,
                    max_weekly_hours,
                    governance_max_weekly_hours,
                    json.dumps(list(unavailable_days)),
                    notes,
                ),
            )
            conn.commit()
            staff_id = int(cursor.lastrowid)
        return StaffMember(
            staff_id=staff_id,
            name=name,
            role=role,
            sector=sector,
            is_active=is_active,
            contract_type=contract_type,
            max_weekly_hours=max_weekly_hours,
            governance_max_weekly_hours=governance_max_weekly_hours,
            unavailable_days=tuple(unavailable_days),
            notes=notes,
        )

    def update_staff(self, staff_id: int, changes: dict[str, Any]) -> Optional[StaffMember]:
        encoded = dict(changes)
        if "unavailable_days" in encoded:
            encoded["unavailable_days"] = json.dumps(list(encoded["unavailable_days"]))
        if "contract_type" in encoded:
            encoded["contract_type"] = ContractType(encoded["contract_type"]).value
        if "is_active" in encoded:
            encoded["is_active"] = int(bool(encoded["is_active"]))
        if not self._update_columns("StaffMembers", staff_id, encoded, _STAFF_COLUMNS):
            return None
        return self.get_staff(staff_id)

    def delete_staff(self, staff_id: int) -> bool:
        return self._delete_row("StaffMembers", staff_id)

    # --- Work plans and templates ---

    def _load_templates(self, cursor: sqlite3.Cursor, work_plan_id: int) -> tuple[RecurringTaskTemplate, ...]:
        cursor.execute(
            "SELECT * FROM PlannedActivities WHERE work_plan_id = ? ORDER BY id ASC;",
            (work_plan_id,),
        )
        return tuple(_row_to_template(row) for row in cursor.fetchall())

    def list_work_plans(self) -> list[WorkPlan]:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT id, common_area_id FROM WorkPlans ORDER BY id ASC;")
            rows = cursor.fetchall()
            return [
                WorkPlan(
                    work_plan_id=int(row["id"]),
                    common_area_id=int(row["common_area_id"]),
                    templates=self._load_templates(cursor, int(row["id"])),
                )
                for row in rows
            ]

    def get_work_plan(self, work_plan_id: int) -> Optional[WorkPlan]:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                "SELECT id, common_area_id FROM WorkPlans WHERE id = ?;",
                (work_plan_id,),
            )
            row = cursor.fetchone()
            if row is None:
                return None
            return WorkPlan(
                work_plan_id=int(row["id"]),
                common_area_id=int(row["common_area_id"]),
                templates=self._load_templates(cursor, int(row["id"])),
            )

    def get_work_plan_by_area(self, common_area_id: int) -> Optional[WorkPlan]:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                "SELECT id FROM WorkPlans WHERE common_area_id = ?;",
                (common_area_id,),
            )
            row = cursor.fetchone()
        if row is None:
            return None
        return self.get_work_plan(int(row["id"]))

    def create_work_plan(self, common_area_id: int) -> WorkPlan:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                "INSERT INTO WorkPlans (common_area_id) VALUES (?);",
                (common_area_id,),
            )
            conn.commit()
            work_plan_id = int(cursor.lastrowid)
        return WorkPlan(work_plan_id=work_plan_id, common_area_id=common_area_id)

    def delete_work_plan(self, work_plan_id: int) -> bool:
        with self._connect() as conn:
            cursor = conn.cursor()
            template_ids = self._template_ids_where(cursor, "work_plan_id = ?", (work_plan_id,))
            purged = self._purge_pending_occurrences(cursor, template_ids)
            cursor.execute("DELETE FROM WorkPlans WHERE id = ?;", (work_plan_id,))
            deleted = cursor.rowcount > 0
            conn.commit()
        if deleted:
            logger.info(
                "Work plan deleted | work_plan_id=%s | pending_purged=%s",
                work_plan_id,
                purged,
            )
        return deleted

    def get_template(self, template_id: int) -> Optional[RecurringTaskTemplate]:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT * FROM PlannedActivities WHERE id = ?;", (template_id,))
            row = cursor.fetchone()
            return None if row is None else _row_to_template(row)

    def create_template(
        self,
        work_plan_id: int,
        activity_id: int,
        periodicity: str,
    ) -> RecurringTaskTemplate:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                INSERT INTO PlannedActivities (work_plan_id, activity_id, periodicity)
                VALUES (?, ?, ?);
                """,
                (work_plan_id, activity_id, periodicity),
            )
            conn.commit()
            template_id = int(cursor.lastrowid)
        return RecurringTaskTemplate(template_id, work_plan_id, activity_id, periodicity)

    def delete_template(self, template_id: int) -> tuple[bool, int]:
        """Delete a template; returns (deleted, pending occurrences purged)."""
        with self._connect() as conn:
            cursor = conn.cursor()
            purged = self._purge_pending_occurrences(cursor, [template_id])
            cursor.execute("DELETE FROM PlannedActivities WHERE id = ?;", (template_id,))
            deleted = cursor.rowcount > 0
            conn.commit()
        return deleted, purged

    # --- Occurrences ---

    def list_occurrences(
        self,
        *,
        template_id: Optional[int] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        operator_id: Optional[int] = None,
    ) -> list[TaskOccurrence]:
        clauses: list[str] = []
        params: list[Any] = []
        if template_id is not None:
            clauses.append("planned_activity_id = ?")
            params.append(template_id)
        if start_date is not None:
            clauses.append("planned_date >= ?")
            params.append(start_date.isoformat())
        if end_date is not None:
            clauses.append("planned_date <= ?")
            params.append(end_date.isoformat())
        if operator_id is not None:
            clauses.append("operator_id = ?")
            params.append(operator_id)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                f"SELECT * FROM ScheduledActivities {where} ORDER BY planned_date ASC, id ASC;",
                tuple(params),
            )
            return [_row_to_occurrence(row) for row in cursor.fetchall()]

    def get_occurrence(self, occurrence_id: int) -> Optional[TaskOccurrence]:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT * FROM ScheduledActivities WHERE id = ?;", (occurrence_id,))
            row = cursor.fetchone()
            return None if row is None else _row_to_occurrence(row)

    def insert_occurrences(self, occurrences: Sequence[TaskOccurrence]) -> list[TaskOccurrence]:
        """Insert new occurrences, ignoring any (template, date) pair already stored."""
        created: list[TaskOccurrence] = []
        if not occurrences:
            return created
        with self._connect() as conn:
            cursor = conn.cursor()
            for occurrence in occurrences:
                cursor.execute(
                    """
                    INSERT OR IGNORE INTO ScheduledActivities (
                        planned_activity_id, work_plan_id, planned_date,
                        execution_date, operator_id
                    )
                    VALUES (?, ?, ?, ?, ?);
                    """,
                    (
                        occurrence.template_id,
                        occurrence.work_plan_id,
                        occurrence.planned_date.isoformat(),
                        None if occurrence.execution_date is None else occurrence.execution_date.isoformat(),
                        occurrence.operator_id,
                    ),
                )
                if cursor.rowcount > 0:
                    created.append(
                        TaskOccurrence(
                            occurrence_id=int(cursor.lastrowid),
                            template_id=occurrence.template_id,
                            work_plan_id=occurrence.work_plan_id,
                            planned_date=occurrence.planned_date,
                            execution_date=occurrence.execution_date,
                            operator_id=occurrence.operator_id,
                        )
                    )
            conn.commit()
        return created

    def mark_occurrence_executed(self, occurrence_id: int, execution_date: date) -> bool:
        """Set execution_date once; returns False when already executed or missing."""
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                UPDATE ScheduledActivities
                SET execution_date = ?
                WHERE id = ? AND execution_date IS NULL;
                """,
                (execution_date.isoformat(), occurrence_id),
            )
            conn.commit()
            return cursor.rowcount > 0

    def update_occurrence_operator(self, occurrence_id: int, operator_id: Optional[int]) -> bool:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                UPDATE ScheduledActivities
                SET operator_id = ?
                WHERE id = ? AND execution_date IS NULL;
                """,
                (operator_id, occurrence_id),
            )
            conn.commit()
            return cursor.rowcount > 0

    # --- Governance parameters ---

    def get_governance_parameters(self) -> GovernanceParameters:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT payload FROM GovernanceParameters WHERE id = 1;")
            row = cursor.fetchone()
        if row is None:
            return DEFAULT_GOVERNANCE_PARAMETERS
        return GovernanceParameters.from_dict(json.loads(row["payload"]))

    def save_governance_parameters(self, params: GovernanceParameters) -> GovernanceParameters:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                INSERT INTO GovernanceParameters (id, payload, updated_at)
                VALUES (1, ?, CURRENT_TIMESTAMP)
                ON CONFLICT(id) DO UPDATE SET
                    payload = excluded.payload,
                    updated_at = excluded.updated_at;
                """,
                (json.dumps(params.to_dict()),),
            )
            conn.commit()
        return params

    # --- Weekly operational plans ---

    def get_weekly_plan(self, week_start_date: date) -> Optional[WeeklyOperationalPlan]:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                "SELECT * FROM WeeklyPlans WHERE week_start_date = ?;",
                (week_start_date.isoformat(),),
            )
            row = cursor.fetchone()
        if row is None:
            return None
        return WeeklyOperationalPlan(
            plan_id=int(row["id"]),
            week_start_date=date.fromisoformat(row["week_start_date"]),
            week_end_date=date.fromisoformat(row["week_end_date"]),
            maintenance_room_count=int(row["maintenance_room_count"]),
            days=tuple(_day_from_dict(item) for item in json.loads(row["days"])),
            calculated_demand=tuple(
                _demand_from_dict(item) for item in json.loads(row["calculated_demand"])
            ),
            updated_at=_parse_datetime(row["updated_at"]),
        )

    def save_weekly_plan(self, plan: WeeklyOperationalPlan) -> WeeklyOperationalPlan:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                INSERT INTO WeeklyPlans (
                    week_start_date, week_end_date, maintenance_room_count,
                    days, calculated_demand, updated_at
                )
                VALUES (?, ?, ?, ?, ?, CURRENT_TIMESTAMP)
                ON CONFLICT(week_start_date) DO UPDATE SET
                    week_end_date = excluded.week_end_date,
                    maintenance_room_count = excluded.maintenance_room_count,
                    days = excluded.days,
                    calculated_demand = excluded.calculated_demand,
                    updated_at = excluded.updated_at;
                """,
                (
                    plan.week_start_date.isoformat(),
                    plan.week_end_date.isoformat(),
                    plan.maintenance_room_count,
                    json.dumps([_day_to_dict(day) for day in plan.days]),
                    json.dumps([_demand_to_dict(item) for item in plan.calculated_demand]),
                ),
            )
            conn.commit()
        stored = self.get_weekly_plan(plan.week_start_date)
        if stored is None:
            raise RuntimeError(
                f"Weekly plan for {plan.week_start_date.isoformat()} was not persisted"
            )
        return stored

    # --- Weekly schedules ---

    def get_weekly_schedule(self, week_start_date: date) -> Optional[WeeklySchedule]:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                "SELECT * FROM WeeklySchedules WHERE week_start_date = ?;",
                (week_start_date.isoformat(),),
            )
            row = cursor.fetchone()
            if row is None:
                return None
            schedule_id = int(row["id"])
            cursor.execute(
                """
                SELECT * FROM ShiftAssignments
                WHERE schedule_id = ?
                ORDER BY date ASC, staff_id ASC;
                """,
                (schedule_id,),
            )
            shifts = tuple(_row_to_shift(item) for item in cursor.fetchall())
        return WeeklySchedule(
            schedule_id=schedule_id,
            week_start_date=date.fromisoformat(row["week_start_date"]),
            shifts=shifts,
            updated_at=_parse_datetime(row["updated_at"]),
        )

    def save_weekly_schedule(self, schedule: WeeklySchedule) -> WeeklySchedule:
        """Upsert the schedule row and replace its shift set."""
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                INSERT INTO WeeklySchedules (week_start_date, updated_at)
                VALUES (?, CURRENT_TIMESTAMP)
                ON CONFLICT(week_start_date) DO UPDATE SET updated_at = excluded.updated_at;
                """,
                (schedule.week_start_date.isoformat(),),
            )
            cursor.execute(
                "SELECT id FROM WeeklySchedules WHERE week_start_date = ?;",
                (schedule.week_start_date.isoformat(),),
            )
            schedule_id = int(cursor.fetchone()["id"])
            cursor.execute("DELETE FROM ShiftAssignments WHERE schedule_id = ?;", (schedule_id,))
            cursor.executemany(
                """
                INSERT INTO ShiftAssignments (
                    id, schedule_id, staff_id, date, start_time, end_time,
                    break_minutes, net_hours
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?);
                """,
                [
                    (
                        shift.shift_id,
                        schedule_id,
                        shift.staff_id,
                        shift.date.isoformat(),
                        shift.start_time,
                        shift.end_time,
                        shift.break_minutes,
                        shift.net_hours,
                    )
                    for shift in schedule.shifts
                ],
            )
            purged = self._purge_stale_convocations(cursor, schedule_id, schedule.shifts)
            conn.commit()
        if purged:
            logger.info(
                "Stale convocations removed | week=%s | removed=%s",
                schedule.week_start_date.isoformat(),
                purged,
            )
        stored = self.get_weekly_schedule(schedule.week_start_date)
        if stored is None:
            raise RuntimeError(
                f"Weekly schedule for {schedule.week_start_date.isoformat()} was not persisted"
            )
        return stored

    # --- Convocations ---

    def list_convocations(self, schedule_id: Optional[int] = None) -> list[Convocation]:
        with self._connect() as conn:
            cursor = conn.cursor()
            if schedule_id is None:
                cursor.execute("SELECT * FROM Convocations ORDER BY sent_at DESC, id DESC;")
            else:
                cursor.execute(
                    """
                    SELECT * FROM Convocations
                    WHERE schedule_id = ?
                    ORDER BY shift_date ASC, id ASC;
                    """,
                    (schedule_id,),
                )
            return [_row_to_convocation(row) for row in cursor.fetchall()]

    def get_convocation(self, convocation_id: int) -> Optional[Convocation]:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT * FROM Convocations WHERE id = ?;", (convocation_id,))
            row = cursor.fetchone()
            return None if row is None else _row_to_convocation(row)

    def create_convocations(self, convocations: Sequence[Convocation]) -> list[Convocation]:
        """Insert convocations; a shift that already has one is skipped."""
        created: list[Convocation] = []
        if not convocations:
            return created
        with self._connect() as conn:
            cursor = conn.cursor()
            for item in convocations:
                cursor.execute(
                    """
                    INSERT OR IGNORE INTO Convocations (
                        schedule_id, shift_id, staff_id, shift_date, shift_start_time,
                        shift_end_time, sent_at, deadline_at, status, justification
                    )
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?);
                    """,
                    (
                        item.schedule_id,
                        item.shift_id,
                        item.staff_id,
                        item.shift_date.isoformat(),
                        item.shift_start_time,
                        item.shift_end_time,
                        item.sent_at.isoformat(),
                        item.deadline_at.isoformat(),
                        ConvocationStatus.PENDING.value,
                        item.justification,
                    ),
                )
                if cursor.rowcount > 0:
                    created.append(
                        Convocation(
                            convocation_id=int(cursor.lastrowid),
                            schedule_id=item.schedule_id,
                            shift_id=item.shift_id,
                            staff_id=item.staff_id,
                            shift_date=item.shift_date,
                            shift_start_time=item.shift_start_time,
                            shift_end_time=item.shift_end_time,
                            sent_at=item.sent_at,
                            deadline_at=item.deadline_at,
                            status=ConvocationStatus.PENDING,
                            justification=item.justification,
                        )
                    )
            conn.commit()
        return created

    def record_convocation_response(
        self,
        convocation_id: int,
        status: ConvocationStatus,
        responded_at: datetime,
        rejection_reason: Optional[str] = None,
    ) -> bool:
        """Persist a terminal response; only rows still stored as Pending are updated."""
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                UPDATE Convocations
                SET status = ?, responded_at = ?, rejection_reason = ?
                WHERE id = ? AND status = 'Pending';
                """,
                (status.value, responded_at.isoformat(), rejection_reason, convocation_id),
            )
            conn.commit()
            return cursor.rowcount > 0
