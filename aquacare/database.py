from __future__ import annotations

import json
import sqlite3
import threading
import uuid
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import List, Optional

from .models import (
    Aquarium,
    CareTask,
    CompatibilityStatus,
    CompatibilityWarning,
    NotificationChannel,
    NotificationSettings,
    PreferredTime,
    StatusLevel,
    StockEntry,
    Subscription,
    TaskMeasurement,
    TaskStatus,
    TaskType,
    User,
)
from .repository import Repository


def _to_text(moment: Optional[datetime]) -> Optional[str]:
    return moment.isoformat() if moment is not None else None


def _from_text(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


class Database(Repository):
    """SQLite implementation of the repository."""

    def __init__(self, db_path: Path) -> None:
        self._db_path = db_path
        self._lock = threading.RLock()
        self._connection = sqlite3.connect(self._db_path, check_same_thread=False)
        self._connection.row_factory = sqlite3.Row
        self._configure()
        self._initialize()

    def _configure(self) -> None:
        self._connection.execute("PRAGMA foreign_keys = ON")
        self._connection.execute("PRAGMA journal_mode = WAL")
        self._connection.execute("PRAGMA synchronous = NORMAL")

    def _initialize(self) -> None:
        self._connection.executescript(
            """
            CREATE TABLE IF NOT EXISTS users (
                id TEXT PRIMARY KEY,
                email TEXT NOT NULL UNIQUE,
                display_name TEXT,
                channel TEXT NOT NULL,
                preferred_time TEXT NOT NULL,
                time_zone TEXT NOT NULL,
                mute_feeding_reminders INTEGER NOT NULL,
                plan_name TEXT NOT NULL,
                plan_start_at TEXT NOT NULL,
                plan_end_at TEXT,
                aquarium_limit INTEGER NOT NULL,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS aquariums (
                id TEXT PRIMARY KEY,
                user_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
                name TEXT NOT NULL,
                volume_liters REAL NOT NULL,
                description TEXT,
                is_public INTEGER NOT NULL,
                status TEXT NOT NULL,
                compatibility_status TEXT NOT NULL,
                bio_load_percentage INTEGER NOT NULL,
                required_volume_liters REAL NOT NULL,
                warnings TEXT NOT NULL,
                last_calculated_at TEXT,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS stock (
                id TEXT PRIMARY KEY,
                aquarium_id TEXT NOT NULL REFERENCES aquariums(id) ON DELETE CASCADE,
                position INTEGER NOT NULL,
                species_id TEXT NOT NULL,
                quantity INTEGER NOT NULL,
                size_class TEXT,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS care_tasks (
                id TEXT PRIMARY KEY,
                aquarium_id TEXT NOT NULL REFERENCES aquariums(id) ON DELETE CASCADE,
                position INTEGER NOT NULL,
                type TEXT NOT NULL,
                title TEXT NOT NULL,
                description TEXT NOT NULL,
                interval_days INTEGER NOT NULL,
                next_due_at TEXT NOT NULL,
                status TEXT NOT NULL,
                channel TEXT NOT NULL,
                requires_measurement INTEGER NOT NULL,
                parameters TEXT,
                last_completed_at TEXT,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            );
            """
        )
        self._connection.commit()

    def _user_from_row(self, row: sqlite3.Row) -> User:
        return User(
            id=row["id"],
            email=row["email"],
            display_name=row["display_name"],
            notification_settings=NotificationSettings(
                channel=NotificationChannel(row["channel"]),
                preferred_time=PreferredTime(row["preferred_time"]),
                time_zone=row["time_zone"],
                mute_feeding_reminders=bool(row["mute_feeding_reminders"]),
            ),
            subscription=Subscription(
                plan=row["plan_name"],
                start_at=datetime.fromisoformat(row["plan_start_at"]),
                end_at=_from_text(row["plan_end_at"]),
                aquarium_limit=row["aquarium_limit"],
            ),
            created_at=datetime.fromisoformat(row["created_at"]),
            updated_at=datetime.fromisoformat(row["updated_at"]),
        )

    def get_user(self, user_id: str) -> Optional[User]:
        row = self._connection.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
        return self._user_from_row(row) if row else None

    def find_user_by_email(self, email: str) -> Optional[User]:
        row = self._connection.execute("SELECT * FROM users WHERE email = ?", (email,)).fetchone()
        return self._user_from_row(row) if row else None

    def save_user(self, user: User) -> User:
        settings = user.notification_settings
        subscription = user.subscription
        with self._lock:
            self._connection.execute(
                """
                INSERT INTO users (id, email, display_name, channel, preferred_time, time_zone,
                    mute_feeding_reminders, plan_name, plan_start_at, plan_end_at, aquarium_limit, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    email = excluded.email,
                    display_name = excluded.display_name,
                    channel = excluded.channel,
                    preferred_time = excluded.preferred_time,
                    time_zone = excluded.time_zone,
                    mute_feeding_reminders = excluded.mute_feeding_reminders,
                    plan_name = excluded.plan_name,
                    plan_start_at = excluded.plan_start_at,
                    plan_end_at = excluded.plan_end_at,
                    aquarium_limit = excluded.aquarium_limit,
                    updated_at = excluded.updated_at
                """,
                (
                    user.id,
                    user.email,
                    user.display_name,
                    NotificationChannel(settings.channel).value,
                    PreferredTime(settings.preferred_time).value,
                    settings.time_zone,
                    int(settings.mute_feeding_reminders),
                    subscription.plan,
                    subscription.start_at.isoformat(),
                    _to_text(subscription.end_at),
                    subscription.aquarium_limit,
                    user.created_at.isoformat(),
                    user.updated_at.isoformat(),
                ),
            )
            self._connection.commit()
        return user

    def _aquarium_from_row(self, row: sqlite3.Row) -> Aquarium:
        return Aquarium(
            id=row["id"],
            user_id=row["user_id"],
            name=row["name"],
            volume_liters=row["volume_liters"],
            description=row["description"],
            is_public=bool(row["is_public"]),
            status=StatusLevel(row["status"]),
            compatibility_status=CompatibilityStatus(row["compatibility_status"]),
            bio_load_percentage=row["bio_load_percentage"],
            required_volume_liters=row["required_volume_liters"],
            warnings=[
                CompatibilityWarning(
                    species_a_id=item["species_a_id"],
                    species_b_id=item["species_b_id"],
                    message=item["message"],
                )
                for item in json.loads(row["warnings"])
            ],
            last_calculated_at=_from_text(row["last_calculated_at"]),
            created_at=datetime.fromisoformat(row["created_at"]),
            updated_at=datetime.fromisoformat(row["updated_at"]),
        )

    def get_aquarium(self, aquarium_id: str) -> Optional[Aquarium]:
        row = self._connection.execute("SELECT * FROM aquariums WHERE id = ?", (aquarium_id,)).fetchone()
        return self._aquarium_from_row(row) if row else None

    def aquariums_for_user(self, user_id: str) -> List[Aquarium]:
        rows = self._connection.execute(
            "SELECT * FROM aquariums WHERE user_id = ? ORDER BY created_at, rowid", (user_id,)
        ).fetchall()
        return [self._aquarium_from_row(row) for row in rows]

    def save_aquarium(self, aquarium: Aquarium) -> Aquarium:
        warnings = json.dumps(
            [
                {"species_a_id": item.species_a_id, "species_b_id": item.species_b_id, "message": item.message}
                for item in aquarium.warnings
            ]
        )
        with self._lock:
            self._connection.execute(
                """
                INSERT INTO aquariums (id, user_id, name, volume_liters, description, is_public, status,
                    compatibility_status, bio_load_percentage, required_volume_liters, warnings,
                    last_calculated_at, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    name = excluded.name,
                    volume_liters = excluded.volume_liters,
                    description = excluded.description,
                    is_public = excluded.is_public,
                    status = excluded.status,
                    compatibility_status = excluded.compatibility_status,
                    bio_load_percentage = excluded.bio_load_percentage,
                    required_volume_liters = excluded.required_volume_liters,
                    warnings = excluded.warnings,
                    last_calculated_at = excluded.last_calculated_at,
                    updated_at = excluded.updated_at
                """,
                (
                    aquarium.id,
                    aquarium.user_id,
                    aquarium.name,
                    aquarium.volume_liters,
                    aquarium.description,
                    int(aquarium.is_public),
                    StatusLevel(aquarium.status).value,
                    CompatibilityStatus(aquarium.compatibility_status).value,
                    aquarium.bio_load_percentage,
                    aquarium.required_volume_liters,
                    warnings,
                    _to_text(aquarium.last_calculated_at),
                    aquarium.created_at.isoformat(),
                    aquarium.updated_at.isoformat(),
                ),
            )
            self._connection.commit()
        return aquarium

    def delete_aquarium(self, aquarium_id: str) -> None:
        with self._lock:
            self._connection.execute("DELETE FROM aquariums WHERE id = ?", (aquarium_id,))
            self._connection.commit()

    def stock_for(self, aquarium_id: str) -> List[StockEntry]:
        rows = self._connection.execute(
            "SELECT * FROM stock WHERE aquarium_id = ? ORDER BY position", (aquarium_id,)
        ).fetchall()
        return [
            StockEntry(
                id=row["id"],
                aquarium_id=row["aquarium_id"],
                species_id=row["species_id"],
                quantity=row["quantity"],
                size_class=row["size_class"],
                created_at=datetime.fromisoformat(row["created_at"]),
                updated_at=datetime.fromisoformat(row["updated_at"]),
            )
            for row in rows
        ]

    def save_stock(self, aquarium_id: str, stock: List[StockEntry]) -> None:
        with self._lock:
            self._connection.execute("DELETE FROM stock WHERE aquarium_id = ?", (aquarium_id,))
            self._connection.executemany(
                "INSERT INTO stock (id, aquarium_id, position, species_id, quantity, size_class, created_at, updated_at) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    (
                        entry.id,
                        aquarium_id,
                        position,
                        entry.species_id,
                        entry.quantity,
                        entry.size_class,
                        entry.created_at.isoformat(),
                        entry.updated_at.isoformat(),
                    )
                    for position, entry in enumerate(stock)
                ),
            )
            self._connection.commit()

    def tasks_for(self, aquarium_id: str) -> List[CareTask]:
        rows = self._connection.execute(
            "SELECT * FROM care_tasks WHERE aquarium_id = ? ORDER BY position", (aquarium_id,)
        ).fetchall()
        tasks: List[CareTask] = []
        for row in rows:
            parameters = None
            if row["parameters"] is not None:
                parameters = [
                    TaskMeasurement(parameter=item["parameter"], value=item["value"])
                    for item in json.loads(row["parameters"])
                ]
            tasks.append(
                CareTask(
                    id=row["id"],
                    aquarium_id=row["aquarium_id"],
                    type=TaskType(row["type"]),
                    title=row["title"],
                    description=row["description"],
                    interval_days=row["interval_days"],
                    next_due_at=datetime.fromisoformat(row["next_due_at"]),
                    status=TaskStatus(row["status"]),
                    channel=NotificationChannel(row["channel"]),
                    requires_measurement=bool(row["requires_measurement"]),
                    parameters=parameters,
                    last_completed_at=_from_text(row["last_completed_at"]),
                    created_at=datetime.fromisoformat(row["created_at"]),
                    updated_at=datetime.fromisoformat(row["updated_at"]),
                )
            )
        return tasks

    def save_tasks(self, aquarium_id: str, tasks: List[CareTask]) -> None:
        with self._lock:
            self._connection.execute("DELETE FROM care_tasks WHERE aquarium_id = ?", (aquarium_id,))
            self._connection.executemany(
                """
                INSERT INTO care_tasks (id, aquarium_id, position, type, title, description, interval_days,
                    next_due_at, status, channel, requires_measurement, parameters, last_completed_at,
                    created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    (
                        task.id,
                        aquarium_id,
                        position,
                        TaskType(task.type).value,
                        task.title,
                        task.description,
                        task.interval_days,
                        task.next_due_at.isoformat(),
                        TaskStatus(task.status).value,
                        NotificationChannel(task.channel).value,
                        int(task.requires_measurement),
                        json.dumps([{"parameter": item.parameter, "value": item.value} for item in task.parameters])
                        if task.parameters is not None
                        else None,
                        _to_text(task.last_completed_at),
                        task.created_at.isoformat(),
                        task.updated_at.isoformat(),
                    )
                    for position, task in enumerate(tasks)
                ),
            )
            self._connection.commit()

    def close(self) -> None:
        self._connection.close()

    def ensure_defaults(self, free_aquarium_limit: int = 1) -> None:
        """Seed a demo user with one stocked aquarium on an empty database.

        Derived aquarium fields are left at their defaults; callers run a
        recalculation afterwards.
        """
        has_users = self._connection.execute("SELECT 1 FROM users LIMIT 1").fetchone()
        if has_users:
            return
        now = datetime.now(timezone.utc)
        user = self.save_user(
            User(
                id=str(uuid.uuid4()),
                email="demo@aquacare.local",
                display_name="Demo",
                notification_settings=NotificationSettings(),
                subscription=Subscription(plan="free", start_at=now, aquarium_limit=free_aquarium_limit),
                created_at=now,
                updated_at=now,
            )
        )
        aquarium = self.save_aquarium(
            Aquarium(
                id=str(uuid.uuid4()),
                user_id=user.id,
                name="Main aquarium",
                volume_liters=120.0,
                description="Community tank",
                created_at=now - timedelta(days=2),
                updated_at=now,
            )
        )
        species = [("neon_tetra", 10), ("corydoras", 6), ("guppy", 4)]
        self.save_stock(
            aquarium.id,
            [
                StockEntry(
                    id=str(uuid.uuid4()),
                    aquarium_id=aquarium.id,
                    species_id=species_id,
                    quantity=quantity,
                    created_at=now,
                    updated_at=now,
                )
                for species_id, quantity in species
            ],
        )
