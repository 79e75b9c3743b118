from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional


class StatusLevel(str, Enum):
    COMFORT = "comfort"
    ELEVATED = "elevated"
    CRITICAL = "critical"


class CompatibilityStatus(str, Enum):
    OK = "ok"
    WARN = "warn"


class BehaviorCategory(str, Enum):
    PEACEFUL = "peaceful"
    SEMI_AGGRESSIVE = "semi_aggressive"
    AGGRESSIVE = "aggressive"
    PREDATOR = "predator"
    BOTTOM_DWELLER = "bottom_dweller"
    SCHOOLING = "schooling"


class TaskType(str, Enum):
    FEEDING = "feeding"
    OBSERVE = "observe"
    WATER_CHANGE = "water_change"
    TEST_NO3 = "test_no3"
    TEST_NO2 = "test_no2"
    TEST_PH = "test_ph"
    TEST_GH = "test_gh"
    TEST_KH = "test_kh"
    TEST_TA = "test_ta"
    TEST_CL2 = "test_cl2"


class TaskStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    OVERDUE = "overdue"


class NotificationChannel(str, Enum):
    EMAIL = "email"
    PUSH = "push"
    OFF = "off"


class PreferredTime(str, Enum):
    MORNING = "morning"
    EVENING = "evening"
    ANY = "any"


SIZE_CLASSES = ("juvenile", "medium", "large")


@dataclass(slots=True, frozen=True)
class Species:
    id: str
    common_name: str
    scientific_name: str
    recommended_volume_per_fish: float
    behavior: BehaviorCategory
    bio_load_factor: float
    is_schooling: bool
    notes: Optional[str] = None


@dataclass(slots=True)
class StockEntry:
    id: str
    aquarium_id: str
    species_id: str
    quantity: int
    created_at: datetime
    updated_at: datetime
    size_class: Optional[str] = None


@dataclass(slots=True, frozen=True)
class CompatibilityWarning:
    species_a_id: str
    species_b_id: str
    message: str


@dataclass(slots=True)
class Aquarium:
    id: str
    user_id: str
    name: str
    volume_liters: float
    created_at: datetime
    updated_at: datetime
    description: Optional[str] = None
    is_public: bool = False
    status: StatusLevel = StatusLevel.COMFORT
    compatibility_status: CompatibilityStatus = CompatibilityStatus.OK
    bio_load_percentage: int = 0
    required_volume_liters: float = 0.0
    warnings: List[CompatibilityWarning] = field(default_factory=list)
    last_calculated_at: Optional[datetime] = None


@dataclass(slots=True)
class TaskMeasurement:
    parameter: str
    value: float


@dataclass(slots=True)
class CareTask:
    id: str
    aquarium_id: str
    type: TaskType
    title: str
    description: str
    interval_days: int
    next_due_at: datetime
    status: TaskStatus
    channel: NotificationChannel
    requires_measurement: bool
    created_at: datetime
    updated_at: datetime
    parameters: Optional[List[TaskMeasurement]] = None
    last_completed_at: Optional[datetime] = None


@dataclass(slots=True)
class NotificationSettings:
    channel: NotificationChannel = NotificationChannel.EMAIL
    preferred_time: PreferredTime = PreferredTime.MORNING
    time_zone: str = "UTC"
    mute_feeding_reminders: bool = False


@dataclass(slots=True)
class Subscription:
    plan: str
    start_at: datetime
    aquarium_limit: int
    end_at: Optional[datetime] = None


@dataclass(slots=True)
class User:
    id: str
    email: str
    notification_settings: NotificationSettings
    subscription: Subscription
    created_at: datetime
    updated_at: datetime
    display_name: Optional[str] = None


@dataclass(slots=True, frozen=True)
class BioLoadSummary:
    required_volume_liters: float
    percentage: int
    status: StatusLevel


@dataclass(slots=True, frozen=True)
class CompatibilityReport:
    status: CompatibilityStatus
    warnings: List[CompatibilityWarning]


@dataclass(slots=True, frozen=True)
class AquariumInsights:
    bio_load: BioLoadSummary
    compatibility: CompatibilityReport


@dataclass(slots=True)
class StockedSpecies:
    stock: StockEntry
    species: Species


@dataclass(slots=True)
class AquariumDetails:
    aquarium: Aquarium
    species: List[StockedSpecies]
    care_tasks: List[CareTask]
