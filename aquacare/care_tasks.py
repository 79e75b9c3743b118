from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from types import MappingProxyType
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Tuple

from .errors import ValidationError
from .models import (
    CareTask,
    NotificationChannel,
    NotificationSettings,
    PreferredTime,
    StatusLevel,
    TaskMeasurement,
    TaskStatus,
    TaskType,
)

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class TaskTemplate:
    type: TaskType
    title: str
    description: str
    requires_measurement: bool
    measurement_keys: Tuple[str, ...] = ()


TASK_TEMPLATES: Tuple[TaskTemplate, ...] = (
    TaskTemplate(
        type=TaskType.FEEDING,
        title="Feed the fish",
        description="Feed small portions that the fish finish within two to three minutes.",
        requires_measurement=False,
    ),
    TaskTemplate(
        type=TaskType.OBSERVE,
        title="Observe behaviour",
        description="Check activity, appetite and signs of stress in every inhabitant.",
        requires_measurement=False,
    ),
    TaskTemplate(
        type=TaskType.WATER_CHANGE,
        title="Partial water change",
        description="Replace part of the water with conditioned, temperature-matched fresh water.",
        requires_measurement=False,
    ),
    TaskTemplate(
        type=TaskType.TEST_NO3,
        title="Nitrate test (NO3)",
        description="Measure the nitrate level and record the result.",
        requires_measurement=True,
        measurement_keys=("NO3",),
    ),
    TaskTemplate(
        type=TaskType.TEST_NO2,
        title="Nitrite test (NO2)",
        description="Check for nitrites and make sure the value is close to zero.",
        requires_measurement=True,
        measurement_keys=("NO2",),
    ),
    TaskTemplate(
        type=TaskType.TEST_PH,
        title="pH test",
        description="Check the acidity of the water and keep it within the working range.",
        requires_measurement=True,
        measurement_keys=("pH",),
    ),
    TaskTemplate(
        type=TaskType.TEST_GH,
        title="General hardness test (GH)",
        description="Record general hardness and compare it with the target.",
        requires_measurement=True,
        measurement_keys=("GH",),
    ),
    TaskTemplate(
        type=TaskType.TEST_KH,
        title="Carbonate hardness test (KH)",
        description="Track the buffering capacity of the water, especially in planted tanks.",
        requires_measurement=True,
        measurement_keys=("KH",),
    ),
    TaskTemplate(
        type=TaskType.TEST_TA,
        title="Alkalinity test (TA)",
        description="Check alkalinity so parameters can be corrected in time.",
        requires_measurement=True,
        measurement_keys=("TA",),
    ),
    TaskTemplate(
        type=TaskType.TEST_CL2,
        title="Chlorine test (Cl2)",
        description="Make sure there is no free chlorine before water changes.",
        requires_measurement=True,
        measurement_keys=("Cl2",),
    ),
)


def _profile(**days: int) -> Mapping[TaskType, int]:
    return MappingProxyType({TaskType(kind): interval for kind, interval in days.items()})


INTERVAL_MATRIX: Mapping[StatusLevel, Mapping[TaskType, int]] = MappingProxyType(
    {
        StatusLevel.COMFORT: _profile(
            water_change=14, feeding=1, observe=1,
            test_no3=14, test_no2=14, test_ph=14, test_gh=28, test_kh=21, test_ta=21, test_cl2=30,
        ),
        StatusLevel.ELEVATED: _profile(
            water_change=7, feeding=1, observe=1,
            test_no3=7, test_no2=7, test_ph=7, test_gh=21, test_kh=14, test_ta=14, test_cl2=21,
        ),
        StatusLevel.CRITICAL: _profile(
            water_change=3, feeding=1, observe=1,
            test_no3=3, test_no2=3, test_ph=3, test_gh=7, test_kh=7, test_ta=7, test_cl2=10,
        ),
    }
)

IMMEDIATE_TASKS = frozenset({TaskType.FEEDING, TaskType.OBSERVE})

_PREFERRED_HOURS: Mapping[PreferredTime, int] = MappingProxyType(
    {PreferredTime.MORNING: 9, PreferredTime.EVENING: 19, PreferredTime.ANY: 12}
)


def _utc(moment: datetime) -> datetime:
    return moment.astimezone(timezone.utc)


def preferred_hour(preference: PreferredTime) -> int:
    return _PREFERRED_HOURS.get(PreferredTime(preference), 12)


def initial_due_date(offset_days: int, preference: PreferredTime, now: datetime) -> datetime:
    target = _utc(now) + timedelta(days=offset_days)
    return target.replace(hour=preferred_hour(preference), minute=0, second=0, microsecond=0)


def task_channel(task_type: TaskType, settings: NotificationSettings) -> NotificationChannel:
    if task_type == TaskType.FEEDING and settings.mute_feeding_reminders:
        return NotificationChannel.OFF
    return NotificationChannel(settings.channel)


def calendar_days_between(later: datetime, earlier: datetime) -> int:
    return (_utc(later).date() - _utc(earlier).date()).days


def update_task_status(task: CareTask, now: datetime) -> bool:
    """Apply the time-based status transition to ``task`` in place.

    Completed tasks roll forward by one interval from their own due date once
    a full interval of calendar days has passed. Open tasks flip between
    active and overdue depending on whether ``now`` is past the due date.
    Returns True when the task changed.
    """
    if task.status == TaskStatus.COMPLETED:
        if calendar_days_between(now, task.next_due_at) >= task.interval_days:
            task.next_due_at = task.next_due_at + timedelta(days=task.interval_days)
            task.status = TaskStatus.ACTIVE
            task.updated_at = now
            return True
        return False
    is_past_due = _utc(now) > _utc(task.next_due_at)
    if is_past_due and task.status != TaskStatus.OVERDUE:
        task.status = TaskStatus.OVERDUE
        task.updated_at = now
        return True
    if not is_past_due and task.status == TaskStatus.OVERDUE:
        task.status = TaskStatus.ACTIVE
        task.updated_at = now
        return True
    return False


def _new_task(
    aquarium_id: str,
    template: TaskTemplate,
    interval_days: int,
    channel: NotificationChannel,
    preference: PreferredTime,
    now: datetime,
    task_id: str,
) -> CareTask:
    offset = 0 if template.type in IMMEDIATE_TASKS else 1
    parameters: Optional[List[TaskMeasurement]] = None
    if template.measurement_keys:
        parameters = [TaskMeasurement(parameter=key, value=0.0) for key in template.measurement_keys]
    return CareTask(
        id=task_id,
        aquarium_id=aquarium_id,
        type=template.type,
        title=template.title,
        description=template.description,
        interval_days=interval_days,
        next_due_at=initial_due_date(offset, preference, now),
        status=TaskStatus.ACTIVE,
        channel=channel,
        requires_measurement=template.requires_measurement,
        parameters=parameters,
        created_at=now,
        updated_at=now,
    )


def merge_care_tasks(
    aquarium_id: str,
    existing: Iterable[CareTask],
    settings: NotificationSettings,
    status: StatusLevel,
    now: datetime,
    id_factory: Callable[[], str] = lambda: str(uuid.uuid4()),
) -> List[CareTask]:
    """Upsert one task per template kind, returned in template order."""
    by_type: Dict[TaskType, CareTask] = {}
    for task in existing:
        by_type.setdefault(TaskType(task.type), task)
    intervals = INTERVAL_MATRIX[StatusLevel(status)]
    preference = PreferredTime(settings.preferred_time)

    merged: List[CareTask] = []
    for template in TASK_TEMPLATES:
        interval_days = intervals[template.type]
        channel = task_channel(template.type, settings)
        task = by_type.get(template.type)
        if task is None:
            task = _new_task(aquarium_id, template, interval_days, channel, preference, now, id_factory())
            logger.debug("Created %s task %s for aquarium %s", template.type.value, task.id, aquarium_id)
        else:
            task.title = template.title
            task.description = template.description
            task.requires_measurement = template.requires_measurement
            task.interval_days = interval_days
            task.channel = channel
            task.updated_at = now
        update_task_status(task, now)
        merged.append(task)
    return merged


def complete_task(task: CareTask, measurements: Optional[Mapping[str, Optional[float]]], now: datetime) -> CareTask:
    """Mark ``task`` completed at ``now`` and record supplied measurements.

    A key mapped to None counts as not supplied. Every supplied value is
    converted before the task is touched, so a rejected completion leaves
    the task as it was.
    """
    readings: Dict[str, float] = {}
    if task.requires_measurement and task.parameters:
        supplied = measurements or {}
        for parameter in task.parameters:
            raw = supplied.get(parameter.parameter)
            if raw is None:
                continue
            try:
                readings[parameter.parameter] = float(raw)
            except (TypeError, ValueError) as exc:
                raise ValidationError(f"Measurement {parameter.parameter} must be numeric, got {raw!r}.") from exc

    task.status = TaskStatus.COMPLETED
    task.last_completed_at = now
    task.next_due_at = now + timedelta(days=task.interval_days)
    task.updated_at = now
    for parameter in task.parameters or ():
        if parameter.parameter in readings:
            parameter.value = readings[parameter.parameter]
    return task
