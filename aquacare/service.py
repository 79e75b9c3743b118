from __future__ import annotations

import logging
import threading
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Callable, Dict, Iterator, List, Mapping, Optional

from .care_tasks import complete_task, merge_care_tasks, task_channel
from .catalog import SpeciesCatalog
from .errors import InvalidQuantity, InvalidVolume, LimitExceeded, UnknownSpecies, ValidationError
from .insights import build_insights, evaluate_compatibility, summarize_bio_load
from .models import (
    SIZE_CLASSES,
    Aquarium,
    AquariumDetails,
    AquariumInsights,
    CareTask,
    CompatibilityStatus,
    StatusLevel,
    StockedSpecies,
    StockEntry,
    User,
)
from .repository import Repository

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid.uuid4())


def _check_quantity(quantity: object) -> None:
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise InvalidQuantity(quantity)


class AquariumService:
    """Aquarium and stock operations; every mutation ends with a recalculation."""

    def __init__(
        self,
        repository: Repository,
        catalog: Optional[SpeciesCatalog] = None,
        clock: Clock = utc_now,
        id_factory: Callable[[], str] = _new_id,
    ) -> None:
        self._repository = repository
        self._catalog = catalog or SpeciesCatalog()
        self._clock = clock
        self._id_factory = id_factory
        # Reentrant so mutators can call recalculate while holding the lock.
        self._locks: Dict[str, threading.RLock] = {}
        self._locks_guard = threading.Lock()

    @property
    def catalog(self) -> SpeciesCatalog:
        return self._catalog

    @contextmanager
    def _locked(self, aquarium_id: str) -> Iterator[None]:
        with self._locks_guard:
            lock = self._locks.setdefault(aquarium_id, threading.RLock())
        with lock:
            yield

    def _owned(self, user_id: str, aquarium_id: str) -> Optional[Aquarium]:
        aquarium = self._repository.get_aquarium(aquarium_id)
        if aquarium is None or aquarium.user_id != user_id:
            return None
        return aquarium

    def recalculate(self, aquarium: Aquarium, user: User, now: Optional[datetime] = None) -> List[CareTask]:
        """Refresh derived aquarium fields and the care schedule from current stock.

        The bio-load status is derived first so task intervals follow the new
        status rather than the stored one.
        """
        with self._locked(aquarium.id):
            return self._recalculate(aquarium, user, now or self._clock())

    def _recalculate(self, aquarium: Aquarium, user: User, now: datetime) -> List[CareTask]:
        stock = self._repository.stock_for(aquarium.id)
        bio_load = summarize_bio_load(aquarium.volume_liters, stock, self._catalog)
        compatibility = evaluate_compatibility(stock, self._catalog)

        aquarium.status = bio_load.status
        aquarium.bio_load_percentage = bio_load.percentage
        aquarium.required_volume_liters = bio_load.required_volume_liters
        aquarium.compatibility_status = compatibility.status
        aquarium.warnings = list(compatibility.warnings)
        aquarium.last_calculated_at = now
        aquarium.updated_at = now
        self._repository.save_aquarium(aquarium)

        tasks: List[CareTask] = []
        if stock:
            tasks = merge_care_tasks(
                aquarium.id,
                self._repository.tasks_for(aquarium.id),
                user.notification_settings,
                bio_load.status,
                now,
                self._id_factory,
            )
        self._repository.save_tasks(aquarium.id, tasks)
        logger.debug(
            "Recalculated aquarium %s: %s%% %s, compatibility %s, %d tasks",
            aquarium.id,
            bio_load.percentage,
            bio_load.status.value,
            compatibility.status.value,
            len(tasks),
        )
        return tasks

    def _details(self, aquarium: Aquarium) -> AquariumDetails:
        species: List[StockedSpecies] = []
        for entry in self._repository.stock_for(aquarium.id):
            resolved = self._catalog.lookup(entry.species_id)
            if resolved is not None:
                species.append(StockedSpecies(stock=entry, species=resolved))
        return AquariumDetails(
            aquarium=aquarium,
            species=species,
            care_tasks=self._repository.tasks_for(aquarium.id),
        )

    def list_aquariums(self, user_id: str) -> List[AquariumDetails]:
        return [self._details(aquarium) for aquarium in self._repository.aquariums_for_user(user_id)]

    def get_aquarium(self, user_id: str, aquarium_id: str) -> Optional[AquariumDetails]:
        aquarium = self._owned(user_id, aquarium_id)
        if aquarium is None:
            return None
        return self._details(aquarium)

    def build_insights(self, user_id: str, aquarium_id: str) -> Optional[AquariumInsights]:
        aquarium = self._owned(user_id, aquarium_id)
        if aquarium is None:
            return None
        return build_insights(aquarium.volume_liters, self._repository.stock_for(aquarium_id), self._catalog)

    def create_aquarium(
        self,
        user: User,
        name: str,
        volume_liters: float,
        description: Optional[str] = None,
    ) -> AquariumDetails:
        limit = user.subscription.aquarium_limit
        if len(self._repository.aquariums_for_user(user.id)) >= limit:
            logger.warning("User %s reached the aquarium limit of %d", user.id, limit)
            raise LimitExceeded(limit)
        if not name or not name.strip():
            raise ValidationError("Aquarium name is required.")
        if volume_liters <= 0:
            raise InvalidVolume(volume_liters)
        now = self._clock()
        aquarium = Aquarium(
            id=self._id_factory(),
            user_id=user.id,
            name=name.strip(),
            volume_liters=volume_liters,
            description=description,
            status=StatusLevel.COMFORT,
            compatibility_status=CompatibilityStatus.OK,
            created_at=now,
            updated_at=now,
        )
        self._repository.save_aquarium(aquarium)
        self._repository.save_stock(aquarium.id, [])
        self._repository.save_tasks(aquarium.id, [])
        logger.info("Created aquarium %s (%s L) for user %s", aquarium.id, volume_liters, user.id)
        return self._details(aquarium)

    def update_aquarium(
        self,
        user: User,
        aquarium_id: str,
        name: Optional[str] = None,
        volume_liters: Optional[float] = None,
        description: Optional[str] = None,
    ) -> Optional[AquariumDetails]:
        with self._locked(aquarium_id):
            aquarium = self._owned(user.id, aquarium_id)
            if aquarium is None:
                return None
            if name is not None and not name.strip():
                raise ValidationError("Aquarium name is required.")
            if volume_liters is not None and volume_liters <= 0:
                raise InvalidVolume(volume_liters)
            if name is not None:
                aquarium.name = name.strip()
            if volume_liters is not None:
                aquarium.volume_liters = volume_liters
            if description is not None:
                aquarium.description = description
            self.recalculate(aquarium, user)
            return self._details(aquarium)

    def delete_aquarium(self, user_id: str, aquarium_id: str) -> bool:
        with self._locked(aquarium_id):
            if self._owned(user_id, aquarium_id) is None:
                return False
            self._repository.delete_aquarium(aquarium_id)
        with self._locks_guard:
            self._locks.pop(aquarium_id, None)
        logger.info("Deleted aquarium %s", aquarium_id)
        return True

    def add_fish(
        self,
        user: User,
        aquarium_id: str,
        species_id: str,
        quantity: int,
        size_class: Optional[str] = None,
    ) -> Optional[AquariumDetails]:
        with self._locked(aquarium_id):
            aquarium = self._owned(user.id, aquarium_id)
            if aquarium is None:
                return None
            _check_quantity(quantity)
            if size_class is not None and size_class not in SIZE_CLASSES:
                raise ValidationError(f"Unknown size class {size_class!r}.")
            if species_id not in self._catalog:
                logger.warning("Rejected unknown species %s for aquarium %s", species_id, aquarium_id)
                raise UnknownSpecies(species_id)

            now = self._clock()
            stock = self._repository.stock_for(aquarium_id)
            existing = next((entry for entry in stock if entry.species_id == species_id), None)
            if existing is not None:
                existing.quantity += quantity
                if size_class is not None:
                    existing.size_class = size_class
                existing.updated_at = now
            else:
                stock.append(
                    StockEntry(
                        id=self._id_factory(),
                        aquarium_id=aquarium_id,
                        species_id=species_id,
                        quantity=quantity,
                        size_class=size_class,
                        created_at=now,
                        updated_at=now,
                    )
                )
            self._repository.save_stock(aquarium_id, stock)
            self.recalculate(aquarium, user, now)
            return self._details(aquarium)

    def update_stock_quantity(
        self,
        user: User,
        aquarium_id: str,
        stock_id: str,
        quantity: int,
    ) -> Optional[AquariumDetails]:
        _check_quantity(quantity)
        with self._locked(aquarium_id):
            aquarium = self._owned(user.id, aquarium_id)
            if aquarium is None:
                return None
            stock = self._repository.stock_for(aquarium_id)
            record = next((entry for entry in stock if entry.id == stock_id), None)
            if record is None:
                return None
            now = self._clock()
            record.quantity = quantity
            record.updated_at = now
            self._repository.save_stock(aquarium_id, stock)
            self.recalculate(aquarium, user, now)
            return self._details(aquarium)

    def remove_fish(self, user: User, aquarium_id: str, stock_id: str) -> Optional[AquariumDetails]:
        with self._locked(aquarium_id):
            aquarium = self._owned(user.id, aquarium_id)
            if aquarium is None:
                return None
            stock = self._repository.stock_for(aquarium_id)
            self._repository.save_stock(aquarium_id, [entry for entry in stock if entry.id != stock_id])
            self.recalculate(aquarium, user)
            return self._details(aquarium)

    def mark_task_complete(
        self,
        user: User,
        aquarium_id: str,
        task_id: str,
        measurements: Optional[Mapping[str, Optional[float]]] = None,
    ) -> Optional[CareTask]:
        with self._locked(aquarium_id):
            if self._owned(user.id, aquarium_id) is None:
                return None
            tasks = self._repository.tasks_for(aquarium_id)
            task = next((item for item in tasks if item.id == task_id), None)
            if task is None:
                return None
            complete_task(task, measurements, self._clock())
            self._repository.save_tasks(aquarium_id, tasks)
            logger.debug("Completed task %s (%s) in aquarium %s", task.id, task.type.value, aquarium_id)
            return task

    def apply_notification_settings(self, user: User) -> None:
        """Re-derive the channel of every existing task the user owns."""
        now = self._clock()
        for aquarium in self._repository.aquariums_for_user(user.id):
            with self._locked(aquarium.id):
                tasks = self._repository.tasks_for(aquarium.id)
                if not tasks:
                    continue
                for task in tasks:
                    task.channel = task_channel(task.type, user.notification_settings)
                    task.updated_at = now
                self._repository.save_tasks(aquarium.id, tasks)

    def export_snapshot(self, user_id: str) -> Dict[str, object]:
        return {
            "aquariums": [
                {
                    "id": details.aquarium.id,
                    "name": details.aquarium.name,
                    "volume_liters": details.aquarium.volume_liters,
                    "description": details.aquarium.description,
                    "status": details.aquarium.status.value,
                    "compatibility_status": details.aquarium.compatibility_status.value,
                    "bio_load_percentage": details.aquarium.bio_load_percentage,
                    "required_volume_liters": details.aquarium.required_volume_liters,
                    "warnings": [
                        {
                            "species_a_id": warning.species_a_id,
                            "species_b_id": warning.species_b_id,
                            "message": warning.message,
                        }
                        for warning in details.aquarium.warnings
                    ],
                    "last_calculated_at": details.aquarium.last_calculated_at.isoformat()
                    if details.aquarium.last_calculated_at
                    else None,
                    "species": [
                        {
                            "id": entry.stock.id,
                            "species_id": entry.species.id,
                            "common_name": entry.species.common_name,
                            "scientific_name": entry.species.scientific_name,
                            "quantity": entry.stock.quantity,
                            "size_class": entry.stock.size_class,
                            "behavior": entry.species.behavior.value,
                            "recommended_volume_per_fish": entry.species.recommended_volume_per_fish,
                        }
                        for entry in details.species
                    ],
                    "care_tasks": [
                        {
                            "id": task.id,
                            "type": task.type.value,
                            "title": task.title,
                            "interval_days": task.interval_days,
                            "next_due_at": task.next_due_at.isoformat(),
                            "status": task.status.value,
                            "channel": task.channel.value,
                            "parameters": [
                                {"parameter": item.parameter, "value": item.value} for item in task.parameters
                            ]
                            if task.parameters is not None
                            else None,
                            "last_completed_at": task.last_completed_at.isoformat()
                            if task.last_completed_at
                            else None,
                        }
                        for task in details.care_tasks
                    ],
                }
                for details in self.list_aquariums(user_id)
            ]
        }
