from __future__ import annotations

import threading
import unittest
from datetime import datetime, timedelta, timezone

from aquacare.errors import InvalidQuantity, InvalidVolume, LimitExceeded, UnknownSpecies, ValidationError
from aquacare.models import (
    CompatibilityStatus,
    NotificationSettings,
    StatusLevel,
    Subscription,
    TaskMeasurement,
    TaskStatus,
    TaskType,
    User,
)
from aquacare.repository import InMemoryRepository
from aquacare.service import AquariumService

START = datetime(2026, 3, 10, 15, 30, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now = self.now + timedelta(**kwargs)


def make_user(user_id: str = "user-1", aquarium_limit: int = 3) -> User:
    return User(
        id=user_id,
        email=f"{user_id}@example.com",
        notification_settings=NotificationSettings(),
        subscription=Subscription(plan="free", start_at=START, aquarium_limit=aquarium_limit),
        created_at=START,
        updated_at=START,
    )


class AquariumServiceTest(unittest.TestCase):
    def setUp(self) -> None:
        self._repository = InMemoryRepository()
        self._clock = FakeClock(START)
        self._service = AquariumService(self._repository, clock=self._clock)
        self._user = make_user()
        self._repository.save_user(self._user)
        self._aquarium_id = self._service.create_aquarium(self._user, "Living room", 100).aquarium.id

    def _task(self, task_type: TaskType):
        details = self._service.get_aquarium(self._user.id, self._aquarium_id)
        assert details is not None
        return next(task for task in details.care_tasks if task.type == task_type)

    def test_new_aquarium_starts_empty(self) -> None:
        details = self._service.get_aquarium(self._user.id, self._aquarium_id)
        assert details is not None
        self.assertEqual(details.aquarium.status, StatusLevel.COMFORT)
        self.assertEqual(details.aquarium.bio_load_percentage, 0)
        self.assertEqual(details.aquarium.warnings, [])
        self.assertEqual(details.care_tasks, [])
        self.assertEqual(details.species, [])

    def test_add_fish_derives_fields_and_tasks(self) -> None:
        details = self._service.add_fish(self._user, self._aquarium_id, "neon_tetra", 10)
        assert details is not None
        self.assertEqual(details.aquarium.required_volume_liters, 40)
        self.assertEqual(details.aquarium.bio_load_percentage, 40)
        self.assertEqual(details.aquarium.status, StatusLevel.COMFORT)
        self.assertEqual(details.aquarium.last_calculated_at, START)
        self.assertEqual(len(details.care_tasks), 10)
        self.assertEqual(details.species[0].species.common_name, "Neon tetra")

    def test_adding_same_species_coalesces(self) -> None:
        self._service.add_fish(self._user, self._aquarium_id, "guppy", 2, size_class="juvenile")
        details = self._service.add_fish(self._user, self._aquarium_id, "guppy", 3)
        assert details is not None
        self.assertEqual(len(details.species), 1)
        self.assertEqual(details.species[0].stock.quantity, 5)
        self.assertEqual(details.species[0].stock.size_class, "juvenile")

    def test_unknown_species_is_rejected_without_writes(self) -> None:
        with self.assertRaises(UnknownSpecies):
            self._service.add_fish(self._user, self._aquarium_id, "kraken", 1)
        self.assertEqual(self._repository.stock_for(self._aquarium_id), [])

    def test_non_positive_quantity_is_rejected(self) -> None:
        with self.assertRaises(InvalidQuantity):
            self._service.add_fish(self._user, self._aquarium_id, "guppy", 0)
        details = self._service.add_fish(self._user, self._aquarium_id, "guppy", 2)
        assert details is not None
        stock_id = details.species[0].stock.id
        with self.assertRaises(InvalidQuantity):
            self._service.update_stock_quantity(self._user, self._aquarium_id, stock_id, -1)
        self.assertEqual(self._repository.stock_for(self._aquarium_id)[0].quantity, 2)

    def test_quantity_must_be_a_whole_number(self) -> None:
        for quantity in (2.5, True):
            with self.assertRaises(InvalidQuantity):
                self._service.add_fish(self._user, self._aquarium_id, "guppy", quantity)
        self.assertEqual(self._repository.stock_for(self._aquarium_id), [])

        details = self._service.add_fish(self._user, self._aquarium_id, "guppy", 2)
        assert details is not None
        stock_id = details.species[0].stock.id
        for quantity in (2.5, True):
            with self.assertRaises(InvalidQuantity):
                self._service.update_stock_quantity(self._user, self._aquarium_id, stock_id, quantity)
        stored = self._repository.stock_for(self._aquarium_id)[0].quantity
        self.assertEqual(stored, 2)
        self.assertIs(type(stored), int)

    def test_invalid_size_class_is_rejected(self) -> None:
        with self.assertRaises(ValidationError):
            self._service.add_fish(self._user, self._aquarium_id, "guppy", 1, size_class="huge")

    def test_foreign_aquarium_is_not_found(self) -> None:
        stranger = make_user("user-2")
        self.assertIsNone(self._service.get_aquarium(stranger.id, self._aquarium_id))
        self.assertIsNone(self._service.add_fish(stranger, self._aquarium_id, "guppy", 1))
        self.assertIsNone(self._service.update_aquarium(stranger, self._aquarium_id, volume_liters=50))
        self.assertFalse(self._service.delete_aquarium(stranger.id, self._aquarium_id))
        self.assertEqual(self._repository.stock_for(self._aquarium_id), [])

    def test_foreign_update_with_invalid_volume_is_not_found(self) -> None:
        stranger = make_user("user-2")
        self.assertIsNone(self._service.update_aquarium(stranger, self._aquarium_id, volume_liters=0))
        self.assertIsNone(self._service.update_aquarium(stranger, self._aquarium_id, name="  "))
        with self.assertRaises(InvalidVolume):
            self._service.update_aquarium(self._user, self._aquarium_id, volume_liters=0)

    def test_unknown_stock_entry_is_not_found(self) -> None:
        self.assertIsNone(self._service.update_stock_quantity(self._user, self._aquarium_id, "missing", 3))

    def test_limit_is_enforced_before_creation(self) -> None:
        limited = make_user("user-3", aquarium_limit=1)
        self._service.create_aquarium(limited, "First", 60)
        with self.assertRaises(LimitExceeded):
            self._service.create_aquarium(limited, "Second", 60)
        self.assertEqual(len(self._service.list_aquariums(limited.id)), 1)

    def test_create_validates_input(self) -> None:
        with self.assertRaises(InvalidVolume):
            self._service.create_aquarium(self._user, "Empty", 0)
        with self.assertRaises(ValidationError):
            self._service.create_aquarium(self._user, "  ", 50)

    def test_incompatible_species_raise_warning(self) -> None:
        self._service.add_fish(self._user, self._aquarium_id, "guppy", 1)
        details = self._service.add_fish(self._user, self._aquarium_id, "betta", 1)
        assert details is not None
        self.assertEqual(details.aquarium.compatibility_status, CompatibilityStatus.WARN)
        self.assertEqual(len(details.aquarium.warnings), 1)

    def test_intervals_use_fresh_status(self) -> None:
        details = self._service.add_fish(self._user, self._aquarium_id, "oscar", 2)
        assert details is not None
        self.assertEqual(details.aquarium.status, StatusLevel.CRITICAL)
        self.assertEqual(self._task(TaskType.WATER_CHANGE).interval_days, 3)

        details = self._service.update_aquarium(self._user, self._aquarium_id, volume_liters=400)
        assert details is not None
        self.assertEqual(details.aquarium.bio_load_percentage, 50)
        self.assertEqual(details.aquarium.status, StatusLevel.COMFORT)
        self.assertEqual(self._task(TaskType.WATER_CHANGE).interval_days, 14)

    def test_recalculation_is_idempotent(self) -> None:
        self._service.add_fish(self._user, self._aquarium_id, "guppy", 4)
        self._service.add_fish(self._user, self._aquarium_id, "angelfish", 1)
        before = self._service.get_aquarium(self._user.id, self._aquarium_id)
        assert before is not None
        snapshot = [(task.id, task.created_at) for task in before.care_tasks]
        derived = (
            before.aquarium.status,
            before.aquarium.bio_load_percentage,
            before.aquarium.required_volume_liters,
            before.aquarium.compatibility_status,
            list(before.aquarium.warnings),
        )

        self._service.recalculate(before.aquarium, self._user)
        self._service.recalculate(before.aquarium, self._user)

        after = self._service.get_aquarium(self._user.id, self._aquarium_id)
        assert after is not None
        self.assertEqual([(task.id, task.created_at) for task in after.care_tasks], snapshot)
        self.assertEqual(
            (
                after.aquarium.status,
                after.aquarium.bio_load_percentage,
                after.aquarium.required_volume_liters,
                after.aquarium.compatibility_status,
                list(after.aquarium.warnings),
            ),
            derived,
        )

    def test_removing_all_stock_clears_tasks(self) -> None:
        self._service.add_fish(self._user, self._aquarium_id, "guppy", 1)
        details = self._service.add_fish(self._user, self._aquarium_id, "betta", 1)
        assert details is not None
        for entry in details.species:
            details = self._service.remove_fish(self._user, self._aquarium_id, entry.stock.id)
        assert details is not None
        self.assertEqual(details.care_tasks, [])
        self.assertEqual(details.aquarium.compatibility_status, CompatibilityStatus.OK)
        self.assertEqual(details.aquarium.warnings, [])
        self.assertEqual(details.aquarium.bio_load_percentage, 0)
        self.assertEqual(details.aquarium.status, StatusLevel.COMFORT)

    def test_complete_task_with_measurement(self) -> None:
        self._service.add_fish(self._user, self._aquarium_id, "guppy", 2)
        task_id = self._task(TaskType.TEST_PH).id
        self._clock.advance(hours=2)
        completed = self._service.mark_task_complete(self._user, self._aquarium_id, task_id, {"pH": 7.2})
        assert completed is not None
        self.assertEqual(completed.status, TaskStatus.COMPLETED)
        self.assertEqual(completed.last_completed_at, self._clock.now)
        self.assertEqual(completed.next_due_at, self._clock.now + timedelta(days=14))
        self.assertEqual(completed.parameters, [TaskMeasurement(parameter="pH", value=7.2)])
        self.assertEqual(self._task(TaskType.TEST_PH).parameters, [TaskMeasurement(parameter="pH", value=7.2)])

    def test_none_measurement_keeps_stored_value(self) -> None:
        self._service.add_fish(self._user, self._aquarium_id, "guppy", 2)
        task_id = self._task(TaskType.TEST_PH).id
        self._service.mark_task_complete(self._user, self._aquarium_id, task_id, {"pH": 7.2})
        self._clock.advance(days=1)
        completed = self._service.mark_task_complete(self._user, self._aquarium_id, task_id, {"pH": None})
        assert completed is not None
        self.assertEqual(completed.last_completed_at, self._clock.now)
        self.assertEqual(completed.parameters, [TaskMeasurement(parameter="pH", value=7.2)])

    def test_rejected_measurement_leaves_task_unchanged(self) -> None:
        self._service.add_fish(self._user, self._aquarium_id, "guppy", 2)
        before = self._task(TaskType.TEST_PH)
        state = (before.status, before.next_due_at, before.last_completed_at, before.updated_at)
        self._clock.advance(hours=2)
        with self.assertRaises(ValidationError):
            self._service.mark_task_complete(self._user, self._aquarium_id, before.id, {"pH": "n/a"})
        after = self._task(TaskType.TEST_PH)
        self.assertEqual((after.status, after.next_due_at, after.last_completed_at, after.updated_at), state)
        self.assertEqual(after.parameters, [TaskMeasurement(parameter="pH", value=0.0)])

    def test_complete_task_not_found(self) -> None:
        self._service.add_fish(self._user, self._aquarium_id, "guppy", 2)
        task_id = self._task(TaskType.FEEDING).id
        self.assertIsNone(self._service.mark_task_complete(self._user, self._aquarium_id, "missing"))
        self.assertIsNone(self._service.mark_task_complete(make_user("user-2"), self._aquarium_id, task_id))
        self.assertNotEqual(self._task(TaskType.FEEDING).status, TaskStatus.COMPLETED)

    def test_completed_task_rolls_over_on_later_recalculation(self) -> None:
        self._service.add_fish(self._user, self._aquarium_id, "guppy", 2)
        task_id = self._task(TaskType.WATER_CHANGE).id
        completed = self._service.mark_task_complete(self._user, self._aquarium_id, task_id)
        assert completed is not None
        first_due = completed.next_due_at

        self._clock.advance(days=28)
        self._service.update_aquarium(self._user, self._aquarium_id)

        task = self._task(TaskType.WATER_CHANGE)
        self.assertEqual(task.id, task_id)
        self.assertEqual(task.status, TaskStatus.ACTIVE)
        self.assertEqual(task.next_due_at, first_due + timedelta(days=14))

    def test_past_due_task_turns_overdue_on_recalculation(self) -> None:
        self._service.add_fish(self._user, self._aquarium_id, "guppy", 2)
        self.assertEqual(self._task(TaskType.WATER_CHANGE).status, TaskStatus.ACTIVE)
        self._clock.advance(days=2)
        self._service.add_fish(self._user, self._aquarium_id, "molly", 1)
        self.assertEqual(self._task(TaskType.WATER_CHANGE).status, TaskStatus.OVERDUE)

    def test_delete_aquarium_removes_records(self) -> None:
        self._service.add_fish(self._user, self._aquarium_id, "guppy", 2)
        self.assertTrue(self._service.delete_aquarium(self._user.id, self._aquarium_id))
        self.assertIsNone(self._service.get_aquarium(self._user.id, self._aquarium_id))
        self.assertEqual(self._repository.stock_for(self._aquarium_id), [])
        self.assertEqual(self._repository.tasks_for(self._aquarium_id), [])

    def test_build_insights_preview(self) -> None:
        self._service.add_fish(self._user, self._aquarium_id, "discus", 2)
        insights = self._service.build_insights(self._user.id, self._aquarium_id)
        assert insights is not None
        self.assertEqual(insights.bio_load.percentage, 80)
        self.assertEqual(insights.bio_load.status, StatusLevel.ELEVATED)
        self.assertIsNone(self._service.build_insights("user-2", self._aquarium_id))

    def test_export_snapshot(self) -> None:
        self._service.add_fish(self._user, self._aquarium_id, "corydoras", 6)
        snapshot = self._service.export_snapshot(self._user.id)
        aquariums = snapshot["aquariums"]
        self.assertEqual(len(aquariums), 1)
        exported = aquariums[0]
        self.assertEqual(exported["status"], "comfort")
        self.assertEqual(exported["species"][0]["species_id"], "corydoras")
        self.assertEqual(len(exported["care_tasks"]), 10)
        self.assertEqual(exported["last_calculated_at"], START.isoformat())

    def test_concurrent_additions_are_serialized(self) -> None:
        threads = [
            threading.Thread(target=self._service.add_fish, args=(self._user, self._aquarium_id, "guppy", 1))
            for _ in range(8)
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()
        stock = self._repository.stock_for(self._aquarium_id)
        self.assertEqual(len(stock), 1)
        self.assertEqual(stock[0].quantity, 8)
        self.assertEqual(len(self._repository.tasks_for(self._aquarium_id)), 10)

    def test_recalculate_is_reentrant_for_lock_holder(self) -> None:
        self._service.add_fish(self._user, self._aquarium_id, "guppy", 2)
        aquarium = self._repository.get_aquarium(self._aquarium_id)
        assert aquarium is not None
        with self._service._locked(self._aquarium_id):
            tasks = self._service.recalculate(aquarium, self._user)
        self.assertEqual(len(tasks), 10)

    def test_recalculate_alongside_additions(self) -> None:
        aquarium = self._repository.get_aquarium(self._aquarium_id)
        assert aquarium is not None
        threads = [
            threading.Thread(target=self._service.add_fish, args=(self._user, self._aquarium_id, "guppy", 1))
            for _ in range(5)
        ] + [threading.Thread(target=self._service.recalculate, args=(aquarium, self._user)) for _ in range(5)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()
        tasks = self._repository.tasks_for(self._aquarium_id)
        self.assertEqual(len(tasks), 10)
        self.assertEqual(len({task.id for task in tasks}), 10)
        self.assertEqual(self._repository.stock_for(self._aquarium_id)[0].quantity, 5)


if __name__ == "__main__":
    unittest.main()
