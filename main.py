from __future__ import annotations

from aquacare.config import get_settings
from aquacare.database import Database
from aquacare.logging_config import configure_logging
from aquacare.models import AquariumDetails
from aquacare.service import AquariumService


def print_report(details: AquariumDetails) -> None:
    aquarium = details.aquarium
    print(f"{aquarium.name}: {aquarium.volume_liters:g} L")
    print(
        f"  bio-load {aquarium.bio_load_percentage}% ({aquarium.status.value}), "
        f"needs {aquarium.required_volume_liters:g} L"
    )
    for entry in details.species:
        print(f"  {entry.stock.quantity} x {entry.species.common_name}")
    for warning in aquarium.warnings:
        print(f"  ! {warning.message}")
    for task in sorted(details.care_tasks, key=lambda item: item.next_due_at):
        print(f"  [{task.status.value:>9}] {task.next_due_at:%Y-%m-%d %H:%M} {task.title}")


def main() -> None:
    settings = get_settings()
    logger = configure_logging(settings.log_level)
    database = Database(settings.database_path)
    try:
        database.ensure_defaults(settings.free_aquarium_limit)
        service = AquariumService(database)
        logger.info("Species catalog holds %d entries", len(service.catalog))
        user = database.find_user_by_email("demo@aquacare.local")
        if user is None:
            logger.warning("Demo user is missing, nothing to report")
            return
        for details in service.list_aquariums(user.id):
            service.recalculate(details.aquarium, user)
        for details in service.list_aquariums(user.id):
            print_report(details)
    finally:
        database.close()
        logger.info("Aquarium care report finished")


if __name__ == "__main__":
    main()
