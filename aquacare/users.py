from __future__ import annotations

import logging
import uuid
from dataclasses import replace
from typing import Optional

from dateutil.relativedelta import relativedelta

from .config import Settings, get_settings
from .errors import DuplicateEmail, ValidationError
from .models import NotificationChannel, NotificationSettings, PreferredTime, Subscription, User
from .repository import Repository
from .service import AquariumService, Clock, utc_now

logger = logging.getLogger(__name__)


class UserService:
    """Account preferences and subscription plans."""

    def __init__(
        self,
        repository: Repository,
        aquariums: Optional[AquariumService] = None,
        settings: Optional[Settings] = None,
        clock: Clock = utc_now,
    ) -> None:
        self._repository = repository
        # Share the aquarium service so task rewrites take its per-aquarium locks.
        self._aquariums = aquariums or AquariumService(repository, clock=clock)
        self._settings = settings or get_settings()
        self._clock = clock

    def register(self, email: str, display_name: Optional[str] = None) -> User:
        normalized = email.strip().lower()
        if not normalized or "@" not in normalized:
            raise ValidationError(f"Invalid email address {email!r}.")
        if self._repository.find_user_by_email(normalized) is not None:
            raise DuplicateEmail(normalized)
        now = self._clock()
        user = User(
            id=str(uuid.uuid4()),
            email=normalized,
            display_name=display_name,
            notification_settings=NotificationSettings(time_zone=self._settings.default_time_zone),
            subscription=Subscription(
                plan="free",
                start_at=now,
                aquarium_limit=self._settings.free_aquarium_limit,
            ),
            created_at=now,
            updated_at=now,
        )
        self._repository.save_user(user)
        logger.info("Registered user %s", user.id)
        return user

    def get(self, user_id: str) -> Optional[User]:
        return self._repository.get_user(user_id)

    def update_notification_settings(
        self,
        user_id: str,
        channel: Optional[NotificationChannel] = None,
        preferred_time: Optional[PreferredTime] = None,
        time_zone: Optional[str] = None,
        mute_feeding_reminders: Optional[bool] = None,
    ) -> Optional[User]:
        """Merge the given preferences and push the channel onto existing tasks."""
        user = self._repository.get_user(user_id)
        if user is None:
            return None
        current = user.notification_settings
        user.notification_settings = replace(
            current,
            channel=NotificationChannel(channel) if channel is not None else current.channel,
            preferred_time=PreferredTime(preferred_time) if preferred_time is not None else current.preferred_time,
            time_zone=time_zone if time_zone is not None else current.time_zone,
            mute_feeding_reminders=(
                mute_feeding_reminders if mute_feeding_reminders is not None else current.mute_feeding_reminders
            ),
        )
        user.updated_at = self._clock()
        self._repository.save_user(user)
        self._aquariums.apply_notification_settings(user)
        return user

    def upgrade_to_premium(self, user_id: str, months: int, aquarium_limit: Optional[int] = None) -> Optional[User]:
        if months <= 0:
            raise ValidationError(f"Subscription length must be positive, got {months} months.")
        user = self._repository.get_user(user_id)
        if user is None:
            return None
        now = self._clock()
        user.subscription = Subscription(
            plan="premium",
            start_at=now,
            end_at=now + relativedelta(months=months),
            aquarium_limit=aquarium_limit if aquarium_limit is not None else self._settings.premium_aquarium_limit,
        )
        user.updated_at = now
        self._repository.save_user(user)
        logger.info("User %s upgraded to premium for %d months", user_id, months)
        return user
