"""User progress persistence with optimistic read-modify-write."""

from collections.abc import Callable
from datetime import datetime, timezone

import structlog
from pydantic import ValidationError

from progression_engine.config import Settings
from progression_engine.errors import ConcurrentUpdateError
from progression_engine.models.progress import UserProgress
from progression_engine.models.streak import StreakState
from progression_engine.storage.kv import KeyValueStore, build_store

logger = structlog.get_logger()

KEY_PREFIX = "progress:"


class ProgressRepository:
    """Loads and atomically updates UserProgress records in a key-value store.

    Args:
        store: Backing store.
        max_attempts: Read-modify-write attempts before giving up.
        daily_goal_xp: Daily goal for records created on first access.
        default_timezone: Streak timezone for records created on first access.
    """

    def __init__(
        self,
        store: KeyValueStore,
        max_attempts: int = 3,
        daily_goal_xp: int = 20,
        default_timezone: str = "UTC",
    ) -> None:
        self.store = store
        self.max_attempts = max_attempts
        self.daily_goal_xp = daily_goal_xp
        self.default_timezone = default_timezone

    @staticmethod
    def key(user_id: str) -> str:
        return f"{KEY_PREFIX}{user_id}"

    def _parse(self, user_id: str, raw: str | None) -> UserProgress:
        if raw is None:
            return UserProgress(
                user_id=user_id,
                daily_goal_xp=self.daily_goal_xp,
                streak=StreakState(timezone=self.default_timezone),
            )
        try:
            return UserProgress.model_validate_json(raw)
        except ValidationError:
            logger.error("progress_record_invalid", user_id=user_id)
            raise

    def load(self, user_id: str) -> UserProgress:
        """Return the stored record, or a fresh one for a new user."""
        return self._parse(user_id, self.store.get(self.key(user_id)))

    def update(
        self,
        user_id: str,
        mutate: Callable[[UserProgress], UserProgress | None],
    ) -> UserProgress:
        """Apply ``mutate`` to the user's record as one atomic update.

        ``mutate`` may be called more than once when another writer wins the
        race, so it must derive everything from the record it is given.

        Args:
            user_id: Record key.
            mutate: Receives a private copy; returns the new record or None to
                keep the (mutated) copy.

        Returns:
            The saved record with its bumped version.

        Raises:
            ConcurrentUpdateError: Every attempt lost to a concurrent writer.
        """
        key = self.key(user_id)
        for attempt in range(1, self.max_attempts + 1):
            raw = self.store.get(key)
            current = self._parse(user_id, raw)
            working = current.model_copy(deep=True)
            updated = mutate(working) or working
            updated.version = current.version + 1
            updated.updated_at = datetime.now(timezone.utc)

            if self.store.compare_and_set(key, raw, updated.model_dump_json()):
                return updated
            logger.warning("progress_update_conflict", user_id=user_id, attempt=attempt)

        raise ConcurrentUpdateError(user_id, self.max_attempts)


def build_repository(settings: Settings) -> ProgressRepository:
    """Repository over the store selected in settings."""
    return ProgressRepository(
        build_store(settings),
        max_attempts=settings.progress_update_attempts,
        daily_goal_xp=settings.daily_goal_xp,
        default_timezone=settings.default_timezone,
    )
