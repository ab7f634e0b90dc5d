"""Quest progress with exactly-once reward issuance."""

import random
from collections.abc import Sequence
from datetime import datetime, timezone

import structlog

from progression_engine.models.quest import (
    Quest,
    QuestApplyResult,
    QuestProgress,
    QuestStatus,
)

logger = structlog.get_logger()


def start_quest(quest: Quest) -> QuestProgress:
    return QuestProgress(quest_id=quest.quest_id, target=quest.target)


def apply_progress(
    quest: Quest,
    user_progress: QuestProgress | None,
    delta: int,
    now: datetime | None = None,
) -> QuestApplyResult:
    """Add progress to a quest and grant its reward on completion.

    Rewards are granted only when the previous status was not completed, so
    replaying the same event (retries, duplicate delivery) never pays twice.

    Args:
        quest: Quest definition.
        user_progress: Current progress, or None if the quest was not started.
        delta: Progress increment. Negative values are treated as 0.
        now: Completion timestamp. Defaults to now (UTC).

    Returns:
        QuestApplyResult with the updated record and any rewards granted.
    """
    record = user_progress or start_quest(quest)

    if record.status == QuestStatus.COMPLETED:
        return QuestApplyResult(
            progress=record.progress,
            status=record.status,
            is_completed=True,
            completed_at=record.completed_at,
            record=record.model_copy(),
        )

    if delta < 0:
        logger.debug("negative_quest_delta", quest_id=quest.quest_id, delta=delta)
    new_progress = min(quest.target, record.progress + max(delta, 0))
    if new_progress < quest.target:
        updated = record.model_copy(update={"progress": new_progress, "target": quest.target})
        return QuestApplyResult(
            progress=new_progress,
            status=QuestStatus.ACTIVE,
            is_completed=False,
            record=updated,
        )

    completed_at = now or datetime.now(timezone.utc)
    updated = record.model_copy(update={
        "progress": new_progress,
        "target": quest.target,
        "status": QuestStatus.COMPLETED,
        "completed_at": completed_at,
    })
    logger.info(
        "quest_completed",
        quest_id=quest.quest_id,
        xp_reward=quest.xp_reward,
        currency_reward=quest.currency_reward,
    )
    return QuestApplyResult(
        progress=new_progress,
        status=QuestStatus.COMPLETED,
        is_completed=True,
        newly_completed=True,
        xp_awarded=quest.xp_reward,
        currency_awarded=quest.currency_reward,
        completed_at=completed_at,
        record=updated,
    )


def assign_quests(pool: Sequence[Quest], count: int, rng: random.Random) -> list[Quest]:
    """Pick up to ``count`` distinct quests using the caller's random source."""
    count = max(0, min(count, len(pool)))
    return rng.sample(list(pool), count)


class QuestProgressTracker:
    """Tracks progress for a set of quests and the rewards granted so far.

    Args:
        quests: Active quest definitions.
        progress: Existing per-quest progress keyed by quest id.
    """

    def __init__(
        self,
        quests: Sequence[Quest],
        progress: dict[str, QuestProgress] | None = None,
    ) -> None:
        self._quests = {q.quest_id: q for q in quests}
        self._progress = dict(progress or {})
        self.xp_granted = 0
        self.currency_granted = 0

    def record_event(
        self, quest_id: str, delta: int = 1, now: datetime | None = None
    ) -> QuestApplyResult:
        """Apply progress to one quest.

        Raises:
            KeyError: If the quest id is not tracked.
        """
        quest = self._quests[quest_id]
        result = apply_progress(quest, self._progress.get(quest_id), delta, now)
        self._progress[quest_id] = result.record
        self.xp_granted += result.xp_awarded
        self.currency_granted += result.currency_awarded
        return result

    def get_state(self) -> dict[str, QuestProgress]:
        return {k: v.model_copy() for k, v in self._progress.items()}

    def completed(self) -> list[str]:
        return [
            quest_id
            for quest_id, record in self._progress.items()
            if record.status == QuestStatus.COMPLETED
        ]
