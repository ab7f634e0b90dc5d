"""Practice-session composition over the engine components.

The components never call each other; this module is the calling layer. It
keeps the adaptive state in memory for the session and applies every change
to the persisted UserProgress through ProgressRepository.update.
"""

import random
from collections.abc import Sequence
from datetime import datetime
from typing import TypeVar

import structlog
from pydantic import BaseModel, Field

from progression_engine.adaptive.difficulty import AdaptiveDifficultyEngine, shuffle_exercises
from progression_engine.config import Settings, get_settings
from progression_engine.models.adaptive import Difficulty
from progression_engine.models.hearts import HeartsResult
from progression_engine.models.level import LevelInfo
from progression_engine.models.progress import UserProgress
from progression_engine.models.quest import Quest, QuestApplyResult
from progression_engine.models.streak import StreakPurchase, StreakResult
from progression_engine.progression import hearts as hearts_calc
from progression_engine.progression import streak as streak_calc
from progression_engine.progression.streak import apply_practice, local_date, resolve_timezone
from progression_engine.progression.xp import (
    XP_AWARDS,
    award_xp,
    daily_goal_bonus,
    get_level_info,
    streak_milestone_bonus,
)
from progression_engine.quests.tracker import apply_progress
from progression_engine.storage.progress import ProgressRepository

logger = structlog.get_logger()

T = TypeVar("T")


class SessionSummary(BaseModel):
    """What the UI shows when a practice session ends."""

    answered: int
    correct: int
    accuracy: float
    final_difficulty: Difficulty
    xp_awarded: int
    awards: list[str] = Field(default_factory=list)
    currency_awarded: int = 0
    level: LevelInfo
    leveled_up: bool
    streak: StreakResult
    quests: list[QuestApplyResult] = Field(default_factory=list)


class PracticeSession:
    """One user's practice session.

    Args:
        repository: Persistence for the user's progress record.
        user_id: Session owner.
        quests: Quest definitions the session can advance.
        settings: Engine settings. Defaults to get_settings().
        rng: Random source for shuffling the exercise pool.
    """

    def __init__(
        self,
        repository: ProgressRepository,
        user_id: str,
        quests: Sequence[Quest] = (),
        settings: Settings | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self.repository = repository
        self.user_id = user_id
        self.settings = settings or get_settings()
        self.quests = {q.quest_id: q for q in quests}
        self.rng = rng or random.Random()
        self.adaptive = AdaptiveDifficultyEngine(self.settings.adaptive_config())
        self.answered = 0
        self.correct = 0

    def hearts(self, now: datetime) -> HeartsResult:
        progress = self.repository.load(self.user_id)
        return hearts_calc.regenerate_hearts(
            progress.hearts.current_hearts,
            self.settings.max_hearts,
            progress.hearts.last_practice_date,
            now,
            self.settings.heart_regen_minutes,
        )

    def next_exercise(self, pool: Sequence[T], shuffle: bool = False) -> T | None:
        """Select the next exercise at the session's current difficulty."""
        if shuffle:
            pool = shuffle_exercises(pool, self.rng)
        return self.adaptive.next_exercise(pool)

    def answer(self, correct: bool, now: datetime) -> HeartsResult:
        """Record an answer; a wrong answer costs one heart.

        Returns:
            Hearts available after the answer.
        """
        self.answered += 1
        self.adaptive.record_event(correct, at=now)
        if correct:
            self.correct += 1
            return self.hearts(now)

        max_hearts = self.settings.max_hearts
        regen = self.settings.heart_regen_minutes

        def _lose(progress: UserProgress) -> None:
            progress.hearts = hearts_calc.lose_heart(progress.hearts, now, max_hearts, regen)

        saved = self.repository.update(self.user_id, _lose)
        return hearts_calc.regenerate_hearts(
            saved.hearts.current_hearts, max_hearts, saved.hearts.last_practice_date, now, regen
        )

    def finish(
        self,
        now: datetime,
        quest_deltas: dict[str, int] | None = None,
    ) -> SessionSummary:
        """Close the session: streak, XP, bonuses and quests in one update.

        Args:
            now: Session end time.
            quest_deltas: Progress to add per quest id.

        Raises:
            KeyError: A quest id in quest_deltas is unknown to the session.
            ConcurrentUpdateError: The record kept changing underneath us.
        """
        quest_deltas = quest_deltas or {}
        for quest_id in quest_deltas:
            if quest_id not in self.quests:
                raise KeyError(quest_id)

        session_xp = XP_AWARDS["PRACTICE_SESSION"]
        session_reasons = ["PRACTICE_SESSION"]
        if self.answered > 0 and self.correct == self.answered:
            session_xp += XP_AWARDS["QUIZ_PERFECT"]
            session_reasons.append("QUIZ_PERFECT")

        outcome: dict = {}

        def _finish(progress: UserProgress) -> None:
            levels = self.settings.levels
            tz = resolve_timezone(progress.streak.timezone)
            last = progress.streak.last_practice_date
            if last is None or local_date(last, tz) != local_date(now, tz):
                progress.today_xp = 0
            previous_streak = progress.streak.current_streak_days
            progress.streak, streak_result = apply_practice(
                progress.streak,
                now,
                perfect_hours=self.settings.streak_perfect_hours,
                at_risk_hours=self.settings.streak_at_risk_hours,
                auto_freeze=self.settings.streak_auto_freeze,
            )

            start_level = get_level_info(progress.total_xp, levels)
            awards = list(session_reasons)
            xp_total = session_xp
            currency = 0

            if streak_result.streak_days != previous_streak:
                milestone = streak_milestone_bonus(streak_result.streak_days)
                if milestone:
                    xp_total += milestone[0]
                    awards.append(milestone[1])

            quest_results = []
            for quest_id, delta in quest_deltas.items():
                result = apply_progress(
                    self.quests[quest_id], progress.quests.get(quest_id), delta, now
                )
                progress.quests[quest_id] = result.record
                quest_results.append(result)
                if result.newly_completed:
                    xp_total += result.xp_awarded
                    currency += result.currency_awarded
                    awards.append(f"QUEST_COMPLETE:{quest_id}")

            previous_today = progress.today_xp
            goal = daily_goal_bonus(
                previous_today, previous_today + xp_total, progress.daily_goal_xp
            )
            if goal:
                xp_total += goal[0]
                awards.append(goal[1])

            award = award_xp(progress.total_xp, xp_total, "+".join(awards), levels)
            progress.total_xp = award.new_total
            progress.today_xp = previous_today + award.xp_awarded
            progress.currency += currency
            progress.total_lessons += 1

            level = get_level_info(progress.total_xp, levels)
            outcome["summary"] = SessionSummary(
                answered=self.answered,
                correct=self.correct,
                accuracy=self.correct / self.answered if self.answered else 0.0,
                final_difficulty=self.adaptive.current_difficulty,
                xp_awarded=award.xp_awarded,
                awards=awards,
                currency_awarded=currency,
                level=level,
                leveled_up=level.level > start_level.level,
                streak=streak_result,
                quests=quest_results,
            )

        self.repository.update(self.user_id, _finish)
        summary = outcome["summary"]
        logger.info(
            "practice_session_finished",
            user_id=self.user_id,
            xp_awarded=summary.xp_awarded,
            streak_days=summary.streak.streak_days,
            difficulty=summary.final_difficulty.value,
        )
        return summary

    def buy_streak_freeze(self, now: datetime) -> StreakPurchase:
        """Spend currency to give an at-risk streak one more day.

        Raises:
            StreakActionError: Not allowed now or not affordable. Nothing is saved.
        """
        return self._purchase(streak_calc.freeze_streak, now)

    def repair_streak(self, now: datetime) -> StreakPurchase:
        """Spend currency to restore a lost streak.

        Raises:
            StreakActionError: Not allowed now or not affordable. Nothing is saved.
        """
        return self._purchase(streak_calc.repair_streak, now)

    def _purchase(self, action, now: datetime) -> StreakPurchase:
        outcome: dict = {}

        def _apply(progress: UserProgress) -> None:
            purchase = action(progress.streak, progress.currency, now)
            progress.streak = purchase.state
            progress.currency = purchase.remaining_currency
            outcome["purchase"] = purchase

        self.repository.update(self.user_id, _apply)
        return outcome["purchase"]
