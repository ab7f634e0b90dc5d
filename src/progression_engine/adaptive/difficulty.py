"""Adaptive exercise difficulty for a practice session.

Tracks a rolling window of recent answers and moves difficulty one step at a
time along easy < medium < hard. The window is evaluated only once it is full.
"""

import random
from collections.abc import Iterable, Sequence
from datetime import datetime, timezone
from typing import TypeVar

import structlog
from pydantic import ValidationError

from progression_engine.models.adaptive import (
    AdaptiveConfig,
    AdaptiveSessionState,
    Difficulty,
    DifficultyChange,
)

logger = structlog.get_logger()

DEFAULT_CONFIG = AdaptiveConfig()

T = TypeVar("T")


def create_state(starting: Difficulty = Difficulty.MEDIUM) -> AdaptiveSessionState:
    return AdaptiveSessionState(current_difficulty=starting)


def rolling_accuracy(answers: Sequence[bool]) -> float:
    """Fraction of correct answers; 0.5 (neutral) when there are none."""
    if not answers:
        return 0.5
    return sum(1 for a in answers if a) / len(answers)


def _direction(state: AdaptiveSessionState, accuracy: float, config: AdaptiveConfig) -> int:
    if config.max_adjustments is not None and state.adjustments_made >= config.max_adjustments:
        return 0
    if accuracy >= config.increase_threshold and state.current_difficulty != Difficulty.HARD:
        return 1
    if accuracy <= config.decrease_threshold and state.current_difficulty != Difficulty.EASY:
        return -1
    return 0


def record_answer(
    state: AdaptiveSessionState,
    correct: bool,
    config: AdaptiveConfig = DEFAULT_CONFIG,
    at: datetime | None = None,
) -> AdaptiveSessionState:
    """Record one answer and return the next session state.

    Args:
        state: Current session state (not modified).
        correct: Whether the answer was correct.
        config: Window size and thresholds.
        at: Timestamp for the change history. Defaults to now (UTC).

    Returns:
        New AdaptiveSessionState.
    """
    answers = (list(state.recent_answers) + [bool(correct)])[-config.window_size:]
    new_state = state.model_copy(update={"recent_answers": answers})

    if len(answers) < config.window_size:
        return new_state

    accuracy = rolling_accuracy(answers)
    direction = _direction(state, accuracy, config)
    if direction == 0:
        return new_state

    old = state.current_difficulty
    new = old.step(direction)
    change = DifficultyChange(
        at=at or datetime.now(timezone.utc),
        from_difficulty=old,
        to_difficulty=new,
        accuracy=accuracy,
    )
    logger.info(
        "difficulty_adjusted",
        from_difficulty=old.value,
        to_difficulty=new.value,
        accuracy=round(accuracy, 2),
    )
    return new_state.model_copy(update={
        "current_difficulty": new,
        "adjustments_made": state.adjustments_made + 1,
        "history": list(state.history) + [change],
    })


def _difficulty_of(exercise) -> Difficulty:
    # Missing or unrecognised difficulty counts as medium
    value = getattr(exercise, "difficulty", None)
    if value is None:
        return Difficulty.MEDIUM
    try:
        return Difficulty(value)
    except ValueError:
        logger.warning("unknown_exercise_difficulty", exercise_id=exercise.id, difficulty=value)
        return Difficulty.MEDIUM


def _fallback_order(target: Difficulty) -> list[Difficulty]:
    order = [target]
    easier = target.step(-1)
    harder = target.step(1)
    if easier != target:
        order.append(easier)
    if harder != target:
        order.append(harder)
    return order


def select_next(
    exercises: Iterable[T],
    state: AdaptiveSessionState,
    used_ids: Iterable[str] = (),
    *,
    enabled: bool = True,
) -> T | None:
    """Pick the next unused exercise for the session.

    Exercises at the current difficulty come first; if none are left, the
    adjacent difficulty one step easier, then one step harder. Pool order is
    preserved so selection is deterministic.

    Args:
        exercises: Pool of objects with ``id`` and ``difficulty`` attributes.
        state: Session state providing the target difficulty.
        used_ids: Ids already shown this session.
        enabled: When False, difficulty is ignored and the first unused
            exercise is returned.

    Returns:
        An exercise, or None if nothing suitable is left.
    """
    used = set(used_ids)
    available = [e for e in exercises if e.id not in used]
    if not available:
        return None
    if not enabled:
        return available[0]

    for difficulty in _fallback_order(state.current_difficulty):
        for exercise in available:
            if _difficulty_of(exercise) == difficulty:
                if difficulty != state.current_difficulty:
                    logger.debug(
                        "difficulty_fallback",
                        target=state.current_difficulty.value,
                        selected=difficulty.value,
                    )
                return exercise
    return None


def shuffle_exercises(exercises: Sequence[T], rng: random.Random) -> list[T]:
    """Return a shuffled copy using the caller's random source."""
    shuffled = list(exercises)
    rng.shuffle(shuffled)
    return shuffled


def serialize_state(state: AdaptiveSessionState) -> str:
    return state.model_dump_json()


def deserialize_state(payload: str) -> AdaptiveSessionState | None:
    """Parse a serialized state; malformed payloads yield None."""
    try:
        return AdaptiveSessionState.model_validate_json(payload)
    except ValidationError:
        logger.warning("adaptive_state_parse_error")
        return None


class AdaptiveDifficultyEngine:
    """Session-scoped adaptive difficulty tracker.

    Single-writer: one instance belongs to one user's active session.

    Args:
        config: Window size and thresholds.
        starting_difficulty: Difficulty at session start.
        state: Resume from an existing state instead.
    """

    def __init__(
        self,
        config: AdaptiveConfig | None = None,
        starting_difficulty: Difficulty = Difficulty.MEDIUM,
        state: AdaptiveSessionState | None = None,
    ) -> None:
        self.config = config or AdaptiveConfig()
        self._state = state or create_state(starting_difficulty)
        self._used_ids: set[str] = set()

    @property
    def current_difficulty(self) -> Difficulty:
        return self._state.current_difficulty

    @property
    def accuracy(self) -> float:
        return rolling_accuracy(self._state.recent_answers)

    @property
    def used_ids(self) -> frozenset[str]:
        return frozenset(self._used_ids)

    def record_event(self, correct: bool, at: datetime | None = None) -> AdaptiveSessionState:
        """Record an answer and return the resulting state."""
        self._state = record_answer(self._state, correct, self.config, at)
        return self._state

    def get_state(self) -> AdaptiveSessionState:
        return self._state.model_copy()

    def mark_used(self, exercise_id: str) -> None:
        self._used_ids.add(exercise_id)

    def next_exercise(self, exercises: Iterable[T]) -> T | None:
        """Select the next exercise and mark it as used."""
        exercise = select_next(
            exercises, self._state, self._used_ids, enabled=self.config.enabled
        )
        if exercise is not None:
            self.mark_used(exercise.id)
        return exercise
