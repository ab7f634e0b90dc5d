"""Leitner-style spaced repetition for vocabulary review.

Binary correct/incorrect grading with no per-item ease factor: a correct
answer moves the item up one box, a miss sends it back to box 0.
"""

from datetime import datetime, timedelta

import structlog

from progression_engine.errors import ConfigurationError
from progression_engine.models.vocabulary import (
    MAX_MASTERY,
    SRSCounts,
    SRSUpdate,
    VocabularyMasteryRecord,
)

logger = structlog.get_logger()

# Review interval in days, indexed by mastery (box) 0-5
SRS_INTERVALS_DAYS: tuple[int, ...] = (1, 3, 7, 14, 30, 90)

MASTERY_LABELS = ("Learning", "Review", "Good", "Strong", "Expert", "Mastered")


def validate_intervals(intervals) -> None:
    """Raise ConfigurationError unless intervals are positive and strictly increasing."""
    if len(intervals) != MAX_MASTERY + 1:
        raise ConfigurationError(
            f"expected {MAX_MASTERY + 1} intervals, got {len(intervals)}"
        )
    if intervals[0] <= 0:
        raise ConfigurationError("intervals must be positive")
    for shorter, longer in zip(intervals, intervals[1:]):
        if longer <= shorter:
            raise ConfigurationError(f"intervals must strictly increase: {list(intervals)}")


def clamp_mastery(mastery: int) -> int:
    return max(0, min(MAX_MASTERY, mastery))


def schedule_review(
    mastery: int,
    correct: bool,
    now: datetime,
    intervals=SRS_INTERVALS_DAYS,
) -> SRSUpdate:
    """Compute the next box and due date after one review.

    Args:
        mastery: Box before the review. Out-of-range values are clamped to 0-5.
        correct: Whether the learner answered correctly.
        now: Review time.
        intervals: Day intervals per box.

    Returns:
        SRSUpdate with the new mastery and next review time.
    """
    if mastery != clamp_mastery(mastery):
        logger.debug("mastery_clamped", mastery=mastery)
    mastery = clamp_mastery(mastery)
    new_mastery = min(mastery + 1, MAX_MASTERY) if correct else 0
    return SRSUpdate(
        mastery=new_mastery,
        next_review_at=now + timedelta(days=intervals[new_mastery]),
    )


def new_record(item_id: str, now: datetime) -> VocabularyMasteryRecord:
    """Record for an item that has never been reviewed. Due immediately."""
    return VocabularyMasteryRecord(item_id=item_id, next_review_at=now)


def review(
    record: VocabularyMasteryRecord,
    correct: bool,
    now: datetime,
    intervals=SRS_INTERVALS_DAYS,
) -> VocabularyMasteryRecord:
    """Apply a review to a mastery record and return the updated copy."""
    update = schedule_review(record.mastery, correct, now, intervals)
    return record.model_copy(update={
        "mastery": update.mastery,
        "next_review_at": update.next_review_at,
        "last_reviewed_at": now,
        "times_reviewed": record.times_reviewed + 1,
        "times_correct": record.times_correct + (1 if correct else 0),
    })


def is_due(record: VocabularyMasteryRecord | None, now: datetime) -> bool:
    """Whether a reviewed item is due. Never-reviewed items are new, not due."""
    if record is None or record.times_reviewed == 0:
        return False
    return record.next_review_at <= now


def review_queue(
    item_ids: list[str],
    records: dict[str, VocabularyMasteryRecord],
    now: datetime,
) -> list[str]:
    """Order items for a review session.

    Due items first (earliest due date first), then new items in input order,
    then items that are learned but not yet due.
    """
    due: list[tuple[datetime, int, str]] = []
    new: list[str] = []
    learned: list[tuple[datetime, int, str]] = []
    for position, item_id in enumerate(item_ids):
        record = records.get(item_id)
        if record is None or record.times_reviewed == 0:
            new.append(item_id)
        elif is_due(record, now):
            due.append((record.next_review_at, position, item_id))
        else:
            learned.append((record.next_review_at, position, item_id))
    due.sort()
    learned.sort()
    return [i for _, _, i in due] + new + [i for _, _, i in learned]


def srs_counts(
    item_ids: list[str],
    records: dict[str, VocabularyMasteryRecord],
    now: datetime,
) -> SRSCounts:
    counts = SRSCounts()
    for item_id in item_ids:
        record = records.get(item_id)
        if record is None or record.times_reviewed == 0:
            counts.new += 1
        elif is_due(record, now):
            counts.due += 1
        else:
            counts.learned += 1
    return counts


def mastery_label(mastery: int) -> str:
    if 0 <= mastery <= MAX_MASTERY:
        return MASTERY_LABELS[mastery]
    return "Unknown"
