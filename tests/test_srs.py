"""Tests for the Leitner spaced-repetition scheduler."""

from datetime import datetime, timedelta, timezone

import pytest

from progression_engine.errors import ConfigurationError
from progression_engine.review.srs import (
    SRS_INTERVALS_DAYS,
    is_due,
    mastery_label,
    new_record,
    review,
    review_queue,
    schedule_review,
    srs_counts,
    validate_intervals,
)

NOW = datetime(2026, 6, 1, 9, 0, tzinfo=timezone.utc)


class TestScheduleReview:
    @pytest.mark.parametrize("mastery", range(6))
    def test_correct_moves_up_one_box(self, mastery):
        update = schedule_review(mastery, True, NOW)
        assert update.mastery == min(mastery + 1, 5)

    @pytest.mark.parametrize("mastery", range(6))
    def test_incorrect_resets_to_zero(self, mastery):
        update = schedule_review(mastery, False, NOW)
        assert update.mastery == 0
        assert update.next_review_at == NOW + timedelta(days=1)

    def test_interval_matches_table(self):
        assert schedule_review(0, True, NOW).next_review_at == NOW + timedelta(days=3)
        assert schedule_review(3, True, NOW).next_review_at == NOW + timedelta(days=30)
        assert schedule_review(5, True, NOW).next_review_at == NOW + timedelta(days=90)

    def test_interval_strictly_increases_with_mastery(self):
        gaps = [
            schedule_review(m - 1, True, NOW).next_review_at - NOW for m in range(1, 6)
        ]
        gaps.insert(0, schedule_review(0, False, NOW).next_review_at - NOW)
        assert gaps == sorted(set(gaps))
        assert [g.days for g in gaps] == list(SRS_INTERVALS_DAYS)

    def test_out_of_range_mastery_clamped(self):
        assert schedule_review(12, True, NOW).mastery == 5
        assert schedule_review(-3, True, NOW).mastery == 1


class TestValidateIntervals:
    def test_default_table_is_valid(self):
        validate_intervals(SRS_INTERVALS_DAYS)

    def test_non_increasing_rejected(self):
        with pytest.raises(ConfigurationError):
            validate_intervals((1, 3, 3, 14, 30, 90))

    def test_wrong_length_rejected(self):
        with pytest.raises(ConfigurationError):
            validate_intervals((1, 3, 7))

    def test_non_positive_rejected(self):
        with pytest.raises(ConfigurationError):
            validate_intervals((0, 3, 7, 14, 30, 90))


class TestReviewRecord:
    def test_review_updates_counters(self):
        record = new_record("zdravo", NOW)
        record = review(record, True, NOW)
        record = review(record, False, NOW + timedelta(days=3))
        assert record.mastery == 0
        assert record.times_reviewed == 2
        assert record.times_correct == 1
        assert record.accuracy == pytest.approx(0.5)
        assert record.last_reviewed_at == NOW + timedelta(days=3)

    def test_review_does_not_mutate_input(self):
        record = new_record("kniga", NOW)
        review(record, True, NOW)
        assert record.times_reviewed == 0
        assert record.mastery == 0

    def test_is_due(self):
        record = review(new_record("voda", NOW), True, NOW)
        assert is_due(record, NOW + timedelta(days=2)) is False
        assert is_due(record, NOW + timedelta(days=3)) is True

    def test_new_items_are_not_due(self):
        assert is_due(None, NOW) is False
        assert is_due(new_record("leb", NOW), NOW) is False


class TestReviewQueue:
    def test_due_then_new_then_learned(self):
        records = {
            "learned": review(new_record("learned", NOW), True, NOW),
            "due_late": review(new_record("due_late", NOW - timedelta(days=2)), False, NOW - timedelta(days=2)),
            "due_early": review(new_record("due_early", NOW - timedelta(days=5)), False, NOW - timedelta(days=5)),
        }
        queue = review_queue(["learned", "new_a", "due_late", "new_b", "due_early"], records, NOW)
        assert queue == ["due_early", "due_late", "new_a", "new_b", "learned"]

    def test_counts(self):
        records = {
            "a": review(new_record("a", NOW), True, NOW),
            "b": review(new_record("b", NOW - timedelta(days=4)), True, NOW - timedelta(days=4)),
        }
        counts = srs_counts(["a", "b", "c"], records, NOW)
        assert counts.learned == 1
        assert counts.due == 1
        assert counts.new == 1


def test_mastery_labels():
    assert mastery_label(0) == "Learning"
    assert mastery_label(5) == "Mastered"
    assert mastery_label(9) == "Unknown"
