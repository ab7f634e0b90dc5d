"""Tests for quest progress and exactly-once rewards."""

import random
from datetime import datetime, timezone

import pytest

from progression_engine.models.quest import Quest, QuestProgress, QuestStatus
from progression_engine.quests.tracker import (
    QuestProgressTracker,
    apply_progress,
    assign_quests,
    start_quest,
)

NOW = datetime(2026, 7, 4, 18, 0, tzinfo=timezone.utc)
WORDS = Quest(quest_id="learn-10-words", title="Learn 10 words", target=10, xp_reward=30, currency_reward=5)


class TestApplyProgress:
    def test_partial_progress(self):
        result = apply_progress(WORDS, start_quest(WORDS), 4, NOW)
        assert result.progress == 4
        assert result.status == QuestStatus.ACTIVE
        assert result.is_completed is False
        assert result.xp_awarded == 0
        assert result.completed_at is None

    def test_missing_progress_starts_quest(self):
        result = apply_progress(WORDS, None, 2, NOW)
        assert result.record.quest_id == "learn-10-words"
        assert result.progress == 2

    def test_completion_grants_reward(self):
        progress = QuestProgress(quest_id=WORDS.quest_id, progress=8, target=10)
        result = apply_progress(WORDS, progress, 2, NOW)
        assert result.is_completed is True
        assert result.newly_completed is True
        assert result.status == QuestStatus.COMPLETED
        assert result.xp_awarded == 30
        assert result.currency_awarded == 5
        assert result.completed_at == NOW
        assert result.record.completed_at == NOW

    def test_overshoot_clamps_at_target(self):
        result = apply_progress(WORDS, start_quest(WORDS), 25, NOW)
        assert result.progress == 10
        assert result.record.progress == 10

    def test_second_completion_does_not_regrant(self):
        first = apply_progress(WORDS, start_quest(WORDS), 10, NOW)
        again = apply_progress(WORDS, first.record, 10, NOW)
        assert again.is_completed is True
        assert again.newly_completed is False
        assert again.xp_awarded == 0
        assert again.currency_awarded == 0
        assert again.completed_at == NOW
        assert again.record == first.record

    def test_negative_delta_treated_as_zero(self):
        progress = QuestProgress(quest_id=WORDS.quest_id, progress=5, target=10)
        result = apply_progress(WORDS, progress, -3, NOW)
        assert result.progress == 5

    def test_input_record_not_mutated(self):
        progress = QuestProgress(quest_id=WORDS.quest_id, progress=5, target=10)
        apply_progress(WORDS, progress, 5, NOW)
        assert progress.status == QuestStatus.ACTIVE
        assert progress.progress == 5


class TestQuestProgressTracker:
    def test_rewards_counted_once(self):
        quests = [
            WORDS,
            Quest(quest_id="three-lessons", target=3, xp_reward=15),
        ]
        tracker = QuestProgressTracker(quests)
        tracker.record_event("three-lessons", 2, NOW)
        tracker.record_event("three-lessons", 1, NOW)
        tracker.record_event("three-lessons", 1, NOW)
        tracker.record_event("learn-10-words", 4, NOW)

        assert tracker.xp_granted == 15
        assert tracker.currency_granted == 0
        assert tracker.completed() == ["three-lessons"]
        state = tracker.get_state()
        assert state["learn-10-words"].progress == 4

    def test_unknown_quest(self):
        tracker = QuestProgressTracker([WORDS])
        with pytest.raises(KeyError):
            tracker.record_event("nope")

    def test_resumes_existing_progress(self):
        done = apply_progress(WORDS, None, 10, NOW).record
        tracker = QuestProgressTracker([WORDS], {WORDS.quest_id: done})
        result = tracker.record_event(WORDS.quest_id, 3, NOW)
        assert result.xp_awarded == 0
        assert tracker.xp_granted == 0


class TestAssignQuests:
    POOL = [Quest(quest_id=f"q{i}", target=1) for i in range(8)]

    def test_seeded_assignment_is_reproducible(self):
        first = assign_quests(self.POOL, 3, random.Random(2026))
        second = assign_quests(self.POOL, 3, random.Random(2026))
        assert [q.quest_id for q in first] == [q.quest_id for q in second]
        assert len({q.quest_id for q in first}) == 3

    def test_count_larger_than_pool(self):
        assert len(assign_quests(self.POOL, 20, random.Random(1))) == 8

    def test_negative_count(self):
        assert assign_quests(self.POOL, -1, random.Random(1)) == []
