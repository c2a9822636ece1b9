# tests/test_scheduler.py
import random

from exam_trainer.models import SpacedRepetitionRecord
from exam_trainer.scheduler import (
    calculate_priority, generate_queue, get_due_questions, get_smart_stats,
    interval_for_level, update_level,
)

HOUR_MS = 60 * 60 * 1000


def _seen(level, position=0, seen_count=1, last_seen=0):
    return SpacedRepetitionRecord(level=level, last_seen=last_seen, seen_count=seen_count, last_seen_position=position)


def test_interval_for_level():
    assert interval_for_level(0) == 2
    assert interval_for_level(3) == 15
    assert interval_for_level(5) == 50


def test_interval_for_unknown_level_is_longest():
    assert interval_for_level(9) == 50
    assert interval_for_level(-1) == 50


def test_correct_sure_adds_two():
    result = update_level(SpacedRepetitionRecord(), correct=True, not_sure=False, position=7, now_ms=123)
    assert result.level == 2
    assert result.seen_count == 1
    assert result.last_seen == 123
    assert result.last_seen_position == 7


def test_correct_not_sure_adds_one():
    result = update_level(_seen(1), correct=True, not_sure=True, position=0, now_ms=0)
    assert result.level == 2


def test_wrong_subtracts_two():
    result = update_level(_seen(4, seen_count=3), correct=False, not_sure=False, position=0, now_ms=0)
    assert result.level == 2
    assert result.seen_count == 4


def test_level_is_clamped():
    """Levels never leave [0, 5] whatever the answer."""
    for level in range(6):
        for correct, not_sure in ((True, False), (True, True), (False, False), (False, True)):
            result = update_level(_seen(level), correct, not_sure, position=0, now_ms=0)
            assert 0 <= result.level <= 5
    assert update_level(_seen(5), True, False, 0, 0).level == 5
    assert update_level(_seen(0), False, False, 0, 0).level == 0


def test_update_level_does_not_mutate_input():
    record = _seen(2)
    update_level(record, True, False, position=3, now_ms=0)
    assert record.level == 2
    assert record.seen_count == 1


def test_new_question_priority_range():
    rng = random.Random(1)
    for _ in range(50):
        score = calculate_priority(SpacedRepetitionRecord(), current_position=0, rng=rng)
        assert -1000 <= score < -900


def test_seen_question_priority():
    # 20 answers since seen, interval 8 at level 2: overdue 12, minus level penalty 20.
    assert calculate_priority(_seen(2, position=10), current_position=30) == -8


def test_generate_queue_empty_universe():
    assert generate_queue([], {}) == []


def test_generate_queue_orders_by_tier():
    records = {
        3: _seen(1, position=0),
        4: _seen(2, position=0),
        5: _seen(3, position=0),
        6: _seen(5, position=0),
    }
    queue = generate_queue([1, 2, 3, 4, 5, 6], records, session_size=6, current_position=4, rng=random.Random(3))
    assert set(queue[:3]) == {1, 2, 3}
    assert set(queue[3:5]) == {4, 5}
    assert queue[5] == 6


def test_generate_queue_favors_new_over_mastered():
    records = {qid: _seen(5, position=0) for qid in range(4, 9)}
    queue = generate_queue(range(1, 9), records, session_size=3, current_position=5, rng=random.Random(0))
    assert sorted(queue) == [1, 2, 3]


def test_generate_queue_respects_session_size():
    queue = generate_queue(range(1, 11), {}, session_size=4, rng=random.Random(0))
    assert len(queue) == 4
    assert len(set(queue)) == 4


def test_generate_queue_is_deterministic_with_seeded_rng():
    records = {2: _seen(3, position=1), 5: _seen(1, position=2)}
    first = generate_queue(range(1, 8), records, session_size=5, current_position=3, rng=random.Random(42))
    second = generate_queue(range(1, 8), records, session_size=5, current_position=3, rng=random.Random(42))
    assert first == second


def test_smart_stats_partition_bank():
    records = {
        1: _seen(5),
        2: _seen(4),
        3: _seen(2),
        4: _seen(0, seen_count=3),
        99: _seen(5),  # not in the bank
    }
    stats = get_smart_stats([1, 2, 3, 4, 5, 6], records)
    assert stats["mastered"] == 2
    assert stats["learning"] == 1
    assert stats["struggling"] == 1
    assert stats["not_started"] == 2
    assert stats["mastered"] + stats["learning"] + stats["struggling"] + stats["not_started"] == stats["total"] == 6
    assert stats["mastered_pct"] == 33


def test_smart_stats_empty_bank():
    stats = get_smart_stats([], {})
    assert stats["total"] == 0
    assert stats["mastered_pct"] == 0


def test_due_questions():
    now = 100 * HOUR_MS
    records = {
        1: _seen(0, last_seen=now - 3 * HOUR_MS),   # interval 2h, due
        2: _seen(5, last_seen=now - 1 * HOUR_MS),   # interval 50h, not due
    }
    assert get_due_questions([1, 2, 3], records, now_ms=now) == [1, 3]
