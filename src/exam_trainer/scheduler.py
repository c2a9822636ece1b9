"""Adaptive spaced-repetition scheduling.

A heuristic priority scorer rather than SM-2: intervals are measured in
answered questions, and a session is the most urgent slice of the bank,
lightly shuffled inside priority tiers.
"""
import random
import time

from exam_trainer.config import SPACED_REP_CONFIG, SpacedRepConfig
from exam_trainer.models import SpacedRepetitionRecord


def interval_for_level(level: int, config: SpacedRepConfig = SPACED_REP_CONFIG) -> int:
    """Questions to wait before a question at `level` is due again.

    Unknown levels fall back to the longest interval.
    """
    if level in config.intervals:
        return config.intervals[level]
    return max(config.intervals.values())


def level_delta(correct: bool, not_sure: bool, config: SpacedRepConfig = SPACED_REP_CONFIG) -> int:
    if not correct:
        return config.wrong
    return config.correct_not_sure if not_sure else config.correct_sure


def update_level(
    record: SpacedRepetitionRecord,
    correct: bool,
    not_sure: bool,
    position: int,
    now_ms: int | None = None,
    config: SpacedRepConfig = SPACED_REP_CONFIG,
) -> SpacedRepetitionRecord:
    """Return the record after one answer.

    Args:
        record: Current record (not modified).
        correct: Whether the answer was correct.
        not_sure: Whether the learner marked it "not sure". Ignored when wrong.
        position: Position of the question in the global answer sequence.
        now_ms: Timestamp in epoch milliseconds, defaults to now.

    Returns:
        New SpacedRepetitionRecord with level clamped to [0, max_level].
    """
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    new_level = record.level + level_delta(correct, not_sure, config)
    new_level = max(0, min(config.max_level, new_level))
    return SpacedRepetitionRecord(
        level=new_level,
        last_seen=now_ms,
        seen_count=record.seen_count + 1,
        last_seen_position=position,
    )


def calculate_priority(
    record: SpacedRepetitionRecord,
    current_position: int = 0,
    rng: random.Random | None = None,
    config: SpacedRepConfig = SPACED_REP_CONFIG,
) -> float:
    """Priority score for one question; lower is shown sooner."""
    rng = rng or random
    if record.seen_count == 0:
        return config.new_question_score + rng.random() * config.new_question_jitter

    questions_since_seen = current_position - record.last_seen_position
    overdue = questions_since_seen - interval_for_level(record.level, config)
    return overdue - record.level * config.level_penalty


def tier_of(record: SpacedRepetitionRecord) -> int:
    """0 = urgent (new or level <= 1), 1 = moderate (2-3), 2 = review (4+)."""
    if record.seen_count == 0 or record.level <= 1:
        return 0
    if record.level <= 3:
        return 1
    return 2


def shuffle_with_priority(scored: list, rng: random.Random | None = None) -> list[int]:
    rng = rng or random
    tiers = ([], [], [])
    for qid, record in scored:
        tiers[tier_of(record)].append(qid)
    queue = []
    for tier in tiers:
        rng.shuffle(tier)
        queue.extend(tier)
    return queue


def generate_queue(
    question_ids,
    records: dict,
    session_size: int = 30,
    current_position: int = 0,
    rng: random.Random | None = None,
    config: SpacedRepConfig = SPACED_REP_CONFIG,
) -> list[int]:
    """Build the question order for an adaptive session."""
    question_ids = list(question_ids)
    if not question_ids:
        return []
    rng = rng or random.Random()
    scored = []
    for qid in question_ids:
        record = records.get(qid) or SpacedRepetitionRecord()
        scored.append((calculate_priority(record, current_position, rng, config), qid, record))
    scored.sort(key=lambda item: item[0])
    selected = [(qid, record) for _, qid, record in scored[:session_size]]
    return shuffle_with_priority(selected, rng)


def get_smart_stats(question_ids, records: dict) -> dict:
    """Mastery breakdown; the four buckets always sum to the bank size."""
    question_ids = list(question_ids)
    mastered = learning = struggling = not_started = 0
    for qid in question_ids:
        record = records.get(qid)
        if record is None or record.seen_count == 0:
            not_started += 1
        elif record.level >= 4:
            mastered += 1
        elif record.level >= 1:
            learning += 1
        else:
            struggling += 1
    total = len(question_ids)
    return {
        "total": total,
        "mastered": mastered,
        "learning": learning,
        "struggling": struggling,
        "not_started": not_started,
        "mastered_pct": round(mastered / total * 100) if total else 0,
    }


def get_due_questions(
    question_ids,
    records: dict,
    now_ms: int | None = None,
    config: SpacedRepConfig = SPACED_REP_CONFIG,
) -> list[int]:
    """Questions never seen, or not seen for at least their interval in hours."""
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    due = []
    for qid in question_ids:
        record = records.get(qid) or SpacedRepetitionRecord()
        if record.seen_count == 0:
            due.append(qid)
            continue
        hours_since_seen = (now_ms - record.last_seen) / (1000 * 60 * 60)
        if hours_since_seen >= interval_for_level(record.level, config):
            due.append(qid)
    return due
