"""Tests for domain data classes and their wire encodings."""
from exam_trainer.models import (
    AnswerStatus, ExamHistoryRecord, HistoryEntry, Mode, Question, QuestionMeta,
    QuestionState, RoundType, SpacedRepetitionRecord,
)


def test_question_single_correct_answer():
    q = Question(id=1, text="Q?", answers={"A": "yes", "B": "no"}, correct=("A",))
    assert q.is_correct("A")
    assert not q.is_correct("B")
    assert q.correct_text() == "yes"


def test_question_multiple_correct_answers():
    """Any one of several correct letters counts as correct."""
    q = Question(id=2, text="Q?", answers={"A": "x", "B": "y", "C": "z"}, correct=("A", "C"))
    assert q.is_correct("C")
    assert q.correct_text() == "x, z"


def test_question_state_defaults_unanswered():
    state = QuestionState()
    assert state.status == AnswerStatus.UNANSWERED
    assert not state.answered
    assert QuestionState(selected_answer="A", status=AnswerStatus.WRONG).answered


def test_spaced_repetition_record_wire_keys():
    record = SpacedRepetitionRecord(level=3, last_seen=1700000000000, seen_count=4, last_seen_position=12)
    data = record.to_dict()
    assert data == {"level": 3, "lastSeen": 1700000000000, "seenCount": 4, "lastSeenPosition": 12}
    assert SpacedRepetitionRecord.from_dict(data) == record


def test_spaced_repetition_record_tolerates_missing_fields():
    record = SpacedRepetitionRecord.from_dict({"level": 1, "seenCount": 2, "lastSeen": None})
    assert record.last_seen == 0
    assert record.last_seen_position == 0


def test_history_entry_uses_avg_time_key():
    entry = HistoryEntry(date="2026-01-01T10:00:00", mode="exam", total=10, correct=8, pct=80, avg_time=42)
    assert entry.to_dict()["avgTime"] == 42
    assert HistoryEntry.from_dict(entry.to_dict()) == entry


def test_exam_history_record_from_dict_defaults():
    record = ExamHistoryRecord.from_dict({
        "id": "abc", "date": "2026-01-01", "mode": "smart",
        "results": {"total": 3, "correct": 2, "pct": 67, "passed": False},
    })
    assert record.exam_index is None
    assert record.duration == 0
    assert record.questions == []


def test_question_meta_empty():
    assert QuestionMeta().empty
    assert not QuestionMeta(flagged=True).empty
    assert not QuestionMeta(note="remember this").empty


def test_enums_compare_to_wire_strings():
    assert Mode("smart") is Mode.SMART
    assert RoundType("reviewNotSure") is RoundType.REVIEW_NOT_SURE
    assert Mode.EXAM == "exam"
