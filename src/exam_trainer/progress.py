"""Persisted learner progress: mastery records, history, wrong counts, flags and notes."""
from dataclasses import dataclass, field

from exam_trainer.config import EXAM_CONFIG
from exam_trainer.models import (
    ExamHistoryRecord, HistoryEntry, Mode, QuestionMeta, SpacedRepetitionRecord,
)


def _int_keys(mapping: dict) -> dict:
    return {int(k): v for k, v in mapping.items()}


@dataclass
class ProgressStore:
    """Single owned container for everything that survives a round.

    Merges from the remote copy replace whole sub-collections so an observer
    never sees a half-applied document.
    """
    completed_learning: set = field(default_factory=set)
    completed_exam: set = field(default_factory=set)
    history: list = field(default_factory=list)
    wrong_counts: dict = field(default_factory=dict)
    exams: list = field(default_factory=list)
    question_meta: dict = field(default_factory=dict)
    spaced_repetition: dict = field(default_factory=dict)
    exam_history: list = field(default_factory=list)
    history_limit: int = EXAM_CONFIG.history_limit

    # --- spaced repetition ---

    def get_record(self, qid: int) -> SpacedRepetitionRecord:
        """Stored record for qid, or a fresh default that is not inserted."""
        return self.spaced_repetition.get(qid) or SpacedRepetitionRecord()

    def set_record(self, qid: int, record: SpacedRepetitionRecord) -> None:
        self.spaced_repetition[qid] = record

    def answer_position(self) -> int:
        """Global count of answered questions, used as the scheduling clock."""
        return sum(r.seen_count for r in self.spaced_repetition.values())

    # --- results ---

    def increment_wrong_count(self, qid: int) -> None:
        self.wrong_counts[qid] = self.wrong_counts.get(qid, 0) + 1

    def add_history_entry(self, entry: HistoryEntry) -> None:
        self.history.append(entry)

    def add_exam_history(self, record: ExamHistoryRecord) -> None:
        self.exam_history.append(record)
        overflow = len(self.exam_history) - self.history_limit
        if overflow > 0:
            del self.exam_history[:overflow]

    # --- exam sets ---

    def completed_for(self, mode) -> set:
        return self.completed_exam if mode == Mode.EXAM else self.completed_learning

    def mark_exam_completed(self, mode, exam_index: int | None) -> None:
        if exam_index is not None:
            self.completed_for(mode).add(exam_index)

    def set_exams(self, exams: list) -> None:
        """Replace the exam partition; completion flags no longer apply."""
        self.exams = [list(e) for e in exams]
        self.completed_learning = set()
        self.completed_exam = set()

    # --- flags & notes ---

    def get_meta(self, qid: int) -> QuestionMeta:
        return self.question_meta.get(qid) or QuestionMeta()

    def _put_meta(self, qid: int, meta: QuestionMeta) -> None:
        if meta.empty:
            self.question_meta.pop(qid, None)
        else:
            self.question_meta[qid] = meta

    def toggle_flag(self, qid: int) -> bool:
        meta = self.get_meta(qid)
        flagged = not meta.flagged
        self._put_meta(qid, QuestionMeta(flagged=flagged, note=meta.note))
        return flagged

    def set_note(self, qid: int, note: str) -> None:
        meta = self.get_meta(qid)
        self._put_meta(qid, QuestionMeta(flagged=meta.flagged, note=note.strip()))

    def flagged_question_ids(self) -> list[int]:
        return [qid for qid, meta in self.question_meta.items() if meta.flagged]

    # --- resets ---

    def clear_stats(self) -> None:
        """Forget history and weak points but keep exam sets and mastery."""
        self.history = []
        self.wrong_counts = {}

    def reset_all(self) -> None:
        self.history = []
        self.wrong_counts = {}
        self.completed_learning = set()
        self.completed_exam = set()
        self.exams = []
        self.question_meta = {}
        self.spaced_repetition = {}
        self.exam_history = []

    # --- wire format ---

    def to_document(self, timestamp: int) -> dict:
        return {
            "timestamp": timestamp,
            "completedLearning": sorted(self.completed_learning),
            "completedExam": sorted(self.completed_exam),
            "history": [h.to_dict() for h in self.history],
            "wrongCounts": {str(k): v for k, v in self.wrong_counts.items()},
            "exams": [list(e) for e in self.exams],
            "questionMeta": {str(k): m.to_dict() for k, m in self.question_meta.items()},
            "spacedRepetition": {str(k): r.to_dict() for k, r in self.spaced_repetition.items()},
            "examHistory": [r.to_dict() for r in self.exam_history],
        }

    def apply_document(self, data: dict | None) -> None:
        """Merge a synced document. Absent fields leave local state untouched.

        Every present field is decoded in full before any attribute is
        replaced, so a malformed document changes nothing. Any shape
        mismatch is reported as ValueError.
        """
        if not data:
            return
        try:
            updates = self._decode_document(data)
        except (KeyError, TypeError, AttributeError) as e:
            raise ValueError(f"Malformed progress document: {e!r}") from e
        for name, value in updates.items():
            setattr(self, name, value)

    def _decode_document(self, data: dict) -> dict:
        updates = {}
        if "completedLearning" in data:
            updates["completed_learning"] = {int(i) for i in data["completedLearning"] or []}
        if "completedExam" in data:
            updates["completed_exam"] = {int(i) for i in data["completedExam"] or []}
        if "history" in data:
            updates["history"] = [HistoryEntry.from_dict(h) for h in data["history"] or []]
        if "wrongCounts" in data:
            updates["wrong_counts"] = {k: int(v) for k, v in _int_keys(data["wrongCounts"] or {}).items()}
        if "exams" in data:
            updates["exams"] = [[int(q) for q in e] for e in data["exams"] or []]
        if "questionMeta" in data:
            metas = {k: QuestionMeta.from_dict(m) for k, m in _int_keys(data["questionMeta"] or {}).items()}
            updates["question_meta"] = {k: m for k, m in metas.items() if not m.empty}
        if "spacedRepetition" in data:
            updates["spaced_repetition"] = {
                k: SpacedRepetitionRecord.from_dict(r)
                for k, r in _int_keys(data["spacedRepetition"] or {}).items()
            }
        if "examHistory" in data:
            records = [ExamHistoryRecord.from_dict(r) for r in data["examHistory"] or []]
            updates["exam_history"] = records[-self.history_limit:]
        return updates
