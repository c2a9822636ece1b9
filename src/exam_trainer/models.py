"""Data classes for the trainer domain model."""
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


class Mode(str, Enum):
    LEARNING = "learning"
    EXAM = "exam"
    SMART = "smart"


class RoundType(str, Enum):
    BASE = "base"
    REVIEW_WRONG = "reviewWrong"
    REVIEW_NOT_SURE = "reviewNotSure"
    REVIEW_DONT_KNOW = "reviewDontKnow"
    REVIEW_ALL = "reviewAll"
    REVIEW_WEAK = "reviewWeak"


ROUND_TITLES = {
    RoundType.BASE: "Result",
    RoundType.REVIEW_WRONG: "Wrong answers",
    RoundType.REVIEW_NOT_SURE: "Not sure",
    RoundType.REVIEW_DONT_KNOW: "Don't know",
    RoundType.REVIEW_ALL: "All for review",
    RoundType.REVIEW_WEAK: "Weak points",
}


class AnswerStatus(str, Enum):
    UNANSWERED = "unanswered"
    CORRECT = "correct"
    WRONG = "wrong"


class RoundStatus(str, Enum):
    IDLE = "idle"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class SyncStatus(str, Enum):
    LOADING = "loading"
    SYNCING = "syncing"
    CONNECTED = "connected"
    OFFLINE = "offline"
    ERROR = "error"


@dataclass(frozen=True)
class Question:
    id: int
    text: str
    answers: dict
    correct: tuple
    explanation: str = ""

    def is_correct(self, letter: str) -> bool:
        return letter in self.correct

    def correct_text(self) -> str:
        """Display text for the correct answer(s)."""
        return ", ".join(self.answers[letter] for letter in self.correct)


@dataclass
class QuestionState:
    selected_answer: Optional[str] = None
    status: AnswerStatus = AnswerStatus.UNANSWERED
    dont_know: bool = False
    not_sure: bool = False
    time: int = 0

    @property
    def answered(self) -> bool:
        return self.status != AnswerStatus.UNANSWERED


@dataclass
class SpacedRepetitionRecord:
    level: int = 0
    last_seen: int = 0
    seen_count: int = 0
    last_seen_position: int = 0

    def to_dict(self) -> dict:
        return {
            "level": self.level,
            "lastSeen": self.last_seen,
            "seenCount": self.seen_count,
            "lastSeenPosition": self.last_seen_position,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "SpacedRepetitionRecord":
        return cls(
            level=int(data.get("level", 0)),
            last_seen=int(data.get("lastSeen") or 0),
            seen_count=int(data.get("seenCount", 0)),
            last_seen_position=int(data.get("lastSeenPosition") or 0),
        )


@dataclass
class HistoryEntry:
    date: str
    mode: str
    total: int
    correct: int
    pct: int
    avg_time: int = 0

    def to_dict(self) -> dict:
        return {
            "date": self.date,
            "mode": self.mode,
            "total": self.total,
            "correct": self.correct,
            "pct": self.pct,
            "avgTime": self.avg_time,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "HistoryEntry":
        return cls(
            date=data["date"],
            mode=data.get("mode") or "",
            total=int(data.get("total", 0)),
            correct=int(data.get("correct", 0)),
            pct=int(data.get("pct", 0)),
            avg_time=int(data.get("avgTime", 0)),
        )


@dataclass
class ExamHistoryRecord:
    id: str
    date: str
    mode: str
    results: dict
    questions: list = field(default_factory=list)
    exam_index: Optional[int] = None
    duration: int = 0

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "date": self.date,
            "mode": self.mode,
            "examIndex": self.exam_index,
            "duration": self.duration,
            "results": dict(self.results),
            "questions": [dict(q) for q in self.questions],
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ExamHistoryRecord":
        return cls(
            id=str(data["id"]),
            date=data["date"],
            mode=data.get("mode") or "",
            results=dict(data.get("results") or {}),
            questions=[dict(q) for q in data.get("questions") or []],
            exam_index=data.get("examIndex"),
            duration=int(data.get("duration") or 0),
        )


@dataclass
class QuestionMeta:
    flagged: bool = False
    note: str = ""

    @property
    def empty(self) -> bool:
        return not self.flagged and not self.note

    def to_dict(self) -> dict:
        return {"flagged": self.flagged, "note": self.note}

    @classmethod
    def from_dict(cls, data: dict) -> "QuestionMeta":
        return cls(flagged=bool(data.get("flagged", False)), note=data.get("note") or "")
