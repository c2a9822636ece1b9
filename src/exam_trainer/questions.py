"""Question bank loading and lookup."""
import json
import logging
from pathlib import Path

import yaml

from exam_trainer.models import Question

logger = logging.getLogger(__name__)


class QuestionBankError(Exception):
    """The question bank could not be read or failed validation."""


class QuestionBank:
    """Immutable id -> Question mapping, kept in load order."""

    def __init__(self, questions=()):
        self._questions = {}
        for q in questions:
            if q.id in self._questions:
                raise QuestionBankError(f"Duplicate question id {q.id}")
            self._questions[q.id] = q
        self._ids = tuple(self._questions)

    @property
    def ids(self) -> list[int]:
        return list(self._ids)

    def get(self, qid: int) -> Question | None:
        return self._questions.get(qid)

    def __getitem__(self, qid: int) -> Question:
        return self._questions[qid]

    def __contains__(self, qid) -> bool:
        return qid in self._questions

    def __iter__(self):
        return iter(self._questions.values())

    def __len__(self) -> int:
        return len(self._questions)


def read_bank_file(file_path: str):
    path = Path(file_path)
    suffix = path.suffix.lower()
    text = path.read_text(encoding="utf-8")
    if suffix in (".yaml", ".yml"):
        return yaml.safe_load(text)
    return json.loads(text)


def parse_question(item: dict) -> Question:
    """Build a Question from a raw bank entry, validating its answer keys."""
    qid = item.get("number", item.get("id"))
    if qid is None:
        raise QuestionBankError(f"Question without id: {item!r}")
    text = item.get("question", item.get("text", ""))
    answers = {str(k): str(v) for k, v in (item.get("answers") or {}).items()}
    if len(answers) < 2:
        raise QuestionBankError(f"Question {qid} needs at least two answers")
    correct = item.get("correct") or []
    if isinstance(correct, str):
        correct = [correct]
    correct = tuple(str(c) for c in correct)
    if not correct:
        raise QuestionBankError(f"Question {qid} has no correct answer")
    missing = [c for c in correct if c not in answers]
    if missing:
        raise QuestionBankError(f"Question {qid}: correct letters {missing} not among answers")
    return Question(
        id=int(qid),
        text=text,
        answers=answers,
        correct=correct,
        explanation=item.get("explanation") or "",
    )


def load_questions(file_path: str) -> QuestionBank:
    """Load a JSON or YAML question bank. Raises QuestionBankError on any failure."""
    try:
        data = read_bank_file(file_path)
    except (OSError, ValueError, yaml.YAMLError) as e:
        raise QuestionBankError(f"Cannot read {file_path}: {e}") from e
    items = data.get("questions") if isinstance(data, dict) else data
    if not isinstance(items, list):
        raise QuestionBankError(f"{file_path}: expected a list of questions")
    try:
        bank = QuestionBank(parse_question(item) for item in items)
    except (TypeError, AttributeError, ValueError) as e:
        raise QuestionBankError(f"{file_path}: malformed question entry: {e}") from e
    logger.info("Loaded %d questions from %s", len(bank), file_path)
    return bank
