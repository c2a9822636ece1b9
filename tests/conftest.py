import pytest

from exam_trainer.models import Question
from exam_trainer.progress import ProgressStore
from exam_trainer.questions import QuestionBank

LETTERS = "ABCD"


def _question(qid: int, correct: str) -> Question:
    return Question(
        id=qid,
        text=f"Question {qid}?",
        answers={letter: f"Option {letter} for {qid}" for letter in LETTERS},
        correct=(correct,),
    )


class FakeClock:
    """Monotonic clock the tests move by hand."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def tmp_db(tmp_path):
    """Provide a temporary SQLite database path for tests."""
    db_path = str(tmp_path / "test_trainer.db")
    return db_path


@pytest.fixture
def bank():
    """Twenty questions; question n is answered by LETTERS[(n - 1) % 4]."""
    return QuestionBank(_question(i, LETTERS[(i - 1) % 4]) for i in range(1, 21))


@pytest.fixture
def small_bank():
    """Questions 1, 2, 3 with correct answers A, B, C."""
    return QuestionBank([_question(1, "A"), _question(2, "B"), _question(3, "C")])


@pytest.fixture
def progress():
    return ProgressStore()


@pytest.fixture
def clock():
    return FakeClock()
