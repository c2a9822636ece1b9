"""End-to-end: load a bank, play rounds, persist locally and sync to a second device."""
import asyncio
import json
import random

from exam_trainer.config import Settings
from exam_trainer.db import init_db, load_progress
from exam_trainer.models import Mode, RoundStatus, RoundType
from exam_trainer.progress import ProgressStore
from exam_trainer.questions import load_questions
from exam_trainer.quiz import QuizSession
from exam_trainer.app import TrainerApp
from exam_trainer.scheduler import get_smart_stats
from exam_trainer.sync import MemoryRemote, SyncReconciler


def _write_bank(tmp_path, count=10):
    items = [
        {
            "number": i,
            "question": f"What is {i} + {i}?",
            "answers": {"A": str(i * 2), "B": str(i * 2 + 1), "C": str(i * 3)},
            "correct": ["A"],
        }
        for i in range(1, count + 1)
    ]
    path = tmp_path / "questions.json"
    path.write_text(json.dumps(items))
    return str(path)


def test_full_flow_exam_review_and_sync(tmp_path, tmp_db):
    bank = load_questions(_write_bank(tmp_path))
    init_db(tmp_db)
    remote = MemoryRemote()
    settings = Settings(db_path=tmp_db, questions_path="questions.json")
    phone = ProgressStore()

    async def scenario():
        app = TrainerApp(settings, bank, load_progress(tmp_db), remote, rng=random.Random(4))
        app.reconciler.debounce = 0.01
        await app.reconciler.start("shared")
        other = SyncReconciler(phone, remote)
        await other.start("shared")

        session = app.session
        session.select_mode(Mode.EXAM)
        session.select_exam(0)
        assert session.start_exam()
        wrong_qid = session.stack[0]
        while session.status == RoundStatus.IN_PROGRESS:
            letter = "B" if session.current_question_id == wrong_qid else "A"
            session.advance(letter)

        assert session.start_review(RoundType.REVIEW_WRONG)
        session.advance("A")
        assert session.status == RoundStatus.COMPLETED

        await asyncio.sleep(0.1)
        await app.reconciler.close()
        await other.close()
        return app, wrong_qid

    app, wrong_qid = asyncio.run(scenario())

    # Only the base round is in history; the review did not add one.
    assert len(app.progress.history) == 1
    assert app.progress.completed_exam == {0}

    stored = load_progress(tmp_db)
    assert stored.wrong_counts == {wrong_qid: 1}
    assert stored.exams == app.progress.exams

    assert phone.wrong_counts == {wrong_qid: 1}
    assert phone.completed_exam == {0}
    assert len(phone.exam_history) == 1


def test_smart_sessions_build_mastery(tmp_path):
    bank = load_questions(_write_bank(tmp_path, count=12))
    progress = ProgressStore()
    session = QuizSession(bank, progress, rng=random.Random(11))
    session.select_mode(Mode.SMART)

    for _ in range(3):
        assert session.start_exam(session_size=4)
        while session.status == RoundStatus.IN_PROGRESS:
            session.advance("A")

    stats = get_smart_stats(bank.ids, progress.spaced_repetition)
    # Twelve new questions and three sessions of four: every question seen once.
    assert stats["not_started"] == 0
    assert stats["learning"] == 12
    assert progress.answer_position() == 12
    assert len(progress.exam_history) == 3
