"""Round state machine: question sequencing, answer capture, scoring and review rounds."""
import copy
import logging
import math
import random
import time
from datetime import datetime
from enum import Enum
from uuid import uuid4

from exam_trainer.config import EXAM_CONFIG, SPACED_REP_CONFIG, ExamConfig, SpacedRepConfig
from exam_trainer.models import (
    AnswerStatus, ExamHistoryRecord, HistoryEntry, Mode, QuestionState, RoundStatus, RoundType,
)
from exam_trainer.scheduler import generate_queue, update_level
from exam_trainer.stats import calc_percent, format_exam_result, get_all_weak_question_ids
from exam_trainer.timer import ExamTimer, QuestionTimer

logger = logging.getLogger(__name__)

REVIEW_TYPES = (
    RoundType.REVIEW_WRONG,
    RoundType.REVIEW_NOT_SURE,
    RoundType.REVIEW_DONT_KNOW,
    RoundType.REVIEW_ALL,
)


class Step(str, Enum):
    """Outcome of QuizSession.advance."""
    IGNORED = "ignored"
    REVEALED = "revealed"
    MOVED = "moved"
    COMPLETED = "completed"


def compute_stats(question_state: dict, question_ids) -> dict:
    """Tally answered questions of a round. Unanswered questions are skipped."""
    correct = 0
    wrong, dont_know, not_sure, correct_but_not_sure = [], [], [], []
    total_time = 0
    for qid in question_ids:
        state = question_state.get(qid)
        if state is None or not state.answered:
            continue
        if state.dont_know:
            dont_know.append(qid)
        if state.not_sure:
            not_sure.append(qid)
        total_time += state.time or 0
        if state.status == AnswerStatus.CORRECT:
            correct += 1
            if state.not_sure:
                correct_but_not_sure.append(qid)
        else:
            wrong.append(qid)
    return {
        "correct": correct,
        "wrong": wrong,
        "dont_know": dont_know,
        "not_sure": not_sure,
        "correct_but_not_sure": correct_but_not_sure,
        "total_time": total_time,
    }


def is_passed(correct: int, total: int, threshold: int = EXAM_CONFIG.pass_threshold) -> bool:
    return calc_percent(correct, total) >= threshold


def get_answered_count(question_state: dict) -> int:
    return sum(1 for s in question_state.values() if s.answered)


def generate_exams(question_ids, total_exams: int = EXAM_CONFIG.total_exams, rng=None) -> list[list[int]]:
    """Split the bank into `total_exams` disjoint, near-equal groups."""
    rng = rng or random
    shuffled = list(question_ids)
    rng.shuffle(shuffled)
    size = math.ceil(len(shuffled) / total_exams) if total_exams else 0
    return [shuffled[i * size:(i + 1) * size] for i in range(total_exams)]


def get_review_questions(base_state: dict | None, base_stack: list | None, review_type) -> list[int]:
    """Question ids of a base round that qualify for a review sub-round."""
    if base_state is None or base_stack is None:
        return []
    stats = compute_stats(base_state, base_stack)
    if review_type == RoundType.REVIEW_WRONG:
        return stats["wrong"]
    if review_type == RoundType.REVIEW_NOT_SURE:
        return stats["not_sure"]
    if review_type == RoundType.REVIEW_DONT_KNOW:
        return stats["dont_know"]
    if review_type == RoundType.REVIEW_ALL:
        return list(dict.fromkeys(stats["wrong"] + stats["dont_know"] + stats["not_sure"]))
    return []


class QuizSession:
    """The current round plus the base-round snapshot kept for review sub-rounds.

    All mutations happen on the caller's thread; `on_change` is invoked
    whenever persisted progress changed so the caller can schedule a save.
    """

    def __init__(
        self,
        bank,
        progress,
        *,
        clock=time.monotonic,
        wall_clock=time.time,
        rng: random.Random | None = None,
        exam_config: ExamConfig = EXAM_CONFIG,
        sr_config: SpacedRepConfig = SPACED_REP_CONFIG,
        on_change=None,
    ):
        self.bank = bank
        self.progress = progress
        self.exam_config = exam_config
        self.sr_config = sr_config
        self.on_change = on_change
        self._wall_clock = wall_clock
        self.rng = rng or random.Random()

        self.mode = None
        self.round_type = RoundType.BASE
        self.selected_exam_index = None
        self.status = RoundStatus.IDLE
        self.stack = []
        self.current_index = 0
        self.question_state = {}
        self.answer_order = {}
        self.base_state = None
        self.base_stack = None
        self.exam_timer = ExamTimer(exam_config.time_limit_seconds, clock=clock)
        self.question_timer = QuestionTimer(clock=clock)

    # --- accessors ---

    @property
    def current_question_id(self) -> int | None:
        if 0 <= self.current_index < len(self.stack):
            return self.stack[self.current_index]
        return None

    @property
    def current_question(self):
        qid = self.current_question_id
        return self.bank.get(qid) if qid is not None else None

    @property
    def current_state(self) -> QuestionState | None:
        return self.question_state.get(self.current_question_id)

    @property
    def position(self) -> int:
        return self.current_index + 1

    @property
    def is_last_question(self) -> bool:
        return self.current_index >= len(self.stack) - 1

    @property
    def answered_count(self) -> int:
        return get_answered_count(self.question_state)

    @property
    def learning(self) -> bool:
        return self.mode == Mode.LEARNING

    def __len__(self) -> int:
        return len(self.stack)

    def answer_order_for(self, qid: int) -> list[tuple[str, str]]:
        """Shuffled answers, fixed for the rest of the round once generated."""
        if qid not in self.answer_order:
            question = self.bank.get(qid)
            if question is None:
                return []
            order = list(question.answers.items())
            self.rng.shuffle(order)
            self.answer_order[qid] = order
        return list(self.answer_order[qid])

    # --- mode & exam sets ---

    def select_mode(self, mode) -> None:
        self.mode = Mode(mode)
        if self.mode != Mode.SMART:
            self.load_or_generate_exams()

    def load_or_generate_exams(self) -> bool:
        exams = self.progress.exams
        if exams and exams[0]:
            return False
        self.progress.set_exams(generate_exams(self.bank.ids, self.exam_config.total_exams, self.rng))
        self._notify()
        return True

    def reshuffle_exams(self) -> None:
        self.progress.set_exams(generate_exams(self.bank.ids, self.exam_config.total_exams, self.rng))
        self.selected_exam_index = None
        self._notify()

    def select_exam(self, index: int) -> bool:
        if not 0 <= index < len(self.progress.exams):
            return False
        self.selected_exam_index = index
        return True

    # --- round lifecycle ---

    def start_round(self, round_type, question_ids) -> bool:
        """Begin a round over `question_ids`. Returns False and changes nothing when empty."""
        ids = [qid for qid in question_ids or [] if qid in self.bank]
        if not ids:
            return False
        self._stop_timers()
        if self.mode is None:
            self.mode = Mode.LEARNING
        self.round_type = RoundType(round_type)
        self.stack = ids
        self.current_index = 0
        self.question_state = {}
        self.answer_order = {}
        self.status = RoundStatus.IN_PROGRESS
        self.exam_timer.start(visible=not self.learning)
        self.question_timer.reset()
        logger.debug("Started %s round with %d questions", self.round_type.value, len(ids))
        return True

    def start_exam(self, session_size: int = 30) -> bool:
        """Start a base round from the selected exam set, or an adaptive queue in smart mode."""
        if self.mode is None:
            return False
        if self.mode == Mode.SMART:
            ids = generate_queue(
                self.bank.ids,
                self.progress.spaced_repetition,
                session_size=session_size,
                current_position=self.progress.answer_position(),
                rng=self.rng,
                config=self.sr_config,
            )
        else:
            if self.selected_exam_index is None or self.selected_exam_index >= len(self.progress.exams):
                return False
            ids = self.progress.exams[self.selected_exam_index]
        return self.start_round(RoundType.BASE, ids)

    def get_review_set(self, review_type) -> list[int]:
        return get_review_questions(self.base_state, self.base_stack, review_type)

    def start_review(self, review_type) -> bool:
        ids = self.get_review_set(review_type)
        if not ids:
            return False
        return self.start_round(review_type, ids)

    def start_weak_review(self) -> bool:
        return self.start_round(RoundType.REVIEW_WEAK, get_all_weak_question_ids(self.progress.wrong_counts))

    def start_flagged_review(self) -> bool:
        return self.start_round(RoundType.REVIEW_ALL, self.progress.flagged_question_ids())

    def exit_round(self) -> None:
        """Abandon the current round without recording it."""
        self._stop_timers()
        self.status = RoundStatus.IDLE
        self.stack = []
        self.current_index = 0
        self.question_state = {}
        self.answer_order = {}

    # --- answering ---

    def update_draft(self, selected_answer: str | None, dont_know: bool, not_sure: bool) -> bool:
        qid = self.current_question_id
        if qid is None or self.status != RoundStatus.IN_PROGRESS:
            return False
        existing = self.question_state.get(qid) or QuestionState()
        # A revealed answer is final in learning mode.
        if self.learning and existing.answered:
            return False
        self.question_state[qid] = QuestionState(
            selected_answer=selected_answer or existing.selected_answer,
            status=existing.status,
            dont_know=dont_know,
            not_sure=not_sure,
            time=existing.time,
        )
        return True

    def check(self, selected_answer: str | None) -> bool:
        """Score the current question. Returns False when nothing is selected."""
        if not selected_answer:
            return False
        qid = self.current_question_id
        question = self.current_question
        if question is None:
            return False
        is_correct = question.is_correct(selected_answer)
        existing = self.question_state.get(qid) or QuestionState()
        self.question_state[qid] = QuestionState(
            selected_answer=selected_answer,
            status=AnswerStatus.CORRECT if is_correct else AnswerStatus.WRONG,
            dont_know=existing.dont_know,
            not_sure=existing.not_sure,
            time=self.question_timer.elapsed(),
        )
        if not is_correct:
            self.progress.increment_wrong_count(qid)
        return True

    def advance(self, selected_answer: str | None) -> Step:
        if self.status != RoundStatus.IN_PROGRESS or not selected_answer:
            return Step.IGNORED
        if self.learning:
            state = self.current_state
            if state is None or not state.answered:
                self.check(selected_answer)
                return Step.REVEALED
        else:
            self.check(selected_answer)
        if not self.is_last_question:
            self.current_index += 1
            self.question_timer.reset()
            return Step.MOVED
        self.complete()
        return Step.COMPLETED

    def retreat(self) -> bool:
        if self.status != RoundStatus.IN_PROGRESS or self.current_index == 0:
            return False
        self.current_index -= 1
        return True

    def check_time(self) -> bool:
        """Complete the round if the exam countdown ran out."""
        if self.status == RoundStatus.IN_PROGRESS and self.exam_timer.expired():
            logger.info("Exam time limit reached")
            self.complete()
            return True
        return False

    # --- completion ---

    def complete(self) -> dict:
        """Finish the round and record it. Only base rounds write history."""
        self._stop_timers()
        stats = compute_stats(self.question_state, self.stack)
        if self.mode in (Mode.SMART, Mode.LEARNING):
            self._update_mastery()
        if self.round_type == RoundType.BASE:
            self.save_base_state()
            self.progress.mark_exam_completed(self.mode, self.selected_exam_index)
            self._record_history(stats)
        self.status = RoundStatus.COMPLETED
        self._notify()
        return format_exam_result(stats, len(self.stack), self.exam_config.pass_threshold)

    def results(self) -> dict:
        stats = compute_stats(self.question_state, self.stack)
        return format_exam_result(stats, len(self.stack), self.exam_config.pass_threshold)

    def save_base_state(self) -> None:
        self.base_state = copy.deepcopy(self.question_state)
        self.base_stack = list(self.stack)

    def back_to_base(self) -> bool:
        """Make the base snapshot current again, for its results screen."""
        if self.base_state is None or self.base_stack is None:
            return False
        self._stop_timers()
        self.round_type = RoundType.BASE
        self.question_state = copy.deepcopy(self.base_state)
        self.stack = list(self.base_stack)
        self.current_index = 0
        self.status = RoundStatus.COMPLETED
        return True

    # --- flags & notes on the current question ---

    def toggle_flag(self) -> bool | None:
        qid = self.current_question_id
        if qid is None:
            return None
        flagged = self.progress.toggle_flag(qid)
        self._notify()
        return flagged

    def save_note(self, note: str) -> bool:
        qid = self.current_question_id
        if qid is None:
            return False
        self.progress.set_note(qid, note)
        self._notify()
        return True

    # --- internals ---

    def _update_mastery(self) -> None:
        start = self.progress.answer_position()
        now_ms = int(self._wall_clock() * 1000)
        updated = {}
        for index, qid in enumerate(self.stack):
            state = self.question_state.get(qid)
            if state is None or not state.answered:
                continue
            updated[qid] = update_level(
                self.progress.get_record(qid),
                correct=state.status == AnswerStatus.CORRECT,
                not_sure=state.not_sure,
                position=start + index,
                now_ms=now_ms,
                config=self.sr_config,
            )
        self.progress.spaced_repetition.update(updated)

    def _record_history(self, stats: dict) -> None:
        total = len(self.stack)
        pct = calc_percent(stats["correct"], total)
        date = datetime.fromtimestamp(self._wall_clock()).isoformat()
        mode = self.mode.value if self.mode else ""
        self.progress.add_history_entry(HistoryEntry(
            date=date,
            mode=mode,
            total=total,
            correct=stats["correct"],
            pct=pct,
            avg_time=round(stats["total_time"] / total) if total else 0,
        ))
        questions = []
        for qid in self.stack:
            state = self.question_state.get(qid) or QuestionState()
            questions.append({
                "qid": qid,
                "answer": state.selected_answer,
                "correct": state.status == AnswerStatus.CORRECT,
            })
        self.progress.add_exam_history(ExamHistoryRecord(
            id=uuid4().hex,
            date=date,
            mode=mode,
            exam_index=self.selected_exam_index if self.mode != Mode.SMART else None,
            duration=self.exam_timer.elapsed(),
            results={
                "total": total,
                "correct": stats["correct"],
                "pct": pct,
                "passed": pct >= self.exam_config.pass_threshold,
            },
            questions=questions,
        ))

    def _stop_timers(self) -> None:
        self.exam_timer.stop()
        self.question_timer.stop()

    def _notify(self) -> None:
        if self.on_change is not None:
            self.on_change()
