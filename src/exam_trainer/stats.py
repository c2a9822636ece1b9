"""Result scoring, history statistics and weak-point identification."""
import math

from exam_trainer.config import EXAM_CONFIG


def calc_percent(part: int, total: int) -> int:
    """Whole percentage, rounding halves up."""
    if total == 0:
        return 0
    return math.floor(part / total * 100 + 0.5)


def get_result_label(pct: float, threshold: int = EXAM_CONFIG.pass_threshold) -> str:
    return "PASSED" if pct >= threshold else "FAILED"


def get_result_color(pct: float, threshold: int = EXAM_CONFIG.pass_threshold) -> str:
    if pct >= threshold:
        return "green"
    elif pct >= threshold - 15:
        return "yellow"
    return "red"


def format_exam_result(stats: dict, total: int, threshold: int = EXAM_CONFIG.pass_threshold) -> dict:
    pct = calc_percent(stats["correct"], total)
    return {
        "passed": pct >= threshold,
        "pct": pct,
        "correct": stats["correct"],
        "total": total,
        "wrong": list(stats["wrong"]),
        "correct_but_not_sure": list(stats["correct_but_not_sure"]),
        "dont_know": list(stats["dont_know"]),
        "total_time": stats["total_time"],
        "avg_time": round(stats["total_time"] / total) if total else 0,
    }


def calculate_overall_stats(history: list, threshold: int = EXAM_CONFIG.pass_threshold) -> dict:
    """Aggregate over completed base rounds."""
    total = len(history)
    if total == 0:
        return {"total_exams": 0, "avg_score": 0, "avg_time": 0, "pass_rate": 0}
    avg_score = round(sum(h.pct for h in history) / total)
    avg_time = round(sum(h.avg_time for h in history) / total)
    passed = sum(1 for h in history if h.pct >= threshold)
    return {
        "total_exams": total,
        "avg_score": avg_score,
        "avg_time": avg_time,
        "pass_rate": calc_percent(passed, total),
    }


def get_weak_points(wrong_counts: dict, limit: int = 10) -> list[dict]:
    """Most frequently missed questions, worst first."""
    ranked = sorted(wrong_counts.items(), key=lambda item: item[1], reverse=True)
    return [{"qid": int(qid), "count": count} for qid, count in ranked[:limit]]


def get_all_weak_question_ids(wrong_counts: dict) -> list[int]:
    return [int(qid) for qid, count in wrong_counts.items() if count > 0]


def get_recent_history(history: list, n: int = 10) -> list:
    return history[-n:]


def get_exam_by_id(exam_history: list, exam_id: str):
    for record in exam_history:
        if record.id == exam_id:
            return record
    return None
