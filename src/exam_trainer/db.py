"""Local SQLite persistence for the progress store."""
import json
import sqlite3
from pathlib import Path

from exam_trainer.config import DEFAULT_DB_PATH
from exam_trainer.models import (
    ExamHistoryRecord, HistoryEntry, QuestionMeta, SpacedRepetitionRecord,
)
from exam_trainer.progress import ProgressStore

SCHEMA = """
CREATE TABLE IF NOT EXISTS spaced_repetition (
    question_id INTEGER PRIMARY KEY,
    level INTEGER NOT NULL DEFAULT 0,
    last_seen INTEGER NOT NULL DEFAULT 0,
    seen_count INTEGER NOT NULL DEFAULT 0,
    last_seen_position INTEGER NOT NULL DEFAULT 0
);

CREATE TABLE IF NOT EXISTS wrong_counts (
    question_id INTEGER PRIMARY KEY,
    count INTEGER NOT NULL
);

CREATE TABLE IF NOT EXISTS question_meta (
    question_id INTEGER PRIMARY KEY,
    flagged INTEGER DEFAULT 0,
    note TEXT DEFAULT ''
);

CREATE TABLE IF NOT EXISTS history (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    date TEXT NOT NULL,
    mode TEXT,
    total INTEGER NOT NULL,
    correct INTEGER NOT NULL,
    pct INTEGER NOT NULL,
    avg_time INTEGER DEFAULT 0
);

CREATE TABLE IF NOT EXISTS exam_history (
    seq INTEGER PRIMARY KEY AUTOINCREMENT,
    id TEXT NOT NULL UNIQUE,
    date TEXT NOT NULL,
    mode TEXT,
    exam_index INTEGER,
    duration INTEGER DEFAULT 0,
    results TEXT NOT NULL,
    questions TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS exams (
    exam_index INTEGER NOT NULL,
    position INTEGER NOT NULL,
    question_id INTEGER NOT NULL,
    PRIMARY KEY (exam_index, position)
);

CREATE TABLE IF NOT EXISTS completed_exams (
    mode TEXT NOT NULL,
    exam_index INTEGER NOT NULL,
    PRIMARY KEY (mode, exam_index)
);

CREATE TABLE IF NOT EXISTS user_settings (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    key TEXT NOT NULL UNIQUE,
    value TEXT
);
"""

PROGRESS_TABLES = (
    "spaced_repetition", "wrong_counts", "question_meta", "history",
    "exam_history", "exams", "completed_exams",
)


def get_connection(db_path: str = DEFAULT_DB_PATH) -> sqlite3.Connection:
    """Return a SQLite connection with row factory and foreign keys enabled."""
    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


def init_db(db_path: str = DEFAULT_DB_PATH) -> None:
    """Initialize the database, creating all tables if they don't exist."""
    Path(db_path).parent.mkdir(parents=True, exist_ok=True)
    conn = get_connection(db_path)
    conn.executescript(SCHEMA)
    conn.commit()
    conn.close()


def get_setting(db_path: str, key: str, default: str | None = None) -> str | None:
    conn = get_connection(db_path)
    row = conn.execute("SELECT value FROM user_settings WHERE key = ?", (key,)).fetchone()
    conn.close()
    return row["value"] if row else default


def set_setting(db_path: str, key: str, value: str) -> None:
    conn = get_connection(db_path)
    conn.execute(
        "INSERT INTO user_settings (key, value) VALUES (?, ?) ON CONFLICT(key) DO UPDATE SET value=?",
        (key, value, value),
    )
    conn.commit()
    conn.close()


def save_progress(db_path: str, store: ProgressStore) -> None:
    """Replace the stored progress with `store` in a single transaction."""
    conn = get_connection(db_path)
    try:
        with conn:
            for table in PROGRESS_TABLES:
                conn.execute(f"DELETE FROM {table}")
            conn.executemany(
                "INSERT INTO spaced_repetition (question_id, level, last_seen, seen_count, last_seen_position) VALUES (?, ?, ?, ?, ?)",
                [(qid, r.level, r.last_seen, r.seen_count, r.last_seen_position)
                 for qid, r in store.spaced_repetition.items()],
            )
            conn.executemany(
                "INSERT INTO wrong_counts (question_id, count) VALUES (?, ?)",
                list(store.wrong_counts.items()),
            )
            conn.executemany(
                "INSERT INTO question_meta (question_id, flagged, note) VALUES (?, ?, ?)",
                [(qid, int(m.flagged), m.note) for qid, m in store.question_meta.items()],
            )
            conn.executemany(
                "INSERT INTO history (date, mode, total, correct, pct, avg_time) VALUES (?, ?, ?, ?, ?, ?)",
                [(h.date, h.mode, h.total, h.correct, h.pct, h.avg_time) for h in store.history],
            )
            conn.executemany(
                "INSERT INTO exam_history (id, date, mode, exam_index, duration, results, questions) VALUES (?, ?, ?, ?, ?, ?, ?)",
                [(r.id, r.date, r.mode, r.exam_index, r.duration, json.dumps(r.results), json.dumps(r.questions))
                 for r in store.exam_history],
            )
            conn.executemany(
                "INSERT INTO exams (exam_index, position, question_id) VALUES (?, ?, ?)",
                [(i, pos, qid) for i, exam in enumerate(store.exams) for pos, qid in enumerate(exam)],
            )
            conn.executemany(
                "INSERT INTO completed_exams (mode, exam_index) VALUES (?, ?)",
                [("learning", i) for i in store.completed_learning]
                + [("exam", i) for i in store.completed_exam],
            )
    finally:
        conn.close()


def load_progress(db_path: str) -> ProgressStore:
    conn = get_connection(db_path)
    store = ProgressStore()
    for row in conn.execute("SELECT * FROM spaced_repetition"):
        store.spaced_repetition[row["question_id"]] = SpacedRepetitionRecord(
            level=row["level"],
            last_seen=row["last_seen"],
            seen_count=row["seen_count"],
            last_seen_position=row["last_seen_position"],
        )
    for row in conn.execute("SELECT * FROM wrong_counts"):
        store.wrong_counts[row["question_id"]] = row["count"]
    for row in conn.execute("SELECT * FROM question_meta"):
        store.question_meta[row["question_id"]] = QuestionMeta(flagged=bool(row["flagged"]), note=row["note"] or "")
    for row in conn.execute("SELECT * FROM history ORDER BY id"):
        store.history.append(HistoryEntry(
            date=row["date"], mode=row["mode"] or "", total=row["total"],
            correct=row["correct"], pct=row["pct"], avg_time=row["avg_time"],
        ))
    for row in conn.execute("SELECT * FROM exam_history ORDER BY seq"):
        store.exam_history.append(ExamHistoryRecord(
            id=row["id"], date=row["date"], mode=row["mode"] or "",
            exam_index=row["exam_index"], duration=row["duration"],
            results=json.loads(row["results"]), questions=json.loads(row["questions"]),
        ))
    exams = {}
    for row in conn.execute("SELECT * FROM exams ORDER BY exam_index, position"):
        exams.setdefault(row["exam_index"], []).append(row["question_id"])
    store.exams = [exams[i] for i in sorted(exams)]
    for row in conn.execute("SELECT * FROM completed_exams"):
        target = store.completed_exam if row["mode"] == "exam" else store.completed_learning
        target.add(row["exam_index"])
    conn.close()
    return store
