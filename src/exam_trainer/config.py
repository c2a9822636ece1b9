"""Application configuration: exam constants, scheduling tunables and runtime settings."""
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Optional

import yaml
from dotenv import load_dotenv

DEFAULT_DB_PATH = str(Path.home() / ".exam_trainer" / "trainer.db")
DEFAULT_QUESTIONS_PATH = "questions.json"


@dataclass(frozen=True)
class ExamConfig:
    total_exams: int = 5
    pass_threshold: int = 72
    time_limit_minutes: int = 105
    history_limit: int = 50

    @property
    def time_limit_seconds(self) -> int:
        return self.time_limit_minutes * 60


@dataclass(frozen=True)
class SpacedRepConfig:
    """Levels: 0 = new or just failed, 5 = mastered.

    Intervals are counted in answered questions, not days.
    """
    max_level: int = 5
    intervals: dict = field(default_factory=lambda: {0: 2, 1: 4, 2: 8, 3: 15, 4: 25, 5: 50})
    correct_sure: int = 2
    correct_not_sure: int = 1
    wrong: int = -2
    level_penalty: int = 10
    new_question_score: float = -1000.0
    new_question_jitter: float = 100.0


@dataclass(frozen=True)
class Delays:
    save_debounce: float = 0.5


EXAM_CONFIG = ExamConfig()
SPACED_REP_CONFIG = SpacedRepConfig()
DELAYS = Delays()


@dataclass
class Settings:
    db_path: str = DEFAULT_DB_PATH
    questions_path: str = DEFAULT_QUESTIONS_PATH
    supabase_url: Optional[str] = None
    supabase_key: Optional[str] = None
    profile_prefix: str = "trainer"
    session_size: int = 30
    log_level: str = "WARNING"

    @property
    def remote_configured(self) -> bool:
        return bool(self.supabase_url and self.supabase_key)


# Environment variable -> Settings attribute
ENV_OVERRIDES = {
    "EXAM_TRAINER_DB": "db_path",
    "EXAM_TRAINER_QUESTIONS": "questions_path",
    "SUPABASE_URL": "supabase_url",
    "SUPABASE_KEY": "supabase_key",
    "EXAM_TRAINER_LOG_LEVEL": "log_level",
}


def read_config_file(config_path: str) -> dict:
    """Read a YAML settings file. Unknown keys are rejected."""
    data = yaml.safe_load(Path(config_path).read_text()) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{config_path}: expected a mapping at the top level")
    known = {f.name for f in fields(Settings)}
    unknown = set(data) - known
    if unknown:
        raise ValueError(f"{config_path}: unknown settings {', '.join(sorted(unknown))}")
    return data


def load_settings(config_path: str | None = None) -> Settings:
    """Build settings from defaults, an optional YAML file, then the environment."""
    load_dotenv()
    values = {}
    if config_path and Path(config_path).exists():
        values.update(read_config_file(config_path))
    for env_name, attr in ENV_OVERRIDES.items():
        if os.environ.get(env_name):
            values[attr] = os.environ[env_name]
    settings = Settings(**values)
    settings.session_size = int(settings.session_size)
    return settings
