"""Exam countdown and per-question clocks.

Both take an injectable monotonic clock so rounds can be replayed in tests.
"""
import time


class ExamTimer:
    """Countdown for a whole round. Stopping is explicit; a stopped timer never expires."""

    def __init__(self, limit_seconds: int, clock=time.monotonic):
        self.limit_seconds = limit_seconds
        self._clock = clock
        self._started_at = None
        self._stopped_at = None
        self.visible = True

    @property
    def running(self) -> bool:
        return self._started_at is not None and self._stopped_at is None

    def start(self, visible: bool = True) -> None:
        self._started_at = self._clock()
        self._stopped_at = None
        self.visible = visible

    def stop(self) -> None:
        if self.running:
            self._stopped_at = self._clock()

    def elapsed(self) -> int:
        if self._started_at is None:
            return 0
        end = self._stopped_at if self._stopped_at is not None else self._clock()
        return int(end - self._started_at)

    def remaining(self) -> int:
        return max(self.limit_seconds - self.elapsed(), 0)

    def expired(self) -> bool:
        # Learning mode hides the countdown and never times out.
        return self.running and self.visible and self.remaining() == 0


class QuestionTimer:
    """Seconds spent on the question currently shown."""

    def __init__(self, clock=time.monotonic):
        self._clock = clock
        self._started_at = None

    @property
    def running(self) -> bool:
        return self._started_at is not None

    def reset(self) -> None:
        self._started_at = self._clock()

    def stop(self) -> None:
        self._started_at = None

    def elapsed(self) -> int:
        if self._started_at is None:
            return 0
        return round(self._clock() - self._started_at)


def format_time(seconds: int) -> str:
    mins, secs = divmod(int(seconds), 60)
    return f"{mins:02d}:{secs:02d}"


def format_time_verbose(seconds: int) -> str:
    mins, secs = divmod(int(seconds), 60)
    return f"{mins}m {secs}s"
