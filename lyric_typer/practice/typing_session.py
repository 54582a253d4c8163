from __future__ import annotations

import math
import threading
import time
from enum import Enum
from typing import Callable

from lyric_typer.core.lyrics_models import LyricLine, LyricsRecord, TypingStats


class SessionState(str, Enum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def compare_line(user_input: str, target: str) -> tuple[int, int]:
    """Score one submitted line against its target.

    Returns ``(correct, total)``: ``correct`` counts matching positions up to
    the shorter of the two strings, ``total`` is always the target's length.
    Characters typed past the end of the target are ignored.
    """
    shortest = min(len(user_input), len(target))
    correct = sum(1 for i in range(shortest) if user_input[i] == target[i])
    return correct, len(target)


class TypingSession:
    """Line-by-line typing practice over one song's lyrics.

    States run NOT_STARTED -> IN_PROGRESS -> COMPLETED; reset() returns to
    NOT_STARTED from anywhere. Mutations are serialized by a lock, while
    calculate_stats() only reads the raw counters and may run alongside them.
    """

    def __init__(self, lyrics: LyricsRecord | None = None, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._lock = threading.RLock()
        self.lyrics = lyrics
        self._reset_progress()

    def _reset_progress(self) -> None:
        self.current_line_index = 0
        self.user_input = ""
        self.is_started = False
        self.is_completed = False
        self.start_time: float | None = None
        self.line_start_time: float | None = None
        self.total_chars = 0
        self.correct_chars = 0
        self.line_stats: list[dict] = []

    @property
    def state(self) -> SessionState:
        if self.is_completed:
            return SessionState.COMPLETED
        if self.is_started:
            return SessionState.IN_PROGRESS
        return SessionState.NOT_STARTED

    @property
    def total_lines(self) -> int:
        return self.lyrics.line_count if self.lyrics else 0

    @property
    def current_line(self) -> LyricLine | None:
        if not self.lyrics or self.is_completed or self.current_line_index >= self.total_lines:
            return None
        return self.lyrics.lines[self.current_line_index]

    @property
    def progress(self) -> int:
        """Percent of lines finished."""
        if not self.total_lines:
            return 0
        done = self.current_line_index + (1 if self.is_completed else 0)
        return _round_half_up(done / self.total_lines * 100)

    def load(self, lyrics: LyricsRecord | None) -> None:
        """Make ``lyrics`` the practice target, discarding any session progress."""
        with self._lock:
            self.lyrics = lyrics
            self._reset_progress()

    def clear(self) -> None:
        self.load(None)

    def start(self) -> None:
        with self._lock:
            now = self._clock()
            self._reset_progress()
            self.is_started = True
            self.start_time = now
            self.line_start_time = now

    def set_input(self, text: str) -> None:
        with self._lock:
            self.user_input = text or ""

    def submit_line(self) -> tuple[int, int] | None:
        """Score the input buffer against the current line and accumulate it.

        Calling this twice for the same line counts it twice. Returns None
        without touching the counters when there is no active line.
        """
        with self._lock:
            line = self.current_line
            if line is None:
                return None
            correct, total = compare_line(self.user_input, line.text)
            self.total_chars += total
            self.correct_chars += correct
            self.line_stats.append({"correct": correct, "total": total})
            return correct, total

    def advance(self) -> None:
        with self._lock:
            if not self.lyrics or self.is_completed:
                return
            if self.current_line_index >= self.total_lines - 1:
                self.is_completed = True
                self.user_input = ""
            else:
                self.current_line_index += 1
                self.user_input = ""
                self.line_start_time = self._clock()

    def submit_and_advance(self) -> tuple[int, int] | None:
        with self._lock:
            result = self.submit_line()
            if result is not None:
                self.advance()
            return result

    def reset(self) -> None:
        with self._lock:
            self._reset_progress()

    def calculate_stats(self) -> TypingStats:
        """Compute statistics from the current counters.

        Elapsed time runs from start() to now, also after completion. Accuracy
        is a percentage rounded to one decimal; cpm counts correct characters
        per minute.
        """
        start_time = self.start_time
        end_time = self._clock()
        total_chars = self.total_chars
        correct_chars = self.correct_chars

        elapsed = max(0.0, end_time - start_time) if start_time is not None else 0.0
        accuracy = (correct_chars / total_chars) * 100 if total_chars > 0 else 0.0
        cpm = _round_half_up(correct_chars / elapsed * 60) if elapsed > 0 else 0
        return TypingStats(
            elapsed_time=_round_half_up(elapsed),
            accuracy=_round_half_up(accuracy * 10) / 10,
            cpm=cpm,
            total_chars=total_chars,
            correct_chars=correct_chars,
        )
