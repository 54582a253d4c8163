from __future__ import annotations

import datetime as dt
import json
import logging
import threading
import time
import uuid
from pathlib import Path
from typing import Any, Callable

from lyric_typer.config import settings
from lyric_typer.core.errors import LyricsFormatError
from lyric_typer.core.lyrics_models import LyricsRecord, PracticeRecord
from .typing_session import TypingSession

logger = logging.getLogger(__name__)


def generate_record_id() -> str:
    return f"{int(time.time() * 1000)}-{uuid.uuid4().hex[:7]}"


class PracticeHistoryStore:
    """Durable practice history plus the last practiced lyrics.

    The file holds ``{"history": [...], "lyrics": {...} | null}`` and nothing
    else; session progress is never written. History is most-recent-first and
    capped at ``max_entries``.
    """

    def __init__(self, path: Path | None = None, max_entries: int = settings.HISTORY_MAX) -> None:
        self.path = Path(path or settings.HISTORY_PATH)
        self.max_entries = max(1, int(max_entries))
        self._lock = threading.Lock()
        self._history: list[PracticeRecord] = []
        self._lyrics: LyricsRecord | None = None
        self._load()

    def _load(self) -> None:
        if not self.path.exists():
            return
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            logger.warning("Ignoring unreadable practice history %s: %s", self.path, exc)
            return
        if not isinstance(data, dict):
            return
        entries = data.get("history")
        for item in entries if isinstance(entries, list) else []:
            if not isinstance(item, dict):
                continue
            try:
                self._history.append(PracticeRecord.from_dict(item))
            except (ValueError, TypeError, AttributeError) as exc:
                logger.warning("Skipping malformed practice record in %s: %s", self.path, exc)
        self._history = self._history[: self.max_entries]
        lyrics = data.get("lyrics")
        if lyrics:
            try:
                self._lyrics = LyricsRecord.from_dict(lyrics)
            except LyricsFormatError as exc:
                logger.warning("Dropping stored lyrics from %s: %s", self.path, exc)

    def _serialize(self, history: list[PracticeRecord], lyrics: LyricsRecord | None) -> dict[str, Any]:
        return {
            "history": [record.to_dict() for record in history],
            "lyrics": lyrics.to_dict() if lyrics else None,
        }

    def _write(self, history: list[PracticeRecord], lyrics: LyricsRecord | None) -> None:
        # Write a sibling file then swap it in so readers never see a partial file.
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp_path.write_text(
            json.dumps(self._serialize(history, lyrics), ensure_ascii=False, indent=2),
            encoding="utf-8",
        )
        tmp_path.replace(self.path)
        self._history = history
        self._lyrics = lyrics

    @property
    def history(self) -> list[PracticeRecord]:
        return list(self._history)

    @property
    def last_lyrics(self) -> LyricsRecord | None:
        return self._lyrics

    def save(self, session: TypingSession) -> PracticeRecord | None:
        """Record ``session``'s final stats at the head of the history.

        Returns the new record, or None when the session has no lyrics.
        """
        lyrics = session.lyrics
        if lyrics is None:
            return None
        record = PracticeRecord(
            id=generate_record_id(),
            title=lyrics.title,
            artist=lyrics.artist,
            completed_at=dt.datetime.now(dt.timezone.utc).isoformat(),
            stats=session.calculate_stats(),
        )
        with self._lock:
            history = [record, *self._history][: self.max_entries]
            self._write(history, self._lyrics)
        return record

    def clear(self) -> None:
        """Drop every history entry at once; callers confirm with the user first."""
        with self._lock:
            self._write([], self._lyrics)

    def remember_lyrics(self, lyrics: LyricsRecord | None) -> None:
        with self._lock:
            self._write(list(self._history), lyrics)

    def restore_session(self, clock: Callable[[], float] | None = None) -> TypingSession:
        """Rebuild a session from durable state; progress starts from scratch."""
        if clock is None:
            return TypingSession(lyrics=self._lyrics)
        return TypingSession(lyrics=self._lyrics, clock=clock)
