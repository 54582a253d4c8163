import logging
from dataclasses import dataclass, field
from enum import Enum

from .errors import LyricsFormatError

logger = logging.getLogger(__name__)


class Language(str, Enum):
    KO = "ko"
    EN = "en"
    MIXED = "mixed"


def normalize_key(value) -> str:
    """Normalize an artist or title for cache lookups and storage."""
    return str(value or "").strip().lower()


@dataclass
class LyricLine:
    """A single typeable line of a song, in song order."""

    index: int
    text: str

    def to_dict(self) -> dict:
        return {"index": self.index, "text": self.text}


@dataclass
class LyricsRecord:
    """Resolved lyrics for one song.

    ``artist`` and ``title`` keep the casing the pipeline returned; the store
    keys rows by their normalized form. ``id`` and the timestamps are only set
    on records read back from the store.
    """

    title: str
    artist: str
    language: Language
    lines: list[LyricLine] = field(default_factory=list)
    id: int | None = None
    created_at: float | None = None
    updated_at: float | None = None

    @property
    def key(self) -> tuple[str, str]:
        return (normalize_key(self.artist), normalize_key(self.title))

    @property
    def line_count(self) -> int:
        return len(self.lines)

    def to_dict(self) -> dict:
        return {
            "title": self.title,
            "artist": self.artist,
            "language": self.language.value,
            "lines": [line.to_dict() for line in self.lines],
        }

    @classmethod
    def from_dict(cls, data) -> "LyricsRecord":
        """Build a record from the wire shape, validating it on the way.

        Raises LyricsFormatError when the payload does not conform.
        """
        if not isinstance(data, dict):
            raise LyricsFormatError("expected a JSON object")
        for name in ("title", "artist", "language", "lines"):
            if name not in data:
                raise LyricsFormatError(f"missing field '{name}'")
        title = data["title"]
        artist = data["artist"]
        if not isinstance(title, str) or not isinstance(artist, str):
            raise LyricsFormatError("title and artist must be strings")
        try:
            language = Language(data["language"])
        except ValueError:
            raise LyricsFormatError(f"unsupported language {data['language']!r}") from None
        raw_lines = data["lines"]
        if not isinstance(raw_lines, list):
            raise LyricsFormatError("lines must be an array")

        lines = []
        for position, item in enumerate(raw_lines):
            if not isinstance(item, dict) or "index" not in item or "text" not in item:
                raise LyricsFormatError(f"line {position} needs index and text")
            index = item["index"]
            text = item["text"]
            # JSON numbers may come back as 3.0
            if isinstance(index, float) and index.is_integer():
                index = int(index)
            if isinstance(index, bool) or not isinstance(index, int) or index < 0:
                raise LyricsFormatError(f"line {position} has invalid index {index!r}")
            if not isinstance(text, str):
                raise LyricsFormatError(f"line {position} text must be a string")
            if not text.strip():
                logger.debug("Dropping blank lyric line [index]=[%s] [title]=[%s]", index, title)
                continue
            lines.append(LyricLine(index=index, text=text))
        return cls(title=title, artist=artist, language=language, lines=lines)


@dataclass
class SongSummary:
    """Listing row for a cached song."""

    id: int
    artist: str
    title: str
    language: str
    line_count: int
    created_at: float
    updated_at: float

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "artist": self.artist,
            "title": self.title,
            "language": self.language,
            "lineCount": self.line_count,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }


@dataclass
class SongInfo:
    artist: str
    title: str

    def to_dict(self) -> dict:
        return {"artist": self.artist, "title": self.title}


@dataclass
class TypingStats:
    elapsed_time: int = 0
    accuracy: float = 0.0
    cpm: int = 0
    total_chars: int = 0
    correct_chars: int = 0

    def to_dict(self) -> dict:
        return {
            "elapsedTime": self.elapsed_time,
            "accuracy": self.accuracy,
            "cpm": self.cpm,
            "totalChars": self.total_chars,
            "correctChars": self.correct_chars,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "TypingStats":
        return cls(
            elapsed_time=int(data.get("elapsedTime", 0) or 0),
            accuracy=float(data.get("accuracy", 0.0) or 0.0),
            cpm=int(data.get("cpm", 0) or 0),
            total_chars=int(data.get("totalChars", 0) or 0),
            correct_chars=int(data.get("correctChars", 0) or 0),
        )


@dataclass
class PracticeRecord:
    """One completed, saved practice session."""

    id: str
    title: str
    artist: str
    completed_at: str
    stats: TypingStats

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "artist": self.artist,
            "completedAt": self.completed_at,
            "stats": self.stats.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "PracticeRecord":
        return cls(
            id=str(data.get("id", "")),
            title=str(data.get("title", "")),
            artist=str(data.get("artist", "")),
            completed_at=str(data.get("completedAt", "")),
            stats=TypingStats.from_dict(data.get("stats") or {}),
        )
