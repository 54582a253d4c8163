class LyricTyperError(Exception):
    """Base exception for lyric_typer."""


class ValidationError(LyricTyperError):
    """Raised when a required field is missing or empty."""

    def __init__(self, field: str, message: str | None = None):
        self.field = field
        super().__init__(message or f"{field} is required")


class StoreUnavailable(LyricTyperError):
    """Raised when the lyrics cache store cannot be reached."""

    def __init__(self, message: str = "Database not connected"):
        super().__init__(message)


class NotFound(LyricTyperError):
    """Raised when a requested song id does not exist in the store."""

    def __init__(self, song_id):
        self.song_id = song_id
        super().__init__(f"Song not found: {song_id}")


class PipelineError(LyricTyperError):
    """Raised when a generation stage fails or returns unusable output."""

    def __init__(self, message: str, stage: str = ""):
        self.stage = stage
        super().__init__(message)


class LyricsFormatError(PipelineError):
    """Raised when structured lyrics do not match the expected shape."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Malformed lyrics data: {reason}", stage="structure")
