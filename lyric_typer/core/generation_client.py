import json
import logging
from abc import ABC, abstractmethod

import requests

from lyric_typer.config import settings
from .errors import LyricsFormatError, PipelineError
from .lyrics_models import LyricsRecord

logger = logging.getLogger(__name__)

# Response schema for the structuring stage, in Gemini's OpenAPI subset.
LYRICS_SCHEMA = {
    "type": "OBJECT",
    "properties": {
        "title": {"type": "STRING", "description": "The title of the song"},
        "artist": {"type": "STRING", "description": "The artist/singer name"},
        "language": {
            "type": "STRING",
            "enum": ["ko", "en", "mixed"],
            "description": "Primary language of the lyrics",
        },
        "lines": {
            "type": "ARRAY",
            "items": {
                "type": "OBJECT",
                "properties": {
                    "index": {"type": "NUMBER", "description": "Line number starting from 0"},
                    "text": {"type": "STRING", "description": "The lyric text for this line"},
                },
                "required": ["index", "text"],
            },
            "description": "Array of lyric lines",
        },
    },
    "required": ["title", "artist", "language", "lines"],
}


def build_search_prompt(artist: str, title: str) -> str:
    return (
        f'Search for the complete lyrics of the song "{title}" by "{artist}".\n'
        "Return ONLY the original lyrics text, line by line, without any explanation, "
        "commentary, or romanization."
    )


def build_structure_prompt(raw_text: str, artist: str, title: str) -> str:
    return (
        "Convert the following lyrics into a structured JSON format.\n\n"
        f"Lyrics:\n{raw_text}\n\n"
        "Song Info:\n"
        f"- Title: {title}\n"
        f"- Artist: {artist}\n\n"
        "Instructions:\n"
        "- Return ONLY the original lyrics text line by line\n"
        "- Each line should be a meaningful segment (not word by word)\n"
        "- Do NOT include romanization or any translation\n"
        "- Detect the language: 'ko' for Korean, 'en' for English, 'mixed' for mixed languages\n"
        "- Do not include section markers like [Verse], [Chorus] etc in the text\n"
        "- If lyrics are empty, return empty lines array"
    )


class GenerationClient(ABC):
    """Capability interface for the two-stage lyrics pipeline."""

    @abstractmethod
    def search_raw_text(self, prompt: str) -> str:
        """Return best-effort plain lyrics text for a search prompt.

        An empty string is a valid answer. Raises PipelineError on transport
        failures.
        """

    @abstractmethod
    def structure_lyrics(self, raw_text: str, metadata: dict) -> LyricsRecord:
        """Turn raw lyrics text into a validated LyricsRecord.

        ``metadata`` carries ``artist`` and ``title``. Raises PipelineError when
        the call fails or the output does not match LYRICS_SCHEMA.
        """

    def health(self) -> dict:
        return {}


class GeminiGenerationClient(GenerationClient):
    """GenerationClient backed by the Gemini ``generateContent`` REST endpoint."""

    def __init__(self, api_key=None, model=None, base_url=None, timeout_sec=None):
        self.api_key = str(api_key if api_key is not None else settings.GEMINI_API_KEY).strip()
        self.model = str(model or settings.GEMINI_MODEL)
        self.base_url = str(base_url or settings.GEMINI_BASE_URL).rstrip("/")
        self.timeout_sec = float(timeout_sec or settings.GEMINI_TIMEOUT_SEC)
        self.enabled = bool(self.api_key)

    def health(self) -> dict:
        return {
            "generation_model": self.model,
            "generation_enabled": self.enabled,
            "generation_timeout_sec": self.timeout_sec,
        }

    def search_raw_text(self, prompt: str) -> str:
        payload = {
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "tools": [{"google_search": {}}],
        }
        data = self._generate(payload, stage="search")
        return self._response_text(data)

    def structure_lyrics(self, raw_text: str, metadata: dict) -> LyricsRecord:
        prompt = build_structure_prompt(
            raw_text or "",
            str(metadata.get("artist", "")),
            str(metadata.get("title", "")),
        )
        payload = {
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "generationConfig": {
                "responseMimeType": "application/json",
                "responseSchema": LYRICS_SCHEMA,
            },
        }
        data = self._generate(payload, stage="structure")
        text = self._response_text(data).strip() or "{}"
        logger.debug("Structured lyrics response: %s", text)
        try:
            parsed = json.loads(text)
        except ValueError as exc:
            raise LyricsFormatError(f"response is not valid JSON ({exc})") from exc
        return LyricsRecord.from_dict(parsed)

    def _generate(self, payload: dict, stage: str) -> dict:
        if not self.enabled:
            raise PipelineError("Gemini API key not configured", stage=stage)
        url = f"{self.base_url}/models/{self.model}:generateContent"
        headers = {
            "x-goog-api-key": self.api_key,
            "Content-Type": "application/json",
        }
        try:
            response = requests.post(url, headers=headers, json=payload, timeout=self.timeout_sec)
        except requests.Timeout as exc:
            raise PipelineError(
                f"Gemini {stage} request timed out after {self.timeout_sec:.0f}s", stage=stage
            ) from exc
        except requests.RequestException as exc:
            raise PipelineError(f"Gemini {stage} request failed: {exc}", stage=stage) from exc

        if response.status_code != 200:
            raise PipelineError(
                f"Gemini {stage} request returned HTTP {response.status_code}: {response.text[:200]}",
                stage=stage,
            )
        try:
            return response.json()
        except ValueError as exc:
            raise PipelineError(f"Gemini {stage} response is not JSON", stage=stage) from exc

    @staticmethod
    def _response_text(data) -> str:
        # Text parts of the first candidate, concatenated in order
        if not isinstance(data, dict):
            return ""
        candidates = data.get("candidates") or []
        if not candidates:
            return ""
        parts = ((candidates[0] or {}).get("content") or {}).get("parts") or []
        return "".join(str(part.get("text") or "") for part in parts if isinstance(part, dict))
