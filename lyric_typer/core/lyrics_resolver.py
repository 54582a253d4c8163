import logging
import socket
import time
import uuid

import requests

from .errors import PipelineError, ValidationError
from .generation_client import GeminiGenerationClient, build_search_prompt

logger = logging.getLogger(__name__)

LOG_PREFIX = "[lyrics API]"


def generate_request_id():
    return f"req_{int(time.time() * 1000)}_{uuid.uuid4().hex[:6]}"


class LyricsResolver:

    # Wire the cache store and generation capability together.
    def __init__(self, store, client=None):
        """
        Initialize the resolver.

        ``store`` is a LyricsCacheStore (or anything with the same contract);
        ``client`` defaults to the Gemini-backed generation client.
        """
        self.store = store
        self.client = client if client is not None else GeminiGenerationClient()

    # Report current resolver status for diagnostics.
    def health(self):
        status = {
            "lyrics_resolver": "cache_then_generate",
            "lyrics_cache_connected": bool(self.store.is_connected()),
        }
        status.update(self.client.health())
        return status

    # Resolve lyrics cache-first, falling back to the two-stage pipeline.
    def resolve(self, artist, title, request_id=None):
        """
        Return a LyricsRecord for ``artist``/``title``.

        A cache hit returns immediately. On a miss the search stage produces
        raw text, the structuring stage turns it into lines, and a record with
        at least one line is written through to the cache. Write-through
        failures are logged and ignored; pipeline failures raise PipelineError.
        """
        request_id = request_id or generate_request_id()
        started = time.perf_counter()
        artist = str(artist or "").strip()
        title = str(title or "").strip()
        if not artist:
            raise ValidationError("artist", "Artist and title are required")
        if not title:
            raise ValidationError("title", "Artist and title are required")

        connected = self.store.is_connected()
        logger.info(
            "%s [requestId]=[%s] Request received [artist]=[%s] [title]=[%s] [dbConnected]=[%s]",
            LOG_PREFIX,
            request_id,
            artist,
            title,
            connected,
        )

        if connected:
            cached = self.store.find_by_artist_title(artist, title)
            if cached is not None:
                logger.info(
                    "%s [requestId]=[%s] Cache hit [linesCount]=[%d] [totalDuration]=[%dms]",
                    LOG_PREFIX,
                    request_id,
                    cached.line_count,
                    self._elapsed_ms(started),
                )
                return cached
            logger.info("%s [requestId]=[%s] Cache miss - generating", LOG_PREFIX, request_id)
        else:
            logger.info(
                "%s [requestId]=[%s] Database not connected - skipping cache check",
                LOG_PREFIX,
                request_id,
            )

        step_started = time.perf_counter()
        raw_text = self.client.search_raw_text(build_search_prompt(artist, title)) or ""
        search_ms = self._elapsed_ms(step_started)
        logger.info(
            "%s [requestId]=[%s] Search completed [duration]=[%dms] [rawLyricsLength]=[%d]",
            LOG_PREFIX,
            request_id,
            search_ms,
            len(raw_text),
        )
        logger.debug("%s [requestId]=[%s] Raw lyrics:\n%s", LOG_PREFIX, request_id, raw_text)

        step_started = time.perf_counter()
        record = self.client.structure_lyrics(raw_text, {"artist": artist, "title": title})
        structure_ms = self._elapsed_ms(step_started)
        logger.info(
            "%s [requestId]=[%s] Structuring completed [duration]=[%dms] [linesCount]=[%d] [language]=[%s]",
            LOG_PREFIX,
            request_id,
            structure_ms,
            record.line_count,
            record.language.value,
        )

        # Empty results are returned but never cached, so a later retry can still succeed.
        if record.lines and self.store.is_connected():
            try:
                saved = self.store.upsert(record)
            except Exception:
                logger.exception("%s [requestId]=[%s] Cache write-through raised", LOG_PREFIX, request_id)
                saved = False
            logger.info(
                "%s [requestId]=[%s] Save %s",
                LOG_PREFIX,
                request_id,
                "successful" if saved else "failed",
            )

        logger.info(
            "%s [requestId]=[%s] Request completed [totalDuration]=[%dms] [source]=[llm]",
            LOG_PREFIX,
            request_id,
            self._elapsed_ms(started),
        )
        return record

    # Check whether an exception looks like a provider timeout.
    @staticmethod
    def is_timeout_exception(exc):
        if isinstance(exc, (TimeoutError, socket.timeout, requests.Timeout)):
            return True
        if isinstance(exc, PipelineError) and isinstance(exc.__cause__, requests.Timeout):
            return True
        text = str(exc or "").lower()
        return "timed out" in text or "timeout" in text

    @staticmethod
    def _elapsed_ms(started):
        return int((time.perf_counter() - started) * 1000)
