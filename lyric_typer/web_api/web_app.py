import logging
import time

from flask import Flask, jsonify, request

from lyric_typer.config import settings
from lyric_typer.core.errors import NotFound, PipelineError, StoreUnavailable, ValidationError
from lyric_typer.core.lyrics_resolver import LyricsResolver, generate_request_id
from lyric_typer.storage.lyrics_cache_store import LyricsCacheStore

app = Flask(__name__)
app.json.ensure_ascii = False
app.json.sort_keys = False

lyrics_store = LyricsCacheStore()
lyrics_resolver = LyricsResolver(lyrics_store)


def _short(value, limit=120):
    text = str(value)
    return text if len(text) <= limit else text[: limit - 3] + "..."


def _debug_log(event_name, **fields):
    """
    Log a request event with its key/value fields.

    Only active when LYRIC_TYPER_DEBUG_LOG is set.
    """
    if not settings.DEBUG_LOG:
        return
    parts = [f"{key}={_short(value)}" for key, value in fields.items()]
    logging.info("[api-debug] %s | %s", event_name, " | ".join(parts))


def _elapsed_ms(started):
    return int((time.perf_counter() - started) * 1000)


def _error(message, status):
    return jsonify({"success": False, "error": message}), status


# Parse a song id from the URL, raising ValidationError for non-integers.
def _parse_song_id(raw_id):
    try:
        return int(str(raw_id or "").strip())
    except ValueError:
        raise ValidationError("id", "Invalid song ID") from None


# Ready the store and refuse the request when it is unreachable.
def _require_store():
    if not lyrics_store.ensure_ready():
        raise StoreUnavailable()


@app.route("/health", methods=["GET"])
def health():
    lyrics_store.ensure_ready()
    return jsonify(
        {
            "status": "healthy",
            "songs_cached": lyrics_store.count(),
            **lyrics_resolver.health(),
        }
    )


@app.route("/api/lyrics", methods=["POST"])
def resolve_lyrics():
    """
    Resolve lyrics for ``{artist, title}``.

    Missing fields are rejected with 400 before any cache or pipeline call.
    Pipeline failures come back as 500 with the error message.
    """
    started = time.perf_counter()
    request_id = generate_request_id()
    body = request.get_json(silent=True) or {}
    artist = str(body.get("artist") or "").strip() if isinstance(body, dict) else ""
    title = str(body.get("title") or "").strip() if isinstance(body, dict) else ""
    _debug_log("api.lyrics.request", request_id=request_id, artist=artist, title=title)
    if not artist or not title:
        _debug_log("api.lyrics.error", request_id=request_id, reason="missing artist/title")
        return _error("Artist and title are required", 400)

    lyrics_store.ensure_ready()
    try:
        record = lyrics_resolver.resolve(artist, title, request_id=request_id)
    except ValidationError as e:
        return _error(str(e), 400)
    except PipelineError as e:
        if lyrics_resolver.is_timeout_exception(e):
            logging.warning("Lyrics pipeline timeout [requestId]=[%s]", request_id)
        else:
            logging.error("Lyrics pipeline failed [requestId]=[%s] [error]=[%s]", request_id, e)
        _debug_log(
            "api.lyrics.fail",
            request_id=request_id,
            stage=e.stage,
            message=str(e),
            elapsed_ms=_elapsed_ms(started),
        )
        return _error(str(e) or "Unknown error occurred", 500)
    except Exception as e:
        logging.exception("Lyrics request failed [requestId]=[%s]", request_id)
        return _error(str(e) or "Unknown error occurred", 500)

    _debug_log(
        "api.lyrics.ok",
        request_id=request_id,
        lines=record.line_count,
        elapsed_ms=_elapsed_ms(started),
    )
    return jsonify({"success": True, "data": record.to_dict()})


@app.route("/api/songs", methods=["GET"])
def list_songs():
    try:
        if not lyrics_store.ensure_ready():
            return jsonify({"success": True, "data": {"songs": [], "isConnected": False}})
        songs = [song.to_dict() for song in lyrics_store.list_all()]
        return jsonify({"success": True, "data": {"songs": songs, "isConnected": True}})
    except Exception as e:
        logging.exception("Listing songs failed")
        return _error(str(e) or "Unknown error", 500)


@app.route("/api/songs/random", methods=["GET"])
def random_songs():
    try:
        if not lyrics_store.ensure_ready():
            return jsonify({"success": True, "data": {"songs": [], "totalCount": 0}})
        songs = lyrics_store.sample_random(settings.RANDOM_SONGS_LIMIT)
        return jsonify(
            {
                "success": True,
                "data": {
                    "songs": [song.to_dict() for song in songs],
                    "totalCount": lyrics_store.count(),
                },
            }
        )
    except Exception as e:
        logging.exception("Sampling songs failed")
        return _error(str(e) or "Unknown error", 500)


@app.route("/api/songs/<song_id>", methods=["GET"])
def get_song(song_id):
    try:
        _require_store()
        parsed_id = _parse_song_id(song_id)
        record = lyrics_store.get_by_id(parsed_id)
        if record is None:
            raise NotFound(parsed_id)
        return jsonify({"success": True, "data": record.to_dict()})
    except StoreUnavailable as e:
        return _error(str(e), 503)
    except ValidationError as e:
        return _error(str(e), 400)
    except NotFound:
        return _error("Song not found", 404)
    except Exception as e:
        logging.exception("Reading song %s failed", song_id)
        return _error(str(e) or "Unknown error", 500)


@app.route("/api/songs/<song_id>", methods=["DELETE"])
def delete_song(song_id):
    try:
        _require_store()
        parsed_id = _parse_song_id(song_id)
        if not lyrics_store.delete_by_id(parsed_id):
            raise NotFound(parsed_id)
        return jsonify({"success": True})
    except StoreUnavailable as e:
        return _error(str(e), 503)
    except ValidationError as e:
        return _error(str(e), 400)
    except NotFound:
        return _error("Song not found or could not be deleted", 404)
    except Exception as e:
        logging.exception("Deleting song %s failed", song_id)
        return _error(str(e) or "Unknown error", 500)
