import json
import logging
import sqlite3
import threading
import time
from contextlib import closing
from pathlib import Path

from lyric_typer.config import settings
from lyric_typer.core.errors import LyricsFormatError
from lyric_typer.core.lyrics_models import LyricsRecord, SongInfo, SongSummary, normalize_key

logger = logging.getLogger(__name__)

LOG_PREFIX = "[DB]"


class LyricsCacheStore:

    # Initialize class state; the database is only touched by ensure_ready().
    def __init__(self, db_path=None, connect_timeout_sec=10.0, clock=time.time):
        """
        Initialize the store.

        Nothing is created on disk until ensure_ready() runs, so building a
        store is always cheap and never fails.
        """
        self.db_path = str(db_path or settings.LYRICS_DB_PATH)
        self.connect_timeout_sec = float(connect_timeout_sec)
        self._clock = clock
        self._ready_lock = threading.Lock()
        self._ready_checked = False
        self._connected = False

    # One-time initialization, safe to call from every request path.
    def ensure_ready(self):
        """
        Initialize the database once and report whether it is usable.

        Concurrent callers block on the same lock, so at most one real
        initialization attempt runs; the outcome is remembered for later calls.
        """
        if self._ready_checked:
            return self._connected
        with self._ready_lock:
            if not self._ready_checked:
                self._connected = self._init_db()
                self._ready_checked = True
        return self._connected

    # Forget the previous initialization outcome so the next call retries.
    def reset_ready(self):
        with self._ready_lock:
            self._ready_checked = False
            self._connected = False

    # Connectivity predicate consulted before any cache operation.
    def is_connected(self):
        return bool(self._connected)

    # Mark the store as closed; later operations degrade to empty results.
    def close(self):
        if self._connected:
            self._connected = False
            logger.info("%s Database connection closed", LOG_PREFIX)

    # Internal helper to init db.
    def _init_db(self):
        """
        Create the database file and lyrics table.

        Returns False, after logging, when the database cannot be opened so
        the application keeps running without caching.
        """
        logger.info("%s Starting database initialization [path]=[%s]", LOG_PREFIX, self.db_path)
        try:
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
            with closing(self._conn()) as conn:
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS lyrics_cache (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        artist TEXT NOT NULL,
                        title TEXT NOT NULL,
                        language TEXT NOT NULL,
                        lyrics_json TEXT NOT NULL,
                        created_at REAL NOT NULL,
                        updated_at REAL NOT NULL,
                        UNIQUE (artist, title)
                    )
                    """
                )
                conn.execute(
                    "CREATE INDEX IF NOT EXISTS idx_lyrics_cache_updated ON lyrics_cache(updated_at)"
                )
                conn.execute("SELECT 1").fetchone()
                conn.commit()
        except (sqlite3.Error, OSError) as exc:
            logger.warning(
                "%s Database initialization failed [error]=[%s]; "
                "continuing without database caching",
                LOG_PREFIX,
                exc,
            )
            return False
        logger.info("%s Database initialization completed", LOG_PREFIX)
        return True

    # Internal helper to conn.
    def _conn(self):
        return sqlite3.connect(self.db_path, timeout=self.connect_timeout_sec)

    # Build a record from a lyrics_cache row; corrupt rows read as a miss.
    @staticmethod
    def _record_from_row(row):
        song_id, _artist, _title, _language, lyrics_json, created_at, updated_at = row
        try:
            record = LyricsRecord.from_dict(json.loads(lyrics_json))
        except (ValueError, LyricsFormatError) as exc:
            logger.error("%s Stored lyrics are unreadable [id]=[%s] [error]=[%s]", LOG_PREFIX, song_id, exc)
            return None
        record.id = int(song_id)
        record.created_at = float(created_at)
        record.updated_at = float(updated_at)
        return record

    # Look up cached lyrics by normalized artist/title.
    def find_by_artist_title(self, artist, title):
        """
        Find lyrics by artist and title.

        Both inputs are trimmed and lowercased first. A miss, an unreachable
        store and a database error all return None.
        """
        if not self.is_connected():
            return None
        key_artist = normalize_key(artist)
        key_title = normalize_key(title)
        try:
            with closing(self._conn()) as conn:
                row = conn.execute(
                    "SELECT id, artist, title, language, lyrics_json, created_at, updated_at "
                    "FROM lyrics_cache WHERE artist=? AND title=? LIMIT 1",
                    (key_artist, key_title),
                ).fetchone()
        except sqlite3.Error as exc:
            logger.error("%s Error finding lyrics [error]=[%s]", LOG_PREFIX, exc)
            return None
        if row is None:
            logger.info("%s Cache miss [artist]=[%s] [title]=[%s]", LOG_PREFIX, artist, title)
            return None
        record = self._record_from_row(row)
        if record is not None:
            logger.info(
                "%s Cache hit [artist]=[%s] [title]=[%s] [linesCount]=[%d]",
                LOG_PREFIX,
                artist,
                title,
                record.line_count,
            )
        return record

    # Insert or update lyrics for the record's normalized key.
    def upsert(self, record):
        """
        Write lyrics for ``record`` in a single atomic statement.

        A new key inserts a row; an existing key overwrites language and
        lyrics and moves updated_at forward, so the last writer wins.
        Returns False when the store is unavailable or the write fails.
        """
        if not self.is_connected():
            return False
        key_artist, key_title = record.key
        now = self._clock()
        payload = json.dumps(record.to_dict(), ensure_ascii=False)
        try:
            with closing(self._conn()) as conn:
                with conn:
                    conn.execute(
                        """
                        INSERT INTO lyrics_cache
                            (artist, title, language, lyrics_json, created_at, updated_at)
                        VALUES (?, ?, ?, ?, ?, ?)
                        ON CONFLICT (artist, title) DO UPDATE SET
                            language = excluded.language,
                            lyrics_json = excluded.lyrics_json,
                            updated_at = MAX(excluded.updated_at, lyrics_cache.updated_at + 0.000001)
                        """,
                        (key_artist, key_title, record.language.value, payload, now, now),
                    )
        except sqlite3.Error as exc:
            logger.error("%s Error saving lyrics [error]=[%s]", LOG_PREFIX, exc)
            return False
        logger.info(
            "%s Lyrics saved [artist]=[%s] [title]=[%s]", LOG_PREFIX, record.artist, record.title
        )
        return True

    # List every cached song, most recently updated first.
    def list_all(self):
        if not self.is_connected():
            return []
        try:
            with closing(self._conn()) as conn:
                rows = conn.execute(
                    "SELECT id, artist, title, language, lyrics_json, created_at, updated_at "
                    "FROM lyrics_cache ORDER BY updated_at DESC, id DESC"
                ).fetchall()
        except sqlite3.Error as exc:
            logger.error("%s Error listing songs [error]=[%s]", LOG_PREFIX, exc)
            return []
        songs = []
        for song_id, artist, title, language, lyrics_json, created_at, updated_at in rows:
            try:
                line_count = len(json.loads(lyrics_json).get("lines") or [])
            except (ValueError, AttributeError):
                line_count = 0
            songs.append(
                SongSummary(
                    id=int(song_id),
                    artist=artist,
                    title=title,
                    language=language,
                    line_count=line_count,
                    created_at=float(created_at),
                    updated_at=float(updated_at),
                )
            )
        return songs

    # Pick up to n random songs for recommendations.
    def sample_random(self, n):
        """
        Sample up to ``n`` songs uniformly at random.

        Rows are returned with their normalized artist/title keys.
        """
        limit = int(n or 0)
        if limit <= 0 or not self.is_connected():
            return []
        try:
            with closing(self._conn()) as conn:
                rows = conn.execute(
                    "SELECT artist, title FROM lyrics_cache ORDER BY RANDOM() LIMIT ?",
                    (limit,),
                ).fetchall()
        except sqlite3.Error as exc:
            logger.error("%s Error sampling songs [error]=[%s]", LOG_PREFIX, exc)
            return []
        return [SongInfo(artist=artist, title=title) for artist, title in rows]

    def count(self):
        if not self.is_connected():
            return 0
        try:
            with closing(self._conn()) as conn:
                row = conn.execute("SELECT COUNT(*) FROM lyrics_cache").fetchone()
        except sqlite3.Error as exc:
            logger.error("%s Error counting songs [error]=[%s]", LOG_PREFIX, exc)
            return 0
        return int(row[0] if row else 0)

    # Fetch one cached song by its row id.
    def get_by_id(self, song_id):
        if not self.is_connected():
            return None
        try:
            with closing(self._conn()) as conn:
                row = conn.execute(
                    "SELECT id, artist, title, language, lyrics_json, created_at, updated_at "
                    "FROM lyrics_cache WHERE id=?",
                    (int(song_id),),
                ).fetchone()
        except (sqlite3.Error, OverflowError) as exc:
            logger.error("%s Error reading song [id]=[%s] [error]=[%s]", LOG_PREFIX, song_id, exc)
            return None
        if row is None:
            return None
        return self._record_from_row(row)

    # Delete one cached song by its row id.
    def delete_by_id(self, song_id):
        """
        Delete a cached song.

        Returns True only when a row was removed.
        """
        if not self.is_connected():
            return False
        try:
            with closing(self._conn()) as conn:
                with conn:
                    cur = conn.execute("DELETE FROM lyrics_cache WHERE id=?", (int(song_id),))
                    deleted = cur.rowcount > 0
        except (sqlite3.Error, OverflowError) as exc:
            logger.error("%s Error deleting song [id]=[%s] [error]=[%s]", LOG_PREFIX, song_id, exc)
            return False
        if deleted:
            logger.info("%s Song deleted [id]=[%s]", LOG_PREFIX, song_id)
        return deleted
