import pytest

from lyric_typer.core.errors import LyricsFormatError, PipelineError, ValidationError
from lyric_typer.core.generation_client import GenerationClient
from lyric_typer.core.lyrics_models import Language, LyricLine, LyricsRecord
from lyric_typer.core.lyrics_resolver import LyricsResolver
from lyric_typer.storage.lyrics_cache_store import LyricsCacheStore

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

DYNAMITE = LyricsRecord(
    title="Dynamite",
    artist="BTS",
    language=Language.EN,
    lines=[
        LyricLine(0, "'Cause I, I, I'm in the stars tonight"),
        LyricLine(1, "So watch me bring the fire and set the night alight"),
    ],
)


class FakeGenerationClient(GenerationClient):
    def __init__(self, raw_text="raw lyrics", record=DYNAMITE, error=None):
        self.raw_text = raw_text
        self.record = record
        self.error = error
        self.search_calls = []
        self.structure_calls = []

    def search_raw_text(self, prompt):
        self.search_calls.append(prompt)
        if self.error is not None:
            raise self.error
        return self.raw_text

    def structure_lyrics(self, raw_text, metadata):
        self.structure_calls.append((raw_text, dict(metadata)))
        return LyricsRecord.from_dict(self.record.to_dict())

    @property
    def call_count(self):
        return len(self.search_calls) + len(self.structure_calls)


@pytest.fixture
def store(tmp_path):
    s = LyricsCacheStore(db_path=tmp_path / "cache.db")
    s.ensure_ready()
    return s


@pytest.fixture
def offline_store(tmp_path):
    blocker = tmp_path / "blocker"
    blocker.write_text("x")
    s = LyricsCacheStore(db_path=blocker / "cache.db")
    s.ensure_ready()
    return s


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


@pytest.mark.parametrize("artist,title", [("", "Dynamite"), ("BTS", "   "), (None, None)])
def test_resolve_rejects_missing_fields(store, artist, title):
    client = FakeGenerationClient()
    with pytest.raises(ValidationError):
        LyricsResolver(store, client).resolve(artist, title)
    assert client.call_count == 0


# ---------------------------------------------------------------------------
# Cache path / pipeline path
# ---------------------------------------------------------------------------


def test_cache_hit_skips_pipeline(store):
    store.upsert(DYNAMITE)
    client = FakeGenerationClient()
    record = LyricsResolver(store, client).resolve("BTS", "Dynamite")
    assert client.call_count == 0
    assert record.to_dict() == DYNAMITE.to_dict()


def test_miss_runs_both_stages_and_writes_through(store):
    client = FakeGenerationClient(raw_text="line one\nline two")
    record = LyricsResolver(store, client).resolve("BTS", "Dynamite")

    assert len(client.search_calls) == 1
    assert '"Dynamite"' in client.search_calls[0]
    assert '"BTS"' in client.search_calls[0]
    assert client.structure_calls == [("line one\nline two", {"artist": "BTS", "title": "Dynamite"})]
    assert record.to_dict() == DYNAMITE.to_dict()
    assert store.count() == 1


def test_end_to_end_second_call_hits_cache(store):
    client = FakeGenerationClient()
    resolver = LyricsResolver(store, client)

    first = resolver.resolve("BTS", "Dynamite")
    assert store.find_by_artist_title("bts", "dynamite") is not None
    assert client.call_count == 2

    second = resolver.resolve("BTS", " dynamite ")
    assert client.call_count == 2
    assert second.to_dict() == first.to_dict()


def test_empty_stage_a_still_runs_stage_b(store):
    empty = LyricsRecord(title="Unknown", artist="Nobody", language=Language.EN, lines=[])
    client = FakeGenerationClient(raw_text="", record=empty)
    record = LyricsResolver(store, client).resolve("Nobody", "Unknown")

    assert len(client.structure_calls) == 1
    assert client.structure_calls[0][0] == ""
    assert record.lines == []


def test_empty_lines_are_not_cached(store):
    empty = LyricsRecord(title="Unknown", artist="Nobody", language=Language.EN, lines=[])
    client = FakeGenerationClient(record=empty)
    record = LyricsResolver(store, client).resolve("Nobody", "Unknown")

    assert record.lines == []
    assert store.count() == 0


def test_offline_store_still_resolves(offline_store):
    client = FakeGenerationClient()
    record = LyricsResolver(offline_store, client).resolve("BTS", "Dynamite")
    assert record.line_count == 2
    assert client.call_count == 2


def test_write_through_failure_is_ignored(store, monkeypatch):
    def broken_upsert(record):
        raise RuntimeError("disk full")

    monkeypatch.setattr(store, "upsert", broken_upsert)
    record = LyricsResolver(store, FakeGenerationClient()).resolve("BTS", "Dynamite")
    assert record.title == "Dynamite"


def test_pipeline_error_propagates(store):
    client = FakeGenerationClient(error=PipelineError("boom", stage="search"))
    with pytest.raises(PipelineError, match="boom"):
        LyricsResolver(store, client).resolve("BTS", "Dynamite")
    assert store.count() == 0


def test_malformed_structure_is_fatal(store):
    class BadStructure(FakeGenerationClient):
        def structure_lyrics(self, raw_text, metadata):
            raise LyricsFormatError("response is not valid JSON")

    with pytest.raises(PipelineError):
        LyricsResolver(store, BadStructure()).resolve("BTS", "Dynamite")


# ---------------------------------------------------------------------------
# Diagnostics
# ---------------------------------------------------------------------------


def test_health_reports_store_state(store):
    status = LyricsResolver(store, FakeGenerationClient()).health()
    assert status["lyrics_cache_connected"] is True


def test_is_timeout_exception():
    assert LyricsResolver.is_timeout_exception(TimeoutError())
    assert LyricsResolver.is_timeout_exception(PipelineError("request timed out"))
    assert not LyricsResolver.is_timeout_exception(PipelineError("HTTP 500"))
