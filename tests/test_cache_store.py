import threading

import pytest

from lyric_typer.core.lyrics_models import Language, LyricLine, LyricsRecord
from lyric_typer.storage.lyrics_cache_store import LyricsCacheStore

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class _Clock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


def _record(artist="Adele", title="Hello", texts=("Hello, it's me",), language=Language.EN):
    return LyricsRecord(
        title=title,
        artist=artist,
        language=language,
        lines=[LyricLine(index=i, text=t) for i, t in enumerate(texts)],
    )


@pytest.fixture
def clock():
    return _Clock()


@pytest.fixture
def store(tmp_path, clock):
    s = LyricsCacheStore(db_path=tmp_path / "cache.db", clock=clock)
    assert s.ensure_ready() is True
    return s


@pytest.fixture
def offline_store(tmp_path):
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory")
    s = LyricsCacheStore(db_path=blocker / "cache.db")
    assert s.ensure_ready() is False
    return s


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------


def test_store_not_connected_before_ensure_ready(tmp_path):
    s = LyricsCacheStore(db_path=tmp_path / "cache.db")
    assert s.is_connected() is False
    assert s.find_by_artist_title("Adele", "Hello") is None
    assert not (tmp_path / "cache.db").exists()


def test_ensure_ready_is_idempotent(store):
    assert store.ensure_ready() is True
    assert store.is_connected() is True


def test_ensure_ready_initializes_once_under_concurrency(tmp_path):
    s = LyricsCacheStore(db_path=tmp_path / "cache.db")
    calls = []
    real_init = s._init_db

    def counting_init():
        calls.append(1)
        return real_init()

    s._init_db = counting_init
    barrier = threading.Barrier(8)
    results = []

    def worker():
        barrier.wait()
        results.append(s.ensure_ready())

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(calls) == 1
    assert results == [True] * 8


def test_close_degrades_to_empty_results(store):
    store.upsert(_record())
    store.close()
    assert store.is_connected() is False
    assert store.find_by_artist_title("Adele", "Hello") is None
    assert store.count() == 0


def test_reset_ready_allows_a_new_attempt(store):
    store.close()
    store.reset_ready()
    assert store.ensure_ready() is True
    assert store.is_connected() is True


# ---------------------------------------------------------------------------
# Lookup / upsert
# ---------------------------------------------------------------------------


def test_find_miss_returns_none(store):
    assert store.find_by_artist_title("Adele", "Hello") is None


def test_find_normalizes_inputs(store):
    assert store.upsert(_record(artist="BTS", title="Dynamite")) is True
    found = store.find_by_artist_title("  bts", "DYNAMITE ")
    assert found is not None
    assert found.title == "Dynamite"
    assert found.artist == "BTS"
    assert found.id is not None
    assert found.created_at == found.updated_at == 1000.0


def test_upsert_same_key_overwrites(store, clock):
    store.upsert(_record(texts=("first version",)))
    first = store.find_by_artist_title("adele", "hello")
    clock.now = 2000.0
    store.upsert(_record(texts=("second version", "another line"), language=Language.MIXED))

    assert store.count() == 1
    second = store.find_by_artist_title("Adele", "Hello")
    assert [line.text for line in second.lines] == ["second version", "another line"]
    assert second.language is Language.MIXED
    assert second.id == first.id
    assert second.created_at == first.created_at
    assert second.updated_at > first.updated_at


def test_upsert_advances_updated_at_when_clock_stands_still(store):
    store.upsert(_record(texts=("a",)))
    before = store.find_by_artist_title("Adele", "Hello").updated_at
    store.upsert(_record(texts=("b",)))
    after = store.find_by_artist_title("Adele", "Hello").updated_at
    assert after > before


def test_upsert_differently_cased_keys_share_a_row(store):
    store.upsert(_record(artist="ADELE", title="HELLO"))
    store.upsert(_record(artist="adele ", title=" hello"))
    assert store.count() == 1


def test_concurrent_upserts_leave_one_row(store):
    barrier = threading.Barrier(6)

    def worker(n):
        barrier.wait()
        store.upsert(_record(texts=(f"writer {n}",)))

    threads = [threading.Thread(target=worker, args=(n,)) for n in range(6)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert store.count() == 1
    assert store.find_by_artist_title("Adele", "Hello").lines[0].text.startswith("writer ")


# ---------------------------------------------------------------------------
# Listing / sampling / by-id
# ---------------------------------------------------------------------------


def test_list_all_orders_by_most_recent_update(store, clock):
    store.upsert(_record(artist="A", title="One", texts=("x", "y")))
    clock.now = 1001.0
    store.upsert(_record(artist="B", title="Two"))
    clock.now = 1002.0
    store.upsert(_record(artist="A", title="One", texts=("x", "y", "z")))

    songs = store.list_all()
    assert [(s.artist, s.title) for s in songs] == [("a", "one"), ("b", "two")]
    assert songs[0].line_count == 3
    assert songs[1].line_count == 1
    assert songs[0].to_dict()["lineCount"] == 3


def test_sample_random_is_bounded(store):
    for i in range(5):
        store.upsert(_record(title=f"Song {i}"))
    sample = store.sample_random(3)
    assert len(sample) == 3
    assert len({s.title for s in sample}) == 3
    assert len(store.sample_random(10)) == 5
    assert store.sample_random(0) == []


def test_sample_random_empty_store(store):
    assert store.sample_random(6) == []


def test_get_and_delete_by_id(store):
    store.upsert(_record())
    song_id = store.find_by_artist_title("Adele", "Hello").id

    fetched = store.get_by_id(song_id)
    assert fetched.title == "Hello"
    assert store.get_by_id(song_id + 100) is None

    assert store.delete_by_id(song_id) is True
    assert store.delete_by_id(song_id) is False
    assert store.count() == 0


def test_by_id_outside_integer_range_is_missing(store):
    store.upsert(_record())
    assert store.get_by_id(2**63) is None
    assert store.get_by_id(-(2**64)) is None
    assert store.delete_by_id(99999999999999999999) is False
    assert store.count() == 1


# ---------------------------------------------------------------------------
# Unreachable store
# ---------------------------------------------------------------------------


def test_unreachable_store_degrades(offline_store):
    assert offline_store.is_connected() is False
    assert offline_store.find_by_artist_title("Adele", "Hello") is None
    assert offline_store.upsert(_record()) is False
    assert offline_store.list_all() == []
    assert offline_store.sample_random(6) == []
    assert offline_store.count() == 0
    assert offline_store.get_by_id(1) is None
    assert offline_store.delete_by_id(1) is False
