"""
Tests for the cache store backends.
"""
import json
from datetime import timedelta

import pytest
from sqlalchemy.orm import Session

from peakplay.cache.core import CacheEntry
from peakplay.cache.sql_store import Base, CacheRow, SqlCacheStore, make_engine
from peakplay.cache.stores import FileCacheStore, MemoryCacheStore
from peakplay.models import TRACKS_CODEC

from conftest import FakeClock, make_track, utc


@pytest.fixture
def store_clock():
    return FakeClock(utc(2025, 1, 5, 8))


@pytest.fixture(params=["memory", "file", "sql"])
def store(request, tmp_path, store_clock):
    if request.param == "memory":
        return MemoryCacheStore(codec=TRACKS_CODEC, clock=store_clock)
    if request.param == "file":
        return FileCacheStore(tmp_path / "cache", codec=TRACKS_CODEC, clock=store_clock)
    return SqlCacheStore("sqlite://", codec=TRACKS_CODEC, clock=store_clock)


# =============================================================================
# Shared contract
# =============================================================================

def test_get_missing_key_returns_none(store):
    assert store.get("nothing") is None


def test_set_stamps_entry_with_write_time(store, store_clock):
    """cachedAt comes from the store's clock at write time."""
    tracks = [make_track(1), make_track(2)]
    store.set("top", tracks)

    entry = store.get("top")
    assert isinstance(entry, CacheEntry)
    assert entry.data == tracks
    assert entry.cached_at == store_clock.now


def test_last_write_wins(store, store_clock):
    """One entry per key; a second write replaces the first entirely."""
    store.set("top", [make_track(1)])
    store_clock.advance(hours=1)
    store.set("top", [make_track(2), make_track(3)])

    entry = store.get("top")
    assert [t.position for t in entry.data] == [2, 3]
    assert entry.cached_at == store_clock.now


def test_keys_are_independent(store):
    store.set("a", [make_track(1)])
    store.set("b", [make_track(2)])
    assert store.get("a").data[0].position == 1
    assert store.get("b").data[0].position == 2


def test_delete_removes_entry(store):
    store.set("top", [make_track(1)])
    store.delete("top")
    assert store.get("top") is None
    store.delete("top")  # deleting again is harmless


def test_unserialisable_value_is_not_stored(store):
    """A failed write is logged, never raised, and leaves the old entry."""
    store.set("top", [make_track(1)])
    store.set("top", object())
    assert store.get("top").data[0].position == 1


# =============================================================================
# Malformed payloads are dropped
# =============================================================================

MALFORMED_RECORDS = [
    "not json",
    json.dumps({"data": []}),
    json.dumps({"cachedAt": "yesterday", "data": []}),
    json.dumps({"cachedAt": "2025-01-05T08:00:00Z", "data": "nope"}),
    json.dumps(["list", "not", "object"]),
    json.dumps({"cachedAt": "2025-01-05T08:00:00Z", "data": ["not a track"]}),
    json.dumps({"cachedAt": "2025-01-05T08:00:00Z", "data": [{"position": 1, "artists": ["x"]}]}),
    json.dumps({"cachedAt": "2025-01-05T08:00:00Z", "data": [{"position": 1, "images": [42]}]}),
]

GOOD_RECORD = json.dumps({"cachedAt": "2025-01-05T08:00:00Z", "data": [{"position": 1}]})


def write_sql_row(engine, key, payload, cached_at):
    Base.metadata.create_all(bind=engine)
    with Session(engine) as session:
        session.merge(CacheRow(
            key=key,
            payload=payload,
            cached_at=cached_at.replace(tzinfo=None),
            expires_at=(cached_at + timedelta(days=2)).replace(tzinfo=None),
        ))
        session.commit()


@pytest.mark.parametrize("raw", MALFORMED_RECORDS)
def test_memory_store_drops_malformed_entries(raw):
    store = MemoryCacheStore(codec=TRACKS_CODEC)
    store._records["top"] = raw
    store._records["other"] = GOOD_RECORD

    assert store.get("top") is None
    assert "top" not in store._records
    assert store.get("other").data[0].position == 1


@pytest.mark.parametrize("raw", MALFORMED_RECORDS)
def test_file_store_drops_malformed_file(tmp_path, raw):
    store = FileCacheStore(tmp_path, codec=TRACKS_CODEC)
    path = tmp_path / "top.json"
    path.write_text(raw, encoding="utf-8")

    assert store.get("top") is None
    assert not path.exists()


@pytest.mark.parametrize("raw", MALFORMED_RECORDS)
def test_sql_store_drops_malformed_row(store_clock, raw):
    engine = make_engine("sqlite://")
    store = SqlCacheStore("sqlite://", codec=TRACKS_CODEC, clock=store_clock, engine=engine)
    write_sql_row(engine, "top", raw, store_clock.now)

    assert store.get("top") is None
    with Session(engine) as session:
        assert session.get(CacheRow, "top") is None


def test_sql_store_reads_row_written_elsewhere(store_clock):
    engine = make_engine("sqlite://")
    store = SqlCacheStore("sqlite://", codec=TRACKS_CODEC, clock=store_clock, engine=engine)
    write_sql_row(engine, "top", GOOD_RECORD, store_clock.now)
    assert store.get("top").data[0].position == 1


def test_file_store_write_failure_is_swallowed(tmp_path):
    """Directory path occupied by a file: write fails quietly."""
    blocker = tmp_path / "blocked"
    blocker.write_text("x", encoding="utf-8")
    store = FileCacheStore(blocker, codec=TRACKS_CODEC)

    store.set("top", [make_track(1)])
    assert store.get("top") is None


def test_file_store_sanitises_key(tmp_path):
    store = FileCacheStore(tmp_path, codec=TRACKS_CODEC)
    store.set("../escape/key", [make_track(1)])
    assert store.get("../escape/key").data[0].position == 1
    assert list(tmp_path.glob("*.json"))


def test_file_store_leaves_no_temp_files(tmp_path):
    store = FileCacheStore(tmp_path, codec=TRACKS_CODEC)
    store.set("top", [make_track(1)])
    store.set("top", [make_track(2)])
    assert [p.name for p in tmp_path.iterdir()] == ["top.json"]


# =============================================================================
# SQL store specifics
# =============================================================================

def test_sql_store_applies_absolute_expiry(store_clock):
    """Past the safety-net TTL the row is gone, whatever the policy says."""
    store = SqlCacheStore("sqlite://", codec=TRACKS_CODEC, clock=store_clock, absolute_expiry_seconds=3600)
    store.set("top", [make_track(1)])

    store_clock.advance(minutes=59)
    assert store.get("top") is not None

    store_clock.advance(minutes=2)
    assert store.get("top") is None


def test_sql_store_persists_across_instances(tmp_path, store_clock):
    """A file-backed database is shared by separate store instances."""
    url = f"sqlite:///{tmp_path / 'cache.db'}"
    SqlCacheStore(url, codec=TRACKS_CODEC, clock=store_clock).set("top", [make_track(7)])
    entry = SqlCacheStore(url, codec=TRACKS_CODEC, clock=store_clock).get("top")
    assert entry.data[0].position == 7
