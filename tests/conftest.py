"""
Shared fixtures: a controllable clock, fake fetchers and sample tracks.
"""
import threading
from datetime import datetime, timedelta, timezone

import pytest

from peakplay.errors import SourceUnavailable
from peakplay.models import Artist, Track, TrackImage


def utc(year, month, day, hour=0, minute=0, second=0):
    return datetime(year, month, day, hour, minute, second, tzinfo=timezone.utc)


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)


class FakeFetcher:
    """
    Returns queued results in order; an Exception instance is raised.
    Optionally blocks on `gate` so tests can hold a fetch in flight.
    """

    def __init__(self, *results):
        self.results = list(results)
        self.calls = 0
        self.gate = None
        self.started = threading.Event()
        self._lock = threading.Lock()

    def fetch(self, control=None):
        with self._lock:
            self.calls += 1
            result = self.results.pop(0) if self.results else SourceUnavailable("no more results")
        self.started.set()
        if self.gate is not None:
            self.gate.wait(5)
        if isinstance(result, Exception):
            raise result
        return result


def make_track(position, title=None, artist="Artist", track_id=None, images=None):
    track_id = track_id or f"id{position}"
    return Track(
        position=position,
        position_change="=",
        title=title or f"Song {position}",
        url=f"https://open.spotify.com/track/{track_id}",
        artists=[Artist(name=artist, url=f"https://open.spotify.com/artist/{artist.lower()}")],
        images=images if images is not None else [TrackImage(url=f"https://img/{position}", width=640, height=640)],
        days=10,
        peak_position=position,
        daily_streams=1_000_000 - position,
        total_streams=50_000_000,
    )


@pytest.fixture
def clock():
    # Jan 5, 08:00 UTC: before that day's 23:00 cutover
    return FakeClock(utc(2025, 1, 5, 8, 0))


@pytest.fixture
def tracks_v1():
    return [make_track(i) for i in range(1, 4)]


@pytest.fixture
def tracks_v2():
    return [make_track(i, title=f"New Song {i}") for i in range(1, 4)]
