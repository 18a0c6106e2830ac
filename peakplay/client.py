"""
Client tier: the same freshness policy over a local file cache, fed by
the server's read surface instead of the scraper.
"""
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from config.settings import Settings
from peakplay.cache import FileCacheStore, FreshnessPolicy, RefreshOrchestrator
from peakplay.cache.core import format_timestamp
from peakplay.cache.freshness import Clock, utc_now
from peakplay.models import TRACKS_CODEC, Track, TrackImage
from peakplay.scheduler import RefreshScheduler
from peakplay.sources import RemoteTracksSource

logger = logging.getLogger("client")

TOP_TRACKS_CACHE_KEY = "peakplay_top_tracks_cache"
HERO_COUNT = 3
HERO_IMAGE_WIDTH = 300


def get_image_by_width(images: List[TrackImage], target_width: int) -> Optional[TrackImage]:
    """Image whose width is closest to the target; later images win ties."""
    if not images:
        return None
    closest = images[0]
    for image in images:
        if abs(image.width - target_width) <= abs(closest.width - target_width):
            closest = image
    return closest


def hero_tracks(tracks: List[Track]) -> List[Dict[str, Any]]:
    """First three tracks in podium form."""
    heroes = []
    for track in tracks[:HERO_COUNT]:
        image = get_image_by_width(track.images, HERO_IMAGE_WIDTH)
        heroes.append({
            "title": track.title,
            "artists": [a.to_dict() for a in track.artists],
            "url": track.url,
            "image": image.url if image else None,
            "position": track.position,
            "positionChange": track.position_change,
        })
    return heroes


def filter_tracks(tracks: List[Track], query: str) -> List[Track]:
    """Case-insensitive match on title or any artist name."""
    needle = (query or "").strip().lower()
    if not needle:
        return list(tracks)
    return [
        t for t in tracks
        if needle in t.title.lower() or any(needle in a.name.lower() for a in t.artists)
    ]


def max_daily_streams(tracks: List[Track]) -> int:
    """Largest daily counter, 1 for an empty list (used for bar scaling)."""
    if not tracks:
        return 1
    return max(t.daily_streams for t in tracks)


class TopTracksClient:
    """
    Cache-first reader for the client tier.

    Uses the same FreshnessPolicy as the server, plus the optional
    fixed-hours staleness check for its background scheduler.
    """

    def __init__(
        self,
        source: RemoteTracksSource,
        cache_directory: Path,
        policy: Optional[FreshnessPolicy] = None,
        clock: Clock = utc_now,
        cache_key: str = TOP_TRACKS_CACHE_KEY,
    ):
        self.cache_key = cache_key
        self._clock = clock
        self.store = FileCacheStore(cache_directory, codec=TRACKS_CODEC, clock=clock)
        self.orchestrator = RefreshOrchestrator(
            store=self.store,
            fetcher=source,
            policy=policy or FreshnessPolicy(),
            clock=clock,
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "TopTracksClient":
        source = RemoteTracksSource(
            base_url=settings.client_api_base_url,
            api_token=settings.api_token,
            timeout=settings.request_timeout_seconds,
        )
        policy = FreshnessPolicy(
            cutover_hour_utc=settings.cutover_hour_utc,
            stale_refresh_hours=settings.client_stale_refresh_hours,
        )
        return cls(source, settings.client_cache_directory, policy=policy)

    def get_tracks(self, timeout: Optional[float] = None) -> List[Track]:
        """
        Raises:
            NoDataAvailable: remote failed and nothing is cached locally
        """
        return self.orchestrator.read(self.cache_key, timeout=timeout)

    def cache_updated_at(self) -> Optional[str]:
        entry = self.store.get(self.cache_key)
        return format_timestamp(entry.cached_at) if entry else None

    def next_refresh_info(self) -> Dict[str, Any]:
        """Next scheduled refresh plus the local cache's age."""
        now: datetime = self._clock()
        policy = self.orchestrator.policy
        entry = self.store.get(self.cache_key)
        schedule = policy.schedule_info(now)
        return {
            "nextRefreshTime": schedule["nextRefreshTime"],
            "hoursUntilRefresh": schedule["hoursUntilRefresh"],
            "timeUntilRefresh": schedule["timeUntilRefresh"],
            "cacheAgeHours": round(entry.age_hours(now), 2) if entry else None,
            "isCacheFresh": entry is not None and not policy.needs_background_refresh(entry, now),
        }

    def scheduler(self, interval_seconds: float = 3600, **kwargs) -> RefreshScheduler:
        """Hourly background check, as the UI does."""
        return RefreshScheduler(self.orchestrator, self.cache_key, interval_seconds, **kwargs)
