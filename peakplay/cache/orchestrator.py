"""
Read-path orchestration: serve from cache, refresh, or fall back to stale.
"""
import logging
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional, Protocol

from peakplay.errors import FetchCancelled, NoDataAvailable
from peakplay.utils.cancellation import FetchControl

from .coalescer import RequestCoalescer
from .core import CacheEntry, CacheStatus, RefreshState
from .freshness import Clock, FreshnessPolicy, utc_now
from .stores import CacheStore

logger = logging.getLogger("cache.orchestrator")


class Fetcher(Protocol):
    """Anything that can produce a complete, fresh dataset."""

    def fetch(self, control: Optional[FetchControl] = None) -> Any:
        """
        Raises:
            SourceUnavailable: when the dataset cannot be produced
        """
        ...


@dataclass
class ReadResult:
    """Data returned by a read plus how it was obtained."""
    data: Any
    state: RefreshState
    cached_at: Optional[datetime] = None


class RefreshOrchestrator:
    """
    Composes FreshnessPolicy, a CacheStore and a Fetcher into the read path.

    - ServingCache: entry is valid and not due, returned without fetching
    - Refreshing: otherwise fetch, at most one fetch in flight per key
    - ServingFresh: fetch succeeded, result written back and returned
    - ServingStaleOnFailure: fetch failed, previous entry returned unchanged
    - Failed: fetch failed with nothing cached, NoDataAvailable raised

    Only the caller that runs the fetch writes the result, and only on
    success, so a cancelled or failed refresh leaves the entry untouched.
    """

    def __init__(
        self,
        store: CacheStore,
        fetcher: Fetcher,
        policy: Optional[FreshnessPolicy] = None,
        clock: Clock = utc_now,
        coalesce_timeout: float = 120.0,
    ):
        self.store = store
        self.fetcher = fetcher
        self.policy = policy or FreshnessPolicy()
        self._clock = clock
        self._coalescer = RequestCoalescer(timeout=coalesce_timeout)

        self._stats_lock = threading.Lock()
        self._stats = {
            "cache_hits": 0,
            "refreshes": 0,
            "fetch_failures": 0,
            "stale_served": 0,
            "no_data": 0,
        }
        self._last_state: Dict[str, RefreshState] = {}

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def read(
        self,
        key: str,
        timeout: Optional[float] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> Any:
        """
        Return the dataset for `key`, fresh or stale.

        Raises:
            NoDataAvailable: fetch failed and nothing was ever cached
        """
        return self.read_with_state(key, timeout=timeout, cancel_event=cancel_event).data

    def read_with_state(
        self,
        key: str,
        timeout: Optional[float] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> ReadResult:
        """Same as read() but also reports the state that produced the data."""
        now = self._clock()
        entry = self._load(key)

        if self.policy.should_serve_cache(entry, now):
            logger.info(f"SERVING CACHE: {key} [cached_at={entry.cached_at.isoformat()}]")
            self._record(key, RefreshState.SERVING_CACHE, "cache_hits")
            return ReadResult(entry.data, RefreshState.SERVING_CACHE, entry.cached_at)

        if entry is None:
            logger.info(f"CACHE MISS: {key}, fetching")
        else:
            logger.info(
                f"CACHE NEEDS REFRESH: {key} [valid={self.policy.is_valid(entry.cached_at, now)}, "
                f"due={self.policy.is_due(entry.cached_at, now)}]"
            )
        return self._refresh(key, entry, FetchControl(cancel_event, timeout), timeout)

    def refresh(
        self,
        key: str,
        timeout: Optional[float] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> ReadResult:
        """Fetch regardless of freshness, with the same stale fallback as read()."""
        entry = self._load(key)
        logger.info(f"FORCED REFRESH: {key}")
        return self._refresh(key, entry, FetchControl(cancel_event, timeout), timeout)

    def refresh_if_due(
        self,
        key: str,
        timeout: Optional[float] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> Optional[ReadResult]:
        """
        Proactive refresh used by the scheduler.

        Returns None when the current entry does not need refreshing.
        """
        now = self._clock()
        entry = self._load(key)
        if not self.policy.needs_background_refresh(entry, now):
            return None
        logger.info(f"SCHEDULED REFRESH: {key}")
        return self._refresh(key, entry, FetchControl(cancel_event, timeout), timeout)

    def status(self, key: str) -> CacheStatus:
        """Policy view of the current entry. Never fetches."""
        entry = self._load(key)
        count = len(entry.data) if entry is not None and hasattr(entry.data, "__len__") else None
        return self.policy.status(entry, self._clock(), item_count=count)

    def schedule_info(self) -> Dict[str, Any]:
        return self.policy.schedule_info(self._clock())

    def last_state(self, key: str) -> Optional[RefreshState]:
        with self._stats_lock:
            return self._last_state.get(key)

    def is_refreshing(self, key: str) -> bool:
        return self._coalescer.is_in_flight(key)

    def get_stats(self) -> Dict[str, Any]:
        """Get orchestrator statistics."""
        with self._stats_lock:
            stats = dict(self._stats)
            stats["last_state"] = {k: v.value for k, v in self._last_state.items()}
        stats["coalescer"] = self._coalescer.get_stats()
        return stats

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _load(self, key: str) -> Optional[CacheEntry]:
        # Stores are non-throwing by contract; a misbehaving one counts as a miss
        try:
            return self.store.get(key)
        except Exception as e:
            logger.warning(f"Cache read failed for {key}, treating as miss: {e}")
            return None

    def _save(self, key: str, data: Any) -> None:
        try:
            self.store.set(key, data)
        except Exception as e:
            logger.warning(f"Cache write failed for {key}: {e}")

    def _refresh(
        self,
        key: str,
        entry: Optional[CacheEntry],
        control: FetchControl,
        timeout: Optional[float],
    ) -> ReadResult:
        def do_fetch():
            with self._stats_lock:
                self._last_state[key] = RefreshState.REFRESHING
            control.check("refresh")
            data = self.fetcher.fetch(control)
            # Cancelled after the fetch returned: discard instead of writing
            if control.cancelled:
                raise FetchCancelled(f"Refresh of {key} cancelled before write")
            self._save(key, data)
            # Report the store's own stamp; None if the write did not land
            stored = self._load(key)
            return data, stored.cached_at if stored is not None else None

        try:
            data, cached_at = self._coalescer.get_or_fetch(key, do_fetch, timeout=timeout)
        except Exception as e:
            with self._stats_lock:
                self._stats["fetch_failures"] += 1

            # Prefer whatever is stored now; another refresh may have landed
            fallback = self._load(key) or entry
            if fallback is not None:
                logger.warning(f"SERVING STALE: {key} after refresh failure: {e}")
                self._record(key, RefreshState.SERVING_STALE, "stale_served")
                return ReadResult(fallback.data, RefreshState.SERVING_STALE, fallback.cached_at)

            logger.error(f"NO DATA: {key} refresh failed and nothing is cached: {e}")
            self._record(key, RefreshState.FAILED, "no_data")
            raise NoDataAvailable(f"No data available for {key}: {e}") from e

        logger.info(f"SERVING FRESH: {key}")
        self._record(key, RefreshState.SERVING_FRESH, "refreshes")
        return ReadResult(data, RefreshState.SERVING_FRESH, cached_at)

    def _record(self, key: str, state: RefreshState, counter: str) -> None:
        with self._stats_lock:
            self._last_state[key] = state
            self._stats[counter] += 1
