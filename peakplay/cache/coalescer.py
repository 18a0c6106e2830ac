"""
Per-key refresh deduplication.

While a refresh for a key is running, later callers for the same key block
on it and receive its outcome instead of starting a second fetch.
"""
import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional, Tuple

logger = logging.getLogger("cache.coalescer")


@dataclass
class InFlightRefresh:
    """One running refresh and the callers parked on it."""
    done: threading.Event = field(default_factory=threading.Event)
    result: Any = None
    error: Optional[BaseException] = None
    started: float = field(default_factory=time.monotonic)
    waiter_count: int = 0

    def outcome(self) -> Any:
        if self.error is not None:
            raise self.error
        return self.result


class RequestCoalescer:
    """
    At most one fetch in flight per key.

    The caller that registers a key runs the fetch; everyone arriving
    before it finishes waits for the same result or exception. The key is
    released before waiters are woken, so a caller arriving afterwards
    starts a fresh fetch rather than reusing a finished one.
    """

    def __init__(self, timeout: float = 60.0):
        """
        Args:
            timeout: Default seconds a waiter blocks before giving up
        """
        self._in_flight: Dict[str, InFlightRefresh] = {}
        self._lock = threading.Lock()
        self._timeout = timeout

    def get_or_fetch(
        self,
        key: str,
        fetch_fn: Callable[[], Any],
        timeout: Optional[float] = None,
    ) -> Any:
        """
        Run `fetch_fn` for `key`, or join the run already in progress.

        Raises:
            TimeoutError: a waiter gave up before the running fetch finished
            Exception: whatever `fetch_fn` raised, re-raised for every caller
        """
        refresh, owner = self._join(key)
        if owner:
            return self._run(key, refresh, fetch_fn)
        return self._wait(key, refresh, self._timeout if timeout is None else timeout)

    def _join(self, key: str) -> Tuple[InFlightRefresh, bool]:
        with self._lock:
            refresh = self._in_flight.get(key)
            if refresh is None:
                refresh = self._in_flight[key] = InFlightRefresh()
                logger.debug(f"Starting refresh for {key}")
                return refresh, True
            refresh.waiter_count += 1
            logger.debug(f"Joining refresh for {key} ({refresh.waiter_count} waiting)")
            return refresh, False

    def _run(self, key: str, refresh: InFlightRefresh, fetch_fn: Callable[[], Any]) -> Any:
        try:
            refresh.result = fetch_fn()
        except Exception as e:
            refresh.error = e
            logger.warning(f"Refresh failed for {key}: {e}")
        finally:
            with self._lock:
                if self._in_flight.get(key) is refresh:
                    del self._in_flight[key]
            refresh.done.set()
        return refresh.outcome()

    def _wait(self, key: str, refresh: InFlightRefresh, timeout: float) -> Any:
        if not refresh.done.wait(timeout=timeout):
            logger.error(f"Gave up waiting on refresh for {key} after {timeout}s")
            raise TimeoutError(f"Refresh for {key} still running after {timeout}s")
        return refresh.outcome()

    def is_in_flight(self, key: str) -> bool:
        with self._lock:
            return key in self._in_flight

    @property
    def active_requests(self) -> int:
        with self._lock:
            return len(self._in_flight)

    def get_stats(self) -> Dict[str, Any]:
        now = time.monotonic()
        with self._lock:
            return {
                "active_requests": len(self._in_flight),
                "active_keys": list(self._in_flight),
                "waiters": {k: r.waiter_count for k, r in self._in_flight.items()},
                "running_seconds": {k: round(now - r.started, 3) for k, r in self._in_flight.items()},
            }
