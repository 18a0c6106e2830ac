"""
Proactive refresh trigger.

Re-evaluates the cached entry on a fixed interval and refreshes it once
it is due, so the next reader does not pay for the fetch. Reads stay
correct without it.
"""
import logging
import threading
from typing import List, Optional, Protocol

from peakplay.cache.core import RefreshState
from peakplay.cache.orchestrator import ReadResult, RefreshOrchestrator

logger = logging.getLogger("scheduler")

DEFAULT_INTERVAL_SECONDS = 3600


class Ticker(Protocol):
    """Waits between scheduler ticks."""

    def wait(self, seconds: float) -> bool:
        """Block up to `seconds`; return True if the scheduler should stop."""
        ...

    def stop(self) -> None:
        ...


class EventTicker:
    """Real-time ticker backed by a threading.Event."""

    def __init__(self):
        self._stop = threading.Event()

    def wait(self, seconds: float) -> bool:
        return self._stop.wait(seconds)

    def stop(self) -> None:
        self._stop.set()


class RefreshScheduler:
    """
    Periodically calls RefreshOrchestrator.refresh_if_due for one key.

    Time comes from the orchestrator's clock and waiting from the ticker,
    so both can be replaced in tests.
    """

    def __init__(
        self,
        orchestrator: RefreshOrchestrator,
        key: str,
        interval_seconds: float = DEFAULT_INTERVAL_SECONDS,
        ticker: Optional[Ticker] = None,
        fetch_timeout: Optional[float] = None,
    ):
        self.orchestrator = orchestrator
        self.key = key
        self.interval_seconds = interval_seconds
        self.ticker = ticker or EventTicker()
        self.fetch_timeout = fetch_timeout
        self._thread: Optional[threading.Thread] = None
        self.history: List[Optional[RefreshState]] = []

    def tick(self) -> Optional[ReadResult]:
        """One evaluation. Failures are logged, never raised."""
        try:
            result = self.orchestrator.refresh_if_due(self.key, timeout=self.fetch_timeout)
        except Exception as e:
            logger.warning(f"Scheduled refresh failed for {self.key}: {e}")
            self.history.append(RefreshState.FAILED)
            return None

        if result is None:
            logger.debug(f"Scheduled check: {self.key} not due")
            self.history.append(None)
        else:
            logger.info(f"Scheduled check: {self.key} -> {result.state.value}")
            self.history.append(result.state)
        return result

    def run(self) -> None:
        """Tick until the ticker signals stop."""
        logger.info(f"Scheduler started for {self.key} (every {self.interval_seconds}s)")
        while True:
            self.tick()
            if self.ticker.wait(self.interval_seconds):
                break
        logger.info(f"Scheduler stopped for {self.key}")

    def start(self) -> None:
        """Run in a daemon thread."""
        if self._thread is not None and self._thread.is_alive():
            return
        self._thread = threading.Thread(
            target=self.run,
            name=f"refresh-scheduler-{self.key}",
            daemon=True,
        )
        self._thread.start()

    def stop(self, timeout: Optional[float] = 5.0) -> None:
        self.ticker.stop()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            self._thread = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()
