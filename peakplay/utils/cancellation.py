"""
Caller-supplied cancellation and deadlines for blocking fetch steps.
"""
import threading
import time
from typing import Optional

from peakplay.errors import FetchCancelled


class FetchControl:
    """
    Carries an optional cancel event and an optional deadline through a fetch.

    Every blocking step asks `check()` before it starts and uses
    `request_timeout()` so no single call outlives the deadline.
    """

    def __init__(
        self,
        cancel_event: Optional[threading.Event] = None,
        timeout: Optional[float] = None,
    ):
        self.cancel_event = cancel_event
        self.deadline = time.monotonic() + timeout if timeout is not None else None

    @property
    def cancelled(self) -> bool:
        return self.cancel_event is not None and self.cancel_event.is_set()

    def remaining(self) -> Optional[float]:
        """Seconds left before the deadline, or None when unbounded."""
        if self.deadline is None:
            return None
        return self.deadline - time.monotonic()

    def check(self, step: str = "fetch") -> None:
        """Raise FetchCancelled if cancelled or out of time."""
        if self.cancelled:
            raise FetchCancelled(f"{step} cancelled by caller")
        remaining = self.remaining()
        if remaining is not None and remaining <= 0:
            raise FetchCancelled(f"{step} exceeded its deadline")

    def request_timeout(self, default: float) -> float:
        """Per-request timeout bounded by the remaining time."""
        remaining = self.remaining()
        if remaining is None:
            return default
        return max(0.001, min(default, remaining))

    def sleep(self, seconds: float) -> None:
        """Interruptible delay; raises FetchCancelled if interrupted."""
        if seconds <= 0:
            return
        remaining = self.remaining()
        if remaining is not None:
            seconds = min(seconds, max(0.0, remaining))
        if self.cancel_event is not None:
            self.cancel_event.wait(seconds)
        else:
            time.sleep(seconds)
        self.check("delay")


NO_CONTROL = FetchControl()
