"""
Daily-cutover freshness policy.

Cached data belongs to the window that opens at the cutover instant
(23:00 UTC by default). The same policy object is used by the server and
the client tiers; it performs no I/O and reads time only from the `now`
arguments it is given.
"""
from datetime import datetime, time, timedelta, timezone
from typing import Any, Callable, Dict, Optional

from .core import CacheEntry, CacheStatus, ensure_utc, format_timestamp

# Injectable time source: returns an aware UTC datetime
Clock = Callable[[], datetime]

DEFAULT_CUTOVER_HOUR_UTC = 23
ONE_DAY = timedelta(days=1)


def utc_now() -> datetime:
    """System clock."""
    return datetime.now(timezone.utc)


class FreshnessPolicy:
    """
    Classifies cache timestamps against the daily cutover.

    - valid: written after the previous cutover
    - due:   written before today's cutover, and that cutover has passed

    The two predicates are independent; an entry can be valid and due at
    the same time (written just after yesterday's cutover, read just after
    today's).
    """

    def __init__(
        self,
        cutover_hour_utc: int = DEFAULT_CUTOVER_HOUR_UTC,
        stale_refresh_hours: Optional[float] = None,
    ):
        """
        Args:
            cutover_hour_utc: Hour of the daily boundary, 0-23
            stale_refresh_hours: Optional fixed-age trigger for background
                refresh (client tier only). Never consulted by
                should_serve_cache.
        """
        if not 0 <= cutover_hour_utc <= 23:
            raise ValueError(f"cutover_hour_utc must be within 0-23, got {cutover_hour_utc}")
        self.cutover_hour_utc = cutover_hour_utc
        self.stale_refresh_hours = stale_refresh_hours

    def cutover_instant(self, now: datetime) -> datetime:
        """Cutover on `now`'s UTC calendar date."""
        now = ensure_utc(now)
        return datetime.combine(
            now.date(), time(hour=self.cutover_hour_utc), tzinfo=timezone.utc
        )

    def is_valid(self, cached_at: Optional[datetime], now: datetime) -> bool:
        """True iff `cached_at` is after the previous day's cutover."""
        if cached_at is None:
            return False
        return ensure_utc(cached_at) > self.cutover_instant(now) - ONE_DAY

    def is_due(self, cached_at: Optional[datetime], now: datetime) -> bool:
        """True iff `cached_at` predates today's cutover and it has passed."""
        if cached_at is None:
            return True
        cutover = self.cutover_instant(now)
        return ensure_utc(cached_at) < cutover and ensure_utc(now) >= cutover

    def should_serve_cache(self, entry: Optional[CacheEntry], now: datetime) -> bool:
        """Serve `entry` as-is, without fetching."""
        if entry is None or entry.cached_at is None:
            return False
        return self.is_valid(entry.cached_at, now) and not self.is_due(entry.cached_at, now)

    def next_cutover(self, now: datetime) -> datetime:
        """Today's cutover if still ahead of `now`, else tomorrow's."""
        cutover = self.cutover_instant(now)
        if ensure_utc(now) < cutover:
            return cutover
        return cutover + ONE_DAY

    def is_stale_by_age(self, cached_at: Optional[datetime], now: datetime) -> bool:
        """
        Fixed-hours staleness check used as an extra background trigger.

        Always False when no threshold is configured.
        """
        if self.stale_refresh_hours is None:
            return False
        if cached_at is None:
            return True
        age = ensure_utc(now) - ensure_utc(cached_at)
        return age > timedelta(hours=self.stale_refresh_hours)

    def needs_background_refresh(self, entry: Optional[CacheEntry], now: datetime) -> bool:
        """Scheduler trigger: calendar rule, plus the fixed-hours check if configured."""
        if not self.should_serve_cache(entry, now):
            return True
        return self.is_stale_by_age(entry.cached_at, now)

    def status(
        self,
        entry: Optional[CacheEntry],
        now: datetime,
        item_count: Optional[int] = None,
    ) -> CacheStatus:
        """Side-effect-free report of how the policy sees `entry`."""
        if entry is None:
            return CacheStatus(
                cached_at=None,
                age_in_hours=None,
                is_valid=False,
                is_due=True,
                should_serve_cache=False,
                item_count=None,
            )
        return CacheStatus(
            cached_at=format_timestamp(entry.cached_at),
            age_in_hours=entry.age_hours(now),
            is_valid=self.is_valid(entry.cached_at, now),
            is_due=self.is_due(entry.cached_at, now),
            should_serve_cache=self.should_serve_cache(entry, now),
            item_count=item_count,
        )

    def schedule_info(self, now: datetime) -> Dict[str, Any]:
        """When the next scheduled refresh becomes due."""
        next_refresh = self.next_cutover(now)
        remaining = next_refresh - ensure_utc(now)
        return {
            "now": format_timestamp(now),
            "nextRefreshTime": format_timestamp(next_refresh),
            "hoursUntilRefresh": round(remaining.total_seconds() / 3600, 1),
            "timeUntilRefresh": format_time_until(remaining),
            "cutoverHourUtc": self.cutover_hour_utc,
        }


def format_time_until(remaining: timedelta) -> str:
    """Human readable countdown, e.g. 'in 3h 12m' or 'in 45m'."""
    total_minutes = max(0, int(remaining.total_seconds() // 60))
    hours, minutes = divmod(total_minutes, 60)
    if hours > 0:
        return f"in {hours}h {minutes}m"
    return f"in {minutes}m"
