"""
Tests for the daily-cutover freshness policy.
"""
from datetime import datetime, timedelta

import pytest

from peakplay.cache.core import CacheEntry
from peakplay.cache.freshness import FreshnessPolicy, format_time_until

from conftest import utc


@pytest.fixture
def policy():
    return FreshnessPolicy()


# =============================================================================
# Predicates against their definitions
# =============================================================================

NOWS = [
    utc(2025, 1, 5, 0, 0),
    utc(2025, 1, 5, 8, 0),
    utc(2025, 1, 5, 22, 59, 59),
    utc(2025, 1, 5, 23, 0),
    utc(2025, 1, 5, 23, 30),
    utc(2025, 12, 31, 23, 59),
]
OFFSETS_HOURS = [-50, -25, -24, -9, -1, 0, 0.5, 1, 15]


@pytest.mark.parametrize("now", NOWS)
@pytest.mark.parametrize("offset", OFFSETS_HOURS)
def test_predicates_match_definitions(policy, now, offset):
    """is_valid / is_due agree with the cutover formulas for a spread of instants."""
    cutover = policy.cutover_instant(now)
    cached_at = cutover + timedelta(hours=offset)
    assert policy.is_valid(cached_at, now) == (cached_at > cutover - timedelta(days=1))
    assert policy.is_due(cached_at, now) == (cached_at < cutover and now >= cutover)


def test_cutover_instant_uses_now_calendar_date(policy):
    """Cutover is 23:00 UTC on now's date."""
    assert policy.cutover_instant(utc(2025, 1, 5, 8)) == utc(2025, 1, 5, 23)
    assert policy.cutover_instant(utc(2025, 1, 5, 23, 30)) == utc(2025, 1, 5, 23)


# =============================================================================
# Documented scenarios
# =============================================================================

def test_scenario_a_entry_before_previous_cutover_is_invalid(policy):
    """Jan 4 22:00 is not after Jan 4 23:00, so the entry must be refreshed."""
    now = utc(2025, 1, 5, 8)
    entry = CacheEntry(data=[], cached_at=utc(2025, 1, 4, 22))
    assert policy.is_valid(entry.cached_at, now) is False
    assert policy.should_serve_cache(entry, now) is False


def test_scenario_b_valid_and_not_due_serves_cache(policy):
    """Written after yesterday's cutover, today's cutover not reached yet."""
    now = utc(2025, 1, 5, 8)
    entry = CacheEntry(data=[], cached_at=utc(2025, 1, 4, 23, 30))
    assert policy.is_valid(entry.cached_at, now) is True
    assert policy.is_due(entry.cached_at, now) is False
    assert policy.should_serve_cache(entry, now) is True


def test_scenario_c_valid_but_due_refreshes(policy):
    """Still valid, but today's cutover has passed since it was written."""
    now = utc(2025, 1, 5, 23, 30)
    entry = CacheEntry(data=[], cached_at=utc(2025, 1, 4, 23, 30))
    assert policy.is_valid(entry.cached_at, now) is True
    assert policy.is_due(entry.cached_at, now) is True
    assert policy.should_serve_cache(entry, now) is False


# =============================================================================
# Edge cases
# =============================================================================

def test_refresh_is_due_exactly_at_cutover(policy):
    """The boundary instant itself counts as past the cutover."""
    cached_at = utc(2025, 1, 5, 10)
    assert policy.is_due(cached_at, utc(2025, 1, 5, 22, 59, 59)) is False
    assert policy.is_due(cached_at, utc(2025, 1, 5, 23, 0)) is True


def test_entry_written_exactly_at_cutover_is_not_due(policy):
    """Written at the cutover itself: not strictly before it."""
    now = utc(2025, 1, 5, 23, 10)
    assert policy.is_due(utc(2025, 1, 5, 23), now) is False


def test_missing_entry_or_timestamp_requires_fetch(policy):
    """No entry or no timestamp is neither valid nor exempt from refresh."""
    now = utc(2025, 1, 5, 8)
    assert policy.should_serve_cache(None, now) is False
    assert policy.is_valid(None, now) is False
    assert policy.is_due(None, now) is True
    assert policy.should_serve_cache(CacheEntry(data=[1], cached_at=None), now) is False


def test_naive_datetimes_are_treated_as_utc(policy):
    """Naive values behave like their UTC equivalents."""
    now = datetime(2025, 1, 5, 8)
    assert policy.is_valid(datetime(2025, 1, 4, 23, 30), now) is True
    assert policy.is_valid(datetime(2025, 1, 4, 22), now) is False


def test_cutover_hour_is_configurable():
    """A different boundary hour moves both predicates."""
    policy = FreshnessPolicy(cutover_hour_utc=6)
    now = utc(2025, 1, 5, 7)
    assert policy.is_due(utc(2025, 1, 5, 5), now) is True
    assert policy.is_valid(utc(2025, 1, 4, 7), now) is True


def test_invalid_cutover_hour_rejected():
    with pytest.raises(ValueError):
        FreshnessPolicy(cutover_hour_utc=24)


# =============================================================================
# Scheduling helpers
# =============================================================================

def test_next_cutover_today_or_tomorrow(policy):
    """Today's 23:00 until it is reached, tomorrow's from then on."""
    assert policy.next_cutover(utc(2025, 1, 5, 8)) == utc(2025, 1, 5, 23)
    assert policy.next_cutover(utc(2025, 1, 5, 23)) == utc(2025, 1, 6, 23)
    assert policy.next_cutover(utc(2025, 12, 31, 23, 30)) == utc(2026, 1, 1, 23)


def test_stale_by_age_only_when_configured():
    """The fixed-hours check is off by default and never affects serving."""
    now = utc(2025, 1, 5, 22)
    cached_at = utc(2025, 1, 4, 23, 30)
    assert FreshnessPolicy().is_stale_by_age(cached_at, now) is False

    client_policy = FreshnessPolicy(stale_refresh_hours=12)
    assert client_policy.is_stale_by_age(cached_at, now) is True
    entry = CacheEntry(data=[], cached_at=cached_at)
    assert client_policy.should_serve_cache(entry, now) is True
    assert client_policy.needs_background_refresh(entry, now) is True


def test_background_refresh_covers_invalid_but_not_due(policy):
    """Two-day-old entry before today's cutover: not due, yet still refreshed."""
    now = utc(2025, 1, 5, 8)
    entry = CacheEntry(data=[], cached_at=utc(2025, 1, 3, 12))
    assert policy.is_due(entry.cached_at, now) is False
    assert policy.needs_background_refresh(entry, now) is True
    assert policy.needs_background_refresh(None, now) is True


def test_status_reports_policy_view(policy):
    """Status combines age and both predicates."""
    now = utc(2025, 1, 5, 23, 30)
    entry = CacheEntry(data=[1, 2], cached_at=utc(2025, 1, 4, 23, 30))
    status = policy.status(entry, now, item_count=2).to_dict()
    assert status["cachedAt"] == "2025-01-04T23:30:00Z"
    assert status["ageInHours"] == 24.0
    assert status["isValid"] is True
    assert status["isDue"] is True
    assert status["shouldServeCache"] is False
    assert status["trackCount"] == 2


def test_status_without_entry(policy):
    status = policy.status(None, utc(2025, 1, 5, 8)).to_dict()
    assert status["cachedAt"] is None
    assert status["isValid"] is False
    assert status["isDue"] is True


def test_schedule_info(policy):
    info = policy.schedule_info(utc(2025, 1, 5, 19, 48))
    assert info["nextRefreshTime"] == "2025-01-05T23:00:00Z"
    assert info["hoursUntilRefresh"] == 3.2
    assert info["timeUntilRefresh"] == "in 3h 12m"


def test_format_time_until():
    assert format_time_until(timedelta(minutes=45)) == "in 45m"
    assert format_time_until(timedelta(hours=2, minutes=5)) == "in 2h 5m"
    assert format_time_until(timedelta(seconds=-5)) == "in 0m"
