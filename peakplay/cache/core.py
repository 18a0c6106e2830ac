"""
Core cache data structures.
"""
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, Optional


class RefreshState(Enum):
    """Outcome of a single read through the orchestrator."""
    SERVING_CACHE = "serving_cache"       # Entry valid and not due, no fetch
    REFRESHING = "refreshing"             # Fetch in flight
    SERVING_FRESH = "serving_fresh"       # Fetch succeeded and was stored
    SERVING_STALE = "serving_stale"       # Fetch failed, previous entry served
    FAILED = "failed"                     # Fetch failed, nothing to serve


def ensure_utc(moment: datetime) -> datetime:
    """Treat naive datetimes as UTC and normalise aware ones to UTC."""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def format_timestamp(moment: datetime) -> str:
    """ISO-8601 UTC timestamp with a trailing Z."""
    return ensure_utc(moment).isoformat().replace("+00:00", "Z")


def parse_timestamp(value: Any) -> datetime:
    """
    Parse an ISO-8601 timestamp written by format_timestamp.

    Raises:
        ValueError: if the value is missing or not a timestamp
    """
    if not isinstance(value, str) or not value:
        raise ValueError(f"Invalid cachedAt value: {value!r}")
    return ensure_utc(datetime.fromisoformat(value.replace("Z", "+00:00")))


@dataclass(frozen=True)
class PayloadCodec:
    """Converts cached data to and from its JSON-compatible form."""
    encode: Callable[[Any], Any]
    decode: Callable[[Any], Any]


def _identity(value: Any) -> Any:
    return value


IDENTITY_CODEC = PayloadCodec(encode=_identity, decode=_identity)


@dataclass(frozen=True)
class CacheEntry:
    """
    A cached value and the instant it was written.

    `cached_at` is only ever set by a successful store write.
    """
    data: Any
    cached_at: datetime

    def age_seconds(self, now: datetime) -> float:
        """Seconds between the write and `now`."""
        return (ensure_utc(now) - ensure_utc(self.cached_at)).total_seconds()

    def age_hours(self, now: datetime) -> float:
        return self.age_seconds(now) / 3600

    def to_record(self, codec: PayloadCodec = IDENTITY_CODEC) -> Dict[str, Any]:
        """Serialisable record stored by the backends."""
        return {
            "cachedAt": format_timestamp(self.cached_at),
            "data": codec.encode(self.data),
        }

    @classmethod
    def from_record(
        cls,
        record: Any,
        codec: PayloadCodec = IDENTITY_CODEC,
    ) -> "CacheEntry":
        """
        Rebuild an entry from a stored record.

        Raises:
            ValueError: on any structural problem with the record
        """
        if not isinstance(record, dict):
            raise ValueError("Cache record must be an object")
        if "data" not in record:
            raise ValueError("Cache record has no data")
        cached_at = parse_timestamp(record.get("cachedAt"))
        return cls(data=codec.decode(record["data"]), cached_at=cached_at)


@dataclass
class CacheStatus:
    """
    Policy view of the current entry, exposed by the status endpoint.
    """
    cached_at: Optional[str]
    age_in_hours: Optional[float]
    is_valid: bool
    is_due: bool
    should_serve_cache: bool
    item_count: Optional[int] = None

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON response."""
        return {
            "cachedAt": self.cached_at,
            "ageInHours": round(self.age_in_hours, 2) if self.age_in_hours is not None else None,
            "isValid": self.is_valid,
            "isDue": self.is_due,
            "shouldServeCache": self.should_serve_cache,
            "trackCount": self.item_count,
        }
