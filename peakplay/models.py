"""
Track data model.
Dataclasses that map one-to-one onto the JSON contract served to clients.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from peakplay.cache.core import PayloadCodec
from peakplay.utils.helpers import safe_int, safe_str


def _require_object(raw: Any, what: str) -> Dict[str, Any]:
    if not isinstance(raw, dict):
        raise ValueError(f"{what} payload must be an object, got {type(raw).__name__}")
    return raw


@dataclass(frozen=True)
class Artist:
    """Contributor as returned by the API (name + link)."""
    name: str
    url: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "url": self.url}

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "Artist":
        raw = _require_object(raw, "Artist")
        return cls(name=safe_str(raw.get("name")), url=safe_str(raw.get("url")))


@dataclass(frozen=True)
class TrackImage:
    """Image variant with explicit dimensions."""
    url: str
    width: int = 0
    height: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {"url": self.url, "width": self.width, "height": self.height}

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "TrackImage":
        raw = _require_object(raw, "Image")
        return cls(
            url=safe_str(raw.get("url")),
            width=safe_int(raw.get("width")),
            height=safe_int(raw.get("height")),
        )


@dataclass(frozen=True)
class Track:
    """
    One enriched chart entry.

    `daily_streams` is the short-window counter and `total_streams` the
    cumulative one. Instances are immutable; a refresh always produces a
    new list.
    """
    position: int
    position_change: str
    title: str
    url: str
    artists: List[Artist] = field(default_factory=list)
    images: List[TrackImage] = field(default_factory=list)
    days: int = 0
    peak_position: int = 0
    daily_streams: int = 0
    total_streams: int = 0

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the camelCase JSON shape."""
        return {
            "position": self.position,
            "positionChange": self.position_change,
            "title": self.title,
            "url": self.url,
            "artists": [a.to_dict() for a in self.artists],
            "images": [i.to_dict() for i in self.images],
            "days": self.days,
            "peakPosition": self.peak_position,
            "dailyStreams": self.daily_streams,
            "totalStreams": self.total_streams,
        }

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "Track":
        """Build from the camelCase JSON shape. Raises on non-mapping input."""
        raw = _require_object(raw, "Track")
        return cls(
            position=safe_int(raw.get("position")),
            position_change=safe_str(raw.get("positionChange")),
            title=safe_str(raw.get("title")),
            url=safe_str(raw.get("url")),
            artists=[Artist.from_dict(a) for a in raw.get("artists") or []],
            images=[TrackImage.from_dict(i) for i in raw.get("images") or []],
            days=safe_int(raw.get("days")),
            peak_position=safe_int(raw.get("peakPosition")),
            daily_streams=safe_int(raw.get("dailyStreams")),
            total_streams=safe_int(raw.get("totalStreams")),
        )

    @property
    def track_id(self) -> Optional[str]:
        """External identifier taken from the canonical link, if any."""
        if "/track/" not in self.url:
            return None
        return self.url.split("/track/", 1)[1] or None


def tracks_to_payload(tracks: List[Track]) -> List[Dict[str, Any]]:
    """Serialize a track list for storage or an HTTP response."""
    return [t.to_dict() for t in tracks]


def tracks_from_payload(payload: Any) -> List[Track]:
    """
    Rebuild a track list from its JSON form.

    Raises:
        ValueError: if the payload is not a list of objects
    """
    if not isinstance(payload, list):
        raise ValueError("Track payload must be a list")
    return [Track.from_dict(item) for item in payload]


# Codec used by cache stores holding track lists
TRACKS_CODEC = PayloadCodec(encode=tracks_to_payload, decode=tracks_from_payload)
