"""
Data sources: the primary chart listing, Spotify enrichment, and the
remote server used by the client tier.
"""
from .listing import ListingSource, ScrapedTrack, parse_listing, extract_track_id
from .spotify import SpotifyClient, SpotifyRateLimitError
from .fetcher import TopTracksFetcher, FetchReport, merge_enrichment
from .remote import RemoteTracksSource

__all__ = [
    "ListingSource",
    "ScrapedTrack",
    "parse_listing",
    "extract_track_id",
    "SpotifyClient",
    "SpotifyRateLimitError",
    "TopTracksFetcher",
    "FetchReport",
    "merge_enrichment",
    "RemoteTracksSource",
]
