"""
Full refresh cycle: scrape the ranked listing, then enrich it in
rate-limited batches against Spotify.

A listing failure is fatal for the fetch. Any enrichment batch failure
only costs that batch its enrichment.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol

from peakplay.errors import EnrichmentBatchError, FetchCancelled
from peakplay.models import Artist, Track, TrackImage
from peakplay.utils.cancellation import NO_CONTROL, FetchControl

from .listing import ScrapedTrack
from .spotify import MAX_IDS_PER_REQUEST, artists_from_track, images_from_track

logger = logging.getLogger("sources.fetcher")

DEFAULT_BATCH_SIZE = 50
DEFAULT_BATCH_DELAY_SECONDS = 0.1


class ListingProvider(Protocol):
    def fetch(self, control: FetchControl = NO_CONTROL) -> List[ScrapedTrack]:
        ...


class EnrichmentProvider(Protocol):
    def get_tracks(self, track_ids: List[str], control: FetchControl = NO_CONTROL) -> Dict[str, Dict[str, Any]]:
        ...


@dataclass
class FetchReport:
    """Summary of the most recent fetch, for logs and diagnostics."""
    listed: int = 0
    batches: int = 0
    failed_batches: int = 0
    enriched: int = 0
    unenriched_positions: List[int] = field(default_factory=list)


def chunk(items: List[str], size: int) -> List[List[str]]:
    """Split into consecutive batches of at most `size`."""
    if size < 1:
        raise ValueError("Batch size must be positive")
    return [items[i:i + size] for i in range(0, len(items), size)]


def build_rank_index(scraped: List[ScrapedTrack]) -> Dict[str, List[int]]:
    """Identifier to chart positions, for one fetch only."""
    index: Dict[str, List[int]] = {}
    for track in scraped:
        if track.track_id:
            index.setdefault(track.track_id, []).append(track.position)
    return index


def to_track(scraped: ScrapedTrack, enrichment: Optional[Dict[str, Any]]) -> Track:
    """
    Build the final item. With enrichment, contributors and images come
    from Spotify; without it, the scraped artist name is kept with an
    empty link and no images.
    """
    if enrichment is not None:
        artists = [Artist(name=a["name"], url=a["url"]) for a in artists_from_track(enrichment)]
        images = [TrackImage(url=i["url"], width=i["width"], height=i["height"]) for i in images_from_track(enrichment)]
    else:
        artists = [Artist(name=scraped.artist_name, url="")]
        images = []

    return Track(
        position=scraped.position,
        position_change=scraped.position_change,
        title=scraped.title,
        url=scraped.url,
        artists=artists,
        images=images,
        days=scraped.days,
        peak_position=scraped.peak_position,
        daily_streams=scraped.daily_streams,
        total_streams=scraped.total_streams,
    )


def merge_enrichment(
    scraped: List[ScrapedTrack],
    enrichment: Dict[str, Dict[str, Any]],
) -> List[Track]:
    """Pure transform: new list in scrape order, input left untouched."""
    return [to_track(s, enrichment.get(s.track_id) if s.track_id else None) for s in scraped]


class TopTracksFetcher:
    """
    Produces the complete, ordered track list for one refresh.
    """

    def __init__(
        self,
        listing: ListingProvider,
        enrichment: EnrichmentProvider,
        batch_size: int = DEFAULT_BATCH_SIZE,
        batch_delay_seconds: float = DEFAULT_BATCH_DELAY_SECONDS,
    ):
        """
        Args:
            listing: Source of the ranked chart rows
            enrichment: Batched metadata lookup
            batch_size: Ids per enrichment call, capped at 50
            batch_delay_seconds: Pause between consecutive batch calls
        """
        self.listing = listing
        self.enrichment = enrichment
        self.batch_size = max(1, min(batch_size, MAX_IDS_PER_REQUEST))
        self.batch_delay_seconds = batch_delay_seconds
        self.last_report: Optional[FetchReport] = None

    def fetch(self, control: Optional[FetchControl] = None) -> List[Track]:
        """
        Raises:
            SourceUnavailable: the listing could not be fetched or parsed
            FetchCancelled: the caller cancelled or the deadline passed
        """
        control = control or NO_CONTROL
        logger.info("Fetching fresh chart data and Spotify metadata...")

        scraped = self.listing.fetch(control)
        rank_index = build_rank_index(scraped)
        track_ids = list(rank_index)
        batches = chunk(track_ids, self.batch_size)

        report = FetchReport(listed=len(scraped), batches=len(batches))
        enrichment: Dict[str, Dict[str, Any]] = {}

        for number, batch in enumerate(batches):
            if number > 0:
                control.sleep(self.batch_delay_seconds)
            control.check("enrichment")
            try:
                found = self.enrichment.get_tracks(batch, control)
                if not isinstance(found, dict):
                    raise EnrichmentBatchError(f"lookup returned {type(found).__name__}, expected a mapping", batch)
                enrichment.update(found)
            except FetchCancelled:
                raise
            except Exception as e:
                error = e if isinstance(e, EnrichmentBatchError) else EnrichmentBatchError(repr(e), batch)
                report.failed_batches += 1
                positions = sorted(p for track_id in batch for p in rank_index[track_id])
                logger.warning(
                    f"Enrichment batch {number + 1}/{len(batches)} failed, "
                    f"positions {positions[0]}-{positions[-1]} keep scraped data: {error}"
                )

        tracks = merge_enrichment(scraped, enrichment)

        report.enriched = sum(1 for s in scraped if s.track_id in enrichment)
        report.unenriched_positions = [s.position for s in scraped if s.track_id not in enrichment]
        self.last_report = report
        logger.info(
            f"Fetched {report.listed} tracks, enriched {report.enriched} "
            f"({report.failed_batches}/{report.batches} batches failed)"
        )
        return tracks
