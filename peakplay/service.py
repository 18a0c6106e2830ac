"""
Server-tier wiring: builds the orchestrator from settings.
"""
import logging

from config.settings import Settings
from peakplay.cache import FreshnessPolicy, RefreshOrchestrator, SqlCacheStore
from peakplay.models import TRACKS_CODEC
from peakplay.scheduler import RefreshScheduler
from peakplay.sources import ListingSource, SpotifyClient, TopTracksFetcher

logger = logging.getLogger("service")


def build_fetcher(settings: Settings) -> TopTracksFetcher:
    """Listing scraper plus Spotify enrichment, configured from settings."""
    listing = ListingSource(
        url=settings.listing_url,
        limit=settings.listing_limit,
        timeout=settings.request_timeout_seconds,
    )
    spotify = SpotifyClient(
        client_id=settings.spotify_client_id or "",
        client_secret=settings.spotify_client_secret or "",
        api_base_url=settings.spotify_api_base_url,
        token_url=settings.spotify_token_url,
        timeout=settings.request_timeout_seconds,
    )
    return TopTracksFetcher(
        listing=listing,
        enrichment=spotify,
        batch_size=settings.enrichment_batch_size,
        batch_delay_seconds=settings.enrichment_batch_delay_seconds,
    )


def build_orchestrator(settings: Settings) -> RefreshOrchestrator:
    """Persistent store + daily-cutover policy + live fetcher."""
    store = SqlCacheStore(
        database_url=settings.cache_database_url,
        codec=TRACKS_CODEC,
        absolute_expiry_seconds=settings.cache_absolute_expiry_seconds,
    )
    logger.info(
        f"Orchestrator for {settings.cache_key}: cutover {settings.cutover_hour_utc:02d}:00 UTC, "
        f"batches of {settings.enrichment_batch_size}"
    )
    return RefreshOrchestrator(
        store=store,
        fetcher=build_fetcher(settings),
        policy=FreshnessPolicy(cutover_hour_utc=settings.cutover_hour_utc),
    )


def build_scheduler(settings: Settings, orchestrator: RefreshOrchestrator) -> RefreshScheduler:
    return RefreshScheduler(
        orchestrator=orchestrator,
        key=settings.cache_key,
        interval_seconds=settings.scheduler_interval_seconds,
    )
