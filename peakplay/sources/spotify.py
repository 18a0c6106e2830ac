"""
Spotify Web API client for batch track enrichment.

Uses the client-credentials flow; one access token is shared by all
batches until shortly before it expires.
"""
import logging
import threading
import time
from typing import Any, Dict, List, Optional

import requests
from tenacity import (
    Retrying,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type,
)

from peakplay.errors import EnrichmentBatchError, FetchCancelled
from peakplay.utils.cancellation import NO_CONTROL, FetchControl

logger = logging.getLogger("sources.spotify")

MAX_IDS_PER_REQUEST = 50
ARTIST_URL_TEMPLATE = "https://open.spotify.com/artist/{artist_id}"

# Refresh the token this many seconds before Spotify says it expires
TOKEN_EXPIRY_MARGIN_SECONDS = 60

RATE_LIMIT_ATTEMPTS = 3
MAX_RETRY_AFTER_SECONDS = 30.0


class SpotifyRateLimitError(Exception):
    """Raised when Spotify returns HTTP 429 (retried with backoff)."""

    def __init__(self, message: str, retry_after: Optional[float] = None):
        super().__init__(message)
        self.retry_after = retry_after


class SpotifyClient:
    """
    Minimal Spotify client: token management and batched track lookup.
    """

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        api_base_url: str = "https://api.spotify.com/v1",
        token_url: str = "https://accounts.spotify.com/api/token",
        timeout: float = 30.0,
        session: Optional[requests.Session] = None,
    ):
        self._client_id = client_id
        self._client_secret = client_secret
        self._api_base_url = api_base_url.rstrip("/")
        self._token_url = token_url
        self._timeout = timeout
        self._session = session or requests.Session()

        self._token: Optional[str] = None
        self._token_expires_at = 0.0
        self._token_lock = threading.Lock()

    # ========================================================================
    # Authentication
    # ========================================================================

    def _access_token(self, control: FetchControl) -> str:
        with self._token_lock:
            if self._token and time.monotonic() < self._token_expires_at:
                return self._token

            response = self._session.post(
                self._token_url,
                data={"grant_type": "client_credentials"},
                auth=(self._client_id, self._client_secret),
                timeout=control.request_timeout(self._timeout),
            )
            response.raise_for_status()
            payload = response.json()

            self._token = payload["access_token"]
            expires_in = float(payload.get("expires_in", 3600))
            self._token_expires_at = time.monotonic() + max(0.0, expires_in - TOKEN_EXPIRY_MARGIN_SECONDS)
            logger.debug("Obtained Spotify access token")
            return self._token

    def _invalidate_token(self) -> None:
        with self._token_lock:
            self._token = None
            self._token_expires_at = 0.0

    # ========================================================================
    # Track lookup
    # ========================================================================

    def _request_tracks(self, track_ids: List[str], control: FetchControl) -> Any:
        """
        GET /tracks with up to three attempts on rate limiting.

        Backoff honours Retry-After when present and sleeps through the
        caller's FetchControl, so a cancel or deadline cuts the wait short.
        """
        retrying = Retrying(
            stop=stop_after_attempt(RATE_LIMIT_ATTEMPTS),
            wait=_rate_limit_wait,
            retry=retry_if_exception_type(SpotifyRateLimitError),
            sleep=control.sleep,
            reraise=True,
        )
        for attempt in retrying:
            with attempt:
                return self._get_tracks_once(track_ids, control)

    def _get_tracks_once(self, track_ids: List[str], control: FetchControl) -> Any:
        control.check("enrichment batch")
        token = self._access_token(control)
        response = self._session.get(
            f"{self._api_base_url}/tracks",
            params={"ids": ",".join(track_ids)},
            headers={"Authorization": f"Bearer {token}"},
            timeout=control.request_timeout(self._timeout),
        )

        if response.status_code == 429:
            retry_after = _parse_retry_after(response.headers.get("Retry-After"))
            logger.warning(f"Spotify rate limit hit (Retry-After={retry_after})")
            raise SpotifyRateLimitError("Spotify rate limit exceeded", retry_after=retry_after)
        if response.status_code == 401:
            # Token revoked or expired early; next call fetches a new one
            self._invalidate_token()
        response.raise_for_status()
        return response.json()

    def get_tracks(
        self,
        track_ids: List[str],
        control: FetchControl = NO_CONTROL,
    ) -> Dict[str, Dict[str, Any]]:
        """
        Look up up to 50 tracks in one call.

        Returns:
            Mapping of track id to the raw track object. Ids Spotify does
            not know are simply absent.

        Raises:
            ValueError: more than 50 ids were given
            EnrichmentBatchError: the call failed or the response had an
                unexpected shape
            FetchCancelled: the caller cancelled or ran out of time
        """
        if len(track_ids) > MAX_IDS_PER_REQUEST:
            raise ValueError(f"At most {MAX_IDS_PER_REQUEST} ids per request, got {len(track_ids)}")
        if not track_ids:
            return {}

        try:
            payload = self._request_tracks(track_ids, control)
            return _tracks_by_id(payload)
        except FetchCancelled:
            raise
        except (requests.RequestException, SpotifyRateLimitError, KeyError, ValueError, TypeError, AttributeError) as e:
            raise EnrichmentBatchError(f"Spotify batch lookup failed: {e}", track_ids) from e


def _parse_retry_after(value: Optional[str]) -> Optional[float]:
    try:
        return max(0.0, float(value)) if value is not None else None
    except ValueError:
        return None


_exponential_wait = wait_exponential(multiplier=1, min=1, max=10)


def _rate_limit_wait(retry_state) -> float:
    """Server-advised delay when given (capped), exponential backoff otherwise."""
    error = retry_state.outcome.exception()
    retry_after = getattr(error, "retry_after", None)
    if retry_after is not None:
        return min(retry_after, MAX_RETRY_AFTER_SECONDS)
    return _exponential_wait(retry_state)


def _tracks_by_id(payload: Any) -> Dict[str, Dict[str, Any]]:
    """Index a /tracks response by id, skipping null entries."""
    if not isinstance(payload, dict):
        raise ValueError(f"Expected an object from /tracks, got {type(payload).__name__}")
    tracks = payload.get("tracks")
    if tracks is None:
        return {}
    if not isinstance(tracks, list):
        raise ValueError(f"Expected 'tracks' to be a list, got {type(tracks).__name__}")

    found = {}
    for track in tracks:
        if track is None:
            continue
        if not isinstance(track, dict):
            raise ValueError(f"Unexpected track entry of type {type(track).__name__}")
        if track.get("id"):
            found[track["id"]] = track
    return found


def artists_from_track(track: Dict[str, Any]) -> List[Dict[str, str]]:
    """Structured contributors: name plus canonical artist link."""
    artists = []
    for artist in track.get("artists") or []:
        if not isinstance(artist, dict):
            continue
        url = (artist.get("external_urls") or {}).get("spotify")
        if not url:
            url = ARTIST_URL_TEMPLATE.format(artist_id=artist.get("id", ""))
        artists.append({"name": artist.get("name") or "", "url": url})
    return artists


def images_from_track(track: Dict[str, Any]) -> List[Dict[str, Any]]:
    """Album artwork variants with explicit width/height (0 when unknown)."""
    album = track.get("album") or {}
    if not isinstance(album, dict):
        return []
    return [
        {
            "url": image.get("url") or "",
            "width": image.get("width") or 0,
            "height": image.get("height") or 0,
        }
        for image in album.get("images") or []
        if isinstance(image, dict)
    ]
