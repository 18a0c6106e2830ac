"""
Client-tier source: reads the server's /api/top-songs endpoint.
"""
import logging
from typing import List, Optional

import requests

from peakplay.errors import AuthError, SourceUnavailable
from peakplay.models import Track, tracks_from_payload
from peakplay.utils.cancellation import NO_CONTROL, FetchControl

logger = logging.getLogger("sources.remote")


class RemoteTracksSource:
    """Fetches the already-enriched track list from a peakplay server."""

    def __init__(
        self,
        base_url: str,
        api_token: Optional[str],
        timeout: float = 30.0,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self._api_token = api_token
        self._timeout = timeout
        self._session = session or requests.Session()

    def fetch(self, control: Optional[FetchControl] = None) -> List[Track]:
        """
        Raises:
            AuthError: token missing or rejected by the server
            SourceUnavailable: network failure, non-2xx status or bad payload
        """
        control = control or NO_CONTROL
        if not self._api_token:
            raise AuthError("API token is not configured")

        control.check("remote fetch")
        try:
            response = self._session.get(
                f"{self.base_url}/api/top-songs",
                headers={"Authorization": f"Bearer {self._api_token}"},
                timeout=control.request_timeout(self._timeout),
            )
        except requests.RequestException as e:
            raise SourceUnavailable(f"Failed to reach API: {e}") from e

        if response.status_code in (401, 403):
            raise AuthError("Authentication failed. Check your API token.", status_code=response.status_code)
        if not response.ok:
            raise SourceUnavailable(f"Failed to fetch from API: {response.status_code} {response.reason}")

        try:
            tracks = tracks_from_payload(response.json())
        except ValueError as e:
            raise SourceUnavailable(f"Unexpected payload from API: {e}") from e

        logger.info(f"Fetched {len(tracks)} tracks from {self.base_url}")
        return tracks
