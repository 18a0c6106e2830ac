"""
Primary ranked listing: download the daily chart page and parse its rows.
"""
import logging
import re
from dataclasses import dataclass
from typing import List, Optional

import requests
from bs4 import BeautifulSoup

from peakplay.errors import SourceUnavailable
from peakplay.utils.cancellation import NO_CONTROL, FetchControl
from peakplay.utils.helpers import parse_count, safe_strip

logger = logging.getLogger("sources.listing")

TRACK_ID_PATTERN = re.compile(r"track/([^/]+)\.html")
TRACK_URL_TEMPLATE = "https://open.spotify.com/track/{track_id}"

# Column positions in the chart table
COL_POSITION = 0
COL_POSITION_CHANGE = 1
COL_ARTIST_TITLE = 2
COL_DAYS = 3
COL_PEAK = 4
COL_DAILY_STREAMS = 6
COL_TOTAL_STREAMS = 10

USER_AGENT = "Mozilla/5.0 (compatible; PeakPlay/0.3; +https://github.com/peakplay)"


@dataclass(frozen=True)
class ScrapedTrack:
    """One chart row before enrichment."""
    position: int
    position_change: str
    title: str
    track_id: str
    artist_name: str
    days: int = 0
    peak_position: int = 0
    daily_streams: int = 0
    total_streams: int = 0

    @property
    def url(self) -> str:
        if not self.track_id:
            return ""
        return TRACK_URL_TEMPLATE.format(track_id=self.track_id)


def extract_track_id(href: Optional[str]) -> str:
    """Stable identifier from a chart link like 'track/<id>.html'."""
    match = TRACK_ID_PATTERN.search(href or "")
    return match.group(1) if match else ""


def _cell_text(cells, index: int) -> str:
    if index >= len(cells):
        return ""
    return safe_strip(cells[index].get_text())


def _parse_row(row) -> ScrapedTrack:
    """
    Parse a single <tr>. Each field falls back to 0 / "" on its own, so
    one bad cell never discards the row.
    """
    cells = row.find_all("td")

    artist_name = ""
    title = ""
    track_id = ""
    if COL_ARTIST_TITLE < len(cells):
        links = cells[COL_ARTIST_TITLE].find_all("a")
        if links:
            artist_name = safe_strip(links[0].get_text())
        if len(links) > 1:
            title = safe_strip(links[1].get_text())
            track_id = extract_track_id(links[1].get("href"))

    return ScrapedTrack(
        position=parse_count(_cell_text(cells, COL_POSITION)),
        position_change=_cell_text(cells, COL_POSITION_CHANGE),
        title=title,
        track_id=track_id,
        artist_name=artist_name,
        days=parse_count(_cell_text(cells, COL_DAYS)),
        peak_position=parse_count(_cell_text(cells, COL_PEAK)),
        daily_streams=parse_count(_cell_text(cells, COL_DAILY_STREAMS)),
        total_streams=parse_count(_cell_text(cells, COL_TOTAL_STREAMS)),
    )


def parse_listing(html: str, limit: int = 100) -> List[ScrapedTrack]:
    """
    Parse the chart table into rows, in page order.

    Raises:
        SourceUnavailable: if the chart table is missing or has no rows
    """
    soup = BeautifulSoup(html, "html.parser")
    rows = soup.select("#spotifydaily tbody tr")
    if not rows:
        raise SourceUnavailable("Chart table not found or empty in listing page")
    return [_parse_row(row) for row in rows[:limit]]


class ListingSource:
    """Downloads and parses the primary ranked listing."""

    def __init__(
        self,
        url: str,
        limit: int = 100,
        timeout: float = 30.0,
        session: Optional[requests.Session] = None,
    ):
        self.url = url
        self.limit = limit
        self.timeout = timeout
        self._session = session or requests.Session()

    def fetch(self, control: FetchControl = NO_CONTROL) -> List[ScrapedTrack]:
        """
        Raises:
            SourceUnavailable: on any network, HTTP or parse failure
        """
        control.check("listing fetch")
        try:
            response = self._session.get(
                self.url,
                headers={"User-Agent": USER_AGENT},
                timeout=control.request_timeout(self.timeout),
            )
            response.raise_for_status()
        except requests.RequestException as e:
            logger.error(f"Listing fetch failed: {e}")
            raise SourceUnavailable(f"Could not fetch listing from {self.url}: {e}") from e

        tracks = parse_listing(response.text, self.limit)
        logger.info(f"Parsed {len(tracks)} chart rows from {self.url}")
        return tracks
