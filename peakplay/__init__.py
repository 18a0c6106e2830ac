"""
PeakPlay - daily refreshed global top tracks, enriched with Spotify metadata.
"""

__version__ = "0.3.0"
