"""Configuration management using pydantic-settings."""
from pathlib import Path
from typing import List, Optional

from pydantic_settings import BaseSettings

from peakplay.errors import ConfigError

# Variables that must be present before the service can serve or refresh data
REQUIRED_CREDENTIALS = {
    "api_token": "API_TOKEN",
    "spotify_client_id": "SPOTIFY_CLIENT_ID",
    "spotify_client_secret": "SPOTIFY_CLIENT_SECRET",
}


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Shared secret for the read surface (Authorization: Bearer <token>)
    api_token: Optional[str] = None

    # Spotify Web API (client-credentials flow)
    spotify_client_id: Optional[str] = None
    spotify_client_secret: Optional[str] = None
    spotify_api_base_url: str = "https://api.spotify.com/v1"
    spotify_token_url: str = "https://accounts.spotify.com/api/token"

    # Primary ranked listing
    listing_url: str = "https://kworb.net/spotify/country/global_daily.html"
    listing_limit: int = 100

    # Enrichment batching (upstream accepts at most 50 ids per call)
    enrichment_batch_size: int = 50
    enrichment_batch_delay_seconds: float = 0.1

    request_timeout_seconds: float = 30.0

    # Server-side cache
    cache_key: str = "top_songs_cache"
    cache_database_url: str = "sqlite:///./peakplay_cache.db"
    cache_absolute_expiry_seconds: int = 172800  # 48 hours

    # Daily cutover (UTC hour)
    cutover_hour_utc: int = 23

    # Proactive refresh
    scheduler_enabled: bool = True
    scheduler_interval_seconds: int = 3600

    # Client tier
    client_api_base_url: str = "http://localhost:8000"
    client_cache_directory: Path = Path("./cache")
    client_stale_refresh_hours: float = 12.0

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"

    def missing_credentials(self) -> List[str]:
        """Names of required environment variables that are not set."""
        return [
            env_name
            for field_name, env_name in REQUIRED_CREDENTIALS.items()
            if not getattr(self, field_name)
        ]

    def require_credentials(self) -> None:
        """
        Abort startup when a required secret is absent.

        Raises:
            ConfigError: listing every missing variable
        """
        missing = self.missing_credentials()
        if missing:
            raise ConfigError(
                f"Missing required environment variables: {', '.join(missing)}"
            )


settings = Settings()


def get_settings() -> Settings:
    """Return the process-wide settings instance."""
    return settings
