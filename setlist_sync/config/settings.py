"""Application settings loaded from environment variables via pydantic-settings.

# ─── HOW SETTINGS WORK ─────────────────────────────────────────────────
#
# pydantic-settings reads configuration from two sources, in priority
# order:
#
#   1. Environment variables, e.g. TICKETMASTER_API_KEY=abc123
#   2. The .env file in the project root (local development)
#
# Field ``ticketmaster_api_key`` maps to env var ``TICKETMASTER_API_KEY``.
# Defaults apply when neither source sets a value.  An empty credential
# means "not configured": the provider reports itself unavailable.
#
# Per-provider request intervals live in config/config.yaml (see
# loader.py); everything here is per-deployment.
# ──────────────────────────────────────────────────────────────────────
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """setlist-sync application settings.

    Environment variables override defaults. Loaded from .env file when present.
    """

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # === Providers ===
    ticketmaster_api_key: str = ""
    ticketmaster_base_url: str = "https://app.ticketmaster.com/discovery/v2"
    spotify_client_id: str = ""
    spotify_client_secret: str = ""
    musicbrainz_app_name: str = "setlist-sync"
    musicbrainz_app_version: str = "0.1.0"
    musicbrainz_contact: str = ""
    musicbrainz_enabled: bool = True

    # === Fetching ===
    fetch_max_attempts: int = Field(default=5, ge=1)
    fetch_max_pages: int = Field(default=5, ge=1)
    fetch_timeout_seconds: float = Field(default=10.0, gt=0)
    fetch_backoff_base_seconds: float = Field(default=0.5, ge=0)
    fetch_backoff_max_seconds: float = Field(default=30.0, ge=0)

    # === Identity ===
    # Registry score (0-100) needed to accept a non-identical name match.
    identity_match_threshold: float = Field(default=90.0, ge=0, le=100)

    # === Storage ===
    storage_db_path: str = "data/setlist_sync.db"

    # === Import jobs ===
    import_active_ttl_seconds: int = 30 * 60
    import_terminal_ttl_seconds: int = 60 * 60
    setlist_songs_per_show: int = Field(default=10, ge=1)

    # === Trending ===
    trending_default_window_hours: float = Field(default=168.0, gt=0)
    trending_cache_ttl_seconds: int = 60
    trending_refresh_interval_seconds: float = 900.0
    trending_refresh_enabled: bool = True

    # === App Config ===
    app_host: str = "0.0.0.0"
    app_port: int = 8000
    app_env: str = "development"
    log_level: str = "INFO"

    def get_available_providers(self) -> list[str]:
        """Return the providers whose credentials are configured."""
        providers: list[str] = []
        if self.ticketmaster_api_key:
            providers.append("ticketmaster")
        if self.spotify_client_id and self.spotify_client_secret:
            providers.append("spotify")
        if self.musicbrainz_enabled:
            providers.append("musicbrainz")
        return providers
