# Settings for lifehub, loaded from LIFEHUB_* environment variables and .env.
# Created: 2026-10-18

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_CALLBACK_PORT = 8765
DEFAULT_FLOW_TIMEOUT = 300.0
HTTP_TIMEOUT = 15.0


class Settings(BaseSettings):
    """Application settings.

    OAuth client credentials are read here; the tokens obtained with them are
    written to ``credentials_file`` by the credential store.
    """

    model_config = SettingsConfigDict(
        env_prefix="LIFEHUB_",
        env_file=".env",
        extra="ignore",
    )

    # OAuth callback listener
    oauth_callback_port: int = Field(default=DEFAULT_CALLBACK_PORT, ge=1, le=65535)
    oauth_flow_timeout: float = Field(default=DEFAULT_FLOW_TIMEOUT, gt=0)
    oauth_http_timeout: float = Field(default=HTTP_TIMEOUT, gt=0)

    credentials_file: Path = Path(".env")

    # Strava
    strava_client_id: str | None = None
    strava_client_secret: str | None = None

    # Google Calendar
    google_client_id: str | None = None
    google_client_secret: str | None = None


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Load settings once per process."""
    return Settings()
