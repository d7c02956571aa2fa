# OAuth provider descriptions for the services lifehub syncs from.
# Created: 2026-10-18

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field


@dataclass(frozen=True)
class OAuthProvider:
    """Static OAuth details for one service."""

    name: str
    display_name: str
    auth_url: str
    token_url: str
    scopes: tuple[str, ...]
    settings_prefix: str  # Settings fields are {prefix}_client_id / {prefix}_client_secret
    env_prefix: str  # stored tokens are {PREFIX}_ACCESS_TOKEN etc.
    scope_separator: str = " "
    additional_params: Mapping[str, str] = field(default_factory=dict)


PROVIDERS: dict[str, OAuthProvider] = {
    "strava": OAuthProvider(
        name="strava",
        display_name="Strava",
        auth_url="https://www.strava.com/oauth/authorize",
        token_url="https://www.strava.com/oauth/token",
        scopes=("read", "activity:read_all", "profile:read_all"),
        scope_separator=",",
        settings_prefix="strava",
        env_prefix="STRAVA",
        additional_params={"approval_prompt": "auto"},
    ),
    "google_calendar": OAuthProvider(
        name="google_calendar",
        display_name="Google Calendar",
        auth_url="https://accounts.google.com/o/oauth2/v2/auth",
        token_url="https://oauth2.googleapis.com/token",
        scopes=("https://www.googleapis.com/auth/calendar.readonly",),
        settings_prefix="google",
        env_prefix="GOOGLE",
        # offline + consent so Google issues a refresh token every time
        additional_params={"access_type": "offline", "prompt": "consent"},
    ),
}


def get_provider(name: str) -> OAuthProvider:
    provider = PROVIDERS.get(name)
    if provider is None:
        raise ValueError(f"Unknown OAuth provider: {name}")
    return provider
