# Tests for integrations/auth.py and integrations/providers.py
# Created: 2026-10-18

from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock, patch
from urllib.parse import parse_qs

import httpx
import pytest

from lifehub.config import Settings
from lifehub.integrations.auth import ServiceAuth
from lifehub.integrations.credential_store import CredentialStore
from lifehub.integrations.errors import NotAuthenticatedError, TokenRefreshError
from lifehub.integrations.oauth import OAuthTokens
from lifehub.integrations.providers import PROVIDERS, get_provider


@pytest.fixture
def settings(tmp_path):
    return Settings(
        _env_file=None,
        credentials_file=tmp_path / ".env",
        oauth_callback_port=9123,
        oauth_flow_timeout=42.0,
        strava_client_id="strava-id",
        strava_client_secret="strava-secret",
    )


@pytest.fixture
def store(settings):
    return CredentialStore(settings.credentials_file)


def refresh_endpoint(calls, json):
    def handler(request):
        calls.append(request)
        return httpx.Response(200, json=json)

    return httpx.MockTransport(handler)


# ---------------------------------------------------------------------------
# Providers
# ---------------------------------------------------------------------------


class TestProviders:
    def test_known_providers(self):
        assert "strava" in PROVIDERS
        assert "google_calendar" in PROVIDERS
        assert get_provider("strava").scope_separator == ","

    def test_unknown_provider(self):
        with pytest.raises(ValueError, match="Unknown OAuth provider"):
            get_provider("myspace")

    def test_google_requests_offline_access(self):
        params = get_provider("google_calendar").additional_params
        assert params["access_type"] == "offline"
        assert params["prompt"] == "consent"


# ---------------------------------------------------------------------------
# ServiceAuth
# ---------------------------------------------------------------------------


class TestServiceAuthConfig:
    def test_is_configured(self, settings, store):
        assert ServiceAuth("strava", settings, store).is_configured()
        assert not ServiceAuth("google_calendar", settings, store).is_configured()

    def test_flow_config(self, settings, store):
        config = ServiceAuth("strava", settings, store).flow_config()
        assert config.service_name == "Strava"
        assert config.client_id == "strava-id"
        assert config.scopes == ("read", "activity:read_all", "profile:read_all")
        assert config.scope_separator == ","
        assert config.redirect_uri == "http://localhost:9123/callback"
        assert config.additional_params == {"approval_prompt": "auto"}

    def test_flow_config_unconfigured(self, settings, store):
        with pytest.raises(NotAuthenticatedError, match="LIFEHUB_GOOGLE_CLIENT_ID"):
            ServiceAuth("google_calendar", settings, store).flow_config()


class TestServiceAuthorize:
    async def test_authorize_persists_tokens(self, settings, store):
        expires_at = datetime(2030, 1, 1, tzinfo=UTC)
        tokens = OAuthTokens(
            access_token="A1", refresh_token="R1", expires_in=3600, expires_at=expires_at
        )
        with patch(
            "lifehub.integrations.auth.acquire_tokens",
            new_callable=AsyncMock,
            return_value=tokens,
        ) as mock_acquire:
            result = await ServiceAuth("strava", settings, store).authorize()

        assert result is tokens
        assert mock_acquire.await_args.kwargs["timeout"] == 42.0
        assert store.load() == {
            "STRAVA_ACCESS_TOKEN": "A1",
            "STRAVA_REFRESH_TOKEN": "R1",
            "STRAVA_TOKEN_EXPIRES_AT": expires_at.isoformat(),
        }

    async def test_authorize_without_refresh_token_keeps_old_one(self, settings, store):
        store.set_many({"STRAVA_REFRESH_TOKEN": "old-refresh"})
        with patch(
            "lifehub.integrations.auth.acquire_tokens",
            new_callable=AsyncMock,
            return_value=OAuthTokens(access_token="A1"),
        ):
            await ServiceAuth("strava", settings, store).authorize()

        assert store.get("STRAVA_ACCESS_TOKEN") == "A1"
        assert store.get("STRAVA_REFRESH_TOKEN") == "old-refresh"


class TestGetValidToken:
    async def test_fresh_token_not_refreshed(self, settings, store):
        calls = []
        store.set_many(
            {
                "STRAVA_ACCESS_TOKEN": "fresh",
                "STRAVA_REFRESH_TOKEN": "R1",
                "STRAVA_TOKEN_EXPIRES_AT": (datetime.now(UTC) + timedelta(hours=1)).isoformat(),
            }
        )
        auth = ServiceAuth(
            "strava", settings, store, transport=refresh_endpoint(calls, {"access_token": "x"})
        )
        assert await auth.get_valid_token() == "fresh"
        assert calls == []

    async def test_no_expiry_treated_as_non_expiring(self, settings, store):
        calls = []
        store.set_many({"STRAVA_ACCESS_TOKEN": "forever", "STRAVA_REFRESH_TOKEN": "R1"})
        auth = ServiceAuth(
            "strava", settings, store, transport=refresh_endpoint(calls, {"access_token": "x"})
        )
        assert await auth.get_valid_token() == "forever"
        assert calls == []

    async def test_expired_token_refreshed_and_saved(self, settings, store):
        calls = []
        store.set_many(
            {
                "STRAVA_ACCESS_TOKEN": "stale",
                "STRAVA_REFRESH_TOKEN": "R1",
                "STRAVA_TOKEN_EXPIRES_AT": (datetime.now(UTC) - timedelta(minutes=1)).isoformat(),
            }
        )
        auth = ServiceAuth(
            "strava",
            settings,
            store,
            transport=refresh_endpoint(calls, {"access_token": "T2", "expires_in": 21600}),
        )

        assert await auth.get_valid_token() == "T2"
        assert len(calls) == 1
        body = {k: v[0] for k, v in parse_qs(calls[0].content.decode()).items()}
        assert body["grant_type"] == "refresh_token"
        assert body["refresh_token"] == "R1"
        assert str(calls[0].url) == "https://www.strava.com/oauth/token"

        creds = store.load()
        assert creds["STRAVA_ACCESS_TOKEN"] == "T2"
        assert creds["STRAVA_REFRESH_TOKEN"] == "R1"
        assert auth.stored_expiry() > datetime.now(UTC)

    async def test_refresh_failure_propagates(self, settings, store):
        store.set_many(
            {
                "STRAVA_ACCESS_TOKEN": "stale",
                "STRAVA_REFRESH_TOKEN": "R1",
                "STRAVA_TOKEN_EXPIRES_AT": "2000-01-01T00:00:00+00:00",
            }
        )
        transport = httpx.MockTransport(lambda request: httpx.Response(401, text="revoked"))
        auth = ServiceAuth("strava", settings, store, transport=transport)

        with pytest.raises(TokenRefreshError):
            await auth.get_valid_token()
        assert store.get("STRAVA_ACCESS_TOKEN") == "stale"

    async def test_expired_without_refresh_token_returns_stored(self, settings, store):
        store.set_many(
            {
                "STRAVA_ACCESS_TOKEN": "stale",
                "STRAVA_TOKEN_EXPIRES_AT": "2000-01-01T00:00:00+00:00",
            }
        )
        assert await ServiceAuth("strava", settings, store).get_valid_token() == "stale"

    async def test_not_authenticated(self, settings, store):
        with pytest.raises(NotAuthenticatedError, match="not authenticated"):
            await ServiceAuth("strava", settings, store).get_valid_token()


class TestStoredExpiry:
    def test_naive_timestamp_is_utc(self, settings, store):
        store.set_many({"STRAVA_TOKEN_EXPIRES_AT": "2030-01-01T00:00:00"})
        assert ServiceAuth("strava", settings, store).stored_expiry() == datetime(
            2030, 1, 1, tzinfo=UTC
        )

    def test_unreadable_timestamp(self, settings, store):
        store.set_many({"STRAVA_TOKEN_EXPIRES_AT": "next tuesday"})
        assert ServiceAuth("strava", settings, store).stored_expiry() is None
