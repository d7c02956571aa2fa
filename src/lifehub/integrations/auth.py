# Service Auth: runs the OAuth flow for a provider and keeps its tokens fresh.
# Created: 2026-10-18

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

import httpx

from lifehub.config import Settings, get_settings
from lifehub.integrations.browser import open_in_browser
from lifehub.integrations.credential_store import CredentialStore
from lifehub.integrations.errors import NotAuthenticatedError
from lifehub.integrations.oauth import (
    AuthorizationFlowConfig,
    OAuthTokens,
    acquire_tokens,
    refresh_tokens,
)
from lifehub.integrations.providers import OAuthProvider, get_provider

logger = logging.getLogger(__name__)


class ServiceAuth:
    """OAuth credentials for one provider.

    Client id/secret come from Settings; obtained tokens are persisted to the
    credential store as ``{PREFIX}_ACCESS_TOKEN``, ``{PREFIX}_REFRESH_TOKEN``
    and ``{PREFIX}_TOKEN_EXPIRES_AT`` (ISO-8601).
    """

    def __init__(
        self,
        provider: OAuthProvider | str,
        settings: Settings | None = None,
        store: CredentialStore | None = None,
        *,
        open_browser: Callable[[str], Any] = open_in_browser,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.provider = get_provider(provider) if isinstance(provider, str) else provider
        self.settings = settings or get_settings()
        self.store = store or CredentialStore(self.settings.credentials_file)
        self._open_browser = open_browser
        self._transport = transport

    @property
    def client_id(self) -> str | None:
        return getattr(self.settings, f"{self.provider.settings_prefix}_client_id", None)

    @property
    def client_secret(self) -> str | None:
        return getattr(self.settings, f"{self.provider.settings_prefix}_client_secret", None)

    def _key(self, suffix: str) -> str:
        return f"{self.provider.env_prefix}_{suffix}"

    def is_configured(self) -> bool:
        """True when client credentials are available."""
        return bool(self.client_id and self.client_secret)

    def flow_config(self) -> AuthorizationFlowConfig:
        if not self.is_configured():
            prefix = f"LIFEHUB_{self.provider.settings_prefix.upper()}"
            raise NotAuthenticatedError(
                f"{self.provider.display_name} is not configured. "
                f"Set {prefix}_CLIENT_ID and {prefix}_CLIENT_SECRET."
            )
        return AuthorizationFlowConfig(
            service_name=self.provider.display_name,
            authorization_url=self.provider.auth_url,
            token_url=self.provider.token_url,
            client_id=self.client_id,
            client_secret=self.client_secret,
            scopes=self.provider.scopes,
            scope_separator=self.provider.scope_separator,
            callback_port=self.settings.oauth_callback_port,
            additional_params=self.provider.additional_params,
        )

    async def authorize(self) -> OAuthTokens:
        """Run the browser authorization flow and persist the tokens."""
        tokens = await acquire_tokens(
            self.flow_config(),
            timeout=self.settings.oauth_flow_timeout,
            open_browser=self._open_browser,
            http_timeout=self.settings.oauth_http_timeout,
            transport=self._transport,
        )
        self.save(tokens)
        logger.info("%s authentication successful", self.provider.display_name)
        return tokens

    def save(self, tokens: OAuthTokens) -> None:
        """Persist a token set; absent optional values leave stored ones alone."""
        updates = {self._key("ACCESS_TOKEN"): tokens.access_token}
        if tokens.refresh_token:
            updates[self._key("REFRESH_TOKEN")] = tokens.refresh_token
        if tokens.expires_at:
            updates[self._key("TOKEN_EXPIRES_AT")] = tokens.expires_at.isoformat()
        self.store.set_many(updates)

    def stored_expiry(self, creds: dict[str, str] | None = None) -> datetime | None:
        """Parse the stored expiry timestamp, or None if absent/unreadable."""
        creds = creds if creds is not None else self.store.load()
        raw = creds.get(self._key("TOKEN_EXPIRES_AT"))
        if not raw:
            return None
        try:
            expiry = datetime.fromisoformat(raw)
        except ValueError:
            logger.warning("Ignoring unreadable %s: %r", self._key("TOKEN_EXPIRES_AT"), raw)
            return None
        if expiry.tzinfo is None:
            expiry = expiry.replace(tzinfo=UTC)
        return expiry

    async def get_valid_token(self, now: datetime | None = None) -> str:
        """Get an access token, refreshing first if the stored one has expired.

        Tokens without a stored expiry are treated as non-expiring.

        Raises:
            NotAuthenticatedError: no access token is stored.
            TokenRefreshError: the refresh request failed.
        """
        creds = self.store.load()
        access_token = creds.get(self._key("ACCESS_TOKEN"))
        refresh_token = creds.get(self._key("REFRESH_TOKEN"))
        expiry = self.stored_expiry(creds)
        now = now or datetime.now(UTC)

        if expiry is not None and expiry <= now and refresh_token and self.is_configured():
            logger.info("Access token for %s expired, refreshing", self.provider.display_name)
            tokens = await refresh_tokens(
                self.provider.token_url,
                self.client_id,
                self.client_secret,
                refresh_token,
                http_timeout=self.settings.oauth_http_timeout,
                transport=self._transport,
            )
            self.save(tokens)
            logger.info("Refreshed OAuth token for %s", self.provider.display_name)
            return tokens.access_token

        if not access_token:
            raise NotAuthenticatedError(
                f"{self.provider.display_name} not authenticated. Complete OAuth flow first."
            )
        return access_token
