# OAuth Flow: authorization code flow with a local callback listener + token refresh.
# Created: 2026-10-18

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

import httpx

from lifehub.config import DEFAULT_CALLBACK_PORT, DEFAULT_FLOW_TIMEOUT, HTTP_TIMEOUT
from lifehub.integrations.browser import open_in_browser
from lifehub.integrations.callback_server import CALLBACK_PATH, CallbackServer, render_page
from lifehub.integrations.errors import (
    AuthorizationDeniedError,
    FlowTimeoutError,
    MissingCodeError,
    TokenEndpointError,
    TokenExchangeError,
    TokenRefreshError,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuthorizationFlowConfig:
    """Everything needed to run one authorization code flow."""

    service_name: str
    authorization_url: str
    token_url: str
    client_id: str
    client_secret: str = field(repr=False)
    scopes: Sequence[str] = ()
    scope_separator: str = " "  # some providers (Strava) want ","
    callback_port: int | None = None
    additional_params: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, "scopes", tuple(self.scopes))

    @property
    def port(self) -> int:
        return self.callback_port or DEFAULT_CALLBACK_PORT

    @property
    def redirect_uri(self) -> str:
        return f"http://localhost:{self.port}{CALLBACK_PATH}"


@dataclass
class OAuthTokens:
    """Token set returned by a provider's token endpoint."""

    access_token: str = field(repr=False)
    refresh_token: str | None = field(default=None, repr=False)
    expires_in: int | None = None
    expires_at: datetime | None = None  # UTC, derived from expires_in on receipt
    token_type: str | None = None
    scope: str | None = None

    @property
    def is_valid(self) -> bool:
        """True when the token can be used as a bearer credential."""
        return bool(self.access_token)

    @classmethod
    def from_response(
        cls,
        data: Mapping[str, Any],
        fallback_refresh_token: str | None = None,
    ) -> OAuthTokens:
        """Build tokens from a token-endpoint JSON body.

        ``expires_at`` is always computed from ``expires_in`` at call time;
        an ``expires_at`` sent by the provider is ignored.
        """
        expires_in = data.get("expires_in")
        if expires_in is not None:
            # some providers send "3600" or 3600.0
            expires_in = int(float(expires_in))

        tokens = cls(
            access_token=data["access_token"],
            refresh_token=data.get("refresh_token") or fallback_refresh_token,
            expires_in=expires_in,
            token_type=data.get("token_type"),
            scope=data.get("scope"),
        )
        if expires_in is not None:
            tokens.expires_at = datetime.now(UTC) + timedelta(seconds=expires_in)
        return tokens


def build_authorization_url(config: AuthorizationFlowConfig) -> str:
    """Build the provider URL the user is sent to for consent.

    Query parameters already on ``authorization_url`` are kept. Entries in
    ``additional_params`` are applied last and win over standard parameters.
    """
    parts = urlsplit(config.authorization_url)
    params = dict(parse_qsl(parts.query, keep_blank_values=True))

    params["client_id"] = config.client_id
    params["redirect_uri"] = config.redirect_uri
    params["response_type"] = "code"
    if config.scopes:
        params["scope"] = config.scope_separator.join(config.scopes)

    overridden = sorted(params.keys() & config.additional_params.keys())
    if overridden:
        logger.debug("additional_params override %s for %s", overridden, config.service_name)
    params.update(config.additional_params)

    return urlunsplit(parts._replace(query=urlencode(params)))


async def _request_tokens(
    token_url: str,
    data: dict[str, str],
    error_cls: type[TokenEndpointError],
    fallback_refresh_token: str | None = None,
    timeout: float = HTTP_TIMEOUT,
    transport: httpx.AsyncBaseTransport | None = None,
) -> OAuthTokens:
    """POST a form-encoded token request and parse the tokens from the reply.

    Every failure, including an unreadable reply body, raises ``error_cls``.
    """
    try:
        async with httpx.AsyncClient(timeout=timeout, transport=transport) as client:
            resp = await client.post(
                token_url,
                data=data,
                headers={"Accept": "application/json"},
            )
    except httpx.HTTPError as e:
        raise error_cls(None, str(e) or type(e).__name__) from e

    if not resp.is_success:
        raise error_cls(resp.status_code, resp.text)

    try:
        payload = resp.json()
    except ValueError as e:
        raise error_cls(resp.status_code, resp.text) from e

    if not isinstance(payload, dict) or not payload.get("access_token"):
        raise error_cls(resp.status_code, "response did not include an access_token")

    try:
        return OAuthTokens.from_response(payload, fallback_refresh_token)
    except (TypeError, ValueError) as e:
        raise error_cls(resp.status_code, f"unreadable token response: {e}") from e


class AuthorizationFlow:
    """One run of the authorization code flow.

    Owns a callback listener on ``config.port`` for the lifetime of
    :meth:`run`. The first callback request decides the outcome; later
    requests (favicon probes, browser retries) are answered but ignored, so
    at most one code is ever exchanged.
    """

    def __init__(
        self,
        config: AuthorizationFlowConfig,
        *,
        timeout: float = DEFAULT_FLOW_TIMEOUT,
        open_browser: Callable[[str], Any] = open_in_browser,
        http_timeout: float = HTTP_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
        host: str = "127.0.0.1",
    ):
        self.config = config
        self.timeout = timeout
        self.redirect_uri = config.redirect_uri
        self.authorization_url = build_authorization_url(config)
        self._open_browser = open_browser
        self._http_timeout = http_timeout
        self._transport = transport
        self._server = CallbackServer(self._handle_callback, config.port, host=host)
        self._outcome: asyncio.Future[OAuthTokens] | None = None
        self._claimed = False

    @property
    def listening(self) -> bool:
        return self._server.is_running

    async def run(self) -> OAuthTokens:
        """Run the flow to completion and return the obtained tokens.

        The listener is closed before this returns or raises.
        """
        if self._outcome is not None:
            raise RuntimeError("An AuthorizationFlow can only be run once")
        self._outcome = asyncio.get_running_loop().create_future()

        await self._server.start()
        try:
            self._launch_browser()
            try:
                return await asyncio.wait_for(asyncio.shield(self._outcome), self.timeout)
            except TimeoutError:
                self._settle(error=FlowTimeoutError(self.timeout))
                return await self._outcome
        finally:
            await self._server.stop()

    def _launch_browser(self) -> None:
        name = self.config.service_name
        logger.info("Opening browser for %s authorization...", name)
        logger.info("If the browser doesn't open, visit: %s", self.authorization_url)
        try:
            self._open_browser(self.authorization_url)
        except Exception:
            logger.warning("Could not open a browser for %s", name, exc_info=True)

    def _settle(
        self, tokens: OAuthTokens | None = None, error: Exception | None = None
    ) -> bool:
        """Record the flow outcome. Returns False if it was already decided."""
        if self._outcome is None or self._outcome.done():
            return False
        if error is not None:
            self._outcome.set_exception(error)
        else:
            self._outcome.set_result(tokens)
        return True

    async def _handle_callback(self, params: Mapping[str, str]) -> tuple[int, str]:
        # Claim synchronously: nothing awaits between the check and the set.
        if self._claimed or self._outcome is None or self._outcome.done():
            logger.debug("Ignoring repeated callback for %s", self.config.service_name)
            return 200, render_page(
                "Authorization Already Handled",
                "This authorization request has already been processed.",
            )
        self._claimed = True

        error = params.get("error")
        if error:
            reason = params.get("error_description") or error
            self._settle(error=AuthorizationDeniedError(reason))
            return 400, render_page("Authorization Failed", reason)

        code = params.get("code")
        if not code:
            self._settle(error=MissingCodeError())
            return 400, render_page(
                "Missing Authorization Code", "No authorization code received."
            )

        try:
            tokens = await self._exchange_code(code)
        except TokenExchangeError as e:
            self._settle(error=e)
            return 500, render_page("Token Exchange Failed", str(e))
        except Exception as e:
            logger.exception("Unexpected error exchanging code for %s", self.config.service_name)
            self._settle(error=e)
            return 500, render_page("Token Exchange Failed", "Unexpected error, see logs.")

        self._settle(tokens=tokens)
        return 200, render_page(
            "Authorization Successful!", f"{self.config.service_name} has been connected."
        )

    async def _exchange_code(self, code: str) -> OAuthTokens:
        """Exchange an authorization code for tokens."""
        tokens = await _request_tokens(
            self.config.token_url,
            {
                "client_id": self.config.client_id,
                "client_secret": self.config.client_secret,
                "code": code,
                "grant_type": "authorization_code",
                "redirect_uri": self.redirect_uri,
            },
            TokenExchangeError,
            timeout=self._http_timeout,
            transport=self._transport,
        )
        logger.info("OAuth tokens obtained for %s", self.config.service_name)
        return tokens


async def acquire_tokens(
    config: AuthorizationFlowConfig,
    *,
    timeout: float = DEFAULT_FLOW_TIMEOUT,
    open_browser: Callable[[str], Any] = open_in_browser,
    http_timeout: float = HTTP_TIMEOUT,
    transport: httpx.AsyncBaseTransport | None = None,
) -> OAuthTokens:
    """Run an authorization code flow with a local callback listener.

    Args:
        config: Provider endpoints, client credentials and scopes.
        timeout: Seconds to wait for the provider redirect.
        open_browser: Called with the authorization URL; failures are logged.
        http_timeout: Timeout for the token endpoint request.
        transport: Optional httpx transport for the token endpoint.

    Returns:
        OAuthTokens from the token endpoint.

    Raises:
        ListenerStartupError, AuthorizationDeniedError, MissingCodeError,
        FlowTimeoutError, TokenExchangeError.
    """
    flow = AuthorizationFlow(
        config,
        timeout=timeout,
        open_browser=open_browser,
        http_timeout=http_timeout,
        transport=transport,
    )
    return await flow.run()


async def refresh_tokens(
    token_url: str,
    client_id: str,
    client_secret: str,
    refresh_token: str,
    *,
    http_timeout: float = HTTP_TIMEOUT,
    transport: httpx.AsyncBaseTransport | None = None,
) -> OAuthTokens:
    """Exchange a refresh token for a new access token.

    Providers that keep the same refresh token omit it from the response;
    the returned tokens then carry the ``refresh_token`` passed in.

    Raises:
        TokenRefreshError: the token endpoint failed or was unreachable.
    """
    return await _request_tokens(
        token_url,
        {
            "client_id": client_id,
            "client_secret": client_secret,
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
        },
        TokenRefreshError,
        fallback_refresh_token=refresh_token,
        timeout=http_timeout,
        transport=transport,
    )
