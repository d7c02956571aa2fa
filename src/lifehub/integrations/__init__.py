# OAuth integrations
# Created: 2026-10-18
# Authorization code flow, token refresh and credential persistence.

from lifehub.integrations.auth import ServiceAuth
from lifehub.integrations.credential_store import CredentialStore
from lifehub.integrations.errors import (
    AuthorizationDeniedError,
    FlowTimeoutError,
    ListenerStartupError,
    MissingCodeError,
    NotAuthenticatedError,
    OAuthFlowError,
    TokenEndpointError,
    TokenExchangeError,
    TokenRefreshError,
)
from lifehub.integrations.oauth import (
    AuthorizationFlow,
    AuthorizationFlowConfig,
    OAuthTokens,
    acquire_tokens,
    build_authorization_url,
    refresh_tokens,
)
from lifehub.integrations.providers import PROVIDERS, OAuthProvider, get_provider

__all__ = [
    "AuthorizationDeniedError",
    "AuthorizationFlow",
    "AuthorizationFlowConfig",
    "CredentialStore",
    "FlowTimeoutError",
    "ListenerStartupError",
    "MissingCodeError",
    "NotAuthenticatedError",
    "OAuthFlowError",
    "OAuthProvider",
    "OAuthTokens",
    "PROVIDERS",
    "ServiceAuth",
    "TokenEndpointError",
    "TokenExchangeError",
    "TokenRefreshError",
    "acquire_tokens",
    "build_authorization_url",
    "get_provider",
    "refresh_tokens",
]
