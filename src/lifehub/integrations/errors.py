# OAuth flow errors.
# Created: 2026-10-18

from __future__ import annotations


class OAuthFlowError(Exception):
    """Base class for authorization and token-endpoint failures."""


class ListenerStartupError(OAuthFlowError):
    """The local callback listener could not bind its port."""

    def __init__(self, port: int, reason: str):
        self.port = port
        self.reason = reason
        super().__init__(f"Failed to start callback server on port {port}: {reason}")


class AuthorizationDeniedError(OAuthFlowError):
    """The provider redirected back with an ``error`` parameter."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"OAuth error: {reason}")


class MissingCodeError(OAuthFlowError):
    """The callback carried neither ``code`` nor ``error``."""

    def __init__(self):
        super().__init__("No authorization code received")


class FlowTimeoutError(OAuthFlowError):
    """No callback arrived before the flow deadline."""

    def __init__(self, timeout: float):
        self.timeout = timeout
        super().__init__(f"OAuth flow timed out after {timeout:g} seconds")


class TokenEndpointError(OAuthFlowError):
    """The token endpoint rejected a request or could not be reached.

    ``status`` is None when no HTTP response was received.
    """

    action = "Token request"

    def __init__(self, status: int | None, body: str):
        self.status = status
        self.body = body
        detail = f"{status} {body}" if status is not None else body
        super().__init__(f"{self.action} failed: {detail}")


class TokenExchangeError(TokenEndpointError):
    action = "Token exchange"


class TokenRefreshError(TokenEndpointError):
    action = "Token refresh"


class NotAuthenticatedError(OAuthFlowError):
    """No usable credential is stored for a service."""
