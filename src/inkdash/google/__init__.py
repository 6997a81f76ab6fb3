"""Google OAuth for the dashboard calendar."""

from inkdash.google.callback import (
    AuthorizationCode,
    AuthorizationError,
    CallbackListener,
)
from inkdash.google.exceptions import (
    AuthorizationDeniedError,
    BrowserLaunchError,
    CallbackProtocolError,
    CallbackTimeoutError,
    ConfigError,
    GoogleAuthError,
    ListenerError,
    NoRefreshTokenError,
    NotAuthenticatedError,
    TokenError,
    TokenExchangeError,
    TokenRefreshError,
)
from inkdash.google.oauth import FlowState, OAuthCoordinator
from inkdash.google.token_store import (
    CalendarSource,
    Credentials,
    FileTokenStore,
    MemoryTokenStore,
    TokenStore,
)

__all__ = [
    "OAuthCoordinator",
    "FlowState",
    "CallbackListener",
    "AuthorizationCode",
    "AuthorizationError",
    "TokenStore",
    "FileTokenStore",
    "MemoryTokenStore",
    "Credentials",
    "CalendarSource",
    "GoogleAuthError",
    "ConfigError",
    "ListenerError",
    "BrowserLaunchError",
    "CallbackTimeoutError",
    "AuthorizationDeniedError",
    "CallbackProtocolError",
    "TokenError",
    "TokenExchangeError",
    "TokenRefreshError",
    "NotAuthenticatedError",
    "NoRefreshTokenError",
]
