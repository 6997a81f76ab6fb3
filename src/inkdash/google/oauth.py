"""Google OAuth authorization-code flow for the Calendar API.

This module provides OAuth 2.0 authentication for Google Calendar with:
- Browser-based consent with a loopback callback listener
- Code-for-token exchange and refresh-token handling
- Pre-emptive refresh of access tokens that are about to expire

Credentials are read and written through a TokenStore, by default the JSON
file in the inkdash config directory:
    ~/.config/inkdash/google_calendar.json
"""

from __future__ import annotations

import asyncio
import enum
import logging
import webbrowser
from collections.abc import Awaitable, Callable
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Any

import httpx
from authlib.integrations.httpx_client import AsyncOAuth2Client, OAuthError
from authlib.oauth2 import OAuth2Error
from authlib.oauth2.rfc6749.parameters import prepare_grant_uri
from google.oauth2.credentials import Credentials as GoogleCredentials

from inkdash.config import get_callback_port
from inkdash.google.callback import CALLBACK_PATH, AuthorizationError, CallbackListener
from inkdash.google.exceptions import (
    AuthorizationDeniedError,
    BrowserLaunchError,
    ConfigError,
    GoogleAuthError,
    NoRefreshTokenError,
    NotAuthenticatedError,
    TokenError,
    TokenExchangeError,
    TokenRefreshError,
)
from inkdash.google.token_store import Credentials, FileTokenStore, TokenStore

logger = logging.getLogger(__name__)

CALENDAR_READONLY_SCOPE = "https://www.googleapis.com/auth/calendar.readonly"

# Seconds to wait for the browser redirect
CALLBACK_TIMEOUT = 300

# Tokens expiring within this margin are refreshed before use
REFRESH_MARGIN = timedelta(minutes=5)


class FlowState(enum.Enum):
    """Where the coordinator is in the authorization flow."""

    IDLE = "idle"
    AWAITING_BROWSER = "awaiting_browser"
    AWAITING_CALLBACK = "awaiting_callback"
    EXCHANGING = "exchanging"
    AUTHENTICATED = "authenticated"
    REFRESHING = "refreshing"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _reject_error_status(
    error_class: type[TokenError],
) -> Callable[[httpx.Response], httpx.Response]:
    """Build an Authlib compliance hook raising error_class on a non-2xx response."""

    def hook(response: httpx.Response) -> httpx.Response:
        if not response.is_success:
            raise error_class(response.status_code, response.text)
        return response

    return hook


class OAuthCoordinator:
    """Google OAuth for the dashboard calendar.

    Drives the authorization-code flow and hands out access tokens that are
    guaranteed not to expire within the next five minutes.

    Example:
        >>> auth = OAuthCoordinator()
        >>> if not auth.is_configured():
        ...     auth.start_flow()              # opens the browser
        ...     code = auth.await_callback()   # blocks until the redirect
        ...     asyncio.run(auth.exchange_code(code))
        >>> token = asyncio.run(auth.get_valid_access_token())
    """

    AUTHORIZE_URL = "https://accounts.google.com/o/oauth2/v2/auth"
    TOKEN_URL = "https://oauth2.googleapis.com/token"

    def __init__(
        self,
        store: TokenStore | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        callback_port: int | None = None,
        open_browser: Callable[[str], bool] = webbrowser.open,
        now: Callable[[], datetime] = _utcnow,
    ):
        """Initialize the coordinator.

        Args:
            store: Credential store. Defaults to the JSON file store.
            transport: httpx transport for token endpoint calls. The
                default network transport is used when omitted.
            callback_port: Loopback port for the redirect. Defaults to
                INKDASH_CALLBACK_PORT or 8847.
            open_browser: Opens a URL, returning False on failure.
            now: Clock returning an aware UTC datetime.
        """
        self.store = store or FileTokenStore()
        self.callback_port = get_callback_port() if callback_port is None else callback_port
        self._transport = transport
        self._open_browser = open_browser
        self._now = now
        self._listener: CallbackListener | None = None
        self._refresh_lock = asyncio.Lock()

        self.state = FlowState.AUTHENTICATED if self.is_configured() else FlowState.IDLE

    @property
    def redirect_uri(self) -> str:
        return f"http://localhost:{self.callback_port}{CALLBACK_PATH}"

    @property
    def listener(self) -> CallbackListener | None:
        """The callback listener of the flow attempt in progress, if any."""
        return self._listener

    def is_configured(self) -> bool:
        """Check whether an access token has been obtained."""
        return bool(self.store.load().access_token)

    def _require_client_credentials(self) -> Credentials:
        credentials = self.store.load()
        if not credentials.has_client_credentials:
            raise ConfigError()
        return credentials

    # =========================================================================
    # Authorization flow
    # =========================================================================

    def get_authorization_url(self) -> str:
        """Build the Google consent URL.

        ``prompt=consent`` makes Google issue a refresh token on every
        re-authorization.

        Raises:
            ConfigError: If client_id or client_secret is missing.
        """
        credentials = self._require_client_credentials()
        return prepare_grant_uri(
            self.AUTHORIZE_URL,
            client_id=credentials.client_id,
            response_type="code",
            redirect_uri=self.redirect_uri,
            scope=CALENDAR_READONLY_SCOPE,
            access_type="offline",
            prompt="consent",
        )

    def start_flow(self) -> str:
        """Start the OAuth flow and open the consent page in the browser.

        Binds the callback listener before the browser is opened, so the
        redirect can never arrive before something is listening. A listener
        left over from an earlier attempt is closed first.

        Returns:
            Authorization URL.

        Raises:
            ConfigError: If client_id or client_secret is missing.
            ListenerError: If the callback port is already in use.
            BrowserLaunchError: If the browser could not be opened. The URL
                on the exception is still valid and the listener keeps
                waiting for it.
        """
        url = self.get_authorization_url()

        self.close()
        try:
            self._listener = CallbackListener(port=self.callback_port)
        except GoogleAuthError:
            self.state = FlowState.IDLE
            raise
        self.state = FlowState.AWAITING_BROWSER

        try:
            opened = self._open_browser(url)
            reason = "no runnable browser found"
        except webbrowser.Error as e:
            opened = False
            reason = str(e)

        if not opened:
            logger.error(f"Failed to open browser: {reason}")
            raise BrowserLaunchError(url, reason)

        return url

    def await_callback(self, timeout: float = CALLBACK_TIMEOUT) -> str:
        """Block until the browser redirect delivers an authorization code.

        Args:
            timeout: Seconds to wait for the redirect.

        Returns:
            The authorization code.

        Raises:
            ListenerError: If no listener was running and the port is taken.
            CallbackTimeoutError: If no redirect arrived in time.
            AuthorizationDeniedError: If the user or Google denied access.
            CallbackProtocolError: If the redirect was malformed.
        """
        try:
            if self._listener is None:
                self._listener = CallbackListener(port=self.callback_port)
            self.state = FlowState.AWAITING_CALLBACK
            result = self._listener.wait(timeout)
        except GoogleAuthError:
            self.state = FlowState.IDLE
            raise
        finally:
            self.close()

        if isinstance(result, AuthorizationError):
            self.state = FlowState.IDLE
            raise AuthorizationDeniedError(result.error)

        return result.code

    async def complete_flow(self, timeout: float = CALLBACK_TIMEOUT) -> None:
        """Wait for the redirect on a worker thread, then exchange the code."""
        code = await asyncio.to_thread(self.await_callback, timeout)
        await self.exchange_code(code)

    def close(self):
        """Shut down the callback listener of the current attempt, if any."""
        if self._listener is not None:
            self._listener.close()
            self._listener = None

    # =========================================================================
    # Token endpoint
    # =========================================================================

    def _oauth_client(self, credentials: Credentials) -> AsyncOAuth2Client:
        client = AsyncOAuth2Client(
            client_id=credentials.client_id,
            client_secret=credentials.client_secret,
            redirect_uri=self.redirect_uri,
            token_endpoint_auth_method="client_secret_post",
            transport=self._transport,
            timeout=30.0,
        )
        client.register_compliance_hook(
            "access_token_response", _reject_error_status(TokenExchangeError)
        )
        client.register_compliance_hook(
            "refresh_token_response", _reject_error_status(TokenRefreshError)
        )
        return client

    async def _request_token(
        self,
        credentials: Credentials,
        action: str,
        grant: Callable[[AsyncOAuth2Client], Awaitable[dict[str, Any]]],
    ) -> dict[str, Any]:
        try:
            async with self._oauth_client(credentials) as client:
                token = dict(await grant(client))
            token["expires_in"] = int(token["expires_in"])
            if not token.get("access_token"):
                raise KeyError("access_token")
        except (httpx.HTTPError, OAuthError, OAuth2Error) as e:
            raise TokenError(f"Token {action} failed: {e}") from e
        except (ValueError, KeyError, TypeError) as e:
            raise TokenError(f"Failed to parse token response: {e}") from e
        return token

    def _apply_token(self, credentials: Credentials, token: dict[str, Any]) -> Credentials:
        """Store a token response; keep the old refresh token unless a new one came back."""
        expiry = self._now() + timedelta(seconds=token["expires_in"])
        updated = replace(
            credentials,
            access_token=token["access_token"],
            refresh_token=token.get("refresh_token") or credentials.refresh_token,
            token_expiry=expiry.isoformat(),
        )
        self.store.save(updated)
        return updated

    async def exchange_code(self, code: str) -> None:
        """Exchange an authorization code for tokens and persist them.

        Args:
            code: Authorization code from the callback.

        Raises:
            ConfigError: If client_id or client_secret is missing.
            TokenExchangeError: If Google rejects the code.
            TokenError: If the request fails or the response is unreadable.
        """
        credentials = self._require_client_credentials()
        self.state = FlowState.EXCHANGING

        try:
            token = await self._request_token(
                credentials,
                "exchange",
                lambda client: client.fetch_token(
                    self.TOKEN_URL,
                    grant_type="authorization_code",
                    code=code,
                ),
            )
        except GoogleAuthError:
            self.state = FlowState.IDLE
            raise

        self._apply_token(credentials, token)
        self.state = FlowState.AUTHENTICATED
        logger.info("Google Calendar authorization complete")

    def _needs_refresh(self, credentials: Credentials) -> bool:
        expiry = credentials.expires_at
        return expiry is not None and expiry < self._now() + REFRESH_MARGIN

    async def refresh(self) -> str:
        """Refresh the access token.

        Returns:
            The new access token.

        Raises:
            NoRefreshTokenError: If no refresh token is stored.
            TokenRefreshError: If Google rejects the refresh token.
            TokenError: If the request fails or the response is unreadable.
        """
        async with self._refresh_lock:
            return await self._refresh(self.store.load())

    async def _refresh(self, credentials: Credentials) -> str:
        if not credentials.refresh_token:
            self.state = FlowState.IDLE
            raise NoRefreshTokenError()

        self.state = FlowState.REFRESHING
        try:
            token = await self._request_token(
                credentials,
                "refresh",
                lambda client: client.refresh_token(
                    self.TOKEN_URL,
                    refresh_token=credentials.refresh_token,
                ),
            )
        except GoogleAuthError:
            self.state = FlowState.IDLE
            raise

        updated = self._apply_token(credentials, token)
        self.state = FlowState.AUTHENTICATED
        logger.info(f"Access token refreshed, expires {updated.token_expiry}")
        return updated.access_token

    async def get_valid_access_token(self) -> str:
        """Return an access token that stays valid for at least five minutes.

        Refreshes first when the stored token is expired or about to be.
        Concurrent callers on the same coordinator share one refresh.

        Raises:
            NotAuthenticatedError: If no access token was ever obtained.
            NoRefreshTokenError: If a refresh is needed but impossible.
            TokenRefreshError: If the refresh is rejected.
        """
        credentials = self.store.load()
        if not credentials.access_token:
            raise NotAuthenticatedError()

        if not self._needs_refresh(credentials):
            return credentials.access_token

        async with self._refresh_lock:
            # Another caller may have refreshed while we waited for the lock
            credentials = self.store.load()
            if credentials.access_token and not self._needs_refresh(credentials):
                return credentials.access_token
            logger.info("Token expired or expiring soon, refreshing...")
            return await self._refresh(credentials)

    async def get_credentials(self) -> GoogleCredentials:
        """Get Google Credentials object for API client libraries.

        Returns:
            Google Credentials object with a valid access token.
        """
        token = await self.get_valid_access_token()
        credentials = self.store.load()
        return GoogleCredentials(
            token=token,
            refresh_token=credentials.refresh_token or None,
            token_uri=self.TOKEN_URL,
            client_id=credentials.client_id,
            client_secret=credentials.client_secret,
            scopes=[CALENDAR_READONLY_SCOPE],
        )

    def get_token_info(self) -> dict[str, Any]:
        """Get information about the current token.

        Returns:
            Dictionary with token status, expiry, etc.
        """
        credentials = self.store.load()
        if not credentials.access_token:
            return {"status": "no_token"}

        expiry = credentials.expires_at
        if expiry:
            expires_in = (expiry - self._now()).total_seconds()
            expires_str = str(timedelta(seconds=int(max(0, expires_in))))
            is_expired = expires_in <= 0
        else:
            expires_str = "unknown"
            is_expired = False

        return {
            "status": "valid" if not is_expired else "expired",
            "scopes": [CALENDAR_READONLY_SCOPE],
            "expires_in": expires_str,
            "expiry": credentials.token_expiry or None,
            "has_refresh_token": bool(credentials.refresh_token),
            "calendars": len(credentials.calendars),
            "refresh_interval_minutes": credentials.refresh_interval_minutes,
        }
