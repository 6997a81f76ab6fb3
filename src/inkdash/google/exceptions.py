"""Google authentication exceptions."""


class GoogleAuthError(Exception):
    """Base exception for Google authentication errors."""

    pass


class ConfigError(GoogleAuthError):
    """Raised when OAuth client credentials are not configured."""

    def __init__(self, message: str | None = None):
        super().__init__(
            message
            or "Google Calendar client_id and client_secret must be configured. "
            "Run 'inkdash google import <credentials.json>' or set "
            "GOOGLE_CLIENT_ID / GOOGLE_CLIENT_SECRET."
        )


class ListenerError(GoogleAuthError):
    """Raised when the OAuth callback listener cannot bind its port."""

    def __init__(self, address: str, reason: str):
        self.address = address
        self.reason = reason
        super().__init__(f"Failed to start callback server on {address}: {reason}")


class BrowserLaunchError(GoogleAuthError):
    """Raised when the browser could not be opened.

    The authorization URL is still valid and can be opened manually.
    """

    def __init__(self, url: str, reason: str = "no browser available"):
        self.url = url
        self.reason = reason
        super().__init__(f"Failed to open browser ({reason}). Visit: {url}")


class CallbackTimeoutError(GoogleAuthError):
    """Raised when no OAuth callback arrives in time."""

    def __init__(self, timeout: float):
        self.timeout = timeout
        super().__init__(f"OAuth callback timed out after {timeout:g}s")


class AuthorizationDeniedError(GoogleAuthError):
    """Raised when Google reports an error on the OAuth callback."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"OAuth error: {reason}")


class CallbackProtocolError(GoogleAuthError):
    """Raised when the callback carries neither a code nor an error."""

    pass


class TokenError(GoogleAuthError):
    """Raised when there's an issue with the OAuth token."""

    pass


class TokenExchangeError(TokenError):
    """Raised when the token endpoint rejects an authorization code."""

    def __init__(self, status_code: int, body: str):
        self.status_code = status_code
        self.body = body
        super().__init__(f"Token exchange error {status_code}: {body}")


class TokenRefreshError(TokenError):
    """Raised when the token endpoint rejects a refresh token."""

    def __init__(self, status_code: int, body: str):
        self.status_code = status_code
        self.body = body
        super().__init__(f"Token refresh error {status_code}: {body}")


class NotAuthenticatedError(GoogleAuthError):
    """Raised when no access token has ever been obtained."""

    def __init__(self):
        super().__init__(
            "Not authenticated with Google Calendar. Run 'inkdash google login'."
        )


class NoRefreshTokenError(GoogleAuthError):
    """Raised when a refresh is needed but no refresh token is stored."""

    def __init__(self):
        super().__init__("No refresh token available. Please re-authenticate.")
