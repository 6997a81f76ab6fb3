"""Google Calendar API exceptions."""


class CalendarError(Exception):
    """Base exception for calendar errors."""

    pass


class CalendarAPIError(CalendarError):
    """Raised when the Calendar API returns an error."""

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


class AuthExpiredError(CalendarError):
    """Raised on a 401 from the Calendar API.

    The cached token looked valid but Google no longer accepts it; the user
    has to re-authenticate rather than retry.
    """

    def __init__(self):
        self.status_code = 401
        super().__init__(
            "Google Calendar authentication expired. Please re-authenticate."
        )
