"""Google Calendar event aggregation across several calendars."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import AsyncIterator, Sequence
from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from typing import Any
from urllib.parse import quote

import httpx

from inkdash.calendar.exceptions import AuthExpiredError, CalendarAPIError
from inkdash.google import OAuthCoordinator
from inkdash.google.token_store import CalendarSource, TokenStore

logger = logging.getLogger(__name__)

# Colors handed out to auto-discovered calendars, in discovery order
PALETTE = ("blue", "purple", "green", "red", "orange", "pink", "cyan", "amber")

UNNAMED_CALENDAR = "Unnamed Calendar"
UNTITLED_EVENT = "(No title)"


@dataclass
class CalendarListEntry:
    """A calendar on the user's calendar list."""

    id: str
    summary: str
    background_color: str | None = None
    primary: bool = False


@dataclass
class EventDateTime:
    """Start or end of an event: ``date_time`` for timed events, ``date`` for all-day ones."""

    date_time: str | None = None
    date: str | None = None
    time_zone: str | None = None

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> EventDateTime:
        return cls(
            date_time=data.get("dateTime"),
            date=data.get("date"),
            time_zone=data.get("timeZone"),
        )


@dataclass
class AggregatedEvent:
    """An event tagged with the calendar it came from."""

    id: str
    summary: str
    start: EventDateTime
    end: EventDateTime
    calendar_id: str
    calendar_name: str
    calendar_color: str
    description: str | None = None
    location: str | None = None
    html_link: str | None = None

    @property
    def effective_start(self) -> str:
        """Timed start if present, else the all-day date."""
        return self.start.date_time or self.start.date or ""

    @property
    def is_all_day(self) -> bool:
        return self.start.date_time is None and self.start.date is not None


@dataclass(frozen=True)
class TimeWindow:
    """Half-open interval ``[start, end)`` to fetch events for."""

    start: datetime
    end: datetime

    @classmethod
    def upcoming(cls, days: int = 14, now: datetime | None = None) -> TimeWindow:
        start = now or datetime.now(timezone.utc)
        return cls(start=start, end=start + timedelta(days=days))


def _format_datetime(dt: datetime) -> str:
    """Format datetime for API."""
    return dt.isoformat() + "Z" if dt.tzinfo is None else dt.isoformat()


class CalendarAggregator:
    """Merges events from the configured Google calendars into one timeline.

    Usage:
        aggregator = CalendarAggregator()

        # Calendars on the account
        calendars = await aggregator.list_calendars(token)

        # Configured calendars, discovered and saved on first use
        sources = await aggregator.resolve_sources()

        # Next two weeks of events from every source, sorted by start
        events = await aggregator.fetch_calendar_events()

    Note:
        Requires OAuth authorization. Run `inkdash google login` to authorize.
    """

    API_BASE = "https://www.googleapis.com/calendar/v3"
    MAX_RESULTS = 100

    def __init__(
        self,
        store: TokenStore | None = None,
        auth: OAuthCoordinator | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the aggregator.

        Args:
            store: Credential store holding tokens and calendar sources.
            auth: Coordinator that hands out valid access tokens. Built on
                ``store`` when omitted.
            http_client: Client for Calendar API calls. A short-lived client
                is created per call when omitted.
        """
        self.auth = auth or OAuthCoordinator(store=store, http_client=http_client)
        self.store = store or self.auth.store
        self._http_client = http_client

    @contextlib.asynccontextmanager
    async def _http(self) -> AsyncIterator[httpx.AsyncClient]:
        if self._http_client is not None:
            yield self._http_client
        else:
            async with httpx.AsyncClient(timeout=30.0) as client:
                yield client

    @staticmethod
    def _headers(access_token: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {access_token}"}

    # =========================================================================
    # Calendars
    # =========================================================================

    async def list_calendars(self, access_token: str) -> list[CalendarListEntry]:
        """List the calendars the user has access to.

        Raises:
            AuthExpiredError: If Google rejects the token.
            CalendarAPIError: For any other failure.
        """
        try:
            async with self._http() as client:
                response = await client.get(
                    f"{self.API_BASE}/users/me/calendarList",
                    headers=self._headers(access_token),
                )
        except httpx.HTTPError as e:
            raise CalendarAPIError(f"Calendar list API request failed: {e}") from e

        if response.status_code == 401:
            raise AuthExpiredError()
        if not response.is_success:
            raise CalendarAPIError(
                f"Calendar list API error {response.status_code}: {response.text}",
                status_code=response.status_code,
            )

        try:
            items = response.json().get("items") or []
        except ValueError as e:
            raise CalendarAPIError(f"Failed to parse calendar list response: {e}") from e

        return [self._parse_calendar(item) for item in items]

    def _parse_calendar(self, data: dict) -> CalendarListEntry:
        """Parse calendar from API response."""
        return CalendarListEntry(
            id=data["id"],
            summary=data.get("summary") or UNNAMED_CALENDAR,
            background_color=data.get("backgroundColor"),
            primary=bool(data.get("primary", False)),
        )

    async def resolve_sources(self, access_token: str | None = None) -> list[CalendarSource]:
        """Get configured calendar sources, or auto-discover them.

        Configured sources are returned as-is. With none configured, every
        calendar on the account becomes a source, colored from the palette
        by position, and the list is saved so colors stay stable.

        Args:
            access_token: Token for discovery. Fetched from the coordinator
                when omitted.
        """
        configured = self.store.load().calendars
        if configured:
            return list(configured)

        token = access_token or await self.auth.get_valid_access_token()
        calendars = await self.list_calendars(token)

        sources = [
            CalendarSource(id=cal.id, display_name=cal.summary, color=PALETTE[i % len(PALETTE)])
            for i, cal in enumerate(calendars)
        ]

        try:
            self.store.save(replace(self.store.load(), calendars=tuple(sources)))
        except OSError as e:
            logger.warning(f"Failed to save discovered calendars: {e}")
        else:
            logger.info(f"Discovered {len(sources)} calendars")

        return sources

    # =========================================================================
    # Events
    # =========================================================================

    async def _fetch_source(
        self,
        client: httpx.AsyncClient,
        access_token: str,
        source: CalendarSource,
        window: TimeWindow,
    ) -> list[dict[str, Any]]:
        """Raw events of one calendar; empty on any failure except a 401."""
        params = {
            "timeMin": _format_datetime(window.start),
            "timeMax": _format_datetime(window.end),
            "singleEvents": "true",
            "orderBy": "startTime",
            "maxResults": str(self.MAX_RESULTS),
        }
        url = f"{self.API_BASE}/calendars/{quote(source.id, safe='')}/events"

        try:
            response = await client.get(url, params=params, headers=self._headers(access_token))
        except httpx.HTTPError as e:
            logger.warning(f"Calendar {source.id} request failed: {e}")
            return []

        if response.status_code == 401:
            raise AuthExpiredError()
        if not response.is_success:
            logger.warning(
                f"Calendar {source.id} API error {response.status_code}: {response.text}"
            )
            return []

        try:
            data = response.json()
        except ValueError as e:
            logger.warning(f"Failed to parse events of calendar {source.id}: {e}")
            return []

        items = (data.get("items") or []) if isinstance(data, dict) else None
        if not isinstance(items, list):
            logger.warning(f"Unexpected events payload from calendar {source.id}")
            return []
        return items

    def _parse_event(self, data: dict, source: CalendarSource) -> AggregatedEvent | None:
        """Parse event from API response; None if it lacks an id, start or end."""
        if not isinstance(data, dict) or not data.get("id"):
            return None
        if data.get("start") is None or data.get("end") is None:
            return None

        return AggregatedEvent(
            id=f"{source.id}-{data['id']}",
            summary=data.get("summary") or UNTITLED_EVENT,
            description=data.get("description"),
            start=EventDateTime.from_api(data["start"]),
            end=EventDateTime.from_api(data["end"]),
            location=data.get("location"),
            html_link=data.get("htmlLink"),
            calendar_id=source.id,
            calendar_name=source.display_name,
            calendar_color=source.color,
        )

    async def fetch_events(
        self,
        access_token: str,
        sources: Sequence[CalendarSource],
        window: TimeWindow,
    ) -> list[AggregatedEvent]:
        """Fetch and merge events from several calendars.

        A calendar that fails for any reason other than an expired token
        contributes no events; the others are still returned.

        Args:
            access_token: Valid access token.
            sources: Calendars to query.
            window: Time range to fetch.

        Returns:
            Events of all sources sorted by start.

        Raises:
            AuthExpiredError: If any calendar answers 401.
        """
        async with self._http() as client:
            results = await asyncio.gather(
                *(self._fetch_source(client, access_token, s, window) for s in sources),
                return_exceptions=True,
            )

        for result in results:
            if isinstance(result, BaseException):
                raise result

        events = []
        for source, items in zip(sources, results):
            for item in items:
                event = self._parse_event(item, source)
                if event is not None:
                    events.append(event)

        events.sort(key=lambda e: e.effective_start)
        return events

    async def fetch_calendar_events(self, days: int = 14) -> list[AggregatedEvent]:
        """Events of every source from now until ``days`` ahead."""
        access_token = await self.auth.get_valid_access_token()
        sources = await self.resolve_sources(access_token)
        if not sources:
            return []
        return await self.fetch_events(access_token, sources, TimeWindow.upcoming(days))
