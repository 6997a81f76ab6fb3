"""Google Calendar event aggregation with OAuth authentication.

Merge events from every calendar on the dashboard into one sorted timeline.

Usage:
    from inkdash.calendar import CalendarAggregator

    aggregator = CalendarAggregator()

    # Calendars shown on the dashboard (discovered on first use)
    sources = asyncio.run(aggregator.resolve_sources())

    # Next two weeks of events
    events = asyncio.run(aggregator.fetch_calendar_events(days=14))

OAuth Setup:
    1. Download OAuth credentials from Google Cloud Console
    2. Import: inkdash google import ~/Downloads/credentials.json
    3. Authorize: inkdash google login
"""

from __future__ import annotations

from inkdash.calendar.client import (
    PALETTE,
    AggregatedEvent,
    CalendarAggregator,
    CalendarListEntry,
    EventDateTime,
    TimeWindow,
)
from inkdash.calendar.exceptions import AuthExpiredError, CalendarAPIError, CalendarError
from inkdash.google.token_store import CalendarSource

__all__ = [
    "CalendarAggregator",
    "CalendarListEntry",
    "CalendarSource",
    "AggregatedEvent",
    "EventDateTime",
    "TimeWindow",
    "PALETTE",
    "CalendarError",
    "CalendarAPIError",
    "AuthExpiredError",
]
