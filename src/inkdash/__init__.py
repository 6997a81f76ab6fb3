"""inkdash - Google Calendar OAuth and event aggregation for the dashboard."""

__version__ = "0.1.0"
