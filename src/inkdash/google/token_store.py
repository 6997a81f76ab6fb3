"""Persisted Google Calendar credential record.

The record is always read and written whole: callers load it, compute a new
version with ``dataclasses.replace`` and save it back. Concurrent writers
from separate processes are last-write-wins.

Two stores are provided:
    FileTokenStore   - JSON file in the inkdash config directory
    MemoryTokenStore - in-process, for tests and embedding
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, field, replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from inkdash.config import GOOGLE_TOKEN, get_env_client_credentials

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CalendarSource:
    """A calendar whose events are shown on the dashboard."""

    id: str
    display_name: str
    color: str

    def to_dict(self) -> dict[str, str]:
        return {"id": self.id, "name": self.display_name, "color": self.color}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CalendarSource:
        return cls(
            id=data["id"],
            display_name=data.get("name") or data.get("display_name", ""),
            color=data.get("color", "blue"),
        )


@dataclass(frozen=True)
class Credentials:
    """Google Calendar OAuth credentials plus the resolved calendar sources.

    ``token_expiry`` is an ISO-8601 timestamp, or empty when unknown.
    """

    client_id: str = ""
    client_secret: str = ""
    access_token: str = ""
    refresh_token: str = ""
    token_expiry: str = ""
    calendars: tuple[CalendarSource, ...] = field(default_factory=tuple)
    refresh_interval_minutes: int = 15

    @property
    def has_client_credentials(self) -> bool:
        return bool(self.client_id and self.client_secret)

    @property
    def expires_at(self) -> datetime | None:
        """Parsed ``token_expiry``; None when empty or unparseable.

        Naive timestamps are taken to be UTC.
        """
        if not self.token_expiry:
            return None
        try:
            expiry = datetime.fromisoformat(self.token_expiry.replace("Z", "+00:00"))
        except ValueError:
            logger.warning(f"Ignoring unparseable token expiry: {self.token_expiry!r}")
            return None
        if expiry.tzinfo is None:
            expiry = expiry.replace(tzinfo=timezone.utc)
        return expiry

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["calendars"] = [source.to_dict() for source in self.calendars]
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Credentials:
        return cls(
            client_id=data.get("client_id", ""),
            client_secret=data.get("client_secret", ""),
            access_token=data.get("access_token", ""),
            refresh_token=data.get("refresh_token", ""),
            token_expiry=data.get("token_expiry", ""),
            calendars=tuple(CalendarSource.from_dict(c) for c in data.get("calendars", [])),
            refresh_interval_minutes=int(data.get("refresh_interval_minutes", 15)),
        )


class TokenStore(ABC):
    """Whole-record storage for :class:`Credentials`."""

    @abstractmethod
    def load(self) -> Credentials:
        """Load the current record; an empty record if nothing is stored."""
        pass

    @abstractmethod
    def save(self, credentials: Credentials) -> None:
        """Replace the stored record."""
        pass


class MemoryTokenStore(TokenStore):
    """Keeps the record in memory. Counts saves so tests can assert on writes."""

    def __init__(self, credentials: Credentials | None = None):
        self._credentials = credentials or Credentials()
        self.save_count = 0

    def load(self) -> Credentials:
        return self._credentials

    def save(self, credentials: Credentials) -> None:
        self._credentials = credentials
        self.save_count += 1


class FileTokenStore(TokenStore):
    """Stores the record as JSON, defaulting to the inkdash config directory.

    Client id/secret missing from the file are filled in from the
    GOOGLE_CLIENT_ID / GOOGLE_CLIENT_SECRET environment variables.
    """

    def __init__(self, path: str | Path | None = None):
        self.path = Path(path) if path else GOOGLE_TOKEN

    def load(self) -> Credentials:
        credentials = Credentials()
        if self.path.exists():
            try:
                with open(self.path) as f:
                    credentials = Credentials.from_dict(json.load(f))
            except (ValueError, KeyError, TypeError, AttributeError) as e:
                logger.error(f"Failed to load token: {e}")
        else:
            logger.info("No existing token found")

        if not credentials.has_client_credentials:
            env_id, env_secret = get_env_client_credentials()
            credentials = replace(
                credentials,
                client_id=credentials.client_id or env_id,
                client_secret=credentials.client_secret or env_secret,
            )
        return credentials

    def save(self, credentials: Credentials) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "w") as f:
            json.dump(credentials.to_dict(), f, indent=2)
        logger.info(f"Credentials saved to {self.path}")
