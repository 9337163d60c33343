"""Remote event-history source protocol.

Defines RemoteEvent (one entry of the upstream history stream) and the
EventSource / EventCursor protocols the relay reads through.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol, runtime_checkable


class SourceError(Exception):
    """Raised when the remote event source cannot be queried or read."""


@dataclass(slots=True)
class RemoteEvent:
    """A single upstream event.

    ``key`` is assigned by the upstream host and increases monotonically
    within one source.
    """

    key: int
    created_time: datetime
    event_type: str
    event_class: str
    payload: Mapping[str, Any] = field(default_factory=dict)


@runtime_checkable
class EventCursor(Protocol):
    """Open position in the remote event stream."""

    async def read_next(self, max_events: int) -> list[RemoteEvent]:
        """Return up to *max_events* events after the current position.

        An empty list means no new events yet; the call never blocks
        indefinitely.
        """
        ...

    async def close(self) -> None:
        """Release the server-side cursor."""
        ...


@runtime_checkable
class EventSource(Protocol):
    """Protocol the remote management host client must satisfy."""

    @property
    def identity(self) -> str:
        """Stable identifier of the upstream host."""
        ...

    @property
    def api_version(self) -> str:
        """API version reported by the upstream host."""
        ...

    async def connect(self) -> None:
        """Establish a session with the remote host."""
        ...

    async def current_time(self) -> datetime:
        """Current time on the remote host clock (aware, UTC)."""
        ...

    async def open(self, begin: datetime) -> EventCursor:
        """Open a cursor positioned at *begin*."""
        ...

    async def close(self) -> None:
        """End the session."""
        ...
