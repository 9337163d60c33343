"""Checkpoint record tracking the last event acknowledged by the sink."""

from __future__ import annotations

from datetime import UTC, datetime

from pydantic import AwareDatetime, BaseModel, Field

from event_relay.sources.base import RemoteEvent

# persisted by writers that serialise an unset timestamp as the zero time
ZERO_TIME = datetime.min.replace(tzinfo=UTC)


class Checkpoint(BaseModel):
    """Position marker in the remote event stream.

    ``last_event_key`` and ``last_event_timestamp`` always describe an event
    the sink acknowledged; a checkpoint is never built from a failed send.
    """

    source: str
    last_event_key: int
    last_event_type: str = ""
    last_event_timestamp: AwareDatetime | None = None
    created_timestamp: AwareDatetime = Field(default_factory=lambda: datetime.now(UTC))

    @property
    def is_empty(self) -> bool:
        """True when no event timestamp is recorded (missing or the zero time)."""
        ts = self.last_event_timestamp
        return ts is None or ts == ZERO_TIME

    @classmethod
    def from_event(cls, source: str, event: RemoteEvent) -> Checkpoint:
        return cls(
            source=source,
            last_event_key=event.key,
            last_event_type=event.event_type,
            last_event_timestamp=event.created_time,
        )
