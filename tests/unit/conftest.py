"""Shared fakes for the relay's external collaborators."""

from __future__ import annotations

from collections import deque
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Any

import pytest

from event_relay.pipeline.converter import Envelope
from event_relay.sinks.base import DeliveryError
from event_relay.sources.base import RemoteEvent

T0 = datetime(2024, 5, 1, 12, 0, tzinfo=UTC)


def make_event(
    key: int,
    created_time: datetime | None = None,
    event_type: str = "VmPoweredOnEvent",
    event_class: str = "event",
    payload: dict[str, Any] | None = None,
) -> RemoteEvent:
    return RemoteEvent(
        key=key,
        created_time=created_time or T0 + timedelta(seconds=key),
        event_type=event_type,
        event_class=event_class,
        payload=payload if payload is not None else {"key": key, "vm": f"vm-{key}"},
    )


class FakeCursor:
    """Returns the queued batches in order, then empty reads.

    *on_empty* is called with the running count of empty reads.
    """

    def __init__(
        self,
        batches: list[list[RemoteEvent]] | None = None,
        on_empty: Callable[[int], None] | None = None,
    ) -> None:
        self._batches = deque(batches or [])
        self._on_empty = on_empty
        self.reads = 0
        self.empty_reads = 0
        self.closed = False

    async def read_next(self, max_events: int) -> list[RemoteEvent]:
        self.reads += 1
        if self._batches:
            return self._batches.popleft()[:max_events]
        self.empty_reads += 1
        if self._on_empty is not None:
            self._on_empty(self.empty_reads)
        return []

    async def close(self) -> None:
        self.closed = True


class FakeSink:
    """Acknowledges every envelope except those whose id is in *nack_ids*."""

    def __init__(self, nack_ids: set[str] | None = None) -> None:
        self.nack_ids = nack_ids or set()
        self.sent: list[Envelope] = []
        self.attempted: list[str] = []
        self.started = False
        self.stopped = False

    @property
    def sent_ids(self) -> list[str]:
        return [e.id for e in self.sent]

    async def start(self) -> None:
        self.started = True

    async def send(self, envelope: Envelope) -> None:
        self.attempted.append(envelope.id)
        if envelope.id in self.nack_ids:
            msg = f"nack {envelope.id}"
            raise DeliveryError(msg)
        self.sent.append(envelope)

    async def stop(self) -> None:
        self.stopped = True


class FakeSource:
    def __init__(self, cursor: FakeCursor, now: datetime = T0) -> None:
        self.cursor = cursor
        self.now = now
        self.opened_at: datetime | None = None
        self.connected = False
        self.closed = False

    @property
    def identity(self) -> str:
        return "mgmt.example.com"

    @property
    def api_version(self) -> str:
        return "8.0.1"

    async def connect(self) -> None:
        self.connected = True

    async def current_time(self) -> datetime:
        return self.now

    async def open(self, begin: datetime) -> FakeCursor:
        self.opened_at = begin
        return self.cursor

    async def close(self) -> None:
        self.closed = True


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()
