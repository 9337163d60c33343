"""Envelope sink protocol."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from event_relay.pipeline.converter import Envelope


class DeliveryError(Exception):
    """Raised when the sink does not acknowledge an envelope (nack)."""


@runtime_checkable
class EnvelopeSink(Protocol):
    """Delivery channel for converted events.

    ``send`` returns once the envelope is acknowledged and raises
    DeliveryError otherwise.
    """

    async def start(self) -> None:
        ...

    async def send(self, envelope: Envelope) -> None:
        ...

    async def stop(self) -> None:
        ...
