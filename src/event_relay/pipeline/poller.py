"""Poll-dispatch loop: remote cursor to converter to sink, with checkpointing."""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable, Sequence
from enum import StrEnum

import structlog

from event_relay.checkpoint.models import Checkpoint
from event_relay.checkpoint.store import CheckpointStore
from event_relay.config.models import CheckpointConfig, PayloadEncoding
from event_relay.pipeline.backoff import Backoff
from event_relay.pipeline.converter import ConversionError, convert_event
from event_relay.sinks.base import EnvelopeSink
from event_relay.sources.base import EventCursor, RemoteEvent

logger = structlog.get_logger()

# read up to this many events per iteration
MAX_EVENTS_BATCH = 100


class PollerState(StrEnum):
    POLLING = "polling"
    DISPATCHING = "dispatching"
    CHECKPOINTING = "checkpointing"
    STOPPED = "stopped"


class Poller:
    """Reads batches from an open cursor and forwards them to the sink.

    Every successfully delivered batch stages a checkpoint built from the
    last acknowledged event. Staged state is flushed to the durable store
    at most once per ``period``, and only when it advanced since the last
    flush. Delivery is at-least-once: a crash loses at most one flush
    period of progress, which is replayed on restart.

    Each loop iteration checks, in order: stop requested, flush due, poll.
    """

    def __init__(
        self,
        cursor: EventCursor,
        sink: EnvelopeSink,
        store: CheckpointStore,
        *,
        checkpoint_key: str,
        checkpoint_config: CheckpointConfig,
        source: str,
        api_version: str,
        encoding: PayloadEncoding = PayloadEncoding.JSON,
        backoff: Backoff | None = None,
        max_events: int = MAX_EVENTS_BATCH,
        last_flushed_key: int | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._cursor = cursor
        self._sink = sink
        self._store = store
        self._key = checkpoint_key
        self._period = checkpoint_config.period_seconds
        self._source = source
        self._api_version = api_version
        self._encoding = encoding
        self._backoff = backoff or Backoff()
        self._max_events = max_events
        self._clock = clock
        self._stop_event = asyncio.Event()
        self._state = PollerState.POLLING
        self._staged: Checkpoint | None = None
        self._last_flushed_key = last_flushed_key
        self._last_tick = clock()
        self._events_sent = 0
        self._failures = 0
        self._flushes = 0

    @property
    def state(self) -> PollerState:
        return self._state

    @property
    def staged(self) -> Checkpoint | None:
        """Most recent checkpoint staged (not necessarily flushed)."""
        return self._staged

    @property
    def last_flushed_key(self) -> int | None:
        return self._last_flushed_key

    def stats(self) -> dict[str, int | str | None]:
        return {
            "state": self._state.value,
            "events_sent": self._events_sent,
            "failures": self._failures,
            "flushes": self._flushes,
            "staged_key": self._staged.last_event_key if self._staged else None,
            "flushed_key": self._last_flushed_key,
        }

    def stop(self) -> None:
        """Request the loop to stop at the next iteration boundary."""
        self._stop_event.set()

    async def run(self) -> None:
        """Run until stopped or cancelled.

        Always exits by raising: ``asyncio.CancelledError`` on stop or
        cancellation, or the underlying source/store error.
        """
        try:
            while True:
                if self._stop_event.is_set():
                    logger.info("poller.stopped", **self.stats())
                    raise asyncio.CancelledError("poller stopped")

                if self._clock() - self._last_tick >= self._period:
                    await self._checkpoint_tick()

                await self.poll_once()
        finally:
            self._state = PollerState.STOPPED

    async def poll_once(self) -> int:
        """Read and dispatch one batch; return the number of events delivered."""
        self._state = PollerState.POLLING
        events = await self._cursor.read_next(self._max_events)

        if not events:
            delay = self._backoff.next()
            logger.debug("poller.backoff", reason="no new events", delay_seconds=delay)
            await self._wait(delay)
            return 0

        logger.debug("poller.batch_received", count=len(events))
        self._state = PollerState.DISPATCHING
        sent, error = await self.dispatch(events)
        if error is not None:
            logger.error(
                "poller.send_failed",
                sent=sent,
                total=len(events),
                error=str(error),
            )
        if sent == 0:
            # nothing acknowledged: keep the checkpoint, poll again right away
            return 0

        self._staged = Checkpoint.from_event(self._source, events[sent - 1])
        self._store.stage(self._key, self._staged)
        self._backoff.reset()
        return sent

    async def dispatch(
        self, events: Sequence[RemoteEvent]
    ) -> tuple[int, Exception | None]:
        """Convert and send *events* in order, stopping at the first failure.

        Returns the number of events acknowledged before the failure and the
        failure itself (None when the whole batch was delivered).
        """
        sent = 0
        for event in events:
            try:
                envelope = convert_event(
                    event, self._source, self._api_version, self._encoding
                )
            except ConversionError as exc:
                self._failures += 1
                return sent, exc

            logger.debug("poller.sending", id=envelope.id, type=envelope.type)
            try:
                await self._sink.send(envelope)
            except Exception as exc:
                self._failures += 1
                return sent, exc
            sent += 1
            self._events_sent += 1
        return sent, None

    async def _checkpoint_tick(self) -> None:
        self._last_tick = self._clock()
        staged = self._staged
        if staged is None or staged.last_event_key == self._last_flushed_key:
            logger.debug("checkpoint.flush_skipped", reason="no new events")
            return

        self._state = PollerState.CHECKPOINTING
        logger.debug("checkpoint.flushing", checkpoint=staged.model_dump(mode="json"))
        await self._store.flush()
        self._last_flushed_key = staged.last_event_key
        self._flushes += 1
        logger.info("checkpoint.flushed", event_key=staged.last_event_key)

    async def _wait(self, delay: float) -> None:
        """Sleep for *delay* seconds, returning early if stop() is called."""
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=delay)
        except TimeoutError:
            pass
