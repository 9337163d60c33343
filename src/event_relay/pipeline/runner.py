"""Relay orchestrator: source, poller and sink lifecycle."""

from __future__ import annotations

import asyncio

import structlog

from event_relay.checkpoint.factory import create_checkpoint_store
from event_relay.checkpoint.resolver import resolve_begin
from event_relay.checkpoint.store import CheckpointStore
from event_relay.config.models import RelayConfig
from event_relay.pipeline.poller import Poller
from event_relay.sinks.base import EnvelopeSink
from event_relay.sinks.webhook import WebhookSink
from event_relay.sources.base import EventSource
from event_relay.sources.http.source import HttpEventSource

logger = structlog.get_logger()


class Relay:
    """Wires one event source, one sink and one checkpoint store together.

    Startup order: load the checkpoint store, connect to the source, resolve
    the begin time from the stored checkpoint, open a cursor there, then hand
    control to the Poller until it stops.
    """

    def __init__(
        self,
        config: RelayConfig,
        *,
        source: EventSource | None = None,
        sink: EnvelopeSink | None = None,
        store: CheckpointStore | None = None,
    ) -> None:
        self._config = config
        self._source = source or HttpEventSource(config.source)
        self._sink = sink or WebhookSink(config.sink)
        self._store = store or create_checkpoint_store(config.store)
        self._poller: Poller | None = None
        self._stop_requested = False

    @property
    def poller(self) -> Poller | None:
        return self._poller

    def start(self) -> None:
        """Run the relay (blocking)."""
        asyncio.run(self.run())

    async def run(self) -> None:
        cp_config = self._config.checkpoint
        logger.info(
            "relay.configuring_checkpoints",
            relay_id=self._config.relay_id,
            replay_window_seconds=cp_config.max_age_seconds,
            period_seconds=cp_config.period_seconds,
        )
        if cp_config.max_age_seconds == 0:
            logger.warning("relay.replay_disabled", reason="max_age_seconds set to 0")

        try:
            await self._store.init()
            await self._source.connect()
            await self._sink.start()
            try:
                await self._run()
            finally:
                await self._sink.stop()
        finally:
            await self._source.close()

    async def _run(self) -> None:
        key = self._config.store.key
        checkpoint = await self._store.get(key)
        now = await self._source.current_time()
        begin = resolve_begin(now, checkpoint, self._config.checkpoint.max_age)

        cursor = await self._source.open(begin)
        self._poller = Poller(
            cursor,
            self._sink,
            self._store,
            checkpoint_key=key,
            checkpoint_config=self._config.checkpoint,
            source=self._source.identity,
            api_version=self._source.api_version,
            encoding=self._config.payload_encoding,
            last_flushed_key=checkpoint.last_event_key if checkpoint else None,
        )
        if self._stop_requested:
            self._poller.stop()
        logger.info(
            "relay.started",
            relay_id=self._config.relay_id,
            source=self._source.identity,
            begin=begin.isoformat(),
        )
        try:
            await self._poller.run()
        finally:
            await cursor.close()

    def stop(self) -> None:
        """Signal the relay to stop; ``run`` then raises CancelledError."""
        self._stop_requested = True
        if self._poller is not None:
            self._poller.stop()
