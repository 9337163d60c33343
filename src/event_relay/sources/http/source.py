"""JSON-over-HTTP client for a remote event-history endpoint.

Endpoints (relative to the configured URL):

- ``GET /about``                      → ``{"api_version": "..."}``
- ``GET /time``                       → ``{"time": "<iso8601>"}``
- ``POST /collectors``                → ``{"id": "..."}`` (body ``{"begin_time": ...}``)
- ``GET /collectors/{id}/events``     → ``{"events": [...]}`` (``max_events`` query)
- ``DELETE /collectors/{id}``         → release the collector
- ``POST /logout``                    → end the session
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Any
from urllib.parse import urlparse

import httpx
import structlog
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from event_relay.config.models import SourceConfig
from event_relay.sources.base import RemoteEvent, SourceError

logger = structlog.get_logger()


def _parse_time(value: Any) -> datetime:
    if not isinstance(value, str):
        msg = f"Expected an ISO 8601 timestamp, got {value!r}"
        raise SourceError(msg)
    try:
        ts = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError as exc:
        msg = f"Invalid timestamp {value!r}"
        raise SourceError(msg) from exc
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=UTC)
    return ts


def parse_event(raw: Mapping[str, Any]) -> RemoteEvent:
    """Build a RemoteEvent from one entry of an ``events`` response."""
    try:
        return RemoteEvent(
            key=int(raw["key"]),
            created_time=_parse_time(raw["created_time"]),
            event_type=str(raw["type"]),
            event_class=str(raw.get("class", "event")),
            payload=raw.get("payload") or {},
        )
    except (AttributeError, KeyError, TypeError, ValueError) as exc:
        msg = f"Malformed event in response: {raw!r}"
        raise SourceError(msg) from exc


class HttpEventCursor:
    """Server-side history collector opened at a begin time."""

    def __init__(self, client: httpx.AsyncClient, collector_id: str) -> None:
        self._client = client
        self._id = collector_id

    @property
    def collector_id(self) -> str:
        return self._id

    async def read_next(self, max_events: int) -> list[RemoteEvent]:
        try:
            resp = await self._client.get(
                f"/collectors/{self._id}/events",
                params={"max_events": max_events},
            )
            resp.raise_for_status()
            body = resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            msg = f"read events from collector {self._id}: {exc}"
            raise SourceError(msg) from exc
        events = body.get("events") if isinstance(body, dict) else None
        if not isinstance(body, dict) or not isinstance(events or [], list):
            msg = f"read events from collector {self._id}: unexpected body {body!r}"
            raise SourceError(msg)
        return [parse_event(raw) for raw in events or []]

    async def close(self) -> None:
        try:
            resp = await self._client.delete(f"/collectors/{self._id}")
            resp.raise_for_status()
        except httpx.HTTPError as exc:
            # the collector expires server-side anyway
            logger.warning(
                "http_source.collector_close_failed", id=self._id, error=str(exc)
            )
        else:
            logger.debug("http_source.collector_closed", id=self._id)


class HttpEventSource:
    """EventSource backed by the remote host's HTTP history API."""

    def __init__(self, config: SourceConfig) -> None:
        self._config = config
        self._identity = urlparse(config.url).netloc
        self._api_version = ""
        auth = None
        if config.username is not None:
            password = config.password.get_secret_value() if config.password else ""
            auth = httpx.BasicAuth(config.username, password)
        self._client = httpx.AsyncClient(
            base_url=config.url,
            auth=auth,
            verify=not config.insecure,
            timeout=config.timeout_seconds,
        )

    @property
    def identity(self) -> str:
        return self._identity

    @property
    def api_version(self) -> str:
        return self._api_version

    async def connect(self) -> None:
        """Wait until the host answers, then record its API version."""
        retrying = AsyncRetrying(
            retry=retry_if_exception_type(httpx.TransportError),
            stop=stop_after_attempt(self._config.connect_max_attempts),
            wait=wait_exponential(multiplier=1, max=30),
            reraise=True,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    resp = await self._client.get("/about")
                    resp.raise_for_status()
            about = resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            msg = f"connect to {self._identity}: {exc}"
            raise SourceError(msg) from exc
        if not isinstance(about, dict):
            msg = f"connect to {self._identity}: unexpected body {about!r}"
            raise SourceError(msg)
        self._api_version = str(about.get("api_version", ""))
        logger.info(
            "http_source.connected",
            source=self._identity,
            api_version=self._api_version,
        )

    async def current_time(self) -> datetime:
        try:
            resp = await self._client.get("/time")
            resp.raise_for_status()
            body = resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            msg = f"get current time from {self._identity}: {exc}"
            raise SourceError(msg) from exc
        if not isinstance(body, dict):
            msg = f"get current time from {self._identity}: unexpected body {body!r}"
            raise SourceError(msg)
        return _parse_time(body.get("time"))

    async def open(self, begin: datetime) -> HttpEventCursor:
        try:
            resp = await self._client.post(
                "/collectors", json={"begin_time": begin.isoformat()}
            )
            resp.raise_for_status()
            collector_id = str(resp.json()["id"])
        except (httpx.HTTPError, ValueError, KeyError, TypeError) as exc:
            msg = f"create event collector on {self._identity}: {exc}"
            raise SourceError(msg) from exc
        logger.info(
            "http_source.collector_opened", id=collector_id, begin=begin.isoformat()
        )
        return HttpEventCursor(self._client, collector_id)

    async def close(self) -> None:
        try:
            await self._client.post("/logout")
        except httpx.HTTPError:
            logger.debug("http_source.logout_failed", exc_info=True)
        finally:
            await self._client.aclose()
