"""Webhook sink: CloudEvents over HTTP in binary content mode."""

from __future__ import annotations

import httpx
import structlog
from tenacity import (
    AsyncRetrying,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential_jitter,
)

from event_relay.config.models import SinkConfig
from event_relay.pipeline.converter import Envelope
from event_relay.sinks.base import DeliveryError

logger = structlog.get_logger()


def _is_retryable(exc: BaseException) -> bool:
    if isinstance(exc, httpx.TransportError):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code >= 500
    return False


def envelope_headers(envelope: Envelope) -> dict[str, str]:
    """Build the ``ce-*`` headers for *envelope*."""
    headers = {
        "ce-specversion": envelope.spec_version,
        "ce-id": envelope.id,
        "ce-source": envelope.source,
        "ce-type": envelope.type,
        "ce-time": envelope.time.isoformat(),
        "Content-Type": envelope.data_content_type,
    }
    for name, value in envelope.extensions.items():
        headers[f"ce-{name}"] = value
    return headers


class WebhookSink:
    """POSTs each envelope to the configured URL.

    Transport errors and 5xx responses are retried per ``RetryConfig``;
    anything still failing after that is a nack.
    """

    def __init__(self, config: SinkConfig) -> None:
        self._config = config
        self._client: httpx.AsyncClient | None = None

    @property
    def url(self) -> str:
        return self._config.url

    async def start(self) -> None:
        headers: dict[str, str] = dict(self._config.headers)
        if self._config.auth_token is not None:
            headers["Authorization"] = (
                f"Bearer {self._config.auth_token.get_secret_value()}"
            )
        self._client = httpx.AsyncClient(
            headers=headers,
            timeout=httpx.Timeout(self._config.timeout_seconds),
        )
        logger.info("webhook_sink.started", url=self._config.url)

    async def send(self, envelope: Envelope) -> None:
        if self._client is None:
            msg = "WebhookSink not started; call start() first"
            raise RuntimeError(msg)

        retry_cfg = self._config.retry
        retrying = AsyncRetrying(
            stop=stop_after_attempt(retry_cfg.max_attempts),
            wait=wait_exponential_jitter(
                initial=retry_cfg.initial_wait_seconds,
                max=retry_cfg.max_wait_seconds,
                exp_base=retry_cfg.multiplier,
                jitter=retry_cfg.initial_wait_seconds if retry_cfg.jitter else 0,
            ),
            retry=retry_if_exception(_is_retryable),
            reraise=True,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    response = await self._client.post(
                        self._config.url,
                        headers=envelope_headers(envelope),
                        content=envelope.data,
                    )
                    response.raise_for_status()
        except httpx.HTTPError as exc:
            msg = f"Envelope {envelope.id} not acknowledged by {self._config.url}: {exc}"
            raise DeliveryError(msg) from exc

        logger.debug(
            "webhook_sink.sent",
            id=envelope.id,
            type=envelope.type,
            status=response.status_code,
        )

    async def stop(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
        logger.info("webhook_sink.stopped", url=self._config.url)
