"""Resumable, pull-based SSE stream: the public entry point.

Each ``pull()`` either hands out the next event from the current connection,
opens a new connection (first pull, or after the previous one ended), or
reports end of sequence. Reconnects back off exponentially and resume from
the id of the last event handed out.

Simple use::

    async with open_stream("https://example.com/events") as stream:
        async for event in stream:
            print(event.event, event.data)
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import httpx
import structlog

from .cancellation import CancellationToken, StreamAborted
from .config import StreamConfig, load_config
from .connection.backoff import compute_backoff
from .connection.driver import ConnectionDriver
from .connection.state_machine import ConnectionState
from .wire.parser import SSEEvent

log = structlog.get_logger()


@dataclass(frozen=True)
class PullResult:
    """Outcome of one pull: an event, or end of sequence."""

    event: SSEEvent | None = None

    @property
    def done(self) -> bool:
        return self.event is None

    @classmethod
    def of(cls, event: SSEEvent) -> PullResult:
        return cls(event=event)

    @classmethod
    def end(cls) -> PullResult:
        return cls()


class EventStream:
    """Consumer-facing handle over a sequence of connection attempts.

    Not safe for concurrent pulls: exactly one consumer draws events in order.
    """

    def __init__(
        self,
        config: StreamConfig,
        client: httpx.AsyncClient | None = None,
        token: CancellationToken | None = None,
    ) -> None:
        self.config = config
        self.token = token or CancellationToken()
        self._client = client
        self._owns_client = client is None

        self.last_event_id: str | None = config.last_event_id
        self.retry_count: int = 0
        self.attempts: int = 0

        self._driver: ConnectionDriver | None = None
        self._last_state: ConnectionState | None = None
        self._reconnecting = False
        self._finished = False
        self._pulling = False

    @property
    def state(self) -> ConnectionState | None:
        """State of the current (or most recent) connection attempt."""
        if self._driver is not None:
            return self._driver.state
        return self._last_state

    @property
    def closed(self) -> bool:
        return self._finished

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient()
        return self._client

    def _should_reconnect(self, state: ConnectionState) -> bool:
        if self.token.cancelled or state is ConnectionState.ABORTED:
            return False
        if state is ConnectionState.COMPLETED and not self.config.reconnect_on_close:
            return False
        return self.config.retries_remaining(self.retry_count)

    async def _backoff(self) -> None:
        self.retry_count += 1
        delay_ms = compute_backoff(
            self.retry_count,
            self.config.initial_retry_delay_ms,
            self.config.max_retry_delay_ms,
        )
        log.info(
            "retry_scheduled",
            url=self.config.url,
            retry=self.retry_count,
            delay_ms=delay_ms,
            last_event_id=self.last_event_id,
        )
        await self.token.sleep(delay_ms / 1000)

    async def _finish(self, reason: str) -> PullResult:
        if not self._finished:
            log.info(
                "stream_ended",
                url=self.config.url,
                reason=reason,
                attempts=self.attempts,
                last_event_id=self.last_event_id,
            )
        self._finished = True
        await self._release_driver()
        return PullResult.end()

    async def _release_driver(self) -> None:
        driver, self._driver = self._driver, None
        if driver is not None:
            self._last_state = driver.state
            await driver.aclose()

    async def pull(self) -> PullResult:
        """Return the next event, or end of sequence.

        Suspends while connecting, reading or backing off. Transport failures
        and cancellation never raise here; they surface as end of sequence.
        """
        if self._pulling:
            raise RuntimeError("EventStream.pull() called while another pull is pending")
        self._pulling = True
        try:
            return await self._pull()
        finally:
            self._pulling = False

    async def _pull(self) -> PullResult:
        while True:
            if self._finished:
                return PullResult.end()
            if self.token.cancelled:
                return await self._finish("cancelled")

            if self._driver is None:
                if self._reconnecting:
                    try:
                        await self._backoff()
                    except StreamAborted:
                        return await self._finish("cancelled")
                self.attempts += 1
                driver = ConnectionDriver(
                    self._get_client(),
                    self.config,
                    self.token,
                    cursor=self.last_event_id,
                    attempt=self.attempts,
                )
                self._driver = driver
                await driver.open()
                if driver.state is ConnectionState.STREAMING:
                    self.retry_count = 0
            else:
                driver = self._driver

            event = await driver.next_event()
            if event is not None:
                if driver.cursor:
                    self.last_event_id = driver.cursor
                return PullResult.of(event)

            state = driver.state
            await self._release_driver()
            if not self._should_reconnect(state):
                reason = "cancelled" if self.token.cancelled else state.value.lower()
                return await self._finish(reason)
            self._reconnecting = True

    async def close(self) -> None:
        """Cancel the stream and release its connection. Idempotent."""
        self.token.cancel()
        self._finished = True
        await self._release_driver()
        client, self._client = self._client, None
        if client is not None and self._owns_client:
            await client.aclose()

    def __aiter__(self) -> EventStream:
        return self

    async def __anext__(self) -> SSEEvent:
        result = await self.pull()
        if result.event is None:
            raise StopAsyncIteration
        return result.event

    async def __aenter__(self) -> EventStream:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()


def open_stream(
    url: str,
    *,
    client: httpx.AsyncClient | None = None,
    token: CancellationToken | None = None,
    **options: Any,
) -> EventStream:
    """Validate options and return an unstarted EventStream.

    Raises ConfigurationError for a malformed URL or inconsistent retry
    settings. No network activity happens until the first pull.
    """
    config = load_config(url, **options)
    return EventStream(config, client=client, token=token)
