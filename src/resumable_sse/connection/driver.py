"""Single connection attempt: request, stream the body, decode events.

The driver reads one body chunk at a time and only when every event parsed
from earlier chunks has been handed out, so network consumption follows the
consumer's pull rate.
"""

from __future__ import annotations

import asyncio
import codecs
from collections import deque
from collections.abc import AsyncIterator

import httpx
import structlog

from ..cancellation import CancellationToken, StreamAborted
from ..config import StreamConfig
from ..wire.framer import Framer
from ..wire.parser import EventParser, SSEEvent
from .state_machine import ConnectionState, transition

log = structlog.get_logger()

LAST_EVENT_ID_HEADER = "Last-Event-ID"

# Headers the client fills in from its cookie jar or default auth
_CREDENTIAL_HEADERS = ("cookie", "authorization")


def build_request_headers(config: StreamConfig, cursor: str | None) -> httpx.Headers:
    """Custom headers merged with the protocol-required ones."""
    headers = httpx.Headers(config.headers)
    headers["Accept"] = "text/event-stream"
    headers["Cache-Control"] = "no-cache"
    if cursor:
        headers[LAST_EVENT_ID_HEADER] = cursor
    return headers


class ConnectionDriver:
    """Owns one physical connection attempt and its decode pipeline."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        config: StreamConfig,
        token: CancellationToken,
        cursor: str | None = None,
        attempt: int = 1,
    ) -> None:
        self.client = client
        self.config = config
        self.token = token
        self.cursor = cursor
        self.attempt = attempt

        self.state = ConnectionState.IDLE
        self.status_code: int | None = None
        self.error: str | None = None
        self.events_emitted: int = 0

        self._response: httpx.Response | None = None
        self._chunks: AsyncIterator[bytes] | None = None
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._framer = Framer()
        self._parser = EventParser()
        # Events parsed from the last chunk, not yet handed out
        self._pending: deque[SSEEvent] = deque()
        self._eof = False

    def _move(self, target: ConnectionState, trigger: str = "") -> None:
        self.state = transition(self.state, target, self.attempt, trigger)

    def _build_request(self) -> httpx.Request:
        headers = build_request_headers(self.config, self.cursor)
        timeout = httpx.Timeout(None, connect=self.config.request_timeout_s)
        request = self.client.build_request(
            "GET", self.config.url, headers=headers, timeout=timeout,
        )
        if not self.config.with_credentials:
            explicit = {key.lower() for key in self.config.headers}
            for name in _CREDENTIAL_HEADERS:
                if name not in explicit:
                    request.headers.pop(name, None)
        return request

    async def open(self) -> None:
        """Issue the request; ends in STREAMING, FAILED or ABORTED."""
        self._move(ConnectionState.CONNECTING, "open")
        if self.token.cancelled:
            self._move(ConnectionState.ABORTED, "cancelled")
            return

        request = self._build_request()
        auth = httpx.USE_CLIENT_DEFAULT if self.config.with_credentials else None
        log.debug(
            "connection_opening",
            url=self.config.url,
            attempt=self.attempt,
            last_event_id=self.cursor,
        )
        try:
            response = await self.token.guard(
                self.client.send(request, stream=True, auth=auth)
            )
        except StreamAborted:
            self._move(ConnectionState.ABORTED, "cancelled")
            return
        except httpx.HTTPError as exc:
            self._fail("connect_error", exc)
            return
        except asyncio.CancelledError:
            self._interrupted()
            raise

        self._response = response
        self.status_code = response.status_code
        if not response.is_success:
            self.error = f"HTTP status {response.status_code}"
            log.warning(
                "connection_rejected",
                url=self.config.url,
                attempt=self.attempt,
                status=response.status_code,
            )
            await self.aclose()
            self._move(ConnectionState.FAILED, "http_status")
            return

        self._chunks = response.aiter_bytes()
        log.info(
            "connection_opened",
            url=self.config.url,
            attempt=self.attempt,
            status=response.status_code,
            last_event_id=self.cursor,
        )
        self._move(ConnectionState.STREAMING, "response")

    def _fail(self, trigger: str, exc: Exception) -> None:
        self.error = f"{type(exc).__name__}: {exc}"
        log.warning(
            "connection_failed",
            url=self.config.url,
            attempt=self.attempt,
            state=self.state.value,
            error=self.error,
        )
        self._move(ConnectionState.FAILED, trigger)

    def _interrupted(self) -> None:
        """The awaiting task was cancelled from outside the token."""
        self.error = "interrupted"
        log.info(
            "connection_interrupted",
            url=self.config.url,
            attempt=self.attempt,
            state=self.state.value,
        )
        self._move(ConnectionState.FAILED, "interrupted")

    def _absorb(self, text: str) -> None:
        for frame in self._framer.feed(text):
            self._pending.extend(self._parser.feed(frame))

    def _flush(self) -> None:
        self._absorb(self._decoder.decode(b"", final=True))
        for frame in self._framer.finish():
            self._pending.extend(self._parser.feed(frame))
        self._pending.extend(self._parser.finish())

    async def _read_chunk(self) -> None:
        if self._chunks is None:
            raise RuntimeError(f"no response body to read in state {self.state.value}")
        try:
            chunk = await self.token.guard(self._chunks.__anext__())
        except StopAsyncIteration:
            self._eof = True
            self._flush()
            return
        self._absorb(self._decoder.decode(chunk))

    def _emit(self) -> SSEEvent:
        event = self._pending.popleft()
        # An empty id never replaces a known cursor
        if event.id:
            self.cursor = event.id
        self.events_emitted += 1
        return event

    async def next_event(self) -> SSEEvent | None:
        """Return the next event, or None once the attempt is terminal."""
        if self.state is ConnectionState.IDLE:
            await self.open()

        while self.state is ConnectionState.STREAMING:
            if self.token.cancelled:
                await self.aclose()
                self._move(ConnectionState.ABORTED, "cancelled")
                break
            if self._pending:
                return self._emit()
            if self._eof:
                log.info(
                    "connection_completed",
                    url=self.config.url,
                    attempt=self.attempt,
                    events=self.events_emitted,
                )
                await self.aclose()
                self._move(ConnectionState.COMPLETED, "eof")
                break
            try:
                await self._read_chunk()
            except StreamAborted:
                await self.aclose()
                self._move(ConnectionState.ABORTED, "cancelled")
            except (httpx.HTTPError, httpx.StreamError) as exc:
                await self.aclose()
                self._fail("read_error", exc)
            except asyncio.CancelledError:
                # Cancelled from outside the token; the body iterator is spent
                self._interrupted()
                await self.aclose()
                raise
        return None

    async def aclose(self) -> None:
        """Release the response. Safe to call repeatedly."""
        response, self._response = self._response, None
        self._chunks = None
        if response is not None:
            try:
                await response.aclose()
            except httpx.HTTPError as exc:
                log.debug("response_close_error", attempt=self.attempt, error=str(exc))
