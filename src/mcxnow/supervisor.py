"""Live quote connection: snapshot fetch, event stream, watchdog and reconnects."""

from __future__ import annotations

import asyncio
import logging
from types import MappingProxyType
from typing import Any, AsyncIterator, Awaitable, Callable, Mapping, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from .backoff import BackoffPolicy
from .config import SupervisorConfig
from .exceptions import (
    ConnectError,
    InitializationError,
    MalformedPayloadError,
    MCXNowError,
    ServerSignaledError,
    TransportError,
)
from .models import (
    ConnectionPhase,
    ConnectionState,
    ErrorRaised,
    Notification,
    QuotesUpdated,
    RateSnapshot,
    RateUpdate,
    ReconnectScheduled,
    ServerErrorPayload,
    StateChanged,
)
from .pubsub import Broadcaster, Subscription
from .quotes import QuoteBook
from .streams import SSEEvent, aiter_sse_events

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

STREAM_HEADERS = MappingProxyType(
    {
        "Accept": "text/event-stream",
        "Cache-Control": "no-cache",
        "Connection": "keep-alive",
    }
)

_CONNECTABLE = frozenset({ConnectionPhase.DISCONNECTED, ConnectionPhase.CONNECTED, ConnectionPhase.RECONNECTING})


def _decode(event: SSEEvent, model: type[ModelT]) -> ModelT:
    try:
        return model.model_validate(event.json())
    except ValidationError as exc:
        raise MalformedPayloadError(f"unexpected {event.event} payload", body=event.data, cause=exc) from exc


class ConnectionSupervisor:
    """Owns one logical live-quote session and keeps it alive.

    ``start()`` seeds the quote book from the snapshot endpoint and opens the
    event stream. From then on every received event re-arms the idle
    watchdog; a silent, failed or finished stream is torn down and reopened.
    Failures to open are retried with a doubling delay that only a
    ``connected`` event from the server resets.

    Views read ``state``, ``error`` and ``quotes`` and subscribe to
    notifications; they never write to the book.
    """

    def __init__(
        self,
        config: SupervisorConfig | None = None,
        *,
        httpx_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.config = config or SupervisorConfig()
        self.backoff = BackoffPolicy(self.config.backoff_initial, self.config.backoff_max)
        self.notifications: Broadcaster[Notification] = Broadcaster()
        self._book = QuoteBook()
        self._state = ConnectionState()
        self._error: str | None = None
        self._owns_client = httpx_client is None
        self._httpx = httpx_client or httpx.AsyncClient(
            timeout=self.config.snapshot_timeout,
            follow_redirects=True,
            trust_env=False,
        )
        self._response: httpx.Response | None = None
        self._reader: asyncio.Task[None] | None = None
        self._idle_handle: asyncio.TimerHandle | None = None
        self._reconnect_task: asyncio.Task[None] | None = None
        self._retry_task: asyncio.Task[None] | None = None
        self._seeded = False
        self._closed = False

    async def __aenter__(self) -> "ConnectionSupervisor":
        await self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def error(self) -> str | None:
        return self._error

    @property
    def quotes(self) -> Mapping[str, Mapping[str, Any]]:
        return self._book.view()

    @property
    def book(self) -> QuoteBook:
        return self._book

    def subscribe(self, callback: Callable[[Notification], None]) -> Subscription:
        return self.notifications.subscribe(callback)

    def listen(self) -> AsyncIterator[Notification]:
        return self.notifications.listen()

    def _url(self, path: str) -> str:
        return f"{self.config.base_url}{path}"

    async def start(self) -> bool:
        """Fetch the snapshot, then open the stream.

        A failed snapshot is reported on ``error`` and retried after the
        current backoff delay; it is never raised to the caller.
        """
        if self._closed or self._state.phase is not ConnectionPhase.DISCONNECTED:
            logger.debug("Ignoring start request while %s", self._state.phase.value)
            return False
        return await self._seed_and_connect()

    async def _seed_and_connect(self) -> bool:
        self._set_state(ConnectionPhase.CONNECTING)
        self._set_error(None)
        try:
            await self.fetch_snapshot()
        except InitializationError as exc:
            logger.warning("Snapshot fetch failed: %s", exc)
            self._set_state(ConnectionPhase.DISCONNECTED)
            self._set_error(f"Failed to initialize: {exc}", exc)
            self._schedule_retry("init", self.start)
            return False
        self._set_state(ConnectionPhase.CONNECTED)
        return await self.connect()

    async def fetch_snapshot(self) -> tuple[str, ...]:
        """Replace the quote book with the current ``/rate`` snapshot."""
        url = self._url(self.config.snapshot_path)
        try:
            response = await self._httpx.get(
                url,
                headers={"Accept": "application/json", **(self.config.headers or {})},
                timeout=self.config.snapshot_timeout,
            )
        except httpx.TimeoutException as exc:
            raise InitializationError(f"GET {self.config.snapshot_path} timed out", cause=exc) from exc
        except httpx.HTTPError as exc:
            raise InitializationError(f"GET {self.config.snapshot_path} failed: {exc}", cause=exc) from exc

        if response.status_code != 200:
            raise InitializationError(
                f"GET {self.config.snapshot_path} failed",
                status_code=response.status_code,
                body=response.text,
            )
        try:
            snapshot = RateSnapshot.model_validate_json(response.content)
        except ValidationError as exc:
            raise InitializationError(
                f"GET {self.config.snapshot_path} returned an unreadable body",
                status_code=response.status_code,
                body=response.text,
                cause=exc,
            ) from exc

        symbols = self._book.replace_all(snapshot.data)
        self._seeded = True
        logger.info("Loaded %d symbols from snapshot", len(symbols))
        self.notifications.publish(QuotesUpdated(symbols, snapshot=True))
        return symbols

    async def connect(self) -> bool:
        """Open the event stream. Ignored unless disconnected, freshly seeded or reconnecting."""
        if self._closed or self._state.phase not in _CONNECTABLE:
            logger.debug("Ignoring connect request while %s", self._state.phase.value)
            return False
        await self._teardown()
        self._set_state(ConnectionPhase.STREAM_CONNECTING)
        try:
            response = await self._open_stream()
        except ConnectError as exc:
            logger.warning("Event stream connect failed: %s", exc)
            self._set_state(ConnectionPhase.DISCONNECTED)
            self._set_error(f"Failed to connect SSE: {exc}", exc)
            self._schedule_retry("connect", self.connect)
            return False

        if self._closed or self._state.phase is not ConnectionPhase.STREAM_CONNECTING:
            # closed or superseded while the request was in flight
            await response.aclose()
            return False
        self._response = response
        self._reader = asyncio.create_task(self._read(response))
        self._reset_watchdog()
        return True

    async def _open_stream(self) -> httpx.Response:
        request = self._httpx.build_request(
            "GET",
            self._url(self.config.events_path),
            headers={**(self.config.headers or {}), **STREAM_HEADERS},
            timeout=httpx.Timeout(self.config.snapshot_timeout, read=None),
        )
        try:
            response = await self._httpx.send(request, stream=True)
        except httpx.HTTPError as exc:
            raise ConnectError(str(exc) or type(exc).__name__, cause=exc) from exc
        if not response.is_success:
            await response.aclose()
            raise ConnectError(
                "SSE connect failed",
                status_code=response.status_code,
            )
        return response

    async def _read(self, response: httpx.Response) -> None:
        try:
            async for event in aiter_sse_events(response.aiter_bytes()):
                self._dispatch(event)
        except (httpx.HTTPError, httpx.StreamError) as exc:
            error = TransportError(f"SSE error: {exc}", cause=exc)
            logger.warning("Event stream failed: %s", exc)
            self._set_error(str(error), error)
            self.request_reconnect("error")
            return
        logger.info("Event stream ended")
        self.request_reconnect("done")

    def _dispatch(self, event: SSEEvent) -> None:
        if self._state.phase is ConnectionPhase.RECONNECTING:
            logger.debug("Dropping %r event from a stream being replaced", event.event)
            return
        self._reset_watchdog()
        if event.event == "connected":
            self.backoff.reset()
            self._set_state(ConnectionPhase.LIVE_ACTIVE)
        elif event.event == "rateUpdate":
            self._handle_rate_update(event)
        elif event.event == "ping":
            pass
        elif event.event == "error":
            self._handle_server_error(event)
        else:
            logger.debug("Ignoring %r event", event.event)

    def _handle_rate_update(self, event: SSEEvent) -> None:
        if not event.data:
            return
        try:
            updates = _decode(event, RateUpdate).root
        except MalformedPayloadError as exc:
            logger.warning("Ignoring malformed rateUpdate: %s", exc)
            return
        symbols = self._book.merge(updates)
        if symbols:
            self.notifications.publish(QuotesUpdated(symbols))

    def _handle_server_error(self, event: SSEEvent) -> None:
        try:
            message = _decode(event, ServerErrorPayload).message
        except MalformedPayloadError:
            message = "Server error"
        logger.warning("Server reported an error: %s", message)
        self._set_error(message, ServerSignaledError(message, body=event.data))

    def _reset_watchdog(self) -> None:
        self._cancel_watchdog()
        loop = asyncio.get_running_loop()
        self._idle_handle = loop.call_later(self.config.idle_timeout, self._on_idle)

    def _cancel_watchdog(self) -> None:
        if self._idle_handle is not None:
            self._idle_handle.cancel()
            self._idle_handle = None

    def _on_idle(self) -> None:
        self._idle_handle = None
        logger.warning("No events for %.1fs, reconnecting", self.config.idle_timeout)
        self.request_reconnect("idle")

    def request_reconnect(self, reason: str) -> bool:
        """Tear down the stream and reopen it after the grace delay.

        Returns ``False`` when a reconnect is already underway; only one
        sequence runs at a time. A pending backoff retry is superseded.
        """
        if self._closed:
            return False
        if self._state.phase is ConnectionPhase.RECONNECTING or (
            self._reconnect_task is not None and not self._reconnect_task.done()
        ):
            logger.debug("Reconnect (%s) already in progress", reason)
            return False
        self._cancel_retry()
        self._cancel_watchdog()
        if self._reader is not None and self._reader is not asyncio.current_task():
            # stop the old reader before it can run again; teardown awaits it
            self._reader.cancel()
        self._set_state(ConnectionPhase.RECONNECTING, reason)
        self._reconnect_task = asyncio.create_task(self._reconnect())
        return True

    def reconnect(self) -> bool:
        return self.request_reconnect("manual")

    async def _reconnect(self) -> None:
        await self._teardown()
        # let the old socket release before opening a new one
        await asyncio.sleep(self.config.grace_delay)
        if self._seeded:
            await self.connect()
        elif self._state.phase is ConnectionPhase.RECONNECTING:
            # the snapshot never loaded, so reconnecting starts over from it
            await self._seed_and_connect()

    def _schedule_retry(self, reason: str, action: Callable[[], Awaitable[bool]]) -> None:
        self._cancel_retry()
        delay = self.backoff.next_delay()
        logger.info("Retrying %s in %.1fs", reason, delay)
        self.notifications.publish(ReconnectScheduled(delay, reason))
        self._retry_task = asyncio.create_task(self._retry_after(delay, action))

    async def _retry_after(self, delay: float, action: Callable[[], Awaitable[bool]]) -> None:
        await asyncio.sleep(delay)
        self._retry_task = None
        await action()

    def _cancel_retry(self) -> None:
        task, self._retry_task = self._retry_task, None
        if task is not None and task is not asyncio.current_task():
            task.cancel()

    async def _teardown(self) -> None:
        self._cancel_watchdog()
        reader, self._reader = self._reader, None
        response, self._response = self._response, None
        if reader is not None and reader is not asyncio.current_task():
            reader.cancel()
            await asyncio.wait([reader])
        if response is not None:
            await response.aclose()

    async def aclose(self) -> None:
        """Stop reconnecting, drop the stream and release the HTTP client."""
        self._closed = True
        self._cancel_retry()
        task, self._reconnect_task = self._reconnect_task, None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()
            await asyncio.wait([task])
        await self._teardown()
        self._set_state(ConnectionPhase.DISCONNECTED)
        if self._owns_client:
            await self._httpx.aclose()

    def _set_state(self, phase: ConnectionPhase, reason: str | None = None) -> None:
        state = ConnectionState(phase=phase, reason=reason)
        if state == self._state:
            return
        logger.info("Connection state: %s", state.label)
        self._state = state
        self.notifications.publish(StateChanged(state))

    def _set_error(self, message: str | None, error: MCXNowError | None = None) -> None:
        self._error = message
        if message is not None:
            self.notifications.publish(ErrorRaised(message, error))
