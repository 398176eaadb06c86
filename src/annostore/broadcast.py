"""Best-effort relay of store changes to a realtime websocket endpoint.

The forwarder owns one outbound websocket and a background task that
keeps reconnecting it with a fixed delay for as long as the process
runs. Events are sent only while connected; anything emitted while the
link is down is dropped. Nothing here ever raises into the store.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
from enum import StrEnum
from typing import Any, Protocol

import aiohttp

from annostore._redact import redact_url
from annostore.models.events import BroadcastEvent

_logger = logging.getLogger(__name__)


class EventSink(Protocol):
    """Receiver of post-commit store events."""

    async def notify(self, event: BroadcastEvent) -> None:
        ...


class NullSink:
    """Sink that discards every event."""

    async def notify(self, event: BroadcastEvent) -> None:
        return None


class ForwarderState(StrEnum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


class BroadcastForwarder:
    """Websocket forwarder with a fixed-delay reconnect loop.

    Usage::

        async with BroadcastForwarder("ws://localhost:8088/402") as forwarder:
            store = AnnotationStore(backend, sink=forwarder)

    With ``url=None`` the forwarder is inert: it never connects and
    :meth:`notify` does nothing.
    """

    def __init__(
        self,
        url: str | None,
        *,
        session: aiohttp.ClientSession | None = None,
        reconnect_delay: float = 2.0,
        send_timeout: float = 5.0,
        logger: logging.Logger | None = None,
    ) -> None:
        self._url = url
        self._external_session = session is not None
        self._http_session = session
        self._reconnect_delay = reconnect_delay
        self._send_timeout = send_timeout
        self._logger = logger or _logger
        self._state = ForwarderState.DISCONNECTED
        self._ws: aiohttp.ClientWebSocketResponse | None = None
        self._task: asyncio.Task[None] | None = None
        self._connected = asyncio.Event()

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> BroadcastForwarder:
        await self.start()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.stop()

    @property
    def enabled(self) -> bool:
        return self._url is not None

    @property
    def state(self) -> ForwarderState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state is ForwarderState.CONNECTED

    async def start(self) -> None:
        """Launch the reconnect loop. Does nothing when disabled or already running."""
        if self._url is None or self._task is not None:
            return
        if self._http_session is None:
            self._http_session = aiohttp.ClientSession()
        self._state = ForwarderState.CONNECTING
        self._task = asyncio.create_task(self._run(), name="annostore-broadcast")

    async def stop(self) -> None:
        """Cancel the reconnect loop and release the websocket."""
        task = self._task
        self._task = None
        if task is not None:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        await self._close_ws()
        self._set_disconnected()
        if not self._external_session and self._http_session is not None:
            await self._http_session.close()
            self._http_session = None

    async def wait_connected(self, timeout: float | None = None) -> bool:
        """Wait until the websocket is open. Returns ``False`` on timeout."""
        if self._url is None:
            return False
        try:
            await asyncio.wait_for(self._connected.wait(), timeout)
        except TimeoutError:
            return False
        return True

    async def notify(self, event: BroadcastEvent) -> None:
        """Send *event* if connected; otherwise drop it. Never raises."""
        if self._url is None:
            return
        ws = self._ws
        if self._state is not ForwarderState.CONNECTED or ws is None or ws.closed:
            self._logger.warning("Broadcast not connected; skip event kind=%s id=%s", event.kind, event.id)
            return
        try:
            await asyncio.wait_for(ws.send_str(json.dumps(event.to_wire())), self._send_timeout)
        except Exception:
            self._logger.warning("Broadcast send failed kind=%s id=%s", event.kind, event.id, exc_info=True)

    # ------------------------------------------------------------------
    # Connection loop
    # ------------------------------------------------------------------

    async def _run(self) -> None:
        assert self._url is not None  # noqa: S101
        assert self._http_session is not None  # noqa: S101
        url = self._url
        while True:
            self._state = ForwarderState.CONNECTING
            try:
                ws = await self._http_session.ws_connect(url)
            except Exception as exc:
                self._logger.warning("Broadcast connect to %s failed: %s", redact_url(url), exc)
            else:
                self._ws = ws
                self._state = ForwarderState.CONNECTED
                self._connected.set()
                self._logger.info("Connected to broadcast endpoint %s", redact_url(url))
                try:
                    await self._drain(ws)
                except Exception:
                    self._logger.warning("Broadcast websocket error", exc_info=True)
                finally:
                    await self._close_ws()
            self._set_disconnected()
            self._logger.warning("Broadcast websocket closed, will attempt reconnect in %ss", self._reconnect_delay)
            await asyncio.sleep(self._reconnect_delay)

    async def _drain(self, ws: aiohttp.ClientWebSocketResponse) -> None:
        # Inbound traffic is not used; reading keeps close/ping frames flowing.
        async for msg in ws:
            if msg.type is aiohttp.WSMsgType.ERROR:
                self._logger.warning("Broadcast websocket error: %s", ws.exception())
                return
            self._logger.debug("Ignoring inbound broadcast frame type=%s", msg.type)

    async def _close_ws(self) -> None:
        ws = self._ws
        self._ws = None
        if ws is None or ws.closed:
            return
        try:
            await ws.close()
        except Exception:
            self._logger.debug("Broadcast websocket close failed", exc_info=True)

    def _set_disconnected(self) -> None:
        self._state = ForwarderState.DISCONNECTED
        self._connected.clear()
