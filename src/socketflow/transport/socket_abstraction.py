"""Default emitter-style WebSocket transport built on aiohttp."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from collections import defaultdict
from collections.abc import Callable, Mapping, Sequence

import aiohttp

from socketflow.transport.types import ABNORMAL_CLOSURE, CloseEvent

logger = logging.getLogger(__name__)

Listener = Callable[..., None]


class AiohttpWebSocket:
    """WebSocket client that reports its lifecycle through ``on(kind, callback)``.

    Construction starts the connection in the background; listeners registered
    right after construction see every notification. Notification kinds:
    ``open``, ``message`` (str or bytes), ``error`` (exception), ``pong`` and
    ``close`` (``CloseEvent``, emitted exactly once).
    """

    CONNECTING = 0
    OPEN = 1
    CLOSING = 2
    CLOSED = 3

    supports_headers = True

    def __init__(
        self,
        url: str,
        protocols: str | Sequence[str] | None = None,
        headers: Mapping[str, str] | None = None,
        session: aiohttp.ClientSession | None = None,
    ):
        """
        Start connecting to ``url``.

        Args:
            url: ws:// or wss:// target
            protocols: Sub-protocol name or names offered during the handshake
            headers: Extra handshake headers
            session: Shared ClientSession (one is created and owned otherwise)
        """
        self.url = url
        self.protocols: tuple[str, ...] = (protocols,) if isinstance(protocols, str) else tuple(protocols or ())
        self.headers = dict(headers) if headers else None
        self.ready_state = self.CONNECTING
        self._session = session
        self._owns_session = session is None
        self._ws: aiohttp.ClientWebSocketResponse | None = None
        self._listeners: defaultdict[str, list[Listener]] = defaultdict(list)
        self._close_emitted = False
        self._requested_close: CloseEvent | None = None
        self._reader_task: asyncio.Task[None] = asyncio.create_task(self._run())

    def on(self, kind: str, listener: Listener) -> None:
        self._listeners[kind].append(listener)

    def _emit(self, kind: str, *args: object) -> None:
        for listener in list(self._listeners[kind]):
            try:
                listener(*args)
            except Exception:
                logger.exception(
                    "Listener for %s raised",
                    kind,
                    extra={"url": self.url, "kind": kind},
                )

    def _emit_close(self, code: int, reason: str = "") -> None:
        if self._close_emitted:
            return
        self._close_emitted = True
        self.ready_state = self.CLOSED
        self._emit("close", CloseEvent(code=code, reason=reason))

    async def _run(self) -> None:
        start_time = time.perf_counter()
        try:
            if self._session is None:
                self._session = aiohttp.ClientSession()
            self._ws = await self._session.ws_connect(
                self.url,
                protocols=self.protocols,
                headers=self.headers,
                autoping=False,
            )
        except asyncio.CancelledError:
            await self._release_session()
            self._emit_close(ABNORMAL_CLOSURE, "cancelled")
            raise
        except (aiohttp.ClientError, OSError, TimeoutError) as e:
            elapsed_ms = (time.perf_counter() - start_time) * 1000
            logger.warning(
                "Connection to %s failed after %.1fms: %s",
                self.url,
                elapsed_ms,
                e,
                extra={"url": self.url, "elapsed_ms": elapsed_ms, "error": str(e)},
            )
            await self._release_session()
            self._emit("error", e)
            self._emit_close(ABNORMAL_CLOSURE, str(e))
            return

        self.ready_state = self.OPEN
        logger.debug(
            "Connected to %s in %.1fms",
            self.url,
            (time.perf_counter() - start_time) * 1000,
            extra={"url": self.url},
        )
        self._emit("open")

        try:
            await self._read_loop(self._ws)
        finally:
            # a client-initiated close reports the code it sent; close_code may not be set yet
            event = self._requested_close
            if event is None:
                code = self._ws.close_code
                event = CloseEvent(code=code if code is not None else ABNORMAL_CLOSURE)
            with contextlib.suppress(aiohttp.ClientError, OSError):
                await self._ws.close()
            await self._release_session()
            self._emit_close(event.code, event.reason)

    async def _read_loop(self, ws: aiohttp.ClientWebSocketResponse) -> None:
        async for msg in ws:
            if msg.type in (aiohttp.WSMsgType.TEXT, aiohttp.WSMsgType.BINARY):
                self._emit("message", msg.data)
            elif msg.type == aiohttp.WSMsgType.PING:
                await ws.pong(msg.data)
            elif msg.type == aiohttp.WSMsgType.PONG:
                self._emit("pong")
            elif msg.type == aiohttp.WSMsgType.ERROR:
                self._emit("error", ws.exception())
                break
        if self.ready_state == self.OPEN:
            self.ready_state = self.CLOSING

    async def _release_session(self) -> None:
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()

    async def send(self, data: str | bytes) -> None:
        if self._ws is None or self.ready_state != self.OPEN:
            msg = f"Cannot send: {self.url} is not open"
            raise ConnectionError(msg)
        if isinstance(data, str):
            await self._ws.send_str(data)
        else:
            await self._ws.send_bytes(data)

    async def ping(self) -> None:
        if self._ws is None or self.ready_state != self.OPEN:
            msg = f"Cannot ping: {self.url} is not open"
            raise ConnectionError(msg)
        await self._ws.ping()

    async def close(self, code: int = 1000, reason: str = "") -> None:
        """Close the socket; the read loop emits the close notification."""
        if self.ready_state == self.CLOSED:
            return
        if self._ws is None:
            _ = self._reader_task.cancel()
            self._emit_close(ABNORMAL_CLOSURE, "closed before open")
            return
        self.ready_state = self.CLOSING
        self._requested_close = CloseEvent(code=code, reason=reason)
        await self._ws.close(code=code, message=reason.encode())

    def __repr__(self) -> str:
        states = {0: "connecting", 1: "open", 2: "closing", 3: "closed"}
        return f"AiohttpWebSocket({self.url}, {states[self.ready_state]})"
