"""Uniform view over raw socket-like transports.

Raw transports come in two notification styles: registration-based
(``add_event_listener(kind, callback)``) and emitter-based
(``on(kind, callback)``). The style and the optional native ping capability
are resolved once, when the adapter is bound, and the connection manager only
ever talks to the four notifications (plus pong) exposed here.
"""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Awaitable, Callable, Mapping, Sequence
from typing import Any, cast

from socketflow.logging_abstraction import LogSink
from socketflow.transport.exceptions import TransportError
from socketflow.transport.types import AdapterStyle, CloseEvent

TransportFactory = Callable[..., Any]


def accepts_headers(factory: TransportFactory) -> bool:
    """Return True if the factory can take a ``headers`` keyword.

    An explicit ``supports_headers`` attribute on the factory wins; otherwise
    the call signature is inspected.
    """
    explicit = getattr(factory, "supports_headers", None)
    if isinstance(explicit, bool):
        return explicit
    try:
        params = inspect.signature(factory).parameters.values()
    except (TypeError, ValueError):
        return False
    return any(p.name == "headers" or p.kind is inspect.Parameter.VAR_KEYWORD for p in params)


def create_transport(
    factory: TransportFactory,
    url: str,
    protocols: str | Sequence[str] | None = None,
    headers: Mapping[str, str] | None = None,
) -> Any:
    """Instantiate a raw transport, injecting headers only where supported."""
    if headers and accepts_headers(factory):
        return factory(url, protocols, headers=dict(headers))
    return factory(url, protocols)


def _normalise_payload(*args: object) -> str:
    payload: object = args[0] if args else ""
    data = getattr(payload, "data", None)
    if data is not None and not isinstance(payload, (str, bytes, bytearray, memoryview)):
        payload = data
    if isinstance(payload, (bytes, bytearray, memoryview)):
        return bytes(payload).decode("utf-8", errors="replace")
    if payload is None:
        return ""
    return payload if isinstance(payload, str) else str(payload)


def _normalise_close(*args: object) -> CloseEvent:
    if not args:
        return CloseEvent()
    first = args[0]
    if isinstance(first, CloseEvent):
        return first
    if isinstance(first, int):
        reason: object = args[1] if len(args) > 1 else ""
    else:
        first, reason = getattr(first, "code", 0), getattr(first, "reason", "")
    if isinstance(reason, (bytes, bytearray)):
        reason = bytes(reason).decode("utf-8", errors="replace")
    return CloseEvent(code=int(first or 0), reason=str(reason or ""))


class TransportAdapter:
    """Capability-tagged wrapper around one raw transport instance."""

    def __init__(self, raw: Any, style: AdapterStyle, log: LogSink) -> None:
        self.raw: Any = raw
        self.style: AdapterStyle = style
        self.supports_ping: bool = callable(getattr(raw, "ping", None))
        self._log = log
        self._pending: set[asyncio.Future[Any]] = set()

    @classmethod
    def bind(cls, raw: Any, log: LogSink) -> TransportAdapter:
        """Resolve the notification style of ``raw``.

        Emitter style is preferred when both are present since only emitters
        deliver pong notifications.

        Raises:
            TransportError: If raw exposes neither ``on`` nor ``add_event_listener``
        """
        if callable(getattr(raw, "on", None)):
            return cls(raw, AdapterStyle.EMITTER, log)
        if callable(getattr(raw, "add_event_listener", None)):
            return cls(raw, AdapterStyle.REGISTRATION, log)
        msg = f"{type(raw).__name__} exposes neither on() nor add_event_listener()"
        raise TransportError(msg)

    def subscribe(
        self,
        on_open: Callable[[], None],
        on_message: Callable[[str], None],
        on_error: Callable[[object], None],
        on_close: Callable[[CloseEvent], None],
        on_pong: Callable[[], None] | None = None,
    ) -> None:
        """Register the notification callbacks on the raw transport."""

        def handle_open(*_args: object) -> None:
            on_open()

        def handle_message(*args: object) -> None:
            on_message(_normalise_payload(*args))

        def handle_error(*args: object) -> None:
            on_error(args[0] if args else None)

        def handle_close(*args: object) -> None:
            on_close(_normalise_close(*args))

        register = self.raw.on if self.style is AdapterStyle.EMITTER else self.raw.add_event_listener
        register("open", handle_open)
        register("message", handle_message)
        register("error", handle_error)
        register("close", handle_close)

        if on_pong is not None and self.style is AdapterStyle.EMITTER:

            def handle_pong(*_args: object) -> None:
                on_pong()

            register("pong", handle_pong)

    @property
    def is_open(self) -> bool:
        """True when the raw transport reports an open-equivalent ready state."""
        ready = getattr(self.raw, "ready_state", getattr(self.raw, "readyState", None))
        return ready is not None and ready == getattr(self.raw, "OPEN", 1)

    def send(self, data: str | bytes) -> None:
        self._settle(self.raw.send(data), "send")

    def ping(self) -> None:
        self._settle(self.raw.ping(), "ping")

    def close(self) -> None:
        """Best-effort close; failures are logged, never raised."""
        try:
            self._settle(self.raw.close(), "close")
        except Exception as e:
            self._log("warn", f"close failed: {e}", error_type=type(e).__name__)

    def _settle(self, result: object, action: str) -> None:
        """Track awaitables returned by async transports and log their failures."""
        if not inspect.isawaitable(result):
            return
        future = asyncio.ensure_future(cast("Awaitable[Any]", result))
        self._pending.add(future)

        def done(fut: asyncio.Future[Any]) -> None:
            self._pending.discard(fut)
            if fut.cancelled():
                return
            error = fut.exception()
            if error is not None:
                self._log("warn", f"{action} failed: {error}", error_type=type(error).__name__)

        future.add_done_callback(done)

    def __repr__(self) -> str:
        return f"TransportAdapter({type(self.raw).__name__}, style={self.style.value}, ping={self.supports_ping})"
