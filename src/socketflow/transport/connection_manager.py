"""Connection management with state machine, reconnect backoff and heartbeat.

This module implements the ConnectionManager class, the only writer of the
connection state and of the current transport adapter. Adapter notifications
feed the heartbeat watchdog (open/pong), the backpressure queue (message) and
the backoff policy (close); timers re-enter the connect routine.
"""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import Any, Generic, TypeVar, cast

from socketflow.metrics import registry
from socketflow.options import SocketFlowOptions
from socketflow.transport.adapter import TransportAdapter, create_transport
from socketflow.transport.dispatch_queue import BackpressureQueue
from socketflow.transport.exceptions import ConfigurationError, TransportError
from socketflow.transport.heartbeat import HeartbeatWatchdog
from socketflow.transport.retry_policy import DecorrelatedJitterBackoff
from socketflow.transport.timers import TimerSlots
from socketflow.transport.types import ABNORMAL_CLOSURE, CloseEvent, TimerKind

T = TypeVar("T")


class ConnectionState(Enum):
    """Connection state enumeration."""

    IDLE = "idle"
    CONNECTING = "connecting"
    OPEN = "open"
    RECONNECTING = "reconnecting"
    CLOSED = "closed"


class ConnectionManager(Generic[T]):
    """Owns the lifecycle of one persistent connection.

    **Transitions**:
    - IDLE → CONNECTING: ``start()``
    - CONNECTING/RECONNECTING → OPEN: adapter open notification (attempts and
      backoff reset, heartbeat started, ``on_open`` awaited in the background)
    - OPEN → RECONNECTING: close notification accepted by ``should_retry``,
      or a heartbeat deadline expiry (forced, zero delay)
    - OPEN → CLOSED: close notification after ``stop()`` or rejected by
      ``should_retry``
    - RECONNECTING → CONNECTING: reconnect timer fires, new adapter created
    - * → CLOSED: ``stop()``

    **Stale adapters**: every notification carries the adapter it came from.
    Notifications from an adapter that has been replaced, stopped or dropped
    after a liveness timeout are ignored, so a late close from a dead socket
    can never schedule a second reconnect.

    **Stop gating**: ``stop()`` may race an in-progress connect. Every timer
    arming site checks the user-stop flag, and the connect routine re-checks
    it after resolving the URL, so nothing is resurrected after a stop.
    """

    def __init__(self, options: SocketFlowOptions[T]) -> None:
        self.options: SocketFlowOptions[T] = options
        self._log = options.sink
        self.state: ConnectionState = ConnectionState.IDLE
        self.attempts: int = 0
        self._closed_by_user: bool = False
        self._adapter: TransportAdapter | None = None
        self._connect_task: asyncio.Task[None] | None = None
        self._tasks: set[asyncio.Future[Any]] = set()

        self.timers: TimerSlots = TimerSlots()
        self.backoff: DecorrelatedJitterBackoff = DecorrelatedJitterBackoff(
            base_ms=options.reconnect_base_ms,
            cap_ms=options.reconnect_max_ms,
            rng=options.rng,
        )
        self.heartbeat: HeartbeatWatchdog = HeartbeatWatchdog(
            timers=self.timers,
            interval_ms=options.ping_interval_ms,
            timeout_ms=options.pong_timeout_ms,
            get_adapter=lambda: self._adapter,
            on_timeout=self._handle_liveness_timeout,
            log=self._log,
            is_active=lambda: not self._closed_by_user,
            source=options.source,
        )
        self.queue: BackpressureQueue[T] = BackpressureQueue(
            handler=options.on_message,
            parse=options.parse,
            log=self._log,
            concurrency=options.concurrency,
            max_queue_size=options.max_queue_size,
            on_dropped=options.on_dropped_message,
            source=options.source,
        )

    def get_state(self) -> ConnectionState:
        return self.state

    @property
    def adapter(self) -> TransportAdapter | None:
        return self._adapter

    @property
    def socket(self) -> Any:
        """Raw transport of the current adapter, or None.

        May be closed or replaced at any notification boundary; do not hold on
        to it across awaits.
        """
        return self._adapter.raw if self._adapter is not None else None

    def start(self) -> None:
        """Begin connecting in the background. Requires a running event loop."""
        self._closed_by_user = False
        self._spawn_connect()

    def stop(self) -> None:
        """Synchronously tear everything down and land in CLOSED.

        Safe from any state, including before ``start()``.
        """
        self._closed_by_user = True
        self.timers.cancel_all()
        if self._connect_task is not None and not self._connect_task.done():
            _ = self._connect_task.cancel()
        self._connect_task = None
        self._detach_adapter()
        self.queue.clear()
        self.attempts = 0
        self.backoff.reset()
        self._set_state(ConnectionState.CLOSED)

    def _spawn_connect(self) -> None:
        if self._closed_by_user:
            return
        if self._connect_task is not None and not self._connect_task.done():
            _ = self._connect_task.cancel()
        task = asyncio.create_task(self._connect())
        task.add_done_callback(self._connect_done)
        self._connect_task = task

    def _connect_done(self, task: asyncio.Task[None]) -> None:
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            self._log("error", f"connect failed: {error}", error_type=type(error).__name__)

    async def _resolve_url(self) -> str | None:
        if self.options.url:
            return self.options.url
        if self.options.get_url is None:
            return None
        result = self.options.get_url()
        if inspect.isawaitable(result):
            result = await result
        return cast("str | None", result)

    async def _connect(self) -> None:
        """Create a fresh adapter.

        Raises:
            ConfigurationError: If neither ``url`` nor ``get_url()`` yields a target
        """
        self.timers.cancel_all()
        self._set_state(ConnectionState.CONNECTING if self.attempts == 0 else ConnectionState.RECONNECTING)

        url = await self._resolve_url()
        if not url:
            raise ConfigurationError("url or get_url() required")
        if self._closed_by_user:
            return

        self._detach_adapter()
        try:
            raw = create_transport(
                self.options.transport_factory,
                url,
                self.options.protocols,
                self.options.headers,
            )
            adapter = TransportAdapter.bind(raw, self._log)
        except ConfigurationError:
            raise
        except Exception as e:
            error = e if isinstance(e, TransportError) else TransportError(str(e), cause=e)
            self._log("warn", f"socket error: {error}", error_type=type(e).__name__)
            self._on_closed(CloseEvent(code=ABNORMAL_CLOSURE, reason=str(e)))
            return

        self._adapter = adapter
        adapter.subscribe(
            on_open=lambda: self._handle_open(adapter),
            on_message=lambda raw_payload: self._handle_message(adapter, raw_payload),
            on_error=lambda err: self._handle_error(adapter, err),
            on_close=lambda event: self._handle_close(adapter, event),
            on_pong=lambda: self._handle_pong(adapter),
        )

    def _detach_adapter(self) -> None:
        adapter, self._adapter = self._adapter, None
        if adapter is not None:
            adapter.close()

    def _is_current(self, adapter: TransportAdapter) -> bool:
        return adapter is self._adapter

    def _handle_open(self, adapter: TransportAdapter) -> None:
        if not self._is_current(adapter) or self._closed_by_user:
            return
        self._log("info", "connected")
        self._set_state(ConnectionState.OPEN)
        self.attempts = 0
        self.backoff.reset()
        self.heartbeat.start()
        self._call_hook("onOpen", self.options.on_open, adapter.raw)

    def _handle_message(self, adapter: TransportAdapter, raw: str) -> None:
        if not self._is_current(adapter):
            return
        _ = self.queue.enqueue(raw)

    def _handle_error(self, adapter: TransportAdapter, error: object) -> None:
        if not self._is_current(adapter):
            return
        self._log("warn", f"socket error: {error}")

    def _handle_pong(self, adapter: TransportAdapter) -> None:
        if self._is_current(adapter):
            self.heartbeat.on_pong()

    def _handle_close(self, adapter: TransportAdapter, event: CloseEvent) -> None:
        if not self._is_current(adapter):
            self._log("debug", f"ignoring close from replaced socket code={event.code}")
            return
        self._adapter = None
        self._on_closed(event)

    def _on_closed(self, event: CloseEvent) -> None:
        self._log("warn", f"closed code={event.code} reason={event.reason}", code=event.code, reason=event.reason)
        self._call_hook("onClose", self.options.on_close, event)
        self.timers.cancel_all()
        if not self._closed_by_user and self._should_retry(event):
            self._schedule_reconnect(force=False, event=event)
        else:
            self._set_state(ConnectionState.CLOSED)

    def _should_retry(self, event: CloseEvent) -> bool:
        try:
            return bool(self.options.should_retry(event))
        except Exception as e:
            self._log("error", f"shouldRetry threw: {e}", error_type=type(e).__name__)
            return False

    def _handle_liveness_timeout(self) -> None:
        # timers are cancelled on every connect; a late expiry outside OPEN is a no-op
        if self.state is not ConnectionState.OPEN:
            return
        self._log("warn", "pong timeout; reconnecting")
        self._detach_adapter()
        self._call_hook("onClose", self.options.on_close, CloseEvent(code=ABNORMAL_CLOSURE, reason="pong timeout"))
        self._schedule_reconnect(force=True)

    def _schedule_reconnect(self, force: bool = False, event: CloseEvent | None = None) -> None:
        if self._closed_by_user:
            return
        delay = self.backoff.next_delay(force=force)
        self.attempts += 1
        self._set_state(ConnectionState.RECONNECTING)
        self._call_hook("onReconnectAttempt", self.options.on_reconnect_attempt, self.attempts, delay, event)
        # the hook may have called stop()
        if self._closed_by_user:
            return
        registry.record_reconnect_attempt(self.options.source, "forced" if force else "close")
        self._log("info", f"reconnecting in {round(delay)}ms", attempt=self.attempts, forced=force)
        self.timers.arm(TimerKind.RECONNECT, delay, self._spawn_connect)

    def _set_state(self, state: ConnectionState) -> None:
        self.state = state
        registry.record_connection_state(self.options.source, state.value)

    def _call_hook(self, name: str, hook: Callable[..., object] | None, *args: object) -> None:
        """Invoke a lifecycle hook; async hooks run as tracked tasks. Never raises."""
        if hook is None:
            return
        try:
            result = hook(*args)
        except Exception as e:
            self._log("error", f"{name} threw: {e}", error_type=type(e).__name__)
            return
        if not inspect.isawaitable(result):
            return
        future = asyncio.ensure_future(cast("Awaitable[Any]", result))
        self._tasks.add(future)

        def done(fut: asyncio.Future[Any]) -> None:
            self._tasks.discard(fut)
            if fut.cancelled():
                return
            error = fut.exception()
            if error is not None:
                self._log("error", f"{name} threw: {error}", error_type=type(error).__name__)

        future.add_done_callback(done)

    def __repr__(self) -> str:
        return (
            f"ConnectionManager(source={self.options.source}, state={self.state.value}, "
            f"attempts={self.attempts}, {self.timers!r})"
        )
