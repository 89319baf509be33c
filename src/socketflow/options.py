"""Configuration object accepted by ``ConnectionManager``."""

from __future__ import annotations

import json
import random
from collections.abc import Awaitable, Callable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar, cast

from socketflow.const import (
    DEFAULT_CONCURRENCY,
    DEFAULT_MAX_QUEUE_SIZE,
    DEFAULT_PING_INTERVAL_MS,
    DEFAULT_PONG_TIMEOUT_MS,
    DEFAULT_RECONNECT_BASE_MS,
    DEFAULT_RECONNECT_MAX_MS,
)
from socketflow.logging_abstraction import LogSink, default_log_sink
from socketflow.transport.adapter import TransportFactory
from socketflow.transport.exceptions import ConfigurationError
from socketflow.transport.types import CloseEvent

T = TypeVar("T")


def _always_retry(_event: CloseEvent) -> bool:
    return True


def _default_transport_factory() -> TransportFactory:
    # deferred so aiohttp is only imported when the default transport is used
    from socketflow.transport.socket_abstraction import AiohttpWebSocket

    return AiohttpWebSocket


@dataclass
class SocketFlowOptions(Generic[T]):
    """Options for one managed connection.

    Attributes:
        source: Opaque label used in logs and metrics
        type: Opaque label used in logs
        on_message: Handler called with (parsed value, raw payload); may be async
        url: Static connection target
        get_url: Resolver used when ``url`` is unset; may be async
        protocols: Sub-protocols offered to the server
        headers: Handshake headers, sent only when the transport supports them
        ping_interval_ms: Heartbeat cadence; <= 0 disables the heartbeat
        pong_timeout_ms: Liveness deadline before a forced reconnect
        reconnect_base_ms: Lower backoff bound
        reconnect_max_ms: Upper backoff bound
        concurrency: Maximum simultaneous handler invocations
        max_queue_size: Pending payloads kept before new ones are dropped
        parse: Raw payload to value; returning None skips the payload, so with the
            default ``json.loads`` a literal ``null`` message is never dispatched
        log: Severity-tagged sink (defaults to a FlowLogger-backed sink)
        should_retry: Close event to "reconnect?" decision
        on_open: Called with the raw transport after each open; may be async
        on_close: Called with every close event
        on_reconnect_attempt: Called with (attempt, delay_ms, close event or None)
        on_dropped_message: Called with each payload shed by a full queue
        transport_factory: Builds the raw transport; ``(url, protocols, headers=...)``
        rng: Random source for the backoff jitter
    """

    source: str
    type: str
    on_message: Callable[[T, str], Awaitable[None] | None]
    url: str | None = None
    get_url: Callable[[], str | Awaitable[str] | None] | None = None
    protocols: str | Sequence[str] | None = None
    headers: Mapping[str, str] | None = None
    ping_interval_ms: float = DEFAULT_PING_INTERVAL_MS
    pong_timeout_ms: float = DEFAULT_PONG_TIMEOUT_MS
    reconnect_base_ms: float = DEFAULT_RECONNECT_BASE_MS
    reconnect_max_ms: float = DEFAULT_RECONNECT_MAX_MS
    concurrency: int = DEFAULT_CONCURRENCY
    max_queue_size: int = DEFAULT_MAX_QUEUE_SIZE
    parse: Callable[[str], T | None] = json.loads
    log: LogSink | None = None
    should_retry: Callable[[CloseEvent], bool] = _always_retry
    on_open: Callable[[Any], Awaitable[None] | None] | None = None
    on_close: Callable[[CloseEvent], None] | None = None
    on_reconnect_attempt: Callable[[int, float, CloseEvent | None], None] | None = None
    on_dropped_message: Callable[[str], None] | None = None
    transport_factory: TransportFactory = field(default_factory=_default_transport_factory)
    rng: random.Random | None = None

    def __post_init__(self) -> None:
        if not self.source:
            raise ConfigurationError("source is required")
        if not self.type:
            raise ConfigurationError("type is required")
        if self.concurrency < 1:
            raise ConfigurationError(f"concurrency must be >= 1, got {self.concurrency}")
        if self.max_queue_size < 0:
            raise ConfigurationError(f"max_queue_size must be >= 0, got {self.max_queue_size}")
        if self.reconnect_base_ms < 0 or self.reconnect_max_ms < self.reconnect_base_ms:
            msg = (
                "reconnect bounds must satisfy 0 <= base <= max, "
                f"got base={self.reconnect_base_ms} max={self.reconnect_max_ms}"
            )
            raise ConfigurationError(msg)
        if self.log is None:
            self.log = default_log_sink(self.source, self.type, self.url)

    @property
    def sink(self) -> LogSink:
        return cast("LogSink", self.log)
