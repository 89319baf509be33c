"""Prometheus metrics registry for socketflow connections."""

import threading
from typing import Final

from prometheus_client import (  # type: ignore[import-untyped]
    Counter,
    Gauge,
    start_http_server,
)

from socketflow.const import SOCKETFLOW_METRICS_PORT

CONNECTION_STATES: Final = ("idle", "connecting", "open", "reconnecting", "closed")

socketflow_connection_state: Final = Gauge(  # type: ignore[assignment]
    "socketflow_connection_state",
    "Current connection state (1 for the active state, 0 otherwise)",
    ["source", "state"],
)

socketflow_reconnect_attempts_total: Final = Counter(  # type: ignore[assignment]
    "socketflow_reconnect_attempts_total",
    "Total reconnect attempts scheduled",
    ["source", "reason"],
)

socketflow_heartbeat_total: Final = Counter(  # type: ignore[assignment]
    "socketflow_heartbeat_total",
    "Heartbeat probes and their outcomes",
    ["source", "outcome"],
)

socketflow_messages_total: Final = Counter(  # type: ignore[assignment]
    "socketflow_messages_total",
    "Inbound messages by outcome",
    ["source", "outcome"],
)

socketflow_queue_depth: Final = Gauge(  # type: ignore[assignment]
    "socketflow_queue_depth",
    "Messages waiting for dispatch",
    ["source"],
)

socketflow_in_flight: Final = Gauge(  # type: ignore[assignment]
    "socketflow_in_flight",
    "Message handlers currently executing",
    ["source"],
)

_server_state = {"started": False}
_server_lock = threading.Lock()


def start_metrics_server(port: int | None = None) -> None:
    """Start Prometheus HTTP metrics server (idempotent).

    Defaults to SOCKETFLOW_METRICS_PORT.
    """
    with _server_lock:
        if not _server_state["started"]:
            start_http_server(port or SOCKETFLOW_METRICS_PORT)  # type: ignore[no-untyped-call]
            _server_state["started"] = True


def record_connection_state(source: str, state: str) -> None:
    """Record connection state change."""
    for s in CONNECTION_STATES:
        value = 1 if s == state else 0
        socketflow_connection_state.labels(source=source, state=s).set(value)  # type: ignore[no-untyped-call]


def record_reconnect_attempt(source: str, reason: str) -> None:
    """Record a scheduled reconnect ("close" or "forced")."""
    socketflow_reconnect_attempts_total.labels(source=source, reason=reason).inc()  # type: ignore[no-untyped-call]


def record_heartbeat(source: str, outcome: str) -> None:
    socketflow_heartbeat_total.labels(source=source, outcome=outcome).inc()  # type: ignore[no-untyped-call]


def record_message(source: str, outcome: str) -> None:
    socketflow_messages_total.labels(source=source, outcome=outcome).inc()  # type: ignore[no-untyped-call]


def record_queue_depth(source: str, depth: int) -> None:
    socketflow_queue_depth.labels(source=source).set(depth)  # type: ignore[no-untyped-call]


def record_in_flight(source: str, count: int) -> None:
    socketflow_in_flight.labels(source=source).set(count)  # type: ignore[no-untyped-call]
