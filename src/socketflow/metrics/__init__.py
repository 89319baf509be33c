"""Metrics module."""

from . import registry
from .registry import (
    record_connection_state,
    record_heartbeat,
    record_in_flight,
    record_message,
    record_queue_depth,
    record_reconnect_attempt,
    start_metrics_server,
)

__all__ = [
    "record_connection_state",
    "record_heartbeat",
    "record_in_flight",
    "record_message",
    "record_queue_depth",
    "record_reconnect_attempt",
    "registry",
    "start_metrics_server",
]
