"""
Heartbeat watchdog for detecting silently dead connections.

Two timers, both living in the connection manager's ``TimerSlots``:

- probe: fires every ``interval_ms`` and sends a liveness probe (native
  ping when the transport has one, else an application-level ping payload)
- deadline: armed on open and re-armed by every pong; if it fires
  (``timeout_ms`` + 100ms grace) the connection is treated as dead

A deadline is pending for as long as the connection is open. Probes only arm
one when none is pending, so later probes never mask an unanswered one and a
transport whose probes keep failing still times out. A pong only re-arms the
deadline; it never shifts the probe cadence.
"""

from __future__ import annotations

from collections.abc import Callable

from socketflow.const import PING_PAYLOAD, PONG_GRACE_MS
from socketflow.logging_abstraction import LogSink
from socketflow.metrics import registry
from socketflow.transport.adapter import TransportAdapter
from socketflow.transport.timers import TimerSlots
from socketflow.transport.types import TimerKind


class HeartbeatWatchdog:
    """Periodic liveness prober plus timeout detector for one manager."""

    def __init__(
        self,
        timers: TimerSlots,
        interval_ms: float,
        timeout_ms: float,
        get_adapter: Callable[[], TransportAdapter | None],
        on_timeout: Callable[[], None],
        log: LogSink,
        is_active: Callable[[], bool],
        source: str = "",
    ) -> None:
        """
        Initialize heartbeat watchdog.

        Args:
            timers: Timer slots owned by the connection manager
            interval_ms: Probe cadence; <= 0 disables the watchdog entirely
            timeout_ms: Liveness deadline; <= 0 disables the deadline
            get_adapter: Returns the current adapter (may be None)
            on_timeout: Called once when the deadline expires
            log: Severity-tagged sink
            is_active: False once the user has stopped the manager; gates arming
            source: Metrics label
        """
        self.timers = timers
        self.interval_ms = interval_ms
        self.timeout_ms = timeout_ms
        self._get_adapter = get_adapter
        self._on_timeout = on_timeout
        self._log = log
        self._is_active = is_active
        self._source = source

    @property
    def enabled(self) -> bool:
        return self.interval_ms > 0

    def start(self) -> None:
        """Restart the probe cadence and the deadline; called on every successful open."""
        self.stop()
        if not self.enabled or not self._is_active():
            return
        self.timers.arm(TimerKind.PROBE, self.interval_ms, self._probe)
        self.reset_deadline()

    def stop(self) -> None:
        self.timers.cancel(TimerKind.PROBE)
        self.timers.cancel(TimerKind.DEADLINE)

    def reset_deadline(self) -> None:
        if self.timeout_ms <= 0 or not self._is_active():
            return
        self.timers.arm(TimerKind.DEADLINE, self.timeout_ms + PONG_GRACE_MS, self._expired)

    def on_pong(self) -> None:
        if not self.enabled:
            return
        registry.record_heartbeat(self._source, "pong")
        self.reset_deadline()

    def _probe(self) -> None:
        if not self._is_active():
            return
        # fixed cadence: next probe is scheduled before this one is sent
        self.timers.arm(TimerKind.PROBE, self.interval_ms, self._probe)

        adapter = self._get_adapter()
        if adapter is None or not adapter.is_open:
            return
        try:
            if adapter.supports_ping:
                adapter.ping()
            else:
                adapter.send(PING_PAYLOAD)
        except Exception as e:
            registry.record_heartbeat(self._source, "failed")
            self._log("warn", f"ping failed: {e}", error_type=type(e).__name__)
            return
        registry.record_heartbeat(self._source, "sent")
        if not self.timers.is_armed(TimerKind.DEADLINE):
            self.reset_deadline()

    def _expired(self) -> None:
        if not self._is_active():
            return
        registry.record_heartbeat(self._source, "timeout")
        self.timers.cancel(TimerKind.PROBE)
        self._on_timeout()
