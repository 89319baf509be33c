"""Unit tests for the heartbeat watchdog."""

from __future__ import annotations

import asyncio
from unittest.mock import MagicMock

import pytest

from socketflow.const import PING_PAYLOAD
from socketflow.transport.adapter import TransportAdapter
from socketflow.transport.heartbeat import HeartbeatWatchdog
from socketflow.transport.timers import TimerSlots
from socketflow.transport.types import TimerKind
from tests.helpers.fake_sockets import (
    TEST_URL,
    FakeEmitterSocket,
    FakePingingSocket,
    RecordingSink,
)

# Test constants
LONG_INTERVAL_MS = 10_000
TIMEOUT_MS = 50


class HeartbeatTestHarness(HeartbeatWatchdog):
    """Expose the probe callback for direct triggering."""

    def fire_probe(self) -> None:
        self._probe()


def make_watchdog(
    sock: FakeEmitterSocket | None,
    interval_ms: float = LONG_INTERVAL_MS,
    timeout_ms: float = TIMEOUT_MS,
    active: bool = True,
) -> tuple[HeartbeatTestHarness, MagicMock, RecordingSink]:
    log = RecordingSink()
    adapter = TransportAdapter.bind(sock, log) if sock is not None else None
    on_timeout = MagicMock()
    watchdog = HeartbeatTestHarness(
        timers=TimerSlots(),
        interval_ms=interval_ms,
        timeout_ms=timeout_ms,
        get_adapter=lambda: adapter,
        on_timeout=on_timeout,
        log=log,
        is_active=lambda: active,
        source="heartbeat-test",
    )
    return watchdog, on_timeout, log


def open_socket(sock: FakeEmitterSocket) -> FakeEmitterSocket:
    sock.ready_state = sock.OPEN
    return sock


class TestHeartbeatStart:
    """Tests for arming on open."""

    @pytest.mark.asyncio
    async def test_start_arms_probe_and_deadline(self):
        """Test start() schedules a probe and the liveness deadline."""
        watchdog, _, _ = make_watchdog(open_socket(FakePingingSocket(TEST_URL)))

        watchdog.start()

        assert watchdog.timers.is_armed(TimerKind.PROBE)
        assert watchdog.timers.is_armed(TimerKind.DEADLINE)

    @pytest.mark.asyncio
    async def test_start_without_timeout_arms_probe_only(self):
        """Test timeout <= 0 leaves the deadline slot empty on start."""
        watchdog, _, _ = make_watchdog(open_socket(FakePingingSocket(TEST_URL)), timeout_ms=0)

        watchdog.start()

        assert watchdog.timers.is_armed(TimerKind.PROBE)
        assert not watchdog.timers.is_armed(TimerKind.DEADLINE)

    @pytest.mark.asyncio
    async def test_disabled_when_interval_not_positive(self):
        """Test interval <= 0 disables probing entirely."""
        for interval in (0, -1):
            watchdog, _, _ = make_watchdog(open_socket(FakePingingSocket(TEST_URL)), interval_ms=interval)
            watchdog.start()
            watchdog.on_pong()

            assert watchdog.enabled is False
            assert repr(watchdog.timers) == "TimerSlots(armed=none)"

    @pytest.mark.asyncio
    async def test_inactive_manager_arms_nothing(self):
        """Test a stopped manager never arms heartbeat timers."""
        watchdog, _, _ = make_watchdog(open_socket(FakePingingSocket(TEST_URL)), active=False)

        watchdog.start()
        watchdog.reset_deadline()

        assert repr(watchdog.timers) == "TimerSlots(armed=none)"

    @pytest.mark.asyncio
    async def test_stop_cancels_both_timers(self):
        """Test stop() clears probe and deadline."""
        watchdog, _, _ = make_watchdog(open_socket(FakePingingSocket(TEST_URL)))
        watchdog.start()
        watchdog.fire_probe()

        watchdog.stop()

        assert not watchdog.timers.is_armed(TimerKind.PROBE)
        assert not watchdog.timers.is_armed(TimerKind.DEADLINE)


class TestHeartbeatProbe:
    """Tests for probe sending."""

    @pytest.mark.asyncio
    async def test_native_ping_used_when_available(self):
        """Test ping-capable transports get a native ping."""
        sock = open_socket(FakePingingSocket(TEST_URL))
        watchdog, _, _ = make_watchdog(sock)

        watchdog.fire_probe()

        assert sock.pings == 1
        assert sock.sent == []
        assert watchdog.timers.is_armed(TimerKind.PROBE)
        assert watchdog.timers.is_armed(TimerKind.DEADLINE)

    @pytest.mark.asyncio
    async def test_ping_payload_sent_without_native_ping(self):
        """Test transports without ping() receive the application ping payload."""
        sock = open_socket(FakeEmitterSocket(TEST_URL))
        watchdog, _, _ = make_watchdog(sock)

        watchdog.fire_probe()

        assert sock.sent == [PING_PAYLOAD]
        assert watchdog.timers.is_armed(TimerKind.DEADLINE)

    @pytest.mark.asyncio
    async def test_probe_skipped_when_not_open(self):
        """Test no probe or deadline while the transport is not open."""
        sock = FakePingingSocket(TEST_URL)
        watchdog, _, _ = make_watchdog(sock)

        watchdog.fire_probe()

        assert sock.pings == 0
        assert watchdog.timers.is_armed(TimerKind.PROBE)
        assert not watchdog.timers.is_armed(TimerKind.DEADLINE)

    @pytest.mark.asyncio
    async def test_probe_skipped_without_adapter(self):
        """Test probes are a no-op when there is no adapter."""
        watchdog, on_timeout, log = make_watchdog(None)

        watchdog.fire_probe()

        assert not watchdog.timers.is_armed(TimerKind.DEADLINE)
        on_timeout.assert_not_called()
        assert log.records == []

    @pytest.mark.asyncio
    async def test_ping_failure_logged_without_new_deadline(self):
        """Test a raising ping is logged at warn and arms no deadline of its own."""
        sock = open_socket(FakePingingSocket(TEST_URL))
        sock.ping = MagicMock(side_effect=OSError("broken pipe"))  # type: ignore[method-assign]
        watchdog, _, log = make_watchdog(sock)

        watchdog.fire_probe()

        assert log.messages("warn") == ["ping failed: broken pipe"]
        assert not watchdog.timers.is_armed(TimerKind.DEADLINE)
        assert watchdog.timers.is_armed(TimerKind.PROBE)


class TestHeartbeatDeadline:
    """Tests for liveness deadline handling."""

    @pytest.mark.asyncio
    async def test_unanswered_probe_times_out_once(self):
        """Test repeated probes do not push the deadline; expiry fires once."""
        watchdog, on_timeout, _ = make_watchdog(
            open_socket(FakePingingSocket(TEST_URL)),
            interval_ms=20,
            timeout_ms=TIMEOUT_MS,
        )

        watchdog.start()
        await asyncio.sleep(0.4)

        on_timeout.assert_called_once_with()
        assert not watchdog.timers.is_armed(TimerKind.PROBE)

    @pytest.mark.asyncio
    async def test_pong_rearms_deadline(self):
        """Test a pong moves the deadline forward."""
        watchdog, on_timeout, _ = make_watchdog(open_socket(FakePingingSocket(TEST_URL)))

        watchdog.fire_probe()  # deadline at +150ms
        await asyncio.sleep(0.1)
        watchdog.on_pong()  # deadline now at +250ms from start
        await asyncio.sleep(0.1)

        on_timeout.assert_not_called()

        await asyncio.sleep(0.15)
        on_timeout.assert_called_once_with()

    @pytest.mark.asyncio
    async def test_answered_probes_never_time_out(self):
        """Test a transport that answers every ping stays alive."""
        sock = open_socket(FakePingingSocket(TEST_URL))
        sock.auto_pong = True
        log = RecordingSink()
        adapter = TransportAdapter.bind(sock, log)
        on_timeout = MagicMock()
        watchdog = HeartbeatWatchdog(
            timers=TimerSlots(),
            interval_ms=20,
            timeout_ms=TIMEOUT_MS,
            get_adapter=lambda: adapter,
            on_timeout=on_timeout,
            log=log,
            is_active=lambda: True,
        )
        adapter.subscribe(
            on_open=lambda: None,
            on_message=lambda _raw: None,
            on_error=lambda _err: None,
            on_close=lambda _event: None,
            on_pong=watchdog.on_pong,
        )

        watchdog.start()
        await asyncio.sleep(0.4)
        watchdog.stop()

        on_timeout.assert_not_called()
        assert sock.pings > 5

    @pytest.mark.asyncio
    async def test_zero_timeout_disables_deadline(self):
        """Test timeout <= 0 keeps probing without ever expiring."""
        sock = open_socket(FakePingingSocket(TEST_URL))
        watchdog, on_timeout, _ = make_watchdog(sock, interval_ms=20, timeout_ms=0)

        watchdog.start()
        await asyncio.sleep(0.2)
        watchdog.stop()

        on_timeout.assert_not_called()
        assert sock.pings > 0

    @pytest.mark.asyncio
    async def test_failing_probes_still_time_out(self):
        """Test a transport whose every ping raises is declared dead."""
        sock = open_socket(FakePingingSocket(TEST_URL))
        sock.ping = MagicMock(side_effect=ConnectionError("reset by peer"))  # type: ignore[method-assign]
        watchdog, on_timeout, log = make_watchdog(sock, interval_ms=20, timeout_ms=20)

        watchdog.start()
        await asyncio.sleep(0.3)

        on_timeout.assert_called_once_with()
        assert "ping failed: reset by peer" in log.messages("warn")

    @pytest.mark.asyncio
    async def test_deadline_armed_before_transport_reports_open(self):
        """Test a transport that never reaches an open ready state still times out."""
        watchdog, on_timeout, _ = make_watchdog(FakePingingSocket(TEST_URL), interval_ms=20, timeout_ms=20)

        watchdog.start()
        await asyncio.sleep(0.3)

        on_timeout.assert_called_once_with()
