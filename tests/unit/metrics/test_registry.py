"""Unit tests for metrics registry."""

from __future__ import annotations

from unittest.mock import patch

from socketflow.const import SOCKETFLOW_METRICS_PORT
from socketflow.metrics import registry

# Test constants
METRICS_PORT = 9499


class TestConnectionMetrics:
    """Tests for connection metrics."""

    def test_record_connection_state(self) -> None:
        """Test record_connection_state marks exactly one state."""
        registry.record_connection_state("source1", "reconnecting")
        samples = list(registry.socketflow_connection_state.collect()[0].samples)

        values = {s.labels["state"]: s.value for s in samples if s.labels["source"] == "source1"}
        assert set(values) == set(registry.CONNECTION_STATES)
        assert values["reconnecting"] == 1.0
        assert sum(values.values()) == 1.0

    def test_record_reconnect_attempt(self) -> None:
        """Test record_reconnect_attempt helper."""
        registry.record_reconnect_attempt("source1", "forced")
        samples = list(registry.socketflow_reconnect_attempts_total.collect()[0].samples)
        assert any(s.labels == {"source": "source1", "reason": "forced"} for s in samples)

    def test_record_heartbeat(self) -> None:
        """Test record_heartbeat helper."""
        registry.record_heartbeat("source1", "timeout")
        samples = list(registry.socketflow_heartbeat_total.collect()[0].samples)
        assert any(s.labels == {"source": "source1", "outcome": "timeout"} for s in samples)


class TestMessageMetrics:
    """Tests for inbound message metrics."""

    def test_record_message(self) -> None:
        """Test record_message helper."""
        registry.record_message("source1", "dropped")
        samples = list(registry.socketflow_messages_total.collect()[0].samples)
        assert any(s.labels == {"source": "source1", "outcome": "dropped"} for s in samples)

    def test_record_queue_gauges(self) -> None:
        """Test queue depth and in-flight gauges hold the last value."""
        registry.record_queue_depth("source1", 7)
        registry.record_in_flight("source1", 3)

        depth = next(s for s in registry.socketflow_queue_depth.collect()[0].samples if s.labels == {"source": "source1"})
        in_flight = next(s for s in registry.socketflow_in_flight.collect()[0].samples if s.labels == {"source": "source1"})
        assert depth.value == 7.0
        assert in_flight.value == 3.0


class TestMetricsServer:
    """Tests for the metrics HTTP server bootstrap."""

    def test_start_metrics_server_is_idempotent(self) -> None:
        """Test the HTTP server is started only once."""
        with (
            patch.object(registry, "start_http_server") as mock_start,
            patch.dict(registry._server_state, {"started": False}),
        ):
            registry.start_metrics_server(METRICS_PORT)
            registry.start_metrics_server(METRICS_PORT)

        mock_start.assert_called_once_with(METRICS_PORT)

    def test_start_metrics_server_default_port(self) -> None:
        """Test the configured port is used when none is given."""
        with (
            patch.object(registry, "start_http_server") as mock_start,
            patch.dict(registry._server_state, {"started": False}),
        ):
            registry.start_metrics_server()

        mock_start.assert_called_once_with(SOCKETFLOW_METRICS_PORT)
