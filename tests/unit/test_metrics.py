"""Unit tests for Prometheus metric helpers."""

from __future__ import annotations

from unittest.mock import patch

from prometheus_client import REGISTRY

from vis42_proxy.metrics import registry
from vis42_proxy.metrics import (
    record_connect_attempt,
    record_connection_closed,
    record_connection_state,
    record_operation,
    record_transport_connect,
    start_metrics_server,
)


def _sample(name: str, labels: dict[str, str] | None = None) -> float:
    return REGISTRY.get_sample_value(name, labels or {}) or 0.0


class TestCounters:
    """Tests for counter helpers."""

    def test_connect_attempt_counter(self):
        """Test that connect attempts are counted per outcome."""
        before = _sample("vis42_proxy_connect_attempts_total", {"outcome": "timeout"})
        record_connect_attempt("timeout")
        assert _sample("vis42_proxy_connect_attempts_total", {"outcome": "timeout"}) == before + 1

    def test_transport_connect_counter(self):
        """Test that transport steps are counted per transport and outcome."""
        labels = {"transport": "SSE", "outcome": "failure"}
        before = _sample("vis42_proxy_transport_connect_total", labels)
        record_transport_connect("SSE", "failure")
        assert _sample("vis42_proxy_transport_connect_total", labels) == before + 1

    def test_connection_closed_counter(self):
        """Test that close notifications are counted."""
        before = _sample("vis42_proxy_connection_closed_total")
        record_connection_closed()
        assert _sample("vis42_proxy_connection_closed_total") == before + 1


class TestStateGauge:
    """Tests for the one-hot connection state gauge."""

    def test_exactly_one_state_set(self):
        """Test that setting a state clears the others."""
        record_connection_state("connecting")
        record_connection_state("connected")

        assert _sample("vis42_proxy_connection_state", {"state": "connected"}) == 1
        assert _sample("vis42_proxy_connection_state", {"state": "connecting"}) == 0
        assert _sample("vis42_proxy_connection_state", {"state": "idle"}) == 0


class TestOperationHistogram:
    """Tests for the operation duration histogram."""

    def test_observation_recorded(self):
        """Test that an observation increments the count for its labels."""
        labels = {"operation": "resources/read", "outcome": "failure"}
        before = _sample("vis42_proxy_operation_duration_seconds_count", labels)
        record_operation("resources/read", "failure", 0.2)
        assert _sample("vis42_proxy_operation_duration_seconds_count", labels) == before + 1


class TestMetricsServer:
    """Tests for start_metrics_server."""

    def test_start_is_idempotent(self):
        """Test that the HTTP server is only started once."""
        with (
            patch.object(registry, "start_http_server") as mock_start,
            patch.dict(registry._server_state, {"started": False}),  # noqa: SLF001
        ):
            start_metrics_server(9464)
            start_metrics_server(9464)

        mock_start.assert_called_once_with(9464)
