"""
Tests for toolbroker/metrics.py and toolbroker/health.py.
"""
import json
import urllib.request
from urllib.error import HTTPError

import pytest

from toolbroker.health import HealthServer
from toolbroker.metrics import BrokerMetrics, Counter, Gauge, Histogram


class TestPrimitives:
    """Counter, gauge and histogram behaviour."""

    def test_counter_labels_feed_total(self):
        counter = Counter("calls", "Calls")
        counter.inc(tool="a")
        counter.inc(2, tool="b")

        assert counter.get() == 3
        assert counter.get(tool="b") == 2
        assert counter.get_all() == {"_total": 3, "tool=a": 1, "tool=b": 2}

    def test_gauge_inc_dec(self):
        gauge = Gauge("in_flight")
        gauge.inc(category="billing")
        gauge.inc(category="billing")
        gauge.dec(category="billing")

        assert gauge.get(category="billing") == 1
        assert gauge.get() == 1

    def test_histogram_buckets(self):
        histogram = Histogram("latency", buckets=(0.1, 1.0))
        histogram.observe(0.05)
        histogram.observe(0.5)
        histogram.observe(5)

        stats = histogram.get_stats()
        assert stats["count"] == 3
        assert stats["buckets"] == {"le_0.1": 1, "le_1.0": 2}
        assert stats["le_inf"] == 3


class TestBrokerMetrics:
    """Broker metric families."""

    def test_timer_observes_duration(self):
        metrics = BrokerMetrics()

        with metrics.time_broker_call():
            pass

        assert metrics.broker_call_duration.get_stats()["count"] == 1

    def test_prometheus_format(self):
        metrics = BrokerMetrics()
        metrics.record_broker_call("call_operation", is_error=True)
        metrics.record_dispatch("billing", "success", 0.2)

        text = metrics.to_prometheus_format()

        assert 'broker_tool_calls_total{tool="call_operation"} 1.0' in text
        assert 'broker_tool_errors_total{tool="call_operation"} 1.0' in text
        assert 'broker_dispatch_total{category="billing",outcome="success"} 1.0' in text
        assert "broker_dispatch_duration_seconds_count 1" in text

    def test_prometheus_label_values_are_escaped(self):
        metrics = BrokerMetrics()
        metrics.record_broker_call('say "hi"\\now\nnext', is_error=False)

        text = metrics.to_prometheus_format()

        assert 'broker_tool_calls_total{tool="say \\"hi\\"\\\\now\\nnext"} 1.0' in text

    def test_summary(self):
        metrics = BrokerMetrics()
        metrics.record_broker_call("list_categories", is_error=False)

        summary = metrics.get_summary()

        assert summary["broker_tools"]["calls_total"]["tool=list_categories"] == 1
        assert summary["dispatch"]["in_flight"] == 0


@pytest.fixture
def health_server():
    server = HealthServer(
        port=0,
        host="127.0.0.1",
        status_provider=lambda: {"running": True, "total_operations": 3},
        metrics_provider=lambda: "broker_tool_calls_total 0\n",
    )
    server.start()
    yield server
    server.stop()


def _get(server, path):
    with urllib.request.urlopen(f"http://127.0.0.1:{server.server_port}{path}", timeout=5) as response:
        return response.status, response.read().decode()


class TestHealthServer:
    """HTTP endpoints."""

    def test_health(self, health_server):
        status, body = _get(health_server, "/health")

        assert status == 200
        assert json.loads(body) == {"status": "healthy"}

    def test_ready(self, health_server):
        status, body = _get(health_server, "/ready")

        assert status == 200
        assert json.loads(body)["total_operations"] == 3

    def test_metrics(self, health_server):
        status, body = _get(health_server, "/metrics")

        assert status == 200
        assert "broker_tool_calls_total" in body

    def test_unknown_path(self, health_server):
        with pytest.raises(HTTPError) as exc_info:
            _get(health_server, "/nope")

        assert exc_info.value.code == 404
