"""Tests for the CloudWatch metrics client."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

from src.services.metrics import NAMESPACE, MetricsClient


def _make_client(*, enabled: bool = False) -> MetricsClient:
    with patch.dict("os.environ", {"METRICS_ENABLED": str(enabled).lower()}):
        with patch.object(MetricsClient, "_start_flush_thread"):
            return MetricsClient()


def _dims(metric: dict) -> dict[str, str]:
    return {d["Name"]: d["Value"] for d in metric["Dimensions"]}


class TestExternalServiceMetrics:
    """Verify that record_success / record_failure buffer the right data."""

    def test_record_success_appends_count_and_latency(self):
        client = _make_client()
        client.record_success("anthropic", "sales_invoke", latency_ms=812.0)
        names = {m["MetricName"] for m in client._buffer}
        assert names == {"ExternalAPI/RequestCount", "ExternalAPI/Latency"}

    def test_record_failure_without_latency_skips_latency(self):
        client = _make_client()
        client.record_failure("smtp", "send_message", error_type="SMTPAuthenticationError")
        names = {m["MetricName"] for m in client._buffer}
        assert names == {"ExternalAPI/RequestCount", "ExternalAPI/ErrorCount"}

    def test_record_failure_with_latency_appends_three_data_points(self):
        client = _make_client()
        client.record_failure("identity", "GET /auth/v1/user", error_type="5xx", latency_ms=40.0)
        assert len(client._buffer) == 3

    def test_failure_dimensions_include_error_type(self):
        client = _make_client()
        client.record_failure("anthropic", "orchestrator_route", error_type="APITimeoutError")
        error_metric = next(
            m for m in client._buffer if m["MetricName"] == "ExternalAPI/ErrorCount"
        )
        assert _dims(error_metric) == {"Service": "anthropic", "ErrorType": "APITimeoutError"}


class TestToolMetrics:
    def test_tool_call_dimensions(self):
        client = _make_client()
        client.record_tool_call("sales", "add_to_cart", "success", latency_ms=12.5)

        count = next(m for m in client._buffer if m["MetricName"] == "AgentTool/CallCount")
        assert _dims(count) == {"Agent": "sales", "Tool": "add_to_cart", "Outcome": "success"}
        latency = next(m for m in client._buffer if m["MetricName"] == "AgentTool/Latency")
        assert latency["Value"] == 12.5

    def test_rejected_call_has_no_latency(self):
        client = _make_client()
        client.record_tool_call("support", "checkout", "rejected")
        assert [m["MetricName"] for m in client._buffer] == ["AgentTool/CallCount"]


class TestMetricsFlush:
    """Verify flush behaviour with and without CloudWatch enabled."""

    def test_flush_when_disabled_sends_nothing_and_clears(self):
        client = _make_client(enabled=False)
        client.record_tool_call("sales", "view_cart", "success", latency_ms=3.0)
        assert client.flush() == 0
        assert client._buffer == []

    def test_flush_when_enabled_calls_put_metric_data(self):
        client = _make_client(enabled=True)
        mock_cw = MagicMock()
        client._cw_client = mock_cw

        client.record_success("smtp", "send_message", latency_ms=100.0)
        sent = client.flush()

        assert sent == 2
        call_kwargs = mock_cw.put_metric_data.call_args.kwargs
        assert call_kwargs["Namespace"] == NAMESPACE == "AgenticServices"
        assert len(call_kwargs["MetricData"]) == 2

    def test_flush_failure_is_logged_not_raised(self):
        client = _make_client(enabled=True)
        mock_cw = MagicMock()
        mock_cw.put_metric_data.side_effect = RuntimeError("throttled")
        client._cw_client = mock_cw

        client.record_success("smtp", "send_message", latency_ms=1.0)
        assert client.flush() == 0

    def test_flush_empty_buffer_returns_zero(self):
        assert _make_client(enabled=True).flush() == 0
