import unittest

from session_insights import observability
from session_insights.observability import otel


class ObservabilityDisabledTests(unittest.TestCase):
    def test_helpers_are_no_ops_when_disabled(self) -> None:
        self.assertFalse(otel._enabled)
        with observability.start_span("insights.test", {"k": 1}) as span:
            self.assertIsNone(span)
        observability.record_session_scan("admitted")
        observability.record_tool_result("read_file", "ok", count=0)
        observability.record_tokens("input", -3)
        observability.record_pass("done", 12.5)

    def test_endpoint_normalization(self) -> None:
        self.assertEqual(otel._normalize_otlp_endpoint("http://collector:4318", "/v1/traces"), "http://collector:4318/v1/traces")
        self.assertEqual(otel._normalize_otlp_endpoint("http://collector:4318/v1/", "/v1/metrics"), "http://collector:4318/v1/metrics")
        self.assertEqual(otel._normalize_otlp_endpoint("", "/v1/traces"), "")


if __name__ == "__main__":
    unittest.main()
