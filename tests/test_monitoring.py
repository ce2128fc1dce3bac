"""
Tests for metrics and structured logging (src/monitoring/).

Tests cover:
- Counters, gauges and timings
- Prometheus export
- Sensitive data redaction
- JSON log formatting with context
- Metric path normalization
"""

import json
import logging
import sys

import pytest

sys.path.insert(0, "src")

from monitoring.logging import (
    JSONFormatter,
    LoggingContext,
    get_request_context,
    redact_sensitive_data,
    redact_string,
)
from monitoring.metrics import METRIC_PREFIX, MetricsCollector
from monitoring.middleware import _normalize_path


# ============================================================
# Metrics Tests
# ============================================================

class TestMetricsCollector:
    """Tests for MetricsCollector."""

    def test_counter(self):
        collector = MetricsCollector()

        collector.increment("settlements_total")
        collector.increment("settlements_total", 2)

        assert collector.get_counter("settlements_total") == 3

    def test_labelled_counter(self):
        collector = MetricsCollector()

        collector.increment("settlements_failed_total", labels={"error": "NotOwner"})

        assert collector.get_counter("settlements_failed_total", labels={"error": "NotOwner"}) == 1
        assert collector.get_counter("settlements_failed_total", labels={"error": "Unauthorized"}) == 0

    def test_gauge(self):
        collector = MetricsCollector()

        collector.set_gauge("held_balance", 50.0)
        collector.decrement_gauge("held_balance", 5.0)

        assert collector.get_gauge("held_balance") == 45.0

    def test_timer_records_on_error(self):
        collector = MetricsCollector()

        with pytest.raises(ValueError):
            with collector.timer("settlement_duration_ms"):
                raise ValueError("x")

        assert collector.get_all()["histograms"]["settlement_duration_ms"]["_total"]["count"] == 1

    def test_prometheus_export(self):
        collector = MetricsCollector()
        collector.increment("claims_total")
        collector.set_gauge("unallocated_total", 2.0)

        text = collector.to_prometheus()

        assert f"# TYPE {METRIC_PREFIX}_claims_total counter" in text
        assert f"{METRIC_PREFIX}_claims_total 1" in text
        assert f"{METRIC_PREFIX}_unallocated_total 2.0" in text

    def test_reset(self):
        collector = MetricsCollector()
        collector.increment("claims_total")

        collector.reset()

        assert collector.get_counter("claims_total") == 0


# ============================================================
# Redaction Tests
# ============================================================

class TestRedaction:
    """Tests for sensitive data redaction."""

    def test_redacts_fields(self):
        data = redact_sensitive_data({"api_key": "abc", "nested": {"password": "p"}, "price": 1000})

        assert data == {"api_key": "[REDACTED]", "nested": {"password": "[REDACTED]"}, "price": 1000}

    def test_redacts_string_patterns(self):
        assert "abc123" not in redact_string("MARKET_API_KEY=abc123")
        assert "tok" not in redact_string("Authorization: Bearer tok")

    def test_keeps_addresses(self):
        address = "0x" + "a" * 40

        assert redact_string(f"seller {address}") == f"seller {address}"

    def test_redacts_private_key_hex(self):
        assert "[REDACTED_KEY]" in redact_string("key " + "ab" * 32)


# ============================================================
# Logging Tests
# ============================================================

class TestJSONFormatter:
    """Tests for JSONFormatter."""

    def _record(self, msg, level=logging.INFO, **extra):
        record = logging.LogRecord("settlement", level, __file__, 1, msg, None, None)
        for key, value in extra.items():
            setattr(record, key, value)
        return record

    def test_basic_fields(self):
        entry = json.loads(JSONFormatter().format(self._record("Settled asset 1")))

        assert entry["level"] == "INFO"
        assert entry["logger"] == "settlement"
        assert entry["message"] == "Settled asset 1"

    def test_includes_context(self):
        with LoggingContext(asset_id=7):
            entry = json.loads(JSONFormatter().format(self._record("x")))

        assert entry["context"] == {"asset_id": 7}
        assert get_request_context() == {}

    def test_includes_extras(self):
        entry = json.loads(JSONFormatter().format(self._record("x", request_id="r1")))

        assert entry["request_id"] == "r1"

    def test_warning_has_location(self):
        entry = json.loads(JSONFormatter().format(self._record("x", level=logging.WARNING)))

        assert "location" in entry


# ============================================================
# Path Normalization Tests
# ============================================================

class TestNormalizePath:
    """Tests for metric label path normalization."""

    def test_asset_ids(self):
        assert _normalize_path("/assets/17/listing") == "/assets/:id/listing"

    def test_addresses(self):
        assert _normalize_path("/allocations/0x" + "b" * 40 + "/claim") == "/allocations/:address/claim"

    def test_root(self):
        assert _normalize_path("/") == "/"
