"""
Monitoring infrastructure for the royalty ledger.

This package provides:
- Application metrics (counters, gauges, histograms) with Prometheus export
- Structured logging with JSON output
- Request logging middleware for the Flask API

Usage:
    from monitoring import metrics, get_logger

    metrics.increment("settlements_total")
    logger = get_logger(__name__)
    logger.info("Settled", extra={"asset_id": 7})
"""

from monitoring.logging import LoggingContext, configure_logging, get_logger
from monitoring.metrics import MetricsCollector, metrics

__all__ = [
    "LoggingContext",
    "MetricsCollector",
    "metrics",
    "get_logger",
    "configure_logging",
]
