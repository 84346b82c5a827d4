"""
Monitoring and metrics infrastructure for PrivateArt.

This package provides:
- Application metrics collection (counters, gauges, histograms)
- Structured logging with JSON output and redaction
- Request timing middleware

Usage:
    from monitoring import metrics, get_logger

    metrics.increment("distributions_total")

    logger = get_logger("my_module")
    logger.info("Something happened", extra={"artwork_id": 3})
"""

from monitoring.logging import LoggingContext, configure_logging, get_logger
from monitoring.metrics import MetricsCollector, metrics

__all__ = [
    "MetricsCollector",
    "metrics",
    "get_logger",
    "configure_logging",
    "LoggingContext",
]
