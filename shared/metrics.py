"""
Prometheus metrics for the Observer Rules service.
"""

import threading
import time
from contextlib import contextmanager
from typing import Any, Dict, Optional, Tuple

from prometheus_client import CollectorRegistry, Counter, Histogram, Info, start_http_server

SERVICE_VERSION = "1.0.0"

# name -> (type, help text, label names)
OBSERVER_RULES_METRICS: Dict[str, Tuple[type, str, Tuple[str, ...]]] = {
    "observer_filter_requests_total": (
        Counter, "Observer filter requests by outcome (no_rules, invalid_config, filtered)", ("outcome",)
    ),
    "rule_processing_failures_total": (
        Counter, "Configured rules skipped because they failed during processing", ("rule",)
    ),
    "rule_state_persist_total": (
        Counter, "Rule state write attempts by status (committed, failed)", ("status",)
    ),
    "observer_filter_duration_seconds": (
        Histogram, "Time spent filtering one observer's map with its rules", ()
    ),
}


class MetricsCollector:
    """Named metrics for one service.

    Metrics are registered on ``registry`` when one is given. Without one
    they are created unregistered, so repeated construction (tests, CLI
    runs) never collides on duplicate timeseries.
    """

    def __init__(self, service_name: str, registry: Optional[CollectorRegistry] = None):
        self.service_name = service_name
        self.registry = registry
        self._metrics: Dict[str, Any] = {}
        self._lock = threading.Lock()

        info = Info("service", "Service build information", registry=registry)
        info.info({"service": service_name, "version": SERVICE_VERSION})
        self._metrics["service_info"] = info

        self._metrics["errors_total"] = Counter(
            "errors_total",
            "Errors by type",
            ["error_type", "service"],
            registry=registry
        )

        if service_name == "observer_rules":
            for name, (metric_type, documentation, labels) in OBSERVER_RULES_METRICS.items():
                self._metrics[name] = metric_type(name, documentation, list(labels), registry=registry)

    def get_metric(self, name: str):
        return self._metrics.get(name)

    def start_metrics_server(self, port: int = 9090):
        """Expose the registry over HTTP for Prometheus to scrape."""
        if self.registry is not None:
            start_http_server(port, registry=self.registry)
        else:
            start_http_server(port)

    def record_error(self, error_type: str, service: Optional[str] = None):
        self._metrics["errors_total"].labels(error_type=error_type, service=service or self.service_name).inc()

    @contextmanager
    def time_operation(self, metric_name: str, **labels):
        """Observe the wall time of the block into a histogram, even on error."""
        started = time.perf_counter()
        try:
            yield
        finally:
            self.observe_histogram(metric_name, time.perf_counter() - started, **labels)

    def increment_counter(self, metric_name: str, **labels):
        """Increment a counter; unknown names are ignored."""
        metric = self._metrics.get(metric_name)
        if metric is None:
            return
        with self._lock:
            (metric.labels(**labels) if labels else metric).inc()

    def observe_histogram(self, metric_name: str, value: float, **labels):
        metric = self._metrics.get(metric_name)
        if metric is None:
            return
        (metric.labels(**labels) if labels else metric).observe(value)


def get_metrics_collector(service_name: str, registry: Optional[CollectorRegistry] = None) -> MetricsCollector:
    return MetricsCollector(service_name, registry)
