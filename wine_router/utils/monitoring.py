"""In-process metrics collection for the wine question router."""

import re
import threading
import time
from collections import defaultdict, deque
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Deque, Dict, Optional

import numpy as np
from prometheus_client import CollectorRegistry, Counter, Histogram, generate_latest

from ..utils.logging import get_logger


logger = get_logger(__name__)


_INFERENCE_COUNTER = re.compile(r"^inference_(?P<kind>[a-z]+)_(?P<outcome>rule_fallback|non_finite|errors)$")


class PrometheusIntegration:
    """Prometheus mirror of the routing counters and latency histograms."""

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        """Initialize Prometheus integration.

        Args:
            registry: Registry to publish to; each integration gets its own by default
        """
        self.registry = registry or CollectorRegistry()

        self.route_counter = Counter(
            "wine_router_routes_total",
            "Questions routed, by chosen path",
            ["path"],
            registry=self.registry,
        )
        self.fallback_counter = Counter(
            "wine_router_rule_fallbacks_total",
            "Scores produced by rule fallbacks instead of a trained model",
            ["kind"],
            registry=self.registry,
        )
        self.inference_error_counter = Counter(
            "wine_router_inference_errors_total",
            "Model scoring failures",
            ["kind", "reason"],
            registry=self.registry,
        )
        self.retrieval_failure_counter = Counter(
            "wine_router_retrieval_failures_total",
            "Retrieval calls that failed or timed out",
            registry=self.registry,
        )
        self.route_duration = Histogram(
            "wine_router_route_duration_seconds",
            "Time to route one question",
            registry=self.registry,
        )
        self.retrain_duration = Histogram(
            "wine_router_retrain_duration_seconds",
            "Time to retrain the requested model kinds",
            registry=self.registry,
        )

    def record_counter(self, name: str, value: int = 1) -> None:
        """Mirror one in-process counter increment; unmapped names are ignored."""
        if name.startswith("route_path_"):
            self.route_counter.labels(path=name[len("route_path_"):]).inc(value)
        elif name == "retrieval_failures":
            self.retrieval_failure_counter.inc(value)
        else:
            match = _INFERENCE_COUNTER.match(name)
            if match is None:
                return
            if match.group("outcome") == "rule_fallback":
                self.fallback_counter.labels(kind=match.group("kind")).inc(value)
            else:
                self.inference_error_counter.labels(
                    kind=match.group("kind"), reason=match.group("outcome")
                ).inc(value)

    def record_histogram(self, name: str, value: float) -> None:
        if name == "route_seconds":
            self.route_duration.observe(value)
        elif name == "retrain_seconds":
            self.retrain_duration.observe(value)

    def get_metrics(self) -> str:
        """Get Prometheus metrics in text format."""
        return generate_latest(self.registry).decode("utf-8")


class MetricsCollector:
    """Collects counters and latency histograms for routing and training."""

    def __init__(self, max_history: int = 1000, prometheus: Optional[PrometheusIntegration] = None):
        """Initialize metrics collector.

        Args:
            max_history: Maximum number of values kept per histogram
            prometheus: Prometheus mirror for the exported counters and histograms
        """
        self.max_history = max_history
        self.prometheus = prometheus or PrometheusIntegration()
        self._counters: Dict[str, int] = defaultdict(int)
        self._histograms: Dict[str, Deque[float]] = defaultdict(lambda: deque(maxlen=self.max_history))
        self._lock = threading.RLock()
        self._started_at = datetime.now()

    def increment_counter(self, name: str, value: int = 1) -> None:
        with self._lock:
            self._counters[name] += value
        self.prometheus.record_counter(name, value)

    def get_counter(self, name: str) -> int:
        with self._lock:
            return self._counters.get(name, 0)

    def record_histogram(self, name: str, value: float) -> None:
        """Record a value; only the latest ``max_history`` values are kept."""
        with self._lock:
            self._histograms[name].append(float(value))
        self.prometheus.record_histogram(name, value)

    @contextmanager
    def timer(self, name: str):
        """Context manager recording the wall-clock duration of a block in seconds."""
        start_time = time.perf_counter()
        try:
            yield
        finally:
            self.record_histogram(name, time.perf_counter() - start_time)

    def get_histogram_summary(self, name: str) -> Dict[str, Any]:
        """Get summary statistics for a histogram."""
        with self._lock:
            if not self._histograms.get(name):
                return {}
            values = np.asarray(self._histograms[name])

            return {
                "count": len(values),
                "mean": float(np.mean(values)),
                "min": float(np.min(values)),
                "max": float(np.max(values)),
                "p50": float(np.percentile(values, 50)),
                "p95": float(np.percentile(values, 95)),
                "p99": float(np.percentile(values, 99)),
            }

    def get_all_metrics(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "counters": dict(self._counters),
                "histograms": {
                    name: self.get_histogram_summary(name) for name in self._histograms
                },
                "uptime_seconds": (datetime.now() - self._started_at).total_seconds(),
                "timestamp": datetime.now().isoformat(),
            }

    def reset_metrics(self) -> None:
        with self._lock:
            self._counters.clear()
            self._histograms.clear()
            logger.info("All metrics reset")


# Global metrics collector instance
_metrics_collector: Optional[MetricsCollector] = None


def get_metrics_collector() -> MetricsCollector:
    """Get global metrics collector instance."""
    global _metrics_collector
    if _metrics_collector is None:
        _metrics_collector = MetricsCollector()
    return _metrics_collector
