"""Gauge sinks: Prometheus exposition, or a no-op when metrics are disabled.

Each monitored hostname owns one gauge holding the number of borked
addresses from its latest cycle.  Gauges are created lazily and shared
across threads; the Prometheus client objects are themselves
thread-safe, only creation needs a lock.
"""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING, Protocol

from prometheus_client import REGISTRY, CollectorRegistry, Gauge, start_http_server

if TYPE_CHECKING:
    from lbmon.config import MonitorConfig

logger = logging.getLogger(__name__)

METRIC_PREFIX = "lb_monitor_"
METRIC_SUFFIX = "_borked"


def metric_name(hostname: str) -> str:
    """Return the gauge name for *hostname*.

    Prometheus names allow neither dots nor dashes, so both become
    underscores; distinct hostnames can therefore share a name.

    >>> metric_name("api.example.com")
    'lb_monitor_api_example_com_borked'
    """
    body = hostname.rstrip(".").replace(".", "_").replace("-", "_")
    return f"{METRIC_PREFIX}{body}{METRIC_SUFFIX}"


class GaugeLike(Protocol):
    def set(self, value: float) -> None: ...


class Metrics(Protocol):
    def gauge(self, name: str) -> GaugeLike: ...


class _NullGauge:
    def set(self, value: float) -> None:
        pass


class NullMetrics:
    """Metrics sink used when no backend is configured."""

    def gauge(self, name: str) -> GaugeLike:
        return _NullGauge()


class PrometheusMetrics:
    """Metrics sink backed by ``prometheus_client`` gauges.

    Every gauge carries a ``source`` label identifying the process that
    reports it, so several monitors can feed one Prometheus.

    Example:
        metrics = PrometheusMetrics("worker-1")
        metrics.serve(9100)
        metrics.gauge("lb_monitor_example_com_borked").set(0)
    """

    def __init__(self, source: str, registry: CollectorRegistry | None = None) -> None:
        self._source = source
        self._registry = registry if registry is not None else REGISTRY
        self._gauges: dict[str, Gauge] = {}
        self._lock = threading.Lock()

    def gauge(self, name: str) -> GaugeLike:
        """Return the gauge called *name*, creating it on first use."""
        with self._lock:
            gauge = self._gauges.get(name)
            if gauge is None:
                gauge = Gauge(
                    name,
                    "Addresses that failed their TCP probe in the latest cycle",
                    ["source"],
                    registry=self._registry,
                )
                self._gauges[name] = gauge
        return gauge.labels(source=self._source)

    def serve(self, port: int, host: str = "0.0.0.0") -> None:
        """Start the HTTP endpoint Prometheus scrapes.

        Raises:
            OSError: If the port is already in use or binding fails.
        """
        start_http_server(port, addr=host, registry=self._registry)
        logger.info("Serving metrics on %s:%d", host, port)


def build_metrics(config: MonitorConfig) -> Metrics:
    """Return the metrics sink *config* asks for."""
    if config.metrics_port is None:
        logger.info(
            "no metrics config provided, to enable metrics, please provide METRICS_PORT"
        )
        return NullMetrics()
    return PrometheusMetrics(config.metrics_source)
