"""
Prometheus metrics collection.

Each collector owns its registry so several app instances (tests) can coexist
in one process.
"""

from typing import Optional

import structlog
from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram, Info

logger = structlog.get_logger(__name__)


class MetricsCollector:
    """
    Centralized metrics collection for the RTA proxy.

    In-memory counters only; Prometheus handles storage.
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None) -> None:
        self.registry = registry if registry is not None else CollectorRegistry()

        # Service info
        self.service_info = Info(
            "rta_proxy_service",
            "RTA proxy service information",
            registry=self.registry,
        )
        self.service_info.info({
            "version": "0.1.0",
            "service": "rta-proxy",
        })

        # Exchange metrics
        self.requests_total = Counter(
            "rta_requests_total",
            "Total forwarding requests by endpoint and response status",
            ["endpoint", "status_code"],
            registry=self.registry,
        )

        self.upstream_duration = Histogram(
            "rta_upstream_duration_seconds",
            "Upstream round trip duration in seconds",
            ["endpoint"],
            buckets=[0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
            registry=self.registry,
        )

        self.auth_rejections_total = Counter(
            "rta_auth_rejections_total",
            "Requests rejected by pub_id authorization",
            ["reason"],
            registry=self.registry,
        )

        # Allow-list metrics
        self.config_reloads_total = Counter(
            "rta_config_reloads_total",
            "Allow-list load attempts by result",
            ["result"],
            registry=self.registry,
        )

        self.pub_ids_loaded = Gauge(
            "rta_pub_ids_loaded",
            "Number of publisher IDs in the current allow list",
            registry=self.registry,
        )

        logger.info("Metrics collector initialized")

    def record_request(self, endpoint: str, status_code: int) -> None:
        self.requests_total.labels(endpoint=endpoint, status_code=str(status_code)).inc()

    def record_upstream_duration(self, endpoint: str, duration_seconds: float) -> None:
        self.upstream_duration.labels(endpoint=endpoint).observe(duration_seconds)

    def record_auth_rejection(self, reason: str) -> None:
        self.auth_rejections_total.labels(reason=reason).inc()

    def record_config_reload(self, success: bool, pub_ids_count: int) -> None:
        self.config_reloads_total.labels(result="success" if success else "failure").inc()
        self.pub_ids_loaded.set(pub_ids_count)
