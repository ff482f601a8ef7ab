"""Prometheus metrics for the tagging bot.

Metrics Defined:
- tagbot_webhook_requests_total: Webhook deliveries by outcome
- tagbot_operations_total: Operations by terminal status
- tagbot_tag_results_total: Per-tag agent outcomes (success / error)
- tagbot_operation_duration_seconds: Background processing time
- tagbot_queue_depth: Work items waiting for a worker

Metrics are exposed at ``/metrics``. Each TaggerMetrics instance can own a
private registry so tests do not collide on metric names.
"""

from typing import Optional

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)


DEFAULT_DURATION_BUCKETS = (0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0, 300.0)

METRICS_CONTENT_TYPE = CONTENT_TYPE_LATEST


class TaggerMetrics:
    """Container for all tagging bot Prometheus metrics."""

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        self.registry = registry if registry is not None else CollectorRegistry()

        self.webhook_requests_total = Counter(
            "tagbot_webhook_requests_total",
            "Webhook deliveries by outcome",
            ["outcome"],
            registry=self.registry,
        )
        self.operations_total = Counter(
            "tagbot_operations_total",
            "Operations by terminal status",
            ["status"],
            registry=self.registry,
        )
        self.tag_results_total = Counter(
            "tagbot_tag_results_total",
            "Per-tag agent outcomes",
            ["outcome"],
            registry=self.registry,
        )
        self.operation_duration_seconds = Histogram(
            "tagbot_operation_duration_seconds",
            "Background processing time per operation",
            buckets=DEFAULT_DURATION_BUCKETS,
            registry=self.registry,
        )
        self.queue_depth = Gauge(
            "tagbot_queue_depth",
            "Work items waiting for a worker",
            registry=self.registry,
        )

    def record_webhook(self, outcome: str) -> None:
        """Record a delivery: accepted, ignored, unauthorized, malformed, rejected."""
        self.webhook_requests_total.labels(outcome=outcome).inc()

    def record_operation(self, status: str, duration: float) -> None:
        self.operations_total.labels(status=status).inc()
        self.operation_duration_seconds.observe(duration)

    def record_tag_result(self, succeeded: bool) -> None:
        self.tag_results_total.labels(outcome="success" if succeeded else "error").inc()

    def set_queue_depth(self, depth: int) -> None:
        self.queue_depth.set(depth)

    def render(self) -> bytes:
        """Generate Prometheus exposition output for this registry."""
        return generate_latest(self.registry)
