# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Prometheus metrics for the callback dispatcher.

All metrics use the ``scb_`` prefix (service callback) and are labelled by
the producing ``service`` name taken from the message properties.

Metrics exposed:
    - ``scb_delivered_total``: callbacks answered with a 2xx status.
    - ``scb_retried_total``: retry clones scheduled.
    - ``scb_dead_lettered_total``: messages dead-lettered, by ``reason``.
    - ``scb_settlement_errors_total``: settlements that failed on the bus.
    - ``scb_notifications_total``: dead-letter emails, by ``status``.
    - ``scb_last_batch_size``: messages received by the last pass.

A pass is short-lived, so the registry is usually pushed or dumped by the
host (see ``generate_latest``) rather than scraped.
"""

from prometheus_client import CollectorRegistry, Counter, Gauge, generate_latest


class CallbackMetrics:
    """Prometheus metrics collector for batch passes.

    Attributes:
        registry: The Prometheus CollectorRegistry holding all metrics.
    """

    def __init__(self, registry: CollectorRegistry | None = None):
        self.registry = registry or CollectorRegistry()
        self.delivered = Counter(
            "scb_delivered_total",
            "Callbacks delivered with a 2xx response",
            ["service"],
            registry=self.registry,
        )
        self.retried = Counter(
            "scb_retried_total",
            "Retry clones scheduled for redelivery",
            ["service"],
            registry=self.registry,
        )
        self.dead_lettered = Counter(
            "scb_dead_lettered_total",
            "Messages moved to the dead-letter queue",
            ["service", "reason"],
            registry=self.registry,
        )
        self.settlement_errors = Counter(
            "scb_settlement_errors_total",
            "Complete, dead-letter or reschedule calls that failed",
            ["service"],
            registry=self.registry,
        )
        self.notifications = Counter(
            "scb_notifications_total",
            "Dead-letter notification emails",
            ["status"],
            registry=self.registry,
        )
        self.last_batch_size = Gauge(
            "scb_last_batch_size",
            "Messages received by the last batch pass",
            registry=self.registry,
        )

    def inc_delivered(self, service: str | None) -> None:
        self.delivered.labels(service=service or "unknown").inc()

    def inc_retried(self, service: str | None) -> None:
        self.retried.labels(service=service or "unknown").inc()

    def inc_dead_lettered(self, service: str | None, reason: str) -> None:
        self.dead_lettered.labels(service=service or "unknown", reason=reason).inc()

    def inc_settlement_error(self, service: str | None) -> None:
        self.settlement_errors.labels(service=service or "unknown").inc()

    def inc_notification(self, sent: bool) -> None:
        self.notifications.labels(status="sent" if sent else "failed").inc()

    def set_batch_size(self, value: int) -> None:
        self.last_batch_size.set(value)

    def generate_latest(self) -> bytes:
        """Export all metrics in Prometheus text exposition format."""
        return generate_latest(self.registry)
