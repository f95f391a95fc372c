"""
Prometheus metrics for e-invoicing observability.

Provides metrics for monitoring:
- Enqueue outcomes and rejections
- Status transitions (PENDING -> SENT -> ACCEPTED/RETRY/FAILED rates)
- Provider request rates and latency
- Numbering and quota decisions
- Usage metering

Metrics are only registered if enabled in settings; otherwise every metric
is a no-op so callers never branch on configuration.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Generator
from contextlib import contextmanager
from typing import Any

from prometheus_client import Counter, Gauge, Histogram

from .settings import einvoicing_settings

logger = logging.getLogger(__name__)


class NoOpMetric:
    """No-op metric used when metrics are disabled."""

    def labels(self, *args: Any, **kwargs: Any) -> NoOpMetric:
        return self

    def inc(self, amount: float = 1) -> None:
        pass

    def set(self, value: float) -> None:
        pass

    def observe(self, value: float) -> None:
        pass


def _create_counter(name: str, description: str, labels: list[str]) -> Any:
    """Create a Prometheus counter or no-op."""
    if einvoicing_settings.metrics_enabled:
        return Counter(f"{einvoicing_settings.metrics_prefix}_{name}", description, labels)
    return NoOpMetric()


def _create_histogram(name: str, description: str, labels: list[str], buckets: tuple[float, ...]) -> Any:
    """Create a Prometheus histogram or no-op."""
    if einvoicing_settings.metrics_enabled:
        return Histogram(f"{einvoicing_settings.metrics_prefix}_{name}", description, labels, buckets=buckets)
    return NoOpMetric()


def _create_gauge(name: str, description: str, labels: list[str]) -> Any:
    """Create a Prometheus gauge or no-op."""
    if einvoicing_settings.metrics_enabled:
        return Gauge(f"{einvoicing_settings.metrics_prefix}_{name}", description, labels)
    return NoOpMetric()


# ===============================================================================
# METRICS DEFINITIONS
# ===============================================================================


class EInvoicingMetrics:
    """
    e-Invoicing metrics collection.

    All metrics are prefixed with the configured prefix (default: 'einvoicing').
    """

    def __init__(self) -> None:
        # Queue metrics
        self.documents_enqueued_total = _create_counter(
            "documents_enqueued_total",
            "Documents accepted into the queue",
            ["kind"],
        )
        self.enqueue_rejected_total = _create_counter(
            "enqueue_rejected_total",
            "Enqueue calls that produced no document",
            ["reason"],  # values: not_configured, quota_exceeded, range_exceeded, ...
        )
        self.status_transitions_total = _create_counter(
            "status_transitions_total",
            "Document status transitions",
            ["from_status", "to_status"],
        )
        self.batch_size = _create_gauge(
            "worker_batch_size",
            "Documents claimed by the last worker batch",
            ["status"],
        )

        # Submission metrics
        self.submission_duration_seconds = _create_histogram(
            "submission_duration_seconds",
            "Time spent processing one document",
            ["kind", "outcome"],
            buckets=(0.25, 0.5, 1, 2, 5, 10, 30, 60),
        )

        # Provider API metrics
        self.provider_requests_total = _create_counter(
            "provider_requests_total",
            "Provider API requests",
            ["endpoint", "status_code"],
        )
        self.provider_request_duration_seconds = _create_histogram(
            "provider_request_duration_seconds",
            "Provider API request duration",
            ["endpoint"],
            buckets=(0.1, 0.25, 0.5, 1, 2, 5, 10, 30),
        )

        # Numbering, quota and usage
        self.sequence_allocations_total = _create_counter(
            "sequence_allocations_total",
            "Legal number allocations",
            ["outcome"],  # values: allocated, initialized, range_exceeded
        )
        self.quota_checks_total = _create_counter(
            "quota_checks_total",
            "Quota checks by decision",
            ["result"],
        )
        self.usage_increments_total = _create_counter(
            "usage_increments_total",
            "Usage counter increments",
            ["counter"],
        )

    # ===== Convenience Methods =====

    def record_enqueued(self, kind: str) -> None:
        self.documents_enqueued_total.labels(kind=kind).inc()

    def record_enqueue_rejected(self, reason: str) -> None:
        self.enqueue_rejected_total.labels(reason=reason).inc()

    def record_transition(self, from_status: str, to_status: str) -> None:
        self.status_transitions_total.labels(from_status=from_status, to_status=to_status).inc()

    def record_batch(self, status: str, size: int) -> None:
        self.batch_size.labels(status=status).set(size)

    def record_allocation(self, outcome: str) -> None:
        self.sequence_allocations_total.labels(outcome=outcome).inc()

    def record_quota_check(self, result: str) -> None:
        self.quota_checks_total.labels(result=result).inc()

    def record_usage_increment(self, counter: str) -> None:
        self.usage_increments_total.labels(counter=counter).inc()

    @contextmanager
    def time_submission(self, kind: str) -> Generator[dict[str, Any]]:
        """Context manager to time document processing; set ``context['outcome']``."""
        start = time.monotonic()
        context: dict[str, Any] = {"outcome": "unknown"}
        try:
            yield context
        except Exception:
            context["outcome"] = "error"
            raise
        finally:
            self.submission_duration_seconds.labels(kind=kind, outcome=context["outcome"]).observe(
                time.monotonic() - start
            )

    @contextmanager
    def time_provider_request(self, endpoint: str) -> Generator[dict[str, Any]]:
        """Context manager to time provider requests; set ``context['status_code']``."""
        start = time.monotonic()
        context: dict[str, Any] = {"status_code": 0}
        try:
            yield context
        finally:
            self.provider_requests_total.labels(endpoint=endpoint, status_code=str(context["status_code"])).inc()
            self.provider_request_duration_seconds.labels(endpoint=endpoint).observe(time.monotonic() - start)


metrics = EInvoicingMetrics()
