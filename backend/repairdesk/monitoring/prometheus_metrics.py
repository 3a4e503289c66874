"""
Prometheus metrics module for repairdesk.

Service timings come from the @measure_operation decorator; the domain
counters below track booking transitions and swallowed saga steps.
"""

from typing import Optional, cast

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)

# Custom registry so test runs and multiple imports never collide with the default one
REGISTRY = CollectorRegistry()

service_operation_duration_seconds = Histogram(
    "repairdesk_service_operation_duration_seconds",
    "Service operation duration in seconds",
    ["service", "operation"],
    registry=REGISTRY,
    buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5),
)

service_operations_total = Counter(
    "repairdesk_service_operations_total",
    "Total number of service operations",
    ["service", "operation", "status"],
    registry=REGISTRY,
)

errors_total = Counter(
    "repairdesk_errors_total",
    "Total number of errors",
    ["service", "operation", "error_type"],
    registry=REGISTRY,
)

booking_transitions_total = Counter(
    "repairdesk_booking_transitions_total",
    "Committed booking status transitions",
    ["from_status", "to_status"],
    registry=REGISTRY,
)

booking_transition_conflicts_total = Counter(
    "repairdesk_booking_transition_conflicts_total",
    "Conditional booking updates that matched no row",
    ["operation"],
    registry=REGISTRY,
)

saga_step_failures_total = Counter(
    "repairdesk_saga_step_failures_total",
    "Best-effort saga steps that failed and were logged",
    ["saga", "step"],
    registry=REGISTRY,
)


class PrometheusMetrics:
    """Manages Prometheus metrics collection and exposure."""

    @staticmethod
    def record_service_operation(
        service: str,
        operation: str,
        duration: float,
        status: str = "success",
        error_type: Optional[str] = None,
    ) -> None:
        """
        Record service operation metrics from @measure_operation decorator.

        Args:
            service: Service name (e.g., 'BookingService')
            operation: Operation/method name (e.g., 'complete_booking')
            duration: Operation duration in seconds
            status: Operation status ('success' or 'error')
            error_type: Type of error if status is 'error'
        """
        service_operation_duration_seconds.labels(service=service, operation=operation).observe(
            duration
        )
        service_operations_total.labels(service=service, operation=operation, status=status).inc()
        if status == "error" and error_type:
            errors_total.labels(service=service, operation=operation, error_type=error_type).inc()

    @staticmethod
    def record_transition(from_status: Optional[str], to_status: str) -> None:
        booking_transitions_total.labels(
            from_status=from_status or "none", to_status=to_status
        ).inc()

    @staticmethod
    def record_transition_conflict(operation: str) -> None:
        booking_transition_conflicts_total.labels(operation=operation).inc()

    @staticmethod
    def record_saga_step_failure(saga: str, step: str) -> None:
        saga_step_failures_total.labels(saga=saga, step=step).inc()

    @staticmethod
    def get_metrics() -> bytes:
        """Generate Prometheus metrics in exposition format."""
        return cast(bytes, generate_latest(REGISTRY))

    @staticmethod
    def get_content_type() -> str:
        return cast(str, CONTENT_TYPE_LATEST)


prometheus_metrics = PrometheusMetrics()
