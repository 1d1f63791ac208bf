"""
Prometheus metrics for the meetings and ledger backend.

Service timings come from ``@BaseService.measure_operation``; ledger and
side-effect counters are recorded by the services and Celery tasks directly.
"""

from typing import Optional

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)

# Create a custom registry to avoid conflicts with default metrics
REGISTRY = CollectorRegistry()

service_operation_duration_seconds = Histogram(
    "matchindeed_service_operation_duration_seconds",
    "Service operation duration in seconds",
    ["service", "operation"],
    registry=REGISTRY,
    buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5),
)

service_operations_total = Counter(
    "matchindeed_service_operations_total",
    "Total number of service operations",
    ["service", "operation", "status"],
    registry=REGISTRY,
)

errors_total = Counter(
    "matchindeed_errors_total",
    "Total number of errors",
    ["service", "operation", "error_type"],
    registry=REGISTRY,
)

ledger_writes_total = Counter(
    "matchindeed_ledger_writes_total",
    "Wallet ledger writes by transaction type and outcome",
    ["type", "outcome"],
    registry=REGISTRY,
)

ledger_cas_retries_total = Counter(
    "matchindeed_ledger_cas_retries_total",
    "Wallet balance updates retried after a concurrent change",
    registry=REGISTRY,
)

payment_events_total = Counter(
    "matchindeed_payment_events_total",
    "Inbound payment events by type and result",
    ["type", "result"],
    registry=REGISTRY,
)

meeting_transitions_total = Counter(
    "matchindeed_meeting_transitions_total",
    "Meeting status transitions",
    ["from_status", "to_status"],
    registry=REGISTRY,
)

side_effect_attempt_total = Counter(
    "matchindeed_side_effect_attempt_total",
    "Side-effect delivery attempts",
    ["event_type"],
    registry=REGISTRY,
)

side_effect_outcome_total = Counter(
    "matchindeed_side_effect_outcome_total",
    "Terminal side-effect delivery outcomes",
    ["event_type", "status"],
    registry=REGISTRY,
)

side_effect_dispatch_seconds = Histogram(
    "matchindeed_side_effect_dispatch_seconds",
    "Time spent calling the side-effect collaborator",
    ["event_type"],
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
            service: Service name (e.g., 'MeetingService')
            operation: Operation/method name (e.g., 'cancel_meeting')
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
    def record_ledger_write(txn_type: str, outcome: str) -> None:
        """outcome: applied | replayed | compensated | inconsistent"""
        ledger_writes_total.labels(type=txn_type, outcome=outcome).inc()

    @staticmethod
    def record_ledger_retry() -> None:
        ledger_cas_retries_total.inc()

    @staticmethod
    def record_payment_event(event_type: str, result: str) -> None:
        payment_events_total.labels(type=event_type, result=result).inc()

    @staticmethod
    def record_meeting_transition(from_status: str, to_status: str) -> None:
        meeting_transitions_total.labels(from_status=from_status, to_status=to_status).inc()

    @staticmethod
    def record_side_effect_attempt(event_type: str) -> None:
        side_effect_attempt_total.labels(event_type=event_type).inc()

    @staticmethod
    def record_side_effect_outcome(event_type: str, status: str) -> None:
        side_effect_outcome_total.labels(event_type=event_type, status=status).inc()

    @staticmethod
    def observe_side_effect_dispatch(event_type: str, duration: float) -> None:
        side_effect_dispatch_seconds.labels(event_type=event_type).observe(max(duration, 0.0))

    @staticmethod
    def get_metrics() -> bytes:
        """Generate Prometheus metrics in exposition format."""
        return generate_latest(REGISTRY)

    @staticmethod
    def get_content_type() -> str:
        return CONTENT_TYPE_LATEST


# Global instance for easy access
prometheus_metrics = PrometheusMetrics()
