"""
Metrics Collection with Prometheus.

Exposes validation and provider metrics for monitoring.
"""

from enum import Enum

from prometheus_client import Counter, Gauge, Histogram, Info

from iap_validation.config import settings


class MetricLabels(str, Enum):
    """Standard metric label names."""

    ENDPOINT = "endpoint"
    METHOD = "method"
    STATUS_CODE = "status_code"
    OPERATION = "operation"
    STORE = "store"
    KIND = "kind"
    OUTCOME = "outcome"
    PROVIDER = "provider"
    ERROR_TYPE = "error_type"


class ValidationMetrics:
    """
    Centralized metrics for the IAP Validation API.

    Minimum viable metrics covering:
    - HTTP requests (rate, duration, errors)
    - Validations (rate, outcome per store and purchase kind)
    - Provider round trips (rate, status, duration)
    - Google token refreshes
    - Newly stored purchases
    """

    def __init__(self) -> None:
        """Initialize all Prometheus metrics."""

        # ====================================================================
        # Service Info
        # ====================================================================
        self.service_info = Info(
            "iap_service",
            "Service information",
        )
        self.service_info.info(
            {
                "version": settings.api_version,
                "service_name": settings.service_name,
            }
        )

        # ====================================================================
        # HTTP Metrics
        # ====================================================================
        self.http_requests_total = Counter(
            "iap_http_requests_total",
            "Total HTTP requests",
            [
                MetricLabels.ENDPOINT.value,
                MetricLabels.METHOD.value,
                MetricLabels.STATUS_CODE.value,
            ],
        )

        self.http_request_duration_seconds = Histogram(
            "iap_http_request_duration_seconds",
            "HTTP request duration in seconds",
            [MetricLabels.ENDPOINT.value, MetricLabels.METHOD.value],
            buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
        )

        self.http_requests_in_progress = Gauge(
            "iap_http_requests_in_progress",
            "Number of HTTP requests currently being processed",
            [MetricLabels.ENDPOINT.value, MetricLabels.METHOD.value],
        )

        # ====================================================================
        # Validation Metrics
        # ====================================================================
        self.validations_total = Counter(
            "iap_validations_total",
            "Total receipt validations by outcome",
            [MetricLabels.STORE.value, MetricLabels.KIND.value, MetricLabels.OUTCOME.value],
        )

        self.purchases_stored_total = Counter(
            "iap_purchases_stored_total",
            "Total newly stored purchases",
            [MetricLabels.STORE.value],
        )

        # ====================================================================
        # Provider Metrics
        # ====================================================================
        self.provider_requests_total = Counter(
            "iap_provider_requests_total",
            "Total requests sent to Apple and Google",
            [MetricLabels.PROVIDER.value, MetricLabels.STATUS_CODE.value],
        )

        self.provider_request_duration_seconds = Histogram(
            "iap_provider_request_duration_seconds",
            "Provider round trip duration in seconds",
            [MetricLabels.PROVIDER.value],
            buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 3.0, 5.0, 10.0),
        )

        self.google_token_refreshes_total = Counter(
            "iap_google_token_refreshes_total",
            "Total Google OAuth access tokens fetched",
        )

        # ====================================================================
        # Error Metrics
        # ====================================================================
        self.errors_total = Counter(
            "iap_errors_total",
            "Total errors by type",
            [MetricLabels.ERROR_TYPE.value, MetricLabels.OPERATION.value],
        )

    # ========================================================================
    # Helper Methods
    # ========================================================================

    def record_http_request(
        self, endpoint: str, method: str, status_code: int, duration: float
    ) -> None:
        """Record HTTP request metrics."""
        self.http_requests_total.labels(
            endpoint=endpoint, method=method, status_code=status_code
        ).inc()
        self.http_request_duration_seconds.labels(endpoint=endpoint, method=method).observe(
            duration
        )

    def record_validation(self, store: str, kind: str, outcome: str) -> None:
        """Record a finished validation call."""
        self.validations_total.labels(store=store, kind=kind, outcome=outcome).inc()

    def record_purchases_stored(self, store: str, count: int) -> None:
        """Record newly persisted purchases."""
        self.purchases_stored_total.labels(store=store).inc(count)

    def record_provider_request(
        self, provider: str, status_code: int | None, duration: float
    ) -> None:
        """Record a provider round trip; status_code None means no response."""
        self.provider_requests_total.labels(
            provider=provider, status_code=str(status_code) if status_code else "none"
        ).inc()
        self.provider_request_duration_seconds.labels(provider=provider).observe(duration)

    def record_token_refresh(self) -> None:
        """Record a Google token fetch."""
        self.google_token_refreshes_total.inc()

    def record_error(self, error_type: str, operation: str) -> None:
        """Record error occurrence."""
        self.errors_total.labels(error_type=error_type, operation=operation).inc()


# Global metrics instance
metrics = ValidationMetrics()
