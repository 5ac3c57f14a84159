"""
Metrics Collection with Prometheus.

Client-side counters for backend calls and the credit/download/upload flows.
"""

import time
from enum import Enum

from prometheus_client import Counter, Histogram, Info

from pawbook.config import settings


class MetricLabels(str, Enum):
    """Standard metric label names."""

    ENDPOINT = "endpoint"
    METHOD = "method"
    STATUS_CODE = "status_code"
    OUTCOME = "outcome"
    PHASE = "phase"
    VARIANT = "variant"


class ClientMetrics:
    """
    Centralized metrics for the PawBook client core.

    Covers:
    - Backend requests (rate, duration, status)
    - Purchase sessions and verifications (outcome)
    - Gated downloads (negotiation variant)
    - Uploads (phase, outcome, bytes)
    """

    def __init__(self, enabled: bool = True) -> None:
        """Initialize all Prometheus metrics."""
        self.enabled = enabled

        self.client_info = Info(
            "pawbook_client",
            "Client information",
        )
        self.client_info.info(
            {
                "version": settings.client_version,
                "service_name": settings.service_name,
            }
        )

        # ====================================================================
        # Backend Request Metrics
        # ====================================================================
        self.backend_requests_total = Counter(
            "pawbook_backend_requests_total",
            "Total backend requests",
            [MetricLabels.ENDPOINT, MetricLabels.METHOD, MetricLabels.STATUS_CODE],
        )

        self.backend_request_duration_seconds = Histogram(
            "pawbook_backend_request_duration_seconds",
            "Backend request duration in seconds",
            [MetricLabels.ENDPOINT, MetricLabels.METHOD],
            buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
        )

        # ====================================================================
        # Credit Metrics
        # ====================================================================
        self.purchase_sessions_total = Counter(
            "pawbook_purchase_sessions_total",
            "Checkout sessions requested",
            [MetricLabels.OUTCOME],
        )

        self.verifications_total = Counter(
            "pawbook_purchase_verifications_total",
            "Purchase verification attempts",
            [MetricLabels.OUTCOME],
        )

        # ====================================================================
        # Download / Upload Metrics
        # ====================================================================
        self.downloads_total = Counter(
            "pawbook_downloads_total",
            "Gated download negotiations by variant",
            [MetricLabels.VARIANT],
        )

        self.uploads_total = Counter(
            "pawbook_uploads_total",
            "Upload pipeline results by phase",
            [MetricLabels.PHASE, MetricLabels.OUTCOME],
        )

        self.upload_bytes = Histogram(
            "pawbook_upload_bytes",
            "Size of uploaded files in bytes",
            buckets=(16_384, 65_536, 262_144, 1_048_576, 2_097_152, 5_242_880),
        )

    # ========================================================================
    # Helper Methods
    # ========================================================================

    def record_backend_request(
        self, endpoint: str, method: str, status_code: int, duration: float
    ) -> None:
        """Record backend request metrics."""
        if not self.enabled:
            return
        self.backend_requests_total.labels(
            endpoint=endpoint, method=method, status_code=status_code
        ).inc()
        self.backend_request_duration_seconds.labels(endpoint=endpoint, method=method).observe(
            duration
        )

    def record_purchase_session(self, outcome: str) -> None:
        if self.enabled:
            self.purchase_sessions_total.labels(outcome=outcome).inc()

    def record_verification(self, outcome: str) -> None:
        if self.enabled:
            self.verifications_total.labels(outcome=outcome).inc()

    def record_download(self, variant: str) -> None:
        if self.enabled:
            self.downloads_total.labels(variant=variant).inc()

    def record_upload(self, phase: str, outcome: str, size: int | None = None) -> None:
        """Record one upload phase result."""
        if not self.enabled:
            return
        self.uploads_total.labels(phase=phase, outcome=outcome).inc()
        if size is not None:
            self.upload_bytes.observe(size)


# Global metrics instance
metrics = ClientMetrics(enabled=settings.metrics_enabled)


class track_backend_request:
    """
    Context manager for timing one backend request.

    Usage:
        with track_backend_request("/api/credits/balance", "GET") as tracker:
            response = await http.get(...)
            tracker.set_status_code(response.status_code)

    Status 0 is recorded when no response arrived.
    """

    def __init__(self, endpoint: str, method: str) -> None:
        self.endpoint = endpoint
        self.method = method
        self.status_code = 0
        self.start_time: float = 0.0

    def set_status_code(self, status_code: int) -> None:
        """Set the response status code."""
        self.status_code = status_code

    def __enter__(self) -> "track_backend_request":
        self.start_time = time.perf_counter()
        return self

    def __exit__(self, exc_type: type, exc_val: Exception, exc_tb: object) -> None:
        duration = time.perf_counter() - self.start_time
        metrics.record_backend_request(self.endpoint, self.method, self.status_code, duration)
