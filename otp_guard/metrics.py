"""
OTP Metrics
===========
Prometheus metrics for code issuance, verification and rate limiting.
"""

from typing import Tuple

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    generate_latest,
)

# Dedicated registry so embedding applications keep their own default one clean
OTP_REGISTRY = CollectorRegistry()

OTP_ISSUED = Counter(
    name="otp_issued_total",
    documentation="OTP codes durably stored and handed to delivery",
    registry=OTP_REGISTRY,
)

OTP_VERIFICATIONS = Counter(
    name="otp_verifications_total",
    documentation="OTP verification results",
    labelnames=["outcome"],
    registry=OTP_REGISTRY,
)

OTP_RATE_LIMITED = Counter(
    name="otp_rate_limited_total",
    documentation="Requests rejected by the per-address rate limiter",
    registry=OTP_REGISTRY,
)

RATE_LIMITER_BUCKETS = Gauge(
    name="otp_rate_limiter_buckets",
    documentation="Addresses currently tracked by the rate limiter",
    registry=OTP_REGISTRY,
)


def record_verification(outcome: str) -> None:
    OTP_VERIFICATIONS.labels(outcome=outcome).inc()


def render_metrics() -> Tuple[bytes, str]:
    """Exposition payload and its content type."""
    return generate_latest(OTP_REGISTRY), CONTENT_TYPE_LATEST
