"""
OTP Metrics
===========
Prometheus counters for OTP request and verification outcomes.
"""

from prometheus_client import CollectorRegistry, Counter, generate_latest

from .models import OtpOutcome

# Custom registry for OTP metrics
OTP_REGISTRY = CollectorRegistry()

OTP_REQUESTS_TOTAL = Counter(
    name="otp_requests_total",
    documentation="OTP requests by outcome",
    labelnames=["outcome"],
    registry=OTP_REGISTRY,
)

OTP_VERIFICATIONS_TOTAL = Counter(
    name="otp_verifications_total",
    documentation="OTP verifications by outcome",
    labelnames=["outcome"],
    registry=OTP_REGISTRY,
)

OTP_LOCKOUTS_TOTAL = Counter(
    name="otp_lockouts_total",
    documentation="Phones locked after reaching the failed attempt cap",
    registry=OTP_REGISTRY,
)


def record_request(outcome: OtpOutcome) -> None:
    OTP_REQUESTS_TOTAL.labels(outcome=outcome.value).inc()


def record_verification(outcome: OtpOutcome) -> None:
    OTP_VERIFICATIONS_TOTAL.labels(outcome=outcome.value).inc()


def record_lockout() -> None:
    OTP_LOCKOUTS_TOTAL.inc()


def get_metrics_text() -> bytes:
    """Render the OTP registry in Prometheus exposition format."""
    return generate_latest(OTP_REGISTRY)
