"""OpenTelemetry metrics for the VPN certificate authority."""

from collections.abc import Iterator

from opentelemetry import metrics

meter = metrics.get_meter("vpnca")

# Issuance counters
certificates_issued_total = meter.create_counter(
    name="vpnca_certificates_issued_total",
    description="Total certificates issued",
    unit="1",
)

issuance_rejected_total = meter.create_counter(
    name="vpnca_issuance_rejected_total",
    description="Issuance requests rejected before key generation",
    unit="1",
)

issuance_failed_total = meter.create_counter(
    name="vpnca_issuance_failed_total",
    description="Issuance requests that failed during generation or storage",
    unit="1",
)

certificate_issuance_duration = meter.create_histogram(
    name="vpnca_certificate_issuance_duration_seconds",
    description="Key generation, signing and storage time in seconds",
    unit="s",
)

# CA root gauge - "created" on first start, "loaded" afterwards
_ca_root_state: str | None = None


def _get_ca_initialized(
    options: metrics.CallbackOptions,
) -> Iterator[metrics.Observation]:
    """Callback to report CA root status."""
    if _ca_root_state:
        yield metrics.Observation(1, {"state": _ca_root_state})
    else:
        yield metrics.Observation(0, {"state": "none"})


ca_initialized_gauge = meter.create_observable_gauge(
    name="vpnca_ca_initialized",
    description="CA root available (1=yes, 0=no)",
    unit="1",
    callbacks=[_get_ca_initialized],
)


class CAMetrics:
    """Facade for CA metrics with proper labels."""

    def record_ca_initialized(self, created: bool) -> None:
        """Record CA root availability. Labels: state=created|loaded"""
        global _ca_root_state
        _ca_root_state = "created" if created else "loaded"

    def record_certificate_issued(self, profile: str, duration_seconds: float) -> None:
        """Record a committed certificate. Labels: profile=server|client"""
        certificates_issued_total.add(1, {"profile": profile})
        certificate_issuance_duration.record(duration_seconds, {"profile": profile})

    def record_issuance_rejected(self, profile: str, reason: str) -> None:
        """Labels: reason=duplicate_subject|invalid_expiry|invalid_common_name"""
        issuance_rejected_total.add(1, {"profile": profile, "reason": reason})

    def record_issuance_failed(self, profile: str) -> None:
        issuance_failed_total.add(1, {"profile": profile})


# Singleton instance
ca_metrics = CAMetrics()
