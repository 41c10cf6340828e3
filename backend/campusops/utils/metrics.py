"""Prometheus metrics for tenancy enforcement."""

from prometheus_client import Counter

tenancy_denials_total = Counter(
    "tenancy_denials_total",
    "Requests or operations rejected by tenancy/authorization checks",
    ["reason"],
)

scoped_operations_total = Counter(
    "scoped_operations_total",
    "Data handle operations by handle kind",
    ["handle", "operation"],
)

setup_token_validations_total = Counter(
    "setup_token_validations_total",
    "Password setup token validations by outcome",
    ["outcome"],
)


class PrometheusTenancyMetrics:
    """Prometheus-based tenancy metrics implementation."""

    def record_denial(self, reason: str) -> None:
        """Increment denial counter."""
        tenancy_denials_total.labels(reason=reason).inc()

    def record_operation(self, handle: str, operation: str) -> None:
        """Increment data handle operation counter."""
        scoped_operations_total.labels(handle=handle, operation=operation).inc()

    def record_setup_token_validation(self, outcome: str) -> None:
        """Increment setup token validation counter."""
        setup_token_validations_total.labels(outcome=outcome).inc()


tenancy_metrics = PrometheusTenancyMetrics()
