"""
Prometheus metrics for marketplace monitoring.

Tracks:
- Checkout orders created at the gateway
- Capture callbacks by outcome
- Purchases recorded in the ledger
- Purchase workflow states entered
- PayPal API calls and latency
- Asset uploads and approval transitions
- View invalidations after purchases
"""
from prometheus_client import Counter, Histogram

# Checkout metrics
checkout_orders_total = Counter(
    "checkout_orders_total",
    "Total checkout initiations",
    ["result"],  # created, already_purchased, failed
)

capture_callbacks_total = Counter(
    "capture_callbacks_total",
    "Total PayPal capture callbacks",
    ["result"],  # recorded, missing_params, payment_failed, recording_failed
)

purchases_recorded_total = Counter(
    "purchases_recorded_total",
    "Total purchase record attempts",
    ["result"],  # created, already_exists, failed
)

purchase_states_total = Counter(
    "purchase_states_total",
    "Purchase workflow states entered",
    ["state"],
)

purchase_amount_cents = Histogram(
    "purchase_amount_cents",
    "Recorded purchase amounts in minor units",
    buckets=(50, 100, 500, 1000, 5000, 10000, 50000),
)

# PayPal API metrics
paypal_api_requests_total = Counter(
    "paypal_api_requests_total",
    "Total PayPal API requests",
    ["operation", "status"],  # operation: create_order, capture_order, ping
)

paypal_api_duration_seconds = Histogram(
    "paypal_api_duration_seconds",
    "PayPal API call duration in seconds",
    ["operation"],
    buckets=(0.1, 0.25, 0.5, 0.75, 1.0, 2.5, 5.0, 7.5, 10.0),
)

# Catalog metrics
asset_uploads_total = Counter(
    "asset_uploads_total",
    "Total asset upload submissions",
    ["result"],  # created, invalid
)

asset_approvals_total = Counter(
    "asset_approvals_total",
    "Total approval state transitions",
    ["state"],
)

view_invalidations_total = Counter(
    "view_invalidations_total",
    "Total page invalidations requested after purchases",
    ["view"],  # asset_detail, purchase_list
)


class MetricsCollector:
    """Helper class for collecting metrics."""

    @staticmethod
    def record_checkout(result: str) -> None:
        """Record a checkout initiation."""
        checkout_orders_total.labels(result=result).inc()

    @staticmethod
    def record_capture(result: str) -> None:
        """Record a capture callback outcome."""
        capture_callbacks_total.labels(result=result).inc()

    @staticmethod
    def record_purchase(result: str, amount_cents: int = 0) -> None:
        """Record a purchase ledger write."""
        purchases_recorded_total.labels(result=result).inc()
        if amount_cents > 0:
            purchase_amount_cents.observe(amount_cents)

    @staticmethod
    def record_purchase_state(state: str) -> None:
        """Record a purchase workflow state being entered."""
        purchase_states_total.labels(state=state).inc()

    @staticmethod
    def record_paypal_api_call(
        operation: str, status: str, duration_seconds: float
    ) -> None:
        """Record PayPal API call."""
        paypal_api_requests_total.labels(operation=operation, status=status).inc()
        paypal_api_duration_seconds.labels(operation=operation).observe(duration_seconds)

    @staticmethod
    def record_upload(result: str) -> None:
        """Record an asset upload submission."""
        asset_uploads_total.labels(result=result).inc()

    @staticmethod
    def record_approval(state: str) -> None:
        """Record an approval transition."""
        asset_approvals_total.labels(state=state).inc()

    @staticmethod
    def record_view_invalidation(view: str) -> None:
        """Record a view invalidation."""
        view_invalidations_total.labels(view=view).inc()


# Export singleton instance
metrics = MetricsCollector()
