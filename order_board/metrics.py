"""
Prometheus metrics: snapshots reconciled, new orders detected, transitions issued, alert delivery, working set.
"""
from prometheus_client import Counter, Gauge, generate_latest

# Pipeline: snapshot processing
snapshots_processed_total = Counter(
    "snapshots_processed_total",
    "Total order snapshots reconciled into the working set",
)
records_malformed_total = Counter(
    "records_malformed_total",
    "Total raw order records skipped because they could not be parsed",
)
new_orders_detected_total = Counter(
    "new_orders_detected_total",
    "Total orders detected as newly arrived and eligible for alerts",
)
subscription_errors_total = Counter(
    "subscription_errors_total",
    "Total errors reported by the order subscription",
)
working_set_orders = Gauge(
    "working_set_orders",
    "Orders currently held in the working set",
    ["status"],
)

# Lifecycle transitions
transitions_total = Counter(
    "transitions_total",
    "Total status transitions requested, by target status and outcome",
    ["target", "outcome"],
)

# Notifications
alerts_failed_total = Counter(
    "alerts_failed_total",
    "Total new-order alert deliveries that failed",
    ["sink"],
)


def get_metrics_content_type():
    return "text/plain; charset=utf-8; version=0.0.4"


def get_metrics_bytes():
    return generate_latest()
