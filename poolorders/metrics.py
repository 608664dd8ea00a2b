"""
Prometheus metrics: order transitions (API), best-effort side effects, email delivery (worker), queue depth.
"""
from prometheus_client import Counter, Gauge, generate_latest

# API: order pipeline movement
order_transitions_total = Counter(
    "order_transitions_total",
    "Total order status transitions applied",
    ["target"],
)
order_transitions_rejected_total = Counter(
    "order_transitions_rejected_total",
    "Total order status transitions rejected",
    ["target", "reason"],
)
order_transition_conflicts_total = Counter(
    "order_transition_conflicts_total",
    "Total status compare-and-swap mismatches (retried or rejected)",
)
order_history_write_failures_total = Counter(
    "order_history_write_failures_total",
    "Total status changes committed without their history entry",
)

# Best-effort side effects that failed and were swallowed
side_effects_failed_total = Counter(
    "side_effects_failed_total",
    "Total best-effort side effects that failed",
    ["kind"],
)

uploads_stored_total = Counter(
    "uploads_stored_total",
    "Total files stored in blob storage",
    ["backend"],
)

# Worker: email delivery outcomes
emails_sent_total = Counter(
    "emails_sent_total",
    "Total emails delivered",
)
emails_failed_total = Counter(
    "emails_failed_total",
    "Total email delivery attempts that failed (retried or sent to DLQ)",
)
emails_dlq_total = Counter(
    "emails_dlq_total",
    "Total emails moved to DLQ after max retries",
)

# SQS queue depth (when using SQS)
sqs_queue_messages_waiting = Gauge(
    "sqs_queue_messages_waiting",
    "Approximate number of email jobs waiting in SQS (main queue)",
)
sqs_queue_messages_in_flight = Gauge(
    "sqs_queue_messages_in_flight",
    "Approximate number of email jobs in flight (received but not yet deleted)",
)


def get_metrics_content_type():
    return "text/plain; charset=utf-8; version=0.0.4"


def get_metrics_bytes():
    return generate_latest()
