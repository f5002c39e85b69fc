"""Prometheus metrics for refund exports, validation issues and reconciliation"""

from decimal import Decimal
from typing import Iterable

from prometheus_client import Counter, Histogram

from cashless_refunds.domain.models import ValidationIssue

# Batch metrics
batch_counter = Counter(
    "refund_batches_total",
    "Refund batch requests by outcome",
    ["outcome"],  # exported | dry_run | no_refunds | failed
)

refunds_exported_counter = Counter(
    "refunds_exported_total",
    "Refunds written to a payment document",
)

amount_exported_counter = Counter(
    "refund_amount_exported_euros_total",
    "Sum of refund amounts written to payment documents",
)

validation_issue_counter = Counter(
    "refund_validation_issues_total",
    "Candidates rejected during enrichment",
    ["error_type"],
)

reconciliation_warning_counter = Counter(
    "refund_reconciliation_warnings_total",
    "Exported refunds whose flag could not be set by this request",
)

# Ledger API metrics
ledger_latency_histogram = Histogram(
    "ledger_request_latency_seconds",
    "Ledger balance lookup response time",
    buckets=[0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
)

ledger_failure_counter = Counter(
    "ledger_failures_total",
    "Failed ledger balance lookups",
)

# Service health
request_duration_histogram = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["method", "endpoint", "status"],
)


def record_batch(outcome: str, transaction_count: int = 0, total_amount: Decimal = Decimal("0.00")) -> None:
    """Record batch outcome; exported totals only count real exports"""
    batch_counter.labels(outcome=outcome).inc()
    if outcome == "exported":
        refunds_exported_counter.inc(transaction_count)
        amount_exported_counter.inc(float(total_amount))


def record_validation_issues(issues: Iterable[ValidationIssue]) -> None:
    for issue in issues:
        validation_issue_counter.labels(error_type=issue.error_type.value).inc()
