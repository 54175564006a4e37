"""Monitoring configuration for the quiz."""
from prometheus_client import Counter, Histogram, start_http_server

# Quiz metrics
answers_total = Counter(
    "jquiz_answers_total",
    "Total number of quiz answers processed",
    ["result"],
)

quiz_sessions = Counter(
    "jquiz_quiz_sessions_total",
    "Total number of quiz sessions started",
)

# Reconciliation metrics
reconciliation_outcomes = Counter(
    "jquiz_reconciliation_outcomes_total",
    "Outcomes of background writes to the durable store",
    ["field", "outcome"],
)

reconciliation_duration = Histogram(
    "jquiz_reconciliation_duration_seconds",
    "Duration of background writes to the durable store in seconds",
    ["field"],
    buckets=[0.01, 0.05, 0.1, 0.5, 1.0, 5.0],
)

# Bootstrap metrics
bootstrap_failures = Counter(
    "jquiz_bootstrap_failures_total",
    "Total number of failed bootstrap loads",
    ["source"],
)

vocabulary_loads = Counter(
    "jquiz_vocabulary_loads_total",
    "Total number of vocabulary loads",
    ["origin"],
)


def start_monitoring(port: int = 9090) -> None:
    """Start the Prometheus metrics server."""
    start_http_server(port)
