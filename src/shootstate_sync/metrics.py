"""
Prometheus Metrics for the secret controller

Tracks:
- Reconciliation outcomes and latency
- Failed calls against the garden and seed API servers
"""

from prometheus_client import Counter, Histogram


RECONCILE_TOTAL = Counter(
    "shootstate_sync_reconcile_total",
    "Total secret reconciliations by outcome",
    ["outcome"]
)

RECONCILE_DURATION = Histogram(
    "shootstate_sync_reconcile_duration_seconds",
    "Secret reconciliation latency in seconds",
    buckets=[0.005, 0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0]
)

STORE_ERRORS_TOTAL = Counter(
    "shootstate_sync_store_errors_total",
    "Failed API server calls by operation",
    ["operation"]
)
