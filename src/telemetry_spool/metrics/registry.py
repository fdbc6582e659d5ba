"""
Spool metrics registered in the Prometheus global REGISTRY.
Simply import this module at app startup.
"""

from prometheus_client import Counter, Gauge, Histogram


# --- Export path ---

SPOOL_EXPORTS_TOTAL = Counter(
    "spool_exports_total",
    "Export calls by result (delivered, spilled, lost)",
    ["outcome"],
)

SPOOL_SPILLED_TOTAL = Counter(
    "spool_spilled_total",
    "Batches persisted to the durable queue after a failed send",
)

SPOOL_DATA_LOSS_TOTAL = Counter(
    "spool_data_loss_total",
    "Batches permanently dropped",
    ["reason"],
)

SPOOL_SEND_LATENCY_MS = Histogram(
    "spool_send_latency_ms",
    "Transport send latency in milliseconds",
    ["path"],
    buckets=[1, 2.5, 5, 10, 25, 50, 100, 250, 500, 1000, 2500, 5000, 10000],
)

# --- Drain path ---

SPOOL_REDELIVERY_TOTAL = Counter(
    "spool_redelivery_total",
    "Redelivery attempts of queued batches",
    ["strategy", "outcome"],
)

SPOOL_DRAIN_CYCLES_TOTAL = Counter(
    "spool_drain_cycles_total",
    "Scheduled drain ticks by result",
    ["result"],
)

SPOOL_QUEUE_DEPTH = Gauge(
    "spool_queue_depth",
    "Items currently held in the durable queue",
)


class MetricsRegistry:
    """Centralized access to spool metrics."""

    exports_total = SPOOL_EXPORTS_TOTAL
    spilled_total = SPOOL_SPILLED_TOTAL
    data_loss_total = SPOOL_DATA_LOSS_TOTAL
    send_latency_ms = SPOOL_SEND_LATENCY_MS
    redelivery_total = SPOOL_REDELIVERY_TOTAL
    drain_cycles_total = SPOOL_DRAIN_CYCLES_TOTAL
    queue_depth = SPOOL_QUEUE_DEPTH


# Singleton instance
metrics_registry = MetricsRegistry()
