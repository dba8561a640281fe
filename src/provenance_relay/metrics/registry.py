"""
Prometheus metrics for the relay, registered in the global REGISTRY.
"""

from prometheus_client import Counter, Gauge, Histogram

RELAY_CYCLES_TOTAL = Counter(
    "relay_cycles_total",
    "Forwarding cycles by outcome",
    ["relay", "outcome"],
)

RELAY_EVENTS_FORWARDED_TOTAL = Counter(
    "relay_events_forwarded_total",
    "Events delivered downstream in completed transactions",
    ["relay"],
)

RELAY_CYCLE_LATENCY_SECONDS = Histogram(
    "relay_cycle_latency_seconds",
    "Duration of forwarding cycles that attempted a transaction",
    ["relay"],
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1, 2.5, 5, 10, 30],
)

RELAY_OFFSET = Gauge(
    "relay_offset",
    "Next event id not yet confirmed delivered",
    ["relay"],
)

RELAY_INTAKE_QUEUE_DEPTH = Gauge(
    "relay_intake_queue_depth",
    "Messages buffered in the intake queue",
    ["queue"],
)

RELAY_INTAKE_DROPPED_TOTAL = Counter(
    "relay_intake_dropped_total",
    "Messages evicted from the intake queue by drop_oldest overflow",
    ["queue"],
)


class MetricsRegistry:
    """Centralized access to all relay metrics."""

    cycles_total = RELAY_CYCLES_TOTAL
    events_forwarded_total = RELAY_EVENTS_FORWARDED_TOTAL
    cycle_latency_seconds = RELAY_CYCLE_LATENCY_SECONDS
    offset = RELAY_OFFSET
    intake_queue_depth = RELAY_INTAKE_QUEUE_DEPTH
    intake_dropped_total = RELAY_INTAKE_DROPPED_TOTAL


# Singleton instance
metrics_registry = MetricsRegistry()
