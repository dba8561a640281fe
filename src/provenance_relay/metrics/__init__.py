from .registry import (
    RELAY_CYCLES_TOTAL,
    RELAY_CYCLE_LATENCY_SECONDS,
    RELAY_EVENTS_FORWARDED_TOTAL,
    RELAY_INTAKE_DROPPED_TOTAL,
    RELAY_INTAKE_QUEUE_DEPTH,
    RELAY_OFFSET,
    MetricsRegistry,
    metrics_registry,
)

__all__ = [
    "RELAY_CYCLES_TOTAL",
    "RELAY_CYCLE_LATENCY_SECONDS",
    "RELAY_EVENTS_FORWARDED_TOTAL",
    "RELAY_INTAKE_DROPPED_TOTAL",
    "RELAY_INTAKE_QUEUE_DEPTH",
    "RELAY_OFFSET",
    "MetricsRegistry",
    "metrics_registry",
]
