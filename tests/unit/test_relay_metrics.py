"""
Tests that forwarding and intake update the Prometheus metrics.
"""

from prometheus_client import REGISTRY

from provenance_relay.coordinator import ForwardingLoop, IntakeQueue
from provenance_relay.metrics import metrics_registry
from provenance_relay.offsets import MemoryOffsetStore


def _value(name, **labels):
    return REGISTRY.get_sample_value(name, labels) or 0.0


def test_cycle_metrics(memory_source, memory_client):
    relay = "metrics-test"
    before_cycles = _value("relay_cycles_total", relay=relay, outcome="delivered")
    before_events = _value("relay_events_forwarded_total", relay=relay)

    loop = ForwardingLoop(memory_source, memory_client, MemoryOffsetStore(), relay_id=relay)
    loop.run_cycle()
    loop.run_cycle()

    assert _value("relay_cycles_total", relay=relay, outcome="delivered") == before_cycles + 1
    assert _value("relay_cycles_total", relay=relay, outcome="empty") >= 1
    assert _value("relay_events_forwarded_total", relay=relay) == before_events + 3
    assert _value("relay_offset", relay=relay) == 13
    assert _value("relay_cycle_latency_seconds_count", relay=relay) >= 1


def test_intake_metrics():
    q = IntakeQueue(capacity=2, overflow_strategy="drop_oldest", name="metrics-q")
    before = _value("relay_intake_dropped_total", queue="metrics-q")
    for i in range(3):
        q.enqueue(i)
    assert _value("relay_intake_dropped_total", queue="metrics-q") == before + 1
    assert _value("relay_intake_queue_depth", queue="metrics-q") == 2
    q.drain(1)
    assert _value("relay_intake_queue_depth", queue="metrics-q") == 1


def test_registry_exposes_collectors():
    assert metrics_registry.cycles_total is not None
    assert metrics_registry.intake_queue_depth is not None
