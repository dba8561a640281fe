"""
Demo script for the push-mode relay.

A producer thread pushes JSON messages through a StreamingSubscriber into a
bounded IntakeQueue; the scheduler forwards them in batches to an in-memory
sink and commits the offset to a temporary state file.
"""

import tempfile
import threading
import time
from pathlib import Path

from loguru import logger

from provenance_relay import (
    FileOffsetStore,
    ForwardingLoop,
    ForwardingScheduler,
    IntakeQueue,
    MemorySiteToSiteClient,
    QueueEventSource,
    StreamingSubscriber,
)


def on_bp_high():
    logger.warning("⚠️  Intake queue above high watermark")


def on_bp_low():
    logger.info("✅ Intake queue recovered below low watermark")


def produce(subscriber: StreamingSubscriber, count: int) -> None:
    for i in range(count):
        subscriber({"order_id": i, "status": "created"})
    logger.info(f"Producer finished after {count} messages")


def main():
    state_file = Path(tempfile.mkdtemp()) / "relay.state"
    queue = IntakeQueue(capacity=500, on_high=on_bp_high, on_low=on_bp_low, name="demo")
    subscriber = StreamingSubscriber(queue, "/topic/orders")
    client = MemorySiteToSiteClient()

    loop = ForwardingLoop(
        QueueEventSource(queue), client, FileOffsetStore(state_file), batch_size=200, relay_id="demo"
    )
    scheduler = ForwardingScheduler(loop, interval=0.05)

    logger.info("🚀 Starting relay demo - pushing 2,000 messages")
    producer = threading.Thread(target=produce, args=(subscriber, 2_000), daemon=True)
    scheduler.start()
    producer.start()

    producer.join()
    while queue.size or loop.offset != 2_000:
        time.sleep(0.05)
    scheduler.stop(timeout=5)
    client.close()

    delivered = len(client.deliveries)
    logger.info(
        f"Done: {delivered} transactions, offset={loop.offset}, "
        f"state file says {state_file.read_text()}"
    )


if __name__ == "__main__":
    main()
