from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Optional

import typer
from loguru import logger

from .config import RelaySettings, get_settings
from .coordinator import CycleResult, ForwardingLoop, ForwardingScheduler, IntakeQueue
from .errors import FetchError, SerializationError, StorageError
from .offsets import FileOffsetStore
from .serializer import EventSerializer
from .source import BatchFetcher, EventSource, NdjsonEventSource
from .streaming import LongPollSubscription, QueueEventSource, StreamingSubscriber
from .transport import HttpSiteToSiteClient, MemorySiteToSiteClient, SiteToSiteClient

app = typer.Typer(help="Provenance relay: forward events in batches with a durable resume position")
offset_app = typer.Typer(help="Inspect or change the stored resume position")
app.add_typer(offset_app, name="offset")

FAILED_OUTCOMES = {"storage_failed", "fetch_failed", "serialize_failed", "transport_failed"}

# ---------------------------
# Common options
# ---------------------------


def events_opt() -> Optional[Path]:
    return typer.Option(None, "--events", help="NDJSON file of provenance events to forward")


def state_file_opt() -> Optional[str]:
    return typer.Option(None, "--state-file", envvar="RELAY_STATE_FILE", help="Offset state file")


def dry_run_opt() -> bool:
    return typer.Option(False, "--dry-run", help="Deliver to an in-memory sink instead of HTTP")


# ---------------------------
# Wiring helpers
# ---------------------------


def _configure_logging(level: str) -> None:
    logger.remove()
    logger.add(sys.stderr, level=level.upper())


def _settings(state_file: Optional[str] = None, batch_size: Optional[int] = None) -> RelaySettings:
    settings = get_settings()
    updates = {}
    if state_file is not None:
        updates["state_file"] = state_file
    if batch_size is not None:
        updates["batch_size"] = batch_size
    return settings.model_copy(update=updates) if updates else settings


def _offsets(settings: RelaySettings) -> FileOffsetStore:
    return FileOffsetStore(settings.state_file, atomic=settings.atomic_state_writes)


def _serializer(settings: RelaySettings) -> EventSerializer:
    return EventSerializer(
        settings.nifi_url,
        application_name=settings.application_name,
        platform=settings.platform,
    )


def _client(settings: RelaySettings, dry_run: bool) -> SiteToSiteClient:
    if dry_run:
        return MemorySiteToSiteClient()
    return HttpSiteToSiteClient(
        settings.destination_url,
        settings.port_name,
        timeout=settings.timeout_seconds,
        ssl_context=settings.ssl_context(),
        compress=settings.compress,
    )


def build_loop(
    settings: RelaySettings, source: EventSource, client: SiteToSiteClient
) -> ForwardingLoop:
    return ForwardingLoop(
        BatchFetcher(source),
        client,
        _offsets(settings),
        _serializer(settings),
        batch_size=settings.batch_size,
        transaction_id_attribute=settings.transaction_id_attribute,
        relay_id=settings.relay_id,
    )


def _echo_result(result: CycleResult) -> None:
    typer.echo(json.dumps(result.to_dict(), indent=2))


# ---------------------------
# Commands
# ---------------------------


@app.callback()
def main(log_level: Optional[str] = typer.Option(None, "--log-level", help="Log level")):
    _configure_logging(log_level or get_settings().log_level)


@app.command("once")
def once(
    events: Optional[Path] = events_opt(),
    state_file: Optional[str] = state_file_opt(),
    batch_size: Optional[int] = typer.Option(None, "--batch-size", min=1),
    dry_run: bool = dry_run_opt(),
):
    """Run a single forwarding cycle and print its result."""
    if events is None:
        logger.error("--events is required for a single cycle")
        raise typer.Exit(2)

    settings = _settings(state_file, batch_size)
    client = _client(settings, dry_run)
    try:
        result = build_loop(settings, NdjsonEventSource(events), client).run_cycle()
    finally:
        client.close()

    _echo_result(result)
    if result.outcome.value in FAILED_OUTCOMES:
        raise typer.Exit(1)


@app.command("run")
def run(
    events: Optional[Path] = events_opt(),
    state_file: Optional[str] = state_file_opt(),
    batch_size: Optional[int] = typer.Option(None, "--batch-size", min=1),
    interval: Optional[float] = typer.Option(None, "--interval", help="Seconds between ticks"),
    metrics_port: Optional[int] = typer.Option(None, "--metrics-port", envvar="RELAY_METRICS_PORT"),
    dry_run: bool = dry_run_opt(),
):
    """Forward continuously until interrupted.

    Pulls from --events when given, otherwise subscribes to RELAY_STREAM_URL.
    """
    settings = _settings(state_file, batch_size)
    subscription: Optional[LongPollSubscription] = None

    if events is not None:
        source: EventSource = NdjsonEventSource(events)
    elif settings.stream_url:
        queue: IntakeQueue = IntakeQueue(
            settings.intake_capacity, overflow_strategy=settings.intake_overflow
        )
        subscription = LongPollSubscription(
            settings.stream_url,
            settings.stream_channel,
            StreamingSubscriber(queue, settings.stream_channel),
            poll_timeout=settings.stream_poll_seconds,
        )
        source = QueueEventSource(queue)
    else:
        logger.error("Nothing to forward: pass --events or set RELAY_STREAM_URL")
        raise typer.Exit(2)

    port = metrics_port if metrics_port is not None else settings.metrics_port
    if port:
        from prometheus_client import start_http_server

        start_http_server(port)
        logger.info(f"Serving metrics on :{port}")

    client = _client(settings, dry_run)
    scheduler = ForwardingScheduler(
        build_loop(settings, source, client), interval or settings.tick_interval_seconds
    )
    try:
        if subscription is not None:
            subscription.start()
        scheduler.start()
        while scheduler.running:
            scheduler.wait(1.0)
    except KeyboardInterrupt:
        logger.info("Interrupted; shutting down")
    finally:
        scheduler.stop(timeout=settings.timeout_seconds)
        if subscription is not None:
            subscription.stop(timeout=5.0)
        client.close()

    if scheduler.last_error is not None:
        raise typer.Exit(1)


@app.command("serialize")
def serialize(
    events: Path = typer.Argument(..., help="NDJSON file of provenance events"),
    after: int = typer.Option(0, "--after", min=0, help="First event id to include"),
    limit: int = typer.Option(1000, "--limit", min=1),
):
    """Print the wire payload that would be sent for a batch."""
    settings = get_settings()
    try:
        batch = BatchFetcher(NdjsonEventSource(events)).fetch(after, limit)
        payload = _serializer(settings).serialize(batch)
    except (FetchError, SerializationError) as e:
        logger.error(str(e))
        raise typer.Exit(1)
    typer.echo(json.dumps(json.loads(payload), indent=2))


@offset_app.command("show")
def offset_show(state_file: Optional[str] = state_file_opt()):
    settings = _settings(state_file)
    try:
        value = _offsets(settings).load()
    except StorageError as e:
        logger.error(str(e))
        raise typer.Exit(1)
    typer.echo(json.dumps({"state_file": settings.state_file, "next_sequence_id": value}))


@offset_app.command("set")
def offset_set(
    value: int = typer.Argument(..., min=0, help="Next event id to forward"),
    state_file: Optional[str] = state_file_opt(),
):
    """Overwrite the stored position (may skip or replay events)."""
    settings = _settings(state_file)
    try:
        _offsets(settings).save(value)
    except StorageError as e:
        logger.error(str(e))
        raise typer.Exit(1)
    logger.success(f"Offset set to {value} in {settings.state_file}")


@offset_app.command("reset")
def offset_reset(state_file: Optional[str] = state_file_opt()):
    """Remove the state file; the next run starts from the beginning."""
    settings = _settings(state_file)
    try:
        _offsets(settings).clear()
    except StorageError as e:
        logger.error(str(e))
        raise typer.Exit(1)
    logger.success(f"Offset cleared ({settings.state_file})")


if __name__ == "__main__":
    app()
