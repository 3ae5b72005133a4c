"""Structured telemetry for fetches and batches."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

FETCH_STARTED = "strata.fetch.started"
FETCH_SUCCEEDED = "strata.fetch.succeeded"
FETCH_FAILED = "strata.fetch.failed"
QUERY_UNFULFILLED = "strata.query.unfulfilled"
BATCH_SETTLED = "strata.batch.settled"


@dataclass
class TelemetryEvent:
    """One structured event from a fetch or batch."""

    name: str
    attributes: dict[str, Any] = field(default_factory=dict)
    timestamp_ms: float = field(default_factory=lambda: time.time() * 1000)


@runtime_checkable
class TelemetrySink(Protocol):
    """Anything that accepts telemetry events."""

    def emit(self, event: TelemetryEvent) -> None:
        """Record or forward one event."""
        raise NotImplementedError


class NoOpTelemetrySink:
    """Default sink for a Resolver built without one; drops every event."""

    def emit(self, event: TelemetryEvent) -> None:
        _ = event


class InMemoryTelemetrySink:
    """Keeps every event in order so tests can assert on fetch and batch events."""

    def __init__(self) -> None:
        self.events: list[TelemetryEvent] = []

    def emit(self, event: TelemetryEvent) -> None:
        self.events.append(event)

    def named(self, name: str) -> list[TelemetryEvent]:
        return [e for e in self.events if e.name == name]


class LoggerTelemetrySink:
    """Forwards events to a logger with the attributes in ``extra``."""

    def __init__(self, logger_name: str = "strata.telemetry") -> None:
        self.logger = logging.getLogger(logger_name)

    def emit(self, event: TelemetryEvent) -> None:
        self.logger.info(
            event.name,
            extra={
                "event_name": event.name,
                "event_timestamp_ms": event.timestamp_ms,
                "event_attributes": event.attributes,
            },
        )
