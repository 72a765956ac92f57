"""In-process event channel for real-time broadcasts.

Services publish typed events onto a bounded FIFO queue instead of calling a
shared emitter. A socket layer (or anything else) subscribes a sink and an
``EventDispatcher`` thread forwards events to it in publish order. With no
dispatcher running, events stay queued until ``drain()`` is called.
"""

from __future__ import annotations

import datetime
import logging
import queue
import threading
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable

if TYPE_CHECKING:
    from flask import Flask

logger = logging.getLogger(__name__)

SCRIM_DELETED = "scrimDeleted"
TOURNAMENT_STATUS_CHANGED = "tournamentStatusChanged"
TOURNAMENT_DELETED = "tournamentDeleted"
MATCH_UPDATED = "matchUpdated"

EVENT_NAMES = (SCRIM_DELETED, TOURNAMENT_STATUS_CHANGED, TOURNAMENT_DELETED, MATCH_UPDATED)

Sink = Callable[["Event"], None]


@dataclass(frozen=True)
class Event:
    """A single broadcast message."""

    name: str
    payload: dict[str, Any]
    created_at: datetime.datetime = field(
        default_factory=lambda: datetime.datetime.now(datetime.timezone.utc)
    )


class EventChannel:
    """Bounded FIFO channel of events."""

    def __init__(self, maxsize: int = 1000) -> None:
        self._queue: queue.Queue[Event] = queue.Queue(maxsize=maxsize)
        self._sinks: list[Sink] = []
        self._lock = threading.Lock()

    def init_app(self, app: Flask) -> None:
        """Resize the queue from config and register on the app."""
        maxsize = app.config.get("EVENT_QUEUE_SIZE")
        if maxsize and maxsize != self._queue.maxsize:
            self._queue = queue.Queue(maxsize=maxsize)
        app.extensions["events"] = self

    def publish(self, name: str, payload: dict[str, Any] | None = None) -> Event:
        """Queue an event without blocking.

        When the queue is full the oldest pending event is dropped.
        """
        if name not in EVENT_NAMES:
            raise ValueError(f"Unknown event: {name}")
        event = Event(name=name, payload=dict(payload or {}))
        with self._lock:
            while True:
                try:
                    self._queue.put_nowait(event)
                    break
                except queue.Full:
                    try:
                        dropped = self._queue.get_nowait()
                        logger.warning(f"Event queue full, dropping {dropped.name}")
                    except queue.Empty:
                        pass
        return event

    def drain(self) -> list[Event]:
        """Remove and return every pending event, oldest first."""
        events = []
        while True:
            try:
                events.append(self._queue.get_nowait())
            except queue.Empty:
                return events

    def get(self, timeout: float | None = None) -> Event | None:
        """Wait for the next event, or return None on timeout."""
        try:
            return self._queue.get(timeout=timeout)
        except queue.Empty:
            return None

    def pending(self) -> int:
        return self._queue.qsize()

    def subscribe(self, sink: Sink) -> None:
        if sink not in self._sinks:
            self._sinks.append(sink)

    def unsubscribe(self, sink: Sink) -> None:
        if sink in self._sinks:
            self._sinks.remove(sink)

    def deliver(self, event: Event) -> None:
        """Hand an event to every sink; a failing sink does not stop the others."""
        for sink in list(self._sinks):
            try:
                sink(event)
            except Exception:
                logger.exception(f"Event sink failed for {event.name}")


class EventDispatcher(threading.Thread):
    """Daemon thread forwarding channel events to its sinks."""

    def __init__(self, channel: EventChannel, poll_interval: float = 0.5) -> None:
        super().__init__(name="event-dispatcher", daemon=True)
        self.channel = channel
        self.poll_interval = poll_interval
        self._stop_event = threading.Event()

    def run(self) -> None:
        while not self._stop_event.is_set():
            event = self.channel.get(timeout=self.poll_interval)
            if event is not None:
                self.channel.deliver(event)

    def stop(self, timeout: float | None = None) -> None:
        self._stop_event.set()
        if self.is_alive():
            self.join(timeout)


def log_event(event: Event) -> None:
    """Sink that records every broadcast in the application log."""
    logger.info(f"Event {event.name}: {event.payload}")


def publish(channel: EventChannel | None, name: str, payload: dict[str, Any]) -> None:
    """Publish when a channel is configured; broadcasting never fails the caller."""
    if channel is None:
        return
    try:
        channel.publish(name, payload)
    except Exception:
        logger.exception(f"Could not publish {name}")
