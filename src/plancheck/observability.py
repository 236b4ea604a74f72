"""
Event sinks - the single observability seam for the normalizer and the engine.

The core never talks to a logger singleton directly. Every component that
wants to report something receives an EventSink and calls
``on_event(level, module, message, data)``. The pipeline behaves identically
with a NoopSink; sinks only observe.

Concrete sinks:
1. NoopSink: drops everything
2. LoggingSink: forwards to the stdlib ``logging`` module (default)
3. MemorySink: bounded ring buffer with subscribers, for UIs and tests
4. FanoutSink: broadcasts to several sinks

Usage:
    from plancheck.observability import MemorySink, EventLevel

    sink = MemorySink(max_entries=500)
    normalizer = Normalizer(sink=sink)
    normalizer.normalize(text)

    for event in sink.events(level=EventLevel.WARN):
        print(event.module, event.message)
"""

from __future__ import annotations

import logging
import threading
import time
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Protocol, runtime_checkable

logger = logging.getLogger(__name__)

DEFAULT_BUFFER_SIZE = 1000


class EventLevel(str, Enum):
    """Severity of a pipeline event."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARN = "WARN"
    ERROR = "ERROR"

    @property
    def logging_level(self) -> int:
        """Matching stdlib logging level."""
        return _LOGGING_LEVELS[self]


_LOGGING_LEVELS = {
    EventLevel.DEBUG: logging.DEBUG,
    EventLevel.INFO: logging.INFO,
    EventLevel.WARN: logging.WARNING,
    EventLevel.ERROR: logging.ERROR,
}


@runtime_checkable
class EventSink(Protocol):
    """Observer injected into the pipeline."""

    def on_event(
        self,
        level: EventLevel,
        module: str,
        message: str,
        data: dict[str, Any] | None = None,
    ) -> None:
        """Receive one event."""
        ...


@dataclass(frozen=True)
class LogEvent:
    """A recorded pipeline event."""

    level: EventLevel
    module: str
    message: str
    data: dict[str, Any] | None = None
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "level": self.level.value,
            "module": self.module,
            "message": self.message,
            "data": self.data,
        }


# =============================================================================
# Concrete Sinks
# =============================================================================


class NoopSink:
    """Sink that discards every event."""

    def on_event(
        self,
        level: EventLevel,
        module: str,
        message: str,
        data: dict[str, Any] | None = None,
    ) -> None:
        pass


class LoggingSink:
    """
    Sink that forwards events to stdlib logging.

    Each module label gets its own child logger, e.g. events from the
    "Parser" module go to ``plancheck.parser``.
    """

    def __init__(self, logger_name: str = "plancheck") -> None:
        self._base = logger_name
        self._loggers: dict[str, logging.Logger] = {}

    def _logger_for(self, module: str) -> logging.Logger:
        if module not in self._loggers:
            self._loggers[module] = logging.getLogger(f"{self._base}.{module.lower()}")
        return self._loggers[module]

    def on_event(
        self,
        level: EventLevel,
        module: str,
        message: str,
        data: dict[str, Any] | None = None,
    ) -> None:
        target = self._logger_for(module)
        if data:
            target.log(level.logging_level, "%s %s", message, data)
        else:
            target.log(level.logging_level, "%s", message)


class MemorySink:
    """
    Bounded in-memory event buffer.

    Oldest events are discarded once ``max_entries`` is reached.
    Listeners registered with subscribe() see every event as it arrives.
    """

    def __init__(self, max_entries: int = DEFAULT_BUFFER_SIZE) -> None:
        if max_entries <= 0:
            raise ValueError(f"max_entries must be positive, got {max_entries}")
        self.max_entries = max_entries
        self._events: deque[LogEvent] = deque(maxlen=max_entries)
        self._listeners: list[Callable[[LogEvent], None]] = []
        self._lock = threading.Lock()

    def on_event(
        self,
        level: EventLevel,
        module: str,
        message: str,
        data: dict[str, Any] | None = None,
    ) -> None:
        event = LogEvent(level=EventLevel(level), module=module, message=message, data=data)
        with self._lock:
            self._events.append(event)
            listeners = list(self._listeners)

        for listener in listeners:
            try:
                listener(event)
            except Exception as e:
                logger.warning("Event listener %r failed: %s", listener, e)

    def subscribe(self, listener: Callable[[LogEvent], None]) -> Callable[[], None]:
        """
        Register a listener.

        Returns:
            A callable that removes the listener again.
        """
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def events(
        self,
        level: EventLevel | None = None,
        module: str | None = None,
    ) -> list[LogEvent]:
        """Snapshot of buffered events, optionally filtered."""
        with self._lock:
            snapshot = list(self._events)

        if level is not None:
            snapshot = [e for e in snapshot if e.level == level]
        if module is not None:
            snapshot = [e for e in snapshot if e.module == module]
        return snapshot

    def clear(self) -> None:
        with self._lock:
            self._events.clear()

    def __len__(self) -> int:
        return len(self._events)


class FanoutSink:
    """Sink that broadcasts each event to several sinks."""

    def __init__(self, *sinks: EventSink) -> None:
        self.sinks = sinks

    def on_event(
        self,
        level: EventLevel,
        module: str,
        message: str,
        data: dict[str, Any] | None = None,
    ) -> None:
        for sink in self.sinks:
            sink.on_event(level, module, message, data)


def default_sink() -> EventSink:
    """Sink used when a component is constructed without one."""
    return LoggingSink()
