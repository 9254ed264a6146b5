"""Events flowing from pipeline tasks to the UI actor.

The sink is a multi-producer, single-consumer queue. Any number of pipeline
tasks (on any thread) may emit without coordination; only the actor that
owns the display polls it. Delivery is at-most-once and unacknowledged: once
the sink is closed, further events are dropped silently.
"""

from __future__ import annotations

import queue
from dataclasses import dataclass
from typing import Literal

ProjectKind = Literal["bitcoin", "electrs"]


@dataclass(frozen=True, slots=True)
class LogLine:
    text: str


@dataclass(frozen=True, slots=True)
class Progress:
    fraction: float


@dataclass(frozen=True, slots=True)
class VersionListLoaded:
    kind: ProjectKind
    versions: tuple[str, ...]


@dataclass(frozen=True, slots=True)
class Notify:
    title: str
    message: str
    is_error: bool = False


@dataclass(frozen=True, slots=True)
class TaskFinished:
    pass


Event = LogLine | Progress | VersionListLoaded | Notify | TaskFinished


class EventSink:
    def __init__(self) -> None:
        self._queue: queue.SimpleQueue[Event] = queue.SimpleQueue()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def emit(self, event: Event) -> None:
        if self._closed:
            return
        self._queue.put(event)

    def log(self, text: str) -> None:
        self.emit(LogLine(text))

    def progress(self, fraction: float) -> None:
        self.emit(Progress(fraction))

    def notify(self, title: str, message: str, *, is_error: bool = False) -> None:
        self.emit(Notify(title=title, message=message, is_error=is_error))

    def finished(self) -> None:
        self.emit(TaskFinished())

    def poll(self) -> Event | None:
        """Return the next pending event without blocking, or ``None``."""
        try:
            return self._queue.get_nowait()
        except queue.Empty:
            return None

    def drain(self) -> list[Event]:
        events: list[Event] = []
        while (event := self.poll()) is not None:
            events.append(event)
        return events

    def close(self) -> None:
        self._closed = True


def clamp_fraction(value: float) -> float:
    """Clamp a progress value into ``[0.0, 1.0]`` for display."""
    return min(max(value, 0.0), 1.0)


@dataclass(frozen=True, slots=True)
class ProgressScale:
    """Map a pipeline's local milestones onto a slice of the overall bar.

    Composite sessions give each project its own range so that milestones of
    one pipeline never move the bar backwards relative to the previous one.
    """

    start: float = 0.0
    end: float = 1.0

    def at(self, fraction: float) -> float:
        return self.start + (self.end - self.start) * clamp_fraction(fraction)

    def report(self, sink: EventSink, fraction: float) -> None:
        sink.progress(self.at(fraction))


__all__ = [
    "Event",
    "EventSink",
    "LogLine",
    "Notify",
    "Progress",
    "ProgressScale",
    "ProjectKind",
    "TaskFinished",
    "VersionListLoaded",
    "clamp_fraction",
]
