from __future__ import annotations

import sys
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Union


@dataclass(frozen=True)
class FileProcessed:
    path: str
    success: bool


@dataclass(frozen=True)
class WarningEvent:
    message: str
    path: str


@dataclass(frozen=True)
class ErrorEvent:
    message: str
    path: str


Event = Union[FileProcessed, WarningEvent, ErrorEvent]


@dataclass
class EventListener:
    """Caller-side sink. Each callback is optional; a missing one drops the event.

    Callbacks:
        on_file_processed(path, success): a candidate was handled. ``success`` is
            True for a written entry (updating modes) or a matching digest (verify).
        on_warning(message, path): an anomaly that does not fail the run.
        on_error(message, path): an error; the run continues unless it is fatal.
    """

    on_file_processed: Optional[Callable[[str, bool], None]] = None
    on_warning: Optional[Callable[[str, str], None]] = None
    on_error: Optional[Callable[[str, str], None]] = None


@dataclass
class EventRecorder:
    """Listener that keeps every event in order. Handy for tests and embedding."""

    events: List[Event] = field(default_factory=list)

    def listener(self) -> EventListener:
        return EventListener(
            on_file_processed=lambda p, ok: self.events.append(FileProcessed(p, ok)),
            on_warning=lambda m, p: self.events.append(WarningEvent(m, p)),
            on_error=lambda m, p: self.events.append(ErrorEvent(m, p)),
        )

    def of_type(self, kind: type) -> List[Event]:
        return [e for e in self.events if isinstance(e, kind)]

    @property
    def processed(self) -> List[FileProcessed]:
        return self.of_type(FileProcessed)  # type: ignore[return-value]

    @property
    def warnings(self) -> List[WarningEvent]:
        return self.of_type(WarningEvent)  # type: ignore[return-value]

    @property
    def errors(self) -> List[ErrorEvent]:
        return self.of_type(ErrorEvent)  # type: ignore[return-value]


class Reporter:
    """Dispatches events to a listener and keeps the counts a result needs.

    A callback that raises is contained here so one bad listener cannot abort a run.
    """

    def __init__(self, listener: Optional[EventListener] = None):
        self.listener = listener or EventListener()
        self.processed = 0
        self.failed = 0
        self.warnings = 0
        self.errors = 0

    def _call(self, cb: Optional[Callable], *args) -> None:
        if cb is None:
            return
        try:
            cb(*args)
        except Exception as exc:
            print(f"Warning: event listener raised {type(exc).__name__}: {exc}", file=sys.stderr)

    def file_processed(self, path: str, success: bool) -> None:
        self.processed += 1
        if not success:
            self.failed += 1
        self._call(self.listener.on_file_processed, path, success)

    def warning(self, message: str, path: str) -> None:
        self.warnings += 1
        self._call(self.listener.on_warning, message, path)

    def error(self, message: str, path: str) -> None:
        self.errors += 1
        self._call(self.listener.on_error, message, path)
