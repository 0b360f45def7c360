"""
Progress event bus and observer utilities.

Long-running work (series reading, volume assembly) reports progress through
this module; hosts subscribe with their own renderers. A cancellation
observer turns a raised flag into ``InterruptedError`` inside the worker, so
nothing half-built is ever published.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Optional, Protocol, Sequence
import sys
import threading
import time


@dataclass(frozen=True)
class ProgressEvent:
    """Immutable progress payload."""

    percent: int
    message: str
    stage: Optional[str] = None
    timestamp: float = field(default_factory=time.time)


class ProgressObserver(Protocol):
    """Observer protocol for progress events."""

    def on_progress(self, event: ProgressEvent) -> None:
        ...


class ProgressBus:
    """
    Simple observer-style event bus for progress propagation.
    """

    def __init__(self, stages: Sequence[str] = ()) -> None:
        self._observers: list[Callable[[ProgressEvent], None] | ProgressObserver] = []
        self._stages = list(stages)

    def subscribe(self, observer: Callable[[ProgressEvent], None] | ProgressObserver) -> "ProgressBus":
        self._observers.append(observer)
        return self

    def unsubscribe(self, observer: Callable[[ProgressEvent], None] | ProgressObserver) -> "ProgressBus":
        try:
            self._observers.remove(observer)
        except ValueError:
            pass
        return self

    def emit(self, event: ProgressEvent) -> None:
        for observer in tuple(self._observers):
            if hasattr(observer, "on_progress"):
                observer.on_progress(event)  # type: ignore[attr-defined]
            else:
                observer(event)  # type: ignore[misc]

    def stage_callback(self, stage: str) -> Callable[[int, str], None]:
        """
        Callback for one stage. When the bus was created with a stage list,
        the local 0..100 percentage is mapped into the overall run.
        """
        def callback(percent: int, message: str) -> None:
            p = max(0, min(100, int(percent)))
            self.emit(ProgressEvent(percent=self._map(stage, p), message=message, stage=stage))

        return callback

    def _map(self, stage: str, local_percent: int) -> int:
        if stage not in self._stages:
            return local_percent
        count = len(self._stages)
        idx = self._stages.index(stage)
        base = int(100 * idx / count)
        span = max(int(100 / count), 1)
        return min(100, base + int(local_percent * span / 100))


class CancelToken:
    """Thread-safe cancellation flag shared between a host and a worker."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()


class CancelFlagObserver:
    """
    Raises InterruptedError when cancellation flag is active.
    """

    def __init__(self, is_cancelled: Callable[[], bool], message: str = "Operation cancelled by user.") -> None:
        self._is_cancelled = is_cancelled
        self._message = message

    def on_progress(self, _event: ProgressEvent) -> None:
        if self._is_cancelled():
            raise InterruptedError(self._message)


class TerminalProgressObserver:
    """
    Text renderer for CLI usage.
    """

    def __init__(self, bar_width: int = 30, stream=None) -> None:
        self.bar_width = bar_width
        self.stream = stream or sys.stdout

    def on_progress(self, event: ProgressEvent) -> None:
        stage = event.stage or "task"
        filled = int(self.bar_width * event.percent / 100)
        bar = "#" * filled + "." * (self.bar_width - filled)
        self.stream.write(f"\r  [{stage}] [{bar}] {event.percent:3d}%  {event.message:<48}")
        if event.percent >= 100:
            self.stream.write("\n")
        self.stream.flush()


__all__ = [
    "ProgressEvent",
    "ProgressObserver",
    "ProgressBus",
    "CancelToken",
    "CancelFlagObserver",
    "TerminalProgressObserver",
]
