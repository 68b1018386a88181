"""Progress reporting and cooperative cancellation."""
from __future__ import annotations

import logging
import threading
from typing import Callable, Optional

from .errors import AnalysisCancelled

ProgressCallback = Callable[[int], None]


class CancellationToken:
    """Thread-safe flag checked by the driver before every seek."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise AnalysisCancelled("Analysis cancelled")


class ProgressReporter:
    """Forwards percentages to a callback, clamped to [0, 100] and never decreasing."""

    def __init__(
        self,
        callback: Optional[ProgressCallback] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._callback = callback
        self._logger = logger or logging.getLogger(__name__)
        self._last = 0
        self._lock = threading.Lock()

    @property
    def last(self) -> int:
        return self._last

    def report(self, percent: float) -> None:
        value = int(round(max(0.0, min(100.0, float(percent)))))
        with self._lock:
            if value < self._last:
                return
            self._last = value
        if self._callback is None:
            return
        self._callback(value)

    def span(self, low: float, high: float) -> "ProgressSpan":
        return ProgressSpan(self, low, high)


class ProgressSpan:
    """Maps a 0-100 sub-task onto [low, high] of the parent reporter."""

    def __init__(self, parent: ProgressReporter, low: float, high: float) -> None:
        self._parent = parent
        self._low = float(low)
        self._high = float(high)

    def __call__(self, percent: float) -> None:
        fraction = max(0.0, min(100.0, float(percent))) / 100.0
        self._parent.report(self._low + (self._high - self._low) * fraction)


__all__ = ["CancellationToken", "ProgressCallback", "ProgressReporter", "ProgressSpan"]
