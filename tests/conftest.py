from __future__ import annotations

from typing import Callable, List, Optional, Tuple

import numpy as np
import pytest

from src.rhythm.sampler import SamplingError

RED = (255, 0, 0)
BLUE = (0, 0, 255)


class FakeVideo:
    """In-memory video: solid color frames chosen by timestamp."""

    def __init__(
        self,
        duration: float = 10.0,
        color_at: Optional[Callable[[float], Tuple[int, int, int]]] = None,
        fail_at: Optional[float] = None,
    ) -> None:
        self.duration = duration
        self._color_at = color_at or (lambda t: RED if t < 5.0 else BLUE)
        self._fail_at = fail_at
        self.reads: List[float] = []
        self.closed = False

    def read_frame(self, timestamp: float, width: int, height: int) -> np.ndarray:
        if self._fail_at is not None and timestamp >= self._fail_at:
            raise SamplingError(f"Unable to decode frame at {timestamp:.3f}s")
        self.reads.append(timestamp)
        frame = np.empty((height, width, 3), dtype=np.uint8)
        frame[:, :] = self._color_at(timestamp)
        return frame

    def close(self) -> None:
        self.closed = True


def solid_frame(color: Tuple[int, int, int], width: int = 64, height: int = 36) -> np.ndarray:
    frame = np.empty((height, width, 3), dtype=np.uint8)
    frame[:, :] = color
    return frame


@pytest.fixture()
def fake_video():
    return FakeVideo


@pytest.fixture()
def make_frame():
    return solid_frame
