"""Multi-signal shot boundary detection with adaptive thresholds."""
from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass
from typing import Callable, Deque, List, Optional

import numpy as np

from .types import FrameFeature, Shot

ThumbnailFactory = Callable[[], str]


def histogram_diff(previous: FrameFeature, current: FrameFeature) -> float:
    pixel_count = current.pixel_count
    if pixel_count <= 0:
        return 0.0
    diff = np.abs(previous.histogram.astype(np.int64) - current.histogram.astype(np.int64)).sum()
    return float(diff) / (pixel_count * 6)


def structure_diff(previous: FrameFeature, current: FrameFeature) -> float:
    diff = np.abs(previous.structure.astype(np.int64) - current.structure.astype(np.int64)).sum()
    return float(diff) / (9 * 3 * 255)


def luma_diff(previous: FrameFeature, current: FrameFeature) -> float:
    if previous.luma_blocks.shape != current.luma_blocks.shape or current.luma_blocks.size == 0:
        return 0.0
    diff = np.abs(previous.luma_blocks - current.luma_blocks).sum()
    return float(diff) / (current.luma_blocks.size * 255)


@dataclass
class HeuristicConfig:
    hist_threshold: float = 0.32
    struct_threshold: float = 0.26
    luma_threshold: float = 0.14
    # debounce right after a cut
    recent_cut_sec: float = 1.0
    recent_hist: float = 0.55
    recent_struct: float = 0.50
    recent_luma: float = 0.22
    settling_cut_sec: float = 1.5
    settling_hist: float = 0.48
    settling_struct: float = 0.42
    settling_luma: float = 0.18
    # dark / desaturated scenes
    dark_brightness: float = 18.0
    low_saturation: float = 12.0
    low_chroma_hist_floor: float = 0.45
    low_chroma_struct_floor: float = 0.28
    low_chroma_luma_ceiling: float = 0.11
    # slow dissolves
    rolling_window: int = 6
    dissolve_min_gap_sec: float = 2.0
    dissolve_luma_avg: float = 0.11
    dissolve_hist: float = 0.20
    dissolve_struct: float = 0.16
    strong_struct_factor: float = 1.25
    strong_struct_hist_factor: float = 0.85


@dataclass(frozen=True)
class CutThresholds:
    hist: float
    struct: float
    luma: float

    @classmethod
    def for_context(
        cls,
        time_since_cut: float,
        low_chroma: bool,
        config: HeuristicConfig | None = None,
    ) -> "CutThresholds":
        cfg = config or HeuristicConfig()
        hist, struct, luma = cfg.hist_threshold, cfg.struct_threshold, cfg.luma_threshold
        if time_since_cut < cfg.recent_cut_sec:
            hist, struct, luma = cfg.recent_hist, cfg.recent_struct, cfg.recent_luma
        elif time_since_cut < cfg.settling_cut_sec:
            hist, struct, luma = cfg.settling_hist, cfg.settling_struct, cfg.settling_luma

        if low_chroma:
            hist = max(hist, cfg.low_chroma_hist_floor)
            struct = max(struct, cfg.low_chroma_struct_floor)
            luma = min(luma, cfg.low_chroma_luma_ceiling)
        return cls(hist=hist, struct=struct, luma=luma)


def is_low_chroma(previous: FrameFeature, current: FrameFeature, config: HeuristicConfig | None = None) -> bool:
    cfg = config or HeuristicConfig()
    dark = previous.brightness < cfg.dark_brightness and current.brightness < cfg.dark_brightness
    desaturated = previous.saturation < cfg.low_saturation and current.saturation < cfg.low_saturation
    return dark or desaturated


def decide(
    hist: float,
    struct: float,
    luma: float,
    time_since_cut: float,
    thresholds: CutThresholds,
    rolling_luma: float = 0.0,
    config: HeuristicConfig | None = None,
) -> bool:
    """Combine the three difference signals into a cut decision."""

    cfg = config or HeuristicConfig()
    if luma > thresholds.luma:
        return True
    if hist > thresholds.hist and struct > thresholds.struct:
        return True
    if struct > thresholds.struct * cfg.strong_struct_factor and hist > thresholds.hist * cfg.strong_struct_hist_factor:
        return True
    return (
        time_since_cut > cfg.dissolve_min_gap_sec
        and rolling_luma > cfg.dissolve_luma_avg
        and (hist > cfg.dissolve_hist or struct > cfg.dissolve_struct)
    )


@dataclass
class _BestFrame:
    saturation: float = -1.0
    color: str = "#000000"
    thumbnail: str = ""


class HeuristicCutDetector:
    """Stateful detector fed one feature record at a time.

    ``observe`` returns the shot closed by a cut at the frame's timestamp,
    if any; ``finish`` flushes the open shot at the end of the stream.
    """

    def __init__(self, config: HeuristicConfig | None = None, logger: Optional[logging.Logger] = None) -> None:
        self._config = config or HeuristicConfig()
        self._logger = logger or logging.getLogger(__name__)
        self._previous: Optional[FrameFeature] = None
        self._luma_history: Deque[float] = deque(maxlen=max(1, self._config.rolling_window))
        self._last_cut = 0.0
        self._next_id = 1
        self._best = _BestFrame()
        self._active_color = "#000000"
        self.shots: List[Shot] = []

    @property
    def state(self) -> str:
        return "idle" if self._previous is None else "tracking"

    @property
    def last_cut(self) -> float:
        return self._last_cut

    def observe(self, feature: FrameFeature, thumbnail: ThumbnailFactory | None = None) -> Optional[Shot]:
        closed: Optional[Shot] = None
        previous = self._previous
        if previous is not None and self._is_cut(previous, feature):
            closed = self._close_shot(feature.timestamp)
        self._previous = feature
        self._track_best(feature, thumbnail)
        return closed

    def finish(self, duration: float) -> Optional[Shot]:
        if self._last_cut >= duration:
            return None
        return self._close_shot(duration, reuse_thumbnail=True)

    # ------------------------------------------------------------------
    def _is_cut(self, previous: FrameFeature, current: FrameFeature) -> bool:
        hist = histogram_diff(previous, current)
        struct = structure_diff(previous, current)
        luma = luma_diff(previous, current)
        time_since_cut = current.timestamp - self._last_cut

        thresholds = CutThresholds.for_context(time_since_cut, is_low_chroma(previous, current, self._config), self._config)
        self._luma_history.append(luma)
        rolling = sum(self._luma_history) / len(self._luma_history)

        fired = decide(hist, struct, luma, time_since_cut, thresholds, rolling, self._config)
        if fired:
            self._logger.debug(
                "Cut at %.2fs (hist=%.3f struct=%.3f luma=%.3f avg=%.3f)",
                current.timestamp,
                hist,
                struct,
                luma,
                rolling,
            )
        return fired

    def _close_shot(self, end: float, reuse_thumbnail: bool = False) -> Shot:
        thumbnail = self._best.thumbnail
        # only the final shot borrows the previous thumbnail
        if not thumbnail and reuse_thumbnail and self.shots:
            thumbnail = self.shots[-1].thumbnail
        shot = Shot(
            shot_id=self._next_id,
            start=self._last_cut,
            end=end,
            dominant_color=self._active_color,
            thumbnail=thumbnail,
        )
        self.shots.append(shot)
        self._next_id += 1
        self._last_cut = end
        self._luma_history.clear()
        self._best = _BestFrame()
        return shot

    def _track_best(self, feature: FrameFeature, thumbnail: ThumbnailFactory | None) -> None:
        if feature.saturation > self._best.saturation or self._best.saturation == -1:
            self._best = _BestFrame(
                saturation=feature.saturation,
                color=feature.hex_color,
                thumbnail=thumbnail() if thumbnail is not None else "",
            )
            self._active_color = feature.hex_color


__all__ = [
    "CutThresholds",
    "HeuristicConfig",
    "HeuristicCutDetector",
    "decide",
    "histogram_diff",
    "is_low_chroma",
    "luma_diff",
    "structure_diff",
]
