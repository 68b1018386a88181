"""Aggregate statistics over detected shots and the frame feature stream."""
from __future__ import annotations

from dataclasses import dataclass
from typing import List, Sequence

from .types import AnalysisResult, DensityPoint, FrameFeature, PaletteItem, PolarPoint, Shot


@dataclass
class AnalyticsConfig:
    density_window_sec: float = 20.0
    density_step_sec: float = 2.0
    palette_min_shot_sec: float = 1.0
    palette_size: int = 10


def average_shot_length(shots: Sequence[Shot], duration: float) -> float:
    if not shots:
        return 0.0
    return duration / len(shots)


def median_shot_length(shots: Sequence[Shot]) -> float:
    """Duration at index ``n // 2`` of the ascending sort.

    For an even number of shots this is the upper of the two middle values,
    not their mean.
    """

    if not shots:
        return 0.0
    ordered = sorted(shots, key=lambda shot: shot.duration)
    return ordered[len(ordered) // 2].duration


def cutting_density(
    shots: Sequence[Shot],
    duration: float,
    window_sec: float = 20.0,
    step_sec: float = 2.0,
) -> List[DensityPoint]:
    """Cuts per minute in a centred window, sampled every ``step_sec``."""

    points: List[DensityPoint] = []
    if duration <= 0 or step_sec <= 0:
        return points
    half = window_sec / 2.0
    ends = [shot.end for shot in shots]
    index = 0
    while index * step_sec < duration:
        time = index * step_sec
        start = max(0.0, time - half)
        stop = min(duration, time + half)
        span = stop - start
        count = sum(1 for end in ends if start < end < stop)
        density = count / span * 60.0 if span > 0 else 0.0
        points.append(DensityPoint(time=time, density=density))
        index += 1
    return points


def dominant_palette(shots: Sequence[Shot], min_duration: float = 1.0, limit: int = 10) -> List[PaletteItem]:
    longest = sorted(
        (shot for shot in shots if shot.duration > min_duration),
        key=lambda shot: shot.duration,
        reverse=True,
    )
    return [PaletteItem(color=shot.dominant_color, thumbnail=shot.thumbnail) for shot in longest[:limit]]


def polar_series(frames: Sequence[FrameFeature]) -> List[PolarPoint]:
    return [
        PolarPoint(time=frame.timestamp, hue=frame.hue, saturation=frame.saturation, color=frame.hex_color)
        for frame in frames
    ]


def build_result(
    file_name: str,
    shots: Sequence[Shot],
    frames: Sequence[FrameFeature],
    duration: float,
    detection_mode: str,
    config: AnalyticsConfig | None = None,
) -> AnalysisResult:
    cfg = config or AnalyticsConfig()
    return AnalysisResult(
        file_name=file_name,
        shots=tuple(shots),
        frames=tuple(frames),
        duration=duration,
        asl=average_shot_length(shots, duration),
        msl=median_shot_length(shots),
        cutting_density=tuple(cutting_density(shots, duration, cfg.density_window_sec, cfg.density_step_sec)),
        palette=tuple(dominant_palette(shots, cfg.palette_min_shot_sec, cfg.palette_size)),
        polar_data=tuple(polar_series(frames)),
        detection_mode=detection_mode,
    )


__all__ = [
    "AnalyticsConfig",
    "average_shot_length",
    "build_result",
    "cutting_density",
    "dominant_palette",
    "median_shot_length",
    "polar_series",
]
