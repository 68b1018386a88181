"""Typed primitives for the Cut Rhythm analysis pipeline."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Tuple

import numpy as np


@dataclass(frozen=True)
class FrameFeature:
    """Color and luma signature of one sampled frame."""

    timestamp: float
    histogram: np.ndarray  # (3, 16) counts for R, G, B
    structure: np.ndarray  # (9, 3) zonal average RGB, row-major zones
    luma_blocks: np.ndarray  # (48,) block means, 8 cols x 6 rows
    average_rgb: Tuple[int, int, int]
    hue: float
    saturation: float
    brightness: float
    hex_color: str
    pixel_count: int

    def to_dict(self) -> Dict[str, object]:
        return {
            "time": round(float(self.timestamp), 3),
            "hue": float(self.hue),
            "saturation": float(self.saturation),
            "brightness": float(self.brightness),
            "hex": self.hex_color,
        }


@dataclass(frozen=True)
class Shot:
    """A contiguous run of frames between two cuts."""

    shot_id: int
    start: float
    end: float
    dominant_color: str
    thumbnail: str = ""

    @property
    def duration(self) -> float:
        return self.end - self.start

    def to_dict(self) -> Dict[str, object]:
        return {
            "id": self.shot_id,
            "start_time": self.start,
            "end_time": self.end,
            "duration": self.duration,
            "dominant_color": self.dominant_color,
            "thumbnail": self.thumbnail,
        }


@dataclass(frozen=True)
class DensityPoint:
    time: float
    density: float


@dataclass(frozen=True)
class PaletteItem:
    color: str
    thumbnail: str


@dataclass(frozen=True)
class PolarPoint:
    time: float
    hue: float
    saturation: float
    color: str


@dataclass(frozen=True)
class AnalysisResult:
    """Final, immutable output of an analysis run."""

    file_name: str
    shots: Tuple[Shot, ...]
    frames: Tuple[FrameFeature, ...]
    duration: float
    asl: float
    msl: float
    cutting_density: Tuple[DensityPoint, ...]
    palette: Tuple[PaletteItem, ...]
    polar_data: Tuple[PolarPoint, ...]
    detection_mode: str = "heuristic"

    @property
    def cuts(self) -> List[float]:
        return [shot.start for shot in self.shots[1:]]

    def to_dict(self) -> Dict[str, object]:
        return {
            "file_name": self.file_name,
            "duration": self.duration,
            "detection_mode": self.detection_mode,
            "asl": self.asl,
            "msl": self.msl,
            "shots": [shot.to_dict() for shot in self.shots],
            "frames": [frame.to_dict() for frame in self.frames],
            "cutting_density": [
                {"time": point.time, "density": point.density} for point in self.cutting_density
            ],
            "palette": [{"color": item.color, "thumbnail": item.thumbnail} for item in self.palette],
            "polar_data": [
                {
                    "time": point.time,
                    "hue": point.hue,
                    "saturation": point.saturation,
                    "color": point.color,
                }
                for point in self.polar_data
            ],
        }
