"""Frame access and sampling: video backends, sample-rate policy, sequential seeking."""
from __future__ import annotations

import base64
import logging
import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, List, Optional, Protocol, Tuple

import cv2
import numpy as np

from .errors import AnalysisError, VideoLoadError
from .progress import CancellationToken

FFMPEG_PATH = shutil.which("ffmpeg")
FFPROBE_PATH = shutil.which("ffprobe")

GB = 1024 * 1024 * 1024
SEEK_END_GUARD_SEC = 0.001


class SamplingError(AnalysisError):
    """Raised when a frame cannot be retrieved at a requested timestamp."""


@dataclass
class SamplerConfig:
    backend: str = "auto"  # auto | opencv | ffmpeg
    ffmpeg_timeout_sec: float = 30.0
    thumbnail_quality: int = 50


def sample_step_for_size(size_bytes: int) -> float:
    """Seconds between samples for a file of ``size_bytes``."""

    if size_bytes > 2 * GB:
        return 1.0
    return 0.5


def sample_timestamps(duration: float, step: float) -> List[float]:
    if duration <= 0 or step <= 0:
        return []
    timestamps: List[float] = []
    index = 0
    while index * step < duration:
        timestamps.append(round(index * step, 6))
        index += 1
    return timestamps


def encode_thumbnail(frame: np.ndarray, quality: int = 50) -> str:
    """Encode an RGB raster as a JPEG data URL."""

    bgr = cv2.cvtColor(np.ascontiguousarray(frame[:, :, :3]), cv2.COLOR_RGB2BGR)
    ok, buffer = cv2.imencode(".jpg", bgr, [int(cv2.IMWRITE_JPEG_QUALITY), int(quality)])
    if not ok:
        return ""
    return "data:image/jpeg;base64," + base64.b64encode(buffer.tobytes()).decode("ascii")


class VideoSource(Protocol):
    """Anything that can hand out downscaled RGB frames by timestamp."""

    duration: float

    def read_frame(self, timestamp: float, width: int, height: int) -> np.ndarray:
        ...

    def close(self) -> None:
        ...


class VideoFile:
    """Video file reader with OpenCV and ffmpeg backends."""

    def __init__(
        self,
        path: str | Path,
        config: SamplerConfig | None = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.path = Path(path)
        self._config = config or SamplerConfig()
        self._logger = logger or logging.getLogger(__name__)
        self._capture: Optional[cv2.VideoCapture] = None
        if not self.path.exists():
            raise VideoLoadError(f"Video path does not exist: {self.path}")
        self.backend = self._open()
        self.duration = self._probe_duration()
        if self.duration <= 0:
            self.close()
            raise VideoLoadError(f"Could not determine duration of {self.path}")
        self._logger.debug("Opened %s via %s (duration=%.2fs)", self.path, self.backend, self.duration)

    def __enter__(self) -> "VideoFile":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @property
    def size_bytes(self) -> int:
        try:
            return int(self.path.stat().st_size)
        except OSError:
            return 0

    # ------------------------------------------------------------------
    def _open(self) -> str:
        backend = self._config.backend.lower()
        if backend not in {"auto", "opencv", "ffmpeg"}:
            raise VideoLoadError(f"Unsupported sampler backend '{self._config.backend}'")

        if backend in {"auto", "opencv"}:
            capture = cv2.VideoCapture(str(self.path))
            if capture.isOpened():
                self._capture = capture
                return "opencv"
            capture.release()
            if backend == "opencv":
                raise VideoLoadError(f"OpenCV could not open {self.path}")
            self._logger.warning("OpenCV could not open %s; falling back to ffmpeg", self.path)

        if not FFMPEG_PATH:
            raise VideoLoadError("ffmpeg executable not found in PATH")
        return "ffmpeg"

    def _probe_duration(self) -> float:
        if self._capture is not None:
            fps = float(self._capture.get(cv2.CAP_PROP_FPS) or 0.0)
            frames = float(self._capture.get(cv2.CAP_PROP_FRAME_COUNT) or 0.0)
            if fps > 0 and frames > 0:
                return frames / fps
        if not FFPROBE_PATH:
            return 0.0
        cmd = [
            FFPROBE_PATH,
            "-v",
            "error",
            "-show_entries",
            "format=duration",
            "-of",
            "default=noprint_wrappers=1:nokey=1",
            str(self.path),
        ]
        try:
            completed = subprocess.run(cmd, check=True, capture_output=True, timeout=self._config.ffmpeg_timeout_sec)
            return float(completed.stdout.decode().strip() or 0.0)
        except (subprocess.CalledProcessError, subprocess.TimeoutExpired, ValueError) as error:
            self._logger.warning("ffprobe failed for %s: %s", self.path, error)
            return 0.0

    # ------------------------------------------------------------------
    def read_frame(self, timestamp: float, width: int, height: int) -> np.ndarray:
        safe_time = max(0.0, min(timestamp, self.duration - SEEK_END_GUARD_SEC))
        if self.backend == "opencv":
            return self._read_via_opencv(safe_time, width, height)
        return self._read_via_ffmpeg(safe_time, width, height)

    def _read_via_opencv(self, timestamp: float, width: int, height: int) -> np.ndarray:
        if self._capture is None:
            raise SamplingError("Video capture is closed")
        try:
            self._capture.set(cv2.CAP_PROP_POS_MSEC, timestamp * 1000.0)
            ok, frame_bgr = self._capture.read()
        except cv2.error as error:
            raise SamplingError(f"Seek failed at {timestamp:.3f}s: {error}") from error
        if not ok or frame_bgr is None:
            raise SamplingError(f"Unable to decode frame at {timestamp:.3f}s")
        resized = cv2.resize(frame_bgr, (width, height), interpolation=cv2.INTER_AREA)
        return cv2.cvtColor(resized, cv2.COLOR_BGR2RGB)

    def _read_via_ffmpeg(self, timestamp: float, width: int, height: int) -> np.ndarray:
        cmd = [
            FFMPEG_PATH,
            "-hide_banner",
            "-loglevel",
            "error",
            "-ss",
            f"{timestamp:.3f}",
            "-i",
            str(self.path),
            "-frames:v",
            "1",
            "-vf",
            f"scale={width}:{height}:flags=area",
            "-f",
            "rawvideo",
            "-pix_fmt",
            "rgb24",
            "pipe:1",
        ]
        try:
            completed = subprocess.run(
                cmd,
                check=True,
                capture_output=True,
                timeout=self._config.ffmpeg_timeout_sec,
            )
        except subprocess.CalledProcessError as error:
            raise SamplingError(f"ffmpeg failed at {timestamp:.3f}s: {error.stderr.decode().strip()}") from error
        except subprocess.TimeoutExpired as error:
            raise SamplingError(f"ffmpeg timed out at {timestamp:.3f}s") from error

        expected = width * height * 3
        if len(completed.stdout) < expected:
            raise SamplingError(f"Short frame read at {timestamp:.3f}s ({len(completed.stdout)}/{expected} bytes)")
        return np.frombuffer(completed.stdout[:expected], dtype=np.uint8).reshape(height, width, 3).copy()

    def close(self) -> None:
        if self._capture is not None:
            self._capture.release()
            self._capture = None


class FrameSampler:
    """Drives sequential seeks over a source, honouring cancellation before each one."""

    def __init__(
        self,
        source: VideoSource,
        cancel_token: Optional[CancellationToken] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._source = source
        self._cancel = cancel_token or CancellationToken()
        self._logger = logger or logging.getLogger(__name__)

    @property
    def duration(self) -> float:
        return float(self._source.duration)

    def capture(self, timestamp: float, width: int, height: int) -> np.ndarray:
        self._cancel.raise_if_cancelled()
        frame = self._source.read_frame(timestamp, width, height)
        if frame is None or frame.ndim != 3 or frame.shape[0] != height or frame.shape[1] != width:
            raise SamplingError(f"Source returned an unexpected raster at {timestamp:.3f}s")
        return frame

    def scan(self, step: float, width: int, height: int) -> Iterator[Tuple[float, np.ndarray]]:
        timestamps = sample_timestamps(self.duration, step)
        self._logger.debug("Scanning %d samples at %.2fs step", len(timestamps), step)
        for timestamp in timestamps:
            yield timestamp, self.capture(timestamp, width, height)


__all__ = [
    "FrameSampler",
    "SamplerConfig",
    "SamplingError",
    "VideoFile",
    "VideoSource",
    "encode_thumbnail",
    "sample_step_for_size",
    "sample_timestamps",
]
