"""Per-frame feature extraction: histograms, zonal structure, luma grid and HSB."""
from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np

from .errors import AnalysisError
from .progress import CancellationToken
from .types import FrameFeature

HISTOGRAM_BINS = 16
ZONE_GRID = 3
LUMA_COLS = 8
LUMA_ROWS = 6


class FeatureExtractionError(AnalysisError):
    """Raised when a frame buffer cannot be turned into a feature record."""


@dataclass
class FeatureExtractorConfig:
    raster_width: int = 64
    raster_height: int = 36


def rgb_to_hex(r: int, g: int, b: int) -> str:
    return f"#{int(r):02x}{int(g):02x}{int(b):02x}"


def rgb_to_hsb(r: int, g: int, b: int) -> Tuple[float, float, float]:
    """Convert 8-bit RGB to (hue degrees, saturation %, brightness %)."""

    rf, gf, bf = r / 255.0, g / 255.0, b / 255.0
    high = max(rf, gf, bf)
    low = min(rf, gf, bf)
    delta = high - low
    saturation = 0.0 if high == 0 else delta / high

    if delta == 0:
        hue = 0.0
    elif high == rf:
        hue = (gf - bf) / delta + (6.0 if gf < bf else 0.0)
    elif high == gf:
        hue = (bf - rf) / delta + 2.0
    else:
        hue = (rf - gf) / delta + 4.0
    hue /= 6.0
    return hue * 360.0, saturation * 100.0, high * 100.0


def _read_only(array: np.ndarray) -> np.ndarray:
    array.setflags(write=False)
    return array


class FeatureExtractor:
    """Computes a ``FrameFeature`` from a raw RGB(A) buffer in a single pass."""

    def extract(self, frame: np.ndarray, timestamp: float) -> FrameFeature:
        if frame is None or frame.ndim != 3 or frame.shape[2] < 3:
            raise FeatureExtractionError("Expected an HxWx3 or HxWx4 pixel buffer")
        height, width = int(frame.shape[0]), int(frame.shape[1])
        pixel_count = height * width
        if pixel_count == 0:
            raise FeatureExtractionError("Empty pixel buffer")

        pixels = frame[:, :, :3].reshape(-1, 3).astype(np.int64)
        red, green, blue = pixels[:, 0], pixels[:, 1], pixels[:, 2]

        histogram = np.stack(
            [np.bincount(channel >> 4, minlength=HISTOGRAM_BINS)[:HISTOGRAM_BINS] for channel in (red, green, blue)]
        )

        rows, cols = np.indices((height, width))
        rows = rows.ravel()
        cols = cols.ravel()

        zone_col = np.minimum((cols * ZONE_GRID) // width, ZONE_GRID - 1)
        zone_row = np.minimum((rows * ZONE_GRID) // height, ZONE_GRID - 1)
        zone_index = zone_row * ZONE_GRID + zone_col
        zone_total = ZONE_GRID * ZONE_GRID
        zone_counts = np.bincount(zone_index, minlength=zone_total)
        zone_sums = np.stack(
            [np.bincount(zone_index, weights=channel, minlength=zone_total) for channel in (red, green, blue)],
            axis=1,
        )
        structure = np.zeros((zone_total, 3), dtype=np.int64)
        filled = zone_counts > 0
        structure[filled] = np.floor(zone_sums[filled] / zone_counts[filled, None]).astype(np.int64)

        block_width = max(1, width // LUMA_COLS)
        block_height = max(1, height // LUMA_ROWS)
        block_col = np.minimum(cols // block_width, LUMA_COLS - 1)
        block_row = np.minimum(rows // block_height, LUMA_ROWS - 1)
        block_index = block_row * LUMA_COLS + block_col
        block_total = LUMA_COLS * LUMA_ROWS
        luma = (54 * red + 183 * green + 19 * blue) >> 8
        luma_sums = np.bincount(block_index, weights=luma, minlength=block_total)
        luma_counts = np.bincount(block_index, minlength=block_total)
        luma_blocks = np.zeros(block_total, dtype=np.float64)
        occupied = luma_counts > 0
        luma_blocks[occupied] = luma_sums[occupied] / luma_counts[occupied]

        sums = pixels.sum(axis=0)
        r_avg, g_avg, b_avg = (int(value) for value in sums // pixel_count)
        hue, saturation, brightness = rgb_to_hsb(r_avg, g_avg, b_avg)

        return FrameFeature(
            timestamp=float(timestamp),
            histogram=_read_only(histogram),
            structure=_read_only(structure),
            luma_blocks=_read_only(luma_blocks),
            average_rgb=(r_avg, g_avg, b_avg),
            hue=hue,
            saturation=saturation,
            brightness=brightness,
            hex_color=rgb_to_hex(r_avg, g_avg, b_avg),
            pixel_count=pixel_count,
        )


class ExtractionWorker:
    """Runs feature extraction on a dedicated thread, one request at a time.

    ``extract`` submits a single request and blocks on its future, so
    responses can never be reordered and detector state is only touched by
    the calling thread.
    """

    def __init__(
        self,
        extractor: Optional[FeatureExtractor] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._extractor = extractor or FeatureExtractor()
        self._logger = logger or logging.getLogger(__name__)
        self._executor: Optional[ThreadPoolExecutor] = None

    def __enter__(self) -> "ExtractionWorker":
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def start(self) -> None:
        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="rhythm-extract")

    def extract(
        self,
        frame: np.ndarray,
        timestamp: float,
        cancel_token: Optional[CancellationToken] = None,
    ) -> FrameFeature:
        if self._executor is None:
            raise RuntimeError("ExtractionWorker has not been started")
        future = self._executor.submit(self._extractor.extract, frame, timestamp)
        feature = future.result()
        if cancel_token is not None:
            cancel_token.raise_if_cancelled()
        return feature

    def close(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None
            self._logger.debug("Extraction worker stopped")


__all__ = [
    "ExtractionWorker",
    "FeatureExtractionError",
    "FeatureExtractor",
    "FeatureExtractorConfig",
    "rgb_to_hex",
    "rgb_to_hsb",
]
