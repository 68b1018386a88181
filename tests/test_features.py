from __future__ import annotations

import numpy as np
import pytest

from src.rhythm.errors import AnalysisCancelled
from src.rhythm.features import (
    ExtractionWorker,
    FeatureExtractionError,
    FeatureExtractor,
    rgb_to_hex,
    rgb_to_hsb,
)
from src.rhythm.progress import CancellationToken


def test_solid_red_frame_signature(make_frame) -> None:
    feature = FeatureExtractor().extract(make_frame((255, 0, 0)), 1.5)

    assert feature.timestamp == 1.5
    assert feature.pixel_count == 64 * 36
    assert feature.histogram.shape == (3, 16)
    assert feature.histogram[0, 15] == 64 * 36
    assert feature.histogram[1, 0] == 64 * 36
    assert feature.histogram[2, 0] == 64 * 36
    assert feature.structure.shape == (9, 3)
    assert (feature.structure == np.array([255, 0, 0])).all()
    # (54 * 255) >> 8
    assert feature.luma_blocks.shape == (48,)
    np.testing.assert_allclose(feature.luma_blocks, 53.0)
    assert feature.average_rgb == (255, 0, 0)
    assert feature.hex_color == "#ff0000"
    assert feature.hue == pytest.approx(0.0)
    assert feature.saturation == pytest.approx(100.0)
    assert feature.brightness == pytest.approx(100.0)


def test_zones_and_luma_blocks_follow_integer_division(make_frame) -> None:
    frame = make_frame((0, 0, 0))
    frame[:, :32] = 255
    feature = FeatureExtractor().extract(frame, 0.0)

    # zone columns: x 0..21 -> 0, 22..42 -> 1, 43..63 -> 2
    top_row = feature.structure[:3, 0]
    assert top_row[0] == 255
    assert top_row[1] == (255 * 10) // 21
    assert top_row[2] == 0

    grid = feature.luma_blocks.reshape(6, 8)
    np.testing.assert_allclose(grid[:, :4], 255.0)
    np.testing.assert_allclose(grid[:, 4:], 0.0)
    assert feature.average_rgb == (127, 127, 127)


def test_rgba_buffers_are_accepted_and_arrays_are_read_only(make_frame) -> None:
    rgba = np.dstack([make_frame((0, 255, 0)), np.full((36, 64), 255, dtype=np.uint8)])
    feature = FeatureExtractor().extract(rgba, 0.0)

    assert feature.hex_color == "#00ff00"
    assert not feature.histogram.flags.writeable
    assert not feature.structure.flags.writeable
    assert not feature.luma_blocks.flags.writeable


def test_extract_rejects_malformed_buffers() -> None:
    extractor = FeatureExtractor()
    with pytest.raises(FeatureExtractionError):
        extractor.extract(np.zeros((36, 64), dtype=np.uint8), 0.0)
    with pytest.raises(FeatureExtractionError):
        extractor.extract(np.zeros((0, 64, 3), dtype=np.uint8), 0.0)


@pytest.mark.parametrize(
    "rgb, expected",
    [
        ((0, 255, 0), (120.0, 100.0, 100.0)),
        ((0, 0, 255), (240.0, 100.0, 100.0)),
        ((255, 0, 255), (300.0, 100.0, 100.0)),
        ((128, 128, 128), (0.0, 0.0, 128 / 255 * 100)),
        ((0, 0, 0), (0.0, 0.0, 0.0)),
    ],
)
def test_rgb_to_hsb(rgb, expected) -> None:
    assert rgb_to_hsb(*rgb) == pytest.approx(expected)


def test_rgb_to_hex_pads_channels() -> None:
    assert rgb_to_hex(255, 8, 0) == "#ff0800"


def test_extraction_worker_round_trip(make_frame) -> None:
    extractor = FeatureExtractor()
    frame = make_frame((10, 20, 30))
    with ExtractionWorker(extractor) as worker:
        feature = worker.extract(frame, 2.0)
    direct = extractor.extract(frame, 2.0)
    assert feature.hex_color == direct.hex_color
    np.testing.assert_array_equal(feature.histogram, direct.histogram)


def test_extraction_worker_checks_cancellation_on_response(make_frame) -> None:
    token = CancellationToken()
    token.cancel()
    with ExtractionWorker() as worker:
        with pytest.raises(AnalysisCancelled):
            worker.extract(make_frame((0, 0, 0)), 0.0, token)


def test_extraction_worker_requires_start(make_frame) -> None:
    with pytest.raises(RuntimeError):
        ExtractionWorker().extract(make_frame((0, 0, 0)), 0.0)
