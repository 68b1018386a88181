from __future__ import annotations

import base64

import numpy as np
import pytest

from src.rhythm.errors import AnalysisCancelled, VideoLoadError
from src.rhythm.progress import CancellationToken
from src.rhythm.sampler import (
    GB,
    FrameSampler,
    SamplingError,
    encode_thumbnail,
    sample_step_for_size,
    sample_timestamps,
    VideoFile,
)


@pytest.mark.parametrize(
    "size, step",
    [(0, 0.5), (GB // 2, 0.5), (GB, 0.5), (2 * GB, 0.5), (3 * GB, 1.0), (11 * GB, 1.0)],
)
def test_sample_step_for_size(size, step) -> None:
    assert sample_step_for_size(size) == step


def test_sample_timestamps_use_index_multiplication() -> None:
    stamps = sample_timestamps(3.0, 0.1)
    assert len(stamps) == 30
    assert stamps[-1] == pytest.approx(2.9)
    assert sample_timestamps(0.0, 0.5) == []


def test_encode_thumbnail_is_jpeg_data_url(make_frame) -> None:
    url = encode_thumbnail(make_frame((200, 30, 30)))
    prefix = "data:image/jpeg;base64,"
    assert url.startswith(prefix)
    assert base64.b64decode(url[len(prefix):])[:2] == b"\xff\xd8"


def test_scan_yields_requested_rasters(fake_video) -> None:
    sampler = FrameSampler(fake_video(duration=2.0))
    frames = list(sampler.scan(0.5, 64, 36))
    assert [t for t, _ in frames] == [0.0, 0.5, 1.0, 1.5]
    assert all(raster.shape == (36, 64, 3) for _, raster in frames)


def test_capture_checks_cancellation_before_seeking(fake_video) -> None:
    token = CancellationToken()
    video = fake_video()
    sampler = FrameSampler(video, token)
    sampler.capture(0.0, 64, 36)
    token.cancel()
    with pytest.raises(AnalysisCancelled):
        sampler.capture(0.5, 64, 36)
    assert video.reads == [0.0]


def test_capture_rejects_wrong_raster() -> None:
    class WrongSize:
        duration = 1.0

        def read_frame(self, timestamp, width, height):
            return np.zeros((10, 10, 3), dtype=np.uint8)

        def close(self):
            pass

    with pytest.raises(SamplingError):
        FrameSampler(WrongSize()).capture(0.0, 64, 36)


def test_video_file_missing_path(tmp_path) -> None:
    with pytest.raises(VideoLoadError):
        VideoFile(tmp_path / "missing.mp4")
