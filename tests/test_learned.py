from __future__ import annotations

from pathlib import Path

import numpy as np
import pytest

from src.rhythm.learned import (
    LearnedCutDetector,
    LearnedModelConfig,
    ModelRegistry,
    analysis_fps,
    pick_cuts,
    score_frames,
)
from src.rhythm.sampler import FrameSampler


class ColorChangeSession:
    """Fake model session flagging frames whose red channel drops."""

    path = Path("fake.onnx")

    def __init__(self) -> None:
        self.calls = 0

    def predict(self, batch):
        self.calls += 1
        red = batch[0, :, :, :, 0].mean(axis=(1, 2))
        head = np.zeros(batch.shape[1], dtype=np.float32)
        for position in range(1, batch.shape[1]):
            if red[position - 1] > 0.5 and red[position] < 0.5:
                head[position] = 0.9
        return head, np.zeros_like(head)


class BrokenSession:
    path = Path("broken.onnx")

    def predict(self, batch):
        raise RuntimeError("inference exploded")


class StaticRegistry:
    def __init__(self, session) -> None:
        self.session = session

    def get(self, config):
        return self.session


@pytest.mark.parametrize(
    "duration, expected",
    [(60.0, 8), (600.0, 8), (601.0, 5), (1800.0, 5), (3600.0, 3), (5400.0, 3), (6000.0, 2)],
)
def test_analysis_fps(duration, expected) -> None:
    assert analysis_fps(duration) == expected


def _index_frame(index: int) -> np.ndarray:
    return np.full((27, 48, 3), index / 1000.0, dtype=np.float32)


def _index_predictor(peaks_a, peaks_b=None):
    peaks_b = peaks_b or {}

    def predict(batch):
        indices = np.rint(batch[0, :, 0, 0, 0] * 1000).astype(int)
        head_a = np.array([peaks_a.get(int(i), 0.1) for i in indices], dtype=np.float32)
        head_b = np.array([peaks_b.get(int(i), 0.0) for i in indices], dtype=np.float32)
        return head_a, head_b

    return predict


def test_score_frames_keeps_central_predictions_only() -> None:
    predictions = score_frames(_index_predictor({60: 1.0}, {80: 0.7}), 120, _index_frame)

    assert predictions.shape == (120,)
    assert predictions[60] == pytest.approx(1.0)
    assert predictions[80] == pytest.approx(0.7)
    assert predictions[30] == pytest.approx(0.1)
    # frames before the first central region never get a score
    assert predictions[10] == 0.0


def test_score_frames_reports_progress_in_range() -> None:
    seen = []
    score_frames(_index_predictor({}), 120, _index_frame, on_progress=seen.append)
    assert seen
    assert all(0.0 <= value <= 100.0 for value in seen)


def test_score_frames_empty_input() -> None:
    assert score_frames(_index_predictor({}), 0, _index_frame).size == 0


def test_pick_cuts_local_maxima_above_threshold() -> None:
    predictions = [0.0, 0.2, 0.9, 0.3, 0.0, 0.6, 0.7, 0.1, 0.0]
    assert pick_cuts(predictions, 8.0) == pytest.approx([0.25, 0.75])


def test_pick_cuts_enforces_min_spacing() -> None:
    predictions = [0.0, 0.2, 0.9, 0.3, 0.0, 0.6, 0.7, 0.1, 0.0]
    assert pick_cuts(predictions, 16.0) == pytest.approx([0.125])


def test_pick_cuts_nothing_above_threshold() -> None:
    assert pick_cuts([0.1, 0.5, 0.2, 0.54, 0.1], 8.0) == []


def test_registry_without_paths_is_unavailable() -> None:
    assert ModelRegistry().get(LearnedModelConfig()) is None


def test_registry_with_missing_files_is_unavailable(tmp_path) -> None:
    registry = ModelRegistry()
    config = LearnedModelConfig(model_dir=tmp_path, allow_download=False)
    assert registry.get(config) is None
    # failures are not cached; a later call tries again
    assert registry.get(config) is None


def test_detector_finds_cut_with_fake_session(fake_video) -> None:
    session = ColorChangeSession()
    detector = LearnedCutDetector(LearnedModelConfig(), StaticRegistry(session))
    progress = []
    cuts = detector.detect(FrameSampler(fake_video(duration=10.0)), progress.append)

    assert cuts == pytest.approx([5.0])
    assert session.calls == 2
    assert progress and max(progress) <= 100.0


def test_detector_disabled_returns_none(fake_video) -> None:
    detector = LearnedCutDetector(LearnedModelConfig(enabled=False), StaticRegistry(ColorChangeSession()))
    assert detector.detect(FrameSampler(fake_video())) is None


def test_detector_inference_failure_returns_none(fake_video) -> None:
    detector = LearnedCutDetector(LearnedModelConfig(), StaticRegistry(BrokenSession()))
    assert detector.detect(FrameSampler(fake_video())) is None


def test_detector_without_cuts_returns_none(fake_video) -> None:
    video = fake_video(color_at=lambda t: (0, 128, 0))
    detector = LearnedCutDetector(LearnedModelConfig(), StaticRegistry(ColorChangeSession()))
    assert detector.detect(FrameSampler(video)) is None
