"""Learned shot-boundary detection with a TransNetV2-style ONNX model."""
from __future__ import annotations

import logging
import os
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import numpy as np
import requests

from .errors import AnalysisCancelled, AnalysisError
from .sampler import FrameSampler

MODEL_CANDIDATES: Tuple[str, ...] = ("transnetv2.onnx", "model.onnx", "transnetv2_onnx.onnx")
DEFAULT_MODEL_URL = "https://huggingface.co/elya5/transnetv2/resolve/main/"

Predictor = Callable[[np.ndarray], Tuple[np.ndarray, np.ndarray]]


@dataclass
class LearnedModelConfig:
    enabled: bool = True
    model_path: Optional[Path] = None
    model_dir: Optional[Path] = None
    base_url: str = DEFAULT_MODEL_URL
    allow_download: bool = False
    download_timeout_sec: float = 120.0
    frame_width: int = 48
    frame_height: int = 27
    window: int = 100
    stride: int = 50
    central_start: int = 25
    central_length: int = 50
    threshold: float = 0.55
    min_spacing_sec: float = 0.35
    progress_every: int = 10


def analysis_fps(duration: float) -> int:
    """Frames per second to score, coarser for longer videos."""

    if duration <= 10 * 60:
        return 8
    if duration <= 30 * 60:
        return 5
    if duration <= 90 * 60:
        return 3
    return 2


class ModelSession:
    """An inference session and the lock that serializes its runs."""

    def __init__(self, session, path: Path) -> None:
        self.session = session
        self.path = path
        self._lock = threading.Lock()
        inputs = session.get_inputs()
        self.input_name = inputs[0].name if inputs else "input"

    def predict(self, batch: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        with self._lock:
            outputs = self.session.run(None, {self.input_name: batch})
        head_a = np.asarray(outputs[0], dtype=np.float32).reshape(-1)
        if len(outputs) > 1:
            head_b = np.asarray(outputs[1], dtype=np.float32).reshape(-1)
        else:
            head_b = np.zeros_like(head_a)
        return head_a, head_b


class ModelRegistry:
    """Loads model sessions once per path and shares them across runs."""

    def __init__(self, logger: Optional[logging.Logger] = None) -> None:
        self._logger = logger or logging.getLogger(__name__)
        self._lock = threading.Lock()
        self._sessions: Dict[str, ModelSession] = {}

    def get(self, config: LearnedModelConfig) -> Optional[ModelSession]:
        candidates = self._candidate_paths(config)
        if not candidates:
            self._logger.debug("No model path configured; learned detection unavailable")
            return None
        key = "|".join(str(path) for path in candidates)
        with self._lock:
            cached = self._sessions.get(key)
            if cached is not None:
                return cached
            session = self._load(candidates, config)
            if session is not None:
                self._sessions[key] = session
            return session

    def clear(self) -> None:
        with self._lock:
            self._sessions.clear()

    # ------------------------------------------------------------------
    def _candidate_paths(self, config: LearnedModelConfig) -> List[Path]:
        if config.model_path:
            return [Path(config.model_path)]
        if config.model_dir:
            return [Path(config.model_dir) / name for name in MODEL_CANDIDATES]
        return []

    def _load(self, candidates: Sequence[Path], config: LearnedModelConfig) -> Optional[ModelSession]:
        try:
            import onnxruntime as ort
        except ImportError:
            self._logger.info("onnxruntime is not installed; learned detection unavailable")
            return None

        for path in candidates:
            if not path.exists():
                if not (config.allow_download and config.base_url):
                    continue
                if not self._download(config.base_url.rstrip("/") + "/" + path.name, path, config):
                    continue
            try:
                session = ort.InferenceSession(str(path), providers=["CPUExecutionProvider"])
            except Exception as error:  # onnxruntime raises its own runtime error types
                self._logger.warning("Failed to load model %s: %s", path, error)
                continue
            self._logger.info("Loaded shot boundary model from %s", path)
            return ModelSession(session, path)
        return None

    def _download(self, url: str, target: Path, config: LearnedModelConfig) -> bool:
        tmp_path = target.with_suffix(target.suffix + ".part")
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            with requests.get(url, stream=True, timeout=config.download_timeout_sec) as response:
                response.raise_for_status()
                with tmp_path.open("wb") as handle:
                    for chunk in response.iter_content(chunk_size=1 << 20):
                        handle.write(chunk)
            os.replace(tmp_path, target)
        except (requests.RequestException, OSError) as error:
            self._logger.info("Model download from %s failed: %s", url, error)
            tmp_path.unlink(missing_ok=True)
            return False
        self._logger.info("Downloaded model %s", target)
        return True


_default_registry: Optional[ModelRegistry] = None
_default_registry_lock = threading.Lock()


def default_registry() -> ModelRegistry:
    """Process-wide registry, created on first use."""

    global _default_registry
    with _default_registry_lock:
        if _default_registry is None:
            _default_registry = ModelRegistry()
        return _default_registry


def score_frames(
    predict: Predictor,
    total_frames: int,
    frame_at: Callable[[int], np.ndarray],
    config: LearnedModelConfig | None = None,
    on_progress: Optional[Callable[[float], None]] = None,
) -> np.ndarray:
    """Sliding-window boundary probabilities, one per frame.

    Only the central predictions of each window are kept; overlapping
    windows combine by running max.
    """

    cfg = config or LearnedModelConfig()
    predictions = np.zeros(max(0, total_frames), dtype=np.float32)
    if total_frames <= 0:
        return predictions

    for start in range(0, total_frames, cfg.stride):
        batch = np.empty((1, cfg.window, cfg.frame_height, cfg.frame_width, 3), dtype=np.float32)
        for offset in range(cfg.window):
            index = min(total_frames - 1, start + offset)
            batch[0, offset] = frame_at(index)
            if on_progress is not None and offset % cfg.progress_every == 0:
                on_progress(index / total_frames * 100.0)

        head_a, head_b = predict(batch)
        for position in range(cfg.central_start, cfg.central_start + cfg.central_length):
            target = start + position
            if target >= total_frames:
                break
            a = float(head_a[position]) if position < head_a.size else 0.0
            b = float(head_b[position]) if position < head_b.size else 0.0
            predictions[target] = max(predictions[target], a, b)
    return predictions


def pick_cuts(
    predictions: Sequence[float],
    fps: float,
    threshold: float = 0.55,
    min_spacing_sec: float = 0.35,
) -> List[float]:
    """Local maxima above ``threshold``, at least ``min_spacing_sec`` apart."""

    cuts: List[float] = []
    last_cut = float("-inf")
    for index in range(1, len(predictions) - 1):
        value = predictions[index]
        if value < threshold:
            continue
        if value < predictions[index - 1] or value < predictions[index + 1]:
            continue
        time = index / fps
        if time - last_cut < min_spacing_sec:
            continue
        cuts.append(time)
        last_cut = time
    return cuts


class LearnedCutDetector:
    """Scores sampled frames with the model; ``None`` means fall back to heuristics."""

    def __init__(
        self,
        config: LearnedModelConfig | None = None,
        registry: ModelRegistry | None = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._config = config or LearnedModelConfig()
        self._registry = registry or default_registry()
        self._logger = logger or logging.getLogger(__name__)

    def detect(
        self,
        sampler: FrameSampler,
        on_progress: Optional[Callable[[float], None]] = None,
    ) -> Optional[List[float]]:
        cfg = self._config
        if not cfg.enabled:
            return None
        session = self._registry.get(cfg)
        if session is None:
            return None

        duration = sampler.duration
        fps = analysis_fps(duration)
        total_frames = max(1, int(duration * fps) + 1)
        window_frames: Dict[int, np.ndarray] = {}

        def frame_at(index: int) -> np.ndarray:
            cached = window_frames.get(index)
            if cached is None:
                raster = sampler.capture(index / fps, cfg.frame_width, cfg.frame_height)
                cached = raster[:, :, :3].astype(np.float32) / 255.0
                window_frames[index] = cached
                for stale in [key for key in window_frames if key < index - cfg.window]:
                    del window_frames[stale]
            return cached

        self._logger.debug("Scoring %d frames at %d fps with %s", total_frames, fps, session.path)
        try:
            predictions = score_frames(session.predict, total_frames, frame_at, cfg, on_progress)
        except (AnalysisCancelled, AnalysisError):
            raise
        except Exception as error:  # inference failures fall back to heuristics
            self._logger.warning("Model inference failed: %s", error)
            return None

        cuts = pick_cuts(predictions, fps, cfg.threshold, cfg.min_spacing_sec)
        if not cuts:
            self._logger.info("Model produced no cuts; falling back to heuristic detection")
            return None
        return cuts


__all__ = [
    "LearnedCutDetector",
    "LearnedModelConfig",
    "ModelRegistry",
    "ModelSession",
    "analysis_fps",
    "default_registry",
    "pick_cuts",
    "score_frames",
]
