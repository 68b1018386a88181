"""High-level analysis driver: picks a detection plan and runs the sampling loop."""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path
from typing import Iterable, List, Optional, Tuple

from .analytics import AnalyticsConfig, build_result
from .edl import parse_edl
from .errors import VideoLoadError
from .features import ExtractionWorker, FeatureExtractor, FeatureExtractorConfig
from .heuristic import HeuristicConfig, HeuristicCutDetector
from .learned import LearnedCutDetector, LearnedModelConfig, ModelRegistry
from .progress import CancellationToken, ProgressCallback, ProgressReporter
from .sampler import (
    FrameSampler,
    SamplerConfig,
    VideoFile,
    VideoSource,
    encode_thumbnail,
    sample_step_for_size,
)
from .types import AnalysisResult, FrameFeature, Shot


class DetectionMode(str, Enum):
    HEURISTIC = "heuristic"
    LEARNED_MODEL = "learned_model"
    EDL = "edl"


@dataclass(frozen=True)
class DetectionPlan:
    """Which detector produces the shot boundaries for a run.

    Heuristic plans carry no cuts (boundaries come from the frame stream);
    learned-model and EDL plans carry the ordered shot start times.
    """

    mode: DetectionMode
    cuts: Tuple[float, ...] = ()

    @classmethod
    def heuristic(cls) -> "DetectionPlan":
        return cls(DetectionMode.HEURISTIC)

    @classmethod
    def learned_model(cls, starts: Iterable[float]) -> "DetectionPlan":
        return cls(DetectionMode.LEARNED_MODEL, tuple(starts))

    @classmethod
    def edl(cls, starts: Iterable[float]) -> "DetectionPlan":
        return cls(DetectionMode.EDL, tuple(starts))

    @property
    def authoritative(self) -> bool:
        return self.mode is not DetectionMode.HEURISTIC

    def next_boundary(self, start: float, duration: float) -> float:
        for cut in self.cuts:
            if cut > start:
                return min(cut, duration)
        return duration


def shot_starts(cuts: Iterable[float], duration: float, min_gap_sec: float, snap_sec: float = 0.1) -> List[float]:
    """Turn raw cut times into shot start times that tile [0, duration)."""

    starts = [0.0]
    for cut in sorted(cuts):
        if cut <= snap_sec or cut >= duration:
            continue
        if cut - starts[-1] < min_gap_sec:
            continue
        starts.append(cut)
    return starts


@dataclass
class AnalyzerConfig:
    sampler: SamplerConfig = field(default_factory=SamplerConfig)
    feature: FeatureExtractorConfig = field(default_factory=FeatureExtractorConfig)
    heuristic: HeuristicConfig = field(default_factory=HeuristicConfig)
    model: LearnedModelConfig = field(default_factory=LearnedModelConfig)
    analytics: AnalyticsConfig = field(default_factory=AnalyticsConfig)
    model_progress_share: float = 60.0
    sample_step_sec: Optional[float] = None
    backfill_step_sec: float = 1.0
    edl_min_shot_sec: float = 0.01
    learned_min_gap_sec: float = 0.2
    snap_to_start_sec: float = 0.1


class Analyzer:
    """Coordinates sampling, feature extraction, cut detection and aggregation."""

    def __init__(
        self,
        config: AnalyzerConfig | None = None,
        logger: logging.Logger | None = None,
        model_registry: ModelRegistry | None = None,
    ) -> None:
        self._config = config or AnalyzerConfig()
        self._logger = logger or logging.getLogger(__name__)
        self._extractor = FeatureExtractor()
        self._learned = LearnedCutDetector(self._config.model, model_registry, self._logger)

    def analyze(
        self,
        source: VideoSource,
        file_name: str,
        size_hint: int = 0,
        edl: bytes | str | None = None,
        on_progress: ProgressCallback | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> AnalysisResult:
        """Run the full pipeline over ``source``.

        Raises ``AnalysisCancelled`` when ``cancel_token`` fires and an
        ``AnalysisError`` subclass on fatal failures; never returns a
        partial result.
        """

        cancel = cancel_token or CancellationToken()
        progress = ProgressReporter(on_progress, self._logger)
        cancel.raise_if_cancelled()

        duration = float(source.duration or 0.0)
        if duration <= 0:
            raise VideoLoadError(f"Video {file_name} has no playable duration")

        started = time.perf_counter()
        sampler = FrameSampler(source, cancel, self._logger)
        plan = self._select_plan(sampler, edl, progress)
        stage = progress.span(progress.last, 100)

        with ExtractionWorker(self._extractor, self._logger) as worker:
            if plan.authoritative:
                shots, frames = self._run_cut_list(plan, sampler, worker, cancel, stage)
            else:
                shots, frames = self._run_heuristic(sampler, worker, cancel, size_hint, stage)

        result = build_result(file_name, shots, frames, duration, plan.mode.value, self._config.analytics)
        progress.report(100)
        self._logger.info(
            "Analyzed %s in %.2fs: %d shots via %s (asl=%.2fs msl=%.2fs)",
            file_name,
            time.perf_counter() - started,
            len(result.shots),
            plan.mode.value,
            result.asl,
            result.msl,
        )
        return result

    def analyze_path(
        self,
        path: str | Path,
        edl_path: str | Path | None = None,
        on_progress: ProgressCallback | None = None,
        cancel_token: CancellationToken | None = None,
        edl: bytes | str | None = None,
        file_name: Optional[str] = None,
    ) -> AnalysisResult:
        """Open ``path`` and analyze it; inline ``edl`` wins over ``edl_path``."""

        if edl is None and edl_path:
            try:
                edl = Path(edl_path).read_bytes()
            except OSError as error:
                self._logger.warning("Could not read EDL %s: %s; using automatic detection", edl_path, error)
        with VideoFile(path, self._config.sampler, self._logger) as video:
            return self.analyze(
                video,
                file_name=file_name or Path(path).name,
                size_hint=video.size_bytes,
                edl=edl,
                on_progress=on_progress,
                cancel_token=cancel_token,
            )

    # ------------------------------------------------------------------
    def _select_plan(
        self,
        sampler: FrameSampler,
        edl: bytes | str | None,
        progress: ProgressReporter,
    ) -> DetectionPlan:
        cfg = self._config
        duration = sampler.duration

        if edl is not None:
            parsed = parse_edl(edl)
            cuts = [cut for cut in parsed.cuts if cut < duration]
            if parsed.ok and cuts:
                self._logger.info("Using %d EDL cuts (%.2f fps, %d events)", len(cuts), parsed.fps, parsed.event_count)
                return DetectionPlan.edl(shot_starts(cuts, duration, cfg.edl_min_shot_sec, cfg.snap_to_start_sec))
            self._logger.warning(
                "EDL parse failed (%s); proceeding with automatic detection",
                parsed.error or "no cuts inside the video",
            )

        if cfg.model.enabled:
            model_cuts = self._learned.detect(sampler, progress.span(0, cfg.model_progress_share))
            if model_cuts:
                return DetectionPlan.learned_model(
                    shot_starts(model_cuts, duration, cfg.learned_min_gap_sec, cfg.snap_to_start_sec)
                )
            self._logger.info("Learned model not used; falling back to heuristic detection")
        return DetectionPlan.heuristic()

    def _run_heuristic(
        self,
        sampler: FrameSampler,
        worker: ExtractionWorker,
        cancel: CancellationToken,
        size_hint: int,
        on_progress,
    ) -> Tuple[List[Shot], List[FrameFeature]]:
        cfg = self._config
        duration = sampler.duration
        step = cfg.sample_step_sec or sample_step_for_size(size_hint)
        width, height = cfg.feature.raster_width, cfg.feature.raster_height
        quality = cfg.sampler.thumbnail_quality

        detector = HeuristicCutDetector(cfg.heuristic, self._logger)
        frames: List[FrameFeature] = []
        for timestamp, raster in sampler.scan(step, width, height):
            feature = worker.extract(raster, timestamp, cancel)
            detector.observe(feature, thumbnail=lambda raster=raster: encode_thumbnail(raster, quality))
            frames.append(feature)
            on_progress(timestamp / duration * 100.0)
        detector.finish(duration)
        return list(detector.shots), frames

    def _run_cut_list(
        self,
        plan: DetectionPlan,
        sampler: FrameSampler,
        worker: ExtractionWorker,
        cancel: CancellationToken,
        on_progress,
    ) -> Tuple[List[Shot], List[FrameFeature]]:
        cfg = self._config
        duration = sampler.duration
        width, height = cfg.feature.raster_width, cfg.feature.raster_height
        step = cfg.backfill_step_sec

        shots: List[Shot] = []
        frames: List[FrameFeature] = []
        for index, start in enumerate(plan.cuts):
            end = plan.next_boundary(start, duration)
            midpoint = start + (end - start) / 2.0
            raster = sampler.capture(midpoint, width, height)
            feature = worker.extract(raster, midpoint, cancel)
            shots.append(
                Shot(
                    shot_id=index + 1,
                    start=start,
                    end=end,
                    dominant_color=feature.hex_color,
                    thumbnail=encode_thumbnail(raster, cfg.sampler.thumbnail_quality),
                )
            )
            # backfill the frame series with the mid-shot feature
            offset = 0
            while start + offset * step < end:
                frames.append(replace(feature, timestamp=start + offset * step))
                offset += 1
            on_progress(end / duration * 100.0)
        return shots, frames


__all__ = [
    "Analyzer",
    "AnalyzerConfig",
    "DetectionMode",
    "DetectionPlan",
    "shot_starts",
]
