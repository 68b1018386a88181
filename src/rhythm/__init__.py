"""Shot rhythm and color analysis pipeline for Cut Rhythm."""

from .analytics import AnalyticsConfig
from .analyzer import Analyzer, AnalyzerConfig, DetectionMode, DetectionPlan
from .edl import EdlParseResult, parse_edl
from .errors import AnalysisCancelled, AnalysisError, VideoLoadError
from .features import ExtractionWorker, FeatureExtractionError, FeatureExtractor, FeatureExtractorConfig
from .heuristic import CutThresholds, HeuristicConfig, HeuristicCutDetector
from .learned import LearnedCutDetector, LearnedModelConfig, ModelRegistry
from .progress import CancellationToken, ProgressReporter
from .sampler import FrameSampler, SamplerConfig, SamplingError, VideoFile, VideoSource
from .types import (
    AnalysisResult,
    DensityPoint,
    FrameFeature,
    PaletteItem,
    PolarPoint,
    Shot,
)

__all__ = [
    "AnalysisCancelled",
    "AnalysisError",
    "AnalysisResult",
    "AnalyticsConfig",
    "Analyzer",
    "AnalyzerConfig",
    "CancellationToken",
    "CutThresholds",
    "DensityPoint",
    "DetectionMode",
    "DetectionPlan",
    "EdlParseResult",
    "ExtractionWorker",
    "FeatureExtractionError",
    "FeatureExtractor",
    "FeatureExtractorConfig",
    "FrameFeature",
    "FrameSampler",
    "HeuristicConfig",
    "HeuristicCutDetector",
    "LearnedCutDetector",
    "LearnedModelConfig",
    "ModelRegistry",
    "PaletteItem",
    "PolarPoint",
    "ProgressReporter",
    "SamplerConfig",
    "SamplingError",
    "Shot",
    "VideoFile",
    "VideoLoadError",
    "VideoSource",
    "parse_edl",
]
