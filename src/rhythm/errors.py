"""Exception types shared across the pipeline."""
from __future__ import annotations


class AnalysisError(RuntimeError):
    """Base class for errors that abort an analysis run."""


class VideoLoadError(AnalysisError):
    """Raised when the video cannot be opened or has no usable duration."""


class AnalysisCancelled(Exception):
    """Raised when a run is aborted through its cancellation token.

    Deliberately not an ``AnalysisError``: callers report it as a distinct
    outcome rather than a failure.
    """
