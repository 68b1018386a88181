"""HTTP job service for Cut Rhythm analysis."""

__version__ = "0.1.0"
