"""Runtime configuration for the Cut Rhythm service."""
from __future__ import annotations

import os
from pathlib import Path
from typing import Optional, Tuple

from src.rhythm.learned import DEFAULT_MODEL_URL

_BASE_DIR = Path(os.environ.get("RHYTHM_BASE_DIR", ".")).resolve()

DATA_DIR = Path(os.environ.get("RHYTHM_DATA_DIR", _BASE_DIR / "data")).resolve()
LOG_DIR = Path(os.environ.get("RHYTHM_LOG_DIR", _BASE_DIR / "logs")).resolve()
MODEL_DIR = Path(os.environ.get("RHYTHM_MODEL_DIR", _BASE_DIR / "models")).resolve()

_model_path_raw = os.environ.get("RHYTHM_MODEL_PATH", "").strip()
MODEL_PATH: Optional[Path] = Path(_model_path_raw).resolve() if _model_path_raw else None
MODEL_URL = os.environ.get("RHYTHM_MODEL_URL", DEFAULT_MODEL_URL)
MODEL_DOWNLOAD = bool(int(os.environ.get("RHYTHM_MODEL_DOWNLOAD", "0")))
USE_MODEL = bool(int(os.environ.get("RHYTHM_USE_MODEL", "1")))

SAMPLER_BACKEND = os.environ.get("RHYTHM_SAMPLER_BACKEND", "auto")
MAX_REPORT_FILES = int(os.environ.get("RHYTHM_MAX_REPORT_FILES", "500"))
MAX_REPORT_BYTES = int(os.environ.get("RHYTHM_MAX_REPORT_BYTES", str(500 * 1024 * 1024)))


def ensure_dirs() -> Tuple[Path, Path]:
    DATA_DIR.mkdir(parents=True, exist_ok=True)
    LOG_DIR.mkdir(parents=True, exist_ok=True)
    MODEL_DIR.mkdir(parents=True, exist_ok=True)
    return DATA_DIR, LOG_DIR


__all__ = [
    "DATA_DIR",
    "LOG_DIR",
    "MODEL_DIR",
    "MODEL_PATH",
    "MODEL_URL",
    "MODEL_DOWNLOAD",
    "USE_MODEL",
    "SAMPLER_BACKEND",
    "MAX_REPORT_FILES",
    "MAX_REPORT_BYTES",
    "ensure_dirs",
]
