"""Pydantic models for the analysis service."""
from __future__ import annotations

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


class JobStatus(str, Enum):
    """Lifecycle states for analysis jobs."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class PipelineConfig(BaseModel):
    sampler_backend: Optional[str] = Field(None, description="Video backend: auto|opencv|ffmpeg")
    sample_step_sec: Optional[float] = Field(
        None,
        gt=0.0,
        description="Override the size-based sampling step for heuristic detection",
    )
    use_model: Optional[bool] = Field(None, description="Try learned-model detection before heuristics")
    model_path: Optional[str] = Field(None, description="Explicit path to an ONNX shot boundary model")
    density_window_sec: Optional[float] = Field(None, gt=0.0)
    density_step_sec: Optional[float] = Field(None, gt=0.0)


class AnalyzeRequest(BaseModel):
    """Payload for starting an analysis job."""

    video_path: str = Field(..., description="Absolute path to the video file")
    edl_path: Optional[str] = Field(None, description="Optional EDL file with authoritative cuts")
    edl_text: Optional[str] = Field(None, description="Inline EDL text; takes precedence over edl_path")
    file_name: Optional[str] = Field(None, description="Display name; defaults to the video file name")
    config: Optional[PipelineConfig] = None


class AnalyzeResponse(BaseModel):
    job_id: str
    status: JobStatus


class StatusResponse(BaseModel):
    job_id: str
    status: JobStatus
    progress: int = Field(0, ge=0, le=100)
    detection_mode: Optional[str] = None
    error: Optional[str] = None


class ShotModel(BaseModel):
    id: int
    start_time: float
    end_time: float
    duration: float
    dominant_color: str
    thumbnail: str = ""


class FrameModel(BaseModel):
    time: float
    hue: float
    saturation: float
    brightness: float
    hex: str


class DensityModel(BaseModel):
    time: float
    density: float


class PaletteModel(BaseModel):
    color: str
    thumbnail: str = ""


class PolarModel(BaseModel):
    time: float
    hue: float
    saturation: float
    color: str


class ResultResponse(BaseModel):
    job_id: str
    file_name: str
    duration: float
    detection_mode: str
    asl: float
    msl: float
    shots: List[ShotModel] = Field(default_factory=list)
    frames: List[FrameModel] = Field(default_factory=list)
    cutting_density: List[DensityModel] = Field(default_factory=list)
    palette: List[PaletteModel] = Field(default_factory=list)
    polar_data: List[PolarModel] = Field(default_factory=list)


class StopRequest(BaseModel):
    reason: Optional[str] = None
