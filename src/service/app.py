"""FastAPI job service around the Cut Rhythm analysis engine."""
from __future__ import annotations

import json
import logging
import threading
import time
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Optional
from uuid import uuid4

from fastapi import BackgroundTasks, FastAPI, HTTPException, Query

try:
    from . import __version__
except Exception:  # pragma: no cover - fallback for partial installs
    __version__ = "0.0.0+unknown"

from .config import (
    LOG_DIR,
    MAX_REPORT_BYTES,
    MAX_REPORT_FILES,
    MODEL_DIR,
    MODEL_DOWNLOAD,
    MODEL_PATH,
    MODEL_URL,
    SAMPLER_BACKEND,
    USE_MODEL,
    ensure_dirs,
)
from .db import get_job, init_db, insert_job, list_jobs, update_job
from .rotation import enforce_report_retention
from .schemas import (
    AnalyzeRequest,
    AnalyzeResponse,
    JobStatus,
    PipelineConfig,
    ResultResponse,
    StatusResponse,
    StopRequest,
)
from src.rhythm import (
    AnalysisCancelled,
    AnalysisError,
    Analyzer,
    AnalyzerConfig,
    CancellationToken,
    LearnedModelConfig,
    SamplerConfig,
)

REPORT_SCHEMA_VERSION = "1.0"

ensure_dirs()
init_db()

logger = logging.getLogger("cutrhythm.service")

app = FastAPI(title="Cut Rhythm Analysis Service", version=__version__)


@dataclass
class JobState:
    job_id: str
    status: JobStatus = JobStatus.PENDING
    progress: int = 0
    detection_mode: Optional[str] = None
    error: Optional[str] = None
    result: Optional[Dict[str, object]] = None
    cancel_token: CancellationToken = field(default_factory=CancellationToken)


_jobs: Dict[str, JobState] = {}
_jobs_lock = threading.Lock()


def _utcnow() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def _create_analyzer(config: PipelineConfig | None) -> Analyzer:
    sampler_cfg = SamplerConfig(backend=SAMPLER_BACKEND)
    model_cfg = LearnedModelConfig(
        enabled=USE_MODEL,
        model_path=MODEL_PATH,
        model_dir=MODEL_DIR,
        base_url=MODEL_URL,
        allow_download=MODEL_DOWNLOAD,
    )
    analyzer_config = AnalyzerConfig(sampler=sampler_cfg, model=model_cfg)

    if config:
        if config.sampler_backend:
            sampler_cfg.backend = config.sampler_backend
        if config.sample_step_sec is not None:
            analyzer_config.sample_step_sec = float(config.sample_step_sec)
        if config.use_model is not None:
            model_cfg.enabled = bool(config.use_model)
        if config.model_path:
            model_cfg.model_path = Path(config.model_path)
        if config.density_window_sec is not None:
            analyzer_config.analytics.density_window_sec = float(config.density_window_sec)
        if config.density_step_sec is not None:
            analyzer_config.analytics.density_step_sec = float(config.density_step_sec)

    return Analyzer(analyzer_config, logger)


def _set_state(job_id: str, **changes) -> None:
    with _jobs_lock:
        state = _jobs.get(job_id)
        if state is not None:
            _jobs[job_id] = replace(state, **changes)


def _progress_callback(job_id: str):
    def _update(percent: int) -> None:
        with _jobs_lock:
            state = _jobs.get(job_id)
            if state is not None:
                state.progress = percent

    return _update


def _write_report(job_id: str, report: Dict[str, object]) -> Optional[str]:
    path = LOG_DIR / f"{job_id}.json"
    try:
        path.write_text(json.dumps(report, ensure_ascii=False, indent=2), encoding="utf-8")
    except OSError as error:  # pragma: no cover - best effort logging
        logger.warning("Failed to write JSON report for %s: %s", job_id, error)
        return None
    enforce_report_retention(LOG_DIR, MAX_REPORT_FILES, MAX_REPORT_BYTES)
    return str(path)


def _run_job(job_id: str, payload: AnalyzeRequest) -> None:
    with _jobs_lock:
        state = _jobs[job_id]
        token = state.cancel_token
        state.status = JobStatus.RUNNING
    update_job(job_id, status=JobStatus.RUNNING.value)

    started = time.perf_counter()
    analyzer = _create_analyzer(payload.config)
    try:
        result = analyzer.analyze_path(
            payload.video_path,
            edl_path=payload.edl_path,
            edl=payload.edl_text,
            file_name=payload.file_name,
            on_progress=_progress_callback(job_id),
            cancel_token=token,
        )
    except AnalysisCancelled:
        _set_state(job_id, status=JobStatus.CANCELLED)
        update_job(job_id, status=JobStatus.CANCELLED.value, finished_at=_utcnow())
        logger.info("Job %s cancelled after %.2fs", job_id, time.perf_counter() - started)
        return
    except Exception as error:
        _set_state(job_id, status=JobStatus.FAILED, error=str(error))
        update_job(job_id, status=JobStatus.FAILED.value, error=str(error), finished_at=_utcnow())
        if isinstance(error, (AnalysisError, OSError)):
            logger.error("Job %s failed: %s", job_id, error)
        else:
            logger.exception("Job %s failed unexpectedly", job_id)
        return

    report = result.to_dict()
    report["job_id"] = job_id
    report["schema_version"] = REPORT_SCHEMA_VERSION
    report["service_version"] = __version__
    json_path = _write_report(job_id, report)

    _set_state(
        job_id,
        status=JobStatus.COMPLETED,
        progress=100,
        detection_mode=result.detection_mode,
        result=report,
    )
    update_job(
        job_id,
        status=JobStatus.COMPLETED.value,
        finished_at=_utcnow(),
        detection_mode=result.detection_mode,
        shots=len(result.shots),
        duration=result.duration,
        asl=result.asl,
        msl=result.msl,
        json_path=json_path,
    )
    logger.info(
        "Job %s completed in %.2fs (shots=%d, mode=%s)",
        job_id,
        time.perf_counter() - started,
        len(result.shots),
        result.detection_mode,
    )


@app.get("/health")
def health():
    return {"status": "ok", "service": "cutrhythm", "version": __version__}


@app.post("/analyze", response_model=AnalyzeResponse)
def analyze(payload: AnalyzeRequest, background_tasks: BackgroundTasks) -> AnalyzeResponse:
    """Register an analysis job and run it after the response is sent."""

    if not Path(payload.video_path).is_file():
        raise HTTPException(status_code=404, detail="Video file not found")

    job_id = uuid4().hex
    insert_job(
        {
            "id": job_id,
            "created_at": _utcnow(),
            "video_path": payload.video_path,
            "edl_path": payload.edl_path,
            "status": JobStatus.PENDING.value,
        }
    )
    with _jobs_lock:
        _jobs[job_id] = JobState(job_id=job_id)
    background_tasks.add_task(_run_job, job_id, payload)
    return AnalyzeResponse(job_id=job_id, status=JobStatus.PENDING)


def _get_state(job_id: str) -> JobState:
    with _jobs_lock:
        state = _jobs.get(job_id)
    if state is None:
        raise HTTPException(status_code=404, detail="Unknown job id")
    return state


@app.get("/status/{job_id}", response_model=StatusResponse)
def status(job_id: str) -> StatusResponse:
    state = _get_state(job_id)
    return StatusResponse(
        job_id=job_id,
        status=state.status,
        progress=state.progress,
        detection_mode=state.detection_mode,
        error=state.error,
    )


@app.get("/result/{job_id}", response_model=ResultResponse)
def result(job_id: str) -> ResultResponse:
    state = _get_state(job_id)
    if state.status != JobStatus.COMPLETED or state.result is None:
        raise HTTPException(status_code=409, detail=f"Job is {state.status.value}")
    return ResultResponse(**state.result)


@app.get("/jobs")
def jobs(
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    status: Optional[JobStatus] = None,
):
    return list_jobs(limit=limit, offset=offset, status=status.value if status else None)


@app.get("/jobs/{job_id}")
def job_detail(job_id: str):
    record = get_job(job_id)
    if record is None:
        raise HTTPException(status_code=404, detail="Unknown job id")
    return record


@app.post("/jobs/{job_id}/stop")
def stop_job(job_id: str, payload: StopRequest | None = None):
    state = _get_state(job_id)
    if state.status in {JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED}:
        return {"job_id": job_id, "status": state.status}
    state.cancel_token.cancel()
    logger.info("Stop requested for job %s (%s)", job_id, payload.reason if payload else "no reason")
    return {"job_id": job_id, "status": state.status, "cancel_requested": True}
