"""SQLite job history for the Cut Rhythm service."""
from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Mapping, Optional

from .config import DATA_DIR, ensure_dirs

DB_PATH = DATA_DIR / "cutrhythm.db"

JOB_COLUMNS = (
    "id",
    "created_at",
    "finished_at",
    "video_path",
    "edl_path",
    "status",
    "detection_mode",
    "shots",
    "duration",
    "asl",
    "msl",
    "json_path",
    "error",
)
SUMMARY_COLUMNS = ("id", "created_at", "finished_at", "video_path", "status", "detection_mode", "shots", "duration")

_SCHEMA = """
CREATE TABLE IF NOT EXISTS jobs (
    id TEXT PRIMARY KEY,
    created_at TEXT NOT NULL,
    finished_at TEXT,
    video_path TEXT NOT NULL,
    edl_path TEXT,
    status TEXT NOT NULL,
    detection_mode TEXT,
    shots INTEGER,
    duration REAL,
    asl REAL,
    msl REAL,
    json_path TEXT,
    error TEXT
);
CREATE INDEX IF NOT EXISTS idx_jobs_created_at ON jobs (created_at DESC);
CREATE INDEX IF NOT EXISTS idx_jobs_status ON jobs (status);
"""


def _check_columns(names) -> None:
    unknown = sorted(set(names) - set(JOB_COLUMNS))
    if unknown:
        raise ValueError(f"Unknown job column(s): {', '.join(unknown)}")


@contextmanager
def _session() -> Iterator[sqlite3.Connection]:
    ensure_dirs()
    conn = sqlite3.connect(DB_PATH)
    conn.row_factory = sqlite3.Row
    try:
        with conn:
            yield conn
    finally:
        conn.close()


def init_db() -> None:
    with _session() as conn:
        conn.executescript(_SCHEMA)


def insert_job(job: Mapping[str, Any]) -> None:
    _check_columns(job)
    names = list(job)
    sql = "INSERT INTO jobs ({}) VALUES ({})".format(
        ", ".join(names),
        ", ".join("?" for _ in names),
    )
    with _session() as conn:
        conn.execute(sql, [job[name] for name in names])


def update_job(job_id: str, **fields: Any) -> None:
    if not fields:
        return
    _check_columns(fields)
    names = list(fields)
    sql = "UPDATE jobs SET {} WHERE id = ?".format(", ".join(f"{name} = ?" for name in names))
    with _session() as conn:
        conn.execute(sql, [fields[name] for name in names] + [job_id])


def get_job(job_id: str) -> Optional[Dict[str, Any]]:
    with _session() as conn:
        row = conn.execute("SELECT * FROM jobs WHERE id = ?", (job_id,)).fetchone()
    return dict(row) if row is not None else None


def list_jobs(limit: int = 50, offset: int = 0, status: Optional[str] = None) -> List[Dict[str, Any]]:
    """Most recent jobs first, optionally restricted to one status."""

    sql = f"SELECT {', '.join(SUMMARY_COLUMNS)} FROM jobs"
    params: List[Any] = []
    if status:
        sql += " WHERE status = ?"
        params.append(status)
    sql += " ORDER BY created_at DESC LIMIT ? OFFSET ?"
    params.extend([max(1, min(limit, 500)), max(0, offset)])
    with _session() as conn:
        return [dict(row) for row in conn.execute(sql, params).fetchall()]


__all__ = ["DB_PATH", "JOB_COLUMNS", "init_db", "insert_job", "update_job", "get_job", "list_jobs"]
