"""Retention for JSON analysis reports."""
from __future__ import annotations

from pathlib import Path
from typing import List


def _report_files(report_dir: Path) -> List[Path]:
    if not report_dir.exists():
        return []
    return [entry for entry in report_dir.iterdir() if entry.is_file() and entry.suffix.lower() == ".json"]


def _size(path: Path) -> int:
    try:
        return path.stat().st_size
    except OSError:
        return 0


def enforce_report_retention(report_dir: Path, max_files: int, max_bytes: int) -> int:
    """Delete the oldest reports until both limits hold; returns how many were removed."""

    if max_files <= 0 and max_bytes <= 0:
        return 0
    reports = sorted(_report_files(report_dir), key=lambda path: path.stat().st_mtime, reverse=True)

    keep_bytes = 0
    removed = 0
    for position, report in enumerate(reports):
        keep_bytes += _size(report)
        over_count = max_files > 0 and position >= max_files
        over_bytes = max_bytes > 0 and keep_bytes > max_bytes and position > 0
        if not (over_count or over_bytes):
            continue
        try:
            report.unlink()
            removed += 1
        except FileNotFoundError:
            continue
    return removed


__all__ = ["enforce_report_retention"]
