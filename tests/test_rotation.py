from __future__ import annotations

import os

from src.service.rotation import enforce_report_retention


def _write(path, size, mtime):
    path.write_bytes(b"x" * size)
    os.utime(path, (mtime, mtime))


def test_keeps_newest_reports_by_count(tmp_path) -> None:
    for index in range(5):
        _write(tmp_path / f"job{index}.json", 10, 1_000 + index)
    (tmp_path / "notes.txt").write_text("keep me", encoding="utf-8")

    removed = enforce_report_retention(tmp_path, max_files=3, max_bytes=0)

    assert removed == 2
    assert sorted(path.name for path in tmp_path.glob("*.json")) == ["job2.json", "job3.json", "job4.json"]
    assert (tmp_path / "notes.txt").exists()


def test_byte_budget_always_keeps_the_newest(tmp_path) -> None:
    _write(tmp_path / "old.json", 60, 1_000)
    _write(tmp_path / "new.json", 120, 2_000)

    removed = enforce_report_retention(tmp_path, max_files=0, max_bytes=100)

    assert removed == 1
    assert [path.name for path in tmp_path.glob("*.json")] == ["new.json"]


def test_disabled_limits_and_missing_dir(tmp_path) -> None:
    assert enforce_report_retention(tmp_path / "missing", 1, 1) == 0
    _write(tmp_path / "a.json", 10, 1_000)
    assert enforce_report_retention(tmp_path, 0, 0) == 0
