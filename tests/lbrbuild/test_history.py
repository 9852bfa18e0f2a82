from __future__ import annotations

import json
from pathlib import Path

from lbrbuild.history import HistoryArchiver, history_dir_name


def test_history_dir_name_is_filesystem_safe() -> None:
    assert history_dir_name("2026-10-19T08:15:00Z") == "2026-10-19T08.15.00Z"
    assert history_dir_name("2026-10-19 08:15:00") == "2026-10-19_08.15.00"
    assert history_dir_name('a/b\\c"d') == "a-b-c-d"
    assert history_dir_name("   ") == "snapshot"


def test_archive_copies_temp_payload_and_plan(tmp_path: Path) -> None:
    temp_dir = tmp_path / "tmp"
    (temp_dir / "nested").mkdir(parents=True)
    (temp_dir / "joblog.txt").write_text("ok\n", encoding="utf-8")
    (temp_dir / "nested" / "spool.txt").write_text("spool\n", encoding="utf-8")
    plan = {"timestamp": "2026-10-19T08:15:00Z", "targets": [{"source": "a.c"}]}

    snapshot = HistoryArchiver(tmp_path / "history").archive(plan, temp_dir)

    assert snapshot.name == "2026-10-19T08.15.00Z"
    assert (snapshot / "joblog.txt").read_text(encoding="utf-8") == "ok\n"
    assert (snapshot / "nested" / "spool.txt").is_file()
    assert json.loads((snapshot / "compile-list.json").read_text(encoding="utf-8")) == plan


def test_archive_never_overwrites_a_snapshot(tmp_path: Path) -> None:
    archiver = HistoryArchiver(tmp_path / "history")
    plan = {"timestamp": "2026-10-19T08:15:00Z", "targets": []}

    first = archiver.archive(plan, tmp_path / "missing")
    second = archiver.archive(plan, tmp_path / "missing")
    third = archiver.archive(plan, tmp_path / "missing")

    assert [first.name, second.name, third.name] == [
        "2026-10-19T08.15.00Z",
        "2026-10-19T08.15.00Z-1",
        "2026-10-19T08.15.00Z-2",
    ]
    assert archiver.entries() == [first, second, third]


def test_archive_without_timestamp_uses_current_time(tmp_path: Path) -> None:
    snapshot = HistoryArchiver(tmp_path / "history").archive(None, tmp_path / "missing")

    assert snapshot.name.endswith("Z")
    assert json.loads((snapshot / "compile-list.json").read_text(encoding="utf-8")) == {}


def test_entries_of_missing_root_is_empty(tmp_path: Path) -> None:
    assert HistoryArchiver(tmp_path / "nothing").entries() == []
