"""Tests for the per-queue activity log."""

import json
from datetime import date, timedelta

from prchorus_core.activity_log import ActivityLog, _today


class TestActivityLog:
    def test_write_appends_json_lines(self, tmp_path):
        log = ActivityLog(tmp_path, "review")
        log.write("Queued", entity_number=7)
        log.write("Reading a.py", entity_number=7, step_type="reading")

        lines = log.path_for(_today()).read_text().splitlines()
        first, second = (json.loads(line) for line in lines)
        assert first["message"] == "Queued"
        assert first["entity_number"] == 7
        assert first["level"] == "info"
        assert "step_type" not in first
        assert second["step_type"] == "reading"

    def test_entries_returns_most_recent(self, tmp_path):
        log = ActivityLog(tmp_path, "review")
        for n in range(5):
            log.write(f"m{n}")
        assert [e["message"] for e in log.entries(limit=2)] == ["m3", "m4"]

    def test_entries_skip_malformed_lines(self, tmp_path):
        log = ActivityLog(tmp_path, "validation")
        log.write("ok")
        with open(log.path_for(_today()), "a") as f:
            f.write("not json\n")
        assert [e["message"] for e in log.entries()] == ["ok"]

    def test_entries_empty_when_no_file(self, tmp_path):
        assert ActivityLog(tmp_path, "review").entries() == []

    def test_old_files_removed_on_construction(self, tmp_path):
        old_day = (date.fromisoformat(_today()) - timedelta(days=10)).isoformat()
        recent_day = (date.fromisoformat(_today()) - timedelta(days=2)).isoformat()
        (tmp_path / f"review-{old_day}.log").write_text("{}\n")
        (tmp_path / f"review-{recent_day}.log").write_text("{}\n")
        (tmp_path / f"validation-{old_day}.log").write_text("{}\n")
        (tmp_path / "notes.txt").write_text("keep")

        ActivityLog(tmp_path, "review")

        assert not (tmp_path / f"review-{old_day}.log").exists()
        assert (tmp_path / f"review-{recent_day}.log").exists()
        assert (tmp_path / f"validation-{old_day}.log").exists()
        assert (tmp_path / "notes.txt").exists()

    def test_creates_missing_directory(self, tmp_path):
        log = ActivityLog(tmp_path / "nested" / "logs", "review")
        log.write("hello")
        assert log.entries()[0]["message"] == "hello"
