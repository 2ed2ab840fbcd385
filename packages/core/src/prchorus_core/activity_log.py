"""Daily JSONL activity log for a dispatcher queue.

Writes one JSON object per line to ``<log_dir>/<prefix>-YYYY-MM-DD.log``
and keeps the last seven days of files for that prefix.
"""

from __future__ import annotations

import json
import logging
import re
from datetime import date, datetime, timedelta, timezone
from pathlib import Path

logger = logging.getLogger(__name__)

MAX_LOG_DAYS = 7


def _today() -> str:
    return datetime.now(timezone.utc).date().isoformat()


class ActivityLog:
    def __init__(self, log_dir: str | Path, prefix: str, max_days: int = MAX_LOG_DAYS):
        self.log_dir = Path(log_dir)
        self.prefix = prefix
        self.max_days = max_days
        self._pattern = re.compile(rf"^{re.escape(prefix)}-(\d{{4}}-\d{{2}}-\d{{2}})\.log$")
        try:
            self.log_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.error("Failed to create log directory %s: %s", self.log_dir, e)
        self._cleanup_old_logs()

    def path_for(self, day: str) -> Path:
        return self.log_dir / f"{self.prefix}-{day}.log"

    def write(
        self,
        message: str,
        level: str = "info",
        entity_number: int | None = None,
        step_type: str | None = None,
    ) -> None:
        entry: dict = {"timestamp": datetime.now(timezone.utc).isoformat(), "level": level}
        if entity_number is not None:
            entry["entity_number"] = entity_number
        entry["message"] = message
        if step_type:
            entry["step_type"] = step_type
        try:
            with open(self.path_for(_today()), "a", encoding="utf-8") as f:
                f.write(json.dumps(entry) + "\n")
        except OSError as e:
            logger.error("Log file write error: %s", e)

    def entries(self, limit: int = 100) -> list[dict]:
        """The most recent ``limit`` entries of today's file; malformed lines are skipped."""
        path = self.path_for(_today())
        if not path.exists():
            return []
        try:
            lines = [line for line in path.read_text(encoding="utf-8").splitlines() if line.strip()]
        except OSError as e:
            logger.error("Failed to read log entries: %s", e)
            return []

        result = []
        for line in lines[-limit:]:
            try:
                result.append(json.loads(line))
            except json.JSONDecodeError:
                continue
        return result

    def _cleanup_old_logs(self) -> None:
        cutoff = date.fromisoformat(_today()) - timedelta(days=self.max_days)
        try:
            files = list(self.log_dir.iterdir())
        except OSError as e:
            logger.error("Failed to clean up old logs: %s", e)
            return
        for path in files:
            match = self._pattern.match(path.name)
            if not match:
                continue
            try:
                file_date = date.fromisoformat(match.group(1))
            except ValueError:
                continue
            if file_date < cutoff:
                path.unlink(missing_ok=True)
                logger.debug("Removed old log file: %s", path.name)
