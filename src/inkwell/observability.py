"""Observability event log for Inkwell - JSONL files, one per day."""

import fcntl
import json
import logging
import time
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

from .defaults import data_dir

logger = logging.getLogger(__name__)


class ObservabilityLogger:
    """Process-safe JSONL event logger with daily files.

    Events record background sync outcomes and provider calls so a failed
    mirror can be diagnosed after the fact without surfacing it to the user.
    """

    def __init__(self, base_dir: Path | None = None):
        """Create the event directory if needed.

        Args:
            base_dir: Where the daily files go; $XDG_DATA_HOME/inkwell/observability
                when omitted
        """
        self.base_dir = base_dir or data_dir() / "observability"
        self.base_dir.mkdir(parents=True, exist_ok=True)

    def log(self, event: str, **metadata: Any) -> None:
        """Append an event to today's JSONL file.

        Never raises: a write failure is reported through stdlib logging and
        the event is dropped.

        Args:
            event: Event name (e.g., "sync.failed", "review.generated")
            **metadata: Additional event metadata
        """
        today = datetime.now().strftime("%Y-%m-%d")
        log_file = self.base_dir / f"{today}_events.jsonl"

        entry = {
            "ts": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "event": event,
            **metadata,
        }

        for attempt in range(3):
            try:
                with open(log_file, "a") as f:
                    fcntl.flock(f.fileno(), fcntl.LOCK_EX)
                    try:
                        f.write(json.dumps(entry, default=str) + "\n")
                        f.flush()
                    finally:
                        fcntl.flock(f.fileno(), fcntl.LOCK_UN)
                return
            except BlockingIOError:
                if attempt < 2:
                    time.sleep(0.01 * (attempt + 1))
                else:
                    logger.warning(f"Failed to log event after 3 attempts: {event}")
            except OSError as e:
                logger.warning(f"Error logging event '{event}': {e}")
                return

    def read_events(self, day: str | None = None) -> list[dict[str, Any]]:
        """Return the events recorded on ``day`` (YYYY-MM-DD, default today)."""
        day = day or datetime.now().strftime("%Y-%m-%d")
        log_file = self.base_dir / f"{day}_events.jsonl"
        if not log_file.exists():
            return []

        events = []
        for line in log_file.read_text().splitlines():
            try:
                events.append(json.loads(line))
            except json.JSONDecodeError:
                continue
        return events

    def cleanup_old_files(self, retention_days: int = 30) -> int:
        """Delete daily event files dated more than ``retention_days`` ago.

        Files whose names carry no date are left alone.

        Returns:
            Number of files removed
        """
        if not self.base_dir.exists():
            return 0

        cutoff_date = datetime.now() - timedelta(days=retention_days)
        removed_count = 0

        for file_path in self.base_dir.glob("*_events.jsonl"):
            try:
                file_date = datetime.strptime(file_path.stem.split("_")[0], "%Y-%m-%d")
            except ValueError:
                continue

            if file_date < cutoff_date:
                try:
                    file_path.unlink()
                    removed_count += 1
                except OSError as e:
                    logger.warning(f"Error removing old file {file_path}: {e}")

        return removed_count


_logger: ObservabilityLogger | None = None


def get_logger() -> ObservabilityLogger:
    """The shared logger, created on first use under the data dir."""
    global _logger
    if _logger is None:
        _logger = ObservabilityLogger()
    return _logger


def configure(base_dir: Path | None = None) -> ObservabilityLogger:
    """Point the process-wide logger at ``base_dir`` (tests, custom data dirs)."""
    global _logger
    _logger = ObservabilityLogger(base_dir)
    return _logger


def log(event: str, **metadata: Any) -> None:
    """Record one event in the shared log.

    Usage:
        from inkwell.observability import log as obs_log
        obs_log("sync.failed", store="poems", entity="abc", error="timeout")
    """
    get_logger().log(event, **metadata)
