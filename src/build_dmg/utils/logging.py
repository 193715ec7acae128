"""Build log files with rotation.

Keeps up to N logs in the log directory (BUILD_DMG_MAX_LOGS, default 5):
- build.log (current/most recent)
- build.log.1 (previous)
- build.log.2, build.log.3, ... (older)
"""

import re
from pathlib import Path
from typing import TextIO

DEFAULT_MAX_LOGS = 5
LOG_NAME = "build.log"

ANSI_ESCAPE = re.compile(r"\x1B(?:[@-Z\\-_]|\[[0-?]*[ -/]*[@-~])")


def get_log_path(log_dir: Path, index: int = 0) -> Path:
    """Path of the log with the given age (0 = current, 1+ = older)."""
    if index == 0:
        return log_dir / LOG_NAME
    return log_dir / f"{LOG_NAME}.{index}"


def rotate_logs(log_dir: Path, max_logs: int = DEFAULT_MAX_LOGS) -> None:
    """Shift existing logs one slot older, dropping the oldest at the limit.

    Args:
        log_dir: Directory holding the logs (created if missing)
        max_logs: Maximum number of log files to keep
    """
    log_dir.mkdir(parents=True, exist_ok=True)

    oldest = get_log_path(log_dir, max_logs - 1)
    if oldest.exists():
        oldest.unlink()

    for i in range(max_logs - 2, -1, -1):
        current = get_log_path(log_dir, i)
        if current.exists():
            current.rename(get_log_path(log_dir, i + 1))


def strip_ansi(text: str) -> str:
    """Remove ANSI escape codes from text."""
    return ANSI_ESCAPE.sub("", text)


class BuildLogger:
    """Writes build output to the current log file.

    Args:
        log_dir: Directory for build.log and its rotated predecessors
        max_logs: Maximum number of log files to keep
    """

    def __init__(self, log_dir: Path, max_logs: int = DEFAULT_MAX_LOGS) -> None:
        self.log_dir = log_dir
        self.max_logs = max(1, max_logs)
        self.log_path = get_log_path(log_dir)
        self._file_handle: TextIO | None = None

    def start(self) -> None:
        """Rotate old logs and open a fresh build.log."""
        rotate_logs(self.log_dir, self.max_logs)
        self._file_handle = open(self.log_path, "w", encoding="utf-8")

    def write(self, text: str) -> None:
        """Append text (ANSI codes stripped) if the log is open."""
        if self._file_handle:
            self._file_handle.write(strip_ansi(text))
            self._file_handle.flush()

    def write_line(self, text: str) -> None:
        """Append text, adding a trailing newline if missing."""
        if not text.endswith("\n"):
            text = text + "\n"
        self.write(text)

    def close(self) -> None:
        if self._file_handle:
            self._file_handle.close()
            self._file_handle = None

    def __enter__(self) -> "BuildLogger":
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
