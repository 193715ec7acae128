"""Plain colored output for --simple mode and CI."""

from __future__ import annotations

import sys
from typing import TYPE_CHECKING

from build_dmg.steps.base import StepStatus

if TYPE_CHECKING:
    from build_dmg.utils.logging import BuildLogger


# ANSI color codes
BLUE = "\033[0;34m"
CYAN = "\033[0;36m"
GREEN = "\033[0;32m"
YELLOW = "\033[1;33m"
RED = "\033[0;31m"
DIM = "\033[2m"
NC = "\033[0m"  # No color

STATUS_LABELS = {
    StepStatus.SUCCESS: ("[SUCCESS]", GREEN),
    StepStatus.FAILED: ("[FAILED ]", RED),
    StepStatus.RUNNING: ("[RUNNING]", YELLOW),
    StepStatus.PENDING: ("[PENDING]", DIM),
}


class SimpleUI:
    """Line-oriented UI writing to stdout.

    Colors are only emitted when stdout is a TTY; the log file always gets
    the plain text.
    """

    def __init__(self, logger: BuildLogger | None = None) -> None:
        self.is_tty = sys.stdout.isatty()
        self.step_statuses: list[tuple[str, StepStatus]] = []
        self.logger = logger

    def _color(self, code: str) -> str:
        return code if self.is_tty else ""

    def _emit(self, text: str, color: str = "") -> None:
        """Print one line (colored on a TTY) and log it."""
        print(f"{self._color(color)}{text}{self._color(NC) if color else ''}")
        if self.logger:
            self.logger.write_line(text)

    async def log_output(self, text: str) -> None:
        print(text, end="", flush=True)
        if self.logger:
            self.logger.write(text)

    async def log_step(self, step_num: int, total: int, name: str) -> None:
        print()
        self._emit(f"[{step_num}/{total}] {name}", CYAN)
        self.step_statuses.append((name, StepStatus.RUNNING))

    async def update_step_status(self, step_num: int, status: StepStatus) -> None:
        if 0 < step_num <= len(self.step_statuses):
            name = self.step_statuses[step_num - 1][0]
            self.step_statuses[step_num - 1] = (name, status)

    def log_error(self, message: str) -> None:
        self._emit(f"  ✗ ERROR: {message}", RED)

    def print_summary(
        self,
        steps: list[tuple[str, StepStatus]],
        success: bool,
        output_path: str | None = None,
        build_description: str | None = None,
    ) -> None:
        """Print the per-step results followed by the outcome."""
        print()
        self._emit("=== Build Summary ===", CYAN)

        width = max((len(name) for name, _ in steps), default=0)
        for i, (name, status) in enumerate(steps, 1):
            label, color = STATUS_LABELS[status]
            badge = f"{self._color(color)}{label}{self._color(NC)}"
            print(f"{badge} [{i}/{len(steps)}] {name:<{width}}")
            if self.logger:
                self.logger.write_line(f"{label} [{i}/{len(steps)}] {name}")

        print()
        if not success:
            self._emit("=== Build Failed ===", RED)
            return
        self._emit("=== Build Complete ===", GREEN)
        if output_path:
            self._emit(f"Output: {output_path}", BLUE)
        if build_description:
            self._emit(f"Image: {build_description}", BLUE)
