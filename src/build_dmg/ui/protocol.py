"""Protocol definition for build UI."""

from typing import Protocol

from build_dmg.steps.base import StepStatus


class BuildUI(Protocol):
    """What the runner needs from a UI.

    Implemented by BuildApp (TUI) and SimpleUI.
    """

    async def log_output(self, text: str) -> None:
        """Show progress output (may contain ANSI escape codes)."""
        ...

    async def log_step(self, step_num: int, total: int, name: str) -> None:
        """Announce that step step_num of total starts."""
        ...

    async def update_step_status(self, step_num: int, status: StepStatus) -> None:
        """Record the new status of step step_num (1-indexed)."""
        ...

    def log_error(self, message: str) -> None:
        """Show an error message."""
        ...

    def print_summary(
        self,
        steps: list[tuple[str, StepStatus]],
        success: bool,
        output_path: str | None = None,
        build_description: str | None = None,
    ) -> None:
        """Show the final build summary.

        Args:
            steps: List of (step_name, status) tuples
            success: Whether build succeeded
            output_path: Path to the finished image (if successful)
            build_description: Description of the image being built
        """
        ...
