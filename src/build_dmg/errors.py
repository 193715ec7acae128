"""Exception hierarchy for disk image builds.

Every failure raised by the build pipeline derives from DMGError so the front
end can turn it into a failed step without catching unrelated exceptions.
"""

from pathlib import Path


class DMGError(Exception):
    """Base class for all disk image build failures."""


class SetupError(DMGError):
    """Invalid input detected before any external tool runs."""


class StagingError(DMGError):
    """A source entry could not be copied or linked into the staging area."""

    def __init__(self, path: Path | str, message: str) -> None:
        self.path = Path(path)
        super().__init__(f"{message}: {path}")


class ToolError(DMGError):
    """An external tool exited with a non-zero status."""

    def __init__(self, cmd: list[str], exit_code: int, output: str = "") -> None:
        self.cmd = cmd
        self.exit_code = exit_code
        self.output = output
        message = f"{' '.join(cmd)} failed with exit code {exit_code}"
        if output.strip():
            message = f"{message}, output: {output.strip()}"
        super().__init__(message)


class BuildTimeoutError(DMGError):
    """The build did not finish before its deadline."""

    def __init__(self, seconds: float) -> None:
        self.seconds = seconds
        super().__init__(f"Build did not finish within {seconds:g}s")
