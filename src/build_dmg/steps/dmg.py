"""Disk image creation step."""

from build_dmg.builder import ImageBuilder
from build_dmg.config import BuildConfig
from build_dmg.errors import DMGError, ToolError
from build_dmg.steps.base import BuildStep, BuildStepError
from build_dmg.utils.process import OutputSink, ProcessRunner


class DMGCreateStep(BuildStep):
    """Stage the contents and build the image."""

    def __init__(self) -> None:
        """Initialize the DMG creation step."""
        super().__init__("Creating DMG...")

    async def execute(
        self,
        config: BuildConfig,
        runner: ProcessRunner,
        on_output: OutputSink,
    ) -> None:
        """Build the image described by config.

        Args:
            config: Build configuration
            runner: Process runner for executing commands
            on_output: Async callback for progress output

        Raises:
            BuildStepError: If the image cannot be built
        """
        await on_output(f"Output: {config.output_path}\n")
        try:
            output_path = await ImageBuilder(config, runner, on_output).build()
        except ToolError as e:
            raise BuildStepError(self.name, str(e), exit_code=e.exit_code) from e
        except DMGError as e:
            raise BuildStepError(self.name, str(e)) from e

        await on_output(f"\033[32m✓ DMG created: {output_path}\033[0m\n")
