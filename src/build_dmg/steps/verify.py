"""Image verification step."""

from build_dmg.config import BuildConfig
from build_dmg.mactools.hdiutil import HDIUTIL
from build_dmg.steps.base import BuildStep, BuildStepError
from build_dmg.utils.process import OutputSink, ProcessRunner


class VerifyImageStep(BuildStep):
    """Check the checksum of the finished image with hdiutil verify."""

    def __init__(self) -> None:
        super().__init__("Verifying DMG...")

    async def execute(
        self,
        config: BuildConfig,
        runner: ProcessRunner,
        on_output: OutputSink,
    ) -> None:
        output_path = config.output_path.absolute()
        exit_code = await runner.run(
            [HDIUTIL, "verify", str(output_path)], on_output=on_output
        )
        if exit_code != 0:
            raise BuildStepError(
                self.name, f"verification of {output_path.name} failed", exit_code=exit_code
            )
        await on_output(f"\033[32m✓ {output_path.name} verified\033[0m\n")

    def should_run(self, config: BuildConfig) -> bool:
        """Skipped with --no-verify."""
        return config.verify
