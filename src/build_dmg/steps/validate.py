"""Input validation step."""

import shutil

from build_dmg.config import BuildConfig
from build_dmg.steps.base import BuildStep, BuildStepError
from build_dmg.utils.process import OutputSink, ProcessRunner


def required_tools(config: BuildConfig) -> list[str]:
    """Command line tools the build will invoke for config."""
    tools = ["hdiutil"]
    customized = (config.icon, config.background, config.file_icon_path)
    if any(path is not None for path in customized):
        tools.append("SetFile")
    if config.file_icon_path is not None:
        tools.extend(["sips", "DeRez", "Rez"])
    return tools


class ValidateSourcesStep(BuildStep):
    """Check configuration and tool availability before touching anything."""

    def __init__(self) -> None:
        super().__init__("Validating sources...")

    async def execute(
        self,
        config: BuildConfig,
        runner: ProcessRunner,
        on_output: OutputSink,
    ) -> None:
        """Validate the configuration and look up the required tools on PATH.

        Raises:
            BuildStepError: Listing every problem found
        """
        errors = config.validate()
        for tool in required_tools(config):
            if shutil.which(tool) is None:
                errors.append(f"Required tool not found on PATH: {tool}")
        if errors:
            raise BuildStepError(self.name, "\n  ".join(["invalid configuration:", *errors]))

        for item in config.contents:
            await on_output(f"  {item.kind.value:<4} {item.name} at ({item.x}, {item.y})\n")
        await on_output(f"\033[32m✓ {len(config.contents)} items ready\033[0m\n")
