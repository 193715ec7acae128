"""Build runner that drives the steps and reports to a UI."""

from build_dmg.config import BuildConfig
from build_dmg.steps.base import BuildStep, BuildStepError, StepStatus
from build_dmg.steps.dmg import DMGCreateStep
from build_dmg.steps.validate import ValidateSourcesStep
from build_dmg.steps.verify import VerifyImageStep
from build_dmg.ui.protocol import BuildUI
from build_dmg.utils.process import ProcessRunner


def get_steps(config: BuildConfig) -> list[BuildStep]:
    """Steps to execute for config, in order."""
    all_steps: list[BuildStep] = [
        ValidateSourcesStep(),
        DMGCreateStep(),
        VerifyImageStep(),  # Skipped with --no-verify
    ]
    return [step for step in all_steps if step.should_run(config)]


async def run_build(
    config: BuildConfig,
    ui: BuildUI,
    runner: ProcessRunner | None = None,
) -> bool:
    """Run every step until one fails, then print the summary.

    Args:
        config: Build configuration
        ui: UI for output and status updates
        runner: Process runner (a fresh one by default)

    Returns:
        True if all steps succeeded
    """
    steps = get_steps(config)
    runner = runner or ProcessRunner()
    results: list[tuple[str, StepStatus]] = [(step.name, StepStatus.PENDING) for step in steps]
    success = True

    for i, step in enumerate(steps, 1):
        step.status = StepStatus.RUNNING
        await ui.log_step(i, len(steps), step.name)
        await ui.update_step_status(i, StepStatus.RUNNING)

        try:
            await step.execute(config, runner, ui.log_output)
        except BuildStepError as e:
            ui.log_error(str(e))
            step.status = StepStatus.FAILED
        except Exception as e:
            ui.log_error(f"Unexpected error in {step.name}: {e}")
            step.status = StepStatus.FAILED
        else:
            step.status = StepStatus.SUCCESS

        await ui.update_step_status(i, step.status)
        results[i - 1] = (step.name, step.status)
        if step.status is StepStatus.FAILED:
            success = False
            break

    ui.print_summary(
        steps=results,
        success=success,
        output_path=str(config.output_path) if success else None,
        build_description=config.build_description,
    )
    return success
