"""Build steps for disk images."""

from build_dmg.steps.base import BuildStep, BuildStepError, StepStatus
from build_dmg.steps.dmg import DMGCreateStep
from build_dmg.steps.validate import ValidateSourcesStep
from build_dmg.steps.verify import VerifyImageStep

__all__ = [
    "BuildStep",
    "BuildStepError",
    "StepStatus",
    "ValidateSourcesStep",
    "DMGCreateStep",
    "VerifyImageStep",
]
