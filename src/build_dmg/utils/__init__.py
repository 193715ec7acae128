"""Utility modules for the disk image builder."""

from build_dmg.utils.logging import BuildLogger, rotate_logs
from build_dmg.utils.process import OutputSink, ProcessRunner

__all__ = ["BuildLogger", "OutputSink", "ProcessRunner", "rotate_logs"]
