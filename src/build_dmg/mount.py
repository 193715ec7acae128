"""Scoped attach/detach of writable disk images.

Lifecycle of one invocation:

    Unattached -> Attached -> (customization) -> Detaching -> Unattached

Once attach succeeded, detach is attempted exactly once on every exit path
(normal return, exception in the body, cancellation). If it fails, the
volume is probably busy: force_detach() looks the image up in `hdiutil info`
and force-detaches every mount of it. Problems during this recovery are only
reported through the output sink so they never replace the error raised by
the customization itself.

The mount-point directory is removed afterwards, except when the volume is
still mounted there because both detach attempts failed. It is then left on
disk, since removing it would delete the files on the live volume.

Two invocations must not target the same image file at the same time; this
is left to the caller.
"""

import os
import shutil
import tempfile
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path

from build_dmg.errors import SetupError, ToolError
from build_dmg.mactools import hdiutil
from build_dmg.utils.process import OutputSink, ProcessRunner

Customizer = Callable[[Path, Path], Awaitable[None]]


@dataclass(frozen=True)
class MountedVolume:
    """A writable image attached at a private mount point."""

    image_path: Path
    mount_point: Path


async def force_detach(runner: ProcessRunner, image_path: Path, on_output: OutputSink) -> None:
    """Force-detach every mount of image_path. Never raises for tool failures."""
    try:
        images = await hdiutil.info(runner)
    except (ToolError, OSError) as e:
        await on_output(f"Warning: could not list attached images: {e}\n")
        return

    target = image_path.resolve()
    for image in images:
        if image.image_path.resolve() != target:
            continue
        for mount_point in image.mount_points:
            try:
                await hdiutil.detach(runner, mount_point, force=True)
                await on_output(f"Force-detached {mount_point}\n")
            except (ToolError, OSError) as e:
                await on_output(f"Warning: failed to force-detach {mount_point}: {e}\n")


async def _release(volume: MountedVolume, runner: ProcessRunner, on_output: OutputSink) -> None:
    try:
        await hdiutil.detach(runner, volume.mount_point)
    except (ToolError, OSError) as e:
        await on_output(f"Warning: failed to detach {volume.mount_point}: {e}\n")
        await force_detach(runner, volume.image_path, on_output)


async def _remove_mount_dir(work_dir: Path, mount_point: Path, on_output: OutputSink) -> None:
    if os.path.ismount(mount_point):
        # Removing it now would delete files on the still-attached volume
        await on_output(
            f"Warning: {mount_point} is still mounted after a forced detach; "
            f"leaving {work_dir} in place instead of removing it\n"
        )
        return
    try:
        shutil.rmtree(work_dir)
    except OSError as e:
        await on_output(f"Warning: failed to remove {work_dir}: {e}\n")


@asynccontextmanager
async def mounted(
    image_path: Path,
    runner: ProcessRunner,
    on_output: OutputSink,
    temp_dir: Path | None = None,
) -> AsyncIterator[MountedVolume]:
    """Attach image_path read/write for the duration of the block.

    Args:
        image_path: Writable image to attach
        runner: Process runner for hdiutil
        on_output: Sink for progress and cleanup warnings
        temp_dir: Parent for the ephemeral mount-point directory

    Raises:
        SetupError: If the mount-point directory cannot be created
        ToolError: If attaching fails (nothing needs detaching then)
    """
    try:
        work_dir = Path(tempfile.mkdtemp(suffix="-build-dmg-mount", dir=temp_dir))
    except OSError as e:
        raise SetupError(f"failed to create mount point directory: {e}") from e
    mount_point = work_dir / "mount"

    try:
        try:
            mount_point.mkdir()
        except OSError as e:
            raise SetupError(f"failed to create mount point {mount_point}: {e}") from e
        await on_output(f"Attaching {image_path.name} at {mount_point}\n")
        await hdiutil.attach(runner, image_path, mount_point)
        volume = MountedVolume(image_path, mount_point)
        try:
            yield volume
        finally:
            await _release(volume, runner, on_output)
    finally:
        await _remove_mount_dir(work_dir, mount_point, on_output)


async def run_mounted(
    image_path: Path,
    customize: Customizer,
    runner: ProcessRunner,
    on_output: OutputSink,
    temp_dir: Path | None = None,
) -> None:
    """Attach image_path, call customize(image_path, mount_point), then detach.

    An exception from customize propagates after the volume was detached.
    """
    async with mounted(image_path, runner, on_output, temp_dir) as volume:
        await customize(volume.image_path, volume.mount_point)
