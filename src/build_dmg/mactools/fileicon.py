"""Custom icon and visibility attributes via the Xcode command line tools.

Volumes get their icon from a hidden .VolumeIcon.icns at the root plus the
"custom icon" Finder flag. Plain files (the finished .dmg) carry the icon as
an icns resource in their resource fork, appended with Rez.
"""

import shutil
import tempfile
from pathlib import Path

from build_dmg.errors import StagingError
from build_dmg.utils.process import ProcessRunner

VOLUME_ICON_NAME = ".VolumeIcon.icns"


async def set_volume_icon(runner: ProcessRunner, mount_point: Path, icon_path: Path) -> None:
    """Install icon_path as the custom icon of the volume at mount_point."""
    icon_file = mount_point / VOLUME_ICON_NAME
    try:
        shutil.copyfile(icon_path, icon_file)
    except OSError as e:
        raise StagingError(icon_path, f"failed to copy icon to {mount_point} ({e})") from e
    await runner.check(["SetFile", "-c", "icnC", str(icon_file)])
    await runner.check(["SetFile", "-a", "C", str(mount_point)])


async def hide_path(runner: ProcessRunner, path: Path) -> None:
    """Set the Finder invisible flag on path."""
    await runner.check(["SetFile", "-a", "V", str(path)])


async def mark_custom_icon(runner: ProcessRunner, path: Path) -> None:
    """Set the Finder "has custom icon" flag on path."""
    await runner.check(["SetFile", "-a", "C", str(path)])


async def set_file_icon(runner: ProcessRunner, file_path: Path, icon_path: Path) -> None:
    """Embed icon_path into the resource fork of file_path.

    Steps: copy the icon, let sips add an icns resource to the copy, extract
    that resource with DeRez, append it to the target with Rez and finally
    flag the target as having a custom icon.
    """
    with tempfile.TemporaryDirectory(suffix="-build-dmg-icon") as temp_dir:
        temp_icon = Path(temp_dir) / "icon.icns"
        shutil.copyfile(icon_path, temp_icon)

        await runner.check(["sips", "-i", str(temp_icon)])
        resource = await runner.check(["DeRez", "-only", "icns", str(temp_icon)])

        rsrc_path = Path(temp_dir) / "icns.rsrc"
        rsrc_path.write_text(resource, encoding="utf-8")

        await runner.check(["Rez", "-append", str(rsrc_path), "-o", str(file_path)])
    await mark_custom_icon(runner, file_path)
