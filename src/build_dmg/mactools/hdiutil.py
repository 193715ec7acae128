"""Thin async wrapper over hdiutil, the macOS virtual disk primitive.

Each function runs one hdiutil verb through a ProcessRunner and raises
ToolError (with the captured output) when it exits non-zero.
"""

import plistlib
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from build_dmg.errors import ToolError
from build_dmg.utils.process import ProcessRunner

HDIUTIL = "hdiutil"


class ImageFormat(Enum):
    """Disk image formats understood by hdiutil."""

    UDRW = "UDRW"  # read/write
    UDRO = "UDRO"  # read-only
    UDZO = "UDZO"  # zlib compressed
    UDBZ = "UDBZ"  # bzip2 compressed

    @property
    def compressed(self) -> bool:
        return self in (ImageFormat.UDZO, ImageFormat.UDBZ)

    @classmethod
    def parse(cls, value: "str | ImageFormat | None") -> "ImageFormat":
        """Parse a format name, defaulting to UDZO when empty."""
        if isinstance(value, ImageFormat):
            return value
        if not value:
            return cls.UDZO
        try:
            return cls(value.upper())
        except ValueError:
            valid = ", ".join(f.value for f in cls)
            raise ValueError(f"invalid format: {value}. Valid formats: {valid}") from None


@dataclass
class MountedImage:
    """One entry of `hdiutil info`: an attached image and its mount points."""

    image_path: Path
    mount_points: list[Path] = field(default_factory=list)


async def create(
    runner: ProcessRunner,
    title: str,
    source_dir: Path,
    fmt: ImageFormat,
    out_path: Path,
    size_mb: int | None = None,
    compression_level: str | None = None,
) -> None:
    """Create an image from a folder, letting hdiutil size it unless size_mb is set.

    As with convert, the zlib level only applies to UDZO.
    """
    cmd = [
        HDIUTIL,
        "create",
        "-volname",
        title,
        "-srcfolder",
        str(source_dir),
        "-ov",
        "-fs",
        "HFS+",
        "-format",
        fmt.value,
    ]
    if size_mb is not None:
        cmd.extend(["-size", f"{size_mb}m"])
    if compression_level and fmt is ImageFormat.UDZO:
        cmd.extend(["-imagekey", f"zlib-level={compression_level}"])
    cmd.append(str(out_path))
    await runner.check(cmd)


async def create_with_size(
    runner: ProcessRunner,
    title: str,
    source_dir: Path,
    fmt: ImageFormat,
    out_path: Path,
    size_mb: int,
) -> None:
    """Create an image with a pre-declared capacity in megabytes."""
    await create(runner, title, source_dir, fmt, out_path, size_mb=size_mb)


async def attach(runner: ProcessRunner, image_path: Path, mount_point: Path) -> None:
    """Attach image read/write at mount_point without showing it in Finder."""
    await runner.check([
        HDIUTIL,
        "attach",
        str(image_path),
        "-mountpoint",
        str(mount_point),
        "-readwrite",
        "-nobrowse",
        "-noverify",
        "-noautoopen",
    ])


async def detach(runner: ProcessRunner, mount_point: Path, force: bool = False) -> None:
    """Detach the volume mounted at mount_point."""
    cmd = [HDIUTIL, "detach", str(mount_point)]
    if force:
        cmd.append("-force")
    await runner.check(cmd)


async def convert(
    runner: ProcessRunner,
    src_path: Path,
    fmt: ImageFormat,
    out_path: Path,
    compression_level: str | None = None,
) -> None:
    """Convert src_path into fmt at out_path.

    The zlib level only applies to UDZO; other formats ignore it.
    """
    cmd = [HDIUTIL, "convert", str(src_path), "-format", fmt.value, "-o", str(out_path)]
    if compression_level and fmt is ImageFormat.UDZO:
        cmd.extend(["-imagekey", f"zlib-level={compression_level}"])
    await runner.check(cmd)


async def info(runner: ProcessRunner) -> list[MountedImage]:
    """List currently attached images with their mount points."""
    cmd = [HDIUTIL, "info", "-plist"]
    output = await runner.check(cmd)
    try:
        data = plistlib.loads(output.encode("utf-8"))
    except plistlib.InvalidFileException as e:
        raise ToolError(cmd, 0, f"unparseable plist: {e}") from e

    images: list[MountedImage] = []
    for image in data.get("images", []):
        image_path = image.get("image-path")
        if not image_path:
            continue
        mount_points = [
            Path(entity["mount-point"])
            for entity in image.get("system-entities", [])
            if entity.get("mount-point")
        ]
        images.append(MountedImage(Path(image_path), mount_points))
    return images
