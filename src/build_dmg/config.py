"""Configuration management for the disk image builder.

Loads configuration from, in increasing precedence:
- Built-in defaults
- pyproject.toml: the [tool.build-dmg] table of the project being packaged
- Environment variables (a .env file in the working directory is honoured)
- Command-line flags
"""

import os
import plistlib
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any

import tomllib
from dotenv import load_dotenv

from build_dmg.mactools.hdiutil import ImageFormat

IMAGE_EXTENSION = ".dmg"
APPLICATIONS_LINK = Path("/Applications")
VALID_COMPRESSION_LEVELS = {str(level) for level in range(1, 10)}
# zlib level for UDZO conversions that do not set one
DEFAULT_COMPRESSION_LEVEL = "6"


class ItemKind(Enum):
    """Kind of entry placed at the volume root."""

    DIR = "dir"
    FILE = "file"
    LINK = "link"


class BuildVariant(Enum):
    """Image assembly variants, see build_dmg.builder."""

    STANDARD = "standard"
    COMPRESSED = "compressed"
    DIRECT = "direct"
    EXACT_SIZE = "exact-size"
    HARD_LINK_SAFE = "hard-link-safe"


@dataclass(frozen=True)
class ContentItem:
    """One entry of the volume and its icon position in the Finder window."""

    kind: ItemKind
    path: Path
    x: int = 0
    y: int = 0

    @property
    def name(self) -> str:
        """Name of the entry on the volume (also its layout-metadata key)."""
        return Path(self.path).name

    @property
    def is_app_bundle(self) -> bool:
        return self.kind is ItemKind.DIR and self.name.endswith(".app")

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ContentItem":
        """Build an item from a [[tool.build-dmg.contents]] table."""
        return cls(
            kind=ItemKind(data.get("type", "file")),
            path=Path(data["path"]),
            x=int(data.get("x", 0)),
            y=int(data.get("y", 0)),
        )


@dataclass(frozen=True)
class EnvConfig:
    """Settings taken from the environment (local .env file or CI)."""

    temp_dir: Path | None = None
    timeout: float | None = None
    max_log_files: int = 5

    @classmethod
    def from_env(cls) -> "EnvConfig":
        tmp = os.environ.get("BUILD_DMG_TMPDIR")
        timeout = os.environ.get("BUILD_DMG_TIMEOUT")
        return cls(
            temp_dir=Path(tmp) if tmp else None,
            timeout=float(timeout) if timeout else None,
            max_log_files=int(os.environ.get("BUILD_DMG_MAX_LOGS", "5")),
        )


@dataclass(frozen=True)
class BuildConfig:
    """Everything one image build needs.

    The output name always ends in .dmg (defaulting to "<title>.dmg") and an
    empty format means UDZO; both are normalized on construction.
    """

    title: str
    contents: tuple[ContentItem, ...]
    output: Path | None = None
    icon: Path | None = None
    file_icon: Path | None = None
    background: Path | None = None
    window_width: int = 640
    window_height: int = 480
    label_size: int = 14
    icon_size: int = 128
    format: ImageFormat | str | None = ImageFormat.UDZO
    compression_level: str | None = None
    use_hard_links: bool = False
    optimize_app_size: bool = False
    variant: BuildVariant | None = None
    timeout: float | None = None
    temp_dir: Path | None = None
    max_log_files: int = 5
    verify: bool = True

    def __post_init__(self) -> None:
        output = Path(self.output) if self.output else Path(self.title + IMAGE_EXTENSION)
        if output.suffix != IMAGE_EXTENSION:
            output = output.with_name(output.name + IMAGE_EXTENSION)
        object.__setattr__(self, "output", output)
        object.__setattr__(self, "format", ImageFormat.parse(self.format))
        object.__setattr__(self, "contents", tuple(self.contents))
        level = self.compression_level
        object.__setattr__(self, "compression_level", str(level) if level else None)

    @property
    def image_format(self) -> ImageFormat:
        # __post_init__ guarantees an ImageFormat
        assert isinstance(self.format, ImageFormat)
        return self.format

    @property
    def output_path(self) -> Path:
        assert self.output is not None
        return self.output

    @property
    def file_icon_path(self) -> Path | None:
        """Icon embedded into the finished image file."""
        return self.file_icon or self.icon

    @property
    def main_app(self) -> ContentItem | None:
        """First application bundle among the contents."""
        return next((item for item in self.contents if item.is_app_bundle), None)

    @property
    def build_description(self) -> str:
        """Human-readable build description."""
        fmt = self.image_format
        description = f"{self.title} ({fmt.value}"
        if fmt is ImageFormat.UDZO and self.compression_level:
            description += f", level {self.compression_level}"
        if self.variant:
            description += f", {self.variant.value}"
        return description + ")"

    def validate(self) -> list[str]:
        """Validate configuration. Returns list of error messages."""
        errors: list[str] = []

        if not self.title:
            errors.append("Volume title must not be empty")
        if not self.contents:
            errors.append("No contents to put on the volume")
        if not 10 <= self.label_size <= 16:
            errors.append("label-size must be between 10 and 16")
        if not 16 <= self.icon_size <= 512:
            errors.append("contents-icon-size must be between 16 and 512")
        if self.compression_level and self.compression_level not in VALID_COMPRESSION_LEVELS:
            errors.append(
                f"invalid compression level: {self.compression_level}. Must be between 1-9"
            )

        seen: set[str] = set()
        for item in self.contents:
            if item.name in seen:
                errors.append(f"Duplicate entry name on volume: {item.name}")
            seen.add(item.name)
            if item.x < 0 or item.y < 0:
                errors.append(f"Negative icon position for {item.name}")
            if item.kind is ItemKind.LINK:
                continue
            if not item.path.exists():
                errors.append(f"Source not found: {item.path}")
            elif item.kind is ItemKind.DIR and not item.path.is_dir():
                errors.append(f"Not a directory: {item.path}")
            elif item.kind is ItemKind.FILE and not item.path.is_file():
                errors.append(f"Not a file: {item.path}")

        for label, path in (
            ("Icon", self.icon),
            ("File icon", self.file_icon),
            ("Background image", self.background),
        ):
            if path is not None and not path.is_file():
                errors.append(f"{label} not found: {path}")

        if self.variant is BuildVariant.EXACT_SIZE and self.main_app is None:
            errors.append("no .app directory found in contents")

        return errors


def default_contents(
    app_path: Path,
    window_width: int,
    window_height: int,
    icon_size: int,
    label_size: int,
) -> tuple[ContentItem, ...]:
    """The app bundle and an /Applications link side by side, centered vertically."""
    center_y = int(window_height / 2 - icon_size / 2) + label_size
    return (
        ContentItem(
            ItemKind.DIR,
            app_path,
            x=int(window_width / 3 * 1 - icon_size / 2),
            y=center_y,
        ),
        ContentItem(
            ItemKind.LINK,
            APPLICATIONS_LINK,
            x=int(window_width / 3 * 2 + icon_size / 2),
            y=center_y,
        ),
    )


def bundle_icon(app_path: Path) -> Path | None:
    """Locate the icon file declared by an application bundle, if any."""
    info_plist = app_path / "Contents" / "Info.plist"
    if not info_plist.is_file():
        return None
    with open(info_plist, "rb") as f:
        try:
            info = plistlib.load(f)
        except plistlib.InvalidFileException:
            return None

    icon_name = info.get("CFBundleIconFile")
    if not icon_name:
        return None
    icon_path = app_path / "Contents" / "Resources" / icon_name
    if not icon_path.suffix:
        icon_path = icon_path.with_suffix(".icns")
    return icon_path if icon_path.is_file() else None


def read_tool_settings(pyproject_path: Path) -> dict[str, Any]:
    """Read the [tool.build-dmg] table, or an empty dict if there is none."""
    if not pyproject_path.is_file():
        return {}
    with open(pyproject_path, "rb") as f:
        data = tomllib.load(f)
    settings = data.get("tool", {}).get("build-dmg", {})
    # TOML keys use dashes, CLI destinations use underscores
    return {key.replace("-", "_"): value for key, value in settings.items()}


def _optional_path(value: Any, base: Path) -> Path | None:
    if not value:
        return None
    path = Path(value).expanduser()
    return path if path.is_absolute() else base / path


def load_config(cli_settings: dict[str, Any], cwd: Path) -> BuildConfig:
    """Load all configuration - defaults, pyproject.toml, .env/environment, CLI.

    Args:
        cli_settings: Parsed CLI flags; None values mean "not given"
        cwd: Directory holding pyproject.toml and .env, base for relative paths

    Returns:
        Complete BuildConfig with all settings

    Raises:
        ValueError: If a setting cannot be interpreted
    """
    # Load .env file if it exists (no-op in CI where env vars are set directly)
    env_path = cwd / ".env"
    if env_path.exists():
        load_dotenv(env_path)
    env = EnvConfig.from_env()

    project_settings = read_tool_settings(cwd / "pyproject.toml")
    settings = dict(project_settings)
    settings.update({key: value for key, value in cli_settings.items() if value is not None})

    window_width = int(settings.get("window_width", 640))
    window_height = int(settings.get("window_height", 480))
    label_size = int(settings.get("label_size", 14))
    icon_size = int(settings.get("contents_icon_size", 128))

    app_path = _optional_path(settings.get("app"), cwd)
    if app_path is not None and app_path.suffix != ".app":
        raise ValueError(f"App path must end with .app: {app_path}")
    if "contents" in settings:
        contents = tuple(
            ContentItem.from_dict({**entry, "path": _optional_path(entry["path"], cwd)})
            for entry in settings["contents"]
        )
    elif app_path is not None:
        contents = default_contents(app_path, window_width, window_height, icon_size, label_size)
    else:
        raise ValueError("No app bundle given (use --app or [tool.build-dmg] app)")

    title = settings.get("title")
    if not title:
        first = app_path or (contents[0].path if contents else None)
        title = first.stem if first else ""

    icon = _optional_path(settings.get("icon"), cwd)
    if icon is None and app_path is not None:
        icon = bundle_icon(app_path)

    output = _optional_path(settings.get("out"), cwd) or cwd / f"{title}{IMAGE_EXTENSION}"

    variant = settings.get("variant")
    # CLI, then environment, then pyproject.toml
    timeout = cli_settings.get("timeout")
    if timeout is None:
        timeout = env.timeout if env.timeout is not None else project_settings.get("timeout")

    return BuildConfig(
        title=title,
        contents=contents,
        output=output,
        icon=icon,
        file_icon=_optional_path(settings.get("file_icon"), cwd),
        background=_optional_path(settings.get("background"), cwd),
        window_width=window_width,
        window_height=window_height,
        label_size=label_size,
        icon_size=icon_size,
        format=settings.get("format"),
        compression_level=settings.get("compression_level"),
        use_hard_links=bool(settings.get("use_hard_links", False)),
        optimize_app_size=bool(settings.get("optimize_app_size", False)),
        variant=BuildVariant(variant) if variant else None,
        timeout=float(timeout) if timeout else None,
        temp_dir=env.temp_dir,
        max_log_files=env.max_log_files,
        verify=not settings.get("no_verify", False),
    )
