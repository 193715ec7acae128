"""Image builder: turns a BuildConfig into a finished .dmg.

Build variants:

- STANDARD: stage, then create the image straight from the staging folder.
  With an icon or background the image goes through a writable
  intermediate that is mounted and customized first.
- COMPRESSED: stage, create a writable intermediate, mount and customize
  it, then convert to the requested compressed format.
- DIRECT: like the two above, but the staging area only holds links to
  the original items.
- EXACT_SIZE: create a writable image from the application bundle with a
  capacity estimated from the original contents, add the remaining items
  while mounted, then convert.
- HARD_LINK_SAFE: hard-link staging in its own area, pre-sized writable
  image, conversion when compressed.

Temporary artifacts (staging areas, the intermediate image, the mount
point) are removed on every exit path. A partially written output file is
removed when the build fails.
"""

import asyncio
import os
import shutil
import tempfile
import time
from collections.abc import AsyncIterator, Iterator
from contextlib import asynccontextmanager, contextmanager, suppress
from pathlib import Path

from build_dmg.config import (
    APPLICATIONS_LINK,
    DEFAULT_COMPRESSION_LEVEL,
    BuildConfig,
    BuildVariant,
    ContentItem,
    ItemKind,
)
from build_dmg.customize import customize_volume, write_layout
from build_dmg.errors import BuildTimeoutError, DMGError, SetupError
from build_dmg.mactools import fileicon, hdiutil
from build_dmg.mactools.hdiutil import ImageFormat
from build_dmg.mount import Customizer, force_detach, run_mounted
from build_dmg.sizing import CONSERVATIVE, LEAN, estimate_tree_mb
from build_dmg.staging import StagingStrategy, optimize_app_bundle, stage_contents
from build_dmg.utils.process import OutputSink, ProcessRunner

# The exact-size build compresses at the maximum level unless one is configured
EXACT_SIZE_COMPRESSION_LEVEL = "9"


def select_variant(config: BuildConfig) -> BuildVariant:
    """Pick the build variant for config.

    An explicit variant always wins. Otherwise hard-link staging selects
    HARD_LINK_SAFE and a compressed format selects COMPRESSED.
    """
    if config.variant is not None:
        return config.variant
    if config.use_hard_links:
        return BuildVariant.HARD_LINK_SAFE
    if config.image_format.compressed:
        return BuildVariant.COMPRESSED
    return BuildVariant.STANDARD


def select_strategy(config: BuildConfig, variant: BuildVariant) -> StagingStrategy:
    """Pick how contents are staged for variant."""
    match variant:
        case BuildVariant.HARD_LINK_SAFE:
            return StagingStrategy.SAFE_HARD_LINK
        case BuildVariant.DIRECT:
            return StagingStrategy.SYMLINK
        case _ if config.use_hard_links:
            return StagingStrategy.HARD_LINK
        case _:
            return StagingStrategy.COPY


def intermediate_path(output: Path) -> Path:
    """Unique name for the writable intermediate, next to the output."""
    return output.with_name(f"temp_{os.getpid()}_{time.time_ns()}_{output.name}")


class ImageBuilder:
    """Builds one disk image.

    Args:
        config: Build configuration
        runner: Process runner for the command line tools
        on_output: Sink for progress lines and warnings
    """

    def __init__(self, config: BuildConfig, runner: ProcessRunner, on_output: OutputSink) -> None:
        self.config = config
        self.runner = runner
        self.on_output = on_output
        self.output = config.output_path.absolute()

    async def build(self) -> Path:
        """Build the image and return the path of the finished file.

        Raises:
            SetupError: If the configuration is invalid or a directory cannot be created
            StagingError: If contents cannot be staged
            ToolError: If an external tool fails
            BuildTimeoutError: If config.timeout elapses first
        """
        errors = self.config.validate()
        if errors:
            raise SetupError("; ".join(errors))

        variant = select_variant(self.config)
        strategy = select_strategy(self.config, variant)
        await self.on_output(
            f"Building {self.config.build_description} as {variant.value} "
            f"using {strategy.value} staging\n"
        )

        try:
            if self.config.timeout is None:
                await self._build(variant, strategy)
            else:
                async with asyncio.timeout(self.config.timeout):
                    await self._build(variant, strategy)
        except TimeoutError as e:
            raise BuildTimeoutError(self.config.timeout or 0) from e

        await self.on_output(f"Created {self.output}\n")
        return self.output

    async def _build(self, variant: BuildVariant, strategy: StagingStrategy) -> None:
        self._prepare_output()
        if self.config.optimize_app_size:
            await self.optimize_contents()

        match variant:
            case BuildVariant.EXACT_SIZE:
                await self._build_exact_size()
            case BuildVariant.HARD_LINK_SAFE:
                await self._build_hard_link_safe(strategy)
            case BuildVariant.COMPRESSED:
                await self._build_compressed(strategy)
            case BuildVariant.DIRECT if self.config.image_format.compressed:
                await self._build_compressed(strategy)
            case _:
                await self._build_standard(strategy)

        await self._apply_file_icon()

    def _prepare_output(self) -> None:
        try:
            self.output.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise SetupError(f"failed to create output directory {self.output.parent}: {e}") from e
        if self.output.exists():
            try:
                self.output.unlink()
            except OSError as e:
                raise SetupError(f"failed to remove existing image {self.output}: {e}") from e

    async def optimize_contents(self) -> None:
        """Strip transient files from every application bundle. Failures are warnings."""
        for item in self.config.contents:
            if not item.is_app_bundle:
                continue
            try:
                removed = await asyncio.to_thread(optimize_app_bundle, item.path)
            except OSError as e:
                await self.on_output(f"Warning: failed to optimize {item.name}: {e}\n")
                continue
            if removed:
                await self.on_output(f"Removed {len(removed)} transient files from {item.name}\n")

    # Build variants

    async def _build_standard(self, strategy: StagingStrategy) -> None:
        async with self._staging_area("-build-dmg") as staging:
            await self._stage(staging, strategy)
            if self.config.icon is not None or self.config.background is not None:
                await self._assemble(staging, self._readonly_format(), self._compression_level())
                return

            await write_layout(self.config, staging)
            fmt = self.config.image_format
            if fmt is ImageFormat.UDRW:
                # Direct creation would leave the image writable
                await self._assemble(staging, ImageFormat.UDRO, customize=False)
                return
            with self._final_image():
                await hdiutil.create(
                    self.runner,
                    self.config.title,
                    staging,
                    fmt,
                    self.output,
                    compression_level=self._compression_level(),
                )

    async def _build_compressed(self, strategy: StagingStrategy) -> None:
        async with self._staging_area("-build-dmg") as staging:
            await self._stage(staging, strategy)
            await self._assemble(staging, self.config.image_format, self._compression_level())

    async def _build_exact_size(self) -> None:
        app = self.config.main_app
        if app is None:
            raise SetupError("no .app directory found in contents")

        sources = [item.path for item in self.config.contents if item.kind is not ItemKind.LINK]
        size_mb = await asyncio.to_thread(estimate_tree_mb, sources, CONSERVATIVE)
        await self.on_output(f"Estimated image size: {size_mb} MB\n")

        others = tuple(
            item
            for item in self.config.contents
            if item is not app and not _is_applications_link(item)
        )

        async def populate(image_path: Path, mount_point: Path) -> None:
            link = mount_point / APPLICATIONS_LINK.name
            if not os.path.lexists(link):
                await asyncio.to_thread(os.symlink, APPLICATIONS_LINK, link)
            if others:
                await asyncio.to_thread(
                    stage_contents,
                    self.config,
                    mount_point,
                    StagingStrategy.COPY,
                    others,
                    False,
                )
            await customize_volume(mount_point, self.config, self.runner, self.on_output)

        fmt = self.config.image_format
        target = fmt if fmt.compressed else ImageFormat.UDZO
        level = self._compression_level(EXACT_SIZE_COMPRESSION_LEVEL)
        await self._assemble(app.path, target, level, size_mb=size_mb, customizer=populate)

    async def _build_hard_link_safe(self, strategy: StagingStrategy) -> None:
        async with self._staging_area("-build-dmg-safe") as staging:
            await self._stage(staging, strategy)
            size_mb = await asyncio.to_thread(estimate_tree_mb, [staging], LEAN)
            await self.on_output(f"Estimated image size: {size_mb} MB\n")

            fmt = self.config.image_format
            if fmt.compressed:
                await self._assemble(
                    staging, fmt, self._compression_level(), size_mb=size_mb
                )
                return

            await write_layout(self.config, staging)
            with self._final_image():
                await hdiutil.create_with_size(
                    self.runner, self.config.title, staging, fmt, self.output, size_mb
                )

    # Shared pieces

    async def _stage(self, staging: Path, strategy: StagingStrategy) -> None:
        await self.on_output(f"Staging {len(self.config.contents)} items\n")
        await asyncio.to_thread(stage_contents, self.config, staging, strategy)

    async def _assemble(
        self,
        source: Path,
        target: ImageFormat,
        compression_level: str | None = None,
        size_mb: int | None = None,
        customize: bool = True,
        customizer: Customizer | None = None,
    ) -> None:
        """Writable intermediate from source, optional customization, conversion to target."""
        async with self._intermediate_image() as temp_image:
            await self.on_output(f"Creating writable image from {source.name}\n")
            await hdiutil.create(
                self.runner, self.config.title, source, ImageFormat.UDRW, temp_image, size_mb
            )

            if customize:
                await run_mounted(
                    temp_image,
                    customizer or self._customize,
                    self.runner,
                    self.on_output,
                    self.config.temp_dir,
                )
                # A volume left attached would make the conversion fail
                await force_detach(self.runner, temp_image, self.on_output)

            await self.on_output(f"Converting to {target.value}\n")
            with self._final_image():
                await hdiutil.convert(
                    self.runner, temp_image, target, self.output, compression_level
                )

    async def _customize(self, image_path: Path, mount_point: Path) -> None:
        await customize_volume(mount_point, self.config, self.runner, self.on_output)

    def _compression_level(self, default: str = DEFAULT_COMPRESSION_LEVEL) -> str:
        return self.config.compression_level or default

    def _readonly_format(self) -> ImageFormat:
        fmt = self.config.image_format
        return ImageFormat.UDRO if fmt is ImageFormat.UDRW else fmt

    async def _apply_file_icon(self) -> None:
        icon = self.config.file_icon_path
        if icon is None:
            return
        await self.on_output(f"Setting file icon from {icon.name}\n")
        try:
            await fileicon.set_file_icon(self.runner, self.output, icon)
        except (DMGError, OSError) as e:
            await self.on_output(f"Warning: failed to set file icon: {e}\n")

    @asynccontextmanager
    async def _staging_area(self, suffix: str) -> AsyncIterator[Path]:
        try:
            path = Path(tempfile.mkdtemp(suffix=suffix, dir=self.config.temp_dir))
        except OSError as e:
            raise SetupError(f"failed to create staging directory: {e}") from e
        try:
            yield path
        finally:
            try:
                await asyncio.to_thread(shutil.rmtree, path)
            except OSError as e:
                await self.on_output(f"Warning: failed to remove {path}: {e}\n")

    @asynccontextmanager
    async def _intermediate_image(self) -> AsyncIterator[Path]:
        path = intermediate_path(self.output)
        try:
            yield path
        finally:
            try:
                path.unlink(missing_ok=True)
            except OSError as e:
                await self.on_output(f"Warning: failed to remove {path}: {e}\n")

    @contextmanager
    def _final_image(self) -> Iterator[None]:
        """Remove a partially written output if the block fails."""
        try:
            yield
        except BaseException:
            with suppress(OSError):
                self.output.unlink(missing_ok=True)
            raise


def _is_applications_link(item: ContentItem) -> bool:
    return item.kind is ItemKind.LINK and item.name == APPLICATIONS_LINK.name


async def build_image(
    config: BuildConfig,
    on_output: OutputSink,
    runner: ProcessRunner | None = None,
) -> Path:
    """Build config into an image and return its path."""
    return await ImageBuilder(config, runner or ProcessRunner(), on_output).build()
