"""Customization of a mounted, writable volume.

Applies the optional volume icon and background image, then writes the
Finder layout metadata. The metadata is written even without icon or
background so that every image opens with the same window geometry and icon
positions.
"""

import asyncio
from pathlib import Path

from build_dmg.config import BuildConfig
from build_dmg.mactools import fileicon
from build_dmg.mactools.dsstore import DS_STORE_NAME, LayoutMetadata
from build_dmg.staging import materialize_background
from build_dmg.utils.process import OutputSink, ProcessRunner


def build_layout(config: BuildConfig, background_path: Path | None = None) -> LayoutMetadata:
    """Layout metadata for config, optionally referencing a background file."""
    layout = LayoutMetadata()
    layout.set_icon_size(config.icon_size)
    layout.set_window(config.window_width, config.window_height, 0, 0)
    layout.set_label_size(config.label_size)
    layout.set_label_place_to_bottom(True)
    layout.set_background_to_default()
    if background_path is not None:
        layout.set_background_image(background_path)
    for item in config.contents:
        layout.set_icon_pos(item.name, item.x, item.y)
    return layout


async def write_layout(
    config: BuildConfig,
    root: Path,
    background_path: Path | None = None,
) -> Path:
    """Write the layout metadata file at root and return its path."""
    path = root / DS_STORE_NAME
    layout = build_layout(config, background_path)
    await asyncio.to_thread(layout.write, path)
    return path


async def customize_volume(
    mount_point: Path,
    config: BuildConfig,
    runner: ProcessRunner,
    on_output: OutputSink,
) -> None:
    """Apply icon, background and layout metadata to the volume at mount_point.

    Raises:
        ToolError: If SetFile fails
        StagingError: If an asset cannot be copied onto the volume
    """
    if config.icon is not None:
        await on_output(f"Setting volume icon from {config.icon.name}\n")
        await fileicon.set_volume_icon(runner, mount_point, config.icon)

    background_path = None
    if config.background is not None:
        await on_output(f"Copying background {config.background.name}\n")
        background_path = await asyncio.to_thread(
            materialize_background, config.background, mount_point
        )
        await fileicon.hide_path(runner, background_path.parent)

    await on_output("Writing Finder layout\n")
    await write_layout(config, mount_point, background_path)
