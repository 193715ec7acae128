"""Wrappers around the macOS disk image and Finder metadata tools."""

from build_dmg.mactools.dsstore import LayoutMetadata
from build_dmg.mactools.hdiutil import ImageFormat, MountedImage

__all__ = ["ImageFormat", "LayoutMetadata", "MountedImage"]
