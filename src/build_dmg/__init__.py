"""Build macOS disk images (.dmg) from application bundles."""

from build_dmg.builder import ImageBuilder, build_image, select_strategy, select_variant
from build_dmg.config import BuildConfig, BuildVariant, ContentItem, ItemKind, load_config
from build_dmg.errors import BuildTimeoutError, DMGError, SetupError, StagingError, ToolError

__version__ = "0.1.0"

__all__ = [
    "BuildConfig",
    "BuildTimeoutError",
    "BuildVariant",
    "ContentItem",
    "DMGError",
    "ImageBuilder",
    "ItemKind",
    "SetupError",
    "StagingError",
    "ToolError",
    "build_image",
    "load_config",
    "select_strategy",
    "select_variant",
]
