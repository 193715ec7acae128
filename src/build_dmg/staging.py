"""Staging of volume contents into a working directory.

Every content item ends up as exactly one entry named by its base name under
the staging root. How it gets there depends on the StagingStrategy:

- COPY: plain recursive copy; application bundles are filtered
- HARD_LINK: leaf files are hard-linked, falling back to a copy per file
- SAFE_HARD_LINK: hard-linked files, filtered copies for every directory
- SYMLINK: links to the originals, which must stay untouched during the build

Fallback chains are expressed with first_success(): the attempts run in
order, the first one that does not raise wins, and the error of the last
attempt is the one reported.
"""

import glob
import os
import shutil
from collections.abc import Callable
from enum import Enum
from pathlib import Path
from typing import TypeVar

from build_dmg.config import BuildConfig, ContentItem, ItemKind
from build_dmg.errors import SetupError, StagingError

T = TypeVar("T")

BACKGROUND_DIR = ".background"
BACKGROUND_NAME = "background.png"

# System and transient artifacts never worth shipping inside a bundle
EXCLUDE_PATTERNS = (
    ".DS_Store",
    "__MACOSX",
    ".Trashes",
    ".fseventsd",
    ".Spotlight-V100",
    ".TemporaryItems",
    "*.tmp",
    "*.log",
    "*.cache",
)

ignore_system_files = shutil.ignore_patterns(*EXCLUDE_PATTERNS)


class StagingStrategy(Enum):
    """How source entries are materialized in the staging area."""

    COPY = "copy"
    HARD_LINK = "hard-link"
    SAFE_HARD_LINK = "safe-hard-link"
    SYMLINK = "symlink"


def first_success(*attempts: Callable[[], T]) -> T:
    """Run attempts in order and return the first result that does not raise OSError."""
    last_error: OSError | None = None
    for attempt in attempts:
        try:
            return attempt()
        except OSError as e:
            last_error = e
    if last_error is None:
        raise ValueError("first_success() needs at least one attempt")
    raise last_error


def link_or_copy(src: str, dst: str) -> str:
    """Hard-link src to dst, copying the file if the link cannot be made.

    Cross-device links, permission problems and link-count limits all surface
    as OSError from os.link and trigger the copy.
    """

    def hard_link() -> str:
        os.link(src, dst)
        return dst

    return first_success(hard_link, lambda: shutil.copy2(src, dst))


def copy_tree(src: Path, dst: Path, filtered: bool = False, hard_links: bool = False) -> None:
    """Copy a directory tree, keeping internal symlinks as links.

    Args:
        src: Source directory
        dst: Destination directory (must not exist)
        filtered: Skip EXCLUDE_PATTERNS entries at every level
        hard_links: Hard-link leaf files instead of copying them

    Raises:
        StagingError: If any entry could not be copied
    """
    try:
        shutil.copytree(
            src,
            dst,
            symlinks=True,
            ignore=ignore_system_files if filtered else None,
            copy_function=link_or_copy if hard_links else shutil.copy2,
        )
    except shutil.Error as e:
        # copytree reports (src, dst, reason) for every entry it gave up on
        failed_src, _, reason = e.args[0][0]
        raise StagingError(failed_src, f"failed to copy ({reason})") from e
    except OSError as e:
        raise StagingError(src, f"failed to copy directory ({e})") from e


def stage_item(item: ContentItem, target_dir: Path, strategy: StagingStrategy) -> Path:
    """Materialize one content item under target_dir and return its staged path."""
    dest = target_dir / item.name

    if item.kind is ItemKind.LINK:
        try:
            os.symlink(item.path, dest)
        except OSError as e:
            raise StagingError(item.path, f"failed to create symbolic link ({e})") from e
        return dest

    if strategy is StagingStrategy.SYMLINK:
        try:
            os.symlink(os.path.abspath(item.path), dest)
        except OSError as e:
            raise StagingError(item.path, f"failed to create symbolic link ({e})") from e
        return dest

    if item.kind is ItemKind.FILE:
        try:
            if strategy in (StagingStrategy.HARD_LINK, StagingStrategy.SAFE_HARD_LINK):
                link_or_copy(str(item.path), str(dest))
            else:
                shutil.copy2(item.path, dest)
        except OSError as e:
            raise StagingError(item.path, f"failed to copy file to {dest} ({e})") from e
        return dest

    match strategy:
        case StagingStrategy.HARD_LINK:
            copy_tree(item.path, dest, filtered=item.is_app_bundle, hard_links=True)
        case StagingStrategy.SAFE_HARD_LINK:
            copy_tree(item.path, dest, filtered=True)
        case _:
            copy_tree(item.path, dest, filtered=item.is_app_bundle)
    return dest


def materialize_background(background: Path, root: Path) -> Path:
    """Copy the background image to <root>/.background/background.png.

    Always a real copy: the layout metadata references it by path on the
    mounted volume.
    """
    background_dir = root / BACKGROUND_DIR
    try:
        background_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise SetupError(f"failed to create {BACKGROUND_DIR} directory: {e}") from e
    dest = background_dir / BACKGROUND_NAME
    try:
        shutil.copyfile(background, dest)
    except OSError as e:
        raise StagingError(background, f"failed to copy background ({e})") from e
    return dest


def stage_contents(
    config: BuildConfig,
    target_dir: Path,
    strategy: StagingStrategy,
    items: tuple[ContentItem, ...] | None = None,
    with_background: bool = True,
) -> list[Path]:
    """Stage every content item (and the background) under target_dir.

    Args:
        config: Build configuration
        target_dir: Staging root, created if missing
        strategy: How to materialize the items
        items: Subset of config.contents to stage (default: all of them)
        with_background: Also copy the configured background image

    Returns:
        Staged paths, one per item, in configuration order

    Raises:
        SetupError: If a source is missing or target_dir cannot be created
        StagingError: If an item cannot be copied or linked
    """
    items = config.contents if items is None else items
    for item in items:
        if item.kind is not ItemKind.LINK and not item.path.exists():
            raise SetupError(f"Source not found: {item.path}")

    try:
        target_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise SetupError(f"failed to create staging directory {target_dir}: {e}") from e

    staged = [stage_item(item, target_dir, strategy) for item in items]
    if with_background and config.background is not None:
        materialize_background(config.background, target_dir)
    return staged


def optimize_app_bundle(app_path: Path) -> list[Path]:
    """Delete regenerable and transient files from an application bundle.

    The code signature resource list is recreated when the bundle is signed
    again. Modifies the bundle in place.

    Returns:
        The files that were removed

    Raises:
        OSError: If a file exists but cannot be removed
    """
    candidates = [
        app_path / "Contents" / "_CodeSignature" / "CodeResources",
        app_path / ".DS_Store",
        app_path / "Contents" / ".DS_Store",
    ]
    for subdir in ("MacOS", "Resources", "Frameworks"):
        pattern = str(app_path / "Contents" / subdir / "*.tmp")
        candidates.extend(Path(match) for match in glob.glob(pattern))

    removed: list[Path] = []
    for path in candidates:
        if path.is_file():
            path.unlink()
            removed.append(path)
    return removed
