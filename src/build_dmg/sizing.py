"""Capacity estimation for writable disk images.

A writable image must be created with its capacity declared up front. Too
small and copying into it fails; too large only costs temporary disk space,
because the final conversion drops unused blocks. Margins therefore err on
the generous side.
"""

import os
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path

MIB = 1024 * 1024


@dataclass(frozen=True)
class MarginPolicy:
    """Overhead added on top of the content size, with optional bounds in MB."""

    name: str
    overhead_percent: int
    floor_mb: int
    ceiling_mb: int | None = None


# Mirrors hand-tuned sizes of the exact-size build
CONSERVATIVE = MarginPolicy("conservative", overhead_percent=50, floor_mb=200, ceiling_mb=2000)
# Used for hard-link staging, where the tree is already minimal
LEAN = MarginPolicy("lean", overhead_percent=20, floor_mb=100)


def tree_size(paths: Iterable[Path]) -> int:
    """Total size in bytes of the files under paths.

    Directories do not count and symbolic links are not followed (a link
    contributes the size of the link itself).
    """
    total = 0
    for path in paths:
        if not os.path.isdir(path) or os.path.islink(path):
            total += os.lstat(path).st_size
            continue
        for root, dirs, files in os.walk(path):
            for name in files:
                total += os.lstat(os.path.join(root, name)).st_size
            for name in dirs:
                # os.walk does not descend into links, but still lists them
                full = os.path.join(root, name)
                if os.path.islink(full):
                    total += os.lstat(full).st_size
    return total


def estimate_size_mb(total_bytes: int, policy: MarginPolicy) -> int:
    """Image capacity in MB for total_bytes of content under policy."""
    content_mb = -(-total_bytes // MIB)
    # ceil(content_mb * (100 + overhead) / 100) in integer arithmetic
    size_mb = content_mb + (content_mb * policy.overhead_percent + 99) // 100
    size_mb = max(size_mb, policy.floor_mb)
    if policy.ceiling_mb is not None:
        size_mb = min(size_mb, policy.ceiling_mb)
    return size_mb


def estimate_tree_mb(paths: Iterable[Path], policy: MarginPolicy) -> int:
    """Walk paths and estimate the image capacity they need."""
    return estimate_size_mb(tree_size(paths), policy)
