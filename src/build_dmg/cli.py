"""Command-line interface for the disk image builder."""

import argparse
import sys

from build_dmg.config import BuildVariant
from build_dmg.mactools.hdiutil import ImageFormat


def parse_args(args: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments.

    Every option defaults to None so that values from pyproject.toml and
    the environment are only overridden by flags that were actually given.

    Args:
        args: Arguments to parse, or None to use sys.argv

    Returns:
        Parsed arguments namespace
    """
    parser = argparse.ArgumentParser(
        prog="build_dmg",
        description="Build a macOS disk image from an application bundle",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m build_dmg --app build/MyApp.app
  python -m build_dmg --app MyApp.app --background bg.png --format UDBZ
  python -m build_dmg --app MyApp.app --variant exact-size --simple
        """,
    )

    contents = parser.add_argument_group("contents")
    contents.add_argument("--app", help="Application bundle to package (must end in .app)")
    contents.add_argument("--out", help="Output image path (default: <title>.dmg)")
    contents.add_argument("--title", help="Volume name (default: app name without .app)")

    appearance = parser.add_argument_group("appearance")
    appearance.add_argument("--icon", help="Volume icon (.icns), defaults to the app icon")
    appearance.add_argument("--file-icon", help="Icon for the .dmg file itself (default: --icon)")
    appearance.add_argument("--background", help="Background image for the Finder window")
    appearance.add_argument("--window-width", type=int, help="Finder window width (default: 640)")
    appearance.add_argument(
        "--window-height", type=int, help="Finder window height (default: 480)"
    )
    appearance.add_argument("--label-size", type=int, help="Label text size 10-16 (default: 14)")
    appearance.add_argument(
        "--contents-icon-size", type=int, help="Icon size 16-512 (default: 128)"
    )

    image = parser.add_argument_group("image")
    image.add_argument(
        "--format",
        type=str.upper,
        choices=[fmt.value for fmt in ImageFormat],
        help="Image format (default: UDZO)",
    )
    image.add_argument(
        "--compression-level", help="zlib level 1-9 for UDZO (default: 6, 9 for exact-size)"
    )
    image.add_argument(
        "--variant",
        choices=[variant.value for variant in BuildVariant],
        help="Build variant (default: chosen from format and --use-hard-links)",
    )
    image.add_argument(
        "--use-hard-links",
        action="store_true",
        default=None,
        help="Hard-link files into the staging area instead of copying",
    )
    image.add_argument(
        "--optimize-app-size",
        action="store_true",
        default=None,
        help="Remove transient files from the app bundle before staging",
    )
    image.add_argument("--timeout", type=float, help="Abort the build after this many seconds")
    image.add_argument(
        "--no-verify",
        action="store_true",
        default=None,
        help="Skip hdiutil verify on the finished image",
    )

    parser.add_argument(
        "--simple",
        action="store_true",
        help="Use simple output instead of TUI (colors preserved)",
    )

    return parser.parse_args(args)


def config_settings(args: argparse.Namespace) -> dict:
    """CLI values relevant to load_config (UI flags removed)."""
    settings = vars(args).copy()
    settings.pop("simple", None)
    return settings


def should_use_tui(args: argparse.Namespace) -> bool:
    """Determine whether to use Textual TUI.

    Returns False if:
    - User requested simple output (--simple)
    - Not running in a TTY (CI, piped output)
    """
    if args.simple:
        return False
    return sys.stdout.isatty()
