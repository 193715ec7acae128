"""Entry point for the disk image builder.

Usage:
    python -m build_dmg --app MyApp.app            Build MyApp.dmg
    python -m build_dmg --app MyApp.app --simple   Use simple output instead of TUI
"""

import asyncio
import sys
from pathlib import Path

from build_dmg.cli import config_settings, parse_args, should_use_tui
from build_dmg.config import BuildConfig, load_config
from build_dmg.runner import get_steps, run_build
from build_dmg.utils.logging import BuildLogger


def main(argv: list[str] | None = None) -> int:
    """Main entry point.

    Returns:
        Exit code (0 for success, 1 for failure)
    """
    args = parse_args(argv)
    cwd = Path.cwd()

    try:
        config = load_config(config_settings(args), cwd)
    except (ValueError, OSError) as e:
        print(f"\033[31mError loading configuration: {e}\033[0m", file=sys.stderr)
        return 1

    errors = config.validate()
    if errors:
        print("\033[31mConfiguration errors:\033[0m", file=sys.stderr)
        for error in errors:
            print(f"  - {error}", file=sys.stderr)
        return 1

    logger = BuildLogger(cwd / "log", max_logs=config.max_log_files)

    if should_use_tui(args):
        return run_with_tui(config, logger)
    return run_with_simple_ui(config, logger)


def run_with_tui(config: BuildConfig, logger: BuildLogger) -> int:
    """Run the build inside the Textual TUI."""
    from build_dmg.ui.app import BuildApp

    result = {"success": False}
    app: BuildApp | None = None

    logger.start()
    logger.write_line(f"=== Building {config.build_description} ===\n")

    def start_build() -> None:
        asyncio.create_task(do_build())

    async def do_build() -> None:
        if app is None:
            return
        try:
            result["success"] = await run_build(config, app)
        finally:
            app.exit()

    app = BuildApp(
        build_description=config.build_description,
        step_names=[step.name for step in get_steps(config)],
        on_ready=start_build,
        logger=logger,
    )
    try:
        app.run()
    finally:
        logger.close()

    return 0 if result["success"] else 1


def run_with_simple_ui(config: BuildConfig, logger: BuildLogger) -> int:
    """Run the build with line-oriented colored output."""
    from build_dmg.ui.simple import SimpleUI

    with logger:
        ui = SimpleUI(logger=logger)
        header = f"\033[32m=== Building {config.build_description} ===\033[0m"
        print(header)
        logger.write_line(header)
        success = asyncio.run(run_build(config, ui))

    return 0 if success else 1


if __name__ == "__main__":
    sys.exit(main())
