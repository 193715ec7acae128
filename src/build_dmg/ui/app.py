"""Textual TUI for interactive builds.

Shows the build description, a table of steps with their status and a
scrolling log of tool output. When the app exits, the buffered output and
the summary are printed to the terminal so they stay in the scrollback.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING

from rich.text import Text
from textual.app import App, ComposeResult
from textual.containers import Container, Vertical
from textual.css.query import NoMatches
from textual.widgets import DataTable, Footer, Header, RichLog, Static

from build_dmg.steps.base import StepStatus
from build_dmg.ui.simple import CYAN, NC, RED, SimpleUI

if TYPE_CHECKING:
    from build_dmg.utils.logging import BuildLogger

STATUS_MARKUP = {
    StepStatus.SUCCESS: "[green][SUCCESS][/green]",
    StepStatus.FAILED: "[red][FAILED ][/red]",
    StepStatus.RUNNING: "[yellow][RUNNING][/yellow]",
    StepStatus.PENDING: "[dim][PENDING][/dim]",
}


class BuildApp(App):
    """Full-screen build progress view."""

    CSS = """
    #header-container {
        height: auto;
        max-height: 50%;
    }

    #title {
        text-align: center;
        text-style: bold;
        padding: 1;
        background: $primary;
    }

    #steps-table {
        height: auto;
        max-height: 10;
        margin: 0 1;
    }

    #output-container {
        height: 1fr;
        margin: 0 1 1 1;
        border: solid $primary;
    }
    """

    BINDINGS = [
        ("q", "quit", "Quit"),
        ("ctrl+c", "quit", "Quit"),
    ]

    def __init__(
        self,
        build_description: str,
        step_names: list[str],
        on_ready: Callable[[], None] | None = None,
        logger: BuildLogger | None = None,
    ) -> None:
        """Initialize the build app.

        Args:
            build_description: Human-readable description of the image
            step_names: Names of the steps that will run, in order
            on_ready: Called once the UI is mounted
            logger: Optional build logger for saving output to file
        """
        super().__init__()
        self.build_description = build_description
        self.step_names = list(step_names)
        self._on_ready = on_ready
        self.logger = logger
        self.output_buffer: list[str] = []
        self._summary: dict | None = None
        self._mounted = False

    def compose(self) -> ComposeResult:
        yield Header()
        with Container(id="header-container"):
            yield Static(f"Disk Image Build ({self.build_description})", id="title")
            yield DataTable(id="steps-table")
        with Vertical(id="output-container"):
            yield RichLog(id="output-log", markup=False)
        yield Footer()

    def on_mount(self) -> None:
        if self._mounted:
            return
        table = self.query_one("#steps-table", DataTable)
        # update_cell addresses columns by these keys
        for label in ("Status", "Step", "Details"):
            table.add_column(label, key=label)
        total = len(self.step_names)
        for i, name in enumerate(self.step_names):
            table.add_row(STATUS_MARKUP[StepStatus.PENDING], f"[{i + 1}/{total}]", name, key=str(i))
        self._mounted = True
        if self._on_ready:
            self.set_timer(0.1, self._on_ready)

    def _show(self, text: str) -> None:
        """Buffer text for the scrollback and append it to the log widget."""
        self.output_buffer.append(text)
        if self.logger:
            self.logger.write(text)
        if not self._mounted:
            return
        try:
            self.query_one("#output-log", RichLog).write(Text.from_ansi(text.rstrip("\n")))
        except NoMatches:
            # Widgets are already gone while the app shuts down
            return

    async def log_output(self, text: str) -> None:
        self._show(text)

    async def log_step(self, step_num: int, total: int, name: str) -> None:
        self._show(f"\n{CYAN}[{step_num}/{total}] {name}{NC}\n")
        await self.update_step_status(step_num, StepStatus.RUNNING)

    async def update_step_status(self, step_num: int, status: StepStatus) -> None:
        if not 0 < step_num <= len(self.step_names) or not self._mounted:
            return
        try:
            table = self.query_one("#steps-table", DataTable)
        except NoMatches:
            return
        table.update_cell(str(step_num - 1), "Status", STATUS_MARKUP[status])

    def log_error(self, message: str) -> None:
        self._show(f"  {RED}✗ ERROR: {message}{NC}\n")

    def print_summary(
        self,
        steps: list[tuple[str, StepStatus]],
        success: bool,
        output_path: str | None = None,
        build_description: str | None = None,
    ) -> None:
        """Keep the summary; it is printed once the TUI has released the terminal."""
        self._summary = {
            "steps": steps,
            "success": success,
            "output_path": output_path,
            "build_description": build_description,
        }

    def on_unmount(self) -> None:
        for text in self.output_buffer:
            print(text, end="")
        if self._summary is not None:
            SimpleUI(logger=self.logger).print_summary(**self._summary)
