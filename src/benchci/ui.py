from __future__ import annotations

import sys
import time
from collections import deque
from collections.abc import Iterator, Mapping, Sequence
from contextlib import contextmanager
from pathlib import Path

from rich.console import Console, Group, RenderableType
from rich.live import Live
from rich.progress import BarColumn, Progress, SpinnerColumn, TextColumn, TimeElapsedColumn
from rich.table import Table
from rich.text import Text

from .exec import format_command

COLOR_MODES = ("auto", "always", "never")

# Minimum delay between two redraws of the live view.
_REFRESH_INTERVAL_S = 0.2

_MESSAGE_STYLES: tuple[tuple[str, str], ...] = (
    ("WARN:", "yellow"),
    ("FAIL:", "bold red"),
    ("PASS:", "bold green"),
    ("INFO:", "dim"),
)


def console_for_color_mode(color: str) -> Console:
    mode = color.strip().lower()
    if mode not in COLOR_MODES:
        raise ValueError(f"Invalid color mode: {color!r} (expected auto|always|never)")
    if mode == "always":
        # CI logs are usually not a TTY but render ANSI colors fine.
        return Console(force_terminal=True)
    return Console(no_color=mode == "never")


def _stdout_is_tty() -> bool:
    try:
        return sys.stdout.isatty()
    except (AttributeError, ValueError):
        return False


class RunUI:
    """
    Progress display for a benchci run.

    Live mode (TTY) redraws one view with the resolved revisions, the step
    progress, the benchmark command being run and the last lines of its output.
    Plain mode prints log lines and step markers only; benchmark output stays in
    the tail buffer.
    """

    def __init__(
        self, *, tail_lines: int = 10, color: str = "auto", live: bool | None = None
    ) -> None:
        self.console = console_for_color_mode(color)
        self.live_enabled = _stdout_is_tty() if live is None else live

        self._tail: deque[Text] = deque(maxlen=tail_lines)
        self._status: dict[str, str] = {}
        self._command: Text | None = None

        self._progress = Progress(
            SpinnerColumn(),
            TextColumn("{task.description}"),
            BarColumn(bar_width=None),
            TextColumn("{task.completed}/{task.total}"),
            TimeElapsedColumn(),
            console=self.console,
        )
        self._task = self._progress.add_task("starting", total=None)

        self._live: Live | None = None
        self._last_draw = 0.0

    def start(self) -> None:
        if self.live_enabled and self._live is None:
            self._live = Live(self._view(), console=self.console, refresh_per_second=4)
            self._live.start()

    def stop(self) -> None:
        if self._live is None:
            return
        self._progress.update(self._task, description="done")
        self._redraw(force=True)
        self._live.stop()
        self._live = None

    def set_total_steps(self, total: int) -> None:
        self._progress.update(self._task, total=total)
        self._redraw()

    def set_status(self, values: Mapping[str, str]) -> None:
        self._status = dict(values)
        if not self.live_enabled:
            self.console.print(
                Text("revisions: ", style="bold")
                + Text(", ".join(f"{k}={v}" for k, v in values.items()))
            )
        self._redraw()

    def set_current_command(
        self, *, label: str, argv: Sequence[str], cwd: Path | None = None
    ) -> None:
        line = Text(f"$ {label}: ", style="bold") + Text(format_command(argv))
        if cwd is not None:
            line.append(f"  (in {cwd})", style="dim")
        self._command = line
        if self.live_enabled:
            self._redraw()
        else:
            self.console.print(line)

    def tail(self, message: str, *, style: str | None = None) -> None:
        """Keep `message` in the output tail; printed only in live mode."""
        self._tail.append(Text(message, style=style or ""))
        self._redraw()

    def log(self, message: str, *, style: str | None = None) -> None:
        if style is None:
            style = _style_for_message(message)
        if self.live_enabled:
            self.tail(message, style=style)
        else:
            self.console.print(Text(message, style=style or ""))

    @contextmanager
    def step(self, title: str) -> Iterator[None]:
        started = time.monotonic()
        if self.live_enabled:
            self._progress.update(self._task, description=title)
            self._redraw(force=True)
        else:
            self.console.print(Text("==> ", style="bold cyan") + Text(title))
        try:
            yield
        finally:
            self._progress.advance(self._task)
            if self.live_enabled:
                self._redraw(force=True)
            else:
                elapsed = time.monotonic() - started
                self.console.print(
                    Text("<== ", style="bold cyan") + Text(f"{title} ({elapsed:.1f}s)")
                )

    def _redraw(self, *, force: bool = False) -> None:
        if self._live is None:
            return
        now = time.monotonic()
        if force or now - self._last_draw >= _REFRESH_INTERVAL_S:
            self._last_draw = now
            self._live.update(self._view())

    def _view(self) -> RenderableType:
        parts: list[RenderableType] = []
        if self._status:
            grid = Table.grid(padding=(0, 2))
            grid.add_column(style="bold")
            grid.add_column()
            for k, v in self._status.items():
                grid.add_row(k, v)
            parts.append(grid)
        parts.append(self._progress)
        if self._command is not None:
            parts.append(self._command)
        if self._tail:
            parts.append(Text("\n").join(self._tail))
        return Group(*parts)


def _style_for_message(message: str) -> str | None:
    for prefix, style in _MESSAGE_STYLES:
        if message.startswith(prefix):
            return style
    return None


__all__ = ["COLOR_MODES", "RunUI", "console_for_color_mode"]
