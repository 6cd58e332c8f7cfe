"""
Subprocess helpers shared by the git backend and the benchmark runner.

`run_command` captures both streams in full and, optionally, forwards each
line as it arrives so long `go test` runs can be followed live.
"""

from __future__ import annotations

import os
import shlex
import subprocess
import threading
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import IO

LineCallback = Callable[[str], None]

# Lines of each stream kept in failure descriptions.
_FAILURE_TAIL_LINES = 20


class ExecError(RuntimeError):
    """Raised when a subprocess cannot be started."""


@dataclass(frozen=True, slots=True)
class RunResult:
    returncode: int
    stdout: str
    stderr: str

    def ok(self) -> bool:
        return self.returncode == 0


def format_command(argv: Sequence[str | os.PathLike[str]]) -> str:
    return shlex.join(os.fspath(a) for a in argv)


def _pump(stream: IO[str] | None, lines: list[str], on_line: LineCallback | None) -> None:
    if stream is None:
        return
    with stream:
        for line in stream:
            lines.append(line)
            if on_line is not None:
                on_line(line.rstrip("\r\n"))


def run_command(
    argv: Sequence[str | os.PathLike[str]],
    *,
    cwd: Path | None = None,
    on_stdout_line: LineCallback | None = None,
    on_stderr_line: LineCallback | None = None,
) -> RunResult:
    """
    Run `argv` (no shell) and wait for it to exit.

    A non-zero exit status is not an error here; callers inspect
    `RunResult.returncode`.

    Raises
    ------
    ExecError
        If the executable cannot be started.
    """
    if not argv:
        raise ValueError("argv must be non-empty")

    try:
        proc = subprocess.Popen(
            [os.fspath(a) for a in argv],
            cwd=cwd,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            encoding="utf-8",
            errors="replace",
        )
    except OSError as e:
        raise ExecError(f"Failed to start {format_command(argv)}: {e}") from e

    out: list[str] = []
    err: list[str] = []
    # stderr gets its own thread so neither pipe can fill up and block the child.
    err_thread = threading.Thread(
        target=_pump, args=(proc.stderr, err, on_stderr_line), daemon=True
    )
    err_thread.start()
    try:
        _pump(proc.stdout, out, on_stdout_line)
    finally:
        returncode = proc.wait()
        err_thread.join()

    return RunResult(returncode=returncode, stdout="".join(out), stderr="".join(err))


def describe_failure(argv: Sequence[str | os.PathLike[str]], res: RunResult) -> str:
    """Multi-line failure description with the tail of both streams."""
    return (
        f"Command failed (exit {res.returncode}): {format_command(argv)}\n"
        "--- stdout (tail) ---\n"
        f"{tail_lines(res.stdout, _FAILURE_TAIL_LINES)}\n"
        "--- stderr (tail) ---\n"
        f"{tail_lines(res.stderr, _FAILURE_TAIL_LINES)}"
    )


def tail_lines(text: str, n: int) -> str:
    if n <= 0:
        return ""
    return "\n".join(text.splitlines()[-n:])


__all__ = [
    "ExecError",
    "LineCallback",
    "RunResult",
    "describe_failure",
    "format_command",
    "run_command",
    "tail_lines",
]
