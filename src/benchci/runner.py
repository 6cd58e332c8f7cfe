from __future__ import annotations

from collections.abc import Callable, Iterable
from pathlib import Path
from typing import Final, Protocol

from .config import DEFAULT_COMMAND, BenchmarkDefinition
from .exec import ExecError, LineCallback, RunResult, describe_failure, run_command
from .parse import Measurement, ParseError, parse_single_measurement
from .version import version_matches

# Benchmark unique name -> the single measurement taken at one revision.
ResultSet = dict[str, Measurement]

# stderr suffixes meaning "nothing to run in this package", e.g. when the package
# does not exist yet at an older revision.
_NO_PACKAGE_SIGNALS: Final[tuple[str, ...]] = ("no packages to test",)


class RunnerError(RuntimeError):
    """Raised when one benchmark invocation fails."""


class Execute(Protocol):
    def __call__(
        self,
        argv: list[str],
        *,
        cwd: Path | None = ...,
        on_stdout_line: LineCallback | None = ...,
        on_stderr_line: LineCallback | None = ...,
    ) -> RunResult: ...


class BenchmarkRunner:
    """
    Run the configured benchmarks at the currently checked-out revision.

    Every per-benchmark problem (failed command, unparseable output, duplicate
    unique name) is reported through `on_log` and that benchmark is skipped;
    the rest of the list still runs.
    """

    def __init__(
        self,
        command: str = DEFAULT_COMMAND,
        *,
        cwd: Path | None = None,
        execute: Execute = run_command,
        on_log: Callable[[str], None] | None = None,
        on_output: LineCallback | None = None,
        on_command: Callable[[list[str]], None] | None = None,
    ) -> None:
        self.command = command
        self.cwd = cwd
        self._execute = execute
        self._log = on_log if on_log is not None else (lambda m: print(m, flush=True))
        self._on_output = on_output
        self._on_command = on_command

    def build_argv(self, benchmark: BenchmarkDefinition) -> list[str]:
        s = benchmark.settings
        if not s.is_complete():
            raise RunnerError(f"{benchmark.key}: settings were not resolved: {s}")

        assert s.benchtime is not None
        assert s.timeout is not None
        assert s.cpu is not None

        argv = [
            self.command,
            "test",
            "-run",
            "^$",
            "-bench",
            benchmark.name,
            "-benchtime",
            s.benchtime,
            "-timeout",
            s.timeout,
            "-cpu",
            s.cpu,
        ]
        if s.benchmem:
            argv.append("-benchmem")
        argv.append(benchmark.package)
        return argv

    def run_one(self, benchmark: BenchmarkDefinition) -> Measurement | None:
        """
        Run a single benchmark.

        Returns None when the package has nothing to test at this revision.

        Raises
        ------
        RunnerError
            If the command fails for any other reason.
        ParseError
            If the output does not hold exactly one measurement.
        """
        argv = self.build_argv(benchmark)
        if self._on_command is not None:
            self._on_command(argv)

        try:
            res = self._execute(
                argv,
                cwd=self.cwd,
                on_stdout_line=self._on_output,
                on_stderr_line=self._on_output,
            )
        except ExecError as e:
            raise RunnerError(str(e)) from e

        if res.returncode != 0:
            if _is_no_package_signal(res.stderr):
                return None
            raise RunnerError(describe_failure(argv, res))

        return parse_single_measurement(stdout=res.stdout, stderr=res.stderr)

    def run(
        self, benchmarks: Iterable[BenchmarkDefinition], revision_tag: str | None = None
    ) -> ResultSet:
        """
        Run every applicable benchmark and collect one result per unique name.

        `revision_tag` is set only when the checked-out revision is a release tag;
        benchmarks whose version constraint rejects it are skipped.
        """
        results: ResultSet = {}
        for b in benchmarks:
            key = b.key

            if revision_tag and not version_matches(b.version, revision_tag):
                self._log(f"INFO: {key}: skipped at {revision_tag} (requires version {b.version})")
                continue

            if key in results:
                self._log(f"WARN: {key}: more than one benchmark with this unique name; skipping")
                continue

            try:
                m = self.run_one(b)
            except (RunnerError, ParseError) as e:
                self._log(f"WARN: {key}: benchmark failed; skipping\n{e}")
                continue

            if m is None:
                self._log(f"INFO: {key}: no packages to test in {b.package}")
                continue

            results[key] = m
        return results


def _is_no_package_signal(stderr: str) -> bool:
    tail = stderr.strip()
    return any(tail.endswith(s) for s in _NO_PACKAGE_SIGNALS)


__all__ = [
    "BenchmarkRunner",
    "Execute",
    "ResultSet",
    "RunnerError",
]
