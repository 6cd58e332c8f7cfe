from __future__ import annotations

import re
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Final

import yaml

# Go-style durations: "300ms", "1.5s", "10m", "1h30m".
_DURATION_PART_RE: Final[re.Pattern[str]] = re.compile(r"(\d+(?:\.\d+)?)(ns|us|µs|ms|s|m|h)")
_DURATION_RE: Final[re.Pattern[str]] = re.compile(r"^(?:\d+(?:\.\d+)?(?:ns|us|µs|ms|s|m|h))+$")
# `go test -benchtime` additionally accepts a fixed iteration count ("100x").
_BENCHTIME_ITERATIONS_RE: Final[re.Pattern[str]] = re.compile(r"^[1-9]\d*x$")

_UNIT_SECONDS: Final[dict[str, float]] = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}

DEFAULT_COMMAND: Final[str] = "go"
DEFAULT_CONFIG_NAME: Final[str] = "benchmarks.yml"


class ConfigError(ValueError):
    """Raised when CLI/env/file configuration values are invalid."""


@dataclass(frozen=True, slots=True)
class BenchmarkSettings:
    """
    Per-run knobs for one benchmark.

    Every field is optional so the same type can describe a single benchmark's
    overrides, the list-level defaults and the CLI defaults. An empty string counts
    as unset. A zero threshold is unset in a benchmark or the list, but a real
    value in the CLI defaults (every slowdown regresses). `benchmem=False` is an
    explicit value.
    """

    benchtime: str | None = None
    threshold: float | None = None
    compare: str | None = None
    cpu: str | None = None
    timeout: str | None = None
    benchmem: bool | None = None

    def is_complete(self) -> bool:
        return (
            bool(self.benchtime)
            and self.threshold is not None
            and bool(self.compare)
            and bool(self.cpu)
            and bool(self.timeout)
            and self.benchmem is not None
        )


DEFAULT_SETTINGS: Final[BenchmarkSettings] = BenchmarkSettings(
    benchtime="1s",
    threshold=0.2,
    compare="ns/op,B/op",
    cpu="4",
    timeout="10m",
    benchmem=True,
)


@dataclass(frozen=True, slots=True)
class BenchmarkDefinition:
    """
    One entry of the benchmark list.

    `name` is passed to `go test -bench`, `package` is the package path to test.
    `unique_name` keys the result sets (defaults to `name`); `version` is an
    optional constraint such as ">=1.3.0" limiting which release tags run it.
    """

    name: str
    package: str
    unique_name: str = ""
    version: str = ""
    settings: BenchmarkSettings = BenchmarkSettings()

    @property
    def key(self) -> str:
        return self.unique_name or self.name


@dataclass(frozen=True, slots=True)
class BenchmarkList:
    command: str = DEFAULT_COMMAND
    settings: BenchmarkSettings = BenchmarkSettings()
    benchmarks: tuple[BenchmarkDefinition, ...] = ()


@dataclass(frozen=True, slots=True)
class Config:
    """
    Typed config used by the orchestrator.

    Notes:
    - `root` is the repository whose working copy gets checked out and benchmarked.
    - `defaults` are the CLI-level settings, the last fallback for every benchmark.
    """

    root: Path
    config_path: Path
    base_ref: str = "HEAD~1"
    compare_release: bool = True
    only_regressions: bool = False
    defaults: BenchmarkSettings = DEFAULT_SETTINGS


def _first_str(*values: str | None) -> str | None:
    for v in values:
        if v:
            return v
    return None


def _first_float(*values: float | None) -> float | None:
    for v in values:
        if v:
            return v
    return None


def _first_bool(*values: bool | None) -> bool | None:
    for v in values:
        if v is not None:
            return v
    return None


def resolve_settings(
    benchmark: BenchmarkSettings,
    list_defaults: BenchmarkSettings,
    global_defaults: BenchmarkSettings,
) -> BenchmarkSettings:
    """
    Three-level override: per-benchmark > list-level > global (CLI).

    The first set value wins. A zero CLI threshold is kept as the effective
    value rather than treated as unset. Pure and idempotent: resolving an already
    resolved value against the same defaults returns an equal value.
    """
    levels = (benchmark, list_defaults, global_defaults)
    threshold = _first_float(benchmark.threshold, list_defaults.threshold)
    if threshold is None:
        threshold = global_defaults.threshold
    return BenchmarkSettings(
        benchtime=_first_str(*(s.benchtime for s in levels)),
        threshold=threshold,
        compare=_first_str(*(s.compare for s in levels)),
        cpu=_first_str(*(s.cpu for s in levels)),
        timeout=_first_str(*(s.timeout for s in levels)),
        benchmem=_first_bool(*(s.benchmem for s in levels)),
    )


def resolve_benchmarks(
    benchmarks: BenchmarkList, global_defaults: BenchmarkSettings
) -> tuple[BenchmarkDefinition, ...]:
    """Return new definitions with `unique_name` defaulted and settings resolved."""
    out: list[BenchmarkDefinition] = []
    for b in benchmarks.benchmarks:
        out.append(
            replace(
                b,
                unique_name=b.unique_name or b.name,
                settings=resolve_settings(b.settings, benchmarks.settings, global_defaults),
            )
        )
    return tuple(out)


def load_benchmark_list(path: Path) -> BenchmarkList:
    """
    Read the benchmark list YAML file.

    Raises
    ------
    ConfigError
        If the file cannot be read or does not describe a benchmark list.
    """
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Unable to read benchmark config {path}: {e}") from e
    return parse_benchmark_list(text, source=str(path))


def parse_benchmark_list(text: str, *, source: str = "<config>") -> BenchmarkList:
    """
    Parse a benchmark list document.

    Example:

        command: go
        threshold: 0.1
        benchmarks:
          - name: BenchmarkEncode
            package: ./pkg/codec
            uniqueName: encode
            version: ">=v1.3.0"
            compare: ns/op
    """
    try:
        doc = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {source}: {e}") from e

    if doc is None:
        doc = {}
    if not isinstance(doc, dict):
        raise ConfigError(f"{source}: top-level document must be a mapping")

    command = _opt_str(doc, "command", where=source) or DEFAULT_COMMAND

    raw_benchmarks = doc.get("benchmarks")
    if raw_benchmarks is None:
        raw_benchmarks = []
    if not isinstance(raw_benchmarks, list):
        raise ConfigError(f"{source}: 'benchmarks' must be a list")

    benchmarks: list[BenchmarkDefinition] = []
    for i, item in enumerate(raw_benchmarks):
        where = f"{source}: benchmarks[{i}]"
        if not isinstance(item, dict):
            raise ConfigError(f"{where} must be a mapping")
        name = _opt_str(item, "name", where=where)
        package = _opt_str(item, "package", where=where)
        if not name:
            raise ConfigError(f"{where}: 'name' is required")
        if not package:
            raise ConfigError(f"{where}: 'package' is required")
        benchmarks.append(
            BenchmarkDefinition(
                name=name,
                package=package,
                unique_name=_opt_str(item, "uniqueName", where=where) or "",
                version=_opt_str(item, "version", where=where) or "",
                settings=_settings_from_mapping(item, where=where),
            )
        )

    return BenchmarkList(
        command=command,
        settings=_settings_from_mapping(doc, where=source),
        benchmarks=tuple(benchmarks),
    )


def _settings_from_mapping(m: dict[str, Any], *, where: str) -> BenchmarkSettings:
    return BenchmarkSettings(
        benchtime=_opt_str(m, "benchtime", where=where),
        threshold=_opt_float(m, "threshold", where=where),
        compare=_opt_str(m, "compare", where=where),
        cpu=_opt_str(m, "cpu", where=where),
        timeout=_opt_str(m, "timeout", where=where),
        benchmem=_opt_bool(m, "benchmem", where=where),
    )


def _opt_str(m: dict[str, Any], key: str, *, where: str) -> str | None:
    v = m.get(key)
    if v is None:
        return None
    # Allow `cpu: 4` as well as `cpu: "1,2,4"`.
    if isinstance(v, bool) or not isinstance(v, (str, int, float)):
        raise ConfigError(f"{where}: '{key}' must be a string, got {v!r}")
    return str(v).strip()


def _opt_float(m: dict[str, Any], key: str, *, where: str) -> float | None:
    v = m.get(key)
    if v is None:
        return None
    if isinstance(v, bool) or not isinstance(v, (int, float)):
        raise ConfigError(f"{where}: '{key}' must be a number, got {v!r}")
    return float(v)


def _opt_bool(m: dict[str, Any], key: str, *, where: str) -> bool | None:
    v = m.get(key)
    if v is None:
        return None
    if not isinstance(v, bool):
        raise ConfigError(f"{where}: '{key}' must be a boolean, got {v!r}")
    return v


def parse_duration_to_seconds(value: str) -> float:
    """
    Parse Go-style durations like "200ms", "1.5s", "10m", "1h30m" to seconds.

    This is used for validation only; the original string is passed through to
    the benchmark command unchanged.
    """
    s = value.strip()
    if s == "0":
        return 0.0
    if not _DURATION_RE.match(s):
        raise ConfigError(
            f"Invalid duration {value!r}. Expected formats like '200ms', '5s', '10m', '1h30m'."
        )
    return sum(float(n) * _UNIT_SECONDS[unit] for n, unit in _DURATION_PART_RE.findall(s))


def validate_benchtime(value: str) -> None:
    """`-benchtime` is either a duration or an iteration count such as "100x"."""
    if _BENCHTIME_ITERATIONS_RE.match(value.strip()):
        return
    parse_duration_to_seconds(value)


def validate_cpu_list(value: str) -> None:
    """`-cpu` takes a comma-separated list of positive integers."""
    parts = [p.strip() for p in value.split(",")]
    for p in parts:
        if not p.isdigit() or int(p) <= 0:
            raise ConfigError(f"Invalid cpu list {value!r}. Expected e.g. '4' or '1,2,4'.")


def validate_settings(s: BenchmarkSettings, *, where: str) -> None:
    """
    Validate fully resolved settings.

    - every field must be set
    - durations must parse
    - threshold must not be negative
    """
    if not s.is_complete():
        raise ConfigError(f"{where}: incomplete settings after applying defaults: {s}")

    assert s.benchtime is not None
    assert s.timeout is not None
    assert s.cpu is not None
    assert s.threshold is not None

    try:
        validate_benchtime(s.benchtime)
        parse_duration_to_seconds(s.timeout)
        validate_cpu_list(s.cpu)
    except ConfigError as e:
        raise ConfigError(f"{where}: {e}") from e

    if s.threshold < 0:
        raise ConfigError(f"{where}: threshold must be >= 0, got {s.threshold}.")

