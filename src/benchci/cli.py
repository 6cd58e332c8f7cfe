from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer

from .app import run as run_benchmarks
from .config import DEFAULT_CONFIG_NAME, BenchmarkSettings, Config, ConfigError
from .git import GitError, find_repo_root
from .ui import COLOR_MODES

app = typer.Typer(
    add_completion=False,
    pretty_exceptions_enable=True,
    help="Benchmark regression gate: compare HEAD against a base revision and the latest release.",
)


def _resolve_root(root: Path | None) -> Path:
    if root is not None:
        return root
    try:
        return find_repo_root(Path.cwd())
    except GitError as e:
        raise ConfigError(str(e)) from e


def _resolve_config_path(root: Path, config: Path | None) -> Path:
    if config is None:
        return root / DEFAULT_CONFIG_NAME
    return config


def config_from_values(
    *,
    root: Path,
    config_path: Path,
    benchtime: str = "1s",
    threshold: float = 0.2,
    compare: str = "ns/op,B/op",
    cpu: str = "4",
    timeout: str = "10m",
    benchmem: bool = True,
    base: str = "HEAD~1",
    compare_release: bool = True,
    only_regression: bool = False,
) -> Config:
    """
    Convenience constructor used by the CLI.

    Keeps the CLI file small by centralizing the config wiring here.
    """
    return Config(
        root=root,
        config_path=config_path,
        base_ref=base,
        compare_release=compare_release,
        only_regressions=only_regression,
        defaults=BenchmarkSettings(
            benchtime=benchtime,
            threshold=threshold,
            compare=compare,
            cpu=cpu,
            timeout=timeout,
            benchmem=benchmem,
        ),
    )


@app.command()
def run(
    root: Annotated[
        Path | None,
        typer.Option(
            "--root",
            help="Repository to benchmark (defaults to the git repository containing the cwd).",
            envvar="BENCHCI_ROOT",
            dir_okay=True,
            file_okay=False,
        ),
    ] = None,
    config: Annotated[
        Path | None,
        typer.Option(
            "--config",
            help=f"Benchmark list (YAML). Defaults to {DEFAULT_CONFIG_NAME} in the repo root.",
            envvar="BENCHCI_CONFIG",
            dir_okay=False,
        ),
    ] = None,
    benchtime: Annotated[
        str,
        typer.Option(
            "--benchtime",
            help="Default -benchtime (duration like 1s, or an iteration count like 100x).",
            envvar="BENCHCI_BENCHTIME",
        ),
    ] = "1s",
    threshold: Annotated[
        float,
        typer.Option(
            "--threshold",
            help="Default regression threshold as a ratio (0.2 means 20% worse).",
            envvar="BENCHCI_THRESHOLD",
        ),
    ] = 0.2,
    compare: Annotated[
        str,
        typer.Option(
            "--compare",
            help="Default metrics checked against the threshold (comma-separated: ns/op, B/op).",
            envvar="BENCHCI_COMPARE",
        ),
    ] = "ns/op,B/op",
    cpu: Annotated[
        str,
        typer.Option(
            "--cpu",
            help="Default -cpu list.",
            envvar="BENCHCI_CPU",
        ),
    ] = "4",
    timeout: Annotated[
        str,
        typer.Option(
            "--timeout",
            help="Default -timeout for each benchmark command.",
            envvar="BENCHCI_TIMEOUT",
        ),
    ] = "10m",
    benchmem: Annotated[
        bool,
        typer.Option(
            "--benchmem/--no-benchmem",
            help="Pass -benchmem by default (needed for B/op).",
            envvar="BENCHCI_BENCHMEM",
        ),
    ] = True,
    base: Annotated[
        str,
        typer.Option(
            "--base",
            help="Baseline revision to compare HEAD against.",
            envvar="BENCHCI_BASE",
        ),
    ] = "HEAD~1",
    compare_release: Annotated[
        bool,
        typer.Option(
            "--compare-release/--no-compare-release",
            help="Also compare HEAD against the latest semantic-version tag.",
            envvar="BENCHCI_COMPARE_RELEASE",
        ),
    ] = True,
    only_regression: Annotated[
        bool,
        typer.Option(
            "--only-regression",
            help="Only print regressed benchmarks.",
            envvar="BENCHCI_ONLY_REGRESSION",
        ),
    ] = False,
    color: Annotated[
        str,
        typer.Option(
            "--color",
            help="Color output mode (auto|always|never).",
            envvar="BENCHCI_COLOR",
            show_default=True,
        ),
    ] = "auto",
) -> None:
    """
    Benchmark the base revision, the latest release and HEAD, then compare.

    Exits 1 when any benchmark regressed beyond its threshold.
    """
    color_norm = color.strip().lower()
    if color_norm not in COLOR_MODES:
        typer.secho(
            f"CONFIG ERROR: Invalid --color value: {color!r} (expected auto|always|never)",
            fg=typer.colors.RED,
            err=True,
        )
        raise typer.Exit(code=2)

    try:
        root_path = _resolve_root(root)
        cfg = config_from_values(
            root=root_path,
            config_path=_resolve_config_path(root_path, config),
            benchtime=benchtime,
            threshold=threshold,
            compare=compare,
            cpu=cpu,
            timeout=timeout,
            benchmem=benchmem,
            base=base,
            compare_release=compare_release,
            only_regression=only_regression,
        )
        outcome = run_benchmarks(cfg, color=color_norm)
    except ConfigError as e:
        typer.secho(f"CONFIG ERROR: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=2) from e
    except Exception as e:
        typer.secho(f"ERROR: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1) from e

    if not outcome.ok():
        raise typer.Exit(code=1)


def main() -> None:
    """
    Programmatic entrypoint used by `project.scripts`.
    """
    app(prog_name="benchci")


if __name__ == "__main__":
    main()
