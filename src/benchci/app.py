from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from functools import partial
from pathlib import Path

from rich.text import Text

from .compare import Comparison, compare
from .config import (
    BenchmarkDefinition,
    Config,
    ConfigError,
    load_benchmark_list,
    resolve_benchmarks,
    validate_settings,
)
from .exec import run_command
from .git import Git, RevisionController, SourceControl
from .report import print_report
from .runner import BenchmarkRunner, Execute, ResultSet
from .ui import RunUI

HEAD_LABEL = "HEAD"


@dataclass(frozen=True, slots=True)
class RevisionTarget:
    """
    A revision to benchmark.

    `release_tag` is set only for release tags; it gates benchmarks by their
    version constraint.
    """

    label: str
    revision: str
    release_tag: str | None = None


@dataclass(frozen=True, slots=True)
class BenchmarkPlan:
    command: str
    benchmarks: tuple[BenchmarkDefinition, ...]


@dataclass(frozen=True, slots=True)
class OverallOutcome:
    results: tuple[tuple[str, ResultSet], ...]
    comparisons: tuple[Comparison, ...]

    @property
    def regressed(self) -> bool:
        return any(c.regressed for c in self.comparisons)

    def ok(self) -> bool:
        return not self.regressed


def run(
    cfg: Config,
    *,
    git: SourceControl | None = None,
    execute: Execute = run_command,
    color: str = "auto",
    ui: RunUI | None = None,
) -> OverallOutcome:
    """
    Orchestrate a full benchmark comparison run.

    This coordinates:
      - loading and resolving the benchmark list (before touching the working copy)
      - the clean working copy precondition
      - resolving the baseline ref and, optionally, the latest release tag
      - benchmarking each historical revision, then HEAD
      - comparing HEAD against every historical revision
      - restoring the original HEAD, whatever happened in between

    A regression is reported through the returned outcome, not raised. The caller
    (CLI) is responsible for translating outcomes and failures into exit codes.
    """
    if ui is None:
        ui = RunUI(color=color)

    _validate_config(cfg)
    plan = prepare_benchmarks(cfg, on_log=ui.log)

    ui.start()
    stopped = False
    try:
        controller = RevisionController(git if git is not None else Git(cfg.root), on_log=ui.log)

        with ui.step("check working copy"):
            controller.ensure_clean()

        with ui.step("resolve revisions"):
            head = controller.resolve_head()
            targets = resolve_targets(cfg, controller)

        ui.set_status(
            {
                "head": head[:12],
                **{t.label: t.revision[:12] for t in targets},
                "benchmarks": str(len(plan.benchmarks)),
            }
        )
        # check + resolve + one step per revision + compare
        ui.set_total_steps(2 + len(targets) + 1 + 1)

        runner = BenchmarkRunner(
            plan.command,
            cwd=cfg.root,
            execute=execute,
            on_log=ui.log,
            on_output=lambda line: ui.tail(line, style="dim"),
            on_command=lambda argv: ui.set_current_command(
                label=plan.command, argv=argv, cwd=cfg.root
            ),
        )

        results = run_revisions(
            controller,
            runner,
            benchmarks=plan.benchmarks,
            targets=[*targets, RevisionTarget(label=HEAD_LABEL, revision=head)],
            ui=ui,
        )

        with ui.step("compare"):
            head_results = results[-1][1]
            comparisons = tuple(
                compare(
                    plan.benchmarks,
                    head_results,
                    baseline,
                    current_label=HEAD_LABEL,
                    baseline_label=label,
                )
                for label, baseline in results[:-1]
            )

        outcome = OverallOutcome(results=tuple(results), comparisons=comparisons)

        for c in comparisons:
            n = len(c.regressions())
            if n:
                ui.log(f"FAIL: {n} benchmark(s) regressed vs {c.baseline_label}")
            else:
                ui.log(f"PASS: no regression vs {c.baseline_label}")

        ui.stop()
        stopped = True

        print_report(
            ui.console,
            benchmarks=plan.benchmarks,
            results=outcome.results,
            comparisons=outcome.comparisons,
            only_regressions=cfg.only_regressions,
        )
        if outcome.regressed:
            ui.console.print(Text("This commit makes benchmarks worse", style="bold red"))

        return outcome
    finally:
        if not stopped:
            ui.stop()


def prepare_benchmarks(
    cfg: Config, *, on_log: Callable[[str], None] | None = None
) -> BenchmarkPlan:
    """
    Load the benchmark list and apply per-benchmark > list > CLI defaults.

    Later entries reusing a unique name are dropped here, so every revision,
    comparison and report sees the same unique list.
    """
    log = on_log if on_log is not None else (lambda m: print(m, flush=True))
    benchmark_list = load_benchmark_list(cfg.config_path)
    benchmarks = drop_duplicate_names(resolve_benchmarks(benchmark_list, cfg.defaults), log)
    for b in benchmarks:
        validate_settings(b.settings, where=f"benchmark {b.key!r}")
    if not benchmarks:
        raise ConfigError(f"{cfg.config_path}: no benchmarks configured")
    return BenchmarkPlan(command=benchmark_list.command, benchmarks=benchmarks)


def drop_duplicate_names(
    benchmarks: tuple[BenchmarkDefinition, ...], log: Callable[[str], None]
) -> tuple[BenchmarkDefinition, ...]:
    seen: set[str] = set()
    kept: list[BenchmarkDefinition] = []
    for b in benchmarks:
        if b.key in seen:
            log(
                f"WARN: {b.key}: more than one benchmark with this unique name; "
                f"skipping {b.name}"
            )
            continue
        seen.add(b.key)
        kept.append(b)
    return tuple(kept)


def resolve_targets(cfg: Config, controller: RevisionController) -> list[RevisionTarget]:
    """Historical revisions to compare HEAD against, in run order."""
    targets = [
        RevisionTarget(label=cfg.base_ref, revision=controller.resolve_revision(cfg.base_ref))
    ]
    if cfg.compare_release:
        release = controller.resolve_latest_release_tag()
        targets.append(
            RevisionTarget(label=release.name, revision=release.revision, release_tag=release.name)
        )
    return targets


def run_revisions(
    controller: RevisionController,
    runner: BenchmarkRunner,
    *,
    benchmarks: tuple[BenchmarkDefinition, ...],
    targets: list[RevisionTarget],
    ui: RunUI,
) -> list[tuple[str, ResultSet]]:
    """
    Benchmark each target in order.

    All checkouts share one session so the original HEAD is restored exactly once,
    after the last target, even if one of them fails.
    """
    results: list[tuple[str, ResultSet]] = []
    with controller.session():
        for target in targets:
            with ui.step(f"benchmark {target.label} ({target.revision[:12]})"):
                result_set = controller.with_checkout(
                    target.revision,
                    partial(runner.run, benchmarks, revision_tag=target.release_tag),
                )
            ui.log(
                f"INFO: {target.label}: {len(result_set)}/{len(benchmarks)} benchmark(s) measured"
            )
            results.append((target.label, result_set))
    return results


def _validate_config(cfg: Config) -> None:
    if not isinstance(cfg.root, Path):
        raise ConfigError("Config.root must be a pathlib.Path")

    if not cfg.root.exists():
        raise ConfigError(f"repository root does not exist: {cfg.root}")

    if not cfg.base_ref.strip():
        raise ConfigError("base revision must not be empty")

    validate_settings(cfg.defaults, where="defaults")
