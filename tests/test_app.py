from __future__ import annotations

from dataclasses import replace
from pathlib import Path

import pytest

from benchci.app import prepare_benchmarks, run
from benchci.compare import RowStatus
from benchci.config import DEFAULT_SETTINGS, Config, ConfigError
from benchci.exec import RunResult
from benchci.git import DirtyWorkingCopyError, NoReleaseFoundError, RevisionError
from benchci.ui import RunUI

CONFIG = """\
command: go
threshold: 0.2
benchmarks:
  - name: BenchmarkEncode
    package: ./pkg/codec
  - name: BenchmarkDecode
    package: ./pkg/codec
    uniqueName: decode
    version: ">=1.1.0"
"""


class RevisionAwareExecute:
    """Fake `go test` whose timings depend on the revision checked out in `git`."""

    def __init__(self, git, timings: dict[tuple[str, str], tuple[float, int]]) -> None:
        self.git = git
        self.timings = timings
        self.calls: list[tuple[str, str]] = []

    def __call__(self, argv, *, cwd=None, on_stdout_line=None, on_stderr_line=None) -> RunResult:
        name = argv[argv.index("-bench") + 1]
        self.calls.append((self.git.current, name))
        ns, b = self.timings[(self.git.current, name)]
        line = f"{name}-4\t1000\t{ns} ns/op\t{b} B/op\t1 allocs/op"
        if on_stdout_line is not None:
            on_stdout_line(line)
        return RunResult(returncode=0, stdout=f"{line}\nPASS\n", stderr="")


def _timings(head_encode_ns: float = 1000.0, head_encode_b: int = 64):
    out: dict[tuple[str, str], tuple[float, int]] = {}
    for rev in ("c1", "c2", "c3"):
        out[(rev, "BenchmarkEncode")] = (1000.0, 64)
        out[(rev, "BenchmarkDecode")] = (500.0, 32)
    out[("c3", "BenchmarkEncode")] = (head_encode_ns, head_encode_b)
    return out


def _config(tmp_path: Path, text: str = CONFIG, **kwargs) -> Config:
    path = tmp_path / "benchmarks.yml"
    path.write_text(text, encoding="utf-8")
    return Config(root=tmp_path, config_path=path, **kwargs)


def _ui() -> RunUI:
    return RunUI(color="never", live=False)


@pytest.fixture
def git(fake_git):
    return fake_git(head="c3", refs={"HEAD~1": "c2"}, tags={"v1.0.0": "c1", "nightly": "c0"})


def test_regression_against_base_and_release(tmp_path: Path, git, capsys) -> None:
    execute = RevisionAwareExecute(git, _timings(head_encode_ns=1300.0))

    outcome = run(_config(tmp_path), git=git, execute=execute, ui=_ui())

    assert outcome.regressed
    assert not outcome.ok()
    assert [label for label, _ in outcome.results] == ["HEAD~1", "v1.0.0", "HEAD"]
    assert [c.baseline_label for c in outcome.comparisons] == ["HEAD~1", "v1.0.0"]
    for c in outcome.comparisons:
        assert [r.benchmark.key for r in c.regressions()] == ["BenchmarkEncode"]

    assert git.current == "c3"
    assert git.resets == ["c2", "c1", "c3", "c3"]
    assert "This commit makes benchmarks worse" in capsys.readouterr().out


def test_improvement_passes(tmp_path: Path, git, capsys) -> None:
    execute = RevisionAwareExecute(git, _timings(head_encode_ns=800.0))

    outcome = run(_config(tmp_path), git=git, execute=execute, ui=_ui())

    assert outcome.ok()
    assert "This commit makes benchmarks worse" not in capsys.readouterr().out


def test_only_selected_metrics_gate(tmp_path: Path, git) -> None:
    text = CONFIG.replace("threshold: 0.2", "threshold: 0.2\ncompare: B/op")
    execute = RevisionAwareExecute(git, _timings(head_encode_ns=5000.0))

    outcome = run(_config(tmp_path, text), git=git, execute=execute, ui=_ui())

    assert outcome.ok()
    row = outcome.comparisons[0].rows[0]
    assert row.ratio_ns_per_op == pytest.approx(4.0)
    assert not row.regressed


def test_bytes_regression_with_cli_defaults(tmp_path: Path, git) -> None:
    execute = RevisionAwareExecute(git, _timings(head_encode_b=128))

    outcome = run(_config(tmp_path), git=git, execute=execute, ui=_ui())

    assert outcome.regressed
    row = outcome.comparisons[0].rows[0]
    assert row.regressed_bytes_per_op
    assert not row.regressed_ns_per_op


def test_version_constraint_skips_benchmark_at_old_release(tmp_path: Path, git) -> None:
    execute = RevisionAwareExecute(git, _timings())

    outcome = run(_config(tmp_path), git=git, execute=execute, ui=_ui())

    assert ("c1", "BenchmarkDecode") not in execute.calls
    assert ("c2", "BenchmarkDecode") in execute.calls
    release = outcome.comparisons[1]
    statuses = {r.benchmark.key: r.status for r in release.rows}
    assert statuses == {"BenchmarkEncode": RowStatus.COMPARED, "decode": RowStatus.MISSING_BASELINE}
    assert outcome.ok()


def test_no_compare_release(tmp_path: Path, git) -> None:
    execute = RevisionAwareExecute(git, _timings())

    outcome = run(_config(tmp_path, compare_release=False), git=git, execute=execute, ui=_ui())

    assert [c.baseline_label for c in outcome.comparisons] == ["HEAD~1"]
    assert git.resets == ["c2", "c3", "c3"]


def test_dirty_working_copy_aborts_before_checkout(tmp_path: Path, fake_git) -> None:
    git = fake_git(head="c3", refs={"HEAD~1": "c2"}, tags={"v1.0.0": "c1"}, clean=False)
    execute = RevisionAwareExecute(git, _timings())

    with pytest.raises(DirtyWorkingCopyError):
        run(_config(tmp_path), git=git, execute=execute, ui=_ui())

    assert git.resets == []
    assert execute.calls == []


def test_unresolvable_base(tmp_path: Path, git) -> None:
    execute = RevisionAwareExecute(git, _timings())

    with pytest.raises(RevisionError):
        run(_config(tmp_path, base_ref="missing"), git=git, execute=execute, ui=_ui())

    assert git.resets == []


def test_no_release_tag(tmp_path: Path, fake_git) -> None:
    git = fake_git(head="c3", refs={"HEAD~1": "c2"}, tags={"nightly": "c0"})

    with pytest.raises(NoReleaseFoundError):
        run(_config(tmp_path), git=git, execute=RevisionAwareExecute(git, {}), ui=_ui())

    assert git.resets == []


def test_failure_mid_run_restores_head(tmp_path: Path, git) -> None:
    class Exploding(RevisionAwareExecute):
        def __call__(self, argv, **kwargs) -> RunResult:
            if self.git.current == "c1":
                raise RuntimeError("runner crashed")
            return super().__call__(argv, **kwargs)

    with pytest.raises(RuntimeError, match="crashed"):
        run(_config(tmp_path), git=git, execute=Exploding(git, _timings()), ui=_ui())

    assert git.current == "c3"
    assert git.resets == ["c2", "c1", "c3"]


def test_failed_benchmark_is_reported_not_fatal(tmp_path: Path, git) -> None:
    class Failing(RevisionAwareExecute):
        def __call__(self, argv, **kwargs) -> RunResult:
            name = argv[argv.index("-bench") + 1]
            if self.git.current == "c2" and name == "BenchmarkEncode":
                return RunResult(returncode=1, stdout="", stderr="build failed\n")
            return super().__call__(argv, **kwargs)

    outcome = run(_config(tmp_path), git=git, execute=Failing(git, _timings()), ui=_ui())

    base = outcome.comparisons[0]
    assert base.rows[0].status is RowStatus.MISSING_BASELINE
    assert outcome.ok()


def test_missing_config_fails_before_touching_git(tmp_path: Path, git) -> None:
    cfg = Config(root=tmp_path, config_path=tmp_path / "nope.yml")

    with pytest.raises(ConfigError, match="Unable to read"):
        run(cfg, git=git, execute=RevisionAwareExecute(git, {}), ui=_ui())

    assert git.resets == []


def test_prepare_benchmarks_requires_entries(tmp_path: Path) -> None:
    with pytest.raises(ConfigError, match="no benchmarks"):
        prepare_benchmarks(_config(tmp_path, "command: go\n"))


def test_prepare_benchmarks_rejects_bad_durations(tmp_path: Path) -> None:
    text = CONFIG + "    timeout: forever\n"
    with pytest.raises(ConfigError, match="duration"):
        prepare_benchmarks(_config(tmp_path, text))


DUPLICATE_CONFIG = """\
command: go
benchmarks:
  - name: BenchmarkA
    package: ./pkg/codec
    uniqueName: x
    threshold: 0.5
  - name: BenchmarkB
    package: ./pkg/codec
    uniqueName: x
    threshold: 0.1
"""


def test_duplicate_unique_name_dropped_before_run(tmp_path: Path, git, capsys) -> None:
    timings = {}
    for rev in ("c1", "c2"):
        timings[(rev, "BenchmarkA")] = (100.0, 0)
        timings[(rev, "BenchmarkB")] = (100.0, 0)
    timings[("c3", "BenchmarkA")] = (130.0, 0)
    timings[("c3", "BenchmarkB")] = (100.0, 0)
    execute = RevisionAwareExecute(git, timings)

    outcome = run(_config(tmp_path, DUPLICATE_CONFIG), git=git, execute=execute, ui=_ui())

    assert {name for _, name in execute.calls} == {"BenchmarkA"}
    for c in outcome.comparisons:
        assert [(r.benchmark.name, r.benchmark.settings.threshold) for r in c.rows] == [
            ("BenchmarkA", 0.5)
        ]
    assert outcome.ok()
    out = capsys.readouterr().out
    assert "WARN: x: more than one benchmark" in out
    assert "BenchmarkB" in out


def test_duplicate_does_not_stand_in_when_first_fails(tmp_path: Path, git) -> None:
    class FirstBrokenAtBase(RevisionAwareExecute):
        def __call__(self, argv, **kwargs) -> RunResult:
            name = argv[argv.index("-bench") + 1]
            if self.git.current == "c2" and name == "BenchmarkA":
                return RunResult(returncode=1, stdout="", stderr="build failed\n")
            return super().__call__(argv, **kwargs)

    timings = {
        (rev, name): (100.0, 0)
        for rev in ("c1", "c2", "c3")
        for name in ("BenchmarkA", "BenchmarkB")
    }
    execute = FirstBrokenAtBase(git, timings)

    outcome = run(
        _config(tmp_path, DUPLICATE_CONFIG, compare_release=False),
        git=git,
        execute=execute,
        ui=_ui(),
    )

    assert ("c2", "BenchmarkB") not in execute.calls
    [row] = outcome.comparisons[0].rows
    assert row.status is RowStatus.MISSING_BASELINE


ZERO_THRESHOLD_CONFIG = """\
command: go
compare: ns/op
benchmarks:
  - name: BenchmarkEncode
    package: ./pkg/codec
"""


def test_zero_cli_threshold_flags_any_slowdown(tmp_path: Path, git) -> None:
    execute = RevisionAwareExecute(git, _timings(head_encode_ns=1010.0))
    cfg = _config(
        tmp_path,
        ZERO_THRESHOLD_CONFIG,
        compare_release=False,
        defaults=replace(DEFAULT_SETTINGS, threshold=0.0),
    )

    outcome = run(cfg, git=git, execute=execute, ui=_ui())

    [row] = outcome.comparisons[0].rows
    assert row.benchmark.settings.threshold == 0.0
    assert row.ratio_ns_per_op == pytest.approx(0.01)
    assert outcome.regressed


def test_zero_cli_threshold_passes_unchanged_timings(tmp_path: Path, git) -> None:
    execute = RevisionAwareExecute(git, _timings())
    cfg = _config(
        tmp_path,
        ZERO_THRESHOLD_CONFIG,
        compare_release=False,
        defaults=replace(DEFAULT_SETTINGS, threshold=0.0),
    )

    assert run(cfg, git=git, execute=execute, ui=_ui()).ok()
