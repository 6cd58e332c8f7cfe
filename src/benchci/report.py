from __future__ import annotations

from collections.abc import Sequence

from rich.console import Console
from rich.table import Table
from rich.text import Text

from .compare import Comparison, ComparisonRow, RowStatus, format_ratio
from .config import BenchmarkDefinition
from .parse import Measurement
from .runner import ResultSet


def _fmt_ns(m: Measurement | None) -> str:
    if m is None:
        return "-"
    return f"{m.ns_per_op:.2f} ns/op"


def _fmt_bytes(m: Measurement | None) -> str:
    if m is None:
        return "-"
    return f"{m.allocated_bytes_per_op} B/op"


def ratio_cell(ratio: float | None, *, selected: bool) -> Text:
    if ratio is None or not selected:
        return Text("-")
    style = "bold bright_red" if ratio > 0 else "bold blue"
    return Text(format_ratio(ratio), style=style)


def build_results_table(
    benchmarks: Sequence[BenchmarkDefinition],
    results: Sequence[tuple[str, ResultSet]],
) -> Table:
    """One row per benchmark and revision; missing measurements render as `-`."""
    table = Table(title="Result", show_lines=True)
    table.add_column("Name")
    table.add_column("Revision")
    table.add_column("NsPerOp", justify="right")
    table.add_column("AllocedBytesPerOp", justify="right")

    for b in benchmarks:
        for label, result_set in results:
            m = result_set.get(b.key)
            table.add_row(b.key, label, _fmt_ns(m), _fmt_bytes(m))
    return table


def comparison_rows_to_show(
    comparison: Comparison, *, only_regressions: bool
) -> tuple[ComparisonRow, ...]:
    if only_regressions:
        return comparison.regressions()
    return comparison.rows


def build_comparison_table(comparison: Comparison, *, only_regressions: bool) -> Table | None:
    """
    Ratio table for one comparison.

    Returns None when there is nothing to show (e.g. `only_regressions` and no
    regression).
    """
    rows = comparison_rows_to_show(comparison, only_regressions=only_regressions)
    if not rows:
        return None

    table = Table(
        title=f"Comparison ({comparison.current_label} vs {comparison.baseline_label})",
        show_lines=True,
    )
    table.add_column("Name")
    table.add_column("NsPerOp", justify="right")
    table.add_column("AllocedBytesPerOp", justify="right")

    for row in rows:
        if row.status is RowStatus.MISSING_CURRENT:
            note = Text(f"missing at {comparison.current_label}", style="dim")
            table.add_row(row.benchmark.key, note, Text("-"))
            continue
        if row.status is RowStatus.MISSING_BASELINE:
            note = Text(f"missing at {comparison.baseline_label}", style="dim")
            table.add_row(row.benchmark.key, note, Text("-"))
            continue

        table.add_row(
            row.benchmark.key,
            ratio_cell(row.ratio_ns_per_op, selected=row.metrics.ns_per_op),
            ratio_cell(row.ratio_bytes_per_op, selected=row.metrics.bytes_per_op),
        )
    return table


def print_report(
    console: Console,
    *,
    benchmarks: Sequence[BenchmarkDefinition],
    results: Sequence[tuple[str, ResultSet]],
    comparisons: Sequence[Comparison],
    only_regressions: bool,
) -> None:
    if not only_regressions:
        console.print(build_results_table(benchmarks, results))
        console.print("")

    for comparison in comparisons:
        table = build_comparison_table(comparison, only_regressions=only_regressions)
        if table is None:
            continue
        console.print(table)
        console.print("")


__all__ = [
    "build_comparison_table",
    "build_results_table",
    "comparison_rows_to_show",
    "print_report",
    "ratio_cell",
]
