from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Final

from .config import BenchmarkDefinition
from .parse import UNIT_BYTES_PER_OP, UNIT_NS_PER_OP, Measurement

# Ratios closer to zero than this render as "0.00%".
_RATIO_EPSILON: Final[float] = 0.0001


class RowStatus(str, Enum):
    COMPARED = "compared"
    MISSING_CURRENT = "missing-current"
    MISSING_BASELINE = "missing-baseline"


@dataclass(frozen=True, slots=True)
class MetricSelection:
    """Which metrics are subject to the regression threshold."""

    ns_per_op: bool = False
    bytes_per_op: bool = False

    @classmethod
    def parse(cls, value: str | None) -> MetricSelection:
        """
        Parse a comma-separated selection such as "ns/op,B/op".

        Unknown tokens are ignored.
        """
        tokens = {t.strip() for t in (value or "").split(",")}
        return cls(ns_per_op=UNIT_NS_PER_OP in tokens, bytes_per_op=UNIT_BYTES_PER_OP in tokens)


@dataclass(frozen=True, slots=True)
class ComparisonRow:
    benchmark: BenchmarkDefinition
    status: RowStatus
    metrics: MetricSelection
    current: Measurement | None = None
    baseline: Measurement | None = None
    ratio_ns_per_op: float | None = None
    ratio_bytes_per_op: float | None = None
    regressed_ns_per_op: bool = False
    regressed_bytes_per_op: bool = False

    @property
    def regressed(self) -> bool:
        return self.regressed_ns_per_op or self.regressed_bytes_per_op


@dataclass(frozen=True, slots=True)
class Comparison:
    current_label: str
    baseline_label: str
    rows: tuple[ComparisonRow, ...]

    @property
    def regressed(self) -> bool:
        return any(r.regressed for r in self.rows)

    def regressions(self) -> tuple[ComparisonRow, ...]:
        return tuple(r for r in self.rows if r.regressed)


def compute_ratio(current: float, baseline: float) -> float:
    """
    Relative change `(current - baseline) / baseline`.

    A zero baseline yields 0.0 (reads as "no change").
    """
    if baseline == 0:
        return 0.0
    return (current - baseline) / baseline


def compare(
    benchmarks: Iterable[BenchmarkDefinition],
    current: Mapping[str, Measurement],
    baseline: Mapping[str, Measurement],
    *,
    current_label: str = "HEAD",
    baseline_label: str = "base",
) -> Comparison:
    """
    Compare two result sets in benchmark-list order.

    A benchmark regresses when a selected metric's ratio is strictly greater than
    its threshold. Missing results produce placeholder rows and never raise.
    """
    rows: list[ComparisonRow] = []
    for b in benchmarks:
        metrics = MetricSelection.parse(b.settings.compare)
        key = b.key

        cur = current.get(key)
        if cur is None:
            rows.append(
                ComparisonRow(
                    benchmark=b,
                    status=RowStatus.MISSING_CURRENT,
                    metrics=metrics,
                    baseline=baseline.get(key),
                )
            )
            continue

        base = baseline.get(key)
        if base is None:
            rows.append(
                ComparisonRow(
                    benchmark=b, status=RowStatus.MISSING_BASELINE, metrics=metrics, current=cur
                )
            )
            continue

        ratio_ns = compute_ratio(cur.ns_per_op, base.ns_per_op)
        ratio_b = compute_ratio(
            float(cur.allocated_bytes_per_op), float(base.allocated_bytes_per_op)
        )
        threshold = b.settings.threshold or 0.0

        rows.append(
            ComparisonRow(
                benchmark=b,
                status=RowStatus.COMPARED,
                metrics=metrics,
                current=cur,
                baseline=base,
                ratio_ns_per_op=ratio_ns,
                ratio_bytes_per_op=ratio_b,
                regressed_ns_per_op=metrics.ns_per_op and ratio_ns > threshold,
                regressed_bytes_per_op=metrics.bytes_per_op and ratio_b > threshold,
            )
        )

    return Comparison(
        current_label=current_label, baseline_label=baseline_label, rows=tuple(rows)
    )


def format_ratio(ratio: float) -> str:
    """
    Render a ratio as a percentage magnitude.

    The sign is not part of the string; callers convey it through styling.
    """
    if -_RATIO_EPSILON < ratio < _RATIO_EPSILON:
        ratio = 0.0
    return f"{abs(ratio) * 100:.2f}%"


__all__ = [
    "Comparison",
    "ComparisonRow",
    "MetricSelection",
    "RowStatus",
    "compare",
    "compute_ratio",
    "format_ratio",
]
