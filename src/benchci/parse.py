from __future__ import annotations

from dataclasses import dataclass
from typing import Final

from .exec import tail_lines


class ParseError(RuntimeError):
    """Raised when benchmark output cannot be parsed into the expected measurement."""


_DIAG_TAIL_LINES: Final[int] = 12

_BENCH_PREFIX: Final[str] = "Benchmark"

UNIT_NS_PER_OP: Final[str] = "ns/op"
UNIT_BYTES_PER_OP: Final[str] = "B/op"
UNIT_ALLOCS_PER_OP: Final[str] = "allocs/op"
UNIT_MB_PER_S: Final[str] = "MB/s"


@dataclass(frozen=True, slots=True)
class Measurement:
    """
    One benchmark result line.

    Example (`go test -bench . -benchmem`):
        BenchmarkEncode-4   1000000   1234 ns/op   16 B/op   1 allocs/op
    """

    name: str
    iterations: int
    ns_per_op: float = 0.0
    allocated_bytes_per_op: int = 0
    allocs_per_op: int = 0
    mb_per_s: float = 0.0

    def __post_init__(self) -> None:
        if self.iterations < 0:
            raise ValueError(f"iterations must be non-negative, got {self.iterations!r}")


def parse_bench_line(line: str) -> Measurement | None:
    """
    Parse a single benchmark result line.

    Returns None for anything that is not a result line (headers, PASS/ok lines,
    log output). Unknown units are ignored.
    """
    fields = line.split()
    if len(fields) < 4 or not fields[0].startswith(_BENCH_PREFIX):
        return None

    try:
        iterations = int(fields[1])
    except ValueError:
        return None

    ns_per_op = 0.0
    bytes_per_op = 0
    allocs_per_op = 0
    mb_per_s = 0.0

    # Remaining fields are "<value> <unit>" pairs.
    for i in range(2, len(fields) - 1, 2):
        value, unit = fields[i], fields[i + 1]
        try:
            if unit == UNIT_NS_PER_OP:
                ns_per_op = float(value)
            elif unit == UNIT_BYTES_PER_OP:
                bytes_per_op = int(value)
            elif unit == UNIT_ALLOCS_PER_OP:
                allocs_per_op = int(value)
            elif unit == UNIT_MB_PER_S:
                mb_per_s = float(value)
        except ValueError:
            continue

    return Measurement(
        name=fields[0],
        iterations=iterations,
        ns_per_op=ns_per_op,
        allocated_bytes_per_op=bytes_per_op,
        allocs_per_op=allocs_per_op,
        mb_per_s=mb_per_s,
    )


def parse_bench_output(text: str) -> list[Measurement]:
    """Parse every benchmark result line in `text`, in output order."""
    out: list[Measurement] = []
    for raw in text.splitlines():
        m = parse_bench_line(raw.strip())
        if m is not None:
            out.append(m)
    return out


def parse_single_measurement(*, stdout: str, stderr: str) -> Measurement:
    """
    Parse exactly one measurement from one benchmark invocation.

    Raises
    ------
    ParseError
        If zero or more than one measurement is found.
    """
    found = parse_bench_output(stdout)
    if len(found) == 1:
        return found[0]

    if not found:
        message = "expected exactly one benchmark result, found none"
    else:
        names = ", ".join(m.name for m in found)
        message = f"expected exactly one benchmark result, found {len(found)} ({names})"

    raise ParseError(
        f"{message}\n"
        f"--- stdout (tail) ---\n{tail_lines(stdout, _DIAG_TAIL_LINES)}\n"
        f"--- stderr (tail) ---\n{tail_lines(stderr, _DIAG_TAIL_LINES)}"
    )
