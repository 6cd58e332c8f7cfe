"""
benchci (Python)

Benchmark regression gate for Go-style projects: runs the configured benchmarks
at a baseline revision, the latest release tag and HEAD, then compares ratios
against per-benchmark thresholds.

Public API surface is intentionally small; prefer using the CLI entrypoint.
"""

from __future__ import annotations

__all__ = [
    "__version__",
]

# Keep in sync with pyproject.toml.
__version__ = "0.1.0"
