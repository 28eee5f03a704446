from __future__ import annotations

import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

BENCH_OUTPUT = Path("bench_out/pytest")


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line("markers", "benchmark: DDSketch throughput benchmarks (opt-in)")
    # Target of ``--benchmark-json=bench_out/pytest/results.json``.
    BENCH_OUTPUT.mkdir(parents=True, exist_ok=True)


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    if config.getoption("-m"):
        return
    skip_bench = pytest.mark.skip(reason="DDSketch benchmarks only run with -m benchmark")
    for item in items:
        if item.get_closest_marker("benchmark") is not None:
            item.add_marker(skip_bench)
