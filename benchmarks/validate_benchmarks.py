#!/usr/bin/env python3
"""Check the CSVs written by ``benchmarks/bench_dd.py`` against regression thresholds.

Every estimate must honour the relative accuracy it was configured with; the
performance checks are conservative floors meant to catch large regressions on
shared CI runners. A markdown summary is written next to the CSVs and the
script exits non-zero when any check fails.
"""

from __future__ import annotations

import argparse
import json
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, List

import pandas as pd


@dataclass(frozen=True)
class Check:
    name: str
    table: str
    threshold: str
    observe: Callable[[pd.DataFrame], object]
    passes: Callable[[object], bool]


def _accuracy_ratio(df: pd.DataFrame) -> Dict[str, float]:
    # Estimated error divided by the configured relative accuracy, worst per mode.
    ratio = df["rel_error"] / df["relative_accuracy"]
    worst = {mode: round(float(value), 6) for mode, value in ratio.groupby(df["mode"]).max().items()}
    worst["overall"] = round(float(ratio.max()), 6) if len(ratio) else 0.0
    return worst


ACCURACY_RATIO_MAX = 1.0 + 1e-9
THROUGHPUT_MIN_UPS = 50_000
BINS_MAX = 2 * 2048
LATENCY_P95_MAX_US = 2_000.0
MERGE_TIME_MAX_S = 0.5

CHECKS: List[Check] = [
    Check(
        "Relative error / accuracy",
        "accuracy",
        f"<= {ACCURACY_RATIO_MAX}",
        _accuracy_ratio,
        lambda observed: observed["overall"] <= ACCURACY_RATIO_MAX,  # type: ignore[index]
    ),
    Check(
        "Update throughput",
        "update_throughput",
        f">= {THROUGHPUT_MIN_UPS} updates/sec",
        lambda df: round(float(df["updates_per_sec"].min()), 2) if len(df) else float("inf"),
        lambda observed: observed >= THROUGHPUT_MIN_UPS,  # type: ignore[operator]
    ),
    Check(
        "Allocated bins",
        "update_throughput",
        f"<= {BINS_MAX}",
        lambda df: int(df["bins"].max()) if len(df) else 0,
        lambda observed: observed <= BINS_MAX,  # type: ignore[operator]
    ),
    Check(
        "Query latency p95",
        "query_latency",
        f"<= {LATENCY_P95_MAX_US} µs",
        lambda df: round(float(df["latency_us"].quantile(0.95)), 2) if len(df) else 0.0,
        lambda observed: observed <= LATENCY_P95_MAX_US,  # type: ignore[operator]
    ),
    Check(
        "Merge time",
        "merge",
        f"<= {MERGE_TIME_MAX_S} s",
        lambda df: round(float(df["merge_time_s"].max()), 3) if len(df) else 0.0,
        lambda observed: observed <= MERGE_TIME_MAX_S,  # type: ignore[operator]
    ),
]


def _load(outdir: Path, table: str) -> pd.DataFrame:
    path = outdir / f"{table}.csv"
    if not path.exists():
        raise FileNotFoundError(f"Expected benchmark artifact missing: {path}")
    return pd.read_csv(path)


def _markdown(results: Dict[str, Dict[str, object]]) -> str:
    rows = [
        f"| {name} | {r['threshold']} | {r['observed']} | {'PASS' if r['ok'] else 'FAIL'} |"
        for name, r in results.items()
    ]
    return "\n".join(
        ["# Benchmark validation summary", "", "| Check | Threshold | Observed | Status |", "| --- | --- | --- | --- |"]
        + rows
        + ["", "```json", json.dumps(results, indent=2, sort_keys=True), "```"]
    )


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("outdir", nargs="?", type=Path, default=Path("bench_out"))
    parser.add_argument("--summary", default="bench_summary.md", help="Markdown summary filename")
    args = parser.parse_args()

    frames: Dict[str, pd.DataFrame] = {}
    results: Dict[str, Dict[str, object]] = {}
    for check in CHECKS:
        if check.table not in frames:
            frames[check.table] = _load(args.outdir, check.table)
        observed = check.observe(frames[check.table])
        results[check.name] = {"threshold": check.threshold, "observed": observed, "ok": check.passes(observed)}

    summary = _markdown(results)
    (args.outdir / args.summary).write_text(summary, encoding="utf-8")
    print(summary)

    if not all(result["ok"] for result in results.values()):
        raise SystemExit("Benchmark regression detected; see summary above.")


if __name__ == "__main__":
    main()
