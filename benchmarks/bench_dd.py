#!/usr/bin/env python3
"""Accuracy and speed benchmarks for dd_sketch.

For every (distribution, N, relative accuracy, interpolation) combination the
runner ingests N synthetic values, then records the relative error of each
requested quantile (single sketch and sharded-then-merged sketch), the
ingestion throughput, per-query latency and merge time. Results land in four
CSV files under ``--outdir``.
"""

from __future__ import annotations

import argparse
import hashlib
import itertools
import math
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, List

import numpy as np
import pandas as pd

from dd_sketch import DDSketch, Interpolation

Generator = Callable[[np.random.Generator, int], np.ndarray]


def _bimodal(rng: np.random.Generator, size: int) -> np.ndarray:
    data = np.concatenate([rng.normal(-2.0, 1.0, size // 2), rng.normal(2.0, 0.5, size - size // 2)])
    rng.shuffle(data)
    return data


DISTRIBUTIONS: Dict[str, Generator] = {
    "uniform": lambda rng, n: rng.uniform(0.0, 1.0, n),
    "normal": lambda rng, n: rng.normal(0.0, 1.0, n),
    "exponential": lambda rng, n: rng.exponential(1.0, n),
    "pareto": lambda rng, n: rng.pareto(1.5, n),
    "lognormal": lambda rng, n: rng.lognormal(0.0, 2.0, n),
    "bimodal": _bimodal,
}


@dataclass(frozen=True)
class Case:
    distribution: str
    N: int
    relative_accuracy: float
    interpolation: Interpolation

    def labels(self) -> Dict[str, object]:
        return {
            "distribution": self.distribution,
            "N": self.N,
            "relative_accuracy": self.relative_accuracy,
            "interpolation": self.interpolation.name,
        }

    def sketch(self, bin_limit: int) -> DDSketch:
        return DDSketch(self.relative_accuracy, bin_limit=bin_limit, interpolation=self.interpolation)


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__, formatter_class=argparse.RawDescriptionHelpFormatter)
    parser.add_argument("--outdir", type=Path, default=Path("bench_out"), help="Directory for the CSV outputs")
    parser.add_argument("--seed", type=int, default=42, help="Base seed; each workload derives its own")
    parser.add_argument("--Ns", nargs="+", type=lambda s: int(float(s)), default=[100_000, 1_000_000])
    parser.add_argument("--relative-accuracies", nargs="+", type=float, default=[0.005, 0.01, 0.02])
    parser.add_argument(
        "--interpolations",
        nargs="+",
        type=lambda s: Interpolation[s.upper()],
        default=[Interpolation.NONE, Interpolation.LINEAR, Interpolation.CUBIC],
        help="NONE, LINEAR and/or CUBIC",
    )
    parser.add_argument("--bin-limit", type=int, default=2048, help="Bin limit of each store")
    parser.add_argument(
        "--distributions", nargs="+", choices=sorted(DISTRIBUTIONS), default=list(DISTRIBUTIONS)
    )
    parser.add_argument(
        "--qs",
        nargs="+",
        type=float,
        default=[0.01, 0.05, 0.1, 0.25, 0.5, 0.75, 0.9, 0.95, 0.99, 0.999],
    )
    parser.add_argument("--shards", type=int, default=8, help="Number of shards for the merge benchmark")
    return parser.parse_args()


def _workload(seed: int, distribution: str, size: int) -> np.ndarray:
    material = f"{seed}/{distribution}/{size}".encode("utf-8")
    rng = np.random.default_rng(int.from_bytes(hashlib.blake2b(material, digest_size=8).digest(), "little"))
    return DISTRIBUTIONS[distribution](rng, size).astype(float, copy=False)


def _relative_error(approx: float, exact: float) -> float:
    if exact == 0.0:
        return 0.0 if approx == 0.0 else math.inf
    return abs(approx - exact) / abs(exact)


def _ingest(sketch: DDSketch, data: np.ndarray) -> float:
    start = time.perf_counter()
    for value in data:
        sketch.add(float(value))
    return time.perf_counter() - start


def main() -> None:
    args = _parse_args()
    args.outdir.mkdir(parents=True, exist_ok=True)
    tables: Dict[str, List[Dict[str, object]]] = {
        "accuracy": [],
        "update_throughput": [],
        "query_latency": [],
        "merge": [],
    }

    for distribution, size in itertools.product(args.distributions, args.Ns):
        data = _workload(args.seed, distribution, size)
        # The sketch answers with the lower order statistic at rank q * (N - 1).
        exact = dict(zip(args.qs, np.quantile(data, args.qs, method="lower")))

        for accuracy, interpolation in itertools.product(args.relative_accuracies, args.interpolations):
            case = Case(distribution, size, accuracy, interpolation)
            labels = case.labels()

            sketch = case.sketch(args.bin_limit)
            elapsed = _ingest(sketch, data)
            tables["update_throughput"].append(
                {
                    **labels,
                    "update_time_s": elapsed,
                    "updates_per_sec": size / elapsed if elapsed > 0 else math.inf,
                    "bins": sketch.store.length() + sketch.negative_store.length(),
                    "serialized_bytes": len(sketch.to_bytes()),
                }
            )
            for q in args.qs:
                start = time.perf_counter()
                estimate = sketch.quantile(q)
                latency_us = (time.perf_counter() - start) * 1e6
                tables["query_latency"].append({**labels, "q": q, "latency_us": latency_us})
                tables["accuracy"].append(
                    {**labels, "mode": "single", "q": q, "estimate": estimate, "exact": exact[q],
                     "rel_error": _relative_error(estimate, exact[q])}
                )

            shards = []
            for chunk in np.array_split(data, args.shards):
                shard = case.sketch(args.bin_limit)
                _ingest(shard, chunk)
                shards.append(shard)
            merged = case.sketch(args.bin_limit)
            start = time.perf_counter()
            for shard in shards:
                merged.merge(shard)
            tables["merge"].append(
                {**labels, "shards": args.shards, "merge_time_s": time.perf_counter() - start}
            )
            for q in args.qs:
                estimate = merged.quantile(q)
                tables["accuracy"].append(
                    {**labels, "mode": "merged", "q": q, "estimate": estimate, "exact": exact[q],
                     "rel_error": _relative_error(estimate, exact[q])}
                )

    print("Benchmark artifacts written to:")
    for name, rows in tables.items():
        path = args.outdir / f"{name}.csv"
        pd.DataFrame.from_records(rows).to_csv(path, index=False)
        print(f"  {path}")


if __name__ == "__main__":
    main()
