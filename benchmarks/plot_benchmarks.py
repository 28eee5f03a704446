#!/usr/bin/env python3
"""Plot the relative error and throughput CSVs written by ``bench_dd.py``."""

from __future__ import annotations

import argparse
from pathlib import Path

import matplotlib

matplotlib.use("Agg")
import matplotlib.pyplot as plt
import pandas as pd


def _plot_relative_error(accuracy: pd.DataFrame, outdir: Path) -> Path:
    fig, ax = plt.subplots()
    single = accuracy[accuracy["mode"] == "single"]
    worst = single.groupby(["relative_accuracy", "interpolation", "q"])["rel_error"].max().reset_index()
    for (relative_accuracy, interpolation), group in worst.groupby(["relative_accuracy", "interpolation"]):
        ax.plot(group["q"], group["rel_error"], marker="o", label=f"{interpolation}, alpha={relative_accuracy}")
        ax.axhline(relative_accuracy, linestyle="--", linewidth=0.8, color="grey")
    ax.set_xscale("logit")
    ax.set_xlabel("Quantile", fontsize=10)
    ax.set_ylabel("Worst relative error", fontsize=10)
    ax.legend(fontsize=6, loc="upper left")
    ax.tick_params(axis="both", which="major", labelsize=8)
    path = outdir / "relative_error.png"
    fig.savefig(path, dpi=150, bbox_inches="tight")
    plt.close(fig)
    return path


def _plot_throughput(throughput: pd.DataFrame, outdir: Path) -> Path:
    fig, ax = plt.subplots()
    mean = throughput.groupby(["interpolation", "relative_accuracy"])["updates_per_sec"].mean().unstack(0)
    mean.plot.bar(ax=ax)
    ax.set_xlabel("Relative accuracy", fontsize=10)
    ax.set_ylabel("Updates / sec", fontsize=10)
    ax.tick_params(axis="x", labelrotation=0)
    path = outdir / "update_throughput.png"
    fig.savefig(path, dpi=150, bbox_inches="tight")
    plt.close(fig)
    return path


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("outdir", nargs="?", default="bench_out", help="Directory containing benchmark CSVs")
    args = parser.parse_args()

    outdir = Path(args.outdir)
    accuracy = pd.read_csv(outdir / "accuracy.csv")
    throughput = pd.read_csv(outdir / "update_throughput.csv")

    print("Plots written to:")
    print(f"  {_plot_relative_error(accuracy, outdir)}")
    print(f"  {_plot_throughput(throughput, outdir)}")


if __name__ == "__main__":
    main()
