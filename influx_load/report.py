"""Run summaries: latency percentiles, artifact files and a latency plot."""

from __future__ import annotations

import csv
import logging
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

import matplotlib

matplotlib.use("Agg")
import matplotlib.pyplot as plt  # noqa: E402
import numpy as np  # noqa: E402
import seaborn as sns  # noqa: E402
from matplotlib.ticker import FuncFormatter, MaxNLocator  # noqa: E402

from .workload import RunStats  # noqa: E402

log = logging.getLogger(__name__)

SUMMARY_KEYS: Tuple[str, ...] = ("count", "mean", "min", "p50", "p95", "p99", "max")


def latency_summary(latencies_ms: Sequence[float]) -> Dict[str, float]:
    if not latencies_ms:
        return {key: 0.0 for key in SUMMARY_KEYS}
    values = np.asarray(latencies_ms, dtype=float)
    p50, p95, p99 = np.percentile(values, [50, 95, 99])
    return {
        "count": float(values.size),
        "mean": float(values.mean()),
        "min": float(values.min()),
        "p50": float(p50),
        "p95": float(p95),
        "p99": float(p99),
        "max": float(values.max()),
    }


def format_summary(summary: Dict[str, float]) -> str:
    return (
        f"mean={summary['mean']:.1f}ms min={summary['min']:.1f}ms p50={summary['p50']:.1f}ms "
        f"p95={summary['p95']:.1f}ms p99={summary['p99']:.1f}ms max={summary['max']:.1f}ms"
    )


def log_summary(stats: RunStats, database: str) -> Dict[str, float]:
    summary = latency_summary(stats.latencies_ms)
    log.info(
        "COMPLETE: %s rows in %s batches to %s in %.1fs (%s rows/s)",
        f"{stats.rows:,}",
        f"{stats.batches:,}",
        database,
        stats.elapsed,
        f"{stats.rows_per_second:,.1f}",
    )
    log.info("Batch write latency: %s", format_summary(summary))
    if stats.failures:
        failed = ", ".join(str(failure.index) for failure in sorted(stats.failures, key=lambda f: f.index))
        log.error(
            "%d batch(es) failed (%s rows): %s",
            len(stats.failures),
            f"{stats.failed_rows:,}",
            failed,
        )
    return summary


def write_artifacts(stats: RunStats, settings: Dict[str, object], out_dir: Path) -> Tuple[Path, Path]:
    out_dir.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    summary_path = out_dir / f"run_{timestamp}.log"
    csv_path = out_dir / f"batches_{timestamp}.csv"
    summary = latency_summary(stats.latencies_ms)

    with summary_path.open("w", encoding="utf-8") as fh:
        for key, value in settings.items():
            fh.write(f"{key}: {value}\n")
        fh.write(f"Rows written: {stats.rows}\n")
        fh.write(f"Batches written: {stats.batches}\n")
        fh.write(f"Batches failed: {len(stats.failures)}\n")
        fh.write(f"Rows failed: {stats.failed_rows}\n")
        fh.write(f"Aborted: {stats.aborted}\n")
        fh.write(f"Average batch ms: {stats.avg_batch_ms:.2f}\n")
        fh.write(f"Total runtime seconds: {stats.elapsed:.2f}\n")
        fh.write(f"Rows per second: {stats.rows_per_second:.1f}\n")
        fh.write("Batch latency summary:\n")
        for key in SUMMARY_KEYS:
            fh.write(f"  {key}: {summary[key]:.3f}\n")
        for failure in stats.failures:
            fh.write(f"Failure: batch {failure.index}: {failure.error}\n")

    with csv_path.open("w", newline="", encoding="utf-8") as fh:
        writer = csv.writer(fh)
        writer.writerow(["batch", "rows", "latency_ms", "ok"])
        for result in sorted(stats.results, key=lambda r: r.index):
            writer.writerow([result.index, result.rows, f"{result.latency_ms:.3f}", int(result.ok)])

    log.info("Summary written to %s", summary_path)
    log.info("Per-batch latencies written to %s", csv_path)
    return summary_path, csv_path


def rolling_mean(values: Sequence[float], window: int) -> List[float]:
    if window <= 1 or len(values) <= window:
        return [float(v) for v in values]
    kernel = np.ones(window) / float(window)
    return np.convolve(values, kernel, mode="valid").tolist()


def plot_latencies(stats: RunStats, out_path: Path, title: Optional[str] = None) -> Optional[Path]:
    """Plot per-batch write latency with a rolling mean; returns None if nothing was written."""
    results = [r for r in sorted(stats.results, key=lambda r: r.index) if r.ok]
    if not results:
        log.warning("No successful batches; skipping latency plot")
        return None

    sns.set_theme(style="whitegrid")
    x_vals = [r.index for r in results]
    y_vals = [r.latency_ms for r in results]
    window = max(1, len(y_vals) // 50)

    fig, ax = plt.subplots(figsize=(11, 5))
    try:
        ax.plot(x_vals, y_vals, linewidth=0.8, alpha=0.4, label="batch latency")
        smooth = rolling_mean(y_vals, window)
        if len(smooth) != len(y_vals):
            ax.plot(x_vals[window - 1:], smooth, linewidth=2.0, label=f"rolling mean ({window})")
        lo, hi = np.percentile(y_vals, [1, 99])
        span = max(1.0, float(hi) - float(lo))
        ax.set_ylim(0, max(float(hi), max(y_vals)) + 0.05 * span)
        ax.set_xlabel("Batch")
        ax.set_ylabel("Write latency (ms)")
        ax.grid(True, linestyle="--", alpha=0.3)
        ax.xaxis.set_major_locator(MaxNLocator(integer=True, nbins=8))
        ax.yaxis.set_major_formatter(FuncFormatter(lambda x, pos: f"{x:,.0f}"))
        ax.legend(loc="upper right")
        fig.suptitle(title or "Batch write latency")
        fig.tight_layout()

        out_path.parent.mkdir(parents=True, exist_ok=True)
        fig.savefig(out_path, dpi=150)
    finally:
        plt.close(fig)
    log.info("Latency plot written to %s", out_path)
    return out_path
