import csv

import pytest

from influx_load.errors import BatchWriteError
from influx_load.report import latency_summary, plot_latencies, rolling_mean, write_artifacts
from influx_load.workload import RunStats


def sample_stats(count=40):
    stats = RunStats(start_ts=10.0, end_ts=12.0)
    for index in range(1, count + 1):
        stats.mark_batch(index, 5, float(index))
    stats.mark_failure(count + 1, 5, 2.0, BatchWriteError(count + 1, 5, "HTTP 500"))
    return stats


def test_latency_summary_percentiles():
    summary = latency_summary([float(v) for v in range(1, 101)])
    assert summary["count"] == 100
    assert summary["min"] == 1.0
    assert summary["max"] == 100.0
    assert summary["mean"] == pytest.approx(50.5)
    assert summary["p50"] == pytest.approx(50.5)
    assert summary["p99"] == pytest.approx(99.01)


def test_latency_summary_empty():
    assert set(latency_summary([]).values()) == {0.0}


def test_rolling_mean():
    assert rolling_mean([1, 2, 3, 4], 2) == [1.5, 2.5, 3.5]
    assert rolling_mean([1, 2], 5) == [1.0, 2.0]


def test_write_artifacts(tmp_path):
    stats = sample_stats()
    summary_path, csv_path = write_artifacts(stats, {"Database": "loadtest"}, tmp_path / "out")
    text = summary_path.read_text(encoding="utf-8")
    assert "Database: loadtest" in text
    assert "Batches written: 40" in text
    assert "Batches failed: 1" in text
    with csv_path.open(encoding="utf-8") as fh:
        rows = list(csv.DictReader(fh))
    assert len(rows) == 41
    assert rows[-1]["ok"] == "0"
    assert rows[0]["batch"] == "1"


def test_plot_latencies(tmp_path):
    out = plot_latencies(sample_stats(), tmp_path / "plots" / "latency.png")
    assert out is not None
    assert out.exists()
    assert out.stat().st_size > 0


def test_plot_skipped_without_successes(tmp_path):
    stats = RunStats()
    assert plot_latencies(stats, tmp_path / "latency.png") is None
    assert not (tmp_path / "latency.png").exists()


def test_plot_closes_figure_when_save_fails(tmp_path, monkeypatch):
    import matplotlib.figure
    import matplotlib.pyplot as plt

    def fail_save(self, *args, **kwargs):
        raise OSError("disk full")

    monkeypatch.setattr(matplotlib.figure.Figure, "savefig", fail_save)
    before = set(plt.get_fignums())
    with pytest.raises(OSError):
        plot_latencies(sample_stats(), tmp_path / "latency.png")
    assert set(plt.get_fignums()) == before
