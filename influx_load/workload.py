from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from typing import Callable, Iterable, List, Optional, Sequence, Set

from .errors import BatchWriteError
from .points import Sample

log = logging.getLogger(__name__)

WriteFn = Callable[[int, Sequence[Sample]], int]


@dataclass
class BatchResult:
    index: int
    rows: int
    latency_ms: float
    ok: bool


@dataclass
class BatchFailure:
    index: int
    rows: int
    error: Exception


@dataclass
class RunStats:
    batches: int = 0
    rows: int = 0
    total_batch_ms: float = 0.0
    start_ts: float = 0.0
    end_ts: float = 0.0
    aborted: bool = False
    results: List[BatchResult] = field(default_factory=list)
    failures: List[BatchFailure] = field(default_factory=list)

    def mark_batch(self, index: int, rows_in_batch: int, batch_ms: float) -> None:
        self.batches += 1
        self.rows += rows_in_batch
        self.total_batch_ms += batch_ms
        self.results.append(BatchResult(index, rows_in_batch, batch_ms, True))

    def mark_failure(self, index: int, rows_in_batch: int, batch_ms: float, error: Exception) -> None:
        self.failures.append(BatchFailure(index, rows_in_batch, error))
        self.results.append(BatchResult(index, rows_in_batch, batch_ms, False))

    @property
    def failed_rows(self) -> int:
        return sum(failure.rows for failure in self.failures)

    @property
    def latencies_ms(self) -> List[float]:
        return [result.latency_ms for result in sorted(self.results, key=lambda r: r.index) if result.ok]

    @property
    def avg_batch_ms(self) -> float:
        if not self.batches:
            return 0.0
        return self.total_batch_ms / self.batches

    @property
    def elapsed(self) -> float:
        end = self.end_ts or time.perf_counter()
        return end - self.start_ts if self.start_ts else 0.0

    @property
    def rows_per_second(self) -> float:
        elapsed = self.elapsed
        return self.rows / elapsed if elapsed else 0.0


def run_workload(
    batches: Iterable[Sequence[Sample]],
    write: WriteFn,
    *,
    workers: int,
    total_batches: Optional[int] = None,
    progress_interval: int = 100,
    continue_on_failure: bool = False,
    max_in_flight: Optional[int] = None,
) -> RunStats:
    """Write ``batches`` through a bounded thread pool.

    Batches are pulled lazily so at most ``max_in_flight`` (default
    ``2 * workers``) are generated but not yet written. The first
    :class:`BatchWriteError` stops scheduling unless ``continue_on_failure``
    is set; batches already submitted still run to completion. Any other
    exception raised by ``write`` propagates to the caller.
    """
    workers = max(1, workers)
    in_flight_limit = max(1, max_in_flight or 2 * workers)
    progress_every = max(1, progress_interval)
    total_label = f"{total_batches:,}" if total_batches is not None else "?"

    stats = RunStats(start_ts=time.perf_counter())
    stats_lock = threading.Lock()
    stop_event = threading.Event()

    def write_one(index: int, samples: Sequence[Sample]) -> None:
        log.debug("Inserting %d rows batch %d", len(samples), index)
        t0 = time.perf_counter()
        try:
            write(index, samples)
        except BatchWriteError as exc:
            batch_ms = (time.perf_counter() - t0) * 1000.0
            with stats_lock:
                stats.mark_failure(index, len(samples), batch_ms, exc)
            log.error("Write failed for %s", exc)
            if not continue_on_failure:
                stop_event.set()
            return
        batch_ms = (time.perf_counter() - t0) * 1000.0
        with stats_lock:
            stats.mark_batch(index, len(samples), batch_ms)
            done = stats.batches
            rows_done = stats.rows
        if done % progress_every == 0:
            log.info(
                "Progress: %s/%s batches, %s rows, %.1fs elapsed",
                f"{done:,}",
                total_label,
                f"{rows_done:,}",
                time.perf_counter() - stats.start_ts,
            )

    pending: Set[Future[None]] = set()
    try:
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="writer") as executor:
            source = iter(batches)
            index = 0
            while not stop_event.is_set():
                # Wait for a free slot before generating the next batch.
                while len(pending) >= in_flight_limit:
                    done, pending = wait(pending, return_when=FIRST_COMPLETED)
                    for future in done:
                        future.result()
                if stop_event.is_set():
                    break
                samples = next(source, None)
                if samples is None:
                    break
                index += 1
                pending.add(executor.submit(write_one, index, samples))
            done, pending = wait(pending)
            for future in done:
                future.result()
    finally:
        stats.end_ts = time.perf_counter()

    if stop_event.is_set():
        stats.aborted = True
        log.warning("Stopped scheduling after first failed batch (use --continue-on-failure to keep going)")
    return stats
