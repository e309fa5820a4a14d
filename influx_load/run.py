#!/usr/bin/env python3
"""Write synthetic tagged points into InfluxDB in fixed-size batches.

Ensures the target database exists, generates ``--rows`` points carrying a
prefix of the region/row/rack/slot/host tag set, and writes them in batches of
``--batch`` through a bounded pool of writer threads. Run
``influx-load --help`` for the available options.
"""
from __future__ import annotations

import argparse
import logging
import random
import sys
import time
from functools import partial
from pathlib import Path
from typing import List, Optional, Sequence

from .config import (
    apply_config_overrides,
    effective_settings,
    ensure_effective_args,
    influx_config,
    load_json_config,
    log_config_summary,
)
from .errors import ConfigError, SetupError
from .influx import ensure_database, open_client, open_write_api, write_batch
from .points import batch_count, iter_batches, tag_names
from .report import log_summary, plot_latencies, write_artifacts
from .workload import run_workload

log = logging.getLogger(__name__)


# CLI wiring


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--database", "-database", help="Database (bucket) to insert to (default: test_load_database).")
    parser.add_argument("--host", "-host", help="Server URL to write to (default: http://localhost:8086).")
    parser.add_argument("--tags", "-tags", type=int, help="Number of tags per point, 0-5 (default: 0).")
    parser.add_argument("--values", "-values", type=int, help="Number of fields per point (default: 1).")
    parser.add_argument("--rows", "-rows", type=int, help="Number of rows to insert (default: 1).")
    parser.add_argument("--batch", "-batch", type=int, help="Number of rows to batch per write (default: 1).")
    parser.add_argument("--token", help="API token (defaults to INFLUXDB_TOKEN env variable).")
    parser.add_argument("--org", help="Organization (defaults to INFLUXDB_ORG env variable or '-').")
    parser.add_argument("--measurement", help="Measurement name (default: p1).")
    parser.add_argument("--workers", type=int, help="Concurrent writer threads (default: 4).")
    parser.add_argument("--seed", type=int, help="RNG seed for reproducible points.")
    parser.add_argument(
        "--settle-seconds",
        type=float,
        help="Seconds to wait after creating the database before writing (default: 1).",
    )
    parser.add_argument("--timeout-ms", type=int, help="HTTP timeout per request in ms (default: 10000).")
    parser.add_argument(
        "--progress-interval",
        type=int,
        help="Log progress every N completed batches (default: 100).",
    )
    parser.add_argument(
        "--continue-on-failure",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Keep writing after a failed batch (default: stop scheduling new batches).",
    )
    parser.add_argument("--config", help="Path to a JSON config file with any of the settings above.")
    parser.add_argument(
        "--allow-env-overrides",
        action="store_true",
        help="Allow INFLUX_LOAD_* environment variables to override JSON config keys (default: off).",
    )
    parser.add_argument("--artifacts-dir", help="Directory for the run summary and per-batch latency CSV.")
    parser.add_argument("--plot", help="Write a PNG of per-batch write latency to this path.")
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
    )
    parser.add_argument("--log-file", help="Optional path to a log file (logs always go to stdout).")
    return parser.parse_args(argv)


def configure_logging(args: argparse.Namespace) -> Optional[Path]:
    """Set up logging to stdout and, if requested, a file."""

    log_level = getattr(logging, args.log_level.upper(), logging.INFO)
    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stdout)]

    log_path: Optional[Path] = None
    if args.log_file:
        log_path = Path(args.log_file).expanduser()
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_path))

    logging.basicConfig(
        level=log_level,
        format="%(asctime)s %(levelname)s %(message)s",
        handlers=handlers,
        force=True,
    )
    return log_path


# Main entry point


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    log_path = configure_logging(args)
    if log_path:
        log.info("Logging to %s", log_path)

    try:
        config_path, config_data = load_json_config(args.config)
        env_overrides, ignored_env = apply_config_overrides(args, config_data)
        ensure_effective_args(args)
    except ConfigError as exc:
        log.error("%s", exc)
        return 2
    log_config_summary(args, config_path, env_overrides, ignored_env)

    rng = random.Random(args.seed)
    names = tag_names(args.tags)
    total_batches = batch_count(args.rows, args.batch)

    try:
        client = open_client(influx_config(args))
    except SetupError as exc:
        log.error("%s", exc)
        return 1

    try:
        ensure_database(client, args.database, args.org)
        if args.settle_seconds:
            log.info("Waiting %.1fs for database creation to settle", args.settle_seconds)
            time.sleep(args.settle_seconds)

        log.info(
            "Writing %s rows in %s batch(es) of up to %s using %d worker(s)",
            f"{args.rows:,}",
            f"{total_batches:,}",
            f"{args.batch:,}",
            args.workers,
        )
        write_api = open_write_api(client)
        try:
            stats = run_workload(
                iter_batches(
                    args.rows,
                    args.batch,
                    names,
                    rng,
                    measurement=args.measurement,
                    values=args.values,
                ),
                partial(write_batch, write_api, args.database, args.org),
                workers=args.workers,
                total_batches=total_batches,
                progress_interval=args.progress_interval,
                continue_on_failure=args.continue_on_failure,
            )
        finally:
            write_api.close()
    except SetupError as exc:
        log.error("%s", exc)
        return 1
    finally:
        client.close()

    log_summary(stats, args.database)
    if args.artifacts_dir:
        write_artifacts(stats, effective_settings(args), Path(args.artifacts_dir).expanduser())
    if args.plot:
        plot_latencies(stats, Path(args.plot).expanduser(), title=f"Batch write latency: {args.database}")
    return 1 if stats.failures else 0


if __name__ == "__main__":
    sys.exit(main())
