from __future__ import annotations

import argparse
import json
import logging
import os
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple

from .errors import ConfigError
from .influx import DEFAULT_ORG, DEFAULT_TIMEOUT_MS, DEFAULT_URL, InfluxConfig
from .points import DEFAULT_MEASUREMENT, TAG_NAMES, batch_count

log = logging.getLogger(__name__)

ENV_PREFIX = "INFLUX_LOAD_"

DEFAULTS: Dict[str, object] = dict(
    database="test_load_database",
    host=DEFAULT_URL,
    token=None,
    org=None,
    tags=0,
    values=1,
    rows=1,
    batch=1,
    measurement=DEFAULT_MEASUREMENT,
    workers=4,
    seed=None,
    settle_seconds=1.0,
    timeout_ms=DEFAULT_TIMEOUT_MS,
    progress_interval=100,
    continue_on_failure=False,
    artifacts_dir=None,
    plot=None,
)


def _to_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


CASTS: Dict[str, Callable[[str], object]] = {
    "tags": int,
    "values": int,
    "rows": int,
    "batch": int,
    "workers": int,
    "seed": int,
    "settle_seconds": float,
    "timeout_ms": int,
    "progress_interval": int,
    "continue_on_failure": _to_bool,
}


def _type_matches(value: object, cast: Optional[Callable[[str], object]]) -> bool:
    if cast is _to_bool:
        return isinstance(value, bool)
    if isinstance(value, bool):
        return False
    if cast is int:
        return isinstance(value, int)
    if cast is float:
        return isinstance(value, (int, float))
    return isinstance(value, str)


def validate_config_types(config: Dict[str, object], config_path: Path) -> None:
    expected = {int: "an integer", float: "a number", _to_bool: "true or false"}
    for key, value in config.items():
        if value is None:
            continue
        cast = CASTS.get(key)
        if not _type_matches(value, cast):
            raise ConfigError(
                f"Config key {key} in {config_path} must be {expected.get(cast, 'a string')} (got {value!r})."
            )


def load_json_config(path: Optional[str]) -> Tuple[Optional[Path], Dict[str, object]]:
    if not path:
        return None, {}
    config_path = Path(path).expanduser()
    if not config_path.exists():
        raise ConfigError(f"Config file not found: {config_path}")
    try:
        data = json.loads(config_path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ConfigError(f"Invalid JSON in {config_path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"Config {config_path} must contain a JSON object.")
    unknown = sorted(set(data) - set(DEFAULTS))
    if unknown:
        raise ConfigError(f"Unknown config key(s) in {config_path}: {', '.join(unknown)}")
    validate_config_types(data, config_path)
    return config_path, data


def apply_config_overrides(
    args: argparse.Namespace, config: Dict[str, object]
) -> Tuple[List[str], List[str]]:
    """Resolve every setting as CLI > env (when allowed) > JSON config > default."""
    env_overrides: List[str] = []
    ignored_env: List[str] = []
    env_allowed = bool(getattr(args, "allow_env_overrides", False))

    def pick(
        cli_value: Optional[object],
        config_value: Optional[object],
        env_name: Optional[str] = None,
        cast: Optional[Callable[[str], object]] = None,
    ) -> Optional[object]:
        if cli_value is not None:
            return cli_value
        if env_name:
            env_val = os.getenv(env_name)
            if env_val not in (None, ""):
                if env_allowed:
                    env_overrides.append(env_name)
                    try:
                        return cast(env_val) if cast else env_val
                    except ValueError as exc:
                        raise ConfigError(f"Invalid value for {env_name}: {env_val!r}") from exc
                ignored_env.append(env_name)
        return config_value

    for key, default in DEFAULTS.items():
        value = pick(getattr(args, key, None), config.get(key), ENV_PREFIX + key.upper(), CASTS.get(key))
        if value is None:
            value = default
        setattr(args, key, value)

    if not args.token:
        args.token = os.getenv("INFLUXDB_TOKEN") or None
    if not args.org:
        args.org = os.getenv("INFLUXDB_ORG") or DEFAULT_ORG
    return env_overrides, ignored_env


def ensure_effective_args(args: argparse.Namespace) -> None:
    if not args.database:
        raise ConfigError("database must not be empty.")
    if not 0 <= args.tags <= len(TAG_NAMES):
        raise ConfigError(f"tags must be between 0 and {len(TAG_NAMES)} (got {args.tags}).")
    if args.values < 1:
        raise ConfigError(f"values must be >= 1 (got {args.values}).")
    if args.rows < 0:
        raise ConfigError(f"rows must be >= 0 (got {args.rows}).")
    if args.batch < 1:
        raise ConfigError(f"batch must be >= 1 (got {args.batch}).")
    if args.workers < 1:
        raise ConfigError(f"workers must be >= 1 (got {args.workers}).")
    if args.settle_seconds < 0:
        raise ConfigError(f"settle-seconds must be >= 0 (got {args.settle_seconds}).")
    if args.timeout_ms < 1:
        raise ConfigError(f"timeout-ms must be >= 1 (got {args.timeout_ms}).")
    if args.progress_interval < 1:
        raise ConfigError(f"progress-interval must be >= 1 (got {args.progress_interval}).")


def influx_config(args: argparse.Namespace) -> InfluxConfig:
    return InfluxConfig(url=args.host, token=args.token, org=args.org, timeout_ms=args.timeout_ms)


def effective_settings(args: argparse.Namespace) -> Dict[str, object]:
    cfg = influx_config(args)
    return {
        "Host": cfg.url,
        "Org": cfg.org,
        "Token": cfg.masked_token,
        "Database": args.database,
        "Measurement": args.measurement,
        "Tags": args.tags,
        "Values": args.values,
        "Rows": args.rows,
        "Batch size": args.batch,
        "Batches": batch_count(args.rows, args.batch),
        "Workers": args.workers,
        "Seed": args.seed,
        "Continue on failure": args.continue_on_failure,
    }


def log_config_summary(
    args: argparse.Namespace,
    config_path: Optional[Path],
    env_overrides: List[str],
    ignored_env: List[str],
) -> None:
    if config_path:
        log.info("[config] Loaded %s", config_path)
    settings = effective_settings(args)
    log.info("[config] %s", " ".join(f"{key.lower().replace(' ', '_')}={value}" for key, value in settings.items()))
    if env_overrides:
        log.info("[config] Environment overrides applied: %s", ", ".join(env_overrides))
    elif ignored_env:
        log.info(
            "[config] Ignored env overrides: %s (use --allow-env-overrides to enable)",
            ", ".join(ignored_env),
        )
