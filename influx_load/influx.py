from __future__ import annotations

import logging
from dataclasses import dataclass
from http import HTTPStatus
from typing import Any, Optional, Sequence
from urllib.parse import urlparse

from influxdb_client import InfluxDBClient
from influxdb_client.client.exceptions import InfluxDBError
from influxdb_client.client.write_api import SYNCHRONOUS, WriteApi
from influxdb_client.rest import ApiException
from urllib3.exceptions import HTTPError

from .errors import BatchWriteError, SetupError
from .points import Sample

log = logging.getLogger(__name__)

DEFAULT_URL = "http://localhost:8086"
DEFAULT_ORG = "-"
DEFAULT_TIMEOUT_MS = 10_000

# Servers answer a duplicate bucket name with one of these.
ALREADY_EXISTS_STATUSES = frozenset({HTTPStatus.CONFLICT, HTTPStatus.UNPROCESSABLE_ENTITY})


@dataclass
class InfluxConfig:
    url: str = DEFAULT_URL
    token: Optional[str] = None
    org: str = DEFAULT_ORG
    timeout_ms: int = DEFAULT_TIMEOUT_MS

    @property
    def masked_token(self) -> str:
        if not self.token:
            return "<none>"
        return self.token[:4] + "***"


def validate_url(url: str) -> str:
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise SetupError(f"error parsing host {url!r}: expected http(s)://host[:port]")
    return url


def open_client(cfg: InfluxConfig) -> InfluxDBClient:
    validate_url(cfg.url)
    return InfluxDBClient(
        url=cfg.url,
        token=cfg.token or "",
        org=cfg.org,
        timeout=cfg.timeout_ms,
    )


def open_write_api(client: InfluxDBClient) -> WriteApi:
    return client.write_api(write_options=SYNCHRONOUS)


def is_already_exists(exc: ApiException) -> bool:
    return exc.status in ALREADY_EXISTS_STATUSES


def ensure_database(client: Any, database: str, org: str) -> bool:
    """Create ``database`` as a bucket; returns False if it already existed.

    A server without the bucket API (the 1.8 compatibility endpoints answer
    404) is left alone: the database must then already exist there.
    """
    buckets = client.buckets_api()
    try:
        if buckets.find_bucket_by_name(database) is not None:
            log.info("Database %s already exists", database)
            return False
    except ApiException as exc:
        if exc.status == HTTPStatus.NOT_FOUND:
            log.warning(
                "Server has no bucket API (HTTP 404); skipping creation of database %s",
                database,
            )
            return False
        raise SetupError(f"error looking up database {database}: HTTP {exc.status} {exc.reason}") from exc
    except (InfluxDBError, HTTPError, OSError) as exc:
        raise SetupError(f"error looking up database {database}: {exc}") from exc

    try:
        buckets.create_bucket(bucket_name=database, org=org)
    except ApiException as exc:
        if is_already_exists(exc):
            log.info("Database %s already exists (HTTP %s)", database, exc.status)
            return False
        raise SetupError(f"error creating database {database}: HTTP {exc.status} {exc.reason}") from exc
    except (InfluxDBError, HTTPError, OSError) as exc:
        raise SetupError(f"error creating database {database} in org {org!r}: {exc}") from exc
    log.info("Created database %s", database)
    return True


def write_batch(
    write_api: Any,
    database: str,
    org: str,
    index: int,
    samples: Sequence[Sample],
) -> int:
    records = [sample.to_point() for sample in samples]
    try:
        write_api.write(bucket=database, org=org, record=records)
    except ApiException as exc:
        raise BatchWriteError(index, len(samples), f"HTTP {exc.status} {exc.reason}") from exc
    except (InfluxDBError, HTTPError, OSError) as exc:
        raise BatchWriteError(index, len(samples), str(exc)) from exc
    return len(records)
