"""Synthetic point generation.

Points carry a prefix of a fixed tag vocabulary (region, row, rack, slot,
host) and one or more float fields sampled uniformly from [0, 1000).
"""

from __future__ import annotations

import random
import time
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Sequence, Tuple

from influxdb_client import Point, WritePrecision

DEFAULT_MEASUREMENT = "p1"

TAG_NAMES: Tuple[str, ...] = ("region", "row", "rack", "slot", "host")
REGIONS: Tuple[str, ...] = ("uswest", "useast", "europe", "asia")

# Upper bounds (exclusive) for the numeric tags.
ROW_LIMIT = 25
RACK_LIMIT = 50
SLOT_LIMIT = 100
HOST_LIMIT = 1000

FIELD_RANGE: Tuple[float, float] = (0.0, 1000.0)


@dataclass
class Sample:
    measurement: str
    tags: Dict[str, str]
    fields: Dict[str, float]
    timestamp_ns: int = field(default_factory=time.time_ns)

    def to_point(self) -> Point:
        point = Point(self.measurement)
        for key, value in self.tags.items():
            point = point.tag(key, value)
        for key, value in self.fields.items():
            point = point.field(key, value)
        return point.time(self.timestamp_ns, WritePrecision.NS)


def tag_names(count: int) -> Tuple[str, ...]:
    if count < 0 or count > len(TAG_NAMES):
        raise ValueError(f"tag count must be between 0 and {len(TAG_NAMES)} (got {count})")
    return TAG_NAMES[:count]


def rand_float(low: float, high: float, rng: random.Random) -> float:
    return rng.random() * (high - low) + low


def random_tags(names: Sequence[str], rng: random.Random) -> Dict[str, str]:
    tags: Dict[str, str] = {}
    for name in names:
        if name == "region":
            tags[name] = rng.choice(REGIONS)
        elif name == "row":
            tags[name] = str(rng.randrange(ROW_LIMIT))
        elif name == "rack":
            tags[name] = str(rng.randrange(RACK_LIMIT))
        elif name == "slot":
            tags[name] = str(rng.randrange(SLOT_LIMIT))
        elif name == "host":
            tags[name] = f"server{rng.randrange(HOST_LIMIT)}"
        else:
            raise ValueError(f"unknown tag name: {name}")
    return tags


def field_names(values: int) -> Tuple[str, ...]:
    return tuple(f"v{idx}" for idx in range(1, values + 1))


def build_point(
    measurement: str,
    names: Sequence[str],
    rng: random.Random,
    values: int = 1,
    timestamp_ns: Optional[int] = None,
) -> Sample:
    low, high = FIELD_RANGE
    fields = {name: rand_float(low, high, rng) for name in field_names(values)}
    sample = Sample(measurement=measurement, tags=random_tags(names, rng), fields=fields)
    if timestamp_ns is not None:
        sample.timestamp_ns = timestamp_ns
    return sample


def batch_count(rows: int, batch_size: int) -> int:
    if batch_size < 1:
        raise ValueError(f"batch size must be >= 1 (got {batch_size})")
    if rows <= 0:
        return 0
    return -(-rows // batch_size)


def iter_batches(
    rows: int,
    batch_size: int,
    names: Sequence[str],
    rng: random.Random,
    *,
    measurement: str = DEFAULT_MEASUREMENT,
    values: int = 1,
) -> Iterator[List[Sample]]:
    """Yield ``ceil(rows / batch_size)`` batches; the last one may be short."""
    total = batch_count(rows, batch_size)
    for index in range(total):
        size = min(batch_size, rows - index * batch_size)
        yield [build_point(measurement, names, rng, values) for _ in range(size)]
