import threading
from typing import List, Optional

import pytest
from influxdb_client.rest import ApiException


class FakeBucketsApi:
    def __init__(
        self,
        existing=(),
        create_error: Optional[Exception] = None,
        find_error: Optional[Exception] = None,
    ):
        self.existing = set(existing)
        self.create_error = create_error
        self.find_error = find_error
        self.created: List[str] = []

    def find_bucket_by_name(self, name):
        if self.find_error is not None:
            raise self.find_error
        return object() if name in self.existing else None

    def create_bucket(self, bucket_name=None, org=None):
        if self.create_error is not None:
            raise self.create_error
        self.created.append(bucket_name)
        self.existing.add(bucket_name)


class FakeWriteApi:
    def __init__(self, fail_on=()):
        self.fail_on = set(fail_on)
        self.calls = []
        self.closed = False
        self._lock = threading.Lock()

    def write(self, bucket, org, record):
        with self._lock:
            call_no = len(self.calls) + 1
            self.calls.append((bucket, org, list(record)))
        if call_no in self.fail_on:
            raise ApiException(status=500, reason="Internal Server Error")

    def close(self):
        self.closed = True


class FakeClient:
    def __init__(self, buckets=None, write_api=None):
        self.buckets = buckets or FakeBucketsApi()
        self.writer = write_api or FakeWriteApi()
        self.closed = False

    def buckets_api(self):
        return self.buckets

    def write_api(self, write_options=None):
        return self.writer

    def close(self):
        self.closed = True


@pytest.fixture
def fake_client():
    return FakeClient()
