import random

import pytest
from influxdb_client.client.exceptions import InfluxDBError
from influxdb_client.rest import ApiException
from urllib3.exceptions import NewConnectionError

from conftest import FakeBucketsApi, FakeClient, FakeWriteApi
from influx_load.errors import BatchWriteError, SetupError
from influx_load.influx import InfluxConfig, ensure_database, open_client, validate_url, write_batch
from influx_load.points import build_point, tag_names


def test_ensure_database_creates_missing():
    client = FakeClient(buckets=FakeBucketsApi())
    assert ensure_database(client, "loadtest", "-") is True
    assert client.buckets.created == ["loadtest"]


def test_ensure_database_existing_by_lookup():
    client = FakeClient(buckets=FakeBucketsApi(existing={"loadtest"}))
    assert ensure_database(client, "loadtest", "-") is False
    assert client.buckets.created == []


@pytest.mark.parametrize("status", [409, 422])
def test_ensure_database_tolerates_already_exists_status(status):
    buckets = FakeBucketsApi(create_error=ApiException(status=status, reason="already exists"))
    assert ensure_database(FakeClient(buckets=buckets), "loadtest", "-") is False


def test_ensure_database_other_api_error_fails_setup():
    buckets = FakeBucketsApi(create_error=ApiException(status=401, reason="Unauthorized"))
    with pytest.raises(SetupError) as excinfo:
        ensure_database(FakeClient(buckets=buckets), "loadtest", "-")
    assert isinstance(excinfo.value.__cause__, ApiException)


def test_ensure_database_message_text_is_not_trusted():
    # Same wording as an "exists" error but a different status must still fail.
    buckets = FakeBucketsApi(create_error=ApiException(status=400, reason="database already exists"))
    with pytest.raises(SetupError):
        ensure_database(FakeClient(buckets=buckets), "loadtest", "-")


def test_ensure_database_transport_error():
    buckets = FakeBucketsApi(create_error=NewConnectionError(None, "connection refused"))
    with pytest.raises(SetupError):
        ensure_database(FakeClient(buckets=buckets), "loadtest", "-")


@pytest.mark.parametrize("url", ["localhost:8086", "ftp://localhost", "http://", "not a url"])
def test_validate_url_rejects(url):
    with pytest.raises(SetupError):
        validate_url(url)


def test_open_client_rejects_bad_url():
    with pytest.raises(SetupError):
        open_client(InfluxConfig(url="localhost:8086"))


def test_masked_token():
    assert InfluxConfig(token=None).masked_token == "<none>"
    assert InfluxConfig(token="abcdefgh").masked_token == "abcd***"


def test_write_batch_sends_points():
    write_api = FakeWriteApi()
    samples = [build_point("p1", tag_names(2), random.Random(0)) for _ in range(3)]
    assert write_batch(write_api, "loadtest", "-", 1, samples) == 3
    bucket, org, records = write_api.calls[0]
    assert (bucket, org, len(records)) == ("loadtest", "-", 3)


def test_write_batch_wraps_api_error():
    write_api = FakeWriteApi(fail_on={1})
    samples = [build_point("p1", (), random.Random(0))]
    with pytest.raises(BatchWriteError) as excinfo:
        write_batch(write_api, "loadtest", "-", 9, samples)
    assert excinfo.value.index == 9
    assert excinfo.value.rows == 1
    assert "HTTP 500" in str(excinfo.value)


def test_ensure_database_unknown_org_fails_setup():
    error = InfluxDBError(message="The client cannot find organization with name: '-'")
    buckets = FakeBucketsApi(create_error=error)
    with pytest.raises(SetupError) as excinfo:
        ensure_database(FakeClient(buckets=buckets), "loadtest", "-")
    assert excinfo.value.__cause__ is error
    assert "'-'" in str(excinfo.value)


def test_ensure_database_skips_without_bucket_api():
    buckets = FakeBucketsApi(find_error=ApiException(status=404, reason="Not Found"))
    assert ensure_database(FakeClient(buckets=buckets), "loadtest", "-") is False
    assert buckets.created == []


def test_ensure_database_lookup_error_fails_setup():
    buckets = FakeBucketsApi(find_error=ApiException(status=401, reason="Unauthorized"))
    with pytest.raises(SetupError):
        ensure_database(FakeClient(buckets=buckets), "loadtest", "-")


def test_write_batch_wraps_client_error():
    class FailingWriteApi:
        def write(self, bucket, org, record):
            raise InfluxDBError(message="no such org")

    samples = [build_point("p1", (), random.Random(0))]
    with pytest.raises(BatchWriteError) as excinfo:
        write_batch(FailingWriteApi(), "loadtest", "-", 2, samples)
    assert "no such org" in str(excinfo.value)
