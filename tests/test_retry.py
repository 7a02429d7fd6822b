import pytest
from botocore.exceptions import ClientError, EndpointConnectionError

from syndata.core.aws import is_retryable_aws_error
from syndata.core.retry import compute_delay, is_transient_error, retry_call, with_retry

FAST = {"initial_delay": 0, "jitter": 0}


class Flaky:
    def __init__(self, failures, exc=None, result="ok"):
        self.failures = failures
        self.exc = exc or ConnectionError("network unreachable")
        self.result = result
        self.calls = 0

    def __call__(self):
        self.calls += 1
        if self.calls <= self.failures:
            raise self.exc
        return self.result


def test_compute_delay_backs_off_and_caps():
    assert compute_delay(0, initial_delay=0.1, jitter=0) == pytest.approx(0.1)
    assert compute_delay(2, initial_delay=0.1, jitter=0) == pytest.approx(0.4)
    assert compute_delay(10, initial_delay=0.1, max_delay=5.0, jitter=0) == 5.0


def test_compute_delay_jitter_stays_in_band():
    for _ in range(50):
        assert 0.8 <= compute_delay(0, initial_delay=1.0, jitter=0.2) <= 1.2


def test_transient_errors_by_message():
    assert is_transient_error(RuntimeError("Deadline exceeded while waiting"))
    assert is_transient_error(RuntimeError("Service Unavailable"))
    assert not is_transient_error(ValueError("bad bucket name"))


def test_retry_call_recovers_from_transient_failures():
    op = Flaky(failures=2)
    assert retry_call(op, max_retries=3, **FAST) == "ok"
    assert op.calls == 3


def test_retry_call_gives_up_after_max_retries():
    op = Flaky(failures=10)
    with pytest.raises(ConnectionError):
        retry_call(op, max_retries=2, **FAST)
    assert op.calls == 3


def test_retry_call_does_not_retry_permanent_errors():
    op = Flaky(failures=1, exc=ValueError("invalid argument"))
    with pytest.raises(ValueError):
        retry_call(op, **FAST)
    assert op.calls == 1


async def test_with_retry_async():
    op = Flaky(failures=1)

    async def call():
        return op()

    assert await with_retry(call, **FAST) == "ok"
    assert op.calls == 2


async def test_with_retry_uses_custom_predicate():
    op = Flaky(failures=5, exc=KeyError("boom"))

    async def call():
        return op()

    with pytest.raises(KeyError):
        await with_retry(call, max_retries=1, is_retryable=lambda e: isinstance(e, KeyError), **FAST)
    assert op.calls == 2


def _client_error(code, status=400):
    return ClientError({"Error": {"Code": code}, "ResponseMetadata": {"HTTPStatusCode": status}}, "Op")


def test_aws_retryability():
    assert is_retryable_aws_error(_client_error("SlowDown", 503))
    assert is_retryable_aws_error(_client_error("Whatever", 500))
    assert is_retryable_aws_error(EndpointConnectionError(endpoint_url="https://s3.amazonaws.com"))
    assert not is_retryable_aws_error(_client_error("AccessDenied", 403))
    assert not is_retryable_aws_error(ValueError("nope"))
