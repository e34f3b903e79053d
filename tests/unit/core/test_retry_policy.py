import pytest
from sqlalchemy.exc import OperationalError

from cloudledger.shared.core.config import Settings
from cloudledger.shared.core.exceptions import (
    AdapterError,
    ConversionError,
    ExternalAPIError,
    PersistenceError,
    UnitNotFoundError,
    UnitTimeoutError,
    is_transient,
)
from cloudledger.shared.core.retry import RetryPolicy, async_retrying


def _operational_error() -> OperationalError:
    return OperationalError("SELECT 1", {}, Exception("database is locked"))


def _persistence_error(cause: BaseException) -> PersistenceError:
    try:
        raise PersistenceError("upsert failed", resource_type="do_key") from cause
    except PersistenceError as exc:
        return exc


@pytest.mark.parametrize(
    "exc",
    [
        ExternalAPIError("429"),
        UnitTimeoutError("slow", timeout_type="heartbeat"),
        ConnectionError("reset"),
        TimeoutError("timed out"),
        _operational_error(),
    ],
)
def test_transient_errors(exc):
    assert is_transient(exc)


@pytest.mark.parametrize(
    "exc",
    [
        AdapterError("401"),
        ConversionError("bad record", resource_type="do_key"),
        UnitNotFoundError("ingest.nope"),
        ValueError("unknown"),
        KeyError("unknown"),
    ],
)
def test_non_transient_errors(exc):
    assert not is_transient(exc)


def test_persistence_error_transience_follows_cause():
    assert is_transient(_persistence_error(_operational_error()))
    assert not is_transient(_persistence_error(ValueError("constraint")))


def test_policy_from_settings():
    settings = Settings(RETRY_MAX_ATTEMPTS=5, RETRY_INITIAL_INTERVAL_SECONDS=0.5)
    policy = RetryPolicy.from_settings(settings)
    assert policy.maximum_attempts == 5
    assert policy.initial_interval == 0.5


def test_policy_rejects_zero_attempts():
    with pytest.raises(ValueError):
        RetryPolicy(maximum_attempts=0)


async def test_async_retrying_retries_transient_then_reraises():
    policy = RetryPolicy(initial_interval=0, maximum_interval=0, maximum_attempts=3)
    calls = 0
    with pytest.raises(ExternalAPIError):
        async for attempt in async_retrying(policy, operation="test"):
            with attempt:
                calls += 1
                raise ExternalAPIError("still failing")
    assert calls == 3


async def test_async_retrying_does_not_retry_permanent_errors():
    policy = RetryPolicy(initial_interval=0, maximum_interval=0, maximum_attempts=3)
    calls = 0
    with pytest.raises(AdapterError):
        async for attempt in async_retrying(policy, operation="test"):
            with attempt:
                calls += 1
                raise AdapterError("forbidden")
    assert calls == 1
