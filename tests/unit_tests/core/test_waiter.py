import threading
import time

import pytest

from deploy_engine.core.exceptions import ConfigurationError, DeploymentCancelled, ReadinessTimeoutError
from deploy_engine.core.models import Resource, ResourceKind, ResourceState
from deploy_engine.core.waiter import ReadinessWaiter, status_is


def _resolved(name="app"):
    resource = Resource(kind=ResourceKind.COMPUTE_INSTANCE, name=name, identity="i-1")
    resource.transition(ResourceState.RESOLVING)
    resource.transition(ResourceState.CREATED)
    return resource


def test_returns_once_predicate_holds(fake_provider, fake_clock):
    fake_provider.statuses["app"] = ["pending", "pending", "running"]
    waiter = ReadinessWaiter(fake_provider, sleep=fake_clock.sleep)

    resource = waiter.await_ready(_resolved(), status_is("running"), interval=15, max_attempts=5)

    assert resource.state == ResourceState.READY
    assert fake_provider.calls["describe_status"] == 3
    assert fake_clock.sleeps == [15, 15]


def test_timeout_carries_last_status(fake_provider, fake_clock):
    fake_provider.statuses["app"] = ["pending"]
    waiter = ReadinessWaiter(fake_provider, sleep=fake_clock.sleep)

    with pytest.raises(ReadinessTimeoutError) as exc_info:
        waiter.await_ready(_resolved(), status_is("running"), interval=10, max_attempts=4)

    error = exc_info.value
    assert error.resource_name == "app"
    assert error.attempts == 4
    assert error.last_status == "pending"
    assert isinstance(error, TimeoutError)


def test_no_sleep_after_final_attempt(fake_provider, fake_clock):
    fake_provider.statuses["app"] = ["pending"]
    waiter = ReadinessWaiter(fake_provider, sleep=fake_clock.sleep)

    with pytest.raises(ReadinessTimeoutError):
        waiter.await_ready(_resolved(), status_is("running"), interval=10, max_attempts=4)

    # (N-1) * T exactly: three fixed sleeps, no backoff
    assert fake_clock.sleeps == [10, 10, 10]
    assert fake_clock.now == 30


def test_wall_clock_bounds_with_real_sleep(fake_provider):
    fake_provider.statuses["app"] = ["pending"]
    waiter = ReadinessWaiter(fake_provider)
    attempts, interval = 3, 0.05

    start = time.monotonic()
    with pytest.raises(ReadinessTimeoutError):
        waiter.await_ready(_resolved(), status_is("running"), interval=interval, max_attempts=attempts)
    elapsed = time.monotonic() - start

    assert elapsed >= (attempts - 1) * interval
    assert elapsed < attempts * interval + 0.5


def test_query_errors_count_as_not_ready(fake_provider, fake_clock):
    fake_provider.statuses["app"] = [RuntimeError("InvalidInstanceID.NotFound"), "pending", "running"]
    waiter = ReadinessWaiter(fake_provider, sleep=fake_clock.sleep)

    resource = waiter.await_ready(_resolved(), status_is("running"), interval=1, max_attempts=5)

    assert resource.state == ResourceState.READY


def test_timeout_after_query_error_chains_the_error(fake_provider, fake_clock):
    boom = RuntimeError("eventual consistency")
    fake_provider.statuses["app"] = [boom]
    waiter = ReadinessWaiter(fake_provider, sleep=fake_clock.sleep)

    with pytest.raises(ReadinessTimeoutError) as exc_info:
        waiter.await_ready(_resolved(), status_is("running"), interval=1, max_attempts=2)

    assert exc_info.value.__cause__ is boom
    assert exc_info.value.last_status == "eventual consistency"


def test_custom_status_fn_without_marking_ready(fake_provider, fake_clock):
    waiter = ReadinessWaiter(fake_provider, sleep=fake_clock.sleep)
    resource = _resolved()

    waiter.await_ready(resource, status_is("ok"), interval=1, max_attempts=1,
                       status_fn=lambda r: "ok", mark_ready=False)

    assert resource.state == ResourceState.CREATED
    assert fake_provider.calls["describe_status"] == 0


def test_cancel_event_stops_at_interval_boundary(fake_provider, fake_clock):
    fake_provider.statuses["app"] = ["pending"]
    cancel = threading.Event()

    def sleep_then_cancel(seconds):
        fake_clock.sleep(seconds)
        cancel.set()

    waiter = ReadinessWaiter(fake_provider, sleep=sleep_then_cancel, cancel_event=cancel)

    with pytest.raises(DeploymentCancelled):
        waiter.await_ready(_resolved(), status_is("running"), interval=5, max_attempts=10)

    assert fake_provider.calls["describe_status"] == 1
    assert fake_clock.sleeps == [5]


def test_max_attempts_must_be_positive(fake_provider):
    waiter = ReadinessWaiter(fake_provider)

    with pytest.raises(ConfigurationError) as exc_info:
        waiter.await_ready(_resolved(), status_is("running"), interval=1, max_attempts=0)

    assert exc_info.value.resource_name == "app"
    assert fake_provider.calls["describe_status"] == 0
