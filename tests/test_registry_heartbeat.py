"""Tests for heartbeat scheduling, one-strike eviction and cancellation."""

import asyncio

import pytest
from structlog.testing import capture_logs

from servicegate.domain import ProbeFailureCause, ProbeResult, ServiceRegistration
from servicegate.registry import HeartbeatMonitor, InMemoryRegistryStore


class _SequenceProber:
    """Prober double replaying a fixed outcome sequence, repeating the last outcome."""

    def __init__(self, outcomes: list[bool]):
        self._outcomes = outcomes
        self.call_count = 0

    async def prober_probe(self, registration: ServiceRegistration) -> ProbeResult:
        outcome = self._outcomes[min(self.call_count, len(self._outcomes) - 1)]
        self.call_count += 1
        url = f"http://localhost:{registration.port}{registration.health_endpoint}"
        if outcome:
            return ProbeResult(success=True, url=url, response_time_ms=1.0, status_code=200)
        return ProbeResult(
            success=False,
            url=url,
            response_time_ms=1.0,
            status_code=503,
            cause=ProbeFailureCause.BAD_STATUS,
            detail="health check returned status 503",
        )


async def _yield_only(_seconds: float) -> None:
    await asyncio.sleep(0)


async def _never_wake(_seconds: float) -> None:
    await asyncio.Event().wait()


async def _drain_until(predicate, max_iterations: int = 200) -> None:
    for _ in range(max_iterations):
        if predicate():
            return
        await asyncio.sleep(0)
    raise AssertionError("condition not reached")


def _store_with(registration: ServiceRegistration) -> InMemoryRegistryStore:
    store = InMemoryRegistryStore()
    store.store_set(registration.name, registration)
    return store


def _heartbeat_task(name: str) -> asyncio.Task:
    return next(task for task in asyncio.all_tasks() if task.get_name() == f"heartbeat:{name}")


@pytest.mark.asyncio
async def test_registry_heartbeat_evicts_on_first_failed_probe_exactly_once() -> None:
    """Evict a service on its first failed heartbeat and stop probing it.

    Returns:
        None: Assertions validate one-strike eviction behavior.

    Raises:
        AssertionError: Raised when eviction happens late, twice or not at all.
    """

    registration = ServiceRegistration(name="users", port=4001, version="v1")
    store = _store_with(registration)
    prober = _SequenceProber([True, True, False])
    monitor = HeartbeatMonitor(store=store, prober=prober, interval_seconds=0.01, sleep=_yield_only)

    with capture_logs() as captured_logs:
        handle = monitor.heartbeat_start(registration)
        task = _heartbeat_task("users")
        await _drain_until(lambda: store.store_get("users") is None)
        await task

    evicted_events = [entry for entry in captured_logs if entry["event"] == "service_evicted"]
    assert len(evicted_events) == 1
    assert evicted_events[0]["cause"] == "bad_status"
    assert prober.call_count == 3
    assert store.store_heartbeat_names() == []
    assert handle.handle_is_active() is False
    assert monitor.heartbeat_stop("users") is False


@pytest.mark.asyncio
async def test_registry_heartbeat_restart_cancels_previous_task() -> None:
    registration = ServiceRegistration(name="users", port=4001, version="v1")
    store = _store_with(registration)
    monitor = HeartbeatMonitor(store=store, prober=_SequenceProber([True]), sleep=_never_wake)

    first_handle = monitor.heartbeat_start(registration)
    first_task = _heartbeat_task("users")
    second_handle = monitor.heartbeat_start(registration)

    with pytest.raises(asyncio.CancelledError):
        await first_task
    assert first_handle.handle_is_active() is False
    assert second_handle.handle_is_active() is True
    assert monitor.heartbeat_active_names() == ["users"]
    assert monitor.heartbeat_stop_all() == 1


@pytest.mark.asyncio
async def test_registry_heartbeat_superseded_task_does_not_evict_new_registration() -> None:
    """Leave a re-registered service alone when a stale heartbeat reports failure.

    Returns:
        None: Assertions validate superseded-heartbeat behavior.

    Raises:
        AssertionError: Raised when the stale heartbeat removes the new registration.
    """

    old_registration = ServiceRegistration(name="users", port=4001, version="v1")
    store = _store_with(old_registration)
    monitor = HeartbeatMonitor(store=store, prober=_SequenceProber([True]), sleep=_never_wake)
    old_handle = monitor.heartbeat_start(old_registration)

    new_registration = ServiceRegistration(name="users", port=4002, version="v1")
    store.store_set("users", new_registration)
    new_handle = monitor.heartbeat_start(new_registration)
    failed_probe = ProbeResult(
        success=False,
        url="http://localhost:4001/users/v1/health",
        response_time_ms=1.0,
        cause=ProbeFailureCause.CONNECTION_REFUSED,
        detail="connection refused",
    )

    evicted = monitor._heartbeat_evict(old_registration, old_handle, failed_probe)  # pylint: disable=protected-access

    assert evicted is False
    assert store.store_get("users") is new_registration
    assert new_handle.handle_is_active() is True
    monitor.heartbeat_stop_all()


@pytest.mark.asyncio
async def test_registry_heartbeat_cancel_from_other_thread_stops_task() -> None:
    registration = ServiceRegistration(name="users", port=4001, version="v1")
    store = _store_with(registration)
    monitor = HeartbeatMonitor(store=store, prober=_SequenceProber([True]), sleep=_never_wake)
    handle = monitor.heartbeat_start(registration)
    task = _heartbeat_task("users")

    assert await asyncio.to_thread(handle.handle_cancel) is True
    assert handle.handle_cancel() is False

    with pytest.raises(asyncio.CancelledError):
        await task


def test_registry_heartbeat_rejects_non_positive_interval() -> None:
    with pytest.raises(ValueError, match="interval_seconds"):
        HeartbeatMonitor(store=InMemoryRegistryStore(), prober=_SequenceProber([True]), interval_seconds=0)
