"""Per-service heartbeat monitor with one-strike eviction.

Each admitted registration owns exactly one asyncio task that sleeps for the
configured interval and probes the service. The first failed probe evicts the
registration and ends the task; there is no retry before removal.

Handles live in the registry store's heartbeat slot, and every cancellation
goes through this module so a handle is cancelled at most once.
"""

from __future__ import annotations

import asyncio
import threading
from collections.abc import Awaitable, Callable

from servicegate.domain import ProbeResult, ServiceRegistration
from servicegate.logging import get_logger

from .interfaces import HealthProberPort, HeartbeatHandlePort, RegistryStorePort

logger = get_logger(__name__)


class HeartbeatHandle(HeartbeatHandlePort):
    """Cancellable handle around one heartbeat task.

    Cancellation is idempotent and may be requested from a thread or event loop
    other than the one running the task.
    """

    def __init__(self, service_name: str):
        self._service_name = service_name
        self._task: asyncio.Task[None] | None = None
        self._lock = threading.Lock()
        self._closed = False

    @property
    def service_name(self) -> str:
        return self._service_name

    def handle_attach(self, task: asyncio.Task[None]) -> None:
        if self._task is not None:
            raise RuntimeError("heartbeat handle already has a task")
        self._task = task

    def handle_close(self) -> bool:
        """Mark the handle finished without cancelling its task.

        Used by the task itself when it ends through eviction.
        """

        with self._lock:
            if self._closed:
                return False
            self._closed = True
        return True

    def handle_cancel(self) -> bool:
        if not self.handle_close():
            return False
        task = self._task
        if task is None or task.done():
            return False

        task_loop = task.get_loop()
        try:
            running_loop = asyncio.get_running_loop()
        except RuntimeError:
            running_loop = None

        if running_loop is task_loop:
            task.cancel()
            return True
        if task_loop.is_closed():
            return False
        task_loop.call_soon_threadsafe(task.cancel)
        return True

    def handle_is_active(self) -> bool:
        with self._lock:
            if self._closed:
                return False
        return self._task is not None and not self._task.done()


class HeartbeatMonitor:
    """Schedules one periodic probe per registered service and evicts on first failure."""

    def __init__(
        self,
        store: RegistryStorePort,
        prober: HealthProberPort,
        interval_seconds: float = 30.0,
        sleep: Callable[[float], Awaitable[None]] | None = None,
    ):
        """Initialize heartbeat monitor.

        Args:
            store: Shared registry store holding registrations and heartbeat handles.
            prober: Health prober used on every tick.
            interval_seconds: Delay between probes of one service.
            sleep: Optional awaitable sleep override.

        Raises:
            ValueError: Raised when dependencies or interval are invalid.
        """

        if store is None:
            raise ValueError("store must not be None")
        if prober is None:
            raise ValueError("prober must not be None")
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be > 0")

        self._store = store
        self._prober = prober
        self._interval_seconds = interval_seconds
        self._sleep = sleep or asyncio.sleep

    @property
    def interval_seconds(self) -> float:
        return self._interval_seconds

    def heartbeat_start(self, registration: ServiceRegistration) -> HeartbeatHandle:
        """Start monitoring a stored registration, replacing any previous heartbeat for its name.

        Args:
            registration: Registration exactly as stored in the registry store.

        Returns:
            HeartbeatHandle: Handle for the new heartbeat task.

        Raises:
            RuntimeError: Raised when called outside a running event loop.
        """

        loop = asyncio.get_running_loop()
        handle = HeartbeatHandle(registration.name)
        task = loop.create_task(
            self._heartbeat_run(registration, handle),
            name=f"heartbeat:{registration.name}",
        )
        handle.handle_attach(task)

        previous_handle = self._store.store_swap_heartbeat(registration.name, handle)
        if previous_handle is not None:
            previous_handle.handle_cancel()
        logger.debug(
            "heartbeat_started",
            service=registration.name,
            interval_seconds=self._interval_seconds,
            replaced=previous_handle is not None,
        )
        return handle

    def heartbeat_stop(self, name: str) -> bool:
        """Cancel and clear the heartbeat for name.

        Returns:
            bool: True when a heartbeat existed. Calling again is a no-op returning False.
        """

        handle = self._store.store_pop_heartbeat(name)
        if handle is None:
            return False
        handle.handle_cancel()
        logger.debug("heartbeat_stopped", service=name)
        return True

    def heartbeat_stop_all(self) -> int:
        """Cancel every active heartbeat and return how many were stopped."""

        stopped_count = 0
        for name in self._store.store_heartbeat_names():
            if self.heartbeat_stop(name):
                stopped_count += 1
        return stopped_count

    def heartbeat_active_names(self) -> list[str]:
        return sorted(self._store.store_heartbeat_names())

    async def _heartbeat_run(self, registration: ServiceRegistration, handle: HeartbeatHandle) -> None:
        name = registration.name
        while True:
            await self._sleep(self._interval_seconds)
            probe_result = await self._prober.prober_probe(registration)
            if probe_result.success:
                logger.debug("heartbeat_succeeded", service=name, response_time_ms=probe_result.response_time_ms)
                continue
            self._heartbeat_evict(registration, handle, probe_result)
            return

    def _heartbeat_evict(
        self,
        registration: ServiceRegistration,
        handle: HeartbeatHandle,
        probe_result: ProbeResult,
    ) -> bool:
        name = registration.name
        if self._store.store_pop_heartbeat(name, expected=handle) is None:
            # superseded by a re-registration or stopped concurrently
            logger.debug("heartbeat_superseded", service=name)
            return False
        handle.handle_close()

        if self._store.store_get(name) is not registration:
            logger.debug("heartbeat_registration_replaced", service=name)
            return False

        removed = self._store.store_delete(name)
        logger.warning(
            "service_evicted",
            service=name,
            cause=probe_result.cause.value if probe_result.cause else None,
            detail=probe_result.detail,
            removed=removed,
        )
        return removed
