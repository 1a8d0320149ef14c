"""Registry service implementing admission, removal and aggregate health."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from datetime import datetime, timezone

from servicegate.domain import (
    ProbeResult,
    RegistrationRejectedError,
    RegistryHealth,
    ServiceRegistration,
    ServiceStatus,
)
from servicegate.logging import get_logger

from .heartbeat import HeartbeatMonitor
from .interfaces import HealthProberPort, RegistryLookupPort, RegistryStorePort

logger = get_logger(__name__)


def _registry_utc_now() -> datetime:
    return datetime.now(timezone.utc)


class RegistryService(RegistryLookupPort):
    """Registry service gating admission on a successful health probe."""

    def __init__(
        self,
        store: RegistryStorePort,
        prober: HealthProberPort,
        heartbeat_monitor: HeartbeatMonitor,
        clock: Callable[[], datetime] | None = None,
    ):
        """Initialize registry service.

        Args:
            store: Shared registry store.
            prober: Health prober used for pre-admission and aggregate checks.
            heartbeat_monitor: Monitor that owns heartbeat tasks for admitted services.
            clock: Optional UTC clock override used to default registration timestamps.

        Raises:
            ValueError: Raised when dependencies are invalid.
        """

        if store is None:
            raise ValueError("store must not be None")
        if prober is None:
            raise ValueError("prober must not be None")
        if heartbeat_monitor is None:
            raise ValueError("heartbeat_monitor must not be None")

        self._store = store
        self._prober = prober
        self._heartbeat_monitor = heartbeat_monitor
        self._clock = clock or _registry_utc_now

    async def registry_register(self, registration: ServiceRegistration) -> ServiceRegistration:
        """Admit a registration after a successful pre-admission probe.

        The store is not touched until the probe succeeds. An existing
        registration under the same name is fully replaced and its heartbeat
        cancelled.

        Args:
            registration: Validated registration payload.

        Returns:
            ServiceRegistration: Stored registration with timestamp defaulted when absent.

        Raises:
            RegistrationRejectedError: Raised when the pre-admission probe fails.
        """

        logger.info(
            "service_registration_requested",
            service=registration.name,
            host=registration.host,
            port=registration.port,
            version=registration.version,
        )
        probe_result = await self._prober.prober_probe(registration)
        if not probe_result.success:
            logger.error(
                "service_registration_rejected",
                service=registration.name,
                cause=probe_result.cause.value if probe_result.cause else None,
                detail=probe_result.detail,
            )
            raise RegistrationRejectedError(f"Service health check failed: {probe_result.detail}")

        stored_registration = registration
        if stored_registration.timestamp is None:
            stored_registration = registration.model_copy(update={"timestamp": self._clock()})

        replaced = self._store.store_get(registration.name) is not None
        self._store.store_set(stored_registration.name, stored_registration)
        self._heartbeat_monitor.heartbeat_start(stored_registration)
        logger.info("service_registered", service=registration.name, replaced=replaced)
        return stored_registration

    def registry_deregister(self, name: str) -> bool:
        """Stop the heartbeat for name and remove its registration.

        Args:
            name: Service name.

        Returns:
            bool: True when a registration existed; False when it was already absent.
        """

        self._heartbeat_monitor.heartbeat_stop(name)
        was_removed = self._store.store_delete(name)
        if was_removed:
            logger.info("service_deregistered", service=name)
        else:
            logger.warning("service_deregister_missing", service=name)
        return was_removed

    def registry_get(self, name: str) -> ServiceRegistration | None:
        return self._store.store_get(name)

    def registry_list(self) -> list[ServiceRegistration]:
        return sorted(self._store.store_list(), key=lambda registration: registration.name)

    def registry_count(self) -> int:
        return self._store.store_count()

    async def registry_health(self) -> RegistryHealth:
        """Probe every current registration concurrently and aggregate the results.

        Failed probes are reported as `down` but never evict; only heartbeats evict.

        Returns:
            RegistryHealth: Snapshot of per-service status and counts.
        """

        registrations = self._store.store_list()
        probe_results = await asyncio.gather(
            *(self._prober.prober_probe(registration) for registration in registrations)
        )
        checked_at = self._clock()
        services = {
            registration.name: self._registry_service_status(registration, probe_result, checked_at)
            for registration, probe_result in zip(registrations, probe_results)
        }
        return RegistryHealth(services=dict(sorted(services.items())))

    def registry_shutdown(self) -> int:
        """Cancel all heartbeats on application shutdown and return how many were stopped."""

        stopped_count = self._heartbeat_monitor.heartbeat_stop_all()
        logger.info("registry_shutdown", heartbeats_stopped=stopped_count)
        return stopped_count

    @staticmethod
    def _registry_service_status(
        registration: ServiceRegistration,
        probe_result: ProbeResult,
        checked_at: datetime,
    ) -> ServiceStatus:
        if probe_result.success:
            return ServiceStatus(
                name=registration.name,
                status="up",
                last_checked=checked_at,
                response_time_ms=probe_result.response_time_ms,
            )
        return ServiceStatus(
            name=registration.name,
            status="down",
            last_checked=checked_at,
            error=probe_result.detail,
        )
