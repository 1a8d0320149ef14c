"""Typed interfaces for registry-layer responsibilities.

All registry state lives behind `RegistryStorePort`; other layers reach it only
through the registry service.
"""

from typing import Protocol

from servicegate.domain import ProbeResult, RegistryHealth, ServiceRegistration


class HeartbeatHandlePort(Protocol):
    """Owned handle to the periodic probe task of one service."""

    @property
    def service_name(self) -> str:
        """Return the service name this handle monitors."""

    def handle_cancel(self) -> bool:
        """Cancel the underlying task.

        Returns:
            bool: True when this call performed the cancellation, False when already cancelled or finished.
        """

    def handle_is_active(self) -> bool:
        """Return True while the underlying task has not finished or been cancelled."""


class RegistryStorePort(Protocol):
    """Port definition for the single shared registration mapping."""

    def store_set(self, name: str, registration: ServiceRegistration) -> None:
        """Store a registration, fully overwriting any prior record under the same name."""

    def store_get(self, name: str) -> ServiceRegistration | None:
        """Return the registration for name, or None."""

    def store_delete(self, name: str) -> bool:
        """Remove a registration.

        Returns:
            bool: True when a registration existed and was removed.
        """

    def store_list(self) -> list[ServiceRegistration]:
        """Return a snapshot list of all registrations."""

    def store_count(self) -> int:
        """Return number of registrations."""

    def store_swap_heartbeat(self, name: str, handle: HeartbeatHandlePort) -> HeartbeatHandlePort | None:
        """Install a heartbeat handle for name and return the handle it replaced."""

    def store_pop_heartbeat(
        self,
        name: str,
        expected: HeartbeatHandlePort | None = None,
    ) -> HeartbeatHandlePort | None:
        """Remove and return the heartbeat handle for name.

        Args:
            name: Service name.
            expected: When given, pop only if the current handle is this exact object.

        Returns:
            HeartbeatHandlePort | None: Removed handle, or None when absent or not matching.
        """

    def store_heartbeat_names(self) -> list[str]:
        """Return names that currently own a heartbeat handle."""


class HealthProberPort(Protocol):
    """Port definition for bounded-timeout health probes."""

    async def prober_probe(self, registration: ServiceRegistration) -> ProbeResult:
        """Probe the registration's health endpoint.

        Args:
            registration: Registration to probe.

        Returns:
            ProbeResult: Success or failure with a distinguished cause. Never raises for transport failures.
        """


class RegistryLookupPort(Protocol):
    """Port used by the gateway layer to read and evict registrations."""

    def registry_get(self, name: str) -> ServiceRegistration | None:
        """Return current registration for name."""

    def registry_list(self) -> list[ServiceRegistration]:
        """Return all current registrations."""

    def registry_deregister(self, name: str) -> bool:
        """Stop monitoring and remove a registration."""

    async def registry_health(self) -> RegistryHealth:
        """Probe all registrations and return an aggregate snapshot without eviction."""
