"""In-memory registry store shared by the registry and gateway layers."""

from __future__ import annotations

import threading

from servicegate.domain import ServiceRegistration
from servicegate.logging import get_logger

from .interfaces import HeartbeatHandlePort, RegistryStorePort

logger = get_logger(__name__)


class InMemoryRegistryStore(RegistryStorePort):
    """Thread-safe, dict-backed registration store with a heartbeat-handle slot per name."""

    def __init__(self):
        self._lock = threading.Lock()
        self._services: dict[str, ServiceRegistration] = {}
        self._heartbeats: dict[str, HeartbeatHandlePort] = {}

    def store_set(self, name: str, registration: ServiceRegistration) -> None:
        if name != registration.name:
            raise ValueError("store key must match registration name")
        with self._lock:
            self._services[name] = registration
        logger.debug("registry_store_set", service=name)

    def store_get(self, name: str) -> ServiceRegistration | None:
        with self._lock:
            return self._services.get(name)

    def store_delete(self, name: str) -> bool:
        with self._lock:
            deleted = self._services.pop(name, None) is not None
        logger.debug("registry_store_delete", service=name, deleted=deleted)
        return deleted

    def store_list(self) -> list[ServiceRegistration]:
        with self._lock:
            return list(self._services.values())

    def store_count(self) -> int:
        with self._lock:
            return len(self._services)

    def store_swap_heartbeat(self, name: str, handle: HeartbeatHandlePort) -> HeartbeatHandlePort | None:
        with self._lock:
            previous_handle = self._heartbeats.get(name)
            self._heartbeats[name] = handle
        return previous_handle

    def store_pop_heartbeat(
        self,
        name: str,
        expected: HeartbeatHandlePort | None = None,
    ) -> HeartbeatHandlePort | None:
        with self._lock:
            current_handle = self._heartbeats.get(name)
            if current_handle is None:
                return None
            if expected is not None and current_handle is not expected:
                return None
            del self._heartbeats[name]
        return current_handle

    def store_heartbeat_names(self) -> list[str]:
        with self._lock:
            return list(self._heartbeats)
