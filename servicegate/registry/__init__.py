"""Registry layer package: store, prober, heartbeat monitor, access control."""

from .access import REGISTRY_KEY_HEADER, RegistryAccessGuard
from .heartbeat import HeartbeatHandle, HeartbeatMonitor
from .interfaces import HealthProberPort, HeartbeatHandlePort, RegistryLookupPort, RegistryStorePort
from .prober import HttpHealthProber
from .service import RegistryService
from .store import InMemoryRegistryStore

__all__ = [
    "REGISTRY_KEY_HEADER",
    "HealthProberPort",
    "HeartbeatHandle",
    "HeartbeatHandlePort",
    "HeartbeatMonitor",
    "HttpHealthProber",
    "InMemoryRegistryStore",
    "RegistryAccessGuard",
    "RegistryLookupPort",
    "RegistryService",
    "RegistryStorePort",
]
