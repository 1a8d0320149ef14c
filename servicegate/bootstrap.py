"""Application bootstrap wiring for startup validation and dependency assembly."""

from __future__ import annotations

from dataclasses import dataclass

import httpx
from fastapi import FastAPI

from servicegate.api import create_gateway_application, create_registry_application
from servicegate.config import AppSettings, config_load_settings
from servicegate.domain import FailurePolicy
from servicegate.gateway import AuthGate, GatewayRouter
from servicegate.logging import get_logger, logging_mask_secret
from servicegate.registry import (
    HeartbeatMonitor,
    HttpHealthProber,
    InMemoryRegistryStore,
    RegistryAccessGuard,
    RegistryService,
)

logger = get_logger(__name__)


@dataclass(frozen=True)
class GatewayRuntime:
    """Fully wired runtime shared by the gateway and registry applications.

    Attributes:
        settings: Validated settings the runtime was built from.
        http_client: Shared async client used for probes, forwarding and auth calls.
        registry_service: Registry owning admission, heartbeats and removal.
        gateway_router: Proxy routing service.
        auth_gate: API-key gate for the public application.
        access_guard: Access guard for the registry application.
        gateway_application: Public FastAPI application.
        registry_application: Internal FastAPI application.
    """

    settings: AppSettings
    http_client: httpx.AsyncClient
    registry_service: RegistryService
    gateway_router: GatewayRouter
    auth_gate: AuthGate
    access_guard: RegistryAccessGuard
    gateway_application: FastAPI
    registry_application: FastAPI

    async def runtime_close(self) -> None:
        """Cancel heartbeats and release the shared HTTP client."""

        self.registry_service.registry_shutdown()
        await self.http_client.aclose()


def bootstrap_create_runtime(
    settings: AppSettings | None = None,
    http_client: httpx.AsyncClient | None = None,
) -> GatewayRuntime:
    """Assemble both applications around one registry after validating configuration.

    Args:
        settings: Optional pre-validated settings; loaded from the environment when omitted.
        http_client: Optional async HTTP client, mainly for tests with a mock transport.

    Returns:
        GatewayRuntime: Wired runtime.

    Raises:
        SettingsLoadError: Raised when startup configuration validation fails.
    """

    resolved_settings = settings or config_load_settings()
    shared_http_client = http_client or httpx.AsyncClient()

    store = InMemoryRegistryStore()
    prober = HttpHealthProber(
        http_client=shared_http_client,
        timeout_seconds=resolved_settings.probe_timeout_seconds,
        hostname_mode=resolved_settings.resolved_hostname_mode,
        container_dns_suffix=resolved_settings.container_dns_suffix,
    )
    heartbeat_monitor = HeartbeatMonitor(
        store=store,
        prober=prober,
        interval_seconds=resolved_settings.heartbeat_interval_seconds,
    )
    registry_service = RegistryService(store=store, prober=prober, heartbeat_monitor=heartbeat_monitor)
    gateway_router = GatewayRouter(
        registry=registry_service,
        http_client=shared_http_client,
        forward_timeout_seconds=resolved_settings.forward_timeout_seconds,
    )
    auth_gate = AuthGate(
        registry=registry_service,
        http_client=shared_http_client,
        auth_service_name=resolved_settings.auth_service_name,
        policy=FailurePolicy(resolved_settings.auth_failure_policy),
        timeout_seconds=resolved_settings.auth_timeout_seconds,
    )
    access_guard = RegistryAccessGuard(
        expected_key=resolved_settings.reg_key,
        policy=FailurePolicy(resolved_settings.registry_failure_policy),
        extra_internal_networks=resolved_settings.internal_network_list,
    )

    logger.info(
        "runtime_assembled",
        environment=resolved_settings.environment_name,
        hostname_mode=resolved_settings.resolved_hostname_mode,
        heartbeat_interval_seconds=resolved_settings.heartbeat_interval_seconds,
        reg_key=logging_mask_secret(resolved_settings.reg_key),
    )
    return GatewayRuntime(
        settings=resolved_settings,
        http_client=shared_http_client,
        registry_service=registry_service,
        gateway_router=gateway_router,
        auth_gate=auth_gate,
        access_guard=access_guard,
        gateway_application=create_gateway_application(
            settings=resolved_settings,
            registry_service=registry_service,
            gateway_router=gateway_router,
            auth_gate=auth_gate,
        ),
        registry_application=create_registry_application(
            settings=resolved_settings,
            registry_service=registry_service,
            access_guard=access_guard,
        ),
    )
