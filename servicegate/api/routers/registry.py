"""Registry API router: internal registration, lookup and health endpoints."""

from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse

from servicegate.domain import NotRegisteredError, ServiceRegistration
from servicegate.registry import RegistryAccessGuard, RegistryService


def api_create_registry_router(
    registry_service: RegistryService,
    access_guard: RegistryAccessGuard,
) -> APIRouter:
    """Create registry router with every endpoint gated by registry access control.

    Args:
        registry_service: Registry service owning admission and removal.
        access_guard: Source-classification and shared-secret guard.

    Returns:
        APIRouter: Router exposing `/registry/*` endpoints.

    Raises:
        ValueError: Raised when dependencies are invalid.
    """

    if registry_service is None:
        raise ValueError("registry_service must not be None")
    if access_guard is None:
        raise ValueError("access_guard must not be None")

    def api_registry_access(request: Request) -> str:
        """Apply registry access control to the current request.

        Returns:
            str: Effective client address granted access.

        Raises:
            ForbiddenError: Raised for external callers.
            UnauthorizedError: Raised for a missing or wrong registry key.
            MisconfigurationError: Raised when no registry key is configured.
        """

        peer_host = request.client.host if request.client else None
        return access_guard.access_check(request.headers, peer_host)

    router = APIRouter(prefix="/registry", tags=["registry"], dependencies=[Depends(api_registry_access)])

    @router.post("/register")
    async def api_registry_register(registration: ServiceRegistration) -> JSONResponse:
        """Admit one service after its pre-admission health probe.

        Returns:
            JSONResponse: 201 payload with registration summary.

        Raises:
            RegistrationRejectedError: Raised when the health probe fails.
        """

        stored_registration = await registry_service.registry_register(registration)
        registered_at = stored_registration.timestamp or datetime.now(timezone.utc)
        payload = {
            "success": True,
            "message": f"Service {stored_registration.name} registered successfully",
            "data": {
                "name": stored_registration.name,
                "host": stored_registration.host,
                "port": stored_registration.port,
                "version": stored_registration.version,
                "registeredAt": registered_at.isoformat(),
            },
        }
        return JSONResponse(content=payload, status_code=status.HTTP_201_CREATED)

    @router.delete("/services/{service_name}")
    def api_registry_deregister(service_name: str) -> JSONResponse:
        """Remove one registration; repeated calls report `success: false`."""

        was_removed = registry_service.registry_deregister(service_name)
        payload = {
            "success": was_removed,
            "message": (
                f"Service {service_name} deregistered successfully"
                if was_removed
                else f"Service {service_name} was not found"
            ),
            "data": {
                "serviceName": service_name,
                "deregisteredAt": datetime.now(timezone.utc).isoformat(),
            },
        }
        return JSONResponse(content=payload, status_code=status.HTTP_200_OK)

    @router.get("/services")
    def api_registry_list() -> JSONResponse:
        registrations = registry_service.registry_list()
        payload = {
            "success": True,
            "data": {
                "services": [registration.to_wire() for registration in registrations],
                "count": len(registrations),
                "timestamp": datetime.now(timezone.utc).isoformat(),
            },
        }
        return JSONResponse(content=payload, status_code=status.HTTP_200_OK)

    @router.get("/services/{service_name}")
    def api_registry_detail(service_name: str) -> JSONResponse:
        """Return one registration.

        Raises:
            NotRegisteredError: Raised when the service is not registered.
        """

        registration = registry_service.registry_get(service_name)
        if registration is None:
            raise NotRegisteredError(f"Service {service_name} not found")
        return JSONResponse(content={"success": True, "data": registration.to_wire()}, status_code=status.HTTP_200_OK)

    @router.get("/health")
    async def api_registry_health() -> JSONResponse:
        """Probe all registrations without evicting any of them."""

        registry_health = await registry_service.registry_health()
        return JSONResponse(
            content={"success": True, "data": registry_health.to_dict()},
            status_code=status.HTTP_200_OK,
        )

    @router.get("/ping")
    def api_registry_ping() -> JSONResponse:
        payload = {
            "success": True,
            "message": "Registry service is running",
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        return JSONResponse(content=payload, status_code=status.HTTP_200_OK)

    return router
