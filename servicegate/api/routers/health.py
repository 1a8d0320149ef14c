"""Health endpoint router composition for gateway liveness and registry status."""

import time
from datetime import datetime, timezone

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse

from servicegate.registry import RegistryLookupPort


def api_create_health_router(registry: RegistryLookupPort) -> APIRouter:
    """Create health-check router with liveness and aggregate registry status.

    Args:
        registry: Registry lookup port used for counts and aggregate probes.

    Returns:
        APIRouter: Router exposing `/health`, `/ping` and `/health/registry`.

    Raises:
        ValueError: Raised when registry is invalid.
    """

    if registry is None:
        raise ValueError("registry must not be None")

    router = APIRouter(tags=["health"])
    started_at = time.monotonic()

    def api_liveness_payload(message: str) -> dict[str, object]:
        return {
            "status": "ok",
            "message": message,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "uptime_seconds": round(time.monotonic() - started_at, 3),
            "registered_services": len(registry.registry_list()),
        }

    @router.get("/health")
    def api_health_status() -> JSONResponse:
        """Return gateway liveness without probing any backend."""

        return JSONResponse(content=api_liveness_payload("Gateway is healthy"), status_code=status.HTTP_200_OK)

    @router.get("/ping")
    def api_health_ping() -> JSONResponse:
        return JSONResponse(content=api_liveness_payload("Gateway is alive"), status_code=status.HTTP_200_OK)

    @router.get("/health/registry")
    async def api_health_registry() -> JSONResponse:
        """Return aggregate registry health.

        Returns:
            JSONResponse: `ok` when every service answered its probe, otherwise `degraded`.
        """

        registry_health = await registry.registry_health()
        payload = {
            "status": "ok" if registry_health.unhealthy_services == 0 else "degraded",
            "data": registry_health.to_dict(),
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        return JSONResponse(content=payload, status_code=status.HTTP_200_OK)

    return router
