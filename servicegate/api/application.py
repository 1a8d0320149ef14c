"""FastAPI application factories for the public gateway and the internal registry."""

from __future__ import annotations

from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import Response

from servicegate.config import AppSettings
from servicegate.domain import GatewayError
from servicegate.gateway import API_KEY_HEADER, AuthGate, GatewayRouter
from servicegate.logging import get_logger
from servicegate.registry import RegistryAccessGuard, RegistryService

from .errors import api_install_error_handlers, api_render_error
from .routers import api_create_gateway_router, api_create_health_router, api_create_registry_router

logger = get_logger(__name__)


def create_gateway_application(
    settings: AppSettings,
    registry_service: RegistryService,
    gateway_router: GatewayRouter,
    auth_gate: AuthGate,
) -> FastAPI:
    """Create the public gateway application.

    Every request passes the auth gate before routing; allow-listed paths
    are exempted inside the gate itself.

    Args:
        settings: Validated application settings used for runtime metadata.
        registry_service: Registry service shared with the registry application.
        gateway_router: Routing service used by proxy routes.
        auth_gate: API-key gate applied as HTTP middleware.

    Returns:
        FastAPI: Gateway application instance.

    Raises:
        ValueError: Raised when dependencies are invalid.
    """

    if auth_gate is None:
        raise ValueError("auth_gate must not be None")

    application = FastAPI(title="servicegate gateway", version="0.1.0")
    application.state.environment_name = settings.environment_name
    api_install_error_handlers(application)

    @application.middleware("http")
    async def api_auth_gate(request: Request, call_next: Callable[[Request], Awaitable[Response]]) -> Response:
        try:
            decision = await auth_gate.auth_check_request(
                request.method,
                request.url.path,
                request.headers.get(API_KEY_HEADER),
            )
        except GatewayError as error:
            return api_render_error(error, request.url.path)
        request.state.auth_decision = decision
        return await call_next(request)

    application.include_router(api_create_health_router(registry=registry_service))
    application.include_router(api_create_gateway_router(gateway_router=gateway_router))
    return application


def create_registry_application(
    settings: AppSettings,
    registry_service: RegistryService,
    access_guard: RegistryAccessGuard,
) -> FastAPI:
    """Create the internal registry application.

    Heartbeats are cancelled when the application shuts down.

    Args:
        settings: Validated application settings used for runtime metadata.
        registry_service: Registry service owning admission and removal.
        access_guard: Guard applied to every registry endpoint.

    Returns:
        FastAPI: Registry application instance.
    """

    @asynccontextmanager
    async def api_registry_lifespan(_application: FastAPI) -> AsyncIterator[None]:
        logger.info("registry_application_started", environment=settings.environment_name)
        try:
            yield
        finally:
            registry_service.registry_shutdown()

    application = FastAPI(title="servicegate registry", version="0.1.0", lifespan=api_registry_lifespan)
    application.state.environment_name = settings.environment_name
    api_install_error_handlers(application)
    application.include_router(
        api_create_registry_router(registry_service=registry_service, access_guard=access_guard)
    )
    return application
