"""Gateway router composition: service listing and the catch-all proxy routes."""

from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse, Response

from servicegate.gateway import GatewayRouter

_PROXY_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS"]


def api_create_gateway_router(gateway_router: GatewayRouter) -> APIRouter:
    """Create gateway router with the endpoint listing and proxy routes.

    Proxy routes must be included after every fixed-path router because
    `/{service}/{version}` matches any two-segment path.

    Args:
        gateway_router: Gateway routing service.

    Returns:
        APIRouter: Router exposing `/services` and `/{service}/{version}[/{path}]`.

    Raises:
        ValueError: Raised when gateway_router is invalid.
    """

    if gateway_router is None:
        raise ValueError("gateway_router must not be None")

    router = APIRouter(tags=["gateway"])

    @router.get("/services")
    def api_gateway_services() -> JSONResponse:
        endpoints = gateway_router.gateway_service_endpoints()
        return JSONResponse(
            content={"services": [endpoint.to_dict() for endpoint in endpoints]},
            status_code=status.HTTP_200_OK,
        )

    async def api_gateway_forward(request: Request, service: str, version: str, path: str) -> Response:
        proxy_response = await gateway_router.gateway_route_request(
            method=request.method,
            service_name=service,
            version=version,
            path=path,
            body=await request.body(),
            query=request.url.query,
            headers=dict(request.headers),
        )
        return Response(
            content=proxy_response.content,
            status_code=proxy_response.status_code,
            media_type=proxy_response.media_type,
        )

    @router.api_route("/{service}/{version}", methods=_PROXY_METHODS)
    async def api_gateway_proxy(request: Request, service: str, version: str) -> Response:
        """Forward a request addressed to the service version root."""

        return await api_gateway_forward(request, service, version, "")

    @router.api_route("/{service}/{version}/{path:path}", methods=_PROXY_METHODS)
    async def api_gateway_proxy_path(request: Request, service: str, version: str, path: str) -> Response:
        """Forward a request with wildcard path segments joined by `/`."""

        return await api_gateway_forward(request, service, version, path)

    return router
