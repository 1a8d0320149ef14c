"""Gateway router resolving `{service, version}` pairs and forwarding requests."""

from __future__ import annotations

from collections.abc import Sequence

import httpx

from servicegate.domain import (
    NotRegisteredError,
    ProxyResponse,
    ServiceEndpoint,
    ServiceRegistration,
    UpstreamError,
    UpstreamUnavailableError,
)
from servicegate.logging import get_logger
from servicegate.registry import RegistryLookupPort

logger = get_logger(__name__)

_FORWARDED_HEADER_NAMES = ("content-type", "accept")


def gateway_join_path(path: str | Sequence[str] | None) -> str:
    """Join wildcard path segments with `/` and strip surrounding slashes.

    Args:
        path: Remainder path as a string or a sequence of segments.

    Returns:
        str: Normalized remainder path without leading or trailing slash.
    """

    if path is None:
        return ""
    segments = [path] if isinstance(path, str) else list(path)
    return "/".join(segment.strip("/") for segment in segments if segment and segment.strip("/"))


class GatewayRouter:
    """Transparent reverse proxy backed by the live registry."""

    def __init__(
        self,
        registry: RegistryLookupPort,
        http_client: httpx.AsyncClient,
        forward_timeout_seconds: float = 10.0,
    ):
        """Initialize gateway router.

        Args:
            registry: Registry lookup port shared with the registry application.
            http_client: Shared async HTTP client for forwarding.
            forward_timeout_seconds: Upper bound for one forwarded request.

        Raises:
            ValueError: Raised when dependencies or timeout are invalid.
        """

        if registry is None:
            raise ValueError("registry must not be None")
        if http_client is None:
            raise ValueError("http_client must not be None")
        if forward_timeout_seconds <= 0:
            raise ValueError("forward_timeout_seconds must be > 0")

        self._registry = registry
        self._http_client = http_client
        self._forward_timeout_seconds = forward_timeout_seconds

    @staticmethod
    def gateway_build_target_url(
        registration: ServiceRegistration,
        service_name: str,
        version: str,
        path: str | Sequence[str] | None = None,
    ) -> str:
        base_url = f"http://{registration.host}:{registration.port}/{service_name}/{version}"
        remainder = gateway_join_path(path)
        return f"{base_url}/{remainder}" if remainder else base_url

    async def gateway_route_request(
        self,
        method: str,
        service_name: str,
        version: str,
        path: str | Sequence[str] | None = None,
        body: bytes | None = None,
        query: str = "",
        headers: dict[str, str] | None = None,
    ) -> ProxyResponse:
        """Forward one request to the registered backend and relay its response.

        Args:
            method: HTTP method.
            service_name: Target service name.
            version: API version path segment.
            path: Remainder path or wildcard segments.
            body: Raw request body bytes.
            query: Raw query string without leading `?`.
            headers: Inbound headers; only content negotiation headers are forwarded.

        Returns:
            ProxyResponse: Backend status, body and content type, unmodified.

        Raises:
            NotRegisteredError: Raised when no registration exists for service_name.
            UpstreamUnavailableError: Raised when the backend refuses the connection or times out.
            UpstreamError: Raised when the backend reports an error or the transport fails otherwise.
        """

        registration = self._registry.registry_get(service_name)
        if registration is None:
            logger.warning("gateway_service_not_registered", service=service_name)
            raise NotRegisteredError(f"Service {service_name} is not registered or unavailable")

        target_url = self.gateway_build_target_url(registration, service_name, version, path)
        forwarded_headers = {
            header_name: header_value
            for header_name, header_value in (headers or {}).items()
            if header_name.lower() in _FORWARDED_HEADER_NAMES
        }
        logger.debug("gateway_forwarding", service=service_name, method=method, url=target_url)

        try:
            response = await self._http_client.request(
                method.upper(),
                f"{target_url}?{query}" if query else target_url,
                content=body or None,
                headers=forwarded_headers,
                timeout=self._forward_timeout_seconds,
            )
        except (httpx.ConnectError, httpx.TimeoutException) as error:
            logger.warning(
                "gateway_backend_down",
                service=service_name,
                url=target_url,
                error=str(error) or error.__class__.__name__,
            )
            self._gateway_evict_best_effort(service_name)
            raise UpstreamUnavailableError(f"Service {service_name} is not available") from error
        except (httpx.HTTPError, httpx.InvalidURL) as error:
            logger.error("gateway_transport_error", service=service_name, url=target_url, error=str(error))
            raise UpstreamError(f"Service {service_name} request failed: {error}") from error

        media_type = response.headers.get("content-type")
        if response.status_code >= 400:
            logger.error(
                "gateway_backend_error",
                service=service_name,
                url=target_url,
                status_code=response.status_code,
            )
            raise UpstreamError(
                f"Service {service_name} responded with status {response.status_code}",
                upstream_status=response.status_code,
                upstream_body=response.content,
                upstream_media_type=media_type,
            )

        return ProxyResponse(status_code=response.status_code, content=response.content, media_type=media_type)

    def gateway_service_endpoints(self) -> list[ServiceEndpoint]:
        """Project current registrations into a stable listing.

        Returns:
            list[ServiceEndpoint]: Entries sorted by service name with a static `registered` label.
        """

        return [
            ServiceEndpoint(
                service=registration.name,
                endpoint=f"/{registration.name}/{registration.version}",
                url=f"http://{registration.host}:{registration.port}/{registration.name}/{registration.version}",
                version=registration.version,
            )
            for registration in sorted(self._registry.registry_list(), key=lambda item: item.name)
        ]

    def _gateway_evict_best_effort(self, service_name: str) -> None:
        try:
            self._registry.registry_deregister(service_name)
        except Exception as error:  # pylint: disable=broad-exception-caught
            logger.error("gateway_evict_failed", service=service_name, error=str(error))
