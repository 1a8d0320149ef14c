"""HTTP health prober used for pre-admission checks and heartbeats."""

from __future__ import annotations

import time
from typing import Final

import httpx

from servicegate.domain import ProbeFailureCause, ProbeResult, ServiceRegistration
from servicegate.logging import get_logger

from .interfaces import HealthProberPort

logger = get_logger(__name__)


class HttpHealthProber(HealthProberPort):
    """Health prober issuing bounded-timeout GET requests to registration health endpoints."""

    _SUPPORTED_MODES: Final[frozenset[str]] = frozenset({"loopback", "container_dns", "declared"})
    _LOOPBACK_HOST: Final[str] = "localhost"

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        timeout_seconds: float = 5.0,
        hostname_mode: str = "loopback",
        container_dns_suffix: str = "-service",
    ):
        """Initialize health prober.

        Args:
            http_client: Shared async HTTP client.
            timeout_seconds: Upper bound for one probe.
            hostname_mode: `loopback`, `container_dns` or `declared` host resolution.
            container_dns_suffix: Suffix appended to the service name in `container_dns` mode.

        Raises:
            ValueError: Raised when configuration values are invalid.
        """

        if http_client is None:
            raise ValueError("http_client must not be None")
        if timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be > 0")
        if hostname_mode not in self._SUPPORTED_MODES:
            raise ValueError(f"unsupported hostname_mode: {hostname_mode}")

        self._http_client = http_client
        self._timeout_seconds = timeout_seconds
        self._hostname_mode = hostname_mode
        self._container_dns_suffix = container_dns_suffix

    def prober_resolve_host(self, registration: ServiceRegistration) -> str:
        """Return the hostname probes use for a registration under the configured mode."""

        if self._hostname_mode == "container_dns":
            return f"{registration.name}{self._container_dns_suffix}"
        if self._hostname_mode == "declared":
            return registration.host
        return self._LOOPBACK_HOST

    def prober_health_url(self, registration: ServiceRegistration) -> str:
        host = self.prober_resolve_host(registration)
        return f"http://{host}:{registration.port}{registration.health_endpoint}"

    async def prober_probe(self, registration: ServiceRegistration) -> ProbeResult:
        """Probe one registration and classify the outcome.

        Args:
            registration: Registration to probe.

        Returns:
            ProbeResult: Success, or failure with `connection_refused`, `timeout`,
            `bad_status` or `transport_error` cause.
        """

        health_url = self.prober_health_url(registration)
        started_at = time.perf_counter()
        try:
            response = await self._http_client.get(health_url, timeout=self._timeout_seconds)
        except httpx.TimeoutException as error:
            return self._prober_failure(
                registration, health_url, started_at, ProbeFailureCause.TIMEOUT, f"health check timed out: {error}"
            )
        except httpx.ConnectError as error:
            return self._prober_failure(
                registration,
                health_url,
                started_at,
                ProbeFailureCause.CONNECTION_REFUSED,
                f"connection refused: {error}",
            )
        except (httpx.HTTPError, httpx.InvalidURL) as error:
            return self._prober_failure(
                registration,
                health_url,
                started_at,
                ProbeFailureCause.TRANSPORT_ERROR,
                f"transport error: {error}",
            )

        elapsed_ms = (time.perf_counter() - started_at) * 1000
        if not response.is_success:
            return self._prober_failure(
                registration,
                health_url,
                started_at,
                ProbeFailureCause.BAD_STATUS,
                f"health check returned status {response.status_code}",
                status_code=response.status_code,
            )

        logger.debug("health_probe_passed", service=registration.name, url=health_url)
        return ProbeResult(
            success=True,
            url=health_url,
            response_time_ms=elapsed_ms,
            status_code=response.status_code,
        )

    def _prober_failure(
        self,
        registration: ServiceRegistration,
        health_url: str,
        started_at: float,
        cause: ProbeFailureCause,
        detail: str,
        status_code: int | None = None,
    ) -> ProbeResult:
        logger.warning(
            "health_probe_failed",
            service=registration.name,
            url=health_url,
            cause=cause.value,
            detail=detail,
        )
        return ProbeResult(
            success=False,
            url=health_url,
            response_time_ms=(time.perf_counter() - started_at) * 1000,
            status_code=status_code,
            cause=cause,
            detail=detail,
        )
