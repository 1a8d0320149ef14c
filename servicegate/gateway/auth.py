"""API-key gate for gateway traffic with an explicit failure policy.

The gate delegates validation to the auth backend found in the registry. Under
the default `fail_open` policy every failure of that dependency (not
registered, unreachable, error status, malformed answer) lets the request
through and logs `auth_gate_degraded`; only an explicit "invalid" verdict or a
missing key rejects the request. Under `fail_closed` the same dependency
failures are rejected with 503.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Final

import httpx

from servicegate.domain import FailurePolicy, UnauthorizedError, UpstreamUnavailableError
from servicegate.logging import get_logger
from servicegate.registry import RegistryLookupPort

logger = get_logger(__name__)

API_KEY_HEADER: Final[str] = "x-api-key"


class AuthDecision(str, Enum):
    """Outcome of an auth gate check that allowed the request."""

    EXEMPT = "exempt"
    AUTHENTICATED = "authenticated"
    UNAUTHENTICATED_PASSTHROUGH = "unauthenticated_passthrough"
    DEGRADED_PASSTHROUGH = "degraded_passthrough"


class AuthGate:
    """Per-request API-key validation delegated to a registered auth backend."""

    _EXEMPT_GET_PATHS: Final[frozenset[str]] = frozenset({"/health", "/health/registry", "/ping"})

    def __init__(
        self,
        registry: RegistryLookupPort,
        http_client: httpx.AsyncClient,
        auth_service_name: str = "auth",
        policy: FailurePolicy = FailurePolicy.FAIL_OPEN,
        timeout_seconds: float = 5.0,
    ):
        """Initialize auth gate.

        Args:
            registry: Registry lookup used to find the auth backend on every request.
            http_client: Shared async HTTP client.
            auth_service_name: Registry name of the auth backend.
            policy: Behavior when the auth backend is absent or failing.
            timeout_seconds: Upper bound for one validation call.

        Raises:
            ValueError: Raised when dependencies or configuration are invalid.
        """

        if registry is None:
            raise ValueError("registry must not be None")
        if http_client is None:
            raise ValueError("http_client must not be None")
        if not auth_service_name.strip():
            raise ValueError("auth_service_name must not be blank")
        if timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be > 0")

        self._registry = registry
        self._http_client = http_client
        self._auth_service_name = auth_service_name.strip()
        self._policy = FailurePolicy(policy)
        self._timeout_seconds = timeout_seconds

    @property
    def policy(self) -> FailurePolicy:
        return self._policy

    def auth_is_exempt(self, method: str, path: str) -> bool:
        """Return True for allow-listed paths: liveness, key issuance/validation, per-service health."""

        normalized_method = method.upper()
        normalized_path = "/" + path.strip("/")
        segments = [segment for segment in normalized_path.split("/") if segment]

        if normalized_method in {"GET", "HEAD"}:
            if normalized_path in self._EXEMPT_GET_PATHS:
                return True
            if len(segments) == 3 and segments[2] == "health":
                return True
        if normalized_method == "POST" and segments[:1] == [self._auth_service_name]:
            if len(segments) == 3 and segments[2] == "keys":
                return True
            if len(segments) == 4 and segments[2:] == ["keys", "validate"]:
                return True
        return False

    async def auth_check_request(self, method: str, path: str, api_key: str | None) -> AuthDecision:
        """Decide whether one gateway request may proceed.

        Args:
            method: HTTP method.
            path: Request path.
            api_key: Value of the `x-api-key` header, if any.

        Returns:
            AuthDecision: Reason the request was allowed.

        Raises:
            UnauthorizedError: Raised when the key is missing or reported invalid.
            UpstreamUnavailableError: Raised for auth dependency failures under fail-closed policy.
        """

        if self.auth_is_exempt(method, path):
            return AuthDecision.EXEMPT

        auth_registration = self._registry.registry_get(self._auth_service_name)
        if auth_registration is None:
            if self._policy is FailurePolicy.FAIL_OPEN:
                logger.warning("auth_backend_not_registered_passthrough", path=path)
                return AuthDecision.UNAUTHENTICATED_PASSTHROUGH
            logger.error("auth_backend_not_registered", path=path)
            raise UpstreamUnavailableError("Authentication service is not registered")

        if not api_key:
            raise UnauthorizedError("API key is required")

        target_service = next((segment for segment in path.split("/") if segment), "")
        validate_url = (
            f"http://{auth_registration.host}:{auth_registration.port}"
            f"/{self._auth_service_name}/{auth_registration.version}/keys/validate"
        )
        try:
            response = await self._http_client.post(
                validate_url,
                json={"key": api_key, "service": target_service},
                timeout=self._timeout_seconds,
            )
        except (httpx.HTTPError, httpx.InvalidURL) as error:
            return self._auth_degrade(f"auth backend unreachable: {error.__class__.__name__}", target_service)

        if not response.is_success:
            return self._auth_degrade(f"auth backend returned status {response.status_code}", target_service)

        is_valid = self._auth_extract_validity(response)
        if is_valid is None:
            return self._auth_degrade("auth backend returned an unrecognized payload", target_service)
        if not is_valid:
            logger.info("auth_key_rejected", service=target_service)
            raise UnauthorizedError("Invalid API key")
        return AuthDecision.AUTHENTICATED

    def _auth_degrade(self, reason: str, target_service: str) -> AuthDecision:
        if self._policy is FailurePolicy.FAIL_OPEN:
            logger.warning("auth_gate_degraded", reason=reason, service=target_service)
            return AuthDecision.DEGRADED_PASSTHROUGH
        logger.error("auth_gate_unavailable", reason=reason, service=target_service)
        raise UpstreamUnavailableError("Authentication service unavailable")

    @staticmethod
    def _auth_extract_validity(response: httpx.Response) -> bool | None:
        try:
            payload: Any = response.json()
        except ValueError:
            return None
        if not isinstance(payload, dict):
            return None
        data = payload.get("data")
        if not isinstance(data, dict):
            return None
        is_valid = data.get("isValid")
        return is_valid if isinstance(is_valid, bool) else None
