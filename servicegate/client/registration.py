"""Self-registration client used by backend services to join and leave the registry."""

from __future__ import annotations

import asyncio
import random
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Final

import httpx

from servicegate.domain import ServiceRegistration
from servicegate.logging import get_logger, logging_mask_secret

logger = get_logger(__name__)


class RegistrationClientError(RuntimeError):
    """Raised when the registry rejects a registration or all attempts are exhausted.

    Attributes:
        status_code: Last registry HTTP status, if a response was received.
        attempts: Number of attempts performed.
    """

    def __init__(self, message: str, status_code: int | None = None, attempts: int = 0):
        super().__init__(message)
        self.status_code = status_code
        self.attempts = attempts


def client_parse_retry_after(header_value: str | None, now: datetime | None = None) -> float | None:
    """Parse a `Retry-After` header into seconds.

    Args:
        header_value: Raw header value, delta-seconds or an HTTP date.
        now: Reference time for HTTP dates; current UTC time when omitted.

    Returns:
        float | None: Non-negative wait seconds, or None when absent or unparseable.
    """

    if header_value is None or not header_value.strip():
        return None
    stripped_value = header_value.strip()
    if stripped_value.isdigit():
        return float(stripped_value)
    try:
        retry_at = parsedate_to_datetime(stripped_value)
    except (TypeError, ValueError):
        return None
    if retry_at.tzinfo is None:
        retry_at = retry_at.replace(tzinfo=timezone.utc)
    reference_time = now or datetime.now(timezone.utc)
    return max((retry_at - reference_time).total_seconds(), 0.0)


class RegistryRegistrationClient:
    """HTTP client registering one backend service with the registry application.

    Registration is retried with capped, jittered exponential backoff on
    transport failures and 5xx answers, honouring `Retry-After` on 503. 4xx
    answers (failed health probe, forbidden, bad key) are returned to the
    caller without retry.
    """

    _REGISTRY_KEY_HEADER: Final[str] = "x-registry-key"

    def __init__(
        self,
        registry_url: str,
        registry_key: str,
        http_client: httpx.AsyncClient | None = None,
        timeout_seconds: float = 5.0,
        retry_attempts: int = 5,
        retry_backoff_base_seconds: float = 1.0,
        retry_max_backoff_seconds: float = 10.0,
        jitter_min_multiplier: float = 0.5,
        jitter_max_multiplier: float = 1.5,
        random_unit_interval_provider: Callable[[], float] | None = None,
        sleep: Callable[[float], Awaitable[None]] | None = None,
    ):
        """Initialize registration client.

        Args:
            registry_url: Base URL of the registry application.
            registry_key: Shared registry secret.
            http_client: Optional shared async HTTP client; one is created when omitted.
            timeout_seconds: Per-attempt HTTP timeout.
            retry_attempts: Maximum registration attempts.
            retry_backoff_base_seconds: Base retry delay used by exponential backoff.
            retry_max_backoff_seconds: Maximum retry delay cap before applying jitter.
            jitter_min_multiplier: Minimum jitter multiplier for computed retry delay.
            jitter_max_multiplier: Maximum jitter multiplier for computed retry delay.
            random_unit_interval_provider: Optional provider returning random values in [0.0, 1.0].
            sleep: Optional awaitable sleep override.

        Raises:
            ValueError: Raised when required config values are invalid.
        """

        normalized_registry_url = registry_url.strip().rstrip("/")
        normalized_registry_key = registry_key.strip()

        if not normalized_registry_url:
            raise ValueError("registry_url must not be blank")
        if not normalized_registry_key:
            raise ValueError("registry_key must not be blank")
        if timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be > 0")
        if retry_attempts < 1:
            raise ValueError("retry_attempts must be >= 1")
        if retry_backoff_base_seconds < 0:
            raise ValueError("retry_backoff_base_seconds must be >= 0")
        if retry_max_backoff_seconds <= 0:
            raise ValueError("retry_max_backoff_seconds must be > 0")
        if jitter_min_multiplier <= 0 or jitter_max_multiplier <= 0:
            raise ValueError("jitter multipliers must be > 0")
        if jitter_max_multiplier < jitter_min_multiplier:
            raise ValueError("jitter_max_multiplier must be >= jitter_min_multiplier")

        self._registry_url = normalized_registry_url
        self._registry_key = normalized_registry_key
        self._owns_http_client = http_client is None
        self._http_client = http_client or httpx.AsyncClient()
        self._timeout_seconds = timeout_seconds
        self._retry_attempts = retry_attempts
        self._retry_backoff_base_seconds = retry_backoff_base_seconds
        self._retry_max_backoff_seconds = retry_max_backoff_seconds
        self._jitter_min_multiplier = jitter_min_multiplier
        self._jitter_max_multiplier = jitter_max_multiplier
        self._random_unit_interval_provider = random_unit_interval_provider or random.random
        self._sleep = sleep or asyncio.sleep

    async def client_register(self, registration: ServiceRegistration) -> dict[str, object]:
        """Register a service, retrying transient failures.

        Args:
            registration: Registration to submit.

        Returns:
            dict[str, object]: Registry response payload.

        Raises:
            RegistrationClientError: Raised on a 4xx answer or when every attempt failed.
        """

        register_url = f"{self._registry_url}/registry/register"
        logger.info(
            "registry_client_registering",
            service=registration.name,
            url=register_url,
            registry_key=logging_mask_secret(self._registry_key),
        )
        last_error_message = "no attempt performed"
        last_status_code: int | None = None

        for attempt_index in range(self._retry_attempts):
            attempt_number = attempt_index + 1
            retry_after_seconds: float | None = None
            try:
                response = await self._http_client.post(
                    register_url,
                    json=registration.to_wire(),
                    headers={self._REGISTRY_KEY_HEADER: self._registry_key},
                    timeout=self._timeout_seconds,
                )
            except httpx.HTTPError as error:
                last_error_message = f"transport failure: {error.__class__.__name__}"
                last_status_code = None
            else:
                if response.is_success:
                    logger.info("registry_client_registered", service=registration.name, attempts=attempt_number)
                    return response.json()
                last_status_code = response.status_code
                last_error_message = f"registry responded with status {response.status_code}"
                if response.status_code < 500:
                    raise RegistrationClientError(
                        f"Registration rejected: {self._client_error_message(response)}",
                        status_code=response.status_code,
                        attempts=attempt_number,
                    )
                if response.status_code == 503:
                    retry_after_seconds = client_parse_retry_after(response.headers.get("retry-after"))

            if attempt_number >= self._retry_attempts:
                break
            wait_seconds = self._client_retry_wait_seconds(attempt_index, retry_after_seconds)
            logger.warning(
                "registry_client_retrying",
                service=registration.name,
                attempt=attempt_number,
                wait_seconds=round(wait_seconds, 3),
                retry_after=retry_after_seconds is not None,
                reason=last_error_message,
            )
            await self._sleep(wait_seconds)

        raise RegistrationClientError(
            f"Registration failed after {self._retry_attempts} attempts: {last_error_message}",
            status_code=last_status_code,
            attempts=self._retry_attempts,
        )

    def _client_retry_wait_seconds(self, attempt_index: int, retry_after_seconds: float | None) -> float:
        """Return the wait before the next registration attempt.

        A registry that announced `Retry-After` is waited on exactly, capped at
        the backoff ceiling. Otherwise the wait doubles per attempt up to the
        ceiling and is scaled by a jitter multiplier.

        Raises:
            RuntimeError: Raised when the random provider leaves [0.0, 1.0].
        """

        if retry_after_seconds is not None:
            return min(retry_after_seconds, self._retry_max_backoff_seconds)

        capped_backoff_seconds = min(
            self._retry_backoff_base_seconds * (2**attempt_index),
            self._retry_max_backoff_seconds,
        )
        random_ratio = float(self._random_unit_interval_provider())
        if random_ratio < 0.0 or random_ratio > 1.0:
            raise RuntimeError("random_unit_interval_provider must return a value in [0.0, 1.0]")
        jitter_span = self._jitter_max_multiplier - self._jitter_min_multiplier
        return capped_backoff_seconds * (self._jitter_min_multiplier + random_ratio * jitter_span)

    async def client_deregister(self, service_name: str) -> bool:
        """Deregister a service once, without retry.

        Returns:
            bool: True when the registry reported the service removed.

        Raises:
            RegistrationClientError: Raised on transport failure or error status.
        """

        deregister_url = f"{self._registry_url}/registry/services/{service_name}"
        try:
            response = await self._http_client.delete(
                deregister_url,
                headers={self._REGISTRY_KEY_HEADER: self._registry_key},
                timeout=self._timeout_seconds,
            )
        except httpx.HTTPError as error:
            raise RegistrationClientError(f"Deregistration failed: {error.__class__.__name__}") from error
        if not response.is_success:
            raise RegistrationClientError(
                f"Deregistration rejected: {self._client_error_message(response)}",
                status_code=response.status_code,
                attempts=1,
            )
        return bool(response.json().get("success"))

    async def client_close(self) -> None:
        if self._owns_http_client:
            await self._http_client.aclose()

    @staticmethod
    def _client_error_message(response: httpx.Response) -> str:
        try:
            payload = response.json()
        except ValueError:
            return f"status {response.status_code}"
        if isinstance(payload, dict) and payload.get("message"):
            return str(payload["message"])
        return f"status {response.status_code}"
