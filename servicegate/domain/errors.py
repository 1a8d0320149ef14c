"""Project-native typed exceptions for registry and gateway failures."""

from __future__ import annotations

from typing import Any


class GatewayError(Exception):
    """Base exception for client-visible registry and gateway failures.

    Attributes:
        status_code: HTTP status rendered for the failure.
        code: Stable machine-readable error classification.
        error_label: Short human label for the classification.
    """

    status_code: int = 500
    code: str = "GATEWAY_ERROR"
    error_label: str = "Gateway error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_payload(self) -> dict[str, Any]:
        """Return structured error payload without transport metadata."""

        return {
            "status": "error",
            "status_code": self.status_code,
            "code": self.code,
            "error": self.error_label,
            "message": self.message,
        }


class ValidationFailureError(GatewayError, ValueError):
    """Request payload or registration failed validation."""

    status_code = 400
    code = "VALIDATION_FAILED"
    error_label = "Bad Request"


class RegistrationRejectedError(ValidationFailureError):
    """Pre-admission health probe failed; the registration was not stored."""


class NotRegisteredError(GatewayError, LookupError):
    """Target service has no active registration."""

    status_code = 404
    code = "NOT_REGISTERED"
    error_label = "Not Found"


class UnauthorizedError(GatewayError, PermissionError):
    """Credential missing or rejected."""

    status_code = 401
    code = "UNAUTHORIZED"
    error_label = "Unauthorized"


class ForbiddenError(GatewayError, PermissionError):
    """Caller is not allowed to reach the endpoint from its network location."""

    status_code = 403
    code = "FORBIDDEN"
    error_label = "Forbidden"


class UpstreamUnavailableError(GatewayError, ConnectionError):
    """Backend or dependency could not be reached."""

    status_code = 503
    code = "UPSTREAM_UNAVAILABLE"
    error_label = "Service Unavailable"


class UpstreamError(GatewayError):
    """Backend answered with an error or failed outside connectivity classes.

    Attributes:
        upstream_status: Backend status code, when a response was received.
        upstream_body: Raw backend body relayed verbatim when non-empty.
        upstream_media_type: Backend content type for the relayed body.
    """

    code = "UPSTREAM_ERROR"
    error_label = "Service error"

    def __init__(
        self,
        message: str,
        upstream_status: int | None = None,
        upstream_body: bytes | None = None,
        upstream_media_type: str | None = None,
    ):
        super().__init__(message)
        self.upstream_status = upstream_status
        self.upstream_body = upstream_body or None
        self.upstream_media_type = upstream_media_type
        self.status_code = upstream_status if upstream_status and upstream_status >= 400 else 500


class MisconfigurationError(GatewayError, RuntimeError):
    """Required server-side configuration is missing."""

    status_code = 500
    code = "MISCONFIGURATION"
    error_label = "Misconfiguration"
