"""Domain models and error taxonomy used across layer boundaries."""

from .errors import (
    ForbiddenError,
    GatewayError,
    MisconfigurationError,
    NotRegisteredError,
    RegistrationRejectedError,
    UnauthorizedError,
    UpstreamError,
    UpstreamUnavailableError,
    ValidationFailureError,
)
from .models import (
    FailurePolicy,
    ProbeFailureCause,
    ProbeResult,
    ProxyResponse,
    RegistryHealth,
    ServiceEndpoint,
    ServiceRegistration,
    ServiceStatus,
)

__all__ = [
    "FailurePolicy",
    "ForbiddenError",
    "GatewayError",
    "MisconfigurationError",
    "NotRegisteredError",
    "ProbeFailureCause",
    "ProbeResult",
    "ProxyResponse",
    "RegistrationRejectedError",
    "RegistryHealth",
    "ServiceEndpoint",
    "ServiceRegistration",
    "ServiceStatus",
    "UnauthorizedError",
    "UpstreamError",
    "UpstreamUnavailableError",
    "ValidationFailureError",
]
