"""Typed domain models shared across registry, gateway and API layers."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

# Hostname or IPv4 literal usable verbatim as a URL authority host.
_HOST_PATTERN = re.compile(r"^[A-Za-z0-9_](?:[A-Za-z0-9_.-]*[A-Za-z0-9_])?$")


class FailurePolicy(str, Enum):
    """Behavior applied when a security dependency is absent or failing."""

    FAIL_OPEN = "fail_open"
    FAIL_CLOSED = "fail_closed"


class ServiceRegistration(BaseModel):
    """Registration record for one backend service.

    Wire payloads use camelCase keys (`healthEndpoint`, `semanticVersion`);
    snake_case keys are accepted as well.

    Attributes:
        name: Unique service name used as registry key and first path segment.
        host: Host the gateway forwards traffic to.
        port: Service TCP port.
        version: API major version label (`v1`, `v2`).
        semantic_version: Optional package version (`1.4.2`).
        health_endpoint: Absolute health path probed before admission and by heartbeats.
        timestamp: Registration time; defaulted on admission when absent.
        metadata: Free-form descriptive metadata.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        extra="ignore",
    )

    name: str = Field(min_length=1, max_length=64, pattern=r"^[a-z0-9][a-z0-9_-]*$")
    host: str = Field(default="localhost", min_length=1, max_length=253)
    port: int = Field(ge=1, le=65535)
    version: str = Field(pattern=r"^v\d+$")
    semantic_version: str | None = Field(default=None, max_length=64)
    health_endpoint: str | None = Field(default=None, max_length=512)
    timestamp: datetime | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    @field_validator("host")
    @classmethod
    def _validate_host(cls, value: str) -> str:
        stripped_value = value.strip()
        if not _HOST_PATTERN.fullmatch(stripped_value):
            raise ValueError("host must be a bare hostname or IPv4 address")
        return stripped_value

    @field_validator("health_endpoint")
    @classmethod
    def _validate_health_endpoint(cls, value: str | None) -> str | None:
        if value is None:
            return None
        stripped_value = value.strip()
        if not stripped_value.startswith("/"):
            raise ValueError("health_endpoint must start with '/'")
        return stripped_value

    @model_validator(mode="before")
    @classmethod
    def _default_health_endpoint(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        if data.get("healthEndpoint") is None and data.get("health_endpoint") is None:
            name = data.get("name")
            version = data.get("version")
            if isinstance(name, str) and isinstance(version, str):
                data = {**data, "healthEndpoint": f"/{name}/{version}/health"}
                data.pop("health_endpoint", None)
        return data

    def to_wire(self) -> dict[str, Any]:
        """Return JSON-serialisable camelCase payload."""

        return self.model_dump(mode="json", by_alias=True)


class ProbeFailureCause(str, Enum):
    """Distinguished causes of a failed health probe."""

    CONNECTION_REFUSED = "connection_refused"
    TIMEOUT = "timeout"
    BAD_STATUS = "bad_status"
    TRANSPORT_ERROR = "transport_error"


@dataclass(frozen=True)
class ProbeResult:
    """Outcome of one health probe.

    Attributes:
        success: True when the endpoint answered with a 2xx status.
        url: Probed URL.
        response_time_ms: Elapsed wall time of the probe.
        status_code: HTTP status when a response was received.
        cause: Failure cause, None on success.
        detail: Human-readable diagnostic message.
    """

    success: bool
    url: str
    response_time_ms: float
    status_code: int | None = None
    cause: ProbeFailureCause | None = None
    detail: str = ""


@dataclass(frozen=True)
class ServiceStatus:
    """Derived live status of one registered service."""

    name: str
    status: str
    last_checked: datetime
    response_time_ms: float | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON-serialisable dictionary."""

        result: dict[str, Any] = {
            "name": self.name,
            "status": self.status,
            "lastChecked": self.last_checked.isoformat(),
        }
        if self.response_time_ms is not None:
            result["responseTime"] = round(self.response_time_ms, 2)
        if self.error:
            result["error"] = self.error
        return result


@dataclass(frozen=True)
class RegistryHealth:
    """Aggregate health snapshot over all current registrations."""

    services: dict[str, ServiceStatus] = field(default_factory=dict)

    @property
    def total_services(self) -> int:
        return len(self.services)

    @property
    def healthy_services(self) -> int:
        return sum(1 for service_status in self.services.values() if service_status.status == "up")

    @property
    def unhealthy_services(self) -> int:
        return self.total_services - self.healthy_services

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON-serialisable dictionary."""

        return {
            "services": {name: service_status.to_dict() for name, service_status in self.services.items()},
            "totalServices": self.total_services,
            "healthyServices": self.healthy_services,
            "unhealthyServices": self.unhealthy_services,
        }


@dataclass(frozen=True)
class ServiceEndpoint:
    """Static gateway listing entry for one registration."""

    service: str
    endpoint: str
    url: str
    version: str
    status: str = "registered"

    def to_dict(self) -> dict[str, str]:
        return {
            "service": self.service,
            "endpoint": self.endpoint,
            "url": self.url,
            "version": self.version,
            "status": self.status,
        }


@dataclass(frozen=True)
class ProxyResponse:
    """Backend response relayed verbatim by the gateway.

    Attributes:
        status_code: Backend HTTP status.
        content: Raw backend body bytes.
        media_type: Backend content type, if any.
    """

    status_code: int
    content: bytes
    media_type: str | None = None
