"""Typed runtime settings with dotenv support and startup validation."""

from typing import Literal

from pydantic import Field, ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

HostnameResolutionMode = Literal["loopback", "container_dns", "declared"]
FailurePolicyName = Literal["fail_open", "fail_closed"]


class SettingsLoadError(RuntimeError):
    """Raised when runtime settings cannot be loaded or validated."""


class AppSettings(BaseSettings):
    """Application settings for gateway and registry runtime configuration.

    Environment variable names map directly to field names in uppercase.
    Example: `heartbeat_interval_ms` reads from `HEARTBEAT_INTERVAL_MS`.

    Attributes:
        environment_name: Runtime environment label.
        gateway_host: Host interface both servers bind to.
        gateway_port: Public gateway port.
        registry_port: Internal registry port.
        reg_key: Shared registry secret expected in `x-registry-key`.
        heartbeat_interval_ms: Delay between heartbeat probes of one service.
        docker_env: Legacy container flag; selects `container_dns` resolution when set.
        hostname_resolution_mode: Host used by health probes (`loopback`, `container_dns`, `declared`).
        container_dns_suffix: Suffix appended to service names under `container_dns`.
        probe_timeout_seconds: Health probe timeout.
        forward_timeout_seconds: Proxied request timeout.
        auth_timeout_seconds: Auth backend validation timeout.
        auth_service_name: Registry name of the auth backend.
        auth_failure_policy: Behavior when the auth backend is absent or failing.
        registry_failure_policy: Behavior when the registry secret is not configured.
        registry_internal_networks: Extra CIDR ranges treated as internal callers.
        log_level: Root log level.
        log_format: Log renderer (`json` or `console`).
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    environment_name: str = Field(default="development")
    gateway_host: str = Field(default="0.0.0.0")
    gateway_port: int = Field(default=3000, ge=1, le=65535)
    registry_port: int = Field(default=3001, ge=1, le=65535)
    reg_key: str | None = Field(default=None)
    heartbeat_interval_ms: int = Field(default=30000, ge=100)
    docker_env: bool = Field(default=False)
    hostname_resolution_mode: HostnameResolutionMode | None = Field(default=None)
    container_dns_suffix: str = Field(default="-service")
    probe_timeout_seconds: float = Field(default=5.0, gt=0)
    forward_timeout_seconds: float = Field(default=10.0, gt=0)
    auth_timeout_seconds: float = Field(default=5.0, gt=0)
    auth_service_name: str = Field(default="auth", min_length=1)
    auth_failure_policy: FailurePolicyName = Field(default="fail_open")
    registry_failure_policy: FailurePolicyName = Field(default="fail_closed")
    registry_internal_networks: str = Field(default="")
    log_level: str = Field(default="INFO")
    log_format: Literal["json", "console"] = Field(default="json")

    @field_validator("reg_key")
    @classmethod
    def _validate_optional_secret(cls, value: str | None) -> str | None:
        if value is None:
            return None
        stripped_value = value.strip()
        return stripped_value or None

    @field_validator("auth_service_name")
    @classmethod
    def _validate_non_empty_string(cls, value: str) -> str:
        stripped_value = value.strip()
        if not stripped_value:
            raise ValueError("value must not be blank")
        return stripped_value

    @field_validator("log_level")
    @classmethod
    def _validate_log_level(cls, value: str) -> str:
        normalized_value = value.strip().upper()
        if normalized_value not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"unsupported log level: {value}")
        return normalized_value

    @model_validator(mode="after")
    def _validate_distinct_ports(self) -> "AppSettings":
        if self.gateway_port == self.registry_port:
            raise ValueError("gateway_port and registry_port must differ")
        return self

    @property
    def heartbeat_interval_seconds(self) -> float:
        """Return heartbeat interval converted to seconds."""

        return self.heartbeat_interval_ms / 1000.0

    @property
    def resolved_hostname_mode(self) -> HostnameResolutionMode:
        """Return explicit resolution mode, falling back to the legacy `DOCKER_ENV` flag."""

        if self.hostname_resolution_mode is not None:
            return self.hostname_resolution_mode
        return "container_dns" if self.docker_env else "loopback"

    @property
    def internal_network_list(self) -> list[str]:
        """Return configured extra internal CIDR ranges as a list."""

        return [item.strip() for item in self.registry_internal_networks.split(",") if item.strip()]


class ClientSettings(BaseSettings):
    """Settings model used by the self-registration client commands.

    This model validates only the inputs a backend service needs to talk to
    the registry, so `register`/`deregister` commands can run without the
    full gateway settings.

    Attributes:
        registry_url: Base URL of the registry application.
        registry_key: Shared secret sent as `x-registry-key`.
        registration_timeout_seconds: Per-attempt HTTP timeout.
        registration_retry_attempts: Maximum registration attempts.
        registration_backoff_base_seconds: Base delay for exponential backoff.
        registration_backoff_max_seconds: Backoff cap before jitter.
        registration_jitter_min_multiplier: Minimum jitter multiplier.
        registration_jitter_max_multiplier: Maximum jitter multiplier.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    registry_url: str = Field(default="http://localhost:3001")
    registry_key: str = Field(min_length=1)
    registration_timeout_seconds: float = Field(default=5.0, gt=0)
    registration_retry_attempts: int = Field(default=5, ge=1)
    registration_backoff_base_seconds: float = Field(default=1.0, ge=0)
    registration_backoff_max_seconds: float = Field(default=10.0, gt=0)
    registration_jitter_min_multiplier: float = Field(default=0.5, gt=0)
    registration_jitter_max_multiplier: float = Field(default=1.5, gt=0)

    @field_validator("registry_url", "registry_key")
    @classmethod
    def _validate_non_empty_string(cls, value: str) -> str:
        stripped_value = value.strip()
        if not stripped_value:
            raise ValueError("value must not be blank")
        return stripped_value

    @field_validator("registration_backoff_max_seconds")
    @classmethod
    def _validate_backoff_cap_bounds(cls, value: float, info) -> float:
        backoff_base_seconds = float(info.data.get("registration_backoff_base_seconds", 1.0))
        if value < backoff_base_seconds:
            raise ValueError(
                "registration_backoff_max_seconds must be greater than or equal to registration_backoff_base_seconds"
            )
        return value

    @field_validator("registration_jitter_max_multiplier")
    @classmethod
    def _validate_jitter_bounds(cls, value: float, info) -> float:
        jitter_min_multiplier = float(info.data.get("registration_jitter_min_multiplier", 0.5))
        if value < jitter_min_multiplier:
            raise ValueError(
                "registration_jitter_max_multiplier must be greater than or equal to "
                "registration_jitter_min_multiplier"
            )
        return value


def config_load_settings() -> AppSettings:
    """Load and validate runtime settings from environment and dotenv.

    Returns:
        AppSettings: Validated runtime settings object.

    Raises:
        SettingsLoadError: Raised when required settings are missing or invalid.
    """

    try:
        return AppSettings()
    except ValidationError as error:
        raise SettingsLoadError(
            f"Startup configuration validation failed. Update .env or environment variables. Details: {error}"
        ) from error


def config_load_client_settings() -> ClientSettings:
    """Load and validate only the self-registration client settings.

    Returns:
        ClientSettings: Validated client settings.

    Raises:
        SettingsLoadError: Raised when registry client settings cannot be loaded.
    """

    try:
        return ClientSettings()
    except ValidationError as error:
        raise SettingsLoadError(
            f"Registry client configuration validation failed. Update .env or environment variables. Details: {error}"
        ) from error
