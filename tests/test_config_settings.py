"""Tests for settings loading, derived values and startup validation errors."""

import pytest

from servicegate.config import (
    AppSettings,
    SettingsLoadError,
    config_load_client_settings,
    config_load_settings,
)
from servicegate.logging import logging_mask_secret


def test_config_defaults_match_runtime_expectations(monkeypatch: pytest.MonkeyPatch) -> None:
    """Expose documented defaults when the environment is empty.

    Args:
        monkeypatch: Pytest monkeypatch fixture.

    Returns:
        None: Assertions validate default values.

    Raises:
        AssertionError: Raised when a default differs.
    """

    for variable in ("REG_KEY", "HEARTBEAT_INTERVAL_MS", "DOCKER_ENV", "HOSTNAME_RESOLUTION_MODE"):
        monkeypatch.delenv(variable, raising=False)

    settings = AppSettings(_env_file=None)

    assert settings.gateway_port == 3000
    assert settings.registry_port == 3001
    assert settings.reg_key is None
    assert settings.heartbeat_interval_seconds == 30.0
    assert settings.resolved_hostname_mode == "loopback"
    assert settings.auth_failure_policy == "fail_open"
    assert settings.registry_failure_policy == "fail_closed"


def test_config_reads_environment_and_derives_values(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("REG_KEY", "  registry-secret-value  ")
    monkeypatch.setenv("HEARTBEAT_INTERVAL_MS", "1500")
    monkeypatch.setenv("DOCKER_ENV", "true")
    monkeypatch.setenv("REGISTRY_INTERNAL_NETWORKS", "100.64.0.0/10, ,198.18.0.0/15")
    monkeypatch.setenv("LOG_LEVEL", "debug")

    settings = config_load_settings()

    assert settings.reg_key == "registry-secret-value"
    assert settings.heartbeat_interval_seconds == 1.5
    assert settings.resolved_hostname_mode == "container_dns"
    assert settings.internal_network_list == ["100.64.0.0/10", "198.18.0.0/15"]
    assert settings.log_level == "DEBUG"


def test_config_explicit_hostname_mode_overrides_docker_flag(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("DOCKER_ENV", "true")
    monkeypatch.setenv("HOSTNAME_RESOLUTION_MODE", "declared")

    assert config_load_settings().resolved_hostname_mode == "declared"


@pytest.mark.parametrize(
    ("variable", "value"),
    [
        ("GATEWAY_PORT", "3001"),
        ("HEARTBEAT_INTERVAL_MS", "10"),
        ("AUTH_FAILURE_POLICY", "sometimes"),
        ("LOG_LEVEL", "chatty"),
    ],
)
def test_config_invalid_values_raise_settings_load_error(
    monkeypatch: pytest.MonkeyPatch,
    variable: str,
    value: str,
) -> None:
    monkeypatch.setenv(variable, value)

    with pytest.raises(SettingsLoadError, match="Startup configuration validation failed"):
        config_load_settings()


def test_config_client_settings_require_registry_key(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("REGISTRY_KEY", raising=False)

    with pytest.raises(SettingsLoadError, match="Registry client configuration validation failed"):
        config_load_client_settings()


def test_config_client_settings_validate_backoff_bounds(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("REGISTRY_KEY", "secret")
    monkeypatch.setenv("REGISTRATION_BACKOFF_BASE_SECONDS", "5")
    monkeypatch.setenv("REGISTRATION_BACKOFF_MAX_SECONDS", "1")

    with pytest.raises(SettingsLoadError):
        config_load_client_settings()


def test_logging_mask_secret_hides_values() -> None:
    assert logging_mask_secret(None) == "<unset>"
    assert logging_mask_secret("short") == "***"
    assert logging_mask_secret("registry-secret-value") == "regi...ue"
