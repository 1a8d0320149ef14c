"""Tests for the in-memory registry store and its heartbeat-handle slot."""

import pytest

from servicegate.domain import ServiceRegistration
from servicegate.registry import InMemoryRegistryStore


class _HandleStub:
    """Minimal heartbeat handle double."""

    def __init__(self, service_name: str):
        self.service_name = service_name
        self.cancel_calls = 0

    def handle_cancel(self) -> bool:
        self.cancel_calls += 1
        return True

    def handle_is_active(self) -> bool:
        return self.cancel_calls == 0


def _build_registration(name: str = "users", port: int = 4001) -> ServiceRegistration:
    return ServiceRegistration(name=name, port=port, version="v1")


def test_registry_store_set_get_and_replace_by_name() -> None:
    """Replace a registration in place when the same name is stored twice.

    Returns:
        None: Assertions validate keyed storage behavior.

    Raises:
        AssertionError: Raised when stored values do not match expectations.
    """

    store = InMemoryRegistryStore()
    first_registration = _build_registration(port=4001)
    second_registration = _build_registration(port=4002)

    store.store_set("users", first_registration)
    store.store_set("users", second_registration)

    assert store.store_get("users") is second_registration
    assert store.store_count() == 1
    assert store.store_list() == [second_registration]


def test_registry_store_rejects_key_not_matching_registration_name() -> None:
    store = InMemoryRegistryStore()

    with pytest.raises(ValueError, match="must match"):
        store.store_set("orders", _build_registration(name="users"))

    assert store.store_count() == 0


def test_registry_store_delete_reports_presence() -> None:
    """Report True only for the first delete of an existing key."""

    store = InMemoryRegistryStore()
    store.store_set("users", _build_registration())

    assert store.store_delete("users") is True
    assert store.store_delete("users") is False
    assert store.store_get("users") is None


def test_registry_store_heartbeat_swap_returns_previous_handle() -> None:
    store = InMemoryRegistryStore()
    first_handle = _HandleStub("users")
    second_handle = _HandleStub("users")

    assert store.store_swap_heartbeat("users", first_handle) is None
    assert store.store_swap_heartbeat("users", second_handle) is first_handle
    assert store.store_heartbeat_names() == ["users"]


def test_registry_store_pop_heartbeat_honors_expected_handle() -> None:
    """Refuse to pop a slot that now holds a different handle.

    Returns:
        None: Assertions validate compare-and-pop behavior.

    Raises:
        AssertionError: Raised when a superseded handle can clear the slot.
    """

    store = InMemoryRegistryStore()
    stale_handle = _HandleStub("users")
    current_handle = _HandleStub("users")
    store.store_swap_heartbeat("users", current_handle)

    assert store.store_pop_heartbeat("users", expected=stale_handle) is None
    assert store.store_heartbeat_names() == ["users"]
    assert store.store_pop_heartbeat("users", expected=current_handle) is current_handle
    assert store.store_pop_heartbeat("users") is None
