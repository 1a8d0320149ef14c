"""End-to-end tests for the gateway and registry applications sharing one runtime."""

import json

import httpx
from fastapi.testclient import TestClient
from structlog.testing import capture_logs

from servicegate.bootstrap import bootstrap_create_runtime
from servicegate.config import AppSettings

_SECRET = "registry-secret-value"
_REGISTRY_HEADERS = {"x-forwarded-for": "127.0.0.1", "x-registry-key": _SECRET}


class _BackendFleet:
    """Mock transport simulating a users backend and an auth backend."""

    USERS_PORT = 4001
    AUTH_PORT = 4100

    def __init__(self):
        self.down_ports: set[int] = set()
        self.auth_mode = "valid"
        self.forwarded_requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        """Dispatch one request to the simulated backend bound to its port.

        Args:
            request: Outgoing request from the prober, router or auth gate.

        Returns:
            httpx.Response: Simulated backend answer.

        Raises:
            httpx.ConnectError: Raised for ports marked down.
        """

        if request.url.port in self.down_ports:
            raise httpx.ConnectError("connection refused", request=request)
        if request.url.path.endswith("/health"):
            return httpx.Response(200, json={"status": "ok"})
        if request.url.port == self.AUTH_PORT:
            return self._auth_answer()

        self.forwarded_requests.append(request)
        if request.url.path == "/users/v1/conflict":
            return httpx.Response(409, content=b'{"error":"duplicate user"}', headers={"content-type": "application/json"})
        body = json.dumps({"path": request.url.path, "query": request.url.query.decode()}).encode()
        return httpx.Response(200, content=body, headers={"content-type": "application/json"})

    def _auth_answer(self) -> httpx.Response:
        if self.auth_mode == "broken":
            return httpx.Response(500, text="auth exploded")
        return httpx.Response(200, json={"success": True, "data": {"isValid": self.auth_mode == "valid"}})


def _build_runtime(fleet: _BackendFleet):
    settings = AppSettings(environment_name="test", reg_key=_SECRET, heartbeat_interval_ms=60000)
    return bootstrap_create_runtime(
        settings=settings,
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(fleet)),
    )


def _register(registry_client: TestClient, name: str, port: int) -> None:
    response = registry_client.post(
        "/registry/register",
        json={"name": name, "port": port, "version": "v1"},
        headers=_REGISTRY_HEADERS,
    )
    assert response.status_code == 201


def test_api_gateway_proxies_registered_service_verbatim() -> None:
    """Relay backend status and body for a registered service, including the query string.

    Returns:
        None: Assertions validate end-to-end routing.

    Raises:
        AssertionError: Raised when the proxied response is altered.
    """

    fleet = _BackendFleet()
    runtime = _build_runtime(fleet)

    with TestClient(runtime.registry_application) as registry_client, TestClient(
        runtime.gateway_application
    ) as gateway_client:
        _register(registry_client, "users", _BackendFleet.USERS_PORT)

        response = gateway_client.get("/users/v1/posts/7?expand=true")
        root_response = gateway_client.get("/users/v1")

    assert response.status_code == 200
    assert response.json() == {"path": "/users/v1/posts/7", "query": "expand=true"}
    assert root_response.json()["path"] == "/users/v1"


def test_api_gateway_unknown_service_returns_structured_404() -> None:
    runtime = _build_runtime(_BackendFleet())

    with TestClient(runtime.gateway_application) as gateway_client:
        response = gateway_client.get("/orders/v1/items")

    assert response.status_code == 404
    assert response.json()["status"] == "error"
    assert response.json()["code"] == "NOT_REGISTERED"
    assert response.json()["message"] == "Service orders is not registered or unavailable"
    assert response.json()["path"] == "/orders/v1/items"


def test_api_gateway_relays_backend_error_body() -> None:
    fleet = _BackendFleet()
    runtime = _build_runtime(fleet)

    with TestClient(runtime.registry_application) as registry_client, TestClient(
        runtime.gateway_application
    ) as gateway_client:
        _register(registry_client, "users", _BackendFleet.USERS_PORT)
        response = gateway_client.post("/users/v1/conflict", json={"name": "ada"})

    assert response.status_code == 409
    assert response.content == b'{"error":"duplicate user"}'


def test_api_gateway_backend_down_returns_503_and_evicts_service() -> None:
    """Evict a registered service whose backend refuses connections.

    Returns:
        None: Assertions validate backend-down handling across both applications.

    Raises:
        AssertionError: Raised when the service stays registered.
    """

    fleet = _BackendFleet()
    runtime = _build_runtime(fleet)

    with TestClient(runtime.registry_application) as registry_client, TestClient(
        runtime.gateway_application
    ) as gateway_client:
        _register(registry_client, "users", _BackendFleet.USERS_PORT)
        fleet.down_ports.add(_BackendFleet.USERS_PORT)

        down_response = gateway_client.get("/users/v1/posts")
        listing_response = gateway_client.get("/services")
        detail_response = registry_client.get("/registry/services/users", headers=_REGISTRY_HEADERS)

    assert down_response.status_code == 503
    assert down_response.json()["code"] == "UPSTREAM_UNAVAILABLE"
    assert listing_response.json() == {"services": []}
    assert detail_response.status_code == 404


def test_api_gateway_services_listing() -> None:
    runtime = _build_runtime(_BackendFleet())

    with TestClient(runtime.registry_application) as registry_client, TestClient(
        runtime.gateway_application
    ) as gateway_client:
        _register(registry_client, "users", _BackendFleet.USERS_PORT)
        response = gateway_client.get("/services")

    assert response.status_code == 200
    assert response.json() == {
        "services": [
            {
                "service": "users",
                "endpoint": "/users/v1",
                "url": "http://localhost:4001/users/v1",
                "version": "v1",
                "status": "registered",
            }
        ]
    }


def test_api_gateway_auth_gate_enforces_keys_when_backend_registered() -> None:
    """Reject missing and invalid keys once an auth backend is registered.

    Returns:
        None: Assertions validate API-key enforcement through the middleware.

    Raises:
        AssertionError: Raised when unauthenticated traffic is proxied.
    """

    fleet = _BackendFleet()
    runtime = _build_runtime(fleet)

    with TestClient(runtime.registry_application) as registry_client, TestClient(
        runtime.gateway_application
    ) as gateway_client:
        _register(registry_client, "users", _BackendFleet.USERS_PORT)
        _register(registry_client, "auth", _BackendFleet.AUTH_PORT)

        missing_key = gateway_client.get("/users/v1/posts")
        fleet.auth_mode = "invalid"
        invalid_key = gateway_client.get("/users/v1/posts", headers={"x-api-key": "bad"})
        fleet.auth_mode = "valid"
        valid_key = gateway_client.get("/users/v1/posts", headers={"x-api-key": "good"})
        exempt_health = gateway_client.get("/health")

    assert missing_key.status_code == 401
    assert missing_key.json()["message"] == "API key is required"
    assert invalid_key.status_code == 401
    assert invalid_key.json()["message"] == "Invalid API key"
    assert valid_key.status_code == 200
    assert exempt_health.status_code == 200
    assert len(fleet.forwarded_requests) == 1


def test_api_gateway_auth_gate_fails_open_when_backend_broken() -> None:
    fleet = _BackendFleet()
    runtime = _build_runtime(fleet)

    with TestClient(runtime.registry_application) as registry_client, TestClient(
        runtime.gateway_application
    ) as gateway_client:
        _register(registry_client, "users", _BackendFleet.USERS_PORT)
        _register(registry_client, "auth", _BackendFleet.AUTH_PORT)
        fleet.auth_mode = "broken"

        with capture_logs() as captured_logs:
            response = gateway_client.get("/users/v1/posts", headers={"x-api-key": "any"})

    assert response.status_code == 200
    assert any(entry["event"] == "auth_gate_degraded" for entry in captured_logs)


def test_api_gateway_health_endpoints() -> None:
    """Report liveness without probes and aggregate registry status with probes.

    Returns:
        None: Assertions validate gateway health endpoints.

    Raises:
        AssertionError: Raised when health payloads are wrong.
    """

    fleet = _BackendFleet()
    runtime = _build_runtime(fleet)

    with TestClient(runtime.registry_application) as registry_client, TestClient(
        runtime.gateway_application
    ) as gateway_client:
        _register(registry_client, "users", _BackendFleet.USERS_PORT)
        liveness = gateway_client.get("/health")
        ping = gateway_client.get("/ping")
        healthy_registry = gateway_client.get("/health/registry")
        fleet.down_ports.add(_BackendFleet.USERS_PORT)
        degraded_registry = gateway_client.get("/health/registry")

    assert liveness.status_code == 200
    assert liveness.json()["status"] == "ok"
    assert liveness.json()["registered_services"] == 1
    assert ping.status_code == 200
    assert healthy_registry.json()["status"] == "ok"
    assert degraded_registry.status_code == 200
    assert degraded_registry.json()["status"] == "degraded"
    assert degraded_registry.json()["data"]["unhealthyServices"] == 1


def test_api_gateway_end_to_end_posts_service_root() -> None:
    fleet = _BackendFleet()
    runtime = _build_runtime(fleet)

    with TestClient(runtime.registry_application) as registry_client, TestClient(
        runtime.gateway_application
    ) as gateway_client:
        _register(registry_client, "posts", 4200)
        response = gateway_client.get("/posts/v1")

    assert response.status_code == 200
    assert response.content == b'{"path": "/posts/v1", "query": ""}'
    assert str(fleet.forwarded_requests[0].url) == "http://localhost:4200/posts/v1"
