from pathlib import Path
from typing import Callable, Dict, List, Optional

import httpx
import pytest
from fastapi.testclient import TestClient

from crm_gateway.config import BackendSettings, EdgeConfig
from crm_gateway.data_loader import load_all_tenants
from crm_gateway.edge import EdgeRouter
from crm_gateway.main import create_app
from crm_gateway.storage import Storage

SEED_DATA = Path(__file__).resolve().parent.parent / "seed_data"
ADMIN_KEY = "test-admin-key"

# Seed fixture credentials
ACME_ADMIN = ("admin", "acme-admin")
ACME_JANE = ("jane", "acme-jane")
BETA_JANE = ("jane", "beta-jane")


# =============================================================================
# EDGE
# =============================================================================

class FakeOrigin:
    """httpx.MockTransport handler that records requests and serves canned responses."""

    def __init__(self):
        self.requests: List[httpx.Request] = []
        self.routes: Dict[str, Callable[[httpx.Request], httpx.Response]] = {}
        self.error: Optional[Exception] = None

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        handler = self.routes.get(request.url.path)
        if handler is not None:
            return handler(request)
        return httpx.Response(200, json={"ok": True})

    @property
    def last(self) -> httpx.Request:
        return self.requests[-1]


@pytest.fixture
def edge_config():
    return EdgeConfig(base_domain="example.com", origin_host="origin.internal")


@pytest.fixture
def origin():
    return FakeOrigin()


@pytest.fixture
def make_router(origin):
    """Build an EdgeRouter on top of the fake origin for a given config."""
    def _make(config: EdgeConfig) -> EdgeRouter:
        client = httpx.AsyncClient(transport=httpx.MockTransport(origin))
        return EdgeRouter(config, client=client)
    return _make


@pytest.fixture
def router(make_router, edge_config):
    return make_router(edge_config)


# =============================================================================
# BACKEND
# =============================================================================

@pytest.fixture
def settings():
    return BackendSettings(
        base_domain="example.com",
        seed_data_path=str(SEED_DATA),
        admin_api_key=ADMIN_KEY,
    )


@pytest.fixture
def storage(settings):
    storage = Storage()
    load_all_tenants(storage, settings)
    return storage


@pytest.fixture
def backend(settings, storage):
    return create_app(settings=settings, storage=storage, load_seed_data=False)


@pytest.fixture
def client_for(backend):
    """TestClient whose requests carry the given Host."""
    def _client(host: str) -> TestClient:
        return TestClient(backend, base_url=f"http://{host}")
    return _client


@pytest.fixture
def login(client_for):
    """Sign in and return the bearer token."""
    def _login(host: str, username: str, password: str, tenant: Optional[str] = None) -> str:
        body = {"username": username, "password": password}
        if tenant is not None:
            body["tenant"] = tenant
        response = client_for(host).post("/api/auth/login", json=body)
        assert response.status_code == 200, response.text
        return response.json()["token"]
    return _login


def bearer(token: str) -> Dict[str, str]:
    return {"Authorization": f"Bearer {token}"}
