import gzip
import json

import httpx
import pytest

from crm_gateway.config import EdgeConfig
from crm_gateway.edge import LOGIN_NOT_JSON_ERROR, enrich_login_body, has_file_extension
from crm_gateway.messages import EdgeRequest


def login_request(host, body):
    return EdgeRequest.build(
        "POST",
        f"https://{host}/api/auth/login",
        {"Content-Type": "application/json"},
        body,
    )


# =============================================================================
# FORWARDING
# =============================================================================

async def test_tenant_request_is_forwarded_to_origin_with_tenant_header(router, origin):
    response = await router.handle(EdgeRequest.build("GET", "https://acme.example.com/accounts?page=2"))

    assert response.status_code == 200
    forwarded = origin.last
    assert forwarded.url == httpx.URL("https://origin.internal/accounts?page=2")
    assert forwarded.headers["Host"] == "origin.internal"
    assert forwarded.headers["X-Tenant-ID"] == "acme"
    assert forwarded.headers["X-Forwarded-Host"] == "acme.example.com"
    assert forwarded.headers["X-Original-URL"] == "https://acme.example.com/accounts?page=2"
    assert "X-Force-Marketing" not in forwarded.headers


async def test_client_supplied_tenant_header_is_dropped_on_app_alias(router, origin):
    request = EdgeRequest.build(
        "GET",
        "https://app.example.com/",
        {"X-Tenant-ID": "beta", "Cookie": "current_tenant=beta"},
    )

    await router.handle(request)

    forwarded = origin.last
    assert "X-Tenant-ID" not in forwarded.headers
    assert forwarded.headers["X-App-Request"] == "true"
    assert forwarded.headers["Cookie"] == "current_tenant=beta"


async def test_client_supplied_tenant_header_is_replaced_on_tenant_host(router, origin):
    request = EdgeRequest.build("GET", "https://acme.example.com/", {"x-tenant-id": "beta"})

    await router.handle(request)

    assert origin.last.headers.get_list("X-Tenant-ID") == ["acme"]


async def test_ip_request_is_redirected_without_reaching_origin(router, origin):
    response = await router.handle(EdgeRequest.build("GET", "http://1.2.3.4/foo?x=1"))

    assert response.status_code == 301
    assert response.headers["Location"] == "https://example.com/foo?x=1"
    assert origin.requests == []


async def test_api_requests_ask_origin_for_json(router, origin):
    await router.handle(EdgeRequest.build("GET", "https://acme.example.com/api/accounts", {"Accept": "text/html"}))

    assert origin.last.headers["Accept"] == "application/json"


async def test_request_body_is_forwarded(router, origin):
    body = b'{"name":"Globex"}'
    await router.handle(
        EdgeRequest.build("POST", "https://acme.example.com/api/accounts", {"Content-Type": "application/json"}, body)
    )

    assert origin.last.method == "POST"
    assert origin.last.content == body


# =============================================================================
# LOGIN BODY ENRICHMENT
# =============================================================================

async def test_login_body_gets_tenant_from_subdomain(router, origin):
    await router.handle(login_request("acme.example.com", b'{"username":"u","password":"p"}'))

    assert json.loads(origin.last.content) == {"username": "u", "password": "p", "tenant": "acme"}
    assert origin.last.headers["Content-Type"] == "application/json"


async def test_login_body_tenant_already_present_is_kept(router, origin):
    body = b'{"username":"u","password":"p","tenant":"beta"}'
    await router.handle(login_request("acme.example.com", body))

    assert origin.last.content == body


async def test_login_body_on_app_alias_is_unchanged(router, origin):
    body = b'{"username":"u","password":"p"}'
    await router.handle(login_request("app.example.com", body))

    assert origin.last.content == body


async def test_malformed_login_body_is_forwarded_unchanged(router, origin):
    body = b'username=u&password=p'
    response = await router.handle(login_request("acme.example.com", body))

    assert response.status_code == 200
    assert origin.last.content == body


def test_enrich_login_body_ignores_non_objects():
    assert enrich_login_body(b'["u", "p"]', "acme") == b'["u", "p"]'
    assert enrich_login_body(b'\xff\xfe', "acme") == b'\xff\xfe'
    assert enrich_login_body(b'{"username":"u"}', None) == b'{"username":"u"}'


# =============================================================================
# RESPONSE NORMALISATION
# =============================================================================

async def test_html_error_from_login_becomes_json(router, origin):
    origin.routes["/api/auth/login"] = lambda request: httpx.Response(
        500, headers={"Content-Type": "text/html"}, content=b"<html>error</html>"
    )

    response = await router.handle(login_request("acme.example.com", b'{"username":"u","password":"p"}'))

    assert response.status_code == 500
    assert response.content_type == "application/json"
    payload = response.json()
    assert payload == LOGIN_NOT_JSON_ERROR
    assert {"error", "message"} <= payload.keys()


async def test_json_api_response_content_type_is_forced(router, origin):
    origin.routes["/api/accounts"] = lambda request: httpx.Response(
        200, headers={"Content-Type": "text/html; charset=utf-8"}, content=b'[{"id": 1}]'
    )

    response = await router.handle(EdgeRequest.build("GET", "https://acme.example.com/api/accounts"))

    assert response.status_code == 200
    assert response.content_type == "application/json"
    assert response.json() == [{"id": 1}]


async def test_non_json_api_response_passes_through(router, origin):
    origin.routes["/api/export"] = lambda request: httpx.Response(
        200, headers={"Content-Type": "text/csv"}, content=b"id,name\n1,Globex\n"
    )

    response = await router.handle(EdgeRequest.build("GET", "https://acme.example.com/api/export"))

    assert response.status_code == 200
    assert response.content_type == "text/csv"
    assert response.body == b"id,name\n1,Globex\n"


async def test_non_api_response_passes_through(router, origin):
    origin.routes["/"] = lambda request: httpx.Response(
        200, headers={"Content-Type": "text/html"}, content=b"<html>home</html>"
    )

    response = await router.handle(EdgeRequest.build("GET", "https://www.example.com/"))

    assert response.content_type == "text/html"
    assert response.text == "<html>home</html>"


class UnreadStream(httpx.AsyncByteStream):
    """Response body that arrives as on a real connection, not pre-buffered."""

    def __init__(self, data):
        self.data = data

    async def __aiter__(self):
        yield self.data


async def test_origin_is_only_offered_encodings_the_edge_decodes(router, origin):
    request = EdgeRequest.build("GET", "https://acme.example.com/", {"Accept-Encoding": "gzip, deflate, br, zstd"})

    await router.handle(request)

    assert origin.last.headers.get_list("Accept-Encoding") == ["gzip, deflate"]


async def test_gzip_response_is_relayed_decoded(router, origin):
    payload = json.dumps([{"id": 1, "name": "Globex"}]).encode()
    origin.routes["/api/accounts"] = lambda request: httpx.Response(
        200, headers={"Content-Encoding": "gzip", "Content-Type": "text/plain"}, content=gzip.compress(payload)
    )

    response = await router.handle(EdgeRequest.build("GET", "https://acme.example.com/api/accounts"))

    assert response.body == payload
    assert "Content-Encoding" not in response.headers
    assert response.content_type == "application/json"


async def test_undecoded_encoding_keeps_its_header(router, origin):
    compressed = b"\x8b\x03\x80hello\x03"
    origin.routes["/"] = lambda request: httpx.Response(
        200, headers={"Content-Encoding": "br", "Content-Type": "text/html"}, stream=UnreadStream(compressed)
    )

    response = await router.handle(EdgeRequest.build("GET", "https://acme.example.com/"))

    assert response.body == compressed
    assert response.headers["Content-Encoding"] == "br"
    assert response.content_type == "text/html"


# =============================================================================
# ORIGIN FAILURE
# =============================================================================

async def test_origin_failure_on_login_is_json(router, origin):
    origin.error = httpx.ConnectError("connection refused")

    response = await router.handle(login_request("acme.example.com", b'{"username":"u","password":"p"}'))

    assert response.status_code == 500
    payload = response.json()
    assert payload["error"] == "Authentication failed"
    assert "connection refused" in payload["message"]


async def test_origin_failure_elsewhere_is_html(router, origin):
    origin.error = httpx.ConnectError("connection refused")

    response = await router.handle(EdgeRequest.build("GET", "https://acme.example.com/dashboard"))

    assert response.status_code == 500
    assert response.content_type == "text/html"
    assert response.text.startswith("Edge error:")


# =============================================================================
# SPA FALLBACK
# =============================================================================

@pytest.fixture
def spa_router(make_router):
    return make_router(EdgeConfig(base_domain="example.com", origin_host="origin.internal", spa_fallback=True))


def _serve_index_only(origin):
    origin.routes["/"] = lambda request: httpx.Response(
        200, headers={"Content-Type": "text/html"}, content=b"<html>app</html>"
    )
    for path in ("/accounts/42", "/logo.png", "/api/missing"):
        origin.routes[path] = lambda request: httpx.Response(404, content=b"not found")


async def test_spa_fallback_serves_root_document_for_client_routes(spa_router, origin):
    _serve_index_only(origin)

    response = await spa_router.handle(EdgeRequest.build("GET", "https://acme.example.com/accounts/42"))

    assert response.status_code == 200
    assert response.text == "<html>app</html>"
    index_request = origin.last
    assert index_request.url.path == "/"
    assert index_request.headers["X-SPA-Route"] == "true"
    assert index_request.headers["X-App-Request"] == "true"
    assert index_request.headers["X-Tenant-ID"] == "acme"


async def test_spa_fallback_skips_assets_and_api(spa_router, origin):
    _serve_index_only(origin)

    asset = await spa_router.handle(EdgeRequest.build("GET", "https://acme.example.com/logo.png"))
    api = await spa_router.handle(EdgeRequest.build("GET", "https://acme.example.com/api/missing"))

    assert asset.status_code == 404
    assert api.status_code == 404
    assert [r.url.path for r in origin.requests] == ["/logo.png", "/api/missing"]


async def test_spa_fallback_disabled_by_default(router, origin):
    _serve_index_only(origin)

    response = await router.handle(EdgeRequest.build("GET", "https://acme.example.com/accounts/42"))

    assert response.status_code == 404
    assert len(origin.requests) == 1


def test_has_file_extension():
    assert has_file_extension("/static/app.js")
    assert has_file_extension("/favicon.ico")
    assert not has_file_extension("/accounts/42")
    assert not has_file_extension("/")
