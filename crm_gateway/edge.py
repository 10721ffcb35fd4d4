"""
Edge Router Module

CRITICAL ROUTING COMPONENT:
Sits in front of the single backend origin. For every request it:
1. Classifies the hostname (marketing / app-shell / api / tenant / other)
2. Strips client-supplied copies of the edge's own headers
3. Injects routing headers (X-Tenant-ID, markers, forwarded host, original URL)
4. Adds the tenant to login bodies posted from a tenant subdomain
5. Forwards to the origin and normalises API responses to JSON

FAILURE SEMANTICS:
- Never retries; degrades to a best-effort error response
- Body rewriting falls back to the original bytes on any parse problem
- Origin failures become 500s: JSON on the login path, HTML elsewhere

Each EdgeRouter owns its configuration and HTTP client; there is no state
shared between requests.
"""

import json
import logging
import posixpath
from typing import Optional, Tuple

import httpx

from .classifier import Classification, RequestKind, classify
from .config import (
    APP_REQUEST_HEADER,
    EDGE_OWNED_HEADERS,
    SPA_ROUTE_HEADER,
    EdgeConfig,
)
from .messages import EdgeRequest, EdgeResponse

logger = logging.getLogger(__name__)

# Headers that describe the original transfer, not the content. httpx decodes
# bodies and recomputes lengths, so relaying these would corrupt the response.
HOP_BY_HOP_HEADERS = {
    "connection",
    "keep-alive",
    "transfer-encoding",
    "content-length",
    "content-encoding",
    "upgrade",
    "te",
    "trailer",
    "proxy-connection",
}

# Content codings httpx always decodes. The origin is only offered these, and
# any other coding it sends anyway is relayed still encoded, with its header.
DECODED_ENCODINGS = ("gzip", "deflate", "identity")
ACCEPT_ENCODING = "gzip, deflate"

LOGIN_NOT_JSON_ERROR = {
    "error": "Authentication failed",
    "message": "The server returned an HTML error page instead of JSON",
    "details": "Please check your server configuration",
}


def _strip_transfer_headers(headers: httpx.Headers) -> httpx.Headers:
    return httpx.Headers(
        [(name, value) for name, value in headers.multi_items() if name.lower() not in HOP_BY_HOP_HEADERS]
    )


def is_decoded_encoding(headers: httpx.Headers) -> bool:
    codings = [c.strip().lower() for c in headers.get("content-encoding", "").split(",") if c.strip()]
    return all(coding in DECODED_ENCODINGS for coding in codings)


def has_file_extension(path: str) -> bool:
    """Heuristic for static assets: the last path segment has an extension."""
    return bool(posixpath.splitext(posixpath.basename(path))[1])


def enrich_login_body(body: bytes, tenant_slug: Optional[str]) -> bytes:
    """
    Add the hostname-derived tenant to a JSON login body.

    Best effort: the original bytes are returned unchanged when there is no
    tenant, the body is not a JSON object, or it already names a tenant.
    """
    if not tenant_slug:
        return body
    try:
        parsed = json.loads(body)
    except (ValueError, UnicodeDecodeError) as e:
        logger.warning(f"Login body is not JSON, forwarding unchanged: {e}")
        return body
    if not isinstance(parsed, dict):
        return body
    if parsed.get("tenant"):
        return body
    parsed["tenant"] = tenant_slug
    logger.info(f"Added tenant to login request body: {tenant_slug}")
    return json.dumps(parsed, separators=(",", ":")).encode("utf-8")


class EdgeRouter:
    """
    Stateless request interceptor in front of the application origin.

    Usage:
        router = EdgeRouter(EdgeConfig(base_domain="example.com", origin_host="origin.internal"))
        response = await router.handle(EdgeRequest.build("GET", "https://acme.example.com/"))
    """

    def __init__(self, config: EdgeConfig, client: Optional[httpx.AsyncClient] = None):
        self.config = config
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=config.timeout, follow_redirects=True)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "EdgeRouter":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    # =========================================================================
    # REQUEST SHAPING
    # =========================================================================

    def is_api_path(self, path: str) -> bool:
        return path.startswith(self.config.api_prefix)

    def is_login_path(self, path: str) -> bool:
        return path == self.config.auth_login_path

    def origin_url(self, path_and_query: str) -> str:
        return f"{self.config.origin_scheme}://{self.config.origin_host}{path_and_query}"

    def forward_headers(self, request: EdgeRequest, classification: Classification) -> httpx.Headers:
        """Build the header set sent to the origin."""
        headers = httpx.Headers(
            [
                (name, value)
                for name, value in request.headers.multi_items()
                if name.lower() not in HOP_BY_HOP_HEADERS and name.lower() != "host"
            ]
        )
        # Only the edge may set routing headers
        for name in EDGE_OWNED_HEADERS:
            if name in headers:
                del headers[name]

        for name, value in classification.headers.items():
            headers[name] = value
        headers["Host"] = self.config.origin_host
        headers["Accept-Encoding"] = ACCEPT_ENCODING

        if self.is_api_path(request.path):
            headers["Accept"] = "application/json"
            if self.is_login_path(request.path):
                headers["Content-Type"] = "application/json"
        return headers

    def forward_body(self, request: EdgeRequest, classification: Classification) -> bytes:
        if request.method == "POST" and self.is_login_path(request.path):
            return enrich_login_body(request.body, classification.tenant_slug)
        return request.body

    # =========================================================================
    # MAIN ENTRY POINT
    # =========================================================================

    async def handle(self, request: EdgeRequest) -> EdgeResponse:
        """
        Route one request to the origin.

        Args:
            request: Inbound client request

        Returns:
            The relayed, normalised or synthesised response
        """
        classification = classify(request, self.config)

        if classification.kind is RequestKind.IP_REDIRECT:
            logger.info(f"Direct IP access from {classification.hostname}, redirecting")
            return EdgeResponse.build(301, {"Location": classification.redirect_url})

        logger.info(
            f"Edge request {request.method} {classification.hostname}{request.path} "
            f"kind={classification.kind.value} tenant={classification.tenant_slug}"
        )

        headers = self.forward_headers(request, classification)
        body = self.forward_body(request, classification)
        destination = self.origin_url(request.path_and_query)

        try:
            response, content = await self._send(request.method, destination, headers, body or None)
            if self.config.spa_fallback and self._wants_spa_fallback(request, response):
                response, content = await self._fetch_root_document(headers)
        except httpx.HTTPError as e:
            logger.error(f"Origin fetch failed for {destination}: {e!r}")
            return self._fetch_failure(request, e)

        return self._finalize(request, response, content)

    async def _send(
        self, method: str, url: str, headers: httpx.Headers, content: Optional[bytes] = None
    ) -> Tuple[httpx.Response, bytes]:
        """Send one origin request and read its body, decoded where httpx can."""
        outbound = self._client.build_request(method, url, headers=headers, content=content)
        response = await self._client.send(outbound, stream=True)
        try:
            if is_decoded_encoding(response.headers):
                body = await response.aread()
            else:
                logger.warning(f"Relaying {response.headers['content-encoding']} body from {url} undecoded")
                body = b"".join([chunk async for chunk in response.aiter_raw()])
        finally:
            await response.aclose()
        return response, body

    # =========================================================================
    # RESPONSE HANDLING
    # =========================================================================

    def _finalize(self, request: EdgeRequest, response: httpx.Response, body: bytes) -> EdgeResponse:
        headers = _strip_transfer_headers(response.headers)
        if not is_decoded_encoding(response.headers):
            headers["Content-Encoding"] = response.headers["content-encoding"]

        if not self.is_api_path(request.path):
            return EdgeResponse(status_code=response.status_code, headers=headers, body=body)

        try:
            json.loads(body)
        except (ValueError, UnicodeDecodeError):
            if self.is_login_path(request.path):
                logger.warning(
                    f"Login endpoint returned non-JSON ({response.status_code}), "
                    "replacing with JSON error"
                )
                return EdgeResponse.json_response(500, LOGIN_NOT_JSON_ERROR)
            return EdgeResponse(status_code=response.status_code, headers=headers, body=body)

        headers["Content-Type"] = "application/json"
        return EdgeResponse(status_code=response.status_code, headers=headers, body=body)

    def _fetch_failure(self, request: EdgeRequest, error: Exception) -> EdgeResponse:
        if self.is_login_path(request.path):
            return EdgeResponse.json_response(
                500,
                {
                    "error": "Authentication failed",
                    "message": f"Edge error: {error}",
                    "details": "The authentication service could not be reached",
                },
            )
        return EdgeResponse.build(
            500,
            {"Content-Type": "text/html"},
            f"Edge error: {error}".encode("utf-8"),
        )

    # =========================================================================
    # SPA FALLBACK
    # =========================================================================

    def _wants_spa_fallback(self, request: EdgeRequest, response: httpx.Response) -> bool:
        return (
            response.status_code == 404
            and not self.is_api_path(request.path)
            and not has_file_extension(request.path)
        )

    async def _fetch_root_document(self, headers: httpx.Headers) -> Tuple[httpx.Response, bytes]:
        logger.info("Potential client-side route, serving root document")
        index_headers = headers.copy()
        index_headers[APP_REQUEST_HEADER] = "true"
        index_headers[SPA_ROUTE_HEADER] = "true"
        for name in ("content-type", "content-length"):
            if name in index_headers:
                del index_headers[name]
        return await self._send("GET", self.origin_url("/"), index_headers)
