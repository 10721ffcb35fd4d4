"""
Edge Application - ASGI host for the EdgeRouter

Runs the router as a standalone service in front of the backend origin:

    uvicorn crm_gateway.edge_app:app --host 0.0.0.0 --port 8080

Every path and method is captured by one catch-all route, converted into an
EdgeRequest, routed, and written back unchanged.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

import httpx
from fastapi import FastAPI, Request
from fastapi.responses import Response

from .config import EdgeConfig
from .edge import EdgeRouter
from .messages import EdgeRequest

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

ALL_METHODS = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]


async def to_edge_request(request: Request) -> EdgeRequest:
    """Snapshot a Starlette request (body included) as an immutable EdgeRequest."""
    body = await request.body()
    return EdgeRequest(
        method=request.method,
        url=httpx.URL(str(request.url)),
        headers=httpx.Headers(request.headers.raw),
        body=body,
    )


def create_edge_app(config: EdgeConfig, client: Optional[httpx.AsyncClient] = None) -> FastAPI:
    """
    Build the edge ASGI application.

    Args:
        config: Edge configuration for this instance
        client: Optional preconfigured HTTP client (tests pass a mock transport)
    """
    router = EdgeRouter(config, client=client)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        async with router:
            logger.info(f"Edge router ready: base_domain={config.base_domain} origin={config.origin_host}")
            yield
        logger.info("Edge router stopped")

    app = FastAPI(
        title="CRM Edge Router",
        lifespan=lifespan,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )
    app.state.router = router

    @app.api_route("/{path:path}", methods=ALL_METHODS, include_in_schema=False)
    async def route(request: Request, path: str):
        edge_request = await to_edge_request(request)
        edge_response = await router.handle(edge_request)
        response = Response(content=edge_response.body, status_code=edge_response.status_code)
        for name, value in edge_response.headers.multi_items():
            if name.lower() == "content-length":
                continue
            response.headers.append(name, value)
        return response

    return app


app = create_edge_app(EdgeConfig.from_env())


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "crm_gateway.edge_app:app",
        host="0.0.0.0",
        port=8080,
        log_level="info"
    )
