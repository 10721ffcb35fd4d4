"""
Multi-Tenant CRM API - Main Application Entry Point

This is the backend FastAPI application that sits behind the edge router.

ARCHITECTURE OVERVIEW:
┌─────────────────────────────────────────────────────────────────┐
│                         FastAPI App                              │
├─────────────────────────────────────────────────────────────────┤
│  Middleware Layer (TenantMiddleware)                            │
│  ┌─────────────────────────────────────────────────────────────┐│
│  │ 1. Read X-Forwarded-Host / Host                             ││
│  │ 2. Reserved hosts (www, app, api, bare domain): no tenant   ││
│  │ 3. X-Tenant-ID from the edge, else <slug>.<base domain>     ││
│  │ 4. ?tenant= on development hosts only                       ││
│  │ 5. Attach TenantResolution to request.state                 ││
│  └─────────────────────────────────────────────────────────────┘│
├─────────────────────────────────────────────────────────────────┤
│  Route Handlers                                                 │
│  ┌─────────────────────────────────────────────────────────────┐│
│  │ routes.py        : auth, tenant, health                     ││
│  │ entity_routes.py : CRUD for every tenant-scoped entity      ││
│  │ admin_routes.py  : tenant provisioning (X-Admin-Key)        ││
│  └─────────────────────────────────────────────────────────────┘│
├─────────────────────────────────────────────────────────────────┤
│  Data Layer                                                     │
│  ┌─────────────────────────────────────────────────────────────┐│
│  │ storage.py     : tenant-scoped repositories (TenantId only) ││
│  │ data_loader.py : seed fixtures from seed_data/<tenant>/     ││
│  └─────────────────────────────────────────────────────────────┘│
└─────────────────────────────────────────────────────────────────┘

MULTI-TENANT SECURITY GUARANTEES:
1. Tenant identity comes from the edge header or the hostname, never from
   data-route bodies
2. Every storage call takes an explicit TenantId
3. A record of another tenant is reported as not found
4. Sessions only work on the tenant they were issued for
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .admin_routes import router as admin_router
from .auth import SessionStore
from .config import BackendSettings
from .data_loader import load_all_tenants
from .entity_routes import build_entity_routers
from .middleware import TenantMiddleware
from .routes import router
from .storage import ConflictError, NotFoundError, Storage
from .tenancy import TenantResolver

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


# =============================================================================
# APPLICATION LIFESPAN (STARTUP/SHUTDOWN)
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    STARTUP:
    - Load seed fixtures for every tenant folder into storage
    """
    # =========== STARTUP ===========
    logger.info("=" * 60)
    logger.info("STARTING MULTI-TENANT CRM API")
    logger.info("=" * 60)

    if app.state.load_seed_data:
        logger.info("Loading tenant fixtures...")
        loaded = load_all_tenants(app.state.storage, app.state.settings)
        for tenant_id, counts in loaded.items():
            logger.info(f"  - {tenant_id}: {sum(counts.values())} records loaded")

    logger.info("=" * 60)
    logger.info(f"API READY - base domain {app.state.settings.base_domain}")
    logger.info("=" * 60)

    yield  # Application runs here

    # =========== SHUTDOWN ===========
    logger.info("Shutting down Multi-Tenant CRM API...")


# =============================================================================
# EXCEPTION HANDLERS
# =============================================================================

async def not_found_handler(request: Request, exc: NotFoundError) -> JSONResponse:
    return JSONResponse(status_code=404, content={"detail": str(exc), "error": "not_found"})


async def conflict_handler(request: Request, exc: ConflictError) -> JSONResponse:
    return JSONResponse(status_code=409, content={"detail": str(exc), "error": "conflict"})


# =============================================================================
# APPLICATION FACTORY
# =============================================================================

def create_app(
    settings: Optional[BackendSettings] = None,
    storage: Optional[Storage] = None,
    load_seed_data: bool = True,
) -> FastAPI:
    """
    Build the backend application.

    Args:
        settings: Backend settings (defaults to CRM_* environment variables)
        storage: Pre-populated storage (defaults to an empty one)
        load_seed_data: Load seed_data/<tenant>/ fixtures at startup
    """
    settings = settings or BackendSettings.from_env()

    app = FastAPI(
        title="Multi-Tenant CRM API",
        description="""
## Multi-Tenant CRM API

Tenant-isolated CRM backend. Each tenant is served on its own subdomain
(`<tenant>.<base domain>`); the shared sign-in alias `app.<base domain>`
asks the user for the tenant.

### Tenant Resolution

- `X-Tenant-ID` header injected by the edge router
- `<tenant>.<base domain>` hostname (deployments without the edge)
- `?tenant=` query parameter on development hosts

### Usage

```bash
curl -X POST "https://acme.example.com/api/auth/login" \\
  -H "Content-Type: application/json" \\
  -d '{"username": "jane", "password": "secret"}'
```
        """,
        version="1.0.0",
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc"
    )

    app.state.settings = settings
    app.state.storage = storage if storage is not None else Storage()
    app.state.sessions = SessionStore(ttl_hours=settings.session_ttl_hours)
    app.state.load_seed_data = load_seed_data

    # CORS middleware for frontend access
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Tenant resolution for every request; enforcement happens in dependencies
    app.add_middleware(TenantMiddleware, resolver=TenantResolver(settings))

    app.add_exception_handler(NotFoundError, not_found_handler)
    app.add_exception_handler(ConflictError, conflict_handler)

    app.include_router(router)
    for entity_router in build_entity_routers():
        app.include_router(entity_router)
    app.include_router(admin_router)

    @app.get("/", tags=["Root"])
    async def root():
        """Root endpoint - API information."""
        return {
            "name": "Multi-Tenant CRM API",
            "version": "1.0.0",
            "docs": "/docs",
            "health": "/health"
        }

    return app


app = create_app()


# =============================================================================
# RUN WITH UVICORN (for direct execution)
# =============================================================================

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "crm_gateway.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level="info"
    )
