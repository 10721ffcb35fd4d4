"""
Multi-Tenant Middleware Module

CRITICAL SECURITY COMPONENT:
This middleware resolves the effective tenant of every request. It ensures that:
1. The tenant comes from the edge's X-Tenant-ID header, the tenant hostname,
   or (development hosts only) the ?tenant= query parameter
2. Reserved hosts (www, app, api, bare domain) never carry a tenant
3. The resolution is attached to request.state for downstream dependencies
4. Data routes refuse requests without a known, active tenant

ARCHITECTURE:
- Middleware only resolves; dependencies enforce
- Route handlers receive a TenantContext and pass its TenantId to storage
- Signed-in sessions are bound to a tenant; a session from another tenant
  must re-authenticate
"""

import logging
import secrets
from typing import Optional

from fastapi import Depends, Header, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from starlette.middleware.base import BaseHTTPMiddleware

from .auth import Session, SessionStore
from .config import ADMIN_KEY_HEADER, BackendSettings
from .models import User
from .storage import Storage
from .tenancy import HostKind, ResolutionSource, TenantContext, TenantId, TenantResolution, TenantResolver

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


class TenantMiddleware(BaseHTTPMiddleware):
    """
    FastAPI Middleware for Multi-Tenant Resolution

    RESOLUTION FLOW:
    1. Read X-Forwarded-Host (set by the edge) or Host
    2. Classify the host (reserved / app-shell / tenant / development / other)
    3. Apply precedence: header -> hostname -> dev query parameter
    4. Fall back to registered custom domains for unrecognised hosts
    5. Attach TenantResolution to request.state.tenant_resolution
    """

    def __init__(self, app, resolver: TenantResolver):
        super().__init__(app)
        self.resolver = resolver

    async def dispatch(self, request: Request, call_next):
        resolution = self.resolver.resolve(
            request.headers,
            host=request.headers.get("host"),
            query=request.query_params,
        )
        if resolution.tenant_id is None and resolution.host_kind is HostKind.OTHER:
            resolution = self._resolve_custom_domain(request, resolution)
        request.state.tenant_resolution = resolution

        if resolution.tenant_id is not None:
            logger.debug(
                f"Resolved tenant {resolution.tenant_id} from {resolution.source.value} "
                f"for {request.method} {request.url.path}"
            )

        response = await call_next(request)
        return response

    def _resolve_custom_domain(self, request: Request, resolution: TenantResolution) -> TenantResolution:
        """Tenants may register a vanity domain served through the edge as-is."""
        storage = getattr(request.app.state, "storage", None)
        tenant = storage.tenants.get_by_domain(resolution.host) if storage is not None else None
        if tenant is None:
            return resolution
        return TenantResolution(TenantId(tenant.id), ResolutionSource.HOSTNAME, resolution.host, HostKind.TENANT)


# =============================================================================
# DEPENDENCIES
# =============================================================================

def get_storage(request: Request) -> Storage:
    return request.app.state.storage


def get_sessions(request: Request) -> SessionStore:
    return request.app.state.sessions


def get_settings(request: Request) -> BackendSettings:
    return request.app.state.settings


def get_resolution(request: Request) -> TenantResolution:
    """
    Raises:
        HTTPException: If the middleware did not run (configuration error)
    """
    resolution = getattr(request.state, "tenant_resolution", None)
    if resolution is None:
        raise HTTPException(
            status_code=500,
            detail="Tenant resolution not found - middleware configuration error"
        )
    return resolution


def get_current_tenant(
    resolution: TenantResolution = Depends(get_resolution),
    storage: Storage = Depends(get_storage),
) -> TenantContext:
    """
    Dependency returning the request's tenant.

    Usage:
        @router.get("/api/accounts")
        async def list_accounts(tenant: TenantContext = Depends(get_current_tenant)):
            return storage.accounts.list(tenant.tenant_id)

    Raises:
        HTTPException 400: no tenant could be resolved
        HTTPException 404: tenant unknown or deactivated
    """
    if resolution.tenant_id is None:
        raise HTTPException(status_code=400, detail="Tenant context not provided")

    tenant = storage.tenants.get(resolution.tenant_id)
    if tenant is None or not tenant.is_active:
        logger.warning(f"Request for unknown or inactive tenant: {resolution.tenant_id}")
        raise HTTPException(status_code=404, detail="Tenant not found")

    return TenantContext(tenant_id=resolution.tenant_id, display_name=tenant.company_name)


def get_current_session(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    sessions: SessionStore = Depends(get_sessions),
) -> Session:
    if not credentials:
        raise HTTPException(status_code=401, detail="Authentication required")
    session = sessions.get(credentials.credentials)
    if session is None:
        raise HTTPException(status_code=401, detail="Session expired")
    return session


def get_current_user(
    tenant: TenantContext = Depends(get_current_tenant),
    session: Session = Depends(get_current_session),
    storage: Storage = Depends(get_storage),
) -> User:
    """
    Signed-in user of the current tenant.

    A session issued for another tenant is not accepted: the hostname-derived
    tenant wins and the user must sign in again.
    """
    if session.tenant_id != tenant.tenant_id:
        logger.info(
            f"Session tenant {session.tenant_id} differs from request tenant "
            f"{tenant.tenant_id}, re-authentication required"
        )
        raise HTTPException(status_code=401, detail="Session belongs to another tenant, please sign in again")

    user = storage.users.get(session.user_id, tenant.tenant_id)
    if user is None:
        raise HTTPException(status_code=401, detail="User not found")
    return user


def require_admin_key(
    x_admin_key: Optional[str] = Header(None, alias=ADMIN_KEY_HEADER),
    settings: BackendSettings = Depends(get_settings),
) -> None:
    """Guard for platform admin endpoints (X-Admin-Key header)."""
    if not settings.admin_api_key:
        raise HTTPException(status_code=403, detail="Admin API disabled")
    if not x_admin_key:
        raise HTTPException(status_code=401, detail="Missing X-Admin-Key header")
    if not secrets.compare_digest(x_admin_key, settings.admin_api_key):
        raise HTTPException(status_code=401, detail="Invalid admin key")
