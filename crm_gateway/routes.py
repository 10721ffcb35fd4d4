"""
API Routes Module for the Multi-Tenant CRM

Authentication, tenant and health endpoints.

MULTI-TENANT SECURITY:
- The tenant comes from the request resolution (edge header or hostname)
- On the app-shell alias the login body may name the tenant; a tenant
  resolved from the hostname always wins over it
- Sessions are bound to the tenant they were issued for

ENDPOINTS:
- POST /api/auth/login - Sign in to one tenant
- POST /api/auth/logout - Revoke the current session
- GET /api/auth/status - Whether the caller is signed in to this tenant
- GET /api/user - The signed-in user
- GET /api/tenant - The current tenant
- GET /api/tenant/resolve - Resolution details for the sign-in page
- GET /health - Health check
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials

from .auth import Session, SessionStore, authenticate, to_public
from .login_flow import LoginFlow, LoginState
from .middleware import (
    bearer_scheme,
    get_current_session,
    get_current_tenant,
    get_current_user,
    get_resolution,
    get_sessions,
    get_storage,
)
from .models import (
    AuthStatus,
    HealthResponse,
    LoginRequest,
    LoginResponse,
    Tenant,
    TenantResolveResponse,
    User,
    UserPublic,
)
from .storage import Storage
from .tenancy import InvalidTenantIdError, TenantContext, TenantId, TenantResolution

logger = logging.getLogger(__name__)

router = APIRouter()


# =============================================================================
# AUTHENTICATION
# =============================================================================

@router.post(
    "/api/auth/login",
    response_model=LoginResponse,
    summary="Sign in",
    description="""
    Check credentials inside one tenant and issue a bearer session token.

    **TENANT SELECTION:**
    - Tenant subdomain (or X-Tenant-ID from the edge): that tenant, body ignored
    - No resolved tenant (app-shell alias): the `tenant` field of the body
    """,
    responses={
        400: {"description": "No tenant provided or malformed tenant id"},
        401: {"description": "Invalid credentials"},
        404: {"description": "Unknown or inactive tenant"},
    },
)
async def login(
    body: LoginRequest,
    resolution: TenantResolution = Depends(get_resolution),
    storage: Storage = Depends(get_storage),
    sessions: SessionStore = Depends(get_sessions),
) -> LoginResponse:
    flow = LoginFlow.start(resolution)

    if flow.state is LoginState.TENANT_REQUIRED:
        if not body.tenant:
            raise HTTPException(status_code=400, detail="Tenant context not provided")
        try:
            flow.enter_tenant(body.tenant)
        except InvalidTenantIdError:
            raise HTTPException(status_code=400, detail="Invalid tenant id")
    elif body.tenant and TenantId.parse(body.tenant) != flow.tenant_id:
        logger.warning(
            f"Login body names tenant {body.tenant!r} on host of tenant {flow.tenant_id}; using the host's tenant"
        )

    tenant_id = flow.tenant_id
    if not storage.tenants.is_active(tenant_id):
        raise HTTPException(status_code=404, detail="Tenant not found")

    credentials = flow.submit(body.username, body.password)
    user = authenticate(storage, credentials["username"], credentials["password"], tenant_id)

    if flow.complete(user is not None) is LoginState.REJECTED:
        raise HTTPException(status_code=401, detail="Invalid credentials")

    session = sessions.create(user, tenant_id)
    return LoginResponse(token=session.token, user=to_public(user), tenant=tenant_id.value)


@router.post("/api/auth/logout", summary="Sign out")
async def logout(
    session: Session = Depends(get_current_session),
    sessions: SessionStore = Depends(get_sessions),
):
    sessions.revoke(session.token)
    logger.info(f"Session revoked for user {session.user_id} on tenant {session.tenant_id}")
    return {"message": "Logged out successfully"}


@router.get("/api/auth/status", response_model=AuthStatus, summary="Authentication status")
async def auth_status(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    resolution: TenantResolution = Depends(get_resolution),
    sessions: SessionStore = Depends(get_sessions),
    storage: Storage = Depends(get_storage),
) -> AuthStatus:
    """
    Never fails: a missing, expired or foreign-tenant session simply
    reports is_authenticated=false.
    """
    session = sessions.get(credentials.credentials) if credentials else None
    if session is None or session.tenant_id != resolution.tenant_id:
        return AuthStatus(is_authenticated=False)

    user = storage.users.get(session.user_id, session.tenant_id)
    if user is None:
        return AuthStatus(is_authenticated=False)
    return AuthStatus(is_authenticated=True, user=to_public(user))


@router.get("/api/user", response_model=UserPublic, summary="Current user")
async def current_user(user: User = Depends(get_current_user)) -> UserPublic:
    return to_public(user)


# =============================================================================
# TENANT
# =============================================================================

@router.get("/api/tenant", response_model=Tenant, summary="Current tenant")
async def current_tenant(
    tenant: TenantContext = Depends(get_current_tenant),
    storage: Storage = Depends(get_storage),
) -> Tenant:
    return storage.tenants.get(tenant.tenant_id)


@router.get(
    "/api/tenant/resolve",
    response_model=TenantResolveResponse,
    summary="Resolve tenant for the sign-in page",
    description="Which tenant this host resolves to, and whether the manual tenant field must be shown.",
)
async def resolve_tenant(resolution: TenantResolution = Depends(get_resolution)) -> TenantResolveResponse:
    return TenantResolveResponse(
        tenant=resolution.tenant_id.value if resolution.tenant_id else None,
        source=resolution.source.value,
        host=resolution.host,
        host_kind=resolution.host_kind.value,
        show_tenant_field=resolution.requires_manual_entry,
    )


# =============================================================================
# HEALTH CHECK ENDPOINT
# =============================================================================

@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
    description="Check API health status and registered tenant count."
)
async def health_check(storage: Storage = Depends(get_storage)) -> HealthResponse:
    return HealthResponse(
        status="healthy",
        tenants_loaded=len(storage.tenants),
        timestamp=datetime.now(timezone.utc).isoformat()
    )
