"""
Platform admin endpoints (X-Admin-Key).

- POST  /api/admin/tenants                    provision a tenant
- GET   /api/admin/tenants                    list tenants
- PATCH /api/admin/tenants/{tenant_id}        update tenant settings
- POST  /api/admin/tenants/{tenant_id}/deactivate
"""

import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException

from .config import BackendSettings
from .middleware import get_settings, get_storage, require_admin_key
from .models import ProvisionResponse, Tenant, TenantProvisionRequest, TenantUpdate
from .plans import plan_modules, validate_plan
from .provisioning import provision_tenant
from .storage import ConflictError, Storage
from .tenancy import InvalidTenantIdError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin", tags=["admin"], dependencies=[Depends(require_admin_key)])


@router.post("/tenants", response_model=ProvisionResponse, status_code=201, summary="Provision a tenant")
async def create_tenant(
    body: TenantProvisionRequest,
    storage: Storage = Depends(get_storage),
    settings: BackendSettings = Depends(get_settings),
) -> ProvisionResponse:
    """
    Create the tenant, its admin user and module settings, and return the
    DNS records the operator has to publish for the new hostname.
    """
    try:
        return provision_tenant(storage, body, settings)
    except ConflictError:
        raise
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.get("/tenants", response_model=List[Tenant], summary="List tenants")
async def list_tenants(storage: Storage = Depends(get_storage)) -> List[Tenant]:
    return storage.tenants.list()


@router.patch("/tenants/{tenant_id}", response_model=Tenant, summary="Update tenant settings")
async def update_tenant(
    tenant_id: str,
    body: TenantUpdate,
    storage: Storage = Depends(get_storage),
) -> Tenant:
    if body.plan_type is not None:
        if not validate_plan(body.plan_type):
            raise HTTPException(status_code=400, detail=f"Unknown plan: {body.plan_type}")
        body.plan_type = body.plan_type.lower()
        if body.modules is None:
            body.modules = plan_modules(body.plan_type)
    try:
        tenant = storage.tenants.update(tenant_id, body)
    except InvalidTenantIdError as e:
        raise HTTPException(status_code=400, detail=str(e))
    logger.info(f"Updated tenant settings: {tenant.id}")
    return tenant


@router.post("/tenants/{tenant_id}/deactivate", response_model=Tenant, summary="Deactivate a tenant")
async def deactivate_tenant(tenant_id: str, storage: Storage = Depends(get_storage)) -> Tenant:
    try:
        return storage.tenants.deactivate(tenant_id)
    except InvalidTenantIdError as e:
        raise HTTPException(status_code=400, detail=str(e))
