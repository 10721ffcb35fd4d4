"""
Tenant Provisioning Module

Creates a tenant with everything it needs to be reachable:
1. Slug derived from the company name (lowercase, alphanumerics only)
2. Tenant record on <slug>.<base domain>
3. Admin user inside the new tenant
4. Module settings seeded from the plan's entitlements
5. DNS record plan (proxied CNAME per hostname) for the ops tooling to apply
"""

import logging
import re
from typing import List

from .auth import hash_password, to_public
from .config import BackendSettings
from .models import (
    DnsRecord,
    ModuleSetting,
    ModuleSettingCreate,
    ProvisionResponse,
    Tenant,
    TenantCreate,
    TenantProvisionRequest,
    UserCreate,
)
from .plans import MODULES, plan_modules, validate_plan
from .storage import Storage
from .tenancy import InvalidTenantIdError, TenantId

logger = logging.getLogger(__name__)


def derive_tenant_slug(company_name: str) -> str:
    """'Green Lane, Inc.' -> 'greenlaneinc'"""
    slug = re.sub(r"[^a-z0-9]", "", company_name.lower())
    if not slug:
        raise InvalidTenantIdError(f"Cannot derive a tenant id from: {company_name!r}")
    return TenantId(slug[:63]).value


def plan_dns_records(tenant: Tenant, settings: BackendSettings) -> List[DnsRecord]:
    records = [DnsRecord(name=tenant.domain_name, content=settings.edge_target)]
    if tenant.custom_domain:
        records.append(DnsRecord(name=tenant.custom_domain, content=settings.edge_target))
    return records


def seed_modules(storage: Storage, tenant_id: TenantId, plan_type: str) -> List[ModuleSetting]:
    """One ModuleSetting per known module, enabled when the plan includes it."""
    entitled = set(plan_modules(plan_type))
    seeded = []
    for module_id, module in MODULES.items():
        seeded.append(
            storage.module_settings.create(
                ModuleSettingCreate(
                    tenant_id=tenant_id.value,
                    module_id=module_id,
                    name=module["name"],
                    enabled=module_id in entitled,
                    settings=dict(module["settings"]),
                )
            )
        )
    return seeded


def provision_tenant(
    storage: Storage,
    request: TenantProvisionRequest,
    settings: BackendSettings,
) -> ProvisionResponse:
    """
    Provision a tenant, its admin user and module settings.

    Raises:
        ValueError: unknown plan
        InvalidTenantIdError: no usable slug
        TenantExistsError: slug already registered
        DomainTakenError: custom domain already points at another tenant
    """
    if not validate_plan(request.plan_type):
        raise ValueError(f"Unknown plan: {request.plan_type}")

    slug = TenantId(request.tenant_id).value if request.tenant_id else derive_tenant_slug(request.company_name)
    tenant_id = TenantId(slug)
    logger.info(f"Provisioning tenant {tenant_id} for {request.company_name}")

    tenant = storage.tenants.create(
        TenantCreate(
            id=tenant_id.value,
            company_name=request.company_name,
            plan_type=request.plan_type.lower(),
            domain_name=f"{tenant_id}.{settings.base_domain}",
            admin_email=request.admin_email,
            custom_domain=request.custom_domain,
            modules=plan_modules(request.plan_type),
        )
    )
    admin = storage.users.create(
        UserCreate(
            username=request.admin_username,
            email=request.admin_email,
            password_hash=hash_password(request.admin_password),
            role="admin",
            tenant_id=tenant_id.value,
        )
    )
    seed_modules(storage, tenant_id, tenant.plan_type)

    logger.info(f"Tenant {tenant_id} ready at {tenant.domain_name}")
    return ProvisionResponse(
        tenant=tenant,
        admin_user=to_public(admin),
        dns_records=plan_dns_records(tenant, settings),
    )
