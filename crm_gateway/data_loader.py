"""
Seed Data Loader for the Multi-Tenant CRM

Loads per-tenant fixtures with strict tenant tagging.

MULTI-TENANT DATA ISOLATION:
- Each tenant's fixtures live in their own directory
- The directory name IS the tenant id; any tenant_id inside a file is ignored
- Every record is created through the tenant-scoped repositories

DIRECTORY STRUCTURE:
seed_data/
├── acme/
│   ├── tenant.json        (company_name, plan_type, admin_email, ...)
│   ├── users.json         (username, email, password, role, ...)
│   ├── accounts.json
│   └── contacts.json ...  (file name = storage attribute name)
└── beta/
    └── ...

Account records may carry a local "id"; account_id / parent_account_id in
the other files refer to those local ids and are remapped on load.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import BaseModel

from . import models
from .auth import hash_password
from .config import BackendSettings
from .plans import plan_modules
from .provisioning import seed_modules
from .storage import Storage
from .tenancy import InvalidTenantIdError, TenantId

logger = logging.getLogger(__name__)

# storage attribute -> create model, in load order (accounts first)
ENTITY_FILES: Dict[str, type] = {
    "accounts": models.AccountCreate,
    "contacts": models.ContactCreate,
    "deals": models.DealCreate,
    "projects": models.ProjectCreate,
    "support_tickets": models.SupportTicketCreate,
    "email_templates": models.EmailTemplateCreate,
    "digital_journeys": models.DigitalJourneyCreate,
    "account_tasks": models.AccountTaskCreate,
}

ACCOUNT_REFERENCES = ("account_id", "parent_account_id")


def _read_json(path: Path) -> Any:
    return json.loads(path.read_text(encoding="utf-8"))


def _read_list(path: Path) -> List[Dict[str, Any]]:
    if not path.exists():
        return []
    data = _read_json(path)
    if not isinstance(data, list):
        raise ValueError(f"Expected a JSON list in {path}")
    return data


def _remap_accounts(record: Dict[str, Any], account_ids: Dict[Any, int]) -> Dict[str, Any]:
    for key in ACCOUNT_REFERENCES:
        if record.get(key) is not None:
            record[key] = account_ids.get(record[key], record[key])
    return record


def load_tenant_fixtures(
    storage: Storage,
    tenant_dir: Path,
    settings: BackendSettings,
) -> Dict[str, int]:
    """
    Load one tenant directory.

    Args:
        storage: Target storage
        tenant_dir: seed_data/<tenant_id>
        settings: Backend settings (base domain for the tenant hostname)

    Returns:
        Number of records loaded per storage attribute
    """
    tenant_id = TenantId(tenant_dir.name)
    counts: Dict[str, int] = {}

    tenant_file = tenant_dir / "tenant.json"
    info = _read_json(tenant_file) if tenant_file.exists() else {}
    plan_type = info.get("plan_type", "standard")

    storage.tenants.create(
        models.TenantCreate(
            id=tenant_id.value,
            company_name=info.get("company_name", tenant_id.value),
            plan_type=plan_type,
            domain_name=f"{tenant_id}.{settings.base_domain}",
            admin_email=info.get("admin_email", f"admin@{tenant_id}.{settings.base_domain}"),
            custom_domain=info.get("custom_domain"),
            modules=info.get("modules") or plan_modules(plan_type),
        )
    )
    if info.get("is_active") is False:
        storage.tenants.deactivate(tenant_id)

    users = 0
    for raw in _read_list(tenant_dir / "users.json"):
        password = raw.pop("password")
        raw.pop("tenant_id", None)
        storage.users.create(
            models.UserCreate(**raw, password_hash=hash_password(password), tenant_id=tenant_id.value)
        )
        users += 1
    counts["users"] = users

    account_ids: Dict[Any, int] = {}
    for attribute, create_model in ENTITY_FILES.items():
        repo = getattr(storage, attribute)
        loaded = 0
        for raw in _read_list(tenant_dir / f"{attribute}.json"):
            local_id = raw.pop("id", None)
            raw.pop("tenant_id", None)
            record: BaseModel = repo.create(
                create_model(**_remap_accounts(raw, account_ids), tenant_id=tenant_id.value)
            )
            if attribute == "accounts" and local_id is not None:
                account_ids[local_id] = record.id
            loaded += 1
        counts[attribute] = loaded

    counts["module_settings"] = len(seed_modules(storage, tenant_id, plan_type))
    logger.info(f"Loaded fixtures for tenant {tenant_id}: {counts}")
    return counts


def load_all_tenants(storage: Storage, settings: BackendSettings, base_path: Optional[str] = None) -> Dict[str, Dict[str, int]]:
    """
    Load fixtures for every tenant directory under base_path.

    Called during FastAPI startup. A missing base directory is not an error.
    """
    root = Path(base_path or settings.seed_data_path)
    loaded: Dict[str, Dict[str, int]] = {}

    if not root.is_dir():
        logger.warning(f"Seed data folder not found: {root}")
        return loaded

    for tenant_dir in sorted(p for p in root.iterdir() if p.is_dir()):
        try:
            loaded[tenant_dir.name] = load_tenant_fixtures(storage, tenant_dir, settings)
        except InvalidTenantIdError as e:
            logger.error(f"Skipping seed folder {tenant_dir}: {e}")

    logger.info(f"Loaded fixtures for {len(loaded)} tenants")
    return loaded
