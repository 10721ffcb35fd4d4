"""
CRUD routes for the tenant-scoped CRM entities.

Every entity gets the same four endpoints, generated from an EntityRoute:

    GET  /api/<path>           list the tenant's records
    GET  /api/<path>/{id}      one record (404 if missing or foreign)
    POST /api/<path>           create; tenant_id comes from the request context
    PUT  /api/<path>/{id}      partial update; id/tenant_id/timestamps are ignored

Entities linked to an account also get GET /api/accounts/{account_id}/<nested>.
All endpoints require a resolved tenant and a session of that tenant.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Type

from fastapi import APIRouter, Body, Depends, HTTPException
from pydantic import BaseModel, TypeAdapter, ValidationError

from . import models
from .middleware import get_current_tenant, get_current_user, get_storage
from .storage import Storage, TenantScopedRepository
from .tenancy import TenantContext, TenantId

logger = logging.getLogger(__name__)

NOT_FOUND = {404: {"model": models.ErrorResponse}}


@dataclass(frozen=True)
class EntityRoute:
    path: str
    attribute: str
    fields: Type[BaseModel]
    create: Type[BaseModel]
    record: Type[BaseModel]
    nested: Optional[str] = None


ENTITY_ROUTES = (
    EntityRoute("accounts", "accounts", models.AccountFields, models.AccountCreate, models.Account),
    EntityRoute("contacts", "contacts", models.ContactFields, models.ContactCreate, models.Contact, "contacts"),
    EntityRoute("deals", "deals", models.DealFields, models.DealCreate, models.Deal, "deals"),
    EntityRoute("projects", "projects", models.ProjectFields, models.ProjectCreate, models.Project, "projects"),
    EntityRoute(
        "support-tickets", "support_tickets",
        models.SupportTicketFields, models.SupportTicketCreate, models.SupportTicket, "support-tickets",
    ),
    EntityRoute(
        "email-templates", "email_templates",
        models.EmailTemplateFields, models.EmailTemplateCreate, models.EmailTemplate,
    ),
    EntityRoute(
        "digital-journeys", "digital_journeys",
        models.DigitalJourneyFields, models.DigitalJourneyCreate, models.DigitalJourney,
    ),
    EntityRoute(
        "account-tasks", "account_tasks",
        models.AccountTaskFields, models.AccountTaskCreate, models.AccountTask, "tasks",
    ),
    EntityRoute(
        "module-settings", "module_settings",
        models.ModuleSettingFields, models.ModuleSettingCreate, models.ModuleSetting,
    ),
)


def _check_account(storage: Storage, account_id: Optional[int], tenant_id: TenantId) -> None:
    """Linked accounts must belong to the same tenant."""
    if account_id is not None and storage.accounts.get(account_id, tenant_id) is None:
        raise HTTPException(status_code=404, detail=f"Account not found with id: {account_id}")


def _account_reference(fields_model: Type[BaseModel], key: str, value: Any) -> Optional[int]:
    """Coerce a linked account id in a partial update to the field's type."""
    adapter = TypeAdapter(fields_model.model_fields[key].annotation)
    try:
        return adapter.validate_python(value)
    except ValidationError as e:
        errors = [{**error, "loc": ("body", key, *error["loc"])} for error in e.errors(include_url=False)]
        raise HTTPException(status_code=422, detail=errors)


def build_entity_router(entity: EntityRoute) -> APIRouter:
    router = APIRouter(prefix="/api", tags=[entity.path], dependencies=[Depends(get_current_user)])
    fields_model = entity.fields
    record_model = entity.record

    def repository(storage: Storage) -> TenantScopedRepository:
        return getattr(storage, entity.attribute)

    @router.get(f"/{entity.path}", response_model=List[record_model])
    async def list_records(
        tenant: TenantContext = Depends(get_current_tenant),
        storage: Storage = Depends(get_storage),
    ):
        return repository(storage).list(tenant.tenant_id)

    @router.get(f"/{entity.path}/{{record_id}}", response_model=record_model, responses=NOT_FOUND)
    async def get_record(
        record_id: int,
        tenant: TenantContext = Depends(get_current_tenant),
        storage: Storage = Depends(get_storage),
    ):
        return repository(storage).require(record_id, tenant.tenant_id)

    @router.post(f"/{entity.path}", response_model=record_model, status_code=201)
    async def create_record(
        body: fields_model,
        tenant: TenantContext = Depends(get_current_tenant),
        storage: Storage = Depends(get_storage),
    ):
        _check_account(storage, getattr(body, "account_id", None), tenant.tenant_id)
        _check_account(storage, getattr(body, "parent_account_id", None), tenant.tenant_id)
        data = entity.create(**body.model_dump(), tenant_id=tenant.tenant_id.value)
        record = repository(storage).create(data)
        logger.info(f"Created {entity.path} {record.id} for tenant: {tenant.tenant_id}")
        return record

    @router.put(f"/{entity.path}/{{record_id}}", response_model=record_model, responses=NOT_FOUND)
    async def update_record(
        record_id: int,
        changes: Dict[str, Any] = Body(...),
        tenant: TenantContext = Depends(get_current_tenant),
        storage: Storage = Depends(get_storage),
    ):
        changes = dict(changes)
        for key in ("account_id", "parent_account_id"):
            if key in changes and key in fields_model.model_fields:
                changes[key] = _account_reference(fields_model, key, changes[key])
                _check_account(storage, changes[key], tenant.tenant_id)
        try:
            return repository(storage).update(record_id, changes, tenant.tenant_id)
        except ValidationError as e:
            raise HTTPException(status_code=422, detail=e.errors(include_url=False))

    if entity.nested:
        @router.get(f"/accounts/{{account_id}}/{entity.nested}", response_model=List[record_model], responses=NOT_FOUND)
        async def list_for_account(
            account_id: int,
            tenant: TenantContext = Depends(get_current_tenant),
            storage: Storage = Depends(get_storage),
        ):
            return repository(storage).list_by_account(account_id, tenant.tenant_id)

    return router


def build_entity_routers() -> List[APIRouter]:
    return [build_entity_router(entity) for entity in ENTITY_ROUTES]
