"""
Tenant-Scoped Storage Module

In-memory storage for tenants, users and every CRM entity.

MULTI-TENANT DATA ISOLATION:
- Records of all tenants share one flat map per entity type
- Every read and write takes an explicit TenantId; there is no default tenant
- Filtering by tenant_id happens here, on every call, not by partitioning
- A record of another tenant is indistinguishable from a missing record:
  get() returns None and update() raises NotFoundError
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Generic, List, Mapping, Optional, Type, TypeVar, Union

from pydantic import BaseModel

from .models import (
    Account,
    AccountTask,
    Contact,
    Deal,
    DigitalJourney,
    EmailTemplate,
    ModuleSetting,
    Project,
    SupportTicket,
    Tenant,
    TenantCreate,
    TenantUpdate,
    User,
)
from .tenancy import TenantId

logger = logging.getLogger(__name__)

RecordT = TypeVar("RecordT", bound=BaseModel)

# Fields a caller can never change through update()
PROTECTED_FIELDS = frozenset({"id", "tenant_id", "created_at", "updated_at"})


# =============================================================================
# DOMAIN ERRORS
# =============================================================================

class NotFoundError(LookupError):
    """No record matches the (id, tenant) pair."""


class ConflictError(ValueError):
    """A unique key is already taken."""


class TenantExistsError(ConflictError):
    pass


class UserExistsError(ConflictError):
    pass


class DomainTakenError(ConflictError):
    pass


def _now() -> datetime:
    return datetime.now(timezone.utc)


def require_tenant_id(tenant_id: Any) -> TenantId:
    """Reject anything that is not a TenantId (plain strings included)."""
    if not isinstance(tenant_id, TenantId):
        raise TypeError(f"Tenant-scoped storage requires a TenantId, got {type(tenant_id).__name__}")
    return tenant_id


# =============================================================================
# TENANT-SCOPED REPOSITORY
# =============================================================================

class TenantScopedRepository(Generic[RecordT]):
    """
    Flat id -> record map with mandatory tenant filtering.

    Args:
        name: Entity name used in error messages (e.g. 'Account')
        model: Stored record model; must have id, tenant_id, created_at, updated_at
    """

    def __init__(self, name: str, model: Type[RecordT]):
        self.name = name
        self.model = model
        self._records: Dict[int, RecordT] = {}
        self._next_id = 1

    def __len__(self) -> int:
        return len(self._records)

    def _owned(self, record: Optional[RecordT], tenant_id: TenantId) -> Optional[RecordT]:
        if record is not None and record.tenant_id == tenant_id.value:
            return record
        return None

    def list(self, tenant_id: TenantId) -> List[RecordT]:
        """All records of one tenant, in creation order."""
        tenant_id = require_tenant_id(tenant_id)
        return [
            record.model_copy(deep=True)
            for record in self._records.values()
            if record.tenant_id == tenant_id.value
        ]

    def list_by_account(self, account_id: int, tenant_id: TenantId) -> List[RecordT]:
        return [record for record in self.list(tenant_id) if getattr(record, "account_id", None) == account_id]

    def get(self, record_id: int, tenant_id: TenantId) -> Optional[RecordT]:
        tenant_id = require_tenant_id(tenant_id)
        record = self._owned(self._records.get(record_id), tenant_id)
        return record.model_copy(deep=True) if record is not None else None

    def require(self, record_id: int, tenant_id: TenantId) -> RecordT:
        record = self.get(record_id, tenant_id)
        if record is None:
            raise NotFoundError(f"{self.name} not found with id: {record_id}")
        return record

    def create(self, data: BaseModel) -> RecordT:
        """
        Store a new record. data embeds its tenant_id.

        Raises:
            InvalidTenantIdError: data.tenant_id is not a valid slug
        """
        tenant_id = TenantId(data.tenant_id)
        now = _now()
        payload = data.model_dump()
        payload.update(id=self._next_id, tenant_id=tenant_id.value, created_at=now, updated_at=now)
        record = self.model.model_validate(payload)
        self._records[record.id] = record
        self._next_id += 1
        logger.debug(f"Created {self.name} {record.id} for tenant: {tenant_id}")
        return record.model_copy(deep=True)

    def update(self, record_id: int, changes: Mapping[str, Any], tenant_id: TenantId) -> RecordT:
        """
        Apply changes to a record of this tenant.

        Raises:
            NotFoundError: no record with this id belongs to tenant_id
            pydantic.ValidationError: changes do not fit the model
        """
        tenant_id = require_tenant_id(tenant_id)
        current = self._owned(self._records.get(record_id), tenant_id)
        if current is None:
            raise NotFoundError(f"{self.name} not found with id: {record_id}")

        merged = current.model_dump()
        merged.update({key: value for key, value in changes.items() if key not in PROTECTED_FIELDS})
        merged["updated_at"] = _now()
        updated = self.model.model_validate(merged)
        self._records[record_id] = updated
        return updated.model_copy(deep=True)


class UserRepository(TenantScopedRepository[User]):
    """Users are tenant-scoped: one username can exist once per tenant."""

    def __init__(self) -> None:
        super().__init__("User", User)

    def get_by_username(self, username: str, tenant_id: TenantId) -> Optional[User]:
        wanted = username.strip().lower()
        for user in self.list(tenant_id):
            if user.username.lower() == wanted:
                return user
        return None

    def create(self, data: BaseModel) -> User:
        if self.get_by_username(data.username, TenantId(data.tenant_id)) is not None:
            raise UserExistsError(f"Username already taken: {data.username}")
        return super().create(data)


# =============================================================================
# TENANT REGISTRY
# =============================================================================

class TenantRegistry:
    """Platform-owned tenant records, keyed by slug."""

    def __init__(self) -> None:
        self._tenants: Dict[str, Tenant] = {}

    def __len__(self) -> int:
        return len(self._tenants)

    @staticmethod
    def _key(tenant_id: Union[TenantId, str]) -> str:
        return tenant_id.value if isinstance(tenant_id, TenantId) else TenantId(tenant_id).value

    def list(self) -> List[Tenant]:
        return [tenant.model_copy(deep=True) for tenant in self._tenants.values()]

    def get(self, tenant_id: Union[TenantId, str]) -> Optional[Tenant]:
        tenant = self._tenants.get(self._key(tenant_id))
        return tenant.model_copy(deep=True) if tenant is not None else None

    def get_by_domain(self, domain: str) -> Optional[Tenant]:
        domain = domain.strip().lower()
        for tenant in self._tenants.values():
            if domain in (tenant.domain_name.lower(), (tenant.custom_domain or "").lower()):
                return tenant.model_copy(deep=True)
        return None

    def _check_domain(self, domain: Optional[str], owner: str) -> None:
        """A hostname may point at one tenant only."""
        if not domain:
            return
        taken = self.get_by_domain(domain)
        if taken is not None and taken.id != owner:
            raise DomainTakenError(f"Domain already in use: {domain}")

    def is_active(self, tenant_id: TenantId) -> bool:
        tenant = self._tenants.get(tenant_id.value)
        return tenant is not None and tenant.is_active

    def create(self, data: TenantCreate) -> Tenant:
        key = self._key(data.id)
        if key in self._tenants:
            raise TenantExistsError(f"Tenant already exists: {key}")
        self._check_domain(data.custom_domain, key)
        now = _now()
        tenant = Tenant(**{**data.model_dump(), "id": key}, created_at=now, updated_at=now)
        self._tenants[key] = tenant
        logger.info(f"Registered tenant: {key}")
        return tenant.model_copy(deep=True)

    def update(self, tenant_id: Union[TenantId, str], data: TenantUpdate) -> Tenant:
        key = self._key(tenant_id)
        current = self._tenants.get(key)
        if current is None:
            raise NotFoundError(f"Tenant not found: {key}")
        self._check_domain(data.custom_domain, key)
        updated = current.model_copy(update={**data.model_dump(exclude_unset=True), "updated_at": _now()})
        self._tenants[key] = updated
        return updated.model_copy(deep=True)

    def deactivate(self, tenant_id: Union[TenantId, str]) -> Tenant:
        """Tenants are never deleted; they are switched off."""
        key = self._key(tenant_id)
        current = self._tenants.get(key)
        if current is None:
            raise NotFoundError(f"Tenant not found: {key}")
        updated = current.model_copy(update={"is_active": False, "updated_at": _now()})
        self._tenants[key] = updated
        logger.info(f"Deactivated tenant: {key}")
        return updated.model_copy(deep=True)


# =============================================================================
# STORAGE AGGREGATE
# =============================================================================

class Storage:
    """All repositories of one backend instance."""

    def __init__(self) -> None:
        self.tenants = TenantRegistry()
        self.users = UserRepository()
        self.accounts: TenantScopedRepository[Account] = TenantScopedRepository("Account", Account)
        self.contacts: TenantScopedRepository[Contact] = TenantScopedRepository("Contact", Contact)
        self.deals: TenantScopedRepository[Deal] = TenantScopedRepository("Deal", Deal)
        self.projects: TenantScopedRepository[Project] = TenantScopedRepository("Project", Project)
        self.support_tickets: TenantScopedRepository[SupportTicket] = TenantScopedRepository(
            "Support ticket", SupportTicket
        )
        self.email_templates: TenantScopedRepository[EmailTemplate] = TenantScopedRepository(
            "Email template", EmailTemplate
        )
        self.digital_journeys: TenantScopedRepository[DigitalJourney] = TenantScopedRepository(
            "Digital journey", DigitalJourney
        )
        self.account_tasks: TenantScopedRepository[AccountTask] = TenantScopedRepository(
            "Account task", AccountTask
        )
        self.module_settings: TenantScopedRepository[ModuleSetting] = TenantScopedRepository(
            "Module setting", ModuleSetting
        )

    def scoped_repositories(self) -> Dict[str, TenantScopedRepository]:
        """Every tenant-scoped repository, keyed by attribute name."""
        return {
            name: repo
            for name, repo in vars(self).items()
            if isinstance(repo, TenantScopedRepository)
        }
