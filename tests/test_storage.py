import pytest
from pydantic import ValidationError

from crm_gateway.models import AccountCreate, ContactCreate, TenantCreate, TenantUpdate, UserCreate
from crm_gateway.storage import (
    NotFoundError,
    Storage,
    TenantExistsError,
    UserExistsError,
)
from crm_gateway.tenancy import InvalidTenantIdError, TenantId

ACME = TenantId("acme")
BETA = TenantId("beta")


@pytest.fixture
def empty_storage():
    return Storage()


def _accounts(storage, tenant, count):
    return [
        storage.accounts.create(AccountCreate(name=f"{tenant} account {i}", tenant_id=tenant.value))
        for i in range(count)
    ]


def test_update_of_another_tenants_record_is_not_found(empty_storage):
    _accounts(empty_storage, ACME, 4)
    beta_record = _accounts(empty_storage, BETA, 1)[0]
    assert beta_record.id == 5

    with pytest.raises(NotFoundError):
        empty_storage.accounts.update(5, {"name": "hijacked"}, ACME)

    assert empty_storage.accounts.get(5, BETA).name == "beta account 0"
    assert empty_storage.accounts.get(5, BETA).updated_at == beta_record.updated_at


def test_get_of_another_tenants_record_is_none(empty_storage):
    record = _accounts(empty_storage, BETA, 1)[0]

    assert empty_storage.accounts.get(record.id, ACME) is None
    with pytest.raises(NotFoundError):
        empty_storage.accounts.require(record.id, ACME)


def test_update_missing_record_is_not_found(empty_storage):
    with pytest.raises(NotFoundError, match="Account not found with id: 99"):
        empty_storage.accounts.update(99, {"name": "x"}, ACME)


def test_tenant_isolation_holds_for_every_seeded_repository(storage):
    repositories = storage.scoped_repositories()
    assert set(repositories) >= {"accounts", "contacts", "deals", "account_tasks", "module_settings"}

    for tenant in (ACME, BETA):
        for name, repo in repositories.items():
            for record in repo.list(tenant):
                assert record.tenant_id == tenant.value, f"{name} leaked {record.id}"
        for user in storage.users.list(tenant):
            assert user.tenant_id == tenant.value


def test_storage_rejects_plain_string_tenant(empty_storage):
    _accounts(empty_storage, ACME, 1)

    with pytest.raises(TypeError):
        empty_storage.accounts.list("acme")
    with pytest.raises(TypeError):
        empty_storage.accounts.get(1, "acme")
    with pytest.raises(TypeError):
        empty_storage.accounts.update(1, {"name": "x"}, None)


def test_update_ignores_protected_fields(empty_storage):
    record = _accounts(empty_storage, ACME, 1)[0]

    updated = empty_storage.accounts.update(
        record.id, {"name": "Renamed", "tenant_id": "beta", "id": 77, "created_at": None}, ACME
    )

    assert updated.id == record.id
    assert updated.tenant_id == "acme"
    assert updated.name == "Renamed"
    assert updated.created_at == record.created_at
    assert updated.updated_at >= record.updated_at
    assert empty_storage.accounts.list(BETA) == []


def test_update_validates_changes(empty_storage):
    record = _accounts(empty_storage, ACME, 1)[0]

    with pytest.raises(ValidationError):
        empty_storage.accounts.update(record.id, {"employee_count": "lots"}, ACME)
    assert empty_storage.accounts.get(record.id, ACME).employee_count is None


def test_returned_records_are_copies(empty_storage):
    record = _accounts(empty_storage, ACME, 1)[0]
    record.name = "mutated"

    assert empty_storage.accounts.get(record.id, ACME).name == "acme account 0"


def test_create_requires_valid_tenant(empty_storage):
    with pytest.raises(InvalidTenantIdError):
        empty_storage.accounts.create(AccountCreate(name="x", tenant_id="Not Valid"))


def test_list_by_account_is_tenant_scoped(empty_storage):
    account = _accounts(empty_storage, ACME, 1)[0]
    empty_storage.contacts.create(
        ContactCreate(first_name="A", last_name="B", email="a@b.test", account_id=account.id, tenant_id="acme")
    )
    empty_storage.contacts.create(
        ContactCreate(first_name="C", last_name="D", email="c@d.test", account_id=account.id, tenant_id="beta")
    )

    assert [c.first_name for c in empty_storage.contacts.list_by_account(account.id, ACME)] == ["A"]
    assert [c.first_name for c in empty_storage.contacts.list_by_account(account.id, BETA)] == ["C"]


# =============================================================================
# USERS
# =============================================================================

def _user(username, tenant):
    return UserCreate(username=username, email=f"{username}@{tenant}.test", password_hash="x", tenant_id=tenant)


def test_same_username_in_two_tenants(empty_storage):
    empty_storage.users.create(_user("jane", "acme"))
    empty_storage.users.create(_user("jane", "beta"))

    assert empty_storage.users.get_by_username("JANE", ACME).email == "jane@acme.test"
    assert empty_storage.users.get_by_username("jane", BETA).email == "jane@beta.test"


def test_duplicate_username_in_one_tenant(empty_storage):
    empty_storage.users.create(_user("jane", "acme"))

    with pytest.raises(UserExistsError):
        empty_storage.users.create(_user("Jane", "acme"))


# =============================================================================
# TENANT REGISTRY
# =============================================================================

def _tenant(slug, **extra):
    return TenantCreate(
        id=slug,
        company_name=slug.title(),
        domain_name=f"{slug}.example.com",
        admin_email=f"admin@{slug}.test",
        **extra,
    )


def test_registry_lookup_by_slug_and_domain(empty_storage):
    empty_storage.tenants.create(_tenant("acme", custom_domain="crm.acme.test"))

    assert empty_storage.tenants.get("ACME").company_name == "Acme"
    assert empty_storage.tenants.get_by_domain("acme.example.com").id == "acme"
    assert empty_storage.tenants.get_by_domain("CRM.acme.test").id == "acme"
    assert empty_storage.tenants.get_by_domain("other.test") is None


def test_registry_rejects_duplicates(empty_storage):
    empty_storage.tenants.create(_tenant("acme"))

    with pytest.raises(TenantExistsError):
        empty_storage.tenants.create(_tenant("acme"))


def test_registry_update_and_deactivate(empty_storage):
    empty_storage.tenants.create(_tenant("acme"))

    updated = empty_storage.tenants.update(ACME, TenantUpdate(company_name="Acme Holdings"))
    assert updated.company_name == "Acme Holdings"
    assert updated.admin_email == "admin@acme.test"

    deactivated = empty_storage.tenants.deactivate("acme")
    assert not deactivated.is_active
    assert not empty_storage.tenants.is_active(ACME)
    assert [t.id for t in empty_storage.tenants.list()] == ["acme"]


def test_registry_update_unknown_tenant(empty_storage):
    with pytest.raises(NotFoundError):
        empty_storage.tenants.update("ghost", TenantUpdate(company_name="x"))
