import pytest

from crm_gateway.login_flow import InvalidTransitionError, LoginFlow, LoginState
from crm_gateway.tenancy import HostKind, InvalidTenantIdError, ResolutionSource, TenantId, TenantResolution


def resolved(slug):
    return TenantResolution(TenantId(slug), ResolutionSource.HOSTNAME, f"{slug}.example.com", HostKind.TENANT)


def unresolved():
    return TenantResolution(None, ResolutionSource.NONE, "app.example.com", HostKind.APP_SHELL)


def test_tenant_host_goes_straight_to_credentials():
    flow = LoginFlow.start(resolved("acme"))

    assert flow.state is LoginState.TENANT_RESOLVED
    payload = flow.submit("jane", "secret")

    assert payload == {"username": "jane", "password": "secret", "tenant": "acme"}
    assert flow.state is LoginState.CREDENTIALS_SUBMITTED
    assert flow.complete(True) is LoginState.AUTHENTICATED


def test_app_alias_requires_tenant_entry_before_credentials():
    flow = LoginFlow.start(unresolved())

    assert flow.state is LoginState.TENANT_REQUIRED
    with pytest.raises(InvalidTransitionError):
        flow.submit("jane", "secret")

    flow.enter_tenant("Beta")
    assert flow.tenant_id == TenantId("beta")
    assert flow.submit("jane", "secret")["tenant"] == "beta"
    assert flow.complete(False) is LoginState.REJECTED


def test_tenant_cannot_be_changed_once_resolved():
    flow = LoginFlow.start(resolved("acme"))

    with pytest.raises(InvalidTransitionError):
        flow.enter_tenant("beta")
    assert flow.tenant_id == TenantId("acme")


def test_invalid_tenant_entry_keeps_flow_waiting():
    flow = LoginFlow.start(unresolved())

    with pytest.raises(InvalidTenantIdError):
        flow.enter_tenant("not a tenant")
    assert flow.state is LoginState.TENANT_REQUIRED


def test_complete_requires_submitted_credentials():
    flow = LoginFlow.start(resolved("acme"))

    with pytest.raises(InvalidTransitionError):
        flow.complete(True)


def test_attempt_is_single_use():
    flow = LoginFlow.start(resolved("acme"))
    flow.submit("jane", "secret")
    flow.complete(True)

    with pytest.raises(InvalidTransitionError):
        flow.submit("jane", "secret")
    assert flow.username == "jane"


def test_fresh_flow_is_unauthenticated():
    flow = LoginFlow()

    assert flow.state is LoginState.UNAUTHENTICATED
    flow.enter_tenant("acme")
    assert flow.state is LoginState.TENANT_RESOLVED


@pytest.mark.parametrize(
    "resolution",
    [
        unresolved(),
        TenantResolution(None, ResolutionSource.NONE, "www.example.com", HostKind.RESERVED),
        TenantResolution(None, ResolutionSource.NONE, "crm.unknown.test", HostKind.OTHER),
    ],
)
def test_any_host_without_a_tenant_asks_for_one(resolution):
    flow = LoginFlow.start(resolution)

    assert flow.needs_tenant_entry
    flow.enter_tenant("acme")
    assert not flow.needs_tenant_entry


def test_tenant_host_skips_tenant_entry():
    assert not LoginFlow.start(resolved("acme")).needs_tenant_entry
