"""
Multi-Tenant CRM - Streamlit Sign-In Front End

A simple sign-in shell for the multi-tenant CRM.

FEATURES:
- Portal URL input (tenant subdomain, app alias, or a development host)
- Tenant field shown only when the URL does not resolve a tenant
- Credentials posted to /api/auth/login together with the tenant
- Lists the signed-in tenant's accounts

MULTI-TENANT SECURITY:
- A tenant subdomain always wins over the cached or typed tenant
- Visiting the app alias clears the cached tenant
- The cached tenant only decides what to show; the backend decides access
"""

import os
from urllib.parse import urlsplit, urlunsplit

import requests
import streamlit as st

from crm_gateway.config import BackendSettings
from crm_gateway.login_flow import LoginFlow, LoginState
from crm_gateway.tenancy import HostKind, InvalidTenantIdError, TenantSession

# =============================================================================
# PAGE CONFIGURATION
# =============================================================================

st.set_page_config(
    page_title="Multi-Tenant CRM - Sign In",
    page_icon="🔐",
    layout="centered"
)

# =============================================================================
# CONSTANTS
# =============================================================================

DEFAULT_PORTAL_URL = os.getenv("CRM_PORTAL_URL", "http://localhost:8000")
TOKEN_KEY = "auth_token"
SIGNED_IN_TENANT_KEY = "signed_in_tenant"

settings = BackendSettings.from_env()
tenant_session = TenantSession(settings, st.session_state)


def tenant_portal_url(portal_url: str, tenant: str) -> str:
    """The app alias signs in; data lives on the tenant's own subdomain."""
    parts = urlsplit(portal_url)
    netloc = f"{tenant}.{settings.base_domain}"
    if parts.port:
        netloc = f"{netloc}:{parts.port}"
    return urlunsplit((parts.scheme, netloc, "", "", ""))


def sign_out() -> None:
    st.session_state.pop(TOKEN_KEY, None)
    st.session_state.pop(SIGNED_IN_TENANT_KEY, None)


# =============================================================================
# SIDEBAR - PORTAL
# =============================================================================

st.sidebar.title("🔐 Portal")
st.sidebar.markdown("---")

portal_url = st.sidebar.text_input(
    "Portal URL:",
    value=DEFAULT_PORTAL_URL,
    help="e.g. https://acme.example.com, https://app.example.com or http://localhost:8000?tenant=acme"
).strip().rstrip("/")

resolution = tenant_session.resolve(portal_url)

if resolution.tenant_id is not None:
    st.sidebar.success(f"Tenant: **{resolution.tenant_id}** ({resolution.source.value})")
elif resolution.host_kind is HostKind.APP_SHELL:
    st.sidebar.info("Shared sign-in page: enter your organization below.")
else:
    st.sidebar.warning(f"No tenant for host `{resolution.host}`")

if TOKEN_KEY in st.session_state:
    st.sidebar.markdown("---")
    if st.sidebar.button("Sign out"):
        sign_out()
        st.rerun()

# =============================================================================
# MAIN CONTENT - SIGN IN
# =============================================================================

st.title("🏢 Multi-Tenant CRM")

if TOKEN_KEY not in st.session_state:
    st.markdown("Sign in to your organization.")

    flow = LoginFlow.start(resolution)
    tenant_input = ""
    if flow.needs_tenant_entry:
        tenant_input = st.text_input(
            "Organization:",
            placeholder="acme",
            help="The tenant id of your organization"
        )

    username = st.text_input("Username:")
    password = st.text_input("Password:", type="password")
    submit_button = st.button("Sign in", type="primary", use_container_width=True)

    if submit_button:
        try:
            if flow.needs_tenant_entry:
                if not tenant_input.strip():
                    st.error("❌ Please enter your organization.")
                    st.stop()
                tenant_session.remember(flow.enter_tenant(tenant_input).value)
        except InvalidTenantIdError:
            st.error("❌ Invalid organization id.")
            st.stop()

        if not username or not password:
            st.error("❌ Please enter your username and password.")
            st.stop()

        payload = flow.submit(username.strip(), password)
        with st.spinner("Signing in..."):
            try:
                response = requests.post(
                    f"{portal_url.split('?', 1)[0]}/api/auth/login",
                    json=payload,
                    headers={"Content-Type": "application/json"},
                    timeout=30
                )
            except requests.exceptions.ConnectionError:
                st.error("🔌 **Connection Error:** Cannot connect to the portal.")
                st.stop()
            except requests.exceptions.Timeout:
                st.error("⏱️ **Timeout:** The request took too long.")
                st.stop()

        if flow.complete(response.status_code == 200) is LoginState.AUTHENTICATED:
            result = response.json()
            st.session_state[TOKEN_KEY] = result["token"]
            st.session_state[SIGNED_IN_TENANT_KEY] = result["tenant"]
            st.rerun()
        elif response.status_code == 401:
            st.error("🚫 **Invalid credentials.**")
        else:
            st.error(f"❌ **Error:** {response.status_code}")
            try:
                st.caption(f"Details: {response.json().get('detail', response.text)}")
            except ValueError:
                st.caption(f"Response: {response.text}")

# =============================================================================
# MAIN CONTENT - ACCOUNTS
# =============================================================================

else:
    tenant = st.session_state[SIGNED_IN_TENANT_KEY]
    data_url = portal_url.split("?", 1)[0]
    if resolution.host_kind is HostKind.APP_SHELL:
        data_url = tenant_portal_url(portal_url, tenant)

    st.info(f"**Tenant:** {tenant}")
    try:
        response = requests.get(
            f"{data_url}/api/accounts",
            params={"tenant": tenant},
            headers={"Authorization": f"Bearer {st.session_state[TOKEN_KEY]}"},
            timeout=30
        )
    except requests.exceptions.RequestException as e:
        st.error(f"🔌 **Connection Error:** {e}")
        st.stop()

    if response.status_code == 200:
        accounts = response.json()
        st.markdown(f"### 📇 Accounts ({len(accounts)})")
        if accounts:
            st.dataframe(
                [{"Name": a["name"], "Industry": a.get("industry"), "Status": a["status"]} for a in accounts],
                use_container_width=True
            )
        else:
            st.caption("No accounts yet.")
    elif response.status_code == 401:
        st.warning("Your session is not valid for this tenant. Please sign in again.")
        sign_out()
    else:
        st.error(f"❌ **Error:** {response.status_code}")

# =============================================================================
# FOOTER
# =============================================================================

st.markdown("---")
st.markdown("""
<div style='text-align: center; color: gray; font-size: 0.8em;'>
    Multi-Tenant CRM | Tenant isolation enforced server-side
</div>
""", unsafe_allow_html=True)
