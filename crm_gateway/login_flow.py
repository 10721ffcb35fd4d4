"""
Login State Machine

One LoginFlow per authentication attempt:

    Unauthenticated -> [TenantRequired ->] TenantResolved -> CredentialsSubmitted
                                                          -> Authenticated | Rejected

A tenant must be resolved before credentials can be submitted. When the
request arrives on the app-shell alias without a tenant, the flow inserts
the manual tenant-entry step (TenantRequired).
"""

import logging
from enum import Enum
from typing import Dict, Optional

from .tenancy import TenantId, TenantResolution

logger = logging.getLogger(__name__)


class LoginState(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    TENANT_REQUIRED = "tenant_required"
    TENANT_RESOLVED = "tenant_resolved"
    CREDENTIALS_SUBMITTED = "credentials_submitted"
    AUTHENTICATED = "authenticated"
    REJECTED = "rejected"


class InvalidTransitionError(RuntimeError):
    """Raised when a LoginFlow step is taken out of order."""


class LoginFlow:
    def __init__(self) -> None:
        self._state = LoginState.UNAUTHENTICATED
        self._tenant_id: Optional[TenantId] = None
        self._username: Optional[str] = None

    @classmethod
    def start(cls, resolution: TenantResolution) -> "LoginFlow":
        """Begin an attempt from the tenant resolution of the current host."""
        flow = cls()
        if resolution.tenant_id is not None:
            flow._tenant_id = resolution.tenant_id
            flow._state = LoginState.TENANT_RESOLVED
        else:
            flow._state = LoginState.TENANT_REQUIRED
        return flow

    @property
    def state(self) -> LoginState:
        return self._state

    @property
    def needs_tenant_entry(self) -> bool:
        """No host-derived tenant: the user has to type one in."""
        return self._state is LoginState.TENANT_REQUIRED

    @property
    def tenant_id(self) -> Optional[TenantId]:
        return self._tenant_id

    @property
    def username(self) -> Optional[str]:
        return self._username

    def _expect(self, *states: LoginState) -> None:
        if self._state not in states:
            allowed = ", ".join(s.value for s in states)
            raise InvalidTransitionError(f"Login flow is {self._state.value}, expected one of: {allowed}")

    def enter_tenant(self, tenant: str) -> TenantId:
        """Manual tenant entry on the app-shell alias."""
        self._expect(LoginState.UNAUTHENTICATED, LoginState.TENANT_REQUIRED)
        self._tenant_id = TenantId(tenant)
        self._state = LoginState.TENANT_RESOLVED
        return self._tenant_id

    def submit(self, username: str, password: str) -> Dict[str, str]:
        """
        Submit credentials for the resolved tenant.

        Returns:
            The credential-check payload, always carrying the tenant
        """
        self._expect(LoginState.TENANT_RESOLVED)
        self._username = username
        self._state = LoginState.CREDENTIALS_SUBMITTED
        return {"username": username, "password": password, "tenant": self._tenant_id.value}

    def complete(self, authenticated: bool) -> LoginState:
        self._expect(LoginState.CREDENTIALS_SUBMITTED)
        self._state = LoginState.AUTHENTICATED if authenticated else LoginState.REJECTED
        logger.info(f"Login for {self._username} on tenant {self._tenant_id}: {self._state.value}")
        return self._state
