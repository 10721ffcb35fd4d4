"""
Tenant Resolution Module

Determines the single effective tenant of a request and carries it as an
explicit TenantId value into every data access.

SERVER-SIDE PRECEDENCE (highest first):
1. Reserved hosts (D, www.D, app.D, api.D) never resolve to a tenant
2. X-Tenant-ID header injected by the edge router
3. Tenant re-derived from the hostname <slug>.D (deployments without the edge)
4. ?tenant= query parameter, only on development hosts (localhost, previews)

CLIENT-SIDE SESSION:
A previously entered tenant may be cached in the browser session. It is only
used to decide whether to show the manual tenant field, never as an
authorization input, and it is cleared whenever the app-shell alias is seen.
"""

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Mapping, MutableMapping, Optional
from urllib.parse import parse_qs, urlsplit

from .classifier import tenant_slug_for_host
from .config import FORWARDED_HOST_HEADER, TENANT_HEADER, TENANT_QUERY_PARAM, BackendSettings

logger = logging.getLogger(__name__)

_SLUG_PATTERN = re.compile(r"^[a-z0-9](?:[a-z0-9-]{0,61}[a-z0-9])?$")


class InvalidTenantIdError(ValueError):
    """Raised when a value cannot be used as a tenant slug."""


class TenantId:
    """
    Tenant slug wrapper.

    Tenant-scoped storage only accepts TenantId, so a bare string (or a
    forgotten argument) cannot silently select a tenant.
    """
    __slots__ = ("_value",)

    def __init__(self, value: str):
        if not isinstance(value, str):
            raise InvalidTenantIdError(f"Tenant id must be a string, got {type(value).__name__}")
        normalized = value.strip().lower()
        if not _SLUG_PATTERN.match(normalized):
            raise InvalidTenantIdError(f"Invalid tenant id: {value!r}")
        self._value = normalized

    @property
    def value(self) -> str:
        return self._value

    def __eq__(self, other: object) -> bool:
        return isinstance(other, TenantId) and other._value == self._value

    def __hash__(self) -> int:
        return hash(("TenantId", self._value))

    def __str__(self) -> str:
        return self._value

    def __repr__(self) -> str:
        return f"TenantId('{self._value}')"

    @classmethod
    def parse(cls, value: Optional[str]) -> Optional["TenantId"]:
        """Lenient constructor: None for empty or malformed input."""
        if not value:
            return None
        try:
            return cls(value)
        except InvalidTenantIdError:
            logger.warning(f"Ignoring malformed tenant id: {value!r}")
            return None


class HostKind(str, Enum):
    RESERVED = "reserved"
    APP_SHELL = "app-shell"
    TENANT = "tenant"
    DEVELOPMENT = "development"
    OTHER = "other"


class ResolutionSource(str, Enum):
    HEADER = "header"
    HOSTNAME = "hostname"
    QUERY = "query"
    SESSION = "session"
    NONE = "none"


@dataclass(frozen=True)
class TenantResolution:
    """Outcome of resolving one request."""
    tenant_id: Optional[TenantId]
    source: ResolutionSource
    host: str
    host_kind: HostKind

    @property
    def requires_manual_entry(self) -> bool:
        """The app-shell alias (and tenantless dev hosts) must prompt for a tenant."""
        return self.tenant_id is None and self.host_kind in (HostKind.APP_SHELL, HostKind.DEVELOPMENT)


class TenantContext:
    """
    Immutable tenant context attached to each request.
    Contains the resolved tenant and its display name.
    """
    def __init__(self, tenant_id: TenantId, display_name: str):
        self._tenant_id = tenant_id
        self._display_name = display_name

    @property
    def tenant_id(self) -> TenantId:
        return self._tenant_id

    @property
    def display_name(self) -> str:
        return self._display_name

    def __repr__(self) -> str:
        return f"TenantContext(tenant_id='{self._tenant_id}', display_name='{self._display_name}')"


def _strip_port(host: str) -> str:
    host = host.strip().lower()
    if host.startswith("["):
        return host.split("]", 1)[0] + "]"
    return host.split(":", 1)[0]


class TenantResolver:
    """Server-side tenant resolution for requests that passed the edge (or not)."""

    def __init__(self, settings: BackendSettings):
        self.settings = settings

    def is_dev_host(self, host: str) -> bool:
        for candidate in self.settings.dev_hosts:
            if candidate.startswith("."):
                if host.endswith(candidate):
                    return True
            elif host == candidate:
                return True
        return False

    def host_kind(self, host: str) -> HostKind:
        base = self.settings.base_domain
        if host == f"app.{base}":
            return HostKind.APP_SHELL
        if host in (base, f"www.{base}", f"api.{base}"):
            return HostKind.RESERVED
        if self.is_dev_host(host):
            return HostKind.DEVELOPMENT
        if host.endswith(f".{base}"):
            label = host.split(".", 1)[0]
            if label in self.settings.reserved_labels:
                return HostKind.RESERVED
            return HostKind.TENANT
        return HostKind.OTHER

    def effective_host(self, headers: Mapping[str, str], host: Optional[str]) -> str:
        forwarded = headers.get(FORWARDED_HOST_HEADER.lower()) or headers.get(FORWARDED_HOST_HEADER)
        return _strip_port(forwarded or host or "")

    def resolve(
        self,
        headers: Mapping[str, str],
        host: Optional[str] = None,
        query: Optional[Mapping[str, str]] = None,
    ) -> TenantResolution:
        """
        Resolve the effective tenant of one request.

        Args:
            headers: Request headers (case-insensitive mapping preferred)
            host: Host header value, used when X-Forwarded-Host is absent
            query: Query parameters

        Returns:
            TenantResolution; tenant_id is None when no tenant applies
        """
        effective = self.effective_host(headers, host)
        kind = self.host_kind(effective)

        if kind in (HostKind.RESERVED, HostKind.APP_SHELL):
            return TenantResolution(None, ResolutionSource.NONE, effective, kind)

        header_value = headers.get(TENANT_HEADER.lower()) or headers.get(TENANT_HEADER)
        tenant_id = TenantId.parse(header_value)
        if tenant_id:
            return TenantResolution(tenant_id, ResolutionSource.HEADER, effective, kind)

        if kind is HostKind.TENANT:
            slug = tenant_slug_for_host(effective, self.settings.base_domain, self.settings.reserved_labels)
            tenant_id = TenantId.parse(slug)
            if tenant_id:
                return TenantResolution(tenant_id, ResolutionSource.HOSTNAME, effective, kind)

        if kind is HostKind.DEVELOPMENT and query:
            tenant_id = TenantId.parse(query.get(TENANT_QUERY_PARAM))
            if tenant_id:
                return TenantResolution(tenant_id, ResolutionSource.QUERY, effective, kind)

        return TenantResolution(None, ResolutionSource.NONE, effective, kind)


# =============================================================================
# CLIENT-SIDE SESSION CACHE
# =============================================================================

class TenantSession:
    """
    Browser-session view of the tenant, used by the sign-in front end.

    The cached value lives in a caller-supplied mapping (Streamlit's
    session_state, or a plain dict in tests) under CACHE_KEY.
    """
    CACHE_KEY = "current_tenant"

    def __init__(self, settings: BackendSettings, state: MutableMapping):
        self._resolver = TenantResolver(settings)
        self._state = state

    @property
    def cached_tenant(self) -> Optional[str]:
        return self._state.get(self.CACHE_KEY)

    def remember(self, tenant: str) -> TenantId:
        """Cache a manually entered tenant."""
        tenant_id = TenantId(tenant)
        self._state[self.CACHE_KEY] = tenant_id.value
        return tenant_id

    def clear(self) -> None:
        self._state.pop(self.CACHE_KEY, None)

    def resolve(self, url: str) -> TenantResolution:
        """
        Resolve the tenant for the page at url.

        - app-shell alias: cache cleared, no tenant (user is re-prompted)
        - other reserved hosts: no tenant, cache ignored
        - tenant subdomain: hostname wins and replaces the cache
        - development host: ?tenant= first, then the cached value
        """
        parts = urlsplit(url)
        query = {key: values[0] for key, values in parse_qs(parts.query).items() if values}
        resolution = self._resolver.resolve({}, host=parts.netloc, query=query)

        if resolution.host_kind is HostKind.APP_SHELL:
            if self.cached_tenant:
                logger.info(f"App alias visited, clearing cached tenant {self.cached_tenant}")
            self.clear()
            return resolution

        if resolution.tenant_id is not None:
            self._state[self.CACHE_KEY] = resolution.tenant_id.value
            return resolution

        if resolution.host_kind is HostKind.DEVELOPMENT:
            cached = TenantId.parse(self.cached_tenant)
            if cached:
                return TenantResolution(cached, ResolutionSource.SESSION, resolution.host, resolution.host_kind)

        return resolution

    def should_show_tenant_field(self, url: str) -> bool:
        return self.resolve(url).requires_manual_entry
