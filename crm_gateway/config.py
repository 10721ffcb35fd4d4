"""
Configuration module for the multi-tenant CRM gateway.
Contains the edge router configuration, backend settings and header names.

MULTI-TENANT ROUTING:
- The edge router classifies requests by hostname against a base domain
- Tenant identity travels from the edge to the origin in X-Tenant-ID
- Configuration is injected at construction time, never read from globals
"""

import os
from typing import Optional, Tuple

from pydantic import BaseModel, Field


# =============================================================================
# HEADER NAMES (EDGE ROUTER -> ORIGIN)
# =============================================================================
# The edge owns these headers: inbound copies are stripped before injection

FORWARDED_HOST_HEADER: str = "X-Forwarded-Host"
ORIGINAL_URL_HEADER: str = "X-Original-URL"
TENANT_HEADER: str = "X-Tenant-ID"
MARKETING_HEADER: str = "X-Force-Marketing"
APP_REQUEST_HEADER: str = "X-App-Request"
SHOW_APP_HEADER: str = "X-Show-App"
SHOW_TENANT_FIELD_HEADER: str = "X-Show-Tenant-Field"
API_REQUEST_HEADER: str = "X-API-Request"
SPA_ROUTE_HEADER: str = "X-SPA-Route"

EDGE_OWNED_HEADERS: Tuple[str, ...] = (
    FORWARDED_HOST_HEADER,
    ORIGINAL_URL_HEADER,
    TENANT_HEADER,
    MARKETING_HEADER,
    APP_REQUEST_HEADER,
    SHOW_APP_HEADER,
    SHOW_TENANT_FIELD_HEADER,
    API_REQUEST_HEADER,
    SPA_ROUTE_HEADER,
)

# Platform admin endpoints
ADMIN_KEY_HEADER: str = "X-Admin-Key"

# Development query parameter carrying the tenant slug
TENANT_QUERY_PARAM: str = "tenant"


def _env_flag(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


# =============================================================================
# EDGE ROUTER CONFIGURATION
# =============================================================================

class EdgeConfig(BaseModel):
    """
    Immutable configuration for one EdgeRouter instance.

    Attributes:
        base_domain: Marketing domain; tenants live at <slug>.<base_domain>
        origin_host: Hostname of the single backend origin
        origin_scheme: Scheme used to reach the origin
        show_tenant_field: Send the tenant-field hint on the app alias
        api_prefix: Path prefix of API requests
        auth_login_path: Path of the login endpoint
        reserved_labels: Leftmost labels that never name a tenant
        spa_fallback: Re-serve the root document for extensionless 404s
        timeout: Seconds to wait for the origin
    """
    base_domain: str = Field(..., description="Base (marketing) domain")
    origin_host: str = Field(..., description="Backend origin hostname")
    origin_scheme: str = Field("https", description="Origin URL scheme")
    show_tenant_field: bool = Field(True, description="Hint the front end to render tenant entry")
    api_prefix: str = Field("/api/", description="API path prefix")
    auth_login_path: str = Field("/api/auth/login", description="Login path")
    reserved_labels: Tuple[str, ...] = Field(("www", "app", "api"), description="Non-tenant labels")
    spa_fallback: bool = Field(False, description="Enable SPA fallback mode")
    timeout: float = Field(30.0, gt=0, description="Origin timeout in seconds")

    class Config:
        frozen = True

    @property
    def app_host(self) -> str:
        return f"app.{self.base_domain}"

    @property
    def api_host(self) -> str:
        return f"api.{self.base_domain}"

    @classmethod
    def from_env(cls) -> "EdgeConfig":
        """Build the edge configuration from EDGE_* environment variables."""
        return cls(
            base_domain=os.getenv("EDGE_BASE_DOMAIN", "example.com").lower(),
            origin_host=os.getenv("EDGE_ORIGIN_HOST", "localhost:8000"),
            origin_scheme=os.getenv("EDGE_ORIGIN_SCHEME", "https"),
            show_tenant_field=_env_flag("EDGE_SHOW_TENANT_FIELD", True),
            spa_fallback=_env_flag("EDGE_SPA_FALLBACK", False),
            timeout=float(os.getenv("EDGE_TIMEOUT", "30")),
        )


# =============================================================================
# BACKEND SETTINGS
# =============================================================================

class BackendSettings(BaseModel):
    """
    Settings for the tenant-aware backend.

    dev_hosts entries starting with "." match any hostname ending with them;
    other entries match the hostname exactly.
    """
    base_domain: str = "example.com"
    dev_hosts: Tuple[str, ...] = ("localhost", "127.0.0.1", ".replit.dev", ".repl.co")
    reserved_labels: Tuple[str, ...] = ("www", "app", "api")
    session_ttl_hours: int = Field(24, gt=0)
    seed_data_path: str = "seed_data"
    admin_api_key: Optional[str] = None
    edge_target: str = "edge.example.com"

    class Config:
        frozen = True

    @classmethod
    def from_env(cls) -> "BackendSettings":
        """Build backend settings from CRM_* environment variables."""
        return cls(
            base_domain=os.getenv("CRM_BASE_DOMAIN", "example.com").lower(),
            session_ttl_hours=int(os.getenv("CRM_SESSION_TTL_HOURS", "24")),
            seed_data_path=os.getenv("CRM_SEED_DATA_PATH", "seed_data"),
            admin_api_key=os.getenv("CRM_ADMIN_API_KEY") or None,
            edge_target=os.getenv("CRM_EDGE_TARGET", "edge.example.com"),
        )
