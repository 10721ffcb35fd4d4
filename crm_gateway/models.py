"""
Pydantic Models for the Multi-Tenant CRM

This module defines all data models used in the application:
- Tenant and user records
- Tenant-scoped CRM entities (each carries tenant_id)
- Request/Response models for API endpoints

Every tenant-scoped entity comes in three shapes:
- <Entity>Fields: what a client may send
- <Entity>Create: the fields plus the owning tenant_id (storage input)
- <Entity>: the stored record (id and timestamps added)
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


# =============================================================================
# TENANT MODELS
# =============================================================================

class TenantCreate(BaseModel):
    """
    Input for provisioning a tenant.

    Attributes:
        id: Tenant slug, also its subdomain
        company_name: Display name
        plan_type: Plan determining module entitlements
        domain_name: <slug>.<base domain>
        admin_email: Administrative contact
        custom_domain: Optional vanity domain
        modules: Entitled module ids
    """
    id: str = Field(..., description="Tenant slug (subdomain)")
    company_name: str = Field(..., min_length=1, description="Display name")
    plan_type: str = Field("standard", description="Subscription plan")
    domain_name: str = Field(..., description="Tenant hostname")
    admin_email: str = Field(..., description="Administrative contact")
    custom_domain: Optional[str] = Field(None, description="Vanity domain")
    modules: List[str] = Field(default_factory=list, description="Entitled modules")

    class Config:
        json_schema_extra = {
            "example": {
                "id": "acme",
                "company_name": "Acme Corp",
                "plan_type": "standard",
                "domain_name": "acme.example.com",
                "admin_email": "admin@acme.test",
            }
        }


class Tenant(TenantCreate):
    """A tenant. Never hard-deleted: deactivation clears is_active."""
    is_active: bool = True
    created_at: datetime
    updated_at: datetime


class TenantUpdate(BaseModel):
    """Admin settings changes. Unset fields are left alone."""
    company_name: Optional[str] = None
    plan_type: Optional[str] = None
    admin_email: Optional[str] = None
    custom_domain: Optional[str] = None
    modules: Optional[List[str]] = None


# =============================================================================
# USER MODELS
# =============================================================================

class UserCreate(BaseModel):
    username: str = Field(..., min_length=1)
    email: str
    password_hash: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    role: str = "user"
    tenant_id: str


class User(UserCreate):
    id: int
    created_at: datetime
    updated_at: datetime


class UserPublic(BaseModel):
    """User as returned to clients (no password hash)."""
    id: int
    username: str
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    role: str
    tenant_id: str


# =============================================================================
# TENANT-SCOPED ENTITIES
# =============================================================================

class TenantOwned(BaseModel):
    tenant_id: str = Field(..., description="Owning tenant slug")


class RecordMeta(BaseModel):
    id: int
    created_at: datetime
    updated_at: datetime


class AccountFields(BaseModel):
    name: str = Field(..., min_length=1)
    industry: Optional[str] = None
    employee_count: Optional[int] = None
    website: Optional[str] = None
    parent_account_id: Optional[int] = None
    health_score: Optional[int] = None
    status: str = "active"


class AccountCreate(AccountFields, TenantOwned):
    pass


class Account(AccountCreate, RecordMeta):
    pass


class ContactFields(BaseModel):
    first_name: str = Field(..., min_length=1)
    last_name: str = Field(..., min_length=1)
    email: str
    phone: Optional[str] = None
    title: Optional[str] = None
    account_id: Optional[int] = None


class ContactCreate(ContactFields, TenantOwned):
    pass


class Contact(ContactCreate, RecordMeta):
    pass


class DealFields(BaseModel):
    name: str = Field(..., min_length=1)
    account_id: Optional[int] = None
    value: Optional[float] = None
    stage: str = "prospecting"
    close_date: Optional[datetime] = None
    win_probability: Optional[int] = None
    health_score: Optional[int] = None


class DealCreate(DealFields, TenantOwned):
    pass


class Deal(DealCreate, RecordMeta):
    pass


class ProjectFields(BaseModel):
    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    account_id: Optional[int] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    status: str = "active"
    health_score: Optional[int] = None


class ProjectCreate(ProjectFields, TenantOwned):
    pass


class Project(ProjectCreate, RecordMeta):
    pass


class SupportTicketFields(BaseModel):
    subject: str = Field(..., min_length=1)
    description: str
    status: str = "open"
    priority: str = "medium"
    source: str = "manual"
    account_id: Optional[int] = None
    assigned_to_user_id: Optional[int] = None


class SupportTicketCreate(SupportTicketFields, TenantOwned):
    pass


class SupportTicket(SupportTicketCreate, RecordMeta):
    pass


class EmailTemplateFields(BaseModel):
    name: str = Field(..., min_length=1)
    subject: str
    html_content: str


class EmailTemplateCreate(EmailTemplateFields, TenantOwned):
    pass


class EmailTemplate(EmailTemplateCreate, RecordMeta):
    pass


class DigitalJourneyFields(BaseModel):
    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    status: str = "draft"
    steps: List[Dict[str, Any]] = Field(default_factory=list)


class DigitalJourneyCreate(DigitalJourneyFields, TenantOwned):
    pass


class DigitalJourney(DigitalJourneyCreate, RecordMeta):
    pass


class AccountTaskFields(BaseModel):
    account_id: int
    title: str = Field(..., min_length=1)
    description: Optional[str] = None
    status: str = "pending"
    priority: str = "medium"
    due_date: Optional[datetime] = None
    assigned_to_user_id: Optional[int] = None


class AccountTaskCreate(AccountTaskFields, TenantOwned):
    pass


class AccountTask(AccountTaskCreate, RecordMeta):
    pass


class ModuleSettingFields(BaseModel):
    module_id: str = Field(..., min_length=1)
    name: str
    enabled: bool = False
    version: str = "1.0.0"
    settings: Dict[str, Any] = Field(default_factory=dict)


class ModuleSettingCreate(ModuleSettingFields, TenantOwned):
    pass


class ModuleSetting(ModuleSettingCreate, RecordMeta):
    pass


# =============================================================================
# API REQUEST MODELS
# =============================================================================

class LoginRequest(BaseModel):
    """
    Credentials for /api/auth/login.

    tenant is filled in by the edge router on tenant subdomains, or typed by
    the user on the app-shell alias. A tenant resolved from the hostname
    always wins over this field.
    """
    username: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)
    tenant: Optional[str] = None

    class Config:
        json_schema_extra = {
            "example": {"username": "jane", "password": "secret", "tenant": "acme"}
        }


class TenantProvisionRequest(BaseModel):
    company_name: str = Field(..., min_length=1)
    admin_email: str
    admin_username: str = Field(..., min_length=1)
    admin_password: str = Field(..., min_length=1)
    plan_type: str = "standard"
    tenant_id: Optional[str] = Field(None, description="Explicit slug; derived from company_name when omitted")
    custom_domain: Optional[str] = None


# =============================================================================
# API RESPONSE MODELS
# =============================================================================

class LoginResponse(BaseModel):
    token: str
    user: UserPublic
    tenant: str


class AuthStatus(BaseModel):
    is_authenticated: bool
    user: Optional[UserPublic] = None


class TenantResolveResponse(BaseModel):
    """What the front end needs to render the sign-in page."""
    tenant: Optional[str] = None
    source: str
    host: str
    host_kind: str
    show_tenant_field: bool


class DnsRecord(BaseModel):
    type: str = "CNAME"
    name: str
    content: str
    proxied: bool = True
    ttl: int = 1


class ProvisionResponse(BaseModel):
    tenant: Tenant
    admin_user: UserPublic
    dns_records: List[DnsRecord]


class ErrorResponse(BaseModel):
    """
    Standard error response model.

    Attributes:
        detail: Human-readable error message
        error: Error code for programmatic handling
    """
    detail: str = Field(..., description="Error message")
    error: str = Field(..., description="Error code")

    class Config:
        json_schema_extra = {
            "example": {
                "detail": "Account not found",
                "error": "not_found"
            }
        }


class HealthResponse(BaseModel):
    """
    Health check response model.

    Attributes:
        status: Service status ('healthy' or 'unhealthy')
        tenants_loaded: Number of registered tenants
        timestamp: Current server timestamp
    """
    status: str = Field(..., description="Service health status")
    tenants_loaded: int = Field(..., description="Number of registered tenants")
    timestamp: str = Field(..., description="Server timestamp")
