"""
Hostname Classification Module

Decides, for every inbound request, what kind of site the client asked for.

ROUTING TABLE (base domain D):
- raw IP          -> 301 redirect to https://D (path and query kept)
- D, www.D        -> marketing
- app.D           -> app-shell (tenant-agnostic entry point)
- api.D           -> api
- <slug>.D        -> tenant = leftmost label (unless it is a reserved label)
- anything else   -> other, forwarded without tenant header

classify() is a pure function of (request, config): no I/O, no globals.
"""

import ipaddress
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Optional

from .config import (
    API_REQUEST_HEADER,
    APP_REQUEST_HEADER,
    FORWARDED_HOST_HEADER,
    MARKETING_HEADER,
    ORIGINAL_URL_HEADER,
    SHOW_APP_HEADER,
    SHOW_TENANT_FIELD_HEADER,
    TENANT_HEADER,
    EdgeConfig,
)
from .messages import EdgeRequest

logger = logging.getLogger(__name__)


class RequestKind(str, Enum):
    IP_REDIRECT = "ip-redirect"
    MARKETING = "marketing"
    APP_SHELL = "app-shell"
    API = "api"
    TENANT = "tenant"
    OTHER = "other"


@dataclass(frozen=True)
class Classification:
    """
    Per-request routing decision. Never persisted.

    Attributes:
        hostname: Lowercased client-facing hostname
        kind: Derived request kind
        tenant_slug: Leftmost label for tenant requests, otherwise None
        headers: Headers the edge injects before forwarding
        redirect_url: Target of the IP-literal redirect, otherwise None
    """
    hostname: str
    kind: RequestKind
    tenant_slug: Optional[str] = None
    headers: Dict[str, str] = field(default_factory=dict)
    redirect_url: Optional[str] = None


def is_ip_literal(hostname: str) -> bool:
    """True for IPv4/IPv6 literals, with or without IPv6 brackets."""
    candidate = hostname.strip("[]")
    try:
        ipaddress.ip_address(candidate)
    except ValueError:
        return False
    return True


def tenant_slug_for_host(hostname: str, base_domain: str, reserved_labels) -> Optional[str]:
    """
    Extract the tenant slug from <slug>.<base_domain>.

    Returns None for the base domain itself, hosts outside it, and hosts
    whose leftmost label is reserved (www, app, api).
    """
    hostname = hostname.lower()
    suffix = f".{base_domain.lower()}"
    if not hostname.endswith(suffix):
        return None
    prefix = hostname[: -len(suffix)]
    if not prefix:
        return None
    slug = prefix.split(".", 1)[0]
    if not slug or slug in reserved_labels:
        return None
    return slug


def classify(request: EdgeRequest, config: EdgeConfig) -> Classification:
    """
    Classify a request by hostname. First match wins.

    Args:
        request: Inbound request
        config: Edge configuration (base domain, reserved labels, ...)

    Returns:
        Classification including the routing headers to inject
    """
    hostname = request.hostname
    base = config.base_domain.lower()

    # =================================================================
    # STEP 1: Direct IP access never reaches the origin
    # =================================================================
    if is_ip_literal(hostname):
        redirect_url = f"https://{base}{request.path_and_query}"
        return Classification(
            hostname=hostname,
            kind=RequestKind.IP_REDIRECT,
            redirect_url=redirect_url,
        )

    headers: Dict[str, str] = {
        FORWARDED_HOST_HEADER: hostname,
        ORIGINAL_URL_HEADER: str(request.url),
    }

    # =================================================================
    # STEP 2: Fixed hostnames
    # =================================================================
    if hostname in (base, f"www.{base}"):
        headers[MARKETING_HEADER] = "true"
        return Classification(hostname=hostname, kind=RequestKind.MARKETING, headers=headers)

    if hostname == config.app_host:
        headers[APP_REQUEST_HEADER] = "true"
        headers[SHOW_APP_HEADER] = "true"
        if config.show_tenant_field:
            headers[SHOW_TENANT_FIELD_HEADER] = "true"
        return Classification(hostname=hostname, kind=RequestKind.APP_SHELL, headers=headers)

    if hostname == config.api_host:
        headers[API_REQUEST_HEADER] = "true"
        return Classification(hostname=hostname, kind=RequestKind.API, headers=headers)

    # =================================================================
    # STEP 3: Tenant subdomains
    # =================================================================
    slug = tenant_slug_for_host(hostname, base, config.reserved_labels)
    if slug:
        headers[TENANT_HEADER] = slug
        return Classification(
            hostname=hostname,
            kind=RequestKind.TENANT,
            tenant_slug=slug,
            headers=headers,
        )

    logger.debug(f"Unrecognised hostname forwarded without tenant: {hostname}")
    return Classification(hostname=hostname, kind=RequestKind.OTHER, headers=headers)
