"""
Plan configuration: which CRM modules each subscription plan unlocks.
"""

from typing import Any, Dict, List

MODULES: Dict[str, Dict[str, Any]] = {
    "accounts": {"name": "Accounts", "settings": {}},
    "contacts": {"name": "Contacts", "settings": {}},
    "deals": {"name": "Deals", "settings": {"stages": ["prospecting", "qualified", "proposal", "won", "lost"]}},
    "projects": {"name": "Projects", "settings": {}},
    "support-tickets": {
        "name": "Support Tickets",
        "settings": {
            "ticket_categories": ["Technical", "Billing", "Feature Request", "General"],
            "auto_assignment": True,
            "sla_hours": {"low": 72, "medium": 24, "high": 4, "critical": 1},
        },
    },
    "digital-journey": {"name": "Digital Journey", "settings": {}},
    "community": {
        "name": "Customer Community",
        "settings": {"enable_forums": True, "enable_groups": True},
    },
    "ai-analytics": {"name": "AI Analytics", "settings": {}},
}

PLANS: Dict[str, Dict[str, Any]] = {
    "standard": {
        "name": "Standard",
        "modules": ["accounts", "contacts", "deals"],
    },
    "professional": {
        "name": "Professional",
        "modules": ["accounts", "contacts", "deals", "projects", "support-tickets", "digital-journey"],
    },
    "enterprise": {
        "name": "Enterprise",
        "modules": list(MODULES),
    },
}


def get_plan(plan_type: str) -> Dict[str, Any]:
    """Get plan configuration by name (unknown plans fall back to standard)"""
    return PLANS.get(plan_type.lower(), PLANS["standard"])


def validate_plan(plan_type: str) -> bool:
    return plan_type.lower() in PLANS


def plan_modules(plan_type: str) -> List[str]:
    return list(get_plan(plan_type)["modules"])
