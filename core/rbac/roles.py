"""
Role definitions and role presentation.

Defines the three effective roles, the legacy aliases accepted from older
rows, and the labels/dashboard variant the dashboard shows for a resolved
descriptor.
"""

from typing import Dict, Optional


# ============================================================================
# Role Constants
# ============================================================================

ROLE_ADMIN = "admin"
"""Administrative role: system-wide (RAYN) or scoped to one customer."""

ROLE_MANAGER = "manager"
"""Manager role: sees the licenses of the staff reporting to them."""

ROLE_USER = "user"
"""Standard role: sees only their own assigned licenses."""

# Complete set of all roles
ALL_ROLES = frozenset({
    ROLE_ADMIN,
    ROLE_MANAGER,
    ROLE_USER,
})

# Older rows carry the 3-tier naming; 'moderator' is the same tier as 'manager'.
LEGACY_ROLE_ALIASES: Dict[str, str] = {
    "moderator": ROLE_MANAGER,
}


def normalize_role(value: Optional[str]) -> Optional[str]:
    """
    Map a raw role / access level value to a canonical role.

    Args:
        value: Raw value from a store row (any case, may be None)

    Returns:
        One of ALL_ROLES, or None if the value is empty or unknown

    Examples:
        >>> normalize_role("Admin")
        'admin'
        >>> normalize_role("moderator")
        'manager'
        >>> normalize_role("owner") is None
        True
    """
    if not value or not isinstance(value, str):
        return None

    key = value.strip().lower()
    key = LEGACY_ROLE_ALIASES.get(key, key)
    return key if key in ALL_ROLES else None


# ============================================================================
# Dashboard Variants
# ============================================================================

DASHBOARD_RAYN = "rayn"
"""Organization-wide view of every customer's license seats."""

DASHBOARD_CLIENT = "client"
"""One customer's seats and employees."""

DASHBOARD_STAFF = "staff"
"""Licenses of the manager's direct reports plus their own."""

DASHBOARD_PERSONAL = "personal"
"""The user's own license information."""


def select_dashboard(descriptor) -> str:
    """
    Pick the dashboard variant for a resolved descriptor.

    A missing descriptor gets the personal dashboard, the same as a
    default user.
    """
    if descriptor is None:
        return DASHBOARD_PERSONAL
    if descriptor.is_primary_admin:
        return DASHBOARD_RAYN
    if descriptor.is_scoped_admin:
        return DASHBOARD_CLIENT
    if descriptor.role == ROLE_MANAGER:
        return DASHBOARD_STAFF
    return DASHBOARD_PERSONAL


# ============================================================================
# Role Metadata
# ============================================================================

ROLE_DISPLAY_NAMES: Dict[str, str] = {
    ROLE_ADMIN: "Admin",
    ROLE_MANAGER: "Manager",
    ROLE_USER: "User",
}

ROLE_DESCRIPTIONS: Dict[str, str] = {
    ROLE_ADMIN: "Administrative access to license management",
    ROLE_MANAGER: "Access to the licenses of your staff",
    ROLE_USER: "Standard user access",
}

SOURCE_LABELS: Dict[str, str] = {
    "product_license_assignments": "Product License Assignment",
    "default": "Default User Role",
}


def get_role_display_name(descriptor) -> str:
    """Badge text for a descriptor ('RAYN Admin', 'Client Admin', 'Manager', 'User')."""
    if descriptor is None:
        return ROLE_DISPLAY_NAMES[ROLE_USER]
    if descriptor.is_primary_admin:
        return "RAYN Admin"
    if descriptor.is_scoped_admin:
        return "Client Admin"
    return ROLE_DISPLAY_NAMES.get(descriptor.role, ROLE_DISPLAY_NAMES[ROLE_USER])


def get_role_description(descriptor) -> str:
    """Human-readable description of what a descriptor grants."""
    if descriptor is None:
        return ROLE_DESCRIPTIONS[ROLE_USER]
    if descriptor.is_primary_admin:
        return "Full system access with administrative privileges"
    if descriptor.is_scoped_admin:
        return "Administrative access to your organization's licenses"
    return ROLE_DESCRIPTIONS.get(descriptor.role, ROLE_DESCRIPTIONS[ROLE_USER])


def get_source_label(descriptor) -> str:
    """Provenance label shown next to the role badge."""
    if descriptor is None:
        return SOURCE_LABELS["default"]
    if descriptor.is_primary_admin:
        return "RAYN Admin Role"
    if descriptor.is_scoped_admin:
        return "Client Admin Role"
    return SOURCE_LABELS.get(descriptor.source, "Unknown Source")
