"""
Capability constants and authorization functions.

Capabilities are pure predicates over a RoleDescriptor. They are computed
on demand from the descriptor and never stored separately from it.
"""

from dataclasses import dataclass
from typing import Optional
import logging

from .roles import ROLE_MANAGER

logger = logging.getLogger(__name__)

# ============================================================================
# Capability Constants
# ============================================================================

CAP_ADMIN = "admin"
"""RAYN admin or client admin."""

CAP_MANAGER_OR_ABOVE = "managerOrAbove"
"""Any administrator, or a manager."""

CAP_AUTHENTICATED = "authenticated"
"""Any user with a resolved descriptor."""

# Complete set of all capabilities
ALL_CAPABILITIES = frozenset({
    CAP_ADMIN,
    CAP_MANAGER_OR_ABOVE,
    CAP_AUTHENTICATED,
})


# ============================================================================
# Predicates
# ============================================================================

def is_administrator(descriptor) -> bool:
    """True for a primary (RAYN) or scoped (client) admin."""
    if descriptor is None:
        return False
    return descriptor.is_primary_admin or descriptor.is_scoped_admin


def is_manager_or_above(descriptor) -> bool:
    """True for any administrator or a manager."""
    if descriptor is None:
        return False
    return is_administrator(descriptor) or descriptor.role == ROLE_MANAGER


def is_authenticated_user(descriptor) -> bool:
    """True for any resolved descriptor."""
    return descriptor is not None


_PREDICATES = {
    CAP_ADMIN: is_administrator,
    CAP_MANAGER_OR_ABOVE: is_manager_or_above,
    CAP_AUTHENTICATED: is_authenticated_user,
}


# ============================================================================
# Authorization Functions
# ============================================================================

def validate_capability(capability: str) -> bool:
    """
    Check if a capability name is known.

    Examples:
        >>> validate_capability("admin")
        True
        >>> validate_capability("superuser")
        False
    """
    return capability in ALL_CAPABILITIES


def has_capability(descriptor, capability: str) -> bool:
    """
    Check if a descriptor grants a capability.

    Args:
        descriptor: RoleDescriptor, or None when unresolved
        capability: Capability constant (e.g., CAP_ADMIN)

    Returns:
        True if granted; unknown capabilities are always denied
    """
    predicate = _PREDICATES.get(capability)
    if predicate is None:
        logger.warning(f"Unknown capability: {capability}")
        return False
    return predicate(descriptor)



@dataclass(frozen=True)
class CapabilityFlags:
    """Snapshot of the derived booleans for one descriptor."""
    is_administrator: bool
    is_manager_or_above: bool
    is_authenticated_user: bool
    is_primary_admin: bool
    is_scoped_admin: bool


def evaluate(descriptor: Optional[object]) -> CapabilityFlags:
    """Derive every capability flag from a descriptor (no caching)."""
    return CapabilityFlags(
        is_administrator=is_administrator(descriptor),
        is_manager_or_above=is_manager_or_above(descriptor),
        is_authenticated_user=is_authenticated_user(descriptor),
        is_primary_admin=bool(descriptor is not None and descriptor.is_primary_admin),
        is_scoped_admin=bool(descriptor is not None and descriptor.is_scoped_admin),
    )
