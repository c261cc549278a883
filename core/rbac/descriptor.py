"""
Role descriptor: the immutable result of role resolution.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional

from .roles import ALL_ROLES, ROLE_ADMIN, ROLE_USER


# ============================================================================
# Source Constants
# ============================================================================

SOURCE_USER_ROLES = "user_roles"
"""Primary-role store: system-wide grants independent of any customer."""

SOURCE_LICENSE_ASSIGNMENTS = "product_license_assignments"
"""License-assignment store: access level scoped to one customer."""

SOURCE_DEFAULT = "default"
"""Neither store produced a usable row."""

ALL_SOURCES = frozenset({
    SOURCE_USER_ROLES,
    SOURCE_LICENSE_ASSIGNMENTS,
    SOURCE_DEFAULT,
})


# ============================================================================
# Descriptor
# ============================================================================

@dataclass(frozen=True)
class RoleDescriptor:
    """Effective role of a user, where it came from, and its customer scope."""
    role: str
    source: str
    is_primary_admin: bool = False
    is_scoped_admin: bool = False
    scope_id: Optional[str] = None

    def __post_init__(self):
        if self.role not in ALL_ROLES:
            raise ValueError(f"Unknown role: {self.role!r}")
        if self.source not in ALL_SOURCES:
            raise ValueError(f"Unknown role source: {self.source!r}")
        if self.is_primary_admin and self.is_scoped_admin:
            raise ValueError("A descriptor cannot be both primary and scoped admin")

        if self.source == SOURCE_DEFAULT:
            if self.role != ROLE_USER or self.scope_id is not None or self.is_primary_admin or self.is_scoped_admin:
                raise ValueError("Default descriptors must be an unscoped, non-admin 'user'")

        if self.is_primary_admin:
            if self.source != SOURCE_USER_ROLES or self.role != ROLE_ADMIN or self.scope_id is not None:
                raise ValueError("Primary admin must be an unscoped 'admin' from user_roles")
        elif self.source == SOURCE_USER_ROLES:
            raise ValueError("user_roles only grants primary admin")

        if self.is_scoped_admin:
            if self.source != SOURCE_LICENSE_ASSIGNMENTS or self.role != ROLE_ADMIN:
                raise ValueError("Scoped admin must be an 'admin' from product_license_assignments")
        elif self.source == SOURCE_LICENSE_ASSIGNMENTS and self.role == ROLE_ADMIN:
            raise ValueError("An 'admin' license assignment must be flagged as scoped admin")

    @property
    def is_default(self) -> bool:
        return self.source == SOURCE_DEFAULT

    def to_dict(self) -> Dict[str, Any]:
        return {
            "role": self.role,
            "source": self.source,
            "is_primary_admin": self.is_primary_admin,
            "is_scoped_admin": self.is_scoped_admin,
            "scope_id": self.scope_id,
        }


# ============================================================================
# Factories
# ============================================================================

def primary_admin() -> RoleDescriptor:
    """System-wide administrator granted by the primary-role store."""
    return RoleDescriptor(
        role=ROLE_ADMIN,
        source=SOURCE_USER_ROLES,
        is_primary_admin=True,
    )


def from_license_assignment(role: str, scope_id: Optional[str] = None) -> RoleDescriptor:
    """Descriptor for a canonical role read from a license assignment."""
    return RoleDescriptor(
        role=role,
        source=SOURCE_LICENSE_ASSIGNMENTS,
        is_scoped_admin=(role == ROLE_ADMIN),
        scope_id=scope_id,
    )


def default_user() -> RoleDescriptor:
    """Least-privilege fallback."""
    return RoleDescriptor(role=ROLE_USER, source=SOURCE_DEFAULT)
