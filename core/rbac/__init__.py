"""
Role-Based Access Control (RBAC) module.

Provides role definitions, the role descriptor, role resolution from the
role stores, capability predicates, the access guard, and session-scoped
role state.
"""

from .roles import (
    ROLE_ADMIN,
    ROLE_MANAGER,
    ROLE_USER,
    ALL_ROLES,
    normalize_role,
    select_dashboard,
    get_role_display_name,
    get_role_description,
    get_source_label,
)

from .descriptor import (
    RoleDescriptor,
    SOURCE_USER_ROLES,
    SOURCE_LICENSE_ASSIGNMENTS,
    SOURCE_DEFAULT,
    ALL_SOURCES,
    primary_admin,
    from_license_assignment,
    default_user,
)

from .capabilities import (
    # Capability constants
    CAP_ADMIN,
    CAP_MANAGER_OR_ABOVE,
    CAP_AUTHENTICATED,
    ALL_CAPABILITIES,
    # Functions
    CapabilityFlags,
    is_administrator,
    is_manager_or_above,
    is_authenticated_user,
    has_capability,
    validate_capability,
    evaluate,
)

from .resolve import (
    RoleResolver,
    configure_resolver,
    get_resolver,
    reset_resolver,
    has_role,
    is_admin,
)

from .guard import (
    AccessGuard,
    GuardDecision,
    admin_only,
    manager_or_higher,
    authenticated_only,
)

from .session import (
    SessionState,
    RoleSession,
    RoleSessionRegistry,
    get_session_registry,
    configure_session_registry,
    reset_session_registry,
)

__all__ = [
    # Roles
    "ROLE_ADMIN",
    "ROLE_MANAGER",
    "ROLE_USER",
    "ALL_ROLES",
    "normalize_role",
    "select_dashboard",
    "get_role_display_name",
    "get_role_description",
    "get_source_label",
    # Descriptor
    "RoleDescriptor",
    "SOURCE_USER_ROLES",
    "SOURCE_LICENSE_ASSIGNMENTS",
    "SOURCE_DEFAULT",
    "ALL_SOURCES",
    "primary_admin",
    "from_license_assignment",
    "default_user",
    # Capabilities
    "CAP_ADMIN",
    "CAP_MANAGER_OR_ABOVE",
    "CAP_AUTHENTICATED",
    "ALL_CAPABILITIES",
    "CapabilityFlags",
    "is_administrator",
    "is_manager_or_above",
    "is_authenticated_user",
    "has_capability",
    "validate_capability",
    "evaluate",
    # Resolver
    "RoleResolver",
    "configure_resolver",
    "get_resolver",
    "reset_resolver",
    "has_role",
    "is_admin",
    # Guard
    "AccessGuard",
    "GuardDecision",
    "admin_only",
    "manager_or_higher",
    "authenticated_only",
    # Session
    "SessionState",
    "RoleSession",
    "RoleSessionRegistry",
    "get_session_registry",
    "configure_session_registry",
    "reset_session_registry",
]
