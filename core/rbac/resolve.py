"""
Role resolution logic for license hub users.

Resolves an authenticated user identifier to a RoleDescriptor from two
stores, in strict priority order:
- user_roles (system-wide 'admin' grant)
- product_license_assignments (customer-scoped access level)
- default 'user'

Store failures never reach the caller; they are logged and resolution
falls through to the next step, so errors only ever lower privilege.
"""

import asyncio
import logging
import time
from typing import Any, Callable, Optional

from .descriptor import (
    RoleDescriptor,
    SOURCE_LICENSE_ASSIGNMENTS,
    SOURCE_USER_ROLES,
    default_user,
    from_license_assignment,
    primary_admin,
)
from .roles import ROLE_ADMIN, normalize_role
from core.metrics import record_rbac_resolution, record_store_error

logger = logging.getLogger(__name__)

STORE_LICENSE_CUSTOMERS = "customer_product_licenses"


# ============================================================================
# Role Resolver
# ============================================================================

class RoleResolver:
    """
    Resolves a user's effective role from the role stores.

    The store is any object exposing the RoleStoreAdapter query methods;
    its calls are blocking and run in the default executor.
    """

    def __init__(self, store=None, timeout_seconds: Optional[float] = 2.0):
        """
        Initialize role resolver.

        Args:
            store: Role store adapter (created from config on first use if None)
            timeout_seconds: Per-query timeout; None disables it
        """
        self._store = store
        self.timeout_seconds = timeout_seconds

    @property
    def store(self):
        if self._store is None:
            from adapters.db import RoleStoreAdapter
            from config import load_config

            cfg = load_config()
            self._store = RoleStoreAdapter(retry_attempts=cfg["ROLE_STORE_RETRY_ATTEMPTS"])
        return self._store

    async def resolve(self, user_id: Optional[str]) -> RoleDescriptor:
        """
        Resolve the effective role of a user.

        Args:
            user_id: Authenticated user identifier

        Returns:
            A fresh RoleDescriptor; the default 'user' descriptor on any failure
        """
        start = time.time()

        if not user_id:
            logger.debug("No user id supplied, using default role")
            descriptor = default_user()
        else:
            try:
                descriptor = await self._resolve(user_id)
            except Exception as e:
                logger.error(f"Error determining role for user {user_id}: {e}", exc_info=True)
                descriptor = default_user()

        record_rbac_resolution(
            source=descriptor.source,
            role=descriptor.role,
            latency_ms=(time.time() - start) * 1000,
        )
        return descriptor

    async def _resolve(self, user_id: str) -> RoleDescriptor:
        store = self.store

        # 1. System-wide admin grant wins over anything else
        primary = await self._query(SOURCE_USER_ROLES, store.get_primary_admin_role, user_id)
        if primary is not None and normalize_role(primary.role) == ROLE_ADMIN:
            logger.info(f"Resolved user {user_id} as primary admin")
            return primary_admin()

        # 2. First license assignment, scoped to the license's customer
        assignment = await self._query(SOURCE_LICENSE_ASSIGNMENTS, store.get_first_license_assignment, user_id)
        if assignment is not None:
            role = normalize_role(assignment.access_level)
            if role is None:
                logger.warning(
                    f"Ignoring license assignment for user {user_id} with "
                    f"unrecognized access_level={assignment.access_level!r}"
                )
            else:
                scope_id = await self._resolve_scope(user_id, assignment.license_id)
                logger.info(f"Resolved user {user_id} from license assignment: role={role}, scope_id={scope_id}")
                return from_license_assignment(role, scope_id)

        # 3. Nothing usable
        logger.debug(f"No role rows for user {user_id}, using default role")
        return default_user()

    async def _resolve_scope(self, user_id: str, license_id: Optional[str]) -> Optional[str]:
        """Customer ID owning the license, or None if missing or inactive."""
        if not license_id:
            logger.warning(f"License assignment for user {user_id} has no license_id")
            return None

        owner = await self._query(STORE_LICENSE_CUSTOMERS, self.store.get_license_customer, license_id)
        if owner is None:
            logger.warning(f"Could not resolve customer for license {license_id} (user {user_id})")
            return None
        if not owner.is_active:
            logger.warning(f"Customer {owner.customer_id} for license {license_id} is not active")
            return None
        return owner.customer_id

    async def _query(self, store_name: str, fn: Callable[..., Any], *args: Any) -> Any:
        """
        Run one blocking store query.

        Returns None for 'not found', timeouts and errors alike; only the
        latter two are logged and counted.
        """
        from adapters.db import is_not_found

        loop = asyncio.get_running_loop()
        call = loop.run_in_executor(None, fn, *args)
        try:
            if self.timeout_seconds:
                return await asyncio.wait_for(call, timeout=self.timeout_seconds)
            return await call
        except asyncio.TimeoutError:
            logger.error(f"Timed out querying {store_name} after {self.timeout_seconds}s")
            record_store_error(store_name, "timeout")
            return None
        except Exception as e:
            if is_not_found(e):
                return None
            logger.error(f"Error querying {store_name}: {e}", exc_info=True)
            record_store_error(store_name, type(e).__name__)
            return None


# ============================================================================
# Global Resolver Instance
# ============================================================================

# Global resolver instance (can be configured at app startup)
_global_resolver: Optional[RoleResolver] = None


def get_resolver() -> RoleResolver:
    """
    Get the global role resolver instance.

    Returns:
        Global RoleResolver instance (a default one if not configured)
    """
    global _global_resolver

    if _global_resolver is None:
        logger.warning("Using default role resolver (not configured)")
        _global_resolver = RoleResolver()

    return _global_resolver


def configure_resolver(store=None, timeout_seconds: Optional[float] = 2.0) -> RoleResolver:
    """
    Configure the global role resolver.

    Args:
        store: Role store adapter
        timeout_seconds: Per-query timeout

    Returns:
        Configured RoleResolver instance
    """
    global _global_resolver

    _global_resolver = RoleResolver(store=store, timeout_seconds=timeout_seconds)

    logger.info("Configured global role resolver")
    return _global_resolver


def reset_resolver():
    """Reset the global resolver (useful for testing)."""
    global _global_resolver
    _global_resolver = None


# ============================================================================
# Convenience Checks
# ============================================================================

async def has_role(user_id: Optional[str], required_role: str) -> bool:
    """Resolve a user and compare their effective role."""
    if not user_id:
        return False
    descriptor = await get_resolver().resolve(user_id)
    return descriptor.role == normalize_role(required_role)


async def is_admin(user_id: Optional[str]) -> bool:
    """True if the user resolves to a primary or scoped admin."""
    return await has_role(user_id, ROLE_ADMIN)
