# adapters/db.py: read-only queries against the role and license tables

import logging
from typing import Any, Callable, Dict, List, Optional
from dataclasses import dataclass

import httpx
from postgrest.exceptions import APIError
from tenacity import Retrying, stop_after_attempt, wait_exponential, retry_if_exception_type

from vendors.supabase_client import get_client

logger = logging.getLogger(__name__)

# PostgREST "0 rows" response for single-row lookups
NOT_FOUND_CODE = "PGRST116"

@dataclass
class PrimaryRole:
    user_id: str
    role: str

@dataclass
class LicenseAssignment:
    user_id: str
    license_id: Optional[str]
    access_level: Optional[str]

@dataclass
class LicenseCustomer:
    license_id: str
    customer_id: str
    is_active: bool

@dataclass
class Customer:
    id: str
    customer_name: str
    short_name: Optional[str] = None
    is_active: bool = True


def is_not_found(exc: BaseException) -> bool:
    """True when a store exception only means 'no matching row'."""
    return isinstance(exc, APIError) and getattr(exc, "code", None) == NOT_FOUND_CODE


class RoleStoreAdapter:
    """Queries for role resolution: user_roles, license assignments, customers."""

    def __init__(self, client=None, retry_attempts: int = 2):
        self.client = client if client is not None else get_client()
        self.retry_attempts = max(1, retry_attempts)

    def _run(self, build_query: Callable[[], Any]) -> List[Dict[str, Any]]:
        """
        Execute a query, retrying transport failures.

        Returns the result rows; a PGRST116 response is returned as [].
        Any other error propagates to the caller.
        """
        retryer = Retrying(
            reraise=True,
            stop=stop_after_attempt(self.retry_attempts),
            wait=wait_exponential(multiplier=0.1, min=0.1, max=1),
            retry=retry_if_exception_type(httpx.TransportError),
        )
        try:
            result = retryer(lambda: build_query().execute())
        except APIError as e:
            if is_not_found(e):
                return []
            raise
        return list(result.data or []) if result is not None else []

    def get_primary_admin_role(self, user_id: str) -> Optional[PrimaryRole]:
        """Get the user's 'admin' row from user_roles, if any."""
        rows = self._run(
            lambda: self.client.table("user_roles")
            .select("role")
            .eq("user_id", user_id)
            .eq("role", "admin")
            .limit(1)
        )
        if not rows:
            return None
        return PrimaryRole(user_id=user_id, role=rows[0].get("role"))

    def get_first_license_assignment(self, user_id: str) -> Optional[LicenseAssignment]:
        """Get the first license assignment of a user (only one is used)."""
        rows = self._run(
            lambda: self.client.table("product_license_assignments")
            .select("access_level, license_id")
            .eq("user_id", user_id)
            .limit(1)
        )
        if not rows:
            return None
        row = rows[0]
        return LicenseAssignment(
            user_id=user_id,
            license_id=row.get("license_id"),
            access_level=row.get("access_level"),
        )

    def get_license_customer(self, license_id: str) -> Optional[LicenseCustomer]:
        """Get the customer owning a license, with its active flag."""
        rows = self._run(
            lambda: self.client.table("customer_product_licenses")
            .select("customer_id, customers(id, is_active)")
            .eq("id", license_id)
            .limit(1)
        )
        if not rows or not rows[0].get("customer_id"):
            return None

        row = rows[0]
        customer = row.get("customers") or {}
        if isinstance(customer, list):
            customer = customer[0] if customer else {}
        return LicenseCustomer(
            license_id=license_id,
            customer_id=row["customer_id"],
            is_active=bool(customer.get("is_active", False)),
        )

    def list_active_customers(self) -> List[Customer]:
        """Get all active customers ordered by name."""
        rows = self._run(
            lambda: self.client.table("customers")
            .select("id, customer_name, short_name")
            .eq("is_active", True)
            .order("customer_name")
        )
        return [Customer(**row) for row in rows]
