"""Shared fixtures: global state resets and an in-memory role store."""

import pytest
from postgrest.exceptions import APIError

from adapters.db import Customer, LicenseAssignment, LicenseCustomer, PrimaryRole
from core.metrics import reset_metrics
from core.rbac import reset_resolver, reset_session_registry
from core.rbac.identity import reset_identity_resolver


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture(autouse=True)
def reset_global_state():
    """Reset resolver, sessions, identity resolver and metrics around each test."""
    reset_resolver()
    reset_session_registry()
    reset_identity_resolver()
    reset_metrics()
    yield
    reset_resolver()
    reset_session_registry()
    reset_identity_resolver()
    reset_metrics()


def not_found_error():
    return APIError({
        "code": "PGRST116",
        "message": "JSON object requested, multiple (or no) rows returned",
        "details": "The result contains 0 rows",
        "hint": None,
    })


class FakeRoleStore:
    """
    In-memory stand-in for RoleStoreAdapter.

    `failures` maps a method name to an exception raised on every call.
    """

    def __init__(self, primary=None, assignments=None, licenses=None, customers=None, failures=None):
        self.primary = primary or {}
        self.assignments = assignments or {}
        self.licenses = licenses or {}
        self.customers = customers or {}
        self.failures = failures or {}
        self.calls = []

    def _record(self, name, *args):
        self.calls.append((name,) + args)
        if name in self.failures:
            raise self.failures[name]

    def get_primary_admin_role(self, user_id):
        self._record("get_primary_admin_role", user_id)
        role = self.primary.get(user_id)
        return PrimaryRole(user_id=user_id, role=role) if role else None

    def get_first_license_assignment(self, user_id):
        self._record("get_first_license_assignment", user_id)
        row = self.assignments.get(user_id)
        if row is None:
            return None
        access_level, license_id = row
        return LicenseAssignment(user_id=user_id, license_id=license_id, access_level=access_level)

    def get_license_customer(self, license_id):
        self._record("get_license_customer", license_id)
        customer_id = self.licenses.get(license_id)
        if customer_id is None:
            return None
        customer = self.customers.get(customer_id)
        return LicenseCustomer(
            license_id=license_id,
            customer_id=customer_id,
            is_active=bool(customer and customer.is_active),
        )

    def list_active_customers(self):
        self._record("list_active_customers")
        active = [c for c in self.customers.values() if c.is_active]
        return sorted(active, key=lambda c: c.customer_name)


@pytest.fixture
def role_store():
    """Store holding the u1 / u2 / u3 users plus a manager and a client admin."""
    return FakeRoleStore(
        primary={"u1": "admin"},
        assignments={
            "u2": ("user", "L1"),
            "u4": ("moderator", "L2"),
            "u5": ("admin", "L1"),
        },
        licenses={"L1": "org-9", "L2": "org-3"},
        customers={
            "org-9": Customer(id="org-9", customer_name="Northwind", short_name="NW"),
            "org-3": Customer(id="org-3", customer_name="Acme", short_name="ACM"),
            "org-7": Customer(id="org-7", customer_name="Dormant Co", is_active=False),
        },
    )


@pytest.fixture
def make_store():
    """Factory for FakeRoleStore instances."""
    return FakeRoleStore


@pytest.fixture
def make_not_found():
    return not_found_error
