"""
Tests for capability predicates.

Capabilities are derived from the descriptor on every call; nothing is
cached between calls.
"""

import pytest

from core.rbac import (
    CAP_ADMIN,
    CAP_MANAGER_OR_ABOVE,
    CAP_AUTHENTICATED,
    ALL_CAPABILITIES,
    ROLE_ADMIN,
    ROLE_MANAGER,
    ROLE_USER,
    primary_admin,
    from_license_assignment,
    default_user,
    is_administrator,
    is_manager_or_above,
    is_authenticated_user,
    has_capability,
    validate_capability,
    evaluate,
)


RAYN_ADMIN = primary_admin()
CLIENT_ADMIN = from_license_assignment(ROLE_ADMIN, "org-9")
MANAGER = from_license_assignment(ROLE_MANAGER, "org-9")
LICENSED_USER = from_license_assignment(ROLE_USER, "org-9")
DEFAULT = default_user()


class TestPredicates:

    @pytest.mark.parametrize("descriptor,expected", [
        (RAYN_ADMIN, True),
        (CLIENT_ADMIN, True),
        (MANAGER, False),
        (LICENSED_USER, False),
        (DEFAULT, False),
        (None, False),
    ])
    def test_is_administrator(self, descriptor, expected):
        assert is_administrator(descriptor) is expected

    @pytest.mark.parametrize("descriptor,expected", [
        (RAYN_ADMIN, True),
        (CLIENT_ADMIN, True),
        (MANAGER, True),
        (LICENSED_USER, False),
        (DEFAULT, False),
        (None, False),
    ])
    def test_is_manager_or_above(self, descriptor, expected):
        assert is_manager_or_above(descriptor) is expected

    def test_is_authenticated_user(self):
        assert is_authenticated_user(DEFAULT) is True
        assert is_authenticated_user(RAYN_ADMIN) is True
        assert is_authenticated_user(None) is False


class TestHasCapability:

    def test_known_capabilities(self):
        assert ALL_CAPABILITIES == {"admin", "managerOrAbove", "authenticated"}
        for cap in ALL_CAPABILITIES:
            assert validate_capability(cap)

    def test_unknown_capability_denied(self):
        assert validate_capability("superuser") is False
        assert has_capability(RAYN_ADMIN, "superuser") is False

    def test_admin_capability(self):
        assert has_capability(CLIENT_ADMIN, CAP_ADMIN)
        assert not has_capability(MANAGER, CAP_ADMIN)

    def test_manager_capability(self):
        assert has_capability(MANAGER, CAP_MANAGER_OR_ABOVE)
        assert not has_capability(LICENSED_USER, CAP_MANAGER_OR_ABOVE)

    def test_authenticated_capability(self):
        assert has_capability(DEFAULT, CAP_AUTHENTICATED)
        assert not has_capability(None, CAP_AUTHENTICATED)


class TestEvaluate:

    def test_primary_admin_flags(self):
        flags = evaluate(RAYN_ADMIN)
        assert flags.is_administrator
        assert flags.is_manager_or_above
        assert flags.is_authenticated_user
        assert flags.is_primary_admin
        assert not flags.is_scoped_admin

    def test_scoped_admin_flags(self):
        flags = evaluate(CLIENT_ADMIN)
        assert flags.is_administrator
        assert flags.is_scoped_admin
        assert not flags.is_primary_admin

    def test_unresolved_flags(self):
        flags = evaluate(None)
        assert not any([
            flags.is_administrator,
            flags.is_manager_or_above,
            flags.is_authenticated_user,
            flags.is_primary_admin,
            flags.is_scoped_admin,
        ])

    def test_same_descriptor_same_flags(self):
        assert evaluate(MANAGER) == evaluate(from_license_assignment(ROLE_MANAGER, "org-9"))
