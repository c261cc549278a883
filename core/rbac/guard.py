"""
Declarative access guard.

Decides whether a protected region (a page section, a data fetch, a route)
is shown, replaced by a loading placeholder, or replaced by a fallback,
given a required capability and the current role state. Decisions are
recomputed on every call so they follow refreshes and overrides.
"""

import logging
from enum import Enum
from typing import Any, Optional

from .capabilities import (
    CAP_ADMIN,
    CAP_AUTHENTICATED,
    CAP_MANAGER_OR_ABOVE,
    has_capability,
    validate_capability,
)

logger = logging.getLogger(__name__)

LOADING_PLACEHOLDER = "Loading permissions..."


class GuardDecision(str, Enum):
    ALLOW = "allow"
    LOADING = "loading"
    FALLBACK = "fallback"


class AccessGuard:
    """Gate for one required capability."""

    def __init__(self, required_capability: str, show_loading: Optional[bool] = None):
        """
        Args:
            required_capability: One of CAP_ADMIN, CAP_MANAGER_OR_ABOVE, CAP_AUTHENTICATED
            show_loading: Show a placeholder while resolving; None reads GUARD_SHOW_LOADING
        """
        if not validate_capability(required_capability):
            raise ValueError(f"Unknown capability: {required_capability}")
        self.required_capability = required_capability
        self._show_loading = show_loading

    @property
    def show_loading(self) -> bool:
        if self._show_loading is None:
            self._show_loading = _configured_show_loading()
        return self._show_loading

    def decide(self, descriptor, resolving: bool = False) -> GuardDecision:
        """
        Args:
            descriptor: Current RoleDescriptor, or None if not resolved
            resolving: Whether a resolution is in flight
        """
        if descriptor is None:
            if resolving and self.show_loading:
                return GuardDecision.LOADING
            return GuardDecision.FALLBACK

        if has_capability(descriptor, self.required_capability):
            return GuardDecision.ALLOW
        return GuardDecision.FALLBACK

    def decide_for(self, session) -> GuardDecision:
        """Decide against a RoleSession's current state."""
        if session is None:
            return GuardDecision.FALLBACK
        return self.decide(session.current_descriptor(), resolving=session.is_resolving)

    def render(self, session, content: Any, fallback: Any = None, loading: Any = LOADING_PLACEHOLDER) -> Any:
        """Return `content`, `loading` or `fallback` for the session's current state."""
        decision = self.decide_for(session)
        if decision == GuardDecision.ALLOW:
            return content
        if decision == GuardDecision.LOADING:
            return loading
        return fallback

    def __repr__(self) -> str:
        return f"AccessGuard(required_capability={self.required_capability!r})"


def _configured_show_loading() -> bool:
    try:
        from config import load_config
        return load_config()["GUARD_SHOW_LOADING"]
    except RuntimeError as e:
        logger.debug(f"Config unavailable, showing loading state by default: {e}")
        return True


# Convenience guards for common role checks
def admin_only(show_loading: Optional[bool] = None) -> AccessGuard:
    return AccessGuard(CAP_ADMIN, show_loading=show_loading)


def manager_or_higher(show_loading: Optional[bool] = None) -> AccessGuard:
    return AccessGuard(CAP_MANAGER_OR_ABOVE, show_loading=show_loading)


def authenticated_only(show_loading: Optional[bool] = None) -> AccessGuard:
    return AccessGuard(CAP_AUTHENTICATED, show_loading=show_loading)
