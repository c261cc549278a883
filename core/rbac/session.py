"""
Session-scoped role state.

A RoleSession holds the last resolved descriptor for one authenticated
session. Resolutions may overlap (rapid refreshes, user changes); each
request takes a monotonically increasing token and a result is only applied
if its token is newer than the one currently held, so a slow, superseded
resolution can never overwrite a more recent one. In-flight lookups are
never cancelled, late results are simply dropped.

An operator override ("preview as") lives in a separate slot. It is only
set through the operator routes and is cleared on sign-out or user change.
"""

import asyncio
import logging
import time
from collections import OrderedDict
from enum import Enum
from typing import Optional

from .descriptor import RoleDescriptor, default_user
from .resolve import get_resolver
from core.metrics import audit_role_override, record_session_eviction, record_stale_discard

logger = logging.getLogger(__name__)

DEFAULT_MAX_SESSIONS = 10000
DEFAULT_SWEEP_INTERVAL = 60.0


class SessionState(str, Enum):
    """Resolution state of a session."""
    UNRESOLVED = "unresolved"
    RESOLVING = "resolving"
    RESOLVED = "resolved"


class RoleSession:
    """Role state for one authenticated session."""

    def __init__(self, resolver=None, session_key: Optional[str] = None):
        self._resolver = resolver
        self.session_key = session_key
        self.user_id: Optional[str] = None
        self.state = SessionState.UNRESOLVED
        self.last_resolved_at: Optional[float] = None
        # Expiry of the access token that last used this session
        self.expires_at: Optional[float] = None

        self._descriptor: Optional[RoleDescriptor] = None
        self._override: Optional[RoleDescriptor] = None
        self._override_operator: Optional[str] = None

        # Token of the most recent request, and of the result currently held
        self._latest_token = 0
        self._applied_token = 0
        self._inflight: Optional[asyncio.Future] = None

    @property
    def resolver(self):
        return self._resolver if self._resolver is not None else get_resolver()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def current_descriptor(self) -> Optional[RoleDescriptor]:
        """Override if one is active, else the last resolved descriptor."""
        if self._override is not None:
            return self._override
        return self._descriptor

    def resolved_descriptor(self) -> Optional[RoleDescriptor]:
        """The descriptor from production resolution, ignoring any override."""
        return self._descriptor

    @property
    def is_resolving(self) -> bool:
        return self.state == SessionState.RESOLVING

    @property
    def override_active(self) -> bool:
        return self._override is not None

    @property
    def override_operator(self) -> Optional[str]:
        return self._override_operator

    def is_expired(self, now: Optional[float] = None) -> bool:
        if self.expires_at is None:
            return False
        return (time.time() if now is None else now) >= self.expires_at

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def sign_in(self, user_id: str) -> Optional[RoleDescriptor]:
        """Start a session for a user and resolve their role."""
        return await self.set_user(user_id)

    async def set_user(self, user_id: Optional[str]) -> Optional[RoleDescriptor]:
        """
        Point the session at a user identifier.

        Resolves when the identifier changes; for the same user it waits for
        any in-flight resolution instead of starting a new one.
        """
        if not user_id:
            self.sign_out()
            return None

        if user_id == self.user_id and self.state != SessionState.UNRESOLVED:
            await self.wait_resolved()
            return self.current_descriptor()

        if self.user_id is not None and user_id != self.user_id:
            logger.info(f"Session {self.session_key} switching user {self.user_id} -> {user_id}")

        # Results requested for the previous user must not land on this one
        self._applied_token = self._latest_token
        self.user_id = user_id
        self._descriptor = None
        self._drop_override()

        await self._start_resolution()
        return self.current_descriptor()

    async def refresh(self) -> Optional[RoleDescriptor]:
        """
        Re-resolve the current user's role.

        No-op while an override is active or when no user is set.
        """
        if self._override is not None:
            logger.debug(f"Refresh skipped for session {self.session_key}: override active")
            return self.current_descriptor()
        if not self.user_id:
            return None

        await self._start_resolution()
        return self.current_descriptor()

    def sign_out(self) -> None:
        """Forget the user, the descriptor and any override; drop in-flight results."""
        self._latest_token += 1
        self._applied_token = self._latest_token
        self.user_id = None
        self._descriptor = None
        self._drop_override()
        self._inflight = None
        self.state = SessionState.UNRESOLVED
        self.last_resolved_at = None

    def hold_default(self, user_id: str) -> RoleDescriptor:
        """Settle on the default 'user' role without consulting the stores."""
        self._latest_token += 1
        self._applied_token = self._latest_token
        self.user_id = user_id
        self._descriptor = default_user()
        self._drop_override()
        self._inflight = None
        self.state = SessionState.RESOLVED
        self.last_resolved_at = time.time()
        return self._descriptor

    async def wait_resolved(self) -> Optional[RoleDescriptor]:
        """Wait until the most recent resolution has settled."""
        while self.state == SessionState.RESOLVING and self._inflight is not None:
            inflight = self._inflight
            await asyncio.shield(inflight)
            if inflight is self._inflight and self.state == SessionState.RESOLVING:
                # Settled without being applied (signed out meanwhile)
                break
        return self.current_descriptor()

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    async def _start_resolution(self) -> None:
        self._latest_token += 1
        token = self._latest_token
        self.state = SessionState.RESOLVING

        task = asyncio.ensure_future(self._run_resolution(token, self.user_id))
        self._inflight = task
        await asyncio.shield(task)

    async def _run_resolution(self, token: int, user_id: str) -> None:
        try:
            descriptor = await self.resolver.resolve(user_id)
        except Exception as e:
            logger.error(f"Role resolver failed for user {user_id}: {e}", exc_info=True)
            descriptor = default_user()

        if token <= self._applied_token:
            logger.debug(
                f"Discarding stale role resolution for session {self.session_key} "
                f"(token={token}, held={self._applied_token})"
            )
            record_stale_discard()
            return

        self._descriptor = descriptor
        self._applied_token = token
        self.last_resolved_at = time.time()
        if token == self._latest_token:
            self.state = SessionState.RESOLVED

    # ------------------------------------------------------------------
    # Operator override
    # ------------------------------------------------------------------

    def apply_override(self, descriptor: RoleDescriptor, operator_id: str) -> None:
        """Show `descriptor` in place of the resolved role until cleared."""
        if not isinstance(descriptor, RoleDescriptor):
            raise TypeError("Override must be a RoleDescriptor")
        if not operator_id:
            raise ValueError("Override requires an operator id")

        self._override = descriptor
        self._override_operator = operator_id
        audit_role_override(
            "apply",
            operator_id=operator_id,
            session_key=self.session_key or "",
            role=descriptor.role,
            scope_id=descriptor.scope_id,
        )

    def clear_override(self, operator_id: str) -> None:
        """Return to the resolved role."""
        if self._override is None:
            return
        self._drop_override()
        audit_role_override("clear", operator_id=operator_id, session_key=self.session_key or "")

    def _drop_override(self) -> None:
        self._override = None
        self._override_operator = None


# ============================================================================
# Session Registry
# ============================================================================

class RoleSessionRegistry:
    """
    Role sessions keyed by authentication session.

    A session is held only while its access token is valid: entries past
    their token expiry are swept out, and the least recently used entries
    are evicted once `max_sessions` is reached.
    """

    def __init__(
        self,
        resolver=None,
        max_sessions: int = DEFAULT_MAX_SESSIONS,
        sweep_interval: float = DEFAULT_SWEEP_INTERVAL,
    ):
        self._resolver = resolver
        self.max_sessions = max(1, max_sessions)
        self.sweep_interval = sweep_interval
        self._sessions: "OrderedDict[str, RoleSession]" = OrderedDict()
        self._last_sweep = time.time()

    def get(self, session_key: str) -> Optional[RoleSession]:
        return self._sessions.get(session_key)

    def get_or_create(self, session_key: str, expires_at: Optional[float] = None) -> RoleSession:
        """
        Get the session for `session_key`, creating it if needed.

        Args:
            session_key: Authentication session identifier
            expires_at: Access token expiry (epoch seconds); refreshed on every call
        """
        now = time.time()
        if now - self._last_sweep >= self.sweep_interval:
            self.evict_expired(now)

        session = self._sessions.get(session_key)
        if session is None:
            session = RoleSession(resolver=self._resolver, session_key=session_key)
            self._sessions[session_key] = session
            while len(self._sessions) > self.max_sessions:
                key, evicted = self._sessions.popitem(last=False)
                evicted.sign_out()
                record_session_eviction("capacity")
                logger.info(f"Evicted least recently used session {key}")
        else:
            self._sessions.move_to_end(session_key)

        if expires_at is not None:
            session.expires_at = expires_at
        return session

    def evict_expired(self, now: Optional[float] = None) -> int:
        """Sign out and forget sessions whose token has expired. Returns the count."""
        now = time.time() if now is None else now
        self._last_sweep = now
        expired = [key for key, s in self._sessions.items() if s.is_expired(now)]
        for key in expired:
            self._sessions.pop(key).sign_out()
            record_session_eviction("expired")
        if expired:
            logger.info(f"Evicted {len(expired)} expired role session(s)")
        return len(expired)

    def drop(self, session_key: str) -> bool:
        """Sign out and forget a session. Returns False if it was unknown."""
        session = self._sessions.pop(session_key, None)
        if session is None:
            return False
        session.sign_out()
        return True

    def clear(self) -> None:
        for session in self._sessions.values():
            session.sign_out()
        self._sessions.clear()

    def __len__(self) -> int:
        return len(self._sessions)


_global_registry: Optional[RoleSessionRegistry] = None


def get_session_registry() -> RoleSessionRegistry:
    """Get the process-wide session registry."""
    global _global_registry
    if _global_registry is None:
        _global_registry = RoleSessionRegistry()
    return _global_registry


def configure_session_registry(
    resolver=None,
    max_sessions: int = DEFAULT_MAX_SESSIONS,
    sweep_interval: float = DEFAULT_SWEEP_INTERVAL,
) -> RoleSessionRegistry:
    """Replace the process-wide registry, signing out any existing sessions."""
    global _global_registry
    if _global_registry is not None:
        _global_registry.clear()
    _global_registry = RoleSessionRegistry(resolver, max_sessions, sweep_interval)
    return _global_registry


def reset_session_registry():
    """Reset the process-wide registry (useful for testing)."""
    global _global_registry
    if _global_registry is not None:
        _global_registry.clear()
    _global_registry = None
