"""
FastAPI middleware for identity and role resolution.

Reads the caller's identity from the Supabase access token, binds it to a
role session and waits for that session's role to settle before the route
runs. The request context is attached to `request.state.ctx`.
"""

import logging
from typing import Callable, Optional
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from core.rbac.identity import Identity, get_identity_resolver
from core.rbac.session import RoleSession, get_session_registry

logger = logging.getLogger(__name__)


# ============================================================================
# Request State Extensions
# ============================================================================

class RequestContext:
    """
    Request context for the caller's identity and role session.

    Attached to request.state by the RoleResolutionMiddleware.
    """

    def __init__(self, identity: Optional[Identity], session: Optional[RoleSession] = None):
        self.identity = identity
        self.user_id: Optional[str] = identity.user_id if identity else None
        self.email: Optional[str] = identity.email if identity else None
        self.session_key: Optional[str] = identity.session_key if identity else None
        self.session = session
        self.is_authenticated: bool = identity is not None

    @property
    def descriptor(self):
        """Current role descriptor (override-aware), or None."""
        return self.session.current_descriptor() if self.session else None

    @property
    def role(self) -> Optional[str]:
        descriptor = self.descriptor
        return descriptor.role if descriptor else None

    def __repr__(self) -> str:
        return (
            f"RequestContext(user_id={self.user_id}, "
            f"role={self.role}, session_key={self.session_key})"
        )


# ============================================================================
# Middleware
# ============================================================================

class RoleResolutionMiddleware(BaseHTTPMiddleware):
    """
    Middleware to resolve identity and role for each request.

    Attaches to request.state.ctx:
    - user_id / email / session_key (None for anonymous)
    - session: the caller's RoleSession (None for anonymous)
    - is_authenticated: Boolean
    """

    def __init__(self, app: ASGIApp):
        super().__init__(app)

    async def dispatch(
        self,
        request: Request,
        call_next: Callable,
    ) -> Response:
        identity = None
        session = None
        try:
            identity = get_identity_resolver().resolve(request.headers.get("Authorization"))

            if identity is not None:
                session = get_session_registry().get_or_create(
                    identity.session_key, expires_at=identity.expires_at
                )
                await session.set_user(identity.user_id)

            logger.debug(
                f"Resolved caller for {request.method} {request.url.path}: "
                f"user_id={identity.user_id if identity else None}, "
                f"role={session.current_descriptor().role if session and session.current_descriptor() else None}"
            )

        except Exception as e:
            logger.error(f"Error resolving caller role: {e}", exc_info=True)
            if identity is not None:
                # Detached session holding the default role; the next request retries
                session = RoleSession(session_key=identity.session_key)
                session.hold_default(identity.user_id)
            else:
                session = None

        request.state.ctx = RequestContext(identity, session)

        # Continue to next handler (exceptions from here should propagate)
        response = await call_next(request)
        return response


# ============================================================================
# Helper Functions
# ============================================================================

def get_current_user(request: Request) -> RequestContext:
    """
    Get current user context from request.

    Raises:
        AttributeError: If middleware has not been applied
    """
    if not hasattr(request.state, "ctx"):
        raise AttributeError(
            "Request state does not have 'ctx' attribute. "
            "Ensure RoleResolutionMiddleware is configured."
        )

    return request.state.ctx
