"""
Authenticated identity from Supabase access tokens.

The dashboard signs users in with Supabase Auth and forwards the access
token as `Authorization: Bearer <token>`. Only the identity is read from
the token; roles always come from the role stores.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import jwt

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Identity:
    """Who is calling, as asserted by the authentication provider."""
    user_id: str
    email: Optional[str] = None
    session_id: Optional[str] = None
    expires_at: Optional[float] = None

    @property
    def session_key(self) -> str:
        """Key for the role session: the auth session if known, else the user."""
        return self.session_id or self.user_id


class IdentityResolver:
    """Verifies Supabase JWTs and extracts the caller's identity."""

    def __init__(
        self,
        jwt_secret: Optional[str],
        algorithms: Optional[List[str]] = None,
        audience: Optional[str] = "authenticated",
    ):
        self.jwt_secret = jwt_secret
        self.algorithms = algorithms or ["HS256"]
        self.audience = audience

    def resolve(self, authorization_header: Optional[str]) -> Optional[Identity]:
        """
        Resolve identity from an Authorization header.

        Returns:
            Identity if the token is valid, None otherwise
        """
        if not authorization_header:
            return None

        if not authorization_header.startswith("Bearer "):
            logger.warning("Invalid Authorization header format (missing 'Bearer')")
            return None

        token = authorization_header[7:].strip()
        if not token:
            logger.warning("Empty JWT token")
            return None

        if not self.jwt_secret:
            logger.warning("No Supabase JWT secret configured, skipping JWT verification")
            return None

        payload = self._decode(token)
        if payload is None:
            return None

        user_id = payload.get("sub")
        if not user_id:
            logger.warning("JWT token missing 'sub' claim")
            return None

        return Identity(
            user_id=user_id,
            email=payload.get("email"),
            session_id=payload.get("session_id"),
            expires_at=_as_timestamp(payload.get("exp")),
        )

    def _decode(self, token: str) -> Optional[Dict[str, Any]]:
        options = {"verify_exp": True, "verify_aud": self.audience is not None}
        try:
            return jwt.decode(
                token,
                self.jwt_secret,
                algorithms=self.algorithms,
                audience=self.audience,
                options=options,
            )
        except jwt.ExpiredSignatureError:
            logger.warning("JWT token has expired")
        except jwt.InvalidTokenError as e:
            logger.warning(f"Invalid JWT token: {e}")
        return None


# ============================================================================
# Global Identity Resolver
# ============================================================================

_global_identity_resolver: Optional[IdentityResolver] = None


def get_identity_resolver() -> IdentityResolver:
    """Get the global identity resolver, building it from settings on first use."""
    global _global_identity_resolver

    if _global_identity_resolver is None:
        from app.settings import get_settings

        s = get_settings()
        _global_identity_resolver = IdentityResolver(
            jwt_secret=s.SUPABASE_JWT_SECRET,
            algorithms=[s.JWT_ALGO],
            audience=s.JWT_AUDIENCE,
        )
    return _global_identity_resolver


def configure_identity_resolver(
    jwt_secret: Optional[str],
    algorithms: Optional[List[str]] = None,
    audience: Optional[str] = "authenticated",
) -> IdentityResolver:
    """Configure the global identity resolver."""
    global _global_identity_resolver
    _global_identity_resolver = IdentityResolver(jwt_secret, algorithms, audience)
    return _global_identity_resolver


def reset_identity_resolver():
    """Reset the global identity resolver (useful for testing)."""
    global _global_identity_resolver
    _global_identity_resolver = None


def _as_timestamp(value: Any) -> Optional[float]:
    """The `exp` claim as epoch seconds, or None if absent or malformed."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value)
