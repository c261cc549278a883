"""
API endpoint guards for capability-based authorization.

Provides a decorator to protect FastAPI routes with the same AccessGuard
the dashboard uses for page regions.
"""

import hmac
import inspect
import logging
from functools import wraps
from typing import Callable, Any, Optional
from fastapi import Depends, Header, Request, HTTPException, status

from config import load_config
from core.rbac import AccessGuard, GuardDecision
from api.middleware.roles import RequestContext, get_current_user
from core.metrics import record_rbac_check, audit_rbac_denial

logger = logging.getLogger(__name__)

RETRY_AFTER_SECONDS = "1"


# ============================================================================
# Guard Decorator
# ============================================================================

def require(capability: str) -> Callable:
    """
    Decorator to require a capability for a FastAPI route.

    Evaluates an AccessGuard against the caller's role session
    (request.state.ctx.session):
    - anonymous caller: 401
    - role still resolving: 503 with Retry-After
    - capability not granted: 403

    Args:
        capability: Capability constant (e.g., CAP_ADMIN)

    Returns:
        Decorator function

    Examples:
        >>> @app.get("/customers")
        >>> @require(CAP_ADMIN)
        >>> def list_customers(request: Request):
        >>>     return {"customers": [...]}
    """
    guard = AccessGuard(capability, show_loading=True)

    def decorator(func: Callable) -> Callable:
        @wraps(func)
        async def async_wrapper(*args, **kwargs) -> Any:
            _authorize(guard, _extract_request_from_args(args, kwargs))
            result = func(*args, **kwargs)
            if hasattr(result, '__await__'):
                return await result
            return result

        @wraps(func)
        def sync_wrapper(*args, **kwargs) -> Any:
            _authorize(guard, _extract_request_from_args(args, kwargs))
            return func(*args, **kwargs)

        if inspect.iscoroutinefunction(func):
            return async_wrapper
        else:
            return sync_wrapper

    return decorator


def _authorize(guard: AccessGuard, request: Optional[Request]) -> RequestContext:
    capability = guard.required_capability

    if request is None:
        logger.error(f"@require({capability}) decorator requires Request parameter")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Internal server error: Request not found"
        )

    try:
        ctx = get_current_user(request)
    except AttributeError:
        logger.error("Request context not available. Is RoleResolutionMiddleware configured?")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Internal server error: User context not available"
        )

    route = str(request.url.path)

    if not ctx.is_authenticated:
        record_rbac_check(allowed=False, capability=capability, role=None, route=route)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"error": "unauthenticated", "message": "Authentication required"},
        )

    decision = guard.decide_for(ctx.session)

    if decision == GuardDecision.LOADING:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"error": "resolving", "message": "Role resolution in progress"},
            headers={"Retry-After": RETRY_AFTER_SECONDS},
        )

    allowed = decision == GuardDecision.ALLOW
    record_rbac_check(allowed=allowed, capability=capability, role=ctx.role, route=route)

    if not allowed:
        audit_rbac_denial(
            capability=capability,
            user_id=ctx.user_id,
            role=ctx.role,
            route=route,
            method=request.method,
            metadata={"override_active": bool(ctx.session and ctx.session.override_active)},
        )
        logger.warning(
            f"Access denied: user_id={ctx.user_id}, "
            f"role={ctx.role}, required_capability={capability}"
        )
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={
                "error": "forbidden",
                "capability": capability,
                "message": f"Capability '{capability}' required",
            }
        )

    logger.debug(
        f"Access granted: user_id={ctx.user_id}, "
        f"role={ctx.role}, capability={capability}"
    )
    return ctx


# ============================================================================
# Operator Dependencies
# ============================================================================

def require_operator(
    request: Request,
    x_operator_key: Optional[str] = Header(None),
) -> RequestContext:
    """
    FastAPI dependency for operator-only routes.

    The caller must be signed in and present the configured X-Operator-Key.
    Routes answer 404 when no operator key is configured at all.
    """
    cfg = load_config()
    expected = cfg["OPERATOR_API_KEY"]
    if not expected:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not Found")

    try:
        ctx = get_current_user(request)
    except AttributeError:
        logger.error("Request context not available. Is RoleResolutionMiddleware configured?")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Internal server error: User context not available"
        )

    if not ctx.is_authenticated:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"error": "unauthenticated", "message": "Authentication required"},
        )

    if not x_operator_key or not hmac.compare_digest(x_operator_key, expected):
        audit_rbac_denial(
            capability="operator",
            user_id=ctx.user_id,
            role=ctx.role,
            route=str(request.url.path),
            method=request.method,
        )
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={"error": "forbidden", "message": "Operator key required"},
        )

    return ctx


def require_role_preview(ctx: RequestContext = Depends(require_operator)) -> RequestContext:
    """Operator dependency that also requires ROLE_OVERRIDE_ENABLED."""
    if not load_config()["ROLE_OVERRIDE_ENABLED"]:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not Found")
    return ctx


# ============================================================================
# Helper Functions
# ============================================================================

def _extract_request_from_args(args: tuple, kwargs: dict) -> Optional[Request]:
    """
    Extract Request object from function arguments.

    Returns:
        Request object if found, None otherwise
    """
    if 'request' in kwargs:
        return kwargs['request']

    for arg in args:
        if isinstance(arg, Request):
            return arg

    return None
