"""
Role endpoints for the signed-in user.

The dashboard calls these to show the role badge, pick the dashboard
variant, refresh after a license change, and tear down on sign-out.
"""

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, HTTPException, Request, status
from pydantic import BaseModel

from api.guards import require
from api.middleware.roles import RequestContext, get_current_user
from core.rbac import (
    CAP_ADMIN,
    CAP_AUTHENTICATED,
    evaluate,
    get_role_description,
    get_role_display_name,
    get_session_registry,
    get_source_label,
    select_dashboard,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["roles"])


# ============================================================================
# Response Models
# ============================================================================

class RoleResponse(BaseModel):
    """Caller's role descriptor plus everything derived from it."""
    user_id: str
    state: str
    role: Optional[str] = None
    source: Optional[str] = None
    is_primary_admin: bool = False
    is_scoped_admin: bool = False
    scope_id: Optional[str] = None
    capabilities: Dict[str, bool]
    display_name: str
    description: str
    source_label: str
    dashboard: str
    override_active: bool = False

    model_config = {
        "json_schema_extra": {
            "example": {
                "user_id": "u2",
                "state": "resolved",
                "role": "user",
                "source": "product_license_assignments",
                "is_primary_admin": False,
                "is_scoped_admin": False,
                "scope_id": "org-9",
                "capabilities": {
                    "is_administrator": False,
                    "is_manager_or_above": False,
                    "is_authenticated_user": True,
                },
                "display_name": "User",
                "description": "Standard user access",
                "source_label": "Product License Assignment",
                "dashboard": "personal",
                "override_active": False,
            }
        }
    }


class SignOutResponse(BaseModel):
    signed_out: bool


def build_role_response(ctx: RequestContext) -> RoleResponse:
    session = ctx.session
    descriptor = ctx.descriptor
    flags = evaluate(descriptor)
    body: Dict[str, Any] = descriptor.to_dict() if descriptor else {}

    return RoleResponse(
        user_id=ctx.user_id,
        state=session.state.value,
        capabilities={
            "is_administrator": flags.is_administrator,
            "is_manager_or_above": flags.is_manager_or_above,
            "is_authenticated_user": flags.is_authenticated_user,
        },
        display_name=get_role_display_name(descriptor),
        description=get_role_description(descriptor),
        source_label=get_source_label(descriptor),
        dashboard=select_dashboard(descriptor),
        override_active=session.override_active,
        **body,
    )


# ============================================================================
# Endpoints
# ============================================================================

@router.get("/me/role", response_model=RoleResponse)
@require(CAP_AUTHENTICATED)
async def get_my_role(request: Request) -> RoleResponse:
    """Current role of the caller."""
    return build_role_response(get_current_user(request))


@router.post("/me/role/refresh", response_model=RoleResponse)
@require(CAP_AUTHENTICATED)
async def refresh_my_role(request: Request) -> RoleResponse:
    """Re-resolve the caller's role (no-op while an operator preview is active)."""
    ctx = get_current_user(request)
    await ctx.session.refresh()
    return build_role_response(ctx)


@router.get("/me/admin-check")
@require(CAP_ADMIN)
async def admin_check(request: Request) -> Dict[str, Any]:
    """Cheap probe the dashboard uses before showing admin navigation."""
    ctx = get_current_user(request)
    descriptor = ctx.descriptor
    return {
        "admin": True,
        "primary": descriptor.is_primary_admin,
        "scope_id": descriptor.scope_id,
    }


@router.post("/auth/sign-out", response_model=SignOutResponse)
async def sign_out(request: Request) -> SignOutResponse:
    """Drop the caller's role session."""
    ctx = get_current_user(request)
    if not ctx.is_authenticated:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"error": "unauthenticated", "message": "Authentication required"},
        )

    dropped = get_session_registry().drop(ctx.session_key)
    logger.info(f"Signed out session {ctx.session_key} (user {ctx.user_id})")
    return SignOutResponse(signed_out=dropped)
