"""
Operator role preview endpoints.

Lets an operator view the dashboard as a client admin, manager or user of a
chosen customer. The preview only affects the operator's own session and
never touches the role stores. Every route requires the operator key and
ROLE_OVERRIDE_ENABLED.
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field, field_validator
from starlette.concurrency import run_in_threadpool

from api.guards import require_role_preview
from api.middleware.roles import RequestContext
from api.roles import RoleResponse, build_role_response
from core.rbac import get_resolver
from core.rbac.override import OVERRIDE_PRESETS, build_override, list_presets


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/debug/role", tags=["debug", "roles"])


# ============================================================================
# Request/Response Models
# ============================================================================

class PresetResponse(BaseModel):
    key: str
    label: str
    role: str


class CustomerOption(BaseModel):
    """An active customer an operator may preview as."""
    id: str
    customer_name: str
    short_name: Optional[str] = None


class OverrideRequest(BaseModel):
    """Request to preview the dashboard under a preset role."""
    preset: str = Field(..., description="Preset key (client_admin, manager, user)")
    scope_id: Optional[str] = Field(
        None, description="Customer to scope the preview to; defaults to the first active customer"
    )

    @field_validator("preset")
    @classmethod
    def validate_preset(cls, v):
        key = v.strip().lower()
        if key not in OVERRIDE_PRESETS:
            raise ValueError(f"Invalid preset: {v}. Must be one of: {', '.join(OVERRIDE_PRESETS)}")
        return key

    model_config = {
        "json_schema_extra": {
            "example": {"preset": "client_admin", "scope_id": "org-9"}
        }
    }


# ============================================================================
# Endpoints
# ============================================================================

@router.get("/presets", response_model=List[PresetResponse])
async def get_presets(ctx: RequestContext = Depends(require_role_preview)):
    return list_presets()


@router.get("/customers", response_model=List[CustomerOption])
async def get_customers(ctx: RequestContext = Depends(require_role_preview)):
    """Active customers ordered by name."""
    customers = await _active_customers()
    return [
        CustomerOption(id=c.id, customer_name=c.customer_name, short_name=c.short_name)
        for c in customers
    ]


@router.post("/override", response_model=RoleResponse)
async def apply_override(
    body: OverrideRequest,
    ctx: RequestContext = Depends(require_role_preview),
) -> RoleResponse:
    """
    Preview the dashboard as a preset role scoped to a customer.

    The scope must be an active customer. When omitted, the first active
    customer (by name) is used; with no active customers the preview is
    unscoped.
    """
    customers = await _active_customers()
    active_ids = [c.id for c in customers]

    if body.scope_id is not None:
        if body.scope_id not in active_ids:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail={"error": "invalid_scope", "message": f"No active customer '{body.scope_id}'"},
            )
        scope_id = body.scope_id
    else:
        scope_id = active_ids[0] if active_ids else None

    descriptor = build_override(body.preset, scope_id)
    ctx.session.apply_override(descriptor, ctx.user_id)

    logger.info(
        f"Role preview applied: operator={ctx.user_id}, preset={body.preset}, "
        f"scope_id={scope_id}"
    )
    return build_role_response(ctx)


@router.delete("/override", response_model=RoleResponse)
async def clear_override(ctx: RequestContext = Depends(require_role_preview)) -> RoleResponse:
    """Return to the resolved role."""
    ctx.session.clear_override(ctx.user_id)
    logger.info(f"Role preview cleared: operator={ctx.user_id}")
    return build_role_response(ctx)


async def _active_customers():
    try:
        return await run_in_threadpool(get_resolver().store.list_active_customers)
    except Exception as e:
        logger.error(f"Failed to list active customers: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail={"error": "store_unavailable", "message": "Customer list unavailable"},
        )
