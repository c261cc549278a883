#!/usr/bin/env python3
"""
api/debug.py: Operator observability endpoints.

Provides:
- /debug/metrics - Role resolution and access check metrics
- /debug/config - Configuration inspection (secrets stripped)
"""

import time
from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException

from api.guards import require_operator
from api.middleware.roles import RequestContext
from config import get_debug_config
from core.metrics import get_all_metrics, get_rbac_metrics
from core.rbac import get_session_registry

router = APIRouter(tags=["debug"])


@router.get("/debug/metrics")
def get_metrics(ctx: RequestContext = Depends(require_operator)) -> Dict[str, Any]:
    """
    Get role resolution metrics.

    Returns:
    - resolutions by source and role distribution
    - resolution_ms histogram (count, sum, avg, buckets)
    - store errors, stale discards
    - allowed/denied access checks and audit counts
    """
    return {
        "timestamp": time.time(),
        "rbac": get_rbac_metrics(),
        "sessions": len(get_session_registry()),
        "all_metrics": get_all_metrics(),
    }


@router.get("/debug/config")
def get_config(ctx: RequestContext = Depends(require_operator)) -> Dict[str, Any]:
    try:
        return get_debug_config()
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to load config: {str(e)}")
