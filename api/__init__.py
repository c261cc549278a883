"""API module."""

from .guards import require, require_operator, require_role_preview

__all__ = [
    "require",
    "require_operator",
    "require_role_preview",
]
