"""
Operator role preview presets.

Operators can preview the dashboard as a client admin, manager or user of a
chosen customer. Presets only ever describe customer-scoped roles; a
primary (RAYN) admin cannot be previewed into existence.
"""

from dataclasses import dataclass
from typing import Dict, List, Optional

from .descriptor import RoleDescriptor, from_license_assignment
from .roles import ROLE_ADMIN, ROLE_MANAGER, ROLE_USER


@dataclass(frozen=True)
class OverridePreset:
    key: str
    label: str
    role: str


PRESET_CLIENT_ADMIN = OverridePreset("client_admin", "Client Admin", ROLE_ADMIN)
PRESET_MANAGER = OverridePreset("manager", "Manager", ROLE_MANAGER)
PRESET_USER = OverridePreset("user", "User", ROLE_USER)

OVERRIDE_PRESETS: Dict[str, OverridePreset] = {
    p.key: p for p in (PRESET_CLIENT_ADMIN, PRESET_MANAGER, PRESET_USER)
}


def list_presets() -> List[Dict[str, str]]:
    return [{"key": p.key, "label": p.label, "role": p.role} for p in OVERRIDE_PRESETS.values()]


def build_override(preset_key: str, scope_id: Optional[str]) -> RoleDescriptor:
    """
    Build the descriptor an operator previews.

    Raises:
        ValueError: If the preset is unknown
    """
    preset = OVERRIDE_PRESETS.get(preset_key)
    if preset is None:
        raise ValueError(
            f"Unknown override preset: {preset_key}. Must be one of: {', '.join(OVERRIDE_PRESETS)}"
        )
    return from_license_assignment(preset.role, scope_id)
