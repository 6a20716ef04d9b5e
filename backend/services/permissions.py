"""
Rutero - Permission System
Granular permission keys + role presets + FastAPI dependencies.
Permissions are the source of truth. Roles are presets only.
"""

import logging
from typing import Dict
from fastapi import Depends, HTTPException

logger = logging.getLogger("permissions")

# ════════════════════════════════════════════════════════════════════════
# ALL PERMISSION KEYS
# ════════════════════════════════════════════════════════════════════════

ALL_PERMISSION_KEYS = [
    "dashboard.view",

    "clients.view",
    "clients.create",
    "clients.edit",
    "clients.delete",
    "clients.import",

    "routes.create",
    "routes.view_team",
    "routes.approve",
    "routes.override",

    "predictions.view",

    "crm.view",
    "crm.manage",

    "reports.view",
    "reports.export",

    "users.manage",
]

# ════════════════════════════════════════════════════════════════════════
# ROLE PRESETS (defaults when creating a user with a role)
# ════════════════════════════════════════════════════════════════════════

ROLE_PRESETS: Dict[str, Dict[str, bool]] = {
    "Administrador": {k: True for k in ALL_PERMISSION_KEYS},

    "Supervisor": {
        "dashboard.view": True,
        "clients.view": True, "clients.create": True, "clients.edit": True,
        "clients.delete": False, "clients.import": False,
        "routes.create": True, "routes.view_team": True, "routes.approve": True,
        "routes.override": False,
        "predictions.view": True,
        "crm.view": True, "crm.manage": False,
        "reports.view": True, "reports.export": True,
        "users.manage": False,
    },

    "Usuario": {
        "dashboard.view": True,
        "clients.view": True, "clients.create": False, "clients.edit": False,
        "clients.delete": False, "clients.import": False,
        "routes.create": True, "routes.view_team": False, "routes.approve": False,
        "routes.override": False,
        "predictions.view": True,
        "crm.view": False, "crm.manage": False,
        "reports.view": False, "reports.export": False,
        "users.manage": False,
    },

    "Telemercaderista": {
        "dashboard.view": True,
        "clients.view": True, "clients.create": False, "clients.edit": False,
        "clients.delete": False, "clients.import": False,
        "routes.create": False, "routes.view_team": False, "routes.approve": False,
        "routes.override": False,
        "predictions.view": False,
        "crm.view": True, "crm.manage": True,
        "reports.view": False, "reports.export": False,
        "users.manage": False,
    },
}

VALID_ROLES = list(ROLE_PRESETS.keys())


def get_preset_permissions(role: str) -> Dict[str, bool]:
    """Returns the default permissions for a role."""
    return dict(ROLE_PRESETS.get(role, ROLE_PRESETS["Usuario"]))


# ════════════════════════════════════════════════════════════════════════
# PERMISSION CHECK HELPERS
# ════════════════════════════════════════════════════════════════════════

def user_has_permission(user: dict, key: str) -> bool:
    """Check if user has a specific permission."""
    if user.get("role") == "Administrador":
        return True
    perms = user.get("permissions") or get_preset_permissions(user.get("role", "Usuario"))
    return perms.get(key, False) is True


# ════════════════════════════════════════════════════════════════════════
# FASTAPI DEPENDENCIES
# ════════════════════════════════════════════════════════════════════════

def require_permission(permission_key: str):
    """
    FastAPI dependency factory.
    Usage: @router.get("/endpoint", dependencies=[Depends(require_permission("clients.view"))])
    """
    from routes.auth import get_current_user

    async def _check(user: dict = Depends(get_current_user)):
        if not user_has_permission(user, permission_key):
            logger.warning(
                f"[PERMISSION_DENIED] user={user.get('email')} "
                f"key={permission_key} role={user.get('role')}"
            )
            raise HTTPException(
                status_code=403,
                detail=f"Permiso requerido: {permission_key}"
            )
        return user

    return _check
