"""
Rutero - Routes Auth
Login / Logout / Session / bloqueo de cuentas / CRUD de usuarios.
"""

from fastapi import APIRouter, HTTPException, Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from datetime import datetime, timezone, timedelta
import uuid

from models.auth import UserLogin, UserCreate, UserUpdate, SecurityAction, SetPassword
from config import db, hash_password, generate_token, now_iso, SESSION_DAYS
from services.activity_logger import log_activity, get_activity_logs
from services.login_security import register_failure, reset_failures, security_status, is_blocked
from services.permissions import (
    get_preset_permissions,
    VALID_ROLES,
    ALL_PERMISSION_KEYS,
    ROLE_PRESETS,
    user_has_permission,
)

router = APIRouter(prefix="/auth", tags=["Auth"])
security = HTTPBearer(auto_error=False)


# ==================== HELPERS ====================

async def _session_user(credentials: HTTPAuthorizationCredentials):
    if not credentials:
        return None
    session = await db.sessions.find_one({
        "token": credentials.credentials,
        "expires_at": {"$gt": now_iso()}
    })
    if not session:
        return None
    return await db.users.find_one({"id": session["user_id"]}, {"_id": 0, "password": 0})


async def get_current_user(credentials: HTTPAuthorizationCredentials = Depends(security)):
    """Usuario conectado a partir del token de sesión."""
    if not credentials:
        raise HTTPException(status_code=401, detail="No autenticado")

    user = await _session_user(credentials)
    if not user:
        raise HTTPException(status_code=401, detail="Sesión expirada")

    if is_blocked(user):
        raise HTTPException(status_code=403, detail="Cuenta desactivada")

    # Usuarios antiguos sin permisos guardados
    if not user.get("permissions"):
        user["permissions"] = get_preset_permissions(user.get("role", "Usuario"))

    return user


async def require_admin(user: dict = Depends(get_current_user)):
    """Acceso Administrador."""
    if user.get("role") != "Administrador":
        raise HTTPException(status_code=403, detail="Acceso de Administrador requerido")
    return user


def _require_users_manage(user: dict):
    if not user_has_permission(user, "users.manage"):
        raise HTTPException(status_code=403, detail="Permiso requerido: users.manage")


# ==================== LOGIN / LOGOUT ====================

@router.post("/login")
async def login(data: UserLogin, request: Request):
    """Inicio de sesión con bloqueo progresivo."""
    user = await db.users.find_one(
        {"email": data.email.lower().strip()},
        {"_id": 0}
    )

    if not user:
        raise HTTPException(status_code=401, detail="Email o contraseña incorrectos")

    # Una cuenta bloqueada no entra ni con la contraseña correcta
    if is_blocked(user):
        raise HTTPException(
            status_code=403,
            detail="Cuenta bloqueada. Contacta a un administrador para reactivarla."
        )

    if user.get("password") != hash_password(data.password):
        result = await register_failure(user)
        if result["blocked"]:
            raise HTTPException(
                status_code=403,
                detail="Cuenta bloqueada por demasiados intentos fallidos."
            )
        raise HTTPException(status_code=401, detail="Email o contraseña incorrectos")

    if user.get("failed_login_attempts"):
        await reset_failures(user)

    token = generate_token()
    expires_at = (datetime.now(timezone.utc) + timedelta(days=SESSION_DAYS)).isoformat()

    await db.sessions.insert_one({
        "token": token,
        "user_id": user["id"],
        "created_at": now_iso(),
        "expires_at": expires_at
    })

    await log_activity(
        user=user,
        action="login",
        entity_type="user",
        entity_id=user["id"],
        ip_address=request.client.host if request.client else None
    )

    permissions = user.get("permissions") or get_preset_permissions(user.get("role", "Usuario"))

    return {
        "token": token,
        "user": {
            "id": user["id"],
            "email": user["email"],
            "name": user.get("name", ""),
            "role": user.get("role", "Usuario"),
            "supervisor_id": user.get("supervisor_id"),
            "permissions": permissions,
        }
    }


@router.post("/logout")
async def logout(
    user: dict = Depends(get_current_user),
    credentials: HTTPAuthorizationCredentials = Depends(security)
):
    if credentials:
        await db.sessions.delete_one({"token": credentials.credentials})
    return {"success": True}


@router.get("/me")
async def get_me(user: dict = Depends(get_current_user)):
    """Usuario + permisos."""
    user["permissions"] = user.get("permissions") or get_preset_permissions(user.get("role", "Usuario"))
    return user


# ==================== SEGURIDAD DE CUENTA ====================

@router.get("/security")
async def get_security(email: str = None):
    """Estado de bloqueo de una cuenta (sin sesión)."""
    if not email:
        raise HTTPException(status_code=400, detail="Email requerido")
    status = await security_status(email)
    if status is None:
        return {"exists": False}
    return {"exists": True, **status}


@router.post("/security")
async def post_security(
    data: SecurityAction,
    credentials: HTTPAuthorizationCredentials = Depends(security)
):
    """
    fail: registra un intento fallido (sin sesión)
    reset: vuelve el contador a cero (solo Administrador)
    """
    target = await db.users.find_one({"email": data.email.lower().strip()}, {"_id": 0})
    if not target:
        raise HTTPException(status_code=404, detail="Usuario no encontrado")

    if data.action == "fail":
        return await register_failure(target)

    actor = await _session_user(credentials)
    if not actor or actor.get("role") != "Administrador":
        raise HTTPException(status_code=403, detail="Acceso de Administrador requerido")
    await reset_failures(target)
    return {"success": True}


@router.post("/set-user-password")
async def set_user_password(data: SetPassword, admin: dict = Depends(require_admin)):
    """Cambio de contraseña de otro usuario por un Administrador."""
    if not data.uid or not data.password:
        raise HTTPException(status_code=400, detail="UID y contraseña son requeridos.")
    if len(data.password) < 6:
        raise HTTPException(status_code=400, detail="La contraseña debe tener al menos 6 caracteres.")

    result = await db.users.update_one(
        {"id": data.uid},
        {"$set": {"password": hash_password(data.password), "updated_at": now_iso()}}
    )
    if result.matched_count == 0:
        raise HTTPException(status_code=404, detail="El usuario no fue encontrado.")

    # Las sesiones abiertas con la contraseña anterior se cierran
    await db.sessions.delete_many({"user_id": data.uid})
    await log_activity(user=admin, action="set_password", entity_type="user", entity_id=data.uid)
    return {"message": "Contraseña actualizada correctamente."}


# ==================== USER CRUD (users.manage) ====================

@router.get("/users")
async def list_users(user: dict = Depends(get_current_user)):
    _require_users_manage(user)
    users = await db.users.find({}, {"_id": 0, "password": 0}).to_list(500)
    return {"users": users}


@router.get("/supervisors")
async def list_supervisors(user: dict = Depends(get_current_user)):
    """Supervisores disponibles para asignar a una ruta."""
    supervisors = await db.users.find(
        {"role": "Supervisor", "status": {"$ne": "inactive"}},
        {"_id": 0, "password": 0}
    ).to_list(200)
    return {"supervisors": supervisors}


@router.get("/supervisors/{supervisor_id}/users")
async def list_supervisor_users(supervisor_id: str, user: dict = Depends(get_current_user)):
    """Vendedores a cargo de un supervisor."""
    if user.get("role") != "Administrador" and user.get("id") != supervisor_id:
        raise HTTPException(status_code=403, detail="Acceso denegado")
    users = await db.users.find(
        {"supervisor_id": supervisor_id},
        {"_id": 0, "password": 0}
    ).to_list(500)
    return {"users": users}


@router.post("/users")
async def create_user(data: UserCreate, user: dict = Depends(get_current_user)):
    _require_users_manage(user)

    existing = await db.users.find_one({"email": data.email.lower().strip()})
    if existing:
        raise HTTPException(status_code=400, detail="Este email ya está registrado")

    if data.supervisor_id:
        sup = await db.users.find_one({"id": data.supervisor_id, "role": "Supervisor"})
        if not sup:
            raise HTTPException(status_code=400, detail="Supervisor no encontrado")

    new_user = {
        "id": str(uuid.uuid4()),
        "email": data.email.lower().strip(),
        "password": hash_password(data.password),
        "name": data.name,
        "role": data.role,
        "supervisor_id": data.supervisor_id,
        "permissions": data.permissions or get_preset_permissions(data.role),
        "status": "active",
        "failed_login_attempts": 0,
        "created_at": now_iso(),
        "created_by": user.get("id")
    }
    await db.users.insert_one(new_user)

    await log_activity(
        user=user,
        action="create_user",
        entity_type="user",
        entity_id=new_user["id"],
        entity_name=new_user["email"],
        details={"role": data.role}
    )

    new_user.pop("password", None)
    new_user.pop("_id", None)
    return {"success": True, "user": new_user}


@router.get("/users/{user_id}")
async def get_user(user_id: str, user: dict = Depends(get_current_user)):
    if user.get("id") != user_id:
        _require_users_manage(user)
    target = await db.users.find_one({"id": user_id}, {"_id": 0, "password": 0})
    if not target:
        raise HTTPException(status_code=404, detail="Usuario no encontrado")
    return target


@router.put("/users/{user_id}")
async def update_user(user_id: str, data: UserUpdate, user: dict = Depends(get_current_user)):
    _require_users_manage(user)

    target = await db.users.find_one({"id": user_id})
    if not target:
        raise HTTPException(status_code=404, detail="Usuario no encontrado")

    update_data = {}
    if data.name is not None:
        update_data["name"] = data.name
    if data.supervisor_id is not None:
        update_data["supervisor_id"] = data.supervisor_id or None
    if data.role is not None:
        update_data["role"] = data.role
        if data.permissions is None:
            update_data["permissions"] = get_preset_permissions(data.role)
    if data.permissions is not None:
        update_data["permissions"] = data.permissions
    if data.status is not None:
        update_data["status"] = data.status
        # Reactivar desbloquea: el contador vuelve a cero
        if data.status == "active":
            update_data["failed_login_attempts"] = 0

    update_data["updated_at"] = now_iso()
    await db.users.update_one({"id": user_id}, {"$set": update_data})

    if update_data.get("status") == "inactive":
        await db.sessions.delete_many({"user_id": user_id})

    await log_activity(
        user=user,
        action="update_user",
        entity_type="user",
        entity_id=user_id,
        entity_name=target.get("email"),
        details={k: v for k, v in update_data.items() if k not in ("updated_at", "permissions")}
    )

    updated = await db.users.find_one({"id": user_id}, {"_id": 0, "password": 0})
    return {"success": True, "user": updated}


@router.delete("/users/{user_id}")
async def deactivate_user(user_id: str, user: dict = Depends(get_current_user)):
    """Desactiva un usuario (no se borra: sus rutas siguen referenciándolo)."""
    _require_users_manage(user)

    target = await db.users.find_one({"id": user_id})
    if not target:
        raise HTTPException(status_code=404, detail="Usuario no encontrado")
    if user_id == user.get("id"):
        raise HTTPException(status_code=400, detail="No puedes desactivar tu propia cuenta")

    await db.users.update_one(
        {"id": user_id},
        {"$set": {"status": "inactive", "deactivated_at": now_iso()}}
    )
    await db.sessions.delete_many({"user_id": user_id})

    await log_activity(
        user=user,
        action="deactivate_user",
        entity_type="user",
        entity_id=user_id,
        entity_name=target.get("email")
    )
    return {"success": True}


# ==================== PERMISOS / ACTIVIDAD ====================

@router.get("/permission-keys")
async def list_permission_keys(user: dict = Depends(get_current_user)):
    """Claves de permiso y presets por rol (pantalla de permisos)."""
    _require_users_manage(user)
    return {
        "keys": ALL_PERMISSION_KEYS,
        "presets": ROLE_PRESETS,
        "roles": VALID_ROLES
    }


@router.get("/activity-logs")
async def activity_logs(
    user_id: str = None,
    action: str = None,
    limit: int = 100,
    skip: int = 0,
    user: dict = Depends(get_current_user)
):
    _require_users_manage(user)
    return await get_activity_logs(user_id, action, limit, skip)
