"""
Rutero - Bloqueo progresivo de cuentas

Cada contraseña incorrecta incrementa failed_login_attempts.
Al llegar a MAX_FAILED_LOGIN_ATTEMPTS la cuenta pasa a status=inactive
y deja de poder iniciar sesión hasta que un Administrador la reactive.
"""

import logging

from config import db, now_iso, MAX_FAILED_LOGIN_ATTEMPTS
from services.event_logger import log_event

logger = logging.getLogger("login_security")


def is_blocked(user: dict) -> bool:
    return user.get("status", "active") == "inactive"


async def register_failure(user: dict) -> dict:
    """
    Registra un intento fallido.
    Devuelve {"attempts": n, "blocked": bool}
    """
    result = await db.users.find_one_and_update(
        {"id": user["id"]},
        {"$inc": {"failed_login_attempts": 1}, "$set": {"last_failed_login": now_iso()}},
        projection={"_id": 0, "failed_login_attempts": 1, "status": 1},
        return_document=True
    )
    attempts = (result or {}).get("failed_login_attempts", 0)
    blocked = is_blocked(result or {})

    if attempts >= MAX_FAILED_LOGIN_ATTEMPTS and not blocked:
        await db.users.update_one(
            {"id": user["id"]},
            {"$set": {"status": "inactive", "locked_at": now_iso()}}
        )
        blocked = True
        logger.warning(f"[ACCOUNT_LOCKED] {user.get('email')} after {attempts} failed attempts")
        await log_event(
            action="account_locked",
            entity_type="user",
            entity_id=user["id"],
            details={"attempts": attempts}
        )

    return {"attempts": attempts, "blocked": blocked}


async def reset_failures(user: dict):
    """Login correcto: vuelve el contador a cero"""
    await db.users.update_one(
        {"id": user["id"]},
        {"$set": {"failed_login_attempts": 0}}
    )


async def security_status(email: str) -> dict:
    user = await db.users.find_one(
        {"email": email.lower().strip()},
        {"_id": 0, "id": 1, "status": 1, "failed_login_attempts": 1}
    )
    if not user:
        return None
    return {
        "attempts": user.get("failed_login_attempts", 0),
        "blocked": is_blocked(user),
        "max_attempts": MAX_FAILED_LOGIN_ATTEMPTS,
    }
