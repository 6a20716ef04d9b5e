"""
Rutero - Registro de actividad de usuarios
(sesiones, gestión de usuarios, exportaciones)
"""

import uuid
from typing import Optional

from config import db, now_iso


async def log_activity(
    user: dict,
    action: str,
    entity_type: str,
    entity_id: str = None,
    entity_name: str = None,
    details: dict = None,
    ip_address: str = None
):
    """
    Guarda una actividad en activity_logs.

    Actions: login, logout, create_user, update_user, deactivate_user, set_password, export
    Entity types: user, report
    """
    entry = {
        "id": str(uuid.uuid4()),
        "user_id": user.get("id", "system"),
        "user_email": user.get("email", "system"),
        "user_name": user.get("name", "Sistema"),
        "action": action,
        "entity_type": entity_type,
        "entity_id": entity_id,
        "entity_name": entity_name,
        "details": details or {},
        "ip_address": ip_address,
        "created_at": now_iso()
    }
    await db.activity_logs.insert_one(entry)
    entry.pop("_id", None)
    return entry


async def get_activity_logs(
    user_id: Optional[str] = None,
    action: Optional[str] = None,
    limit: int = 100,
    skip: int = 0
) -> dict:
    query = {}
    if user_id:
        query["user_id"] = user_id
    if action:
        query["action"] = action

    logs = await db.activity_logs.find(query, {"_id": 0}) \
        .sort("created_at", -1) \
        .skip(skip) \
        .limit(limit) \
        .to_list(limit)
    total = await db.activity_logs.count_documents(query)

    return {"logs": logs, "total": total, "limit": limit, "skip": skip}
