"""
Rutero - Notificaciones in-app

Avisos simples para el supervisor (ruta enviada a aprobación) y para el
vendedor (ruta aprobada / rechazada).
"""

import uuid
import logging
from typing import List

from config import db, now_iso

logger = logging.getLogger("notifications")


async def add_notification(user_id: str, title: str, message: str, link: str = None) -> dict:
    if not user_id:
        return None
    doc = {
        "id": str(uuid.uuid4()),
        "user_id": user_id,
        "title": title,
        "message": message,
        "link": link,
        "read": False,
        "created_at": now_iso(),
    }
    await db.notifications.insert_one(doc)
    doc.pop("_id", None)
    logger.info(f"[NOTIFY] user={user_id} title={title}")
    return doc


async def list_notifications(user_id: str, unread_only: bool = False, limit: int = 50) -> List[dict]:
    query = {"user_id": user_id}
    if unread_only:
        query["read"] = False
    return await db.notifications.find(query, {"_id": 0}).sort("created_at", -1).to_list(limit)


async def mark_read(user_id: str, notification_id: str) -> bool:
    result = await db.notifications.update_one(
        {"id": notification_id, "user_id": user_id},
        {"$set": {"read": True, "read_at": now_iso()}}
    )
    return result.matched_count > 0


async def mark_all_read(user_id: str) -> int:
    result = await db.notifications.update_many(
        {"user_id": user_id, "read": False},
        {"$set": {"read": True, "read_at": now_iso()}}
    )
    return result.modified_count
