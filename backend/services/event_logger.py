"""
Rutero - Event Logger

Audit trail de las acciones sensibles (cambios de estado de ruta,
overrides de administrador, bloqueos de cuenta, importaciones).
Una sola función para llamar desde cualquier route/service.
"""

import uuid
from config import db, now_iso


async def log_event(
    action: str,
    entity_type: str,
    entity_id: str,
    user: str = "system",
    details: dict = None,
    related: dict = None
):
    """
    Escribe un evento en la colección event_log.

    Args:
        action: p.ej. route_status_change, route_recovered, account_locked
        entity_type: route | client | user | import
        entity_id: ID de la entidad principal
        user: email del usuario que realiza la acción
        details: dict libre (from/to, observación, contadores, etc.)
        related: IDs relacionados (ruc, supervisor_id, etc.)
    """
    await db.event_log.insert_one({
        "id": str(uuid.uuid4()),
        "action": action,
        "entity_type": entity_type,
        "entity_id": entity_id,
        "user": user,
        "details": details or {},
        "related": related or {},
        "created_at": now_iso()
    })


async def list_events(entity_type: str = None, entity_id: str = None, limit: int = 100):
    query = {}
    if entity_type:
        query["entity_type"] = entity_type
    if entity_id:
        query["entity_id"] = entity_id
    return await db.event_log.find(query, {"_id": 0}).sort("created_at", -1).to_list(limit)
