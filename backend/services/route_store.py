"""
Rutero - Route Store

Lectura y escritura de documentos de ruta.

REGLA: toda escritura pasa por save_route(), que compara la versión
leída (compare-and-swap). Si otra escritura ganó la carrera se lanza
RouteConflictError y el llamador debe releer.
"""

import logging
from typing import Optional, List

from config import db, now_iso
from models.route import normalize_route_client

logger = logging.getLogger("route_store")


class RouteConflictError(Exception):
    """La ruta fue modificada por otra escritura concurrente"""
    pass


def normalize_route(route: dict) -> dict:
    if not route:
        return route
    route.setdefault("version", 0)
    route.setdefault("active_client_ruc", None)
    route["clients"] = [normalize_route_client(c) for c in route.get("clients") or []]
    return route


async def get_route(route_id: str) -> Optional[dict]:
    route = await db.routes.find_one({"id": route_id}, {"_id": 0})
    return normalize_route(route)


async def find_routes(query: dict, limit: int = 500) -> List[dict]:
    routes = await db.routes.find(query, {"_id": 0}).sort("date", -1).to_list(limit)
    return [normalize_route(r) for r in routes]


async def insert_route(doc: dict) -> dict:
    doc.setdefault("version", 0)
    doc.setdefault("active_client_ruc", None)
    await db.routes.insert_one(doc)
    doc.pop("_id", None)
    return doc


async def save_route(route: dict, updates: dict, expected_version: int = None) -> dict:
    """
    Aplica `updates` sobre la ruta si su versión sigue siendo la leída
    (o la que el cliente declara en expected_version).
    Devuelve la ruta actualizada.
    """
    version = route.get("version", 0) if expected_version is None else expected_version
    if expected_version is not None and expected_version != route.get("version", 0):
        raise RouteConflictError(
            f"La ruta {route['id']} cambió (versión {route.get('version', 0)}, esperada {expected_version})"
        )

    updates = dict(updates)
    updates["updated_at"] = now_iso()

    # Documentos antiguos no tienen campo version
    version_filter = {"$in": [version, None]} if version == 0 else version
    result = await db.routes.update_one(
        {"id": route["id"], "version": version_filter},
        {"$set": updates, "$inc": {"version": 1}}
    )

    if result.matched_count == 0:
        logger.warning(f"[ROUTE_CAS] conflict route={route['id']} version={version}")
        raise RouteConflictError(f"La ruta {route['id']} fue modificada por otra operación")

    saved = dict(route)
    saved.update(updates)
    saved["version"] = version + 1
    return normalize_route(saved)


async def delete_route(route_id: str) -> bool:
    result = await db.routes.delete_one({"id": route_id})
    return result.deleted_count > 0
