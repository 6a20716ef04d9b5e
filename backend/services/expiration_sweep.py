"""
Rutero - Expiration Sweep

Una ruta En Progreso vence 7 días después del inicio del día de su fecha
base (zona horaria de la aplicación). Al vencer se cierra:
- Completada si todas las entradas activas están Completado
- Incompleta en caso contrario

Las rutas ya cerradas no se tocan: re-ejecutar el barrido no cambia nada.
"""

import logging
from datetime import datetime, timedelta
from typing import Optional

from config import db, local_tz, local_now, parse_day, ROUTE_WINDOW_DAYS
from services.route_store import normalize_route, RouteConflictError
from services.route_state_machine import EN_PROGRESO, close_expired

logger = logging.getLogger("expiration_sweep")


def route_expiry(route: dict) -> Optional[datetime]:
    """start-of-day(route.date) + ROUTE_WINDOW_DAYS, en hora local"""
    day = parse_day(route.get("date"))
    if day is None:
        return None
    start = local_tz().localize(datetime(day.year, day.month, day.day))
    return start + timedelta(days=ROUTE_WINDOW_DAYS)


def is_expired(route: dict, now: datetime = None) -> bool:
    if route.get("status") != EN_PROGRESO:
        return False
    expiry = route_expiry(route)
    if expiry is None:
        return False
    now = now or local_now()
    if now.tzinfo is None:
        now = local_tz().localize(now)
    return now > expiry


async def sweep_route(route: dict, now: datetime = None) -> dict:
    """Cierra la ruta si venció. Devuelve la ruta (cerrada o sin cambios)."""
    now = now or local_now()
    if not is_expired(route, now):
        return route
    try:
        closed = await close_expired(route, now.isoformat())
    except RouteConflictError:
        # Otra escritura ganó: el próximo barrido la reevalúa
        logger.warning(f"[SWEEP] route={route['id']} changed during sweep, skipped")
        return route
    logger.info(f"[SWEEP] route={route['id']} date={route.get('date')} -> {closed['status']}")
    return closed


async def _sweep(query: dict, now: datetime = None) -> dict:
    query = dict(query)
    query["status"] = EN_PROGRESO
    routes = await db.routes.find(query, {"_id": 0}).to_list(5000)

    closed = {"Completada": 0, "Incompleta": 0}
    for route in routes:
        result = await sweep_route(normalize_route(route), now)
        if result.get("status") in closed:
            closed[result["status"]] += 1

    return {"checked": len(routes), "closed": closed}


async def sweep_owner(user_id: str, now: datetime = None) -> dict:
    """Barrido de las rutas de un vendedor (al cargar sus rutas)"""
    return await _sweep({"created_by": user_id}, now)


async def sweep_all(now: datetime = None) -> dict:
    """Barrido global, ejecutado por el scheduler"""
    stats = await _sweep({}, now)
    logger.info(
        f"[SWEEP] checked={stats['checked']} "
        f"completada={stats['closed']['Completada']} incompleta={stats['closed']['Incompleta']}"
    )
    return stats
