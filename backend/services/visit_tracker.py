"""
╔══════════════════════════════════════════════════════════════════════════════╗
║  Rutero - Visit Execution Tracker                                            ║
║                                                                              ║
║  Jornada del vendedor sobre su ruta En Progreso:                             ║
║  seleccionar cliente → check-in → gestión → check-out                        ║
║                                                                              ║
║  REGLAS:                                                                     ║
║  - solo las entradas activas con date == hoy (hora local) son operables      ║
║  - un solo cliente con check-in abierto a la vez                             ║
║  - check_out_time IMPLICA check_in_time y visit_type                         ║
║  - un check-in repetido devuelve el estado guardado, nunca lo sobreescribe   ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

import logging
from datetime import datetime, date
from typing import List, Optional, Tuple

from config import local_today, wall_clock, parse_day
from models.route import (
    EntryStatus, VisitStatus, VisitType, MONETARY_FIELDS, to_amount,
)
from services.route_store import save_route
from services.route_state_machine import (
    EN_PROGRESO, COMPLETADA, RoutePermissionError, is_owner, complete_if_done,
)

logger = logging.getLogger("visit_tracker")


class VisitError(Exception):
    """Operación de visita no válida (400)"""
    pass


class ActiveClientError(VisitError):
    """Ya hay otro cliente con check-in abierto (409)"""
    pass


# ════════════════════════════════════════════════════════════════════════════
# LECTURA
# ════════════════════════════════════════════════════════════════════════════

def is_active(entry: dict) -> bool:
    return entry.get("status", EntryStatus.ACTIVO.value) != EntryStatus.ELIMINADO.value


def has_open_check_in(entry: dict) -> bool:
    return bool(entry.get("check_in_time")) and not entry.get("check_out_time")


def todays_slate(route: dict, today: date = None) -> List[dict]:
    """Entradas activas asignadas al día de hoy"""
    today = today or local_today()
    return [
        c for c in route.get("clients") or []
        if is_active(c) and parse_day(c.get("date")) == today
    ]


def open_check_in(route: dict) -> Optional[dict]:
    for entry in route.get("clients") or []:
        if is_active(entry) and has_open_check_in(entry):
            return entry
    return None


def _locate_today(route: dict, ruc: str, today: date) -> Tuple[int, dict]:
    """Índice y entrada del cliente en la ruta de hoy"""
    for index, entry in enumerate(route.get("clients") or []):
        if entry.get("ruc") == ruc and is_active(entry) and parse_day(entry.get("date")) == today:
            return index, entry
    raise VisitError(f"El cliente {ruc} no está en la ruta de hoy")


def _guard(route: dict, user: dict):
    if not is_owner(user, route):
        raise RoutePermissionError("Solo el vendedor dueño de la ruta puede registrar visitas")
    if route.get("status") != EN_PROGRESO:
        raise VisitError("La ruta no está en progreso. Inicia tu jornada primero.")


def _guard_active_client(route: dict, ruc: str):
    current = open_check_in(route)
    if current and current.get("ruc") != ruc:
        raise ActiveClientError(
            f"Debes terminar la visita de {current.get('nombre_comercial') or current.get('ruc')} "
            f"antes de atender otro cliente"
        )


def _location(location) -> Optional[dict]:
    if location is None:
        return None
    if isinstance(location, dict):
        return {"lat": location.get("lat"), "lng": location.get("lng")}
    return {"lat": location.lat, "lng": location.lng}


def _with_entry(route: dict, index: int, entry: dict) -> List[dict]:
    clients = [dict(c) for c in route.get("clients") or []]
    clients[index] = entry
    return clients


# ════════════════════════════════════════════════════════════════════════════
# OPERACIONES
# ════════════════════════════════════════════════════════════════════════════

async def select_client(route: dict, user: dict, ruc: str, today: date = None) -> dict:
    """Marca el cliente que el vendedor va a atender ahora"""
    _guard(route, user)
    today = today or local_today()
    _locate_today(route, ruc, today)
    _guard_active_client(route, ruc)

    if route.get("active_client_ruc") == ruc:
        return route
    return await save_route(route, {"active_client_ruc": ruc})


async def check_in(
    route: dict,
    user: dict,
    ruc: str,
    location=None,
    operation_id: str = None,
    now: datetime = None
) -> dict:
    """
    Registra la llegada al cliente con la hora local (resolución segundos).
    La ubicación es opcional: sin GPS el check-in se guarda igual.
    """
    _guard(route, user)
    today = now.date() if now else local_today()
    index, entry = _locate_today(route, ruc, today)

    # Reintento del mismo check-in o check-in ya abierto: estado guardado
    if operation_id and entry.get("check_in_operation_id") == operation_id:
        logger.info(f"[CHECK_IN] replay route={route['id']} ruc={ruc} op={operation_id}")
        return route
    if has_open_check_in(entry):
        logger.info(f"[CHECK_IN] already open route={route['id']} ruc={ruc}")
        return route

    if entry.get("visit_status") == VisitStatus.COMPLETADO.value:
        raise VisitError(f"El cliente {ruc} ya fue visitado hoy")

    _guard_active_client(route, ruc)

    entry = dict(entry)
    entry["check_in_time"] = wall_clock(now)
    entry["check_in_location"] = _location(location)
    entry["check_in_operation_id"] = operation_id

    saved = await save_route(route, {
        "clients": _with_entry(route, index, entry),
        "active_client_ruc": ruc,
    })
    logger.info(
        f"[CHECK_IN] route={route['id']} ruc={ruc} at={entry['check_in_time']} "
        f"gps={'yes' if entry['check_in_location'] else 'no'}"
    )
    return saved


async def register_gesture(route: dict, user: dict, data, today: date = None) -> dict:
    """Tipo de visita, observación de llamada y valores monetarios"""
    _guard(route, user)
    today = today or local_today()
    index, entry = _locate_today(route, data.ruc, today)

    if not entry.get("check_in_time"):
        raise VisitError("Debes hacer check-in antes de registrar la gestión")
    if entry.get("check_out_time"):
        raise VisitError("La visita ya fue cerrada")

    entry = dict(entry)
    if data.visit_type is not None:
        entry["visit_type"] = VisitType(data.visit_type).value
    if data.call_observation is not None:
        entry["call_observation"] = data.call_observation.strip()

    if entry.get("visit_type") == VisitType.TELEFONICA.value and not entry.get("call_observation"):
        raise VisitError("La visita telefónica requiere una observación de la llamada")

    for field in MONETARY_FIELDS:
        value = getattr(data, field, None)
        if value is not None:
            entry[field] = to_amount(value)
    if data.tipo_cobro is not None:
        entry["tipo_cobro"] = data.tipo_cobro

    return await save_route(route, {"clients": _with_entry(route, index, entry)})


async def check_out(
    route: dict,
    user: dict,
    ruc: str,
    location=None,
    now: datetime = None
) -> dict:
    """
    Cierra la visita. Si no queda ninguna visita activa pendiente en la
    semana la ruta pasa a Completada.
    Devuelve {"route": ..., "route_completed": bool}
    """
    _guard(route, user)
    today = now.date() if now else local_today()
    index, entry = _locate_today(route, ruc, today)

    if entry.get("check_out_time"):
        return {"route": route, "route_completed": route.get("status") == COMPLETADA}
    if not entry.get("check_in_time"):
        raise VisitError("No se puede hacer check-out sin check-in")
    if not entry.get("visit_type"):
        raise VisitError("Selecciona el tipo de visita antes de hacer check-out")
    if entry.get("visit_type") == VisitType.TELEFONICA.value and not entry.get("call_observation"):
        raise VisitError("La visita telefónica requiere una observación de la llamada")

    entry = dict(entry)
    entry["check_out_time"] = wall_clock(now)
    entry["check_out_location"] = _location(location)
    entry["visit_status"] = VisitStatus.COMPLETADO.value

    saved = await save_route(route, {
        "clients": _with_entry(route, index, entry),
        "active_client_ruc": None,
    })
    logger.info(f"[CHECK_OUT] route={route['id']} ruc={ruc} at={entry['check_out_time']}")

    saved = await complete_if_done(saved, user.get("email", "system"))
    completed = saved.get("status") == COMPLETADA
    if completed:
        logger.info(f"[CHECK_OUT] route={route['id']} completed")
    return {"route": saved, "route_completed": completed}
