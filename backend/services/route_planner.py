"""
Rutero - Planificación de rutas

Creación, edición de campos y manejo de la lista de clientes de una ruta.
Los cambios de estado pasan por route_state_machine; aquí solo se fija
el estado inicial al crear.
"""

import uuid
import logging
from typing import List, Optional

from config import db, now_iso, parse_day
from models.route import (
    Origin, EntryStatus, VisitStatus, MONETARY_FIELDS,
    new_route_client, normalize_route_client, to_amount,
)
from services.route_store import insert_route, save_route
from services.route_state_machine import (
    PLANIFICADA, PENDIENTE, RoutePermissionError, can_edit, complete_if_done, active_entries,
)
from services.route_recovery import map_prediction, predicted_route_name, RUC_KEYS, first_value
from services.prediction_client import fetch_predictions
from services.event_logger import log_event
from services.notifications import add_notification

logger = logging.getLogger("route_planner")

ENTRY_VALUE_FIELDS = ["date", "day_of_week", "start_time", "end_time", "tipo_cobro"] + MONETARY_FIELDS
ENTRY_STATUSES = [s.value for s in EntryStatus]
VISIT_STATUSES = [s.value for s in VisitStatus]


class RoutePlanError(Exception):
    """Datos de ruta no válidos (400)"""
    pass


def _require_edit(user: dict, route: dict):
    if not can_edit(user, route):
        raise RoutePermissionError("No tienes permiso para editar esta ruta en su estado actual")


async def _settle(route: dict, actor: str) -> dict:
    """Cierra la ruta si ya no queda visita pendiente (sin entradas activas no se cierra)"""
    if not active_entries(route):
        return route
    return await complete_if_done(route, actor)


async def _supervisor(supervisor_id: str) -> dict:
    supervisor = await db.users.find_one(
        {"id": supervisor_id, "role": {"$in": ["Supervisor", "Administrador"]}},
        {"_id": 0, "password": 0}
    )
    if not supervisor:
        raise RoutePlanError("Supervisor no encontrado")
    return supervisor


async def _registry(rucs: List[str]) -> dict:
    docs = await db.clients.find({"ruc": {"$in": list(rucs)}}, {"_id": 0}).to_list(len(rucs) or 1)
    return {d["ruc"]: d for d in docs}


def _entry_values(data) -> dict:
    values = {}
    for field in ENTRY_VALUE_FIELDS:
        value = getattr(data, field, None)
        if value is not None:
            values[field] = to_amount(value) if field in MONETARY_FIELDS else value
    return values


def initial_status(user: dict, submit_for_approval: bool = False) -> str:
    """Un Usuario siempre envía a aprobación; los demás roles guardan directo"""
    if user.get("role") == "Usuario" or submit_for_approval:
        return PENDIENTE
    return PLANIFICADA


# ════════════════════════════════════════════════════════════════════════════
# CREACIÓN
# ════════════════════════════════════════════════════════════════════════════

async def create_route(user: dict, data) -> dict:
    if not (data.route_name or "").strip():
        raise RoutePlanError("El nombre de la ruta es obligatorio")
    if not data.supervisor_id:
        raise RoutePlanError("Debes seleccionar un supervisor")
    if not data.clients:
        raise RoutePlanError("Debes seleccionar al menos un cliente")
    if parse_day(data.date) is None:
        raise RoutePlanError(f"Fecha inválida: {data.date}")

    supervisor = await _supervisor(data.supervisor_id)
    registry = await _registry([c.ruc for c in data.clients])
    missing = [c.ruc for c in data.clients if c.ruc not in registry]
    if missing:
        raise RoutePlanError(f"Clientes no registrados: {', '.join(missing)}")

    clients = []
    for item in data.clients:
        values = _entry_values(item)
        day = values.pop("date", None) or data.date
        clients.append(new_route_client(
            item.ruc, registry[item.ruc].get("nombre_comercial", ""), day, **values
        ))

    status = initial_status(user, data.submit_for_approval)
    doc = {
        "id": str(uuid.uuid4()),
        "route_name": data.route_name.strip(),
        "date": parse_day(data.date).isoformat(),
        "start_time": data.start_time,
        "end_time": data.end_time,
        "created_by": user["id"],
        "created_by_name": user.get("name", ""),
        "supervisor_id": supervisor["id"],
        "supervisor_name": supervisor.get("name", ""),
        "supervisor_observation": None,
        "status": status,
        "origin": Origin.MANUAL.value,
        "clients": clients,
        "created_at": now_iso(),
        "updated_at": now_iso(),
    }
    return await _insert_and_notify(doc, user)


async def _insert_and_notify(doc: dict, user: dict) -> dict:
    route = await insert_route(doc)
    logger.info(
        f"[ROUTE_CREATE] id={route['id']} by={user.get('email')} status={route['status']} "
        f"clients={len(route['clients'])} origin={route['origin']}"
    )
    await log_event(
        action="route_create",
        entity_type="route",
        entity_id=route["id"],
        user=user.get("email", "system"),
        details={"status": route["status"], "origin": route["origin"], "clients": len(route["clients"])}
    )
    if route["status"] == PENDIENTE:
        await add_notification(
            user_id=route["supervisor_id"],
            title="Nueva ruta para aprobar",
            message=f'{user.get("name", "")} ha enviado la ruta "{route["route_name"]}" para tu aprobación.',
            link=f"/dashboard/routes/{route['id']}"
        )
    return route


# ════════════════════════════════════════════════════════════════════════════
# RUTA PREDICHA
# ════════════════════════════════════════════════════════════════════════════

async def resolve_supervisor(executive: dict, current_user: dict) -> Optional[dict]:
    """
    Orden: el ejecutivo si es Supervisor, su supervisor asignado,
    el usuario actual si es Supervisor, el primer Supervisor si es Administrador.
    """
    if executive.get("role") == "Supervisor":
        return executive
    if executive.get("supervisor_id"):
        sup = await db.users.find_one({"id": executive["supervisor_id"]}, {"_id": 0, "password": 0})
        if sup:
            return sup
    if current_user.get("role") == "Supervisor":
        return current_user
    if current_user.get("role") == "Administrador":
        return await db.users.find_one({"role": "Supervisor"}, {"_id": 0, "password": 0})
    return None


async def create_predicted_route(
    user: dict,
    ejecutivo: str,
    fecha_inicio: str = None,
    dias: int = 7,
    **extra
) -> dict:
    """Crea una ruta origin=predicted a partir de las predicciones del ejecutivo"""
    executive = await db.users.find_one({"name": ejecutivo}, {"_id": 0, "password": 0})
    if not executive:
        raise RoutePlanError(f"No se pudo encontrar al usuario ejecutivo: {ejecutivo}")

    supervisor = await resolve_supervisor(executive, user)
    if not supervisor:
        raise RoutePlanError(
            f"El ejecutivo {ejecutivo} no tiene un supervisor asignado y no se pudo determinar uno."
        )

    predictions = await fetch_predictions(ejecutivo, fecha_inicio, dias, **extra)
    if not predictions:
        raise RoutePlanError("No hay predicciones para guardar para este ejecutivo.")

    rucs = [str(r).strip() for r in (first_value(p, RUC_KEYS) for p in predictions) if r is not None]
    registry = await _registry(rucs)
    names = {ruc: c.get("nombre_comercial", "") for ruc, c in registry.items()}

    default_day = fecha_inicio
    clients = []
    for prediction in predictions:
        entry = map_prediction(prediction, default_day, names)
        if entry and entry["ruc"] in registry:
            entry["nombre_comercial"] = names[entry["ruc"]] or entry["nombre_comercial"]
            clients.append(entry)

    if not clients:
        raise RoutePlanError("Ninguno de los clientes predichos está en el registro de clientes")

    route_day = parse_day(clients[0]["date"]) or parse_day(fecha_inicio)
    doc = {
        "id": str(uuid.uuid4()),
        "route_name": predicted_route_name(ejecutivo, route_day),
        "date": route_day.isoformat() if route_day else None,
        "created_by": user["id"],
        "created_by_name": user.get("name", ""),
        "supervisor_id": supervisor["id"],
        "supervisor_name": supervisor.get("name", ""),
        "supervisor_observation": None,
        "status": initial_status(user),
        "origin": Origin.PREDICTED.value,
        "clients": clients,
        "created_at": now_iso(),
        "updated_at": now_iso(),
    }
    return await _insert_and_notify(doc, user)


# ════════════════════════════════════════════════════════════════════════════
# EDICIÓN
# ════════════════════════════════════════════════════════════════════════════

async def update_route_fields(route: dict, user: dict, data) -> dict:
    _require_edit(user, route)

    updates = {}
    for field in ("route_name", "start_time", "end_time"):
        value = getattr(data, field)
        if value is not None:
            updates[field] = value.strip() if field == "route_name" else value
    if "route_name" in updates and not updates["route_name"]:
        raise RoutePlanError("El nombre de la ruta es obligatorio")
    if data.date is not None:
        day = parse_day(data.date)
        if day is None:
            raise RoutePlanError(f"Fecha inválida: {data.date}")
        updates["date"] = day.isoformat()
    if data.supervisor_id is not None:
        supervisor = await _supervisor(data.supervisor_id)
        updates["supervisor_id"] = supervisor["id"]
        updates["supervisor_name"] = supervisor.get("name", "")

    if not updates:
        return route
    saved = await save_route(route, updates, expected_version=data.expected_version)
    return await _settle(saved, user.get("email", "system"))


async def add_clients(route: dict, user: dict, rucs: List[str], day: str = None,
                      expected_version: int = None) -> dict:
    _require_edit(user, route)
    if not rucs:
        raise RoutePlanError("Debes seleccionar al menos un cliente")

    registry = await _registry(rucs)
    missing = [r for r in rucs if r not in registry]
    if missing:
        raise RoutePlanError(f"Clientes no registrados: {', '.join(missing)}")

    day = day or route.get("date")
    existing = {(c["ruc"], c.get("date")) for c in active_entries(route)}
    clients = [dict(c) for c in route.get("clients") or []]
    added = 0
    for ruc in rucs:
        if (ruc, day) in existing:
            continue
        clients.append(new_route_client(ruc, registry[ruc].get("nombre_comercial", ""), day))
        existing.add((ruc, day))
        added += 1

    if not added:
        return route
    return await save_route(route, {"clients": clients}, expected_version=expected_version)


def _find_active(route: dict, ruc: str) -> int:
    for index, entry in enumerate(route.get("clients") or []):
        if entry.get("ruc") == ruc and entry.get("status") != EntryStatus.ELIMINADO.value:
            return index
    raise RoutePlanError(f"El cliente {ruc} no está activo en esta ruta")


async def remove_client(route: dict, user: dict, ruc: str, observation: str,
                        expected_version: int = None) -> dict:
    """Baja lógica: la entrada queda en la lista con status=Eliminado"""
    _require_edit(user, route)
    if not observation or not observation.strip():
        raise RoutePlanError("Debes indicar una observación para eliminar el cliente de la ruta")

    index = _find_active(route, ruc)
    clients = [dict(c) for c in route.get("clients") or []]
    entry = clients[index]
    if entry.get("check_in_time") and not entry.get("check_out_time"):
        raise RoutePlanError("No se puede eliminar un cliente con una visita en curso")

    entry["status"] = EntryStatus.ELIMINADO.value
    entry["removal_observation"] = observation.strip()
    entry["removed_at"] = now_iso()
    entry["removed_by"] = user.get("id")

    updates = {"clients": clients}
    if route.get("active_client_ruc") == ruc:
        updates["active_client_ruc"] = None

    saved = await save_route(route, updates, expected_version=expected_version)
    await log_event(
        action="route_client_removed",
        entity_type="route",
        entity_id=route["id"],
        user=user.get("email", "system"),
        details={"observation": observation.strip()},
        related={"ruc": ruc}
    )
    return await _settle(saved, user.get("email", "system"))


async def update_client_values(route: dict, user: dict, ruc: str, data) -> dict:
    _require_edit(user, route)
    index = _find_active(route, ruc)
    values = _entry_values(data)
    if "date" in values:
        day = parse_day(values["date"])
        if day is None:
            raise RoutePlanError(f"Fecha inválida: {values['date']}")
        values["date"] = day.isoformat()
    if not values:
        return route

    clients = [dict(c) for c in route.get("clients") or []]
    clients[index].update(values)
    saved = await save_route(route, {"clients": clients}, expected_version=data.expected_version)
    return await _settle(saved, user.get("email", "system"))


def _entry_key(entry: dict) -> tuple:
    return (entry.get("ruc"), entry.get("date"), entry.get("removed_at"))


def _check_entry(entry: dict):
    ruc = entry["ruc"]
    if entry["status"] not in ENTRY_STATUSES:
        raise RoutePlanError(f"Estado de entrada inválido para {ruc}: {entry['status']}")
    if entry["visit_status"] not in VISIT_STATUSES:
        raise RoutePlanError(f"Estado de visita inválido para {ruc}")
    if entry["status"] == EntryStatus.ELIMINADO.value and not (entry.get("removal_observation") or "").strip():
        raise RoutePlanError(f"La entrada eliminada {ruc} requiere observación")
    if entry.get("check_out_time") and not (entry.get("check_in_time") and entry.get("visit_type")):
        raise RoutePlanError(f"La entrada {ruc} tiene check-out sin check-in o tipo de visita")
    completed = entry["visit_status"] == VisitStatus.COMPLETADO.value
    if completed != bool(entry.get("check_out_time")):
        raise RoutePlanError(f"La entrada {ruc}: una visita Completado requiere check-out y viceversa")


async def replace_clients(route: dict, user: dict, clients: List[dict],
                          expected_version: int = None) -> dict:
    """
    Guarda una lista de clientes completa (edición masiva o recuperación).

    - Las entradas eliminadas que ya existían se conservan aunque falten en la lista.
    - Toda entrada activa existente debe reenviarse; para quitarla se manda
      con status=Eliminado y observación (baja lógica, queda en el historial).
    - Tras guardar se reevalúa el cierre de la ruta.
    """
    _require_edit(user, route)
    actor = user.get("email", "system")

    stored_active = {(c.get("ruc"), c.get("date")): c for c in active_entries(route)}

    normalized = []
    newly_removed = []
    for raw in clients:
        if not raw.get("ruc"):
            raise RoutePlanError("Cada cliente de la ruta debe tener RUC")
        entry = normalize_route_client(raw)
        day = parse_day(entry.get("date"))
        entry["date"] = day.isoformat() if day else route.get("date")
        _check_entry(entry)

        previous = stored_active.get((entry["ruc"], entry["date"]))
        if entry["status"] == EntryStatus.ELIMINADO.value and previous is not None:
            if previous.get("check_in_time") and not previous.get("check_out_time"):
                raise RoutePlanError(f"No se puede eliminar {entry['ruc']}: tiene una visita en curso")
            entry["removal_observation"] = entry["removal_observation"].strip()
            entry.setdefault("removed_at", now_iso())
            entry.setdefault("removed_by", user.get("id"))
            newly_removed.append(entry)
        normalized.append(entry)

    sent = {(e["ruc"], e["date"]) for e in normalized}
    missing = [ruc for (ruc, day) in stored_active if (ruc, day) not in sent]
    if missing:
        raise RoutePlanError(
            f"Faltan entradas activas de la ruta: {', '.join(missing)}. "
            f"Para quitarlas, envíalas como Eliminado con observación"
        )

    provided = {_entry_key(e) for e in normalized if e["status"] == EntryStatus.ELIMINADO.value}
    kept_removed = [
        dict(c) for c in route.get("clients") or []
        if c.get("status") == EntryStatus.ELIMINADO.value and _entry_key(c) not in provided
    ]

    updates = {"clients": kept_removed + normalized}
    if route.get("active_client_ruc") in {e["ruc"] for e in newly_removed}:
        updates["active_client_ruc"] = None

    saved = await save_route(route, updates, expected_version=expected_version)
    for entry in newly_removed:
        await log_event(
            action="route_client_removed",
            entity_type="route",
            entity_id=route["id"],
            user=actor,
            details={"observation": entry["removal_observation"]},
            related={"ruc": entry["ruc"]}
        )
    logger.info(
        f"[ROUTE_CLIENTS] route={route['id']} replaced active={len(active_entries(saved))} "
        f"removed={len(saved['clients']) - len(active_entries(saved))}"
    )
    return await _settle(saved, actor)
