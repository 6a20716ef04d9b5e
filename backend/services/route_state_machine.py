"""
╔══════════════════════════════════════════════════════════════════════════════╗
║  Rutero - Route State Machine                                                ║
║                                                                              ║
║  REGLAS ESTRICTAS DE TRANSICIÓN DE ESTADO                                    ║
║                                                                              ║
║  SOLO ESTE MÓDULO cambia route.status                                        ║
║                                                                              ║
║  INVARIANTES:                                                                ║
║  - status=Completada ⟺ toda entrada no eliminada tiene visit_status=Completado║
║  - Rechazada IMPLICA supervisor_observation no vacía                         ║
║  - Completada / Incompleta solo se reabren por un Administrador              ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

import logging
from typing import List, Optional, Dict, Any

from config import now_iso
from models.route import RouteStatus, EntryStatus, VisitStatus
from services.route_store import save_route
from services.event_logger import log_event
from services.notifications import add_notification

logger = logging.getLogger("route_state_machine")

ADMIN_ROLE = "Administrador"

PLANIFICADA = RouteStatus.PLANIFICADA.value
PENDIENTE = RouteStatus.PENDIENTE_APROBACION.value
EN_PROGRESO = RouteStatus.EN_PROGRESO.value
COMPLETADA = RouteStatus.COMPLETADA.value
INCOMPLETA = RouteStatus.INCOMPLETA.value
RECHAZADA = RouteStatus.RECHAZADA.value


# ════════════════════════════════════════════════════════════════════════════
# VALID STATE TRANSITIONS
# ════════════════════════════════════════════════════════════════════════════

VALID_ROUTE_TRANSITIONS = {
    PLANIFICADA: [PENDIENTE, EN_PROGRESO],
    PENDIENTE: [PLANIFICADA, RECHAZADA],
    RECHAZADA: [PENDIENTE, EN_PROGRESO],
    EN_PROGRESO: [COMPLETADA, INCOMPLETA],
    COMPLETADA: [],  # TERMINAL
    INCOMPLETA: [],  # TERMINAL
}

# Overrides reservados al Administrador
ADMIN_OVERRIDE_TRANSITIONS = {
    PLANIFICADA: [COMPLETADA],
    PENDIENTE: [COMPLETADA],
    RECHAZADA: [COMPLETADA],
    EN_PROGRESO: [COMPLETADA],
    INCOMPLETA: [COMPLETADA, EN_PROGRESO],
    COMPLETADA: [EN_PROGRESO],
}

TERMINAL_STATUSES = [COMPLETADA, INCOMPLETA]
OWNER_EDITABLE_STATUSES = [PLANIFICADA, RECHAZADA, EN_PROGRESO]


class RouteTransitionError(Exception):
    """Raised when a route status transition is not allowed"""
    pass


class RoutePermissionError(Exception):
    """Raised when the user may not act on the route"""
    pass


# ════════════════════════════════════════════════════════════════════════════
# PURE RULES
# ════════════════════════════════════════════════════════════════════════════

def active_entries(route: Dict[str, Any]) -> List[Dict[str, Any]]:
    """Entradas no eliminadas de la ruta"""
    return [
        c for c in route.get("clients") or []
        if c.get("status", EntryStatus.ACTIVO.value) != EntryStatus.ELIMINADO.value
    ]


def pending_entries(route: Dict[str, Any]) -> List[Dict[str, Any]]:
    return [
        c for c in active_entries(route)
        if c.get("visit_status", VisitStatus.PENDIENTE.value) != VisitStatus.COMPLETADO.value
    ]


def all_visits_completed(route: Dict[str, Any]) -> bool:
    return len(pending_entries(route)) == 0


def closing_status(route: Dict[str, Any]) -> str:
    """Estado final al cerrar una ruta en curso"""
    return COMPLETADA if all_visits_completed(route) else INCOMPLETA


def is_admin(user: dict) -> bool:
    return user.get("role") == ADMIN_ROLE


def is_owner(user: dict, route: dict) -> bool:
    return bool(user.get("id")) and user.get("id") == route.get("created_by")


def can_edit(user: dict, route: dict) -> bool:
    """
    Contrato de edición:
    - el creador mientras status ∈ {Planificada, Rechazada, En Progreso}
    - un Administrador para cualquier ruta no Completada
    """
    status = route.get("status")
    if is_admin(user) and status != COMPLETADA:
        return True
    return is_owner(user, route) and status in OWNER_EDITABLE_STATUSES


def can_review(user: dict, route: dict) -> bool:
    """Aprobar / rechazar: supervisor asignado o Administrador, solo en Pendiente"""
    if route.get("status") != PENDIENTE:
        return False
    if is_admin(user):
        return True
    return bool(user.get("id")) and user.get("id") == route.get("supervisor_id")


def can_view(user: dict, route: dict) -> bool:
    if is_admin(user) or is_owner(user, route):
        return True
    return bool(user.get("id")) and user.get("id") == route.get("supervisor_id")


def validate_route_transition(
    route_id: str,
    from_status: str,
    to_status: str,
    admin_override: bool = False
) -> bool:
    """Valida que una transición de estado esté autorizada."""
    valid_next = list(VALID_ROUTE_TRANSITIONS.get(from_status, []))
    if admin_override:
        valid_next += ADMIN_OVERRIDE_TRANSITIONS.get(from_status, [])

    if to_status not in valid_next:
        raise RouteTransitionError(
            f"INVALID TRANSITION: route {route_id} cannot go from '{from_status}' to '{to_status}'. "
            f"Valid transitions from '{from_status}': {valid_next}"
        )
    return True


# ════════════════════════════════════════════════════════════════════════════
# TRANSITIONS (única vía para cambiar route.status)
# ════════════════════════════════════════════════════════════════════════════

async def _transition(
    route: dict,
    to_status: str,
    actor: str,
    extra: Optional[dict] = None,
    admin_override: bool = False,
    expected_version: Optional[int] = None
) -> dict:
    from_status = route.get("status")
    validate_route_transition(route["id"], from_status, to_status, admin_override)

    updates = {"status": to_status, "status_changed_at": now_iso()}
    if extra:
        updates.update(extra)

    saved = await save_route(route, updates, expected_version=expected_version)

    logger.info(
        f"[ROUTE_SM] Route {route['id']} {from_status} -> {to_status} | by={actor}"
    )
    await log_event(
        action="route_status_change",
        entity_type="route",
        entity_id=route["id"],
        user=actor,
        details={"from": from_status, "to": to_status}
    )
    return saved


async def submit_for_approval(route: dict, user: dict, expected_version: int = None) -> dict:
    """Planificada / Rechazada → Pendiente de Aprobación (solo el creador)"""
    if not is_owner(user, route):
        raise RoutePermissionError("Solo el creador puede enviar la ruta a aprobación")
    if not route.get("supervisor_id"):
        raise RouteTransitionError("La ruta no tiene supervisor asignado")

    saved = await _transition(
        route, PENDIENTE, user.get("email", "system"), expected_version=expected_version
    )
    await add_notification(
        user_id=route["supervisor_id"],
        title="Nueva ruta para aprobar",
        message=f'{user.get("name", "")} ha enviado la ruta "{route.get("route_name", "")}" para tu aprobación.',
        link=f"/dashboard/routes/{route['id']}"
    )
    return saved


async def approve_route(route: dict, user: dict, observation: str = None, expected_version: int = None) -> dict:
    """Pendiente de Aprobación → Planificada"""
    if not can_review(user, route):
        raise RoutePermissionError("No puedes aprobar esta ruta")

    extra = {"reviewed_by": user.get("id"), "reviewed_at": now_iso()}
    if observation:
        extra["supervisor_observation"] = observation.strip()

    saved = await _transition(
        route, PLANIFICADA, user.get("email", "system"), extra, expected_version=expected_version
    )
    await add_notification(
        user_id=route.get("created_by"),
        title="Ruta Aprobada",
        message=f'Tu ruta "{route.get("route_name", "")}" ha sido aprobada por {user.get("name", "")}.',
        link=f"/dashboard/routes/{route['id']}"
    )
    return saved


async def reject_route(route: dict, user: dict, observation: str, expected_version: int = None) -> dict:
    """Pendiente de Aprobación → Rechazada, con observación obligatoria"""
    if not can_review(user, route):
        raise RoutePermissionError("No puedes rechazar esta ruta")
    if not observation or not observation.strip():
        raise RouteTransitionError("Debes proporcionar una observación para rechazar la ruta")

    extra = {
        "supervisor_observation": observation.strip(),
        "reviewed_by": user.get("id"),
        "reviewed_at": now_iso(),
    }
    saved = await _transition(
        route, RECHAZADA, user.get("email", "system"), extra, expected_version=expected_version
    )
    await add_notification(
        user_id=route.get("created_by"),
        title="Ruta Rechazada",
        message=f'Tu ruta "{route.get("route_name", "")}" ha sido rechazada por {user.get("name", "")}.',
        link=f"/dashboard/routes/{route['id']}"
    )
    return saved


async def start_route(route: dict, user: dict, expected_version: int = None) -> dict:
    """Planificada / Rechazada → En Progreso cuando el vendedor inicia su jornada"""
    if not is_owner(user, route):
        raise RoutePermissionError("Solo el vendedor dueño de la ruta puede iniciarla")
    return await _transition(
        route, EN_PROGRESO, user.get("email", "system"),
        {"started_at": now_iso()}, expected_version=expected_version
    )


async def complete_if_done(route: dict, actor: str) -> dict:
    """
    En Progreso → Completada cuando ya no queda ninguna visita pendiente
    en toda la semana. Devuelve la ruta (cambiada o no).
    """
    if route.get("status") != EN_PROGRESO or not all_visits_completed(route):
        return route
    return await _transition(
        route, COMPLETADA, actor,
        {"completed_at": now_iso(), "closed_by": actor, "active_client_ruc": None}
    )


async def close_expired(route: dict, now_str: str) -> dict:
    """En Progreso → Completada / Incompleta al vencer la ventana de la ruta"""
    target = closing_status(route)
    return await _transition(
        route, target, "expiration_sweep",
        {"completed_at": now_str, "closed_by": "expiration_sweep", "active_client_ruc": None}
    )


async def force_complete(route: dict, user: dict, expected_version: int = None) -> dict:
    """
    Override Administrador: cierra la ruta como Completada.
    Las visitas activas aún pendientes quedan marcadas Completado con
    forced=True (sin check-in ni check-out) para mantener el invariante.
    """
    if not is_admin(user):
        raise RoutePermissionError("Solo un Administrador puede forzar el cierre")

    clients = []
    for entry in route.get("clients") or []:
        entry = dict(entry)
        if (entry.get("status") != EntryStatus.ELIMINADO.value
                and entry.get("visit_status") != VisitStatus.COMPLETADO.value):
            entry["visit_status"] = VisitStatus.COMPLETADO.value
            entry["forced"] = True
        clients.append(entry)

    return await _transition(
        route, COMPLETADA, user.get("email", "system"),
        {
            "clients": clients,
            "completed_at": now_iso(),
            "closed_by": user.get("email", "system"),
            "active_client_ruc": None,
        },
        admin_override=True,
        expected_version=expected_version
    )


async def reopen_route(route: dict, user: dict, expected_version: int = None) -> dict:
    """
    Override Administrador: Completada / Incompleta → En Progreso.
    Las visitas forzadas vuelven a Pendiente. Si no queda nada pendiente, la
    ruta se vuelve a cerrar en la siguiente edición (complete_if_done) o en el
    barrido de vencimiento.
    """
    if not is_admin(user):
        raise RoutePermissionError("Solo un Administrador puede reabrir una ruta")

    clients = []
    for entry in route.get("clients") or []:
        entry = dict(entry)
        if entry.pop("forced", False):
            entry["visit_status"] = VisitStatus.PENDIENTE.value
        clients.append(entry)

    return await _transition(
        route, EN_PROGRESO, user.get("email", "system"),
        {"clients": clients, "completed_at": None, "closed_by": None},
        admin_override=True,
        expected_version=expected_version
    )
