"""
╔══════════════════════════════════════════════════════════════════════════════╗
║  Rutero - Routes Route Plans                                                 ║
║                                                                              ║
║  Planificación, aprobación, overrides y recuperación de rutas                ║
║  Los cambios de estado pasan SIEMPRE por route_state_machine                 ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

import logging
from fastapi import APIRouter, Depends, HTTPException
from typing import Optional

from routes.auth import get_current_user
from models import (
    RouteCreate, RouteUpdate, AddClients, RemoveClient,
    ClientValuesUpdate, ReplaceClients, ReviewAction,
)
from services.permissions import require_permission, user_has_permission
from services.route_store import get_route, find_routes, delete_route, RouteConflictError
from services.route_state_machine import (
    PLANIFICADA, PENDIENTE, RECHAZADA, EN_PROGRESO,
    RouteTransitionError, RoutePermissionError,
    can_view, is_admin, is_owner,
    submit_for_approval, approve_route, reject_route, start_route,
    force_complete, reopen_route,
)
from services.route_planner import (
    RoutePlanError, create_route, update_route_fields, add_clients,
    remove_client, update_client_values, replace_clients,
)
from services.route_recovery import recover_route_clients, RecoveryError
from services.prediction_client import PredictionServiceError
from services.visit_tracker import VisitError, ActiveClientError
from services.expiration_sweep import sweep_owner
from services.event_logger import log_event, list_events

logger = logging.getLogger("route_plans")

router = APIRouter(prefix="/routes", tags=["Routes"])


# ==================== HELPERS ====================

def http_error(e: Exception) -> HTTPException:
    """Excepción de dominio → HTTPException"""
    if isinstance(e, RoutePermissionError):
        return HTTPException(status_code=403, detail=str(e))
    if isinstance(e, (RouteConflictError, RouteTransitionError, ActiveClientError)):
        return HTTPException(status_code=409, detail=str(e))
    if isinstance(e, RecoveryError):
        return HTTPException(status_code=422, detail=str(e))
    if isinstance(e, PredictionServiceError):
        return HTTPException(status_code=502, detail=e.body)
    return HTTPException(status_code=400, detail=str(e))


DOMAIN_ERRORS = (
    RoutePermissionError, RouteConflictError, RouteTransitionError,
    RoutePlanError, RecoveryError, PredictionServiceError, VisitError,
)


async def load_route(route_id: str, user: dict) -> dict:
    route = await get_route(route_id)
    if not route:
        raise HTTPException(status_code=404, detail="Ruta no encontrada")
    if not can_view(user, route):
        raise HTTPException(status_code=403, detail="Acceso denegado a esta ruta")
    return route


# ==================== LISTADOS ====================

@router.get("")
async def list_routes(
    status: Optional[str] = None,
    seller_id: Optional[str] = None,
    user: dict = Depends(get_current_user)
):
    """
    Administrador: todas las rutas
    Supervisor: las rutas que supervisa
    Vendedor: las suyas
    """
    if is_admin(user):
        query = {}
        if seller_id:
            query["created_by"] = seller_id
    elif user_has_permission(user, "routes.view_team"):
        query = {"supervisor_id": user["id"]}
        if seller_id:
            query["created_by"] = seller_id
    else:
        query = {"created_by": user["id"]}
    if status:
        query["status"] = status

    routes = await find_routes(query)
    return {"routes": routes, "count": len(routes)}


@router.get("/mine")
async def my_routes(user: dict = Depends(get_current_user)):
    """Rutas del vendedor. Cierra antes las que vencieron."""
    await sweep_owner(user["id"])
    routes = await find_routes({"created_by": user["id"]})
    return {"routes": routes, "count": len(routes)}


@router.get("/team")
async def team_routes(
    status: Optional[str] = PENDIENTE,
    user: dict = Depends(require_permission("routes.approve"))
):
    """Rutas del equipo (por defecto las pendientes de aprobación)"""
    query = {} if is_admin(user) else {"supervisor_id": user["id"]}
    if status:
        query["status"] = status
    routes = await find_routes(query)
    return {"routes": routes, "count": len(routes)}


@router.get("/active")
async def active_route(user: dict = Depends(get_current_user)):
    """Ruta En Progreso del vendedor (para retomar la jornada)"""
    await sweep_owner(user["id"])
    routes = await find_routes({"created_by": user["id"], "status": EN_PROGRESO}, 1)
    return {"route": routes[0] if routes else None}


# ==================== CRUD ====================

@router.post("")
async def create(data: RouteCreate, user: dict = Depends(require_permission("routes.create"))):
    try:
        route = await create_route(user, data)
    except DOMAIN_ERRORS as e:
        raise http_error(e)
    return {"success": True, "route": route}


@router.get("/{route_id}")
async def get_one(route_id: str, user: dict = Depends(get_current_user)):
    return await load_route(route_id, user)


@router.put("/{route_id}")
async def update(route_id: str, data: RouteUpdate, user: dict = Depends(get_current_user)):
    route = await load_route(route_id, user)
    try:
        route = await update_route_fields(route, user, data)
    except DOMAIN_ERRORS as e:
        raise http_error(e)
    return {"success": True, "route": route}


@router.delete("/{route_id}")
async def delete(route_id: str, user: dict = Depends(get_current_user)):
    """Borrado: Administrador, o el creador antes de iniciar la ruta"""
    route = await load_route(route_id, user)
    deletable_by_owner = route.get("status") in (PLANIFICADA, PENDIENTE, RECHAZADA)
    if not (is_admin(user) or (is_owner(user, route) and deletable_by_owner)):
        raise HTTPException(status_code=403, detail="No puedes eliminar esta ruta")

    await delete_route(route_id)
    logger.info(f"[ROUTE_DELETE] id={route_id} by={user.get('email')} status={route.get('status')}")
    await log_event(
        action="route_delete",
        entity_type="route",
        entity_id=route_id,
        user=user.get("email", "system"),
        details={"status": route.get("status"), "route_name": route.get("route_name")}
    )
    return {"success": True}


# ==================== WORKFLOW ====================

@router.post("/{route_id}/submit")
async def submit(route_id: str, data: ReviewAction = None, user: dict = Depends(get_current_user)):
    route = await load_route(route_id, user)
    try:
        route = await submit_for_approval(route, user, data.expected_version if data else None)
    except DOMAIN_ERRORS as e:
        raise http_error(e)
    return {"success": True, "route": route}


@router.post("/{route_id}/approve")
async def approve(route_id: str, data: ReviewAction = None, user: dict = Depends(get_current_user)):
    route = await load_route(route_id, user)
    data = data or ReviewAction()
    try:
        route = await approve_route(route, user, data.observation, data.expected_version)
    except DOMAIN_ERRORS as e:
        raise http_error(e)
    return {"success": True, "route": route}


@router.post("/{route_id}/reject")
async def reject(route_id: str, data: ReviewAction, user: dict = Depends(get_current_user)):
    route = await load_route(route_id, user)
    try:
        route = await reject_route(route, user, data.observation, data.expected_version)
    except DOMAIN_ERRORS as e:
        raise http_error(e)
    return {"success": True, "route": route}


@router.post("/{route_id}/start")
async def start(route_id: str, user: dict = Depends(get_current_user)):
    """Inicia la jornada: Planificada / Rechazada → En Progreso"""
    route = await load_route(route_id, user)
    if route.get("status") == EN_PROGRESO:
        return {"success": True, "route": route}
    try:
        route = await start_route(route, user)
    except DOMAIN_ERRORS as e:
        raise http_error(e)
    return {"success": True, "route": route}


@router.post("/{route_id}/force-complete")
async def force(route_id: str, data: ReviewAction = None, user: dict = Depends(require_permission("routes.override"))):
    route = await load_route(route_id, user)
    try:
        route = await force_complete(route, user, data.expected_version if data else None)
    except DOMAIN_ERRORS as e:
        raise http_error(e)
    return {"success": True, "route": route}


@router.post("/{route_id}/reopen")
async def reopen(route_id: str, data: ReviewAction = None, user: dict = Depends(require_permission("routes.override"))):
    route = await load_route(route_id, user)
    try:
        route = await reopen_route(route, user, data.expected_version if data else None)
    except DOMAIN_ERRORS as e:
        raise http_error(e)
    return {"success": True, "route": route}


# ==================== CLIENTES DE LA RUTA ====================

@router.post("/{route_id}/clients")
async def add_route_clients(route_id: str, data: AddClients, user: dict = Depends(get_current_user)):
    route = await load_route(route_id, user)
    try:
        route = await add_clients(route, user, data.rucs, data.date, data.expected_version)
    except DOMAIN_ERRORS as e:
        raise http_error(e)
    return {"success": True, "route": route}


@router.put("/{route_id}/clients")
async def save_route_clients(route_id: str, data: ReplaceClients, user: dict = Depends(get_current_user)):
    """Guarda la lista completa (p.ej. la devuelta por /recover)"""
    route = await load_route(route_id, user)
    try:
        route = await replace_clients(route, user, data.clients, data.expected_version)
    except DOMAIN_ERRORS as e:
        raise http_error(e)
    return {"success": True, "route": route}


@router.post("/{route_id}/clients/{ruc}/remove")
async def remove_route_client(
    route_id: str,
    ruc: str,
    data: RemoveClient,
    user: dict = Depends(get_current_user)
):
    """Baja lógica con observación obligatoria"""
    route = await load_route(route_id, user)
    try:
        route = await remove_client(route, user, ruc, data.observation, data.expected_version)
    except DOMAIN_ERRORS as e:
        raise http_error(e)
    return {"success": True, "route": route}


@router.patch("/{route_id}/clients/{ruc}")
async def update_route_client(
    route_id: str,
    ruc: str,
    data: ClientValuesUpdate,
    user: dict = Depends(get_current_user)
):
    route = await load_route(route_id, user)
    try:
        route = await update_client_values(route, user, ruc, data)
    except DOMAIN_ERRORS as e:
        raise http_error(e)
    return {"success": True, "route": route}


# ==================== RECUPERACIÓN ====================

@router.post("/{route_id}/recover")
async def recover(route_id: str, user: dict = Depends(get_current_user)):
    """
    Reconstruye la lista de una ruta predicha vacía.
    No guarda: el cliente revisa la lista y la envía a PUT /routes/{id}/clients.
    """
    route = await load_route(route_id, user)
    if not (is_admin(user) or is_owner(user, route)):
        raise HTTPException(status_code=403, detail="No puedes recuperar esta ruta")
    try:
        clients = await recover_route_clients(route)
    except DOMAIN_ERRORS as e:
        raise http_error(e)

    await log_event(
        action="route_recovered",
        entity_type="route",
        entity_id=route_id,
        user=user.get("email", "system"),
        details={"clients": len(clients)}
    )
    return {"route_id": route_id, "version": route.get("version", 0), "clients": clients}


# ==================== HISTORIAL ====================

@router.get("/{route_id}/history")
async def history(route_id: str, limit: int = 100, user: dict = Depends(get_current_user)):
    """Eventos de la ruta (cambios de estado, bajas, recuperaciones)"""
    await load_route(route_id, user)
    events = await list_events("route", route_id, limit)
    return {"events": events, "count": len(events)}
