"""
Rutero - Routes Visits
Jornada del vendedor: clientes de hoy, selección, check-in, gestión, check-out.
"""

from fastapi import APIRouter, Depends

from config import local_today
from routes.auth import get_current_user
from routes.route_plans import load_route, http_error, DOMAIN_ERRORS
from models import SelectClient, CheckIn, Gesture, CheckOut
from services.visit_tracker import (
    todays_slate, open_check_in, select_client, check_in, register_gesture, check_out,
)

router = APIRouter(prefix="/routes", tags=["Visits"])


@router.get("/{route_id}/today")
async def today(route_id: str, user: dict = Depends(get_current_user)):
    """Clientes asignados a hoy + visita en curso"""
    route = await load_route(route_id, user)
    current = open_check_in(route)
    return {
        "route_id": route["id"],
        "status": route.get("status"),
        "version": route.get("version", 0),
        "date": local_today().isoformat(),
        "clients": todays_slate(route),
        "active_client_ruc": route.get("active_client_ruc"),
        "open_check_in": current.get("ruc") if current else None,
    }


@router.post("/{route_id}/visits/select")
async def select(route_id: str, data: SelectClient, user: dict = Depends(get_current_user)):
    route = await load_route(route_id, user)
    try:
        route = await select_client(route, user, data.ruc)
    except DOMAIN_ERRORS as e:
        raise http_error(e)
    return {"success": True, "route": route}


@router.post("/{route_id}/visits/check-in")
async def do_check_in(route_id: str, data: CheckIn, user: dict = Depends(get_current_user)):
    route = await load_route(route_id, user)
    try:
        route = await check_in(route, user, data.ruc, data.location, data.operation_id)
    except DOMAIN_ERRORS as e:
        raise http_error(e)
    return {"success": True, "route": route}


@router.post("/{route_id}/visits/gesture")
async def gesture(route_id: str, data: Gesture, user: dict = Depends(get_current_user)):
    route = await load_route(route_id, user)
    try:
        route = await register_gesture(route, user, data)
    except DOMAIN_ERRORS as e:
        raise http_error(e)
    return {"success": True, "route": route}


@router.post("/{route_id}/visits/check-out")
async def do_check_out(route_id: str, data: CheckOut, user: dict = Depends(get_current_user)):
    route = await load_route(route_id, user)
    try:
        result = await check_out(route, user, data.ruc, data.location)
    except DOMAIN_ERRORS as e:
        raise http_error(e)
    return {"success": True, **result}
