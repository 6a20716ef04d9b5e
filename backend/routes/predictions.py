"""
Rutero - Routes Predicciones
Proxy hacia el servicio externo de predicción / ruta óptima y creación
de rutas predichas.
"""

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse
from typing import List, Optional

from models import PredictedRouteCreate
from services.permissions import require_permission
from services.prediction_client import proxy_predicciones, proxy_ruta_optima
from services.route_planner import create_predicted_route
from routes.route_plans import http_error, DOMAIN_ERRORS

router = APIRouter(tags=["Predictions"])


@router.get("/predicciones")
async def predicciones(
    ejecutivo: Optional[str] = None,
    fecha_inicio: Optional[str] = None,
    dias: Optional[str] = None,
    lat_base: Optional[str] = None,
    lon_base: Optional[str] = None,
    max_km: Optional[str] = None,
    user: dict = Depends(require_permission("predictions.view"))
):
    """Passthrough: se devuelve el status del servicio externo tal cual"""
    status_code, body = await proxy_predicciones({
        "ejecutivo": ejecutivo,
        "fecha_inicio": fecha_inicio,
        "dias": dias,
        "lat_base": lat_base,
        "lon_base": lon_base,
        "max_km": max_km,
    })
    return JSONResponse(status_code=status_code, content=body)


@router.get("/ruta-optima")
async def ruta_optima(
    origen: Optional[str] = None,
    api_key: Optional[str] = None,
    waypoints: List[str] = Query(default=[]),
    user: dict = Depends(require_permission("predictions.view"))
):
    status_code, body = await proxy_ruta_optima(origen, waypoints, api_key)
    return JSONResponse(status_code=status_code, content=body)


@router.post("/predictions/route")
async def create_route_from_predictions(
    data: PredictedRouteCreate,
    user: dict = Depends(require_permission("routes.create"))
):
    try:
        route = await create_predicted_route(
            user,
            data.ejecutivo,
            data.fecha_inicio,
            data.dias,
            lat_base=data.lat_base,
            lon_base=data.lon_base,
            max_km=data.max_km,
        )
    except DOMAIN_ERRORS as e:
        raise http_error(e)
    return {"success": True, "route": route}
