"""
Rutero - Cliente del servicio externo de predicción / ruta óptima

Dos usos:
- proxy transparente (GET /api/predicciones, GET /api/ruta-optima):
  se conserva el status del servicio externo
- llamada interna (recuperación de rutas, rutas predichas):
  lanza PredictionServiceError si el servicio falla
"""

import httpx
import logging
from typing import Any, Dict, List, Optional, Tuple

import config

logger = logging.getLogger("prediction_client")

PREDICTION_PARAMS = ["ejecutivo", "fecha_inicio", "dias", "lat_base", "lon_base", "max_km"]


class PredictionServiceError(Exception):
    """Fallo del servicio de predicción (configuración, red o status != 2xx)"""

    def __init__(self, status_code: int, body: dict):
        super().__init__(body.get("message", ""))
        self.status_code = status_code
        self.body = body


def http_client() -> httpx.AsyncClient:
    return httpx.AsyncClient(timeout=config.PREDICTION_TIMEOUT_SECONDS)


async def _get(path: str, params, headers: dict) -> Any:
    url = f"{config.PREDICTION_API_URL}/{path}"
    try:
        async with http_client() as client:
            resp = await client.get(url, params=params, headers=headers)
    except httpx.HTTPError as e:
        logger.error(f"[PREDICTION] {path} network error: {str(e)}")
        raise PredictionServiceError(
            500, {"message": "Error fetching data from external API", "error": str(e)}
        )

    if resp.status_code >= 400:
        logger.error(f"[PREDICTION] {path} HTTP {resp.status_code}: {resp.text[:200]}")
        raise PredictionServiceError(
            resp.status_code,
            {"message": f"Error from external API: {resp.reason_phrase}", "details": resp.text}
        )

    try:
        return resp.json()
    except ValueError:
        raise PredictionServiceError(
            502, {"message": "Respuesta no válida del servicio externo", "details": resp.text[:500]}
        )


def _token_headers() -> Dict[str, str]:
    if not config.PREDICTION_API_TOKEN:
        logger.error("[PREDICTION] PREDICTION_API_TOKEN is not set")
        raise PredictionServiceError(
            500,
            {"message": "Error de configuración del servidor: El token de la API no está configurado."}
        )
    return {"Accept": "application/json", "X-API-Key": config.PREDICTION_API_TOKEN}


def _as_list(data: Any) -> List[dict]:
    """El servicio devuelve una lista; algunas versiones la envuelven en un objeto"""
    if isinstance(data, list):
        return data
    if isinstance(data, dict):
        for key in ("predicciones", "data", "results"):
            if isinstance(data.get(key), list):
                return data[key]
    return []


async def fetch_predictions(
    ejecutivo: str,
    fecha_inicio: str = None,
    dias: int = 7,
    **extra
) -> List[dict]:
    """Predicciones de visita para un ejecutivo a partir de fecha_inicio"""
    params = {"ejecutivo": ejecutivo, "dias": str(dias)}
    if fecha_inicio:
        params["fecha_inicio"] = fecha_inicio
    for key in ("lat_base", "lon_base", "max_km"):
        if extra.get(key) not in (None, ""):
            params[key] = str(extra[key])

    data = await _get("predecir_ejecutivo", params, _token_headers())
    predictions = _as_list(data)
    logger.info(f"[PREDICTION] ejecutivo={ejecutivo} fecha_inicio={fecha_inicio} -> {len(predictions)}")
    return predictions


async def fetch_optimal_route(origen: str, waypoints: List[str], api_key: str = None) -> Any:
    params: List[Tuple[str, str]] = []
    if origen:
        params.append(("origen", origen))
    if api_key:
        params.append(("api_key", api_key))
    for wp in waypoints or []:
        params.append(("waypoints", wp.strip()))
    return await _get("ruta_optima", params, {"Accept": "application/json"})


# ════════════════════════════════════════════════════════════════════════════
# PROXY (status externo preservado)
# ════════════════════════════════════════════════════════════════════════════

async def proxy_predicciones(query: Dict[str, Optional[str]]) -> Tuple[int, Any]:
    params = {k: query[k] for k in PREDICTION_PARAMS if query.get(k)}
    try:
        data = await _get("predecir_ejecutivo", params, _token_headers())
    except PredictionServiceError as e:
        return e.status_code, e.body
    return 200, data


async def proxy_ruta_optima(origen: str, waypoints: List[str], api_key: str = None) -> Tuple[int, Any]:
    try:
        data = await fetch_optimal_route(origen, waypoints, api_key)
    except PredictionServiceError as e:
        return e.status_code, e.body
    return 200, data
