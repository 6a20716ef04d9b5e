"""
╔══════════════════════════════════════════════════════════════════════════════╗
║  Rutero - Recuperación de rutas predichas                                    ║
║                                                                              ║
║  Una ruta predicha que quedó sin entradas activas (lista perdida o           ║
║  vaciada por error) se reconstruye llamando otra vez al servicio de          ║
║  predicción con el ejecutivo y la fecha base de la ruta.                     ║
║                                                                              ║
║  REGLA: la lista reconstruida se DEVUELVE, no se guarda.                     ║
║  Las entradas eliminadas se conservan delante de la lista nueva.             ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

import re
import logging
from typing import Any, Dict, List, Optional

from config import db, parse_day, ROUTE_WINDOW_DAYS
from models.route import Origin, EntryStatus, new_route_client, to_amount
from services.prediction_client import fetch_predictions
from services.route_state_machine import active_entries

logger = logging.getLogger("route_recovery")

PREDICTED_NAME_PREFIX = "Ruta Predicha"
_EXECUTIVE_RE = re.compile(r"^Ruta Predicha para\s+(.+?)\s+-\s+.*$")

# Variantes de claves devueltas por el servicio de predicción
RUC_KEYS = ["RUC", "ruc", "Ruc"]
NAME_KEYS = ["nombre_comercial", "NombreComercial", "Nombre_Comercial", "nombre_cliente", "Cliente"]
SALES_KEYS = ["Venta", "ventas", "valorVenta", "venta"]
COLLECTION_KEYS = ["Cobro", "cobros", "valorCobro", "cobro"]
PROMO_KEYS = ["promociones", "Promociones", "promocion"]
DATE_KEYS = ["fecha_predicha", "fecha", "Fecha"]

MESES = [
    "enero", "febrero", "marzo", "abril", "mayo", "junio",
    "julio", "agosto", "septiembre", "octubre", "noviembre", "diciembre",
]


class RecoveryError(Exception):
    """La ruta no se puede recuperar (no es predicha, o no hay predicciones)"""
    pass


def first_value(data: Dict[str, Any], keys: List[str]) -> Any:
    for key in keys:
        value = data.get(key)
        if value not in (None, ""):
            return value
    return None


def format_fecha_larga(value) -> str:
    """2024-01-05 → '5 de enero de 2024'"""
    day = parse_day(value)
    if day is None:
        return str(value or "")
    return f"{day.day} de {MESES[day.month - 1]} de {day.year}"


def predicted_route_name(ejecutivo: str, day) -> str:
    return f"{PREDICTED_NAME_PREFIX} para {ejecutivo} - {format_fecha_larga(day)}"


def is_predicted(route: dict) -> bool:
    if route.get("origin") == Origin.PREDICTED.value:
        return True
    # Documentos antiguos sin origin: se reconoce por el nombre
    return PREDICTED_NAME_PREFIX in (route.get("route_name") or "")


def is_recoverable(route: dict) -> bool:
    return is_predicted(route) and len(active_entries(route)) == 0


def parse_executive(route_name: str) -> Optional[str]:
    """'Ruta Predicha para Juan Pérez - Semana 5' → 'Juan Pérez'"""
    if not route_name:
        return None
    match = _EXECUTIVE_RE.match(route_name.strip())
    if match:
        return match.group(1).strip()
    if "para " in route_name:
        tail = route_name.split("para ", 1)[1]
        return tail.rsplit(" - ", 1)[0].strip() or None
    return None


def map_prediction(prediction: Dict[str, Any], default_day: str, names: Dict[str, str] = None) -> Optional[dict]:
    """Una predicción → una entrada de ruta predicted / Activo / Pendiente"""
    ruc = first_value(prediction, RUC_KEYS)
    if ruc is None:
        return None
    ruc = str(ruc).strip()

    name = first_value(prediction, NAME_KEYS) or (names or {}).get(ruc) or ruc
    day = parse_day(first_value(prediction, DATE_KEYS)) or parse_day(default_day)

    return new_route_client(
        ruc,
        str(name),
        day.isoformat() if day else default_day,
        origin=Origin.PREDICTED.value,
        valor_venta=to_amount(first_value(prediction, SALES_KEYS)),
        valor_cobro=to_amount(first_value(prediction, COLLECTION_KEYS)),
        promociones=to_amount(first_value(prediction, PROMO_KEYS)),
    )


async def _registry_names(predictions: List[dict]) -> Dict[str, str]:
    rucs = [str(r).strip() for r in (first_value(p, RUC_KEYS) for p in predictions) if r is not None]
    if not rucs:
        return {}
    docs = await db.clients.find(
        {"ruc": {"$in": rucs}},
        {"_id": 0, "ruc": 1, "nombre_comercial": 1, "nombre_cliente": 1}
    ).to_list(len(rucs))
    return {
        d["ruc"]: d.get("nombre_comercial") or d.get("nombre_cliente") or d["ruc"]
        for d in docs
    }


async def recover_route_clients(route: dict) -> List[dict]:
    """
    Reconstruye la lista de clientes de una ruta predicha vacía.
    Devuelve la lista completa a guardar: eliminados + reconstruidos.
    """
    if not is_recoverable(route):
        raise RecoveryError("La ruta no es una ruta predicha sin clientes activos")

    ejecutivo = parse_executive(route.get("route_name", ""))
    if not ejecutivo:
        raise RecoveryError("No se pudo determinar el ejecutivo desde el nombre de la ruta")

    base_day = parse_day(route.get("date"))
    fecha_inicio = base_day.isoformat() if base_day else None

    predictions = await fetch_predictions(ejecutivo, fecha_inicio, dias=ROUTE_WINDOW_DAYS)
    names = await _registry_names(predictions)

    rebuilt = []
    for prediction in predictions:
        entry = map_prediction(prediction, fecha_inicio, names)
        if entry:
            rebuilt.append(entry)

    if not rebuilt:
        logger.warning(f"[RECOVERY] route={route['id']} ejecutivo={ejecutivo}: no predictions")
        raise RecoveryError(f"El servicio de predicción no devolvió clientes para {ejecutivo}")

    removed = [
        c for c in route.get("clients") or []
        if c.get("status") == EntryStatus.ELIMINADO.value
    ]
    logger.info(
        f"[RECOVERY] route={route['id']} ejecutivo={ejecutivo} "
        f"rebuilt={len(rebuilt)} kept_removed={len(removed)}"
    )
    return removed + rebuilt
