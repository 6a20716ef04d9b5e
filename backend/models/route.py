"""
╔══════════════════════════════════════════════════════════════════════════════╗
║  Rutero - Modelo Ruta (RoutePlan + ClientInRoute)                            ║
║                                                                              ║
║  LIFECYCLE:                                                                  ║
║  Planificada / Pendiente de Aprobación → En Progreso →                       ║
║  Completada / Incompleta            (Rechazada vuelve a ser editable)        ║
║                                                                              ║
║  REGLA: un cliente eliminado de la ruta se conserva (status=Eliminado)       ║
║  con su observación obligatoria. Nunca se borra del array.                   ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

from enum import Enum
from typing import Optional, List, Dict, Any
from pydantic import BaseModel, field_validator


class RouteStatus(str, Enum):
    PLANIFICADA = "Planificada"
    PENDIENTE_APROBACION = "Pendiente de Aprobación"
    EN_PROGRESO = "En Progreso"
    COMPLETADA = "Completada"
    INCOMPLETA = "Incompleta"
    RECHAZADA = "Rechazada"


class EntryStatus(str, Enum):
    ACTIVO = "Activo"
    ELIMINADO = "Eliminado"


class VisitStatus(str, Enum):
    PENDIENTE = "Pendiente"
    COMPLETADO = "Completado"


class Origin(str, Enum):
    MANUAL = "manual"
    PREDICTED = "predicted"


class VisitType(str, Enum):
    PRESENCIAL = "presencial"
    TELEFONICA = "telefonica"


MONETARY_FIELDS = [
    "valor_venta",
    "valor_cobro",
    "devoluciones",
    "promociones",
    "medicacion_frecuente",
]

VALID_TIPO_COBRO = ["Efectivo", "Transferencia", "Cheque"]


def to_amount(value) -> float:
    """Valor monetario tolerante: '12.5', None, '' o basura → float (0 por defecto)"""
    try:
        amount = float(str(value if value not in (None, "") else 0).replace(",", "."))
    except ValueError:
        return 0.0
    if amount != amount:  # NaN
        return 0.0
    return amount


def normalize_route_client(entry: Dict[str, Any]) -> Dict[str, Any]:
    """
    Completa los defaults de una entrada ClientInRoute leída de la base.
    Documentos antiguos pueden no traer status/visit_status/origin.
    """
    normalized = dict(entry)
    normalized.setdefault("status", EntryStatus.ACTIVO.value)
    normalized.setdefault("visit_status", VisitStatus.PENDIENTE.value)
    normalized.setdefault("origin", Origin.MANUAL.value)
    normalized.setdefault("check_in_time", None)
    normalized.setdefault("check_out_time", None)
    for field in MONETARY_FIELDS:
        normalized[field] = to_amount(normalized.get(field))
    return normalized


def new_route_client(
    ruc: str,
    nombre_comercial: str,
    day: Optional[str],
    origin: str = Origin.MANUAL.value,
    **values
) -> Dict[str, Any]:
    """Nueva entrada de ruta en estado Activo / Pendiente"""
    entry = {
        "ruc": ruc,
        "nombre_comercial": nombre_comercial,
        "date": day,
        "status": EntryStatus.ACTIVO.value,
        "visit_status": VisitStatus.PENDIENTE.value,
        "origin": origin,
        "check_in_time": None,
        "check_in_location": None,
        "check_out_time": None,
        "check_out_location": None,
        "visit_type": None,
        "call_observation": None,
    }
    entry.update(values)
    return normalize_route_client(entry)


# ==================== REQUEST MODELS ====================

class Location(BaseModel):
    lat: float
    lng: float


class ClientInRouteInput(BaseModel):
    """Cliente seleccionado al planificar una ruta"""
    ruc: str
    date: Optional[str] = None
    day_of_week: Optional[str] = None
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    valor_venta: Optional[float] = None
    valor_cobro: Optional[float] = None
    tipo_cobro: Optional[str] = None
    devoluciones: Optional[float] = None
    promociones: Optional[float] = None
    medicacion_frecuente: Optional[float] = None

    @field_validator("tipo_cobro")
    @classmethod
    def validate_tipo_cobro(cls, v):
        if v is not None and v not in VALID_TIPO_COBRO:
            raise ValueError(f"Tipo de cobro inválido: {v}")
        return v


class RouteCreate(BaseModel):
    route_name: str = ""
    date: str
    supervisor_id: str = ""
    clients: List[ClientInRouteInput] = []
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    submit_for_approval: bool = False


class RouteUpdate(BaseModel):
    route_name: Optional[str] = None
    date: Optional[str] = None
    supervisor_id: Optional[str] = None
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    expected_version: Optional[int] = None


class AddClients(BaseModel):
    rucs: List[str]
    date: Optional[str] = None
    expected_version: Optional[int] = None


class RemoveClient(BaseModel):
    observation: str
    expected_version: Optional[int] = None


class ClientValuesUpdate(BaseModel):
    date: Optional[str] = None
    day_of_week: Optional[str] = None
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    valor_venta: Optional[float] = None
    valor_cobro: Optional[float] = None
    tipo_cobro: Optional[str] = None
    devoluciones: Optional[float] = None
    promociones: Optional[float] = None
    medicacion_frecuente: Optional[float] = None
    expected_version: Optional[int] = None

    @field_validator("tipo_cobro")
    @classmethod
    def validate_tipo_cobro(cls, v):
        if v is not None and v not in VALID_TIPO_COBRO:
            raise ValueError(f"Tipo de cobro inválido: {v}")
        return v


class ReplaceClients(BaseModel):
    """Guarda una lista de clientes reconstruida (p.ej. tras una recuperación)"""
    clients: List[Dict[str, Any]]
    expected_version: Optional[int] = None


class ReviewAction(BaseModel):
    observation: Optional[str] = None
    expected_version: Optional[int] = None


class SelectClient(BaseModel):
    ruc: str


class CheckIn(BaseModel):
    ruc: str
    location: Optional[Location] = None
    operation_id: Optional[str] = None


class Gesture(BaseModel):
    ruc: str
    visit_type: Optional[VisitType] = None
    call_observation: Optional[str] = None
    valor_venta: Optional[float] = None
    valor_cobro: Optional[float] = None
    tipo_cobro: Optional[str] = None
    devoluciones: Optional[float] = None
    promociones: Optional[float] = None
    medicacion_frecuente: Optional[float] = None

    @field_validator("tipo_cobro")
    @classmethod
    def validate_tipo_cobro(cls, v):
        if v is not None and v not in VALID_TIPO_COBRO:
            raise ValueError(f"Tipo de cobro inválido: {v}")
        return v


class CheckOut(BaseModel):
    ruc: str
    location: Optional[Location] = None


class PredictedRouteCreate(BaseModel):
    """Ruta generada desde las predicciones de un ejecutivo"""
    ejecutivo: str
    fecha_inicio: Optional[str] = None
    dias: int = 7
    lat_base: Optional[str] = None
    lon_base: Optional[str] = None
    max_km: Optional[float] = None
