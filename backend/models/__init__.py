"""
╔══════════════════════════════════════════════════════════════════════════════╗
║  Rutero - Models Package                                                     ║
║                                                                              ║
║  Exporta todos los modelos para import fácil                                 ║
║  from models import RouteStatus, ClientCreate, CheckIn, etc.                 ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

# Auth
from .auth import (
    VALID_ROLES,
    UserLogin,
    UserCreate,
    UserUpdate,
    SecurityAction,
    SetPassword,
)

# Cliente
from .client import (
    ClientCreate,
    ClientUpdate,
    PhoneContactCreate,
)

# Ruta
from .route import (
    RouteStatus,
    EntryStatus,
    VisitStatus,
    Origin,
    VisitType,
    MONETARY_FIELDS,
    to_amount,
    normalize_route_client,
    new_route_client,
    Location,
    ClientInRouteInput,
    RouteCreate,
    RouteUpdate,
    AddClients,
    RemoveClient,
    ClientValuesUpdate,
    ReplaceClients,
    ReviewAction,
    SelectClient,
    CheckIn,
    Gesture,
    CheckOut,
    PredictedRouteCreate,
)

# CRM
from .crm import (
    VALID_TIERS,
    CustomerCreate,
    CallLog,
)

__all__ = [
    # Auth
    "VALID_ROLES",
    "UserLogin",
    "UserCreate",
    "UserUpdate",
    "SecurityAction",
    "SetPassword",
    # Cliente
    "ClientCreate",
    "ClientUpdate",
    "PhoneContactCreate",
    # Ruta
    "RouteStatus",
    "EntryStatus",
    "VisitStatus",
    "Origin",
    "VisitType",
    "MONETARY_FIELDS",
    "to_amount",
    "normalize_route_client",
    "new_route_client",
    "Location",
    "ClientInRouteInput",
    "RouteCreate",
    "RouteUpdate",
    "AddClients",
    "RemoveClient",
    "ClientValuesUpdate",
    "ReplaceClients",
    "ReviewAction",
    "SelectClient",
    "CheckIn",
    "Gesture",
    "CheckOut",
    "PredictedRouteCreate",
    # CRM
    "VALID_TIERS",
    "CustomerCreate",
    "CallLog",
]
