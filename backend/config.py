"""
Configuration et utilitaires partagés
"""

import os
import hashlib
import secrets
from datetime import datetime, timezone, date
import pytz
from motor.motor_asyncio import AsyncIOMotorClient
from dotenv import load_dotenv
from pathlib import Path

# Cargar .env
ROOT_DIR = Path(__file__).parent
load_dotenv(ROOT_DIR / '.env')

# MongoDB
MONGO_URL = os.environ.get('MONGO_URL', 'mongodb://localhost:27017')
DB_NAME = os.environ.get('DB_NAME', 'rutero')

client = AsyncIOMotorClient(MONGO_URL)
db = client[DB_NAME]

# Servicio externo de predicción / optimización de rutas
PREDICTION_API_URL = os.environ.get(
    'PREDICTION_API_URL', 'https://api-distribucion-rutas.onrender.com'
).rstrip('/')
PREDICTION_API_TOKEN = os.environ.get('PREDICTION_API_TOKEN', '')
PREDICTION_TIMEOUT_SECONDS = float(os.environ.get('PREDICTION_TIMEOUT_SECONDS', '30'))

# Zona horaria de los vendedores (fechas de ruta y horas de visita)
APP_TIMEZONE = os.environ.get('APP_TIMEZONE', 'America/Guayaquil')

SESSION_DAYS = int(os.environ.get('SESSION_DAYS', '7'))
SCHEDULER_ENABLED = os.environ.get('SCHEDULER_ENABLED', 'true').lower() == 'true'

# Bloqueo progresivo: al llegar a este número de fallos la cuenta pasa a inactive
MAX_FAILED_LOGIN_ATTEMPTS = 5

# Ventana de una ruta desde su fecha base
ROUTE_WINDOW_DAYS = 7


# ==================== HELPERS ====================

def hash_password(password: str) -> str:
    """Hash de una contraseña con SHA256"""
    return hashlib.sha256(password.encode()).hexdigest()


def generate_token() -> str:
    """Genera un token de sesión seguro"""
    return secrets.token_urlsafe(32)


def now_iso() -> str:
    """Fecha/hora actual UTC en ISO"""
    return datetime.now(timezone.utc).isoformat()


def local_tz():
    return pytz.timezone(APP_TIMEZONE)


def local_now() -> datetime:
    """Fecha/hora actual en la zona horaria de la aplicación"""
    return datetime.now(local_tz())


def local_today() -> date:
    return local_now().date()


def wall_clock(moment: datetime = None) -> str:
    """Hora local con resolución de segundos, p.ej. 2024-01-08T09:15:02"""
    moment = moment or local_now()
    return moment.strftime("%Y-%m-%dT%H:%M:%S")


def parse_day(value) -> date:
    """
    Convierte 'YYYY-MM-DD', un ISO completo, date o datetime en date.
    Devuelve None si no se puede interpretar.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00")).date()
    except ValueError:
        return None
