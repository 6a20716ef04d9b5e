"""
Rutero - Modelos Auth & Usuarios
Role + Permission hybrid model.
Roles are presets. Permissions are the real authority.
"""

from pydantic import BaseModel, validator
from typing import Optional, Dict


VALID_ROLES = ["Administrador", "Supervisor", "Usuario", "Telemercaderista"]
VALID_USER_STATUS = ["active", "inactive"]


class UserLogin(BaseModel):
    email: str
    password: str


class UserCreate(BaseModel):
    email: str
    password: str
    name: str
    role: str = "Usuario"
    supervisor_id: Optional[str] = None
    permissions: Optional[Dict[str, bool]] = None

    @validator("role")
    def validate_role(cls, v):
        if v not in VALID_ROLES:
            raise ValueError(f"Rol inválido: {v}. Válidos: {VALID_ROLES}")
        return v

    @validator("password")
    def validate_password(cls, v):
        if len(v) < 6:
            raise ValueError("La contraseña debe tener al menos 6 caracteres")
        return v


class UserUpdate(BaseModel):
    name: Optional[str] = None
    role: Optional[str] = None
    supervisor_id: Optional[str] = None
    permissions: Optional[Dict[str, bool]] = None
    status: Optional[str] = None

    @validator("role")
    def validate_role(cls, v):
        if v is not None and v not in VALID_ROLES:
            raise ValueError(f"Rol inválido: {v}")
        return v

    @validator("status")
    def validate_status(cls, v):
        if v is not None and v not in VALID_USER_STATUS:
            raise ValueError(f"Estado inválido: {v}")
        return v


class SecurityAction(BaseModel):
    """Registro de fallos de inicio de sesión o reseteo del contador"""
    email: str
    action: str

    @validator("action")
    def validate_action(cls, v):
        if v not in ("fail", "reset"):
            raise ValueError("Acción no válida")
        return v


class SetPassword(BaseModel):
    uid: str
    password: str
