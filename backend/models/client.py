"""
Rutero - Modelo Cliente

REGLA: el RUC es único dentro del registro de clientes.
"""

from typing import Optional
from pydantic import BaseModel, field_validator


class ClientCreate(BaseModel):
    """Alta de un cliente"""
    ruc: str
    nombre_cliente: str
    nombre_comercial: str = ""
    ejecutivo: str = ""
    provincia: str = ""
    canton: str = ""
    direccion: str = ""
    latitud: Optional[float] = None
    longitud: Optional[float] = None
    status: str = "active"

    @field_validator("ruc", "nombre_cliente")
    @classmethod
    def required_text(cls, v):
        v = (v or "").strip()
        if not v:
            raise ValueError("Campo obligatorio")
        return v

    @field_validator("status")
    @classmethod
    def validate_status(cls, v):
        if v not in ("active", "inactive"):
            raise ValueError(f"Estado inválido: {v}")
        return v


class ClientUpdate(BaseModel):
    nombre_cliente: Optional[str] = None
    nombre_comercial: Optional[str] = None
    ejecutivo: Optional[str] = None
    provincia: Optional[str] = None
    canton: Optional[str] = None
    direccion: Optional[str] = None
    latitud: Optional[float] = None
    longitud: Optional[float] = None
    status: Optional[str] = None

    @field_validator("status")
    @classmethod
    def validate_status(cls, v):
        if v is not None and v not in ("active", "inactive"):
            raise ValueError(f"Estado inválido: {v}")
        return v


class PhoneContactCreate(BaseModel):
    """Contacto de la base telefónica del CRM"""
    cedula: str
    nombre_cliente: str
    nombre_comercial: str = ""
    ciudad: str = ""
    regional: str = ""
    nombre_vendedor: str = ""
    direccion_cliente: str = ""
    telefono1: str = ""
    estado_cliente: str = "Activo"
    observacion: str = ""

    @field_validator("estado_cliente")
    @classmethod
    def validate_estado(cls, v):
        if v not in ("Activo", "Inactivo"):
            raise ValueError(f"Estado inválido: {v}")
        return v
