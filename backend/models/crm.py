"""
Rutero - Modelos CRM (clientes telefónicos y llamadas)
"""

from typing import Optional
from pydantic import BaseModel, field_validator


VALID_TIERS = ["VIP", "Medio", "Bajo"]
VALID_OUTCOMES = ["sold", "no_answer", "callback"]


class CustomerCreate(BaseModel):
    name: str
    phone: str = ""
    tier: str = "Bajo"
    status: str = "customer"
    next_call_date: str
    last_purchase_date: Optional[str] = None
    purchase_frequency_days: int = 30
    agent_id: Optional[str] = None

    @field_validator("tier")
    @classmethod
    def validate_tier(cls, v):
        if v not in VALID_TIERS:
            raise ValueError(f"Tier inválido: {v}")
        return v

    @field_validator("status")
    @classmethod
    def validate_status(cls, v):
        if v not in ("lead", "customer"):
            raise ValueError(f"Estado inválido: {v}")
        return v


class CallLog(BaseModel):
    customer_id: str
    duration: int = 0  # minutos
    outcome: str = "no_answer"
    notes: str = ""

    @field_validator("outcome")
    @classmethod
    def validate_outcome(cls, v):
        if v not in VALID_OUTCOMES:
            raise ValueError(f"Resultado inválido: {v}")
        return v
