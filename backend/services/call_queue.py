"""
Rutero - Cola de llamadas del CRM

Prioriza los clientes de un telemercaderista:
- días de atraso sobre next_call_date × 1.5
- +50 VIP, +20 lead
- +100 si está próximo a comprar (días desde la última compra
  >= frecuencia de compra - 5)
"""

import uuid
import logging
from datetime import date, timedelta
from typing import List

from config import db, now_iso, local_today, parse_day
from services.event_logger import log_event

logger = logging.getLogger("call_queue")

OVERDUE_WEIGHT = 1.5
VIP_BONUS = 50
LEAD_BONUS = 20
NEXT_TO_BUY_BONUS = 100
NEXT_TO_BUY_MARGIN_DAYS = 5

# Días hasta la próxima llamada según tier
NEXT_CALL_DAYS = {"VIP": 15, "Medio": 30}
DEFAULT_NEXT_CALL_DAYS = 60


def next_call_days(tier: str) -> int:
    return NEXT_CALL_DAYS.get(tier, DEFAULT_NEXT_CALL_DAYS)


def is_next_to_buy(customer: dict, today: date) -> bool:
    last_purchase = parse_day(customer.get("last_purchase_date"))
    if last_purchase is None:
        return False
    frequency = int(customer.get("purchase_frequency_days") or 0)
    return (today - last_purchase).days >= frequency - NEXT_TO_BUY_MARGIN_DAYS


def score_customer(customer: dict, today: date) -> dict:
    next_date = parse_day(customer.get("next_call_date")) or today
    days_overdue = (today - next_date).days

    score = max(days_overdue, 0) * OVERDUE_WEIGHT
    if customer.get("tier") == "VIP":
        score += VIP_BONUS
    if customer.get("status") == "lead":
        score += LEAD_BONUS
    next_to_buy = is_next_to_buy(customer, today)
    if next_to_buy:
        score += NEXT_TO_BUY_BONUS

    scored = dict(customer)
    scored.update({
        "score": score,
        "days_overdue": days_overdue,
        "is_next_to_buy": next_to_buy,
        "next_date": next_date.isoformat(),
    })
    return scored


def build_queue(customers: List[dict], today: date = None) -> dict:
    """Cola ordenada por score descendente + contadores del tablero"""
    today = today or local_today()
    queue = sorted(
        (score_customer(c, today) for c in customers),
        key=lambda c: c["score"],
        reverse=True
    )
    return {
        "queue": queue,
        "stats": {
            "total": len(queue),
            "overdue": sum(1 for c in queue if parse_day(c["next_date"]) < today),
            "next_to_buy": sum(1 for c in queue if c["is_next_to_buy"]),
            "vip": sum(1 for c in queue if c.get("tier") == "VIP"),
        }
    }


async def agent_queue(agent_id: str, today: date = None) -> dict:
    customers = await db.customers.find({"agent_id": agent_id}, {"_id": 0}).to_list(5000)
    return build_queue(customers, today)


async def log_call(user: dict, data, today: date = None) -> dict:
    """Registra la llamada y programa la siguiente según el tier del cliente"""
    customer = await db.customers.find_one({"id": data.customer_id}, {"_id": 0})
    if not customer:
        return None

    today = today or local_today()
    days = next_call_days(customer.get("tier"))
    next_call = (today + timedelta(days=days)).isoformat()

    call = {
        "id": str(uuid.uuid4()),
        "customer_id": customer["id"],
        "agent_id": user["id"],
        "duration": data.duration,
        "outcome": data.outcome,
        "notes": data.notes,
        "timestamp": now_iso(),
    }
    await db.calls.insert_one(call)
    call.pop("_id", None)

    updates = {"next_call_date": next_call, "last_call_at": call["timestamp"]}
    await db.customers.update_one({"id": customer["id"]}, {"$set": updates})

    logger.info(
        f"[CRM_CALL] customer={customer['id']} agent={user.get('email')} "
        f"outcome={data.outcome} next_call={next_call}"
    )
    await log_event(
        action="crm_call",
        entity_type="customer",
        entity_id=customer["id"],
        user=user.get("email", "system"),
        details={"outcome": data.outcome, "next_call_date": next_call}
    )
    return {"call": call, "next_call_date": next_call, "days_to_next_call": days}
