"""
Rutero - Routes CRM
Clientes telefónicos, cola de llamadas priorizada, registro de llamadas
y base telefónica.
"""

import re
import uuid
from fastapi import APIRouter, Depends, HTTPException, UploadFile, File
from typing import Optional

from config import db, now_iso
from models import CustomerCreate, CallLog, PhoneContactCreate
from services.permissions import require_permission, user_has_permission
from services.call_queue import agent_queue, log_call
from services.client_import import import_phone_contacts, ImportFormatError

router = APIRouter(prefix="/crm", tags=["CRM"])


# ==================== CLIENTES CRM ====================

@router.get("/customers")
async def list_customers(agent_id: Optional[str] = None, user: dict = Depends(require_permission("crm.view"))):
    query = {"agent_id": user["id"]}
    if agent_id and user_has_permission(user, "crm.manage"):
        query["agent_id"] = agent_id
    customers = await db.customers.find(query, {"_id": 0}).sort("name", 1).to_list(5000)
    return {"customers": customers, "count": len(customers)}


@router.post("/customers")
async def create_customer(data: CustomerCreate, user: dict = Depends(require_permission("crm.manage"))):
    customer = data.model_dump()
    customer["agent_id"] = customer.get("agent_id") or user["id"]
    customer.update({"id": str(uuid.uuid4()), "created_at": now_iso()})
    await db.customers.insert_one(customer)
    customer.pop("_id", None)
    return {"success": True, "customer": customer}


@router.get("/customers/{customer_id}")
async def get_customer(customer_id: str, user: dict = Depends(require_permission("crm.view"))):
    customer = await db.customers.find_one({"id": customer_id}, {"_id": 0})
    if not customer:
        raise HTTPException(status_code=404, detail="Cliente CRM no encontrado")
    calls = await db.calls.find({"customer_id": customer_id}, {"_id": 0}) \
        .sort("timestamp", -1).to_list(50)
    return {"customer": customer, "calls": calls}


# ==================== COLA DE LLAMADAS ====================

@router.get("/queue")
async def call_queue(user: dict = Depends(require_permission("crm.view"))):
    """Cola priorizada del agente conectado"""
    return await agent_queue(user["id"])


@router.post("/calls")
async def register_call(data: CallLog, user: dict = Depends(require_permission("crm.view"))):
    result = await log_call(user, data)
    if result is None:
        raise HTTPException(status_code=404, detail="Cliente CRM no encontrado")
    return {"success": True, **result}


# ==================== BASE TELEFÓNICA ====================

@router.get("/phone-contacts")
async def list_phone_contacts(search: Optional[str] = None, user: dict = Depends(require_permission("crm.view"))):
    query = {}
    if search:
        pattern = {"$regex": re.escape(search.strip()), "$options": "i"}
        query["$or"] = [
            {"cedula": pattern},
            {"nombre_cliente": pattern},
            {"nombre_comercial": pattern},
            {"ciudad": pattern},
            {"nombre_vendedor": pattern},
        ]
    contacts = await db.phone_contacts.find(query, {"_id": 0}).to_list(5000)
    return {"contacts": contacts, "count": len(contacts)}


@router.post("/phone-contacts")
async def create_phone_contact(data: PhoneContactCreate, user: dict = Depends(require_permission("crm.manage"))):
    if not data.cedula.strip() or not data.nombre_cliente.strip():
        raise HTTPException(status_code=400, detail="Cédula y nombre del cliente son obligatorios")
    contact = data.model_dump()
    contact.update({"id": str(uuid.uuid4()), "created_at": now_iso()})
    await db.phone_contacts.insert_one(contact)
    contact.pop("_id", None)
    return {"success": True, "contact": contact}


@router.post("/phone-contacts/import")
async def upload_phone_contacts(
    file: UploadFile = File(...),
    user: dict = Depends(require_permission("crm.manage"))
):
    content = await file.read()
    try:
        result = await import_phone_contacts(content, user)
    except (ImportFormatError, UnicodeDecodeError) as e:
        raise HTTPException(status_code=400, detail=str(e))
    if result["added"] == 0:
        raise HTTPException(status_code=400, detail="No se encontraron filas con datos válidos para procesar.")
    return {"success": True, **result}
