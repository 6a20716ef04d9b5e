"""
╔══════════════════════════════════════════════════════════════════════════════╗
║  Rutero - Routes Clients                                                     ║
║                                                                              ║
║  Registro de clientes (farmacias) + cargas CSV                               ║
║  REGLA: el RUC es único en el registro                                       ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

import re
import uuid
from fastapi import APIRouter, Depends, HTTPException, Query, UploadFile, File
from typing import Optional

from config import db, now_iso
from routes.auth import get_current_user
from models import ClientCreate, ClientUpdate
from services.permissions import require_permission
from services.client_import import import_clients, import_locations, ImportFormatError

router = APIRouter(prefix="/clients", tags=["Clients"])


@router.get("")
async def list_clients(
    search: Optional[str] = Query(None, description="Nombre, RUC, ejecutivo o provincia"),
    ejecutivo: Optional[str] = None,
    active_only: bool = False,
    limit: int = 5000,
    user: dict = Depends(require_permission("clients.view"))
):
    query = {}
    if ejecutivo:
        query["ejecutivo"] = ejecutivo
    if active_only:
        query["status"] = {"$ne": "inactive"}
    if search:
        pattern = {"$regex": re.escape(search.strip()), "$options": "i"}
        query["$or"] = [
            {"nombre_cliente": pattern},
            {"nombre_comercial": pattern},
            {"ruc": pattern},
            {"ejecutivo": pattern},
            {"provincia": pattern},
        ]

    clients = await db.clients.find(query, {"_id": 0}).sort("nombre_comercial", 1).to_list(limit)
    return {"clients": clients, "count": len(clients)}


@router.get("/mine")
async def my_clients(user: dict = Depends(get_current_user)):
    """Clientes cuyo ejecutivo es el vendedor conectado"""
    clients = await db.clients.find(
        {"ejecutivo": user.get("name", ""), "status": {"$ne": "inactive"}},
        {"_id": 0}
    ).sort("nombre_comercial", 1).to_list(5000)
    return {"clients": clients, "count": len(clients)}


@router.post("/import")
async def upload_clients(
    file: UploadFile = File(...),
    user: dict = Depends(require_permission("clients.import"))
):
    """Carga CSV de clientes: añade nuevos y actualiza existentes por RUC"""
    content = await file.read()
    try:
        result = await import_clients(content, user)
    except (ImportFormatError, UnicodeDecodeError) as e:
        raise HTTPException(status_code=400, detail=str(e))
    if result["added"] + result["updated"] == 0:
        raise HTTPException(status_code=400, detail="No se encontraron filas con datos válidos para procesar.")
    return {"success": True, **result}


@router.post("/locations/import")
async def upload_locations(
    file: UploadFile = File(...),
    user: dict = Depends(require_permission("clients.import"))
):
    """Carga CSV de ubicaciones: RUC, Provincia, Canton, Direccion, Latitud, Longitud"""
    content = await file.read()
    try:
        result = await import_locations(content, user)
    except (ImportFormatError, UnicodeDecodeError) as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"success": True, **result}


@router.get("/{client_id}")
async def get_client(client_id: str, user: dict = Depends(require_permission("clients.view"))):
    client = await db.clients.find_one({"id": client_id}, {"_id": 0})
    if not client:
        raise HTTPException(status_code=404, detail="Cliente no encontrado")
    return client


@router.post("")
async def create_client(data: ClientCreate, user: dict = Depends(require_permission("clients.create"))):
    existing = await db.clients.find_one({"ruc": data.ruc})
    if existing:
        raise HTTPException(status_code=400, detail=f"Ya existe un cliente con el RUC {data.ruc}")

    client = data.model_dump()
    client.update({
        "id": str(uuid.uuid4()),
        "created_at": now_iso(),
        "updated_at": now_iso(),
        "created_by": user.get("id"),
    })
    await db.clients.insert_one(client)
    client.pop("_id", None)
    return {"success": True, "client": client}


@router.put("/{client_id}")
async def update_client(
    client_id: str,
    data: ClientUpdate,
    user: dict = Depends(require_permission("clients.edit"))
):
    existing = await db.clients.find_one({"id": client_id})
    if not existing:
        raise HTTPException(status_code=404, detail="Cliente no encontrado")

    update_data = {k: v for k, v in data.model_dump().items() if v is not None}
    update_data["updated_at"] = now_iso()
    await db.clients.update_one({"id": client_id}, {"$set": update_data})

    client = await db.clients.find_one({"id": client_id}, {"_id": 0})
    return {"success": True, "client": client}


@router.delete("/{client_id}")
async def delete_client(client_id: str, user: dict = Depends(require_permission("clients.delete"))):
    """
    Borra el cliente del registro.
    Las rutas conservan su copia (ruc + nombre_comercial) en cada entrada.
    """
    result = await db.clients.delete_one({"id": client_id})
    if result.deleted_count == 0:
        raise HTTPException(status_code=404, detail="Cliente no encontrado")
    return {"success": True}
