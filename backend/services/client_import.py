"""
Rutero - Importación CSV

Tres cargas masivas:
- registro de clientes (upsert por RUC)
- ubicaciones (actualiza provincia/cantón/dirección/coordenadas por RUC)
- base telefónica del CRM

Los encabezados se normalizan: minúsculas, sin espacios ni guiones bajos.
"""

import csv
import io
import uuid
import logging
from typing import Dict, List, Tuple

from config import db, now_iso
from services.event_logger import log_event

logger = logging.getLogger("client_import")

CLIENT_REQUIRED_COLUMNS = [
    "ejecutivo", "ruc", "nombre_cliente", "nombre_comercial", "canton", "direccion", "provincia",
]
LOCATION_REQUIRED_COLUMNS = ["RUC", "Provincia", "Canton", "Direccion", "Latitud", "Longitud"]
PHONE_REQUIRED_COLUMNS = [
    "cedula", "nombre_del_cliente", "nombre_comercial", "ciudad", "regional",
    "nombre_del_vendedor", "direccion_del_cliente", "telefono1", "estado_cliente",
]


class ImportFormatError(Exception):
    """El archivo no tiene las columnas obligatorias"""
    pass


def normalize_header(header: str) -> str:
    return str(header or "").strip().lower().replace(" ", "").replace("_", "")


def parse_decimal(value) -> float:
    """'-2,1894' → -2.1894 ; vacío o inválido → None"""
    text = str(value if value is not None else "").strip().replace(",", ".")
    if not text:
        return None
    try:
        number = float(text)
    except ValueError:
        return None
    if number != number:
        return None
    return number


def read_csv(content) -> Tuple[List[str], List[Dict[str, str]]]:
    """Encabezados originales + filas con claves normalizadas"""
    if isinstance(content, bytes):
        content = content.decode("utf-8-sig")
    reader = csv.DictReader(io.StringIO(content))
    headers = [h for h in (reader.fieldnames or []) if h is not None]
    rows = []
    for row in reader:
        rows.append({
            normalize_header(k): (v or "").strip()
            for k, v in row.items() if k is not None
        })
    return headers, rows


def _check_columns(headers: List[str], required: List[str]):
    present = {normalize_header(h) for h in headers}
    missing = [c for c in required if normalize_header(c) not in present]
    if missing:
        raise ImportFormatError(f"Faltan columnas obligatorias: {', '.join(missing)}")


# ════════════════════════════════════════════════════════════════════════════
# PARSERS (puros)
# ════════════════════════════════════════════════════════════════════════════

def parse_clients_csv(content) -> Tuple[List[dict], int]:
    """Devuelve (clientes válidos, filas omitidas)"""
    headers, rows = read_csv(content)
    _check_columns(headers, CLIENT_REQUIRED_COLUMNS)

    clients = []
    skipped = 0
    for row in rows:
        if not row.get("ruc") or not row.get("nombrecliente"):
            skipped += 1
            continue
        clients.append({
            "ejecutivo": row.get("ejecutivo", ""),
            "ruc": row["ruc"],
            "nombre_cliente": row["nombrecliente"],
            "nombre_comercial": row.get("nombrecomercial", ""),
            "provincia": row.get("provincia", ""),
            "canton": row.get("canton", ""),
            "direccion": row.get("direccion", ""),
            "latitud": parse_decimal(row.get("latitudtrz") or row.get("latitud")) or 0.0,
            "longitud": parse_decimal(row.get("longitudtrz") or row.get("longitud")) or 0.0,
        })
    return clients, skipped


def parse_locations_csv(content) -> Tuple[List[dict], int]:
    headers, rows = read_csv(content)
    _check_columns(headers, LOCATION_REQUIRED_COLUMNS)

    locations = []
    skipped = 0
    for row in rows:
        lat = parse_decimal(row.get("latitud"))
        lng = parse_decimal(row.get("longitud"))
        if not (row.get("ruc") and row.get("provincia") and row.get("canton") and row.get("direccion")) \
                or lat is None or lng is None:
            skipped += 1
            continue
        locations.append({
            "ruc": row["ruc"],
            "provincia": row["provincia"],
            "canton": row["canton"],
            "direccion": row["direccion"],
            "latitud": lat,
            "longitud": lng,
        })
    return locations, skipped


def parse_phone_contacts_csv(content) -> Tuple[List[dict], int]:
    headers, rows = read_csv(content)
    _check_columns(headers, PHONE_REQUIRED_COLUMNS)

    contacts = []
    skipped = 0
    for row in rows:
        if not row.get("cedula") or not row.get("nombredelcliente"):
            skipped += 1
            continue
        estado = row.get("estadocliente")
        contacts.append({
            "cedula": row["cedula"],
            "nombre_cliente": row["nombredelcliente"],
            "nombre_comercial": row.get("nombrecomercial", ""),
            "ciudad": row.get("ciudad", ""),
            "regional": row.get("regional", ""),
            "nombre_vendedor": row.get("nombredelvendedor", ""),
            "direccion_cliente": row.get("direcciondelcliente", ""),
            "telefono1": row.get("telefono1", ""),
            "estado_cliente": estado if estado in ("Activo", "Inactivo") else "Activo",
            "observacion": row.get("observacion", ""),
        })
    return contacts, skipped


# ════════════════════════════════════════════════════════════════════════════
# ESCRITURA
# ════════════════════════════════════════════════════════════════════════════

async def import_clients(content, user: dict) -> dict:
    clients, skipped = parse_clients_csv(content)

    added = 0
    updated = 0
    for data in clients:
        existing = await db.clients.find_one({"ruc": data["ruc"]}, {"_id": 0, "id": 1})
        if existing:
            await db.clients.update_one(
                {"id": existing["id"]},
                {"$set": {**data, "updated_at": now_iso()}}
            )
            updated += 1
        else:
            await db.clients.insert_one({
                "id": str(uuid.uuid4()),
                **data,
                "status": "active",
                "created_at": now_iso(),
                "updated_at": now_iso(),
            })
            added += 1

    logger.info(f"[IMPORT] clients added={added} updated={updated} skipped={skipped} by={user.get('email')}")
    await log_event(
        action="clients_import",
        entity_type="import",
        entity_id="clients",
        user=user.get("email", "system"),
        details={"added": added, "updated": updated, "skipped": skipped}
    )
    return {"added": added, "updated": updated, "skipped": skipped}


async def import_locations(content, user: dict) -> dict:
    locations, skipped = parse_locations_csv(content)

    updated = 0
    not_found = []
    for data in locations:
        ruc = data.pop("ruc")
        result = await db.clients.update_one(
            {"ruc": ruc},
            {"$set": {**data, "updated_at": now_iso()}}
        )
        if result.matched_count:
            updated += 1
        else:
            not_found.append(ruc)

    logger.info(
        f"[IMPORT] locations updated={updated} not_found={len(not_found)} "
        f"skipped={skipped} by={user.get('email')}"
    )
    return {"updated": updated, "not_found": not_found, "skipped": skipped}


async def import_phone_contacts(content, user: dict) -> dict:
    contacts, skipped = parse_phone_contacts_csv(content)
    if contacts:
        now = now_iso()
        await db.phone_contacts.insert_many([
            {"id": str(uuid.uuid4()), **c, "created_at": now} for c in contacts
        ])
    logger.info(f"[IMPORT] phone_contacts added={len(contacts)} skipped={skipped} by={user.get('email')}")
    return {"added": len(contacts), "skipped": skipped}
