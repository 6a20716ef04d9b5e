"""
Rutero - Reportes y KPIs

Agregaciones sobre las rutas (ventas, cobros, visitas) y exportación Excel.
Solo cuentan los valores de visitas Completado en entradas activas.
"""

import logging
from io import BytesIO
from datetime import date, timedelta
from typing import List, Optional

from openpyxl import Workbook
from openpyxl.styles import Font, PatternFill, Alignment, Border, Side

from config import db, local_today, parse_day
from models.route import RouteStatus
from services.route_store import find_routes
from services.route_state_machine import active_entries, COMPLETADA
from services.route_recovery import format_fecha_larga

logger = logging.getLogger("reports")

DIAS_SEMANA = ["L", "M", "X", "J", "V", "S", "D"]


def route_totals(route: dict) -> dict:
    """Totales de una ruta sobre las visitas completadas"""
    entries = active_entries(route)
    done = [c for c in entries if c.get("visit_status") == "Completado"]
    return {
        "clients": len(entries),
        "completed_visits": len(done),
        "pending_visits": len(entries) - len(done),
        "valor_venta": round(sum(c.get("valor_venta", 0) or 0 for c in done), 2),
        "valor_cobro": round(sum(c.get("valor_cobro", 0) or 0 for c in done), 2),
        "devoluciones": round(sum(c.get("devoluciones", 0) or 0 for c in done), 2),
        "promociones": round(sum(c.get("promociones", 0) or 0 for c in done), 2),
        "medicacion_frecuente": round(sum(c.get("medicacion_frecuente", 0) or 0 for c in done), 2),
    }


def sum_totals(routes: List[dict]) -> dict:
    totals = {
        "routes": len(routes), "clients": 0, "completed_visits": 0, "pending_visits": 0,
        "valor_venta": 0.0, "valor_cobro": 0.0, "devoluciones": 0.0,
        "promociones": 0.0, "medicacion_frecuente": 0.0,
    }
    for route in routes:
        for key, value in route_totals(route).items():
            totals[key] += value
    for key in ("valor_venta", "valor_cobro", "devoluciones", "promociones", "medicacion_frecuente"):
        totals[key] = round(totals[key], 2)
    return totals


def _summary_row(route: dict, seller_name: str = None) -> dict:
    row = {
        "id": route["id"],
        "route_name": route.get("route_name", ""),
        "date": route.get("date"),
        "status": route.get("status"),
        "seller_id": route.get("created_by"),
        "seller_name": seller_name or route.get("created_by_name", ""),
    }
    row.update(route_totals(route))
    return row


def _in_range(route: dict, date_from: Optional[date], date_to: Optional[date]) -> bool:
    day = parse_day(route.get("date"))
    if day is None:
        return date_from is None and date_to is None
    if date_from and day < date_from:
        return False
    if date_to and day > date_to:
        return False
    return True


# ════════════════════════════════════════════════════════════════════════════
# REPORTES
# ════════════════════════════════════════════════════════════════════════════

async def seller_reports(supervisor: dict, seller_id: str = None) -> dict:
    """Rutas completadas de los vendedores a cargo del supervisor"""
    query = {"supervisor_id": supervisor["id"]}
    if supervisor.get("role") == "Administrador":
        query = {}
    sellers = await db.users.find(query, {"_id": 0, "id": 1, "name": 1}).to_list(1000)
    names = {s["id"]: s.get("name", "") for s in sellers}

    if seller_id:
        if seller_id not in names:
            return None
        seller_ids = [seller_id]
    else:
        seller_ids = list(names.keys())

    routes = await find_routes({"created_by": {"$in": seller_ids}, "status": COMPLETADA}, 5000)
    return {
        "sellers": [{"id": k, "name": v} for k, v in names.items()],
        "routes": [_summary_row(r, names.get(r.get("created_by"))) for r in routes],
        "totals": sum_totals(routes),
    }


async def my_completed_routes(user: dict, date_from: str = None, date_to: str = None) -> dict:
    routes = await find_routes({"created_by": user["id"], "status": COMPLETADA}, 5000)
    start, end = parse_day(date_from), parse_day(date_to)
    routes = [r for r in routes if _in_range(r, start, end)]
    return {
        "routes": [_summary_row(r, user.get("name")) for r in routes],
        "totals": sum_totals(routes),
    }


async def my_kpis(user: dict) -> dict:
    """KPIs del vendedor sobre todas sus rutas"""
    routes = await find_routes({"created_by": user["id"]}, 5000)
    by_status = {s.value: 0 for s in RouteStatus}
    for route in routes:
        by_status[route.get("status")] = by_status.get(route.get("status"), 0) + 1
    kpis = sum_totals(routes)
    kpis["by_status"] = by_status
    return kpis


def weekly_sales(routes: List[dict], today: date) -> List[dict]:
    """Ventas de rutas completadas de la semana (lunes a domingo)"""
    start = today - timedelta(days=today.weekday())
    end = start + timedelta(days=6)
    week = [{"name": DIAS_SEMANA[i], "value": 0.0} for i in range(7)]
    for route in routes:
        day = parse_day(route.get("date"))
        if route.get("status") != COMPLETADA or day is None or not (start <= day <= end):
            continue
        week[day.weekday()]["value"] += route_totals(route)["valor_venta"]
    return week


async def admin_dashboard(today: date = None) -> dict:
    today = today or local_today()
    routes = await find_routes({}, 10000)
    users = await db.users.find({}, {"_id": 0, "id": 1, "name": 1}).to_list(1000)
    names = {u["id"]: u.get("name", "") for u in users}

    by_status = {s.value: 0 for s in RouteStatus}
    per_seller = {}
    for route in routes:
        by_status[route.get("status")] = by_status.get(route.get("status"), 0) + 1
        per_seller.setdefault(route.get("created_by"), []).append(route)

    sellers = []
    for seller_id, seller_routes in per_seller.items():
        totals = sum_totals(seller_routes)
        totals["seller_id"] = seller_id
        totals["seller_name"] = names.get(seller_id, "Desconocido")
        sellers.append(totals)
    sellers.sort(key=lambda s: s["valor_venta"], reverse=True)

    return {
        "by_status": by_status,
        "totals": sum_totals(routes),
        "sellers": sellers,
        "weekly_sales": weekly_sales(routes, today),
    }


# ════════════════════════════════════════════════════════════════════════════
# EXCEL
# ════════════════════════════════════════════════════════════════════════════

SELLER_REPORT_COLUMNS = [
    ("Vendedor", "seller_name", 24),
    ("Nombre de Ruta", "route_name", 40),
    ("Fecha de Ruta", "fecha", 22),
    ("Clientes en Ruta", "clients", 16),
    ("Visitas Completadas", "completed_visits", 18),
    ("Venta", "valor_venta", 14),
    ("Cobro", "valor_cobro", 14),
    ("Estado", "status", 16),
]

MONEY_KEYS = ("valor_venta", "valor_cobro")


def build_workbook(title: str, rows: List[dict], columns=SELLER_REPORT_COLUMNS) -> BytesIO:
    wb = Workbook()
    ws = wb.active
    ws.title = title[:31]

    header_fill = PatternFill("solid", fgColor="1F4E79")
    header_font = Font(bold=True, color="FFFFFF", size=10, name="Arial")
    thin_border = Border(
        left=Side(style="thin"), right=Side(style="thin"),
        top=Side(style="thin"), bottom=Side(style="thin"),
    )

    for col, (label, _, width) in enumerate(columns, 1):
        cell = ws.cell(row=1, column=col, value=label)
        cell.font = header_font
        cell.fill = header_fill
        cell.alignment = Alignment(horizontal="center", wrap_text=True)
        cell.border = thin_border
        ws.column_dimensions[cell.column_letter].width = width

    money_fmt = '#,##0.00'
    for r, row in enumerate(rows, 2):
        values = dict(row)
        values["fecha"] = format_fecha_larga(row.get("date"))
        for col, (_, key, _) in enumerate(columns, 1):
            cell = ws.cell(row=r, column=col, value=values.get(key))
            cell.border = thin_border
            if key in MONEY_KEYS:
                cell.number_format = money_fmt

    buf = BytesIO()
    wb.save(buf)
    buf.seek(0)
    logger.info(f"[EXPORT] {title} rows={len(rows)}")
    return buf
