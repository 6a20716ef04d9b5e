"""
Rutero - Routes Reports
KPIs de vendedores, supervisores y administración + exportación Excel.
"""

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import StreamingResponse
from typing import Optional

from config import local_today
from routes.auth import get_current_user
from services.permissions import require_permission
from services.activity_logger import log_activity
from services.reports import (
    seller_reports, my_completed_routes, my_kpis, admin_dashboard, build_workbook,
)

router = APIRouter(prefix="/reports", tags=["Reports"])

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def _xlsx(buf, filename: str) -> StreamingResponse:
    return StreamingResponse(
        buf,
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'}
    )


@router.get("/sellers")
async def sellers(seller_id: Optional[str] = None, user: dict = Depends(require_permission("reports.view"))):
    """Rutas completadas de los vendedores del supervisor"""
    report = await seller_reports(user, seller_id)
    if report is None:
        raise HTTPException(status_code=404, detail="Vendedor no encontrado en tu equipo")
    return report


@router.get("/sellers/export")
async def sellers_export(seller_id: Optional[str] = None, user: dict = Depends(require_permission("reports.export"))):
    report = await seller_reports(user, seller_id)
    if report is None:
        raise HTTPException(status_code=404, detail="Vendedor no encontrado en tu equipo")
    if not report["routes"]:
        raise HTTPException(status_code=404, detail="No hay rutas completadas para descargar.")

    await log_activity(user=user, action="export", entity_type="report", entity_name="sellers")
    suffix = seller_id or "todos"
    return _xlsx(build_workbook("Rutas Completadas", report["routes"]), f"reporte_vendedores_{suffix}.xlsx")


@router.get("/my-completed-routes")
async def completed_routes(
    date_from: Optional[str] = None,
    date_to: Optional[str] = None,
    user: dict = Depends(get_current_user)
):
    return await my_completed_routes(user, date_from, date_to)


@router.get("/my-completed-routes/export")
async def completed_routes_export(
    date_from: Optional[str] = None,
    date_to: Optional[str] = None,
    user: dict = Depends(get_current_user)
):
    report = await my_completed_routes(user, date_from, date_to)
    if not report["routes"]:
        raise HTTPException(status_code=404, detail="No hay rutas completadas para descargar.")
    return _xlsx(build_workbook("Rutas Completadas", report["routes"]), "reporte_rutas_completadas.xlsx")


@router.get("/my-kpis")
async def kpis(user: dict = Depends(get_current_user)):
    return await my_kpis(user)


@router.get("/dashboard")
async def dashboard(user: dict = Depends(require_permission("users.manage"))):
    """Tablero del Administrador"""
    return await admin_dashboard(local_today())
