"""
Rutero - Routes Notifications
"""

from fastapi import APIRouter, Depends, HTTPException

from routes.auth import get_current_user
from services.notifications import list_notifications, mark_read, mark_all_read

router = APIRouter(prefix="/notifications", tags=["Notifications"])


@router.get("")
async def my_notifications(unread_only: bool = False, user: dict = Depends(get_current_user)):
    notifications = await list_notifications(user["id"], unread_only)
    return {
        "notifications": notifications,
        "unread": sum(1 for n in notifications if not n.get("read")),
    }


@router.post("/{notification_id}/read")
async def read_one(notification_id: str, user: dict = Depends(get_current_user)):
    if not await mark_read(user["id"], notification_id):
        raise HTTPException(status_code=404, detail="Notificación no encontrada")
    return {"success": True}


@router.post("/read-all")
async def read_all(user: dict = Depends(get_current_user)):
    count = await mark_all_read(user["id"])
    return {"success": True, "updated": count}
