from fastapi import APIRouter, Depends, Query

from app.deps import get_current_user, get_stores
from app.models.user import User
from app.services import notifications as notification_service
from app.stores.base import Stores

router = APIRouter()


@router.get("")
async def notifications_list(
    limit: int = Query(50, ge=1, le=200),
    user: User = Depends(get_current_user),
    stores: Stores = Depends(get_stores),
):
    items = await notification_service.list_notifications(stores, user.id, limit=limit)
    return {"items": items, "unread": sum(1 for n in items if not n.is_read)}


@router.post("/{notification_id}/read")
async def notifications_mark_read(
    notification_id: str,
    user: User = Depends(get_current_user),
    stores: Stores = Depends(get_stores),
):
    await notification_service.mark_read(stores, user.id, notification_id)
    return {"ok": True}


@router.post("/read-all")
async def notifications_mark_all_read(
    user: User = Depends(get_current_user),
    stores: Stores = Depends(get_stores),
):
    return {"updated": await notification_service.mark_all_read(stores, user.id)}
