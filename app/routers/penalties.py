from fastapi import APIRouter, Depends

from app.deps import get_current_user, get_manager
from app.models.user import User
from app.services.jobs import JobLifecycleManager

router = APIRouter()


@router.get("/mine")
async def penalties_mine(
    user: User = Depends(get_current_user),
    manager: JobLifecycleManager = Depends(get_manager),
):
    """Penalties against the current user, newest first."""
    return {"items": await manager.list_penalties(user.id)}
