from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from app.deps import get_current_user, get_manager
from app.models.dispute import DisputeType
from app.models.user import User
from app.services.jobs import JobLifecycleManager

router = APIRouter()


class DisputeCreate(BaseModel):
    job_id: str
    type: DisputeType
    description: str = Field(min_length=1)


@router.post("", status_code=201)
async def disputes_create(
    body: DisputeCreate,
    user: User = Depends(get_current_user),
    manager: JobLifecycleManager = Depends(get_manager),
):
    return await manager.raise_dispute(user, body.job_id, body.type, body.description)


@router.get("/mine")
async def disputes_mine(
    user: User = Depends(get_current_user),
    manager: JobLifecycleManager = Depends(get_manager),
):
    """Disputes raised by or against the current user."""
    return {"items": await manager.list_disputes(user.id)}
