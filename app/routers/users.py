from fastapi import APIRouter, Depends
from pydantic import BaseModel

from app.core.clock import Clock
from app.deps import get_clock, get_current_user, get_stores
from app.models.user import Role, User
from app.models.worker_profile import Availability
from app.services import users as user_service
from app.stores.base import Stores

router = APIRouter()


class RoleUpdate(BaseModel):
    role: Role


class ProfileUpdate(BaseModel):
    name: str | None = None
    address: str | None = None
    phone_number: str | None = None


class WorkerProfileUpdate(BaseModel):
    skills: list[str] | None = None
    availability_status: Availability | None = None


@router.post("/role")
async def users_set_role(
    body: RoleUpdate,
    user: User = Depends(get_current_user),
    stores: Stores = Depends(get_stores),
    clock: Clock = Depends(get_clock),
):
    user = await user_service.set_role(stores, user, body.role, clock)
    return {"id": user.id, "role": user.role.value}


@router.patch("/profile")
async def users_update_profile(
    body: ProfileUpdate,
    user: User = Depends(get_current_user),
    stores: Stores = Depends(get_stores),
    clock: Clock = Depends(get_clock),
):
    user = await user_service.update_profile(
        stores, user, name=body.name, address=body.address, phone_number=body.phone_number, clock=clock
    )
    return {"id": user.id, "name": user.name, "address": user.address, "phone_number": user.phone_number}


@router.get("/workers/{worker_id}/profile")
async def users_worker_profile(
    worker_id: str,
    user: User = Depends(get_current_user),
    stores: Stores = Depends(get_stores),
):
    return await user_service.get_worker_profile(stores, worker_id)


@router.patch("/worker-profile")
async def users_update_worker_profile(
    body: WorkerProfileUpdate,
    user: User = Depends(get_current_user),
    stores: Stores = Depends(get_stores),
    clock: Clock = Depends(get_clock),
):
    return await user_service.update_worker_profile(
        stores, user, skills=body.skills, availability_status=body.availability_status, clock=clock
    )
