from fastapi import APIRouter, Depends, Response
from pydantic import BaseModel

from app.core.clock import Clock
from app.core.config import Settings, get_settings
from app.core.exceptions import NotFoundError
from app.core.security import create_session_token
from app.deps import SESSION_COOKIE_NAME, get_clock, get_current_user, get_stores
from app.models.user import User
from app.services import users as user_service
from app.services.credits import Ledger
from app.stores.base import Stores

router = APIRouter()


class DevLoginRequest(BaseModel):
    phone_number: str
    name: str = ""


def _user_out(user: User, balance: int | None = None) -> dict:
    out = {
        "id": user.id,
        "phone_number": user.phone_number,
        "name": user.name,
        "address": user.address,
        "role": user.role.value,
        "credit_score": user.credit_score,
        "is_active": user.is_active,
    }
    if balance is not None:
        out["credits"] = balance
    return out


@router.post("/dev-login")
async def auth_dev_login(
    body: DevLoginRequest,
    response: Response,
    stores: Stores = Depends(get_stores),
    settings: Settings = Depends(get_settings),
    clock: Clock = Depends(get_clock),
):
    """Phone-only login for local development; OTP issuance lives outside this service."""
    if not settings.dev_mode:
        raise NotFoundError("Not found")
    user, created = await user_service.get_or_create_by_phone(stores, settings, body.phone_number, body.name, clock)
    token = create_session_token(user_service.session_payload_for_user(user))
    response.set_cookie(
        key=SESSION_COOKIE_NAME,
        value=token,
        max_age=settings.session_max_age_seconds,
        httponly=True,
        secure=settings.env == "production",
        samesite="lax",
        path="/",
    )
    balance = await Ledger(stores, clock).get_balance(user.id)
    return {"token": token, "created": created, "user": _user_out(user, balance)}


@router.get("/me")
async def auth_me(user: User = Depends(get_current_user), stores: Stores = Depends(get_stores)):
    """Return current user with credit balance."""
    balance = await stores.ledger.get_balance(user.id)
    return _user_out(user, balance)


@router.post("/logout")
async def auth_logout(response: Response, user: User = Depends(get_current_user)):
    response.delete_cookie(SESSION_COOKIE_NAME, path="/")
    return {"ok": True}


@router.post("/logout-all")
async def auth_logout_all(
    response: Response,
    user: User = Depends(get_current_user),
    stores: Stores = Depends(get_stores),
    clock: Clock = Depends(get_clock),
):
    """Invalidate every session for the current user."""
    await user_service.revoke_sessions(stores, user, clock)
    response.delete_cookie(SESSION_COOKIE_NAME, path="/")
    return {"ok": True}
