"""Shared FastAPI dependencies."""

from fastapi import Depends, Request

from app.core.clock import Clock
from app.core.config import Settings, get_settings
from app.core.exceptions import PermissionDeniedError, UnauthorizedError
from app.core.logging import bind_actor
from app.core.security import load_session_token
from app.models.user import User
from app.services.credits import Ledger
from app.services.jobs import JobLifecycleManager
from app.services.notifications import Notifier
from app.services.trust import TrustEngine
from app.stores.base import Stores

SESSION_COOKIE_NAME = "clockwork_session"


def get_stores(request: Request) -> Stores:
    return request.app.state.stores


def get_notifier(request: Request) -> Notifier:
    return request.app.state.notifier


def get_clock(request: Request) -> Clock:
    return request.app.state.clock


def _session_token(request: Request) -> str | None:
    auth = request.headers.get("Authorization", "")
    if auth.lower().startswith("bearer "):
        return auth[7:].strip() or None
    return request.cookies.get(SESSION_COOKIE_NAME)


async def get_current_user(request: Request, stores: Stores = Depends(get_stores)) -> User:
    """Dependency: load session from bearer token or cookie and return User."""
    token = _session_token(request)
    if not token:
        raise UnauthorizedError("Not authenticated")
    payload = load_session_token(token)
    if not payload:
        raise UnauthorizedError("Invalid or expired session")
    user_id = payload.get("user_id")
    if not user_id:
        raise UnauthorizedError("Invalid session")
    user = await stores.users.get(user_id)
    if not user:
        raise UnauthorizedError("User not found")
    if payload.get("session_version") != user.session_version:
        raise UnauthorizedError("Session invalidated")
    if not user.is_active:
        raise PermissionDeniedError("Account deactivated")
    bind_actor(user.id, user.role.value)
    return user


async def require_admin(
    user: User = Depends(get_current_user),
    settings: Settings = Depends(get_settings),
) -> User:
    """Dependency: require current user to be on the admin phone list."""
    if user.phone_number not in settings.admin_phone_numbers:
        raise PermissionDeniedError("Admin only")
    return user


def get_ledger(stores: Stores = Depends(get_stores), clock: Clock = Depends(get_clock)) -> Ledger:
    return Ledger(stores, clock)


def get_trust_engine(stores: Stores = Depends(get_stores), clock: Clock = Depends(get_clock)) -> TrustEngine:
    return TrustEngine(stores, clock)


def get_manager(
    stores: Stores = Depends(get_stores),
    notifier: Notifier = Depends(get_notifier),
    settings: Settings = Depends(get_settings),
    clock: Clock = Depends(get_clock),
) -> JobLifecycleManager:
    return JobLifecycleManager(stores, notifier, settings, clock)
