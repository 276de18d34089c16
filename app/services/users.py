from app.core.audit import log_event
from app.core.clock import Clock, utcnow
from app.core.config import Settings
from app.core.exceptions import BadRequestError, NotFoundError, PermissionDeniedError
from app.core.logging import get_logger
from app.models.credit_transaction import TransactionType
from app.models.user import Role, User
from app.models.worker_profile import Availability, WorkerProfile
from app.services.credits import Ledger
from app.stores.base import Stores

log = get_logger(__name__)


def normalize_phone(phone_number: str) -> str:
    phone = "".join(ch for ch in phone_number if ch.isdigit() or ch == "+")
    if len(phone.lstrip("+")) < 6:
        raise BadRequestError("Invalid phone number")
    return phone


async def get_or_create_by_phone(
    stores: Stores,
    settings: Settings,
    phone_number: str,
    name: str = "",
    clock: Clock = utcnow,
) -> tuple[User, bool]:
    """Return (user, created). A new user gets the welcome bonus through the ledger."""
    phone = normalize_phone(phone_number)
    async with stores.transaction():
        user = await stores.users.find_by_phone(phone)
        if user:
            return user, False
        now = clock()
        user = await stores.users.insert(User(phone_number=phone, name=name, created_at=now, updated_at=now))
        if settings.initial_credits > 0:
            await Ledger(stores, clock).credit(
                user.id,
                TransactionType.BONUS,
                settings.initial_credits,
                f"Welcome bonus - {settings.initial_credits} credits!",
            )
        await log_event(stores, user.id, "user_created", "user", user.id, at=now)
    log.info("user_created", user_id=user.id)
    return user, True


async def _update(stores: Stores, user_id: str, fields: dict) -> User:
    user = await stores.users.update_fields(user_id, fields)
    if user is None:
        raise NotFoundError("User not found")
    return user


async def set_role(stores: Stores, user: User, role: Role, clock: Clock = utcnow) -> User:
    """Switch role; becoming a worker creates the worker profile."""
    now = clock()
    async with stores.transaction():
        user = await _update(stores, user.id, {"role": role, "updated_at": now})
        if role == Role.WORKER and await stores.users.get_worker_profile(user.id) is None:
            await stores.users.save_worker_profile(WorkerProfile(worker_id=user.id, updated_at=now))
        await log_event(stores, user.id, "role_changed", "user", user.id, {"role": role.value}, at=now)
    log.info("role_changed", user_id=user.id, role=role.value)
    return user


async def update_profile(
    stores: Stores,
    user: User,
    name: str | None = None,
    address: str | None = None,
    phone_number: str | None = None,
    clock: Clock = utcnow,
) -> User:
    """Set only the profile fields given; score and account state are left to the trust engine."""
    fields: dict = {"updated_at": clock()}
    if name is not None:
        fields["name"] = name
    if address is not None:
        fields["address"] = address
    if phone_number is not None:
        fields["phone_number"] = normalize_phone(phone_number)
    async with stores.transaction():
        # Users store raises ConflictError on a phone number clash
        return await _update(stores, user.id, fields)


async def revoke_sessions(stores: Stores, user: User, clock: Clock = utcnow) -> User:
    """Invalidate every issued session token for the user."""
    async with stores.transaction():
        user = await stores.users.increment_session_version(user.id, clock())
        if user is None:
            raise NotFoundError("User not found")
    log.info("sessions_revoked", user_id=user.id, session_version=user.session_version)
    return user


async def get_worker_profile(stores: Stores, worker_id: str) -> WorkerProfile:
    profile = await stores.users.get_worker_profile(worker_id)
    if profile is None:
        raise NotFoundError("Worker profile not found")
    return profile


async def update_worker_profile(
    stores: Stores,
    user: User,
    skills: list[str] | None = None,
    availability_status: Availability | None = None,
    clock: Clock = utcnow,
) -> WorkerProfile:
    if user.role != Role.WORKER:
        raise PermissionDeniedError("Only WORKER accounts have a worker profile")
    async with stores.transaction():
        profile = await stores.users.get_worker_profile(user.id) or WorkerProfile(worker_id=user.id)
        if skills is not None:
            profile.skills = sorted({s.strip() for s in skills if s.strip()})
        if availability_status is not None:
            profile.availability_status = availability_status
        profile.updated_at = clock()
        await stores.users.save_worker_profile(profile)
    return profile


def session_payload_for_user(user: User) -> dict:
    return {"user_id": user.id, "session_version": user.session_version}
