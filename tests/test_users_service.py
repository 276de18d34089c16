import pytest

from app.core.exceptions import BadRequestError, ConflictError, NotFoundError
from app.models.user import Role, User
from app.services import users as user_service

pytestmark = pytest.mark.asyncio


async def _ban(trust, worker):
    for _ in range(4):
        record = await trust.apply_violation(worker.id, "NO_SHOW")
    assert record.is_permanently_banned


async def test_profile_update_from_stale_user_keeps_ban(stores, trust, worker, clock):
    stale = await stores.users.get(worker.id)
    await _ban(trust, worker)
    assert stale.is_active is True

    updated = await user_service.update_profile(stores, stale, name="Ravi", address="Indiranagar", clock=clock)
    assert updated.name == "Ravi"
    assert updated.is_active is False
    assert updated.credit_score == 0

    stored = await stores.users.get(worker.id)
    assert stored.is_active is False
    assert stored.credit_score == 0
    assert stored.address == "Indiranagar"


async def test_role_switch_from_stale_user_keeps_ban(stores, trust, worker, clock):
    stale = await stores.users.get(worker.id)
    await _ban(trust, worker)

    updated = await user_service.set_role(stores, stale, Role.USER, clock)
    assert updated.role == Role.USER
    assert updated.is_active is False
    assert updated.credit_score == 0


async def test_revoke_from_stale_user_keeps_ban(stores, trust, worker, clock):
    stale = await stores.users.get(worker.id)
    await _ban(trust, worker)

    revoked = await user_service.revoke_sessions(stores, stale, clock)
    assert revoked.session_version == stale.session_version + 1
    assert revoked.is_active is False
    assert (await stores.users.get(worker.id)).credit_score == 0


async def test_revoke_sessions_counts_up(stores, poster, clock):
    await user_service.revoke_sessions(stores, poster, clock)
    clock.advance(minutes=1)
    user = await user_service.revoke_sessions(stores, poster, clock)
    assert user.session_version == 2
    assert user.updated_at == clock.now
    assert user_service.session_payload_for_user(user)["session_version"] == 2


async def test_update_profile_normalizes_phone(stores, poster, clock):
    updated = await user_service.update_profile(stores, poster, phone_number="+91 98450-00001", clock=clock)
    assert updated.phone_number == "+919845000001"
    assert (await stores.users.find_by_phone("+919845000001")).id == poster.id


async def test_update_profile_phone_clash(stores, poster, worker, clock):
    with pytest.raises(ConflictError):
        await user_service.update_profile(stores, poster, phone_number=worker.phone_number, clock=clock)
    assert (await stores.users.get(poster.id)).phone_number == poster.phone_number


async def test_update_profile_rejects_short_phone(stores, poster, clock):
    with pytest.raises(BadRequestError):
        await user_service.update_profile(stores, poster, phone_number="123", clock=clock)


async def test_updates_for_missing_user(stores, clock):
    ghost = User(phone_number="+919111111111")
    with pytest.raises(NotFoundError):
        await user_service.update_profile(stores, ghost, name="x", clock=clock)
    with pytest.raises(NotFoundError):
        await user_service.revoke_sessions(stores, ghost, clock)


async def test_becoming_worker_creates_profile_once(stores, poster, clock):
    await user_service.set_role(stores, poster, Role.WORKER, clock)
    profile = await user_service.update_worker_profile(
        stores, await stores.users.get(poster.id), skills=["plumbing"], clock=clock
    )
    await user_service.set_role(stores, poster, Role.WORKER, clock)
    assert (await user_service.get_worker_profile(stores, poster.id)).skills == profile.skills
