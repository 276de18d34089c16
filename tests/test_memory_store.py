import asyncio

import pytest

from app.core.exceptions import ConflictError, DuplicateApplicationError, InsufficientBalanceError, PreconditionFailedError
from app.models.application import Application
from app.models.trust_record import TrustRecord
from app.models.user import User

pytestmark = pytest.mark.asyncio


async def test_reads_return_copies(stores):
    user = await stores.users.insert(User(phone_number="+919000000000"))
    loaded = await stores.users.get(user.id)
    loaded.name = "changed"
    assert (await stores.users.get(user.id)).name == ""


async def test_phone_numbers_are_unique(stores):
    await stores.users.insert(User(phone_number="+919000000000"))
    with pytest.raises(ConflictError):
        await stores.users.insert(User(phone_number="+919000000000"))


async def test_duplicate_application_rejected(stores):
    await stores.jobs.insert_application(Application(job_id="j1", worker_id="w1"))
    with pytest.raises(DuplicateApplicationError):
        await stores.jobs.insert_application(Application(job_id="j1", worker_id="w1"))


async def test_trust_record_compare_and_set(stores):
    record, created = await stores.trust.get_or_create("w1")
    assert created
    stale = await stores.trust.get("w1")
    record.score = 90
    await stores.trust.save(record)
    stale.score = 80
    with pytest.raises(PreconditionFailedError):
        await stores.trust.save(stale)
    assert (await stores.trust.get("w1")).score == 90


async def test_get_or_create_is_idempotent(stores):
    first, created = await stores.trust.get_or_create("w1")
    second, created_again = await stores.trust.get_or_create("w1")
    assert created and not created_again
    assert first.worker_id == second.worker_id


async def test_adjust_balance_never_negative(stores):
    assert await stores.ledger.adjust_balance("u1", 10) == (10, 1)
    with pytest.raises(InsufficientBalanceError):
        await stores.ledger.adjust_balance("u1", -11)
    assert await stores.ledger.adjust_balance("u1", -10) == (0, 2)


async def test_nested_transaction_joins_outer(stores):
    with pytest.raises(RuntimeError):
        async with stores.transaction():
            await stores.ledger.adjust_balance("u1", 5)
            async with stores.transaction():
                await stores.trust.insert(TrustRecord(worker_id="w1"))
            raise RuntimeError("abort")
    assert await stores.ledger.get_balance("u1") == 0
    assert await stores.trust.get("w1") is None


async def test_transactions_serialize(stores):
    order = []

    async def work(name):
        async with stores.transaction():
            order.append(f"{name}-start")
            await asyncio.sleep(0)
            order.append(f"{name}-end")

    await asyncio.gather(work("a"), work("b"))
    assert order in (["a-start", "a-end", "b-start", "b-end"], ["b-start", "b-end", "a-start", "a-end"])


async def test_notifications_mark_read_scoped_to_owner(stores):
    from app.models.notification import Notification

    note = await stores.notifications.insert(Notification(user_id="u1", title="t", message="m", type="applied"))
    assert await stores.notifications.mark_read("u2", note.id) is False
    assert await stores.notifications.mark_read("u1", note.id) is True
    assert await stores.notifications.mark_all_read("u1") == 0


async def test_rollback_keeps_concurrent_writes(stores):
    from app.services import users as user_service

    user = await stores.users.insert(User(phone_number="+919000000000"))
    entered = asyncio.Event()

    async def failing():
        async with stores.transaction():
            await stores.ledger.adjust_balance(user.id, 5)
            entered.set()
            await asyncio.sleep(0.01)
            raise RuntimeError("abort")

    async def revoke():
        await entered.wait()
        return await user_service.revoke_sessions(stores, user)

    results = await asyncio.gather(failing(), revoke(), return_exceptions=True)
    assert isinstance(results[0], RuntimeError)
    assert results[1].session_version == 1
    assert (await stores.users.get(user.id)).session_version == 1
    assert await stores.ledger.get_balance(user.id) == 0


async def test_rollback_keeps_concurrent_notifications(stores):
    from app.models.notification import Notification

    entered = asyncio.Event()

    async def failing():
        async with stores.transaction():
            await stores.trust.insert(TrustRecord(worker_id="w1"))
            entered.set()
            await asyncio.sleep(0.01)
            raise RuntimeError("abort")

    async def notify():
        await entered.wait()
        return await stores.notifications.insert(Notification(user_id="u1", title="t", message="m", type="applied"))

    results = await asyncio.gather(failing(), notify(), return_exceptions=True)
    assert isinstance(results[0], RuntimeError)
    assert await stores.trust.get("w1") is None
    assert [n.id for n in await stores.notifications.list_for_user("u1")] == [results[1].id]
