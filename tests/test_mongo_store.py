"""MongoStores against a real server.

Set MONGODB_TEST_URI to point at one; without a reachable server the module is skipped.
Each test gets its own database, dropped afterwards.
"""

import os
import uuid

import pytest
import pytest_asyncio
from beanie import init_beanie
from motor.motor_asyncio import AsyncIOMotorClient
from pymongo.errors import PyMongoError

from app.core.exceptions import (
    ConflictError,
    DuplicateApplicationError,
    InsufficientBalanceError,
    PreconditionFailedError,
)
from app.db.init import DOCUMENT_MODELS
from app.models.application import Application
from app.models.job import Job, JobStatus, Location
from app.models.trust_record import TrustRecord
from app.models.user import Role, User
from app.services import users as user_service
from app.services.trust import TrustEngine
from app.stores.mongo import MongoStores

pytestmark = pytest.mark.asyncio

MONGODB_TEST_URI = os.environ.get("MONGODB_TEST_URI", "mongodb://localhost:27017")


@pytest_asyncio.fixture
async def mongo_stores():
    client = AsyncIOMotorClient(MONGODB_TEST_URI, serverSelectionTimeoutMS=1000)
    try:
        hello = await client.admin.command("hello")
    except PyMongoError:
        client.close()
        pytest.skip(f"no MongoDB reachable at {MONGODB_TEST_URI}")
    db_name = f"clockwork_test_{uuid.uuid4().hex[:12]}"
    await init_beanie(database=client[db_name], document_models=DOCUMENT_MODELS)
    # Multi-document transactions need a replica set
    stores = MongoStores(client, use_transactions="setName" in hello)
    yield stores
    await client.drop_database(db_name)
    client.close()


def _job(posted_by: str = "poster-1") -> Job:
    return Job(
        title="Paint fence",
        category="Painting",
        payment_amount=500,
        platform_fee=50,
        worker_payment=450,
        posted_by=posted_by,
        location=Location(latitude=12.97, longitude=77.59, address="MG Road"),
    )


async def test_adjust_balance_refuses_negative(mongo_stores):
    ledger = mongo_stores.ledger
    assert await ledger.adjust_balance("u1", 10) == (10, 1)
    with pytest.raises(InsufficientBalanceError):
        await ledger.adjust_balance("u1", -11)
    assert await ledger.get_balance("u1") == 10
    assert await ledger.adjust_balance("u1", -10) == (0, 2)


async def test_debit_without_balance_document(mongo_stores):
    with pytest.raises(InsufficientBalanceError):
        await mongo_stores.ledger.adjust_balance("nobody", -1)
    assert await mongo_stores.ledger.get_balance("nobody") == 0


async def test_stale_job_save_is_rejected(mongo_stores):
    job = await mongo_stores.jobs.insert_job(_job())
    first = await mongo_stores.jobs.get_job(job.id)
    stale = await mongo_stores.jobs.get_job(job.id)

    first.transition_to(JobStatus.APPLIED)
    saved = await mongo_stores.jobs.save_job(first)
    assert saved.version == 1

    stale.transition_to(JobStatus.CANCELLED)
    with pytest.raises(PreconditionFailedError):
        await mongo_stores.jobs.save_job(stale)
    stored = await mongo_stores.jobs.get_job(job.id)
    assert stored.status == JobStatus.APPLIED
    assert stored.version == 1


async def test_stale_trust_record_save_is_rejected(mongo_stores):
    record = await mongo_stores.trust.insert(TrustRecord(worker_id="w1"))
    stale = await mongo_stores.trust.get("w1")
    record.score = 90
    await mongo_stores.trust.save(record)
    stale.score = 80
    with pytest.raises(PreconditionFailedError):
        await mongo_stores.trust.save(stale)
    assert (await mongo_stores.trust.get("w1")).score == 90


async def test_duplicate_application_rejected(mongo_stores):
    await mongo_stores.jobs.insert_application(Application(job_id="j1", worker_id="w1"))
    with pytest.raises(DuplicateApplicationError):
        await mongo_stores.jobs.insert_application(Application(job_id="j1", worker_id="w1"))
    assert await mongo_stores.jobs.count_applications("j1") == 1


async def test_update_fields_touches_only_given_fields(mongo_stores):
    user = await mongo_stores.users.insert(User(phone_number="+919000000001", credit_score=40))
    updated = await mongo_stores.users.update_fields(user.id, {"name": "Asha", "role": Role.WORKER})
    assert updated.name == "Asha"
    assert updated.role == Role.WORKER
    assert updated.credit_score == 40
    assert (await mongo_stores.users.get(user.id)).role == Role.WORKER
    assert await mongo_stores.users.update_fields("missing", {"name": "x"}) is None


async def test_update_fields_phone_clash(mongo_stores):
    await mongo_stores.users.insert(User(phone_number="+919000000001"))
    other = await mongo_stores.users.insert(User(phone_number="+919000000002"))
    with pytest.raises(ConflictError):
        await mongo_stores.users.update_fields(other.id, {"phone_number": "+919000000001"})


async def test_increment_session_version(mongo_stores):
    user = await mongo_stores.users.insert(User(phone_number="+919000000001"))
    await mongo_stores.users.increment_session_version(user.id, user.created_at)
    bumped = await mongo_stores.users.increment_session_version(user.id, user.created_at)
    assert bumped.session_version == 2


async def test_profile_update_from_stale_user_keeps_ban(mongo_stores):
    worker = await mongo_stores.users.insert(User(phone_number="+919000000001", role=Role.WORKER))
    trust = TrustEngine(mongo_stores)
    for _ in range(4):
        await trust.apply_violation(worker.id, "NO_SHOW")

    updated = await user_service.update_profile(mongo_stores, worker, name="Ravi")
    assert updated.name == "Ravi"
    assert updated.is_active is False
    assert updated.credit_score == 0


async def test_failed_transaction_rolls_back(mongo_stores):
    if not mongo_stores.use_transactions:
        pytest.skip("standalone server has no multi-document transactions")
    with pytest.raises(RuntimeError):
        async with mongo_stores.transaction():
            await mongo_stores.ledger.adjust_balance("u1", 5)
            await mongo_stores.trust.insert(TrustRecord(worker_id="w1"))
            raise RuntimeError("abort")
    assert await mongo_stores.ledger.get_balance("u1") == 0
    assert await mongo_stores.trust.get("w1") is None
