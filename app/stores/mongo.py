"""MongoDB stores on beanie documents.

Every call picks up the Motor session of the enclosing ``transaction()`` (if any)
from a context variable, so services never pass sessions around.
"""

import enum
from contextlib import asynccontextmanager
from contextvars import ContextVar
from datetime import datetime
from typing import Any, AsyncIterator, Iterable, TypeVar

from beanie import Document
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorClientSession
from pydantic import BaseModel
from pymongo import ASCENDING, DESCENDING, ReturnDocument
from pymongo.errors import DuplicateKeyError, PyMongoError

from app.core.exceptions import (
    ConflictError,
    DuplicateApplicationError,
    InsufficientBalanceError,
    PreconditionFailedError,
)
from app.core.logging import get_logger
from app.db.documents import (
    ApplicationDocument,
    AuditLogDocument,
    CreditBalanceDocument,
    CreditTransactionDocument,
    DisputeDocument,
    FailedJobDocument,
    JobCompletionDocument,
    JobDocument,
    NotificationDocument,
    PenaltyDocument,
    TrustRecordDocument,
    UserDocument,
    WorkerProfileDocument,
)
from app.models.application import Application
from app.models.audit_log import AuditLog
from app.models.credit_transaction import CreditTransaction
from app.models.dispute import Dispute
from app.models.failed_job import FailedJob
from app.models.job import Job, JobStatus
from app.models.job_completion import JobCompletion
from app.models.notification import Notification
from app.models.penalty import Penalty
from app.models.trust_record import TrustRecord
from app.models.user import User
from app.models.worker_profile import WorkerProfile
from app.stores.base import (
    AuditStore,
    FailedJobStore,
    JobStore,
    LedgerStore,
    NotificationStore,
    Stores,
    TrustStore,
    UserStore,
)

log = get_logger(__name__)

M = TypeVar("M", bound=BaseModel)
D = TypeVar("D", bound=Document)

_session: ContextVar[AsyncIOMotorClientSession | None] = ContextVar("mongo_session", default=None)


def _s() -> AsyncIOMotorClientSession | None:
    return _session.get()


def _to_model(model_cls: type[M], doc: Document | None) -> M | None:
    if doc is None:
        return None
    return model_cls.model_validate(doc.model_dump())


def _from_raw(model_cls: type[M], raw: dict[str, Any] | None) -> M | None:
    """Model from a raw collection document (``_id`` mapped back to ``id``)."""
    if raw is None:
        return None
    data = dict(raw)
    data["id"] = data.pop("_id")
    return model_cls.model_validate(data)


def _to_document(doc_cls: type[D], model: BaseModel) -> D:
    return doc_cls.model_validate(model.model_dump())


async def _compare_and_set(doc_cls: type[Document], model: Any) -> bool:
    """Replace fields of ``model`` only if the stored version still matches."""
    payload = model.model_dump(exclude={"id"})
    payload["version"] = model.version + 1
    result = await doc_cls.get_motor_collection().update_one(
        {"_id": model.id, "version": model.version},
        {"$set": payload},
        session=_s(),
    )
    return result.matched_count == 1


class MongoUserStore(UserStore):
    async def get(self, user_id: str) -> User | None:
        return _to_model(User, await UserDocument.get(user_id, session=_s()))

    async def find_by_phone(self, phone_number: str) -> User | None:
        doc = await UserDocument.find_one(UserDocument.phone_number == phone_number, session=_s())
        return _to_model(User, doc)

    async def insert(self, user: User) -> User:
        try:
            await _to_document(UserDocument, user).insert(session=_s())
        except DuplicateKeyError as e:
            raise ConflictError("Phone number already in use") from e
        return user

    async def update_fields(self, user_id: str, fields: dict[str, Any]) -> User | None:
        payload = {k: v.value if isinstance(v, enum.Enum) else v for k, v in fields.items()}
        try:
            doc = await UserDocument.get_motor_collection().find_one_and_update(
                {"_id": user_id},
                {"$set": payload},
                return_document=ReturnDocument.AFTER,
                session=_s(),
            )
        except DuplicateKeyError as e:
            raise ConflictError("Phone number already in use") from e
        return _from_raw(User, doc)

    async def increment_session_version(self, user_id: str, at: datetime) -> User | None:
        doc = await UserDocument.get_motor_collection().find_one_and_update(
            {"_id": user_id},
            {"$inc": {"session_version": 1}, "$set": {"updated_at": at}},
            return_document=ReturnDocument.AFTER,
            session=_s(),
        )
        return _from_raw(User, doc)

    async def get_worker_profile(self, worker_id: str) -> WorkerProfile | None:
        doc = await WorkerProfileDocument.find_one(WorkerProfileDocument.worker_id == worker_id, session=_s())
        return _to_model(WorkerProfile, doc)

    async def save_worker_profile(self, profile: WorkerProfile) -> WorkerProfile:
        existing = await WorkerProfileDocument.find_one(
            WorkerProfileDocument.worker_id == profile.worker_id, session=_s()
        )
        if existing is not None:
            profile.id = existing.id
        await _to_document(WorkerProfileDocument, profile).save(session=_s())
        return profile


class MongoJobStore(JobStore):
    async def get_job(self, job_id: str) -> Job | None:
        return _to_model(Job, await JobDocument.get(job_id, session=_s()))

    async def insert_job(self, job: Job) -> Job:
        await _to_document(JobDocument, job).insert(session=_s())
        return job

    async def save_job(self, job: Job) -> Job:
        if not await _compare_and_set(JobDocument, job):
            raise PreconditionFailedError("Job was modified concurrently", details={"job_id": job.id})
        job.version += 1
        return job

    async def list_jobs(
        self,
        statuses: Iterable[JobStatus] | None = None,
        posted_by: str | None = None,
        assigned_to: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[Job]:
        query: dict[str, Any] = {}
        if statuses is not None:
            query["status"] = {"$in": [s.value for s in statuses]}
        if posted_by is not None:
            query["posted_by"] = posted_by
        if assigned_to is not None:
            query["assigned_to"] = assigned_to
        docs = (
            await JobDocument.find(query, session=_s())
            .sort([("created_at", DESCENDING)])
            .skip(offset)
            .limit(limit)
            .to_list()
        )
        return [_to_model(Job, d) for d in docs]

    async def get_application(self, job_id: str, worker_id: str) -> Application | None:
        doc = await ApplicationDocument.find_one(
            ApplicationDocument.job_id == job_id,
            ApplicationDocument.worker_id == worker_id,
            session=_s(),
        )
        return _to_model(Application, doc)

    async def insert_application(self, application: Application) -> Application:
        try:
            await _to_document(ApplicationDocument, application).insert(session=_s())
        except DuplicateKeyError as e:
            raise DuplicateApplicationError() from e
        return application

    async def save_application(self, application: Application) -> Application:
        await _to_document(ApplicationDocument, application).save(session=_s())
        return application

    async def list_applications(
        self,
        job_id: str | None = None,
        worker_id: str | None = None,
    ) -> list[Application]:
        query: dict[str, Any] = {}
        if job_id is not None:
            query["job_id"] = job_id
        if worker_id is not None:
            query["worker_id"] = worker_id
        docs = await ApplicationDocument.find(query, session=_s()).sort([("applied_at", ASCENDING)]).to_list()
        return [_to_model(Application, d) for d in docs]

    async def count_applications(self, job_id: str) -> int:
        return await ApplicationDocument.find(ApplicationDocument.job_id == job_id, session=_s()).count()

    async def get_open_completion(self, job_id: str) -> JobCompletion | None:
        docs = (
            await JobCompletionDocument.find(
                {"job_id": job_id, "user_verified_at": None},
                session=_s(),
            )
            .sort([("submitted_at", DESCENDING)])
            .limit(1)
            .to_list()
        )
        return _to_model(JobCompletion, docs[0]) if docs else None

    async def insert_completion(self, completion: JobCompletion) -> JobCompletion:
        await _to_document(JobCompletionDocument, completion).insert(session=_s())
        return completion

    async def save_completion(self, completion: JobCompletion) -> JobCompletion:
        await _to_document(JobCompletionDocument, completion).save(session=_s())
        return completion

    async def insert_penalty(self, penalty: Penalty) -> Penalty:
        await _to_document(PenaltyDocument, penalty).insert(session=_s())
        return penalty

    async def find_penalty(self, job_id: str, reported_by: str) -> Penalty | None:
        doc = await PenaltyDocument.find_one(
            PenaltyDocument.related_job_id == job_id,
            PenaltyDocument.reported_by == reported_by,
            session=_s(),
        )
        return _to_model(Penalty, doc)

    async def list_penalties(self, user_id: str) -> list[Penalty]:
        docs = (
            await PenaltyDocument.find(PenaltyDocument.user_id == user_id, session=_s())
            .sort([("created_at", DESCENDING)])
            .to_list()
        )
        return [_to_model(Penalty, d) for d in docs]

    async def insert_dispute(self, dispute: Dispute) -> Dispute:
        await _to_document(DisputeDocument, dispute).insert(session=_s())
        return dispute

    async def list_disputes(self, user_id: str) -> list[Dispute]:
        docs = (
            await DisputeDocument.find(
                {"$or": [{"raised_by": user_id}, {"raised_against": user_id}]},
                session=_s(),
            )
            .sort([("created_at", DESCENDING)])
            .to_list()
        )
        return [_to_model(Dispute, d) for d in docs]


class MongoLedgerStore(LedgerStore):
    async def get_balance(self, user_id: str) -> int:
        doc = await CreditBalanceDocument.get(user_id, session=_s())
        return doc.balance if doc else 0

    async def adjust_balance(self, user_id: str, amount: int) -> tuple[int, int]:
        # Single-document $inc: balance and sequence move together, per user
        collection = CreditBalanceDocument.get_motor_collection()
        update = {"$inc": {"balance": amount, "sequence": 1}}
        if amount >= 0:
            doc = await collection.find_one_and_update(
                {"_id": user_id},
                update,
                upsert=True,
                return_document=ReturnDocument.AFTER,
                session=_s(),
            )
        else:
            doc = await collection.find_one_and_update(
                {"_id": user_id, "balance": {"$gte": -amount}},
                update,
                return_document=ReturnDocument.AFTER,
                session=_s(),
            )
            if doc is None:
                raise InsufficientBalanceError(balance=await self.get_balance(user_id), requested=-amount)
        return doc["balance"], doc["sequence"]

    async def append(self, entry: CreditTransaction) -> CreditTransaction:
        await _to_document(CreditTransactionDocument, entry).insert(session=_s())
        return entry

    async def find_by_idempotency_key(self, user_id: str, key: str) -> CreditTransaction | None:
        doc = await CreditTransactionDocument.find_one(
            CreditTransactionDocument.user_id == user_id,
            CreditTransactionDocument.idempotency_key == key,
            session=_s(),
        )
        return _to_model(CreditTransaction, doc)

    async def list_entries(
        self,
        user_id: str,
        limit: int | None = None,
        offset: int = 0,
        newest_first: bool = True,
    ) -> list[CreditTransaction]:
        cursor = (
            CreditTransactionDocument.find(CreditTransactionDocument.user_id == user_id, session=_s())
            .sort([("sequence", DESCENDING if newest_first else ASCENDING)])
            .skip(offset)
        )
        if limit is not None:
            cursor = cursor.limit(limit)
        return [_to_model(CreditTransaction, d) for d in await cursor.to_list()]


class MongoTrustStore(TrustStore):
    async def get(self, worker_id: str) -> TrustRecord | None:
        doc = await TrustRecordDocument.find_one(TrustRecordDocument.worker_id == worker_id, session=_s())
        return _to_model(TrustRecord, doc)

    async def insert(self, record: TrustRecord) -> TrustRecord:
        try:
            await _to_document(TrustRecordDocument, record).insert(session=_s())
        except DuplicateKeyError as e:
            raise ConflictError("Trust record already exists") from e
        return record

    async def save(self, record: TrustRecord) -> TrustRecord:
        if not await _compare_and_set(TrustRecordDocument, record):
            raise PreconditionFailedError(
                "Trust record was modified concurrently", details={"worker_id": record.worker_id}
            )
        record.version += 1
        return record

    async def list_records(
        self,
        min_score: int | None = None,
        below_score: int | None = None,
        include_banned: bool = False,
        ascending: bool = False,
        limit: int | None = None,
    ) -> list[TrustRecord]:
        query: dict[str, Any] = {}
        score: dict[str, int] = {}
        if min_score is not None:
            score["$gte"] = min_score
        if below_score is not None:
            score["$lt"] = below_score
        if score:
            query["score"] = score
        if not include_banned:
            query["is_permanently_banned"] = False
        cursor = TrustRecordDocument.find(query, session=_s()).sort(
            [("score", ASCENDING if ascending else DESCENDING), ("total_violations", ASCENDING)]
        )
        if limit is not None:
            cursor = cursor.limit(limit)
        return [_to_model(TrustRecord, d) for d in await cursor.to_list()]


class MongoNotificationStore(NotificationStore):
    async def insert(self, notification: Notification) -> Notification:
        await _to_document(NotificationDocument, notification).insert(session=_s())
        return notification

    async def list_for_user(self, user_id: str, limit: int = 50) -> list[Notification]:
        docs = (
            await NotificationDocument.find(NotificationDocument.user_id == user_id, session=_s())
            .sort([("created_at", DESCENDING)])
            .limit(limit)
            .to_list()
        )
        return [_to_model(Notification, d) for d in docs]

    async def mark_read(self, user_id: str, notification_id: str) -> bool:
        result = await NotificationDocument.get_motor_collection().update_one(
            {"_id": notification_id, "user_id": user_id},
            {"$set": {"is_read": True}},
            session=_s(),
        )
        return result.matched_count == 1

    async def mark_all_read(self, user_id: str) -> int:
        result = await NotificationDocument.get_motor_collection().update_many(
            {"user_id": user_id, "is_read": False},
            {"$set": {"is_read": True}},
            session=_s(),
        )
        return result.modified_count


class MongoAuditStore(AuditStore):
    async def append(self, event: AuditLog) -> AuditLog:
        await _to_document(AuditLogDocument, event).insert(session=_s())
        return event

    async def list_for_entity(self, entity_type: str, entity_id: str) -> list[AuditLog]:
        docs = (
            await AuditLogDocument.find(
                AuditLogDocument.entity_type == entity_type,
                AuditLogDocument.entity_id == entity_id,
                session=_s(),
            )
            .sort([("created_at", ASCENDING)])
            .to_list()
        )
        return [_to_model(AuditLog, d) for d in docs]


class MongoFailedJobStore(FailedJobStore):
    async def append(self, failed: FailedJob) -> FailedJob:
        await _to_document(FailedJobDocument, failed).insert()
        return failed

    async def list_recent(self, limit: int = 50) -> list[FailedJob]:
        docs = await FailedJobDocument.find().sort([("created_at", DESCENDING)]).limit(limit).to_list()
        return [_to_model(FailedJob, d) for d in docs]


class MongoStores(Stores):
    def __init__(self, client: AsyncIOMotorClient, use_transactions: bool = True) -> None:
        self.client = client
        self.use_transactions = use_transactions
        self.users = MongoUserStore()
        self.jobs = MongoJobStore()
        self.ledger = MongoLedgerStore()
        self.trust = MongoTrustStore()
        self.notifications = MongoNotificationStore()
        self.audit = MongoAuditStore()
        self.failed_jobs = MongoFailedJobStore()
        if not use_transactions:
            log.warning("mongo_transactions_disabled")

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        if _session.get() is not None or not self.use_transactions:
            yield
            return
        async with await self.client.start_session() as session:
            try:
                async with session.start_transaction():
                    token = _session.set(session)
                    try:
                        yield
                    finally:
                        _session.reset(token)
            except PyMongoError as e:
                if e.has_error_label("TransientTransactionError"):
                    log.info("transaction_conflict", error=str(e))
                    raise PreconditionFailedError("Concurrent update, re-fetch and retry") from e
                raise

    async def close(self) -> None:
        self.client.close()
