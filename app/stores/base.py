"""Store interfaces. Services only ever talk to these; backends live beside them."""

from abc import ABC, abstractmethod
from contextlib import AbstractAsyncContextManager
from datetime import datetime
from typing import Any, Iterable

from app.core.config import get_settings
from app.core.exceptions import ConflictError
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


class UserStore(ABC):
    @abstractmethod
    async def get(self, user_id: str) -> User | None:
        ...

    @abstractmethod
    async def find_by_phone(self, phone_number: str) -> User | None:
        ...

    @abstractmethod
    async def insert(self, user: User) -> User:
        """Raise ConflictError if the phone number is taken."""
        ...

    @abstractmethod
    async def update_fields(self, user_id: str, fields: dict[str, Any]) -> User | None:
        """Set only ``fields`` on the stored user and return it, or None if missing.

        Raise ConflictError if a new phone number is taken.
        """
        ...

    @abstractmethod
    async def increment_session_version(self, user_id: str, at: datetime) -> User | None:
        ...

    @abstractmethod
    async def get_worker_profile(self, worker_id: str) -> WorkerProfile | None:
        ...

    @abstractmethod
    async def save_worker_profile(self, profile: WorkerProfile) -> WorkerProfile:
        """Upsert by worker_id."""
        ...


class JobStore(ABC):
    @abstractmethod
    async def get_job(self, job_id: str) -> Job | None:
        ...

    @abstractmethod
    async def insert_job(self, job: Job) -> Job:
        ...

    @abstractmethod
    async def save_job(self, job: Job) -> Job:
        """Compare-and-set on ``job.version``; bumps it on success.

        Raises PreconditionFailedError when the stored version moved on.
        """
        ...

    @abstractmethod
    async def list_jobs(
        self,
        statuses: Iterable[JobStatus] | None = None,
        posted_by: str | None = None,
        assigned_to: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[Job]:
        """Newest first."""
        ...

    @abstractmethod
    async def get_application(self, job_id: str, worker_id: str) -> Application | None:
        ...

    @abstractmethod
    async def insert_application(self, application: Application) -> Application:
        """Raise DuplicateApplicationError if (job, worker) already exists."""
        ...

    @abstractmethod
    async def save_application(self, application: Application) -> Application:
        ...

    @abstractmethod
    async def list_applications(
        self,
        job_id: str | None = None,
        worker_id: str | None = None,
    ) -> list[Application]:
        """Oldest first."""
        ...

    @abstractmethod
    async def count_applications(self, job_id: str) -> int:
        ...

    @abstractmethod
    async def get_open_completion(self, job_id: str) -> JobCompletion | None:
        """Latest completion for the job that the poster has not verified yet."""
        ...

    @abstractmethod
    async def insert_completion(self, completion: JobCompletion) -> JobCompletion:
        ...

    @abstractmethod
    async def save_completion(self, completion: JobCompletion) -> JobCompletion:
        ...

    @abstractmethod
    async def insert_penalty(self, penalty: Penalty) -> Penalty:
        ...

    @abstractmethod
    async def find_penalty(self, job_id: str, reported_by: str) -> Penalty | None:
        ...

    @abstractmethod
    async def list_penalties(self, user_id: str) -> list[Penalty]:
        """Penalties against the user, newest first."""
        ...

    @abstractmethod
    async def insert_dispute(self, dispute: Dispute) -> Dispute:
        ...

    @abstractmethod
    async def list_disputes(self, user_id: str) -> list[Dispute]:
        """Disputes raised by or against the user, newest first."""
        ...


class LedgerStore(ABC):
    @abstractmethod
    async def get_balance(self, user_id: str) -> int:
        """0 if the user has no balance record."""
        ...

    @abstractmethod
    async def adjust_balance(self, user_id: str, amount: int) -> tuple[int, int]:
        """Atomically add ``amount`` and bump the user's entry sequence.

        Returns (balance_after, sequence). Raises InsufficientBalanceError, leaving
        the balance untouched, if the result would be negative.
        """
        ...

    @abstractmethod
    async def append(self, entry: CreditTransaction) -> CreditTransaction:
        ...

    @abstractmethod
    async def find_by_idempotency_key(self, user_id: str, key: str) -> CreditTransaction | None:
        ...

    @abstractmethod
    async def list_entries(
        self,
        user_id: str,
        limit: int | None = None,
        offset: int = 0,
        newest_first: bool = True,
    ) -> list[CreditTransaction]:
        """Ordered by sequence."""
        ...


class TrustStore(ABC):
    @abstractmethod
    async def get(self, worker_id: str) -> TrustRecord | None:
        ...

    @abstractmethod
    async def insert(self, record: TrustRecord) -> TrustRecord:
        """Raise ConflictError if the worker already has a record."""
        ...

    @abstractmethod
    async def save(self, record: TrustRecord) -> TrustRecord:
        """Compare-and-set on ``record.version``, like JobStore.save_job."""
        ...

    @abstractmethod
    async def list_records(
        self,
        min_score: int | None = None,
        below_score: int | None = None,
        include_banned: bool = False,
        ascending: bool = False,
        limit: int | None = None,
    ) -> list[TrustRecord]:
        """Filter on min_score <= score < below_score; ties broken by fewest violations."""
        ...

    async def get_or_create(self, worker_id: str) -> tuple[TrustRecord, bool]:
        """Return (record, created). A default record starts fully trusted."""
        record = await self.get(worker_id)
        if record is not None:
            return record, False
        try:
            record = await self.insert(TrustRecord(worker_id=worker_id))
        except ConflictError:
            record = await self.get(worker_id)
            if record is None:
                raise
            return record, False
        return record, True


class NotificationStore(ABC):
    @abstractmethod
    async def insert(self, notification: Notification) -> Notification:
        ...

    @abstractmethod
    async def list_for_user(self, user_id: str, limit: int = 50) -> list[Notification]:
        """Newest first."""
        ...

    @abstractmethod
    async def mark_read(self, user_id: str, notification_id: str) -> bool:
        ...

    @abstractmethod
    async def mark_all_read(self, user_id: str) -> int:
        ...


class AuditStore(ABC):
    @abstractmethod
    async def append(self, event: AuditLog) -> AuditLog:
        ...

    @abstractmethod
    async def list_for_entity(self, entity_type: str, entity_id: str) -> list[AuditLog]:
        """Oldest first."""
        ...


class FailedJobStore(ABC):
    """Dead-letter collection for background jobs that raised."""

    @abstractmethod
    async def append(self, failed: FailedJob) -> FailedJob:
        ...

    @abstractmethod
    async def list_recent(self, limit: int = 50) -> list[FailedJob]:
        ...


class Stores(ABC):
    """One handle per backend, bundling every store plus the transaction scope."""

    users: UserStore
    jobs: JobStore
    ledger: LedgerStore
    trust: TrustStore
    notifications: NotificationStore
    audit: AuditStore
    failed_jobs: FailedJobStore

    @abstractmethod
    def transaction(self) -> AbstractAsyncContextManager[None]:
        """All-or-nothing scope. Re-entrant: nested scopes join the outer one."""
        ...

    async def close(self) -> None:
        return None


async def create_stores() -> Stores:
    settings = get_settings()
    if settings.store_backend == "memory":
        from app.stores.memory import InMemoryStores
        return InMemoryStores()
    from app.db.init import init_db
    from app.stores.mongo import MongoStores
    client = await init_db()
    return MongoStores(client, use_transactions=settings.mongodb_transactions)
