"""In-memory stores for tests and local runs.

Records are copied on the way in and on the way out, so callers only change
stored state through explicit saves, the same as with a database. Every write
runs under the store lock: outside a transaction it gets one of its own, so a
rollback never erases a write that was not part of it.
"""

import asyncio
import copy
import functools
from contextlib import asynccontextmanager
from contextvars import ContextVar
from datetime import datetime
from typing import Any, AsyncIterator, Iterable, TypeVar

from pydantic import BaseModel

from app.core.exceptions import (
    ConflictError,
    DuplicateApplicationError,
    InsufficientBalanceError,
    PreconditionFailedError,
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

M = TypeVar("M", bound=BaseModel)

_active: ContextVar["InMemoryStores | None"] = ContextVar("memory_store_transaction", default=None)


def _copy(model: M | None) -> M | None:
    return model.model_copy(deep=True) if model is not None else None


class _Tables:
    def __init__(self) -> None:
        self.users: dict[str, User] = {}
        self.profiles: dict[str, WorkerProfile] = {}  # keyed by worker_id
        self.jobs: dict[str, Job] = {}
        self.applications: dict[str, Application] = {}
        self.completions: dict[str, JobCompletion] = {}
        self.penalties: dict[str, Penalty] = {}
        self.disputes: dict[str, Dispute] = {}
        self.balances: dict[str, tuple[int, int]] = {}  # user_id -> (balance, sequence)
        self.entries: dict[str, CreditTransaction] = {}
        self.trust: dict[str, TrustRecord] = {}  # keyed by worker_id
        self.notifications: dict[str, Notification] = {}
        self.audit: list[AuditLog] = []
        self.failed_jobs: list[FailedJob] = []


def _write(method):
    """Run a mutating call inside the owner's transaction, joining one if already open."""

    @functools.wraps(method)
    async def wrapper(self: "_InMemoryStore", *args: Any, **kwargs: Any) -> Any:
        async with self._owner.transaction():
            return await method(self, *args, **kwargs)

    return wrapper


class _InMemoryStore:
    def __init__(self, owner: "InMemoryStores") -> None:
        self._owner = owner
        self._t = owner._tables


class InMemoryUserStore(_InMemoryStore, UserStore):
    async def get(self, user_id: str) -> User | None:
        return _copy(self._t.users.get(user_id))

    async def find_by_phone(self, phone_number: str) -> User | None:
        for user in self._t.users.values():
            if user.phone_number == phone_number:
                return _copy(user)
        return None

    @_write
    async def insert(self, user: User) -> User:
        if any(u.phone_number == user.phone_number for u in self._t.users.values()):
            raise ConflictError("Phone number already in use")
        self._t.users[user.id] = _copy(user)
        return user

    @_write
    async def update_fields(self, user_id: str, fields: dict[str, Any]) -> User | None:
        stored = self._t.users.get(user_id)
        if stored is None:
            return None
        phone = fields.get("phone_number")
        if phone is not None and any(u.phone_number == phone and u.id != user_id for u in self._t.users.values()):
            raise ConflictError("Phone number already in use")
        updated = stored.model_copy(update=fields, deep=True)
        self._t.users[user_id] = updated
        return _copy(updated)

    @_write
    async def increment_session_version(self, user_id: str, at: datetime) -> User | None:
        stored = self._t.users.get(user_id)
        if stored is None:
            return None
        stored.session_version += 1
        stored.updated_at = at
        return _copy(stored)

    async def get_worker_profile(self, worker_id: str) -> WorkerProfile | None:
        return _copy(self._t.profiles.get(worker_id))

    @_write
    async def save_worker_profile(self, profile: WorkerProfile) -> WorkerProfile:
        existing = self._t.profiles.get(profile.worker_id)
        if existing is not None:
            profile.id = existing.id
        self._t.profiles[profile.worker_id] = _copy(profile)
        return profile


class InMemoryJobStore(_InMemoryStore, JobStore):
    async def get_job(self, job_id: str) -> Job | None:
        return _copy(self._t.jobs.get(job_id))

    @_write
    async def insert_job(self, job: Job) -> Job:
        self._t.jobs[job.id] = _copy(job)
        return job

    @_write
    async def save_job(self, job: Job) -> Job:
        stored = self._t.jobs.get(job.id)
        if stored is None or stored.version != job.version:
            raise PreconditionFailedError("Job was modified concurrently", details={"job_id": job.id})
        job.version += 1
        self._t.jobs[job.id] = _copy(job)
        return job

    async def list_jobs(
        self,
        statuses: Iterable[JobStatus] | None = None,
        posted_by: str | None = None,
        assigned_to: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[Job]:
        jobs = list(self._t.jobs.values())
        if statuses is not None:
            wanted = set(statuses)
            jobs = [j for j in jobs if j.status in wanted]
        if posted_by is not None:
            jobs = [j for j in jobs if j.posted_by == posted_by]
        if assigned_to is not None:
            jobs = [j for j in jobs if j.assigned_to == assigned_to]
        jobs.sort(key=lambda j: j.created_at, reverse=True)
        return [_copy(j) for j in jobs[offset : offset + limit]]

    async def get_application(self, job_id: str, worker_id: str) -> Application | None:
        for application in self._t.applications.values():
            if application.job_id == job_id and application.worker_id == worker_id:
                return _copy(application)
        return None

    @_write
    async def insert_application(self, application: Application) -> Application:
        if await self.get_application(application.job_id, application.worker_id) is not None:
            raise DuplicateApplicationError()
        self._t.applications[application.id] = _copy(application)
        return application

    @_write
    async def save_application(self, application: Application) -> Application:
        self._t.applications[application.id] = _copy(application)
        return application

    async def list_applications(
        self,
        job_id: str | None = None,
        worker_id: str | None = None,
    ) -> list[Application]:
        apps = list(self._t.applications.values())
        if job_id is not None:
            apps = [a for a in apps if a.job_id == job_id]
        if worker_id is not None:
            apps = [a for a in apps if a.worker_id == worker_id]
        apps.sort(key=lambda a: a.applied_at)
        return [_copy(a) for a in apps]

    async def count_applications(self, job_id: str) -> int:
        return sum(1 for a in self._t.applications.values() if a.job_id == job_id)

    async def get_open_completion(self, job_id: str) -> JobCompletion | None:
        open_ = [c for c in self._t.completions.values() if c.job_id == job_id and not c.is_resolved]
        if not open_:
            return None
        return _copy(max(open_, key=lambda c: c.submitted_at))

    @_write
    async def insert_completion(self, completion: JobCompletion) -> JobCompletion:
        self._t.completions[completion.id] = _copy(completion)
        return completion

    @_write
    async def save_completion(self, completion: JobCompletion) -> JobCompletion:
        self._t.completions[completion.id] = _copy(completion)
        return completion

    @_write
    async def insert_penalty(self, penalty: Penalty) -> Penalty:
        self._t.penalties[penalty.id] = _copy(penalty)
        return penalty

    async def find_penalty(self, job_id: str, reported_by: str) -> Penalty | None:
        for penalty in self._t.penalties.values():
            if penalty.related_job_id == job_id and penalty.reported_by == reported_by:
                return _copy(penalty)
        return None

    async def list_penalties(self, user_id: str) -> list[Penalty]:
        penalties = [p for p in self._t.penalties.values() if p.user_id == user_id]
        penalties.sort(key=lambda p: p.created_at, reverse=True)
        return [_copy(p) for p in penalties]

    @_write
    async def insert_dispute(self, dispute: Dispute) -> Dispute:
        self._t.disputes[dispute.id] = _copy(dispute)
        return dispute

    async def list_disputes(self, user_id: str) -> list[Dispute]:
        disputes = [d for d in self._t.disputes.values() if user_id in (d.raised_by, d.raised_against)]
        disputes.sort(key=lambda d: d.created_at, reverse=True)
        return [_copy(d) for d in disputes]


class InMemoryLedgerStore(_InMemoryStore, LedgerStore):
    async def get_balance(self, user_id: str) -> int:
        return self._t.balances.get(user_id, (0, 0))[0]

    @_write
    async def adjust_balance(self, user_id: str, amount: int) -> tuple[int, int]:
        balance, sequence = self._t.balances.get(user_id, (0, 0))
        if balance + amount < 0:
            raise InsufficientBalanceError(balance=balance, requested=-amount)
        self._t.balances[user_id] = (balance + amount, sequence + 1)
        return balance + amount, sequence + 1

    @_write
    async def append(self, entry: CreditTransaction) -> CreditTransaction:
        self._t.entries[entry.id] = _copy(entry)
        return entry

    async def find_by_idempotency_key(self, user_id: str, key: str) -> CreditTransaction | None:
        for entry in self._t.entries.values():
            if entry.user_id == user_id and entry.idempotency_key == key:
                return _copy(entry)
        return None

    async def list_entries(
        self,
        user_id: str,
        limit: int | None = None,
        offset: int = 0,
        newest_first: bool = True,
    ) -> list[CreditTransaction]:
        entries = sorted(
            (e for e in self._t.entries.values() if e.user_id == user_id),
            key=lambda e: e.sequence,
            reverse=newest_first,
        )
        end = None if limit is None else offset + limit
        return [_copy(e) for e in entries[offset:end]]


class InMemoryTrustStore(_InMemoryStore, TrustStore):
    async def get(self, worker_id: str) -> TrustRecord | None:
        return _copy(self._t.trust.get(worker_id))

    @_write
    async def insert(self, record: TrustRecord) -> TrustRecord:
        if record.worker_id in self._t.trust:
            raise ConflictError("Trust record already exists")
        self._t.trust[record.worker_id] = _copy(record)
        return record

    @_write
    async def save(self, record: TrustRecord) -> TrustRecord:
        stored = self._t.trust.get(record.worker_id)
        if stored is None or stored.version != record.version:
            raise PreconditionFailedError(
                "Trust record was modified concurrently", details={"worker_id": record.worker_id}
            )
        record.version += 1
        self._t.trust[record.worker_id] = _copy(record)
        return record

    async def list_records(
        self,
        min_score: int | None = None,
        below_score: int | None = None,
        include_banned: bool = False,
        ascending: bool = False,
        limit: int | None = None,
    ) -> list[TrustRecord]:
        records = list(self._t.trust.values())
        if min_score is not None:
            records = [r for r in records if r.score >= min_score]
        if below_score is not None:
            records = [r for r in records if r.score < below_score]
        if not include_banned:
            records = [r for r in records if not r.is_permanently_banned]
        sign = 1 if ascending else -1
        records.sort(key=lambda r: (sign * r.score, r.total_violations))
        if limit is not None:
            records = records[:limit]
        return [_copy(r) for r in records]


class InMemoryNotificationStore(_InMemoryStore, NotificationStore):
    @_write
    async def insert(self, notification: Notification) -> Notification:
        self._t.notifications[notification.id] = _copy(notification)
        return notification

    async def list_for_user(self, user_id: str, limit: int = 50) -> list[Notification]:
        items = [n for n in self._t.notifications.values() if n.user_id == user_id]
        items.sort(key=lambda n: n.created_at, reverse=True)
        return [_copy(n) for n in items[:limit]]

    @_write
    async def mark_read(self, user_id: str, notification_id: str) -> bool:
        notification = self._t.notifications.get(notification_id)
        if notification is None or notification.user_id != user_id:
            return False
        notification.is_read = True
        return True

    @_write
    async def mark_all_read(self, user_id: str) -> int:
        changed = 0
        for notification in self._t.notifications.values():
            if notification.user_id == user_id and not notification.is_read:
                notification.is_read = True
                changed += 1
        return changed


class InMemoryAuditStore(_InMemoryStore, AuditStore):
    @_write
    async def append(self, event: AuditLog) -> AuditLog:
        self._t.audit.append(_copy(event))
        return event

    async def list_for_entity(self, entity_type: str, entity_id: str) -> list[AuditLog]:
        return [
            _copy(e) for e in self._t.audit if e.entity_type == entity_type and e.entity_id == entity_id
        ]


class InMemoryFailedJobStore(_InMemoryStore, FailedJobStore):
    @_write
    async def append(self, failed: FailedJob) -> FailedJob:
        self._t.failed_jobs.append(_copy(failed))
        return failed

    async def list_recent(self, limit: int = 50) -> list[FailedJob]:
        return [_copy(f) for f in reversed(self._t.failed_jobs[-limit:])]


class InMemoryStores(Stores):
    """A single lock serializes every transaction and every write; a failed transaction restores the snapshot."""

    def __init__(self) -> None:
        self._tables = _Tables()
        self._lock = asyncio.Lock()
        self.users = InMemoryUserStore(self)
        self.jobs = InMemoryJobStore(self)
        self.ledger = InMemoryLedgerStore(self)
        self.trust = InMemoryTrustStore(self)
        self.notifications = InMemoryNotificationStore(self)
        self.audit = InMemoryAuditStore(self)
        self.failed_jobs = InMemoryFailedJobStore(self)

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        if _active.get() is self:
            yield
            return
        async with self._lock:
            snapshot = copy.deepcopy(self._tables.__dict__)
            token = _active.set(self)
            try:
                yield
            except BaseException:
                self._tables.__dict__.clear()
                self._tables.__dict__.update(snapshot)
                raise
            finally:
                _active.reset(token)
