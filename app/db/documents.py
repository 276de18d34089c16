"""Beanie documents: one collection per domain record, same fields, string ids."""

from beanie import Document
from pydantic import Field
from pymongo import ASCENDING, DESCENDING, IndexModel

from app.models.application import Application
from app.models.audit_log import AuditLog
from app.models.common import new_id
from app.models.credit_transaction import CreditTransaction
from app.models.dispute import Dispute
from app.models.failed_job import FailedJob
from app.models.job import Job
from app.models.job_completion import JobCompletion
from app.models.notification import Notification
from app.models.penalty import Penalty
from app.models.trust_record import TrustRecord
from app.models.user import User
from app.models.worker_profile import WorkerProfile


class UserDocument(User, Document):
    id: str = Field(default_factory=new_id)

    class Settings:
        name = "users"
        indexes = [IndexModel([("phone_number", ASCENDING)], unique=True)]


class WorkerProfileDocument(WorkerProfile, Document):
    id: str = Field(default_factory=new_id)

    class Settings:
        name = "worker_profiles"
        indexes = [IndexModel([("worker_id", ASCENDING)], unique=True)]


class JobDocument(Job, Document):
    id: str = Field(default_factory=new_id)

    class Settings:
        name = "jobs"
        indexes = [
            [("status", ASCENDING), ("created_at", DESCENDING)],
            [("posted_by", ASCENDING), ("created_at", DESCENDING)],
            [("assigned_to", ASCENDING)],
        ]


class ApplicationDocument(Application, Document):
    id: str = Field(default_factory=new_id)

    class Settings:
        name = "applications"
        indexes = [
            IndexModel([("job_id", ASCENDING), ("worker_id", ASCENDING)], unique=True),
            [("worker_id", ASCENDING)],
        ]


class JobCompletionDocument(JobCompletion, Document):
    id: str = Field(default_factory=new_id)

    class Settings:
        name = "job_completions"
        indexes = [[("job_id", ASCENDING), ("submitted_at", DESCENDING)]]


class CreditBalanceDocument(Document):
    """Materialized balance per user; ``id`` is the user id."""
    id: str
    balance: int = 0
    sequence: int = 0

    class Settings:
        name = "credit_balances"


class CreditTransactionDocument(CreditTransaction, Document):
    id: str = Field(default_factory=new_id)

    class Settings:
        name = "credit_transactions"
        indexes = [
            IndexModel([("user_id", ASCENDING), ("sequence", ASCENDING)], unique=True),
            [("user_id", ASCENDING), ("idempotency_key", ASCENDING)],
        ]


class PenaltyDocument(Penalty, Document):
    id: str = Field(default_factory=new_id)

    class Settings:
        name = "penalties"
        indexes = [
            [("user_id", ASCENDING), ("created_at", DESCENDING)],
            [("related_job_id", ASCENDING), ("reported_by", ASCENDING)],
        ]


class TrustRecordDocument(TrustRecord, Document):
    id: str = Field(default_factory=new_id)

    class Settings:
        name = "trust_records"
        indexes = [
            IndexModel([("worker_id", ASCENDING)], unique=True),
            [("score", DESCENDING)],
            [("access_level", ASCENDING)],
        ]


class DisputeDocument(Dispute, Document):
    id: str = Field(default_factory=new_id)

    class Settings:
        name = "disputes"
        indexes = [[("raised_by", ASCENDING)], [("raised_against", ASCENDING)], [("job_id", ASCENDING)]]


class NotificationDocument(Notification, Document):
    id: str = Field(default_factory=new_id)

    class Settings:
        name = "notifications"
        indexes = [[("user_id", ASCENDING), ("created_at", DESCENDING)]]


class AuditLogDocument(AuditLog, Document):
    id: str = Field(default_factory=new_id)

    class Settings:
        name = "audit_logs"
        indexes = [
            [("user_id", ASCENDING), ("created_at", DESCENDING)],
            [("entity_type", ASCENDING), ("entity_id", ASCENDING)],
        ]


class FailedJobDocument(FailedJob, Document):
    id: str = Field(default_factory=new_id)

    class Settings:
        name = "failed_jobs"
        indexes = [[("job_name", ASCENDING)], [("created_at", DESCENDING)]]
