from app.models.user import Role, User
from app.models.worker_profile import Availability, WorkerProfile
from app.models.job import JobStatus, Job, Location
from app.models.application import Application, ApplicationStatus
from app.models.job_completion import CompletionProof, JobCompletion
from app.models.credit_transaction import CreditTransaction, TransactionType
from app.models.penalty import Penalty, PenaltyStatus, PenaltyType
from app.models.trust_record import AccessLevel, RecoveryEntry, TrustRecord, ViolationEntry
from app.models.dispute import Dispute, DisputeStatus, DisputeType
from app.models.notification import Notification
from app.models.audit_log import AuditLog
from app.models.failed_job import FailedJob

__all__ = [
    "Role",
    "User",
    "Availability",
    "WorkerProfile",
    "JobStatus",
    "Job",
    "Location",
    "Application",
    "ApplicationStatus",
    "CompletionProof",
    "JobCompletion",
    "CreditTransaction",
    "TransactionType",
    "Penalty",
    "PenaltyStatus",
    "PenaltyType",
    "AccessLevel",
    "RecoveryEntry",
    "TrustRecord",
    "ViolationEntry",
    "Dispute",
    "DisputeStatus",
    "DisputeType",
    "Notification",
    "AuditLog",
    "FailedJob",
]
