"""Job record and its lifecycle state machine."""

import enum
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal

from pydantic import BaseModel, Field

from app.core.clock import utcnow
from app.core.exceptions import PreconditionFailedError
from app.models.common import new_id


class JobStatus(str, enum.Enum):
    POSTED = "POSTED"
    APPLIED = "APPLIED"
    SELECTED = "SELECTED"
    IN_PROGRESS = "IN_PROGRESS"
    PENDING_VERIFICATION = "PENDING_VERIFICATION"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    DISPUTED = "DISPUTED"


TERMINAL_STATUSES = frozenset({JobStatus.COMPLETED, JobStatus.CANCELLED, JobStatus.DISPUTED})

ALLOWED_TRANSITIONS: dict[JobStatus, frozenset[JobStatus]] = {
    JobStatus.POSTED: frozenset({JobStatus.APPLIED, JobStatus.CANCELLED, JobStatus.DISPUTED}),
    JobStatus.APPLIED: frozenset({JobStatus.SELECTED, JobStatus.DISPUTED}),
    JobStatus.SELECTED: frozenset({JobStatus.IN_PROGRESS, JobStatus.DISPUTED}),
    JobStatus.IN_PROGRESS: frozenset({JobStatus.PENDING_VERIFICATION, JobStatus.DISPUTED}),
    JobStatus.PENDING_VERIFICATION: frozenset({JobStatus.COMPLETED, JobStatus.DISPUTED}),
    JobStatus.COMPLETED: frozenset(),
    JobStatus.CANCELLED: frozenset(),
    JobStatus.DISPUTED: frozenset(),
}

OPEN_STATUSES = (JobStatus.POSTED, JobStatus.APPLIED)


def can_transition(from_status: JobStatus, to_status: JobStatus) -> bool:
    return to_status in ALLOWED_TRANSITIONS[from_status]


def split_payment(payment_amount: int, fee_percentage: float) -> tuple[int, int]:
    """Return (platform_fee, worker_payment). Fee is rounded half-up to whole credits."""
    fee = (Decimal(payment_amount) * Decimal(str(fee_percentage)) / Decimal(100)).quantize(
        Decimal(1), rounding=ROUND_HALF_UP
    )
    platform_fee = int(fee)
    return platform_fee, payment_amount - platform_fee


class Location(BaseModel):
    latitude: float
    longitude: float
    address: str | None = None


class Job(BaseModel):
    id: str = Field(default_factory=new_id)
    title: str
    category: str
    description: str = ""
    images: list[str] = Field(default_factory=list)
    payment_amount: int
    platform_fee: int
    worker_payment: int
    status: JobStatus = JobStatus.POSTED
    posted_by: str
    assigned_to: str | None = None
    location: Location
    # Set when the poster selects a worker, i.e. "assigned at", not "work began at"
    started_at: datetime | None = None
    completed_at: datetime | None = None
    created_at: datetime = Field(default_factory=utcnow)
    version: int = 0

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def transition_to(self, status: JobStatus) -> JobStatus:
        """Move to ``status`` or raise PreconditionFailedError. Returns the previous status."""
        previous = self.status
        if not can_transition(previous, status):
            raise PreconditionFailedError(
                f"Job cannot move from {previous.value} to {status.value}",
                details={"job_id": self.id, "status": previous.value},
            )
        self.status = status
        return previous
