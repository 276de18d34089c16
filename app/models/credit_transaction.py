import enum
from datetime import datetime

from pydantic import BaseModel, Field

from app.core.clock import utcnow
from app.models.common import new_id


class TransactionType(str, enum.Enum):
    JOB_POSTING = "JOB_POSTING"
    JOB_COMPLETION = "JOB_COMPLETION"
    PENALTY = "PENALTY"
    BONUS = "BONUS"
    TOP_UP = "TOP_UP"
    PLATFORM_FEE = "PLATFORM_FEE"


class CreditTransaction(BaseModel):
    """One immutable ledger entry. ``balance`` is the user's balance right after it."""

    id: str = Field(default_factory=new_id)
    user_id: str
    type: TransactionType
    amount: int  # positive = credit, negative = debit
    balance: int
    sequence: int  # per-user, gapless, starts at 1
    description: str = ""
    related_job_id: str | None = None
    idempotency_key: str | None = None
    created_at: datetime = Field(default_factory=utcnow)
