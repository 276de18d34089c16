import enum
from datetime import datetime

from pydantic import BaseModel, Field

from app.core.clock import utcnow
from app.models.common import new_id


class PenaltyType(str, enum.Enum):
    FALSE_WORK_REPORT = "FALSE_WORK_REPORT"
    NO_SHOW = "NO_SHOW"
    POOR_WORK = "POOR_WORK"
    FALSE_DISPUTE = "FALSE_DISPUTE"


class PenaltyStatus(str, enum.Enum):
    PENDING = "PENDING"
    RESOLVED = "RESOLVED"
    DISMISSED = "DISMISSED"


class Penalty(BaseModel):
    id: str = Field(default_factory=new_id)
    user_id: str
    type: PenaltyType
    amount: int
    amount_collected: int = 0
    description: str | None = None
    reported_by: str
    related_job_id: str
    status: PenaltyStatus = PenaltyStatus.PENDING
    created_at: datetime = Field(default_factory=utcnow)
