import enum
from datetime import datetime

from pydantic import BaseModel, Field

from app.core.clock import utcnow
from app.models.common import new_id


class DisputeType(str, enum.Enum):
    WORK_NOT_DONE = "WORK_NOT_DONE"
    POOR_WORK = "POOR_WORK"
    NO_SHOW = "NO_SHOW"
    OTHER = "OTHER"


class DisputeStatus(str, enum.Enum):
    OPEN = "OPEN"
    RESOLVED = "RESOLVED"
    REJECTED = "REJECTED"


class Dispute(BaseModel):
    id: str = Field(default_factory=new_id)
    job_id: str
    raised_by: str
    raised_against: str
    type: DisputeType
    description: str
    status: DisputeStatus = DisputeStatus.OPEN
    created_at: datetime = Field(default_factory=utcnow)
