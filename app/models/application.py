import enum
from datetime import datetime

from pydantic import BaseModel, Field

from app.core.clock import utcnow
from app.models.common import new_id


class ApplicationStatus(str, enum.Enum):
    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"


class Application(BaseModel):
    id: str = Field(default_factory=new_id)
    job_id: str
    worker_id: str
    status: ApplicationStatus = ApplicationStatus.PENDING
    applied_at: datetime = Field(default_factory=utcnow)
    resolved_at: datetime | None = None
