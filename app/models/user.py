import enum
from datetime import datetime

from pydantic import BaseModel, Field

from app.core.clock import utcnow
from app.models.common import new_id


class Role(str, enum.Enum):
    USER = "USER"
    WORKER = "WORKER"


class User(BaseModel):
    id: str = Field(default_factory=new_id)
    phone_number: str
    name: str = ""
    address: str | None = None
    role: Role = Role.USER
    # Mirror of TrustRecord.score, written only by the trust engine
    credit_score: int = 100
    is_active: bool = True
    session_version: int = 0
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
