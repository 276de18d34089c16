import enum
from datetime import datetime

from pydantic import BaseModel, Field

from app.core.clock import utcnow
from app.models.common import new_id


class AccessLevel(str, enum.Enum):
    PREMIUM = "PREMIUM"
    TRUSTED = "TRUSTED"
    STANDARD = "STANDARD"
    RESTRICTED = "RESTRICTED"
    SUSPENDED = "SUSPENDED"


class ViolationEntry(BaseModel):
    type: str
    points_deducted: int
    strikes_added: int
    job_id: str | None = None
    description: str
    created_at: datetime = Field(default_factory=utcnow)


class RecoveryEntry(BaseModel):
    points_added: int
    reason: str
    job_id: str | None = None
    created_at: datetime = Field(default_factory=utcnow)


class TrustRecord(BaseModel):
    id: str = Field(default_factory=new_id)
    worker_id: str
    score: int = Field(default=100, ge=0, le=100)
    strikes: int = Field(default=0, ge=0)
    access_level: AccessLevel = AccessLevel.PREMIUM
    is_temporarily_suspended: bool = False
    suspension_expires_at: datetime | None = None
    is_permanently_banned: bool = False
    last_bonus_at: datetime | None = None
    total_violations: int = 0
    violation_history: list[ViolationEntry] = Field(default_factory=list)
    recovery_history: list[RecoveryEntry] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    version: int = 0
