from datetime import datetime

from pydantic import BaseModel, Field

from app.core.clock import utcnow
from app.models.common import new_id


class CompletionProof(BaseModel):
    images: list[str] = Field(default_factory=list)
    description: str | None = None


class JobCompletion(BaseModel):
    id: str = Field(default_factory=new_id)
    job_id: str
    worker_id: str
    submitted_at: datetime = Field(default_factory=utcnow)
    completion_proof: CompletionProof = Field(default_factory=CompletionProof)
    user_verified: bool = False
    user_verified_at: datetime | None = None  # set once, by the poster's verify
    rating: int | None = Field(default=None, ge=1, le=5)
    feedback: str | None = None

    @property
    def is_resolved(self) -> bool:
        return self.user_verified_at is not None
