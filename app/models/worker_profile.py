import enum
from datetime import datetime

from pydantic import BaseModel, Field

from app.core.clock import utcnow
from app.models.common import new_id


class Availability(str, enum.Enum):
    AVAILABLE = "AVAILABLE"
    BUSY = "BUSY"


class WorkerProfile(BaseModel):
    id: str = Field(default_factory=new_id)
    worker_id: str
    skills: list[str] = Field(default_factory=list)
    availability_status: Availability = Availability.AVAILABLE
    total_jobs_completed: int = 0
    total_earnings: int = 0
    rating: float = 5.0
    rating_count: int = 0
    updated_at: datetime = Field(default_factory=utcnow)

    def record_payout(self, amount: int, rating: int | None) -> None:
        self.total_jobs_completed += 1
        self.total_earnings += amount
        if rating is not None:
            total = self.rating * self.rating_count + rating
            self.rating_count += 1
            self.rating = round(total / self.rating_count, 2)
        self.updated_at = utcnow()
