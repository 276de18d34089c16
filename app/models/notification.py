from datetime import datetime

from pydantic import BaseModel, Field

from app.core.clock import utcnow
from app.models.common import new_id


class Notification(BaseModel):
    id: str = Field(default_factory=new_id)
    user_id: str
    title: str
    message: str
    type: str  # applied, selected, verification, completed, penalty, dispute
    is_read: bool = False
    created_at: datetime = Field(default_factory=utcnow)
