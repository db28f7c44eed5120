from pydantic import BaseModel
from typing import Optional
from datetime import datetime


class QueueJoinRequest(BaseModel):
    resource_id: int


class QueueEntryResponse(BaseModel):
    id: str
    targetId: str
    userId: str
    position: int
    status: str
    requestedAt: Optional[datetime] = None
    notifiedAt: Optional[datetime] = None
    expiresAt: Optional[datetime] = None
    enrolledAt: Optional[datetime] = None
