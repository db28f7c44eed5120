from pydantic import BaseModel
from typing import Optional, List, Dict, Any
from datetime import datetime


class HourAwardResponse(BaseModel):
    id: str
    userId: str
    hours: float
    sourceType: str
    sourceId: str
    description: Optional[str] = None
    awardedAt: Optional[datetime] = None


class HourPenaltyResponse(BaseModel):
    id: str
    userId: str
    hours: float
    sourceType: str
    sourceId: str
    reason: str
    appliedAt: Optional[datetime] = None


class HoursSummaryResponse(BaseModel):
    userId: str
    totalAwarded: float
    totalPenalties: float
    balance: float
    awards: List[HourAwardResponse]
    penalties: List[HourPenaltyResponse]


class StudentRecordResponse(BaseModel):
    total_loans: int
    on_time_returns: int
    late_returns: int
    damages: int
    losses: int
    events_attended: int
    trust_score: int
    level: str


class NotificationResponse(BaseModel):
    id: str
    userId: str
    type: str
    title: str
    message: str
    data: Dict[str, Any] = {}
    isRead: bool
    createdAt: Optional[datetime] = None
