from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime


class SanctionCreate(BaseModel):
    user_id: int
    severity: str = Field(..., pattern="^(low|medium|high|critical)$")
    reason: str = Field(..., min_length=1, max_length=2000)
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None


class AppealRequest(BaseModel):
    notes: str = Field(..., min_length=1, max_length=2000)


class AppealDecision(BaseModel):
    approved: bool
    notes: Optional[str] = Field(None, max_length=2000)


class SanctionResponse(BaseModel):
    id: str
    userId: str
    severity: str
    reason: str
    startDate: Optional[datetime] = None
    endDate: Optional[datetime] = None
    status: str
    appealNotes: Optional[str] = None
    issuedBy: Optional[str] = None
