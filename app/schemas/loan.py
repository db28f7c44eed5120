from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime
from app.schemas.resource import ResourceResponse
from app.schemas.queue import QueueEntryResponse


class LoanRequest(BaseModel):
    resource_id: int


class LoanResponse(BaseModel):
    id: str
    userId: str
    resourceId: str
    status: str
    decisionSource: Optional[str] = None
    queueEntryId: Optional[str] = None
    requestedAt: Optional[datetime] = None
    approvedAt: Optional[datetime] = None
    pickupDeadline: Optional[datetime] = None
    deliveredAt: Optional[datetime] = None
    dueDate: Optional[datetime] = None
    returnedAt: Optional[datetime] = None
    adminNotes: Optional[str] = None
    damageNotes: Optional[str] = None
    extensionRequested: bool = False
    extensionReason: Optional[str] = None
    extensionApproved: Optional[bool] = None
    rating: Optional[int] = None
    ratingComment: Optional[str] = None
    resource: Optional[ResourceResponse] = None


class LoanRequestResponse(BaseModel):
    """Outcome of a loan request: a loan, or a place in the resource queue."""
    queued: bool
    eligibility: Optional[str] = None
    loan: Optional[LoanResponse] = None
    queueEntry: Optional[QueueEntryResponse] = None


class AdminDecision(BaseModel):
    notes: Optional[str] = Field(None, max_length=1000)


class DeliverRequest(BaseModel):
    due_date: Optional[datetime] = None


class ExtensionRequest(BaseModel):
    reason: str = Field(..., min_length=1, max_length=1000)


class ExtensionDecision(BaseModel):
    approved: bool
    new_due_date: Optional[datetime] = None


class RatingRequest(BaseModel):
    rating: int = Field(..., ge=1, le=5)
    comment: Optional[str] = Field(None, max_length=1000)
