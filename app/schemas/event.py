from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime
from app.schemas.queue import QueueEntryResponse


class EventCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    location: Optional[str] = Field(None, max_length=255)
    start_date: datetime
    end_date: datetime
    max_participants: Optional[int] = Field(None, ge=1)
    wellness_hours: float = Field(..., gt=0)


class EventUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    location: Optional[str] = Field(None, max_length=255)
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    max_participants: Optional[int] = Field(None, ge=1)
    wellness_hours: Optional[float] = Field(None, gt=0)


class EventResponse(BaseModel):
    id: str
    title: str
    description: Optional[str] = None
    location: Optional[str] = None
    startDate: datetime
    endDate: datetime
    maxParticipants: Optional[int] = None
    wellnessHours: float
    isActive: bool
    enrollmentCount: Optional[int] = None


class EnrollmentResponse(BaseModel):
    id: str
    eventId: str
    userId: str
    enrolledAt: Optional[datetime] = None
    attended: bool
    attendanceRegisteredAt: Optional[datetime] = None


class EnrollOutcome(BaseModel):
    waitlisted: bool
    enrollment: Optional[EnrollmentResponse] = None
    waitlistEntry: Optional[QueueEntryResponse] = None


class AttendanceUpdate(BaseModel):
    attended: bool
