from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from typing import List, Optional
from app.config import LoanPolicy, get_loan_policy
from app.database import get_db
from app.models.event import Event, EventEnrollment
from app.models.user import User
from app.schemas.event import (
    EventCreate, EventUpdate, EventResponse, EnrollmentResponse, EnrollOutcome, AttendanceUpdate
)
from app.schemas.queue import QueueEntryResponse
from app.services import events
from app.services.auth import get_current_user, require_admin
from app.services.queue_ledger import event_waitlist

router = APIRouter(prefix="/api/events", tags=["Events"])


def _event_dict(db: Session, event: Event) -> dict:
    return event.to_dict(enrollment_count=events.enrollment_count(db, event.event_id))


@router.get("/", response_model=List[EventResponse])
async def list_events(
    include_inactive: bool = False,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    query = db.query(Event)
    if not include_inactive:
        query = query.filter(Event.is_active.is_(True))
    return [_event_dict(db, e) for e in query.order_by(Event.start_date.asc()).all()]


@router.get("/{event_id}", response_model=EventResponse)
async def get_event(
    event_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return _event_dict(db, events.get_event(db, event_id))


@router.post("/{event_id}/enroll", response_model=EnrollOutcome, status_code=status.HTTP_201_CREATED)
async def enroll(
    event_id: int,
    current_user: User = Depends(get_current_user),
    policy: LoanPolicy = Depends(get_loan_policy),
    db: Session = Depends(get_db)
):
    """Enroll in an event; a full event puts the student on its waitlist."""
    enrollment, entry = events.enroll(db, event_id, current_user.user_id, policy)
    return {
        "waitlisted": enrollment is None,
        "enrollment": enrollment.to_dict() if enrollment else None,
        "waitlistEntry": entry.to_dict() if entry else None,
    }


@router.delete("/{event_id}/enroll", status_code=status.HTTP_204_NO_CONTENT)
async def unenroll(
    event_id: int,
    current_user: User = Depends(get_current_user),
    policy: LoanPolicy = Depends(get_loan_policy),
    db: Session = Depends(get_db)
):
    events.unenroll(db, event_id, current_user.user_id, policy)


@router.post("/{event_id}/waitlist", response_model=QueueEntryResponse, status_code=status.HTTP_201_CREATED)
async def join_waitlist(
    event_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return event_waitlist.join(db, event_id, current_user.user_id).to_dict()


@router.delete("/{event_id}/waitlist", status_code=status.HTTP_204_NO_CONTENT)
async def leave_waitlist(
    event_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    event_waitlist.leave(db, event_id, current_user.user_id)


@router.post("/waitlist/{entry_id}/enroll", response_model=EnrollmentResponse, status_code=status.HTTP_201_CREATED)
async def enroll_from_waitlist(
    entry_id: int,
    current_user: User = Depends(get_current_user),
    policy: LoanPolicy = Depends(get_loan_policy),
    db: Session = Depends(get_db)
):
    return events.enroll_from_waitlist(db, entry_id, current_user.user_id, policy).to_dict()


# Admin

@router.post("/", response_model=EventResponse, status_code=status.HTTP_201_CREATED)
async def create_event(
    data: EventCreate,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    event = events.create_event(db, created_by=admin.user_id, **data.model_dump())
    return _event_dict(db, event)


@router.patch("/{event_id}", response_model=EventResponse)
async def update_event(
    event_id: int,
    data: EventUpdate,
    admin: User = Depends(require_admin),
    policy: LoanPolicy = Depends(get_loan_policy),
    db: Session = Depends(get_db)
):
    event = events.update_event(db, event_id, policy, **data.model_dump(exclude_unset=True))
    return _event_dict(db, event)


@router.post("/{event_id}/cancel", response_model=EventResponse)
async def cancel_event(
    event_id: int,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    return _event_dict(db, events.cancel_event(db, event_id))


@router.get("/{event_id}/enrollments", response_model=List[EnrollmentResponse])
async def list_enrollments(
    event_id: int,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    events.get_event(db, event_id)
    enrollments = db.query(EventEnrollment).filter(
        EventEnrollment.event_id == event_id
    ).order_by(EventEnrollment.enrolled_at.asc()).all()
    return [e.to_dict() for e in enrollments]


@router.put("/enrollments/{enrollment_id}/attendance", response_model=EnrollmentResponse)
async def mark_attendance(
    enrollment_id: int,
    data: AttendanceUpdate,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    return events.mark_attendance(db, enrollment_id, data.attended, admin.user_id).to_dict()


@router.post("/{event_id}/waitlist/notify", response_model=Optional[QueueEntryResponse])
async def notify_waitlist_head(
    event_id: int,
    admin: User = Depends(require_admin),
    policy: LoanPolicy = Depends(get_loan_policy),
    db: Session = Depends(get_db)
):
    entry = event_waitlist.notify_head(db, event_id, policy)
    return entry.to_dict() if entry else None
